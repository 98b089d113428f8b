"""
GitHub REST and GraphQL client used for existence checks and side effects.
All calls go through typed methods; nothing is composed into shell command lines.
"""
import base64
import logging
from typing import Any, Dict, List, Optional, Tuple, Union
from urllib.parse import quote

import httpx

from repo_agents.errors import ConfigError, ConflictError, GatewayError, NotFoundError
from repo_agents.retry import with_retry
from repo_agents.validation.schemas import Thresholds

logger = logging.getLogger(__name__)

PER_PAGE = 100
MAX_LABEL_PAGES = 10

CATEGORIES_QUERY = """query($owner: String!, $repo: String!, $first: Int!) {
  repository(owner: $owner, name: $repo) {
    discussionCategories(first: $first) {
      nodes { id name }
    }
  }
}"""

REPOSITORY_ID_QUERY = """query($owner: String!, $repo: String!) {
  repository(owner: $owner, name: $repo) { id }
}"""

CREATE_DISCUSSION_MUTATION = """mutation($repositoryId: ID!, $categoryId: ID!, $title: String!, $body: String!) {
  createDiscussion(input: {repositoryId: $repositoryId, categoryId: $categoryId, title: $title, body: $body}) {
    discussion { url }
  }
}"""


def graphql_url_for(api_url: str) -> str:
    """GraphQL endpoint for an API base URL (handles GitHub Enterprise `/api/v3`)."""
    if api_url.endswith("/api/v3"):
        return api_url[: -len("/v3")] + "/graphql"
    return api_url + "/graphql"


def _raise_for_status(response: httpx.Response, operation: str) -> None:
    if response.status_code < 400:
        return
    try:
        body = response.json()
        detail = body.get("message", "") if isinstance(body, dict) else ""
    except ValueError:
        detail = response.text[:200]
    message = f"{operation} failed with HTTP {response.status_code}: {detail}".rstrip(": ")
    if response.status_code == 404:
        raise NotFoundError(message, status=404)
    if response.status_code in (409, 412):
        raise ConflictError(message, status=response.status_code)
    raise GatewayError(message, status=response.status_code)


def _json(response: httpx.Response, operation: str, expected: Union[type, Tuple[type, ...]] = dict) -> Any:
    """Decoded body of a successful response, or GatewayError if it is not ``expected`` JSON."""
    try:
        payload = response.json()
    except ValueError as e:
        raise GatewayError(f"{operation} returned a non-JSON body: {e}", status=response.status_code) from e
    if not isinstance(payload, expected):
        raise GatewayError(
            f"{operation} returned an unexpected {type(payload).__name__} body",
            status=response.status_code,
        )
    return payload


class GitHubClient:
    """
    Thin async wrapper over the GitHub API for one repository.

    Reads and the label replacement are retried on transient failures. Writes that
    create something (comments, issues, pull requests, discussions, merges, file
    commits) are sent once, since a lost response may hide a write that was applied.

    Use as an async context manager, or call ``aclose()`` when done.
    """

    def __init__(
        self,
        repository: str,
        token: Optional[str] = None,
        api_url: str = "https://api.github.com",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        owner, _, name = repository.partition("/")
        if not owner or not name:
            raise ConfigError(f"Repository must be in owner/repo format, got {repository!r}")
        self.repository = repository
        self.owner = owner
        self.name = name
        self.graphql_url = graphql_url_for(api_url.rstrip("/"))
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=api_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _send(
        self,
        method: str,
        url: str,
        operation: str,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        response = await self._client.request(method, url, json=json, params=params, headers=headers)
        _raise_for_status(response, operation)
        return response

    @with_retry(max_retries=2, backoff_base=2.0, operation_name="github_request")
    async def _send_repeatable(self, *args, **kwargs) -> httpx.Response:
        return await self._send(*args, **kwargs)

    async def _request(
        self,
        method: str,
        url: str,
        operation: str,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        retry: bool = False,
    ) -> httpx.Response:
        send = self._send_repeatable if retry else self._send
        try:
            return await send(method, url, operation, json=json, params=params, headers=headers)
        except httpx.HTTPError as e:
            raise GatewayError(f"{operation} failed: {e}") from e

    def _repo_path(self, suffix: str = "") -> str:
        return f"/repos/{self.owner}/{self.name}{suffix}"

    async def graphql(
        self,
        query: str,
        variables: Dict[str, Any],
        operation: str = "graphql",
        retry: bool = False,
    ) -> Dict[str, Any]:
        """Run a query or mutation; only pass ``retry=True`` for queries."""
        response = await self._request(
            "POST", self.graphql_url, operation, json={"query": query, "variables": variables}, retry=retry
        )
        payload = _json(response, operation)
        if payload.get("errors"):
            messages = "; ".join(
                str(err.get("message", err)) if isinstance(err, dict) else str(err) for err in payload["errors"]
            )
            raise GatewayError(f"{operation} failed: {messages}")
        data = payload.get("data")
        return data if isinstance(data, dict) else {}

    # ------------------------------------------------------------------
    # Existence checks
    # ------------------------------------------------------------------

    async def list_labels(self) -> List[str]:
        names: List[str] = []
        for page in range(1, MAX_LABEL_PAGES + 1):
            response = await self._request(
                "GET", self._repo_path("/labels"), "list labels",
                params={"per_page": PER_PAGE, "page": page}, retry=True,
            )
            batch = _json(response, "list labels", expected=list)
            names.extend(item["name"] for item in batch if isinstance(item, dict) and isinstance(item.get("name"), str))
            if len(batch) < PER_PAGE:
                break
        return names

    async def list_discussion_categories(self) -> Dict[str, str]:
        """Map discussion category name -> node id."""
        data = await self.graphql(
            CATEGORIES_QUERY,
            {"owner": self.owner, "repo": self.name, "first": Thresholds.MAX_DISCUSSION_CATEGORIES},
            operation="list discussion categories",
            retry=True,
        )
        repository = data.get("repository") or {}
        categories = repository.get("discussionCategories") if isinstance(repository, dict) else None
        nodes = (categories.get("nodes") if isinstance(categories, dict) else None) or []
        if not isinstance(nodes, list):
            raise GatewayError("list discussion categories returned malformed nodes")
        return {
            node["name"]: node["id"]
            for node in nodes
            if isinstance(node, dict) and node.get("name") and node.get("id")
        }

    async def get_repository_id(self) -> str:
        data = await self.graphql(
            REPOSITORY_ID_QUERY, {"owner": self.owner, "repo": self.name},
            operation="get repository id", retry=True,
        )
        repository = data.get("repository")
        repo_id = repository.get("id") if isinstance(repository, dict) else None
        if not repo_id:
            raise GatewayError(f"Repository {self.repository} not found")
        return repo_id

    # ------------------------------------------------------------------
    # Issues, labels, comments
    # ------------------------------------------------------------------

    async def get_issue_labels(self, number: str) -> Tuple[List[str], Optional[str]]:
        """Current label names and the response ETag (revision token)."""
        response = await self._request("GET", self._repo_path(f"/issues/{number}"), "get issue", retry=True)
        issue = _json(response, "get issue")
        labels = [
            label["name"] for label in issue.get("labels") or []
            if isinstance(label, dict) and isinstance(label.get("name"), str)
        ]
        return labels, response.headers.get("etag")

    async def replace_issue_labels(self, number: str, labels: List[str], expected_etag: Optional[str] = None) -> None:
        # Replaces the whole set, so repeating it is harmless.
        headers = {"If-Match": expected_etag} if expected_etag else None
        await self._request(
            "PUT", self._repo_path(f"/issues/{number}/labels"), "replace labels",
            json={"labels": list(labels)}, headers=headers, retry=True,
        )

    async def create_issue_comment(self, number: str, body: str) -> Dict[str, Any]:
        response = await self._request(
            "POST", self._repo_path(f"/issues/{number}/comments"), "create comment", json={"body": body}
        )
        return _json(response, "create comment")

    async def create_issue(self, title: str, body: str, labels: List[str], assignees: List[str]) -> Dict[str, Any]:
        response = await self._request(
            "POST", self._repo_path("/issues"), "create issue",
            json={"title": title, "body": body, "labels": list(labels), "assignees": list(assignees)},
        )
        return _json(response, "create issue")

    async def close_issue(self, number: str, state_reason: str) -> None:
        await self._request(
            "PATCH", self._repo_path(f"/issues/{number}"), "close issue",
            json={"state": "closed", "state_reason": state_reason},
        )

    # ------------------------------------------------------------------
    # Discussions
    # ------------------------------------------------------------------

    async def create_discussion(self, repository_id: str, category_id: str, title: str, body: str) -> Optional[str]:
        data = await self.graphql(
            CREATE_DISCUSSION_MUTATION,
            {"repositoryId": repository_id, "categoryId": category_id, "title": title, "body": body},
            operation="create discussion",
        )
        created = data.get("createDiscussion")
        discussion = created.get("discussion") if isinstance(created, dict) else None
        return discussion.get("url") if isinstance(discussion, dict) else None

    # ------------------------------------------------------------------
    # Pull requests
    # ------------------------------------------------------------------

    async def find_open_pull_request(self, branch: str) -> Optional[Dict[str, Any]]:
        response = await self._request(
            "GET", self._repo_path("/pulls"), "list pull requests",
            params={"head": f"{self.owner}:{branch}", "state": "open"}, retry=True,
        )
        pulls = _json(response, "list pull requests", expected=list)
        return pulls[0] if pulls else None

    async def create_pull_request(self, title: str, body: str, base: str, head: str) -> Dict[str, Any]:
        response = await self._request(
            "POST", self._repo_path("/pulls"), "create pull request",
            json={"title": title, "body": body, "base": base, "head": head},
        )
        return _json(response, "create pull request")

    async def close_pull_request(self, number: str) -> None:
        await self._request("PATCH", self._repo_path(f"/pulls/{number}"), "close pull request", json={"state": "closed"})

    async def merge_pull_request(self, number: str) -> None:
        await self._request("PUT", self._repo_path(f"/pulls/{number}/merge"), "merge pull request")

    # ------------------------------------------------------------------
    # Contents
    # ------------------------------------------------------------------

    async def get_file_sha(self, path: str, ref: Optional[str] = None) -> Optional[str]:
        """Blob SHA of ``path`` on ``ref``; None if the file does not exist."""
        params = {"ref": ref} if ref else None
        try:
            response = await self._request(
                "GET", self._repo_path(f"/contents/{quote(path, safe='/')}"), "get file",
                params=params, retry=True,
            )
        except NotFoundError:
            return None
        # a directory listing comes back as a list
        data = _json(response, "get file", expected=(dict, list))
        return data.get("sha") if isinstance(data, dict) else None

    async def put_file(
        self,
        path: str,
        content: str,
        message: str,
        branch: str,
        sha: Optional[str] = None,
    ) -> None:
        payload = {
            "message": message,
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
            "branch": branch,
        }
        if sha:
            payload["sha"] = sha
        await self._request("PUT", self._repo_path(f"/contents/{quote(path, safe='/')}"), "update file", json=payload)
