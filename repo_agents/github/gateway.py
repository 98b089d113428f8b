"""
Side-effect gateway: the single seam between the execution engine and the
repository hosting service. The engine only talks to ``SideEffectGateway``;
``GitHubGateway`` implements it with the REST/GraphQL client and a local checkout.
"""
import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

from repo_agents.github.client import GitHubClient
from repo_agents.github.git import GitWorkspace
from repo_agents.outputs.models import FileChange

logger = logging.getLogger(__name__)


class SideEffectGateway(Protocol):
    # existence checks
    async def list_labels(self) -> List[str]: ...
    async def list_discussion_categories(self) -> Dict[str, str]: ...

    # issues and labels
    async def get_issue_labels(self, number: str) -> Tuple[List[str], Optional[str]]: ...
    async def replace_issue_labels(self, number: str, labels: List[str], expected_etag: Optional[str] = None) -> None: ...
    async def create_issue_comment(self, number: str, body: str) -> Any: ...
    async def create_issue(self, title: str, body: str, labels: List[str], assignees: List[str]) -> Any: ...
    async def close_issue(self, number: str, state_reason: str) -> None: ...

    # discussions
    async def get_repository_id(self) -> str: ...
    async def create_discussion(self, repository_id: str, category_id: str, title: str, body: str) -> Optional[str]: ...

    # pull requests
    async def find_open_pull_request(self, branch: str) -> Optional[Dict[str, Any]]: ...
    async def create_pull_request(self, title: str, body: str, base: str, head: str) -> Any: ...
    async def close_pull_request(self, number: str) -> None: ...
    async def merge_pull_request(self, number: str) -> None: ...

    # local branch work for create-pr
    async def prepare_branch(self, branch: str, default_branch: str, git_user: str, git_email: str) -> None: ...
    async def commit_files(self, files: Sequence[FileChange], message: str, sign: bool) -> None: ...
    async def push_branch(self, branch: str) -> None: ...
    async def restore_default_branch(self, default_branch: str) -> None: ...

    # contents
    async def get_file_sha(self, path: str, ref: Optional[str] = None) -> Optional[str]: ...
    async def put_file(self, path: str, content: str, message: str, branch: str, sha: Optional[str] = None) -> None: ...


class GitHubGateway(GitHubClient):
    """
    GitHub implementation of the gateway.

    Remote calls are the inherited ``GitHubClient`` methods. Branch preparation
    for create-pr runs in ``GitWorkspace``. Recreating a branch that another run
    pushes at the same moment is not guarded; runs targeting the same branch
    must be serialised by the caller.

    Label writes send the issue ETag as ``If-Match``. GitHub does not document
    conditional writes on ``PUT /issues/{n}/labels``, so a concurrent label
    change can still be lost when the header is ignored. When it is honoured,
    any edit to the issue (not only its labels) changes the ETag and costs a
    retry.
    """

    def __init__(self, repository: str, workspace: GitWorkspace, **client_kwargs):
        super().__init__(repository, **client_kwargs)
        self.workspace = workspace

    async def prepare_branch(self, branch: str, default_branch: str, git_user: str, git_email: str) -> None:
        ws = self.workspace
        await ws.configure_identity(git_user, git_email)
        await ws.checkout_default(default_branch)
        if await ws.remote_branch_exists(branch):
            logger.info(f"Deleting stale remote branch {branch}")
            await ws.delete_remote_branch(branch)
        if await ws.delete_local_branch(branch):
            logger.info(f"Deleted stale local branch {branch}")
        await ws.create_branch(branch)

    async def commit_files(self, files: Sequence[FileChange], message: str, sign: bool) -> None:
        await self.workspace.write_files([(f.path, f.content) for f in files])
        await self.workspace.commit(message, sign=sign)

    async def push_branch(self, branch: str) -> None:
        await self.workspace.push(branch)

    async def restore_default_branch(self, default_branch: str) -> None:
        await self.workspace.checkout_default(default_branch)
