"""Pytest configuration and shared fixtures."""
import json
import os
import sys

import pytest

# Ensure repo_agents is on path when running tests from project root
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from repo_agents.config import AgentConfig, ExecutionContext, OutputTypeConfig, Settings  # noqa: E402
from repo_agents.errors import ConflictError  # noqa: E402


class FakeGateway:
    """
    In-memory gateway that records every call as (name, args).

    ``fail_on`` maps a method name to an exception raised on every call to it.
    ``label_conflicts`` is the number of label writes rejected with ConflictError
    before one succeeds.
    """

    def __init__(self, labels=("bug", "enhancement", "triage"), categories=None, issue_labels=None,
                 open_pr_branches=(), existing_files=None):
        self.labels = list(labels)
        self.categories = dict(categories if categories is not None else {"General": "DIC_general", "Ideas": "DIC_ideas"})
        self.issue_labels = {k: list(v) for k, v in (issue_labels or {}).items()}
        self.open_pr_branches = set(open_pr_branches)
        self.existing_files = dict(existing_files or {})  # (branch, path) -> sha
        self.fail_on = {}
        self.label_conflicts = 0
        self.label_revision = 0
        self.calls = []

    def _record(self, name, *args):
        self.calls.append((name, args))
        if name in self.fail_on:
            raise self.fail_on[name]

    def calls_to(self, name):
        return [args for call, args in self.calls if call == name]

    def call_names(self):
        return [name for name, _ in self.calls]

    async def list_labels(self):
        self._record("list_labels")
        return list(self.labels)

    async def list_discussion_categories(self):
        self._record("list_discussion_categories")
        return dict(self.categories)

    async def get_issue_labels(self, number):
        self._record("get_issue_labels", number)
        return list(self.issue_labels.get(number, [])), f'"rev-{self.label_revision}"'

    async def replace_issue_labels(self, number, labels, expected_etag=None):
        self._record("replace_issue_labels", number, list(labels), expected_etag)
        if self.label_conflicts > 0:
            self.label_conflicts -= 1
            self.label_revision += 1
            raise ConflictError("labels changed", status=412)
        self.issue_labels[number] = list(labels)
        self.label_revision += 1

    async def create_issue_comment(self, number, body):
        self._record("create_issue_comment", number, body)
        return {"id": 1}

    async def create_issue(self, title, body, labels, assignees):
        self._record("create_issue", title, body, labels, assignees)
        return {"number": 99}

    async def close_issue(self, number, state_reason):
        self._record("close_issue", number, state_reason)

    async def get_repository_id(self):
        self._record("get_repository_id")
        return "R_repo"

    async def create_discussion(self, repository_id, category_id, title, body):
        self._record("create_discussion", repository_id, category_id, title, body)
        return "https://github.com/acme/widgets/discussions/1"

    async def find_open_pull_request(self, branch):
        self._record("find_open_pull_request", branch)
        return {"number": 7, "head": {"ref": branch}} if branch in self.open_pr_branches else None

    async def create_pull_request(self, title, body, base, head):
        self._record("create_pull_request", title, body, base, head)
        self.open_pr_branches.add(head)
        return {"number": 8}

    async def close_pull_request(self, number):
        self._record("close_pull_request", number)

    async def merge_pull_request(self, number):
        self._record("merge_pull_request", number)

    async def prepare_branch(self, branch, default_branch, git_user, git_email):
        self._record("prepare_branch", branch, default_branch, git_user, git_email)

    async def commit_files(self, files, message, sign):
        self._record("commit_files", [(f.path, f.content) for f in files], message, sign)

    async def push_branch(self, branch):
        self._record("push_branch", branch)

    async def restore_default_branch(self, default_branch):
        self._record("restore_default_branch", default_branch)

    async def get_file_sha(self, path, ref=None):
        self._record("get_file_sha", path, ref)
        return self.existing_files.get((ref, path))

    async def put_file(self, path, content, message, branch, sha=None):
        self._record("put_file", path, content, message, branch, sha)
        self.existing_files[(branch, path)] = f"sha-{path}"


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def outputs_dir(tmp_path):
    d = tmp_path / "outputs"
    d.mkdir()
    return d


@pytest.fixture
def errors_dir(tmp_path):
    return tmp_path / "validation-errors"


@pytest.fixture
def settings(outputs_dir, errors_dir):
    return Settings(outputs_dir=outputs_dir, validation_errors_dir=errors_dir)


@pytest.fixture
def context():
    return ExecutionContext(
        repository="acme/widgets",
        agent_name="Triage Bot",
        agent_path=".github/agents/triage.md",
        run_id="1234",
        run_number="56",
        workflow="Agent: triage",
        issue_number="42",
    )


@pytest.fixture
def write_output(outputs_dir):
    """Write a declaration file; dicts are JSON-encoded, strings written raw."""
    def _write(filename, content):
        path = outputs_dir / filename
        if isinstance(content, str):
            path.write_text(content, encoding="utf-8")
        else:
            path.write_text(json.dumps(content), encoding="utf-8")
        return path
    return _write


@pytest.fixture
def read_errors():
    """Load the JSON error artifact for a type; [] when none was written."""
    def _read(errors_dir, output_type):
        path = errors_dir / f"{output_type}.json"
        if not path.exists():
            return []
        return json.loads(path.read_text(encoding="utf-8"))
    return _read


def make_agent(outputs=None, allowed_paths=(), name="Triage Bot"):
    """Build an AgentConfig; ``outputs`` maps type -> True/False/{max, sign}."""
    return AgentConfig(
        name=name,
        path=".github/agents/triage.md",
        outputs={k: OutputTypeConfig.from_raw(v) for k, v in (outputs or {}).items()},
        allowed_paths=tuple(allowed_paths),
    )


@pytest.fixture
def agent_factory():
    return make_agent


@pytest.fixture
def make_gateway():
    return FakeGateway


@pytest.fixture
def agent():
    return make_agent()
