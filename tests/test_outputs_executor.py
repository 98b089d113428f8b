"""Unit tests for the execution engine."""
from dataclasses import replace

import pytest

from repo_agents.config import OutputTypeConfig
from repo_agents.errors import ConflictError, GatewayError, GitCommandError
from repo_agents.outputs.executor import (
    OUTPUT_EXECUTORS,
    attribution_footer,
    execute_batch,
    merge_labels,
    subtract_labels,
)
from repo_agents.outputs.models import OutputRecord, OutputType


def _records(output_type, *fields_list):
    return [
        OutputRecord(output_type=output_type, filename=f"{output_type}-{i}.json", fields=fields)
        for i, fields in enumerate(fields_list, start=1)
    ]


class TestLabelSetOps:
    """Tests for merge_labels / subtract_labels."""

    def test_merge_preserves_order_without_duplicates(self):
        assert merge_labels(["bug", "triage"], ["triage", "p1"]) == ["bug", "triage", "p1"]

    def test_subtract_ignores_missing(self):
        assert subtract_labels(["bug", "triage"], ["triage", "nope"]) == ["bug"]


class TestAttributionFooter:
    """Tests for attribution_footer."""

    def test_footer_links(self, context):
        assert attribution_footer(context) == (
            "\n\n> *Generated by [Triage Bot](https://github.com/acme/widgets/blob/main/.github/agents/triage.md) "
            "in workflow [Agent: triage #56](https://github.com/acme/widgets/actions/runs/1234)*"
        )


class TestExecuteBatch:
    """Tests for execute_batch."""

    def test_all_types_registered(self):
        assert set(OUTPUT_EXECUTORS) == set(OutputType)

    @pytest.mark.asyncio
    async def test_add_comment(self, context, gateway):
        outcomes = await execute_batch(
            OutputType.ADD_COMMENT, _records(OutputType.ADD_COMMENT, {"body": "Looks good"}),
            OutputTypeConfig(), context, gateway,
        )
        assert [o.succeeded for o in outcomes] == [True]
        [(number, body)] = gateway.calls_to("create_issue_comment")
        assert number == "42"
        assert body.startswith("Looks good\n\n> *Generated by [Triage Bot]")

    @pytest.mark.asyncio
    async def test_add_comment_uses_pr_number(self, context, gateway):
        ctx = replace(context, issue_number=None, pr_number="17")
        await execute_batch(
            OutputType.ADD_COMMENT, _records(OutputType.ADD_COMMENT, {"body": "x"}), OutputTypeConfig(), ctx, gateway
        )
        assert gateway.calls_to("create_issue_comment")[0][0] == "17"

    @pytest.mark.asyncio
    async def test_missing_target_fails_file(self, context, gateway):
        ctx = replace(context, issue_number=None, pr_number=None)
        [outcome] = await execute_batch(
            OutputType.ADD_COMMENT, _records(OutputType.ADD_COMMENT, {"body": "x"}), OutputTypeConfig(), ctx, gateway
        )
        assert outcome.succeeded is False
        assert outcome.error == "No issue or PR number available"
        assert outcome.render(OutputType.ADD_COMMENT) == (
            "**add-comment**: Failed to execute add-comment-1.json: No issue or PR number available"
        )

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_siblings(self, context, make_gateway):
        gw = make_gateway()
        calls = {"n": 0}
        original = gw.create_issue

        async def flaky(title, body, labels, assignees):
            calls["n"] += 1
            if calls["n"] == 1:
                raise GatewayError("create issue failed with HTTP 422", status=422)
            return await original(title, body, labels, assignees)

        gw.create_issue = flaky
        outcomes = await execute_batch(
            OutputType.CREATE_ISSUE,
            _records(OutputType.CREATE_ISSUE, {"title": "A", "body": "a"}, {"title": "B", "body": "b"}),
            OutputTypeConfig(), context, gw,
        )
        assert [o.succeeded for o in outcomes] == [False, True]
        assert "422" in outcomes[0].error

    @pytest.mark.asyncio
    async def test_add_label_merges(self, context, make_gateway):
        gw = make_gateway(issue_labels={"42": ["bug"]})
        await execute_batch(
            OutputType.ADD_LABEL, _records(OutputType.ADD_LABEL, {"labels": ["triage", "bug"]}),
            OutputTypeConfig(), context, gw,
        )
        assert gw.issue_labels["42"] == ["bug", "triage"]
        [(_, labels, etag)] = gw.calls_to("replace_issue_labels")
        assert etag == '"rev-0"'

    @pytest.mark.asyncio
    async def test_remove_label(self, context, make_gateway):
        gw = make_gateway(issue_labels={"42": ["bug", "triage"]})
        await execute_batch(
            OutputType.REMOVE_LABEL, _records(OutputType.REMOVE_LABEL, {"labels": ["triage", "absent"]}),
            OutputTypeConfig(), context, gw,
        )
        assert gw.issue_labels["42"] == ["bug"]

    @pytest.mark.asyncio
    async def test_label_conflict_rereads_and_retries(self, context, make_gateway):
        gw = make_gateway(issue_labels={"42": ["bug"]})
        gw.label_conflicts = 2
        [outcome] = await execute_batch(
            OutputType.ADD_LABEL, _records(OutputType.ADD_LABEL, {"labels": ["p1"]}), OutputTypeConfig(), context, gw,
        )
        assert outcome.succeeded is True
        assert len(gw.calls_to("get_issue_labels")) == 3
        assert [args[2] for args in gw.calls_to("replace_issue_labels")] == ['"rev-0"', '"rev-1"', '"rev-2"']

    @pytest.mark.asyncio
    async def test_label_conflict_gives_up(self, context, make_gateway):
        gw = make_gateway(issue_labels={"42": ["bug"]})
        gw.label_conflicts = 5
        [outcome] = await execute_batch(
            OutputType.ADD_LABEL, _records(OutputType.ADD_LABEL, {"labels": ["p1"]}), OutputTypeConfig(), context, gw,
        )
        assert outcome.succeeded is False
        assert len(gw.calls_to("replace_issue_labels")) == 3

    @pytest.mark.asyncio
    async def test_create_issue(self, context, gateway):
        await execute_batch(
            OutputType.CREATE_ISSUE,
            _records(OutputType.CREATE_ISSUE, {"title": "T", "body": "B", "labels": ["bug"], "assignees": ["octo"]}),
            OutputTypeConfig(), context, gateway,
        )
        assert gateway.calls_to("create_issue") == [("T", "B", ["bug"], ["octo"])]

    @pytest.mark.asyncio
    async def test_create_discussion(self, context, gateway):
        await execute_batch(
            OutputType.CREATE_DISCUSSION,
            _records(OutputType.CREATE_DISCUSSION, {"title": "T", "body": "B", "category": "Ideas"}),
            OutputTypeConfig(), context, gateway,
        )
        [(repo_id, category_id, title, body)] = gateway.calls_to("create_discussion")
        assert (repo_id, category_id, title) == ("R_repo", "DIC_ideas", "T")
        assert body.startswith("B\n\n> *Generated by")

    @pytest.mark.asyncio
    async def test_create_discussion_unknown_category(self, context, gateway):
        [outcome] = await execute_batch(
            OutputType.CREATE_DISCUSSION,
            _records(OutputType.CREATE_DISCUSSION, {"title": "T", "body": "B", "category": "Missing"}),
            OutputTypeConfig(), context, gateway,
        )
        assert outcome.error == "Category 'Missing' not found in repository"
        assert gateway.calls_to("create_discussion") == []


class TestCreatePr:
    """Tests for create-pr execution."""

    FIELDS = {
        "branch": "agent/docs",
        "title": "Update docs",
        "body": "Refresh the guide",
        "files": [{"path": "docs/guide.md", "content": "# Guide"}],
    }

    @pytest.mark.asyncio
    async def test_full_flow(self, context, gateway):
        [outcome] = await execute_batch(
            OutputType.CREATE_PR, _records(OutputType.CREATE_PR, self.FIELDS), OutputTypeConfig(sign=True), context, gateway,
        )
        assert outcome.succeeded is True
        assert gateway.call_names() == [
            "find_open_pull_request",
            "prepare_branch",
            "commit_files",
            "push_branch",
            "create_pull_request",
            "restore_default_branch",
        ]
        assert gateway.calls_to("commit_files") == [([("docs/guide.md", "# Guide")], "Update docs", True)]
        assert gateway.calls_to("create_pull_request") == [("Update docs", "Refresh the guide", "main", "agent/docs")]

    @pytest.mark.asyncio
    async def test_idempotent_when_pr_open(self, context, make_gateway):
        gw = make_gateway(open_pr_branches={"agent/docs"})
        [outcome] = await execute_batch(
            OutputType.CREATE_PR, _records(OutputType.CREATE_PR, self.FIELDS), OutputTypeConfig(), context, gw,
        )
        assert outcome.succeeded is True
        assert gw.call_names() == ["find_open_pull_request"]

    @pytest.mark.asyncio
    async def test_second_run_is_noop(self, context, gateway):
        records = _records(OutputType.CREATE_PR, self.FIELDS)
        await execute_batch(OutputType.CREATE_PR, records, OutputTypeConfig(), context, gateway)
        await execute_batch(OutputType.CREATE_PR, records, OutputTypeConfig(), context, gateway)
        assert len(gateway.calls_to("create_pull_request")) == 1

    @pytest.mark.asyncio
    async def test_custom_base(self, context, gateway):
        fields = dict(self.FIELDS, base="develop")
        await execute_batch(OutputType.CREATE_PR, _records(OutputType.CREATE_PR, fields), OutputTypeConfig(), context, gateway)
        assert gateway.calls_to("create_pull_request")[0][2] == "develop"

    @pytest.mark.asyncio
    async def test_push_failure_restores_default_branch(self, context, make_gateway):
        gw = make_gateway()
        gw.fail_on["push_branch"] = GatewayError("rejected")
        [outcome] = await execute_batch(
            OutputType.CREATE_PR, _records(OutputType.CREATE_PR, self.FIELDS), OutputTypeConfig(), context, gw,
        )
        assert outcome.succeeded is False
        assert outcome.error == "rejected"
        assert gw.call_names()[-1] == "restore_default_branch"
        assert gw.calls_to("create_pull_request") == []

    @pytest.mark.asyncio
    async def test_branch_preparation_failure_restores_default_branch(self, context, make_gateway):
        gw = make_gateway()
        gw.fail_on["prepare_branch"] = GitCommandError(["checkout", "-b", "a..b"], 128, "not a valid branch name")
        fields = dict(self.FIELDS, branch="a..b")
        [outcome] = await execute_batch(
            OutputType.CREATE_PR, _records(OutputType.CREATE_PR, fields), OutputTypeConfig(), context, gw,
        )
        assert outcome.succeeded is False
        assert "not a valid branch name" in outcome.error
        assert gw.call_names() == ["find_open_pull_request", "prepare_branch", "restore_default_branch"]


class TestUpdateFile:
    """Tests for update-file execution."""

    @pytest.mark.asyncio
    async def test_create_vs_update(self, context, make_gateway):
        gw = make_gateway(existing_files={("main", "docs/old.md"): "abc123"})
        fields = {
            "files": [{"path": "docs/old.md", "content": "v2"}, {"path": "docs/new.md", "content": "v1"}],
            "message": "Refresh docs",
        }
        [outcome] = await execute_batch(
            OutputType.UPDATE_FILE, _records(OutputType.UPDATE_FILE, fields), OutputTypeConfig(), context, gw,
        )
        assert outcome.succeeded is True
        assert gw.calls_to("put_file") == [
            ("docs/old.md", "v2", "Refresh docs", "main", "abc123"),
            ("docs/new.md", "v1", "Refresh docs", "main", None),
        ]

    @pytest.mark.asyncio
    async def test_custom_branch(self, context, gateway):
        fields = {"files": [{"path": "a.md", "content": "x"}], "message": "m", "branch": "docs"}
        await execute_batch(OutputType.UPDATE_FILE, _records(OutputType.UPDATE_FILE, fields), OutputTypeConfig(), context, gateway)
        assert gateway.calls_to("get_file_sha") == [("a.md", "docs")]

    @pytest.mark.asyncio
    async def test_conflict_fails_file(self, context, make_gateway):
        gw = make_gateway()
        gw.fail_on["put_file"] = ConflictError("update file failed with HTTP 409: sha mismatch", status=409)
        fields = {"files": [{"path": "a.md", "content": "x"}], "message": "m"}
        [outcome] = await execute_batch(
            OutputType.UPDATE_FILE, _records(OutputType.UPDATE_FILE, fields), OutputTypeConfig(), context, gw,
        )
        assert outcome.succeeded is False
        assert len(gw.calls_to("put_file")) == 1


class TestCloseOutputs:
    """Tests for close-issue and close-pr execution."""

    @pytest.mark.asyncio
    async def test_close_issue_default_reason(self, context, gateway):
        await execute_batch(OutputType.CLOSE_ISSUE, _records(OutputType.CLOSE_ISSUE, {}), OutputTypeConfig(), context, gateway)
        assert gateway.calls_to("close_issue") == [("42", "completed")]

    @pytest.mark.asyncio
    async def test_close_issue_requires_issue(self, context, gateway):
        ctx = replace(context, issue_number=None, pr_number="3")
        [outcome] = await execute_batch(
            OutputType.CLOSE_ISSUE, _records(OutputType.CLOSE_ISSUE, {}), OutputTypeConfig(), ctx, gateway
        )
        assert outcome.error == "No issue number available"

    @pytest.mark.asyncio
    async def test_close_pr_requires_pr(self, context, gateway):
        [outcome] = await execute_batch(
            OutputType.CLOSE_PR, _records(OutputType.CLOSE_PR, {}), OutputTypeConfig(), context, gateway
        )
        assert outcome.error == "No pull request number available"

    @pytest.mark.asyncio
    async def test_close_pr_merge_or_close(self, context, gateway):
        ctx = replace(context, pr_number="9")
        await execute_batch(OutputType.CLOSE_PR, _records(OutputType.CLOSE_PR, {"merge": True}), OutputTypeConfig(), ctx, gateway)
        await execute_batch(OutputType.CLOSE_PR, _records(OutputType.CLOSE_PR, {}), OutputTypeConfig(), ctx, gateway)
        assert gateway.calls_to("merge_pull_request") == [("9",)]
        assert gateway.calls_to("close_pull_request") == [("9",)]
