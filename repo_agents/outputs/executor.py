"""
Execution engine: applies a validated batch of declarations through the gateway.

Only called for batches that passed validation. Each declaration file is executed
independently; a failure is recorded on that file's outcome and its siblings
still run.
"""
import logging
from typing import Awaitable, Callable, Dict, List, Sequence

from repo_agents.config import ExecutionContext, OutputTypeConfig
from repo_agents.errors import ExecutionError, GatewayError, GitCommandError
from repo_agents.github.gateway import SideEffectGateway
from repo_agents.outputs.models import (
    AddComment,
    AddLabel,
    CloseIssue,
    ClosePullRequest,
    CreateDiscussion,
    CreateIssue,
    CreatePullRequest,
    ExecutionOutcome,
    OutputRecord,
    OutputType,
    RemoveLabel,
    UpdateFile,
    parse_payload,
)
from repo_agents.retry import is_conflict, retry_async
from repo_agents.validation.schemas import Thresholds

logger = logging.getLogger(__name__)

Executor = Callable[..., Awaitable[None]]


def attribution_footer(context: ExecutionContext) -> str:
    return (
        f"\n\n> *Generated by [{context.agent_name}]({context.agent_url()}) "
        f"in workflow [{context.workflow} #{context.run_number}]({context.workflow_url()})*"
    )


def merge_labels(current: Sequence[str], added: Sequence[str]) -> List[str]:
    """Union preserving the order of ``current`` then ``added``."""
    merged = list(current)
    for label in added:
        if label not in merged:
            merged.append(label)
    return merged


def subtract_labels(current: Sequence[str], removed: Sequence[str]) -> List[str]:
    removed_set = set(removed)
    return [label for label in current if label not in removed_set]


def _require_issue_or_pr(context: ExecutionContext) -> str:
    number = context.issue_or_pr_number
    if not number:
        raise ExecutionError("No issue or PR number available")
    return number


async def _update_labels(
    gateway: SideEffectGateway,
    number: str,
    compute: Callable[[List[str]], List[str]],
    operation_name: str,
) -> None:
    """
    Read-modify-write of an issue's labels guarded by the read's ETag.
    A conflict means the labels changed after our read: re-read and try again.
    """
    async def attempt() -> None:
        current, etag = await gateway.get_issue_labels(number)
        await gateway.replace_issue_labels(number, compute(current), expected_etag=etag)

    await retry_async(
        attempt,
        max_retries=Thresholds.LABEL_UPDATE_MAX_ATTEMPTS - 1,
        backoff_base=0,
        jitter=False,
        retriable=is_conflict,
        operation_name=operation_name,
    )


# ---------------------------------------------------------------------------
# Executors: (payload, type_config, context, gateway) -> None
# ---------------------------------------------------------------------------

async def execute_add_comment(payload: AddComment, type_config, context, gateway) -> None:
    number = _require_issue_or_pr(context)
    await gateway.create_issue_comment(number, payload.body + attribution_footer(context))
    logger.info(f"Added comment to #{number}")


async def execute_add_label(payload: AddLabel, type_config, context, gateway) -> None:
    number = _require_issue_or_pr(context)
    await _update_labels(
        gateway, number, lambda current: merge_labels(current, payload.labels), "add_label"
    )
    logger.info(f"Added labels {list(payload.labels)} to #{number}")


async def execute_remove_label(payload: RemoveLabel, type_config, context, gateway) -> None:
    number = _require_issue_or_pr(context)
    await _update_labels(
        gateway, number, lambda current: subtract_labels(current, payload.labels), "remove_label"
    )
    logger.info(f"Removed labels {list(payload.labels)} from #{number}")


async def execute_create_issue(payload: CreateIssue, type_config, context, gateway) -> None:
    await gateway.create_issue(payload.title, payload.body, list(payload.labels), list(payload.assignees))
    logger.info(f"Created issue: {payload.title}")


async def execute_create_discussion(payload: CreateDiscussion, type_config, context, gateway) -> None:
    categories = await gateway.list_discussion_categories()
    category_id = categories.get(payload.category)
    if not category_id:
        raise ExecutionError(f"Category '{payload.category}' not found in repository")
    repository_id = await gateway.get_repository_id()
    url = await gateway.create_discussion(
        repository_id, category_id, payload.title, payload.body + attribution_footer(context)
    )
    logger.info(f"Created discussion: {payload.title} ({url or 'no url'})")


async def execute_create_pr(payload: CreatePullRequest, type_config: OutputTypeConfig, context, gateway) -> None:
    existing = await gateway.find_open_pull_request(payload.branch)
    if existing:
        logger.info(f"Open PR already exists for branch {payload.branch}, skipping")
        return

    base = payload.base or context.default_branch
    try:
        await gateway.prepare_branch(payload.branch, context.default_branch, context.git_user, context.git_email)
        await gateway.commit_files(payload.files, payload.title, sign=type_config.sign)
        await gateway.push_branch(payload.branch)
        await gateway.create_pull_request(payload.title, payload.body, base=base, head=payload.branch)
    except Exception:
        try:
            await gateway.restore_default_branch(context.default_branch)
        except Exception as restore_error:
            logger.warning(f"Could not return to {context.default_branch} after failure: {restore_error}")
        raise
    await gateway.restore_default_branch(context.default_branch)
    logger.info(f"Created PR from branch {payload.branch} into {base}")


async def execute_update_file(payload: UpdateFile, type_config, context, gateway) -> None:
    branch = payload.branch or context.default_branch
    for change in payload.files:
        sha = await gateway.get_file_sha(change.path, ref=branch)
        await gateway.put_file(change.path, change.content, payload.message, branch, sha=sha)
        logger.info(f"{'Updated' if sha else 'Created'} {change.path} on {branch}")


async def execute_close_issue(payload: CloseIssue, type_config, context, gateway) -> None:
    if not context.issue_number:
        raise ExecutionError("No issue number available")
    await gateway.close_issue(context.issue_number, payload.state_reason)
    logger.info(f"Closed issue #{context.issue_number} ({payload.state_reason})")


async def execute_close_pr(payload: ClosePullRequest, type_config, context, gateway) -> None:
    if not context.pr_number:
        raise ExecutionError("No pull request number available")
    if payload.merge:
        await gateway.merge_pull_request(context.pr_number)
        logger.info(f"Merged PR #{context.pr_number}")
    else:
        await gateway.close_pull_request(context.pr_number)
        logger.info(f"Closed PR #{context.pr_number}")


OUTPUT_EXECUTORS: Dict[OutputType, Executor] = {
    OutputType.ADD_COMMENT: execute_add_comment,
    OutputType.ADD_LABEL: execute_add_label,
    OutputType.REMOVE_LABEL: execute_remove_label,
    OutputType.CREATE_ISSUE: execute_create_issue,
    OutputType.CREATE_DISCUSSION: execute_create_discussion,
    OutputType.CREATE_PR: execute_create_pr,
    OutputType.UPDATE_FILE: execute_update_file,
    OutputType.CLOSE_ISSUE: execute_close_issue,
    OutputType.CLOSE_PR: execute_close_pr,
}


async def execute_batch(
    output_type: OutputType,
    records: Sequence[OutputRecord],
    type_config: OutputTypeConfig,
    context: ExecutionContext,
    gateway: SideEffectGateway,
) -> List[ExecutionOutcome]:
    """Execute every record of a validated batch in filename order."""
    executor = OUTPUT_EXECUTORS[output_type]
    outcomes: List[ExecutionOutcome] = []
    for record in records:
        try:
            payload = parse_payload(output_type, record.fields)
            await executor(payload, type_config, context, gateway)
            outcomes.append(ExecutionOutcome(filename=record.filename, succeeded=True))
        except (ExecutionError, GatewayError, GitCommandError) as e:
            logger.error(f"{output_type}: {record.filename} failed: {e}")
            outcomes.append(ExecutionOutcome(filename=record.filename, succeeded=False, error=str(e)))
        except Exception as e:
            logger.exception(f"{output_type}: {record.filename} failed unexpectedly")
            outcomes.append(ExecutionOutcome(filename=record.filename, succeeded=False, error=str(e)))
    return outcomes
