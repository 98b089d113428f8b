"""
Per-type validators for agent output declarations.
Ensures every declaration is checked by code before any side effect is attempted.

Structural rules are pure functions of the record fields and agent config. Reference
rules (labels, discussion categories) consult the existence checker and are skipped
when the checker itself is unavailable.
"""
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Protocol

from repo_agents.config import AgentConfig, OutputTypeConfig
from repo_agents.errors import GatewayError
from repo_agents.outputs.models import OutputRecord, OutputType, ValidationError
from repo_agents.security.paths import is_safe_relative_path, matches_any
from repo_agents.validation.schemas import (
    BRANCH_NAME_PATTERN,
    STATE_REASON_ALLOWLIST,
    Thresholds,
)

logger = logging.getLogger(__name__)


class ExistenceChecker(Protocol):
    async def list_labels(self) -> List[str]: ...

    async def list_discussion_categories(self) -> Dict[str, str]: ...


class ReferenceChecker:
    """
    Memoising wrapper around the existence checker for one batch.
    Lookups that fail return None so callers can skip the check (fail open).
    """

    def __init__(self, checker: Optional[ExistenceChecker]):
        self._checker = checker
        self._labels: Optional[frozenset] = None
        self._categories: Optional[frozenset] = None
        self._labels_failed = False
        self._categories_failed = False

    async def labels(self) -> Optional[frozenset]:
        if self._checker is None or self._labels_failed:
            return None
        if self._labels is None:
            try:
                self._labels = frozenset(await self._checker.list_labels())
            except GatewayError as e:
                logger.warning(f"Could not fetch repository labels, skipping label checks: {e}")
                self._labels_failed = True
                return None
        return self._labels

    async def categories(self) -> Optional[frozenset]:
        if self._checker is None or self._categories_failed:
            return None
        if self._categories is None:
            try:
                self._categories = frozenset((await self._checker.list_discussion_categories()).keys())
            except GatewayError as e:
                logger.warning(f"Could not fetch discussion categories, skipping category checks: {e}")
                self._categories_failed = True
                return None
        return self._categories


def _is_non_empty_string(value: Any) -> bool:
    return isinstance(value, str) and value != ""


def _is_string_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(v, str) for v in value)


def _check_labels_field(fields: Mapping[str, Any]) -> List[str]:
    labels = fields.get("labels")
    if not isinstance(labels, list) or len(labels) == 0:
        return ["labels must be a non-empty array"]
    if not all(_is_non_empty_string(label) for label in labels):
        return ["labels must contain only non-empty strings"]
    return []


def _check_title(fields: Mapping[str, Any]) -> List[str]:
    title = fields.get("title")
    if not _is_non_empty_string(title):
        return ["title is required"]
    if len(title) > Thresholds.MAX_TITLE_LENGTH:
        return [f"title exceeds {Thresholds.MAX_TITLE_LENGTH} characters"]
    return []


def _check_body(fields: Mapping[str, Any]) -> List[str]:
    if not _is_non_empty_string(fields.get("body")):
        return ["body is required"]
    return []


def _check_optional_string(fields: Mapping[str, Any], key: str) -> List[str]:
    if key in fields and fields[key] is not None and not isinstance(fields[key], str):
        return [f"{key} must be a string"]
    return []


def _check_file_entry(entry: Any) -> List[str]:
    """Validate one {path, content} entry; returns messages (path problems first)."""
    if not isinstance(entry, Mapping):
        return ["each file must be an object with 'path' and 'content'"]
    errors = []
    path = entry.get("path")
    if not _is_non_empty_string(path):
        errors.append("each file must have a 'path' string")
    elif not is_safe_relative_path(path):
        errors.append(f"File path '{path}' must be relative without '..' segments")
    if not isinstance(entry.get("content"), str):
        errors.append("each file must have a 'content' string")
    return errors


# ---------------------------------------------------------------------------
# Structural validators: (fields, agent) -> messages
# ---------------------------------------------------------------------------

def validate_add_comment(fields: Mapping[str, Any], agent: AgentConfig) -> List[str]:
    body = fields.get("body")
    if not _is_non_empty_string(body):
        return ["body is required and must be a string"]
    if len(body) > Thresholds.MAX_COMMENT_BODY_LENGTH:
        return [f"body exceeds {Thresholds.MAX_COMMENT_BODY_LENGTH} characters"]
    return []


def validate_labels(fields: Mapping[str, Any], agent: AgentConfig) -> List[str]:
    return _check_labels_field(fields)


def validate_create_issue(fields: Mapping[str, Any], agent: AgentConfig) -> List[str]:
    errors = _check_title(fields) + _check_body(fields)
    for key in ("labels", "assignees"):
        if fields.get(key) is not None and not _is_string_list(fields[key]):
            errors.append(f"{key} must be an array of strings")
    return errors


def validate_create_discussion(fields: Mapping[str, Any], agent: AgentConfig) -> List[str]:
    errors = _check_title(fields) + _check_body(fields)
    if not _is_non_empty_string(fields.get("category")):
        errors.append("category is required")
    return errors


def validate_create_pr(fields: Mapping[str, Any], agent: AgentConfig) -> List[str]:
    errors = []
    branch = fields.get("branch")
    if not _is_non_empty_string(branch):
        errors.append("branch is required")
    elif not BRANCH_NAME_PATTERN.fullmatch(branch):
        errors.append("branch name contains invalid characters")
    if not _is_non_empty_string(fields.get("title")):
        errors.append("title is required")
    errors.extend(_check_body(fields))
    errors.extend(_check_optional_string(fields, "base"))
    files = fields.get("files")
    if not isinstance(files, list) or len(files) == 0:
        errors.append("files must be a non-empty array")
    else:
        for entry in files:
            errors.extend(_check_file_entry(entry))
    return errors


def validate_update_file(fields: Mapping[str, Any], agent: AgentConfig) -> List[str]:
    errors = []
    allowed = list(agent.allowed_paths)
    files = fields.get("files")
    if not isinstance(files, list) or len(files) == 0:
        errors.append("files must be a non-empty array")
    else:
        for entry in files:
            entry_errors = _check_file_entry(entry)
            errors.extend(entry_errors)
            path = entry.get("path") if isinstance(entry, Mapping) else None
            if not _is_non_empty_string(path):
                continue
            if not matches_any(path, allowed):
                suffix = "" if allowed else " (no allowed paths configured)"
                errors.append(f"File path '{path}' does not match allowed patterns{suffix}")
    if not _is_non_empty_string(fields.get("message")):
        errors.append("message is required")
    errors.extend(_check_optional_string(fields, "branch"))
    return errors


def validate_close_issue(fields: Mapping[str, Any], agent: AgentConfig) -> List[str]:
    if "state_reason" in fields and fields["state_reason"] not in STATE_REASON_ALLOWLIST:
        return ["state_reason must be 'completed' or 'not_planned'"]
    return []


def validate_close_pr(fields: Mapping[str, Any], agent: AgentConfig) -> List[str]:
    if "merge" in fields and not isinstance(fields["merge"], bool):
        return ["merge must be a boolean"]
    return []


# ---------------------------------------------------------------------------
# Reference validators: (fields, checker) -> messages
# ---------------------------------------------------------------------------

async def check_labels_exist(fields: Mapping[str, Any], refs: ReferenceChecker) -> List[str]:
    labels = fields.get("labels")
    if not _is_string_list(labels) or not labels:
        return []
    existing = await refs.labels()
    if existing is None:
        return []
    return [
        f"Label '{label}' does not exist in repository"
        for label in labels
        if label and label not in existing
    ]


async def check_category_exists(fields: Mapping[str, Any], refs: ReferenceChecker) -> List[str]:
    category = fields.get("category")
    if not _is_non_empty_string(category):
        return []
    existing = await refs.categories()
    if existing is None or category in existing:
        return []
    return [f"Category '{category}' does not exist in repository"]


@dataclass(frozen=True)
class OutputRule:
    validate: Callable[[Mapping[str, Any], AgentConfig], List[str]]
    check_references: Optional[Callable[[Mapping[str, Any], ReferenceChecker], Awaitable[List[str]]]] = None


OUTPUT_VALIDATORS: Dict[OutputType, OutputRule] = {
    OutputType.ADD_COMMENT: OutputRule(validate_add_comment),
    OutputType.ADD_LABEL: OutputRule(validate_labels, check_labels_exist),
    # remove-label silently ignores labels that are not present
    OutputType.REMOVE_LABEL: OutputRule(validate_labels),
    OutputType.CREATE_ISSUE: OutputRule(validate_create_issue, check_labels_exist),
    OutputType.CREATE_DISCUSSION: OutputRule(validate_create_discussion, check_category_exists),
    OutputType.CREATE_PR: OutputRule(validate_create_pr),
    OutputType.UPDATE_FILE: OutputRule(validate_update_file),
    OutputType.CLOSE_ISSUE: OutputRule(validate_close_issue),
    OutputType.CLOSE_PR: OutputRule(validate_close_pr),
}


async def validate_record(
    record: OutputRecord,
    type_config: OutputTypeConfig,
    agent: AgentConfig,
    refs: ReferenceChecker,
) -> List[ValidationError]:
    """
    Validate one record. Every failing rule yields its own error; only parse
    failures and non-object documents stop further checks.
    """
    output_type = record.output_type

    def _err(message: str) -> ValidationError:
        return ValidationError(output_type=output_type, filename=record.filename, message=message)

    if record.parse_error is not None:
        return [_err(f"Invalid JSON format: {record.parse_error}")]
    if not isinstance(record.fields, Mapping):
        return [_err("output must contain a JSON object")]

    rule = OUTPUT_VALIDATORS[output_type]
    messages = list(rule.validate(record.fields, agent))
    if rule.check_references is not None:
        messages.extend(await rule.check_references(record.fields, refs))
    return [_err(m) for m in messages]
