"""
Data model for agent output declarations.

Each output type is one variant of a closed union: the raw JSON record is validated
first, then converted into its typed payload with ``parse_payload`` for execution.
"""
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Type, Union


class OutputType(str, Enum):
    """Output types an agent may declare."""
    ADD_COMMENT = "add-comment"
    ADD_LABEL = "add-label"
    REMOVE_LABEL = "remove-label"
    CREATE_ISSUE = "create-issue"
    CREATE_DISCUSSION = "create-discussion"
    CREATE_PR = "create-pr"
    UPDATE_FILE = "update-file"
    CLOSE_ISSUE = "close-issue"
    CLOSE_PR = "close-pr"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: Union[str, "OutputType"]) -> Optional["OutputType"]:
        """Return the member for an identifier, or None if unknown."""
        try:
            return cls(value)
        except ValueError:
            return None


@dataclass(frozen=True)
class OutputRecord:
    """One discovered declaration file. ``parse_error`` is set instead of raising on bad JSON."""
    output_type: OutputType
    filename: str
    path: Optional[Path] = None
    fields: Any = field(default_factory=dict)
    parse_error: Optional[str] = None


@dataclass(frozen=True)
class ValidationError:
    """A single validation failure, rendered for humans with ``render()``."""
    output_type: OutputType
    filename: Optional[str]
    message: str

    def render(self) -> str:
        if self.filename:
            return f"**{self.output_type}**: {self.message} in {self.filename}"
        return f"**{self.output_type}**: {self.message}"


@dataclass(frozen=True)
class ExecutionOutcome:
    filename: str
    succeeded: bool
    error: Optional[str] = None

    def render(self, output_type: OutputType) -> str:
        return f"**{output_type}**: Failed to execute {self.filename}: {self.error}"


@dataclass(frozen=True)
class BatchValidationResult:
    valid: bool
    errors: Tuple[ValidationError, ...] = ()


@dataclass
class StageResult:
    """Result of the outputs stage; ``outputs`` become CI step outputs."""
    success: bool
    outputs: Dict[str, str] = field(default_factory=dict)
    skip_reason: Optional[str] = None


# ---------------------------------------------------------------------------
# Typed payloads (built only from records that passed validation)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FileChange:
    path: str
    content: str

    @classmethod
    def from_fields(cls, fields: Mapping[str, Any]) -> "FileChange":
        return cls(path=fields["path"], content=fields["content"])


@dataclass(frozen=True)
class AddComment:
    body: str

    @classmethod
    def from_fields(cls, fields: Mapping[str, Any]) -> "AddComment":
        return cls(body=fields["body"])


@dataclass(frozen=True)
class AddLabel:
    labels: Tuple[str, ...]

    @classmethod
    def from_fields(cls, fields: Mapping[str, Any]) -> "AddLabel":
        return cls(labels=tuple(fields["labels"]))


@dataclass(frozen=True)
class RemoveLabel:
    labels: Tuple[str, ...]

    @classmethod
    def from_fields(cls, fields: Mapping[str, Any]) -> "RemoveLabel":
        return cls(labels=tuple(fields["labels"]))


@dataclass(frozen=True)
class CreateIssue:
    title: str
    body: str
    labels: Tuple[str, ...] = ()
    assignees: Tuple[str, ...] = ()

    @classmethod
    def from_fields(cls, fields: Mapping[str, Any]) -> "CreateIssue":
        return cls(
            title=fields["title"],
            body=fields["body"],
            labels=tuple(fields.get("labels") or ()),
            assignees=tuple(fields.get("assignees") or ()),
        )


@dataclass(frozen=True)
class CreateDiscussion:
    title: str
    body: str
    category: str

    @classmethod
    def from_fields(cls, fields: Mapping[str, Any]) -> "CreateDiscussion":
        return cls(title=fields["title"], body=fields["body"], category=fields["category"])


@dataclass(frozen=True)
class CreatePullRequest:
    branch: str
    title: str
    body: str
    files: Tuple[FileChange, ...]
    base: Optional[str] = None

    @classmethod
    def from_fields(cls, fields: Mapping[str, Any]) -> "CreatePullRequest":
        return cls(
            branch=fields["branch"],
            title=fields["title"],
            body=fields["body"],
            files=tuple(FileChange.from_fields(f) for f in fields["files"]),
            base=fields.get("base") or None,
        )


@dataclass(frozen=True)
class UpdateFile:
    files: Tuple[FileChange, ...]
    message: str
    branch: Optional[str] = None

    @classmethod
    def from_fields(cls, fields: Mapping[str, Any]) -> "UpdateFile":
        return cls(
            files=tuple(FileChange.from_fields(f) for f in fields["files"]),
            message=fields["message"],
            branch=fields.get("branch") or None,
        )


@dataclass(frozen=True)
class CloseIssue:
    state_reason: str = "completed"

    @classmethod
    def from_fields(cls, fields: Mapping[str, Any]) -> "CloseIssue":
        return cls(state_reason=fields.get("state_reason") or "completed")


@dataclass(frozen=True)
class ClosePullRequest:
    merge: bool = False

    @classmethod
    def from_fields(cls, fields: Mapping[str, Any]) -> "ClosePullRequest":
        return cls(merge=fields.get("merge") is True)


OutputPayload = Union[
    AddComment, AddLabel, RemoveLabel, CreateIssue, CreateDiscussion,
    CreatePullRequest, UpdateFile, CloseIssue, ClosePullRequest,
]

PAYLOAD_TYPES: Dict[OutputType, Type] = {
    OutputType.ADD_COMMENT: AddComment,
    OutputType.ADD_LABEL: AddLabel,
    OutputType.REMOVE_LABEL: RemoveLabel,
    OutputType.CREATE_ISSUE: CreateIssue,
    OutputType.CREATE_DISCUSSION: CreateDiscussion,
    OutputType.CREATE_PR: CreatePullRequest,
    OutputType.UPDATE_FILE: UpdateFile,
    OutputType.CLOSE_ISSUE: CloseIssue,
    OutputType.CLOSE_PR: ClosePullRequest,
}


def parse_payload(output_type: OutputType, fields: Mapping[str, Any]) -> OutputPayload:
    """Convert validated record fields into the typed payload for ``output_type``."""
    return PAYLOAD_TYPES[output_type].from_fields(fields)


def render_errors(errors: Sequence[ValidationError]) -> List[str]:
    return [e.render() for e in errors]
