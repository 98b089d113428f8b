"""
Allowlists, formats and thresholds for agent output declarations.
Every output type has: a fixed schema, deterministic guardrails, and a max count set by the agent.
"""
import re

# ---------------------------------------------------------------------------
# Allowlists (deterministic guardrails)
# ---------------------------------------------------------------------------

# close-issue state_reason values accepted by the issues API
STATE_REASON_ALLOWLIST = ("completed", "not_planned")

# Branch names for create-pr
BRANCH_NAME_PATTERN = re.compile(r"^[A-Za-z0-9/_.-]+$")

# ---------------------------------------------------------------------------
# Thresholds (guardrails)
# ---------------------------------------------------------------------------


class Thresholds:
    """Max lengths enforced before any remote call."""
    MAX_COMMENT_BODY_LENGTH = 65536
    MAX_TITLE_LENGTH = 256

    # Label read-modify-write attempts when the remote label set changes underneath us
    LABEL_UPDATE_MAX_ATTEMPTS = 3

    # Discussion categories fetched per repository
    MAX_DISCUSSION_CATEGORIES = 50


# ---------------------------------------------------------------------------
# JSON Schemas (structured I/O) - documentation of each declaration file
# ---------------------------------------------------------------------------

_FILES_SCHEMA = {
    "type": "array",
    "minItems": 1,
    "items": {
        "type": "object",
        "required": ["path", "content"],
        "properties": {"path": {"type": "string"}, "content": {"type": "string"}},
    },
}

OUTPUT_SCHEMAS = {
    "add-comment": {
        "type": "object",
        "required": ["body"],
        "properties": {"body": {"type": "string", "maxLength": Thresholds.MAX_COMMENT_BODY_LENGTH}},
    },
    "add-label": {
        "type": "object",
        "required": ["labels"],
        "properties": {"labels": {"type": "array", "minItems": 1, "items": {"type": "string"}}},
    },
    "remove-label": {
        "type": "object",
        "required": ["labels"],
        "properties": {"labels": {"type": "array", "minItems": 1, "items": {"type": "string"}}},
    },
    "create-issue": {
        "type": "object",
        "required": ["title", "body"],
        "properties": {
            "title": {"type": "string", "maxLength": Thresholds.MAX_TITLE_LENGTH},
            "body": {"type": "string"},
            "labels": {"type": "array", "items": {"type": "string"}},
            "assignees": {"type": "array", "items": {"type": "string"}},
        },
    },
    "create-discussion": {
        "type": "object",
        "required": ["title", "body", "category"],
        "properties": {
            "title": {"type": "string", "maxLength": Thresholds.MAX_TITLE_LENGTH},
            "body": {"type": "string"},
            "category": {"type": "string"},
        },
    },
    "create-pr": {
        "type": "object",
        "required": ["branch", "title", "body", "files"],
        "properties": {
            "branch": {"type": "string", "pattern": BRANCH_NAME_PATTERN.pattern},
            "title": {"type": "string"},
            "body": {"type": "string"},
            "base": {"type": "string"},
            "files": _FILES_SCHEMA,
        },
    },
    "update-file": {
        "type": "object",
        "required": ["files", "message"],
        "properties": {
            "files": _FILES_SCHEMA,
            "message": {"type": "string"},
            "branch": {"type": "string"},
        },
    },
    "close-issue": {
        "type": "object",
        "properties": {"state_reason": {"type": "string", "enum": list(STATE_REASON_ALLOWLIST)}},
    },
    "close-pr": {
        "type": "object",
        "properties": {"merge": {"type": "boolean"}},
    },
}
