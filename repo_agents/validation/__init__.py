"""
Output validation for agent declarations.
Every declaration must be validated by code before any side effect is applied.
"""
from repo_agents.validation.batch import validate_batch
from repo_agents.validation.outputs import (
    OUTPUT_VALIDATORS,
    ExistenceChecker,
    ReferenceChecker,
    validate_record,
)
from repo_agents.validation.schemas import (
    BRANCH_NAME_PATTERN,
    OUTPUT_SCHEMAS,
    STATE_REASON_ALLOWLIST,
    Thresholds,
)

__all__ = [
    "validate_batch",
    "validate_record",
    "OUTPUT_VALIDATORS",
    "ExistenceChecker",
    "ReferenceChecker",
    "BRANCH_NAME_PATTERN",
    "OUTPUT_SCHEMAS",
    "STATE_REASON_ALLOWLIST",
    "Thresholds",
]
