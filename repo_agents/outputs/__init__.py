"""
Agent output declarations: discovery, typed payloads, execution and reporting.
"""
from repo_agents.outputs.loader import OutputRecordLoader
from repo_agents.outputs.models import (
    ExecutionOutcome,
    OutputRecord,
    OutputType,
    StageResult,
    ValidationError,
)

__all__ = [
    "OutputRecordLoader",
    "ExecutionOutcome",
    "OutputRecord",
    "OutputType",
    "StageResult",
    "ValidationError",
]
