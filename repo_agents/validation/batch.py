"""
Atomic validation gate for one output type's batch.
A batch is executable only if every record in it is valid.
"""
import logging
from typing import List, Optional, Sequence

from repo_agents.config import AgentConfig, OutputTypeConfig
from repo_agents.outputs.models import (
    BatchValidationResult,
    OutputRecord,
    OutputType,
    ValidationError,
)
from repo_agents.validation.outputs import ExistenceChecker, ReferenceChecker, validate_record

logger = logging.getLogger(__name__)


async def validate_batch(
    output_type: OutputType,
    records: Sequence[OutputRecord],
    type_config: OutputTypeConfig,
    agent: AgentConfig,
    checker: Optional[ExistenceChecker] = None,
) -> BatchValidationResult:
    """
    Validate all records for ``output_type``.

    Exceeding the configured max short-circuits with a single error and skips
    per-record validation. Otherwise all record errors are collected.
    """
    if type_config.max is not None and len(records) > type_config.max:
        error = ValidationError(
            output_type=output_type,
            filename=None,
            message=f"Too many output files ({len(records)}). Maximum allowed: {type_config.max}",
        )
        logger.info(f"{output_type}: {len(records)} files exceed max {type_config.max}")
        return BatchValidationResult(valid=False, errors=(error,))

    refs = ReferenceChecker(checker)
    errors: List[ValidationError] = []
    for record in records:
        record_errors = await validate_record(record, type_config, agent, refs)
        if record_errors:
            logger.info(f"{output_type}: {record.filename} failed validation ({len(record_errors)} errors)")
        errors.extend(record_errors)

    return BatchValidationResult(valid=not errors, errors=tuple(errors))
