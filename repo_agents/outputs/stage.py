"""
Outputs stage driver.

For one output type: discover -> validate (atomic gate) -> execute -> report.
Without a type, every enabled type configured for the agent is processed in turn,
each as an independent batch. Validation and execution failures are returned in
the StageResult, never raised.
"""
import logging
from typing import Dict, Optional

from repo_agents.config import AgentConfig, ExecutionContext, Settings
from repo_agents.github.gateway import SideEffectGateway
from repo_agents.outputs.executor import execute_batch
from repo_agents.outputs.loader import OutputRecordLoader
from repo_agents.outputs.models import OutputType, StageResult
from repo_agents.outputs.reporter import ResultReporter
from repo_agents.validation.batch import validate_batch

logger = logging.getLogger(__name__)


def _skipped(reason: str) -> StageResult:
    return StageResult(success=True, outputs={"executed": "0", "skipped": "true"}, skip_reason=reason)


async def process_output_type(
    output_type: OutputType,
    agent: AgentConfig,
    context: ExecutionContext,
    gateway: SideEffectGateway,
    loader: OutputRecordLoader,
    reporter: ResultReporter,
) -> StageResult:
    type_config = agent.output_config(output_type)
    if not type_config.enabled:
        return _skipped(f"Output type {output_type} is not enabled for agent {agent.name}")

    records = loader.discover(output_type)
    if not records:
        return _skipped(f"No {output_type} output files found")

    logger.info(f"Found {len(records)} {output_type} output file(s)")

    validation = await validate_batch(output_type, records, type_config, agent, checker=gateway)
    if not validation.valid:
        count = reporter.report_validation(output_type, validation.errors)
        return StageResult(success=False, outputs={"executed": "0", "errors": str(count)})

    outcomes = await execute_batch(output_type, records, type_config, context, gateway)
    executed, failed = reporter.report_execution(output_type, outcomes)
    return StageResult(
        success=failed == 0,
        outputs={"executed": str(executed), "errors": str(failed)},
    )


async def run_outputs(
    agent: AgentConfig,
    context: ExecutionContext,
    gateway: SideEffectGateway,
    settings: Settings,
    output_type: Optional[str] = None,
) -> StageResult:
    """Run the outputs stage for ``output_type``, or for every configured type when None."""
    loader = OutputRecordLoader(settings.outputs_dir)
    reporter = ResultReporter(settings.validation_errors_dir)

    if output_type:
        parsed = OutputType.parse(output_type)
        if parsed is None:
            return StageResult(success=False, outputs={"error": f"Unknown output type: {output_type}"})
        return await process_output_type(parsed, agent, context, gateway, loader, reporter)

    configured = agent.enabled_outputs()
    if not configured:
        return _skipped("No outputs configured for this agent")

    total_executed = 0
    total_errors = 0
    problems = []
    for name in configured:
        parsed = OutputType.parse(name)
        if parsed is None:
            logger.error(f"Unknown output type in agent config: {name}")
            problems.append(f"{name}: Unknown output type: {name}")
            continue
        logger.info(f"Processing {parsed} outputs...")
        result = await process_output_type(parsed, agent, context, gateway, loader, reporter)
        total_executed += int(result.outputs.get("executed", 0))
        total_errors += int(result.outputs.get("errors", 0))

    outputs: Dict[str, str] = {"executed": str(total_executed), "errors": str(total_errors)}
    if problems:
        outputs["error"] = "\n".join(problems)
    return StageResult(success=total_errors == 0 and not problems, outputs=outputs)
