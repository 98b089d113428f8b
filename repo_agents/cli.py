"""
Command-line entrypoint for the outputs stage.

    python -m repo_agents run --agent-config agent.json [--type add-comment]
    python -m repo_agents validate --agent-config agent.json --type update-file
    python -m repo_agents schema [--type create-pr]
"""
import argparse
import asyncio
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

from repo_agents.config import AgentConfig, ExecutionContext, Settings
from repo_agents.errors import ConfigError
from repo_agents.github.gateway import GitHubGateway
from repo_agents.github.git import GitWorkspace
from repo_agents.outputs.loader import OutputRecordLoader
from repo_agents.outputs.models import OutputType, StageResult
from repo_agents.outputs.reporter import ResultReporter
from repo_agents.outputs.stage import run_outputs
from repo_agents.validation.batch import validate_batch
from repo_agents.validation.schemas import OUTPUT_SCHEMAS

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2


def _settings_from_args(args: argparse.Namespace) -> Settings:
    settings = Settings.from_env()
    overrides = {}
    if getattr(args, "outputs_dir", None):
        overrides["outputs_dir"] = Path(args.outputs_dir)
    if getattr(args, "errors_dir", None):
        overrides["validation_errors_dir"] = Path(args.errors_dir)
    return replace(settings, **overrides) if overrides else settings


async def _run(args: argparse.Namespace) -> int:
    settings = _settings_from_args(args)
    agent = AgentConfig.load(Path(args.agent_config), agent_path=args.agent_path or "")
    context = ExecutionContext.from_env(agent=agent, agent_path=args.agent_path or agent.path)
    workspace = GitWorkspace(Path(args.workdir))

    async with GitHubGateway(
        context.repository,
        workspace,
        token=settings.github_token,
        api_url=settings.api_url,
        timeout=settings.http_timeout,
    ) as gateway:
        result = await run_outputs(agent, context, gateway, settings, output_type=args.type)

    _finish(result, settings)
    return EXIT_OK if result.success else EXIT_FAILED


async def _validate(args: argparse.Namespace) -> int:
    """Structural validation only; reference checks need the gateway and are skipped."""
    settings = _settings_from_args(args)
    agent = AgentConfig.load(Path(args.agent_config))
    output_type = OutputType.parse(args.type)
    if output_type is None:
        logger.error(f"Unknown output type: {args.type}")
        return EXIT_CONFIG

    records = OutputRecordLoader(settings.outputs_dir).discover(output_type)
    result = await validate_batch(output_type, records, agent.output_config(output_type), agent)
    for error in result.errors:
        print(error.render())
    if result.valid:
        print(f"{len(records)} {output_type} file(s) valid")
        return EXIT_OK
    return EXIT_FAILED


def _schema(args: argparse.Namespace) -> int:
    if args.type:
        if args.type not in OUTPUT_SCHEMAS:
            logger.error(f"Unknown output type: {args.type}")
            return EXIT_CONFIG
        print(json.dumps(OUTPUT_SCHEMAS[args.type], indent=2))
    else:
        print(json.dumps(OUTPUT_SCHEMAS, indent=2))
    return EXIT_OK


def _finish(result: StageResult, settings: Settings) -> None:
    if result.skip_reason:
        logger.info(f"Skipped: {result.skip_reason}")
    ResultReporter(settings.validation_errors_dir, settings.github_output).write_outputs(result.outputs)


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="repo-agents-outputs", description="Validate and execute agent output declarations.")
    ap.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = ap.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Validate and execute outputs")
    run.add_argument("--agent-config", required=True, help="Agent config JSON (name, outputs, allowed-paths)")
    run.add_argument("--agent-path", default="", help="Agent definition path, used in attribution links")
    run.add_argument("--type", default=None, help="Output type to process (default: all configured)")
    run.add_argument("--outputs-dir", default=None, help="Overrides OUTPUTS_DIR")
    run.add_argument("--errors-dir", default=None, help="Overrides VALIDATION_ERRORS_DIR")
    run.add_argument("--workdir", default=".", help="Git checkout used for create-pr (default: .)")

    validate = sub.add_parser("validate", help="Validate outputs without executing them")
    validate.add_argument("--agent-config", required=True)
    validate.add_argument("--type", required=True)
    validate.add_argument("--outputs-dir", default=None)

    schema = sub.add_parser("schema", help="Print output declaration JSON schemas")
    schema.add_argument("--type", default=None)
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )
    try:
        if args.command == "schema":
            return _schema(args)
        if args.command == "validate":
            return asyncio.run(_validate(args))
        return asyncio.run(_run(args))
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_CONFIG
