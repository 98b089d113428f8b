"""
Result reporting for the outputs stage.
- Error artifacts: <errors_dir>/<type>.json (list) and <type>.txt (one per line)
- Step outputs: appended to the GITHUB_OUTPUT file, or logged when it is unset
"""
import json
import logging
import secrets
from pathlib import Path
from typing import Mapping, Optional, Sequence, Tuple

from repo_agents.outputs.models import ExecutionOutcome, OutputType, ValidationError, render_errors

logger = logging.getLogger(__name__)

DELIMITER_PREFIX = "ghadelimiter_"


def format_step_output(name: str, value: str) -> str:
    """One GITHUB_OUTPUT entry; multi-line values use a heredoc delimiter."""
    if "\n" not in value:
        return f"{name}={value}\n"
    delimiter = f"{DELIMITER_PREFIX}{secrets.token_hex(8)}"
    while delimiter in value:
        delimiter = f"{DELIMITER_PREFIX}{secrets.token_hex(8)}"
    return f"{name}<<{delimiter}\n{value}\n{delimiter}\n"


class ResultReporter:
    """Writes error artifacts and step outputs for one stage invocation."""

    def __init__(self, errors_dir: Path, github_output: Optional[Path] = None):
        self.errors_dir = Path(errors_dir)
        self.github_output = Path(github_output) if github_output else None

    def write_errors(self, output_type: OutputType, messages: Sequence[str]) -> Path:
        """Persist rendered error messages for ``output_type``; returns the JSON path."""
        self.errors_dir.mkdir(parents=True, exist_ok=True)
        json_path = self.errors_dir / f"{output_type}.json"
        json_path.write_text(json.dumps(list(messages), indent=2), encoding="utf-8")
        (self.errors_dir / f"{output_type}.txt").write_text("\n".join(messages), encoding="utf-8")
        logger.info(f"Wrote {len(messages)} {output_type} errors to {json_path}")
        return json_path

    def report_validation(self, output_type: OutputType, errors: Sequence[ValidationError]) -> int:
        messages = render_errors(errors)
        for message in messages:
            logger.error(message)
        self.write_errors(output_type, messages)
        return len(messages)

    def report_execution(self, output_type: OutputType, outcomes: Sequence[ExecutionOutcome]) -> Tuple[int, int]:
        """Returns (executed, failed); writes artifacts only when something failed."""
        failures = [o for o in outcomes if not o.succeeded]
        executed = len(outcomes) - len(failures)
        if failures:
            self.write_errors(output_type, [o.render(output_type) for o in failures])
        logger.info(f"{output_type}: executed {executed}, failed {len(failures)}")
        return executed, len(failures)

    def write_outputs(self, outputs: Mapping[str, str]) -> None:
        if self.github_output is None:
            for name, value in outputs.items():
                logger.info(f"output {name}={value}")
            return
        with open(self.github_output, "a", encoding="utf-8") as f:
            for name, value in outputs.items():
                f.write(format_step_output(name, str(value)))
