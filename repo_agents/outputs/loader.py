"""
Discover agent output files for one output type.
Matches `<type>.json` and `<type>-<n>.json`; malformed JSON is carried as a parse
error on the record so it is reported through validation instead of raising.
"""
import json
import logging
import re
from pathlib import Path
from typing import List

from repo_agents.outputs.models import OutputRecord, OutputType

logger = logging.getLogger(__name__)


def output_filename_pattern(output_type: OutputType) -> "re.Pattern[str]":
    return re.compile(rf"^{re.escape(output_type.value)}(-\d+)?\.json$")


class OutputRecordLoader:
    """Reads declaration files from the agent's outputs directory."""

    def __init__(self, outputs_dir: Path):
        self.outputs_dir = Path(outputs_dir)

    def discover(self, output_type: OutputType) -> List[OutputRecord]:
        """Return records for ``output_type`` sorted by filename; [] if the directory is missing."""
        if not self.outputs_dir.is_dir():
            logger.debug(f"Outputs directory {self.outputs_dir} does not exist")
            return []

        pattern = output_filename_pattern(output_type)
        records = []
        for entry in sorted(self.outputs_dir.iterdir(), key=lambda p: p.name):
            if not entry.is_file() or not pattern.fullmatch(entry.name):
                continue
            records.append(self._load(output_type, entry))
        return records

    def _load(self, output_type: OutputType, path: Path) -> OutputRecord:
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Could not read {path.name}: {e}")
            return OutputRecord(output_type=output_type, filename=path.name, path=path, parse_error=str(e))
        try:
            data = json.loads(text)
        except ValueError as e:
            # Invalid JSON - reported during validation
            logger.info(f"Could not parse {path.name}: {e}")
            return OutputRecord(output_type=output_type, filename=path.name, path=path, parse_error=str(e))
        except RecursionError:
            logger.info(f"Could not parse {path.name}: nesting too deep")
            return OutputRecord(
                output_type=output_type, filename=path.name, path=path, parse_error="JSON nesting too deep"
            )
        return OutputRecord(output_type=output_type, filename=path.name, path=path, fields=data)
