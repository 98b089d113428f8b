"""
Stage configuration: environment settings, per-agent output constraints, and the
explicit execution context handed to the engine.

Everything that reads the process environment lives here; the validation and
execution layers only ever receive the frozen values built by these helpers.
"""
import base64
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from repo_agents.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_OUTPUTS_DIR = "/tmp/outputs"
DEFAULT_VALIDATION_ERRORS_DIR = "/tmp/validation-errors"
DEFAULT_API_URL = "https://api.github.com"
DEFAULT_SERVER_URL = "https://github.com"
DEFAULT_BRANCH = "main"
DEFAULT_GIT_USER = "github-actions[bot]"
DEFAULT_GIT_EMAIL = "github-actions[bot]@users.noreply.github.com"
DEFAULT_HTTP_TIMEOUT = 30.0

AGENTS_DIR_PREFIX = ".github/agents/"


@dataclass(frozen=True)
class Settings:
    """Process-level settings for one stage invocation."""
    outputs_dir: Path = Path(DEFAULT_OUTPUTS_DIR)
    validation_errors_dir: Path = Path(DEFAULT_VALIDATION_ERRORS_DIR)
    github_token: Optional[str] = None
    api_url: str = DEFAULT_API_URL
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    github_output: Optional[Path] = None

    @classmethod
    def from_env(cls) -> "Settings":
        token = os.getenv("GITHUB_TOKEN") or os.getenv("GH_TOKEN")
        output_file = os.getenv("GITHUB_OUTPUT")
        try:
            timeout = float(os.getenv("GITHUB_HTTP_TIMEOUT", str(DEFAULT_HTTP_TIMEOUT)))
        except ValueError:
            logger.warning("GITHUB_HTTP_TIMEOUT is not a number; using default")
            timeout = DEFAULT_HTTP_TIMEOUT
        return cls(
            outputs_dir=Path(os.getenv("OUTPUTS_DIR", DEFAULT_OUTPUTS_DIR)),
            validation_errors_dir=Path(os.getenv("VALIDATION_ERRORS_DIR", DEFAULT_VALIDATION_ERRORS_DIR)),
            github_token=token.strip() if token else None,
            api_url=os.getenv("GITHUB_API_URL", DEFAULT_API_URL).rstrip("/"),
            http_timeout=timeout,
            github_output=Path(output_file) if output_file else None,
        )


@dataclass(frozen=True)
class OutputTypeConfig:
    """Constraints for one output type as configured by an agent."""
    enabled: bool = True
    max: Optional[int] = None
    sign: bool = False

    @classmethod
    def from_raw(cls, value: Any) -> "OutputTypeConfig":
        """
        Build from the agent definition value: ``true``, ``false`` or a mapping
        such as ``{"max": 3, "sign": true}``.
        """
        if value is None or value is False:
            return cls(enabled=False)
        if value is True:
            return cls()
        if not isinstance(value, Mapping):
            raise ConfigError(f"Output config must be a boolean or mapping, got {type(value).__name__}")
        max_value = value.get("max")
        # 0 means no limit
        if max_value == 0 and not isinstance(max_value, bool):
            max_value = None
        if max_value is not None:
            if isinstance(max_value, bool) or not isinstance(max_value, int) or max_value < 1:
                raise ConfigError(f"Output max must be a positive integer, got {max_value!r}")
        return cls(
            enabled=bool(value.get("enabled", True)),
            max=max_value,
            sign=bool(value.get("sign", False)),
        )


@dataclass(frozen=True)
class AgentConfig:
    """Already-parsed agent definition fields this stage depends on."""
    name: str
    path: str = ""
    outputs: Mapping[str, OutputTypeConfig] = field(default_factory=dict)
    allowed_paths: Tuple[str, ...] = ()

    def output_config(self, output_type: str) -> OutputTypeConfig:
        """Config for a type; unconfigured types are treated as disabled."""
        return self.outputs.get(str(output_type), OutputTypeConfig(enabled=False))

    def enabled_outputs(self) -> List[str]:
        return [name for name, cfg in self.outputs.items() if cfg.enabled]

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], path: str = "") -> "AgentConfig":
        if not isinstance(data, Mapping):
            raise ConfigError("Agent config must be a mapping")
        name = data.get("name")
        if not isinstance(name, str) or not name.strip():
            raise ConfigError("Agent config requires a non-empty 'name'")
        raw_outputs = data.get("outputs") or {}
        if not isinstance(raw_outputs, Mapping):
            raise ConfigError("Agent config 'outputs' must be a mapping")
        raw_paths = data.get("allowed-paths", data.get("allowed_paths")) or []
        if not isinstance(raw_paths, list) or not all(isinstance(p, str) for p in raw_paths):
            raise ConfigError("Agent config 'allowed-paths' must be a list of strings")
        return cls(
            name=name.strip(),
            path=str(data.get("path") or path),
            outputs={str(k): OutputTypeConfig.from_raw(v) for k, v in raw_outputs.items()},
            allowed_paths=tuple(raw_paths),
        )

    @classmethod
    def load(cls, config_path: Path, agent_path: str = "") -> "AgentConfig":
        """Load an agent config JSON document (produced by the agent parser)."""
        try:
            data = json.loads(Path(config_path).read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise ConfigError(f"Failed to read agent config {config_path}: {e}") from e
        return cls.from_dict(data, path=agent_path)


def _numbers_from_event(event: Mapping[str, Any]) -> Tuple[Optional[str], Optional[str]]:
    issue = event.get("issue") or {}
    pull = event.get("pull_request") or {}
    issue_number = issue.get("number") if isinstance(issue, Mapping) else None
    pr_number = pull.get("number") if isinstance(pull, Mapping) else None
    return (
        str(issue_number) if issue_number is not None else None,
        str(pr_number) if pr_number is not None else None,
    )


def resolve_event_numbers(
    event_payload: Optional[str] = None,
    event_path: Optional[str] = None,
) -> Tuple[Optional[str], Optional[str]]:
    """
    Resolve (issue_number, pr_number) for the triggering event.

    Priority:
        1. event_payload: base64-encoded JSON forwarded by the dispatcher
        2. event_path: the runner's event file
    Parse failures are logged and fall through; both may be None.
    """
    if event_payload:
        try:
            decoded = base64.b64decode(event_payload).decode("utf-8")
            event = json.loads(decoded)
            if isinstance(event, Mapping):
                issue_number, pr_number = _numbers_from_event(event)
                if issue_number or pr_number:
                    return issue_number, pr_number
        except (ValueError, UnicodeDecodeError) as e:
            logger.warning(f"Failed to parse EVENT_PAYLOAD: {e}")

    if event_path and os.path.exists(event_path):
        try:
            with open(event_path, encoding="utf-8") as f:
                event = json.load(f)
            if isinstance(event, Mapping):
                return _numbers_from_event(event)
        except (OSError, ValueError) as e:
            logger.debug(f"Ignoring unreadable event file {event_path}: {e}")
    return None, None


@dataclass(frozen=True)
class ExecutionContext:
    """
    Explicit per-invocation context for execution: repository coordinates,
    resolved target numbers, workflow metadata for attribution and git identity.
    """
    repository: str
    agent_name: str = ""
    agent_path: str = ""
    server_url: str = DEFAULT_SERVER_URL
    run_id: str = ""
    run_number: str = ""
    workflow: str = ""
    actor: str = ""
    issue_number: Optional[str] = None
    pr_number: Optional[str] = None
    default_branch: str = DEFAULT_BRANCH
    git_user: str = DEFAULT_GIT_USER
    git_email: str = DEFAULT_GIT_EMAIL

    @property
    def issue_or_pr_number(self) -> Optional[str]:
        return self.issue_number or self.pr_number

    @property
    def owner_and_name(self) -> Tuple[str, str]:
        owner, _, name = self.repository.partition("/")
        if not owner or not name:
            raise ConfigError(f"Repository must be in owner/repo format, got {self.repository!r}")
        return owner, name

    def agent_url(self) -> str:
        agent_file = self.agent_path
        if agent_file.startswith(AGENTS_DIR_PREFIX):
            agent_file = agent_file[len(AGENTS_DIR_PREFIX):]
        return f"{self.server_url}/{self.repository}/blob/{self.default_branch}/{AGENTS_DIR_PREFIX}{agent_file}"

    def workflow_url(self) -> str:
        return f"{self.server_url}/{self.repository}/actions/runs/{self.run_id}"

    @classmethod
    def from_env(cls, agent: Any = None, agent_path: str = "") -> "ExecutionContext":
        """Build the context from runner environment variables and the event payload."""
        repository = os.getenv("GITHUB_REPOSITORY", "")
        if not repository:
            raise ConfigError("GITHUB_REPOSITORY environment variable not set")
        issue_number, pr_number = resolve_event_numbers(
            event_payload=os.getenv("EVENT_PAYLOAD"),
            event_path=os.getenv("GITHUB_EVENT_PATH"),
        )
        return cls(
            repository=repository,
            agent_name=getattr(agent, "name", "") or "",
            agent_path=agent_path or getattr(agent, "path", "") or "",
            server_url=os.getenv("GITHUB_SERVER_URL", DEFAULT_SERVER_URL).rstrip("/"),
            run_id=os.getenv("GITHUB_RUN_ID", ""),
            run_number=os.getenv("GITHUB_RUN_NUMBER", ""),
            workflow=os.getenv("GITHUB_WORKFLOW", ""),
            actor=os.getenv("GITHUB_ACTOR", ""),
            issue_number=issue_number,
            pr_number=pr_number,
            default_branch=os.getenv("DEFAULT_BRANCH", DEFAULT_BRANCH),
            git_user=os.getenv("GIT_USER", DEFAULT_GIT_USER),
            git_email=os.getenv("GIT_EMAIL", DEFAULT_GIT_EMAIL),
        )
