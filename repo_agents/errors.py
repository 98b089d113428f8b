"""
Exception types for the outputs stage.
Validation never raises these; they surface from the gateway and executors and are
converted to per-file outcomes by the execution engine.
"""
from typing import Optional


class OutputsError(Exception):
    """Base class for outputs stage errors."""
    pass


class ConfigError(OutputsError):
    """Raised when agent or stage configuration is unusable."""
    pass


class ExecutionError(OutputsError):
    """Raised when an output cannot be executed (e.g. no target issue)."""
    pass


class GatewayError(OutputsError):
    """Raised when a repository hosting API call fails."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class NotFoundError(GatewayError):
    """Raised when the requested remote resource does not exist (404)."""
    pass


class ConflictError(GatewayError):
    """Raised when a conditional write lost against a concurrent change (409/412)."""
    pass


class GitCommandError(OutputsError):
    """Raised when a local git command exits non-zero."""

    def __init__(self, args: list, returncode: int, stderr: str = ""):
        self.command = list(args)
        self.returncode = returncode
        self.stderr = stderr
        detail = stderr.strip()[:500] if stderr else f"exit code {returncode}"
        super().__init__(f"git {' '.join(self.command)} failed: {detail}")
