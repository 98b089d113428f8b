"""
Security guardrails for agent-declared writes.
"""
from repo_agents.security.paths import (
    compile_pattern,
    is_safe_relative_path,
    matches,
    matches_any,
)

__all__ = [
    "compile_pattern",
    "is_safe_relative_path",
    "matches",
    "matches_any",
]
