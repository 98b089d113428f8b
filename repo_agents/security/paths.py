"""
File path allow-list: glob patterns that gate which repository files an agent may write.
Only paths matching at least one configured pattern are allowed; no patterns means no writes.
"""
import logging
import re
from typing import Iterable, Optional, Pattern, Tuple

logger = logging.getLogger(__name__)

SEPARATOR = "/"


def _translate(pattern: str) -> Tuple[str, bool]:
    """
    Translate a glob into a regex body.

    Returns (regex_body, ends_with_doublestar). `*` stays within one path segment,
    `**` spans segments and `**/` also matches zero directories.
    """
    parts = []
    ends_with_doublestar = False
    i = 0
    n = len(pattern)
    while i < n:
        c = pattern[i]
        if c == "*":
            if pattern.startswith("**", i):
                i += 2
                if i < n and pattern[i] == SEPARATOR:
                    parts.append("(?:.*/)?")
                    i += 1
                    ends_with_doublestar = False
                else:
                    parts.append(".*")
                    ends_with_doublestar = True
                continue
            parts.append("[^/]*")
        elif c == "?":
            parts.append("[^/]")
        else:
            parts.append(re.escape(c))
        ends_with_doublestar = False
        i += 1
    return "".join(parts), ends_with_doublestar


def compile_pattern(pattern: str) -> Optional[Pattern[str]]:
    """
    Compile a glob into an anchored regex, or None if it cannot be compiled.
    Patterns ending in a `**` wildcard anchor only at the start (prefix match).
    """
    try:
        body, prefix_only = _translate(pattern)
        return re.compile("^" + body + ("" if prefix_only else r"\Z"))
    except (re.error, TypeError) as e:
        logger.warning(f"Invalid allow-list pattern {pattern!r}: {e}")
        return None


def matches(path: str, pattern: str) -> bool:
    """Return True if the relative path matches the glob pattern."""
    if not isinstance(path, str) or not isinstance(pattern, str):
        return False
    regex = compile_pattern(pattern)
    if regex is None:
        # Fail closed: a broken entry only ever grants its literal path
        return path == pattern
    return regex.match(path) is not None


def matches_any(path: str, patterns: Iterable[str]) -> bool:
    """Return True if the path matches any pattern. Empty pattern list matches nothing."""
    for pattern in patterns or ():
        if matches(path, pattern):
            return True
    return False


def is_safe_relative_path(path: str) -> bool:
    """
    Return True for repository-relative paths: not absolute, no `..` segments,
    no backslashes and no empty segments.
    """
    if not path or not isinstance(path, str):
        return False
    if path.startswith(SEPARATOR) or "\\" in path or "\x00" in path:
        return False
    if re.match(r"^[A-Za-z]:", path):
        return False
    segments = path.split(SEPARATOR)
    return all(seg not in ("", "..") for seg in segments)
