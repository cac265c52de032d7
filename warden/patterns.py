"""
Warden glob pattern matching.

Matches permission tokens such as ``users.*`` or ``user?.edit`` against a
granted permission list. ``*`` matches any run of characters (including
none), ``?`` matches exactly one, every other character is literal, and
matching is always anchored at both ends.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from functools import lru_cache
from typing import Any

from .config import DEFAULT_CONFIG, EngineConfig

logger = logging.getLogger(__name__)

UNIVERSAL_WILDCARD = "*"

_WILDCARDS = {"*": ".*", "?": "."}


# ---------------------------------------------------------------------------
# Compilation
# ---------------------------------------------------------------------------

def translate(pattern: str) -> str:
    """Translate a glob pattern into an equivalent (unanchored) regex source."""
    return "".join(_WILDCARDS.get(ch) or re.escape(ch) for ch in pattern)


def is_glob(pattern: str) -> bool:
    """Return True if the pattern contains a ``*`` or ``?`` wildcard."""
    return "*" in pattern or "?" in pattern


class PatternCompiler:
    """Compiles glob patterns to regexes, memoized in a bounded LRU.

    The cache is per-instance and keyed on the exact pattern text. The
    underlying ``functools.lru_cache`` is safe for concurrent use, and an
    evicted entry is simply recompiled on next use.
    """

    def __init__(self, cache_size: int = DEFAULT_CONFIG.pattern_cache_size) -> None:
        if cache_size < 0:
            raise ValueError(f"cache_size must be >= 0, got {cache_size}")
        self._cache_size = cache_size
        self._compile_cached = lru_cache(maxsize=cache_size)(self._compile)

    @staticmethod
    def _compile(pattern: str) -> re.Pattern[str]:
        return re.compile(translate(pattern), re.DOTALL)

    def compile(self, pattern: str) -> re.Pattern[str]:
        """Return the compiled full-string matcher for a glob pattern."""
        return self._compile_cached(pattern)

    @property
    def cache_size(self) -> int:
        return self._cache_size

    def clear_cache(self) -> None:
        """Drop every memoized pattern."""
        self._compile_cached.cache_clear()

    @property
    def cache_info(self) -> Any:
        """Named tuple with hits, misses, maxsize, currsize."""
        return self._compile_cached.cache_info()


_compiler = PatternCompiler()


def default_compiler() -> PatternCompiler:
    """Return the process-wide compiler used by matches()."""
    return _compiler


def configure(config: EngineConfig) -> PatternCompiler:
    """Replace the shared compiler with one sized from the given config.

    Returns:
        The newly installed compiler.
    """
    global _compiler
    if config.pattern_cache_size != _compiler.cache_size:
        logger.debug(
            "Resizing pattern cache from %d to %d",
            _compiler.cache_size,
            config.pattern_cache_size,
        )
        _compiler = PatternCompiler(config.pattern_cache_size)
    return _compiler


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------

def _check_granted(granted: Sequence[str]) -> None:
    if isinstance(granted, str):
        raise TypeError("granted must be a sequence of permission strings, not a str")


def matches(pattern: str, granted: Sequence[str]) -> bool:
    """Test a single permission pattern against the granted permissions.

    ``true``/``false`` (after trimming) are boolean literals. The universal
    wildcard ``*`` matches even when nothing is granted.

    Args:
        pattern: Exact permission name or glob pattern.
        granted: The caller's granted permission strings.

    Returns:
        True if the pattern is a true literal, the universal wildcard, or
        fully matches at least one granted permission.
    """
    if not isinstance(pattern, str):
        raise TypeError(f"pattern must be a str, got {type(pattern).__name__}")
    _check_granted(granted)

    stripped = pattern.strip()
    if stripped == "true":
        return True
    if stripped == "false":
        return False
    if stripped == UNIVERSAL_WILDCARD:
        return True

    if not is_glob(pattern):
        return pattern in granted

    regex = _compiler.compile(pattern)
    return any(regex.fullmatch(permission) for permission in granted)


def get_matching_permissions(pattern: str, granted: Sequence[str]) -> list[str]:
    """Return every granted permission matched by the pattern, in granted order.

    Example:
        >>> get_matching_permissions("users.*", ["users.create", "posts.view", "users.edit"])
        ['users.create', 'users.edit']

    A pattern that trims to ``*`` returns every granted permission, as
    matches() treats it as the universal wildcard.
    """
    if not isinstance(pattern, str):
        raise TypeError(f"pattern must be a str, got {type(pattern).__name__}")
    _check_granted(granted)

    if pattern.strip() == UNIVERSAL_WILDCARD:
        return list(granted)

    regex = _compiler.compile(pattern)
    return [permission for permission in granted if regex.fullmatch(permission)]
