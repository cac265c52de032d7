"""
Warden engine configuration.

EngineConfig is a plain frozen dataclass so tests can inject limits
directly; from_env() is the convenience factory for deployments.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULT_PATTERN_CACHE_SIZE = 256
DEFAULT_MAX_EXPRESSION_LENGTH: Optional[int] = None
DEFAULT_MAX_NESTING_DEPTH = 64

_TRUTHY = frozenset(["1", "true", "yes", "on"])
_FALSY = frozenset(["0", "false", "no", "off"])


@dataclass(frozen=True)
class EngineConfig:
    """Limits and policy knobs for the expression engine.

    Attributes:
        pattern_cache_size: Maximum number of compiled glob patterns kept by
            the shared pattern compiler. 0 disables memoization. This field
            only takes effect through ``patterns.configure(config)``. Passing
            the config to an evaluation call leaves the shared cache as is.
        max_expression_length: Expressions longer than this are rejected as
            syntax errors before tokenizing. None (the default) means no
            length limit. Nesting depth is bounded either way.
        max_nesting_depth: Maximum parenthesis depth accepted by the parser.
        collapse_operator_runs: When True, runs such as ``|||`` normalize to
            ``||``. When False they are left intact and fail to parse.
        diagnostic_log_level: Level used when logging invalid expressions.
    """

    pattern_cache_size: int = DEFAULT_PATTERN_CACHE_SIZE
    max_expression_length: Optional[int] = DEFAULT_MAX_EXPRESSION_LENGTH
    max_nesting_depth: int = DEFAULT_MAX_NESTING_DEPTH
    collapse_operator_runs: bool = True
    diagnostic_log_level: int = logging.WARNING

    def validate(self) -> list[str]:
        """Return a list of configuration errors. Empty means valid."""
        errors: list[str] = []
        if self.pattern_cache_size < 0:
            errors.append("pattern_cache_size must be >= 0")
        if self.max_expression_length is not None and self.max_expression_length < 1:
            errors.append("max_expression_length must be >= 1")
        if self.max_nesting_depth < 1:
            errors.append("max_nesting_depth must be >= 1")
        if logging.getLevelName(self.diagnostic_log_level).startswith("Level "):
            errors.append(
                f"diagnostic_log_level {self.diagnostic_log_level!r} is not a known logging level"
            )
        return errors

    @classmethod
    def from_env(cls, env: Optional[dict[str, str]] = None) -> EngineConfig:
        """Build a config from WARDEN_* environment variables.

        Unset variables keep their defaults.

        Raises:
            ValueError: When a variable cannot be parsed.
        """
        if env is None:
            env = dict(os.environ)

        return cls(
            pattern_cache_size=_env_int(
                env, "WARDEN_PATTERN_CACHE_SIZE", DEFAULT_PATTERN_CACHE_SIZE
            ),
            max_expression_length=_env_int(
                env, "WARDEN_MAX_EXPRESSION_LENGTH", DEFAULT_MAX_EXPRESSION_LENGTH
            ),
            max_nesting_depth=_env_int(
                env, "WARDEN_MAX_NESTING_DEPTH", DEFAULT_MAX_NESTING_DEPTH
            ),
            collapse_operator_runs=_env_bool(env, "WARDEN_COLLAPSE_OPERATOR_RUNS", True),
            diagnostic_log_level=_env_level(
                env, "WARDEN_DIAGNOSTIC_LOG_LEVEL", logging.WARNING
            ),
        )


def _env_int(env: dict[str, str], name: str, default: Optional[int]) -> Optional[int]:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as err:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from err


def _env_bool(env: dict[str, str], name: str, default: bool) -> bool:
    raw = env.get(name, "").strip().lower()
    if not raw:
        return default
    if raw in _TRUTHY:
        return True
    if raw in _FALSY:
        return False
    raise ValueError(f"{name} must be a boolean flag, got {raw!r}")


def _env_level(env: dict[str, str], name: str, default: int) -> int:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    if raw.isdigit():
        return int(raw)
    level = logging.getLevelName(raw.upper())
    if not isinstance(level, int):
        raise ValueError(f"{name} must be a logging level name, got {raw!r}")
    return level


DEFAULT_CONFIG = EngineConfig()
