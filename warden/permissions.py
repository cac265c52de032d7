"""
Warden permission checks.

The entry points callers use to decide access: a single expression check
that covers exact names, glob patterns and boolean expressions alike,
syntax validation, introspection, and bulk any/all helpers. Malformed
expressions never raise here; they are reported through logging and an
optional callback, and the check fails closed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Optional

from .config import DEFAULT_CONFIG, EngineConfig
from .expression import ExpressionSyntaxError, compile_expression, evaluate
from .patterns import get_matching_permissions, matches

logger = logging.getLogger(__name__)

__all__ = [
    "ExpressionDiagnostic",
    "PermissionChecker",
    "evaluate_expression",
    "get_matching_permissions",
    "has_all",
    "has_all_permissions",
    "has_any",
    "has_any_permission",
    "has_permission",
    "is_valid_syntax",
    "matches",
]


@dataclass(frozen=True)
class ExpressionDiagnostic:
    """Details of an expression that failed to parse."""
    expression: str
    message: str
    position: int


DiagnosticCallback = Callable[[ExpressionDiagnostic], None]


def _report(
    expression: str,
    err: ExpressionSyntaxError,
    config: EngineConfig,
    on_error: Optional[DiagnosticCallback],
) -> None:
    logger.log(
        config.diagnostic_log_level,
        "Invalid permission expression %r: %s",
        expression,
        err,
    )
    if on_error is None:
        return
    diagnostic = ExpressionDiagnostic(
        expression=expression, message=err.message, position=err.position
    )
    try:
        on_error(diagnostic)
    except Exception:
        logger.exception("Permission diagnostic callback failed for %r", expression)


# ---------------------------------------------------------------------------
# Single expression
# ---------------------------------------------------------------------------

def evaluate_expression(
    expression: str,
    granted: Iterable[str],
    *,
    on_error: Optional[DiagnosticCallback] = None,
    config: Optional[EngineConfig] = None,
) -> bool:
    """Check a permission, pattern, or boolean expression against granted permissions.

    Args:
        expression: e.g. ``"users.create"``, ``"users.*"``, ``"true"``, or
            ``"(users.* || posts.*) && admin.access"``. Single ``|``/``&``
            are accepted as ``||``/``&&``.
        granted: The caller's granted permission strings.
        on_error: Optional callback receiving an ExpressionDiagnostic when
            the expression is malformed.
        config: Engine limits; defaults to DEFAULT_CONFIG.

    Returns:
        The boolean result, or False when the expression is malformed.
    """
    if not isinstance(expression, str):
        raise TypeError(f"expression must be a str, got {type(expression).__name__}")
    granted = _freeze(granted)

    stripped = expression.strip()
    if stripped == "true":
        return True
    if stripped == "false":
        return False

    cfg = config or DEFAULT_CONFIG
    try:
        ast = compile_expression(expression, cfg)
    except ExpressionSyntaxError as err:
        _report(expression, err, cfg, on_error)
        return False
    return evaluate(ast, granted)


has_permission = evaluate_expression


def is_valid_syntax(expression: str, config: Optional[EngineConfig] = None) -> bool:
    """Return True if the expression parses. Nothing is logged or evaluated."""
    if not isinstance(expression, str):
        raise TypeError(f"expression must be a str, got {type(expression).__name__}")
    if expression.strip() in ("true", "false"):
        return True
    try:
        compile_expression(expression, config, quiet=True)
    except ExpressionSyntaxError:
        return False
    return True


# ---------------------------------------------------------------------------
# Bulk helpers
# ---------------------------------------------------------------------------

def has_any(
    expressions: Iterable[str],
    granted: Iterable[str],
    *,
    on_error: Optional[DiagnosticCallback] = None,
    config: Optional[EngineConfig] = None,
) -> bool:
    """True if at least one expression holds. An empty list is False."""
    granted = _freeze(granted)
    return any(
        evaluate_expression(expr, granted, on_error=on_error, config=config)
        for expr in expressions
    )


def has_all(
    expressions: Iterable[str],
    granted: Iterable[str],
    *,
    on_error: Optional[DiagnosticCallback] = None,
    config: Optional[EngineConfig] = None,
) -> bool:
    """True if every expression holds. An empty list is vacuously True."""
    granted = _freeze(granted)
    return all(
        evaluate_expression(expr, granted, on_error=on_error, config=config)
        for expr in expressions
    )


def has_any_permission(names: Iterable[str], granted: Iterable[str]) -> bool:
    """Exact-name membership: True if any name is granted. No patterns."""
    granted = _freeze(granted)
    return any(name in granted for name in names)


def has_all_permissions(names: Iterable[str], granted: Iterable[str]) -> bool:
    """Exact-name membership: True if every name is granted. No patterns."""
    granted = _freeze(granted)
    return all(name in granted for name in names)


def _freeze(granted: Iterable[str]) -> tuple:
    # One-shot iterators must survive being read once per expression.
    if isinstance(granted, str):
        raise TypeError("granted must be a sequence of permission strings, not a str")
    return tuple(granted)


# ---------------------------------------------------------------------------
# Bound checker
# ---------------------------------------------------------------------------

class PermissionChecker:
    """All permission checks bound to one granted permission list.

    The list is copied on construction; the caller's sequence is never
    mutated.

    Example:
        >>> checker = PermissionChecker(["users.create", "admin.access"])
        >>> checker.has_permission("users.* && admin.access")
        True
        >>> checker.get_matching_permissions("users.*")
        ['users.create']
    """

    def __init__(
        self,
        granted: Iterable[str],
        *,
        config: Optional[EngineConfig] = None,
        on_error: Optional[DiagnosticCallback] = None,
    ) -> None:
        if isinstance(granted, str):
            raise TypeError("granted must be an iterable of permission strings, not a str")
        self._granted: tuple[str, ...] = tuple(granted)
        self._config = config or DEFAULT_CONFIG
        self._on_error = on_error

    @property
    def permissions(self) -> tuple[str, ...]:
        return self._granted

    def has_permission(self, permission: str) -> bool:
        return evaluate_expression(
            permission, self._granted, on_error=self._on_error, config=self._config
        )

    def has_any_permission(self, names: Iterable[str]) -> bool:
        return has_any_permission(names, self._granted)

    def has_all_permissions(self, names: Iterable[str]) -> bool:
        return has_all_permissions(names, self._granted)

    def has_permission_pattern(self, pattern: str) -> bool:
        return self.has_permission(pattern)

    def has_any_pattern(self, patterns: Iterable[str]) -> bool:
        return has_any(patterns, self._granted, on_error=self._on_error, config=self._config)

    def has_all_patterns(self, patterns: Iterable[str]) -> bool:
        return has_all(patterns, self._granted, on_error=self._on_error, config=self._config)

    def get_matching_permissions(self, pattern: str) -> list[str]:
        return get_matching_permissions(pattern, self._granted)

    def check_expression(self, expression: str) -> bool:
        return self.has_permission(expression)

    def is_valid_expression(self, expression: str) -> bool:
        return is_valid_syntax(expression, self._config)

    def __repr__(self) -> str:
        return f"PermissionChecker({list(self._granted)!r})"
