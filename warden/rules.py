"""
Warden access rules.

An AccessRule bundles the ways a guarded piece of UI or API can state its
permission requirement (one expression, any/all of a list, a legacy
pattern) together with an authentication requirement. check_access()
resolves a rule against a Subject using a fixed precedence: the first
requirement that is present decides.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from typing import Any, Optional

from . import permissions as perms
from .config import EngineConfig
from .permissions import DiagnosticCallback


@dataclass(frozen=True)
class Subject:
    """The identity a rule is checked against.

    Immutable and hashable. Attributes:
        permissions: Granted permission strings, in their original order.
        authenticated: Whether the caller has an authenticated session.
        user_id: Optional identifier, for logging and auditing only.
    """

    permissions: tuple[str, ...] = ()
    authenticated: bool = True
    user_id: Optional[str] = field(default=None, compare=False)

    def __post_init__(self) -> None:
        if isinstance(self.permissions, str):
            raise TypeError("permissions must be a sequence of strings, not a str")
        if not isinstance(self.permissions, tuple):
            object.__setattr__(self, "permissions", tuple(self.permissions))

    @classmethod
    def anonymous(cls) -> Subject:
        """An unauthenticated subject holding no permissions."""
        return cls(permissions=(), authenticated=False)


_LIST_FIELDS = ("any_permissions", "all_permissions", "any_patterns", "all_patterns", "permissions")
_TEXT_FIELDS = ("expression", "permission", "pattern")

_CAMEL_KEYS = {
    "anyPermissions": "any_permissions",
    "allPermissions": "all_permissions",
    "anyPatterns": "any_patterns",
    "allPatterns": "all_patterns",
    "requireAuth": "require_auth",
}


@dataclass(frozen=True)
class AccessRule:
    """A declarative permission requirement.

    Only the first present requirement is checked, in this order:
    expression, permission, any_permissions, all_permissions,
    any_patterns, all_patterns, pattern. With none present the rule
    allows access only when require_auth is False.

    ``permissions``, when set, replaces the subject's granted list (an
    empty tuple means "no permissions", not "use the subject's").
    """

    expression: Optional[str] = None
    permission: Optional[str] = None
    any_permissions: Optional[tuple[str, ...]] = None
    all_permissions: Optional[tuple[str, ...]] = None
    any_patterns: Optional[tuple[str, ...]] = None
    all_patterns: Optional[tuple[str, ...]] = None
    pattern: Optional[str] = None
    permissions: Optional[tuple[str, ...]] = None
    require_auth: bool = True

    def __post_init__(self) -> None:
        for name in _LIST_FIELDS:
            value = getattr(self, name)
            if value is not None and not isinstance(value, tuple):
                object.__setattr__(self, name, tuple(value))

    def expressions(self) -> list[tuple[str, str]]:
        """Every (field, expression text) pair this rule may evaluate."""
        result: list[tuple[str, str]] = []
        for name in ("expression", "permission", "pattern"):
            value = getattr(self, name)
            if value:
                result.append((name, value))
        for name in ("any_permissions", "all_permissions", "any_patterns", "all_patterns"):
            for index, value in enumerate(getattr(self, name) or ()):
                result.append((f"{name}[{index}]", value))
        return result

    def validate(self, config: Optional[EngineConfig] = None) -> list[str]:
        """Return one error per expression that fails to parse. Empty means valid."""
        errors: list[str] = []
        for name, text in self.expressions():
            if not perms.is_valid_syntax(text, config):
                errors.append(f"{name}: invalid permission expression {text!r}")
        return errors

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> AccessRule:
        """Build a rule from a mapping with snake_case or camelCase keys.

        Raises:
            ValueError: When data is not a mapping, a key is unknown, or a
                value has the wrong type.
        """
        if not isinstance(data, Mapping):
            raise ValueError("Access rule must be a mapping")

        known = {f.name for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        for key, value in data.items():
            name = _CAMEL_KEYS.get(key, key)
            if name not in known:
                raise ValueError(f"Unknown access rule field: {key}")
            if value is None:
                continue
            if name in _TEXT_FIELDS:
                if not isinstance(value, str):
                    raise ValueError(f"Invalid {key}: must be a string")
            elif name in _LIST_FIELDS:
                if isinstance(value, str) or not isinstance(value, (list, tuple)):
                    raise ValueError(f"Invalid {key}: must be a list of strings")
                if not all(isinstance(item, str) for item in value):
                    raise ValueError(f"Invalid {key}: must be a list of strings")
                value = tuple(value)
            elif name == "require_auth" and not isinstance(value, bool):
                raise ValueError(f"Invalid {key}: must be a boolean")
            kwargs[name] = value
        return cls(**kwargs)


def check_access(
    rule: AccessRule,
    subject: Subject,
    *,
    on_error: Optional[DiagnosticCallback] = None,
    config: Optional[EngineConfig] = None,
) -> bool:
    """Decide whether the subject satisfies the rule.

    Args:
        rule: The requirement to check.
        subject: The caller's identity and granted permissions.
        on_error: Optional callback for malformed expressions.
        config: Engine limits; defaults to DEFAULT_CONFIG.

    Returns:
        True if access is granted.
    """
    if rule.require_auth and not subject.authenticated:
        return False

    granted = rule.permissions if rule.permissions is not None else subject.permissions
    options = {"on_error": on_error, "config": config}

    if rule.expression:
        return perms.evaluate_expression(rule.expression, granted, **options)
    if rule.permission:
        return perms.evaluate_expression(rule.permission, granted, **options)
    if rule.any_permissions:
        return perms.has_any(rule.any_permissions, granted, **options)
    if rule.all_permissions is not None:
        return perms.has_all(rule.all_permissions, granted, **options)
    if rule.any_patterns:
        return perms.has_any(rule.any_patterns, granted, **options)
    if rule.all_patterns:
        return perms.has_all(rule.all_patterns, granted, **options)
    if rule.pattern:
        return perms.evaluate_expression(rule.pattern, granted, **options)
    return not rule.require_auth
