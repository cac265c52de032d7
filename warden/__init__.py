"""
Warden permission-expression engine.

Provides the core primitives for declarative access checks:
glob patterns, boolean permission expressions, bulk checks,
access rules, and engine configuration.
"""

from . import config
from . import expression
from . import patterns
from . import permissions
from . import rules

__version__ = "1.0.0"

__all__ = [
    "config",
    "expression",
    "patterns",
    "permissions",
    "rules",
]
