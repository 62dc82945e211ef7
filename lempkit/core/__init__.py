"""
Core lempkit functionality.

Exports core abstractions and base classes.
"""

from lempkit.core.errors import (
    ProvisionError,
    ConfigError,
    CommandFailed,
    ChecksumMismatch,
    VersionParseError,
    KnownAfterApply,
)
from lempkit.core.resource import Resource, Plan, Action, Change, Platform

__all__ = [
    "Resource",
    "Plan",
    "Action",
    "Change",
    "Platform",
    "ProvisionError",
    "ConfigError",
    "CommandFailed",
    "ChecksumMismatch",
    "VersionParseError",
    "KnownAfterApply",
]
