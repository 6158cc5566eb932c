"""
Core domain package.

This package contains the parts of mpriscell which are independent of the
D-Bus transport and of the hosting status bar: the player snapshot value,
the template renderer and the typed events passed around the dispatch queue.

We intentionally keep exports minimal; consumers should usually import from
the specific module they need (e.g. `mpriscell.core.template`).
"""

from __future__ import annotations

__all__: list[str] = [
    "CommandError",
    "ConfigError",
    "DirectoryError",
    "MprisError",
    "PlayerConnectionError",
    "QueryError",
    "TemplateError",
]


class MprisError(Exception):
    """Base class for mpriscell exceptions."""


class PlayerConnectionError(MprisError):
    """Raised when a player cannot be resolved or connected to."""


class DirectoryError(MprisError):
    """Raised when the list of running players cannot be obtained."""


class QueryError(MprisError):
    """Raised when reading a single player property fails."""


class CommandError(MprisError):
    """Raised when a transport command (play/pause, next, ...) fails."""


class TemplateError(MprisError):
    """Raised when a format template cannot be rendered for a snapshot."""


class ConfigError(MprisError):
    """Raised when the configuration contains invalid values."""
