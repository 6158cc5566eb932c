"""
Configuration management for mpriscell.

This module loads the module options from a TOML file and validates them
once into a ModuleConfig. Option names follow the status bar convention
(`format-playing`, `on-middle-click`, ...).
"""

from __future__ import annotations

import logging
import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from mpriscell.core import ConfigError
from mpriscell.core.player_info import PlaybackStatus
from mpriscell.core.template import DEFAULT_FORMAT

logger = logging.getLogger(__name__)

# Target meaning "whichever player was active most recently"
AGGREGATE_PLAYER = "playerctld"

CONFIG_FILENAME = "config.toml"


def default_config_path() -> Path:
    """Return $XDG_CONFIG_HOME/mpriscell/config.toml (or ~/.config/...)."""
    base = os.environ.get("XDG_CONFIG_HOME") or Path.home() / ".config"
    return Path(base) / "mpriscell" / CONFIG_FILENAME


@dataclass
class ModuleConfig:
    """Validated module options."""

    format: str = DEFAULT_FORMAT
    format_playing: str | None = None
    format_paused: str | None = None
    format_stopped: str | None = None
    interval: int = 0
    player: str = AGGREGATE_PLAYER
    ignored_players: list[str] = field(default_factory=list)
    player_icons: dict[str, str] = field(default_factory=dict)
    status_icons: dict[str, str] = field(default_factory=dict)
    on_click: str | None = None
    on_middle_click: str | None = None
    on_right_click: str | None = None

    @property
    def is_aggregate(self) -> bool:
        """Check if the target is the "most recently active" alias."""
        return self.player == AGGREGATE_PLAYER

    @property
    def status_formats(self) -> dict[PlaybackStatus, str | None]:
        """Per-status template overrides."""
        return {
            PlaybackStatus.PLAYING: self.format_playing,
            PlaybackStatus.PAUSED: self.format_paused,
            PlaybackStatus.STOPPED: self.format_stopped,
        }

    def click_override(self, button: int) -> str | None:
        """Return the override command bound to a mouse button, if any."""
        return {
            1: self.on_click,
            2: self.on_middle_click,
            3: self.on_right_click,
        }.get(button)

    def is_ignored(self, player_name: str) -> bool:
        """Check if a player name is listed in ignored-players."""
        return player_name in self.ignored_players

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ModuleConfig":
        """
        Build a config from raw option values.

        Args:
            data: Options keyed by their file names (e.g. "format-playing").

        Returns:
            The validated ModuleConfig.

        Raises:
            ConfigError: If a recognised option has the wrong type.
        """
        unknown = sorted(set(data) - set(_OPTIONS))
        if unknown:
            logger.warning("Ignoring unknown config options: %s", ", ".join(unknown))

        values: dict[str, Any] = {}
        for key, (attr, parser) in _OPTIONS.items():
            if key in data:
                values[attr] = parser(key, data[key])
        return cls(**values)


def _parse_str(key: str, value: object) -> str:
    if not isinstance(value, str):
        raise ConfigError(f"'{key}' must be a string, got {type(value).__name__}")
    return value


def _parse_interval(key: str, value: object) -> int:
    # bool is an int subclass
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"'{key}' must be an integer number of seconds")
    if value < 0:
        raise ConfigError(f"'{key}' must not be negative, got {value}")
    return value


def _parse_str_list(key: str, value: object) -> list[str]:
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigError(f"'{key}' must be a list of strings")
    return list(value)


def _parse_icons(key: str, value: object) -> dict[str, str]:
    if not isinstance(value, Mapping) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in value.items()
    ):
        raise ConfigError(f"'{key}' must be a table of strings")
    return dict(value)


_OPTIONS = {
    "format": ("format", _parse_str),
    "format-playing": ("format_playing", _parse_str),
    "format-paused": ("format_paused", _parse_str),
    "format-stopped": ("format_stopped", _parse_str),
    "interval": ("interval", _parse_interval),
    "player": ("player", _parse_str),
    "ignored-players": ("ignored_players", _parse_str_list),
    "player-icons": ("player_icons", _parse_icons),
    "status-icons": ("status_icons", _parse_icons),
    "on-click": ("on_click", _parse_str),
    "on-middle-click": ("on_middle_click", _parse_str),
    "on-right-click": ("on_right_click", _parse_str),
}


def load_config(config_path: Path | None = None) -> ModuleConfig:
    """
    Load module configuration from a TOML file.

    Args:
        config_path: Path to the config file. If None, uses the default
            location and falls back to built-in defaults when it is missing.

    Returns:
        Loaded ModuleConfig instance.

    Raises:
        ConfigError: If an explicit file is missing, or the file is not
            valid TOML or contains invalid values.
    """
    if config_path is None:
        config_path = default_config_path()
        if not config_path.exists():
            logger.debug("No config file at %s, using defaults", config_path)
            return ModuleConfig()

    logger.debug("Loading config from %s", config_path)

    try:
        with config_path.open("rb") as f:
            data = tomllib.load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"config file not found: {config_path}") from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"invalid TOML in {config_path}: {e}") from e

    return ModuleConfig.from_mapping(data)
