"""
Player snapshot values.

A PlayerInfo is rebuilt on every refresh pass and thrown away after it has
been rendered. It is either fully populated or not produced at all.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

MICROSECONDS_PER_SECOND = 1_000_000


class PlaybackStatus(Enum):
    """Playback state of a player, as reported by MPRIS."""

    PLAYING = "playing"
    PAUSED = "paused"
    STOPPED = "stopped"

    @classmethod
    def from_mpris(cls, raw: str | None) -> "PlaybackStatus":
        """Parse an MPRIS PlaybackStatus string ("Playing", ...)."""
        try:
            return cls((raw or "").strip().lower())
        except ValueError:
            return cls.STOPPED


@dataclass(frozen=True)
class PlayerInfo:
    """Displayable state of one player for one refresh pass."""

    name: str
    status: PlaybackStatus
    artist: str | None = None
    album: str | None = None
    title: str | None = None
    length: str | None = None

    @property
    def status_string(self) -> str:
        """Lowercase single-token form of the status."""
        return self.status.value


def format_length(microseconds: int | float | str | None) -> str | None:
    """
    Format an mpris:length value as a zero padded duration.

    Args:
        microseconds: Track length in microseconds. Some players send it as
            a string or a double, so those are accepted too.

    Returns:
        "HH:MM:SS" when the length is an hour or more, "MM:SS" otherwise,
        or None when the value is missing, unparsable or not positive.
    """
    if microseconds is None or isinstance(microseconds, bool):
        return None
    try:
        total = int(microseconds)
    except (TypeError, ValueError):
        return None
    if total <= 0:
        return None

    seconds = total // MICROSECONDS_PER_SECOND
    hours, rest = divmod(seconds, 3600)
    minutes, seconds = divmod(rest, 60)
    if hours > 0:
        return f"{hours:02}:{minutes:02}:{seconds:02}"
    return f"{minutes:02}:{seconds:02}"
