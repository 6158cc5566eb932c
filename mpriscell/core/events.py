"""
Typed events for the mpriscell dispatch queue.

Bus callbacks, the periodic timer and the click reader never touch module
state themselves. They post one of these events onto the RefreshScheduler
queue and the dispatch task applies them in order.

Event types:
- refresh.requested: Something wants the cell redrawn (startup, interval)
- player.signal: The connected player reported play/pause/stop/metadata
- player.appeared: An MPRIS name showed up on the bus
- player.vanished: An MPRIS name left the bus
- input.click: The host delivered a click on the cell
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class SignalKind(Enum):
    """The four player signal classes a session subscribes to."""

    PLAY = "play"
    PAUSE = "pause"
    STOP = "stop"
    METADATA = "metadata"


@dataclass
class Event:
    """Base class for all events."""

    event_type: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert event to a dictionary, mainly for debug logging."""
        return {"type": self.event_type}


@dataclass
class RefreshRequested(Event):
    """Fired when a refresh pass is wanted without any other state change."""

    event_type: str = field(default="refresh.requested", init=False)
    reason: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.event_type, "reason": self.reason}


@dataclass
class PlayerSignal(Event):
    """Fired by the connected player session."""

    event_type: str = field(default="player.signal", init=False)
    kind: SignalKind = SignalKind.METADATA

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.event_type, "kind": self.kind.value}


@dataclass
class PlayerAppeared(Event):
    """Fired when an MPRIS player name appears on the bus."""

    event_type: str = field(default="player.appeared", init=False)
    instance: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.event_type, "instance": self.instance}


@dataclass
class PlayerVanished(Event):
    """Fired when an MPRIS player name vanishes from the bus."""

    event_type: str = field(default="player.vanished", init=False)
    instance: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.event_type, "instance": self.instance}


@dataclass
class ClickEvent(Event):
    """
    Fired when the host delivers a click on the cell.

    The dispatch task resolves `result` with True when the click was
    handled and False when the host should fall back to its default.
    """

    event_type: str = field(default="input.click", init=False)
    button: int = 0
    result: asyncio.Future[bool] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.event_type, "button": self.button}
