"""
MPRIS access over the D-Bus session bus.

This module wraps dbus-fast for the small part of the MPRIS specification
mpriscell needs:

    Object path:  /org/mpris/MediaPlayer2
    Interface:    org.mpris.MediaPlayer2.Player
    Properties:   PlaybackStatus ("Playing" | "Paused" | "Stopped"), Metadata (a{sv})
    Methods:      PlayPause, Previous, Next

MPRIS has no dedicated play/pause/stop signals. Like playerctl, we derive
them from org.freedesktop.DBus.Properties.PropertiesChanged on the player
interface: a PlaybackStatus change maps to play/pause/stop and a Metadata
change maps to metadata.

Reference: https://specifications.freedesktop.org/mpris-spec/latest/
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from dbus_fast import BusType, Variant
from dbus_fast.aio import MessageBus, ProxyInterface
from dbus_fast.errors import DBusError, InterfaceNotFoundError

from mpriscell.core import CommandError, PlayerConnectionError, QueryError
from mpriscell.core.events import Event, PlayerSignal, SignalKind

logger = logging.getLogger(__name__)

MPRIS_PREFIX = "org.mpris.MediaPlayer2."
MPRIS_PATH = "/org/mpris/MediaPlayer2"
PLAYER_INTERFACE = "org.mpris.MediaPlayer2.Player"
PROPERTIES_INTERFACE = "org.freedesktop.DBus.Properties"

# Seconds to wait for an introspection reply before giving up on a peer
INTROSPECT_TIMEOUT_SECONDS = 5.0

# Seconds to wait for a property read or method reply. dbus-fast proxy calls
# have no timeout of their own; a player that stops answering must not hold
# the dispatch queue.
CALL_TIMEOUT_SECONDS = 5.0

# Errors a peer call can fail with besides a D-Bus error reply
BUS_ERRORS = (DBusError, InterfaceNotFoundError, asyncio.TimeoutError, OSError, EOFError)

_STATUS_SIGNALS = {
    "Playing": SignalKind.PLAY,
    "Paused": SignalKind.PAUSE,
    "Stopped": SignalKind.STOP,
}

PostEvent = Callable[[Event], None]


def describe_error(error: BaseException) -> str:
    """Short text for a failed peer call; timeouts carry no message."""
    if isinstance(error, asyncio.TimeoutError):
        return "no reply (timed out)"
    return str(error) or type(error).__name__


@dataclass(frozen=True)
class PlayerName:
    """
    Name of a player on the bus.

    Attributes:
        bus_name: Full well-known name, e.g. "org.mpris.MediaPlayer2.firefox.instance_1_23".
        instance: Bus name without the MPRIS prefix, e.g. "firefox.instance_1_23".
        name: Instance without the ".instance..." suffix, e.g. "firefox".
    """

    bus_name: str
    instance: str
    name: str

    @classmethod
    def from_bus_name(cls, bus_name: str) -> "PlayerName | None":
        """Parse an MPRIS bus name, returning None for other names."""
        if not bus_name.startswith(MPRIS_PREFIX):
            return None
        instance = bus_name[len(MPRIS_PREFIX):]
        if not instance:
            return None
        return cls(bus_name=bus_name, instance=instance, name=instance.split(".instance")[0])

    @classmethod
    def from_instance(cls, instance: str) -> "PlayerName":
        """Build a name from an instance such as "spotify"."""
        return cls(
            bus_name=MPRIS_PREFIX + instance,
            instance=instance,
            name=instance.split(".instance")[0],
        )


class MprisBus:
    """
    Owner of the session bus connection.

    One MessageBus is shared by the directory, the name watcher and the
    player connections. Each player connection still owns its own proxy and
    signal subscription.
    """

    def __init__(self, bus_type: BusType = BusType.SESSION) -> None:
        self._bus_type = bus_type
        self._bus: MessageBus | None = None

    @property
    def bus(self) -> MessageBus:
        """The connected MessageBus."""
        if self._bus is None:
            raise PlayerConnectionError("not connected to the session bus")
        return self._bus

    async def connect(self) -> None:
        """Connect to the bus."""
        if self._bus is not None:
            return
        try:
            self._bus = await MessageBus(bus_type=self._bus_type).connect()
        except (OSError, ValueError) as e:
            raise PlayerConnectionError(f"unable to connect to the session bus: {e}") from e
        logger.info("Connected to D-Bus session bus as %s", self._bus.unique_name)

    def disconnect(self) -> None:
        """Disconnect from the bus."""
        if self._bus is None:
            return
        self._bus.disconnect()
        self._bus = None
        logger.debug("Disconnected from D-Bus session bus")

    async def get_interface(self, bus_name: str, path: str, interface: str) -> ProxyInterface:
        """
        Introspect a remote object and return a proxy for one interface.

        Raises:
            DBusError: The peer answered with an error (e.g. ServiceUnknown).
            InterfaceNotFoundError: The object does not implement `interface`.
        """
        introspection = await self.bus.introspect(
            bus_name, path, timeout=INTROSPECT_TIMEOUT_SECONDS
        )
        proxy = self.bus.get_proxy_object(bus_name, path, introspection)
        return proxy.get_interface(interface)


class MprisConnection:
    """
    Connection handle to one concrete player.

    Created with `open()`, which also subscribes to property changes. Each
    change is turned into a PlayerSignal and handed to `post`; nothing else
    happens in the signal callback.
    """

    def __init__(
        self,
        player_name: PlayerName,
        player: ProxyInterface,
        properties: ProxyInterface,
        post: PostEvent,
        *,
        timeout: float = CALL_TIMEOUT_SECONDS,
    ) -> None:
        self.player_name = player_name
        self.timeout = timeout
        self._player = player
        self._properties = properties
        self._post = post
        self._closed = False

    @classmethod
    async def open(
        cls,
        bus: MprisBus,
        player_name: PlayerName,
        post: PostEvent,
        *,
        timeout: float = CALL_TIMEOUT_SECONDS,
    ) -> "MprisConnection":
        """
        Open a connection bound to a player and subscribe to its signals.

        Raises:
            PlayerConnectionError: If the player cannot be reached.
        """
        try:
            player = await bus.get_interface(player_name.bus_name, MPRIS_PATH, PLAYER_INTERFACE)
            properties = await bus.get_interface(
                player_name.bus_name, MPRIS_PATH, PROPERTIES_INTERFACE
            )
        except BUS_ERRORS as e:
            raise PlayerConnectionError(
                f"unable to connect to player {player_name.instance}: {describe_error(e)}"
            ) from e

        connection = cls(player_name, player, properties, post, timeout=timeout)
        properties.on_properties_changed(connection._on_properties_changed)
        logger.debug("Subscribed to %s", player_name.bus_name)
        return connection

    def close(self) -> None:
        """Drop the signal subscription. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        try:
            self._properties.off_properties_changed(self._on_properties_changed)
        except BUS_ERRORS as e:
            logger.debug("Error unsubscribing from %s: %s", self.player_name.bus_name, e)
        logger.debug("Released %s", self.player_name.bus_name)

    @property
    def closed(self) -> bool:
        return self._closed

    def _on_properties_changed(
        self,
        interface_name: str,
        changed: dict[str, Variant],
        invalidated: list[str],
    ) -> None:
        if self._closed or interface_name != PLAYER_INTERFACE:
            return

        status = changed.get("PlaybackStatus")
        if status is not None:
            kind = _STATUS_SIGNALS.get(status.value)
            if kind is not None:
                logger.debug("mpris: player-%s callback", kind.value)
                self._post(PlayerSignal(kind=kind))

        if "Metadata" in changed or "Metadata" in invalidated:
            logger.debug("mpris: player-metadata callback")
            self._post(PlayerSignal(kind=SignalKind.METADATA))

    # Queries

    async def get_playback_status(self) -> str:
        """Return the raw PlaybackStatus string."""
        try:
            status = await asyncio.wait_for(self._player.get_playback_status(), self.timeout)
        except BUS_ERRORS as e:
            raise QueryError(f"unable to read playback status: {describe_error(e)}") from e
        return str(status)

    async def get_metadata_value(self, key: str) -> Any:
        """Return the unwrapped value of one Metadata entry, or None."""
        try:
            metadata = await asyncio.wait_for(self._player.get_metadata(), self.timeout)
        except BUS_ERRORS as e:
            raise QueryError(f"unable to read {key}: {describe_error(e)}") from e
        value = metadata.get(key)
        if isinstance(value, Variant):
            return value.value
        return value

    async def get_metadata_text(self, key: str) -> str:
        """Return one Metadata entry as text; lists are joined with ", "."""
        value = await self.get_metadata_value(key)
        if value is None:
            return ""
        if isinstance(value, (list, tuple)):
            return ", ".join(str(v) for v in value)
        return str(value)

    # Commands

    async def play_pause(self) -> None:
        await self._command("PlayPause", self._player.call_play_pause)

    async def previous(self) -> None:
        await self._command("Previous", self._player.call_previous)

    async def next(self) -> None:
        await self._command("Next", self._player.call_next)

    async def _command(self, name: str, method: Callable[[], Awaitable[Any]]) -> None:
        try:
            await asyncio.wait_for(method(), self.timeout)
        except BUS_ERRORS as e:
            raise CommandError(f"{name} failed: {describe_error(e)}") from e
