"""
Player discovery on the D-Bus session bus.

PlayerDirectory answers "which players are running, most recently active
first". The bus daemon itself only knows names, not activity, so the order
comes from playerctld when it is running:

    Bus name:   org.mpris.MediaPlayer2.playerctld
    Interface:  com.github.altdesktop.playerctld
    Property:   PlayerNames (as), most recently active first

Without playerctld the MPRIS names from ListNames are returned sorted.

NameWatcher follows NameOwnerChanged for MPRIS names and posts
PlayerAppeared / PlayerVanished events.
"""

from __future__ import annotations

import asyncio
import logging

from dbus_fast.aio import ProxyInterface

from mpriscell.config import AGGREGATE_PLAYER
from mpriscell.core import DirectoryError, PlayerConnectionError
from mpriscell.core.events import PlayerAppeared, PlayerVanished
from mpriscell.protocol.mpris import (
    BUS_ERRORS,
    CALL_TIMEOUT_SECONDS,
    MPRIS_PATH,
    MprisBus,
    PlayerName,
    PostEvent,
    describe_error,
)

logger = logging.getLogger(__name__)

DBUS_NAME = "org.freedesktop.DBus"
DBUS_PATH = "/org/freedesktop/DBus"
DBUS_INTERFACE = "org.freedesktop.DBus"

PLAYERCTLD = PlayerName.from_instance(AGGREGATE_PLAYER)
PLAYERCTLD_INTERFACE = "com.github.altdesktop.playerctld"


class PlayerDirectory:
    """Lists and resolves MPRIS players on the bus."""

    def __init__(self, bus: MprisBus, *, timeout: float = CALL_TIMEOUT_SECONDS) -> None:
        self._bus = bus
        self.timeout = timeout
        self._dbus: ProxyInterface | None = None

    async def _daemon(self) -> ProxyInterface:
        if self._dbus is None:
            self._dbus = await self._bus.get_interface(DBUS_NAME, DBUS_PATH, DBUS_INTERFACE)
        return self._dbus

    async def _bus_names(self) -> list[str]:
        try:
            daemon = await self._daemon()
            return list(await asyncio.wait_for(daemon.call_list_names(), self.timeout))
        except BUS_ERRORS as e:
            raise DirectoryError(f"unable to list players: {describe_error(e)}") from e

    async def _playerctld_order(self) -> list[str]:
        try:
            playerctld = await self._bus.get_interface(
                PLAYERCTLD.bus_name, MPRIS_PATH, PLAYERCTLD_INTERFACE
            )
            return list(await asyncio.wait_for(playerctld.get_player_names(), self.timeout))
        except BUS_ERRORS as e:
            raise DirectoryError(f"unable to list players: {describe_error(e)}") from e

    async def aggregator_running(self) -> bool:
        """Check if playerctld is on the bus."""
        return PLAYERCTLD.bus_name in await self._bus_names()

    async def list_players(self) -> list[PlayerName]:
        """
        Get the running players, most recently active first.

        Raises:
            DirectoryError: If the bus cannot be queried.
        """
        bus_names = await self._bus_names()
        if PLAYERCTLD.bus_name in bus_names:
            ordered = await self._playerctld_order()
        else:
            ordered = sorted(bus_names)

        players = []
        for bus_name in ordered:
            player = PlayerName.from_bus_name(bus_name)
            if player is not None and player != PLAYERCTLD:
                players.append(player)
        return players

    async def resolve(self, target: str) -> PlayerName:
        """
        Resolve a configured target to a concrete running player.

        The aggregate target binds to playerctld itself when it runs (it
        forwards to whichever player is active), otherwise to the most
        recently active player. Other targets match an instance exactly
        first, then a player name.

        Raises:
            PlayerConnectionError: If no running player matches.
            DirectoryError: If the bus cannot be queried.
        """
        if target == AGGREGATE_PLAYER:
            if await self.aggregator_running():
                return PLAYERCTLD
            players = await self.list_players()
            if not players:
                raise PlayerConnectionError("no players running")
            return players[0]

        players = await self.list_players()
        for player in players:
            if player.instance == target:
                return player
        for player in players:
            if player.name == target:
                return player
        raise PlayerConnectionError(f"player {target} is not running")


class NameWatcher:
    """
    Watches MPRIS names appear on and vanish from the bus.

    The watcher is independent of any player session. It only translates
    NameOwnerChanged into events for the dispatch queue.
    """

    def __init__(self, bus: MprisBus, post: PostEvent) -> None:
        self._bus = bus
        self._post = post
        self._daemon: ProxyInterface | None = None

    @property
    def is_running(self) -> bool:
        return self._daemon is not None

    async def start(self) -> None:
        """Subscribe to NameOwnerChanged."""
        if self._daemon is not None:
            logger.warning("Name watcher already running")
            return
        try:
            daemon = await self._bus.get_interface(DBUS_NAME, DBUS_PATH, DBUS_INTERFACE)
        except BUS_ERRORS as e:
            raise DirectoryError(f"unable to watch player names: {describe_error(e)}") from e
        daemon.on_name_owner_changed(self._on_name_owner_changed)
        self._daemon = daemon
        logger.debug("Watching MPRIS names on the bus")

    def stop(self) -> None:
        """Unsubscribe from NameOwnerChanged."""
        if self._daemon is None:
            return
        daemon, self._daemon = self._daemon, None
        try:
            daemon.off_name_owner_changed(self._on_name_owner_changed)
        except BUS_ERRORS as e:
            logger.debug("Error unsubscribing from NameOwnerChanged: %s", e)

    def _on_name_owner_changed(self, name: str, old_owner: str, new_owner: str) -> None:
        player = PlayerName.from_bus_name(name)
        if player is None or self._daemon is None:
            return

        if new_owner and not old_owner:
            logger.debug("mpris: name-appeared callback: %s", player.instance)
            self._post(PlayerAppeared(instance=player.instance))
        elif old_owner and not new_owner:
            logger.debug("mpris: name-vanished callback: %s", player.instance)
            self._post(PlayerVanished(instance=player.instance))
