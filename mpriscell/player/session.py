"""
Player session for mpriscell.

A PlayerSession owns the connection to the one player the cell displays.
It is a two-state machine:

    DISCONNECTED --ensure_connected()--> CONNECTED
    CONNECTED --invalidate() / vanish of the bound name--> DISCONNECTED

The session never reconnects on its own. The next refresh pass calls
ensure_connected() again.
"""

import logging
from collections.abc import Awaitable, Callable
from enum import Enum

from mpriscell.core import PlayerConnectionError
from mpriscell.protocol.discovery import PlayerDirectory
from mpriscell.protocol.mpris import MprisConnection, PlayerName, PostEvent

logger = logging.getLogger(__name__)

Connector = Callable[[PlayerName, PostEvent], Awaitable[MprisConnection]]


class SessionState(Enum):
    """Possible states of a player session."""

    DISCONNECTED = "disconnected"
    CONNECTED = "connected"


class PlayerSession:
    """
    Owns the connection handle to one concrete player.

    Attributes:
        target: Configured player identifier or the aggregate alias.
    """

    def __init__(
        self,
        target: str,
        directory: PlayerDirectory,
        connector: Connector,
        post: PostEvent,
    ) -> None:
        """
        Initialize a disconnected session.

        Args:
            target: Player instance/name to bind, or the aggregate alias.
            directory: Used to resolve the target to a running player.
            connector: Opens a connection to a resolved player.
            post: Receives the signals of the connected player.
        """
        self.target = target
        self._directory = directory
        self._connector = connector
        self._post = post
        self._connection: MprisConnection | None = None

    @property
    def state(self) -> SessionState:
        if self._connection is None:
            return SessionState.DISCONNECTED
        return SessionState.CONNECTED

    @property
    def is_connected(self) -> bool:
        return self._connection is not None

    @property
    def connection(self) -> MprisConnection | None:
        """The live connection handle, or None when disconnected."""
        return self._connection

    @property
    def player_name(self) -> PlayerName | None:
        """The player the session is bound to, or None when disconnected."""
        if self._connection is None:
            return None
        return self._connection.player_name

    async def ensure_connected(self) -> MprisConnection:
        """
        Return the live connection, connecting first if needed.

        Raises:
            PlayerConnectionError: If the target cannot be resolved or opened.
            DirectoryError: If the running players cannot be listed.
        """
        if self._connection is not None:
            return self._connection

        player_name = await self._directory.resolve(self.target)
        try:
            connection = await self._connector(player_name, self._post)
        except PlayerConnectionError:
            raise
        except Exception as e:
            raise PlayerConnectionError(
                f"unable to connect to player {player_name.instance}: {e}"
            ) from e

        self._connection = connection
        logger.info("Connected to player %s", player_name.instance)
        return connection

    def invalidate(self, reason: str = "") -> None:
        """Release the handle and go back to DISCONNECTED."""
        connection, self._connection = self._connection, None
        if connection is None:
            return
        connection.close()
        logger.debug(
            "Session for %s invalidated%s",
            connection.player_name.instance,
            f" ({reason})" if reason else "",
        )

    def handle_vanished(self, instance: str) -> bool:
        """
        Disconnect if `instance` is the bound player.

        Returns:
            True if the session was bound to the vanished player.
        """
        player_name = self.player_name
        if player_name is None or player_name.instance != instance:
            return False
        self.invalidate(reason="player vanished")
        return True
