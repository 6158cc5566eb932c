"""
Click handling for the status cell.

Default bindings:
    1 (left)   -> PlayPause
    2 (middle) -> Previous
    3 (right)  -> Next

A configured on-click / on-middle-click / on-right-click command replaces
the built-in action for its button and is run through the shell instead.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import IntEnum

from mpriscell.config import ModuleConfig
from mpriscell.core import CommandError, DirectoryError
from mpriscell.core.player_info import PlayerInfo
from mpriscell.protocol.mpris import MprisConnection

logger = logging.getLogger(__name__)

CommandRunner = Callable[[str], Awaitable[None]]
SnapshotFetcher = Callable[[], Awaitable[PlayerInfo | None]]


class MouseButton(IntEnum):
    """Button ids delivered by the host."""

    PRIMARY = 1
    MIDDLE = 2
    SECONDARY = 3


# Connection methods issued for each button
_BUILTIN_ACTIONS = {
    MouseButton.PRIMARY: "play_pause",
    MouseButton.MIDDLE: "previous",
    MouseButton.SECONDARY: "next",
}

# Reaps detached override commands
_background_tasks: set[asyncio.Task[None]] = set()


async def run_shell_command(command: str) -> None:
    """Start a shell command detached from the cell's stdin/stdout."""
    logger.debug("Running click command: %s", command)
    process = await asyncio.create_subprocess_shell(
        command,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.DEVNULL,
        stderr=asyncio.subprocess.DEVNULL,
    )

    async def reap() -> None:
        returncode = await process.wait()
        if returncode != 0:
            logger.warning("Click command exited with %d: %s", returncode, command)

    task = asyncio.create_task(reap())
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)


class InputDispatcher:
    """Maps clicks to transport commands or override commands."""

    def __init__(
        self,
        config: ModuleConfig,
        fetch: SnapshotFetcher,
        connection: Callable[[], MprisConnection | None],
        run_command: CommandRunner = run_shell_command,
    ) -> None:
        """
        Initialize the dispatcher.

        Args:
            config: Supplies the override commands.
            fetch: Produces the current snapshot.
            connection: Returns the live player connection, if any.
            run_command: Runs an override command.
        """
        self._config = config
        self._fetch = fetch
        self._connection = connection
        self._run_command = run_command

    async def handle_click(self, button: int) -> bool:
        """
        Handle a click on the cell.

        Returns:
            True if the click was handled; False lets the host fall back
            to its default behaviour.
        """
        try:
            info = await self._fetch()
        except DirectoryError as e:
            logger.error("mpris[%s]: %s", self._config.player, e)
            return False
        if info is None:
            return False

        override = self._config.click_override(button)
        if override:
            try:
                await self._run_command(override)
            except OSError as e:
                logger.error("mpris[%s]: unable to run %r: %s", info.name, override, e)
                return False
            return True

        try:
            action = _BUILTIN_ACTIONS[MouseButton(button)]
        except ValueError:
            return False

        connection = self._connection()
        if connection is None:
            return False

        try:
            await getattr(connection, action)()
        except CommandError as e:
            logger.error("mpris[%s]: error running builtin on-click action: %s", info.name, e)
            return False
        return True
