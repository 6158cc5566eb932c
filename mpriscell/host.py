"""
Status bar host adapter.

Output follows the waybar custom module JSON format (`"return-type":
"json"`), one object per line:

    {"text": "spotify (playing): Artist - Title", "alt": "playing",
     "class": ["mpris", "playing", "spotify"]}

A hidden cell is written with empty text, which waybar renders as an
invisible module.

Waybar never writes to a custom module's stdin and runs its own click
actions, so clicks reach the running cell through a Unix control socket. The bar binds its
click actions to the client side of that socket:

    "custom/mpris": {
        "exec": "mpriscell",
        "return-type": "json",
        "on-click": "mpriscell --click 1",
        "on-click-middle": "mpriscell --click 2",
        "on-click-right": "mpriscell --click 3"
    }

Each request is one line, a click event object ({"button": 1, ...}) or a
bare button number. The server answers every request with "handled" or
"unhandled" on a line of its own.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
import tempfile
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TextIO

logger = logging.getLogger(__name__)

MODULE_CLASS = "mpris"

HANDLED_REPLY = b"handled\n"
UNHANDLED_REPLY = b"unhandled\n"

# Seconds a click client waits for the cell; a click can wait behind a
# refresh pass and the grace delay
CLICK_TIMEOUT_SECONDS = 10.0


class OutputHost:
    """
    Text cell state and its serialization.

    The cell has markup text, a visibility flag and a pair of replaceable
    style classes: one for the playback status and one for the player
    name. publish() writes the current state; unchanged state is not
    written again.
    """

    def __init__(self, stream: TextIO | None = None, module_class: str = MODULE_CLASS) -> None:
        self._stream = stream if stream is not None else sys.stdout
        self.module_class = module_class
        self.markup = ""
        self.visible = False
        self._classes: dict[str, str] = {}
        self._last_line: str | None = None

    @property
    def classes(self) -> list[str]:
        """Current style classes, module class first."""
        return [self.module_class, *(c for c in self._classes.values() if c)]

    def set_markup(self, markup: str) -> None:
        self.markup = markup

    def set_visible(self, visible: bool) -> None:
        self.visible = visible

    def replace_class(self, slot: str, name: str) -> None:
        """Replace the style class held in `slot` ("status" or "player")."""
        previous = self._classes.get(slot)
        if previous != name:
            logger.debug("Style class %s: %s -> %s", slot, previous, name)
        self._classes[slot] = name

    def to_dict(self) -> dict[str, object]:
        if not self.visible:
            return {"text": "", "class": self.classes}
        return {
            "text": self.markup,
            "alt": self._classes.get("status", ""),
            "class": self.classes,
        }

    def publish(self) -> bool:
        """
        Write the cell state.

        Returns:
            True if a line was written, False if nothing changed.
        """
        line = json.dumps(self.to_dict(), ensure_ascii=False)
        if line == self._last_line:
            return False
        self._last_line = line
        self._stream.write(line + "\n")
        self._stream.flush()
        return True


def parse_click(line: str) -> int | None:
    """
    Parse one click event line.

    Returns:
        The button number, or None if the line is not a click event.
    """
    line = line.strip()
    if not line:
        return None
    try:
        data = json.loads(line)
    except json.JSONDecodeError:
        logger.warning("Ignoring malformed click event: %r", line)
        return None

    if isinstance(data, dict):
        data = data.get("button")
    if isinstance(data, bool) or not isinstance(data, int):
        logger.warning("Ignoring click event without a button: %r", line)
        return None
    return data


def default_control_path(player: str) -> Path:
    """Control socket for a player target, in $XDG_RUNTIME_DIR if set."""
    runtime_dir = os.environ.get("XDG_RUNTIME_DIR") or tempfile.gettempdir()
    return Path(runtime_dir) / f"mpriscell-{player}.sock"


class ClickServer:
    """
    Control socket server delivering clicks to the running cell.

    Every request line is parsed with parse_click() and handed to
    `on_click`; the answer is written back before the next line is read.
    """

    def __init__(self, path: Path, on_click: Callable[[int], Awaitable[bool]]) -> None:
        self.path = path
        self._on_click = on_click
        self._server: asyncio.Server | None = None
        self._client_tasks: set[asyncio.Task[None]] = set()

    @property
    def is_running(self) -> bool:
        return self._server is not None

    async def start(self) -> None:
        """
        Listen on the control socket.

        A socket file left behind by an earlier run is replaced.

        Raises:
            OSError: If the socket cannot be created.
        """
        if self._server is not None:
            logger.warning("Click server already running")
            return

        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._server = await asyncio.start_unix_server(self._handle_connection, path=self.path)
        logger.info("Accepting clicks on %s", self.path)

    async def stop(self) -> None:
        """Close the socket and every open client connection."""
        if self._server is None:
            return

        server, self._server = self._server, None
        server.close()

        for task in self._client_tasks:
            task.cancel()
        if self._client_tasks:
            await asyncio.gather(*self._client_tasks, return_exceptions=True)
            self._client_tasks.clear()

        await server.wait_closed()
        self.path.unlink(missing_ok=True)
        logger.debug("Click server stopped")

    async def _handle_connection(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        task = asyncio.current_task()
        if task is not None:
            self._client_tasks.add(task)
        try:
            while raw := await reader.readline():
                button = parse_click(raw.decode("utf-8", errors="replace"))
                handled = button is not None and await self._on_click(button)
                logger.debug("Click %s %s", button, "handled" if handled else "not handled")
                writer.write(HANDLED_REPLY if handled else UNHANDLED_REPLY)
                await writer.drain()
        except asyncio.CancelledError:
            logger.debug("Click connection cancelled")
        except ConnectionError as e:
            logger.debug("Click connection lost: %s", e)
        finally:
            if task is not None:
                self._client_tasks.discard(task)
            writer.close()


async def send_click(path: Path, button: int, timeout: float = CLICK_TIMEOUT_SECONDS) -> bool:
    """
    Deliver one click to a running cell.

    Returns:
        True if the cell handled the click.

    Raises:
        OSError: If no cell is listening on `path` or it did not answer in time.
    """
    reader, writer = await asyncio.wait_for(asyncio.open_unix_connection(path), timeout)
    try:
        writer.write(json.dumps({"button": button}).encode() + b"\n")
        await writer.drain()
        reply = await asyncio.wait_for(reader.readline(), timeout)
    finally:
        writer.close()
    return reply == HANDLED_REPLY
