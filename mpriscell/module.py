"""
mpriscell - Main Module

This module contains the MprisModule class which wires the bus, the player
session, the scheduler, the renderer and the host together and manages the
lifecycle of the cell.
"""

import asyncio
import contextlib
import functools
import logging
import signal
from collections.abc import Callable
from pathlib import Path

from mpriscell.config import ModuleConfig
from mpriscell.core import DirectoryError, PlayerConnectionError, TemplateError
from mpriscell.core.events import (
    ClickEvent,
    Event,
    PlayerAppeared,
    PlayerSignal,
    PlayerVanished,
    RefreshRequested,
    SignalKind,
)
from mpriscell.core.player_info import PlaybackStatus, PlayerInfo
from mpriscell.core.template import TemplateRenderer
from mpriscell.host import ClickServer, OutputHost
from mpriscell.input import CommandRunner, InputDispatcher, run_shell_command
from mpriscell.player.session import Connector, PlayerSession
from mpriscell.player.snapshot import fetch_player_info
from mpriscell.protocol.discovery import NameWatcher, PlayerDirectory
from mpriscell.protocol.mpris import MprisBus, MprisConnection, PostEvent
from mpriscell.scheduler import NAME_APPEARED_GRACE_SECONDS, RefreshScheduler

logger = logging.getLogger(__name__)


class MprisModule:
    """
    The now-playing cell.

    The module manages:
    - a PlayerSession bound to the configured player
    - a NameWatcher reporting players joining and leaving the bus
    - the RefreshScheduler through which every state change flows
    - rendering snapshots into the OutputHost
    - clicks from the control socket, through the InputDispatcher

    All methods that touch state (handle_event, refresh) run on the
    scheduler's dispatch task only.
    """

    def __init__(
        self,
        config: ModuleConfig,
        host: OutputHost,
        directory: PlayerDirectory,
        connector: Connector,
        *,
        watcher_factory: Callable[[PostEvent], NameWatcher] | None = None,
        bus: MprisBus | None = None,
        control_path: Path | None = None,
        grace_delay: float = NAME_APPEARED_GRACE_SECONDS,
        run_command: CommandRunner = run_shell_command,
    ) -> None:
        """
        Initialize the module.

        Args:
            config: Validated module options.
            host: Receives the rendered cell.
            directory: Lists and resolves players.
            connector: Opens player connections.
            watcher_factory: Builds the name watcher; None disables it.
            bus: Bus owned by the module, disconnected on stop().
            control_path: Control socket for clicks; None disables clicks.
            grace_delay: Seconds to wait after a player appears.
            run_command: Runs click override commands.
        """
        self.config = config
        self.host = host
        self.directory = directory
        self._bus = bus

        self.scheduler = RefreshScheduler(
            self.handle_event,
            self.refresh,
            interval=config.interval,
            grace_delay=grace_delay,
        )
        self.session = PlayerSession(config.player, directory, connector, self.scheduler.post)
        self.watcher = watcher_factory(self.scheduler.post) if watcher_factory else None
        self.renderer = TemplateRenderer(
            config.format,
            status_formats=config.status_formats,
            player_icons=config.player_icons,
            status_icons=config.status_icons,
        )
        self.input = InputDispatcher(
            config,
            self.fetch,
            lambda: self.session.connection,
            run_command,
        )
        self.click_server = (
            ClickServer(control_path, self.scheduler.click) if control_path is not None else None
        )

        self._running = False
        self._shutdown_event: asyncio.Event | None = None
        self._last_error: str | None = None

    @classmethod
    def from_bus(
        cls,
        config: ModuleConfig,
        bus: MprisBus,
        host: OutputHost,
        control_path: Path | None = None,
    ) -> "MprisModule":
        """Build a module talking to players over `bus`."""
        return cls(
            config,
            host,
            PlayerDirectory(bus),
            functools.partial(MprisConnection.open, bus),
            watcher_factory=functools.partial(NameWatcher, bus),
            bus=bus,
            control_path=control_path,
        )

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Connect, start watching the bus and request the first pass."""
        logger.info("Starting mpris module for %s", self.config.player)
        self._running = True
        self._shutdown_event = asyncio.Event()

        if self._bus is not None:
            await self._bus.connect()

        if self.watcher is not None:
            try:
                await self.watcher.start()
            except DirectoryError as e:
                logger.error("Players joining the bus will not be noticed: %s", e)

        self.scheduler.start()
        self.scheduler.request_refresh("startup")

        if self.click_server is not None:
            try:
                await self.click_server.start()
            except OSError as e:
                logger.error("Clicks will not be delivered: %s", e)

    async def stop(self) -> None:
        """Stop the scheduler and release every bus resource."""
        if not self._running:
            return

        logger.info("Stopping mpris module...")
        self._running = False

        # Inputs first, so nothing requests a pass during teardown
        if self.click_server is not None:
            await self.click_server.stop()
        await self.scheduler.stop()

        if self.watcher is not None:
            self.watcher.stop()
        self.session.invalidate(reason="shutdown")

        if self._bus is not None:
            self._bus.disconnect()

        logger.info("mpris module stopped")

    async def run(self) -> None:
        """Run the module until SIGINT, SIGTERM or request_shutdown()."""
        await self.start()

        loop = asyncio.get_running_loop()

        def handle_signal() -> None:
            logger.info("Received shutdown signal")
            if self._shutdown_event:
                self._shutdown_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, handle_signal)
            except NotImplementedError:
                pass

        try:
            if self._shutdown_event:
                await self._shutdown_event.wait()
        finally:
            for sig in (signal.SIGINT, signal.SIGTERM):
                with contextlib.suppress(NotImplementedError):
                    loop.remove_signal_handler(sig)
            await self.stop()

    def request_shutdown(self) -> None:
        if self._shutdown_event:
            self._shutdown_event.set()

    # Dispatch task

    async def handle_event(self, event: Event) -> bool:
        """
        Apply one event from the dispatch queue.

        Returns:
            True if a refresh pass is needed.
        """
        if isinstance(event, RefreshRequested):
            logger.debug("Refresh requested (%s)", event.reason)
            return True

        if isinstance(event, PlayerSignal):
            if event.kind is SignalKind.STOP:
                self._hide()
            return True

        if isinstance(event, PlayerAppeared):
            self.session.invalidate(reason=f"{event.instance} appeared")
            return True

        if isinstance(event, PlayerVanished):
            self.session.handle_vanished(event.instance)
            return True

        if isinstance(event, ClickEvent):
            handled = await self.input.handle_click(event.button)
            if event.result is not None and not event.result.done():
                event.result.set_result(handled)
            return False

        logger.warning("Unhandled event: %s", event.to_dict())
        return False

    async def fetch(self) -> PlayerInfo | None:
        """Take a snapshot of the connected player."""
        return await fetch_player_info(self.session, self.directory, self.config)

    async def refresh(self) -> None:
        """
        Run one refresh pass: connect, fetch, render, publish.

        Connection and directory failures hide the cell. A template that
        cannot be rendered leaves the previous output in place.
        """
        try:
            await self.session.ensure_connected()
            info = await self.fetch()
        except (PlayerConnectionError, DirectoryError) as e:
            self._report_error(str(e))
            self._hide()
            return
        self._last_error = None

        if info is None:
            self._hide()
            return

        if info.status is PlaybackStatus.STOPPED:
            logger.debug("mpris[%s]: player stopped", info.name)
            self._hide()
            return

        logger.debug("mpris[%s]: running update", info.name)

        try:
            text = self.renderer.render(info)
        except TemplateError as e:
            logger.error("mpris[%s]: %s (keeping previous output)", info.name, e)
            return

        self.host.replace_class("status", info.status_string)
        self.host.replace_class("player", info.name)
        self.host.set_markup(text)
        self.host.set_visible(True)
        self.host.publish()

    def _hide(self) -> None:
        self.host.set_visible(False)
        self.host.publish()

    def _report_error(self, message: str) -> None:
        # Repeats of the same failure (e.g. no player running) go to debug
        if message == self._last_error:
            logger.debug("mpris[%s]: %s", self.config.player, message)
        else:
            logger.warning("mpris[%s]: %s", self.config.player, message)
        self._last_error = message
