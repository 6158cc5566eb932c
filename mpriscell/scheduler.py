"""
Refresh scheduling for mpriscell.

The RefreshScheduler is the single dispatch queue of the module. Every
trigger (bus signals, name watcher, periodic timer, clicks) posts a typed
event; one dispatch task applies them in order and runs refresh passes.
Nothing else mutates module state, so two passes can never interleave.

Refresh requests are coalesced, not queued. Each time the dispatch task
wakes up it drains everything that is waiting, applies it, and then runs at
most one refresh pass:

    post(A) post(B) post(C)  ->  apply A, B, C  ->  one pass

Player appearance is special. Some players (e.g. the Spotify client) claim
their bus name before their metadata is complete and never announce the
metadata afterwards, so the first appearance in a batch sleeps for
NAME_APPEARED_GRACE_SECONDS before it is applied. The sleep blocks the
queue. Appearances that arrive meanwhile share the same delay and the same
pass. Every event queued behind the appearance waits as well, including a
stop signal or a vanish: with

    post(PlayerAppeared) post(PlayerSignal(STOP)) post(PlayerVanished)

the stop hides the cell and the vanish releases the session only after the
sleep, in posting order, followed by the single pass of the batch.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections import deque
from collections.abc import Awaitable, Callable

from mpriscell.core.events import ClickEvent, Event, PlayerAppeared, RefreshRequested

logger = logging.getLogger(__name__)

# Delay between a player appearing on the bus and the first query
NAME_APPEARED_GRACE_SECONDS = 1.0

# Applies one event; returns True when a refresh pass is needed
EventHandler = Callable[[Event], Awaitable[bool]]

RefreshPass = Callable[[], Awaitable[None]]


class RefreshScheduler:
    """
    Serializes all state changes and coalesces refresh requests.

    Usage:
        scheduler = RefreshScheduler(module.handle_event, module.refresh, interval=5)
        scheduler.start()
        scheduler.request_refresh("startup")
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        handle_event: EventHandler,
        run_pass: RefreshPass,
        *,
        interval: float = 0,
        grace_delay: float = NAME_APPEARED_GRACE_SECONDS,
    ) -> None:
        """
        Initialize the scheduler.

        Args:
            handle_event: Applies an event to module state.
            run_pass: Performs one refresh pass.
            interval: Seconds between periodic refreshes; 0 disables them.
            grace_delay: Seconds to wait after a player appears.
        """
        self._handle_event = handle_event
        self._run_pass = run_pass
        self.interval = interval
        self.grace_delay = grace_delay

        self._queue: asyncio.Queue[Event] = asyncio.Queue()
        self._dispatch_task: asyncio.Task[None] | None = None
        self._timer_task: asyncio.Task[None] | None = None
        self._closing = False

    @property
    def is_running(self) -> bool:
        return self._dispatch_task is not None and not self._closing

    def start(self) -> None:
        """Start the dispatch task and, if configured, the periodic timer."""
        if self._dispatch_task is not None:
            logger.warning("Refresh scheduler already running")
            return
        self._closing = False
        self._dispatch_task = asyncio.create_task(self._dispatch_loop(), name="mpris-dispatch")
        if self.interval > 0:
            self._timer_task = asyncio.create_task(self._timer_loop(), name="mpris-interval")

    async def stop(self) -> None:
        """
        Stop the timer and the dispatch task.

        Events posted after stop() started are dropped; clicks still waiting
        for an answer are reported as not handled.
        """
        self._closing = True

        for task in (self._timer_task, self._dispatch_task):
            if task is not None and not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

        self._timer_task = None
        self._dispatch_task = None

        for event in self._drain():
            self._finish_click(event)

    def post(self, event: Event) -> None:
        """Enqueue an event. Safe to call from bus callbacks."""
        if self._closing:
            logger.debug("Dropping %s after shutdown", event.event_type)
            return
        self._queue.put_nowait(event)

    def request_refresh(self, reason: str) -> None:
        """Ask for a refresh pass."""
        self.post(RefreshRequested(reason=reason))

    async def click(self, button: int) -> bool:
        """
        Deliver a click through the dispatch queue.

        Returns:
            True if the click was handled.
        """
        if self._closing:
            return False
        result: asyncio.Future[bool] = asyncio.get_running_loop().create_future()
        self.post(ClickEvent(button=button, result=result))
        return await result

    async def _timer_loop(self) -> None:
        while True:
            self.request_refresh("interval")
            await asyncio.sleep(self.interval)

    def _drain(self) -> list[Event]:
        events: list[Event] = []
        while True:
            try:
                events.append(self._queue.get_nowait())
            except asyncio.QueueEmpty:
                return events

    async def _dispatch_loop(self) -> None:
        while True:
            first = await self._queue.get()
            await self._process([first, *self._drain()])

    async def _process(self, events: list[Event]) -> None:
        pending = deque(events)
        dirty = False
        graced = False

        while pending:
            event = pending.popleft()

            if isinstance(event, PlayerAppeared) and not graced:
                graced = True
                logger.debug(
                    "Waiting %.1fs for %s to publish its metadata",
                    self.grace_delay,
                    event.instance,
                )
                try:
                    await asyncio.sleep(self.grace_delay)
                except asyncio.CancelledError:
                    for waiting in pending:
                        self._finish_click(waiting)
                    raise
                pending.extend(self._drain())

            try:
                if await self._handle_event(event):
                    dirty = True
            except asyncio.CancelledError:
                for waiting in pending:
                    self._finish_click(waiting)
                raise
            except Exception as e:
                logger.exception("Error handling %s: %s", event.event_type, e)
            finally:
                self._finish_click(event)

        if dirty:
            try:
                await self._run_pass()
            except Exception as e:
                logger.exception("Error during refresh pass: %s", e)

    @staticmethod
    def _finish_click(event: Event) -> None:
        if isinstance(event, ClickEvent) and event.result is not None and not event.result.done():
            event.result.set_result(False)
