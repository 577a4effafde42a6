"""Change watcher and debouncer.

ChangeWatcher turns filesystem notifications for tracked files into
calls to a single ``on_change()`` entry point. Debouncer coalesces those
calls: each poke cancels the scheduled trigger and schedules a new one a
quiet period later, so a burst of edits produces exactly one trigger
fired one quiet period after the last edit.

Both run on the asyncio event loop; the pending trigger handle is only
touched from loop callbacks, so no locking is needed.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Optional

from watchfiles import Change, awatch

from .tracked_files import TrackedFileSet

logger = logging.getLogger(__name__)

TriggerCallback = Callable[[], Optional[Awaitable[None]]]


def _log_task_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Background task %s failed", task.get_name(), exc_info=exc)


class Debouncer:
    """Schedules *callback* one quiet period after the most recent poke."""

    def __init__(self, quiet_period: float, callback: TriggerCallback, name: str = "debounce") -> None:
        self._quiet_period = quiet_period
        self._callback = callback
        self._name = name
        self._handle: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def quiet_period(self) -> float:
        return self._quiet_period

    @property
    def pending(self) -> bool:
        return self._handle is not None

    @property
    def deadline(self) -> float | None:
        """Loop time at which the pending trigger fires, if any."""
        return self._handle.when() if self._handle is not None else None

    def poke(self) -> None:
        """Cancel any scheduled trigger and schedule a new one."""
        loop = asyncio.get_running_loop()
        if self._handle is not None:
            self._handle.cancel()
        self._handle = loop.call_later(self._quiet_period, self._fire)

    def cancel(self) -> bool:
        """Drop the pending trigger. Returns True if one was pending."""
        if self._handle is None:
            return False
        self._handle.cancel()
        self._handle = None
        return True

    async def drain(self) -> None:
        """Wait for triggers that already fired to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _fire(self) -> None:
        self._handle = None
        result = self._callback()
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            task.set_name(f"{self._name}-trigger")
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            task.add_done_callback(_log_task_failure)


class ChangeWatcher:
    """Watches the tracked file set and reports every change."""

    def __init__(
        self,
        tracked: TrackedFileSet,
        on_change: Callable[[], None],
        *,
        step_ms: int = 50,
        force_polling: bool | None = None,
    ) -> None:
        self._tracked = tracked
        self._on_change = on_change
        self._step_ms = step_ms
        self._force_polling = force_polling
        self._stop_event: asyncio.Event | None = None
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def _filter(self, change: Change, path: str) -> bool:
        return self._tracked.matches(path)

    def start(self) -> None:
        if self.running:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.get_running_loop().create_task(
            self._watch(), name="devmode-watcher",
        )
        self._task.add_done_callback(_log_task_failure)
        logger.info("Started watching %s", self._tracked.source_root)

    async def stop(self) -> None:
        if self._task is None:
            return
        if self._stop_event is not None:
            self._stop_event.set()
        task, self._task = self._task, None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Stopped watching %s", self._tracked.source_root)

    async def _watch(self) -> None:
        root = Path(self._tracked.source_root)
        # Our own Debouncer does the coalescing, so watchfiles only
        # batches events for a single step.
        async for changes in awatch(
            root,
            watch_filter=self._filter,
            debounce=self._step_ms,
            step=self._step_ms,
            stop_event=self._stop_event,
            force_polling=self._force_polling,
        ):
            for change, path in changes:
                logger.debug("Change %s: %s", change.name, path)
                self._on_change()
