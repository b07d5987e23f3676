"""Periodic background sweeps for presence and correlation state."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import Callable
from datetime import UTC, datetime

from devbridge.correlation import CorrelationTable
from devbridge.presence.store import PresenceStore

_logger = logging.getLogger(__name__)


class PeriodicSweeper:
    """Run a synchronous sweep every *interval* seconds on the event loop.

    A failing round is logged and the next one still runs.
    """

    def __init__(self, name: str, sweep: Callable[[], int], interval: float) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.name = name
        self._sweep = sweep
        self._interval = interval
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name=f"devbridge-{self.name}")

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    def run_once(self) -> int:
        try:
            count = self._sweep()
        except Exception:
            _logger.exception("%s sweep failed", self.name)
            return 0
        if count:
            _logger.debug("%s sweep affected %d entries", self.name, count)
        return count

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            self.run_once()


def presence_sweeper(
    store: PresenceStore,
    *,
    threshold: float,
    interval: float,
    clock: Callable[[], datetime] = lambda: datetime.now(UTC),
) -> PeriodicSweeper:
    """Demote devices whose last heartbeat is older than *threshold* seconds."""
    return PeriodicSweeper("presence", lambda: store.sweep_stale(clock(), threshold), interval)


def correlation_sweeper(
    table: CorrelationTable,
    *,
    grace: float,
    interval: float,
    clock: Callable[[], float] = time.monotonic,
) -> PeriodicSweeper:
    """Reclaim pending requests whose deadline passed *grace* seconds ago."""
    return PeriodicSweeper("correlation", lambda: table.sweep_expired(clock(), grace=grace), interval)
