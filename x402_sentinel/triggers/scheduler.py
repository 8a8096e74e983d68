"""CycleScheduler — runs trigger cycles in-process on a fixed interval.

Used when no external cron calls ``POST /cron/check``.  Each tick first
expires overdue watchers, then runs one engine cycle.  A failing tick is
logged and the loop carries on.

The first tick happens after one full interval (no immediate run on start).
"""

from __future__ import annotations

import asyncio

from x402_sentinel.exceptions import CycleInProgressError
from x402_sentinel.logging import get_logger
from x402_sentinel.marketplace.lifecycle import WatcherLifecycleManager
from x402_sentinel.triggers.engine import TriggerEngine

log = get_logger(__name__)


class CycleScheduler:
    def __init__(
        self,
        engine: TriggerEngine,
        lifecycle: WatcherLifecycleManager,
        interval_seconds: float = 60.0,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")
        self._engine = engine
        self._lifecycle = lifecycle
        self._interval = interval_seconds
        self._task: asyncio.Task[None] | None = None
        self._stop_event = asyncio.Event()
        self.ticks = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run(), name="sentinel_cycle_scheduler")
        log.info("cycle_scheduler_started", interval=self._interval)

    async def stop(self) -> None:
        self._stop_event.set()
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        log.info("cycle_scheduler_stopped", ticks=self.ticks)

    async def tick(self) -> None:
        """Expire overdue watchers, then run one cycle.  Never raises."""
        self.ticks += 1
        try:
            await self._lifecycle.expire_overdue()
        except Exception as exc:
            log.error("expire_overdue_failed", error=str(exc))
        try:
            await self._engine.run_cycle()
        except CycleInProgressError as exc:
            log.info("scheduled_cycle_skipped", running_cycle_id=exc.running_cycle_id)
        except Exception as exc:
            log.error("scheduled_cycle_failed", error=str(exc), exc_info=True)

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
                return  # stop_event was set
            except asyncio.TimeoutError:
                pass
            await self.tick()
