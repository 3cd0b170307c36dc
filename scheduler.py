"""Fixed-interval polling loop for reconciliation cycles."""
from __future__ import annotations

import asyncio
import contextlib
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable

from logging_config import get_logger
from reconcile import CycleReport, Reconciler
from sources import utc_now

log = get_logger(__name__)

DEFAULT_DRAIN_TIMEOUT_SECONDS = 30.0


class SchedulerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


class PollingScheduler:
    """Runs ``Reconciler.run_cycle`` every ``interval_seconds`` without overlap.

    The cycle itself is blocking and runs in a worker thread. A trigger that
    arrives while a cycle is running is skipped. The state returns to IDLE only
    when the worker thread is done, even if the awaiting task was cancelled.
    """

    def __init__(
        self,
        reconciler: Reconciler,
        interval_seconds: float,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.reconciler = reconciler
        self.interval_seconds = interval_seconds
        self.clock = clock
        self.state = SchedulerState.IDLE
        self.last_report: CycleReport | None = None
        self.next_run_at: datetime | None = None
        self.skipped = 0
        self._task: asyncio.Task | None = None
        self._inflight: asyncio.Future | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def trigger(self) -> CycleReport | None:
        if self.state is SchedulerState.RUNNING:
            self.skipped += 1
            log.warning("cycle_skipped", reason="previous cycle still running")
            return None
        self.state = SchedulerState.RUNNING
        self._inflight = asyncio.ensure_future(asyncio.to_thread(self.reconciler.run_cycle))
        self._inflight.add_done_callback(self._cycle_done)
        # the worker thread outlives a cancelled loop; stop() drains it
        report = await asyncio.shield(self._inflight)
        self.last_report = report
        return report

    def _cycle_done(self, future: asyncio.Future) -> None:
        self.state = SchedulerState.IDLE
        if self._inflight is future:
            self._inflight = None

    async def _loop(self) -> None:
        while True:
            try:
                await self.trigger()
            except Exception as err:
                log.error("cycle_crashed", error=repr(err))
            self.next_run_at = self.clock() + timedelta(seconds=self.interval_seconds)
            log.info("next_cycle_scheduled", next_run_at=self.next_run_at.replace(microsecond=0).isoformat())
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name="reconciliation-poll")
        log.info("scheduler_started", interval_seconds=self.interval_seconds)

    async def stop(self, drain_timeout: float = DEFAULT_DRAIN_TIMEOUT_SECONDS) -> None:
        """Cancel the poll loop, then wait up to ``drain_timeout`` for a cycle still in flight."""
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

        inflight = self._inflight
        if inflight is not None:
            log.info("waiting_for_cycle", timeout_seconds=drain_timeout)
            try:
                self.last_report = await asyncio.wait_for(asyncio.shield(inflight), timeout=drain_timeout)
            except asyncio.TimeoutError:
                log.warning("cycle_still_running", timeout_seconds=drain_timeout)
            except Exception as err:
                log.error("cycle_crashed", error=repr(err))
        log.info("scheduler_stopped")

    def status(self) -> dict:
        return {
            "state": self.state.value,
            "polling": self.running,
            "interval_seconds": self.interval_seconds,
            "skipped_cycles": self.skipped,
            "next_run_at": self.next_run_at.isoformat() if self.next_run_at else None,
            "last_cycle": self.last_report.to_dict() if self.last_report else None,
        }
