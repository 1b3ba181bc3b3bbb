from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Iterable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from hiretrack.core.datetime_utils import utc_now_naive
from hiretrack.services.progression_engine import ManualRunResult, ProgressionEngine, SweepResult

logger = logging.getLogger("hiretrack.autoprocessor")

SWEEP_JOB_ID = "auto_processor_sweep"

Clock = Callable[[], datetime]


class AutoProcessorScheduler:
    """Owns the periodic sweep for one process.

    `start()` and `stop()` are idempotent. Stopping only prevents future ticks;
    a sweep that is already running finishes on its own.
    """

    def __init__(
        self,
        engine: ProgressionEngine,
        *,
        interval_seconds: float,
        clock: Clock = utc_now_naive,
    ) -> None:
        self.engine = engine
        self.interval_seconds = interval_seconds
        self._clock = clock
        self._scheduler: AsyncIOScheduler | None = None
        self._running = False
        self._inflight: set[asyncio.Task] = set()

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            return
        scheduler = AsyncIOScheduler(timezone="UTC")
        scheduler.add_job(
            self._run_scheduled_sweep,
            IntervalTrigger(seconds=self.interval_seconds),
            id=SWEEP_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            # First sweep runs right away, then every interval.
            next_run_time=datetime.now(timezone.utc),
        )
        scheduler.start()
        self._scheduler = scheduler
        self._running = True
        logger.info("auto_processor_started", extra={"interval_seconds": self.interval_seconds})

    def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        scheduler, self._scheduler = self._scheduler, None
        if scheduler is not None:
            scheduler.shutdown(wait=False)
        logger.info("auto_processor_stopped")

    async def drain(self) -> None:
        """Wait for every in-flight sweep, including ones started before a restart."""
        pending = {task for task in self._inflight if not task.done()}
        if pending:
            await asyncio.wait(pending)

    async def run_once(self) -> SweepResult:
        return await self.engine.run_sweep(self._clock())

    async def trigger_manual(self, actor_person_id: int, application_ids: Iterable[int]) -> ManualRunResult:
        return await self.engine.trigger_manual(actor_person_id, application_ids, self._clock())

    async def _run_scheduled_sweep(self) -> None:
        # Shutting the scheduler down cancels this coroutine; the shielded sweep keeps going.
        task = asyncio.ensure_future(self._sweep_safely())
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        await asyncio.shield(task)

    async def _sweep_safely(self) -> SweepResult | None:
        try:
            return await self.run_once()
        except Exception:  # noqa: BLE001
            logger.exception("auto_processor_sweep_failed")
            return None
