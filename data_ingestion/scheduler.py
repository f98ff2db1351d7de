"""
Data Ingestion - Feed Scheduler.

============================================================
RESPONSIBILITY
============================================================
Drives one collector on a fixed-period timer.

- The first tick fires immediately at start
- Each tick runs as its own task so a slow fetch never delays
  the timer
- A tick that fires while the previous one is still running is
  skipped and logged (per-feed non-blocking guard)
- Every error is caught and logged at the tick boundary
- start() returns the timer task; stop() cancels the timer and
  any in-flight tick

============================================================
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Set

from core.clock import ClockProtocol
from data_ingestion.collectors.base import BaseFeedCollector
from data_ingestion.types import IngestionError, IngestionMetrics, IngestionResult


class FeedScheduler:
    """
    Periodic runner of a single feed collector.

    Example:
        scheduler = FeedScheduler(collector, poll_seconds=3600, clock=clock)
        handle = scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        collector: BaseFeedCollector,
        poll_seconds: float,
        clock: ClockProtocol,
    ) -> None:
        self._collector = collector
        self._poll_seconds = poll_seconds
        self._clock = clock
        self._logger = logging.getLogger(f"scheduler.{collector.feed_id}")

        self._guard = asyncio.Lock()
        self._timer_task: Optional[asyncio.Task] = None
        self._tick_tasks: Set[asyncio.Task] = set()

        self._metrics = IngestionMetrics()
        self._last_result: Optional[IngestionResult] = None

    @property
    def feed_id(self) -> str:
        return self._collector.feed_id

    @property
    def collector(self) -> BaseFeedCollector:
        return self._collector

    @property
    def is_running(self) -> bool:
        return self._timer_task is not None and not self._timer_task.done()

    @property
    def tick_in_progress(self) -> bool:
        return self._guard.locked()

    @property
    def metrics(self) -> IngestionMetrics:
        return self._metrics

    @property
    def last_result(self) -> Optional[IngestionResult]:
        return self._last_result

    # =========================================================
    # TICKS
    # =========================================================

    async def run_tick(self) -> Optional[IngestionResult]:
        """
        Run one scheduled cycle unless one is already in progress.

        Returns:
            The cycle result, or None when the tick was skipped
            because the previous one has not finished
        """
        if self._guard.locked():
            self._metrics.overlapping_ticks += 1
            self._logger.warning(
                f"Previous {self.feed_id} tick still running, skipping this tick"
            )
            return None

        async with self._guard:
            try:
                result = await self._collector.collect()
            except IngestionError as e:
                result = self._failed_result(e)
                self._logger.error(
                    f"{type(e).__name__} during {self.feed_id} update, "
                    f"watermark not advanced: {e}"
                )
            except Exception as e:
                result = self._failed_result(e)
                self._logger.exception(f"Unexpected error during {self.feed_id} update")

            self._record(result)
            return result

    async def force_update(self) -> IngestionResult:
        """
        Run a cycle now, bypassing the due check.

        Waits for an in-flight tick instead of skipping. Errors
        propagate to the caller.
        """
        async with self._guard:
            try:
                result = await self._collector.collect(force=True)
            except Exception as e:
                self._record(self._failed_result(e))
                raise
            self._record(result)
            return result

    def _failed_result(self, error: Exception) -> IngestionResult:
        result = IngestionResult(feed_id=self.feed_id, started_at=self._clock.now())
        result.mark_failed(f"{type(error).__name__}: {error}")
        result.mark_complete(self._clock.now())
        return result

    def _record(self, result: IngestionResult) -> None:
        self._last_result = result
        self._metrics.record_result(result)

    # =========================================================
    # TIMER
    # =========================================================

    async def _timer_loop(self) -> None:
        while True:
            tick = asyncio.create_task(self.run_tick(), name=f"tick:{self.feed_id}")
            self._tick_tasks.add(tick)
            tick.add_done_callback(self._tick_tasks.discard)
            await asyncio.sleep(self._poll_seconds)

    def start(self) -> asyncio.Task:
        """
        Start the timer (first tick immediately).

        Returns:
            The timer task, usable as a cancellation handle
        """
        if self.is_running:
            return self._timer_task

        self._logger.info(
            f"Starting {self.feed_id} scheduler, polling every {self._poll_seconds}s"
        )
        self._timer_task = asyncio.create_task(self._timer_loop(), name=f"timer:{self.feed_id}")
        return self._timer_task

    async def stop(self) -> None:
        """Cancel the timer and any in-flight tick."""
        tasks = list(self._tick_tasks)
        if self._timer_task is not None:
            tasks.append(self._timer_task)

        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception:
                self._logger.exception("Scheduler task ended with an error")

        self._timer_task = None
        self._tick_tasks.clear()
        self._logger.info(f"Stopped {self.feed_id} scheduler")

    def get_status(self) -> Dict[str, Any]:
        return {
            "feed_id": self.feed_id,
            "running": self.is_running,
            "tick_in_progress": self.tick_in_progress,
            "poll_seconds": self._poll_seconds,
            "last_result": self._last_result.to_dict() if self._last_result else None,
            "metrics": self._metrics.to_dict(),
        }
