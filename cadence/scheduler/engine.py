"""SchedulerEngine — APScheduler lifecycle for the periodic scan trigger."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from cadence.config import settings

if TYPE_CHECKING:
    from cadence.scheduler.models import BatchResult
    from cadence.scheduler.scanner import DueWorkScanner

logger = logging.getLogger(__name__)

SCAN_JOB_ID = "due-work-scan"


class SchedulerEngine:
    """Runs ``DueWorkScanner.run_scan_cycle`` on a fixed interval.

    Args:
        scanner: The scanner to invoke.
        interval_minutes: Minutes between scans (default from settings).
        timezone: IANA timezone string (default from settings).
    """

    def __init__(
        self,
        scanner: DueWorkScanner,
        interval_minutes: int | None = None,
        timezone: str | None = None,
    ) -> None:
        self._scanner = scanner
        self._interval = interval_minutes or settings.scan_interval_minutes
        self._timezone = timezone or settings.scheduler_timezone
        self._scheduler = AsyncIOScheduler(timezone=self._timezone)
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    # -- Lifecycle -------------------------------------------------------------

    async def start(self) -> None:
        """Register the scan job and start the scheduler."""
        self._scheduler.add_job(
            self._run_scan,
            trigger=IntervalTrigger(minutes=self._interval, timezone=self._timezone),
            id=SCAN_JOB_ID,
            name="Scan for due schedules",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=None,
            replace_existing=True,
        )
        self._scheduler.start()
        self._running = True
        logger.info(
            "Scheduler started: scanning every %d minute(s) (tz=%s)",
            self._interval,
            self._timezone,
        )

    async def stop(self) -> None:
        """Shut down the scheduler."""
        if self._running:
            self._scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Scheduler stopped")

    def next_scan_time(self):
        """Return when the scan job fires next, or None if not scheduled."""
        job = self._scheduler.get_job(SCAN_JOB_ID)
        return job.next_run_time if job else None

    async def run_now(self) -> BatchResult:
        """Run a scan immediately, outside the interval."""
        return await self._scanner.run_scan_cycle()

    # -- Internal --------------------------------------------------------------

    async def _run_scan(self) -> None:
        """Callback invoked by APScheduler. Keeps the job alive on failure."""
        try:
            await self._scanner.run_scan_cycle()
        except Exception:
            logger.exception("Scan cycle failed")
