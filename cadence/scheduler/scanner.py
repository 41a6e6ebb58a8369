"""DueWorkScanner — runs every due schedule once per scan cycle.

Execution is at-least-once: a schedule only advances after its Generator
succeeded and the outcome was recorded, so a crash or storage failure in
between re-runs the occurrence on the next scan. Generators that must not
produce duplicates need their own idempotency keys. Recipients are notified
before the advancement, so a re-run occurrence notifies them again.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from cadence.config import settings
from cadence.scheduler import clock
from cadence.scheduler.errors import PersistenceError, TransientGenerationError
from cadence.scheduler.models import BatchResult, RunOutcome, ensure_utc

if TYPE_CHECKING:
    from cadence.scheduler.interfaces import Generator, Notifier, Repository
    from cadence.scheduler.models import ScheduleDescriptor

logger = logging.getLogger(__name__)


class DueWorkScanner:
    """Finds due schedules, runs them, and advances their clocks.

    Args:
        repository: Where schedules and outcomes live.
        generator: Produces the report or task for each occurrence.
        notifier: Tells recipients about successful runs.
        timeout_seconds: Per-schedule limit on the Generator call.
        notification_timeout_seconds: Per-schedule limit on the Notifier call.
        max_concurrency: How many schedules run at once.
    """

    def __init__(
        self,
        repository: Repository,
        generator: Generator,
        notifier: Notifier,
        *,
        timeout_seconds: float | None = None,
        max_concurrency: int | None = None,
        notification_timeout_seconds: float | None = None,
    ) -> None:
        self._repository = repository
        self._generator = generator
        self._notifier = notifier
        if timeout_seconds is None:
            timeout_seconds = settings.generation_timeout_seconds
        if max_concurrency is None:
            max_concurrency = settings.scan_max_concurrency
        if max_concurrency < 1:
            msg = f"max_concurrency must be at least 1, got {max_concurrency}"
            raise ValueError(msg)
        if notification_timeout_seconds is None:
            notification_timeout_seconds = settings.notification_timeout_seconds
        self._timeout = timeout_seconds
        self._max_concurrency = max_concurrency
        self._notify_timeout = notification_timeout_seconds
        self._running = False
        self.last_result: BatchResult | None = None

    @property
    def running(self) -> bool:
        return self._running

    async def run_scan_cycle(self, now: datetime | None = None) -> BatchResult:
        """Run every schedule due at *now* (default: current UTC time).

        Raises PersistenceError if the due schedules cannot be listed. Failures
        of individual schedules are recorded in the result instead.
        """
        now = ensure_utc(now or datetime.now(UTC))
        result = BatchResult(started_at=now)

        if self._running:
            logger.warning("Scan cycle already running, skipping this trigger")
            result.skipped_cycle = True
            return result

        self._running = True
        try:
            try:
                due = await self._repository.list_due_schedules(now)
            except PersistenceError:
                raise
            except Exception as e:
                raise PersistenceError(f"Listing due schedules failed: {e}") from e

            if not due:
                logger.debug("No schedules due at %s", now.isoformat())
                self.last_result = result
                return result

            logger.info("Found %d due schedule(s) at %s", len(due), now.isoformat())
            semaphore = asyncio.Semaphore(self._max_concurrency)

            async def _guarded(schedule: ScheduleDescriptor) -> None:
                async with semaphore:
                    await self._process(schedule, now, result)

            await asyncio.gather(*(_guarded(schedule) for schedule in due))

            logger.info(
                "Scan cycle completed: processed=%d succeeded=%d failed=%d"
                " skipped=%d exhausted=%d",
                result.processed,
                result.succeeded,
                result.failed,
                result.skipped,
                result.exhausted,
            )
            self.last_result = result
            return result
        finally:
            self._running = False

    # -- Per-schedule pipeline -------------------------------------------------

    async def _process(
        self, schedule: ScheduleDescriptor, now: datetime, result: BatchResult
    ) -> None:
        """Generate, record, notify, advance. Never raises."""
        if not schedule.is_due(now):
            logger.debug("Schedule %s is not due, ignoring", schedule.id)
            result.record_skip()
            return

        if schedule.is_exhausted():
            await self._retire(schedule, result)
            return

        start = clock.window_start(schedule.frequency, now)
        try:
            artifact_ref = await asyncio.wait_for(
                self._generator.generate(schedule, start, now),
                timeout=self._timeout,
            )
        except TimeoutError:
            error = TransientGenerationError(
                f"Generation timed out after {self._timeout:g}s", schedule.id
            )
            await self._record_failure(schedule, now, error, result)
            return
        except TransientGenerationError as e:
            await self._record_failure(schedule, now, e, result)
            return
        except Exception as e:
            error = TransientGenerationError(f"{type(e).__name__}: {e}", schedule.id)
            await self._record_failure(schedule, now, error, result)
            return

        outcome = RunOutcome.succeeded(schedule.id, now, artifact_ref)
        try:
            await self._repository.append_run_outcome(outcome)
        except Exception as e:
            self._alert_not_advanced(schedule, e, result)
            return

        await self._notify(schedule, outcome)

        try:
            advanced = await self._advance(schedule, now)
        except Exception as e:
            self._alert_not_advanced(schedule, e, result)
            return

        if not advanced:
            logger.warning(
                "Schedule %s was advanced by an overlapping scan, not advancing again",
                schedule.id,
            )
            result.record_skip()
            return

        logger.info(
            "Schedule ran: '%s' (%s) artifact=%s", schedule.name, schedule.id, artifact_ref
        )
        result.record_success()

    def _alert_not_advanced(
        self, schedule: ScheduleDescriptor, error: Exception, result: BatchResult
    ) -> None:
        # Generation succeeded but the clock did not move: the next scan
        # will run this occurrence again.
        logger.error(
            "ALERT: schedule %s (%s) ran but could not be advanced, it will run again: %s",
            schedule.name,
            schedule.id,
            error,
        )
        result.record_failure(schedule.id, str(error), "persistence")

    async def _advance(self, schedule: ScheduleDescriptor, now: datetime) -> bool:
        next_run_at = clock.advance(schedule, now)
        occurrence_count = schedule.occurrence_count + 1

        still_active = True
        if schedule.end_date is not None and next_run_at > schedule.end_date:
            still_active = False
        if schedule.max_occurrences is not None and occurrence_count >= schedule.max_occurrences:
            still_active = False
        if not still_active:
            logger.info("Schedule %s reached its end condition, deactivating", schedule.id)

        return await self._repository.update_schedule(
            schedule.id,
            next_run_at=next_run_at,
            last_run_at=now,
            occurrence_count=occurrence_count,
            is_active=still_active,
            expected_next_run_at=schedule.next_run_at,
        )

    async def _record_failure(
        self,
        schedule: ScheduleDescriptor,
        now: datetime,
        error: Exception,
        result: BatchResult,
    ) -> None:
        """Record a failed attempt and leave ``next_run_at`` untouched."""
        logger.warning(
            "Schedule failed: '%s' (%s), will retry next scan: %s",
            schedule.name,
            schedule.id,
            error,
        )
        result.record_failure(schedule.id, str(error), "generation")
        try:
            await self._repository.append_run_outcome(
                RunOutcome.failed(schedule.id, now, str(error))
            )
        except Exception:
            logger.exception("Could not record failed outcome for schedule %s", schedule.id)

    async def _retire(self, schedule: ScheduleDescriptor, result: BatchResult) -> None:
        """Deactivate a schedule whose end date or occurrence limit has passed."""
        try:
            await self._repository.deactivate_schedule(schedule.id)
        except Exception as e:
            logger.exception("Could not deactivate exhausted schedule %s", schedule.id)
            result.record_failure(schedule.id, str(e), "persistence")
            return
        logger.info("Schedule exhausted: '%s' (%s)", schedule.name, schedule.id)
        result.record_exhausted()

    async def _notify(self, schedule: ScheduleDescriptor, outcome: RunOutcome) -> None:
        if not schedule.recipients:
            return
        try:
            await asyncio.wait_for(
                self._notifier.notify(list(schedule.recipients), outcome),
                timeout=self._notify_timeout,
            )
        except TimeoutError:
            logger.warning(
                "Notification for schedule %s timed out after %gs (run already recorded)",
                schedule.id,
                self._notify_timeout,
            )
        except Exception:
            logger.warning(
                "Notification failed for schedule %s (run already recorded)",
                schedule.id,
                exc_info=True,
            )
