"""Protocols for the collaborators the scanner depends on."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, runtime_checkable

from cadence.scheduler.models import RunOutcome, ScheduleDescriptor


@runtime_checkable
class Repository(Protocol):
    """Persistence for schedules and their run history."""

    async def list_due_schedules(self, now: datetime) -> list[ScheduleDescriptor]:
        """Return active schedules whose ``next_run_at`` is at or before *now*."""
        ...

    async def update_schedule(
        self,
        schedule_id: str,
        *,
        next_run_at: datetime,
        last_run_at: datetime,
        occurrence_count: int,
        is_active: bool = True,
        expected_next_run_at: datetime | None = None,
    ) -> bool:
        """Advance a schedule.

        When *expected_next_run_at* is given, the row is only updated if its
        ``next_run_at`` still equals that value. Returns True if updated.
        """
        ...

    async def deactivate_schedule(self, schedule_id: str) -> bool:
        """Mark a schedule inactive. Returns True if a row was updated."""
        ...

    async def append_run_outcome(self, outcome: RunOutcome) -> None:
        """Append an outcome to the run history."""
        ...


@runtime_checkable
class Generator(Protocol):
    """Produces the artifact (report) or record (task) for one occurrence."""

    async def generate(
        self,
        schedule: ScheduleDescriptor,
        window_start: datetime,
        now: datetime,
    ) -> str:
        """Run the unit of work. Returns a reference to what was produced."""
        ...


@runtime_checkable
class Notifier(Protocol):
    """Tells recipients about a completed run. Best-effort."""

    async def notify(self, recipients: list[str], outcome: RunOutcome) -> None:
        ...
