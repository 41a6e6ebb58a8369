"""Scheduled work — recurrence clock, persistence, scanning, and triggering."""

from cadence.scheduler.clock import next_occurrence, preview_occurrences, window_start
from cadence.scheduler.engine import SchedulerEngine
from cadence.scheduler.models import (
    BatchResult,
    Frequency,
    RecurrenceConfig,
    RunOutcome,
    ScheduleDescriptor,
)
from cadence.scheduler.scanner import DueWorkScanner
from cadence.scheduler.store import ScheduleStore

__all__ = [
    "BatchResult",
    "DueWorkScanner",
    "Frequency",
    "RecurrenceConfig",
    "RunOutcome",
    "ScheduleDescriptor",
    "ScheduleStore",
    "SchedulerEngine",
    "next_occurrence",
    "preview_occurrences",
    "window_start",
]
