"""RecurrenceClock: pure time arithmetic for schedules.

Calendar months follow ``dateutil.relativedelta`` clamping: the day of
month is clamped to the last valid day of the target month, so Jan 31 plus
one month is Feb 29 in a leap year and Feb 28 otherwise. Naive datetimes
are taken as UTC and every result is an aware UTC datetime.

Every offset is at least one day and the next occurrence is normalized to
``settings.occurrence_hour`` (09:00 by default) on the resulting date, so
``next_occurrence(f, t)`` always lands on a later calendar date than ``t``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from dateutil.relativedelta import relativedelta

from cadence.config import settings
from cadence.scheduler.errors import ConfigurationError
from cadence.scheduler.models import Frequency, RecurrenceConfig, ensure_utc

if TYPE_CHECKING:
    from cadence.scheduler.models import ScheduleDescriptor

logger = logging.getLogger(__name__)

_OFFSETS: dict[Frequency, relativedelta] = {
    Frequency.DAILY: relativedelta(days=1),
    Frequency.WEEKLY: relativedelta(days=7),
    Frequency.BIWEEKLY: relativedelta(days=14),
    Frequency.MONTHLY: relativedelta(months=1),
    Frequency.QUARTERLY: relativedelta(months=3),
}


def coerce_frequency(value: str | Frequency) -> Frequency:
    """Map a stored frequency to a member, falling back to weekly.

    Creation-time validation rejects unknown values; this fallback only
    covers rows written before that validation existed.
    """
    try:
        return Frequency.parse(value)
    except ConfigurationError:
        logger.warning("Unknown frequency %r, falling back to weekly", value)
        return Frequency.WEEKLY


def _at_occurrence_hour(dt: datetime) -> datetime:
    return dt.replace(hour=settings.occurrence_hour, minute=0, second=0, microsecond=0)


def window_start(frequency: str | Frequency, reference: datetime) -> datetime:
    """Return the start of the lookback window ending at *reference*."""
    return ensure_utc(reference) - _OFFSETS[coerce_frequency(frequency)]


def next_occurrence(frequency: str | Frequency, reference: datetime) -> datetime:
    """Return the next occurrence after *reference*, at the occurrence hour."""
    return _at_occurrence_hour(ensure_utc(reference) + _OFFSETS[coerce_frequency(frequency)])


def next_custom_occurrence(config: RecurrenceConfig, reference: datetime) -> datetime:
    """Return the next occurrence of a custom recurrence after *reference*.

    Weekly recurrences use Sunday-based weeks: remaining selected days of the
    current week come first, then the first selected day *interval* weeks on.
    Monthly recurrences behave the same way with the day of month.
    """
    reference = ensure_utc(reference)

    if config.type == "daily":
        return _at_occurrence_hour(reference + timedelta(days=config.interval))

    if config.type == "weekly":
        day_index = (reference.weekday() + 1) % 7  # 0 = Sunday
        week_start = reference - timedelta(days=day_index)
        for day in config.days_of_week:
            if day > day_index:
                return _at_occurrence_hour(week_start + timedelta(days=day))
        target = week_start + timedelta(weeks=config.interval, days=config.days_of_week[0])
        return _at_occurrence_hour(target)

    # monthly
    same_month = reference + relativedelta(day=config.day_of_month)
    if same_month.date() > reference.date():
        return _at_occurrence_hour(same_month)
    target = reference + relativedelta(months=config.interval, day=config.day_of_month)
    return _at_occurrence_hour(target)


def advance(schedule: ScheduleDescriptor, now: datetime) -> datetime:
    """Return the ``next_run_at`` a schedule should carry after running at *now*."""
    if schedule.recurrence is not None:
        return next_custom_occurrence(schedule.recurrence, now)
    return next_occurrence(schedule.frequency, now)


def preview_occurrences(
    start: datetime,
    recurrence: RecurrenceConfig | str | Frequency,
    count: int = 5,
    *,
    end_date: datetime | None = None,
) -> list[datetime]:
    """List up to *count* upcoming occurrences, beginning with *start*.

    The first entry is *start* normalized to the occurrence hour; each later
    one is derived from the previous. Occurrences past *end_date* are dropped.
    """
    current = _at_occurrence_hour(ensure_utc(start))
    limit = ensure_utc(end_date) if end_date is not None else None
    occurrences: list[datetime] = []
    while len(occurrences) < count:
        if limit is not None and current > limit:
            break
        occurrences.append(current)
        if isinstance(recurrence, RecurrenceConfig):
            current = next_custom_occurrence(recurrence, current)
        else:
            current = next_occurrence(recurrence, current)
    return occurrences
