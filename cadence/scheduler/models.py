"""Schedule, run outcome, and batch result data models."""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from cadence.scheduler.errors import ConfigurationError

KIND_REPORT = "report"
KIND_RECURRING_TASK = "recurring_task"
SCHEDULE_KINDS = frozenset({KIND_REPORT, KIND_RECURRING_TASK})


class Frequency(StrEnum):
    """Fixed calendar cadences shared by reports and recurring tasks."""

    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"

    @classmethod
    def parse(cls, value: str | Frequency) -> Frequency:
        """Return the member for *value*. Raises ConfigurationError if unknown."""
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            allowed = ", ".join(f.value for f in cls)
            msg = f"Unknown frequency '{value}' (expected one of: {allowed})"
            raise ConfigurationError(msg) from None


# -- Timestamps ----------------------------------------------------------------


def ensure_utc(dt: datetime) -> datetime:
    """Return *dt* as an aware UTC datetime. Naive values are taken as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def format_ts(dt: datetime | None) -> str | None:
    """Serialize to a fixed-width ISO 8601 string (sorts chronologically)."""
    if dt is None:
        return None
    return ensure_utc(dt).isoformat(timespec="microseconds")


def parse_ts(value: str | None) -> datetime | None:
    if not value:
        return None
    return ensure_utc(datetime.fromisoformat(value))


# -- Custom recurrence ---------------------------------------------------------

RECURRENCE_TYPES = ("daily", "weekly", "monthly")


@dataclass(frozen=True)
class RecurrenceConfig:
    """Custom recurrence for recurring tasks.

    Attributes:
        type: ``"daily"``, ``"weekly"`` or ``"monthly"``.
        interval: Repeat every N days (1-365), weeks (1-52) or months (1-12).
        days_of_week: Weekly only. 0 = Sunday through 6 = Saturday.
        day_of_month: Monthly only (1-31). Clamped to the month's last day.
    """

    type: str
    interval: int = 1
    days_of_week: tuple[int, ...] = ()
    day_of_month: int | None = None

    def __post_init__(self) -> None:
        if self.type not in RECURRENCE_TYPES:
            msg = f"Unknown recurrence type '{self.type}'"
            raise ConfigurationError(msg)
        max_interval = {"daily": 365, "weekly": 52, "monthly": 12}[self.type]
        if not 1 <= self.interval <= max_interval:
            msg = f"{self.type} interval must be between 1 and {max_interval}"
            raise ConfigurationError(msg)
        if self.type == "weekly":
            if not self.days_of_week:
                raise ConfigurationError("weekly recurrence needs at least one day")
            if any(not 0 <= d <= 6 for d in self.days_of_week):
                raise ConfigurationError("days_of_week must be between 0 and 6")
            object.__setattr__(self, "days_of_week", tuple(sorted(set(self.days_of_week))))
        if self.type == "monthly":
            day = self.day_of_month if self.day_of_month is not None else 1
            if not 1 <= day <= 31:
                raise ConfigurationError("day_of_month must be between 1 and 31")
            object.__setattr__(self, "day_of_month", day)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type, "interval": self.interval}
        if self.type == "weekly":
            data["days_of_week"] = list(self.days_of_week)
        if self.type == "monthly":
            data["day_of_month"] = self.day_of_month
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RecurrenceConfig:
        return cls(
            type=str(data.get("type", "")),
            interval=int(data.get("interval", 1)),
            days_of_week=tuple(int(d) for d in data.get("days_of_week", ())),
            day_of_month=data.get("day_of_month"),
        )


RECURRENCE_PRESETS: dict[str, tuple[str, RecurrenceConfig]] = {
    "daily": ("Every day", RecurrenceConfig("daily", 1)),
    "weekdays": ("Every weekday", RecurrenceConfig("weekly", 1, (1, 2, 3, 4, 5))),
    "weekly": ("Every week", RecurrenceConfig("weekly", 1, (1,))),
    "biweekly": ("Every 2 weeks", RecurrenceConfig("weekly", 2, (1,))),
    "monthly": ("Every month", RecurrenceConfig("monthly", 1, day_of_month=1)),
}


# -- Schedules -----------------------------------------------------------------


@dataclass
class ScheduleDescriptor:
    """A persisted rule describing a recurring unit of work.

    Attributes:
        id: Unique identifier (UUID hex).
        owner_scope_id: Workspace the schedule belongs to.
        name: Human-readable name.
        kind: ``"report"`` or ``"recurring_task"``.
        frequency: One of the ``Frequency`` values. Kept as a string so rows
            written by older clients still load.
        next_run_at: When the schedule is next due.
        recipients: Recipient ids notified after a successful run.
        payload: Report options (``report_type``, ``format``,
            ``include_children``) or the task template for recurring tasks.
        recurrence: Custom recurrence; overrides ``frequency`` when set.
        is_active: Inactive schedules are never due.
        last_run_at: When the schedule last ran successfully.
        occurrence_count: Successful runs so far.
        end_date: No occurrence is scheduled after this instant.
        max_occurrences: Stop after this many successful runs.
        created_by: User id of the author.
        created_at: Creation time.
    """

    id: str
    owner_scope_id: str
    name: str
    kind: str
    frequency: str
    next_run_at: datetime
    recipients: list[str] = field(default_factory=list)
    payload: dict[str, Any] = field(default_factory=dict)
    recurrence: RecurrenceConfig | None = None
    is_active: bool = True
    last_run_at: datetime | None = None
    occurrence_count: int = 0
    end_date: datetime | None = None
    max_occurrences: int | None = None
    created_by: str = ""
    created_at: datetime | None = None

    def __post_init__(self) -> None:
        self.next_run_at = ensure_utc(self.next_run_at)
        if self.last_run_at is not None:
            self.last_run_at = ensure_utc(self.last_run_at)
        if self.end_date is not None:
            self.end_date = ensure_utc(self.end_date)
        self.created_at = ensure_utc(self.created_at) if self.created_at else datetime.now(UTC)

    # -- Convenience properties ------------------------------------------------

    @property
    def is_report(self) -> bool:
        return self.kind == KIND_REPORT

    @property
    def is_recurring_task(self) -> bool:
        return self.kind == KIND_RECURRING_TASK

    def is_due(self, now: datetime) -> bool:
        return self.is_active and self.next_run_at <= ensure_utc(now)

    def is_exhausted(self) -> bool:
        """True once the current ``next_run_at`` lies beyond the end conditions."""
        if self.end_date is not None and self.next_run_at > self.end_date:
            return True
        return self.max_occurrences is not None and self.occurrence_count >= self.max_occurrences

    def validate(self) -> None:
        """Reject schedules that cannot be stored. Raises ConfigurationError."""
        if self.kind not in SCHEDULE_KINDS:
            msg = f"Unknown schedule kind '{self.kind}'"
            raise ConfigurationError(msg, schedule_id=self.id)
        Frequency.parse(self.frequency)
        if self.max_occurrences is not None and self.max_occurrences < 1:
            raise ConfigurationError("max_occurrences must be at least 1", schedule_id=self.id)

    # -- Serialization ---------------------------------------------------------

    def to_row(self) -> tuple:
        """Serialize to a tuple matching the ``schedules`` column order."""
        return (
            self.id,
            self.owner_scope_id,
            self.name,
            self.kind,
            self.frequency,
            json.dumps(self.recipients),
            json.dumps(self.payload),
            json.dumps(self.recurrence.to_dict()) if self.recurrence else None,
            int(self.is_active),
            format_ts(self.next_run_at),
            format_ts(self.last_run_at),
            self.occurrence_count,
            format_ts(self.end_date),
            self.max_occurrences,
            self.created_by,
            format_ts(self.created_at),
        )

    @classmethod
    def from_row(cls, row: tuple) -> ScheduleDescriptor:
        """Deserialize from a ``schedules`` row tuple."""
        return cls(
            id=row[0],
            owner_scope_id=row[1],
            name=row[2],
            kind=row[3],
            frequency=row[4],
            recipients=json.loads(row[5] or "[]"),
            payload=json.loads(row[6] or "{}"),
            recurrence=RecurrenceConfig.from_dict(json.loads(row[7])) if row[7] else None,
            is_active=bool(row[8]),
            next_run_at=parse_ts(row[9]),
            last_run_at=parse_ts(row[10]),
            occurrence_count=int(row[11] or 0),
            end_date=parse_ts(row[12]),
            max_occurrences=row[13],
            created_by=row[14] or "",
            created_at=parse_ts(row[15]),
        )

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready view for the HTTP API."""
        return {
            "id": self.id,
            "owner_scope_id": self.owner_scope_id,
            "name": self.name,
            "kind": self.kind,
            "frequency": self.frequency,
            "recipients": list(self.recipients),
            "payload": self.payload,
            "recurrence": self.recurrence.to_dict() if self.recurrence else None,
            "is_active": self.is_active,
            "next_run_at": format_ts(self.next_run_at),
            "last_run_at": format_ts(self.last_run_at),
            "occurrence_count": self.occurrence_count,
            "end_date": format_ts(self.end_date),
            "max_occurrences": self.max_occurrences,
            "created_by": self.created_by,
            "created_at": format_ts(self.created_at),
        }


def make_schedule_id() -> str:
    """Generate a new schedule ID."""
    return uuid.uuid4().hex


# -- Outcomes ------------------------------------------------------------------


@dataclass(frozen=True)
class RunOutcome:
    """Immutable record of one execution attempt."""

    schedule_id: str
    ran_at: datetime
    success: bool
    error: str | None = None
    artifact_ref: str | None = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @classmethod
    def succeeded(cls, schedule_id: str, ran_at: datetime, artifact_ref: str | None) -> RunOutcome:
        return cls(schedule_id, ensure_utc(ran_at), True, artifact_ref=artifact_ref)

    @classmethod
    def failed(cls, schedule_id: str, ran_at: datetime, error: str) -> RunOutcome:
        return cls(schedule_id, ensure_utc(ran_at), False, error=error)

    def to_row(self) -> tuple:
        return (
            self.id,
            self.schedule_id,
            format_ts(self.ran_at),
            int(self.success),
            self.error,
            self.artifact_ref,
        )

    @classmethod
    def from_row(cls, row: tuple) -> RunOutcome:
        return cls(
            id=row[0],
            schedule_id=row[1],
            ran_at=parse_ts(row[2]),
            success=bool(row[3]),
            error=row[4],
            artifact_ref=row[5],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "schedule_id": self.schedule_id,
            "ran_at": format_ts(self.ran_at),
            "success": self.success,
            "error": self.error,
            "artifact_ref": self.artifact_ref,
        }


@dataclass(frozen=True)
class ScanError:
    schedule_id: str
    message: str
    error_type: str = "generation"


@dataclass
class BatchResult:
    """Summary of one scan cycle."""

    started_at: datetime
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    exhausted: int = 0
    skipped_cycle: bool = False
    errors: list[ScanError] = field(default_factory=list)

    def record_success(self) -> None:
        self.processed += 1
        self.succeeded += 1

    def record_failure(
        self, schedule_id: str, message: str, error_type: str = "generation"
    ) -> None:
        self.processed += 1
        self.failed += 1
        self.errors.append(ScanError(schedule_id, message, error_type))

    def record_skip(self) -> None:
        self.processed += 1
        self.skipped += 1

    def record_exhausted(self) -> None:
        self.processed += 1
        self.exhausted += 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "started_at": format_ts(self.started_at),
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "exhausted": self.exhausted,
            "skipped_cycle": self.skipped_cycle,
            "errors": [
                {"schedule_id": e.schedule_id, "message": e.message, "error_type": e.error_type}
                for e in self.errors
            ],
        }
