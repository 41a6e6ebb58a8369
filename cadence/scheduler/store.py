"""ScheduleStore — aiosqlite persistence for schedules and run history."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import aiosqlite

from cadence.config import settings
from cadence.scheduler.errors import PersistenceError
from cadence.scheduler.models import RunOutcome, ScheduleDescriptor, format_ts

if TYPE_CHECKING:
    from datetime import datetime
    from pathlib import Path

logger = logging.getLogger(__name__)

_CREATE_SCHEDULES = """
CREATE TABLE IF NOT EXISTS schedules (
    id TEXT PRIMARY KEY,
    owner_scope_id TEXT NOT NULL,
    name TEXT NOT NULL,
    kind TEXT NOT NULL,
    frequency TEXT NOT NULL,
    recipients TEXT NOT NULL DEFAULT '[]',
    payload TEXT NOT NULL DEFAULT '{}',
    recurrence TEXT,
    is_active INTEGER NOT NULL DEFAULT 1,
    next_run_at TEXT NOT NULL,
    last_run_at TEXT,
    occurrence_count INTEGER NOT NULL DEFAULT 0,
    end_date TEXT,
    max_occurrences INTEGER,
    created_by TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL
)
"""

_CREATE_DUE_INDEX = """
CREATE INDEX IF NOT EXISTS idx_schedules_due ON schedules (is_active, next_run_at)
"""

_CREATE_OUTCOMES = """
CREATE TABLE IF NOT EXISTS run_outcomes (
    id TEXT PRIMARY KEY,
    schedule_id TEXT NOT NULL,
    ran_at TEXT NOT NULL,
    success INTEGER NOT NULL,
    error TEXT,
    artifact_ref TEXT
)
"""

_SCHEDULE_COLUMNS = (
    "id, owner_scope_id, name, kind, frequency, recipients, payload, recurrence, "
    "is_active, next_run_at, last_run_at, occurrence_count, end_date, "
    "max_occurrences, created_by, created_at"
)


class ScheduleStore:
    """Persists schedules and their run outcomes in SQLite.

    Singleton accessed via ``ScheduleStore.get()``.  Pass an explicit *db_path*
    for test isolation (e.g. ``tmp_path / "test.db"``).

    Every write raises ``PersistenceError`` when the database call fails, so
    the scanner can tell a storage failure apart from a generation failure.
    """

    _instance: ScheduleStore | None = None

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path or settings.database_path
        self._initialised = False

    @classmethod
    def get(cls) -> ScheduleStore:
        """Return the shared ScheduleStore instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Reset the singleton (for testing)."""
        cls._instance = None

    # -- Internal helpers ------------------------------------------------------

    async def _connect(self) -> aiosqlite.Connection:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        db = await aiosqlite.connect(str(self._db_path))
        if not self._initialised:
            await db.execute(_CREATE_SCHEDULES)
            await db.execute(_CREATE_DUE_INDEX)
            await db.execute(_CREATE_OUTCOMES)
            await db.commit()
            self._initialised = True
        return db

    # -- Schedules -------------------------------------------------------------

    async def add_schedule(self, schedule: ScheduleDescriptor) -> ScheduleDescriptor:
        """Validate and insert a new schedule. Returns the same object.

        Raises ConfigurationError for an unknown kind or frequency.
        """
        if settings.strict_frequency:
            schedule.validate()
        db = await self._connect()
        try:
            await db.execute(
                f"INSERT INTO schedules ({_SCHEDULE_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                schedule.to_row(),
            )
            await db.commit()
            logger.info("Added schedule: %s (%s)", schedule.name, schedule.id)
            return schedule
        finally:
            await db.close()

    async def get_schedule(self, schedule_id: str) -> ScheduleDescriptor | None:
        """Fetch a schedule by ID, or None if not found."""
        db = await self._connect()
        try:
            cursor = await db.execute(
                f"SELECT {_SCHEDULE_COLUMNS} FROM schedules WHERE id = ?", (schedule_id,)
            )
            row = await cursor.fetchone()
            return ScheduleDescriptor.from_row(row) if row else None
        finally:
            await db.close()

    async def list_active_schedules(
        self, owner_scope_id: str | None = None
    ) -> list[ScheduleDescriptor]:
        """Return active schedules, optionally for one workspace."""
        query = f"SELECT {_SCHEDULE_COLUMNS} FROM schedules WHERE is_active = 1"
        params: tuple = ()
        if owner_scope_id is not None:
            query += " AND owner_scope_id = ?"
            params = (owner_scope_id,)
        db = await self._connect()
        try:
            cursor = await db.execute(query + " ORDER BY next_run_at", params)
            rows = await cursor.fetchall()
            return [ScheduleDescriptor.from_row(row) for row in rows]
        finally:
            await db.close()

    async def list_due_schedules(self, now: datetime) -> list[ScheduleDescriptor]:
        """Return active schedules with ``next_run_at <= now``, oldest first."""
        db = await self._connect()
        try:
            cursor = await db.execute(
                f"SELECT {_SCHEDULE_COLUMNS} FROM schedules "
                "WHERE is_active = 1 AND next_run_at <= ? ORDER BY next_run_at",
                (format_ts(now),),
            )
            rows = await cursor.fetchall()
            return [ScheduleDescriptor.from_row(row) for row in rows]
        finally:
            await db.close()

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
        """Advance a schedule after a successful run.

        With *expected_next_run_at*, the update only applies if the stored
        ``next_run_at`` still matches, so an overlapping scan that already
        advanced the row is not advanced twice. Returns True if a row changed.
        """
        query = (
            "UPDATE schedules SET next_run_at = ?, last_run_at = ?, "
            "occurrence_count = ?, is_active = ? WHERE id = ?"
        )
        params: tuple = (
            format_ts(next_run_at),
            format_ts(last_run_at),
            occurrence_count,
            int(is_active),
            schedule_id,
        )
        if expected_next_run_at is not None:
            query += " AND next_run_at = ?"
            params += (format_ts(expected_next_run_at),)

        try:
            db = await self._connect()
        except aiosqlite.Error as e:
            raise PersistenceError(f"Could not open database: {e}", schedule_id) from e
        try:
            cursor = await db.execute(query, params)
            await db.commit()
            return cursor.rowcount > 0
        except aiosqlite.Error as e:
            raise PersistenceError(f"Schedule update failed: {e}", schedule_id) from e
        finally:
            await db.close()

    async def deactivate_schedule(self, schedule_id: str) -> bool:
        """Mark a schedule as inactive. Returns True if a row was updated."""
        db = await self._connect()
        try:
            cursor = await db.execute(
                "UPDATE schedules SET is_active = 0 WHERE id = ?", (schedule_id,)
            )
            await db.commit()
            updated = cursor.rowcount > 0
            if updated:
                logger.info("Deactivated schedule: %s", schedule_id)
            return updated
        finally:
            await db.close()

    # -- Run history -----------------------------------------------------------

    async def append_run_outcome(self, outcome: RunOutcome) -> None:
        """Insert an outcome. History rows are never updated."""
        try:
            db = await self._connect()
        except aiosqlite.Error as e:
            raise PersistenceError(f"Could not open database: {e}", outcome.schedule_id) from e
        try:
            await db.execute(
                """
                INSERT INTO run_outcomes (id, schedule_id, ran_at, success, error, artifact_ref)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                outcome.to_row(),
            )
            await db.commit()
        except aiosqlite.Error as e:
            raise PersistenceError(f"Recording outcome failed: {e}", outcome.schedule_id) from e
        finally:
            await db.close()

    async def list_run_outcomes(self, schedule_id: str, limit: int = 50) -> list[RunOutcome]:
        """Return the most recent outcomes for a schedule, newest first."""
        db = await self._connect()
        try:
            cursor = await db.execute(
                "SELECT id, schedule_id, ran_at, success, error, artifact_ref "
                "FROM run_outcomes WHERE schedule_id = ? ORDER BY ran_at DESC LIMIT ?",
                (schedule_id, limit),
            )
            rows = await cursor.fetchall()
            return [RunOutcome.from_row(row) for row in rows]
        finally:
            await db.close()
