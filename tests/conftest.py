"""Shared test fixtures."""

from pathlib import Path

import pytest

from cadence.notifications.router import NotificationRouter
from cadence.scheduler.store import ScheduleStore


@pytest.fixture(autouse=True)
def _pinned_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep time arithmetic independent of the local environment."""
    monkeypatch.setattr("cadence.config.settings.occurrence_hour", 9)
    monkeypatch.setattr("cadence.config.settings.strict_frequency", True)


@pytest.fixture
async def store(tmp_path: Path) -> ScheduleStore:
    """Create a ScheduleStore backed by a temp database."""
    ScheduleStore._reset()
    return ScheduleStore(db_path=tmp_path / "test.db")


@pytest.fixture
def router():
    """A fresh NotificationRouter singleton."""
    NotificationRouter._reset()
    yield NotificationRouter.get()
    NotificationRouter._reset()
