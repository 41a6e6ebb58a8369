"""Route each schedule to the Generator for its kind."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from cadence.scheduler.models import KIND_RECURRING_TASK, KIND_REPORT

if TYPE_CHECKING:
    from datetime import datetime

    from cadence.scheduler.interfaces import Generator
    from cadence.scheduler.models import ScheduleDescriptor

logger = logging.getLogger(__name__)


class KindDispatchGenerator:
    """A Generator that delegates by ``schedule.kind``.

    Args:
        reports: Generator for ``"report"`` schedules.
        tasks: Generator for ``"recurring_task"`` schedules.
    """

    def __init__(self, reports: Generator, tasks: Generator) -> None:
        self._generators: dict[str, Generator] = {
            KIND_REPORT: reports,
            KIND_RECURRING_TASK: tasks,
        }

    async def generate(
        self,
        schedule: ScheduleDescriptor,
        window_start: datetime,
        now: datetime,
    ) -> str:
        generator = self._generators.get(schedule.kind)
        if generator is None:
            msg = f"Unknown schedule kind: {schedule.kind}"
            raise ValueError(msg)
        logger.debug("Dispatching schedule %s to %s", schedule.id, type(generator).__name__)
        return await generator.generate(schedule, window_start, now)
