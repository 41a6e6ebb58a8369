"""TaskMaterializer — creates the task instance for a recurring task occurrence."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from cadence.integrations.rest import RestClient
from cadence.scheduler.models import format_ts

if TYPE_CHECKING:
    from datetime import datetime

    from cadence.scheduler.models import ScheduleDescriptor

logger = logging.getLogger(__name__)

TASK_PRIORITIES = ("LOW", "MEDIUM", "HIGH", "URGENT")
DEFAULT_PRIORITY = "MEDIUM"


@runtime_checkable
class TaskSink(Protocol):
    """Destination for materialized tasks."""

    async def create_task(self, task: dict[str, Any]) -> str:
        """Store *task* and return its id."""
        ...


class RestTaskSink:
    """Inserts tasks into ``workspace_tasks`` through the REST interface."""

    def __init__(self, client: RestClient) -> None:
        self._client = client

    async def create_task(self, task: dict[str, Any]) -> str:
        row = await self._client.insert("workspace_tasks", task)
        return str(row["id"])


def build_task(schedule: ScheduleDescriptor, now: datetime) -> dict[str, Any]:
    """Build the task record for the occurrence running at *now*.

    Raises ValueError when the template has no title or an unknown priority.
    """
    template = schedule.payload
    title = str(template.get("title") or schedule.name).strip()
    if not title:
        raise ValueError("Recurring task template has no title")
    priority = str(template.get("priority", DEFAULT_PRIORITY)).upper()
    if priority not in TASK_PRIORITIES:
        msg = f"Unknown task priority: {priority}"
        raise ValueError(msg)

    return {
        **dict(template.get("template_data") or {}),
        "workspace_id": schedule.owner_scope_id,
        "title": title,
        "description": template.get("description") or None,
        "priority": priority,
        "status": "TODO",
        "assignee_id": template.get("assignee_id"),
        "due_date": format_ts(now),
        "recurring_task_id": schedule.id,
        "occurrence_number": schedule.occurrence_count + 1,
        "created_by": schedule.created_by or None,
    }


class TaskMaterializer:
    """Generator for ``recurring_task`` schedules."""

    def __init__(self, sink: TaskSink) -> None:
        self._sink = sink

    async def generate(
        self,
        schedule: ScheduleDescriptor,
        window_start: datetime,
        now: datetime,
    ) -> str:
        task = build_task(schedule, now)
        task_id = await self._sink.create_task(task)
        logger.info(
            "Created task %s for '%s' (occurrence %d)",
            task_id,
            schedule.name,
            task["occurrence_number"],
        )
        return task_id
