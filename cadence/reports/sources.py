"""Where report rows come from."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from cadence.integrations.rest import RestClient, in_filter
from cadence.scheduler.models import format_ts

Row = dict[str, Any]


@runtime_checkable
class ReportDataSource(Protocol):
    """Read access to workspace data for report generation.

    All window-bounded queries include rows created in ``[start, end]``.
    """

    async def fetch_child_workspace_ids(self, workspace_id: str) -> list[str]: ...

    async def fetch_tasks(
        self, workspace_ids: list[str], start: datetime, end: datetime
    ) -> list[Row]: ...

    async def fetch_budget_requests(
        self, workspace_ids: list[str], start: datetime, end: datetime
    ) -> list[Row]: ...

    async def fetch_expenses(
        self, workspace_ids: list[str], start: datetime, end: datetime
    ) -> list[Row]: ...

    async def fetch_team_members(self, workspace_ids: list[str]) -> list[Row]: ...

    async def fetch_activities(
        self, workspace_ids: list[str], start: datetime, end: datetime, *, limit: int
    ) -> list[Row]: ...


def _window(start: datetime, end: datetime) -> list[tuple[str, str]]:
    return [("created_at", f"gte.{format_ts(start)}"), ("created_at", f"lte.{format_ts(end)}")]


class RestReportDataSource:
    """Reads report rows from the hosted database's REST interface."""

    def __init__(self, client: RestClient) -> None:
        self._client = client

    async def fetch_child_workspace_ids(self, workspace_id: str) -> list[str]:
        rows = await self._client.select(
            "workspaces",
            columns="id",
            filters=[("parent_workspace_id", f"eq.{workspace_id}")],
        )
        return [str(r["id"]) for r in rows]

    async def fetch_tasks(
        self, workspace_ids: list[str], start: datetime, end: datetime
    ) -> list[Row]:
        return await self._client.select(
            "workspace_tasks",
            columns=(
                "id,title,description,status,priority,due_date,created_at,"
                "completed_at,assignee_id,workspace_id"
            ),
            filters=[("workspace_id", in_filter(workspace_ids)), *_window(start, end)],
            order="created_at.desc",
        )

    async def fetch_budget_requests(
        self, workspace_ids: list[str], start: datetime, end: datetime
    ) -> list[Row]:
        return await self._client.select(
            "workspace_budget_requests",
            columns="id,title,amount,status,category,created_at,approved_at,workspace_id",
            filters=[("workspace_id", in_filter(workspace_ids)), *_window(start, end)],
        )

    async def fetch_expenses(
        self, workspace_ids: list[str], start: datetime, end: datetime
    ) -> list[Row]:
        return await self._client.select(
            "workspace_expenses",
            columns="id,description,amount,category,created_at,workspace_id",
            filters=[("workspace_id", in_filter(workspace_ids)), *_window(start, end)],
        )

    async def fetch_team_members(self, workspace_ids: list[str]) -> list[Row]:
        rows = await self._client.select(
            "workspace_team_members",
            columns="id,user_id,role,status,joined_at,workspace_id,user_profiles(full_name,email)",
            filters=[("workspace_id", in_filter(workspace_ids))],
        )
        members: list[Row] = []
        for row in rows:
            profile = row.pop("user_profiles", None) or {}
            members.append(
                {**row, "full_name": profile.get("full_name"), "email": profile.get("email")}
            )
        return members

    async def fetch_activities(
        self, workspace_ids: list[str], start: datetime, end: datetime, *, limit: int
    ) -> list[Row]:
        return await self._client.select(
            "workspace_activities",
            columns="id,activity_type,description,created_at,user_id,workspace_id",
            filters=[("workspace_id", in_filter(workspace_ids)), *_window(start, end)],
            order="created_at.desc",
            limit=limit,
        )
