"""Report sections and their CSV/JSON rendering."""

from __future__ import annotations

import csv
import io
import json
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

from cadence.scheduler.models import format_ts

if TYPE_CHECKING:
    from cadence.reports.sources import ReportDataSource

REPORT_TYPES = ("tasks", "budget", "team", "activity", "comprehensive")
REPORT_FORMATS = ("csv", "json")

ACTIVITY_ROW_LIMIT = 1000

TASK_COLUMNS = [
    "id", "title", "status", "priority", "due_date",
    "created_at", "completed_at", "assignee_id", "workspace_id",
]
BUDGET_COLUMNS = [
    "type", "id", "description", "amount", "status", "category", "date", "workspace_id",
]
TEAM_COLUMNS = ["id", "user_id", "name", "email", "role", "status", "joined_at", "workspace_id"]
ACTIVITY_COLUMNS = ["id", "activity_type", "description", "created_at", "user_id", "workspace_id"]


@dataclass
class ReportSection:
    """One table of a report."""

    name: str
    columns: list[str]
    rows: list[dict[str, Any]]


# -- Section builders ----------------------------------------------------------


async def build_tasks(
    source: ReportDataSource, workspace_ids: list[str], start: datetime, end: datetime
) -> ReportSection:
    rows = await source.fetch_tasks(workspace_ids, start, end)
    return ReportSection("tasks", TASK_COLUMNS, rows)


async def build_budget(
    source: ReportDataSource, workspace_ids: list[str], start: datetime, end: datetime
) -> ReportSection:
    """Budget requests and expenses merged into one table."""
    requests = await source.fetch_budget_requests(workspace_ids, start, end)
    expenses = await source.fetch_expenses(workspace_ids, start, end)
    rows = [
        {
            "type": "budget_request",
            "id": r.get("id"),
            "description": r.get("title"),
            "amount": r.get("amount"),
            "status": r.get("status"),
            "category": r.get("category"),
            "date": r.get("created_at"),
            "workspace_id": r.get("workspace_id"),
        }
        for r in requests
    ]
    rows.extend(
        {
            "type": "expense",
            "id": e.get("id"),
            "description": e.get("description"),
            "amount": e.get("amount"),
            "status": "spent",
            "category": e.get("category"),
            "date": e.get("created_at"),
            "workspace_id": e.get("workspace_id"),
        }
        for e in expenses
    )
    return ReportSection("budget", BUDGET_COLUMNS, rows)


async def build_team(source: ReportDataSource, workspace_ids: list[str]) -> ReportSection:
    """Current team roster. Not limited to the report window."""
    members = await source.fetch_team_members(workspace_ids)
    rows = [
        {
            "id": m.get("id"),
            "user_id": m.get("user_id"),
            "name": m.get("full_name") or "Unknown",
            "email": m.get("email") or "",
            "role": m.get("role"),
            "status": m.get("status"),
            "joined_at": m.get("joined_at"),
            "workspace_id": m.get("workspace_id"),
        }
        for m in members
    ]
    return ReportSection("team", TEAM_COLUMNS, rows)


async def build_activity(
    source: ReportDataSource, workspace_ids: list[str], start: datetime, end: datetime
) -> ReportSection:
    rows = await source.fetch_activities(workspace_ids, start, end, limit=ACTIVITY_ROW_LIMIT)
    return ReportSection("activity", ACTIVITY_COLUMNS, rows)


async def build_sections(
    source: ReportDataSource,
    report_type: str,
    workspace_ids: list[str],
    start: datetime,
    end: datetime,
) -> list[ReportSection]:
    """Fetch the sections making up *report_type*. Raises ValueError if unknown."""
    if report_type == "tasks":
        return [await build_tasks(source, workspace_ids, start, end)]
    if report_type == "budget":
        return [await build_budget(source, workspace_ids, start, end)]
    if report_type == "team":
        return [await build_team(source, workspace_ids)]
    if report_type == "activity":
        return [await build_activity(source, workspace_ids, start, end)]
    if report_type == "comprehensive":
        return [
            await build_tasks(source, workspace_ids, start, end),
            await build_budget(source, workspace_ids, start, end),
            await build_team(source, workspace_ids),
            await build_activity(source, workspace_ids, start, end),
        ]
    msg = f"Invalid report type: {report_type}"
    raise ValueError(msg)


# -- Rendering -----------------------------------------------------------------


def to_csv(section: ReportSection) -> str:
    """Render one section. Values containing commas, quotes or newlines are quoted."""
    buf = io.StringIO()
    writer = csv.DictWriter(
        buf,
        fieldnames=section.columns,
        extrasaction="ignore",
        lineterminator="\n",
    )
    writer.writeheader()
    for row in section.rows:
        writer.writerow({col: "" if row.get(col) is None else row[col] for col in section.columns})
    return buf.getvalue().rstrip("\n")


def render(
    sections: list[ReportSection],
    fmt: str,
    *,
    start: datetime,
    generated_at: datetime,
) -> str:
    """Render sections as CSV or JSON text. Raises ValueError for other formats."""
    if fmt == "csv":
        if len(sections) == 1:
            return to_csv(sections[0]) + "\n"
        parts: list[str] = []
        for section in sections:
            if parts:
                parts.append("")
            parts.append(f"# {section.name.upper()} REPORT")
            parts.append(to_csv(section))
        return "\n".join(parts) + "\n"

    if fmt == "json":
        meta = {
            "window_start": format_ts(start),
            "generated_at": format_ts(generated_at),
        }
        if len(sections) == 1:
            section = sections[0]
            body: dict[str, Any] = {
                "data": section.rows,
                "columns": section.columns,
                "record_count": len(section.rows),
            }
        else:
            body = {section.name: section.rows for section in sections}
        return json.dumps({**body, **meta}, default=str, indent=2)

    msg = f"Invalid report format: {fmt}"
    raise ValueError(msg)
