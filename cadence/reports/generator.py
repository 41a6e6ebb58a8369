"""ReportGenerator — produces the file for one scheduled report occurrence."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import TYPE_CHECKING

from cadence.config import settings
from cadence.reports.builder import REPORT_FORMATS, REPORT_TYPES, build_sections, render

if TYPE_CHECKING:
    from datetime import datetime

    from cadence.reports.sources import ReportDataSource
    from cadence.scheduler.models import ScheduleDescriptor

logger = logging.getLogger(__name__)


class ReportGenerator:
    """Builds a report for the window ``[window_start, now]`` and writes it to disk.

    The schedule's ``payload`` selects ``report_type`` (tasks, budget, team,
    activity, comprehensive), ``format`` (csv or json, default csv) and
    ``include_children`` (also cover direct child workspaces).

    Args:
        source: Workspace data access.
        artifacts_dir: Root directory for report files (default from settings).
    """

    def __init__(self, source: ReportDataSource, artifacts_dir: Path | None = None) -> None:
        self._source = source
        self._artifacts_dir = artifacts_dir or settings.artifacts_dir

    async def generate(
        self,
        schedule: ScheduleDescriptor,
        window_start: datetime,
        now: datetime,
    ) -> str:
        """Write the report and return its path."""
        report_type = str(schedule.payload.get("report_type", ""))
        fmt = str(schedule.payload.get("format", "csv"))
        if report_type not in REPORT_TYPES:
            msg = f"Invalid report type: {report_type!r}"
            raise ValueError(msg)
        if fmt not in REPORT_FORMATS:
            msg = f"Invalid report format: {fmt!r}"
            raise ValueError(msg)
        for value in (schedule.owner_scope_id, schedule.id):
            if not _is_path_segment(value):
                msg = f"Not usable in a report path: {value!r}"
                raise ValueError(msg)

        workspace_ids = [schedule.owner_scope_id]
        if schedule.payload.get("include_children"):
            children = await self._source.fetch_child_workspace_ids(schedule.owner_scope_id)
            workspace_ids.extend(c for c in children if c not in workspace_ids)

        sections = await build_sections(self._source, report_type, workspace_ids, window_start, now)
        content = render(sections, fmt, start=window_start, generated_at=now)

        path = self._artifact_path(schedule, report_type, fmt, now)
        await asyncio.to_thread(_write_text, path, content)
        logger.info(
            "Report written: %s (%s, %d workspace(s), %d row(s))",
            path,
            report_type,
            len(workspace_ids),
            sum(len(s.rows) for s in sections),
        )
        return str(path)

    def _artifact_path(
        self, schedule: ScheduleDescriptor, report_type: str, fmt: str, now: datetime
    ) -> Path:
        name = f"{report_type}-report-{now:%Y-%m-%d}-{schedule.id[:8]}.{fmt}"
        return self._artifacts_dir / schedule.owner_scope_id / name


def _is_path_segment(value: str) -> bool:
    return bool(value) and value not in (".", "..") and not any(c in value for c in "/\\\0")


def _write_text(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
