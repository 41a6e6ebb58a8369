"""Tests for report building, rendering, and the ReportGenerator."""

import json
from datetime import UTC, datetime
from pathlib import Path

import pytest

from cadence.reports.builder import (
    ACTIVITY_ROW_LIMIT,
    ReportSection,
    build_sections,
    render,
    to_csv,
)
from cadence.reports.generator import ReportGenerator
from cadence.reports.sources import ReportDataSource
from cadence.scheduler.models import ScheduleDescriptor

START = datetime(2024, 3, 8, 14, 30, tzinfo=UTC)
NOW = datetime(2024, 3, 15, 14, 30, tzinfo=UTC)


# -- Helpers -------------------------------------------------------------------


class FakeDataSource:
    """Serves canned rows and records the workspace ids it was asked about."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, list[str]]] = []
        self.children = {"ws1": ["ws2", "ws3"]}
        self.activity_limit: int | None = None

    async def fetch_child_workspace_ids(self, workspace_id: str) -> list[str]:
        return self.children.get(workspace_id, [])

    async def fetch_tasks(self, workspace_ids, start, end):
        self.calls.append(("tasks", workspace_ids))
        return [
            {
                "id": "t1",
                "title": 'Fix "login", then deploy',
                "status": "TODO",
                "priority": "HIGH",
                "due_date": None,
                "created_at": "2024-03-10T10:00:00+00:00",
                "completed_at": None,
                "assignee_id": "u1",
                "workspace_id": "ws1",
                "description": "ignored column",
            }
        ]

    async def fetch_budget_requests(self, workspace_ids, start, end):
        self.calls.append(("budget_requests", workspace_ids))
        return [
            {
                "id": "b1",
                "title": "Laptops",
                "amount": 2400,
                "status": "approved",
                "category": "hardware",
                "created_at": "2024-03-09T00:00:00+00:00",
                "workspace_id": "ws1",
            }
        ]

    async def fetch_expenses(self, workspace_ids, start, end):
        self.calls.append(("expenses", workspace_ids))
        return [
            {
                "id": "e1",
                "description": "Team lunch",
                "amount": 120.5,
                "category": "meals",
                "created_at": "2024-03-11T00:00:00+00:00",
                "workspace_id": "ws1",
            }
        ]

    async def fetch_team_members(self, workspace_ids):
        self.calls.append(("team", workspace_ids))
        return [
            {
                "id": "m1",
                "user_id": "u1",
                "full_name": "Ada Lovelace",
                "email": "ada@example.com",
                "role": "admin",
                "status": "active",
                "joined_at": "2023-01-01T00:00:00+00:00",
                "workspace_id": "ws1",
            },
            {"id": "m2", "user_id": "u2", "role": "member", "workspace_id": "ws1"},
        ]

    async def fetch_activities(self, workspace_ids, start, end, *, limit):
        self.calls.append(("activity", workspace_ids))
        self.activity_limit = limit
        return [
            {
                "id": "a1",
                "activity_type": "task_created",
                "description": "Created t1",
                "created_at": "2024-03-10T10:00:00+00:00",
                "user_id": "u1",
                "workspace_id": "ws1",
            }
        ]


def _make_schedule(payload: dict, schedule_id: str = "abcdef1234567890") -> ScheduleDescriptor:
    return ScheduleDescriptor(
        id=schedule_id,
        owner_scope_id="ws1",
        name="Weekly report",
        kind="report",
        frequency="weekly",
        next_run_at=NOW,
        payload=payload,
    )


def test_fake_source_satisfies_protocol() -> None:
    assert isinstance(FakeDataSource(), ReportDataSource)


# -- Sections ------------------------------------------------------------------


async def test_budget_merges_requests_and_expenses() -> None:
    sections = await build_sections(FakeDataSource(), "budget", ["ws1"], START, NOW)
    rows = sections[0].rows
    assert [r["type"] for r in rows] == ["budget_request", "expense"]
    assert rows[0]["description"] == "Laptops"
    assert rows[1]["status"] == "spent"


async def test_team_defaults_missing_profile() -> None:
    sections = await build_sections(FakeDataSource(), "team", ["ws1"], START, NOW)
    assert sections[0].rows[0]["name"] == "Ada Lovelace"
    assert sections[0].rows[1]["name"] == "Unknown"
    assert sections[0].rows[1]["email"] == ""


async def test_activity_is_capped() -> None:
    source = FakeDataSource()
    await build_sections(source, "activity", ["ws1"], START, NOW)
    assert source.activity_limit == ACTIVITY_ROW_LIMIT


async def test_comprehensive_has_all_sections() -> None:
    sections = await build_sections(FakeDataSource(), "comprehensive", ["ws1"], START, NOW)
    assert [s.name for s in sections] == ["tasks", "budget", "team", "activity"]


async def test_unknown_report_type() -> None:
    with pytest.raises(ValueError, match="Invalid report type"):
        await build_sections(FakeDataSource(), "payroll", ["ws1"], START, NOW)


# -- Rendering -----------------------------------------------------------------


def test_csv_escapes_commas_and_quotes() -> None:
    section = ReportSection(
        "tasks",
        ["id", "title", "due_date"],
        [{"id": "t1", "title": 'Fix "login", then deploy', "due_date": None}],
    )
    assert to_csv(section) == 'id,title,due_date\nt1,"Fix ""login"", then deploy",'


def test_csv_escapes_newlines() -> None:
    section = ReportSection("notes", ["id", "text"], [{"id": 1, "text": "line one\nline two"}])
    assert to_csv(section) == 'id,text\n1,"line one\nline two"'


async def test_render_comprehensive_csv_has_headers() -> None:
    sections = await build_sections(FakeDataSource(), "comprehensive", ["ws1"], START, NOW)
    content = render(sections, "csv", start=START, generated_at=NOW)
    assert content.startswith("# TASKS REPORT\nid,title,status")
    for header in ("# BUDGET REPORT", "# TEAM REPORT", "# ACTIVITY REPORT"):
        assert f"\n\n{header}\n" in content


def test_render_single_json() -> None:
    section = ReportSection("tasks", ["id"], [{"id": "t1"}, {"id": "t2"}])
    data = json.loads(render([section], "json", start=START, generated_at=NOW))
    assert data["record_count"] == 2
    assert data["columns"] == ["id"]
    assert data["data"] == [{"id": "t1"}, {"id": "t2"}]
    assert data["window_start"] == "2024-03-08T14:30:00.000000+00:00"


def test_render_comprehensive_json_is_keyed_by_section() -> None:
    sections = [ReportSection("tasks", ["id"], [{"id": 1}]), ReportSection("team", ["id"], [])]
    data = json.loads(render(sections, "json", start=START, generated_at=NOW))
    assert data["tasks"] == [{"id": 1}]
    assert data["team"] == []


def test_render_unknown_format() -> None:
    with pytest.raises(ValueError, match="Invalid report format"):
        render([], "xlsx", start=START, generated_at=NOW)


# -- ReportGenerator -----------------------------------------------------------


async def test_generate_writes_csv(tmp_path: Path) -> None:
    generator = ReportGenerator(FakeDataSource(), artifacts_dir=tmp_path)

    ref = await generator.generate(_make_schedule({"report_type": "tasks"}), START, NOW)

    path = Path(ref)
    assert path == tmp_path / "ws1" / "tasks-report-2024-03-15-abcdef12.csv"
    content = path.read_text(encoding="utf-8")
    assert content.splitlines()[0] == (
        "id,title,status,priority,due_date,created_at,completed_at,assignee_id,workspace_id"
    )
    assert "ignored column" not in content


async def test_generate_json(tmp_path: Path) -> None:
    generator = ReportGenerator(FakeDataSource(), artifacts_dir=tmp_path)

    ref = await generator.generate(
        _make_schedule({"report_type": "team", "format": "json"}), START, NOW
    )

    assert ref.endswith(".json")
    data = json.loads(Path(ref).read_text(encoding="utf-8"))
    assert data["record_count"] == 2


async def test_generate_same_day_overwrites(tmp_path: Path) -> None:
    generator = ReportGenerator(FakeDataSource(), artifacts_dir=tmp_path)
    schedule = _make_schedule({"report_type": "tasks"})

    first = await generator.generate(schedule, START, NOW)
    second = await generator.generate(schedule, START, NOW)

    assert first == second
    assert len(list((tmp_path / "ws1").iterdir())) == 1


async def test_generate_include_children(tmp_path: Path) -> None:
    source = FakeDataSource()
    generator = ReportGenerator(source, artifacts_dir=tmp_path)

    await generator.generate(
        _make_schedule({"report_type": "tasks", "include_children": True}), START, NOW
    )

    assert source.calls == [("tasks", ["ws1", "ws2", "ws3"])]


async def test_generate_owner_only_by_default(tmp_path: Path) -> None:
    source = FakeDataSource()
    generator = ReportGenerator(source, artifacts_dir=tmp_path)

    await generator.generate(_make_schedule({"report_type": "tasks"}), START, NOW)

    assert source.calls == [("tasks", ["ws1"])]


@pytest.mark.parametrize(
    "payload",
    [{}, {"report_type": "payroll"}, {"report_type": "tasks", "format": "pdf"}],
)
async def test_generate_rejects_bad_payload(tmp_path: Path, payload: dict) -> None:
    generator = ReportGenerator(FakeDataSource(), artifacts_dir=tmp_path)
    with pytest.raises(ValueError):
        await generator.generate(_make_schedule(payload), START, NOW)
    assert not (tmp_path / "ws1").exists()


@pytest.mark.parametrize("owner", ["../escape", "..", "a/b", "", "ws\\1"])
async def test_generate_rejects_unsafe_owner(tmp_path: Path, owner: str) -> None:
    artifacts = tmp_path / "reports"
    generator = ReportGenerator(FakeDataSource(), artifacts_dir=artifacts)
    schedule = _make_schedule({"report_type": "tasks"})
    schedule.owner_scope_id = owner

    with pytest.raises(ValueError, match="report path"):
        await generator.generate(schedule, START, NOW)
    assert list(tmp_path.rglob("*.csv")) == []


async def test_generate_rejects_unsafe_schedule_id(tmp_path: Path) -> None:
    generator = ReportGenerator(FakeDataSource(), artifacts_dir=tmp_path)
    with pytest.raises(ValueError, match="report path"):
        await generator.generate(
            _make_schedule({"report_type": "tasks"}, schedule_id="../../x"), START, NOW
        )
