"""Tests for the REST client and the REST-backed report source."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from cadence.integrations.rest import RestClient, RestError, in_filter
from cadence.reports.sources import RestReportDataSource


def _mock_response(status: int, json_data=None, text: str = "") -> AsyncMock:
    mock_resp = AsyncMock()
    mock_resp.status = status
    mock_resp.json = AsyncMock(return_value=json_data)
    mock_resp.text = AsyncMock(return_value=text)
    mock_resp.__aenter__ = AsyncMock(return_value=mock_resp)
    mock_resp.__aexit__ = AsyncMock(return_value=False)
    return mock_resp


def _client_with(method: str, response: AsyncMock) -> tuple[RestClient, MagicMock]:
    client = RestClient(base_url="https://db.example.com/", api_key="service-key")
    mock_session = MagicMock()
    mock_session.closed = False
    setattr(mock_session, method, MagicMock(return_value=response))
    client._session = mock_session
    return client, mock_session


def test_in_filter() -> None:
    assert in_filter(["a", "b"]) == "in.(a,b)"


# -- select ------------------------------------------------------------------


async def test_select_builds_query() -> None:
    client, session = _client_with("get", _mock_response(200, [{"id": "t1"}]))

    rows = await client.select(
        "workspace_tasks",
        columns="id,title",
        filters=[("workspace_id", "eq.ws1")],
        order="created_at.desc",
        limit=10,
    )

    assert rows == [{"id": "t1"}]
    call = session.get.call_args
    assert call.args[0] == "https://db.example.com/rest/v1/workspace_tasks"
    assert call.kwargs["params"] == [
        ("select", "id,title"),
        ("workspace_id", "eq.ws1"),
        ("order", "created_at.desc"),
        ("limit", "10"),
    ]


async def test_select_error_raises() -> None:
    client, _ = _client_with("get", _mock_response(401, text="JWT expired"))

    with pytest.raises(RestError) as exc_info:
        await client.select("workspace_tasks")
    assert exc_info.value.status == 401


# -- insert ------------------------------------------------------------------


async def test_insert_returns_first_row() -> None:
    client, session = _client_with("post", _mock_response(201, [{"id": 7, "title": "x"}]))

    row = await client.insert("workspace_tasks", {"title": "x"})

    assert row == {"id": 7, "title": "x"}
    call = session.post.call_args
    assert call.kwargs["json"] == {"title": "x"}
    assert call.kwargs["headers"] == {"Prefer": "return=representation"}


async def test_insert_error_raises() -> None:
    client, _ = _client_with("post", _mock_response(409, text="duplicate key"))

    with pytest.raises(RestError, match="insert into workspace_tasks"):
        await client.insert("workspace_tasks", {"title": "x"})


async def test_close_resets_session() -> None:
    client = RestClient(base_url="https://db.example.com", api_key="k")
    mock_session = MagicMock()
    mock_session.closed = False
    mock_session.close = AsyncMock()
    client._session = mock_session

    await client.close()

    mock_session.close.assert_awaited_once()
    assert client._session is None


# -- RestReportDataSource ------------------------------------------------------


async def test_source_task_query_filters_window() -> None:
    client = AsyncMock()
    client.select = AsyncMock(return_value=[])
    source = RestReportDataSource(client)
    start = datetime(2024, 3, 8, tzinfo=UTC)
    end = datetime(2024, 3, 15, tzinfo=UTC)

    await source.fetch_tasks(["ws1", "ws2"], start, end)

    call = client.select.call_args
    assert call.args[0] == "workspace_tasks"
    assert call.kwargs["filters"] == [
        ("workspace_id", "in.(ws1,ws2)"),
        ("created_at", "gte.2024-03-08T00:00:00.000000+00:00"),
        ("created_at", "lte.2024-03-15T00:00:00.000000+00:00"),
    ]


async def test_source_flattens_team_profiles() -> None:
    client = AsyncMock()
    client.select = AsyncMock(
        return_value=[
            {"id": "m1", "user_profiles": {"full_name": "Ada", "email": "ada@example.com"}},
            {"id": "m2", "user_profiles": None},
        ]
    )
    source = RestReportDataSource(client)

    members = await source.fetch_team_members(["ws1"])

    assert members[0] == {"id": "m1", "full_name": "Ada", "email": "ada@example.com"}
    assert members[1] == {"id": "m2", "full_name": None, "email": None}


async def test_source_child_workspaces() -> None:
    client = AsyncMock()
    client.select = AsyncMock(return_value=[{"id": "ws2"}, {"id": 3}])
    source = RestReportDataSource(client)

    assert await source.fetch_child_workspace_ids("ws1") == ["ws2", "3"]
    assert client.select.call_args.kwargs["filters"] == [("parent_workspace_id", "eq.ws1")]
