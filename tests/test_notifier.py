"""Tests for RouterNotifier, outcome formatting, and the built-in channels."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, patch

import pytest

from cadence.notifications.email_channel import DEFAULT_SUBJECT, EmailChannel
from cadence.notifications.log_channel import LogChannel
from cadence.notifications.notifier import RouterNotifier, format_outcome
from cadence.notifications.router import NotificationRouter
from cadence.scheduler.errors import NotificationError
from cadence.scheduler.models import RunOutcome

RAN_AT = datetime(2024, 3, 15, 14, 30, tzinfo=UTC)


# -- format_outcome ----------------------------------------------------------


def test_format_success() -> None:
    subject, body = format_outcome(RunOutcome.succeeded("s1", RAN_AT, "reports/ws1/a.csv"))
    assert subject == "Scheduled run completed"
    assert "2024-03-15 14:30 UTC" in body
    assert "reports/ws1/a.csv" in body


def test_format_failure() -> None:
    subject, body = format_outcome(RunOutcome.failed("s1", RAN_AT, "rate limited"))
    assert subject == "Scheduled run failed"
    assert "Error: rate limited" in body


# -- RouterNotifier ----------------------------------------------------------


async def test_notify_sends_to_each_recipient() -> None:
    router = AsyncMock()
    router.send = AsyncMock(return_value=True)
    notifier = RouterNotifier(router, channel="email")

    outcome = RunOutcome.succeeded("s1", RAN_AT, None)
    await notifier.notify(["a@example.com", "b@example.com"], outcome)

    assert router.send.await_count == 2
    first = router.send.call_args_list[0]
    assert first.args[0] == "a@example.com"
    assert first.kwargs["subject"] == "Scheduled run completed"
    assert first.kwargs["channel"] == "email"


async def test_notify_raises_when_a_send_fails() -> None:
    router = AsyncMock()
    router.send = AsyncMock(side_effect=[True, False])
    notifier = RouterNotifier(router)

    with pytest.raises(NotificationError, match="1 of 2") as exc_info:
        await notifier.notify(["a", "b"], RunOutcome.succeeded("s1", RAN_AT, None))
    assert exc_info.value.schedule_id == "s1"


async def test_notify_treats_channel_errors_as_failures() -> None:
    router = AsyncMock()
    router.send = AsyncMock(side_effect=RuntimeError("socket closed"))
    notifier = RouterNotifier(router)

    with pytest.raises(NotificationError):
        await notifier.notify(["a"], RunOutcome.succeeded("s1", RAN_AT, None))


async def test_notify_defaults_to_shared_router(router: NotificationRouter) -> None:
    router.register_channel(LogChannel())
    notifier = RouterNotifier()
    await notifier.notify(["a"], RunOutcome.succeeded("s1", RAN_AT, None))


# -- Channels ----------------------------------------------------------------


async def test_log_channel(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level("INFO", logger="cadence.notifications.log_channel")
    channel = LogChannel()
    assert channel.name == "log"
    assert await channel.send("a@example.com", "hello", subject="Hi") is True
    assert "a@example.com" in caplog.text


async def test_email_channel_uses_default_subject() -> None:
    with patch(
        "cadence.notifications.email_channel.send_email", AsyncMock(return_value=True)
    ) as mock_send:
        channel = EmailChannel()
        assert channel.name == "email"
        assert await channel.send("a@example.com", "body") is True
    mock_send.assert_awaited_once_with("a@example.com", DEFAULT_SUBJECT, "body")
