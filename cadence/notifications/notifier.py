"""RouterNotifier — the scanner's Notifier, backed by NotificationRouter."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from cadence.notifications.router import NotificationRouter
from cadence.scheduler.errors import NotificationError

if TYPE_CHECKING:
    from cadence.scheduler.models import RunOutcome

logger = logging.getLogger(__name__)


def format_outcome(outcome: RunOutcome) -> tuple[str, str]:
    """Return ``(subject, body)`` describing a run outcome."""
    when = outcome.ran_at.strftime("%Y-%m-%d %H:%M UTC")
    if outcome.success:
        subject = "Scheduled run completed"
        body = f"Schedule {outcome.schedule_id} ran at {when}."
        if outcome.artifact_ref:
            body += f"\nResult: {outcome.artifact_ref}"
    else:
        subject = "Scheduled run failed"
        body = f"Schedule {outcome.schedule_id} failed at {when}.\nError: {outcome.error}"
    return subject, body


class RouterNotifier:
    """Sends one message per recipient through the router.

    Args:
        router: Router to send through (default: the shared instance).
        channel: Channel name override (None → router default).
    """

    def __init__(
        self, router: NotificationRouter | None = None, channel: str | None = None
    ) -> None:
        self._router = router or NotificationRouter.get()
        self._channel = channel

    async def notify(self, recipients: list[str], outcome: RunOutcome) -> None:
        """Notify every recipient. Raises NotificationError if any send failed."""
        subject, body = format_outcome(outcome)
        failed: list[str] = []
        for recipient in recipients:
            try:
                ok = await self._router.send(
                    recipient, body, subject=subject, channel=self._channel
                )
            except Exception:
                logger.exception("Notification to %s raised", recipient)
                ok = False
            if not ok:
                failed.append(recipient)

        if failed:
            msg = f"Could not notify {len(failed)} of {len(recipients)} recipient(s)"
            raise NotificationError(msg, schedule_id=outcome.schedule_id)
        logger.info(
            "Notified %d recipient(s) for schedule %s", len(recipients), outcome.schedule_id
        )
