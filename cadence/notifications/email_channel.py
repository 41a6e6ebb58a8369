"""Email implementation of the NotificationChannel protocol."""

from __future__ import annotations

from cadence.notifications.email_client import send_email

DEFAULT_SUBJECT = "Scheduled run update"


class EmailChannel:
    """Sends notifications by email (Resend). Recipients are email addresses."""

    @property
    def name(self) -> str:
        return "email"

    async def send(self, recipient: str, message: str, *, subject: str | None = None) -> bool:
        return await send_email(recipient, subject or DEFAULT_SUBJECT, message)
