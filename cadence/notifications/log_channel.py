"""Channel that writes notifications to the log (local development)."""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


class LogChannel:
    @property
    def name(self) -> str:
        return "log"

    async def send(self, recipient: str, message: str, *, subject: str | None = None) -> bool:
        logger.info("Notification for %s: %s | %s", recipient, subject or "-", message)
        return True
