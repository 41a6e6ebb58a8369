"""Resend email API client using aiohttp."""

from __future__ import annotations

import logging

import aiohttp

from cadence.config import settings

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"
REQUEST_TIMEOUT_SECONDS = 20

_session: aiohttp.ClientSession | None = None


def _get_session() -> aiohttp.ClientSession:
    """Return (and lazily create) the shared aiohttp session."""
    global _session  # noqa: PLW0603
    if _session is None or _session.closed:
        _session = aiohttp.ClientSession(
            headers={"Authorization": f"Bearer {settings.resend_api_key}"},
            timeout=aiohttp.ClientTimeout(total=REQUEST_TIMEOUT_SECONDS),
        )
    return _session


async def close_session() -> None:
    global _session  # noqa: PLW0603
    if _session is not None and not _session.closed:
        await _session.close()
    _session = None


async def send_email(to: str, subject: str, body: str) -> bool:
    """Send a plain-text email via Resend. Returns True on success."""
    if not settings.resend_api_key:
        logger.error("Email not configured: missing RESEND_API_KEY")
        return False

    payload = {
        "from": settings.email_from,
        "to": [to],
        "subject": subject,
        "text": body,
    }

    session = _get_session()
    try:
        async with session.post(RESEND_API_URL, json=payload) as resp:
            if resp.status in (200, 201):
                logger.info("Email sent to %s (%s)", to, subject)
                return True
            text = await resp.text()
            logger.error("Email send failed: status=%d body=%s", resp.status, text[:200])
            return False
    except TimeoutError:
        logger.error("Email send to %s timed out", to)
        return False
    except aiohttp.ClientError:
        logger.exception("Email send failed (network error)")
        return False
