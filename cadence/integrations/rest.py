"""Client for the hosted database's REST interface (PostgREST dialect) using aiohttp."""

from __future__ import annotations

import logging
from typing import Any

import aiohttp

from cadence.config import settings

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = 30


class RestError(Exception):
    """A REST call returned a non-success status."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


def in_filter(values: list[str]) -> str:
    """Build an ``in.(a,b,c)`` filter value."""
    return "in.(" + ",".join(values) + ")"


class RestClient:
    """Thin wrapper for ``select`` and ``insert`` against ``/rest/v1``.

    Args:
        base_url: Project URL (default from settings).
        api_key: Service key sent as both ``apikey`` and bearer token.
    """

    def __init__(self, base_url: str | None = None, api_key: str | None = None) -> None:
        self._base_url = (base_url or settings.data_api_url).rstrip("/")
        self._api_key = api_key or settings.data_api_key
        self._session: aiohttp.ClientSession | None = None

    def _get_session(self) -> aiohttp.ClientSession:
        """Return (and lazily create) the shared aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={
                    "apikey": self._api_key,
                    "Authorization": f"Bearer {self._api_key}",
                },
                timeout=aiohttp.ClientTimeout(total=REQUEST_TIMEOUT_SECONDS),
            )
        return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    def _url(self, table: str) -> str:
        return f"{self._base_url}/rest/v1/{table}"

    async def select(
        self,
        table: str,
        *,
        columns: str = "*",
        filters: list[tuple[str, str]] | None = None,
        order: str | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Return rows of *table* matching *filters*. Raises RestError on failure."""
        params: list[tuple[str, str]] = [("select", columns), *(filters or [])]
        if order:
            params.append(("order", order))
        if limit is not None:
            params.append(("limit", str(limit)))

        session = self._get_session()
        async with session.get(self._url(table), params=params) as resp:
            if resp.status != 200:
                text = await resp.text()
                logger.error(
                    "REST select failed: table=%s status=%d body=%s", table, resp.status, text[:200]
                )
                msg = f"select from {table} failed with status {resp.status}"
                raise RestError(msg, resp.status)
            data = await resp.json()
        logger.debug("REST select: table=%s rows=%d", table, len(data))
        return data

    async def insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        """Insert one row and return it as stored. Raises RestError on failure."""
        session = self._get_session()
        async with session.post(
            self._url(table),
            json=row,
            headers={"Prefer": "return=representation"},
        ) as resp:
            if resp.status not in (200, 201):
                text = await resp.text()
                logger.error(
                    "REST insert failed: table=%s status=%d body=%s", table, resp.status, text[:200]
                )
                msg = f"insert into {table} failed with status {resp.status}"
                raise RestError(msg, resp.status)
            data = await resp.json()
        return data[0] if isinstance(data, list) else data
