"""Lightweight async HTTP server for externally triggered scans.

Lets an outside scheduler (cron, a queue consumer, a platform cron hook)
run a scan cycle, alongside the in-process interval trigger. The same app
creates and lists schedules and shows their run history. Uses aiohttp's
AppRunner/TCPSite for non-blocking start/stop.
"""

from __future__ import annotations

import hmac
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from aiohttp import web

from cadence.config import settings
from cadence.scheduler.clock import advance, preview_occurrences
from cadence.scheduler.errors import PersistenceError
from cadence.scheduler.models import (
    RECURRENCE_PRESETS,
    RecurrenceConfig,
    ScheduleDescriptor,
    format_ts,
    make_schedule_id,
    parse_ts,
)

if TYPE_CHECKING:
    from cadence.scheduler.scanner import DueWorkScanner
    from cadence.scheduler.store import ScheduleStore

logger = logging.getLogger(__name__)

SCANNER_KEY: web.AppKey[DueWorkScanner] = web.AppKey("scanner")
STORE_KEY: web.AppKey[ScheduleStore] = web.AppKey("store")

MAX_PREVIEW_COUNT = 50
MAX_RUN_HISTORY = 200


def _authorized(request: web.Request) -> bool:
    secret = request.headers.get("X-Trigger-Secret", "")
    return bool(settings.trigger_secret) and hmac.compare_digest(secret, settings.trigger_secret)


async def _health(request: web.Request) -> web.Response:
    """GET /health — basic liveness check."""
    return web.json_response({"status": "ok"})


async def _handle_scan(request: web.Request) -> web.Response:
    """POST /scan — run one scan cycle and return its summary."""
    if not _authorized(request):
        logger.warning("Scan trigger rejected: invalid secret")
        return web.json_response({"error": "unauthorized"}, status=401)

    scanner = request.app[SCANNER_KEY]
    try:
        result = await scanner.run_scan_cycle()
    except PersistenceError as e:
        logger.error("Triggered scan failed: %s", e)
        return web.json_response({"error": str(e)}, status=503)

    status = 409 if result.skipped_cycle else 200
    return web.json_response(result.to_dict(), status=status)


async def _handle_preview(request: web.Request) -> web.Response:
    """GET /schedules/{schedule_id}/preview?count=N — upcoming occurrences."""
    if not _authorized(request):
        return web.json_response({"error": "unauthorized"}, status=401)

    try:
        count = int(request.query.get("count", "5"))
    except ValueError:
        return web.json_response({"error": "count must be an integer"}, status=400)
    if not 1 <= count <= MAX_PREVIEW_COUNT:
        return web.json_response(
            {"error": f"count must be between 1 and {MAX_PREVIEW_COUNT}"}, status=400
        )

    schedule_id = request.match_info["schedule_id"]
    schedule = await request.app[STORE_KEY].get_schedule(schedule_id)
    if schedule is None:
        return web.json_response({"error": "unknown schedule"}, status=404)

    occurrences = preview_occurrences(
        schedule.next_run_at,
        schedule.recurrence or schedule.frequency,
        count,
        end_date=schedule.end_date,
    )
    return web.json_response(
        {
            "schedule_id": schedule.id,
            "is_active": schedule.is_active,
            "occurrences": [format_ts(o) for o in occurrences],
        }
    )


# -- Schedule management -------------------------------------------------------


def _schedule_from_body(body: dict[str, Any], now: datetime) -> ScheduleDescriptor:
    """Build a new schedule from a POST body. Raises ValueError on bad input.

    Without an explicit ``next_run_at`` the first run is one period from *now*.
    Kind and frequency are checked when the store adds the schedule.
    """
    missing = [f for f in ("owner_scope_id", "name", "kind", "frequency") if not body.get(f)]
    if missing:
        msg = f"missing field(s): {', '.join(missing)}"
        raise ValueError(msg)

    recipients = body.get("recipients") or []
    if not isinstance(recipients, list) or not all(isinstance(r, str) for r in recipients):
        raise ValueError("recipients must be a list of strings")
    payload = body.get("payload") or {}
    if not isinstance(payload, dict):
        raise ValueError("payload must be an object")

    recurrence = None
    if body.get("preset"):
        if body["preset"] not in RECURRENCE_PRESETS:
            msg = f"unknown preset: {body['preset']}"
            raise ValueError(msg)
        recurrence = RECURRENCE_PRESETS[body["preset"]][1]
    elif body.get("recurrence"):
        if not isinstance(body["recurrence"], dict):
            raise ValueError("recurrence must be an object")
        recurrence = RecurrenceConfig.from_dict(body["recurrence"])

    max_occurrences = body.get("max_occurrences")
    schedule = ScheduleDescriptor(
        id=make_schedule_id(),
        owner_scope_id=str(body["owner_scope_id"]),
        name=str(body["name"]),
        kind=str(body["kind"]),
        frequency=str(body["frequency"]),
        next_run_at=parse_ts(body.get("next_run_at")) or now,
        recipients=recipients,
        payload=payload,
        recurrence=recurrence,
        end_date=parse_ts(body.get("end_date")),
        max_occurrences=int(max_occurrences) if max_occurrences is not None else None,
        created_by=str(body.get("created_by") or ""),
        created_at=now,
    )
    if not body.get("next_run_at"):
        schedule.next_run_at = advance(schedule, now)
    return schedule


async def _handle_create_schedule(request: web.Request) -> web.Response:
    """POST /schedules — validate and store a new schedule."""
    if not _authorized(request):
        return web.json_response({"error": "unauthorized"}, status=401)

    try:
        body: dict[str, Any] = await request.json()
    except Exception:
        return web.json_response({"error": "invalid JSON"}, status=400)
    if not isinstance(body, dict):
        return web.json_response({"error": "body must be an object"}, status=400)

    try:
        schedule = _schedule_from_body(body, datetime.now(UTC))
        await request.app[STORE_KEY].add_schedule(schedule)
    except (ValueError, TypeError) as e:
        logger.info("Schedule rejected: %s", e)
        return web.json_response({"error": str(e)}, status=400)

    return web.json_response(schedule.to_dict(), status=201)


async def _handle_list_schedules(request: web.Request) -> web.Response:
    """GET /schedules?owner_scope_id=... — active schedules, soonest first."""
    if not _authorized(request):
        return web.json_response({"error": "unauthorized"}, status=401)

    owner = request.query.get("owner_scope_id") or None
    schedules = await request.app[STORE_KEY].list_active_schedules(owner)
    return web.json_response({"schedules": [s.to_dict() for s in schedules]})


async def _handle_list_runs(request: web.Request) -> web.Response:
    """GET /schedules/{schedule_id}/runs?limit=N — recent run outcomes, newest first."""
    if not _authorized(request):
        return web.json_response({"error": "unauthorized"}, status=401)

    try:
        limit = int(request.query.get("limit", "50"))
    except ValueError:
        return web.json_response({"error": "limit must be an integer"}, status=400)
    if not 1 <= limit <= MAX_RUN_HISTORY:
        return web.json_response(
            {"error": f"limit must be between 1 and {MAX_RUN_HISTORY}"}, status=400
        )

    store = request.app[STORE_KEY]
    schedule_id = request.match_info["schedule_id"]
    if await store.get_schedule(schedule_id) is None:
        return web.json_response({"error": "unknown schedule"}, status=404)

    outcomes = await store.list_run_outcomes(schedule_id, limit)
    return web.json_response(
        {"schedule_id": schedule_id, "runs": [o.to_dict() for o in outcomes]}
    )


def create_trigger_app(scanner: DueWorkScanner, store: ScheduleStore) -> web.Application:
    """Build the aiohttp Application with routes."""
    app = web.Application()
    app[SCANNER_KEY] = scanner
    app[STORE_KEY] = store
    app.router.add_get("/health", _health)
    app.router.add_post("/scan", _handle_scan)
    app.router.add_post("/schedules", _handle_create_schedule)
    app.router.add_get("/schedules", _handle_list_schedules)
    app.router.add_get("/schedules/{schedule_id}/runs", _handle_list_runs)
    app.router.add_get("/schedules/{schedule_id}/preview", _handle_preview)
    return app


class TriggerServer:
    """Manages the aiohttp server lifecycle."""

    def __init__(
        self,
        scanner: DueWorkScanner,
        store: ScheduleStore,
        port: int | None = None,
    ) -> None:
        self.port = port or settings.trigger_port
        self._scanner = scanner
        self._store = store
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        """Start listening for scan triggers."""
        if not settings.trigger_secret:
            logger.warning("TRIGGER_SECRET empty, trigger server disabled")
            return

        app = create_trigger_app(self._scanner, self._store)
        self._runner = web.AppRunner(app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, "0.0.0.0", self.port)
        await site.start()
        logger.info("Trigger server listening on port %d", self.port)

    async def stop(self) -> None:
        """Shut down the server gracefully."""
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            logger.info("Trigger server stopped")
