"""Cadence service entry point."""

import asyncio
import logging

from cadence.config import settings

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, settings.log_level.upper()),
)
logger = logging.getLogger(__name__)


def _build_router():
    from cadence.notifications.email_channel import EmailChannel
    from cadence.notifications.log_channel import LogChannel
    from cadence.notifications.router import NotificationRouter

    router = NotificationRouter.get()
    router.register_channel(LogChannel())
    if settings.resend_api_key:
        router.register_channel(EmailChannel())
    else:
        logger.warning("RESEND_API_KEY is empty; notifications go to the log only")

    if settings.default_notification_channel in router.list_channels():
        router.set_default_channel(settings.default_notification_channel)
    else:
        router.set_default_channel("log")
    return router


async def run() -> None:
    """Start the interval trigger and the HTTP trigger, then wait forever."""
    from cadence.integrations.rest import RestClient
    from cadence.notifications.email_client import close_session
    from cadence.notifications.notifier import RouterNotifier
    from cadence.reports.generator import ReportGenerator
    from cadence.reports.sources import RestReportDataSource
    from cadence.scheduler.dispatch import KindDispatchGenerator
    from cadence.scheduler.engine import SchedulerEngine
    from cadence.scheduler.scanner import DueWorkScanner
    from cadence.scheduler.store import ScheduleStore
    from cadence.tasks.materializer import RestTaskSink, TaskMaterializer
    from cadence.webhooks.server import TriggerServer

    if not settings.data_api_url:
        logger.warning("DATA_API_URL is empty; report and task generation will fail")

    store = ScheduleStore.get()
    client = RestClient()
    generator = KindDispatchGenerator(
        reports=ReportGenerator(RestReportDataSource(client)),
        tasks=TaskMaterializer(RestTaskSink(client)),
    )
    scanner = DueWorkScanner(store, generator, RouterNotifier(_build_router()))
    engine = SchedulerEngine(scanner)
    server = TriggerServer(scanner, store)

    await engine.start()
    await server.start()
    try:
        await asyncio.Event().wait()
    finally:
        await server.stop()
        await engine.stop()
        await client.close()
        await close_session()


def main() -> None:
    """CLI entrypoint."""
    logger.info("Starting Cadence (scan interval %d min)...", settings.scan_interval_minutes)
    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        logger.info("Cadence stopped by user")


if __name__ == "__main__":
    main()
