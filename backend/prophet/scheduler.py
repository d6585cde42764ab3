"""Job scheduler using APScheduler."""

import asyncio
import logging
from typing import NoReturn

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.interval import IntervalTrigger

from prophet.config import Settings, get_settings
from prophet.pipeline import run_sweep
from prophet.storage.database import dispose_engine

logger = logging.getLogger(__name__)


async def _sweep_once(settings: Settings) -> None:
    try:
        report = await run_sweep(settings)
    finally:
        # each job runs in a fresh event loop; pooled connections must not outlive it
        await dispose_engine()
    logger.info(
        "Arbitration sweep: %d resolved, %d unresolvable, %d failed",
        report.count("resolved"),
        report.count("unresolvable"),
        report.count("failed"),
    )


def arbitration_sweep_job(settings: Settings | None = None) -> None:
    """Scheduler job wrapper for the AI arbitration sweep."""
    settings = settings or get_settings()
    try:
        asyncio.run(_sweep_once(settings))
    except Exception as exc:
        logger.error("Arbitration sweep failed: %s", exc, exc_info=True)


def start_scheduler(settings: Settings) -> NoReturn:
    """Start the APScheduler with configured jobs."""
    scheduler = BlockingScheduler()

    scheduler.add_job(
        arbitration_sweep_job,
        IntervalTrigger(minutes=settings.scheduler.arbitration_sweep_minutes),
        args=[settings],
        id="arbitration-sweep",
        name="Arbitrator: Due Market Sweep",
        max_instances=1,
        coalesce=True,
    )
    logger.info(
        f"Registered job: Arbitration Sweep (every {settings.scheduler.arbitration_sweep_minutes} min)"
    )

    try:
        logger.info("✓ Scheduler starting...")
        logger.info(f"✓ {len(scheduler.get_jobs())} jobs registered")
        logger.info("Press Ctrl+C to stop\n")

        scheduler.start()

    except (KeyboardInterrupt, SystemExit):
        logger.info("\nReceived interrupt signal")
        scheduler.shutdown()
        logger.info("✓ Scheduler stopped cleanly")
