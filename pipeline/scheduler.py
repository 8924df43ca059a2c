"""
APScheduler wiring for periodic refreshes.

The job runs on a cron (every 6 hours by default: 00:00, 06:00, 12:00, 18:00
UTC). A failed run is logged and left for the next tick; it is never retried
immediately.
"""

import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from pipeline import config
from pipeline.errors import DataRefreshError, RefreshInProgressError

logger = logging.getLogger(__name__)

JOB_ID = "openaq_refresh"


def scheduled_refresh(service) -> None:
    """Scheduler job body. Swallows run failures so the scheduler keeps ticking."""
    logger.info("=== Scheduled data refresh started ===")
    try:
        result = service.refresh_data()
        logger.info("=== Scheduled data refresh completed. %d rows affected ===", result.records_ingested)
    except RefreshInProgressError:
        logger.warning("=== Scheduled data refresh skipped: a run is already in progress ===")
    except DataRefreshError as e:
        logger.error("=== Scheduled data refresh FAILED: %s ===", e)


def start_scheduler(service, cron_hours: str = config.REFRESH_CRON_HOURS) -> BackgroundScheduler:
    """Start a background scheduler that calls service.refresh_data() on a cron."""
    scheduler = BackgroundScheduler(timezone="UTC")
    scheduler.add_job(
        func=scheduled_refresh,
        args=[service],
        trigger=CronTrigger(hour=cron_hours, minute=0, timezone="UTC"),
        id=JOB_ID,
        name="OpenAQ Refresh",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    scheduler.start()
    logger.info("Scheduler started — refreshing at hours '%s' UTC", cron_hours)
    return scheduler
