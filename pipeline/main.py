"""
AirTrack — headless pipeline worker.

Loads initial data if the store is empty, then refreshes on the configured
cron until SIGINT/SIGTERM. Use this when the API runs without its own
scheduler; the API process otherwise starts the same job in its lifespan.

    python -m pipeline.main            # run the scheduler
    python -m pipeline.main --once     # one refresh, then exit
"""

import logging
import signal
import sys
import time

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [PIPELINE] %(levelname)s %(name)s — %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
    stream=sys.stdout,
)
logger = logging.getLogger("pipeline.main")

# ── Graceful shutdown flag ─────────────────────────────────────────────────────
_running = True


def _shutdown(sig, frame):
    global _running
    logger.info("Shutdown signal (%s) — stopping scheduler.", sig)
    _running = False


def main(argv=None) -> int:
    from api.services.air_quality_service import get_air_quality_service
    from pipeline.errors import DataRefreshError, RefreshInProgressError
    from pipeline.scheduler import start_scheduler

    argv = sys.argv[1:] if argv is None else argv
    service = get_air_quality_service()

    if "--once" in argv:
        try:
            result = service.refresh_data()
        except (DataRefreshError, RefreshInProgressError) as e:
            logger.error("Refresh failed: %s", e)
            return 1
        logger.info("Refresh complete: %d records ingested", result.records_ingested)
        return 0

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    service.initialize_if_empty()
    scheduler = start_scheduler(service)

    logger.info("AirTrack pipeline running. Press Ctrl+C or send SIGTERM to stop.")
    try:
        while _running:
            time.sleep(1)
    finally:
        logger.info("Stopping scheduler…")
        scheduler.shutdown(wait=False)
        logger.info("Pipeline stopped cleanly.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
