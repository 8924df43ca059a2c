"""
Ingestion Orchestrator.

One run:
  1. Clamp the requested location count to MAX_SAFE_LOCATIONS
  2. Discover location ids (empty → nothing to do, not an error)
  3. For each id, paced at a fixed interval:
       fetch latest readings → fetch metadata → normalize
     A failing location is logged and skipped; it never aborts the run.
  4. Return the valid records

No retries and no persistence here: a skipped location simply gets another
chance on the next scheduled or manual run.
"""

import dataclasses
import logging
from typing import List, Optional

from pipeline import config
from pipeline.ingestion.normalizer import normalize
from pipeline.ingestion.pacing import FixedIntervalPacer
from pipeline.ingestion.record import AirQualityRecord

logger = logging.getLogger(__name__)


def clamp_locations(max_locations: int) -> int:
    return max(0, min(int(max_locations), config.MAX_SAFE_LOCATIONS))


def _ingest_location(client, location_id: str) -> Optional[AirQualityRecord]:
    latest = client.fetch_latest_readings(location_id)
    if latest is None:
        logger.debug("No readings for location %s", location_id)
        return None

    metadata = client.fetch_location_metadata(location_id)
    if metadata is None:
        logger.debug("No metadata for location %s", location_id)
        return None

    # Coordinates on the latest-measurement payload win over the location's own.
    if latest.latitude is not None and latest.longitude is not None:
        metadata = dataclasses.replace(
            metadata, latitude=latest.latitude, longitude=latest.longitude,
        )

    return normalize(location_id, metadata, latest.readings)


def run_ingestion(
    client,
    max_locations: int = config.OPENAQ_MAX_LOCATIONS,
    pacer: Optional[FixedIntervalPacer] = None,
) -> List[AirQualityRecord]:
    """
    Fetch and normalize the latest state of up to `max_locations` locations.

    Args:
        client: Upstream client exposing list_location_ids,
                fetch_latest_readings and fetch_location_metadata.
        max_locations: Requested number of locations (clamped).
        pacer: Delay discipline between locations; defaults to
               OPENAQ_REQUEST_DELAY_SECONDS.

    Returns:
        Valid records, in discovery order.
    """
    limit = clamp_locations(max_locations)
    if limit == 0:
        return []

    location_ids = client.list_location_ids(limit)
    if not location_ids:
        logger.warning("No locations returned by upstream — nothing to ingest")
        return []

    if pacer is None:
        pacer = FixedIntervalPacer(config.OPENAQ_REQUEST_DELAY_SECONDS)

    logger.info("── Ingestion run starting — %d locations ──", len(location_ids))

    records: List[AirQualityRecord] = []
    failed = 0
    for location_id in pacer.pace(location_ids):
        try:
            record = _ingest_location(client, location_id)
        except Exception as exc:
            failed += 1
            logger.warning("Location %s failed: %s", location_id, exc)
            continue
        if record is not None:
            records.append(record)

    logger.info(
        "── Ingestion run complete — %d valid records, %d skipped, %d failed ──",
        len(records), len(location_ids) - len(records) - failed, failed,
    )
    return records
