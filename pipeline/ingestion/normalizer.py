"""
Record normalizer and validator.

Turns one location's metadata + latest sensor readings into an
AirQualityRecord, then validates it:
- city and country present and not the "Unknown" sentinel
- derived AQI greater than zero

Malformed readings are skipped individually; they never abort the record.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from pipeline.aqi.calculator import combined_aqi
from pipeline.ingestion.openaq_connector import LocationMetadata, SensorReading
from pipeline.ingestion.record import POLLUTANT_FIELDS, UNKNOWN, AirQualityRecord

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    """Result of validating a single AirQualityRecord."""
    is_valid: bool
    reasons: List[str] = field(default_factory=list)

    def add_error(self, msg: str):
        self.reasons.append(msg)
        self.is_valid = False

    def __str__(self) -> str:
        if self.is_valid:
            return "Valid"
        return "Invalid: " + "; ".join(self.reasons)


def _usable_name(value) -> bool:
    return isinstance(value, str) and bool(value.strip()) and value.strip() != UNKNOWN


def validate_record(record) -> ValidationResult:
    """
    Validate an AirQualityRecord (or any object with the same attributes).

    Returns:
        ValidationResult with is_valid flag and list of failure reasons.
    """
    result = ValidationResult(is_valid=True)

    if not _usable_name(getattr(record, "city", None)):
        result.add_error(f"Missing or unknown city: {getattr(record, 'city', None)!r}")
    if not _usable_name(getattr(record, "country", None)):
        result.add_error(f"Missing or unknown country: {getattr(record, 'country', None)!r}")

    aqi = getattr(record, "aqi", None)
    if aqi is None or aqi <= 0:
        result.add_error(f"AQI must be positive, got {aqi}")

    return result


def _reading_value(reading: SensorReading) -> Optional[float]:
    """Numeric, finite, non-negative value of a reading, else None."""
    value = reading.value
    if value is None or isinstance(value, bool):
        return None
    try:
        value = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(value) or math.isinf(value) or value < 0:
        return None
    return value


def normalize(
    location_id: str,
    metadata: LocationMetadata,
    readings: Sequence[SensorReading],
) -> Optional[AirQualityRecord]:
    """
    Build a canonical record for one location.

    Args:
        location_id: Upstream location identifier.
        metadata: Location identity, coordinates and sensor → parameter map.
        readings: Latest value per sensor.

    Returns:
        A valid AirQualityRecord, or None if the location fails validation.
    """
    record = AirQualityRecord(
        city=(metadata.city_name or "").strip(),
        country=(metadata.country_name or "").strip(),
        location_id=str(location_id),
        latitude=metadata.latitude,
        longitude=metadata.longitude,
    )

    newest: Optional[datetime] = None
    for reading in readings:
        parameter = metadata.sensor_parameters.get(str(reading.sensor_id))
        if parameter is None:
            logger.debug(
                "Location %s: sensor %s has no known parameter — skipping",
                location_id, reading.sensor_id,
            )
            continue

        pollutant = parameter.strip().lower()
        if pollutant not in POLLUTANT_FIELDS:
            continue

        value = _reading_value(reading)
        if value is None:
            logger.debug(
                "Location %s: malformed %s reading %r — skipping",
                location_id, pollutant, reading.value,
            )
            continue

        setattr(record, pollutant, value)
        if reading.timestamp is not None and (newest is None or reading.timestamp > newest):
            newest = reading.timestamp

    record.aqi = combined_aqi(record.pm25, record.pm10)
    record.last_updated = newest or datetime.now(timezone.utc)

    validation = validate_record(record)
    if not validation.is_valid:
        logger.debug("Location %s rejected: %s", location_id, validation)
        return None
    return record
