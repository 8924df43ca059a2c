"""
OpenAQ v3 API Connector.

Discovers monitoring locations, then fetches each location's latest sensor
measurements and its descriptive metadata (locality, country, coordinates,
sensor → parameter map). Handles timeouts, HTTP errors, malformed responses
and missing fields gracefully: callers get an empty result, never an exception.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

import httpx

from pipeline import config
from pipeline.errors import UpstreamMalformed, UpstreamUnavailable
from pipeline.ingestion.record import UNKNOWN

logger = logging.getLogger(__name__)


@dataclass
class SensorReading:
    """Most recent value reported by one sensor."""
    sensor_id: str
    value: object                        # raw upstream value, validated by the normalizer
    timestamp: Optional[datetime] = None


@dataclass
class LatestReadings:
    """Result of /locations/{id}/latest."""
    readings: List[SensorReading]
    latitude: Optional[float] = None
    longitude: Optional[float] = None


@dataclass
class LocationMetadata:
    """Descriptive metadata for a location, from /locations/{id}."""
    location_id: str
    city_name: str = UNKNOWN
    country_name: str = UNKNOWN
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    sensor_parameters: Dict[str, str] = field(default_factory=dict)


def _safe_float(val) -> Optional[float]:
    """Safely convert a value to float, returning None on failure."""
    if val is None or val == "" or isinstance(val, bool):
        return None
    try:
        return float(val)
    except (TypeError, ValueError):
        return None


def _parse_timestamp(datetime_block) -> Optional[datetime]:
    """Parse an OpenAQ {"utc": ..., "local": ...} block into a UTC datetime."""
    if not isinstance(datetime_block, dict):
        return None
    try:
        iso_str = datetime_block.get("utc") or ""
        if iso_str:
            dt = datetime.fromisoformat(iso_str.replace("Z", "+00:00"))
            if dt.tzinfo is None:
                dt = dt.replace(tzinfo=timezone.utc)
            return dt.astimezone(timezone.utc)
    except (ValueError, AttributeError):
        logger.debug("Unparseable OpenAQ timestamp: %s", datetime_block)
    return None


def _parse_coordinates(block) -> tuple:
    if not isinstance(block, dict):
        return None, None
    return _safe_float(block.get("latitude")), _safe_float(block.get("longitude"))


def _city_name(location: dict) -> str:
    """Locality, falling back to the location name, then the Unknown sentinel."""
    locality = location.get("locality")
    if isinstance(locality, str) and locality.strip():
        return locality.strip()
    name = location.get("name")
    if isinstance(name, str) and name.strip():
        return name.strip()
    return UNKNOWN


def _country_name(location: dict) -> str:
    country = location.get("country")
    if isinstance(country, dict):
        name = country.get("name")
        if isinstance(name, str) and name.strip():
            return name.strip()
    return UNKNOWN


def _sensor_parameters(sensors) -> Dict[str, str]:
    """Build the sensor id → parameter name map used to resolve readings."""
    mapping: Dict[str, str] = {}
    if not isinstance(sensors, list):
        return mapping
    for sensor in sensors:
        if not isinstance(sensor, dict):
            continue
        sensor_id = sensor.get("id")
        parameter = sensor.get("parameter")
        name = parameter.get("name") if isinstance(parameter, dict) else None
        if sensor_id is not None and name:
            mapping[str(sensor_id)] = str(name)
    return mapping


def parse_location_metadata(location_id: str, location: dict) -> LocationMetadata:
    """Extract identity, coordinates and sensor map from one /locations result."""
    latitude, longitude = _parse_coordinates(location.get("coordinates"))
    return LocationMetadata(
        location_id=str(location_id),
        city_name=_city_name(location),
        country_name=_country_name(location),
        latitude=latitude,
        longitude=longitude,
        sensor_parameters=_sensor_parameters(location.get("sensors")),
    )


def parse_latest(results: list) -> LatestReadings:
    """Extract (sensor id, value) pairs and fallback coordinates from /latest results."""
    readings: List[SensorReading] = []
    latitude = longitude = None
    for i, measurement in enumerate(results):
        if not isinstance(measurement, dict):
            logger.debug("Skipping non-object measurement: %r", measurement)
            continue
        if i == 0:
            latitude, longitude = _parse_coordinates(measurement.get("coordinates"))
        sensor_id = measurement.get("sensorsId")
        if sensor_id is None:
            logger.debug("Skipping measurement without sensorsId: %r", measurement)
            continue
        readings.append(SensorReading(
            sensor_id=str(sensor_id),
            value=measurement.get("value"),
            timestamp=_parse_timestamp(measurement.get("datetime")),
        ))
    return LatestReadings(readings=readings, latitude=latitude, longitude=longitude)


class OpenAQClient:
    """
    Thin OpenAQ v3 client.

    All three operations are best-effort: transport failures
    (UpstreamUnavailable) and unexpected payloads (UpstreamMalformed) are
    logged and surfaced as an empty list or None.
    """

    def __init__(
        self,
        base_url: str = config.OPENAQ_API_URL,
        api_key: str = config.OPENAQ_API_KEY,
        timeout: float = config.OPENAQ_TIMEOUT_SECONDS,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        headers = {
            "Accept": "application/json; charset=utf-8",
            "Accept-Charset": "utf-8",
        }
        if api_key and api_key.strip():
            headers["X-API-Key"] = api_key.strip()
            logger.info("OpenAQ client initialised with API key")
        else:
            logger.info("OpenAQ client initialised without API key")

        self._http = httpx.Client(
            base_url=base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def _get_results(self, path: str, params: Optional[dict] = None) -> list:
        """GET `path` and return its `results` array."""
        try:
            resp = self._http.get(path, params=params)
            resp.raise_for_status()
        except httpx.TimeoutException as e:
            raise UpstreamUnavailable(f"timeout on {path}") from e
        except httpx.HTTPStatusError as e:
            raise UpstreamUnavailable(f"HTTP {e.response.status_code} on {path}") from e
        except httpx.RequestError as e:
            raise UpstreamUnavailable(f"network error on {path}: {e}") from e

        try:
            payload = resp.json()
        except ValueError as e:
            raise UpstreamMalformed(f"malformed JSON on {path}") from e

        if not isinstance(payload, dict):
            raise UpstreamMalformed(f"expected an object on {path}, got {type(payload).__name__}")
        results = payload.get("results")
        if results is None:
            return []
        if not isinstance(results, list):
            raise UpstreamMalformed(f"'results' on {path} is not a list")
        return results

    def list_location_ids(self, limit: int) -> List[str]:
        """
        Fetch up to `limit` monitoring-location IDs.

        Returns:
            Location IDs in upstream order; [] on any failure.
        """
        try:
            results = self._get_results("/locations", params={"limit": limit})
        except (UpstreamUnavailable, UpstreamMalformed) as e:
            logger.error("OpenAQ location discovery failed: %s", e)
            return []

        ids = []
        for location in results:
            if isinstance(location, dict) and location.get("id") is not None:
                ids.append(str(location["id"]))
            else:
                logger.debug("Skipping location without id: %r", location)

        logger.info("OpenAQ returned %d location ids (limit %d)", len(ids), limit)
        return ids

    def fetch_latest_readings(self, location_id: str) -> Optional[LatestReadings]:
        """Latest value per sensor for a location, or None if no data / failure."""
        try:
            results = self._get_results(f"/locations/{location_id}/latest")
        except (UpstreamUnavailable, UpstreamMalformed) as e:
            logger.warning("OpenAQ latest readings failed for location %s: %s", location_id, e)
            return None

        if not results:
            logger.debug("No latest readings for location %s", location_id)
            return None

        latest = parse_latest(results)
        if not latest.readings:
            return None
        return latest

    def fetch_location_metadata(self, location_id: str) -> Optional[LocationMetadata]:
        """Locality, country, coordinates and sensor map for a location, or None."""
        try:
            results = self._get_results(f"/locations/{location_id}")
        except (UpstreamUnavailable, UpstreamMalformed) as e:
            logger.warning("OpenAQ metadata failed for location %s: %s", location_id, e)
            return None

        if not results or not isinstance(results[0], dict):
            logger.debug("No metadata for location %s", location_id)
            return None

        return parse_location_metadata(location_id, results[0])
