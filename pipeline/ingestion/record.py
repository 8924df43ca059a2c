"""
Canonical air-quality record: the storage-ready state of one monitored location.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from pipeline.aqi.calculator import aqi_category

UNKNOWN = "Unknown"

# Pollutant keys accepted from upstream parameter names (case-insensitive).
POLLUTANT_FIELDS = ("pm25", "pm10", "no2", "o3", "co", "so2")


@dataclass
class AirQualityRecord:
    """One location's latest readings. `aqi` is always derived, never copied from upstream."""
    city: str
    country: str
    location_id: Optional[str] = None
    aqi: int = 0
    # Pollutants, in the unit reported upstream
    pm25: Optional[float] = None   # μg/m³
    pm10: Optional[float] = None   # μg/m³
    no2: Optional[float] = None
    o3: Optional[float] = None
    co: Optional[float] = None
    so2: Optional[float] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    last_updated: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def key(self) -> tuple:
        """Storage identity: case-normalized (city, country)."""
        return (self.city.lower(), self.country.lower())

    @property
    def aqi_category(self) -> str:
        return aqi_category(self.aqi)


def display_timestamp(dt: Optional[datetime] = None) -> str:
    """Human-readable UTC time without zero padding, e.g. "March 1, 2024, 9:05 AM UTC"."""
    dt = (dt or datetime.now(timezone.utc)).astimezone(timezone.utc)
    hour = dt.hour % 12 or 12
    return f"{dt:%B} {dt.day}, {dt.year}, {hour}:{dt:%M} {dt:%p} UTC"
