"""
Air-quality service — refresh trigger and cached read model.

`refresh_data()` runs one ingestion (discover → fetch → normalize), upserts
the valid records as a single batch and, only when rows were written,
invalidates the aggregate cache. Runs never overlap: a second trigger while
one is in flight is refused rather than queued.
"""

import logging
import threading
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Optional

from api.cache import ALL_CITIES, ALL_COUNTRIES, CITY, COUNTRY, GLOBAL_STATS, AggregateCache
from api.repository import AirQualityRepository
from pipeline import config
from pipeline.aqi.calculator import round_half_up
from pipeline.errors import (
    CityNotFoundError,
    CountryNotFoundError,
    DataRefreshError,
    PersistenceError,
    RefreshInProgressError,
)
from pipeline.ingestion.pacing import FixedIntervalPacer
from pipeline.ingestion.record import AirQualityRecord, display_timestamp
from pipeline.orchestrator import run_ingestion

logger = logging.getLogger(__name__)

# Inclusive AQI buckets used by the global statistics.
GOOD_AIR = (0, 50)
MODERATE_AIR = (51, 100)
UNHEALTHY_AIR = (101, 500)


@dataclass
class RefreshResult:
    records_ingested: int


@dataclass
class GlobalAirQualityStats:
    """Worldwide aggregate, recomputed lazily after each successful refresh."""
    total_cities: int
    total_countries: int
    average_global_aqi: float
    cities_with_good_air: int
    cities_with_moderate_air: int
    cities_with_unhealthy_air: int
    cleanest_city: Optional[str] = None
    cleanest_country: Optional[str] = None
    cleanest_aqi: Optional[int] = None
    most_polluted_city: Optional[str] = None
    most_polluted_country: Optional[str] = None
    most_polluted_aqi: Optional[int] = None
    last_updated: str = ""


class AirQualityService:
    def __init__(
        self,
        repository: Optional[AirQualityRepository] = None,
        client=None,
        cache: Optional[AggregateCache] = None,
        max_locations: int = config.OPENAQ_MAX_LOCATIONS,
        request_delay: float = config.OPENAQ_REQUEST_DELAY_SECONDS,
    ):
        self._repository = repository or AirQualityRepository()
        self._client = client
        self._cache = cache or AggregateCache()
        self._max_locations = max_locations
        self._request_delay = request_delay
        self._run_lock = threading.Lock()

    @property
    def cache(self) -> AggregateCache:
        return self._cache

    def _get_client(self):
        if self._client is None:
            from pipeline.ingestion.openaq_connector import OpenAQClient
            self._client = OpenAQClient()
        return self._client

    # ── Refresh ──────────────────────────────────────────────────────────────

    def refresh_data(self) -> RefreshResult:
        """
        Run one ingestion and merge it into the store.

        Returns:
            RefreshResult with the number of rows inserted or updated
            (0 when upstream had nothing usable; not an error).

        Raises:
            RefreshInProgressError: another run holds the lock.
            DataRefreshError: the run or its upsert failed. Stored data and
                cached aggregates are left as they were.
        """
        if not self._run_lock.acquire(blocking=False):
            logger.warning("Refresh requested while another run is in progress — refusing")
            raise RefreshInProgressError("A data refresh is already in progress")

        try:
            logger.info("Refreshing air quality data from OpenAQ")
            try:
                records = run_ingestion(
                    self._get_client(),
                    self._max_locations,
                    pacer=FixedIntervalPacer(self._request_delay),
                )
                if not records:
                    logger.warning("No data received from OpenAQ — store and cache unchanged")
                    return RefreshResult(records_ingested=0)

                logger.info("Received %d records from OpenAQ, upserting", len(records))
                rows = self._repository.upsert(records)
            except PersistenceError as e:
                logger.error("Refresh failed at persistence: %s", e)
                raise DataRefreshError(f"Failed to refresh air quality data: {e}") from e
            except Exception as e:
                logger.exception("Refresh failed")
                raise DataRefreshError(f"Failed to refresh air quality data: {e}") from e

            # Only after the upsert has committed.
            if rows > 0:
                self._cache.invalidate()
            logger.info("Data refresh completed. %d rows affected", rows)
            return RefreshResult(records_ingested=rows)
        finally:
            self._run_lock.release()

    def initialize_if_empty(self) -> None:
        """Load initial data on startup when the store is empty. Never raises."""
        try:
            if not self._repository.is_empty():
                logger.info(
                    "Store already contains %d records — skipping initial load",
                    self._repository.count(),
                )
                return
            logger.info("Store is empty — loading initial data from OpenAQ")
            result = self.refresh_data()
            logger.info("Initial data load completed. %d cities loaded", result.records_ingested)
        except Exception as e:
            logger.error("Initial data load failed: %s", e)
            logger.warning("Continuing without initial data; the next scheduled refresh will load it")

    # ── Cached reads ─────────────────────────────────────────────────────────

    def get_global_stats(self) -> GlobalAirQualityStats:
        return self._cache.get_or_compute(GLOBAL_STATS, "global", self._compute_global_stats)

    def _compute_global_stats(self) -> GlobalAirQualityStats:
        repo = self._repository
        avg = repo.average_aqi()
        stats = GlobalAirQualityStats(
            total_cities=repo.count(),
            total_countries=repo.count_distinct_countries(),
            average_global_aqi=round_half_up(avg, 1) if avg is not None else 0.0,
            cities_with_good_air=repo.count_by_aqi_range(*GOOD_AIR),
            cities_with_moderate_air=repo.count_by_aqi_range(*MODERATE_AIR),
            cities_with_unhealthy_air=repo.count_by_aqi_range(*UNHEALTHY_AIR),
            last_updated=display_timestamp(),
        )

        cleanest = repo.find_cleanest()
        if cleanest is not None:
            stats.cleanest_city = cleanest.city
            stats.cleanest_country = cleanest.country
            stats.cleanest_aqi = cleanest.aqi

        most_polluted = repo.find_most_polluted()
        if most_polluted is not None:
            stats.most_polluted_city = most_polluted.city
            stats.most_polluted_country = most_polluted.country
            stats.most_polluted_aqi = most_polluted.aqi

        logger.debug(
            "Global stats: %d cities across %d countries, avg AQI %.1f",
            stats.total_cities, stats.total_countries, stats.average_global_aqi,
        )
        return stats

    def get_all_cities(self) -> List[AirQualityRecord]:
        return self._cache.get_or_compute(ALL_CITIES, "all", self._repository.find_all)

    def get_city_data(self, city: str) -> AirQualityRecord:
        def load():
            record = self._repository.find_by_city(city)
            if record is None:
                raise CityNotFoundError(city)
            return record
        return self._cache.get_or_compute(CITY, city.strip().lower(), load)

    def get_cities_by_country(self, country: str) -> List[AirQualityRecord]:
        def load():
            records = self._repository.find_by_country(country)
            if not records:
                raise CountryNotFoundError(country)
            return records
        return self._cache.get_or_compute(COUNTRY, country.strip().lower(), load)

    def get_all_countries(self) -> List[str]:
        return self._cache.get_or_compute(ALL_COUNTRIES, "all", self._repository.find_all_countries)

    # ── Derived views over the cached city list ──────────────────────────────

    def get_cities_with_good_air(self) -> List[AirQualityRecord]:
        cities = [c for c in self.get_all_cities() if c.aqi is not None and c.aqi <= GOOD_AIR[1]]
        return sorted(cities, key=lambda c: c.aqi)

    def get_cities_with_unhealthy_air(self) -> List[AirQualityRecord]:
        cities = [c for c in self.get_all_cities() if c.aqi is not None and c.aqi > MODERATE_AIR[1]]
        return sorted(cities, key=lambda c: c.aqi, reverse=True)

    def get_most_polluted_cities(self, limit: int = 10) -> List[AirQualityRecord]:
        cities = [c for c in self.get_all_cities() if c.aqi is not None]
        return sorted(cities, key=lambda c: c.aqi, reverse=True)[:max(0, limit)]

    def get_cleanest_cities(self, limit: int = 10) -> List[AirQualityRecord]:
        cities = [c for c in self.get_all_cities() if c.aqi is not None and c.aqi > 0]
        return sorted(cities, key=lambda c: c.aqi)[:max(0, limit)]


@lru_cache(maxsize=1)
def get_air_quality_service() -> AirQualityService:
    """Process-wide service (one cache, one run lock). FastAPI dependency."""
    return AirQualityService()
