"""
Tests for Module 05 — Aggregate cache, AirQualityService and scheduler job.
"""
import re
from unittest.mock import MagicMock

import pytest

from api.cache import GLOBAL_STATS, AggregateCache
from api.services.air_quality_service import AirQualityService
from conftest import FakeOpenAQClient, make_location
from pipeline.aqi.calculator import round_half_up
from pipeline.errors import (
    CityNotFoundError,
    CountryNotFoundError,
    DataRefreshError,
    PersistenceError,
    RefreshInProgressError,
)
from pipeline.ingestion.record import AirQualityRecord
from pipeline.scheduler import JOB_ID, scheduled_refresh, start_scheduler


def make_service(repository, locations=None, failing=()):
    client = FakeOpenAQClient(locations, failing=failing)
    return AirQualityService(repository=repository, client=client, max_locations=10, request_delay=0)


def world():
    return {
        "1": make_location("1", "Lyon", "France", pm25=8.0),
        "2": make_location("2", "Paris", "France", pm25=22.0),
        "3": make_location("3", "Delhi", "India", pm25=180.0, pm10=300),
        "4": make_location("4", "Oslo", "Norway", pm10=20),
    }


# ─────────────────────────────────────────────────────────────────────────────
# AggregateCache
# ─────────────────────────────────────────────────────────────────────────────

class TestAggregateCache:
    def test_computes_once_per_generation(self):
        cache = AggregateCache()
        compute = MagicMock(return_value=42)
        assert cache.get_or_compute(GLOBAL_STATS, "global", compute) == 42
        assert cache.get_or_compute(GLOBAL_STATS, "global", compute) == 42
        assert compute.call_count == 1
        assert len(cache) == 1

    def test_invalidate_forces_recompute(self):
        cache = AggregateCache()
        compute = MagicMock(side_effect=[1, 2])
        cache.get_or_compute(GLOBAL_STATS, "global", compute)
        assert cache.invalidate() == 1
        assert len(cache) == 0
        assert cache.get_or_compute(GLOBAL_STATS, "global", compute) == 2

    def test_keys_are_independent(self):
        cache = AggregateCache()
        cache.get_or_compute("city", "lyon", lambda: "L")
        assert cache.get_or_compute("city", "oslo", lambda: "O") == "O"
        assert cache.get_or_compute("city", "lyon", lambda: "X") == "L"

    def test_exception_is_not_cached(self):
        cache = AggregateCache()
        with pytest.raises(LookupError):
            cache.get_or_compute("city", "atlantis", MagicMock(side_effect=LookupError("no")))
        assert cache.get_or_compute("city", "atlantis", lambda: "found") == "found"

    def test_value_computed_across_invalidation_is_not_stored(self):
        cache = AggregateCache()

        def compute():
            cache.invalidate()
            return "stale"

        assert cache.get_or_compute(GLOBAL_STATS, "global", compute) == "stale"
        assert cache.get_or_compute(GLOBAL_STATS, "global", lambda: "fresh") == "fresh"


# ─────────────────────────────────────────────────────────────────────────────
# Refresh
# ─────────────────────────────────────────────────────────────────────────────

class TestRefresh:
    def test_lyon_end_to_end(self, repository, lyon):
        service = make_service(repository, {"2178": lyon})
        assert service.refresh_data().records_ingested == 1

        city = service.get_city_data("lyon")
        assert city.aqi == 33
        assert city.aqi_category == "Good"

        stats = service.get_global_stats()
        assert stats.total_cities == 1
        assert stats.cities_with_good_air == 1
        assert stats.cleanest_city == "Lyon"

    def test_failing_location_skipped(self, repository):
        service = make_service(repository, world(), failing={"3"})
        assert service.refresh_data().records_ingested == 3
        assert repository.find_by_city("Delhi") is None

    def test_rerun_is_idempotent(self, repository):
        service = make_service(repository, world())
        first = service.refresh_data().records_ingested
        second = service.refresh_data().records_ingested
        assert first == second == 4
        assert repository.count() == 4

    def test_empty_run_keeps_cache(self, repository):
        make_service(repository, world()).refresh_data()
        service = make_service(repository, {})
        before = service.get_global_stats()
        generation = service.cache.generation

        assert service.refresh_data().records_ingested == 0
        assert service.cache.generation == generation
        assert service.get_global_stats() is before

    def test_successful_run_invalidates_cache(self, repository):
        service = make_service(repository, world())
        before = service.get_global_stats()
        assert before.total_cities == 0

        service.refresh_data()
        after = service.get_global_stats()
        assert after is not before
        assert after.total_cities == 4
        assert after.total_countries == 3
        assert after.most_polluted_city == "Delhi"

    def test_persistence_failure_leaves_cache_alone(self, repository, lyon):
        service = make_service(repository, {"2178": lyon})
        before = service.get_global_stats()
        generation = service.cache.generation

        broken = MagicMock(wraps=repository)
        broken.upsert.side_effect = PersistenceError("disk full")
        service._repository = broken

        with pytest.raises(DataRefreshError):
            service.refresh_data()
        assert service.cache.generation == generation
        assert service.get_global_stats() is before

    def test_unexpected_failure_becomes_refresh_error(self, repository):
        client = MagicMock()
        client.list_location_ids.side_effect = RuntimeError("boom")
        service = AirQualityService(repository=repository, client=client, request_delay=0)
        with pytest.raises(DataRefreshError):
            service.refresh_data()

    def test_overlapping_run_is_refused(self, repository):
        service = make_service(repository, world())
        nested = {}
        original = service._client.list_location_ids

        def reentrant(limit):
            try:
                service.refresh_data()
            except RefreshInProgressError as e:
                nested["error"] = e
            return original(limit)

        service._client.list_location_ids = reentrant
        assert service.refresh_data().records_ingested == 4
        assert isinstance(nested["error"], RefreshInProgressError)

    def test_lock_released_after_failure(self, repository):
        service = make_service(repository, world())
        service._repository = MagicMock(upsert=MagicMock(side_effect=PersistenceError("x")))
        with pytest.raises(DataRefreshError):
            service.refresh_data()
        service._repository = repository
        assert service.refresh_data().records_ingested == 4


class TestInitializeIfEmpty:
    def test_loads_when_empty(self, repository):
        service = make_service(repository, world())
        service.initialize_if_empty()
        assert repository.count() == 4

    def test_skips_when_populated(self, repository, lyon):
        service = make_service(repository, {"2178": lyon})
        service.refresh_data()
        service._client.list_calls.clear()
        service.initialize_if_empty()
        assert service._client.list_calls == []

    def test_never_raises(self, repository):
        client = MagicMock()
        client.list_location_ids.side_effect = RuntimeError("boom")
        service = AirQualityService(repository=repository, client=client, request_delay=0)
        service.initialize_if_empty()
        assert repository.is_empty()


# ─────────────────────────────────────────────────────────────────────────────
# Reads
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture()
def loaded(repository):
    service = make_service(repository, world())
    service.refresh_data()
    return service


class TestReads:
    def test_city_lookup_is_cached_case_insensitively(self, loaded):
        assert loaded.get_city_data("Lyon") is loaded.get_city_data(" LYON ")

    def test_unknown_city(self, loaded):
        with pytest.raises(CityNotFoundError, match="Atlantis"):
            loaded.get_city_data("Atlantis")

    def test_cities_by_country(self, loaded):
        assert [c.city for c in loaded.get_cities_by_country("france")] == ["Lyon", "Paris"]

    def test_unknown_country(self, loaded):
        with pytest.raises(CountryNotFoundError):
            loaded.get_cities_by_country("Chile")

    def test_all_countries(self, loaded):
        assert loaded.get_all_countries() == ["France", "India", "Norway"]

    def test_global_average(self, loaded):
        stats = loaded.get_global_stats()
        expected = round_half_up(sum(c.aqi for c in loaded.get_all_cities()) / 4, 1)
        assert stats.average_global_aqi == expected

    def test_global_average_rounds_half_up(self, repository):
        repository.upsert([
            AirQualityRecord(city=name, country="France", aqi=aqi)
            for name, aqi in (("Lyon", 33), ("Paris", 33), ("Nice", 33), ("Lille", 34))
        ])
        assert make_service(repository).get_global_stats().average_global_aqi == 33.3

    def test_last_updated_is_not_zero_padded(self, loaded):
        last_updated = loaded.get_global_stats().last_updated
        assert re.fullmatch(r"[A-Z][a-z]+ [1-9]\d?, \d{4}, [1-9]\d?:\d{2} (AM|PM) UTC", last_updated)

    def test_good_air_filter(self, loaded):
        assert [c.city for c in loaded.get_cities_with_good_air()] == ["Oslo", "Lyon"]

    def test_unhealthy_air_filter(self, loaded):
        assert [c.city for c in loaded.get_cities_with_unhealthy_air()] == ["Delhi"]

    def test_rankings(self, loaded):
        assert [c.city for c in loaded.get_most_polluted_cities(2)] == ["Delhi", "Paris"]
        assert [c.city for c in loaded.get_cleanest_cities(1)] == ["Oslo"]


# ─────────────────────────────────────────────────────────────────────────────
# Scheduler
# ─────────────────────────────────────────────────────────────────────────────

class TestScheduler:
    def test_job_swallows_refresh_errors(self):
        service = MagicMock()
        service.refresh_data.side_effect = DataRefreshError("boom")
        scheduled_refresh(service)
        service.refresh_data.side_effect = RefreshInProgressError("busy")
        scheduled_refresh(service)
        assert service.refresh_data.call_count == 2

    def test_job_registered_without_overlap(self):
        scheduler = start_scheduler(MagicMock(), cron_hours="*/6")
        try:
            job = scheduler.get_job(JOB_ID)
            assert job is not None
            assert job.max_instances == 1
            assert job.coalesce is True
        finally:
            scheduler.shutdown(wait=False)
