"""Shared test fixtures and configuration for the AirTrack test suite."""

import os

# Point the app at a throwaway database before any api module creates its engine.
TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", "sqlite://")
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["OPENAI_API_KEY"] = ""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from api.database import Base
from api.repository import AirQualityRepository
import api.models.db_models  # noqa: F401
from pipeline.ingestion.openaq_connector import LatestReadings, LocationMetadata, SensorReading

SENSOR_IDS = {"pm25": "101", "pm10": "102", "no2": "103", "o3": "104", "co": "105", "so2": "106"}


def make_location(location_id, city, country, latitude=45.76, longitude=4.84, **pollutants):
    """Build (LatestReadings, LocationMetadata) for a fake upstream location."""
    metadata = LocationMetadata(
        location_id=str(location_id),
        city_name=city,
        country_name=country,
        latitude=latitude,
        longitude=longitude,
        sensor_parameters={sid: name for name, sid in SENSOR_IDS.items()},
    )
    readings = [
        SensorReading(sensor_id=SENSOR_IDS[name], value=value)
        for name, value in pollutants.items()
    ]
    return LatestReadings(readings=readings), metadata


class FakeOpenAQClient:
    """In-memory stand-in for OpenAQClient."""

    def __init__(self, locations=None, failing=()):
        self.locations = dict(locations or {})
        self.failing = set(failing)
        self.list_calls = []
        self.fetched = []

    def list_location_ids(self, limit):
        self.list_calls.append(limit)
        return list(self.locations)[:limit]

    def fetch_latest_readings(self, location_id):
        self.fetched.append(location_id)
        if location_id in self.failing:
            raise RuntimeError(f"connection reset for {location_id}")
        return self.locations[location_id][0]

    def fetch_location_metadata(self, location_id):
        return self.locations[location_id][1]


@pytest.fixture()
def db_engine():
    """Fresh database per test."""
    kwargs = {}
    if TEST_DATABASE_URL.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}, "poolclass": StaticPool}
    engine = create_engine(TEST_DATABASE_URL, **kwargs)
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture()
def session_factory(db_engine):
    return sessionmaker(bind=db_engine, autocommit=False, autoflush=False)


@pytest.fixture()
def repository(session_factory):
    return AirQualityRepository(session_factory)


@pytest.fixture()
def lyon():
    return make_location("2178", "Lyon", "France", pm25=8.0)
