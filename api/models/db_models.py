"""
SQLAlchemy ORM models for AirTrack.
Tables: air_quality_data, api_request_metrics
"""

from sqlalchemy import Column, DateTime, Float, Index, Integer, String, UniqueConstraint
from sqlalchemy.sql import func

from api.database import Base


class AirQualityData(Base):
    """Latest air-quality state of one (city, country). One row per case-folded key."""
    __tablename__ = "air_quality_data"

    id = Column(Integer, primary_key=True, autoincrement=True)
    city = Column(String(200), nullable=False)
    country = Column(String(200), nullable=False)
    # Lower-cased identity columns; (city_key, country_key) is the upsert key.
    city_key = Column(String(200), nullable=False)
    country_key = Column(String(200), nullable=False)
    location_id = Column(String(50), nullable=True)
    aqi = Column(Integer, nullable=True)
    pm25 = Column(Float, nullable=True)
    pm10 = Column(Float, nullable=True)
    no2 = Column(Float, nullable=True)
    o3 = Column(Float, nullable=True)
    co = Column(Float, nullable=True)
    so2 = Column(Float, nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    last_updated = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("city_key", "country_key", name="uq_air_quality_city_country"),
        Index("ix_air_quality_data_country_key", "country_key"),
        Index("ix_air_quality_data_aqi", "aqi"),
    )


class ApiRequestMetric(Base):
    """One handled /api request: path, method, status and latency."""
    __tablename__ = "api_request_metrics"

    id = Column(Integer, primary_key=True, autoincrement=True)
    endpoint = Column(String(500), nullable=False)
    method = Column(String(10), nullable=False)
    status_code = Column(Integer, nullable=False)
    response_time_ms = Column(Integer, nullable=False)
    client_ip = Column(String(100), nullable=True)
    user_agent = Column(String(500), nullable=True)
    timestamp = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_api_request_metrics_endpoint", "endpoint"),
        Index("ix_api_request_metrics_timestamp", "timestamp"),
    )
