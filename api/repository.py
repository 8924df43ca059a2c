"""
Air-quality repository — the merge/upsert store.

One row per case-folded (city, country). `upsert` applies a whole batch in a
single transaction: either every record lands or none does.
"""

import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from api.models.db_models import AirQualityData
from pipeline.errors import PersistenceError
from pipeline.ingestion.normalizer import validate_record
from pipeline.ingestion.record import POLLUTANT_FIELDS, AirQualityRecord

logger = logging.getLogger(__name__)

# Every non-key column overwritten on upsert.
_UPSERT_FIELDS = ("city", "country", "location_id", "aqi") + POLLUTANT_FIELDS + ("latitude", "longitude")


def _as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; everything we store is UTC.
    if dt is not None and dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def _to_record(row: AirQualityData) -> AirQualityRecord:
    return AirQualityRecord(
        city=row.city,
        country=row.country,
        location_id=row.location_id,
        aqi=row.aqi if row.aqi is not None else 0,
        pm25=row.pm25,
        pm10=row.pm10,
        no2=row.no2,
        o3=row.o3,
        co=row.co,
        so2=row.so2,
        latitude=row.latitude,
        longitude=row.longitude,
        last_updated=_as_utc(row.last_updated),
    )


class AirQualityRepository:
    """SQLAlchemy-backed store of canonical air-quality records."""

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        if session_factory is None:
            from api.database import SessionLocal
            session_factory = SessionLocal
        self._session_factory = session_factory

    # ── Writes ───────────────────────────────────────────────────────────────

    def upsert(self, records: Iterable[AirQualityRecord]) -> int:
        """
        Insert or overwrite each valid record under its (city, country) key.
        Records failing validate_record (unknown city or country, AQI 0) are
        skipped.

        Returns:
            Number of rows inserted or updated (0 for an empty batch).

        Raises:
            PersistenceError: the batch failed and was rolled back.
        """
        records = list(records)
        accepted = []
        for record in records:
            validation = validate_record(record)
            if validation.is_valid:
                accepted.append(record)
            else:
                logger.warning("Not storing %s, %s: %s", record.city, record.country, validation)
        records = accepted
        if not records:
            return 0

        logger.info("Bulk upserting %d air quality records", len(records))
        now = datetime.now(timezone.utc)
        affected = 0

        with self._session_factory() as db:
            try:
                pending = {}
                for record in records:
                    city_key, country_key = record.key
                    row = pending.get((city_key, country_key))
                    if row is None:
                        row = db.execute(
                            select(AirQualityData).where(
                                AirQualityData.city_key == city_key,
                                AirQualityData.country_key == country_key,
                            )
                        ).scalar_one_or_none()
                    if row is None:
                        row = AirQualityData(city_key=city_key, country_key=country_key)
                        db.add(row)
                    pending[(city_key, country_key)] = row

                    for name in _UPSERT_FIELDS:
                        setattr(row, name, getattr(record, name))
                    row.last_updated = record.last_updated or now
                    affected += 1

                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                logger.error("Bulk upsert of %d records failed, rolled back: %s", len(records), e)
                raise PersistenceError(f"Bulk upsert failed: {e}") from e

        logger.info("Bulk upsert completed. %d rows affected", affected)
        return affected

    # ── Reads ────────────────────────────────────────────────────────────────

    def _scalar(self, stmt):
        with self._session_factory() as db:
            return db.execute(stmt).scalar()

    def _records(self, stmt) -> List[AirQualityRecord]:
        with self._session_factory() as db:
            return [_to_record(row) for row in db.execute(stmt).scalars().all()]

    def find_all(self) -> List[AirQualityRecord]:
        return self._records(select(AirQualityData).order_by(AirQualityData.city))

    def find_by_city(self, city: str) -> Optional[AirQualityRecord]:
        """Case-insensitive lookup; first match by country name if the city exists twice."""
        rows = self._records(
            select(AirQualityData)
            .where(AirQualityData.city_key == city.strip().lower())
            .order_by(AirQualityData.country_key)
            .limit(1)
        )
        return rows[0] if rows else None

    def find_by_country(self, country: str) -> List[AirQualityRecord]:
        return self._records(
            select(AirQualityData)
            .where(AirQualityData.country_key == country.strip().lower())
            .order_by(AirQualityData.city)
        )

    def find_all_countries(self) -> List[str]:
        with self._session_factory() as db:
            rows = db.execute(
                select(func.min(AirQualityData.country))
                .group_by(AirQualityData.country_key)
                .order_by(func.min(AirQualityData.country))
            ).all()
        return [r[0] for r in rows]

    def count(self) -> int:
        return self._scalar(select(func.count(AirQualityData.id))) or 0

    def is_empty(self) -> bool:
        return self.count() == 0

    def count_distinct_countries(self) -> int:
        return self._scalar(select(func.count(func.distinct(AirQualityData.country_key)))) or 0

    def average_aqi(self) -> Optional[float]:
        avg = self._scalar(
            select(func.avg(AirQualityData.aqi)).where(AirQualityData.aqi.is_not(None))
        )
        return float(avg) if avg is not None else None

    def count_by_aqi_range(self, min_aqi: int, max_aqi: int) -> int:
        """Rows with min_aqi <= aqi <= max_aqi."""
        return self._scalar(
            select(func.count(AirQualityData.id)).where(
                AirQualityData.aqi >= min_aqi,
                AirQualityData.aqi <= max_aqi,
            )
        ) or 0

    def find_cleanest(self) -> Optional[AirQualityRecord]:
        """Lowest positive AQI; ties go to the first city by name."""
        rows = self._records(
            select(AirQualityData)
            .where(AirQualityData.aqi.is_not(None), AirQualityData.aqi > 0)
            .order_by(AirQualityData.aqi.asc(), AirQualityData.city.asc())
            .limit(1)
        )
        return rows[0] if rows else None

    def find_most_polluted(self) -> Optional[AirQualityRecord]:
        """Highest AQI; ties go to the first city by name."""
        rows = self._records(
            select(AirQualityData)
            .where(AirQualityData.aqi.is_not(None))
            .order_by(AirQualityData.aqi.desc(), AirQualityData.city.asc())
            .limit(1)
        )
        return rows[0] if rows else None
