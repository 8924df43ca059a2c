"""
API usage analytics — per-request metrics and their aggregates.

The HTTP middleware in api/main.py records one row per handled /api request
(the analytics endpoints themselves excluded). Recording is best-effort: a
failed write is logged and never affects the response being served.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy import case, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from api.models.db_models import ApiRequestMetric

logger = logging.getLogger(__name__)

TRACKED_PREFIX = "/api/"
EXCLUDED_PREFIX = "/api/analytics"
TIMELINE_LIMIT = 100


@dataclass
class RequestMetric:
    endpoint: str
    method: str
    status_code: int
    response_time_ms: int
    client_ip: Optional[str] = None
    user_agent: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def should_track(path: str) -> bool:
    return path.startswith(TRACKED_PREFIX) and not path.startswith(EXCLUDED_PREFIX)


def client_ip(headers, remote_addr: Optional[str]) -> Optional[str]:
    """First X-Forwarded-For hop, then X-Real-IP, then the socket peer."""
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = headers.get("x-real-ip")
    if real_ip:
        return real_ip
    return remote_addr


class AnalyticsRepository:
    def __init__(self, session_factory: Optional[sessionmaker] = None):
        if session_factory is None:
            from api.database import SessionLocal
            session_factory = SessionLocal
        self._session_factory = session_factory

    def record(self, metric: RequestMetric) -> bool:
        """Persist one metric. Returns False (and logs) if the write failed."""
        with self._session_factory() as db:
            try:
                db.add(ApiRequestMetric(
                    endpoint=metric.endpoint[:500],
                    method=metric.method,
                    status_code=metric.status_code,
                    response_time_ms=metric.response_time_ms,
                    client_ip=metric.client_ip,
                    user_agent=metric.user_agent[:500] if metric.user_agent else None,
                    timestamp=metric.timestamp,
                ))
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                logger.error("Error saving request metric %s %s: %s", metric.method, metric.endpoint, e)
                return False
        logger.debug(
            "Saved metric: %s %s - %dms - %d",
            metric.method, metric.endpoint, metric.response_time_ms, metric.status_code,
        )
        return True

    def _rows(self, stmt):
        with self._session_factory() as db:
            return db.execute(stmt).all()

    def endpoint_stats(self) -> Dict[str, int]:
        """endpoint → request count."""
        rows = self._rows(
            select(ApiRequestMetric.endpoint, func.count(ApiRequestMetric.id))
            .group_by(ApiRequestMetric.endpoint)
            .order_by(ApiRequestMetric.endpoint)
        )
        return {endpoint: count for endpoint, count in rows}

    def response_time_stats(self) -> Dict[str, float]:
        """endpoint → average response time in ms."""
        rows = self._rows(
            select(ApiRequestMetric.endpoint, func.avg(ApiRequestMetric.response_time_ms))
            .group_by(ApiRequestMetric.endpoint)
            .order_by(ApiRequestMetric.endpoint)
        )
        return {endpoint: float(avg) for endpoint, avg in rows}

    def success_error_rates(self) -> Dict[str, Dict[str, int]]:
        """endpoint → {"success": 2xx count, "error": 4xx/5xx count}."""
        status = ApiRequestMetric.status_code
        rows = self._rows(
            select(
                ApiRequestMetric.endpoint,
                func.sum(case((status.between(200, 299), 1), else_=0)),
                func.sum(case((status >= 400, 1), else_=0)),
            )
            .group_by(ApiRequestMetric.endpoint)
            .order_by(ApiRequestMetric.endpoint)
        )
        return {
            endpoint: {"success": int(success or 0), "error": int(error or 0)}
            for endpoint, success, error in rows
        }

    def timeline(self, limit: int = TIMELINE_LIMIT) -> List[dict]:
        """Most recent requests first."""
        with self._session_factory() as db:
            metrics = db.execute(
                select(ApiRequestMetric)
                .order_by(ApiRequestMetric.timestamp.desc(), ApiRequestMetric.id.desc())
                .limit(limit)
            ).scalars().all()
            return [
                {
                    "timestamp": m.timestamp.isoformat() if m.timestamp else None,
                    "endpoint": m.endpoint,
                    "method": m.method,
                    "status_code": m.status_code,
                    "response_time_ms": m.response_time_ms,
                }
                for m in metrics
            ]

    def total_requests(self) -> int:
        with self._session_factory() as db:
            return db.execute(select(func.count(ApiRequestMetric.id))).scalar() or 0
