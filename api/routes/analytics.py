"""
Analytics routes — API usage recorded by the request-metrics middleware.
"""
import logging

from fastapi import APIRouter, Depends, Request

from api.analytics import AnalyticsRepository

logger = logging.getLogger(__name__)

router = APIRouter()


def get_analytics_repository(request: Request) -> AnalyticsRepository:
    return request.app.state.analytics


@router.get("/summary")
def summary(analytics: AnalyticsRepository = Depends(get_analytics_repository)):
    """Request counts, average response times and success/error counts per endpoint."""
    logger.info("GET /api/analytics/summary")
    return {
        "endpoint_stats": analytics.endpoint_stats(),
        "response_time_stats": analytics.response_time_stats(),
        "success_error_rates": analytics.success_error_rates(),
        "total_requests": analytics.total_requests(),
    }


@router.get("/timeline")
def timeline(analytics: AnalyticsRepository = Depends(get_analytics_repository)):
    """The last 100 API requests, newest first."""
    return analytics.timeline()


@router.get("/endpoints")
def endpoints(analytics: AnalyticsRepository = Depends(get_analytics_repository)):
    return analytics.endpoint_stats()


@router.get("/response-times")
def response_times(analytics: AnalyticsRepository = Depends(get_analytics_repository)):
    return analytics.response_time_stats()
