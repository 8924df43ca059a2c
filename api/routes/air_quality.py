"""
Air-quality routes — global stats, city/country lookups, rankings, refresh.
"""
import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, Query, status

from api.services.air_quality_service import AirQualityService, get_air_quality_service
from pipeline.errors import (
    CityNotFoundError,
    CountryNotFoundError,
    DataRefreshError,
    RefreshInProgressError,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def record_to_dict(record) -> dict:
    return {
        "city": record.city,
        "country": record.country,
        "location_id": record.location_id,
        "aqi": record.aqi,
        "aqi_category": record.aqi_category,
        "pm25": record.pm25,
        "pm10": record.pm10,
        "no2": record.no2,
        "o3": record.o3,
        "co": record.co,
        "so2": record.so2,
        "latitude": record.latitude,
        "longitude": record.longitude,
        "last_updated": record.last_updated.isoformat() if record.last_updated else None,
    }


@router.get("/global")
def global_stats(service: AirQualityService = Depends(get_air_quality_service)):
    """Aggregated worldwide air-quality statistics."""
    return asdict(service.get_global_stats())


@router.get("/cities")
def all_cities(service: AirQualityService = Depends(get_air_quality_service)):
    """Air-quality data for every monitored city, ordered by name."""
    return [record_to_dict(r) for r in service.get_all_cities()]


@router.get("/city/{name}")
def city(name: str, service: AirQualityService = Depends(get_air_quality_service)):
    """Air-quality data for one city (case-insensitive)."""
    try:
        return record_to_dict(service.get_city_data(name))
    except CityNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/countries")
def all_countries(service: AirQualityService = Depends(get_air_quality_service)):
    """Every country with at least one monitored city."""
    return service.get_all_countries()


@router.get("/country/{name}")
def country(name: str, service: AirQualityService = Depends(get_air_quality_service)):
    """All monitored cities in one country (case-insensitive)."""
    try:
        return [record_to_dict(r) for r in service.get_cities_by_country(name)]
    except CountryNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/rankings/polluted")
def most_polluted(
    limit: int = Query(10, ge=1, le=100),
    service: AirQualityService = Depends(get_air_quality_service),
):
    return [record_to_dict(r) for r in service.get_most_polluted_cities(limit)]


@router.get("/rankings/cleanest")
def cleanest(
    limit: int = Query(10, ge=1, le=100),
    service: AirQualityService = Depends(get_air_quality_service),
):
    return [record_to_dict(r) for r in service.get_cleanest_cities(limit)]


@router.get("/filter/good")
def good_air(service: AirQualityService = Depends(get_air_quality_service)):
    """Cities with AQI 0–50, cleanest first."""
    return [record_to_dict(r) for r in service.get_cities_with_good_air()]


@router.get("/filter/unhealthy")
def unhealthy_air(service: AirQualityService = Depends(get_air_quality_service)):
    """Cities with AQI above 100, worst first."""
    return [record_to_dict(r) for r in service.get_cities_with_unhealthy_air()]


@router.post("/refresh")
def refresh(service: AirQualityService = Depends(get_air_quality_service)):
    """Manually trigger a refresh from OpenAQ."""
    logger.info("POST /api/refresh — manual data refresh")
    try:
        result = service.refresh_data()
    except RefreshInProgressError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except DataRefreshError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
    return {
        "status": "success",
        "message": "Air quality data refreshed successfully",
        "rows_affected": result.records_ingested,
    }
