"""
Advisory routes — optional health recommendations for stored cities.
"""
from dataclasses import asdict
from functools import lru_cache

from fastapi import APIRouter, Depends, HTTPException, Path

from api.services.air_quality_service import AirQualityService, get_air_quality_service
from pipeline.advisory.advisor import HealthAdvisor
from pipeline.aqi.calculator import aqi_category, aqi_color
from pipeline.errors import CityNotFoundError

router = APIRouter()


@lru_cache(maxsize=1)
def get_health_advisor() -> HealthAdvisor:
    return HealthAdvisor()


@router.get("/city/{name}")
def city_recommendations(
    name: str,
    service: AirQualityService = Depends(get_air_quality_service),
    advisor: HealthAdvisor = Depends(get_health_advisor),
):
    """Assessment and health recommendations for a city's current air quality."""
    try:
        record = service.get_city_data(name)
    except CityNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return asdict(advisor.recommend(record))


@router.get("/aqi/{aqi}")
def aqi_advisory(
    aqi: int = Path(..., ge=0, le=500),
    advisor: HealthAdvisor = Depends(get_health_advisor),
):
    """Short health advisory for an arbitrary AQI value."""
    return {
        "aqi": aqi,
        "aqi_category": aqi_category(aqi),
        "aqi_color": aqi_color(aqi),
        "advisory": advisor.health_advisory(aqi),
    }


@router.get("/analysis/{name}")
def city_analysis(
    name: str,
    service: AirQualityService = Depends(get_air_quality_service),
    advisor: HealthAdvisor = Depends(get_health_advisor),
):
    """Pollution-source analysis and improvement suggestions for a city."""
    try:
        record = service.get_city_data(name)
    except CityNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {
        "city": record.city,
        "country": record.country,
        "aqi": record.aqi,
        "analysis": advisor.analyze(record),
    }
