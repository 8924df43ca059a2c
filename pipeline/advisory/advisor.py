"""
Health advisory generator.

Decorates an already-stored AirQualityRecord with plain-language guidance.
Uses the OpenAI chat completions API when OPENAI_API_KEY is set; any failure
(or no key) falls back to fixed, category-based text. Never raises to the
caller and is never part of an ingestion run.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

import httpx

from pipeline import config
from pipeline.aqi.calculator import aqi_category, aqi_color
from pipeline.ingestion.record import AirQualityRecord, display_timestamp

logger = logging.getLogger(__name__)

# Fallback guidance per category
FALLBACK_RECOMMENDATIONS = {
    "Good": [
        "Air quality is satisfactory — enjoy outdoor activities.",
        "A good day to ventilate indoor spaces.",
    ],
    "Moderate": [
        "Unusually sensitive people should consider limiting prolonged outdoor exertion.",
        "Most people can continue normal outdoor activities.",
    ],
    "Unhealthy for Sensitive Groups": [
        "Children, older adults and people with heart or lung disease should reduce prolonged outdoor exertion.",
        "Keep quick-relief medication at hand if you have asthma.",
    ],
    "Unhealthy": [
        "Everyone should reduce prolonged or heavy outdoor exertion.",
        "Sensitive groups should avoid outdoor activity.",
        "Consider wearing a well-fitted N95 mask outdoors.",
    ],
    "Very Unhealthy": [
        "Avoid prolonged or heavy outdoor exertion.",
        "Keep windows closed and run an air purifier if available.",
        "Sensitive groups should remain indoors.",
    ],
    "Hazardous": [
        "Health warning of emergency conditions: avoid all outdoor activity.",
        "Stay indoors with windows and doors closed.",
        "Follow guidance from local authorities.",
    ],
}


@dataclass
class Recommendation:
    city: str
    country: str
    aqi: int
    aqi_category: str
    aqi_color: str
    overall_assessment: str
    recommendations: List[str] = field(default_factory=list)
    source: str = "fallback"       # "openai" or "fallback"
    generated_at: str = field(default_factory=display_timestamp)


def _fallback_assessment(record: AirQualityRecord) -> str:
    return (
        f"Air quality in {record.city}, {record.country} is currently "
        f"{aqi_category(record.aqi)} with an AQI of {record.aqi}."
    )


def _fallback_advisory(aqi: int) -> str:
    category = aqi_category(aqi)
    advice = FALLBACK_RECOMMENDATIONS[category][0]
    return f"AQI {aqi} ({category}). {advice}"


def _recommendation_prompt(record: AirQualityRecord) -> str:
    pollutants = ", ".join(
        f"{name.upper()}={getattr(record, name)}"
        for name in ("pm25", "pm10", "no2", "o3", "co", "so2")
        if getattr(record, name) is not None
    )
    return (
        f"Air quality in {record.city}, {record.country}: AQI {record.aqi} "
        f"({aqi_category(record.aqi)}). Pollutants: {pollutants or 'n/a'}.\n"
        "Reply with one sentence of overall assessment on the first line, "
        "then 3 to 5 short health recommendations, one per line, each starting with '- '."
    )


def _parse_recommendation_text(text: str) -> tuple:
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    if not lines:
        return "", []
    assessment = lines[0].lstrip("- ").strip()
    items = [line.lstrip("-*• ").strip() for line in lines[1:]]
    return assessment, [i for i in items if i]


class HealthAdvisor:
    def __init__(
        self,
        api_key: str = config.OPENAI_API_KEY,
        model: str = config.OPENAI_MODEL,
        base_url: str = config.OPENAI_API_URL,
        timeout: float = config.OPENAI_TIMEOUT_SECONDS,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.model = model
        self._http: Optional[httpx.Client] = None
        if api_key and api_key.strip():
            self._http = httpx.Client(
                base_url=base_url,
                headers={"Authorization": f"Bearer {api_key.strip()}"},
                timeout=timeout,
                transport=transport,
            )
            logger.info("Health advisor using OpenAI model %s", model)
        else:
            logger.warning("OPENAI_API_KEY not set — advisories use fallback text")

    @property
    def ai_enabled(self) -> bool:
        return self._http is not None

    def _complete(self, prompt: str, temperature: float) -> str:
        resp = self._http.post("/chat/completions", json={
            "model": self.model,
            "temperature": temperature,
            "max_tokens": 500,
            "messages": [{"role": "user", "content": prompt}],
        })
        resp.raise_for_status()
        return resp.json()["choices"][0]["message"]["content"].strip()

    def recommend(self, record: AirQualityRecord) -> Recommendation:
        """Assessment plus recommendations for one city's current air quality."""
        category = aqi_category(record.aqi)
        recommendation = Recommendation(
            city=record.city,
            country=record.country,
            aqi=record.aqi,
            aqi_category=category,
            aqi_color=aqi_color(record.aqi),
            overall_assessment=_fallback_assessment(record),
            recommendations=list(FALLBACK_RECOMMENDATIONS[category]),
        )

        if self.ai_enabled:
            try:
                assessment, items = _parse_recommendation_text(
                    self._complete(_recommendation_prompt(record), temperature=0.7)
                )
                if assessment and items:
                    recommendation.overall_assessment = assessment
                    recommendation.recommendations = items
                    recommendation.source = "openai"
            except (httpx.HTTPError, KeyError, IndexError, TypeError, ValueError) as e:
                logger.warning("OpenAI recommendation failed for %s, using fallback: %s", record.city, e)

        return recommendation

    def health_advisory(self, aqi: int) -> str:
        """Two or three sentences of guidance for a given AQI."""
        if self.ai_enabled:
            try:
                return self._complete(
                    f"Generate a brief health advisory (2-3 sentences) for air quality with AQI "
                    f"of {aqi} ({aqi_category(aqi)}). Include specific recommendations for "
                    "outdoor activities and sensitive groups.",
                    temperature=0.5,
                )
            except (httpx.HTTPError, KeyError, IndexError, TypeError, ValueError) as e:
                logger.warning("OpenAI health advisory failed, using fallback: %s", e)
        return _fallback_advisory(aqi)

    def analyze(self, record: AirQualityRecord) -> str:
        """Free-text analysis of likely pollution sources and improvements for a city."""
        if self.ai_enabled:
            try:
                return self._complete(
                    f"Analyze the air quality in {record.city}, {record.country} with current AQI of "
                    f"{record.aqi} (PM2.5: {record.pm25 or 0.0:.1f} μg/m³). Provide insights on potential "
                    "sources of pollution and recommendations for improvement.",
                    temperature=0.7,
                )
            except (httpx.HTTPError, KeyError, IndexError, TypeError, ValueError) as e:
                logger.warning("OpenAI analysis failed for %s, using fallback: %s", record.city, e)
        return (
            f"{_fallback_assessment(record)} Monitor local conditions and follow "
            "health guidelines for your activity level."
        )
