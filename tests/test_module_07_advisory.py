"""
Tests for Module 07 — Health advisor.
"""
import json

import httpx
import pytest

from pipeline.advisory.advisor import FALLBACK_RECOMMENDATIONS, HealthAdvisor
from pipeline.ingestion.record import AirQualityRecord

LYON = AirQualityRecord(city="Lyon", country="France", aqi=33, pm25=8.0)


def completion(text):
    return httpx.Response(200, json={"choices": [{"message": {"role": "assistant", "content": text}}]})


def advisor_with(handler):
    return HealthAdvisor(
        api_key="sk-test",
        model="gpt-test",
        base_url="https://llm.test/v1",
        timeout=1,
        transport=httpx.MockTransport(handler),
    )


class TestFallback:
    def test_disabled_without_key(self):
        assert HealthAdvisor(api_key="").ai_enabled is False
        assert HealthAdvisor(api_key="   ").ai_enabled is False

    def test_recommend_uses_category_text(self):
        rec = HealthAdvisor(api_key="").recommend(LYON)
        assert rec.source == "fallback"
        assert rec.aqi_category == "Good"
        assert rec.aqi_color == "#00E400"
        assert rec.recommendations == FALLBACK_RECOMMENDATIONS["Good"]
        assert "Lyon, France" in rec.overall_assessment

    @pytest.mark.parametrize("aqi", [0, 75, 125, 175, 250, 400])
    def test_every_category_has_fallback_text(self, aqi):
        advisory = HealthAdvisor(api_key="").health_advisory(aqi)
        assert advisory.startswith(f"AQI {aqi} (")

    def test_analyze_fallback_text(self):
        assert HealthAdvisor(api_key="").analyze(LYON) == (
            "Air quality in Lyon, France is currently Good with an AQI of 33. "
            "Monitor local conditions and follow health guidelines for your activity level."
        )


class TestOpenAI:
    def test_recommend_parses_completion(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return completion("Air is clean today.\n- Go for a run\n- Open the windows\n")

        rec = advisor_with(handler).recommend(LYON)
        assert rec.source == "openai"
        assert rec.overall_assessment == "Air is clean today."
        assert rec.recommendations == ["Go for a run", "Open the windows"]
        assert seen["auth"] == "Bearer sk-test"
        assert seen["body"]["model"] == "gpt-test"
        assert "PM25=8.0" in seen["body"]["messages"][0]["content"]

    def test_recommend_falls_back_on_http_error(self):
        rec = advisor_with(lambda request: httpx.Response(503)).recommend(LYON)
        assert rec.source == "fallback"
        assert rec.recommendations == FALLBACK_RECOMMENDATIONS["Good"]

    def test_recommend_falls_back_on_unexpected_payload(self):
        rec = advisor_with(lambda request: httpx.Response(200, json={"choices": []})).recommend(LYON)
        assert rec.source == "fallback"

    def test_recommend_falls_back_on_single_line_answer(self):
        rec = advisor_with(lambda request: completion("Fine.")).recommend(LYON)
        assert rec.source == "fallback"

    def test_health_advisory_from_completion(self):
        advisor = advisor_with(lambda request: completion("  Limit outdoor exertion.  "))
        assert advisor.health_advisory(160) == "Limit outdoor exertion."

    def test_health_advisory_falls_back_on_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        assert advisor_with(handler).health_advisory(160).startswith("AQI 160 (Unhealthy).")

    def test_analyze_from_completion(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return completion("Traffic and heating dominate local PM2.5.\n")

        assert advisor_with(handler).analyze(LYON) == "Traffic and heating dominate local PM2.5."
        prompt = seen["body"]["messages"][0]["content"]
        assert "Lyon, France with current AQI of 33 (PM2.5: 8.0 μg/m³)" in prompt
        assert seen["body"]["temperature"] == 0.7

    def test_analyze_without_pm25_reports_zero(self):
        seen = {}

        def handler(request):
            seen["prompt"] = json.loads(request.content)["messages"][0]["content"]
            return completion("Mostly coarse dust.")

        advisor_with(handler).analyze(AirQualityRecord(city="Oslo", country="Norway", aqi=40, pm10=40.0))
        assert "(PM2.5: 0.0 μg/m³)" in seen["prompt"]

    def test_analyze_falls_back_on_http_error(self):
        text = advisor_with(lambda request: httpx.Response(500)).analyze(LYON)
        assert text.startswith("Air quality in Lyon, France is currently Good")
