"""
AirTrack — Data Pipeline Package.

Components:
    - aqi: US EPA breakpoint tables and AQI interpolation
    - ingestion: OpenAQ v3 connector, canonical record, normalizer, pacing
    - orchestrator: rate-limited fetch-and-normalize run over all locations
    - scheduler: APScheduler job driving periodic refreshes
    - advisory: optional health recommendations (OpenAI or fallback text)
"""
