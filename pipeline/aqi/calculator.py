"""
US EPA Air Quality Index calculator.

Converts raw particulate concentrations (μg/m³) into the 0–500 AQI scale by
piecewise-linear interpolation over fixed breakpoint bands. Stateless and
total: every real input (including None and negatives) maps to an integer.
"""

import math
from dataclasses import dataclass
from typing import Optional, Sequence

AQI_CAP = 500


@dataclass(frozen=True)
class Breakpoint:
    """One band of a breakpoint table: [conc_low, conc_high] → [idx_low, idx_high]."""
    conc_low: float
    conc_high: float
    idx_low: int
    idx_high: int


PM25_BREAKPOINTS = (
    Breakpoint(0.0,   12.0,   0,   50),    # Good
    Breakpoint(12.1,  35.4,   51,  100),   # Moderate
    Breakpoint(35.5,  55.4,   101, 150),   # Unhealthy for Sensitive Groups
    Breakpoint(55.5,  150.4,  151, 200),   # Unhealthy
    Breakpoint(150.5, 250.4,  201, 300),   # Very Unhealthy
    Breakpoint(250.5, 500.4,  301, 500),   # Hazardous
)

PM10_BREAKPOINTS = (
    Breakpoint(0,   54,  0,   50),
    Breakpoint(55,  154, 51,  100),
    Breakpoint(155, 254, 101, 150),
    Breakpoint(255, 354, 151, 200),
    Breakpoint(355, 424, 201, 300),
    Breakpoint(425, 604, 301, 500),
)

# (upper bound inclusive, label, display colour)
AQI_CATEGORIES = (
    (50,  "Good",                           "#00E400"),
    (100, "Moderate",                       "#FFFF00"),
    (150, "Unhealthy for Sensitive Groups", "#FF7E00"),
    (200, "Unhealthy",                      "#FF0000"),
    (300, "Very Unhealthy",                 "#8F3F97"),
)
HAZARDOUS = ("Hazardous", "#7E0023")


def round_half_up(value: float, ndigits: int = 0) -> float:
    """Round half up: 33.25 → 33.3 (built-in round() gives 33.2)."""
    scale = 10 ** ndigits
    return math.floor(value * scale + 0.5) / scale


def _round_half_up(value: float) -> int:
    return int(round_half_up(value))


def _truncate_one_decimal(value: float) -> float:
    # round() first so 4.1 * 10 == 40.99999… does not floor to 4.0
    return math.floor(round(value * 10, 6)) / 10


def _interpolate(value: float, band: Breakpoint) -> int:
    span = band.conc_high - band.conc_low
    idx = band.idx_low + (band.idx_high - band.idx_low) * (value - band.conc_low) / span
    return _round_half_up(idx)


def index_from_concentration(
    table: Sequence[Breakpoint],
    concentration: Optional[float],
    truncate: bool = False,
) -> int:
    """
    Map a pollutant concentration to an AQI value using a breakpoint table.

    Args:
        table: Ordered breakpoint bands, lowest first.
        concentration: Raw concentration, or None.
        truncate: Floor the concentration to one decimal before lookup
                  (the EPA convention for PM2.5).

    Returns:
        Integer AQI. None, NaN or negative input gives 0; values above the top
        band saturate at 500. A value between two bands (e.g. PM10 54.5)
        belongs to the upper band and scores its lower index.
    """
    if concentration is None or math.isnan(concentration) or concentration < 0:
        return 0
    if concentration > table[-1].conc_high:
        return AQI_CAP

    value = _truncate_one_decimal(concentration) if truncate else concentration

    for band in table:
        if value <= band.conc_high:
            return _interpolate(max(value, band.conc_low), band)

    return AQI_CAP


def aqi_from_pm25(pm25: Optional[float]) -> int:
    """PM2.5 (μg/m³, 24-hr) → AQI. Example: 8.0 → 33."""
    return index_from_concentration(PM25_BREAKPOINTS, pm25, truncate=True)


def aqi_from_pm10(pm10: Optional[float]) -> int:
    """PM10 (μg/m³, 24-hr) → AQI."""
    return index_from_concentration(PM10_BREAKPOINTS, pm10)


def combined_aqi(pm25: Optional[float], pm10: Optional[float]) -> int:
    """Worst of the PM2.5 and PM10 sub-indices; a missing pollutant counts as 0."""
    return max(aqi_from_pm25(pm25), aqi_from_pm10(pm10))


def aqi_category(aqi: int) -> str:
    """Return the EPA category label ("Good" … "Hazardous") for an AQI."""
    for upper, label, _ in AQI_CATEGORIES:
        if aqi <= upper:
            return label
    return HAZARDOUS[0]


def aqi_color(aqi: int) -> str:
    """Return the EPA display colour (hex) for an AQI."""
    for upper, _, color in AQI_CATEGORIES:
        if aqi <= upper:
            return color
    return HAZARDOUS[1]
