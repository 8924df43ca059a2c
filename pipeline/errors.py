"""
Exception taxonomy shared by the pipeline and the API.

Upstream errors never leave the connector; they are logged there and turned
into an empty result. Persistence and refresh errors propagate to the caller.
"""


class UpstreamError(Exception):
    """Base class for failures talking to the air-quality provider."""


class UpstreamUnavailable(UpstreamError):
    """Transport, timeout or HTTP status failure reaching the provider."""


class UpstreamMalformed(UpstreamError):
    """Response body could not be parsed or had an unexpected shape."""


class PersistenceError(Exception):
    """A batch upsert failed; the whole batch has been rolled back."""


class DataRefreshError(Exception):
    """A refresh run failed. Stored data and cached aggregates are unchanged."""


class RefreshInProgressError(Exception):
    """Another refresh run currently holds the run lock."""


class CityNotFoundError(LookupError):
    def __init__(self, city: str):
        self.city = city
        super().__init__(f"No air quality data available for city: {city}")


class CountryNotFoundError(LookupError):
    def __init__(self, country: str):
        self.country = country
        super().__init__(f"No air quality data available for country: {country}")
