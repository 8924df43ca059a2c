"""
Generation-tagged aggregate cache.

Each memoized value is stored with the generation it was computed under.
`invalidate()` bumps the generation, so every entry computed before it is
treated as missing on its next read. Values are computed lazily, on first
access after an invalidation.
"""

import logging
import threading
from typing import Any, Callable, Dict, Hashable, Tuple

logger = logging.getLogger(__name__)

# Cache regions
GLOBAL_STATS = "global_stats"
ALL_CITIES = "cities"
CITY = "city"
COUNTRY = "country"
ALL_COUNTRIES = "countries"


class AggregateCache:
    def __init__(self):
        self._generation = 0
        self._entries: Dict[Tuple[str, Hashable], Tuple[int, Any]] = {}
        self._lock = threading.Lock()

    @property
    def generation(self) -> int:
        return self._generation

    def get_or_compute(self, region: str, key: Hashable, compute: Callable[[], Any]) -> Any:
        """
        Return the cached value for (region, key) if it belongs to the current
        generation, otherwise compute, store and return it.

        Exceptions from `compute` propagate and nothing is stored.
        """
        with self._lock:
            generation = self._generation
            entry = self._entries.get((region, key))
        if entry is not None and entry[0] == generation:
            return entry[1]

        value = compute()
        with self._lock:
            # An invalidation during compute makes this value stale; don't store it.
            if self._generation == generation:
                self._entries[(region, key)] = (generation, value)
        logger.debug("Cache miss: %s[%r] (generation %d)", region, key, generation)
        return value

    def invalidate(self) -> int:
        """Drop every memoized value. Returns the new generation."""
        with self._lock:
            self._generation += 1
            self._entries.clear()
            generation = self._generation
        logger.info("Aggregate cache invalidated (generation %d)", generation)
        return generation

    def __len__(self) -> int:
        with self._lock:
            return sum(1 for gen, _ in self._entries.values() if gen == self._generation)
