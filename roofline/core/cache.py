"""Candidate cache for fetched footprints.

Repeated resolutions at the same place reuse what each source delivered
instead of calling it again.  An entry is keyed by source tag, the
coordinate rounded to a fixed number of decimals and the fetch
parameters.  Entries expire a fixed time after they were fetched; when
the cache is full, expired entries go first, then the least recently
used one.  Derived candidates (the bounding-box fallback) are never
cached since no source delivered them.
"""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from dataclasses import replace
from typing import Any, Optional

from roofline.core.config import CacheConfig
from roofline.core.models import Coordinate, FootprintCandidate

logger = logging.getLogger("roofline.core.cache")

DERIVED_SOURCES = frozenset({"bbox_fallback"})

CacheKey = tuple[str, float, float, tuple[tuple[str, str], ...]]


class CandidateCache:
    """In-memory LRU of footprint candidates, one entry per source and place.

    Usage::

        cache = CandidateCache.from_config(config.cache)
        cache.put("osm_buildings", here, candidate)
        hit = cache.get("osm_buildings", here)
    """

    def __init__(self, max_size: int = 256, ttl_seconds: int = 3600, coordinate_decimals: int = 6):
        self.max_size = max_size
        self.ttl = ttl_seconds
        self.decimals = coordinate_decimals
        self._entries: OrderedDict[CacheKey, tuple[FootprintCandidate, float]] = OrderedDict()
        self.hits = 0
        self.misses = 0

    @classmethod
    def from_config(cls, config: CacheConfig) -> "CandidateCache":
        return cls(config.max_size, config.ttl_seconds, config.coordinate_decimals)

    def key(self, source: str, location: Coordinate, params: Optional[dict[str, Any]] = None) -> CacheKey:
        """Source, rounded coordinate and parameters as a hashable key."""
        frozen = tuple(sorted((str(k), repr(v)) for k, v in (params or {}).items()))
        return (
            source,
            round(location.lat, self.decimals),
            round(location.lng, self.decimals),
            frozen,
        )

    def get(
        self, source: str, location: Coordinate, params: Optional[dict[str, Any]] = None
    ) -> Optional[FootprintCandidate]:
        """Cached candidate for *source* at *location*, or None on miss or expiry."""
        key = self.key(source, location, params)
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None
        candidate, expires = entry
        if time.monotonic() >= expires:
            del self._entries[key]
            self.misses += 1
            return None
        self._entries.move_to_end(key)
        self.hits += 1
        logger.debug("Cache hit for %s at %.6f, %.6f", source, location.lat, location.lng)
        return replace(candidate, properties=dict(candidate.properties))

    def put(
        self,
        source: str,
        location: Coordinate,
        candidate: FootprintCandidate,
        params: Optional[dict[str, Any]] = None,
    ) -> None:
        """Remember what *source* delivered at *location*."""
        if candidate.source in DERIVED_SOURCES:
            return
        now = time.monotonic()
        key = self.key(source, location, params)
        self._entries[key] = (candidate, now + self.ttl)
        self._entries.move_to_end(key)
        if len(self._entries) > self.max_size:
            self._purge_expired(now)
        while len(self._entries) > self.max_size:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Evicted cached candidate from %s", evicted[0])

    def _purge_expired(self, now: float) -> None:
        for key in [k for k, (_, expires) in self._entries.items() if now >= expires]:
            del self._entries[key]

    def invalidate(self, source: Optional[str] = None) -> None:
        """Drop every cached candidate, or only those from *source*."""
        if source is None:
            self._entries.clear()
            logger.info("Candidate cache cleared")
            return
        for key in [k for k in self._entries if k[0] == source]:
            del self._entries[key]
        logger.info("Cached candidates from %s dropped", source)

    @property
    def size(self) -> int:
        return len(self._entries)
