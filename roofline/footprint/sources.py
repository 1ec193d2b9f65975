"""Footprint sources and concurrent candidate fetching.

Every external outline provider is wrapped in a ``FootprintSource``.
``CandidateFetcher`` runs free sources in parallel, each under its own
timeout, and only turns to paid sources when the free ones came back
empty.  A failing or slow source is logged and recorded; it never aborts
the other fetches.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Sequence

from roofline.core.cache import CandidateCache
from roofline.core.config import FetchConfig
from roofline.core.exceptions import SourceUnavailable
from roofline.core.models import Coordinate, Footprint, FootprintCandidate, SourceTier

logger = logging.getLogger("roofline.footprint.sources")


class FootprintSource(ABC):
    """Base class for a candidate outline provider.

    Subclasses must implement:
    - ``name``  — source tag, e.g. ``"osm_buildings"``
    - ``fetch`` — return a candidate for a location, or ``None``

    ``fetch`` signals failure by raising ``SourceUnavailable``; any other
    exception is treated the same way by the fetcher.
    """

    tier: SourceTier = SourceTier.FREE
    timeout_s: Optional[float] = None

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    def fetch(self, location: Coordinate, params: dict[str, Any]) -> Optional[FootprintCandidate]:
        ...


class StaticSource(FootprintSource):
    """Source that always returns one pre-fetched footprint."""

    def __init__(
        self,
        name: str,
        footprint: Footprint,
        confidence: float,
        tier: SourceTier = SourceTier.FREE,
    ):
        self._name = name
        self.footprint = footprint
        self.confidence = confidence
        self.tier = tier

    @property
    def name(self) -> str:
        return self._name

    def fetch(self, location, params):
        return FootprintCandidate(footprint=self.footprint, source=self._name, confidence=self.confidence)


class CallableSource(FootprintSource):
    """Adapter turning a plain function into a source.

    The function receives ``(location, params)`` and returns a
    ``FootprintCandidate``, a bare ``Footprint`` (scored with
    *default_confidence*) or ``None``.
    """

    def __init__(
        self,
        name: str,
        func: Callable[[Coordinate, dict[str, Any]], Any],
        default_confidence: float = 0.8,
        tier: SourceTier = SourceTier.FREE,
        timeout_s: Optional[float] = None,
    ):
        self._name = name
        self.func = func
        self.default_confidence = default_confidence
        self.tier = tier
        self.timeout_s = timeout_s

    @property
    def name(self) -> str:
        return self._name

    def fetch(self, location, params):
        result = self.func(location, params)
        if result is None or isinstance(result, FootprintCandidate):
            return result
        if isinstance(result, Footprint):
            return FootprintCandidate(footprint=result, source=self._name, confidence=self.default_confidence)
        raise SourceUnavailable(self._name, f"unexpected result type {type(result).__name__}")


@dataclass
class FetchReport:
    """Candidates that arrived plus the sources that did not deliver."""

    candidates: list[FootprintCandidate] = field(default_factory=list)
    unavailable: dict[str, str] = field(default_factory=dict)
    cached: list[str] = field(default_factory=list)


class CandidateFetcher:
    """Fetch candidates from several sources concurrently.

    Usage::

        fetcher = CandidateFetcher(FetchConfig(), cache=CandidateCache())
        report = fetcher.fetch_all(sources, Coordinate(40.0, -75.0))
        for name, reason in report.unavailable.items():
            print(name, reason)
    """

    def __init__(self, config: FetchConfig | None = None, cache: Optional[CandidateCache] = None):
        self.config = config or FetchConfig()
        self.cache = cache

    def fetch_all(
        self,
        sources: Sequence[FootprintSource],
        location: Coordinate,
        params: Optional[dict[str, Any]] = None,
    ) -> FetchReport:
        """Run free sources, then paid sources only if nothing arrived."""
        params = params or {}
        report = FetchReport()
        free = [s for s in sources if s.tier == SourceTier.FREE]
        paid = [s for s in sources if s.tier == SourceTier.PAID]

        self._fetch_group(free, location, params, report)
        if not report.candidates and paid:
            logger.info("No free footprint available; trying %d paid source(s)", len(paid))
            self._fetch_group(paid, location, params, report)
        return report

    def _fetch_group(
        self,
        sources: Sequence[FootprintSource],
        location: Coordinate,
        params: dict[str, Any],
        report: FetchReport,
    ) -> None:
        pending: list[FootprintSource] = []
        for source in sources:
            cached = self.cache.get(source.name, location, params) if self.cache else None
            if cached is not None:
                report.candidates.append(cached)
                report.cached.append(source.name)
            else:
                pending.append(source)
        if not pending:
            return

        workers = max(1, min(self.config.max_workers, len(pending)))
        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="roofline-fetch")
        try:
            start = time.monotonic()
            futures = [(s, executor.submit(s.fetch, location, params)) for s in pending]
            for source, future in futures:
                timeout = source.timeout_s or self.config.default_timeout_s
                remaining = max(0.0, start + timeout - time.monotonic())
                try:
                    candidate = future.result(timeout=remaining)
                except FuturesTimeout:
                    future.cancel()
                    report.unavailable[source.name] = f"timed out after {timeout:g}s"
                    logger.warning("Source %s timed out after %gs", source.name, timeout)
                    continue
                except SourceUnavailable as exc:
                    report.unavailable[source.name] = exc.reason or str(exc)
                    logger.warning("%s", exc)
                    continue
                except Exception as exc:
                    report.unavailable[source.name] = str(exc)
                    logger.warning("Source %s failed: %s", source.name, exc)
                    continue

                if candidate is None:
                    logger.info("Source %s returned no footprint", source.name)
                    continue
                report.candidates.append(candidate)
                logger.info(
                    "Source %s: %d vertices, confidence %.2f",
                    source.name, len(candidate.footprint), candidate.confidence,
                )
                self._remember(source.name, location, candidate, params)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    def _remember(self, name, location, candidate, params) -> None:
        if self.cache is None:
            return
        try:
            self.cache.put(name, location, candidate, params)
        except Exception as exc:
            logger.warning("Cache write for %s failed: %s", name, exc)
