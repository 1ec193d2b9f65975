"""Footprint resolver: pick the most plausible building outline.

Candidates from independent sources are validated against the resolver
policy, scored, and ranked.  The best viable candidate wins; when none is
viable a reference bounding box is turned into a labelled low-confidence
rectangle.  Without candidates or a box the resolver fails explicitly.
"""

from __future__ import annotations

import logging
import math
from dataclasses import replace
from typing import Optional, Sequence

from roofline.core.cache import CandidateCache
from roofline.core.config import DEFAULT_CONFIG, RooflineConfig
from roofline.core.exceptions import FootprintUnavailable, InputError
from roofline.core.models import (
    BoundingBox,
    Coordinate,
    Footprint,
    FootprintCandidate,
    FootprintValidation,
    ReferenceMeasurement,
    ResolvedFootprint,
    ScoredCandidate,
    Severity,
    ValidationFailure,
    ValidationMetrics,
)
from roofline.footprint.scoring import candidate_score, clamp01, relative_difference
from roofline.footprint.sources import CandidateFetcher, FootprintSource
from roofline.geometry import primitives as geo

logger = logging.getLogger("roofline.footprint.resolver")


class FootprintResolver:
    """Validate, score and select footprint candidates.

    Usage::

        resolver = FootprintResolver()
        resolved = resolver.resolve(candidates, reference=ReferenceMeasurement(area_sqft=2100))
        print(resolved.source, resolved.confidence, resolved.warnings)
    """

    def __init__(
        self,
        config: RooflineConfig = DEFAULT_CONFIG,
        fetcher: Optional[CandidateFetcher] = None,
        cache: Optional[CandidateCache] = None,
    ):
        self.config = config
        self.policy = config.resolver
        if fetcher is None:
            if cache is None and config.cache.enabled:
                cache = CandidateCache.from_config(config.cache)
            fetcher = CandidateFetcher(config.fetch, cache=cache)
        self.fetcher = fetcher

    # ── Validation ──────────────────────────────────────────────────

    def validate_candidate(
        self,
        footprint: Footprint,
        reference: Optional[ReferenceMeasurement] = None,
    ) -> FootprintValidation:
        """Check one footprint against the resolver policy."""
        p = self.policy
        coords = footprint.vertices
        points = geo.LocalProjection.for_coordinates(coords).project_all(coords)

        area = abs(geo.shoelace_area(points))
        perimeter = geo.perimeter_ft(coords)
        n = len(coords)
        longest = geo.longest_edge_ft(coords)
        span_x, span_y = geo.span_ratios(coords, p.reference_box_m)
        expected = math.ceil(perimeter * p.vertices_per_100ft / 100.0)
        metrics = ValidationMetrics(
            area_sqft=area,
            perimeter_ft=perimeter,
            vertex_count=n,
            longest_edge_ft=longest,
            span_x_ratio=span_x,
            span_y_ratio=span_y,
            expected_min_vertices=expected,
        )

        errors: list[ValidationFailure] = []
        warnings: list[str] = []

        if n < p.min_vertices:
            errors.append(ValidationFailure(
                "too_few_vertices", f"Too few vertices: {n} (min: {p.min_vertices})",
            ))
        if span_x < p.min_span_fraction and span_y < p.min_span_fraction:
            errors.append(ValidationFailure(
                "span_too_small",
                f"Footprint too small: span {span_x * 100:.0f}% x {span_y * 100:.0f}%",
            ))
        if longest > p.max_edge_warning_ft:
            warnings.append(f"Long segment: {longest:.0f} ft (may be missing corners)")
        if n < expected:
            warnings.append(
                f"Low vertex density: {n} vertices for {perimeter:.0f} ft perimeter (expected {expected})"
            )
        if reference is not None and reference.perimeter_ft:
            ratio = perimeter / reference.perimeter_ft
            if ratio < p.min_perimeter_ratio:
                errors.append(ValidationFailure(
                    "perimeter_too_small",
                    f"Perimeter is {ratio * 100:.0f}% of reference (threshold: {p.min_perimeter_ratio * 100:.0f}%)",
                ))
        if area < p.min_area_sqft:
            errors.append(ValidationFailure(
                "area_too_small", f"Footprint too small: {area:.0f} sq ft (min: {p.min_area_sqft:.0f})",
            ))
        if area > p.max_area_sqft:
            errors.append(ValidationFailure(
                "area_too_large", f"Footprint too large: {area:.0f} sq ft (max: {p.max_area_sqft:,.0f})",
            ))
        if geo.find_self_intersections(points):
            errors.append(ValidationFailure(
                "self_intersection", "Footprint ring crosses itself", Severity.SEVERE,
            ))
        if reference is not None:
            diff = relative_difference(area, reference.area_sqft)
            if diff is not None and diff > p.area_warning_tolerance:
                warnings.append(f"Area differs from reference by {diff * 100:.1f}%")

        return FootprintValidation(metrics=metrics, errors=errors, warnings=warnings)

    # ── Ranking ─────────────────────────────────────────────────────

    def _priority(self, source: str) -> int:
        try:
            return self.policy.source_priority.index(source)
        except ValueError:
            return len(self.policy.source_priority)

    def rank(
        self,
        candidates: Sequence[FootprintCandidate],
        reference: Optional[ReferenceMeasurement] = None,
    ) -> list[ScoredCandidate]:
        """Score every candidate; best first.

        Ties are broken by position in ``source_priority`` and then by
        input order, so the ranking is fully deterministic.
        """
        scored = []
        for order, candidate in enumerate(candidates):
            validation = self.validate_candidate(candidate.footprint, reference)
            score = candidate_score(candidate.confidence, validation, reference, self.policy)
            scored.append(ScoredCandidate(
                candidate=candidate,
                validation=validation,
                score=score,
                priority=self._priority(candidate.source),
                order=order,
            ))
            logger.debug("Candidate %d from %s scored %.3f", order, candidate.source, score)
        scored.sort(key=lambda s: (-s.score, s.priority, s.order))
        return scored

    # ── Resolution ──────────────────────────────────────────────────

    def resolve(
        self,
        candidates: Sequence[FootprintCandidate] = (),
        reference: Optional[ReferenceMeasurement] = None,
        sources: Sequence[FootprintSource] = (),
        location: Optional[Coordinate] = None,
    ) -> ResolvedFootprint:
        """Select the authoritative footprint.

        Parameters
        ----------
        candidates : sequence of FootprintCandidate
            Already-fetched candidates.
        reference : ReferenceMeasurement, optional
            Approximate area / perimeter / bounding box, used only for
            plausibility scoring and as the last-resort fallback.
        sources : sequence of FootprintSource
            Sources to fetch from before ranking.  Requires *location*.
        location : Coordinate, optional
            Where to fetch.

        Returns
        -------
        ResolvedFootprint

        Raises
        ------
        FootprintUnavailable
            When there is no candidate at all and no reference box.
        """
        pool = list(candidates)
        unavailable: list[str] = []
        if sources:
            if location is None:
                raise InputError("Fetching from sources requires a location")
            report = self.fetcher.fetch_all(sources, location)
            pool.extend(report.candidates)
            unavailable = sorted(report.unavailable)

        ranked = self.rank(pool, reference)
        viable = [s for s in ranked if s.validation.is_valid]

        if viable:
            resolved = self._from_scored(viable[0], len(ranked))
        elif reference is not None and reference.bbox is not None:
            logger.warning("No viable footprint among %d candidate(s); using bounding box fallback", len(ranked))
            resolved = self.bbox_fallback(reference.bbox, reference)
            resolved.candidates_considered = len(ranked)
        elif ranked:
            best = ranked[0]
            logger.warning(
                "Best candidate from %s has validation errors: %s",
                best.candidate.source,
                ", ".join(e.message for e in best.validation.errors),
            )
            resolved = self._from_scored(best, len(ranked))
        else:
            raise FootprintUnavailable("No footprint candidate and no reference bounding box available")

        resolved.unavailable_sources = unavailable
        if self.policy.overhang_ft > 0:
            resolved = self._apply_overhang(resolved)

        logger.info(
            "Selected %s: %.0f sq ft, %d vertices, confidence %.2f",
            resolved.source,
            resolved.validation.metrics.area_sqft,
            len(resolved.footprint),
            resolved.confidence,
        )
        return resolved

    def _from_scored(self, scored: ScoredCandidate, considered: int) -> ResolvedFootprint:
        validation = scored.validation
        warnings = list(validation.warnings)
        warnings.extend(f"Validation error: {e.message}" for e in validation.errors)
        return ResolvedFootprint(
            footprint=scored.candidate.footprint,
            source=scored.candidate.source,
            confidence=clamp01(scored.score),
            score=scored.score,
            validation=validation,
            warnings=warnings,
            fallback_used=scored.candidate.source == "bbox_fallback",
            candidates_considered=considered,
        )

    def bbox_fallback(
        self,
        bbox: BoundingBox,
        reference: Optional[ReferenceMeasurement] = None,
    ) -> ResolvedFootprint:
        """Labelled rectangle from a reference bounding box with a shape-corrected area."""
        p = self.policy
        footprint = Footprint(vertices=bbox.corners())
        validation = self.validate_candidate(footprint, reference)
        corrected = validation.metrics.area_sqft * p.bbox_shape_correction
        validation = replace(validation, metrics=replace(validation.metrics, area_sqft=corrected))
        warnings = [
            "Using reference bounding box - area may be over-estimated",
            f"Applied {round((1 - p.bbox_shape_correction) * 100)}% shape correction",
        ]
        warnings.extend(validation.warnings)
        return ResolvedFootprint(
            footprint=footprint,
            source="bbox_fallback",
            confidence=p.bbox_confidence,
            score=p.bbox_confidence,
            validation=validation,
            warnings=warnings,
            fallback_used=True,
        )

    def _apply_overhang(self, resolved: ResolvedFootprint) -> ResolvedFootprint:
        offset = self.policy.overhang_ft
        return replace(
            resolved,
            footprint=expand_footprint(resolved.footprint, offset),
            warnings=resolved.warnings + [f"Expanded by {offset:g} ft for eave overhang"],
        )


def expand_footprint(footprint: Footprint, offset_ft: float) -> Footprint:
    """Push every vertex *offset_ft* away from the centroid."""
    projection = geo.LocalProjection.for_coordinates(footprint.vertices)
    points = projection.project_all(footprint.vertices)
    return Footprint(vertices=tuple(projection.unproject_all(geo.expand_ring(points, offset_ft))))
