"""One-liner API for roofline: ``roofline.analyze_roof(candidates, reference=...)``.

Wraps the full pipeline for scripting, notebooks and the CLI:

    resolve footprint → validate geometry → build topology
    → validate linear features → self-correct → (optional) audit

Examples
--------
>>> import roofline
>>> result = roofline.analyze_roof(candidates, reference=ReferenceMeasurement(area_sqft=2000))
>>> print(result.summary())
>>> roofline.analyze_file("building.json", audit_db="audit.db")
"""

from __future__ import annotations

import json
import logging
from dataclasses import replace
from pathlib import Path
from typing import Optional, Sequence

from roofline.core.cache import CandidateCache
from roofline.core.config import DEFAULT_CONFIG, CacheConfig, RooflineConfig
from roofline.core.models import (
    Coordinate,
    CorrectionResult,
    FeatureType,
    FootprintCandidate,
    PlaneOrientation,
    ReferenceMeasurement,
    ResolvedFootprint,
    RoofTopology,
)
from roofline.core.schema import RoofInput, load_input
from roofline.correction.engine import SelfCorrectionEngine
from roofline.footprint.resolver import FootprintResolver
from roofline.footprint.scoring import combined_confidence
from roofline.footprint.sources import FootprintSource
from roofline.geometry.validator import GeometryValidator
from roofline.geometry.wkt import (
    feature_to_wkt,
    features_to_wkt,
    footprint_to_wkt,
    plane_line_to_wkt,
    plane_polygon_from_wkt,
)
from roofline.topology.builder import TopologyBuilder
from roofline.topology.skeleton import straight_skeleton
from roofline.validation.linear import LinearFeatureValidator

logger = logging.getLogger("roofline.api")

_candidate_caches: dict[CacheConfig, CandidateCache] = {}


def candidate_cache(config: RooflineConfig = DEFAULT_CONFIG) -> Optional[CandidateCache]:
    """Process-wide candidate cache for *config*, or None when caching is off."""
    if not config.cache.enabled:
        return None
    cache = _candidate_caches.get(config.cache)
    if cache is None:
        cache = _candidate_caches[config.cache] = CandidateCache.from_config(config.cache)
    return cache


def clear_candidate_cache() -> None:
    for cache in _candidate_caches.values():
        cache.invalidate()


def _resolver(config: RooflineConfig) -> FootprintResolver:
    return FootprintResolver(config, cache=candidate_cache(config))


# ── Result Containers ───────────────────────────────────────────────────


class RoofAnalysisResult(dict):
    """Pipeline output as a JSON-ready dict with a readable ``__repr__``.

    The final :class:`RoofTopology` and the :class:`CorrectionResult` are
    kept as attributes, outside the dict.
    """

    topology: Optional[RoofTopology] = None
    correction: Optional[CorrectionResult] = None

    def __repr__(self) -> str:
        return (
            f"<RoofAnalysisResult status={self.get('status', '?')} "
            f"confidence={self.get('confidence', 0):.2f} "
            f"corrections={len(self.get('corrections', []))}>"
        )

    @property
    def is_blocked(self) -> bool:
        return self.get("status") == "blocked"

    def summary(self) -> str:
        """Return a human-readable summary string."""
        counts = self.get("counts", {})
        ridge = self.get("ridge_direction", {})
        lines = [
            "🏠 Roofline Analysis Results",
            f"   Building:       {self.get('building_id', '?')}",
            f"   Status:         {self.get('status', '?')}",
            f"   Footprint from: {self.get('source', '?')}",
            f"   Plan area:      {self.get('area_sqft', 0):,.0f} sq ft",
            f"   Perimeter:      {self.get('perimeter_ft', 0):,.0f} ft",
            f"   Confidence:     {self.get('confidence', 0):.2f}",
            f"   Ridge bearing:  {ridge.get('bearing_deg', 0):.0f}° ({ridge.get('source', '?')})",
            "   Roof lines:     " + ", ".join(f"{n} {k}" for k, n in counts.items()),
        ]
        corrections = self.get("corrections", [])
        if corrections:
            lines.append(f"   Corrections ({len(corrections)}):")
            for c in corrections:
                lines.append(f"     • {c['type']}: {c['reason']}")
        blocking = self.get("blocking_errors", [])
        if blocking:
            lines.append(f"   Blocking errors ({len(blocking)}):")
            for e in blocking:
                lines.append(f"     ✖ {e['type']}: {e['detail']}")
        warnings = self.get("warnings", [])
        if warnings:
            lines.append(f"   Warnings ({len(warnings)}):")
            for w in warnings:
                lines.append(f"     ⚠ {w}")
        return "\n".join(lines)

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self, indent=indent, default=str)


class FootprintReport(dict):
    """Footprint resolution and geometry checks, without topology."""

    resolved: Optional[ResolvedFootprint] = None

    def __repr__(self) -> str:
        return f"<FootprintReport source={self.get('source', '?')} valid={self.get('valid', '?')}>"

    def summary(self) -> str:
        lines = [
            "🔍 Footprint Validation",
            f"   Source:       {self.get('source', '?')}",
            f"   Vertices:     {self.get('vertex_count', '?')}",
            f"   Area:         {self.get('area_sqft', 0):,.0f} sq ft",
            f"   Perimeter:    {self.get('perimeter_ft', 0):,.0f} ft",
            f"   Aspect ratio: {self.get('aspect_ratio', 0):.2f}",
            f"   Compactness:  {self.get('compactness', 0):.2f}",
            f"   Confidence:   {self.get('confidence', 0):.2f}",
        ]
        for e in self.get("errors", []):
            lines.append(f"   ✖ {e}")
        for w in self.get("warnings", []):
            lines.append(f"   ⚠ {w}")
        return "\n".join(lines)


# ── Public API ──────────────────────────────────────────────────────────


def resolve_footprint(
    candidates: Sequence[FootprintCandidate] = (),
    *,
    reference: Optional[ReferenceMeasurement] = None,
    sources: Sequence[FootprintSource] = (),
    location: Optional[Coordinate] = None,
    config: RooflineConfig = DEFAULT_CONFIG,
) -> FootprintReport:
    """Resolve the footprint and run the geometry validator on it."""
    resolved = _resolver(config).resolve(candidates, reference, sources, location)
    geometry = GeometryValidator(config.geometry).validate(resolved.footprint, resolved.source)
    report = FootprintReport(
        source=resolved.source,
        fallback_used=resolved.fallback_used,
        vertex_count=geometry.vertex_count,
        area_sqft=resolved.validation.metrics.area_sqft,
        perimeter_ft=geometry.perimeter_ft,
        aspect_ratio=geometry.aspect_ratio,
        compactness=geometry.compactness,
        rectangular_fallback=geometry.is_rectangular_fallback,
        confidence=combined_confidence(resolved.confidence, geometry.confidence),
        valid=resolved.validation.is_valid and geometry.is_valid,
        errors=[e.message for e in resolved.validation.errors] + [e.message for e in geometry.errors],
        warnings=_dedupe(resolved.warnings + geometry.warnings),
        unavailable_sources=list(resolved.unavailable_sources),
        footprint_wkt=footprint_to_wkt(resolved.footprint),
    )
    report.resolved = resolved
    return report


def analyze_roof(
    candidates: Sequence[FootprintCandidate] = (),
    *,
    reference: Optional[ReferenceMeasurement] = None,
    orientation: Sequence[PlaneOrientation] = (),
    ridge_bearing_deg: Optional[float] = None,
    roof_style: Optional[str] = None,
    sources: Sequence[FootprintSource] = (),
    location: Optional[Coordinate] = None,
    building_id: str = "unknown",
    audit_db: Optional[str | Path] = None,
    config: RooflineConfig = DEFAULT_CONFIG,
) -> RoofAnalysisResult:
    """Run the full roof topology pipeline for one building.

    Parameters
    ----------
    candidates : sequence of FootprintCandidate
        Already-fetched footprint candidates.
    reference : ReferenceMeasurement, optional
        Approximate area / perimeter / bounding box for plausibility scoring.
    orientation : sequence of PlaneOrientation
        Per-plane azimuth samples for ridge-direction consensus.
    ridge_bearing_deg : float, optional
        Manual ridge override (compass bearing).
    roof_style : str, optional
        ``"hip"`` or ``"gable"``.
    sources, location
        Footprint sources to fetch from, and where.
    building_id : str
        Identifier written to the audit trail.
    audit_db : str or Path, optional
        Persist corrections and the run to this SQLite file.

    Returns
    -------
    RoofAnalysisResult

    Raises
    ------
    FootprintUnavailable
        No candidate and no reference bounding box.
    TopologyBuildError
        The footprint cannot be turned into a roof.
    """
    resolved = _resolver(config).resolve(candidates, reference, sources, location)
    geometry = GeometryValidator(config.geometry).validate(resolved.footprint, resolved.source)

    builder = TopologyBuilder(config)
    draft = builder.build(resolved.footprint, orientation, ridge_bearing_deg, roof_style)
    linear = LinearFeatureValidator(config).validate(draft, reference)

    confidence = combined_confidence(resolved.confidence, geometry.confidence, linear.confidence_factor)
    topology = replace(
        draft,
        confidence=confidence,
        features=tuple(replace(f, confidence=confidence) for f in draft.features),
    )

    correction = SelfCorrectionEngine(config).run(topology)
    final = correction.topology
    status = "blocked" if correction.is_blocked else "approved"

    warnings = _dedupe(
        resolved.warnings
        + geometry.warnings
        + [d.message for d in linear.discrepancies]
        + [e.detail for e in correction.remaining_errors if not e.blocking]
    )
    projection = final.projection()
    result = RoofAnalysisResult(
        building_id=building_id,
        status=status,
        source=resolved.source,
        fallback_used=resolved.fallback_used,
        confidence=round(final.confidence, 4),
        area_sqft=resolved.validation.metrics.area_sqft,
        perimeter_ft=geometry.perimeter_ft,
        roof_style=final.roof_style.value,
        ridge_direction={
            "bearing_deg": final.ridge_direction.bearing_deg,
            "source": final.ridge_direction.source.value,
            "agreement": final.ridge_direction.agreement,
        },
        counts={kind.value: len(final.of_type(kind)) for kind in FeatureType},
        features=[
            {
                "id": f.id,
                "type": f.feature_type.value,
                "length_ft": round(f.length, 2),
                "confidence": round(f.confidence, 4),
                "connected_to": list(f.connected_to),
                "wkt": feature_to_wkt(f, projection),
            }
            for f in final.features
        ],
        footprint_wkt=footprint_to_wkt(final.footprint),
        vertex_count=len(final.footprint),
        features_wkt=features_to_wkt(final.features, projection),
        linear={
            "passed": linear.passed,
            "ridge_score": linear.ridge_score,
            "perimeter_coverage": linear.perimeter_coverage,
            "checks_run": list(linear.checks_run),
        },
        corrections=[
            {
                "type": c.correction_type,
                "reason": c.reason,
                "confidence_delta": round(c.confidence_delta, 4),
                "feature_ids": list(c.feature_ids),
                "from_version": c.before.version,
                "to_version": c.after.version,
            }
            for c in correction.corrections
        ],
        blocking_errors=[
            {"type": e.error_type, "detail": e.detail, "feature_ids": list(e.feature_ids)}
            for e in correction.blocking_errors
        ],
        warnings=warnings,
        unavailable_sources=list(resolved.unavailable_sources),
    )
    result.topology = final
    result.correction = correction

    if audit_db is not None:
        from roofline.audit.logger import AuditLogger

        audit = AuditLogger(Path(audit_db))
        try:
            audit.log_corrections(correction.corrections, building_id)
            audit.log_result(result, building_id)
        finally:
            audit.close()

    logger.info(
        "Analysed %s: %s, confidence %.2f, %d correction(s)",
        building_id,
        status,
        final.confidence,
        len(correction.corrections),
    )
    return result


def analyze_input(
    document: RoofInput,
    *,
    ridge_bearing_deg: Optional[float] = None,
    roof_style: Optional[str] = None,
    audit_db: Optional[str | Path] = None,
    config: RooflineConfig = DEFAULT_CONFIG,
) -> RoofAnalysisResult:
    """Run :func:`analyze_roof` over a validated input document; arguments override the document."""
    return analyze_roof(
        document.to_candidates(),
        reference=document.to_reference(),
        orientation=document.to_orientation(),
        ridge_bearing_deg=ridge_bearing_deg if ridge_bearing_deg is not None else document.ridge_bearing_deg,
        roof_style=roof_style or document.roof_style,
        location=document.location.to_coordinate() if document.location else None,
        building_id=document.building_id,
        audit_db=audit_db,
        config=config,
    )


def analyze_file(file_path: str | Path, **kwargs) -> RoofAnalysisResult:
    """Load a JSON input document and analyse it."""
    return analyze_input(load_input(file_path), **kwargs)


def skeleton_lines(polygon_wkt: str, config: RooflineConfig = DEFAULT_CONFIG) -> list[tuple[str, str]]:
    """Typed straight-skeleton edges of a planar WKT polygon as ``(kind, LINESTRING)`` pairs."""
    ring = plane_polygon_from_wkt(polygon_wkt)
    skeleton = straight_skeleton(ring, config.topology.collinear_tolerance_deg)
    return [(e.kind.value, plane_line_to_wkt(e.start, e.end)) for e in skeleton.edges]


def _dedupe(items: Sequence[str]) -> list[str]:
    seen: set[str] = set()
    out = []
    for item in items:
        if item and item not in seen:
            seen.add(item)
            out.append(item)
    return out
