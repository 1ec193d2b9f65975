"""Geometry validator: measures a footprint and scores its geometric confidence.

The validator:
1. Projects the ring into the local plane and measures area / perimeter
2. Derives aspect ratio and compactness
3. Looks for degenerate short edges and self-intersections
4. Multiplies a confidence score down by every independent problem found
5. Applies the source reliability multiplier and clamps to [0, 1]
"""

from __future__ import annotations

import logging
from typing import Sequence

from roofline.core.config import GeometryPolicy
from roofline.core.models import Coordinate, Footprint, GeometryReport, Severity, ValidationFailure
from roofline.geometry import primitives as geo

logger = logging.getLogger("roofline.geometry.validator")

BBOX_SOURCES = frozenset({"bbox_fallback", "solar_bbox"})


class GeometryValidator:
    """Pure, deterministic geometric checks over a footprint.

    Usage::

        v = GeometryValidator()
        report = v.validate(footprint, source="osm_buildings")
        if not report.is_valid:
            print(report.errors)
    """

    def __init__(self, policy: GeometryPolicy | None = None):
        self.policy = policy or GeometryPolicy()

    def validate(self, footprint: Footprint, source: str = "manual") -> GeometryReport:
        """Measure *footprint* and compute its confidence.

        Parameters
        ----------
        footprint : Footprint
            Ring to validate.
        source : str
            Provenance tag used for the reliability multiplier.

        Returns
        -------
        GeometryReport
            Metrics, errors, warnings and the clamped confidence.
        """
        p = self.policy
        coords = footprint.vertices
        points = geo.LocalProjection.for_coordinates(coords).project_all(coords)

        errors: list[ValidationFailure] = []
        warnings: list[str] = []
        confidence = 1.0

        n = len(coords)
        area = abs(geo.shoelace_area(points))
        perimeter = geo.perimeter_ft(coords)
        aspect = geo.aspect_ratio(coords)
        comp = geo.compactness(area, perimeter)

        if n < 4:
            confidence *= p.few_vertices_factor
            warnings.append(f"Only {n} vertices; footprint is likely oversimplified")

        if area < p.min_area_error_sqft:
            errors.append(ValidationFailure(
                "area_too_small", f"Area {area:.0f} sq ft below {p.min_area_error_sqft:.0f}", Severity.SEVERE,
            ))
            confidence *= p.area_error_factor
        elif area < p.min_area_warning_sqft:
            warnings.append(f"Small footprint: {area:.0f} sq ft")
            confidence *= p.area_warning_factor
        elif area > p.max_area_error_sqft:
            errors.append(ValidationFailure(
                "area_too_large", f"Area {area:.0f} sq ft above {p.max_area_error_sqft:.0f}", Severity.SEVERE,
            ))
            confidence *= p.area_error_factor
        elif area > p.max_area_warning_sqft:
            warnings.append(f"Large footprint: {area:.0f} sq ft")
            confidence *= p.area_warning_factor

        if aspect < p.min_aspect_ratio or aspect > p.max_aspect_ratio:
            warnings.append(f"Extreme aspect ratio: {aspect:.2f}")
            confidence *= p.aspect_factor

        if comp < p.min_compactness:
            warnings.append(f"Low compactness: {comp:.2f}")
            confidence *= p.compactness_factor

        short_edges = sum(1 for length in geo.edge_lengths(points) if length < p.short_edge_ft)
        if short_edges:
            warnings.append(f"{short_edges} edge(s) shorter than {p.short_edge_ft:g} ft")
            confidence *= max(p.short_edge_floor, 1.0 - p.short_edge_step * short_edges)

        crossings = geo.find_self_intersections(points)
        if crossings:
            errors.append(ValidationFailure(
                "self_intersection",
                f"Ring crosses itself at {len(crossings)} edge pair(s)",
                Severity.SEVERE,
            ))
            confidence *= p.self_intersection_factor

        rectangular = is_rectangular_fallback(points, source, p.rectangle_angle_tolerance_deg)
        if source in BBOX_SOURCES:
            warnings.append("Bounding-box fallback geometry; area may be over-estimated")
        elif source == "ai_vision":
            warnings.append("Footprint traced by AI vision; verify corners")

        confidence *= p.reliability(source)
        confidence = max(0.0, min(1.0, confidence))

        if errors:
            logger.warning(
                "Footprint from %s failed %d geometry check(s): %s",
                source, len(errors), "; ".join(e.message for e in errors),
            )

        return GeometryReport(
            area_sqft=area,
            perimeter_ft=perimeter,
            vertex_count=n,
            aspect_ratio=aspect,
            compactness=comp,
            short_edge_count=short_edges,
            self_intersections=crossings,
            is_rectangular_fallback=rectangular,
            confidence=confidence,
            errors=errors,
            warnings=warnings,
        )


def is_rectangular_fallback(
    points: Sequence[Sequence[float]],
    source: str = "",
    tolerance_deg: float = 10.0,
) -> bool:
    """True for bounding-box sources or 4-vertex rings with all corners near 90°."""
    if source in BBOX_SOURCES:
        return True
    if len(points) != 4:
        return False
    ring = geo.ensure_ccw(points)
    return all(abs(a - 90.0) <= tolerance_deg for a in geo.interior_angles(ring))


def validate_coordinates(coords: Sequence[Coordinate], source: str = "manual") -> GeometryReport:
    """Convenience wrapper validating a raw coordinate ring with the default policy."""
    return GeometryValidator().validate(Footprint.from_ring(coords), source=source)
