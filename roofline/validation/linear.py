"""Linear-feature validation: dimensional and connectivity rules for roof lines.

Checks, in order:
1. Length bounds per feature type
2. Ridge length against the building length along the ridge
3. Hip endpoints at a corner and at a ridge end / junction; a junction
   with no ridge end is a warning
4. Valley origin near a reflex corner, and valley ends on a corner or a
   ridge end (warnings only)
5. Ridge chain continuity
6. Primary ridge azimuth against the selected ridge direction
7. Expected hip / valley counts for hip roofs

Discrepancies lower confidence but never block the topology.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from roofline.core.config import DEFAULT_CONFIG, LinearLimits, RooflineConfig
from roofline.core.models import (
    FeatureType,
    LinearFeature,
    ReferenceMeasurement,
    RoofStyle,
    RoofTopology,
    Severity,
)
from roofline.footprint.scoring import relative_difference
from roofline.geometry import primitives as geo

logger = logging.getLogger("roofline.validation.linear")

LENGTH_EPSILON_FT = 1e-6
COLLINEAR_DEG = 10.0


@dataclass(frozen=True)
class Discrepancy:
    """One rule a roof line does not satisfy."""

    code: str
    message: str
    severity: Severity = Severity.MINOR
    feature_ids: tuple[str, ...] = ()


@dataclass
class LinearValidationReport:
    """Pass/fail verdict plus every discrepancy found."""

    passed: bool = True
    checks_run: list[str] = field(default_factory=list)
    discrepancies: list[Discrepancy] = field(default_factory=list)
    ridge_score: float = 100.0
    expected_ridge_ft: Optional[float] = None
    perimeter_coverage: float = 1.0

    @property
    def errors(self) -> list[Discrepancy]:
        return [d for d in self.discrepancies if d.severity != Severity.MINOR]

    @property
    def warnings(self) -> list[Discrepancy]:
        return [d for d in self.discrepancies if d.severity == Severity.MINOR]

    @property
    def confidence_factor(self) -> float:
        """Multiplier in [0.5, 1] fed into the overall confidence."""
        return max(0.5, 1.0 - 0.05 * len(self.errors) - 0.02 * len(self.warnings))

    def add(self, discrepancy: Discrepancy) -> None:
        self.discrepancies.append(discrepancy)
        if discrepancy.severity != Severity.MINOR:
            self.passed = False


def building_extent(ring, axis) -> tuple[float, float]:
    """Length of the ring along *axis* and across it."""
    u = geo.unit(axis[0], axis[1])
    along = [p[0] * u.x + p[1] * u.y for p in ring]
    across = [-p[0] * u.y + p[1] * u.x for p in ring]
    return max(along) - min(along), max(across) - min(across)


def expected_ridge_length(topology: RoofTopology) -> float:
    """Hip roofs lose half the width at each end; gables run the full length."""
    length, width = building_extent(topology.ring, topology.ridge_direction.vector)
    if topology.roof_style == RoofStyle.GABLE:
        return length
    return max(length - width, 0.0)


class LinearFeatureValidator:
    """Validate the ridges, hips and valleys of a topology.

    Usage::

        report = LinearFeatureValidator().validate(topology)
        if not report.passed:
            for d in report.discrepancies:
                print(d.code, d.message)
    """

    def __init__(self, config: RooflineConfig = DEFAULT_CONFIG):
        self.config = config
        self.limits: LinearLimits = config.limits

    def validate(
        self,
        topology: RoofTopology,
        reference: Optional[ReferenceMeasurement] = None,
    ) -> LinearValidationReport:
        report = LinearValidationReport()
        self._check_lengths(topology, report)
        self._check_ridge_ratio(topology, report)
        self._check_hips(topology, report)
        self._check_valleys(topology, report)
        discontinuous = self._check_continuity(topology, report)
        self._check_azimuth(topology, report)
        if topology.roof_style == RoofStyle.HIP:
            self._check_counts(topology, report)
        self.perimeter_consistency(topology, reference, report)

        ridge_warnings = sum(
            1 for d in report.discrepancies if d.code.startswith("ridge") and d.code != "ridge_gap"
        )
        report.ridge_score = max(0.0, 100.0 - 5.0 * ridge_warnings - (10.0 if discontinuous else 0.0))

        if report.discrepancies:
            logger.info(
                "Linear validation: %d error(s), %d warning(s), ridge score %.0f",
                len(report.errors),
                len(report.warnings),
                report.ridge_score,
            )
        return report

    # ── dimensional ─────────────────────────────────────────────────

    def _bounds(self, kind: FeatureType) -> tuple[float, float]:
        lim = self.limits
        return {
            FeatureType.RIDGE: (lim.ridge_min_ft, lim.ridge_max_ft),
            FeatureType.HIP: (lim.hip_min_ft, lim.hip_max_ft),
            FeatureType.VALLEY: (lim.valley_min_ft, lim.valley_max_ft),
        }[kind]

    def _check_lengths(self, topology: RoofTopology, report: LinearValidationReport) -> None:
        report.checks_run.append("length_bounds")
        for f in topology.of_type(FeatureType.RIDGE, FeatureType.HIP, FeatureType.VALLEY):
            low, high = self._bounds(f.feature_type)
            if f.length < low - LENGTH_EPSILON_FT or f.length > high + LENGTH_EPSILON_FT:
                report.add(Discrepancy(
                    f"{f.feature_type.value}_length",
                    f"{f.id} is {f.length:.1f} ft (expected {low:g}-{high:g} ft)",
                    Severity.MODERATE,
                    (f.id,),
                ))

    def _check_ridge_ratio(self, topology: RoofTopology, report: LinearValidationReport) -> None:
        report.checks_run.append("ridge_ratio")
        ridges = topology.ridges
        expected = expected_ridge_length(topology)
        report.expected_ridge_ft = expected
        if not ridges or expected <= LENGTH_EPSILON_FT:
            return
        ratio = topology.total_length(FeatureType.RIDGE) / expected
        if not self.limits.ridge_length_ratio_min <= ratio <= self.limits.ridge_length_ratio_max:
            report.add(Discrepancy(
                "ridge_ratio",
                f"Ridge length is {ratio:.2f}x the expected {expected:.1f} ft",
                Severity.MINOR,
                tuple(r.id for r in ridges),
            ))

    # ── connectivity ────────────────────────────────────────────────

    def _check_hips(self, topology: RoofTopology, report: LinearValidationReport) -> None:
        report.checks_run.append("hip_connectivity")
        tol = self.limits.hip_endpoint_tolerance_ft
        internal = topology.of_type(FeatureType.RIDGE, FeatureType.HIP, FeatureType.VALLEY)
        ridge_ends = [q for r in topology.ridges for q in r.endpoints]
        for hip in topology.hips:
            at_corner = [near_any(p, topology.ring, tol) for p in hip.endpoints]
            at_junction = [
                any(geo.distance(p, q) <= tol for f in internal if f.id != hip.id for q in f.endpoints)
                for p in hip.endpoints
            ]
            ok = (at_corner[0] and at_junction[1]) or (at_corner[1] and at_junction[0])
            if not ok:
                report.add(Discrepancy(
                    "hip_connectivity",
                    f"{hip.id} does not run from a corner to a ridge end or junction",
                    Severity.MODERATE,
                    (hip.id,),
                ))
            elif not any(near_any(p, ridge_ends, tol) for p in hip.endpoints):
                report.add(Discrepancy(
                    "hip_junction",
                    f"{hip.id} meets other lines away from any ridge end",
                    Severity.MINOR,
                    (hip.id,),
                ))

    def _check_valleys(self, topology: RoofTopology, report: LinearValidationReport) -> None:
        report.checks_run.append("valley_origin")
        reflex = [p for p, r in zip(topology.ring, geo.reflex_flags(topology.ring)) if r]
        tol = self.limits.valley_reflex_tolerance_ft
        end_tol = self.limits.hip_endpoint_tolerance_ft
        anchors = list(topology.ring) + [q for r in topology.ridges for q in r.endpoints]
        for valley in topology.valleys:
            if not any(near_any(p, reflex, tol) for p in valley.endpoints):
                report.add(Discrepancy(
                    "valley_origin",
                    f"{valley.id} does not start at a reflex corner",
                    Severity.MINOR,
                    (valley.id,),
                ))
            if not all(near_any(p, anchors, end_tol) for p in valley.endpoints):
                report.add(Discrepancy(
                    "valley_junction",
                    f"{valley.id} ends away from any ridge end or corner",
                    Severity.MINOR,
                    (valley.id,),
                ))

    def _check_continuity(self, topology: RoofTopology, report: LinearValidationReport) -> bool:
        report.checks_run.append("ridge_continuity")
        ridges = topology.ridges
        found = False
        for i, a in enumerate(ridges):
            for b in ridges[i + 1:]:
                if geo.axis_angle_deg(_vector(a), _vector(b)) > COLLINEAR_DEG:
                    continue
                gap = min(geo.distance(p, q) for p in a.endpoints for q in b.endpoints)
                if self.limits.continuity_gap_ft < gap < self.limits.continuity_search_ft:
                    found = True
                    report.add(Discrepancy(
                        "ridge_gap",
                        f"Gap of {gap:.1f} ft between {a.id} and {b.id}",
                        Severity.MODERATE,
                        (a.id, b.id),
                    ))
        return found

    def _check_azimuth(self, topology: RoofTopology, report: LinearValidationReport) -> None:
        report.checks_run.append("ridge_azimuth")
        ridges = [r for r in topology.ridges if r.length > LENGTH_EPSILON_FT]
        if not ridges:
            return
        primary = max(ridges, key=lambda r: r.length)
        deviation = geo.axis_angle_deg(topology.ridge_direction.vector, _vector(primary))
        if deviation > self.limits.azimuth_deviation_deg:
            report.add(Discrepancy(
                "ridge_azimuth",
                f"{primary.id} deviates {deviation:.0f} deg from the ridge direction",
                Severity.MINOR,
                (primary.id,),
            ))

    def _check_counts(self, topology: RoofTopology, report: LinearValidationReport) -> None:
        report.checks_run.append("feature_counts")
        flags = geo.reflex_flags(topology.ring)
        convex = flags.count(False)
        reflex = flags.count(True)
        tol = self.limits.hip_endpoint_tolerance_ft
        boundary_hips = [
            h for h in topology.hips if any(near_any(p, topology.ring, tol) for p in h.endpoints)
        ]
        if len(boundary_hips) != convex:
            report.add(Discrepancy(
                "hip_count",
                f"{len(boundary_hips)} corner hip(s) for {convex} convex corner(s)",
            ))
        if len(topology.valleys) != reflex:
            report.add(Discrepancy(
                "valley_count",
                f"{len(topology.valleys)} valley(s) for {reflex} reflex corner(s)",
            ))

    # ── perimeter ───────────────────────────────────────────────────

    def perimeter_consistency(
        self,
        topology: RoofTopology,
        reference: Optional[ReferenceMeasurement] = None,
        report: Optional[LinearValidationReport] = None,
    ) -> LinearValidationReport:
        """Eave + rake coverage of the perimeter and plan area against the reference."""
        report = report if report is not None else LinearValidationReport()
        report.checks_run.append("perimeter_consistency")
        perimeter = topology.perimeter_ft
        covered = topology.total_length(FeatureType.EAVE, FeatureType.RAKE)
        coverage = covered / perimeter if perimeter > 0 else 0.0
        report.perimeter_coverage = coverage
        if coverage < 0.5:
            report.add(Discrepancy(
                "perimeter_coverage",
                f"Low perimeter coverage: eaves and rakes cover {coverage * 100:.0f}%",
                Severity.MODERATE,
            ))
        elif coverage < 0.7:
            report.add(Discrepancy(
                "perimeter_coverage",
                f"Eaves and rakes cover only {coverage * 100:.0f}% of the perimeter",
            ))

        if reference is not None:
            diff = relative_difference(abs(geo.shoelace_area(topology.ring)), reference.area_sqft)
            if diff is not None and diff > 0.20:
                report.add(Discrepancy(
                    "area_variance",
                    f"Plan area differs from reference by {diff * 100:.0f}%",
                    Severity.MODERATE,
                ))
            elif diff is not None and diff > 0.10:
                report.add(Discrepancy(
                    "area_variance",
                    f"Plan area differs from reference by {diff * 100:.0f}%",
                ))

        if len(topology.ring) == 4:
            report.add(Discrepancy(
                "simplified_footprint",
                "Simplified footprint: 4 vertices, corners may be missing",
            ))
        return report


def near_any(p, points, tolerance: float) -> bool:
    return any(geo.distance(p, q) <= tolerance for q in points)


def _vector(f: LinearFeature) -> tuple[float, float]:
    return (f.end.x - f.start.x, f.end.y - f.start.y)
