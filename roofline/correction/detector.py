"""Structural error detection over a roof topology.

Errors come back in repair order: duplicate lines first, then vertex
clusters, facet closure, ridge ends, hip ends, valley ends, long perimeter
edges and orphans.  Crossing lines and hip / valley junctions without a
ridge end are reported last; neither is repaired automatically.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from roofline.core.config import DEFAULT_CONFIG, RooflineConfig
from roofline.core.models import FeatureType, LinearFeature, Point, RoofTopology, Severity, TopologyError
from roofline.geometry import primitives as geo

logger = logging.getLogger("roofline.correction.detector")

SAME_POINT_FT = 1e-6
STRAIGHT_TOLERANCE_DEG = 10.0

ERROR_ORDER = (
    "duplicate_feature",
    "vertex_cluster",
    "unclosed_facet",
    "disconnected_ridge_start",
    "disconnected_ridge_end",
    "hip_not_at_corner",
    "disconnected_valley",
    "long_perimeter_edge",
    "orphan",
    "crossing_lines",
    "unanchored_junction",
)


# ── geometric predicates shared with the repairs ─────────────────────────


def corner_points(ring: Sequence[Point], min_angle: float = 45.0, max_angle: float = 315.0) -> list[Point]:
    """Ring vertices that are real corners: not too sharp and not nearly straight."""
    ccw = geo.is_ccw(ring)
    ordered = list(ring) if ccw else list(reversed(ring))
    corners = [
        p
        for p, angle in zip(ordered, geo.interior_angles(ordered))
        if min_angle <= angle <= max_angle and abs(angle - 180.0) > STRAIGHT_TOLERANCE_DEG
    ]
    return corners if ccw else list(reversed(corners))


def nearest(p: Point, candidates: Sequence[Point], radius: float) -> Optional[Point]:
    """Closest candidate within *radius*; the earliest wins on ties."""
    best, best_d = None, radius
    for q in candidates:
        d = geo.distance(p, q)
        if d <= best_d and (best is None or d < best_d):
            best, best_d = q, d
    return best


def other_endpoints(topology: RoofTopology, exclude: str, internal_only: bool = True) -> list[Point]:
    return [
        q
        for f in topology.features
        if f.id != exclude and (f.feature_type.is_internal or not internal_only)
        for q in f.endpoints
    ]


def is_connected(topology: RoofTopology, feature: LinearFeature, p: Point, tolerance: float,
                 include_perimeter: bool = False) -> bool:
    """Endpoint *p* of *feature* touches a ring vertex, another internal line or, optionally, a wall."""
    if any(geo.distance(p, q) <= tolerance for q in topology.ring):
        return True
    if any(geo.distance(p, q) <= tolerance for q in other_endpoints(topology, feature.id)):
        return True
    if include_perimeter:
        n = len(topology.ring)
        return any(
            geo.point_segment_distance(p, topology.ring[i], topology.ring[(i + 1) % n]) <= tolerance
            for i in range(n)
        )
    return False


def cluster_groups(topology: RoofTopology, radius: float) -> list[tuple[Point, list[Point]]]:
    """Groups of distinct feature endpoints chained within *radius*, with their merge target.

    The target is the wall corner inside the group when there is one,
    otherwise the group centroid.  Groups made only of wall corners are
    short walls and are skipped.
    """
    points: list[Point] = []
    for f in topology.features:
        for p in f.endpoints:
            if not any(geo.distance(p, q) <= SAME_POINT_FT for q in points):
                points.append(p)

    parent = list(range(len(points)))

    def find(i: int) -> int:
        while parent[i] != i:
            parent[i] = parent[parent[i]]
            i = parent[i]
        return i

    for i in range(len(points)):
        for j in range(i + 1, len(points)):
            if geo.distance(points[i], points[j]) <= radius:
                parent[find(j)] = find(i)

    groups: dict[int, list[Point]] = {}
    for i, p in enumerate(points):
        groups.setdefault(find(i), []).append(p)

    result = []
    for members in groups.values():
        if len(members) < 2:
            continue
        anchors = [q for q in topology.ring if any(geo.distance(q, m) <= SAME_POINT_FT for m in members)]
        if len(anchors) == len(members):
            continue
        target = anchors[0] if anchors else Point(
            sum(m.x for m in members) / len(members),
            sum(m.y for m in members) / len(members),
        )
        result.append((target, members))
    return result


def duplicate_pairs(features: Sequence[LinearFeature], tolerance: float) -> list[tuple[LinearFeature, LinearFeature]]:
    """Pairs of lines whose ends match within *tolerance*, in either direction."""
    pairs = []
    for i, a in enumerate(features):
        for b in features[i + 1:]:
            same = geo.distance(a.start, b.start) <= tolerance and geo.distance(a.end, b.end) <= tolerance
            flipped = geo.distance(a.start, b.end) <= tolerance and geo.distance(a.end, b.start) <= tolerance
            if same or flipped:
                pairs.append((a, b))
    return pairs


def valley_targets(topology: RoofTopology, valley: LinearFeature) -> list[Point]:
    """Ridge, hip and other valley endpoints a valley may end on."""
    return [
        q
        for f in topology.of_type(FeatureType.RIDGE, FeatureType.HIP, FeatureType.VALLEY)
        if f.id != valley.id
        for q in f.endpoints
    ]


def valley_end_reaches(topology: RoofTopology, valley: LinearFeature, p: Point, tolerance: float) -> bool:
    """Valley end *p* sits on a corner, another roof line end or along a ridge."""
    if any(geo.distance(p, q) <= tolerance for q in topology.ring):
        return True
    if any(geo.distance(p, q) <= tolerance for q in valley_targets(topology, valley)):
        return True
    return any(geo.point_segment_distance(p, r.start, r.end) <= tolerance for r in topology.ridges)


class ErrorDetector:
    """Enumerate auto-fixable and blocking structural errors.

    Usage::

        errors = ErrorDetector().detect(topology)
        for e in errors:
            print(e.error_type, e.severity.value, e.feature_ids)
    """

    def __init__(self, config: RooflineConfig = DEFAULT_CONFIG):
        self.config = config
        self.cfg = config.correction

    def detect(self, topology: RoofTopology) -> list[TopologyError]:
        errors: list[TopologyError] = []
        errors.extend(self.duplicates(topology))
        errors.extend(self.vertex_clusters(topology))
        errors.extend(self.unclosed_facets(topology))
        errors.extend(self.disconnected_ridges(topology))
        errors.extend(self.hips_not_at_corner(topology))
        errors.extend(self.disconnected_valleys(topology))
        errors.extend(self.long_perimeter_edges(topology))
        errors.extend(self.orphans(topology))
        errors.extend(self.crossing_lines(topology))
        errors.extend(self.unanchored_junctions(topology))
        errors.sort(key=lambda e: ERROR_ORDER.index(e.error_type))
        if errors:
            logger.debug("Detected %d error(s) in topology v%d", len(errors), topology.version)
        return errors

    def corners(self, topology: RoofTopology) -> list[Point]:
        return corner_points(topology.ring, self.cfg.corner_min_angle_deg, self.cfg.corner_max_angle_deg)

    # ── duplicates and clusters ─────────────────────────────────────

    def duplicates(self, topology: RoofTopology) -> list[TopologyError]:
        errors = []
        for keep, drop in duplicate_pairs(topology.features, self.cfg.duplicate_tolerance_ft):
            errors.append(TopologyError(
                error_type="duplicate_feature",
                severity=Severity.MINOR,
                location=Point((drop.start.x + drop.end.x) / 2, (drop.start.y + drop.end.y) / 2),
                feature_ids=(keep.id, drop.id),
                auto_fixable=True,
                detail=f"{drop.id} duplicates {keep.id}",
            ))
        return errors

    def vertex_clusters(self, topology: RoofTopology) -> list[TopologyError]:
        errors = []
        for target, members in cluster_groups(topology, self.cfg.cluster_radius_ft):
            ids = tuple(sorted({
                f.id for f in topology.features
                if any(geo.distance(p, m) <= SAME_POINT_FT for p in f.endpoints for m in members)
            }))
            errors.append(TopologyError(
                error_type="vertex_cluster",
                severity=Severity.MINOR,
                location=target,
                feature_ids=ids,
                auto_fixable=True,
                detail=f"{len(members)} endpoints within {self.cfg.cluster_radius_ft:g} ft",
            ))
        return errors

    # ── perimeter ───────────────────────────────────────────────────

    def unclosed_facets(self, topology: RoofTopology) -> list[TopologyError]:
        boundary = topology.of_type(FeatureType.EAVE, FeatureType.RAKE)
        if len(boundary) < 3:
            return [TopologyError(
                error_type="unclosed_facet",
                severity=Severity.SEVERE,
                location=geo.centroid(topology.ring),
                feature_ids=tuple(f.id for f in boundary),
                auto_fixable=False,
                detail="Perimeter has fewer than 3 boundary lines",
            )]
        errors = []
        for a in boundary:
            b = min((f for f in boundary if f.id != a.id), key=lambda f: geo.distance(a.end, f.start))
            gap = geo.distance(a.end, b.start)
            if gap <= self.cfg.closure_min_gap_ft:
                continue
            fixable = gap <= self.cfg.closure_max_gap_ft
            errors.append(TopologyError(
                error_type="unclosed_facet",
                severity=Severity.MODERATE if fixable else Severity.SEVERE,
                location=Point((a.end.x + b.start.x) / 2, (a.end.y + b.start.y) / 2),
                feature_ids=(a.id, b.id),
                auto_fixable=fixable,
                detail=f"Perimeter gap of {gap:.1f} ft between {a.id} and {b.id}",
            ))
        return errors

    def long_perimeter_edges(self, topology: RoofTopology) -> list[TopologyError]:
        errors = []
        for f in topology.of_type(FeatureType.EAVE, FeatureType.RAKE):
            if f.length > self.cfg.long_edge_ft:
                errors.append(TopologyError(
                    error_type="long_perimeter_edge",
                    severity=Severity.MODERATE,
                    location=Point((f.start.x + f.end.x) / 2, (f.start.y + f.end.y) / 2),
                    feature_ids=(f.id,),
                    auto_fixable=True,
                    detail=f"{f.id} is {f.length:.0f} ft; a corner may be missing",
                ))
        return errors

    # ── internal lines ──────────────────────────────────────────────

    def disconnected_ridges(self, topology: RoofTopology) -> list[TopologyError]:
        tol = self.cfg.connection_tolerance_ft
        errors = []
        for ridge in topology.ridges:
            for end in ("start", "end"):
                p = getattr(ridge, end)
                if is_connected(topology, ridge, p, tol, include_perimeter=True):
                    continue
                targets = [
                    q for f in topology.of_type(FeatureType.HIP, FeatureType.VALLEY) for q in f.endpoints
                ]
                fixable = nearest(p, targets, self.cfg.ridge_extend_radius_ft) is not None
                errors.append(TopologyError(
                    error_type=f"disconnected_ridge_{end}",
                    severity=Severity.MODERATE,
                    location=p,
                    feature_ids=(ridge.id,),
                    auto_fixable=fixable,
                    detail=f"{ridge.id} {end} touches nothing",
                    endpoint=end,
                ))
        return errors

    def hips_not_at_corner(self, topology: RoofTopology) -> list[TopologyError]:
        corner_tol = self.config.limits.hip_endpoint_tolerance_ft
        junction_tol = self.config.topology.hip_connection_ft
        corners = self.corners(topology)
        errors = []
        for hip in topology.hips:
            if any(geo.distance(p, q) <= corner_tol for p in hip.endpoints for q in topology.ring):
                continue
            others = other_endpoints(topology, hip.id)
            free = [
                end for end in ("start", "end")
                if not any(geo.distance(getattr(hip, end), q) <= junction_tol for q in others)
            ]
            if not free:
                continue
            end = min(free, key=lambda e: min(
                (geo.distance(getattr(hip, e), c) for c in corners), default=float("inf"),
            ))
            p = getattr(hip, end)
            fixable = nearest(p, corners, self.cfg.hip_snap_radius_ft) is not None
            errors.append(TopologyError(
                error_type="hip_not_at_corner",
                severity=Severity.SEVERE,
                location=p,
                feature_ids=(hip.id,),
                auto_fixable=fixable,
                detail=f"{hip.id} {end} is not at a corner",
                endpoint=end,
            ))
        return errors

    def orphans(self, topology: RoofTopology) -> list[TopologyError]:
        tol = self.cfg.connection_tolerance_ft
        errors = []
        for f in topology.of_type(FeatureType.RIDGE, FeatureType.HIP, FeatureType.VALLEY):
            if any(is_connected(topology, f, p, tol, include_perimeter=True) for p in f.endpoints):
                continue
            errors.append(TopologyError(
                error_type="orphan",
                severity=Severity.MINOR,
                location=Point((f.start.x + f.end.x) / 2, (f.start.y + f.end.y) / 2),
                feature_ids=(f.id,),
                auto_fixable=True,
                detail=f"{f.id} connects to nothing",
            ))
        return errors

    def disconnected_valleys(self, topology: RoofTopology) -> list[TopologyError]:
        tol = self.cfg.connection_tolerance_ft
        errors = []
        for valley in topology.valleys:
            # Lines that touch nothing at all are orphans.
            if not any(is_connected(topology, valley, p, tol, include_perimeter=True) for p in valley.endpoints):
                continue
            for end in ("start", "end"):
                p = getattr(valley, end)
                if valley_end_reaches(topology, valley, p, tol):
                    continue
                target = nearest(p, valley_targets(topology, valley), self.cfg.valley_snap_radius_ft)
                errors.append(TopologyError(
                    error_type="disconnected_valley",
                    severity=Severity.MODERATE,
                    location=p,
                    feature_ids=(valley.id,),
                    auto_fixable=target is not None,
                    detail=f"{valley.id} {end} reaches no ridge or hip",
                    endpoint=end,
                ))
        return errors

    # ── whole-topology checks ───────────────────────────────────────

    def crossing_lines(self, topology: RoofTopology) -> list[TopologyError]:
        """Roof lines that cross inside both spans; walls among themselves are left to the ring check."""
        errors = []
        features = topology.features
        for i, a in enumerate(features):
            for b in features[i + 1:]:
                if not (a.feature_type.is_internal or b.feature_type.is_internal):
                    continue
                hit = geo.segment_intersection(a.start, a.end, b.start, b.end, self.cfg.crossing_margin)
                if hit is None:
                    continue
                errors.append(TopologyError(
                    error_type="crossing_lines",
                    severity=Severity.SEVERE,
                    location=hit,
                    feature_ids=(a.id, b.id),
                    auto_fixable=False,
                    detail=f"{a.id} crosses {b.id} at ({hit.x:.1f}, {hit.y:.1f})",
                ))
        return errors

    def unanchored_junctions(self, topology: RoofTopology) -> list[TopologyError]:
        """Points where hips or valleys meet with neither a ridge end nor a wall corner.

        A single loose end is a dangling line and is reported by the hip,
        valley or orphan checks instead.
        """
        tol = self.config.limits.hip_endpoint_tolerance_ft
        anchors = list(topology.ring) + [q for r in topology.ridges for q in r.endpoints]
        junctions: list[tuple[Point, list[str]]] = []
        for f in topology.of_type(FeatureType.HIP, FeatureType.VALLEY):
            for p in f.endpoints:
                if any(geo.distance(p, q) <= tol for q in anchors):
                    continue
                for point, ids in junctions:
                    if geo.distance(point, p) <= tol:
                        if f.id not in ids:
                            ids.append(f.id)
                        break
                else:
                    junctions.append((p, [f.id]))

        errors = []
        for point, ids in junctions:
            if len(ids) < 2:
                continue
            errors.append(TopologyError(
                error_type="unanchored_junction",
                severity=Severity.MINOR,
                location=point,
                feature_ids=tuple(sorted(ids)),
                auto_fixable=False,
                detail=f"{len(ids)} lines meet at ({point.x:.1f}, {point.y:.1f}) without a ridge end",
            ))
        return errors
