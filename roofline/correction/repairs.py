"""Built-in repair operations, one per detected error type.

All repairs are spatially local and deterministic: they move endpoints to
existing geometry within a bounded radius, split an edge at its midpoint,
or drop a line that connects to nothing or repeats another.
"""

from __future__ import annotations

import logging
from typing import Optional

from roofline.core.config import DEFAULT_CONFIG, RooflineConfig
from roofline.core.models import FeatureType, Footprint, LinearFeature, Point, RoofTopology, TopologyError
from roofline.correction.base import RepairOperation
from roofline.correction.detector import (
    SAME_POINT_FT,
    cluster_groups,
    corner_points,
    duplicate_pairs,
    is_connected,
    nearest,
    valley_end_reaches,
    valley_targets,
)
from roofline.geometry import primitives as geo

logger = logging.getLogger("roofline.correction.repairs")


def next_feature_id(topology: RoofTopology, kind: FeatureType) -> str:
    """First unused ``<kind>-<n>`` id."""
    used = set()
    prefix = f"{kind.value}-"
    for f in topology.features:
        if f.id.startswith(prefix) and f.id[len(prefix):].isdigit():
            used.add(int(f.id[len(prefix):]))
    n = 1
    while n in used:
        n += 1
    return f"{prefix}{n}"


def _midpoint(a: Point, b: Point) -> Point:
    return Point((a.x + b.x) / 2, (a.y + b.y) / 2)


class RemoveDuplicateRepair(RepairOperation):
    """Drop the second of two lines that cover the same span."""

    @property
    def name(self) -> str:
        return "duplicate_feature"

    def execute(self, topology: RoofTopology, error: TopologyError) -> Optional[RoofTopology]:
        if len(error.feature_ids) != 2:
            return None
        keep = topology.feature(error.feature_ids[0])
        drop = topology.feature(error.feature_ids[1])
        if keep is None or drop is None:
            return None
        if not duplicate_pairs([keep, drop], self.cfg.duplicate_tolerance_ft):
            return None
        return self.commit(topology, removed=[drop.id])


class MergeClusterRepair(RepairOperation):
    """Merge endpoints chained within the cluster radius onto one point."""

    @property
    def name(self) -> str:
        return "vertex_cluster"

    def execute(self, topology: RoofTopology, error: TopologyError) -> Optional[RoofTopology]:
        group = next(
            (members for target, members in cluster_groups(topology, self.cfg.cluster_radius_ft)
             if geo.distance(target, error.location) <= SAME_POINT_FT),
            None,
        )
        if group is None:
            return None
        target = error.location

        corners = [q for q in topology.ring if any(geo.distance(q, m) <= SAME_POINT_FT for m in group)]

        def snap(p: Point) -> Point:
            if any(geo.distance(p, q) <= SAME_POINT_FT for q in corners):
                return p
            if any(geo.distance(p, m) <= SAME_POINT_FT for m in group):
                return target
            return p

        moved = []
        for f in topology.features:
            start, end = snap(f.start), snap(f.end)
            if start != f.start or end != f.end:
                moved.append(f.moved(start=start, end=end))
        if not moved:
            return None
        return self.commit(topology, added=moved)


class CloseFacetRepair(RepairOperation):
    """Join two perimeter lines across a small gap."""

    @property
    def name(self) -> str:
        return "unclosed_facet"

    def execute(self, topology: RoofTopology, error: TopologyError) -> Optional[RoofTopology]:
        if len(error.feature_ids) != 2:
            return None
        a = topology.feature(error.feature_ids[0])
        b = topology.feature(error.feature_ids[1])
        if a is None or b is None:
            return None
        gap = geo.distance(a.end, b.start)
        if gap <= self.cfg.closure_min_gap_ft or gap > self.cfg.closure_max_gap_ft:
            return None
        mid = _midpoint(a.end, b.start)
        joint = nearest(mid, topology.ring, self.cfg.closure_max_gap_ft) or mid
        return self.commit(topology, added=[a.moved(end=joint), b.moved(start=joint)])


class ExtendRidgeRepair(RepairOperation):
    """Extend a dangling ridge end to the nearest hip or valley endpoint."""

    def __init__(self, config: RooflineConfig = DEFAULT_CONFIG, endpoint: str = "start"):
        super().__init__(config)
        self.endpoint = endpoint

    @property
    def name(self) -> str:
        return f"disconnected_ridge_{self.endpoint}"

    def execute(self, topology: RoofTopology, error: TopologyError) -> Optional[RoofTopology]:
        ridge = topology.feature(error.feature_ids[0])
        if ridge is None:
            return None
        p = getattr(ridge, self.endpoint)
        if is_connected(topology, ridge, p, self.cfg.connection_tolerance_ft, include_perimeter=True):
            return None
        targets = [
            q
            for f in topology.of_type(FeatureType.HIP, FeatureType.VALLEY)
            for q in f.endpoints
        ]
        target = nearest(p, targets, self.cfg.ridge_extend_radius_ft)
        if target is None:
            return None
        return self.commit(topology, added=[ridge.moved(**{self.endpoint: target})])


class SnapHipRepair(RepairOperation):
    """Snap a hip end that misses its corner onto the nearest corner."""

    @property
    def name(self) -> str:
        return "hip_not_at_corner"

    def execute(self, topology: RoofTopology, error: TopologyError) -> Optional[RoofTopology]:
        hip = topology.feature(error.feature_ids[0])
        if hip is None or error.endpoint is None:
            return None
        tol = self.config.limits.hip_endpoint_tolerance_ft
        if any(geo.distance(p, q) <= tol for p in hip.endpoints for q in topology.ring):
            return None
        corners = corner_points(topology.ring, self.cfg.corner_min_angle_deg, self.cfg.corner_max_angle_deg)
        target = nearest(getattr(hip, error.endpoint), corners, self.cfg.hip_snap_radius_ft)
        if target is None:
            return None
        return self.commit(topology, added=[hip.moved(**{error.endpoint: target})])


class SnapValleyRepair(RepairOperation):
    """Pull a dangling valley end onto the nearest ridge, hip or valley endpoint."""

    @property
    def name(self) -> str:
        return "disconnected_valley"

    def execute(self, topology: RoofTopology, error: TopologyError) -> Optional[RoofTopology]:
        valley = topology.feature(error.feature_ids[0])
        if valley is None or error.endpoint is None:
            return None
        p = getattr(valley, error.endpoint)
        if valley_end_reaches(topology, valley, p, self.cfg.connection_tolerance_ft):
            return None
        target = nearest(p, valley_targets(topology, valley), self.cfg.valley_snap_radius_ft)
        if target is None:
            return None
        return self.commit(topology, added=[valley.moved(**{error.endpoint: target})])


class SplitLongEdgeRepair(RepairOperation):
    """Insert a midpoint vertex into an over-long perimeter edge."""

    @property
    def name(self) -> str:
        return "long_perimeter_edge"

    def execute(self, topology: RoofTopology, error: TopologyError) -> Optional[RoofTopology]:
        edge = topology.feature(error.feature_ids[0])
        if edge is None or edge.length <= self.cfg.long_edge_ft:
            return None
        mid = _midpoint(edge.start, edge.end)
        ring = list(topology.ring)
        n = len(ring)
        index = next(
            (i for i in range(n)
             if geo.distance(ring[i], edge.start) <= SAME_POINT_FT
             and geo.distance(ring[(i + 1) % n], edge.end) <= SAME_POINT_FT),
            None,
        )
        if index is not None:
            ring.insert(index + 1, mid)
        first = edge.moved(end=mid)
        second = LinearFeature(
            id=next_feature_id(topology, edge.feature_type),
            feature_type=edge.feature_type,
            start=mid,
            end=edge.end,
            confidence=edge.confidence,
        )
        footprint = Footprint(vertices=tuple(topology.projection().unproject_all(ring)))
        return self.commit(topology, added=[first, second], ring=tuple(ring), footprint=footprint)


class RemoveOrphanRepair(RepairOperation):
    """Drop an internal line that no longer connects to anything."""

    @property
    def name(self) -> str:
        return "orphan"

    def execute(self, topology: RoofTopology, error: TopologyError) -> Optional[RoofTopology]:
        f = topology.feature(error.feature_ids[0])
        if f is None:
            return None
        tol = self.cfg.connection_tolerance_ft
        if any(is_connected(topology, f, p, tol, include_perimeter=True) for p in f.endpoints):
            return None
        return self.commit(topology, removed=[f.id])
