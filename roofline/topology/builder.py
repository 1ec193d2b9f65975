"""Topology builder: footprint → ridge direction, internal roof lines, eaves and rakes.

Steps:
1. Project the footprint to the local plane and classify corners convex / reflex
2. Run the straight skeleton to get ridges, hips and valleys
3. Optionally turn hip ends into gable ends
4. Select the ridge direction (manual > orientation consensus > skeleton)
5. Classify every boundary edge as eave or rake relative to that direction
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from roofline.core.config import DEFAULT_CONFIG, RooflineConfig
from roofline.core.exceptions import InputError, SkeletonError, TopologyBuildError
from roofline.core.models import (
    FeatureType,
    Footprint,
    LinearFeature,
    PlaneOrientation,
    Point,
    RoofStyle,
    RoofTopology,
)
from roofline.geometry import primitives as geo
from roofline.topology.orientation import select_ridge_direction
from roofline.topology.skeleton import Skeleton, straight_skeleton

logger = logging.getLogger("roofline.topology.builder")

NODE_TOLERANCE_FT = 1e-6


def classify_vertices(ring: Sequence[Sequence[float]]) -> list[str]:
    """``"convex"`` or ``"reflex"`` for every vertex of a ring."""
    return ["reflex" if r else "convex" for r in geo.reflex_flags(ring)]


def link_features(features: Sequence[LinearFeature], tolerance: float) -> list[LinearFeature]:
    """Fill ``connected_to`` of internal features with the ids of lines sharing an endpoint."""
    linked = []
    for f in features:
        if not f.feature_type.is_internal:
            linked.append(f)
            continue
        touching = tuple(
            other.id
            for other in features
            if other.id != f.id
            and any(geo.distance(p, q) <= tolerance for p in f.endpoints for q in other.endpoints)
        )
        linked.append(f if touching == f.connected_to else LinearFeature(
            f.id, f.feature_type, f.start, f.end, f.confidence, touching,
        ))
    return linked


def gable_ends(ring: Sequence[Point], features: Sequence[LinearFeature], tolerance: float) -> list[Point]:
    """Ridge endpoints that no hip, valley or other ridge reaches."""
    ends = []
    internal = [f for f in features if f.feature_type.is_internal]
    for ridge in (f for f in internal if f.feature_type == FeatureType.RIDGE):
        for p in ridge.endpoints:
            served = any(
                geo.distance(p, q) <= tolerance
                for other in internal
                if other.id != ridge.id
                for q in other.endpoints
            )
            if not served:
                ends.append(p)
    return ends


class TopologyBuilder:
    """Derive a :class:`RoofTopology` from a resolved footprint.

    Usage::

        builder = TopologyBuilder()
        topology = builder.build(footprint, ridge_bearing_deg=90.0)
        print(len(topology.ridges), len(topology.hips), len(topology.valleys))
    """

    def __init__(self, config: RooflineConfig = DEFAULT_CONFIG):
        self.config = config
        self.cfg = config.topology

    def build(
        self,
        footprint: Footprint,
        orientation: Sequence[PlaneOrientation] = (),
        ridge_bearing_deg: Optional[float] = None,
        roof_style: Optional[str] = None,
        confidence: float = 1.0,
    ) -> RoofTopology:
        """Build version 0 of the roof topology.

        Parameters
        ----------
        footprint : Footprint
            Resolved footprint.
        orientation : sequence of PlaneOrientation
            Optional per-plane azimuth samples.
        ridge_bearing_deg : float, optional
            Manual ridge override as a compass bearing.
        roof_style : str, optional
            ``"hip"`` or ``"gable"``; defaults to the configured style.
        confidence : float
            Starting confidence carried by the topology and its features.

        Raises
        ------
        TopologyBuildError
            The ring self-intersects or the skeleton cannot be computed.
        """
        try:
            style = RoofStyle(roof_style or self.cfg.roof_style)
        except ValueError as exc:
            raise InputError(f"Unknown roof style: {roof_style!r}") from exc

        projection = geo.LocalProjection.for_coordinates(footprint.vertices)
        ring = geo.ensure_ccw(projection.project_all(footprint.vertices))
        crossings = geo.find_self_intersections(ring)
        if crossings:
            raise TopologyBuildError(f"Footprint self-intersects at edge pairs {crossings}")

        try:
            skeleton = straight_skeleton(ring, self.cfg.collinear_tolerance_deg)
        except (InputError, SkeletonError) as exc:
            raise TopologyBuildError(f"Straight skeleton failed: {exc}") from exc

        internal = self._internal_features(skeleton, confidence)
        if style == RoofStyle.GABLE:
            internal = self._to_gables(ring, internal)

        direction = select_ridge_direction(
            ring,
            [(f.start, f.end) for f in internal if f.feature_type == FeatureType.RIDGE],
            orientation,
            ridge_bearing_deg,
            self.cfg.consensus_min_agreement,
        )
        gables = gable_ends(ring, internal, self.cfg.hip_connection_ft)
        boundary = self._boundary_features(ring, direction.vector, gables, confidence)
        features = link_features(internal + boundary, self.cfg.hip_connection_ft)

        topology = RoofTopology(
            footprint=footprint,
            origin=projection.origin,
            ring=tuple(ring),
            ridge_direction=direction,
            features=tuple(features),
            confidence=confidence,
            roof_style=style,
        )
        logger.info(
            "Built %s topology: %d ridge(s), %d hip(s), %d valley(s), %d eave(s), %d rake(s); ridge from %s",
            style.value,
            len(topology.ridges),
            len(topology.hips),
            len(topology.valleys),
            len(topology.eaves),
            len(topology.rakes),
            direction.source.value,
        )
        return topology

    # ── internal lines ──────────────────────────────────────────────

    @staticmethod
    def _internal_features(skeleton: Skeleton, confidence: float) -> list[LinearFeature]:
        counters = {FeatureType.RIDGE: 0, FeatureType.HIP: 0, FeatureType.VALLEY: 0}
        features = []
        order = {FeatureType.RIDGE: 0, FeatureType.HIP: 1, FeatureType.VALLEY: 2}
        for edge in sorted(skeleton.edges, key=lambda e: order[e.kind]):
            counters[edge.kind] += 1
            features.append(LinearFeature(
                id=f"{edge.kind.value}-{counters[edge.kind]}",
                feature_type=edge.kind,
                start=edge.start,
                end=edge.end,
                confidence=confidence,
            ))
        return features

    def _to_gables(self, ring: Sequence[Point], internal: list[LinearFeature]) -> list[LinearFeature]:
        """Replace hip pairs closing a ridge end with a ridge running out to the wall."""
        tol = self.cfg.hip_connection_ft
        n = len(ring)
        features = list(internal)

        def ring_index(p: Point) -> Optional[int]:
            for i, q in enumerate(ring):
                if geo.distance(p, q) <= tol:
                    return i
            return None

        for ridge_id in [f.id for f in features if f.feature_type == FeatureType.RIDGE]:
            for end in ("start", "end"):
                ridge = next(f for f in features if f.id == ridge_id)
                tip = getattr(ridge, end)
                at_tip = [
                    f for f in features
                    if f.id != ridge_id and any(geo.distance(tip, p) <= tol for p in f.endpoints)
                ]
                if len(at_tip) != 2 or any(f.feature_type != FeatureType.HIP for f in at_tip):
                    continue
                corners = [h.start if geo.distance(h.end, tip) <= tol else h.end for h in at_tip]
                idx = [ring_index(c) for c in corners]
                if None in idx or (idx[0] - idx[1]) % n not in (1, n - 1):
                    continue
                a, b = ring[idx[0]], ring[idx[1]]
                wall_mid = Point((a.x + b.x) / 2, (a.y + b.y) / 2)
                gone = {h.id for h in at_tip}
                features = [
                    f.moved(**{end: wall_mid}) if f.id == ridge_id else f
                    for f in features
                    if f.id not in gone
                ]
                logger.debug("Gable end on wall %d-%d for %s", idx[0], idx[1], ridge_id)
        return features

    # ── boundary ────────────────────────────────────────────────────

    def _boundary_features(
        self,
        ring: Sequence[Point],
        ridge: Point,
        gables: Sequence[Point],
        confidence: float,
    ) -> list[LinearFeature]:
        cfg = self.cfg
        n = len(ring)
        counters = {FeatureType.EAVE: 0, FeatureType.RAKE: 0}
        features = []
        for i in range(n):
            a, b = ring[i], ring[(i + 1) % n]
            if geo.distance(a, b) <= NODE_TOLERANCE_FT:
                continue
            angle = geo.axis_angle_deg(ridge, (b.x - a.x, b.y - a.y))
            if angle <= cfg.eave_tolerance_deg:
                kind = FeatureType.EAVE
            elif angle >= 90.0 - cfg.rake_tolerance_deg:
                kind = FeatureType.RAKE
            elif any(geo.point_segment_distance(g, a, b) <= cfg.gable_search_ft for g in gables):
                kind = FeatureType.RAKE
            else:
                kind = FeatureType.EAVE
            counters[kind] += 1
            features.append(LinearFeature(
                id=f"{kind.value}-{counters[kind]}",
                feature_type=kind,
                start=a,
                end=b,
                confidence=confidence,
            ))
        return features
