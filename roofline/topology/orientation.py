"""Ridge-direction selection.

Priority: manual override > orientation-sample consensus > longest
skeleton ridge > longest footprint edge.  Orientation samples vote by the
direction their plane faces: planes facing north or south put the ridge
east-west, planes facing east or west put it north-south.
"""

from __future__ import annotations

import logging
import math
from typing import Optional, Sequence

from roofline.core.exceptions import InputError
from roofline.core.models import PlaneOrientation, Point, RidgeDirection, RidgeSource
from roofline.geometry.primitives import axis_angle_deg, distance, unit

logger = logging.getLogger("roofline.topology.orientation")

EAST_WEST = Point(1.0, 0.0)
NORTH_SOUTH = Point(0.0, 1.0)


def facing_bucket(azimuth_deg: float) -> str:
    """Cardinal bucket of a plane azimuth: N is [315, 45), E [45, 135), S [135, 225), W the rest."""
    az = azimuth_deg % 360.0
    if az >= 315.0 or az < 45.0:
        return "N"
    if az < 135.0:
        return "E"
    if az < 225.0:
        return "S"
    return "W"


def direction_from_bearing(bearing_deg: float) -> Point:
    """Unit vector in the local plane (x east, y north) for a compass bearing."""
    if not math.isfinite(bearing_deg):
        raise InputError(f"Ridge bearing must be finite, got {bearing_deg}")
    rad = math.radians(bearing_deg)
    return Point(math.sin(rad), math.cos(rad))


def orientation_consensus(
    samples: Sequence[PlaneOrientation],
) -> Optional[tuple[Point, float]]:
    """Cardinal ridge axis voted by the samples, with the winning share.

    Votes are weighted by plane area.  Returns ``None`` without usable samples.
    """
    weights = {"N": 0.0, "E": 0.0, "S": 0.0, "W": 0.0}
    for s in samples:
        if s.area_sqft <= 0 or not math.isfinite(s.azimuth_deg):
            continue
        weights[facing_bucket(s.azimuth_deg)] += s.area_sqft
    north_south = weights["N"] + weights["S"]
    east_west = weights["E"] + weights["W"]
    total = north_south + east_west
    if total <= 0:
        return None
    if north_south >= east_west:
        return EAST_WEST, north_south / total
    return NORTH_SOUTH, east_west / total


def align_to_footprint(axis: Point, ring: Sequence[Sequence[float]], max_deviation_deg: float = 45.0) -> Point:
    """Snap a cardinal axis onto the longest footprint edge within *max_deviation_deg*.

    Orientation samples only say north-south or east-west; a rotated
    building should still get a ridge parallel to its own walls.
    """
    best: Optional[Point] = None
    best_length = 0.0
    n = len(ring)
    for i in range(n):
        a, b = ring[i], ring[(i + 1) % n]
        length = distance(a, b)
        if length <= best_length:
            continue
        edge = Point(b[0] - a[0], b[1] - a[1])
        if axis_angle_deg(axis, edge) < max_deviation_deg:
            best, best_length = edge, length
    if best is None:
        return axis
    u = unit(best.x, best.y)
    # Keep the snapped vector pointing the same way as the requested axis.
    if u.x * axis.x + u.y * axis.y < 0:
        u = Point(-u.x, -u.y)
    return u


def longest_edge_direction(ring: Sequence[Sequence[float]]) -> Point:
    n = len(ring)
    i = max(range(n), key=lambda k: distance(ring[k], ring[(k + 1) % n]))
    a, b = ring[i], ring[(i + 1) % n]
    return unit(b[0] - a[0], b[1] - a[1])


def select_ridge_direction(
    ring: Sequence[Sequence[float]],
    ridge_segments: Sequence[tuple[Point, Point]] = (),
    samples: Sequence[PlaneOrientation] = (),
    manual_bearing_deg: Optional[float] = None,
    min_agreement: float = 0.7,
) -> RidgeDirection:
    """Pick the ridge direction by priority.

    Parameters
    ----------
    ring : sequence of (x, y)
        Footprint ring in the local plane.
    ridge_segments : sequence of (start, end)
        Ridge edges from the skeleton.
    samples : sequence of PlaneOrientation
        Per-plane azimuth samples.
    manual_bearing_deg : float, optional
        Compass bearing of a manual ridge override.
    min_agreement : float
        Share the dominant facing bucket must reach for consensus to count.
    """
    if manual_bearing_deg is not None:
        return RidgeDirection(direction_from_bearing(manual_bearing_deg), RidgeSource.MANUAL)

    if samples:
        consensus = orientation_consensus(samples)
        if consensus is not None:
            axis, agreement = consensus
            if agreement >= min_agreement:
                return RidgeDirection(align_to_footprint(axis, ring), RidgeSource.ORIENTATION, agreement)
            logger.info("Orientation samples disagree (%.0f%% agreement); ignoring them", agreement * 100)

    if ridge_segments:
        start, end = max(ridge_segments, key=lambda seg: distance(seg[0], seg[1]))
        if distance(start, end) > 0:
            return RidgeDirection(unit(end.x - start.x, end.y - start.y), RidgeSource.SKELETON)

    return RidgeDirection(longest_edge_direction(ring), RidgeSource.FOOTPRINT)
