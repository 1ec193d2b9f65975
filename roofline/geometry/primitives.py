"""Geometry primitives: geodesic measures, local projection and planar helpers.

All geographic inputs are :class:`~roofline.core.models.Coordinate` values.
Planar helpers work on ``(x, y)`` sequences in feet, as produced by
:class:`LocalProjection`.  Everything here is pure and deterministic.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Sequence

from roofline.core.exceptions import InputError
from roofline.core.models import Coordinate, Point

EARTH_RADIUS_FT = 20_902_231.0
FT_PER_DEGREE = 364_000.0
M_PER_DEGREE = 111_320.0
EPSILON = 1e-9

# ── Geodesic Measures ───────────────────────────────────────────────────


def haversine_ft(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance between two coordinates in feet."""
    lat1, lat2 = math.radians(a.lat), math.radians(b.lat)
    dlat = lat2 - lat1
    dlng = math.radians(b.lng - a.lng)
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    return 2 * EARTH_RADIUS_FT * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def bearing_deg(a: Coordinate, b: Coordinate) -> float:
    """Initial compass bearing from *a* to *b*, in [0, 360)."""
    lat1, lat2 = math.radians(a.lat), math.radians(b.lat)
    dlng = math.radians(b.lng - a.lng)
    y = math.sin(dlng) * math.cos(lat2)
    x = math.cos(lat1) * math.sin(lat2) - math.sin(lat1) * math.cos(lat2) * math.cos(dlng)
    return (math.degrees(math.atan2(y, x)) + 360.0) % 360.0


def perimeter_ft(coords: Sequence[Coordinate]) -> float:
    """Closed-ring perimeter as the sum of haversine edge lengths."""
    n = len(coords)
    return sum(haversine_ft(coords[i], coords[(i + 1) % n]) for i in range(n))


def area_sqft(coords: Sequence[Coordinate]) -> float:
    """Plan area of a closed ring via the Shoelace formula on the local plane."""
    projection = LocalProjection.for_coordinates(coords)
    return abs(shoelace_area(projection.project_all(coords)))


def compactness(area: float, perimeter: float) -> float:
    """Isoperimetric quotient ``4πA / P²``; 1.0 for a circle."""
    if perimeter <= 0:
        return 0.0
    return 4.0 * math.pi * area / (perimeter * perimeter)


def aspect_ratio(coords: Sequence[Coordinate]) -> float:
    """Bounding-box width / height, both measured in feet."""
    lats = [c.lat for c in coords]
    lngs = [c.lng for c in coords]
    mid_lat = (min(lats) + max(lats)) / 2
    width = haversine_ft(Coordinate(mid_lat, min(lngs)), Coordinate(mid_lat, max(lngs)))
    height = haversine_ft(Coordinate(min(lats), min(lngs)), Coordinate(max(lats), min(lngs)))
    if height <= EPSILON:
        return math.inf if width > EPSILON else 1.0
    return width / height


def span_ratios(coords: Sequence[Coordinate], reference_box_m: float = 100.0) -> tuple[float, float]:
    """East-west and north-south extent as fractions of a reference box."""
    lats = [c.lat for c in coords]
    lngs = [c.lng for c in coords]
    mid_lat = math.radians((min(lats) + max(lats)) / 2)
    span_x = (max(lngs) - min(lngs)) * M_PER_DEGREE * math.cos(mid_lat)
    span_y = (max(lats) - min(lats)) * M_PER_DEGREE
    return span_x / reference_box_m, span_y / reference_box_m


def longest_edge_ft(coords: Sequence[Coordinate]) -> float:
    n = len(coords)
    return max(haversine_ft(coords[i], coords[(i + 1) % n]) for i in range(n))


# ── Local Projection ────────────────────────────────────────────────────


@dataclass(frozen=True)
class LocalProjection:
    """Equirectangular tangent plane anchored at *origin*, in feet.

    Latitude maps to ``y`` at 364,000 ft per degree; longitude maps to ``x``
    with the same scale multiplied by ``cos(origin latitude)``.

    Usage::

        proj = LocalProjection.for_coordinates(footprint.vertices)
        points = proj.project_all(footprint.vertices)
        coord = proj.unproject(points[0])
    """

    origin: Coordinate

    @classmethod
    def for_coordinates(cls, coords: Sequence[Coordinate]) -> "LocalProjection":
        """Projection anchored at the mean position of *coords*."""
        if not coords:
            raise InputError("Cannot anchor a projection on an empty ring")
        lat = sum(c.lat for c in coords) / len(coords)
        lng = sum(c.lng for c in coords) / len(coords)
        return cls(Coordinate(lat, lng))

    @property
    def x_scale(self) -> float:
        return FT_PER_DEGREE * math.cos(math.radians(self.origin.lat))

    def project(self, coord: Coordinate) -> Point:
        return Point(
            (coord.lng - self.origin.lng) * self.x_scale,
            (coord.lat - self.origin.lat) * FT_PER_DEGREE,
        )

    def project_all(self, coords: Sequence[Coordinate]) -> list[Point]:
        return [self.project(c) for c in coords]

    def unproject(self, point: Sequence[float]) -> Coordinate:
        return Coordinate(
            lat=self.origin.lat + point[1] / FT_PER_DEGREE,
            lng=self.origin.lng + point[0] / self.x_scale,
        )

    def unproject_all(self, points: Sequence[Sequence[float]]) -> list[Coordinate]:
        return [self.unproject(p) for p in points]


# ── Planar Helpers ──────────────────────────────────────────────────────


def distance(a: Sequence[float], b: Sequence[float]) -> float:
    return math.hypot(b[0] - a[0], b[1] - a[1])


def cross(o: Sequence[float], a: Sequence[float], b: Sequence[float]) -> float:
    """Z component of ``(a - o) × (b - o)``."""
    return (a[0] - o[0]) * (b[1] - o[1]) - (a[1] - o[1]) * (b[0] - o[0])


def unit(dx: float, dy: float) -> Point:
    norm = math.hypot(dx, dy)
    if norm <= EPSILON:
        raise InputError("Cannot normalise a zero-length vector")
    return Point(dx / norm, dy / norm)


def direction(a: Sequence[float], b: Sequence[float]) -> Point:
    return unit(b[0] - a[0], b[1] - a[1])


def axis_angle_deg(u: Sequence[float], v: Sequence[float]) -> float:
    """Angle between two undirected axes, in [0, 90]."""
    nu = math.hypot(u[0], u[1])
    nv = math.hypot(v[0], v[1])
    if nu <= EPSILON or nv <= EPSILON:
        return 0.0
    cos = abs(u[0] * v[0] + u[1] * v[1]) / (nu * nv)
    return math.degrees(math.acos(min(1.0, cos)))


def shoelace_area(points: Sequence[Sequence[float]]) -> float:
    """Signed area of a closed ring; positive when counter-clockwise."""
    n = len(points)
    total = 0.0
    for i in range(n):
        x1, y1 = points[i][0], points[i][1]
        x2, y2 = points[(i + 1) % n][0], points[(i + 1) % n][1]
        total += x1 * y2 - x2 * y1
    return total / 2.0


def plane_perimeter(points: Sequence[Sequence[float]]) -> float:
    n = len(points)
    return sum(distance(points[i], points[(i + 1) % n]) for i in range(n))


def is_ccw(points: Sequence[Sequence[float]]) -> bool:
    return shoelace_area(points) > 0


def ensure_ccw(points: Sequence[Sequence[float]]) -> list[Point]:
    ring = [Point(p[0], p[1]) for p in points]
    if not is_ccw(ring):
        ring.reverse()
    return ring


def centroid(points: Sequence[Sequence[float]]) -> Point:
    """Area centroid of a ring, or the vertex mean for degenerate rings."""
    a = shoelace_area(points)
    n = len(points)
    if abs(a) <= EPSILON:
        return Point(sum(p[0] for p in points) / n, sum(p[1] for p in points) / n)
    cx = cy = 0.0
    for i in range(n):
        x1, y1 = points[i][0], points[i][1]
        x2, y2 = points[(i + 1) % n][0], points[(i + 1) % n][1]
        f = x1 * y2 - x2 * y1
        cx += (x1 + x2) * f
        cy += (y1 + y2) * f
    return Point(cx / (6 * a), cy / (6 * a))


def interior_angles(points: Sequence[Sequence[float]]) -> list[float]:
    """Interior angle in degrees at each vertex of a counter-clockwise ring.

    Convex corners are below 180, reflex corners above.
    """
    n = len(points)
    angles = []
    for i in range(n):
        prev, cur, nxt = points[i - 1], points[i], points[(i + 1) % n]
        a_in = math.atan2(cur[1] - prev[1], cur[0] - prev[0])
        a_out = math.atan2(nxt[1] - cur[1], nxt[0] - cur[0])
        turn = math.degrees(a_out - a_in)
        turn = (turn + 180.0) % 360.0 - 180.0
        angles.append(180.0 - turn)
    return angles


def reflex_flags(points: Sequence[Sequence[float]]) -> list[bool]:
    """Reflex test per vertex: the cross product of the adjacent edges is negative.

    The ring is read counter-clockwise regardless of its stored winding.
    """
    ring = list(points)
    if not is_ccw(ring):
        flags = reflex_flags(list(reversed(ring)))
        return list(reversed(flags))
    n = len(ring)
    return [cross(ring[i - 1], ring[i], ring[(i + 1) % n]) < -EPSILON for i in range(n)]


def point_segment_distance(p: Sequence[float], a: Sequence[float], b: Sequence[float]) -> float:
    dx, dy = b[0] - a[0], b[1] - a[1]
    length_sq = dx * dx + dy * dy
    if length_sq <= EPSILON:
        return distance(p, a)
    t = ((p[0] - a[0]) * dx + (p[1] - a[1]) * dy) / length_sq
    t = max(0.0, min(1.0, t))
    return math.hypot(p[0] - (a[0] + t * dx), p[1] - (a[1] + t * dy))


def segments_cross(
    p1: Sequence[float], p2: Sequence[float], q1: Sequence[float], q2: Sequence[float]
) -> bool:
    """Strict crossing test: endpoints on opposite sides for both segments."""
    d1 = cross(q1, q2, p1)
    d2 = cross(q1, q2, p2)
    d3 = cross(p1, p2, q1)
    d4 = cross(p1, p2, q2)
    return ((d1 > 0 > d2) or (d1 < 0 < d2)) and ((d3 > 0 > d4) or (d3 < 0 < d4))


def segment_intersection(
    p1: Sequence[float],
    p2: Sequence[float],
    q1: Sequence[float],
    q2: Sequence[float],
    margin: float = 0.0,
) -> Optional[Point]:
    """Point where two segments cross strictly inside both, or None.

    *margin* is a fraction of each segment length kept clear at both ends,
    so lines that merely meet at an endpoint do not count.
    """
    rx, ry = p2[0] - p1[0], p2[1] - p1[1]
    sx, sy = q2[0] - q1[0], q2[1] - q1[1]
    denom = rx * sy - ry * sx
    if abs(denom) < 1e-12:
        return None
    qpx, qpy = q1[0] - p1[0], q1[1] - p1[1]
    t = (qpx * sy - qpy * sx) / denom
    u = (qpx * ry - qpy * rx) / denom
    if margin < t < 1 - margin and margin < u < 1 - margin:
        return Point(p1[0] + t * rx, p1[1] + t * ry)
    return None


def find_self_intersections(points: Sequence[Sequence[float]]) -> list[tuple[int, int]]:
    """All pairs of non-adjacent ring edges that cross each other."""
    n = len(points)
    hits = []
    for i in range(n):
        for j in range(i + 2, n):
            if i == 0 and j == n - 1:
                continue
            if segments_cross(points[i], points[(i + 1) % n], points[j], points[(j + 1) % n]):
                hits.append((i, j))
    return hits


def edge_lengths(points: Sequence[Sequence[float]]) -> list[float]:
    n = len(points)
    return [distance(points[i], points[(i + 1) % n]) for i in range(n)]


# ── Triangulation ───────────────────────────────────────────────────────


def triangulate(points: Sequence[Sequence[float]]) -> list[tuple[int, int, int]]:
    """Ear-clipping triangulation of a simple ring, as vertex index triples."""
    ring = list(points)
    n = len(ring)
    if n < 3:
        return []
    order = list(range(n)) if is_ccw(ring) else list(range(n - 1, -1, -1))
    triangles = []
    guard = 0
    while len(order) > 3:
        m = len(order)
        for k in range(m):
            i, j, l = order[k - 1], order[k], order[(k + 1) % m]
            if cross(ring[i], ring[j], ring[l]) <= EPSILON:
                continue
            if any(
                _inside_triangle(ring[o], ring[i], ring[j], ring[l])
                for o in order
                if o not in (i, j, l)
            ):
                continue
            triangles.append((i, j, l))
            del order[k]
            break
        else:
            # Only collinear or numerically degenerate ears remain.
            guard += 1
            if guard > n:
                break
            i, j, l = order[-1], order[0], order[1]
            triangles.append((i, j, l))
            del order[0]
    if len(order) == 3:
        triangles.append(tuple(order))
    return triangles


def triangulated_area(points: Sequence[Sequence[float]]) -> float:
    """Area as the sum of ear-clipped triangle areas."""
    total = 0.0
    for i, j, k in triangulate(points):
        total += abs(cross(points[i], points[j], points[k])) / 2.0
    return total


def _inside_triangle(p, a, b, c) -> bool:
    d1 = cross(a, b, p)
    d2 = cross(b, c, p)
    d3 = cross(c, a, p)
    return d1 >= -EPSILON and d2 >= -EPSILON and d3 >= -EPSILON


# ── Ring Adjustments ────────────────────────────────────────────────────


def expand_ring(points: Sequence[Sequence[float]], offset: float) -> list[Point]:
    """Move each vertex away from the ring centroid by *offset* feet."""
    c = centroid(points)
    out = []
    for p in points:
        d = distance(c, p)
        if d <= EPSILON:
            out.append(Point(p[0], p[1]))
            continue
        scale = (d + offset) / d
        out.append(Point(c.x + (p[0] - c.x) * scale, c.y + (p[1] - c.y) * scale))
    return out


def remove_collinear(points: Sequence[Sequence[float]], tolerance_deg: float = 1.0) -> list[Point]:
    """Drop duplicate vertices and vertices whose turn is below *tolerance_deg*."""
    ring = [Point(p[0], p[1]) for p in points]
    changed = True
    while changed and len(ring) > 3:
        changed = False
        n = len(ring)
        for i in range(n):
            prev, cur, nxt = ring[i - 1], ring[i], ring[(i + 1) % n]
            if distance(prev, cur) <= 1e-7:
                del ring[i]
                changed = True
                break
            a_in = math.atan2(cur.y - prev.y, cur.x - prev.x)
            a_out = math.atan2(nxt.y - cur.y, nxt.x - cur.x)
            turn = abs((math.degrees(a_out - a_in) + 180.0) % 360.0 - 180.0)
            if turn < tolerance_deg or turn > 180.0 - tolerance_deg:
                del ring[i]
                changed = True
                break
    return ring
