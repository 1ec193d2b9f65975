"""Straight skeleton of a simple polygon by wavefront propagation.

Every boundary edge moves inward at unit speed.  Wavefront vertices
travel along the bisectors of their two edges; the simulation advances
to the earliest event, then settles everything that happens at that
instant:

* **edge event**  — an edge shrinks to zero and its two vertices merge
* **split event** — a reflex vertex reaches a non-adjacent edge (or
  vertex) and cuts the wavefront in two
* **fold**        — two anti-parallel edges meet; the doubled-up stretch
  collapses into a horizontal ridge segment

Vertex trajectories become hips (convex) or valleys (reflex); the
horizontal segments where opposite fronts meet become ridges.  The
height of each node is the time at which the wavefront reached it, which
is also its distance to the nearest boundary edge.

The module is self-contained: ``ring in → typed edges out``.

Usage::

    skeleton = straight_skeleton([(0, 0), (50, 0), (50, 40), (0, 40)])
    [e.kind for e in skeleton.edges]   # 4 hips, 1 ridge
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Optional, Sequence

from roofline.core.exceptions import InputError, SkeletonError
from roofline.core.models import FeatureType, Point
from roofline.geometry.primitives import point_segment_distance, shoelace_area

logger = logging.getLogger("roofline.topology.skeleton")

_DET_EPS = 1e-9


# ── Result Types ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class SkeletonEdge:
    """One internal roof line produced by the skeleton."""

    start: Point
    end: Point
    kind: FeatureType
    start_height: float
    end_height: float
    boundary_vertex: Optional[int] = None

    @property
    def length(self) -> float:
        return math.hypot(self.end.x - self.start.x, self.end.y - self.start.y)


@dataclass
class Skeleton:
    """Typed internal edges of a footprint ring.

    ``ring`` is the counter-clockwise, cleaned ring the simulation ran on;
    ``boundary_vertex`` on an edge indexes the ring the caller passed in.
    """

    ring: list[Point]
    edges: list[SkeletonEdge] = field(default_factory=list)
    events: int = 0

    def of_kind(self, kind: FeatureType) -> list[SkeletonEdge]:
        return [e for e in self.edges if e.kind == kind]

    @property
    def ridges(self) -> list[SkeletonEdge]:
        return self.of_kind(FeatureType.RIDGE)

    @property
    def hips(self) -> list[SkeletonEdge]:
        return self.of_kind(FeatureType.HIP)

    @property
    def valleys(self) -> list[SkeletonEdge]:
        return self.of_kind(FeatureType.VALLEY)

    @property
    def max_height(self) -> float:
        return max((max(e.start_height, e.end_height) for e in self.edges), default=0.0)


# ── Wavefront State ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class _Edge:
    """Supporting line of one original boundary edge."""

    index: int
    origin: Point
    direction: Point
    normal: Point


class _Vertex:
    __slots__ = ("pos", "node", "node_time", "boundary", "e_in", "e_out", "velocity", "reflex")

    def __init__(self, pos: Point, time: float, e_in: _Edge, e_out: _Edge, boundary: Optional[int] = None):
        self.pos = pos
        self.node = pos
        self.node_time = time
        self.boundary = boundary
        self.e_in = e_in
        self.e_out = e_out
        self.velocity: Optional[Point] = None
        self.reflex = False
        self.refresh()

    def refresh(self) -> None:
        """Recompute velocity and reflex flag from the two supporting edges."""
        self.velocity = _bisector_velocity(self.e_in.normal, self.e_out.normal)
        d_in, d_out = self.e_in.direction, self.e_out.direction
        self.reflex = d_in.x * d_out.y - d_in.y * d_out.x < -_DET_EPS

    def restart(self, time: float) -> None:
        self.node = self.pos
        self.node_time = time
        self.boundary = None


def _bisector_velocity(n_in: Point, n_out: Point) -> Optional[Point]:
    """Velocity keeping a vertex on both offset lines (``v·n = 1`` for each).

    Returns ``None`` for anti-parallel edges, where no such velocity exists.
    """
    det = n_in.x * n_out.y - n_in.y * n_out.x
    if abs(det) <= _DET_EPS:
        if n_in.x * n_out.x + n_in.y * n_out.y > 0:
            return n_in
        return None
    return Point((n_out.y - n_in.y) / det, (n_in.x - n_out.x) / det)


def _dot(a: Sequence[float], b: Sequence[float]) -> float:
    return a[0] * b[0] + a[1] * b[1]


def _sub(a: Sequence[float], b: Sequence[float]) -> Point:
    return Point(a[0] - b[0], a[1] - b[1])


def _dist(a: Sequence[float], b: Sequence[float]) -> float:
    return math.hypot(a[0] - b[0], a[1] - b[1])


# ── Simulation ──────────────────────────────────────────────────────────


class _Wavefront:
    """Mutable simulation state; one instance per skeleton computation."""

    def __init__(self, ring: list[Point], indices: list[int], tol: float):
        self.tol = tol
        self.time = 0.0
        self.arcs: list[SkeletonEdge] = []
        self.events = 0
        n = len(ring)
        edges = []
        for i in range(n):
            a, b = ring[i], ring[(i + 1) % n]
            length = _dist(a, b)
            d = Point((b.x - a.x) / length, (b.y - a.y) / length)
            edges.append(_Edge(index=i, origin=a, direction=d, normal=Point(-d.y, d.x)))
        self.polygons: list[list[_Vertex]] = [[
            _Vertex(ring[i], 0.0, edges[i - 1], edges[i], boundary=indices[i]) for i in range(n)
        ]]

    # ── event search ────────────────────────────────────────────────

    def next_step(self) -> Optional[float]:
        best = math.inf
        for poly in self.polygons:
            best = min(best, self._edge_events(poly), self._split_events(poly, best))
        return None if math.isinf(best) else best

    def _edge_events(self, poly: list[_Vertex]) -> float:
        best = math.inf
        n = len(poly)
        for i in range(n):
            a, b = poly[i], poly[(i + 1) % n]
            d = a.e_out.direction
            rate = _dot(_sub(b.velocity, a.velocity), d)
            if rate >= -_DET_EPS:
                continue
            length = _dot(_sub(b.pos, a.pos), d)
            best = min(best, max(0.0, -length / rate))
        return best

    def _split_events(self, poly: list[_Vertex], bound: float) -> float:
        best = bound
        n = len(poly)
        for r in poly:
            if not r.reflex:
                continue
            for j in range(n):
                c, d = poly[j], poly[(j + 1) % n]
                if c is r or d is r:
                    continue
                e = c.e_out
                closing = 1.0 - _dot(r.velocity, e.normal)
                if closing <= _DET_EPS:
                    continue
                gap = _dot(_sub(r.pos, e.origin), e.normal) - self.time
                if gap < -self.tol:
                    continue
                s = max(0.0, gap) / closing
                if s >= best:
                    continue
                hit = Point(r.pos.x + r.velocity.x * s, r.pos.y + r.velocity.y * s)
                cs = Point(c.pos.x + c.velocity.x * s, c.pos.y + c.velocity.y * s)
                ds = Point(d.pos.x + d.velocity.x * s, d.pos.y + d.velocity.y * s)
                span = _dot(_sub(ds, cs), e.direction)
                along = _dot(_sub(hit, cs), e.direction)
                if -self.tol <= along <= span + self.tol:
                    best = s
        return best

    def advance(self, step: float) -> None:
        for poly in self.polygons:
            for v in poly:
                v.pos = Point(v.pos.x + v.velocity.x * step, v.pos.y + v.velocity.y * step)
        self.time += step

    # ── arc output ──────────────────────────────────────────────────

    def _trace(self, v: _Vertex) -> None:
        """Emit the trajectory of *v* from its node to its current position."""
        if _dist(v.node, v.pos) <= self.tol:
            return
        kind = FeatureType.VALLEY if v.reflex else FeatureType.HIP
        self.arcs.append(SkeletonEdge(v.node, v.pos, kind, v.node_time, self.time, v.boundary))

    def _ridge(self, a: Point, b: Point) -> None:
        if _dist(a, b) <= self.tol:
            return
        self.arcs.append(SkeletonEdge(a, b, FeatureType.RIDGE, self.time, self.time))

    # ── settling ────────────────────────────────────────────────────

    def settle(self) -> None:
        """Resolve every event that coincides with the current time."""
        work = list(self.polygons)
        done: list[list[_Vertex]] = []
        while work:
            poly = work.pop()
            while poly is not None:
                if len(poly) <= 2:
                    self._finish(poly)
                    poly = None
                elif self._merge_pass(poly) or self._fold_pass(poly):
                    continue
                else:
                    parts = self._split_pass(poly)
                    if parts is None:
                        done.append(poly)
                    else:
                        work.extend(parts)
                    poly = None
        self.polygons = done

    def _finish(self, poly: list[_Vertex]) -> None:
        for v in poly:
            self._trace(v)
        if len(poly) == 2:
            self._ridge(poly[0].pos, poly[1].pos)
        self.events += 1

    def _merge_pass(self, poly: list[_Vertex]) -> bool:
        n = len(poly)
        for i in range(n):
            a, b = poly[i], poly[(i + 1) % n]
            if _dist(a.pos, b.pos) > self.tol:
                continue
            self._trace(a)
            self._trace(b)
            merged = _Vertex(
                Point((a.pos.x + b.pos.x) / 2, (a.pos.y + b.pos.y) / 2),
                self.time, a.e_in, b.e_out,
            )
            rotated = poly[i:] + poly[:i]
            poly[:] = [merged] + rotated[2:]
            self.events += 1
            logger.debug("Edge event at t=%.4f, %d vertices left", self.time, len(poly))
            return True
        return False

    def _fold_pass(self, poly: list[_Vertex]) -> bool:
        n = len(poly)
        for i, x in enumerate(poly):
            if x.velocity is not None:
                continue
            prev, nxt = poly[i - 1], poly[(i + 1) % n]
            self._trace(x)
            d_prev, d_next = _dist(x.pos, prev.pos), _dist(x.pos, nxt.pos)
            if abs(d_prev - d_next) <= self.tol:
                self._ridge(x.pos, prev.pos)
            elif d_prev < d_next:
                self._ridge(x.pos, prev.pos)
                self._trace(prev)
                prev.restart(self.time)
                prev.e_out = x.e_out
                prev.refresh()
            else:
                self._ridge(x.pos, nxt.pos)
                self._trace(nxt)
                nxt.restart(self.time)
                nxt.e_in = x.e_in
                nxt.refresh()
            del poly[i]
            self.events += 1
            logger.debug("Fold at t=%.4f", self.time)
            return True
        return False

    def _split_pass(self, poly: list[_Vertex]) -> Optional[list[list[_Vertex]]]:
        n = len(poly)
        for i, r in enumerate(poly):
            if not r.reflex:
                continue
            rotated = poly[i:] + poly[:i]
            for j in range(2, n - 1):
                c, d = rotated[j], rotated[j + 1]
                if _dist(r.pos, c.pos) <= self.tol:
                    return self._split(rotated, j, at_vertex=True)
                if _dist(r.pos, d.pos) <= self.tol:
                    continue
                if point_segment_distance(r.pos, c.pos, d.pos) <= self.tol:
                    return self._split(rotated, j, at_vertex=False)
        return None

    def _split(self, rotated: list[_Vertex], j: int, at_vertex: bool) -> list[list[_Vertex]]:
        r, c = rotated[0], rotated[j]
        self._trace(r)
        point = r.pos
        if at_vertex:
            self._trace(c)
            left = _Vertex(point, self.time, r.e_in, c.e_out)
            right = _Vertex(point, self.time, c.e_in, r.e_out)
            parts = [[left] + rotated[j + 1:], [right] + rotated[1:j]]
        else:
            e = c.e_out
            left = _Vertex(point, self.time, r.e_in, e)
            right = _Vertex(point, self.time, e, r.e_out)
            parts = [[left] + rotated[j + 1:], [right] + rotated[1:j + 1]]
        self.events += 1
        logger.debug("Split event at t=%.4f into %d + %d vertices", self.time, len(parts[0]), len(parts[1]))
        return parts


# ── Public Entry Point ──────────────────────────────────────────────────


def straight_skeleton(
    ring: Sequence[Sequence[float]],
    collinear_tolerance_deg: float = 1.0,
    max_events: Optional[int] = None,
) -> Skeleton:
    """Compute the straight skeleton of a simple polygon.

    Parameters
    ----------
    ring : sequence of (x, y)
        Closed ring in a planar unit (feet), without the closing vertex.
        Either winding is accepted.
    collinear_tolerance_deg : float
        Vertices turning less than this are dropped before simulation.
    max_events : int, optional
        Safety cap on simulation steps; defaults to a bound derived from
        the vertex count.

    Returns
    -------
    Skeleton

    Raises
    ------
    InputError
        Fewer than three usable vertices or zero area.
    SkeletonError
        The simulation did not finish within the event cap.
    """
    points = [Point(float(p[0]), float(p[1])) for p in ring]
    indices = list(range(len(points)))
    area = shoelace_area(points)
    if len(points) < 3 or abs(area) <= _DET_EPS:
        raise InputError("Skeleton needs a ring with at least 3 vertices and non-zero area")
    if area < 0:
        points.reverse()
        indices.reverse()
    points, indices = _clean(points, indices, collinear_tolerance_deg)
    if len(points) < 3:
        raise InputError("Ring degenerates to fewer than 3 corners")

    xs = [p.x for p in points]
    ys = [p.y for p in points]
    extent = max(max(xs) - min(xs), max(ys) - min(ys), 1.0)
    front = _Wavefront(points, indices, tol=extent * 1e-7)
    limit = max_events or 20 * len(points) + 50

    steps = 0
    while front.polygons:
        steps += 1
        if steps > limit:
            raise SkeletonError(f"Wavefront did not collapse within {limit} steps")
        step = front.next_step()
        if step is None:
            raise SkeletonError("Wavefront has no further events but is not empty")
        front.advance(step)
        front.settle()

    edges = _tidy(front.arcs, tol=extent * 1e-6)
    logger.debug(
        "Skeleton: %d vertices → %d edges after %d events",
        len(points), len(edges), front.events,
    )
    return Skeleton(ring=points, edges=edges, events=front.events)


def _clean(points: list[Point], indices: list[int], tolerance_deg: float) -> tuple[list[Point], list[int]]:
    """Drop duplicate, collinear and spike vertices, keeping original indices."""
    pts, idx = list(points), list(indices)
    changed = True
    while changed and len(pts) > 3:
        changed = False
        n = len(pts)
        for i in range(n):
            prev, cur, nxt = pts[i - 1], pts[i], pts[(i + 1) % n]
            if _dist(prev, cur) <= 1e-9:
                del pts[i], idx[i]
                changed = True
                break
            a_in = math.atan2(cur.y - prev.y, cur.x - prev.x)
            a_out = math.atan2(nxt.y - cur.y, nxt.x - cur.x)
            turn = abs((math.degrees(a_out - a_in) + 180.0) % 360.0 - 180.0)
            if turn < tolerance_deg or turn > 180.0 - tolerance_deg:
                del pts[i], idx[i]
                changed = True
                break
    return pts, idx


def _tidy(arcs: list[SkeletonEdge], tol: float) -> list[SkeletonEdge]:
    """Snap shared nodes together and join collinear ridge pieces."""
    nodes: list[Point] = []

    def canon(p: Point) -> Point:
        for q in nodes:
            if _dist(p, q) <= tol:
                return q
        nodes.append(p)
        return p

    snapped = []
    for a in arcs:
        s, e = canon(a.start), canon(a.end)
        if s == e:
            continue
        snapped.append(SkeletonEdge(s, e, a.kind, a.start_height, a.end_height, a.boundary_vertex))

    merged = True
    while merged:
        merged = False
        degree: dict[Point, int] = {}
        for a in snapped:
            degree[a.start] = degree.get(a.start, 0) + 1
            degree[a.end] = degree.get(a.end, 0) + 1
        ridges = [a for a in snapped if a.kind == FeatureType.RIDGE]
        for i, a in enumerate(ridges):
            for b in ridges[i + 1:]:
                shared = {a.start, a.end} & {b.start, b.end}
                if len(shared) != 1:
                    continue
                node = shared.pop()
                if degree[node] != 2:
                    continue
                far_a = a.end if a.start == node else a.start
                far_b = b.end if b.start == node else b.start
                if point_segment_distance(node, far_a, far_b) > tol:
                    continue
                joined = SkeletonEdge(far_a, far_b, FeatureType.RIDGE, a.start_height, b.end_height)
                snapped = [x for x in snapped if x is not a and x is not b] + [joined]
                merged = True
                break
            if merged:
                break
    return snapped
