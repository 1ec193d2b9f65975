"""Core data models for the roofline pipeline.

Defines the data structures that flow through the system:
  FootprintCandidate → ResolvedFootprint → RoofTopology → TopologyError → Correction

Geographic values use WGS84 decimal degrees.  Everything derived from a
footprint (topology features, repairs, fused vertices) lives in a local
tangent plane measured in feet, x pointing east and y pointing north.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, NamedTuple, Optional, Sequence

from roofline.core.exceptions import InputError

# ── Enums ───────────────────────────────────────────────────────────────


class FeatureType(Enum):
    """Kind of roof line."""

    RIDGE = "ridge"
    HIP = "hip"
    VALLEY = "valley"
    EAVE = "eave"
    RAKE = "rake"

    @property
    def is_internal(self) -> bool:
        return self in (FeatureType.RIDGE, FeatureType.HIP, FeatureType.VALLEY)

    @property
    def is_boundary(self) -> bool:
        return self in (FeatureType.EAVE, FeatureType.RAKE)


class Severity(Enum):
    """How serious a detected problem is."""

    MINOR = "minor"
    MODERATE = "moderate"
    SEVERE = "severe"


class RidgeSource(Enum):
    """Where the selected ridge direction came from."""

    MANUAL = "manual"
    ORIENTATION = "orientation"
    SKELETON = "skeleton"
    FOOTPRINT = "footprint"


class SourceTier(Enum):
    """Cost tier of a footprint source."""

    FREE = "free"
    PAID = "paid"


class RoofStyle(Enum):
    HIP = "hip"
    GABLE = "gable"


class VertexType(Enum):
    """Role of a vertex estimate fed to the triangulator."""

    PERIMETER = "perimeter"
    RIDGE_END = "ridge_end"
    HIP_JUNCTION = "hip_junction"
    VALLEY_INTERSECTION = "valley_intersection"


class QualityGrade(Enum):
    POOR = "poor"
    FAIR = "fair"
    GOOD = "good"
    EXCELLENT = "excellent"


# ── Geometry Values ─────────────────────────────────────────────────────


class Point(NamedTuple):
    """Position in the local tangent plane, in feet."""

    x: float
    y: float


@dataclass(frozen=True)
class Coordinate:
    """WGS84 position in decimal degrees."""

    lat: float
    lng: float

    def __post_init__(self) -> None:
        if not (math.isfinite(self.lat) and math.isfinite(self.lng)):
            raise InputError(f"Non-finite coordinate: ({self.lat}, {self.lng})")
        if not -90.0 <= self.lat <= 90.0:
            raise InputError(f"Latitude out of range: {self.lat}")


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned geographic box given by its south-west and north-east corners."""

    sw: Coordinate
    ne: Coordinate

    def corners(self) -> tuple[Coordinate, ...]:
        """Four corners in ring order: sw, se, ne, nw."""
        return (
            self.sw,
            Coordinate(self.sw.lat, self.ne.lng),
            self.ne,
            Coordinate(self.ne.lat, self.sw.lng),
        )


@dataclass(frozen=True)
class Footprint:
    """Closed building outline, stored without the duplicate closing vertex."""

    vertices: tuple[Coordinate, ...]

    def __post_init__(self) -> None:
        if len(self.vertices) < 3:
            raise InputError(
                f"A footprint needs at least 3 vertices, got {len(self.vertices)}"
            )

    @classmethod
    def from_ring(cls, coords: Sequence[Coordinate]) -> "Footprint":
        """Build a footprint from a ring that may repeat its first vertex."""
        ring = list(coords)
        if len(ring) > 1 and _same_coordinate(ring[0], ring[-1]):
            ring.pop()
        return cls(vertices=tuple(ring))

    @classmethod
    def from_lnglat(cls, pairs: Sequence[Sequence[float]]) -> "Footprint":
        """Build a footprint from ``(lng, lat)`` pairs, GeoJSON order."""
        coords = []
        for pair in pairs:
            if len(pair) < 2:
                raise InputError(f"Coordinate pair needs 2 values, got {pair!r}")
            coords.append(Coordinate(lat=float(pair[1]), lng=float(pair[0])))
        return cls.from_ring(coords)

    def to_lnglat(self) -> list[tuple[float, float]]:
        return [(c.lng, c.lat) for c in self.vertices]

    def __len__(self) -> int:
        return len(self.vertices)


def _same_coordinate(a: Coordinate, b: Coordinate, eps: float = 1e-12) -> bool:
    return abs(a.lat - b.lat) <= eps and abs(a.lng - b.lng) <= eps


# ── Footprint Resolution ────────────────────────────────────────────────


@dataclass
class FootprintCandidate:
    """One outline proposed by an external source."""

    footprint: Footprint
    source: str
    confidence: float
    properties: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ReferenceMeasurement:
    """Approximate measurements used only for plausibility scoring."""

    area_sqft: Optional[float] = None
    perimeter_ft: Optional[float] = None
    bbox: Optional[BoundingBox] = None


@dataclass(frozen=True)
class ValidationMetrics:
    """Derived, read-only measurements of a footprint."""

    area_sqft: float
    perimeter_ft: float
    vertex_count: int
    longest_edge_ft: float
    span_x_ratio: float
    span_y_ratio: float
    expected_min_vertices: int


@dataclass(frozen=True)
class ValidationFailure:
    """A metric outside policy.  Recorded, never raised."""

    code: str
    message: str
    severity: Severity = Severity.MODERATE


@dataclass
class FootprintValidation:
    """Outcome of checking one candidate against the resolver policy."""

    metrics: ValidationMetrics
    errors: list[ValidationFailure] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def meets_thresholds(self) -> bool:
        # Density shortfalls are warnings, so only errors fail thresholds.
        return not self.errors


@dataclass
class ScoredCandidate:
    candidate: FootprintCandidate
    validation: FootprintValidation
    score: float
    priority: int
    order: int


@dataclass
class ResolvedFootprint:
    """The authoritative footprint selected for one resolution run."""

    footprint: Footprint
    source: str
    confidence: float
    score: float
    validation: FootprintValidation
    warnings: list[str] = field(default_factory=list)
    fallback_used: bool = False
    candidates_considered: int = 0
    unavailable_sources: list[str] = field(default_factory=list)


@dataclass
class GeometryReport:
    """Output of the geometry validator for a single footprint."""

    area_sqft: float
    perimeter_ft: float
    vertex_count: int
    aspect_ratio: float
    compactness: float
    short_edge_count: int
    self_intersections: list[tuple[int, int]]
    is_rectangular_fallback: bool
    confidence: float
    errors: list[ValidationFailure] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


# ── Topology ────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class PlaneOrientation:
    """Pitch / azimuth sample for one roof plane from an orientation source."""

    azimuth_deg: float
    pitch_deg: float = 0.0
    area_sqft: float = 1.0


@dataclass(frozen=True)
class RidgeDirection:
    """Unit vector of the main ridge in the local plane and how it was chosen."""

    vector: Point
    source: RidgeSource
    agreement: float = 1.0

    @property
    def bearing_deg(self) -> float:
        """Compass bearing of the ridge axis folded into [0, 180)."""
        return math.degrees(math.atan2(self.vector.x, self.vector.y)) % 180.0


@dataclass(frozen=True)
class LinearFeature:
    """A typed roof line segment in the local plane."""

    id: str
    feature_type: FeatureType
    start: Point
    end: Point
    confidence: float = 1.0
    connected_to: tuple[str, ...] = ()

    @property
    def length(self) -> float:
        return math.hypot(self.end.x - self.start.x, self.end.y - self.start.y)

    @property
    def endpoints(self) -> tuple[Point, Point]:
        return (self.start, self.end)

    def moved(self, start: Optional[Point] = None, end: Optional[Point] = None) -> "LinearFeature":
        """Copy with one or both endpoints replaced."""
        return replace(
            self,
            start=start if start is not None else self.start,
            end=end if end is not None else self.end,
        )


@dataclass(frozen=True)
class RoofTopology:
    """Immutable, versioned roof line model.

    Every change produces a new version through :meth:`evolve`; the
    self-correction engine keeps the chain of versions in its
    transformation log.
    """

    footprint: Footprint
    origin: Coordinate
    ring: tuple[Point, ...]
    ridge_direction: RidgeDirection
    features: tuple[LinearFeature, ...]
    confidence: float = 1.0
    roof_style: RoofStyle = RoofStyle.HIP
    version: int = 0

    def projection(self):
        """Local projection the ring and features are expressed in."""
        from roofline.geometry.primitives import LocalProjection

        return LocalProjection(self.origin)

    def of_type(self, *types: FeatureType) -> list[LinearFeature]:
        return [f for f in self.features if f.feature_type in types]

    @property
    def ridges(self) -> list[LinearFeature]:
        return self.of_type(FeatureType.RIDGE)

    @property
    def hips(self) -> list[LinearFeature]:
        return self.of_type(FeatureType.HIP)

    @property
    def valleys(self) -> list[LinearFeature]:
        return self.of_type(FeatureType.VALLEY)

    @property
    def eaves(self) -> list[LinearFeature]:
        return self.of_type(FeatureType.EAVE)

    @property
    def rakes(self) -> list[LinearFeature]:
        return self.of_type(FeatureType.RAKE)

    def total_length(self, *types: FeatureType) -> float:
        return sum(f.length for f in self.of_type(*types))

    @property
    def perimeter_ft(self) -> float:
        n = len(self.ring)
        return sum(
            math.hypot(self.ring[(i + 1) % n].x - self.ring[i].x,
                       self.ring[(i + 1) % n].y - self.ring[i].y)
            for i in range(n)
        )

    def feature(self, feature_id: str) -> Optional[LinearFeature]:
        for f in self.features:
            if f.id == feature_id:
                return f
        return None

    def evolve(self, **changes: Any) -> "RoofTopology":
        """Return the next version with *changes* applied."""
        return replace(self, version=self.version + 1, **changes)

    def replace_features(
        self,
        removed: Sequence[str] = (),
        added: Sequence[LinearFeature] = (),
        **changes: Any,
    ) -> "RoofTopology":
        """Next version with features removed by id and new ones appended.

        A feature in *added* whose id is still present replaces it in place
        so feature order stays stable across repairs.
        """
        gone = set(removed)
        updates = {f.id: f for f in added}
        kept = []
        for f in self.features:
            if f.id in gone:
                continue
            kept.append(updates.pop(f.id, f))
        kept.extend(f for f in added if f.id in updates)
        return self.evolve(features=tuple(kept), **changes)


# ── Self-Correction ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class TopologyError:
    """A structural problem found by detection, consumed by repair."""

    error_type: str
    severity: Severity
    location: Point
    feature_ids: tuple[str, ...]
    auto_fixable: bool
    detail: str = ""
    endpoint: Optional[str] = None

    @property
    def blocking(self) -> bool:
        return self.severity == Severity.SEVERE and not self.auto_fixable


@dataclass(frozen=True)
class Correction:
    """Audit record of exactly one applied repair."""

    correction_type: str
    before: RoofTopology
    after: RoofTopology
    reason: str
    confidence_delta: float
    feature_ids: tuple[str, ...] = ()
    timestamp: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc),
    )

    def diff(self) -> tuple[tuple[LinearFeature, ...], tuple[LinearFeature, ...]]:
        """Features only in ``before`` and features only in ``after``."""
        before = set(self.before.features)
        after = set(self.after.features)
        removed = tuple(f for f in self.before.features if f not in after)
        added = tuple(f for f in self.after.features if f not in before)
        return removed, added


@dataclass
class CorrectionResult:
    """Outcome of running the self-correction loop."""

    topology: RoofTopology
    corrections: list[Correction] = field(default_factory=list)
    remaining_errors: list[TopologyError] = field(default_factory=list)
    iterations: int = 0
    converged: bool = True

    @property
    def blocking_errors(self) -> list[TopologyError]:
        return [e for e in self.remaining_errors if e.blocking]

    @property
    def is_blocked(self) -> bool:
        return bool(self.blocking_errors)


# ── Triangulation ───────────────────────────────────────────────────────


@dataclass(frozen=True)
class SourceVertex:
    """A vertex estimate reported by one imagery source."""

    source: str
    vertex_type: VertexType
    position: Point
    confidence: float = 0.5


@dataclass
class FusedVertex:
    vertex_type: VertexType
    position: Point
    confidence: float
    sources: tuple[str, ...]
    members: tuple[SourceVertex, ...]
    residual_ft: float = 0.0

    @property
    def source_count(self) -> int:
        return len(self.sources)


@dataclass
class TriangulationResult:
    vertices: list[FusedVertex]
    grade: QualityGrade
    multi_source_fraction: float
    mean_residual_ft: float
