"""roofline configuration: resolver policy, geometry factors, topology, correction and fetch settings."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True)
class ResolverPolicy:
    """Footprint plausibility thresholds and candidate scoring weights."""

    min_vertices: int = 4
    min_span_fraction: float = 0.15
    reference_box_m: float = 100.0
    max_edge_warning_ft: float = 55.0
    vertices_per_100ft: float = 4.0
    min_perimeter_ratio: float = 0.70
    min_area_sqft: float = 200.0
    max_area_sqft: float = 50_000.0
    area_warning_tolerance: float = 0.10

    invalid_penalty: float = 0.30
    threshold_penalty: float = 0.20
    area_match_tight: float = 0.03
    area_match_tight_bonus: float = 0.10
    area_match_loose: float = 0.05
    area_match_loose_bonus: float = 0.05
    area_deviation_limit: float = 0.20
    area_deviation_penalty: float = 0.15
    vertex_bonus_min: int = 6
    vertex_bonus: float = 0.05

    # Empirical: a bounding box over-estimates a typical house outline.
    bbox_shape_correction: float = 0.78
    bbox_confidence: float = 0.50
    overhang_ft: float = 0.0

    source_priority: tuple[str, ...] = (
        "mapbox_vector",
        "microsoft_buildings",
        "osm_buildings",
        "regrid_parcel",
        "ai_vision",
        "bbox_fallback",
    )


@dataclass(frozen=True)
class GeometryPolicy:
    """Multiplicative confidence factors for the geometry validator."""

    min_area_error_sqft: float = 500.0
    min_area_warning_sqft: float = 800.0
    max_area_warning_sqft: float = 10_000.0
    max_area_error_sqft: float = 50_000.0
    area_error_factor: float = 0.3
    area_warning_factor: float = 0.9

    few_vertices_factor: float = 0.8
    min_aspect_ratio: float = 0.2
    max_aspect_ratio: float = 5.0
    aspect_factor: float = 0.85
    min_compactness: float = 0.3
    compactness_factor: float = 0.9
    short_edge_ft: float = 1.0
    short_edge_step: float = 0.05
    short_edge_floor: float = 0.8
    self_intersection_factor: float = 0.5
    rectangle_angle_tolerance_deg: float = 10.0

    source_reliability: tuple[tuple[str, float], ...] = (
        ("google_solar", 0.98),
        ("mapbox_vector", 0.96),
        ("manual", 0.95),
        ("microsoft_buildings", 0.92),
        ("regrid_parcel", 0.90),
        ("osm_buildings", 0.88),
        ("ai_vision", 0.85),
        ("ai_detection", 0.65),
        ("bbox_fallback", 0.55),
    )
    unknown_source_reliability: float = 0.80

    def reliability(self, source: str) -> float:
        """Reliability multiplier for a source tag."""
        return dict(self.source_reliability).get(source, self.unknown_source_reliability)


@dataclass(frozen=True)
class FetchConfig:
    """Concurrent candidate fetching."""

    max_workers: int = 4
    default_timeout_s: float = 10.0


@dataclass(frozen=True)
class CacheConfig:
    """Candidate cache settings."""

    enabled: bool = True
    max_size: int = 256
    ttl_seconds: int = 3600
    coordinate_decimals: int = 6


@dataclass(frozen=True)
class TopologyConfig:
    """Topology builder tolerances."""

    roof_style: str = "hip"
    consensus_min_agreement: float = 0.70
    eave_tolerance_deg: float = 20.0
    rake_tolerance_deg: float = 20.0
    gable_search_ft: float = 5.0
    hip_connection_ft: float = 2.0
    collinear_tolerance_deg: float = 1.0


@dataclass(frozen=True)
class LinearLimits:
    """Dimensional and connectivity rules for ridge / hip / valley features."""

    ridge_min_ft: float = 10.0
    ridge_max_ft: float = 100.0
    hip_min_ft: float = 5.0
    hip_max_ft: float = 50.0
    valley_min_ft: float = 5.0
    valley_max_ft: float = 40.0
    ridge_length_ratio_min: float = 0.7
    ridge_length_ratio_max: float = 1.3
    hip_endpoint_tolerance_ft: float = 2.0
    valley_reflex_tolerance_ft: float = 3.0
    continuity_gap_ft: float = 1.0
    continuity_search_ft: float = 10.0
    azimuth_deviation_deg: float = 15.0


@dataclass(frozen=True)
class CorrectionConfig:
    """Self-correction loop settings."""

    max_iterations: int = 5
    connection_tolerance_ft: float = 5.0
    ridge_extend_radius_ft: float = 15.0
    hip_snap_radius_ft: float = 10.0
    long_edge_ft: float = 100.0
    closure_min_gap_ft: float = 0.5
    closure_max_gap_ft: float = 5.0
    cluster_radius_ft: float = 2.0
    duplicate_tolerance_ft: float = 1.0
    valley_snap_radius_ft: float = 15.0
    crossing_margin: float = 0.01
    corner_min_angle_deg: float = 45.0
    corner_max_angle_deg: float = 315.0
    confidence_step: float = 0.05
    confidence_cap: float = 0.98


@dataclass(frozen=True)
class TriangulationConfig:
    """Multi-source vertex fusion settings."""

    tolerance_ft: float = 3.0
    bonus_per_source: float = 0.05
    max_bonus: float = 0.15
    excellent_fraction: float = 0.8
    excellent_residual_ft: float = 1.0
    good_fraction: float = 0.6
    good_residual_ft: float = 2.0
    fair_fraction: float = 0.3


@dataclass(frozen=True)
class RooflineConfig:
    """Top-level roofline configuration."""

    resolver: ResolverPolicy = field(default_factory=ResolverPolicy)
    geometry: GeometryPolicy = field(default_factory=GeometryPolicy)
    fetch: FetchConfig = field(default_factory=FetchConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    topology: TopologyConfig = field(default_factory=TopologyConfig)
    limits: LinearLimits = field(default_factory=LinearLimits)
    correction: CorrectionConfig = field(default_factory=CorrectionConfig)
    triangulation: TriangulationConfig = field(default_factory=TriangulationConfig)

    audit_db_path: Path = Path("roofline_audit.db")


DEFAULT_CONFIG = RooflineConfig()
