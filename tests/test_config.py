"""Unit tests for configuration dataclasses."""

import pytest
from dataclasses import FrozenInstanceError, replace
from pathlib import Path

from roofline.core.config import (
    CacheConfig,
    CorrectionConfig,
    DEFAULT_CONFIG,
    FetchConfig,
    GeometryPolicy,
    LinearLimits,
    ResolverPolicy,
    RooflineConfig,
    TopologyConfig,
    TriangulationConfig,
)


class TestResolverPolicy:
    def test_defaults(self):
        p = ResolverPolicy()
        assert p.min_vertices == 4
        assert p.min_span_fraction == 0.15
        assert p.max_edge_warning_ft == 55.0
        assert p.min_perimeter_ratio == 0.70
        assert p.min_area_sqft == 200.0
        assert p.max_area_sqft == 50_000.0
        assert p.bbox_shape_correction == 0.78

    def test_source_priority_is_ordered(self):
        p = ResolverPolicy()
        assert p.source_priority[0] == "mapbox_vector"
        assert p.source_priority[-1] == "bbox_fallback"

    def test_frozen(self):
        p = ResolverPolicy()
        with pytest.raises(FrozenInstanceError):
            p.min_vertices = 3


class TestGeometryPolicy:
    def test_reliability_known_source(self):
        g = GeometryPolicy()
        assert g.reliability("google_solar") == 0.98
        assert g.reliability("bbox_fallback") == 0.55

    def test_reliability_unknown_source(self):
        assert GeometryPolicy().reliability("somewhere_else") == 0.80


class TestTopologyConfig:
    def test_defaults(self):
        t = TopologyConfig()
        assert t.roof_style == "hip"
        assert t.consensus_min_agreement == 0.70
        assert t.hip_connection_ft == 2.0


class TestLinearLimits:
    def test_defaults(self):
        lim = LinearLimits()
        assert (lim.ridge_min_ft, lim.ridge_max_ft) == (10.0, 100.0)
        assert (lim.hip_min_ft, lim.hip_max_ft) == (5.0, 50.0)
        assert (lim.valley_min_ft, lim.valley_max_ft) == (5.0, 40.0)
        assert lim.valley_reflex_tolerance_ft == 3.0


class TestCorrectionConfig:
    def test_defaults(self):
        c = CorrectionConfig()
        assert c.max_iterations == 5
        assert c.hip_snap_radius_ft == 10.0
        assert c.cluster_radius_ft == 2.0
        assert c.confidence_cap == 0.98


class TestCacheAndFetch:
    def test_cache_defaults(self):
        c = CacheConfig()
        assert c.max_size == 256
        assert c.ttl_seconds == 3600

    def test_fetch_defaults(self):
        f = FetchConfig()
        assert f.max_workers == 4
        assert f.default_timeout_s == 10.0


class TestRooflineConfig:
    def test_default_config(self):
        c = DEFAULT_CONFIG
        assert isinstance(c.resolver, ResolverPolicy)
        assert isinstance(c.geometry, GeometryPolicy)
        assert isinstance(c.topology, TopologyConfig)
        assert isinstance(c.limits, LinearLimits)
        assert isinstance(c.correction, CorrectionConfig)
        assert isinstance(c.triangulation, TriangulationConfig)
        assert c.audit_db_path == Path("roofline_audit.db")

    def test_frozen(self):
        with pytest.raises(FrozenInstanceError):
            DEFAULT_CONFIG.audit_db_path = Path("other.db")

    def test_replace_derives_variant(self):
        custom = replace(DEFAULT_CONFIG, resolver=replace(DEFAULT_CONFIG.resolver, bbox_shape_correction=0.9))
        assert isinstance(custom, RooflineConfig)
        assert custom.resolver.bbox_shape_correction == 0.9
        assert DEFAULT_CONFIG.resolver.bbox_shape_correction == 0.78
