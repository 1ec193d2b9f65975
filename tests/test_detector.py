"""Unit tests for structural error detection and the individual repairs."""

import math
from dataclasses import replace

import pytest

from conftest import footprint_from_feet, hip_pulled_in, rectangle, valley_pulled_back
from roofline.core.models import FeatureType, LinearFeature, Point, Severity
from roofline.correction.base import RepairOperation
from roofline.correction.detector import ErrorDetector, corner_points, nearest
from roofline.correction.registry import RepairRegistry, build_default_registry
from roofline.correction.repairs import (
    CloseFacetRepair,
    ExtendRidgeRepair,
    MergeClusterRepair,
    RemoveDuplicateRepair,
    RemoveOrphanRepair,
    SnapHipRepair,
    SnapValleyRepair,
    SplitLongEdgeRepair,
    next_feature_id,
)
from roofline.geometry import primitives as geo


@pytest.fixture
def detector():
    return ErrorDetector()


def _ridge_pulled_back(topology, feet):
    ridge = topology.ridges[0]
    u = geo.unit(ridge.start.x - ridge.end.x, ridge.start.y - ridge.end.y)
    moved = ridge.moved(end=Point(ridge.end.x + u.x * feet, ridge.end.y + u.y * feet))
    return topology.replace_features(added=[moved])


def _stray_valley(topology):
    stray = LinearFeature("valley-1", FeatureType.VALLEY, Point(-5, 8), Point(5, 8))
    return topology.replace_features(added=[stray])


def _diagonal_valley(topology):
    a, c = topology.ring[0], topology.ring[2]
    return topology.replace_features(added=[LinearFeature("valley-1", FeatureType.VALLEY, a, c)])


def _repeated_hip(topology, shorten=0.0):
    """Reversed copy of the first hip as hip-5, its inner end *shorten* feet toward the corner."""
    hip = topology.hips[0]
    at_start = any(geo.distance(hip.start, q) < 1e-6 for q in topology.ring)
    corner, tip = (hip.start, hip.end) if at_start else (hip.end, hip.start)
    u = geo.unit(corner.x - tip.x, corner.y - tip.y)
    tip = Point(tip.x + u.x * shorten, tip.y + u.y * shorten)
    return topology.replace_features(added=[LinearFeature("hip-5", FeatureType.HIP, tip, corner)])


def _pyramid(detector, builder):
    t = builder.build(footprint_from_feet(rectangle(50, 49)))
    return MergeClusterRepair().apply(t, detector.detect(t)[0]).topology


class TestDetection:
    def test_clean_rectangle(self, detector, rectangle_topology):
        assert detector.detect(rectangle_topology) == []

    def test_clean_l_shape(self, detector, builder, l_footprint):
        assert detector.detect(builder.build(l_footprint)) == []

    def test_clean_rotated_rectangle(self, detector, builder):
        a = math.radians(25)
        pts = [(x * math.cos(a) - y * math.sin(a), x * math.sin(a) + y * math.cos(a)) for x, y in rectangle(60, 40)]
        assert detector.detect(builder.build(footprint_from_feet(pts))) == []

    def test_hip_off_corner_is_fixable(self, detector, rectangle_topology):
        hip = rectangle_topology.hips[0]
        broken = hip_pulled_in(rectangle_topology, 8.0)
        errors = detector.detect(broken)
        assert len(errors) == 1
        e = errors[0]
        assert e.error_type == "hip_not_at_corner"
        assert e.severity == Severity.SEVERE
        assert e.auto_fixable
        assert not e.blocking
        assert e.feature_ids == (hip.id,)

    def test_hip_far_off_corner_blocks(self, detector, rectangle_topology):
        broken = hip_pulled_in(rectangle_topology, 15.0)
        errors = detector.detect(broken)
        assert [e.error_type for e in errors] == ["hip_not_at_corner"]
        assert errors[0].blocking

    def test_disconnected_ridge_end(self, detector, builder):
        t = builder.build(footprint_from_feet(rectangle(80, 40)), ridge_bearing_deg=90.0)
        errors = detector.detect(_ridge_pulled_back(t, 6.0))
        # The two hips left behind now meet without a ridge end.
        assert [e.error_type for e in errors] == ["disconnected_ridge_end", "unanchored_junction"]
        assert errors[0].endpoint == "end"
        assert errors[0].auto_fixable

    def test_long_perimeter_edges(self, detector, builder):
        t = builder.build(footprint_from_feet(rectangle(120, 40)))
        errors = detector.detect(t)
        assert [e.error_type for e in errors] == ["long_perimeter_edge", "long_perimeter_edge"]

    def test_orphan(self, detector, builder):
        t = builder.build(footprint_from_feet(rectangle(80, 40)))
        errors = detector.detect(_stray_valley(t))
        assert [e.error_type for e in errors] == ["orphan"]
        assert errors[0].feature_ids == ("valley-1",)

    def test_vertex_cluster(self, detector, builder):
        t = builder.build(footprint_from_feet(rectangle(50, 49)))
        errors = detector.detect(t)
        assert [e.error_type for e in errors] == ["vertex_cluster"]
        assert "ridge-1" in errors[0].feature_ids
        assert geo.distance(errors[0].location, Point(0, 0)) < 1e-6

    def test_unclosed_facet(self, detector, rectangle_topology):
        eave = rectangle_topology.feature("eave-1")
        t = rectangle_topology.replace_features(added=[eave.moved(end=Point(eave.end.x - 3, eave.end.y))])
        errors = detector.detect(t)
        assert [e.error_type for e in errors] == ["unclosed_facet"]
        assert errors[0].feature_ids == ("eave-1", "rake-1")
        assert errors[0].severity == Severity.MODERATE

    def test_missing_perimeter_blocks(self, detector, rectangle_topology):
        t = rectangle_topology.replace_features(removed=["eave-1", "eave-2"])
        errors = detector.detect(t)
        assert any(e.error_type == "unclosed_facet" and e.blocking for e in errors)

    def test_errors_in_repair_order(self, detector, rectangle_topology):
        broken = hip_pulled_in(rectangle_topology, 8.0)
        broken = _stray_valley(broken)
        types = [e.error_type for e in detector.detect(broken)]
        assert types == ["hip_not_at_corner", "orphan"]


class TestJunctions:
    def test_pyramid_apex_reported(self, detector, builder):
        pyramid = _pyramid(detector, builder)
        errors = detector.detect(pyramid)
        assert [e.error_type for e in errors] == ["unanchored_junction"]
        e = errors[0]
        assert e.feature_ids == tuple(sorted(h.id for h in pyramid.hips))
        assert geo.distance(e.location, Point(0, 0)) < 1e-6
        assert e.severity == Severity.MINOR
        assert not e.auto_fixable
        assert not e.blocking

    def test_hips_meeting_without_ridge(self, detector, rectangle_topology):
        t = rectangle_topology.replace_features(removed=["ridge-1"])
        errors = detector.detect(t)
        assert [e.error_type for e in errors] == ["unanchored_junction", "unanchored_junction"]
        assert all(len(e.feature_ids) == 2 for e in errors)
        xs = sorted(round(e.location.x) for e in errors)
        assert xs == [-5, 5]

    def test_square_roof_not_blocked(self, detector, builder):
        errors = detector.detect(builder.build(footprint_from_feet(rectangle(40, 40))))
        assert "unanchored_junction" in [e.error_type for e in errors]
        assert not any(e.blocking for e in errors)

    def test_single_loose_end_left_to_other_checks(self, detector, rectangle_topology):
        broken = hip_pulled_in(rectangle_topology, 8.0)
        assert "unanchored_junction" not in [e.error_type for e in detector.detect(broken)]


class TestOverlaps:
    def test_crossing_lines_block(self, detector, rectangle_topology):
        errors = detector.detect(_diagonal_valley(rectangle_topology))
        assert [e.error_type for e in errors] == ["crossing_lines"]
        e = errors[0]
        assert e.feature_ids == ("ridge-1", "valley-1")
        assert e.location == pytest.approx((0.0, 0.0), abs=1e-6)
        assert e.severity == Severity.SEVERE
        assert e.blocking

    def test_lines_meeting_at_ends_do_not_cross(self, detector, builder, l_footprint):
        assert detector.crossing_lines(builder.build(l_footprint)) == []

    def test_exact_duplicate(self, detector, rectangle_topology):
        hip = rectangle_topology.hips[0]
        errors = detector.detect(_repeated_hip(rectangle_topology))
        assert [e.error_type for e in errors] == ["duplicate_feature"]
        assert errors[0].feature_ids == (hip.id, "hip-5")
        assert errors[0].auto_fixable

    def test_near_duplicate(self, detector, rectangle_topology):
        errors = detector.detect(_repeated_hip(rectangle_topology, shorten=0.5))
        assert errors[0].error_type == "duplicate_feature"
        assert errors[0].feature_ids[1] == "hip-5"

    def test_partial_overlap_beyond_tolerance(self, detector, rectangle_topology):
        assert detector.duplicates(_repeated_hip(rectangle_topology, shorten=3.0)) == []


class TestValleys:
    def test_clean_l_shape_valley(self, detector, builder, l_footprint):
        assert detector.disconnected_valleys(builder.build(l_footprint)) == []

    def test_dangling_valley(self, detector, builder, l_footprint):
        broken, end = valley_pulled_back(builder.build(l_footprint), 8.0)
        errors = detector.detect(broken)
        assert [e.error_type for e in errors] == ["disconnected_valley"]
        e = errors[0]
        assert e.endpoint == end
        assert e.severity == Severity.MODERATE
        assert e.auto_fixable

    def test_dangling_valley_out_of_reach(self, detector, builder, l_footprint, config):
        narrow = replace(config, correction=replace(config.correction, valley_snap_radius_ft=4.0))
        broken, _ = valley_pulled_back(builder.build(l_footprint), 8.0)
        errors = ErrorDetector(narrow).disconnected_valleys(broken)
        assert len(errors) == 1
        assert not errors[0].auto_fixable

    def test_stray_valley_is_orphan_only(self, detector, builder):
        t = _stray_valley(builder.build(footprint_from_feet(rectangle(80, 40))))
        assert detector.disconnected_valleys(t) == []


class TestHelpers:
    def test_corner_points_skip_straight_vertices(self):
        ring = [Point(0, 0), Point(25, 0), Point(50, 0), Point(50, 40), Point(0, 40)]
        assert Point(25, 0) not in corner_points(ring)
        assert len(corner_points(ring)) == 4

    def test_nearest_within_radius(self):
        pts = [Point(3, 0), Point(0, 2)]
        assert nearest(Point(0, 0), pts, 5.0) == Point(0, 2)
        assert nearest(Point(0, 0), pts, 1.0) is None

    def test_next_feature_id(self, rectangle_topology):
        assert next_feature_id(rectangle_topology, FeatureType.EAVE) == "eave-3"
        assert next_feature_id(rectangle_topology, FeatureType.VALLEY) == "valley-1"


class TestRepairs:
    def test_snap_hip(self, detector, rectangle_topology):
        hip = rectangle_topology.hips[0]
        broken = hip_pulled_in(rectangle_topology, 8.0)
        error = detector.detect(broken)[0]
        outcome = SnapHipRepair().apply(broken, error)
        assert outcome.success
        snapped = outcome.topology.feature(hip.id)
        assert all(geo.distance(p, q) < 1e-6 for p, q in zip(snapped.endpoints, hip.endpoints))
        assert outcome.topology.version == broken.version + 1

    def test_stale_error_not_applied(self, detector, rectangle_topology):
        broken = hip_pulled_in(rectangle_topology, 8.0)
        error = detector.detect(broken)[0]
        outcome = SnapHipRepair().apply(rectangle_topology, error)
        assert not outcome.success
        assert outcome.topology is None

    def test_extend_ridge(self, detector, builder):
        t = builder.build(footprint_from_feet(rectangle(80, 40)), ridge_bearing_deg=90.0)
        broken = _ridge_pulled_back(t, 6.0)
        outcome = ExtendRidgeRepair(endpoint="end").apply(broken, detector.detect(broken)[0])
        assert outcome.success
        assert outcome.topology.ridges[0].length == pytest.approx(40.0, abs=1e-6)

    def test_split_long_edge(self, detector, builder):
        t = builder.build(footprint_from_feet(rectangle(120, 40)))
        error = detector.detect(t)[0]
        repaired = SplitLongEdgeRepair().apply(t, error).topology
        assert len(repaired.ring) == 5
        assert len(repaired.footprint) == 5
        assert repaired.projection().project_all(repaired.footprint.vertices)[2] == pytest.approx(repaired.ring[2], abs=1e-6)
        lengths = sorted(f.length for f in repaired.eaves)
        assert lengths[:2] == pytest.approx([60.0, 60.0])
        assert repaired.total_length(FeatureType.EAVE, FeatureType.RAKE) == pytest.approx(t.perimeter_ft)

    def test_remove_orphan(self, detector, builder):
        t = _stray_valley(builder.build(footprint_from_feet(rectangle(80, 40))))
        repaired = RemoveOrphanRepair().apply(t, detector.detect(t)[0]).topology
        assert repaired.valleys == []

    def test_merge_cluster(self, detector, builder):
        t = builder.build(footprint_from_feet(rectangle(50, 49)))
        repaired = MergeClusterRepair().apply(t, detector.detect(t)[0]).topology
        assert repaired.ridges == []
        assert len(repaired.hips) == 4
        for hip in repaired.hips:
            assert any(geo.distance(p, Point(0, 0)) < 1e-6 for p in hip.endpoints)

    def test_close_facet(self, detector, rectangle_topology):
        eave = rectangle_topology.feature("eave-1")
        t = rectangle_topology.replace_features(added=[eave.moved(end=Point(eave.end.x - 3, eave.end.y))])
        repaired = CloseFacetRepair().apply(t, detector.detect(t)[0]).topology
        assert geo.distance(repaired.feature("eave-1").end, eave.end) < 1e-6

    def test_remove_duplicate(self, detector, rectangle_topology):
        broken = _repeated_hip(rectangle_topology)
        outcome = RemoveDuplicateRepair().apply(broken, detector.detect(broken)[0])
        assert outcome.success
        assert outcome.topology.feature("hip-5") is None
        assert len(outcome.topology.hips) == 4

    def test_duplicate_already_gone(self, detector, rectangle_topology):
        broken = _repeated_hip(rectangle_topology)
        error = detector.detect(broken)[0]
        assert not RemoveDuplicateRepair().apply(rectangle_topology, error).success

    def test_snap_valley(self, detector, builder, l_footprint):
        t = builder.build(l_footprint)
        broken, end = valley_pulled_back(t, 8.0)
        outcome = SnapValleyRepair().apply(broken, detector.detect(broken)[0])
        assert outcome.success
        snapped = outcome.topology.valleys[0]
        assert geo.distance(getattr(snapped, end), getattr(t.valleys[0], end)) < 1e-6

    def test_validate_rejects_no_change(self, rectangle_topology):
        op = RemoveOrphanRepair()
        assert not op.validate(rectangle_topology, rectangle_topology)
        assert not op.validate(rectangle_topology, None)


class TestRegistry:
    def test_default_registry(self):
        registry = build_default_registry()
        assert registry.list_operations() == [
            "duplicate_feature",
            "vertex_cluster",
            "unclosed_facet",
            "disconnected_ridge_start",
            "disconnected_ridge_end",
            "hip_not_at_corner",
            "disconnected_valley",
            "long_perimeter_edge",
            "orphan",
        ]
        assert "orphan" in registry
        assert registry.get("nonexistent") is None

    def test_register_custom(self):
        class Noop(RepairOperation):
            @property
            def name(self):
                return "noop"

            def execute(self, topology, error):
                return None

        registry = RepairRegistry()
        registry.register(Noop())
        assert "noop" in registry
        registry.register(Noop())
        assert registry.list_operations() == ["noop"]
