"""Tests for linear-feature validation."""

import pytest

from conftest import footprint_from_feet, rectangle
from roofline.core.models import FeatureType, LinearFeature, Point, ReferenceMeasurement, Severity
from roofline.correction.detector import ErrorDetector
from roofline.correction.repairs import MergeClusterRepair
from roofline.validation.linear import (
    Discrepancy,
    LinearFeatureValidator,
    LinearValidationReport,
    building_extent,
    expected_ridge_length,
)


@pytest.fixture
def validator():
    return LinearFeatureValidator()


def _codes(report):
    return [d.code for d in report.discrepancies]


def _line(fid, kind, a, b):
    return LinearFeature(fid, kind, Point(*a), Point(*b))


class TestCleanTopologies:
    def test_rectangle_passes(self, validator, rectangle_topology):
        report = validator.validate(rectangle_topology)
        assert report.passed
        assert _codes(report) == ["simplified_footprint"]
        assert report.ridge_score == 100.0
        assert report.expected_ridge_ft == pytest.approx(10.0)
        assert report.perimeter_coverage == pytest.approx(1.0)
        assert report.confidence_factor == pytest.approx(0.98)

    def test_checks_run_in_order(self, validator, rectangle_topology):
        report = validator.validate(rectangle_topology)
        assert report.checks_run == [
            "length_bounds",
            "ridge_ratio",
            "hip_connectivity",
            "valley_origin",
            "ridge_continuity",
            "ridge_azimuth",
            "feature_counts",
            "perimeter_consistency",
        ]

    def test_l_shape_has_no_errors(self, validator, builder, l_footprint):
        report = validator.validate(builder.build(l_footprint))
        assert report.passed
        assert report.errors == []

    def test_gable_skips_hip_counts(self, validator, builder, rectangle_footprint):
        t = builder.build(rectangle_footprint, roof_style="gable", ridge_bearing_deg=90.0)
        report = validator.validate(t)
        assert "feature_counts" not in report.checks_run
        assert report.expected_ridge_ft == pytest.approx(50.0)
        assert report.passed


class TestRidgeRules:
    def test_short_ridge(self, validator, rectangle_topology):
        short = _line("ridge-1", FeatureType.RIDGE, (-2.5, 0), (2.5, 0))
        report = validator.validate(rectangle_topology.replace_features(added=[short]))
        codes = _codes(report)
        assert "ridge_length" in codes
        assert "ridge_ratio" in codes
        assert not report.passed
        assert report.ridge_score == 90.0

    def test_ridge_gap(self, validator, builder):
        t = builder.build(footprint_from_feet(rectangle(100, 40)), ridge_bearing_deg=90.0)
        west = _line("ridge-1", FeatureType.RIDGE, (-30, 0), (-2, 0))
        east = _line("ridge-2", FeatureType.RIDGE, (2, 0), (30, 0))
        report = validator.validate(t.replace_features(added=[west, east]))
        gaps = [d for d in report.discrepancies if d.code == "ridge_gap"]
        assert len(gaps) == 1
        assert gaps[0].feature_ids == ("ridge-1", "ridge-2")
        assert "4.0 ft" in gaps[0].message
        assert not report.passed
        assert report.ridge_score == 90.0

    def test_ridge_off_direction(self, validator, builder, rectangle_footprint):
        t = builder.build(rectangle_footprint, ridge_bearing_deg=0.0)
        report = validator.validate(t)
        assert "ridge_azimuth" in _codes(report)
        assert report.ridge_score == 95.0
        assert report.passed

    def test_expected_ridge_length(self, rectangle_topology):
        assert building_extent(rectangle_topology.ring, (1.0, 0.0)) == pytest.approx((50.0, 40.0))
        assert expected_ridge_length(rectangle_topology) == pytest.approx(10.0)


class TestValleyRules:
    def test_stray_valley(self, validator, rectangle_topology):
        stray = _line("valley-1", FeatureType.VALLEY, (-5, 8), (5, 8))
        report = validator.validate(rectangle_topology.replace_features(added=[stray]))
        codes = _codes(report)
        assert "valley_origin" in codes
        assert "valley_junction" in codes
        assert "valley_count" in codes
        assert report.passed


class TestJunctionRules:
    def test_pyramid_hips_warned(self, validator, builder):
        t = builder.build(footprint_from_feet(rectangle(50, 49)))
        pyramid = MergeClusterRepair().apply(t, ErrorDetector().detect(t)[0]).topology
        report = validator.validate(pyramid)
        junctions = [d for d in report.discrepancies if d.code == "hip_junction"]
        assert len(junctions) == 4
        assert all(d.severity == Severity.MINOR for d in junctions)
        assert "hip_connectivity" not in _codes(report)

    def test_hips_without_ridge_warned(self, validator, rectangle_topology):
        report = validator.validate(rectangle_topology.replace_features(removed=["ridge-1"]))
        assert _codes(report).count("hip_junction") == 4
        assert "hip_connectivity" not in _codes(report)

    def test_valley_ending_at_ridge_end(self, validator, builder, l_footprint):
        report = validator.validate(builder.build(l_footprint))
        assert "valley_junction" not in _codes(report)


class TestPerimeter:
    def test_reference_area_far_off(self, validator, rectangle_topology):
        report = validator.validate(rectangle_topology, ReferenceMeasurement(area_sqft=3000.0))
        variance = [d for d in report.discrepancies if d.code == "area_variance"]
        assert variance[0].severity == Severity.MODERATE
        assert not report.passed

    def test_reference_area_slightly_off(self, validator, rectangle_topology):
        report = validator.validate(rectangle_topology, ReferenceMeasurement(area_sqft=2300.0))
        variance = [d for d in report.discrepancies if d.code == "area_variance"]
        assert variance[0].severity == Severity.MINOR
        assert report.passed

    def test_missing_rakes(self, validator, rectangle_topology):
        t = rectangle_topology.replace_features(removed=[f.id for f in rectangle_topology.rakes])
        report = validator.perimeter_consistency(t)
        assert report.perimeter_coverage == pytest.approx(100 / 180)
        coverage = [d for d in report.discrepancies if d.code == "perimeter_coverage"]
        assert coverage[0].severity == Severity.MINOR

    def test_single_eave(self, validator, rectangle_topology):
        t = rectangle_topology.replace_features(removed=["eave-2", "rake-1", "rake-2"])
        report = validator.perimeter_consistency(t)
        coverage = [d for d in report.discrepancies if d.code == "perimeter_coverage"]
        assert coverage[0].severity == Severity.MODERATE
        assert "28%" in coverage[0].message
        assert not report.passed


class TestReport:
    def test_confidence_factor(self):
        report = LinearValidationReport()
        report.add(Discrepancy("ridge_length", "short", Severity.MODERATE))
        report.add(Discrepancy("valley_origin", "stray"))
        assert not report.passed
        assert report.confidence_factor == pytest.approx(0.93)

    def test_confidence_factor_floor(self):
        report = LinearValidationReport()
        for _ in range(20):
            report.add(Discrepancy("hip_connectivity", "loose", Severity.MODERATE))
        assert report.confidence_factor == 0.5
