"""Tests for the geometry validator."""

import pytest

from conftest import centered, footprint_from_feet, rectangle
from roofline.core.models import Coordinate, Footprint
from roofline.geometry.validator import GeometryValidator, is_rectangular_fallback, validate_coordinates


@pytest.fixture
def validator():
    return GeometryValidator()


class TestGeometryValidator:
    def test_clean_rectangle(self, validator):
        report = validator.validate(footprint_from_feet(rectangle(50, 40)), source="manual")
        assert report.is_valid
        assert report.area_sqft == pytest.approx(2000.0, rel=1e-6)
        assert report.vertex_count == 4
        assert report.is_rectangular_fallback
        assert report.confidence == pytest.approx(0.95)

    def test_source_reliability(self, validator):
        fp = footprint_from_feet(rectangle(50, 40))
        solar = validator.validate(fp, source="google_solar").confidence
        bbox = validator.validate(fp, source="bbox_fallback").confidence
        assert solar == pytest.approx(0.98)
        assert bbox == pytest.approx(0.55)

    def test_too_small(self, validator):
        report = validator.validate(footprint_from_feet(rectangle(20, 20)))
        assert not report.is_valid
        assert report.errors[0].code == "area_too_small"
        assert report.confidence == pytest.approx(0.3 * 0.95)

    def test_small_warning(self, validator):
        report = validator.validate(footprint_from_feet(rectangle(30, 20)))
        assert report.is_valid
        assert any("Small footprint" in w for w in report.warnings)

    def test_triangle_few_vertices(self, validator):
        report = validator.validate(footprint_from_feet(centered([(0, 0), (60, 0), (30, 50)])))
        assert any("oversimplified" in w for w in report.warnings)
        assert report.confidence < 0.95

    def test_extreme_aspect(self, validator):
        report = validator.validate(footprint_from_feet(rectangle(200, 20)))
        assert any("aspect" in w for w in report.warnings)

    def test_short_edges(self, validator):
        ring = centered([(0, 0), (40, 0), (40, 30), (20.5, 30), (20, 30), (0, 30)])
        report = validator.validate(footprint_from_feet(ring))
        assert report.short_edge_count == 1
        assert report.confidence == pytest.approx(0.95 * 0.95)

    def test_self_intersection(self, validator):
        bowtie = centered([(0, 0), (50, 50), (50, 0), (0, 50)])
        report = validator.validate(footprint_from_feet(bowtie))
        assert not report.is_valid
        assert report.self_intersections == [(0, 2)]
        assert any(e.code == "self_intersection" for e in report.errors)

    def test_confidence_clamped(self, validator):
        report = validator.validate(footprint_from_feet(rectangle(5, 5)), source="bbox_fallback")
        assert 0.0 <= report.confidence <= 1.0

    def test_ai_vision_warning(self, validator):
        report = validator.validate(footprint_from_feet(rectangle(50, 40)), source="ai_vision")
        assert any("AI vision" in w for w in report.warnings)


class TestRectangularFallback:
    def test_bbox_source(self):
        assert is_rectangular_fallback([(0, 0), (1, 0), (0, 1)], "bbox_fallback")

    def test_near_rectangle(self):
        assert is_rectangular_fallback([(0, 0), (50, 2), (49, 40), (-1, 38)])

    def test_not_rectangle(self):
        assert not is_rectangular_fallback([(0, 0), (50, 0), (40, 40), (0, 40)])
        assert not is_rectangular_fallback(centered([(0, 0), (40, 0), (40, 20), (20, 20), (20, 40), (0, 40)]))


def test_validate_coordinates_accepts_closed_ring():
    fp = footprint_from_feet(rectangle(50, 40))
    ring = list(fp.vertices) + [fp.vertices[0]]
    report = validate_coordinates(ring)
    assert report.vertex_count == 4
    assert isinstance(Footprint.from_ring(ring).vertices[0], Coordinate)
