"""Tests for the one-liner API (roofline.analyze_roof, resolve_footprint, skeleton_lines)."""

import json
from dataclasses import replace

import pytest

import roofline
from conftest import ORIGIN, RECTANGLE_50x40, candidate_from_feet, rectangle
from roofline.api import (
    FootprintReport,
    RoofAnalysisResult,
    analyze_file,
    analyze_input,
    analyze_roof,
    candidate_cache,
)
from roofline.audit.database import AuditDatabase
from roofline.core.config import DEFAULT_CONFIG
from roofline.core.exceptions import FootprintUnavailable, InputError, TopologyBuildError
from roofline.core.models import BoundingBox, ReferenceMeasurement
from roofline.core.schema import parse_input
from roofline.footprint.sources import CallableSource, StaticSource
from roofline.geometry.primitives import LocalProjection
from roofline.geometry.wkt import footprint_from_wkt


@pytest.fixture
def rectangle_candidates():
    return [candidate_from_feet(RECTANGLE_50x40, source="osm_buildings", confidence=0.85)]


class TestAnalyzeRoof:
    def test_basic_analysis(self, rectangle_candidates):
        result = analyze_roof(
            rectangle_candidates,
            reference=ReferenceMeasurement(area_sqft=2000),
            ridge_bearing_deg=90.0,
            building_id="parcel-42",
        )
        assert isinstance(result, RoofAnalysisResult)
        assert result["status"] == "approved"
        assert result["source"] == "osm_buildings"
        assert result["counts"] == {"ridge": 1, "hip": 4, "valley": 0, "eave": 2, "rake": 2}
        assert result["area_sqft"] == pytest.approx(2000, rel=1e-3)
        assert result["ridge_direction"]["source"] == "manual"
        assert result["ridge_direction"]["bearing_deg"] == pytest.approx(90.0)
        assert result["corrections"] == []
        assert result["linear"]["passed"]
        assert 0 < result["confidence"] <= 1

    def test_features_carry_wkt(self, rectangle_candidates):
        result = analyze_roof(rectangle_candidates)
        assert len(result["features"]) == 9
        assert all(f["wkt"].startswith("LINESTRING") for f in result["features"])
        assert result["features_wkt"].startswith("MULTILINESTRING")
        assert result["footprint_wkt"].startswith("POLYGON")

    def test_topology_attached(self, rectangle_candidates):
        result = analyze_roof(rectangle_candidates)
        assert result.topology is not None
        assert result.correction.converged
        assert {f["confidence"] for f in result["features"]} == {result["confidence"]}

    def test_corrections_reported(self):
        result = analyze_roof([candidate_from_feet(rectangle(120, 40))])
        assert [c["type"] for c in result["corrections"]] == ["long_perimeter_edge"] * 2
        assert [c["to_version"] for c in result["corrections"]] == [1, 2]
        assert result.topology.version == 2
        assert result["vertex_count"] == 6
        assert len(footprint_from_wkt(result["footprint_wkt"])) == 6

    def test_square_roof_approved_with_junction_warning(self):
        result = analyze_roof([candidate_from_feet(rectangle(40, 40))])
        assert result["status"] == "approved"
        assert any("without a ridge end" in w for w in result["warnings"])

    def test_gable(self, rectangle_candidates):
        result = analyze_roof(rectangle_candidates, roof_style="gable")
        assert result["roof_style"] == "gable"
        assert result["counts"]["hip"] == 0
        assert result["counts"]["rake"] == 2

    def test_reference_bbox_fallback(self):
        sw, ne = LocalProjection(ORIGIN).unproject_all([(-25, -20), (25, 20)])
        result = analyze_roof(reference=ReferenceMeasurement(bbox=BoundingBox(sw=sw, ne=ne)))
        assert result["source"] == "bbox_fallback"
        assert result["fallback_used"]
        assert any("22% shape correction" in w for w in result["warnings"])

    def test_sources_with_one_down(self):
        def down(location, params):
            raise TimeoutError("no answer")

        good = candidate_from_feet(RECTANGLE_50x40)
        result = analyze_roof(
            sources=[StaticSource("osm_buildings", good.footprint, 0.85), CallableSource("mapbox_vector", down)],
            location=ORIGIN,
        )
        assert result["source"] == "osm_buildings"
        assert result["unavailable_sources"] == ["mapbox_vector"]

    def test_repeat_analysis_reuses_fetched_candidates(self):
        good = candidate_from_feet(RECTANGLE_50x40)
        calls = []

        def fetch(location, params):
            calls.append(location)
            return good.footprint

        source = CallableSource("osm_buildings", fetch)
        analyze_roof(sources=[source], location=ORIGIN)
        result = analyze_roof(sources=[source], location=ORIGIN)
        assert len(calls) == 1
        assert result["source"] == "osm_buildings"

    def test_cache_off_fetches_every_time(self):
        good = candidate_from_feet(RECTANGLE_50x40)
        calls = []

        def fetch(location, params):
            calls.append(location)
            return good.footprint

        config = replace(DEFAULT_CONFIG, cache=replace(DEFAULT_CONFIG.cache, enabled=False))
        source = CallableSource("osm_buildings", fetch)
        analyze_roof(sources=[source], location=ORIGIN, config=config)
        analyze_roof(sources=[source], location=ORIGIN, config=config)
        assert len(calls) == 2
        assert candidate_cache(config) is None

    def test_nothing_available(self):
        with pytest.raises(FootprintUnavailable):
            analyze_roof([])

    def test_self_intersecting(self):
        bowtie = candidate_from_feet([(-25, -25), (25, 25), (25, -25), (-25, 25)])
        with pytest.raises(TopologyBuildError):
            analyze_roof([bowtie])

    def test_audit_db(self, tmp_dir):
        path = tmp_dir / "audit.db"
        analyze_roof([candidate_from_feet(rectangle(120, 40))], building_id="parcel-9", audit_db=path)
        db = AuditDatabase(path)
        assert db.count() == 2
        assert db.runs(building_id="parcel-9")[0]["corrections"] == 2
        db.close()

    def test_repr(self, rectangle_candidates):
        r = repr(analyze_roof(rectangle_candidates))
        assert "RoofAnalysisResult" in r
        assert "status=approved" in r

    def test_summary(self, rectangle_candidates):
        s = analyze_roof(rectangle_candidates, building_id="parcel-42").summary()
        assert "Roofline Analysis Results" in s
        assert "parcel-42" in s
        assert "1 ridge" in s

    def test_to_json(self, rectangle_candidates):
        data = json.loads(analyze_roof(rectangle_candidates).to_json())
        assert data["status"] == "approved"


class TestAnalyzeInput:
    def test_document(self, sample_document):
        result = analyze_input(parse_input(sample_document))
        assert result["building_id"] == "parcel-42"
        assert result["ridge_direction"]["source"] == "manual"

    def test_overrides(self, sample_document):
        result = analyze_input(parse_input(sample_document), roof_style="gable", ridge_bearing_deg=0.0)
        assert result["roof_style"] == "gable"
        assert result["ridge_direction"]["bearing_deg"] == pytest.approx(0.0)

    def test_file(self, tmp_dir, sample_document):
        path = tmp_dir / "building.json"
        path.write_text(json.dumps(sample_document), encoding="utf-8")
        assert roofline.analyze_file(path)["status"] == "approved"

    def test_file_not_found(self, tmp_dir):
        with pytest.raises(InputError):
            analyze_file(tmp_dir / "missing.json")


class TestResolveFootprint:
    def test_report(self, rectangle_candidates):
        report = roofline.resolve_footprint(rectangle_candidates, reference=ReferenceMeasurement(area_sqft=2000))
        assert isinstance(report, FootprintReport)
        assert report["valid"]
        assert report["source"] == "osm_buildings"
        assert report["vertex_count"] == 4
        assert report["area_sqft"] == pytest.approx(2000, rel=1e-3)
        assert report.resolved is not None
        assert "Footprint Validation" in report.summary()

    def test_invalid_candidate_reported(self):
        report = roofline.resolve_footprint([candidate_from_feet(rectangle(12, 12))])
        assert not report["valid"]
        assert report["errors"]


class TestSkeletonLines:
    def test_rectangle(self):
        lines = roofline.skeleton_lines("POLYGON((0 0, 50 0, 50 40, 0 40, 0 0))")
        kinds = sorted(kind for kind, _ in lines)
        assert kinds == ["hip", "hip", "hip", "hip", "ridge"]
        ridge = next(wkt for kind, wkt in lines if kind == "ridge")
        assert ridge.startswith("LINESTRING")

    def test_bad_wkt(self):
        with pytest.raises(InputError):
            roofline.skeleton_lines("LINESTRING (0 0, 1 1)")
