"""Shared test fixtures for the roofline test suite.

Test footprints are drawn in feet around a fixed origin and unprojected
through the same local projection the library uses, so plane dimensions
come back exact.
"""

import tempfile
from pathlib import Path

import pytest

from roofline.api import clear_candidate_cache
from roofline.core.config import DEFAULT_CONFIG
from roofline.core.models import Coordinate, Footprint, FootprintCandidate, Point
from roofline.geometry.primitives import LocalProjection, distance, unit
from roofline.topology.builder import TopologyBuilder

ORIGIN = Coordinate(39.7392, -104.9903)

RECTANGLE_50x40 = [(-25, -20), (25, -20), (25, 20), (-25, 20)]
L_SHAPE = [(0, 0), (40, 0), (40, 20), (20, 20), (20, 40), (0, 40)]


def footprint_from_feet(points, origin=ORIGIN):
    """Footprint whose vertices sit *points* feet east / north of *origin*."""
    return Footprint(vertices=tuple(LocalProjection(origin).unproject_all(points)))


def centered(points):
    """Shift *points* so their vertex mean is at the origin."""
    cx = sum(p[0] for p in points) / len(points)
    cy = sum(p[1] for p in points) / len(points)
    return [(x - cx, y - cy) for x, y in points]


def rectangle(width, height):
    w, h = width / 2, height / 2
    return [(-w, -h), (w, -h), (w, h), (-w, h)]


def candidate_from_feet(points, source="osm_buildings", confidence=0.85):
    return FootprintCandidate(footprint=footprint_from_feet(points), source=source, confidence=confidence)


@pytest.fixture(autouse=True)
def fresh_candidate_cache():
    """Each test starts without candidates cached by an earlier one."""
    clear_candidate_cache()
    yield
    clear_candidate_cache()


@pytest.fixture
def tmp_dir():
    """Create a temporary directory, cleaned up after test."""
    with tempfile.TemporaryDirectory(prefix="roofline_test_") as d:
        yield Path(d)


@pytest.fixture
def config():
    return DEFAULT_CONFIG


@pytest.fixture
def builder():
    return TopologyBuilder()


@pytest.fixture
def rectangle_footprint():
    return footprint_from_feet(RECTANGLE_50x40)


@pytest.fixture
def l_footprint():
    return footprint_from_feet(centered(L_SHAPE))


@pytest.fixture
def rectangle_topology(builder, rectangle_footprint):
    """50 x 40 ft hip roof with the ridge running east-west."""
    return builder.build(rectangle_footprint, ridge_bearing_deg=90.0)


@pytest.fixture
def sample_document():
    """Input document for a 50 x 40 ft building, as the CLI reads it."""
    footprint = footprint_from_feet(RECTANGLE_50x40)
    coords = [[c.lng, c.lat] for c in footprint.vertices]
    coords.append(coords[0])
    return {
        "building_id": "parcel-42",
        "location": {"lat": ORIGIN.lat, "lng": ORIGIN.lng},
        "candidates": [
            {"source": "osm_buildings", "confidence": 0.85, "coordinates": coords},
        ],
        "reference": {"area_sqft": 2000},
        "ridge_bearing_deg": 90,
    }


def hip_pulled_in(topology, feet):
    """Move the corner end of the first hip *feet* along the hip."""
    hip = topology.hips[0]
    end = "start" if any(distance(hip.start, q) < 1e-6 for q in topology.ring) else "end"
    corner = getattr(hip, end)
    tip = hip.end if end == "start" else hip.start
    u = unit(tip.x - corner.x, tip.y - corner.y)
    moved = hip.moved(**{end: Point(corner.x + u.x * feet, corner.y + u.y * feet)})
    return topology.replace_features(added=[moved])


def valley_pulled_back(topology, feet):
    """Move the inner end of the first valley *feet* back toward its reflex corner.

    Returns the broken topology and the name of the moved end.
    """
    valley = topology.valleys[0]
    end = "end" if any(distance(valley.start, q) < 1e-6 for q in topology.ring) else "start"
    tip = getattr(valley, end)
    corner = valley.start if end == "end" else valley.end
    u = unit(corner.x - tip.x, corner.y - tip.y)
    moved = valley.moved(**{end: Point(tip.x + u.x * feet, tip.y + u.y * feet)})
    return topology.replace_features(added=[moved]), end
