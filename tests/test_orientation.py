"""Tests for ridge-direction selection."""

import math

import pytest

from roofline.core.exceptions import InputError
from roofline.core.models import PlaneOrientation, Point, RidgeSource
from roofline.topology.orientation import (
    EAST_WEST,
    NORTH_SOUTH,
    align_to_footprint,
    direction_from_bearing,
    facing_bucket,
    orientation_consensus,
    select_ridge_direction,
)

RECT = [(-25, -20), (25, -20), (25, 20), (-25, 20)]


class TestBuckets:
    @pytest.mark.parametrize("azimuth, bucket", [
        (0, "N"), (44.9, "N"), (45, "E"), (134, "E"), (180, "S"), (224, "S"), (225, "W"), (314, "W"),
        (315, "N"), (360, "N"), (-90, "W"),
    ])
    def test_facing_bucket(self, azimuth, bucket):
        assert facing_bucket(azimuth) == bucket

    def test_direction_from_bearing(self):
        east = direction_from_bearing(90.0)
        assert east.x == pytest.approx(1.0)
        assert east.y == pytest.approx(0.0, abs=1e-12)

    def test_bearing_must_be_finite(self):
        with pytest.raises(InputError):
            direction_from_bearing(math.inf)


class TestConsensus:
    def test_north_south_planes_give_east_west_ridge(self):
        samples = [PlaneOrientation(180, 26.6, 900), PlaneOrientation(0, 26.6, 900)]
        axis, agreement = orientation_consensus(samples)
        assert axis == EAST_WEST
        assert agreement == pytest.approx(1.0)

    def test_east_west_planes_give_north_south_ridge(self):
        samples = [PlaneOrientation(90, 20, 500), PlaneOrientation(270, 20, 500), PlaneOrientation(0, 20, 100)]
        axis, agreement = orientation_consensus(samples)
        assert axis == NORTH_SOUTH
        assert agreement == pytest.approx(1000 / 1100)

    def test_weighted_by_area(self):
        samples = [PlaneOrientation(90, 20, 100), PlaneOrientation(180, 20, 900)]
        axis, _ = orientation_consensus(samples)
        assert axis == EAST_WEST

    def test_no_usable_samples(self):
        assert orientation_consensus([PlaneOrientation(90, 20, 0)]) is None


class TestSelection:
    def test_manual_wins(self):
        samples = [PlaneOrientation(90, 20, 900)]
        d = select_ridge_direction(RECT, [(Point(-5, 0), Point(5, 0))], samples, manual_bearing_deg=0.0)
        assert d.source == RidgeSource.MANUAL
        assert d.bearing_deg == pytest.approx(0.0)

    def test_consensus_over_skeleton(self):
        samples = [PlaneOrientation(90, 20, 900), PlaneOrientation(270, 20, 900)]
        d = select_ridge_direction(RECT, [(Point(-5, 0), Point(5, 0))], samples)
        assert d.source == RidgeSource.ORIENTATION
        assert d.bearing_deg == pytest.approx(0.0)

    def test_weak_consensus_ignored(self):
        samples = [PlaneOrientation(90, 20, 600), PlaneOrientation(180, 20, 400)]
        d = select_ridge_direction(RECT, [(Point(-5, 0), Point(5, 0))], samples)
        assert d.source == RidgeSource.SKELETON
        assert d.bearing_deg == pytest.approx(90.0)

    def test_longest_skeleton_ridge(self):
        ridges = [(Point(0, 0), Point(0, 3)), (Point(0, 0), Point(8, 0))]
        d = select_ridge_direction(RECT, ridges)
        assert d.source == RidgeSource.SKELETON
        assert d.bearing_deg == pytest.approx(90.0)

    def test_footprint_fallback(self):
        d = select_ridge_direction(RECT)
        assert d.source == RidgeSource.FOOTPRINT
        assert d.bearing_deg == pytest.approx(90.0)


class TestAlignment:
    def test_snaps_to_rotated_wall(self):
        a = math.radians(20)
        rotated = [(x * math.cos(a) - y * math.sin(a), x * math.sin(a) + y * math.cos(a)) for x, y in RECT]
        u = align_to_footprint(EAST_WEST, rotated)
        assert math.degrees(math.atan2(u.y, u.x)) == pytest.approx(20.0)

    def test_keeps_axis_without_candidate_wall(self):
        assert align_to_footprint(EAST_WEST, [(0, 0), (3, 10), (1, 20)]) == EAST_WEST
