"""Tests for codriver/distance_index.py - arc length, heading and snapping queries."""

import math

import numpy as np
import pytest

from codriver.distance_index import DistanceIndex
from codriver.errors import InputError
from codriver.geometry import GeoPoint, point_along_bearing, point_distance

from route_builders import ORIGIN, walk


class TestBuild:
    """Tests for building an index from a polyline."""

    @pytest.mark.unit
    def test_total_length(self, straight_polyline):
        """1km of 10m steps measures 1km."""
        index = DistanceIndex.build(straight_polyline)
        assert index.total_length == pytest.approx(1000.0, abs=0.5)
        assert len(index) == len(straight_polyline)

    @pytest.mark.unit
    def test_cumulative_is_monotonic(self, right_angle_polyline):
        index = DistanceIndex.build(right_angle_polyline)
        assert index.cumulative[0] == 0.0
        assert np.all(np.diff(index.cumulative) > 0)

    @pytest.mark.unit
    def test_cumulative_is_read_only(self, straight_polyline):
        index = DistanceIndex.build(straight_polyline)
        with pytest.raises(ValueError):
            index.cumulative[1] = 0.0

    @pytest.mark.unit
    def test_coincident_vertices_collapsed(self):
        points = walk([(0, 10.0), (0, 10.0)])
        duplicated = [points[0], points[1], points[1], points[2]]
        index = DistanceIndex.build(duplicated)
        assert len(index) == 3
        assert index.total_length == pytest.approx(20.0, abs=0.01)

    @pytest.mark.unit
    @pytest.mark.parametrize("polyline", [None, [], [ORIGIN], [ORIGIN, ORIGIN]])
    def test_degenerate_polyline_gives_empty_index(self, polyline):
        index = DistanceIndex.build(polyline)
        assert index.is_empty
        assert index.total_length == 0.0

    @pytest.mark.unit
    def test_accepts_lng_lat_pairs(self):
        index = DistanceIndex.build([(-3.1883, 55.9533), (-3.1883, 55.9543)])
        assert index.total_length == pytest.approx(111.2, abs=0.5)


class TestEmptyIndex:
    """Every query on an empty index raises InputError."""

    @pytest.fixture
    def empty(self):
        return DistanceIndex.build([])

    @pytest.mark.unit
    def test_point_at_distance(self, empty):
        with pytest.raises(InputError):
            empty.point_at_distance(0.0)

    @pytest.mark.unit
    def test_heading_at_distance(self, empty):
        with pytest.raises(InputError):
            empty.heading_at_distance(0.0)

    @pytest.mark.unit
    def test_nearest_vertex(self, empty):
        with pytest.raises(InputError):
            empty.nearest_vertex(ORIGIN)

    @pytest.mark.unit
    def test_nearest_distance_to_point(self, empty):
        with pytest.raises(InputError):
            empty.nearest_distance_to_point(ORIGIN)


class TestPointAtDistance:
    """Tests for interpolating a point along the route."""

    @pytest.mark.unit
    def test_start_and_end(self, straight_polyline):
        index = DistanceIndex.build(straight_polyline)
        assert index.point_at_distance(0.0) == straight_polyline[0]
        end = index.point_at_distance(index.total_length)
        assert point_distance(end, straight_polyline[-1]) < 0.01

    @pytest.mark.unit
    def test_interpolates_between_vertices(self, straight_polyline):
        index = DistanceIndex.build(straight_polyline)
        point = index.point_at_distance(255.0)
        assert point_distance(straight_polyline[0], point) == pytest.approx(255.0, abs=0.1)

    @pytest.mark.unit
    @pytest.mark.parametrize("distance", [-50.0, 5000.0])
    def test_clamped_to_route(self, straight_polyline, distance):
        index = DistanceIndex.build(straight_polyline)
        expected = 0.0 if distance < 0 else index.total_length
        point = index.point_at_distance(distance)
        assert point_distance(index.point_at_distance(expected), point) < 0.01

    @pytest.mark.unit
    @pytest.mark.parametrize("distance", [math.nan, math.inf, None])
    def test_non_finite_distance_rejected(self, straight_polyline, distance):
        index = DistanceIndex.build(straight_polyline)
        with pytest.raises(InputError):
            index.point_at_distance(distance)


class TestHeadingAtDistance:
    """Tests for the road heading at a distance."""

    @pytest.mark.unit
    def test_straight_north(self, straight_polyline):
        index = DistanceIndex.build(straight_polyline)
        assert index.heading_at_distance(300.0) == pytest.approx(0.0, abs=0.01)

    @pytest.mark.unit
    def test_before_and_after_turn(self, right_angle_polyline):
        index = DistanceIndex.build(right_angle_polyline)
        assert index.heading_at_distance(100.0) == pytest.approx(0.0, abs=0.1)
        assert index.heading_at_distance(350.0) == pytest.approx(90.0, abs=0.1)

    @pytest.mark.unit
    def test_end_zone_uses_final_segment(self, right_angle_polyline):
        index = DistanceIndex.build(right_angle_polyline)
        assert index.heading_at_distance(index.total_length) == pytest.approx(90.0, abs=0.1)

    @pytest.mark.unit
    def test_range(self, right_angle_polyline):
        index = DistanceIndex.build(right_angle_polyline)
        for d in range(0, int(index.total_length), 7):
            assert 0 <= index.heading_at_distance(d) < 360


class TestProjection:
    """Tests for snapping a position onto the route."""

    @pytest.mark.unit
    def test_nearest_vertex(self, straight_polyline):
        index = DistanceIndex.build(straight_polyline)
        assert index.nearest_vertex(straight_polyline[42]) == 42

    @pytest.mark.unit
    def test_point_on_route(self, straight_polyline):
        index = DistanceIndex.build(straight_polyline)
        point = index.point_at_distance(433.0)
        assert index.nearest_distance_to_point(point) == pytest.approx(433.0, abs=0.5)

    @pytest.mark.unit
    def test_offset_point(self, straight_polyline):
        """A point 20m east of the road snaps to the road beside it."""
        index = DistanceIndex.build(straight_polyline)
        on_road = index.point_at_distance(500.0)
        lat, lon = point_along_bearing(on_road.lat, on_road.lng, 90, 20.0)

        projection = index.project(GeoPoint(lon, lat))

        assert projection.distance_along == pytest.approx(500.0, abs=1.0)
        assert projection.offset_m == pytest.approx(20.0, abs=1.0)

    @pytest.mark.unit
    def test_before_start_clamps_to_zero(self, straight_polyline):
        index = DistanceIndex.build(straight_polyline)
        lat, lon = point_along_bearing(ORIGIN.lat, ORIGIN.lng, 180, 50.0)
        assert index.nearest_distance_to_point(GeoPoint(lon, lat)) == pytest.approx(0.0, abs=0.01)

    @pytest.mark.unit
    def test_window_limits_search(self):
        """Beside a parallel return leg, the window picks the leg being driven."""
        index = DistanceIndex.build(walk([(0, 10.0)] * 20 + [(90, 8.0)] + [(180, 10.0)] * 20))
        lat, lon = point_along_bearing(ORIGIN.lat, ORIGIN.lng, 0, 90.0)
        lat, lon = point_along_bearing(lat, lon, 90, 5.0)
        noisy = GeoPoint(lon, lat)

        assert index.project(noisy).distance_along > 300.0
        outbound = index.project(noisy, window=(40.0, 190.0))
        assert outbound.distance_along == pytest.approx(90.0, abs=1.0)
        assert outbound.offset_m == pytest.approx(5.0, abs=0.5)

    @pytest.mark.unit
    def test_window_clamped_to_route(self, straight_polyline):
        index = DistanceIndex.build(straight_polyline)
        point = index.point_at_distance(990.0)
        projection = index.project(point, window=(900.0, 5000.0))
        assert projection.distance_along == pytest.approx(990.0, abs=0.5)
