"""Tests for row_detector.analysis.geometry."""
import math

import numpy as np
import pytest

from row_detector.analysis.geometry import (
    bearing_difference,
    calculate_bearing,
    coordinates,
    covariance_eigenvalues,
    direction_to_bearing,
    distance_matrix,
    douglas_peucker,
    estimate_row_direction,
    estimate_row_orientation,
    nearest_neighbor_chain,
    normalize_angle,
    point_to_segment_distance,
)
from row_detector.config import Hole


class TestBearings:

    def test_cardinal_bearings(self):
        assert calculate_bearing(0, 0, 0, 1) == pytest.approx(0.0)
        assert calculate_bearing(0, 0, 1, 0) == pytest.approx(90.0)
        assert calculate_bearing(0, 0, 0, -1) == pytest.approx(180.0)
        assert calculate_bearing(0, 0, -1, 0) == pytest.approx(270.0)

    def test_difference_wraps_through_north(self):
        assert bearing_difference(350.0, 10.0) == pytest.approx(20.0)
        assert bearing_difference(10.0, 350.0) == pytest.approx(20.0)

    def test_difference_of_opposites_is_180(self):
        assert bearing_difference(90.0, 270.0) == pytest.approx(180.0)

    def test_normalize_negative_angle(self):
        assert normalize_angle(-90.0) == pytest.approx(270.0)

    def test_normalize_tiny_negative_is_zero(self):
        """-1e-15 % 360 rounds up to 360.0, which must wrap to 0."""
        assert normalize_angle(-1e-15) == 0.0

    def test_direction_to_bearing(self):
        assert direction_to_bearing(0.0) == pytest.approx(90.0)
        assert direction_to_bearing(math.pi / 2) == pytest.approx(0.0)


class TestRowDirection:

    def test_horizontal_row(self):
        xy = np.array([[0.0, 0.0], [1.0, 0.0], [2.0, 0.0]])
        assert estimate_row_direction(xy) == pytest.approx(0.0)
        assert estimate_row_orientation(xy) == pytest.approx(90.0)

    def test_vertical_row(self):
        xy = np.array([[0.0, 0.0], [0.0, 1.0], [0.0, 2.0]])
        assert estimate_row_direction(xy) == pytest.approx(math.pi / 2)

    def test_diagonal_row(self):
        xy = np.array([[0.0, 0.0], [1.0, 1.0], [2.0, 2.0]])
        assert estimate_row_direction(xy) == pytest.approx(math.pi / 4)

    def test_single_point_is_zero(self):
        assert estimate_row_direction(np.array([[5.0, 5.0]])) == 0.0

    def test_covariance_eigenvalues_largest_first(self):
        assert covariance_eigenvalues(2.0, 0.0, 1.0) == pytest.approx((2.0, 1.0))


class TestDistances:

    def test_coordinates_subset(self):
        holes = [Hole("1", 0.0, 0.0), Hole("2", 3.0, 4.0), Hole("3", 6.0, 8.0)]
        xy = coordinates(holes, [2, 0])
        assert xy.tolist() == [[6.0, 8.0], [0.0, 0.0]]

    def test_coordinates_empty(self):
        assert coordinates([]).shape == (0, 2)

    def test_distance_matrix(self):
        dists = distance_matrix(np.array([[0.0, 0.0], [3.0, 4.0]]))
        assert dists.tolist() == pytest.approx([[0.0, 5.0], [5.0, 0.0]])

    def test_point_to_segment_inside(self):
        assert point_to_segment_distance(1, 1, 0, 0, 2, 0) == pytest.approx(1.0)

    def test_point_to_segment_beyond_end(self):
        assert point_to_segment_distance(4, 0, 0, 0, 2, 0) == pytest.approx(2.0)

    def test_point_to_degenerate_segment(self):
        assert point_to_segment_distance(3, 4, 0, 0, 0, 0) == pytest.approx(5.0)


class TestDouglasPeucker:

    def test_collinear_keeps_endpoints(self):
        xy = np.array([[float(i), 0.0] for i in range(6)])
        assert douglas_peucker(xy, 0.1) == [0, 5]

    def test_spike_is_kept(self):
        xy = np.array([[0.0, 0.0], [1.0, 0.0], [2.0, 5.0], [3.0, 0.0], [4.0, 0.0]])
        assert douglas_peucker(xy, 1.0) == [0, 2, 4]

    def test_two_points_unchanged(self):
        assert douglas_peucker(np.array([[0.0, 0.0], [1.0, 1.0]]), 0.5) == [0, 1]


class TestNearestNeighborChain:

    def test_chain_starts_at_an_end(self):
        xy = np.array([[2.0, 0.0], [0.0, 0.0], [3.0, 0.0], [1.0, 0.0]])
        assert nearest_neighbor_chain(xy) == [1, 3, 0, 2]

    def test_empty(self):
        assert nearest_neighbor_chain(np.zeros((0, 2))) == []
