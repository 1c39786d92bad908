"""Tests for row_detector.detection.clustering."""
import numpy as np
import pytest

from row_detector.analysis.geometry import coordinates
from row_detector.config import Hole
from row_detector.detection.clustering import (
    detect_rows_using_dbscan_douglas_peucker,
    detect_rows_using_hdbscan,
    detect_rows_using_sequence_weighted_hdbscan,
    estimate_epsilon,
    numeric_id,
    run_dbscan,
    sequence_weighted_distances,
)

EXPECTED_ROWS = [list(range(10)), list(range(10, 20)), list(range(20, 30))]


def _make_separated_rows(rows=3, cols=10, spacing=1.0, burden=10.0):
    """Rows far apart compared with the hole spacing, numbered row by row."""
    return [
        Hole(str(r * cols + c + 1), c * spacing, r * burden)
        for r in range(rows) for c in range(cols)
    ]


class TestHdbscan:

    def test_separated_rows(self):
        assert detect_rows_using_hdbscan(_make_separated_rows()) == EXPECTED_ROWS

    def test_sequence_weighted_separated_rows(self):
        assert detect_rows_using_sequence_weighted_hdbscan(_make_separated_rows()) == EXPECTED_ROWS

    def test_rows_ordered_along_row(self):
        holes = list(reversed(_make_separated_rows(rows=2)))
        rows = detect_rows_using_hdbscan(holes)
        # Index 0 is the last hole of the top row; each row comes back west to east
        assert rows == [list(range(9, -1, -1)), list(range(19, 9, -1))]

    def test_too_few_holes(self):
        holes = [Hole("1", 0, 0), Hole("2", 1, 0)]
        assert detect_rows_using_hdbscan(holes) is None
        assert detect_rows_using_sequence_weighted_hdbscan(holes) is None


class TestSequenceWeightedDistances:

    def test_numeric_id(self):
        assert numeric_id("B12") == 12
        assert numeric_id("7") == 7
        assert numeric_id("R2-H05") == 2
        assert numeric_id("x") == 0

    def test_blend(self):
        holes = [Hole("1", 0.0, 0.0), Hole("2", 3.0, 4.0)]
        dists = sequence_weighted_distances(holes, coordinates(holes), 0.3)
        # 0.7 * (5 / 5) + 0.3 * (1 / 2)
        assert dists[0][1] == pytest.approx(0.85)
        assert dists[1][0] == pytest.approx(0.85)
        assert dists[0][0] == 0.0


class TestDbscan:

    def test_epsilon_from_elbow(self):
        xy = coordinates(_make_separated_rows())
        assert estimate_epsilon(xy) == pytest.approx(2.0)

    def test_epsilon_single_point(self):
        assert estimate_epsilon(np.array([[0.0, 0.0]])) == 10.0

    def test_run_dbscan_drops_noise(self):
        xy = np.array([[0.0, 0.0], [1.0, 0.0], [2.0, 0.0], [50.0, 50.0]])
        assert run_dbscan(xy, eps=1.5, min_pts=2) == [[0, 1, 2]]

    def test_douglas_peucker_rows(self):
        rows = detect_rows_using_dbscan_douglas_peucker(_make_separated_rows())
        assert rows == EXPECTED_ROWS

    def test_noise_joins_nearest_row(self):
        holes = _make_separated_rows(rows=2)
        holes.append(Hole("stray", 4.5, 4.0))
        rows = detect_rows_using_dbscan_douglas_peucker(holes)
        assert len(rows) == 2
        assert 20 in rows[0]
        assert sorted(len(r) for r in rows) == [10, 11]

    def test_too_few_holes(self):
        assert detect_rows_using_dbscan_douglas_peucker([Hole("1", 0, 0), Hole("2", 1, 0)]) is None
