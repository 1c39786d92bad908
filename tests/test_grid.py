"""Tests for row_detector.detection.grid."""
import numpy as np
import pytest

from row_detector.config import Hole
from row_detector.detection.grid import (
    detect_rows_using_adaptive_grid,
    detect_rows_using_pca_loess,
    loess_smooth,
)


class TestAdaptiveGrid:

    def test_horizontal_rows(self):
        """Rows run along the long x extent and are binned across y."""
        holes = [Hole(f"{r}-{c}", (4 - c) * 2.0, r * 3.0) for r in range(3) for c in range(5)]
        rows = detect_rows_using_adaptive_grid(holes)
        assert rows == [[4, 3, 2, 1, 0], [9, 8, 7, 6, 5], [14, 13, 12, 11, 10]]

    def test_vertical_rows(self):
        holes = [Hole(f"{r}-{c}", r * 3.0, c * 2.0) for r in range(2) for c in range(7)]
        rows = detect_rows_using_adaptive_grid(holes)
        assert rows == [list(range(7)), list(range(7, 14))]

    def test_collinear_holes_form_one_row(self):
        holes = [Hole(str(i), i * 2.0, 0.0) for i in range(4)]
        assert detect_rows_using_adaptive_grid(holes) == [[0, 1, 2, 3]]

    def test_too_few_holes(self):
        assert detect_rows_using_adaptive_grid([Hole("1", 0, 0), Hole("2", 5, 1)]) is None


class TestPcaLoess:

    def test_two_staggered_rows(self):
        holes = [Hole(f"A{i}", i * 3.0, 0.0) for i in range(10)]
        holes += [Hole(f"B{i}", i * 3.0 + 1.5, 4.0) for i in range(10)]
        rows = detect_rows_using_pca_loess(holes)
        assert rows == [list(range(10)), list(range(10, 20))]

    def test_too_few_holes(self):
        holes = [Hole(str(i), float(i), 0.0) for i in range(3)]
        assert detect_rows_using_pca_loess(holes) is None

    def test_loess_of_a_line_stays_on_the_line(self):
        points = np.array([[float(i), 2.0 * i] for i in range(10)])
        curve = loess_smooth(points, 0.3)
        assert len(curve) == 10
        assert curve[:, 1] == pytest.approx(2.0 * curve[:, 0])
