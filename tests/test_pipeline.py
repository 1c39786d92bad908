"""Tests for row_detector.pipeline."""
import copy

import pytest

from row_detector.config import (
    FORWARD,
    METHOD_CURVED,
    METHOD_FALLBACK,
    METHOD_NONE,
    METHOD_PCA_LOESS,
    METHOD_SEQUENCE,
    METHOD_WINDING,
    SERPENTINE,
    DetectionConfig,
    Hole,
)
from row_detector.pipeline import (
    DETECTORS,
    SELECTABLE_DETECTORS,
    build_row_arrays,
    detect_rows,
    next_row_id,
    renumber_rows,
    validate_holes,
)


def _make_lettered_grid(prefixes="ABC", cols=5, spacing=3.0, burden=4.0, serpentine=False):
    """Rows A, B, C...; with ``serpentine`` every second row is numbered east to west."""
    holes = []
    for r, prefix in enumerate(prefixes):
        for c in range(cols):
            number = cols - c if serpentine and r % 2 == 1 else c + 1
            holes.append(Hole(f"{prefix}{number}", c * spacing, r * burden))
    return holes


def _make_unlabelled_cloud():
    """Irregular 4 x 6 pattern whose IDs carry no sequence information."""
    holes = []
    for r in range(4):
        for c in range(6):
            x = c * 3.0 + (0.4 if (r + c) % 3 == 0 else 0.0)
            y = r * 5.0 + (0.3 if c % 2 else -0.2)
            holes.append(Hole(f"hole-{chr(97 + r)}{chr(97 + c)}", x, y))
    return holes


def _assignments(holes):
    return [(h.row_id, h.pos_id) for h in holes]


class TestDetectRows:

    def test_detector_order(self):
        assert [name for name, _ in DETECTORS][:2] == [METHOD_WINDING, METHOD_SEQUENCE]

    def test_lettered_rows_use_sequence_detection(self):
        holes = _make_lettered_grid()
        result = detect_rows(holes)
        assert result.success is True
        assert result.method == METHOD_SEQUENCE
        assert result.row_count == 3
        assert result.rows == [list(range(5)), list(range(5, 10)), list(range(10, 15))]
        assert [h.row_id for h in holes[:5]] == [1] * 5
        assert [h.pos_id for h in holes[:5]] == [1, 2, 3, 4, 5]
        assert result.serpentine_pattern.pattern == FORWARD

    def test_serpentine_numbering_kept_from_ids(self):
        holes = _make_lettered_grid(serpentine=True)
        result = detect_rows(holes)
        assert result.serpentine_pattern.pattern == SERPENTINE
        assert result.serpentine_pattern.encoded_in_ids is True
        b1 = next(h for h in holes if h.id == "B1")
        assert b1.pos_id == 1
        assert b1.x == pytest.approx(12.0)

    def test_winding_path(self):
        holes = []
        for r in range(3):
            columns = range(5) if r % 2 == 0 else range(4, -1, -1)
            for c in columns:
                holes.append(Hole(str(len(holes) + 1), c * 2.0, r * 3.0))
        result = detect_rows(holes)
        assert result.method == METHOD_WINDING
        assert result.row_count == 3
        assert result.serpentine_pattern.winding is True
        # Second row is walked east to west
        assert holes[5].x == pytest.approx(8.0)
        assert holes[5].pos_id == 1

    def test_fallback_single_row(self):
        """Two stray holes defeat every detector."""
        holes = [Hole("north", 0.0, 0.0), Hole("south", 7.3, -2.1)]
        result = detect_rows(holes)
        assert result.success is True
        assert result.method == METHOD_FALLBACK
        assert result.rows == [[0, 1]]
        assert _assignments(holes) == [(1, 1), (1, 2)]

    def test_fallback_with_numeric_ids(self):
        """Numbered IDs on two holes still end in the single-row fallback."""
        holes = [Hole("1", 0.0, 0.0), Hole("2", 7.3, -2.1)]
        result = detect_rows(holes)
        assert result.method == METHOD_FALLBACK
        assert result.rows == [[0, 1]]
        assert _assignments(holes) == [(1, 1), (1, 2)]

    def test_empty_input(self):
        result = detect_rows([])
        assert result.success is False
        assert result.method == METHOD_NONE
        assert result.rows == []

    def test_invalid_coordinates_raise(self):
        holes = [Hole("1", 0.0, 0.0), Hole("2", float("nan"), 1.0)]
        with pytest.raises(ValueError, match="invalid coordinates: 2"):
            detect_rows(holes)

    def test_every_hole_assigned_once(self):
        holes = _make_unlabelled_cloud()
        result = detect_rows(holes)
        assert result.success is True
        assert sum(len(r) for r in result.rows) == len(holes)
        assert sorted(i for r in result.rows for i in r) == list(range(len(holes)))
        assert all(h.row_id is not None and h.pos_id is not None for h in holes)

    def test_deterministic(self):
        first = _make_unlabelled_cloud()
        second = copy.deepcopy(first)
        detect_rows(first)
        detect_rows(second)
        assert _assignments(first) == _assignments(second)

    def test_start_row_id_without_reset(self):
        holes = _make_lettered_grid()
        config = DetectionConfig(reset_row_numbers=False)
        detect_rows(holes, config, start_row_id=5)
        assert sorted({h.row_id for h in holes}) == [5, 6, 7]

    def test_start_row_id_ignored_with_reset(self):
        holes = _make_lettered_grid()
        detect_rows(holes, start_row_id=5)
        assert sorted({h.row_id for h in holes}) == [1, 2, 3]

    def test_forced_serpentine(self):
        holes = _make_lettered_grid(prefixes="AB")
        result = detect_rows(holes, DetectionConfig(force_direction=SERPENTINE))
        assert result.serpentine_pattern.forced is True
        assert [h.pos_id for h in holes[5:]] == [5, 4, 3, 2, 1]

    def test_serpentine_detection_disabled(self):
        holes = _make_lettered_grid()
        result = detect_rows(holes, DetectionConfig(detect_serpentine=False))
        assert result.serpentine_pattern is None


class TestSelectedMethod:

    def test_curved_rows_on_request(self):
        """Two parallel rows 6m apart are split by offset from the principal curve."""
        holes = [Hole(f"A{i + 1}", i * 3.0, 0.0) for i in range(10)]
        holes += [Hole(f"B{i + 1}", i * 3.0, 6.0) for i in range(10)]
        result = detect_rows(holes, method=METHOD_CURVED)
        assert result.method == METHOD_CURVED
        assert result.rows == [list(range(10)), list(range(10, 20))]
        assert result.serpentine_pattern.pattern == FORWARD

    def test_selected_method_skips_the_chain(self):
        """Lettered rows would go to sequence detection; the chosen detector runs instead."""
        holes = [Hole(f"A{i + 1}", i * 3.0, 0.0) for i in range(10)]
        holes += [Hole(f"B{i + 1}", i * 3.0 + 1.5, 4.0) for i in range(10)]
        result = detect_rows(holes, method=METHOD_PCA_LOESS)
        assert result.method == METHOD_PCA_LOESS
        assert result.rows == [list(range(10)), list(range(10, 20))]

    def test_selected_method_falls_back_to_single_row(self):
        holes = [Hole(str(i + 1), i * 3.0, 0.0) for i in range(3)]
        result = detect_rows(holes, method=METHOD_PCA_LOESS)
        assert result.method == METHOD_FALLBACK
        assert result.rows == [[0, 1, 2]]

    def test_unknown_method(self):
        with pytest.raises(ValueError, match="Unknown detection method 'voronoi'"):
            detect_rows(_make_lettered_grid(), method="voronoi")

    def test_chain_detectors_are_selectable(self):
        for name, _ in DETECTORS:
            assert name in SELECTABLE_DETECTORS


class TestRowArrays:

    def test_build_row_arrays(self):
        holes = [
            Hole("a", 0, 0, row_id=2, pos_id=2),
            Hole("b", 0, 0, row_id=1, pos_id=1),
            Hole("c", 0, 0, row_id=2, pos_id=1),
            Hole("d", 0, 0),
        ]
        assert build_row_arrays(holes) == [[3], [1], [2, 0]]

    def test_renumber_rows(self):
        holes = [Hole("a", 0, 0, row_id=5), Hole("b", 0, 0, row_id=9),
                 Hole("c", 0, 0, row_id=5), Hole("d", 0, 0, row_id=12), Hole("e", 0, 0)]
        renumber_rows(holes)
        assert [h.row_id for h in holes] == [1, 2, 1, 3, None]

    def test_next_row_id(self):
        holes = [
            Hole("a", 0, 0, entity_name="P1", row_id=1),
            Hole("b", 0, 0, entity_name="P1", row_id=2),
            Hole("c", 0, 0, entity_name="P2", row_id=7),
            Hole("d", 0, 0, entity_name="P2"),
        ]
        assert next_row_id(holes, "P1") == 3
        assert next_row_id(holes, "P2") == 8
        assert next_row_id(holes) == 8
        assert next_row_id(holes, "P3") == 1


class TestValidateHoles:

    def test_valid(self):
        validate_holes([Hole("1", 0.0, 0.0), Hole("2", 1.0, 2.0)])

    def test_lists_offending_ids(self):
        holes = [Hole("1", float("inf"), 0.0), Hole("2", 0.0, 0.0), Hole("3", None, 0.0)]
        with pytest.raises(ValueError, match="2 holes with invalid coordinates: 1, 3"):
            validate_holes(holes)
