"""Tests for row_detector.data.reader."""
import json

import pytest

from row_detector.config import Hole
from row_detector.data.reader import holes_from_records, load_holes


def _write(tmp_path, data, name="holes.json"):
    path = tmp_path / name
    path.write_text(json.dumps(data))
    return path


class TestLoadHoles:
    """Tests for load_holes."""

    def test_array_of_records(self, tmp_path):
        path = _write(tmp_path, [
            {"id": "A1", "x": 1.5, "y": 2},
            {"id": "A2", "x": 4.5, "y": 2, "entity_name": "P1", "row_id": 3, "pos_id": 2},
        ])
        holes = load_holes(path)
        assert holes == [
            Hole("A1", 1.5, 2.0),
            Hole("A2", 4.5, 2.0, entity_name="P1", row_id=3, pos_id=2),
        ]
        assert isinstance(holes[0].y, float)

    def test_object_with_holes_key(self, tmp_path):
        path = _write(tmp_path, {"name": "bench 12", "holes": [{"id": 7, "x": 0, "y": 0}]})
        holes = load_holes(path)
        assert holes[0].id == "7"

    def test_empty_array(self, tmp_path):
        assert load_holes(_write(tmp_path, [])) == []

    def test_missing_file_raises_file_not_found(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="Hole file not found"):
            load_holes(tmp_path / "nonexistent.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json")
        with pytest.raises(ValueError, match="not valid JSON"):
            load_holes(path)

    def test_object_without_holes(self, tmp_path):
        with pytest.raises(ValueError, match="no 'holes' array"):
            load_holes(_write(tmp_path, {"points": []}))

    def test_scalar_document(self, tmp_path):
        with pytest.raises(ValueError, match="array of holes"):
            load_holes(_write(tmp_path, 42))


class TestHolesFromRecords:
    """Record validation."""

    def test_missing_id(self):
        with pytest.raises(ValueError, match="Record 1 has no id"):
            holes_from_records([{"id": "1", "x": 0, "y": 0}, {"x": 1, "y": 1}])

    def test_empty_id(self):
        with pytest.raises(ValueError, match="has no id"):
            holes_from_records([{"id": "", "x": 0, "y": 0}])

    def test_record_not_an_object(self):
        with pytest.raises(ValueError, match="Record 0 is not an object"):
            holes_from_records([[0, 0]])

    @pytest.mark.parametrize("value", [None, "3.5", True])
    def test_coordinate_must_be_a_number(self, value):
        with pytest.raises(ValueError, match="Hole H1: 'x' must be a number"):
            holes_from_records([{"id": "H1", "x": value, "y": 0}])

    def test_missing_coordinate(self):
        with pytest.raises(ValueError, match="'y' must be a number"):
            holes_from_records([{"id": "H1", "x": 0}])

    def test_non_finite_coordinate(self):
        with pytest.raises(ValueError, match="'y' is not finite"):
            holes_from_records([{"id": "H1", "x": 0, "y": float("inf")}])

    @pytest.mark.parametrize("value", [1.0, "2", False])
    def test_row_id_must_be_integer(self, value):
        with pytest.raises(ValueError, match="'row_id' must be an integer"):
            holes_from_records([{"id": "H1", "x": 0, "y": 0, "row_id": value}])

    def test_null_row_and_position(self):
        holes = holes_from_records([{"id": "H1", "x": 0, "y": 0, "row_id": None, "pos_id": None}])
        assert holes[0].row_id is None
        assert holes[0].pos_id is None
