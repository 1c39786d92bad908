import json
from pathlib import Path

import pytest

from row_detector.config import (
    FORWARD,
    METHOD_NONE,
    METHOD_SEQUENCE,
    DetectionConfig,
    DetectionResult,
    DirectionResult,
    Hole,
)
from row_detector.output.report_generator import generate_report
from row_detector.output.validator import ValidationCheck, ValidationResult


def _make_holes():
    holes = []
    for r, prefix in enumerate("AB"):
        for c in range(3):
            holes.append(Hole(f"{prefix}{c + 1}", c * 3.0, r * 4.0, row_id=r + 1, pos_id=c + 1))
    return holes


def _make_result(rows=None):
    if rows is None:
        rows = [[0, 1, 2], [3, 4, 5]]
    return DetectionResult(
        success=True, method=METHOD_SEQUENCE, rows=rows, row_count=len(rows),
        serpentine_pattern=DirectionResult(pattern=FORWARD, confidence=0.12345),
    )


def _make_validation():
    return ValidationResult(
        status="VALID",
        confidence=0.95,
        pattern_type="STRAIGHT",
        checks=[
            ValidationCheck("orphan_holes", "PASS", "Every hole has a row"),
            ValidationCheck("position_duplicates", "PASS", "No duplicates"),
        ],
    )


def _generate(tmp_path, result=None, holes=None, execution_time_seconds=1.0):
    report_path = tmp_path / "report.json"
    generate_report(
        result=result or _make_result(),
        validation=_make_validation(),
        holes=_make_holes() if holes is None else holes,
        config=DetectionConfig(),
        input_path=Path("holes.json"),
        execution_time_seconds=execution_time_seconds,
        report_path=report_path,
    )
    return json.loads(report_path.read_text())


class TestGenerateReport:
    """Tests for generate_report."""

    def test_top_level_sections(self, tmp_path):
        data = _generate(tmp_path)
        for key in ["metadata", "parameters", "summary", "metrics", "rows", "validation"]:
            assert key in data, f"Missing key: {key}"

    def test_metadata_fields(self, tmp_path):
        meta = _generate(tmp_path, execution_time_seconds=5.678)["metadata"]
        assert "T" in meta["timestamp"]  # ISO 8601 format
        assert meta["execution_time_seconds"] == 5.68
        assert meta["software_version"] == "0.1.0"
        assert meta["input_file"] == "holes.json"

    def test_parameters_mirror_config(self, tmp_path):
        params = _generate(tmp_path)["parameters"]
        assert params["reset_row_numbers"] is True
        assert params["line_tolerance"] == 2.0
        assert params["force_direction"] is None

    def test_summary(self, tmp_path):
        summary = _generate(tmp_path)["summary"]
        assert summary["success"] is True
        assert summary["method"] == METHOD_SEQUENCE
        assert summary["row_count"] == 2
        assert summary["total_holes"] == 6
        assert summary["direction"] == FORWARD
        assert summary["direction_confidence"] == 0.123
        assert summary["encoded_in_ids"] is False
        # 0.95 validator confidence + 0.1 for sequence detection, clamped
        assert summary["confidence_score"] == 1.0

    def test_rows_list_hole_ids(self, tmp_path):
        rows = _generate(tmp_path)["rows"]
        assert rows[0] == {"row_id": 1, "hole_count": 3, "hole_ids": ["A1", "A2", "A3"]}
        assert rows[1]["hole_ids"] == ["B1", "B2", "B3"]

    def test_metrics(self, tmp_path):
        metrics = _generate(tmp_path)["metrics"]
        assert metrics["avg_spacing"] == pytest.approx(3.0)
        assert metrics["avg_burden"] == pytest.approx(4.0)
        assert metrics["pattern_style"] == "square"

    def test_validation_section(self, tmp_path):
        validation = _generate(tmp_path)["validation"]
        assert validation["status"] == "VALID"
        assert validation["confidence"] == 0.95
        assert validation["checks"][0] == {
            "name": "orphan_holes", "status": "PASS", "detail": "Every hole has a row",
        }

    def test_failed_detection(self, tmp_path):
        """No rows: empty metrics and no direction."""
        result = DetectionResult(success=False, method=METHOD_NONE, rows=[], row_count=0)
        data = _generate(tmp_path, result=result, holes=[])
        assert data["metrics"] == {}
        assert data["rows"] == []
        assert data["summary"]["direction"] is None
        assert data["summary"]["success"] is False

    def test_returns_report_path(self, tmp_path):
        report_path = tmp_path / "reports" / "run.json"
        returned = generate_report(
            result=_make_result(),
            validation=_make_validation(),
            holes=_make_holes(),
            config=DetectionConfig(),
            input_path=Path("holes.json"),
            execution_time_seconds=0.5,
            report_path=report_path,
        )
        assert returned == report_path
        assert report_path.exists()
