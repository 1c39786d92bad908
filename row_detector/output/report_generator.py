import json
import logging
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path

from row_detector.config import DetectionConfig, DetectionResult, Hole
from row_detector.output.validator import (
    ValidationResult,
    calculate_confidence_score,
    calculate_detailed_metrics,
)

logger = logging.getLogger(__name__)


def generate_report(
    result: DetectionResult,
    validation: ValidationResult,
    holes: list[Hole],
    config: DetectionConfig,
    input_path: Path,
    execution_time_seconds: float,
    report_path: Path,
) -> Path:
    """
    Generate a JSON report of one detection run.

    Args:
        result: Orchestrator result.
        validation: Validation of the detected rows.
        holes: Holes after detection (row_id / pos_id filled in).
        config: Detection configuration used for the run.
        input_path: Path to the input hole file.
        execution_time_seconds: Total run time.
        report_path: Where to write the JSON report.

    Returns:
        Path to the generated report file.
    """
    direction = result.serpentine_pattern

    rows = []
    for row in result.rows:
        first = holes[row[0]] if row else None
        rows.append({
            "row_id": first.row_id if first else None,
            "hole_count": len(row),
            "hole_ids": [holes[i].id for i in row],
        })

    report_data = {
        "metadata": {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "input_file": str(input_path),
            "execution_time_seconds": round(execution_time_seconds, 2),
            "software_version": "0.1.0",
        },
        "parameters": asdict(config),
        "summary": {
            "success": result.success,
            "method": result.method,
            "row_count": result.row_count,
            "total_holes": len(holes),
            "direction": direction.pattern if direction else None,
            "direction_confidence": round(direction.confidence, 3) if direction else None,
            "encoded_in_ids": direction.encoded_in_ids if direction else False,
            "confidence_score": round(calculate_confidence_score(validation, result.method), 3),
        },
        "metrics": calculate_detailed_metrics(holes, result.rows) if result.rows else {},
        "rows": rows,
        "validation": {
            "status": validation.status,
            "confidence": round(validation.confidence, 3),
            "pattern_type": validation.pattern_type,
            "issues": validation.issues,
            "warnings": validation.warnings,
            "checks": [
                {"name": c.name, "status": c.status, "detail": c.detail}
                for c in validation.checks
            ],
        },
    }

    report_path.parent.mkdir(parents=True, exist_ok=True)
    report_path.write_text(json.dumps(report_data, indent=2, ensure_ascii=False))
    logger.info("Detection report written to %s", report_path)

    return report_path
