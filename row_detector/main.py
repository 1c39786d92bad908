import click
import logging
from pathlib import Path

from row_detector.config import (
    FORWARD,
    METHOD_ADAPTIVE_GRID,
    METHOD_CURVED,
    METHOD_DBSCAN_DP,
    METHOD_HDBSCAN,
    METHOD_PCA_LOESS,
    METHOD_SEQUENCE,
    METHOD_SPLINE,
    METHOD_WEIGHTED_HDBSCAN,
    METHOD_WINDING,
    SERPENTINE,
    DetectionConfig,
)
from row_detector.utils.logger import LOG_LEVELS, setup_logging

METHOD_CHOICES = [
    METHOD_WINDING,
    METHOD_SEQUENCE,
    METHOD_WEIGHTED_HDBSCAN,
    METHOD_HDBSCAN,
    METHOD_ADAPTIVE_GRID,
    METHOD_DBSCAN_DP,
    METHOD_CURVED,
    METHOD_SPLINE,
    METHOD_PCA_LOESS,
]


def _load(input_file: str):
    from row_detector.data.reader import load_holes
    try:
        return load_holes(Path(input_file))
    except (FileNotFoundError, ValueError) as exc:
        raise click.ClickException(str(exc)) from exc


@click.group()
def cli():
    """Row Detector - Row and position assignment for blast-hole patterns."""
    pass


@cli.command()
@click.option("--input", "input_file", required=True, type=click.Path(exists=True),
              help="Path to JSON hole file")
@click.option("--output", type=click.Path(), default=None,
              help="Path for holes with row/pos IDs (auto-generated if omitted)")
@click.option("--report", type=click.Path(), default=None,
              help="Path for JSON report (auto-generated if omitted)")
@click.option("--start-row-id", type=int, default=None,
              help="First row ID to assign (default: 1, or the next free ID with --keep-row-numbers)")
@click.option("--keep-row-numbers", is_flag=True, default=False,
              help="Do not renumber rows to 1..k after detection")
@click.option("--no-serpentine", is_flag=True, default=False,
              help="Skip endpoint-based serpentine detection")
@click.option("--force-direction", type=click.Choice([FORWARD, SERPENTINE]), default=None,
              help="Override direction detection")
@click.option("--method", type=click.Choice(METHOD_CHOICES), default=None,
              help="Run only this detector (default: try each in turn)")
@click.option("--log-level", default="INFO", type=click.Choice(LOG_LEVELS))
def detect(input_file, output, report, start_row_id, keep_row_numbers, no_serpentine,
           force_direction, method, log_level):
    """Detect rows and positions and write the numbered holes."""
    import time
    from datetime import datetime

    setup_logging(log_level)
    logger = logging.getLogger(__name__)

    input_path = Path(input_file)
    output_path = Path(output) if output else input_path.with_name(f"{input_path.stem}_rows.json")
    if report is None:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        report_path = input_path.with_name(f"row_report_{timestamp}.json")
    else:
        report_path = Path(report)

    config = DetectionConfig(
        reset_row_numbers=not keep_row_numbers,
        detect_serpentine=not no_serpentine,
        force_direction=force_direction,
    )

    start_time = time.time()
    logger.info("Starting row detection")
    logger.info("  Input:  %s", input_path)
    logger.info("  Output: %s", output_path)

    holes = _load(input_file)

    from row_detector.pipeline import detect_rows, next_row_id
    if start_row_id is None:
        start_row_id = next_row_id(holes) if keep_row_numbers else 1
    # Existing assignments are replaced by the new detection
    for hole in holes:
        hole.row_id = None
        hole.pos_id = None

    try:
        result = detect_rows(holes, config, start_row_id=start_row_id, method=method)
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc

    from row_detector.output.validator import calculate_confidence_score, validate_row_detection
    validation = validate_row_detection(holes, result.rows, result.serpentine_pattern)

    from row_detector.data.writer import write_holes
    write_holes(output_path, holes)

    execution_time = time.time() - start_time
    from row_detector.output.report_generator import generate_report
    generate_report(result, validation, holes, config, input_path, execution_time, report_path)

    logger.info("Detection complete in %.1fs", execution_time)
    logger.info("  Method: %s, %d rows", result.method, result.row_count)
    if result.serpentine_pattern:
        logger.info("  Direction: %s (confidence %.2f)",
                    result.serpentine_pattern.pattern, result.serpentine_pattern.confidence)
    logger.info("  Validation: %s, confidence %.2f",
                validation.status, calculate_confidence_score(validation, result.method))
    logger.info("  Report: %s", report_path)


@cli.command()
@click.option("--input", "input_file", required=True, type=click.Path(exists=True),
              help="Path to JSON hole file")
@click.option("--log-level", default="INFO", type=click.Choice(LOG_LEVELS))
def classify(input_file, log_level):
    """Classify the pattern as straight, curved or multi-pattern."""
    setup_logging(log_level)
    logger = logging.getLogger(__name__)

    holes = _load(input_file)
    if not holes:
        raise click.ClickException(f"No holes in {input_file}")

    from row_detector.analysis.classifier import classify_pattern
    classification = classify_pattern(holes)

    logger.info("Pattern: %s (confidence %.2f)", classification.type, classification.confidence)
    for name, value in classification.metrics.items():
        logger.info("  %s: %s", name, value)
    if classification.is_serpentine_candidate:
        logger.info("  Serpentine candidate")
    for sub in classification.sub_patterns:
        logger.info("  %s: %d holes at %.1f deg", sub.type, len(sub.indices), sub.orientation)


@cli.command()
@click.option("--input", "input_file", required=True, type=click.Path(exists=True),
              help="Path to JSON hole file with row_id / pos_id")
@click.option("--method", default=None, help="Detection method, for the combined confidence score")
@click.option("--log-level", default="INFO", type=click.Choice(LOG_LEVELS))
def validate(input_file, method, log_level):
    """Validate existing row and position assignments."""
    setup_logging(log_level)
    logger = logging.getLogger(__name__)

    holes = _load(input_file)

    from row_detector.pipeline import build_row_arrays
    from row_detector.output.validator import (
        calculate_confidence_score,
        calculate_detailed_metrics,
        validate_row_detection,
    )
    rows = build_row_arrays(holes)
    validation = validate_row_detection(holes, rows)

    for check in validation.checks:
        logger.info("  [%s] %s: %s", check.status, check.name, check.detail)
    if rows:
        for name, value in calculate_detailed_metrics(holes, rows).items():
            logger.info("  %s: %s", name, value)
    logger.info("Validation: %s (pattern %s)", validation.status, validation.pattern_type)
    if method:
        logger.info("Confidence: %.2f", calculate_confidence_score(validation, method))
    else:
        logger.info("Confidence: %.2f", validation.confidence)


if __name__ == "__main__":
    cli()
