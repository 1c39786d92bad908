import logging
import math
from dataclasses import dataclass, field

import numpy as np

from row_detector.analysis.geometry import coordinates, distance
from row_detector.analysis.statistics import compute_series_statistics, mean
from row_detector.config import (
    METHOD_ADAPTIVE_GRID,
    METHOD_DBSCAN_DP,
    METHOD_FALLBACK,
    METHOD_HDBSCAN,
    METHOD_SEQUENCE,
    METHOD_WEIGHTED_HDBSCAN,
    METHOD_WINDING,
    SERPENTINE,
    DirectionResult,
    Hole,
    SeriesStatistics,
)

logger = logging.getLogger(__name__)

# Overall status
VALID = "VALID"
WARNING = "WARNING"
INVALID = "INVALID"

# Pattern type estimated from the detected rows
PATTERN_STRAIGHT = "STRAIGHT"
PATTERN_CURVED = "CURVED"
PATTERN_SERPENTINE = "SERPENTINE"
PATTERN_WINDING = "WINDING"
PATTERN_IRREGULAR = "IRREGULAR"
PATTERN_UNKNOWN = "UNKNOWN"

# Reliability adjustment per detection method
METHOD_BONUS = {
    METHOD_SEQUENCE: 0.1,
    METHOD_WINDING: 0.1,
    METHOD_WEIGHTED_HDBSCAN: 0.05,
    METHOD_HDBSCAN: 0.0,
    METHOD_ADAPTIVE_GRID: -0.05,
    METHOD_DBSCAN_DP: -0.1,
    METHOD_FALLBACK: -0.3,
}


@dataclass
class ValidationCheck:
    """Result of a single validation check."""
    name: str
    status: str  # "PASS", "FAIL", "WARNING"
    detail: str = ""


@dataclass
class ValidationResult:
    """Complete validation result."""
    status: str = VALID
    issues: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    metrics: dict = field(default_factory=dict)
    confidence: float = 1.0
    pattern_type: str = PATTERN_UNKNOWN
    checks: list[ValidationCheck] = field(default_factory=list)


def validate_row_detection(
    holes: list[Hole],
    rows: list[list[int]],
    direction: DirectionResult | None = None,
) -> ValidationResult:
    """
    Score a row assignment.

    Checks:
    1. Holes without a row ID (penalty 0.1 x orphan ratio)
    2. Spacing CV within rows > 0.5 (penalty 0.15)
    3. Burden CV between row centroids > 0.5 (penalty 0.1)
    4. Largest / smallest row > 3 (penalty 0.1)
    5. Gaps in pos_id sequences (penalty 0.05)
    6. Duplicate pos_id within a row (penalty 0.2, status INVALID)

    Only duplicates make a result INVALID; every other finding is a
    warning. The validator never raises.

    Args:
        holes: Holes carrying row_id / pos_id.
        rows: Hole indices per row.
        direction: Traversal result from detection, if any; used to label
            serpentine and winding patterns.

    Returns:
        ValidationResult with status, confidence in [0, 1], metrics and
        individual check results.
    """
    result = ValidationResult()

    if not holes or not rows:
        reason = "No holes provided" if not holes else "No rows detected"
        result.status = WARNING
        result.warnings.append(reason)
        result.confidence = 0.0
        result.checks.append(ValidationCheck("input", "WARNING", reason))
        logger.warning("Validation skipped: %s", reason)
        return result

    # Check 1: orphan holes
    orphans = sum(1 for h in holes if not h.row_id)
    if orphans > 0:
        ratio = orphans / len(holes)
        result.warnings.append(f"Found {orphans} holes without row assignment")
        result.confidence -= 0.1 * min(ratio, 1.0)
        result.checks.append(ValidationCheck("orphan_holes", "WARNING", f"{orphans}/{len(holes)} holes without a row"))
    else:
        result.checks.append(ValidationCheck("orphan_holes", "PASS", "Every hole has a row"))

    # Check 2: spacing consistency
    spacing = spacing_statistics(holes, rows)
    result.metrics["avg_spacing"] = spacing.mean
    result.metrics["spacing_std"] = spacing.std
    result.metrics["spacing_cv"] = spacing.cv
    if spacing.cv > 0.5:
        result.warnings.append(f"High spacing variation (CV={spacing.cv:.2f})")
        result.confidence -= 0.15
        result.checks.append(ValidationCheck("spacing_consistency", "WARNING", f"Spacing CV {spacing.cv:.2f} > 0.5"))
    else:
        result.checks.append(ValidationCheck("spacing_consistency", "PASS", f"Spacing CV {spacing.cv:.2f}"))

    # Check 3: burden consistency
    burden = burden_statistics(holes, rows)
    result.metrics["avg_burden"] = burden.mean
    result.metrics["burden_std"] = burden.std
    result.metrics["burden_cv"] = burden.cv
    if burden.cv > 0.5:
        result.warnings.append(f"High burden variation (CV={burden.cv:.2f})")
        result.confidence -= 0.1
        result.checks.append(ValidationCheck("burden_consistency", "WARNING", f"Burden CV {burden.cv:.2f} > 0.5"))
    else:
        result.checks.append(ValidationCheck("burden_consistency", "PASS", f"Burden CV {burden.cv:.2f}"))

    # Check 4: row size balance
    sizes = [len(row) for row in rows]
    min_size, max_size = min(sizes), max(sizes)
    size_ratio = max_size / min_size if min_size > 0 else math.inf
    result.metrics["avg_row_size"] = mean(sizes)
    result.metrics["min_row_size"] = min_size
    result.metrics["max_row_size"] = max_size
    if size_ratio > 3:
        result.warnings.append(f"Large row size imbalance (ratio={size_ratio:.1f})")
        result.confidence -= 0.1
        result.checks.append(ValidationCheck("row_size_balance", "WARNING", f"Size ratio {size_ratio:.1f} > 3"))
    else:
        result.checks.append(ValidationCheck("row_size_balance", "PASS", f"Size ratio {size_ratio:.1f}"))

    # Checks 5 and 6: position sequences
    rows_with_gaps, rows_with_duplicates = check_position_sequences(holes, rows)
    if rows_with_gaps:
        result.warnings.append(f"Position sequence has gaps in {rows_with_gaps} rows")
        result.confidence -= 0.05
        result.checks.append(ValidationCheck("position_gaps", "WARNING", f"{rows_with_gaps} rows with gaps"))
    else:
        result.checks.append(ValidationCheck("position_gaps", "PASS", "No gaps"))

    if rows_with_duplicates:
        result.issues.append(f"Duplicate position IDs found in {rows_with_duplicates} rows")
        result.confidence -= 0.2
        result.checks.append(ValidationCheck(
            "position_duplicates", "FAIL", f"{rows_with_duplicates} rows with duplicate pos_id"
        ))
        logger.error("Duplicate position IDs in %d rows", rows_with_duplicates)
    else:
        result.checks.append(ValidationCheck("position_duplicates", "PASS", "No duplicates"))

    result.pattern_type = estimate_pattern_type(spacing, burden, direction)
    result.metrics["pattern_type"] = result.pattern_type
    result.metrics["row_count"] = len(rows)
    result.metrics["total_holes"] = len(holes)
    result.metrics["holes_per_row"] = len(holes) / len(rows)

    result.confidence = max(0.0, min(1.0, result.confidence))

    if result.issues:
        result.status = INVALID
    elif result.warnings:
        result.status = WARNING

    for warning in result.warnings:
        logger.warning("Validation: %s", warning)
    logger.info("Validation %s: confidence=%.2f, pattern=%s, %d issues, %d warnings",
                result.status, result.confidence, result.pattern_type,
                len(result.issues), len(result.warnings))
    return result


def _by_position(holes: list[Hole], row: list[int]) -> list[int]:
    return sorted(row, key=lambda i: holes[i].pos_id or 0)


def spacing_statistics(holes: list[Hole], rows: list[list[int]]) -> SeriesStatistics:
    """Distances between consecutive holes of each row, in pos_id order."""
    spacings = []
    for row in rows:
        ordered = _by_position(holes, row)
        for a, b in zip(ordered, ordered[1:]):
            spacings.append(distance(holes[a].x, holes[a].y, holes[b].x, holes[b].y))
    return compute_series_statistics(spacings)


def burden_statistics(holes: list[Hole], rows: list[list[int]]) -> SeriesStatistics:
    """Distances between the centroids of consecutive rows."""
    centroids = [coordinates(holes, row).mean(axis=0) for row in rows if row]
    burdens = [float(np.hypot(*(b - a))) for a, b in zip(centroids, centroids[1:])]
    return compute_series_statistics(burdens)


def check_position_sequences(holes: list[Hole], rows: list[list[int]]) -> tuple[int, int]:
    """
    Count rows whose pos_id values have gaps and rows that repeat a pos_id.

    Missing pos_id counts as 0.

    Returns:
        (rows_with_gaps, rows_with_duplicates)
    """
    rows_with_gaps = 0
    rows_with_duplicates = 0
    for row in rows:
        positions = sorted(holes[i].pos_id or 0 for i in row)
        unique = sorted(set(positions))
        if len(unique) < len(positions):
            rows_with_duplicates += 1
        if any(b - a > 1 for a, b in zip(unique, unique[1:])):
            rows_with_gaps += 1
    return rows_with_gaps, rows_with_duplicates


def estimate_pattern_type(spacing: SeriesStatistics, burden: SeriesStatistics,
                          direction: DirectionResult | None = None) -> str:
    if direction is not None:
        if direction.winding:
            return PATTERN_WINDING
        if direction.pattern == SERPENTINE:
            return PATTERN_SERPENTINE

    if spacing.cv > 0.3 or burden.cv > 0.3:
        if spacing.cv > 0.5 or burden.cv > 0.5:
            return PATTERN_IRREGULAR
        return PATTERN_CURVED

    if spacing.cv < 0.15 and burden.cv < 0.15:
        return PATTERN_STRAIGHT

    return PATTERN_UNKNOWN


def calculate_pattern_offset(holes: list[Hole], rows: list[list[int]]) -> float:
    """
    Mean row-to-row stagger as a fraction of spacing, folded into [0, 0.5].

    For each pair of consecutive rows with at least 2 holes, the first hole
    of the second row is projected onto the first row's opening segment.
    0 means a square pattern, 0.5 a fully staggered one.
    """
    offsets = []
    for row1, row2 in zip(rows, rows[1:]):
        if len(row1) < 2 or len(row2) < 2:
            continue
        first, second = (holes[i] for i in _by_position(holes, row1)[:2])
        other = holes[_by_position(holes, row2)[0]]

        spacing = distance(first.x, first.y, second.x, second.y)
        if spacing == 0:
            continue
        ux, uy = (second.x - first.x) / spacing, (second.y - first.y) / spacing
        projection = (other.x - first.x) * ux + (other.y - first.y) * uy

        offset = abs(math.fmod(projection, spacing)) / spacing
        if offset > 0.5:
            offset = 1 - offset
        offsets.append(offset)

    return mean(offsets)


def calculate_detailed_metrics(holes: list[Hole], rows: list[list[int]]) -> dict:
    """
    Spacing, burden and row-size metrics rounded for display.

    Distances are rounded to 2 decimals, averages of counts to 1. The
    pattern style is "square" for an offset ratio within 0.15 of 0,
    "staggered" within 0.15 of 0.5, "irregular" otherwise.
    """
    spacing = spacing_statistics(holes, rows)
    burden = burden_statistics(holes, rows)
    sizes = [len(row) for row in rows]
    offset_ratio = calculate_pattern_offset(holes, rows)

    if abs(offset_ratio) < 0.15:
        style = "square"
    elif abs(offset_ratio - 0.5) < 0.15:
        style = "staggered"
    else:
        style = "irregular"

    return {
        "avg_spacing": round(spacing.mean, 2),
        "spacing_std": round(spacing.std, 2),
        "spacing_cv": round(spacing.cv, 2),
        "avg_burden": round(burden.mean, 2),
        "burden_std": round(burden.std, 2),
        "burden_cv": round(burden.cv, 2),
        "row_count": len(rows),
        "avg_row_size": round(mean(sizes), 1),
        "min_row_size": min(sizes, default=0),
        "max_row_size": max(sizes, default=0),
        "offset_ratio": round(offset_ratio, 2),
        "pattern_style": style,
        "total_holes": len(holes),
        "avg_holes_per_row": round(len(holes) / len(rows), 1) if rows else 0.0,
    }


def calculate_confidence_score(validation: ValidationResult, method: str) -> float:
    """Validator confidence adjusted by the reliability of the detection method, clamped to [0, 1]."""
    score = validation.confidence + METHOD_BONUS.get(method, 0.0)
    return max(0.0, min(1.0, score))
