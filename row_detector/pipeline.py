"""
Row detection orchestrator.

Tries each detector in order of reliability until one produces rows, writes
row_id / pos_id onto the holes, resolves the traversal direction and
optionally renumbers rows from 1.
"""
from __future__ import annotations

import logging
import math
from typing import Callable

from row_detector.config import (
    METHOD_ADAPTIVE_GRID,
    METHOD_CURVED,
    METHOD_DBSCAN_DP,
    METHOD_FALLBACK,
    METHOD_HDBSCAN,
    METHOD_NONE,
    METHOD_PCA_LOESS,
    METHOD_SEQUENCE,
    METHOD_SPLINE,
    METHOD_WEIGHTED_HDBSCAN,
    METHOD_WINDING,
    SERPENTINE,
    DetectionConfig,
    DetectionResult,
    DirectionResult,
    Hole,
)
from row_detector.detection.clustering import (
    detect_rows_using_dbscan_douglas_peucker,
    detect_rows_using_hdbscan,
    detect_rows_using_sequence_weighted_hdbscan,
)
from row_detector.detection.curves import detect_curved_rows, detect_rows_using_spline_fitting
from row_detector.detection.grid import detect_rows_using_adaptive_grid, detect_rows_using_pca_loess
from row_detector.detection.sequence import try_sequence_detection
from row_detector.detection.serpentine import (
    apply_id_based_positions,
    apply_serpentine_ordering,
    check_id_encoded_serpentine,
    detect_rows_using_winding_sequence,
    detect_serpentine_pattern,
)

logger = logging.getLogger(__name__)

Detector = Callable[[list[Hole], DetectionConfig], list[list[int]] | None]

DETECTORS: list[tuple[str, Detector]] = [
    (METHOD_WINDING, detect_rows_using_winding_sequence),
    (METHOD_SEQUENCE, try_sequence_detection),
    (METHOD_WEIGHTED_HDBSCAN, detect_rows_using_sequence_weighted_hdbscan),
    (METHOD_HDBSCAN, detect_rows_using_hdbscan),
    (METHOD_ADAPTIVE_GRID, detect_rows_using_adaptive_grid),
    (METHOD_DBSCAN_DP, detect_rows_using_dbscan_douglas_peucker),
]


def _detect_curved(holes: list[Hole], config: DetectionConfig) -> list[list[int]] | None:
    return detect_curved_rows(holes, detection_config=config)


def _detect_spline(holes: list[Hole], config: DetectionConfig) -> list[list[int]] | None:
    # Holes are taken in input (drilling) order
    return detect_rows_using_spline_fitting(holes, detection_config=config)


SELECTABLE_DETECTORS: dict[str, Detector] = {
    **dict(DETECTORS),
    METHOD_CURVED: _detect_curved,
    METHOD_SPLINE: _detect_spline,
    METHOD_PCA_LOESS: detect_rows_using_pca_loess,
}


def detect_rows(holes: list[Hole], config: DetectionConfig | None = None,
                start_row_id: int = 1, method: str | None = None) -> DetectionResult:
    """
    Assign row_id and pos_id to every hole.

    Detectors run in the order of DETECTORS; the first to return rows wins
    and a single row in input order is the last resort. With ``method`` only
    that detector from SELECTABLE_DETECTORS runs, still backed by the single
    row. Holes are mutated in place.

    Args:
        holes: Holes to organise. Coordinates must be finite numbers.
        config: Detection configuration.
        start_row_id: First row ID to hand out (see next_row_id); ignored
            when config.reset_row_numbers is set.
        method: Detector name to run alone, or None for the full chain.

    Returns:
        DetectionResult with rows as hole indices ordered by pos_id.

    Raises:
        ValueError: If any hole has a missing or non-finite coordinate, or
            ``method`` is not a known detector.
    """
    config = config or DetectionConfig()
    if method is None:
        detectors = DETECTORS
    elif method in SELECTABLE_DETECTORS:
        detectors = [(method, SELECTABLE_DETECTORS[method])]
    else:
        raise ValueError(f"Unknown detection method {method!r}, expected one of {list(SELECTABLE_DETECTORS)}")

    if not holes:
        logger.warning("Row detection called without holes")
        return DetectionResult(success=False, method=METHOD_NONE, rows=[], row_count=0)

    validate_holes(holes)
    logger.info("Detecting rows for %d holes", len(holes))

    used = METHOD_FALLBACK
    rows = None
    for name, detector in detectors:
        rows = detector(holes, config)
        if rows:
            used = name
            break
        logger.debug("Detector %s found nothing", name)
    else:
        logger.info("All detectors failed, falling back to a single row")
        rows = [list(range(len(holes)))]

    assign_rows(holes, rows, start_row_id)
    rows = build_row_arrays(holes)
    logger.info("Detected %d rows using %s", len(rows), used)

    direction = resolve_direction(holes, rows, used, config)
    rows = build_row_arrays(holes)

    if config.reset_row_numbers:
        renumber_rows(holes)
        rows = build_row_arrays(holes)

    return DetectionResult(
        success=True,
        method=used,
        rows=rows,
        row_count=len(rows),
        serpentine_pattern=direction,
    )


def resolve_direction(holes: list[Hole], rows: list[list[int]], method: str,
                      config: DetectionConfig) -> DirectionResult | None:
    """
    Settle pos_id order across rows.

    Winding rows are already segmented by direction. Otherwise numeric IDs
    that encode a serpentine walk take precedence, then a forced direction,
    then endpoint-based detection (applied above serpentine_min_confidence).
    """
    if method == METHOD_WINDING:
        return DirectionResult(pattern=SERPENTINE, confidence=1.0, winding=True)

    encoded, score = check_id_encoded_serpentine(holes, rows, config)
    if encoded:
        logger.info("Hole IDs encode a serpentine walk (score %.2f), using ID order", score)
        apply_id_based_positions(holes, rows)
        return DirectionResult(pattern=SERPENTINE, confidence=score, encoded_in_ids=True)

    if len(rows) < 2:
        return None

    if config.force_direction:
        logger.info("Forcing %s direction", config.force_direction)
        if config.force_direction == SERPENTINE:
            apply_serpentine_ordering(holes, rows, SERPENTINE)
        return DirectionResult(pattern=config.force_direction, confidence=1.0, forced=True)

    if not config.detect_serpentine:
        return None

    direction = detect_serpentine_pattern(holes, rows)
    logger.info("Direction: %s (confidence %.2f)", direction.pattern, direction.confidence)
    if direction.pattern == SERPENTINE and direction.confidence > config.serpentine_min_confidence:
        apply_serpentine_ordering(holes, rows, SERPENTINE)
    return direction


def assign_rows(holes: list[Hole], rows: list[list[int]], start_row_id: int = 1) -> None:
    """Write consecutive row IDs from ``start_row_id`` and 1-based positions in row order."""
    for offset, row in enumerate(rows):
        for position, index in enumerate(row, start=1):
            holes[index].row_id = start_row_id + offset
            holes[index].pos_id = position


def build_row_arrays(holes: list[Hole]) -> list[list[int]]:
    """
    Group hole indices by row_id (missing counts as 0), rows in row_id order,
    holes within a row in pos_id order (missing counts as 0).
    """
    by_row: dict[int, list[int]] = {}
    for index, hole in enumerate(holes):
        by_row.setdefault(hole.row_id or 0, []).append(index)
    return [sorted(by_row[row_id], key=lambda i: holes[i].pos_id or 0) for row_id in sorted(by_row)]


def renumber_rows(holes: list[Hole]) -> None:
    """Map the distinct row IDs in use onto 1..k, preserving their order."""
    row_ids = sorted({h.row_id for h in holes if h.row_id is not None})
    mapping = {old: new for new, old in enumerate(row_ids, start=1)}
    for hole in holes:
        if hole.row_id is not None:
            hole.row_id = mapping[hole.row_id]


def next_row_id(holes: list[Hole], entity_name: str | None = None) -> int:
    """One past the largest row ID used by ``entity_name`` (or by any hole when None)."""
    used = [h.row_id for h in holes
            if h.row_id is not None and (entity_name is None or h.entity_name == entity_name)]
    return max(used, default=0) + 1


def validate_holes(holes: list[Hole]) -> None:
    """Raise ValueError naming every hole whose coordinates are not finite numbers."""
    bad = []
    for hole in holes:
        try:
            ok = math.isfinite(hole.x) and math.isfinite(hole.y)
        except TypeError:
            ok = False
        if not ok:
            bad.append(hole.id)
    if bad:
        raise ValueError(f"{len(bad)} holes with invalid coordinates: {', '.join(map(str, bad[:10]))}")
