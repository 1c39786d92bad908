"""
Row traversal direction.

Decides whether consecutive rows are drilled in the same direction
(FORWARD) or alternate (SERPENTINE), either from row endpoints or from the
order already encoded in numeric hole IDs, and detects winding patterns:
one continuous numbered path that bends back on itself.
"""
from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field

import numpy as np

from row_detector.analysis.geometry import (
    bearing_difference,
    calculate_bearing,
    coordinates,
    distance,
    distance_matrix,
)
from row_detector.config import (
    FORWARD,
    SERPENTINE,
    DetectionConfig,
    DirectionResult,
    Hole,
    PairDirection,
)
from row_detector.detection.graph import graph_endpoints, knn_graph

logger = logging.getLogger(__name__)

_NON_DIGITS = re.compile(r"[^0-9]")
_NUMERIC_ID = re.compile(r"^[0-9]+$")


@dataclass
class SequenceReversals:
    """Direction reversals found by walking numeric IDs in order."""
    is_serpentine: bool
    row_breaks: list[int] = field(default_factory=list)
    confidence: float = 0.0
    avg_holes_per_row: float | None = None


def id_digits(hole_id: str) -> int | None:
    """All digits of an ID concatenated as an integer ("R2-H05" -> 205); None without digits."""
    digits = _NON_DIGITS.sub("", hole_id)
    return int(digits) if digits else None


# =========================================================================
# Endpoint-based direction
# =========================================================================


def detect_serpentine_pattern(holes: list[Hole], rows: list[list[int]]) -> DirectionResult:
    """
    Compare consecutive rows' endpoints to decide the traversal pattern.

    A row pair is serpentine when row.end is closer to next.start than
    row.start is. The pattern is SERPENTINE when most pairs are; confidence
    is the mean normalised distance difference scaled by the serpentine
    share.
    """
    if len(rows) < 2:
        return DirectionResult(pattern=FORWARD, confidence=0.0)

    directions = []
    for i in range(len(rows) - 1):
        row, following = rows[i], rows[i + 1]
        if not row or not following:
            continue
        start, end, next_start = holes[row[0]], holes[row[-1]], holes[following[0]]
        end_to_start = distance(end.x, end.y, next_start.x, next_start.y)
        start_to_start = distance(start.x, start.y, next_start.x, next_start.y)
        confidence = abs(end_to_start - start_to_start) / max(end_to_start, start_to_start, 0.001)
        directions.append(PairDirection(
            row_index=i,
            is_serpentine=end_to_start < start_to_start,
            confidence=min(1.0, confidence),
            end_to_start=end_to_start,
            start_to_start=start_to_start,
        ))

    serpentine_count = sum(1 for d in directions if d.is_serpentine)
    total = len(directions)
    avg_confidence = sum(d.confidence for d in directions) / total if total else 0.0
    pattern = SERPENTINE if serpentine_count > total / 2 else FORWARD
    confidence = min(1.0, avg_confidence * serpentine_count / max(1, total))

    logger.debug("Serpentine detection: %d/%d serpentine pairs -> %s (%.2f)",
                 serpentine_count, total, pattern, confidence)
    return DirectionResult(pattern=pattern, confidence=confidence, directions=directions)


def apply_serpentine_ordering(holes: list[Hole], rows: list[list[int]], pattern: str) -> list[list[int]]:
    """
    Set pos_id 1..k along each row, reversing every second row for SERPENTINE.

    Returns:
        The rows in their new traversal order.
    """
    reordered = []
    for r, row in enumerate(rows):
        row = list(row)
        if pattern == SERPENTINE and r % 2 == 1:
            row.reverse()
        for position, index in enumerate(row, start=1):
            holes[index].pos_id = position
        reordered.append(row)
    return reordered


def assign_serpentine_position_ids(holes: list[Hole], rows: list[list[int]],
                                   pattern: str, start_pos_id: int = 1) -> None:
    """Number holes with one running pos_id across all rows, honouring SERPENTINE reversal."""
    pos_id = start_pos_id
    for r, row in enumerate(rows):
        ordered = reversed(row) if pattern == SERPENTINE and r % 2 == 1 else row
        for index in ordered:
            holes[index].pos_id = pos_id
            pos_id += 1


# =========================================================================
# Direction encoded in hole IDs
# =========================================================================


def check_id_encoded_serpentine(holes: list[Hole], rows: list[list[int]],
                                config: DetectionConfig | None = None) -> tuple[bool, float]:
    """
    Check whether numeric hole IDs already walk the rows in serpentine order.

    For each adjacent pair of rows with at least 2 holes each, the rows are
    sorted by ID. The pair scores 1 when the last-by-ID hole of the first row
    is much closer (``id_serpentine_distance_ratio``) to the next row's
    first-by-ID hole than the first row's own first hole is, 0 in the
    opposite case and 0.5 otherwise.

    Returns:
        (encoded, mean score); encoded when the mean exceeds
        ``id_serpentine_min_score``.
    """
    config = config or DetectionConfig()
    if len(rows) < 2:
        return False, 0.0

    ids = [id_digits(h.id) for h in holes]
    if any(v is None for v in ids):
        return False, 0.0

    ratio = config.id_serpentine_distance_ratio
    scores = []
    for row, following in zip(rows[:-1], rows[1:]):
        if len(row) < 2 or len(following) < 2:
            continue
        first = sorted(row, key=lambda i: ids[i])
        second = sorted(following, key=lambda i: ids[i])
        a_first, a_last, b_first = holes[first[0]], holes[first[-1]], holes[second[0]]

        serpentine_dist = distance(a_last.x, a_last.y, b_first.x, b_first.y)
        forward_dist = distance(a_first.x, a_first.y, b_first.x, b_first.y)
        if serpentine_dist <= forward_dist * ratio:
            scores.append(1.0)
        elif forward_dist <= serpentine_dist * ratio:
            scores.append(0.0)
        else:
            scores.append(0.5)

    if not scores:
        return False, 0.0

    avg = sum(scores) / len(scores)
    logger.debug("Hole ID serpentine check: scores=%s avg=%.2f", scores, avg)
    return avg > config.id_serpentine_min_score, avg


def apply_id_based_positions(holes: list[Hole], rows: list[list[int]]) -> None:
    """Set pos_id within each row from the numeric order of hole IDs."""
    for row in rows:
        ordered = sorted(row, key=lambda i: id_digits(holes[i].id) or 0)
        for position, index in enumerate(ordered, start=1):
            holes[index].pos_id = position


# =========================================================================
# Sequence analysis
# =========================================================================


def detect_serpentine_from_sequence(holes: list[Hole]) -> SequenceReversals:
    """
    Look for regular direction reversals along the numeric ID sequence.

    A reversal is a bearing change above 150 degrees between consecutive
    legs. Two or more reversals are scored by the regularity of their
    spacing (1 - coefficient of variation); a single reversal counts as
    serpentine with confidence 0.5.
    """
    ordered = sorted((h for h in holes if _NUMERIC_ID.match(h.id)), key=lambda h: int(h.id))
    if len(ordered) < 4:
        return SequenceReversals(is_serpentine=False)

    bearings = [calculate_bearing(a.x, a.y, b.x, b.y) for a, b in zip(ordered[:-1], ordered[1:])]
    reversals = [j for j in range(1, len(bearings))
                 if bearing_difference(bearings[j], bearings[j - 1]) > 150]

    if len(reversals) < 2:
        return SequenceReversals(
            is_serpentine=len(reversals) == 1,
            row_breaks=reversals,
            confidence=0.5 if reversals else 0.0,
        )

    intervals = np.diff(reversals)
    avg_interval = float(np.mean(intervals))
    cv = float(np.std(intervals)) / avg_interval
    confidence = max(0.0, 1 - cv)
    return SequenceReversals(
        is_serpentine=confidence > 0.5,
        row_breaks=reversals,
        confidence=confidence,
        avg_holes_per_row=avg_interval,
    )


def detect_rows_using_knn_bearing_traversal(holes: list[Hole], k: int | None = None,
                                            max_bearing_change: float = 30.0) -> tuple[list[list[int]], DirectionResult]:
    """
    Trace rows through a k-nearest-neighbour graph by bearing continuity.

    Tracing starts from low-degree graph nodes (bounding-box extremes when
    there are fewer than two) and greedily steps to the unvisited neighbour
    with the best score: 1 / distance, boosted when the step keeps the
    previous bearing and damped beyond ``max_bearing_change``. Steps that
    reverse direction (over 150 degrees) end the row.

    Returns:
        (rows of 2+ holes, endpoint-based direction of those rows).
    """
    n = len(holes)
    if n < 3:
        return [], DirectionResult(pattern=FORWARD, confidence=0.0)

    k = k or max(1, min(6, n // 5))
    xy = coordinates(holes)
    graph = knn_graph(distance_matrix(xy), k)
    endpoints = graph_endpoints(graph)
    if len(endpoints) < 2:
        endpoints = _extreme_points(xy)
    logger.debug("k-NN traversal: k=%d, %d endpoints", k, len(endpoints))

    visited = [False] * n
    rows = []
    for start in endpoints:
        if visited[start]:
            continue
        row = _trace_row(start, graph, xy, visited, max_bearing_change)
        if len(row) >= 2:
            rows.append(row)

    return rows, detect_serpentine_pattern(holes, rows)


def _trace_row(start: int, graph: list[list[tuple[int, float]]], xy: np.ndarray,
               visited: list[bool], max_bearing_change: float) -> list[int]:
    path = [start]
    visited[start] = True
    current = start
    prev_bearing = None

    while True:
        best = None
        best_score = -math.inf
        for neighbor, dist in graph[current]:
            if visited[neighbor]:
                continue
            bearing = calculate_bearing(*xy[current], *xy[neighbor])
            score = 1 / dist if dist > 0 else math.inf
            if prev_bearing is not None:
                change = bearing_difference(bearing, prev_bearing)
                if change > 150:
                    continue
                if change > max_bearing_change:
                    score *= 0.1
                else:
                    score *= 1 + (max_bearing_change - change) / max_bearing_change
            if score > best_score:
                best_score = score
                best = neighbor

        if best is None:
            return path
        prev_bearing = calculate_bearing(*xy[current], *xy[best])
        visited[best] = True
        path.append(best)
        current = best


def _extreme_points(xy: np.ndarray) -> list[int]:
    extremes = [int(np.argmin(xy[:, 0])), int(np.argmax(xy[:, 0])),
                int(np.argmin(xy[:, 1])), int(np.argmax(xy[:, 1]))]
    return list(dict.fromkeys(extremes))


# =========================================================================
# Winding sequence
# =========================================================================


def detect_rows_using_winding_sequence(holes: list[Hole],
                                       config: DetectionConfig | None = None) -> list[list[int]] | None:
    """
    Split one continuous numbered path into rows where it turns back.

    Requires at least 6 holes, digits in every ID, no repeated number, no
    ID jump above ``winding_max_id_gap`` and no leg longer than
    ``winding_max_jump_factor`` x the median leg (long legs are the return
    carriage of a classic serpentine, not a winding path). A row break
    happens at leg m when its bearing differs by more than
    ``winding_reversal_threshold`` from the bearing ``winding_window_size``
    legs back, or from the bearing the current row started with, and the
    current row already holds ``winding_min_holes_per_row`` holes.

    Returns:
        Rows of hole indices in ID order, or None when the holes do not form
        a winding pattern.
    """
    config = config or DetectionConfig()
    if len(holes) < 6:
        return None

    ids = [id_digits(h.id) for h in holes]
    if any(v is None for v in ids):
        logger.debug("Winding detection: holes without numeric IDs")
        return None
    if len(set(ids)) < len(ids):
        # "A1" and "B1" share a number: the IDs do not describe one path
        logger.debug("Winding detection: repeated numeric IDs")
        return None

    order = sorted(range(len(holes)), key=lambda i: ids[i])
    for a, b in zip(order[:-1], order[1:]):
        if ids[b] - ids[a] > config.winding_max_id_gap:
            logger.debug("Winding detection: ID gap after %d", ids[a])
            return None

    legs = [(calculate_bearing(holes[a].x, holes[a].y, holes[b].x, holes[b].y),
             distance(holes[a].x, holes[a].y, holes[b].x, holes[b].y))
            for a, b in zip(order[:-1], order[1:])]
    bearings = [b for b, _ in legs]

    if len(legs) > 2:
        lengths = sorted(d for _, d in legs)
        max_jump = lengths[len(lengths) // 2] * config.winding_max_jump_factor
        if any(d > max_jump for _, d in legs):
            logger.debug("Winding detection: leg longer than %.1fm, likely classic serpentine", max_jump)
            return None

    window = config.winding_window_size
    threshold = config.winding_reversal_threshold
    breaks = [0]
    entry_bearing = bearings[0]
    for m in range(window, len(bearings)):
        window_change = bearing_difference(bearings[m], bearings[m - window])
        entry_change = bearing_difference(bearings[m], entry_bearing)
        if ((window_change > threshold or entry_change > threshold)
                and m - breaks[-1] >= config.winding_min_holes_per_row):
            breaks.append(m)
            entry_bearing = bearings[m]
            logger.debug("Winding: row break at hole %d (window %.1f, entry %.1f)",
                         ids[order[m]], window_change, entry_change)

    if len(breaks) < 2:
        logger.debug("Winding detection: no direction reversals")
        return None

    bounds = breaks + [len(order)]
    sizes = [end - start for start, end in zip(bounds[:-1], bounds[1:])]
    small = sum(1 for s in sizes if s < config.winding_min_holes_per_row)
    if small > len(sizes) / 2:
        logger.debug("Winding detection: too many short rows %s", sizes)
        return None

    logger.debug("Winding detection: %d rows, sizes %s", len(sizes), sizes)
    return [order[start:end] for start, end in zip(bounds[:-1], bounds[1:])]
