import logging
import math

import numpy as np

from row_detector.analysis.geometry import coordinates, estimate_row_direction
from row_detector.config import DetectionConfig, Hole
from row_detector.detection.assignment import attach_orphans, sort_row_by_projection

logger = logging.getLogger(__name__)


def detect_rows_using_line_fitting(holes: list[Hole],
                                   config: DetectionConfig | None = None) -> list[list[int]] | None:
    """
    Greedy collinear grouping.

    Repeatedly takes the first unassigned hole, seeds a direction from it and
    the next unassigned hole, and absorbs every unassigned hole within
    ``line_tolerance`` of the line through the row centroid, re-estimating
    the direction after each absorption. A row that stays below
    ``min_holes_per_line`` ends the loop; its holes and any other leftovers
    join the nearest row.

    Args:
        holes: Holes in the order they should be scanned.
        config: Detection configuration.

    Returns:
        Rows of indices into ``holes`` ordered along each row, or None when no
        row could be formed.
    """
    config = config or DetectionConfig()
    if len(holes) < config.min_holes_per_line:
        return None

    xy = coordinates(holes)
    unassigned = list(range(len(holes)))
    rows = []

    while len(unassigned) >= config.min_holes_per_line:
        row = [unassigned.pop(0)]
        direction = estimate_row_direction(xy[[row[0], unassigned[0]]])

        i = 0
        while i < len(unassigned):
            candidate = unassigned[i]
            if _perpendicular_distance(xy, row, direction, candidate) <= config.line_tolerance:
                row.append(unassigned.pop(i))
                direction = estimate_row_direction(xy[row])
            else:
                i += 1

        if len(row) < config.min_holes_per_line:
            unassigned.extend(row)
            break
        rows.append(row)

    if not rows:
        return None

    if unassigned:
        logger.debug("Line fitting: attaching %d leftover holes to nearest rows", len(unassigned))
        attach_orphans(xy, rows, unassigned)

    logger.debug("Line fitting found %d rows", len(rows))
    return [sort_row_by_projection(xy, row) for row in rows]


def _perpendicular_distance(xy: np.ndarray, row: list[int], direction: float, index: int) -> float:
    cx, cy = xy[row].mean(axis=0)
    normal = direction + math.pi / 2
    return abs((xy[index][0] - cx) * math.cos(normal) + (xy[index][1] - cy) * math.sin(normal))
