"""Shared helpers turning index groups into ordered rows."""
import math

import numpy as np

from row_detector.analysis.geometry import estimate_row_direction


def sort_row_by_projection(xy: np.ndarray, row: list[int]) -> list[int]:
    """Order a row's hole indices along the row's own principal direction."""
    direction = estimate_row_direction(xy[row])
    cos_d, sin_d = math.cos(direction), math.sin(direction)
    return sorted(row, key=lambda i: xy[i][0] * cos_d + xy[i][1] * sin_d)


def attach_orphans(xy: np.ndarray, rows: list[list[int]], orphans: list[int]) -> None:
    """
    Append each orphan hole to the row whose centroid is nearest.

    Centroids are recomputed after every attachment. Ties go to the earlier
    row; with no rows at all the orphans are left alone.
    """
    if not rows:
        return
    for index in orphans:
        best_row = rows[-1]
        best_dist = math.inf
        for row in rows:
            cx, cy = xy[row].mean(axis=0)
            d = math.hypot(xy[index][0] - cx, xy[index][1] - cy)
            if d < best_dist:
                best_dist = d
                best_row = row
        best_row.append(index)
