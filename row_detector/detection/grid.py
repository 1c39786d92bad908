"""Binning detectors for simple straight patterns."""
from __future__ import annotations

import logging
import math

import numpy as np

from row_detector.analysis.geometry import coordinates, estimate_row_direction
from row_detector.analysis.statistics import estimate_spacing
from row_detector.config import DetectionConfig, Hole

logger = logging.getLogger(__name__)


def detect_rows_using_adaptive_grid(holes: list[Hole],
                                    config: DetectionConfig | None = None) -> list[list[int]] | None:
    """
    Axis-aligned binning.

    Rows are assumed to run along the longer extent of the pattern; holes are
    binned across it with a bin width of ``grid_bin_factor`` x spacing. Each
    non-empty bin is a row, ordered along the long axis. Needs at least 3
    holes.
    """
    config = config or DetectionConfig()
    if len(holes) < 3:
        return None

    xy = coordinates(holes)
    extent_x = float(np.ptp(xy[:, 0]))
    extent_y = float(np.ptp(xy[:, 1]))
    horizontal = extent_x > extent_y
    across, along = (1, 0) if horizontal else (0, 1)

    spacing = estimate_spacing(xy, config)
    if spacing < config.min_grid_spacing:
        spacing = config.default_spacing

    bin_size = spacing * config.grid_bin_factor
    num_bins = max(1, math.ceil((extent_y if horizontal else extent_x) / bin_size))
    origin = float(np.min(xy[:, across]))

    bins: list[list[int]] = [[] for _ in range(num_bins)]
    for i, point in enumerate(xy):
        bin_index = math.floor((point[across] - origin) / bin_size)
        bins[max(0, min(num_bins - 1, bin_index))].append(i)

    rows = [sorted(b, key=lambda i: xy[i][along]) for b in bins if b]
    logger.debug("Adaptive grid: %d bins of %.2fm, %d rows", num_bins, bin_size, len(rows))
    return rows or None


def detect_rows_using_pca_loess(holes: list[Hole],
                                config: DetectionConfig | None = None,
                                bandwidth: float = 0.3) -> list[list[int]] | None:
    """
    Bin holes by their offset from a LOESS-smoothed principal axis.

    The pattern is rotated so its principal direction is horizontal, a
    smoothed centre line is fitted through the rotated cloud, and holes are
    binned by signed offset from that line: a new row starts whenever the
    offset exceeds the current row's first offset by ``grid_bin_factor`` x
    spacing. Rows are ordered by offset, holes along the rotated x axis.

    Returns None for fewer than 4 holes.
    """
    config = config or DetectionConfig()
    if len(holes) < 4:
        return None

    xy = coordinates(holes)
    angle = estimate_row_direction(xy)
    rotated = _rotate(xy - xy.mean(axis=0), -angle)
    curve = loess_smooth(rotated, bandwidth)
    offsets = [_signed_offset(point, curve) for point in rotated]

    bin_size = estimate_spacing(xy, config) * config.grid_bin_factor
    order = sorted(range(len(holes)), key=lambda i: offsets[i])

    rows = []
    current = [order[0]]
    bin_start = offsets[order[0]]
    for i in order[1:]:
        if offsets[i] - bin_start > bin_size:
            rows.append(current)
            current = [i]
            bin_start = offsets[i]
        else:
            current.append(i)
    rows.append(current)

    logger.debug("PCA + LOESS: principal angle %.1f deg, %d rows", math.degrees(angle), len(rows))
    return [sorted(row, key=lambda i: rotated[i][0]) for row in rows]


def loess_smooth(points: np.ndarray, bandwidth: float, max_samples: int = 50) -> np.ndarray:
    """
    Tricube-weighted moving average of points sorted by x.

    Evaluated at most ``max_samples`` times along the sorted points with a
    window of max(3, n * bandwidth) points.
    """
    ordered = points[np.argsort(points[:, 0], kind="stable")]
    n = len(ordered)
    half_window = max(3, math.floor(n * bandwidth)) // 2
    step = max(1, n // max_samples)

    curve = []
    for i in range(0, n, step):
        lo = max(0, i - half_window)
        hi = min(n, i + half_window + 1)
        u = np.abs(np.arange(lo, hi) - i) / half_window
        weights = np.where(u < 1, (1 - u ** 3) ** 3, 0.0)
        total = weights.sum()
        if total > 0:
            curve.append((weights @ ordered[lo:hi]) / total)
    return np.array(curve).reshape(-1, 2)


def _rotate(points: np.ndarray, angle: float) -> np.ndarray:
    c, s = math.cos(angle), math.sin(angle)
    return np.column_stack([points[:, 0] * c - points[:, 1] * s,
                            points[:, 0] * s + points[:, 1] * c])


def _signed_offset(point: np.ndarray, curve: np.ndarray) -> float:
    """Distance to the nearest curve segment, negative below the curve."""
    if len(curve) < 2:
        return float(point[1])

    best = math.inf
    best_sign = 1.0
    for a, b in zip(curve[:-1], curve[1:]):
        seg = b - a
        length_sq = float(seg @ seg)
        t = 0.0 if length_sq == 0 else max(0.0, min(1.0, float((point - a) @ seg) / length_sq))
        nearest = a + t * seg
        d = math.dist(point, nearest)
        if d < best:
            best = d
            cross = seg[0] * (point[1] - a[1]) - seg[1] * (point[0] - a[0])
            best_sign = -1.0 if cross < 0 else 1.0
    return best * best_sign
