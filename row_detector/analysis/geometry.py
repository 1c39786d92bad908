"""Planar geometry helpers shared by the row detectors.

Coordinates are (x, y) with y pointing north. Angles named ``direction`` are
math angles in radians (0 = east, counter-clockwise); angles named ``bearing``
are compass bearings in degrees (0 = north, clockwise).
"""
from __future__ import annotations

import math
from typing import Sequence

import numpy as np

from row_detector.config import Hole


def coordinates(holes: Sequence[Hole], indices: Sequence[int] | None = None) -> np.ndarray:
    """Return an (n, 2) float array of hole positions, optionally for a subset."""
    if indices is None:
        indices = range(len(holes))
    xy = [(holes[i].x, holes[i].y) for i in indices]
    return np.array(xy, dtype=float).reshape(-1, 2)


def distance(x1: float, y1: float, x2: float, y2: float) -> float:
    return math.hypot(x2 - x1, y2 - y1)


def distance_matrix(xy: np.ndarray) -> np.ndarray:
    """Pairwise Euclidean distances of an (n, 2) array."""
    diff = xy[:, None, :] - xy[None, :, :]
    return np.sqrt(np.sum(diff * diff, axis=-1))


def normalize_angle(angle: float) -> float:
    """Wrap an angle in degrees into [0, 360)."""
    result = angle % 360.0
    # -1e-15 % 360 rounds to 360.0
    return 0.0 if result >= 360.0 else result


def calculate_bearing(x1: float, y1: float, x2: float, y2: float) -> float:
    """Compass bearing from the first point to the second, in degrees."""
    return normalize_angle(math.degrees(math.atan2(x2 - x1, y2 - y1)))


def bearing_difference(a: float, b: float) -> float:
    """Smallest absolute difference between two bearings, in [0, 180]."""
    diff = abs(a - b) % 360.0
    return 360.0 - diff if diff > 180.0 else diff


def direction_to_bearing(direction: float) -> float:
    """Convert a math angle in radians to a compass bearing in degrees."""
    return normalize_angle(90.0 - math.degrees(direction))


def project_onto_direction(x: float, y: float, direction: float) -> float:
    return x * math.cos(direction) + y * math.sin(direction)


def point_to_segment_distance(px: float, py: float,
                              x1: float, y1: float, x2: float, y2: float) -> float:
    """Distance from a point to the closest point of segment (x1, y1)-(x2, y2)."""
    dx = x2 - x1
    dy = y2 - y1
    length_sq = dx * dx + dy * dy
    if length_sq == 0:
        return distance(px, py, x1, y1)

    t = ((px - x1) * dx + (py - y1) * dy) / length_sq
    t = max(0.0, min(1.0, t))
    return distance(px, py, x1 + t * dx, y1 + t * dy)


def covariance_eigenvalues(cxx: float, cxy: float, cyy: float) -> tuple[float, float]:
    """Closed-form eigenvalues (largest first) of the symmetric 2x2 matrix [[cxx, cxy], [cxy, cyy]]."""
    trace = cxx + cyy
    det = cxx * cyy - cxy * cxy
    disc = math.sqrt(max(0.0, trace * trace / 4.0 - det))
    return trace / 2.0 + disc, trace / 2.0 - disc


def covariance_terms(xy: np.ndarray, ddof: int | None = None) -> tuple[float, float, float]:
    """Return (cxx, cxy, cyy) of a point cloud.

    Args:
        xy: (n, 2) coordinates.
        ddof: None for raw sums of centred products, otherwise the sums are
            divided by ``n - ddof``.
    """
    centred = xy - xy.mean(axis=0)
    cxx = float(np.sum(centred[:, 0] * centred[:, 0]))
    cxy = float(np.sum(centred[:, 0] * centred[:, 1]))
    cyy = float(np.sum(centred[:, 1] * centred[:, 1]))
    if ddof is not None:
        denom = len(xy) - ddof
        cxx, cxy, cyy = cxx / denom, cxy / denom, cyy / denom
    return cxx, cxy, cyy


def estimate_row_direction(xy: np.ndarray) -> float:
    """
    Principal direction of a group of points as a math angle in radians.

    Uses the eigenvector of the largest eigenvalue of the scatter matrix.
    Returns 0 for fewer than 2 points; axis-aligned groups resolve to 0
    (wider in x) or pi/2.
    """
    if len(xy) < 2:
        return 0.0

    cxx, cxy, cyy = covariance_terms(xy)
    lambda1, _ = covariance_eigenvalues(cxx, cxy, cyy)

    if abs(cxy) > 1e-10:
        return math.atan2(lambda1 - cxx, cxy)
    return 0.0 if cxx > cyy else math.pi / 2


def estimate_row_orientation(xy: np.ndarray) -> float:
    """Compass bearing (degrees) of a group's principal direction."""
    if len(xy) < 2:
        return 0.0
    return direction_to_bearing(estimate_row_direction(xy))


def douglas_peucker(xy: np.ndarray, epsilon: float) -> list[int]:
    """
    Simplify a polyline, returning the indices of the vertices kept.

    A vertex survives when it lies farther than ``epsilon`` from the segment
    joining the endpoints of its sub-polyline.
    """
    n = len(xy)
    if n < 3:
        return list(range(n))
    return _douglas_peucker(xy, 0, n - 1, epsilon)


def _douglas_peucker(xy: np.ndarray, first: int, last: int, epsilon: float) -> list[int]:
    max_dist = 0.0
    max_index = first
    x1, y1 = xy[first]
    x2, y2 = xy[last]
    for i in range(first + 1, last):
        d = point_to_segment_distance(xy[i][0], xy[i][1], x1, y1, x2, y2)
        if d > max_dist:
            max_dist = d
            max_index = i

    if max_dist > epsilon:
        left = _douglas_peucker(xy, first, max_index, epsilon)
        right = _douglas_peucker(xy, max_index, last, epsilon)
        return left[:-1] + right
    return [first, last]


def nearest_neighbor_chain(xy: np.ndarray) -> list[int]:
    """
    Order points as a greedy nearest-neighbour walk.

    The walk starts at the point farthest from the centroid, which for a
    row-like group is one of its ends.
    """
    n = len(xy)
    if n == 0:
        return []

    centroid = xy.mean(axis=0)
    current = int(np.argmax(np.hypot(*(xy - centroid).T)))

    visited = np.zeros(n, dtype=bool)
    visited[current] = True
    order = [current]
    for _ in range(n - 1):
        dists = np.hypot(*(xy - xy[current]).T)
        dists[visited] = np.inf
        current = int(np.argmin(dists))
        visited[current] = True
        order.append(current)
    return order


def centroid(xy: np.ndarray) -> tuple[float, float]:
    if len(xy) == 0:
        return 0.0, 0.0
    cx, cy = xy.mean(axis=0)
    return float(cx), float(cy)
