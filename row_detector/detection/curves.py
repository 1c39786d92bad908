"""
Curved-row detection.

A principal curve (Hastie-Stuetzle) is fitted through the pattern; holes are
then described by their arc length along it and their signed offset from it.
Rows are offset clusters ordered by arc length. A B-spline variant splits an
already ordered hole sequence wherever it leaves a smooth spline.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass

import numpy as np

from row_detector.analysis.geometry import coordinates, covariance_eigenvalues, covariance_terms
from row_detector.analysis.statistics import estimate_spacing
from row_detector.config import CurveConfig, DetectionConfig, Hole

logger = logging.getLogger(__name__)


@dataclass
class CurveProjection:
    """Where a hole lands on a polyline curve."""
    segment: int            # Index of the nearest segment
    t: float                # Position on that segment, [0, 1]
    x: float
    y: float
    offset: float           # Signed distance, positive to the left of the curve
    arc_length: float = 0.0


@dataclass
class PrincipalCurve:
    points: np.ndarray      # (m, 2) polyline vertices
    arc_lengths: np.ndarray # Cumulative length at each vertex
    iterations: int = 0


# =========================================================================
# Principal curve
# =========================================================================


def fit_principal_curve(holes: list[Hole], config: CurveConfig | None = None) -> PrincipalCurve:
    """
    Fit a principal curve through the holes.

    Starts from ``curve_points`` points along the first principal component
    (with a 10% margin at each end), then alternates projecting every hole
    onto the curve and replacing the curve with a LOESS-smoothed path through
    the projections, until the curve moves less than
    ``convergence_tolerance`` or ``max_iterations`` is reached.
    """
    config = config or CurveConfig()
    xy = coordinates(holes)
    curve = _initial_curve(xy, config.curve_points)

    iterations = 0
    for iterations in range(1, config.max_iterations + 1):
        projections = [project_onto_curve(point, curve) for point in xy]
        new_curve = _smooth_projections(projections, config.smoothing)
        converged = (len(new_curve) == len(curve)
                     and float(np.max(np.hypot(*(new_curve - curve).T))) < config.convergence_tolerance)
        curve = new_curve
        if converged:
            logger.debug("Principal curve converged after %d iterations", iterations)
            break

    return PrincipalCurve(points=curve, arc_lengths=arc_lengths(curve), iterations=iterations)


def project_onto_curve(point: np.ndarray, curve: np.ndarray) -> CurveProjection:
    """Nearest point of a polyline; the first nearest segment wins ties."""
    best = None
    best_dist = math.inf
    for i in range(len(curve) - 1):
        a, b = curve[i], curve[i + 1]
        seg = b - a
        length_sq = float(seg @ seg)
        if length_sq < 0.0001:
            t = 0.0
        else:
            t = max(0.0, min(1.0, float((point - a) @ seg) / length_sq))
        nearest = a + t * seg
        dist = math.dist(point, nearest)
        if dist < best_dist:
            best_dist = dist
            cross = seg[0] * (point[1] - a[1]) - seg[1] * (point[0] - a[0])
            best = CurveProjection(segment=i, t=t, x=float(nearest[0]), y=float(nearest[1]),
                                   offset=-dist if cross < 0 else dist)

    if best is None:
        return CurveProjection(segment=0, t=0.0, x=float(point[0]), y=float(point[1]), offset=0.0)
    return best


def arc_lengths(points: np.ndarray) -> np.ndarray:
    if len(points) == 0:
        return np.zeros(0)
    steps = np.hypot(*np.diff(points, axis=0).T) if len(points) > 1 else np.zeros(0)
    return np.concatenate([[0.0], np.cumsum(steps)])


def project_holes_onto_curve(holes: list[Hole], curve: PrincipalCurve) -> list[CurveProjection]:
    """Project holes and fill in their arc length along the curve."""
    projections = []
    for point in coordinates(holes):
        proj = project_onto_curve(point, curve.points)
        arc = float(curve.arc_lengths[proj.segment]) if len(curve.arc_lengths) else 0.0
        if proj.segment < len(curve.points) - 1:
            arc += proj.t * math.dist(curve.points[proj.segment], curve.points[proj.segment + 1])
        proj.arc_length = arc
        projections.append(proj)
    return projections


def order_holes_along_curve(holes: list[Hole], curve: PrincipalCurve) -> list[int]:
    """Hole indices sorted by arc length along ``curve``."""
    projections = project_holes_onto_curve(holes, curve)
    return sorted(range(len(holes)), key=lambda i: projections[i].arc_length)


def detect_curved_rows(holes: list[Hole],
                       config: CurveConfig | None = None,
                       expected_rows: int | None = None,
                       detection_config: DetectionConfig | None = None) -> list[list[int]] | None:
    """
    Detect rows that follow a common curve.

    Rows are found by 1D k-means over signed offsets from the principal
    curve. Without ``expected_rows`` the row count is estimated from the
    offset extent and the hole spacing, capped at n // 2.

    Returns:
        Rows ordered by mean offset, each ordered by arc length; None for
        fewer than 4 holes.
    """
    config = config or CurveConfig()
    n = len(holes)
    if n < 4:
        return None

    curve = fit_principal_curve(holes, config)
    projections = project_holes_onto_curve(holes, curve)
    offsets = [p.offset for p in projections]

    if expected_rows is None:
        spacing = estimate_spacing(coordinates(holes), detection_config)
        expected_rows = estimate_row_count(offsets, spacing, n)
    logger.debug("Curved rows: %d expected rows after %d curve iterations", expected_rows, curve.iterations)

    if expected_rows <= 1:
        clusters = [list(range(n))]
    else:
        clusters = kmeans_1d(offsets, expected_rows, config.kmeans_iterations)

    rows = [sorted(c, key=lambda i: projections[i].arc_length) for c in clusters]
    rows.sort(key=lambda row: sum(offsets[i] for i in row) / len(row))
    return rows


def estimate_row_count(offsets: list[float], spacing: float, n: int) -> int:
    """Offset extent over spacing, rounded half up, between 1 and n // 2."""
    extent = max(offsets) - min(offsets) if offsets else 0.0
    count = math.floor(extent / spacing + 0.5) if spacing > 0 else 0
    return max(1, min(count, n // 2))


def kmeans_1d(values: list[float], k: int, max_iterations: int = 20) -> list[list[int]]:
    """
    Deterministic 1D k-means.

    Centres start evenly spaced across the value range; ties go to the lower
    centre. Empty clusters are dropped from the result.
    """
    n = len(values)
    k = min(k, n)
    lo, hi = min(values), max(values)
    centers = [lo + (hi - lo) * (c + 0.5) / k for c in range(k)]

    assignments = [0] * n
    for _ in range(max_iterations):
        changed = False
        for i, value in enumerate(values):
            best = min(range(k), key=lambda c: abs(value - centers[c]))
            if best != assignments[i]:
                assignments[i] = best
                changed = True
        if not changed:
            break
        for c in range(k):
            members = [values[i] for i in range(n) if assignments[i] == c]
            if members:
                centers[c] = sum(members) / len(members)

    clusters = [[i for i in range(n) if assignments[i] == c] for c in range(k)]
    return [c for c in clusters if c]


def _initial_curve(xy: np.ndarray, num_points: int) -> np.ndarray:
    mean = xy.mean(axis=0)
    cxx, cxy, cyy = covariance_terms(xy, ddof=1) if len(xy) > 1 else (0.0, 0.0, 0.0)
    lambda1, _ = covariance_eigenvalues(cxx, cxy, cyy)
    if abs(cxy) > 1e-4:
        direction = np.array([lambda1 - cyy, cxy])
    else:
        direction = np.array([1.0, 0.0]) if cxx >= cyy else np.array([0.0, 1.0])
    direction = direction / np.linalg.norm(direction)

    proj = (xy - mean) @ direction
    lo, hi = float(proj.min()), float(proj.max())
    margin = (hi - lo) * 0.1
    ts = np.linspace(lo - margin, hi + margin, num_points)
    return mean + ts[:, None] * direction


def _smooth_projections(projections: list[CurveProjection], bandwidth: float) -> np.ndarray:
    """Tricube moving average of projected points ordered along the curve."""
    ordered = sorted(projections, key=lambda p: p.segment + p.t)
    points = np.array([(p.x, p.y) for p in ordered])
    n = len(points)
    half_window = max(3, math.floor(n * bandwidth)) // 2

    smoothed = []
    for i in range(n):
        lo = max(0, i - half_window)
        hi = min(n, i + half_window + 1)
        u = np.abs(np.arange(lo, hi) - i) / half_window
        weights = np.where(u < 1, (1 - u ** 3) ** 3, 0.0)
        smoothed.append((weights @ points[lo:hi]) / weights.sum())
    return np.array(smoothed)


# =========================================================================
# B-spline
# =========================================================================


def bspline_basis(i: int, degree: int, t: float, knots: list[float]) -> float:
    """Cox-de Boor recursion; t == 1 belongs to the last non-empty span."""
    if degree == 0:
        if knots[i] <= t < knots[i + 1]:
            return 1.0
        if t == 1 and knots[i] < 1 and knots[i + 1] == 1:
            return 1.0
        return 0.0

    left = 0.0
    denom = knots[i + degree] - knots[i]
    if denom > 0:
        left = (t - knots[i]) / denom * bspline_basis(i, degree - 1, t, knots)

    right = 0.0
    denom = knots[i + degree + 1] - knots[i + 1]
    if denom > 0:
        right = (knots[i + degree + 1] - t) / denom * bspline_basis(i + 1, degree - 1, t, knots)

    return left + right


def clamped_knots(num_control: int, degree: int) -> list[float]:
    """Clamped uniform knot vector on [0, 1]."""
    m = num_control + degree + 1
    knots = []
    for i in range(m):
        if i < degree + 1:
            knots.append(0.0)
        elif i >= m - degree - 1:
            knots.append(1.0)
        else:
            knots.append((i - degree) / (m - 2 * degree - 1))
    return knots


def evaluate_bspline(control: np.ndarray, knots: list[float], degree: int, t: float) -> np.ndarray:
    basis = np.array([bspline_basis(i, degree, t, knots) for i in range(len(control))])
    return basis @ control


def fit_bspline(control: np.ndarray, degree: int = 3, samples: int = 100) -> np.ndarray:
    """
    Sample a clamped B-spline at ``samples + 1`` evenly spaced parameters.

    With fewer than degree + 1 control points the control polygon itself is
    returned (a degree 1 curve).
    """
    if len(control) < degree + 1:
        return np.asarray(control, dtype=float)
    knots = clamped_knots(len(control), degree)
    return np.array([evaluate_bspline(control, knots, degree, s / samples) for s in range(samples + 1)])


def detect_rows_using_spline_fitting(ordered_holes: list[Hole],
                                     config: CurveConfig | None = None,
                                     detection_config: DetectionConfig | None = None) -> list[list[int]] | None:
    """
    Split a hole sequence where it leaves a smooth spline.

    Every ``control_point_interval``-th hole (plus the last) is a control
    point. Walking the sequence, a hole farther than
    ``spline_tolerance_factor`` x spacing from the spline starts a new row.

    Returns:
        Rows of indices into ``ordered_holes`` in sequence order, or None for
        fewer than 4 holes or when every hole fits the one spline.
    """
    config = config or CurveConfig()
    n = len(ordered_holes)
    if n < 4:
        return None

    xy = coordinates(ordered_holes)
    control = [xy[i] for i in range(0, n, config.control_point_interval)]
    if not np.array_equal(control[-1], xy[-1]):
        control.append(xy[-1])
    spline = fit_bspline(np.array(control), config.spline_degree, config.spline_samples)

    tolerance = estimate_spacing(xy, detection_config) * config.spline_tolerance_factor
    rows = []
    current: list[int] = []
    for i, point in enumerate(xy):
        if abs(project_onto_curve(point, spline).offset) > tolerance and current:
            rows.append(current)
            current = [i]
        else:
            current.append(i)
    rows.append(current)

    if len(rows) == 1:
        logger.debug("Spline fitting: every hole fits a single spline")
        return None
    logger.debug("Spline fitting found %d rows", len(rows))
    return rows
