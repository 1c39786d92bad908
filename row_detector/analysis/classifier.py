"""
Whole-pattern classification.

Labels a hole set STRAIGHT, CURVED or MULTI_PATTERN from three signals:
the PCA variance ratio, the average local Menger curvature and the number
of distinct local orientations. Also splits multi-orientation patterns into
MAIN / BATTER / BUFFER sub-patterns.

Local orientations are axial (a row running east-west has orientation 90
whichever way it is walked), so they live in [0, 180).
"""
from __future__ import annotations

import logging
import math
import re

import numpy as np

from row_detector.analysis.geometry import (
    coordinates,
    covariance_eigenvalues,
    covariance_terms,
    distance_matrix,
)
from row_detector.analysis.statistics import estimate_spacing
from row_detector.config import (
    BATTER,
    BUFFER,
    CURVED,
    MAIN,
    MULTI_PATTERN,
    STRAIGHT,
    ClassificationConfig,
    Hole,
    PatternClassification,
    SubPattern,
)

logger = logging.getLogger(__name__)

_NUMERIC_ID = re.compile(r"^\d+$")


def classify_pattern(holes: list[Hole], config: ClassificationConfig | None = None) -> PatternClassification:
    """
    Classify the overall layout of a hole set.

    Decision order: MULTI_PATTERN (two or more well separated orientation
    clusters), then CURVED (low variance ratio or high curvature), then
    STRAIGHT (high variance ratio and low curvature), else STRAIGHT at 0.5.

    Args:
        holes: Holes to classify.
        config: Classification thresholds.

    Returns:
        PatternClassification. Fewer than 3 holes yield STRAIGHT with confidence 0.
    """
    config = config or ClassificationConfig()
    if len(holes) < 3:
        return PatternClassification(type=STRAIGHT, confidence=0.0)

    xy = coordinates(holes)
    ratio = variance_ratio(xy)
    raw_curvature = average_curvature(xy, config)
    # Menger curvature is 1/length; scaling by spacing makes it unit-free
    curvature = raw_curvature * estimate_spacing(xy)

    orientations = local_orientations(xy, config)
    clusters = cluster_orientations(orientations, config.orientation_tolerance)
    significant = _significant_clusters(clusters, len(holes), config)
    multi = _is_multi_orientation(significant, config)

    metrics = {
        "variance_ratio": ratio,
        "avg_curvature": curvature,
        "raw_curvature": raw_curvature,
        "orientation_cluster_count": len(significant),
    }
    logger.debug(
        "Classification metrics: ratio=%.2f curvature=%.3f orientation clusters=%d",
        ratio, curvature, len(significant),
    )

    if multi:
        pattern_type = MULTI_PATTERN
        confidence = min(1.0, len(significant) / 3)
        sub_patterns = separate_sub_patterns(holes, config)
    elif ratio < config.curved_variance_ratio or curvature > config.curved_curvature:
        pattern_type = CURVED
        confidence = min(1.0, curvature / config.curved_curvature)
        sub_patterns = []
    elif ratio > config.straight_variance_ratio and curvature < config.straight_curvature:
        pattern_type = STRAIGHT
        confidence = min(1.0, ratio / 10)
        sub_patterns = []
    else:
        pattern_type = STRAIGHT
        confidence = 0.5
        sub_patterns = []

    return PatternClassification(
        type=pattern_type,
        confidence=confidence,
        sub_patterns=sub_patterns,
        is_serpentine_candidate=is_serpentine_candidate(holes, config),
        metrics=metrics,
    )


def variance_ratio(xy: np.ndarray) -> float:
    """lambda1 / lambda2 of the sample covariance; inf when lambda2 is negligible."""
    if len(xy) < 2:
        return 0.0
    cxx, cxy, cyy = covariance_terms(xy, ddof=1)
    lambda1, lambda2 = covariance_eigenvalues(cxx, cxy, cyy)
    return lambda1 / lambda2 if lambda2 > 0.001 else float("inf")


def menger_curvature(a: np.ndarray, b: np.ndarray, c: np.ndarray) -> float | None:
    """4 * area / (|AB| * |BC| * |CA|); None for (near) coincident points."""
    ab = math.dist(a, b)
    bc = math.dist(b, c)
    ca = math.dist(c, a)
    denom = ab * bc * ca
    if denom <= 0.001:
        return None
    area = abs((b[0] - a[0]) * (c[1] - a[1]) - (c[0] - a[0]) * (b[1] - a[1])) / 2
    return 4 * area / denom


def average_curvature(xy: np.ndarray, config: ClassificationConfig | None = None) -> float:
    """
    Mean local Menger curvature.

    Each hole is the middle vertex of triangles formed with every pair of its
    k = min(5, n // 3) nearest neighbours. Holes with fewer than 3 neighbours
    count as 0.
    """
    config = config or ClassificationConfig()
    n = len(xy)
    if n < 5:
        return 0.0

    k = min(config.max_curvature_neighbors, n // 3)
    dists = distance_matrix(xy)
    total = 0.0
    for i in range(n):
        neighbors = _nearest(dists, i, k)
        if len(neighbors) < 3:
            continue
        values = []
        for p in range(len(neighbors) - 1):
            for q in range(p + 1, len(neighbors)):
                value = menger_curvature(xy[neighbors[p]], xy[i], xy[neighbors[q]])
                if value is not None:
                    values.append(value)
        if values:
            total += sum(values) / len(values)
    return total / n


def local_orientations(xy: np.ndarray, config: ClassificationConfig | None = None) -> list[float]:
    """Axial bearing from each hole to the centroid of its nearest neighbours."""
    config = config or ClassificationConfig()
    n = len(xy)
    if n < 2:
        return [0.0] * n

    k = min(config.orientation_neighbors, n - 1)
    dists = distance_matrix(xy)
    result = []
    for i in range(n):
        cx, cy = xy[_nearest(dists, i, k)].mean(axis=0)
        bearing = math.degrees(math.atan2(cx - xy[i][0], cy - xy[i][1]))
        result.append(_axial(bearing))
    return result


def cluster_orientations(orientations: list[float], tolerance: float) -> list[dict]:
    """
    Greedy clustering of axial angles.

    Each unassigned value seeds a cluster that absorbs later values within
    ``tolerance`` of the running axial mean.

    Returns:
        List of dicts with "members" (indices) and "mean" (axial degrees).
    """
    assigned = [False] * len(orientations)
    clusters = []
    for i, seed in enumerate(orientations):
        if assigned[i]:
            continue
        assigned[i] = True
        cluster = {"members": [i], "mean": seed}
        for j in range(i + 1, len(orientations)):
            if assigned[j]:
                continue
            if axial_difference(orientations[j], cluster["mean"]) <= tolerance:
                assigned[j] = True
                cluster["members"].append(j)
                cluster["mean"] = axial_mean([orientations[m] for m in cluster["members"]])
        clusters.append(cluster)
    return clusters


def axial_difference(a: float, b: float) -> float:
    """Difference between two axial angles, in [0, 90]."""
    diff = abs(a - b) % 180.0
    return 180.0 - diff if diff > 90.0 else diff


def axial_mean(angles: list[float]) -> float:
    """Circular mean of axial angles (computed on doubled angles)."""
    sin_sum = sum(math.sin(math.radians(2 * a)) for a in angles)
    cos_sum = sum(math.cos(math.radians(2 * a)) for a in angles)
    return _axial(math.degrees(math.atan2(sin_sum, cos_sum)) / 2)


def is_serpentine_candidate(holes: list[Hole], config: ClassificationConfig | None = None) -> bool:
    """
    True when numeric IDs, walked in order, keep reversing their x direction.

    Requires more than 70% purely numeric IDs and more than one sign change of
    consecutive x steps per ``serpentine_change_interval`` holes.
    """
    config = config or ClassificationConfig()
    numeric = [h for h in holes if _NUMERIC_ID.match(h.id)]
    if len(numeric) <= len(holes) * 0.7:
        return False

    ordered = sorted(numeric, key=lambda h: int(h.id))
    changes = 0
    prev_dx = 0.0
    for j in range(1, len(ordered)):
        dx = ordered[j].x - ordered[j - 1].x
        if j > 1 and prev_dx * dx < 0:
            changes += 1
        prev_dx = dx
    return changes > len(ordered) / config.serpentine_change_interval


def separate_sub_patterns(holes: list[Hole], config: ClassificationConfig | None = None) -> list[SubPattern]:
    """
    Split a hole set into orientation-consistent, spatially connected groups.

    Holes are grouped by local orientation (small orientation clusters join
    the closest significant one), then each group is split into connected
    components using a 2 x spacing link distance. The largest component is
    MAIN; others are BATTER when 60-120 degrees off MAIN, else BUFFER.
    """
    config = config or ClassificationConfig()
    n = len(holes)
    everything = [SubPattern(type=MAIN, indices=list(range(n)), orientation=0.0)]
    if n < 3:
        return everything

    xy = coordinates(holes)
    orientations = local_orientations(xy, config)
    clusters = cluster_orientations(orientations, config.orientation_tolerance)
    significant = _significant_clusters(clusters, n, config)
    if not _is_multi_orientation(significant, config):
        everything[0].orientation = significant[0]["mean"] if significant else axial_mean(orientations)
        return everything

    groups = {id(c): list(c["members"]) for c in significant}
    for cluster in clusters:
        if any(cluster is s for s in significant):
            continue
        target = min(significant, key=lambda s: axial_difference(s["mean"], cluster["mean"]))
        groups[id(target)].extend(cluster["members"])

    sub_patterns = []
    for cluster in significant:
        members = sorted(groups[id(cluster)])
        for component in _connected_components(xy, members):
            sub_patterns.append(SubPattern(type=BUFFER, indices=component, orientation=cluster["mean"]))

    sub_patterns.sort(key=lambda s: len(s.indices), reverse=True)
    sub_patterns[0].type = MAIN
    main_orientation = sub_patterns[0].orientation
    for sub in sub_patterns[1:]:
        # Axial angles cap the difference at 90, so only the lower bound can bind
        diff = axial_difference(sub.orientation, main_orientation)
        if config.batter_min_angle < diff < config.batter_max_angle:
            sub.type = BATTER

    logger.debug("Separated %d sub-patterns: %s", len(sub_patterns),
                 ", ".join(f"{s.type}({len(s.indices)})" for s in sub_patterns))
    return sub_patterns


def _nearest(dists: np.ndarray, i: int, k: int) -> list[int]:
    order = [j for j in np.argsort(dists[i], kind="stable") if j != i]
    return [int(j) for j in order[:k]]


def _axial(bearing: float) -> float:
    result = bearing % 180.0
    return 0.0 if result >= 180.0 else result


def _significant_clusters(clusters: list[dict], n: int, config: ClassificationConfig) -> list[dict]:
    min_size = max(config.min_orientation_cluster, math.ceil(config.min_orientation_fraction * n))
    return [c for c in clusters if len(c["members"]) >= min_size]


def _is_multi_orientation(significant: list[dict], config: ClassificationConfig) -> bool:
    for a in range(len(significant)):
        for b in range(a + 1, len(significant)):
            diff = axial_difference(significant[a]["mean"], significant[b]["mean"])
            if diff >= config.orientation_separation:
                return True
    return False


def _connected_components(xy: np.ndarray, members: list[int]) -> list[list[int]]:
    """Flood fill over ``members`` linking holes closer than twice their spacing."""
    if not members:
        return []
    sub = xy[members]
    threshold = 2 * estimate_spacing(sub)
    dists = distance_matrix(sub)

    visited = [False] * len(members)
    components = []
    for start in range(len(members)):
        if visited[start]:
            continue
        component = []
        stack = [start]
        while stack:
            current = stack.pop()
            if visited[current]:
                continue
            visited[current] = True
            component.append(members[current])
            stack.extend(j for j in range(len(members)) if not visited[j] and dists[current][j] < threshold)
        components.append(sorted(component))
    return components
