"""
Density-based row detectors.

HDBSCAN-style clustering (spatial or ID-sequence weighted) cuts a minimum
spanning tree of mutual reachability distances; the DBSCAN fallback runs
sklearn's DBSCAN with an epsilon picked from the k-distance elbow and
orders each cluster as a nearest-neighbour chain.
"""
from __future__ import annotations

import logging
import math
import re

import numpy as np
from sklearn.cluster import DBSCAN

from row_detector.analysis.geometry import (
    coordinates,
    distance_matrix,
    douglas_peucker,
    nearest_neighbor_chain,
)
from row_detector.config import DetectionConfig, Hole
from row_detector.detection.assignment import attach_orphans, sort_row_by_projection
from row_detector.detection.graph import minimum_spanning_tree, split_spanning_tree

logger = logging.getLogger(__name__)

_DIGITS = re.compile(r"[0-9]+")


# =========================================================================
# HDBSCAN-style clustering
# =========================================================================


def detect_rows_using_hdbscan(holes: list[Hole],
                              config: DetectionConfig | None = None) -> list[list[int]] | None:
    """Spatial HDBSCAN-style clustering; each surviving cluster is one row."""
    config = config or DetectionConfig()
    if len(holes) < 3:
        return None

    xy = coordinates(holes)
    clusters = hdbscan_clusters(distance_matrix(xy), config)
    return _clusters_to_rows(xy, clusters, "HDBSCAN")


def detect_rows_using_sequence_weighted_hdbscan(holes: list[Hole],
                                                config: DetectionConfig | None = None) -> list[list[int]] | None:
    """
    HDBSCAN-style clustering on a blend of spatial and ID-sequence distance.

    Holes far apart in ID order are pushed apart, which separates rows that
    sit close together but were drilled on different passes.
    """
    config = config or DetectionConfig()
    if len(holes) < 3:
        return None

    xy = coordinates(holes)
    dists = sequence_weighted_distances(holes, xy, config.sequence_weight)
    clusters = hdbscan_clusters(dists, config)
    return _clusters_to_rows(xy, clusters, "Sequence-weighted HDBSCAN")


def hdbscan_clusters(dists: np.ndarray, config: DetectionConfig | None = None) -> list[list[int]]:
    """
    Cluster points from a dense distance matrix.

    core(i) is the distance to the minPts-th nearest neighbour (the point
    itself counts as the 0th), mutual reachability is
    max(core(i), core(j), d(i, j)), and clusters are the components of its
    minimum spanning tree after cutting unusually heavy edges.

    Returns:
        Clusters of point indices; points outside any cluster are omitted.
    """
    config = config or DetectionConfig()
    n = len(dists)
    if n < 3:
        return []

    min_cluster_size = max(2, math.floor(config.min_cluster_fraction * n))
    min_pts = max(2, min_cluster_size // 2)

    core = np.sort(dists, axis=1)[:, min(min_pts, n - 1)]
    reachability = np.maximum(np.maximum(core[:, None], core[None, :]), dists)

    edges = minimum_spanning_tree(reachability)
    clusters = split_spanning_tree(edges, n, min_cluster_size, config.edge_cut_std_factor)
    logger.debug("HDBSCAN: minClusterSize=%d minPts=%d -> %d clusters",
                 min_cluster_size, min_pts, len(clusters))
    return clusters


def numeric_id(hole_id: str) -> int:
    """First run of digits in an ID ("B12" -> 12, "7" -> 7), 0 if there is none."""
    match = _DIGITS.search(hole_id)
    return int(match.group()) if match else 0


def sequence_weighted_distances(holes: list[Hole], xy: np.ndarray, weight: float) -> np.ndarray:
    """(1 - weight) x normalised spatial distance + weight x normalised ID-order distance."""
    n = len(holes)
    spatial = distance_matrix(xy)
    max_spatial = float(spatial.max()) or 1.0

    order = sorted(range(n), key=lambda i: numeric_id(holes[i].id))
    position = np.empty(n, dtype=float)
    position[order] = np.arange(n)
    sequence = np.abs(position[:, None] - position[None, :]) / n

    combined = (1 - weight) * spatial / max_spatial + weight * sequence
    np.fill_diagonal(combined, 0.0)
    return combined


def _clusters_to_rows(xy: np.ndarray, clusters: list[list[int]], label: str) -> list[list[int]] | None:
    if not clusters:
        logger.debug("%s: no clusters", label)
        return None

    rows = [list(c) for c in clusters]
    clustered = {i for c in clusters for i in c}
    noise = [i for i in range(len(xy)) if i not in clustered]
    if noise:
        logger.debug("%s: attaching %d noise holes to nearest rows", label, len(noise))
        attach_orphans(xy, rows, noise)

    return [sort_row_by_projection(xy, row) for row in rows]


# =========================================================================
# DBSCAN + Douglas-Peucker fallback
# =========================================================================


def estimate_epsilon(xy: np.ndarray, k: int = 4) -> float:
    """
    DBSCAN radius from the elbow of the sorted k-distance curve.

    The elbow is the index of the largest absolute second difference
    (first one wins); with 5 or fewer points, or a perfectly straight curve,
    the 90th percentile is used. The result is clamped to
    [0.5, 3] x the median k-distance.
    """
    n = len(xy)
    if n < 2:
        return 10.0

    k = min(k, n - 1)
    dists = distance_matrix(xy)
    k_dists = []
    for i in range(n):
        others = np.sort(np.delete(dists[i], i))
        k_dists.append(float(others[min(k - 1, len(others) - 1)]))
    k_dists.sort()

    count = len(k_dists)
    elbow = math.floor(count * 0.9)
    if count > 5:
        max_curvature = 0.0
        for i in range(2, count - 2):
            curvature = abs(k_dists[i + 1] - 2 * k_dists[i] + k_dists[i - 1])
            if curvature > max_curvature:
                max_curvature = curvature
                elbow = i

    median = k_dists[count // 2]
    eps = k_dists[min(elbow, count - 1)]
    return max(median * 0.5, min(eps, median * 3))


def run_dbscan(xy: np.ndarray, eps: float, min_pts: int) -> list[list[int]]:
    """Clusters (lists of indices, ascending) found by DBSCAN; noise omitted."""
    if len(xy) < min_pts or eps <= 0:
        return []
    labels = DBSCAN(eps=eps, min_samples=min_pts).fit(xy).labels_
    return [np.where(labels == label)[0].tolist() for label in sorted(set(labels)) if label != -1]


def detect_rows_using_dbscan_douglas_peucker(holes: list[Hole],
                                             config: DetectionConfig | None = None) -> list[list[int]] | None:
    """
    Last clustering fallback for irregular patterns.

    Each DBSCAN cluster becomes a row ordered as a nearest-neighbour chain.
    The chain is also Douglas-Peucker simplified, but only the simplified
    vertex count is reported; the row keeps every hole in chain order.
    """
    config = config or DetectionConfig()
    n = len(holes)
    if n < 3:
        return None

    xy = coordinates(holes)
    eps = estimate_epsilon(xy, config.dbscan_k)
    min_pts = min(max(2, math.floor(n * config.dbscan_min_pts_fraction)), config.dbscan_max_min_pts)

    clusters = run_dbscan(xy, eps, min_pts)
    if not clusters:
        eps *= config.dbscan_retry_factor
        logger.debug("DBSCAN found no clusters, retrying with eps=%.3f", eps)
        clusters = run_dbscan(xy, eps, min_pts)
        if not clusters:
            logger.debug("DBSCAN + Douglas-Peucker: no clusters found")
            return None

    clustered = {i for c in clusters for i in c}
    noise = [i for i in range(n) if i not in clustered]
    attach_orphans(xy, clusters, noise)

    rows = []
    for number, cluster in enumerate(clusters, start=1):
        chain = [cluster[i] for i in nearest_neighbor_chain(xy[cluster])]
        steps = np.hypot(*np.diff(xy[chain], axis=0).T)
        avg_spacing = float(np.mean(steps)) if len(steps) else eps
        simplified = douglas_peucker(xy[chain], avg_spacing * config.dp_epsilon_factor)
        logger.debug("Cluster %d: %d holes, simplified to %d vertices",
                     number, len(chain), len(simplified))
        rows.append(chain)

    logger.debug("DBSCAN + Douglas-Peucker found %d rows (eps=%.3f, minPts=%d)", len(rows), eps, min_pts)
    return rows
