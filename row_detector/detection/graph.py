"""Graph utilities: minimum spanning trees and k-nearest-neighbour graphs."""
import logging
from dataclasses import dataclass

import numpy as np

logger = logging.getLogger(__name__)


@dataclass
class SpanningEdge:
    """An edge of a spanning tree over point indices."""
    source: int
    target: int
    weight: float


def minimum_spanning_tree(weights: np.ndarray) -> list[SpanningEdge]:
    """
    Prim's algorithm on a dense symmetric weight matrix, grown from vertex 0.

    Ties resolve to the lowest vertex index, so the tree is deterministic for
    a given input order. Edges are returned in the order they were added.
    """
    n = len(weights)
    if n < 2:
        return []

    in_tree = np.zeros(n, dtype=bool)
    in_tree[0] = True
    best = weights[0].astype(float).copy()
    parent = np.zeros(n, dtype=int)
    edges = []

    for _ in range(n - 1):
        candidates = np.where(in_tree, np.inf, best)
        u = int(np.argmin(candidates))
        if not np.isfinite(candidates[u]):
            break
        in_tree[u] = True
        edges.append(SpanningEdge(source=int(parent[u]), target=u, weight=float(best[u])))

        closer = ~in_tree & (weights[u] < best)
        best[closer] = weights[u][closer]
        parent[closer] = u

    return edges


def split_spanning_tree(edges: list[SpanningEdge], n: int, min_cluster_size: int,
                        std_factor: float = 1.5) -> list[list[int]]:
    """
    Cut heavy edges out of a spanning tree and return the large components.

    Edges heavier than mean + ``std_factor`` x std (population std) of all
    tree edge weights are removed. Components are discovered from the lowest
    unvisited vertex upward; those smaller than ``min_cluster_size`` are
    dropped (their vertices are noise).
    """
    if not edges:
        return []

    weights = np.array([e.weight for e in edges])
    threshold = float(np.mean(weights) + std_factor * np.std(weights))

    adjacency: list[list[int]] = [[] for _ in range(n)]
    kept = 0
    for edge in edges:
        if edge.weight <= threshold:
            adjacency[edge.source].append(edge.target)
            adjacency[edge.target].append(edge.source)
            kept += 1
    logger.debug("Spanning tree: cut %d/%d edges above %.3f", len(edges) - kept, len(edges), threshold)

    visited = [False] * n
    components = []
    for start in range(n):
        if visited[start]:
            continue
        component = []
        stack = [start]
        while stack:
            node = stack.pop()
            if visited[node]:
                continue
            visited[node] = True
            component.append(node)
            stack.extend(m for m in adjacency[node] if not visited[m])
        if len(component) >= min_cluster_size:
            components.append(component)
    return components


def knn_graph(dists: np.ndarray, k: int) -> list[list[tuple[int, float]]]:
    """For each vertex, its k nearest other vertices as (index, distance), nearest first."""
    graph = []
    for i in range(len(dists)):
        order = [int(j) for j in np.argsort(dists[i], kind="stable") if j != i]
        graph.append([(j, float(dists[i][j])) for j in order[:k]])
    return graph


def graph_endpoints(graph: list[list[tuple[int, float]]]) -> list[int]:
    """Vertices whose undirected degree in the k-NN graph is at most 2."""
    connections = [set() for _ in graph]
    for i, neighbors in enumerate(graph):
        for j, _ in neighbors:
            connections[i].add(j)
            connections[j].add(i)
    return [i for i, linked in enumerate(connections) if len(linked) <= 2]
