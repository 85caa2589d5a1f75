# kmeans_palette/clustering/seeding.py
from __future__ import annotations

"""
Seed selection.

Exports:
- squared_distances(vectors, point)
- kmeans_plus_plus(vectors, cluster_count, rng) -> Vectors [K,3]
- farthest_point_order(means, weights, subset_count) -> int64 [M]
"""

from typing import List

import numpy as np
from numpy.typing import NDArray

from ..core_types import InvalidArgumentError, Vectors


def squared_distances(vectors: Vectors, point: np.ndarray) -> NDArray[np.float64]:
    """Squared Euclidean distance from every row of `vectors` to one point."""
    diff = vectors - point
    return np.einsum("ij,ij->i", diff, diff)


def kmeans_plus_plus(
    vectors: Vectors, cluster_count: int, rng: np.random.Generator
) -> Vectors:
    """
    k-means++ seeding.

    The first mean is a uniformly random pixel. Each further mean is drawn
    with probability proportional to the squared distance to the nearest
    mean chosen so far: one draw in [0, total) walks the cumulative weights
    and stops at the first pixel whose running total reaches it. The last
    pixel is the fallback when rounding leaves the draw just past the end.
    """
    n = int(vectors.shape[0])
    if cluster_count < 1 or cluster_count > n:
        raise InvalidArgumentError(f"cluster_count must be in [1, {n}]")

    means = np.empty((cluster_count, 3), dtype=np.float64)
    means[0] = vectors[int(rng.integers(n))]
    closest = squared_distances(vectors, means[0])

    for i in range(1, cluster_count):
        cumulative = np.cumsum(closest)
        draw = float(rng.random()) * float(cumulative[-1])
        pick = int(np.searchsorted(cumulative, draw, side="left"))
        means[i] = vectors[min(pick, n - 1)]
        np.minimum(closest, squared_distances(vectors, means[i]), out=closest)

    return means


def farthest_point_order(
    means: Vectors, weights: np.ndarray, subset_count: int
) -> NDArray[np.int64]:
    """
    Greedy farthest-point subset of cluster means.

    Starts from the heaviest cluster (lowest index on equal weight), then
    repeatedly adds the cluster whose minimum squared distance to the chosen
    set is largest. Ties go to the lowest index; chosen clusters are never
    picked twice, even when several means coincide.
    """
    k = int(means.shape[0])
    if subset_count < 1 or subset_count > k:
        raise InvalidArgumentError(f"subset_count must be in [1, {k}]")

    chosen: List[int] = [int(np.argmax(np.asarray(weights)))]
    min_dist = squared_distances(means, means[chosen[0]])

    for _ in range(1, subset_count):
        candidates = min_dist.copy()
        candidates[chosen] = -1.0
        best = int(np.argmax(candidates))
        chosen.append(best)
        np.minimum(min_dist, squared_distances(means, means[best]), out=min_dist)

    return np.asarray(chosen, dtype=np.int64)


__all__ = ["squared_distances", "kmeans_plus_plus", "farthest_point_order"]
