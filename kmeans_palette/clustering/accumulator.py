# kmeans_palette/clustering/accumulator.py
from __future__ import annotations

"""
Per-cluster running sums for one Lloyd iteration.

One accumulator per worker block; partial accumulators are merged in block
order after the parallel assignment step, so the reduction is deterministic.
"""

from typing import Optional

import numpy as np

from ..core_types import InvalidArgumentError, Labels, Vectors


class ClusterAccumulator:
    """Sum of member vectors, member count and squared-distance cost per cluster."""

    __slots__ = ("sums", "counts", "cost")

    def __init__(self, cluster_count: int) -> None:
        if cluster_count < 1:
            raise InvalidArgumentError("cluster_count must be >= 1")
        self.sums = np.zeros((int(cluster_count), 3), dtype=np.float64)
        self.counts = np.zeros((int(cluster_count),), dtype=np.int64)
        self.cost = 0.0

    @property
    def cluster_count(self) -> int:
        return int(self.counts.shape[0])

    def reset(self) -> None:
        self.sums.fill(0.0)
        self.counts.fill(0)
        self.cost = 0.0

    def add_samples(
        self,
        vectors: Vectors,
        labels: Labels,
        distances: Optional[np.ndarray] = None,
    ) -> None:
        """
        Add every row of `vectors` to the cluster named by the matching label.
        `distances` (squared, per row) feeds the iteration cost when given.
        """
        k = self.cluster_count
        self.counts += np.bincount(labels, minlength=k)[:k]
        for channel in range(3):
            self.sums[:, channel] += np.bincount(
                labels, weights=vectors[:, channel], minlength=k
            )[:k]
        if distances is not None:
            self.cost += float(np.sum(distances))

    def merge(self, other: "ClusterAccumulator") -> "ClusterAccumulator":
        if other.cluster_count != self.cluster_count:
            raise InvalidArgumentError(
                f"cannot merge {other.cluster_count} clusters into {self.cluster_count}"
            )
        self.sums += other.sums
        self.counts += other.counts
        self.cost += other.cost
        return self

    def averages(self, fallback: Vectors) -> Vectors:
        """
        Mean vector per cluster.

        Clusters that received no samples keep their row from `fallback`
        (normally the previous means), so no division by zero reaches the output.
        """
        fallback = np.asarray(fallback, dtype=np.float64)
        occupied = self.counts > 0
        out = fallback.copy()
        out[occupied] = self.sums[occupied] / self.counts[occupied, None]
        return out

    def empty_clusters(self) -> np.ndarray:
        return np.flatnonzero(self.counts == 0)


__all__ = ["ClusterAccumulator"]
