# kmeans_palette/clustering/engine.py
from __future__ import annotations

"""
Lloyd's-algorithm colour clustering with k-means++ seeding.

One ColourClusterer is built per (image, colour space, k), runs once, and is
thrown away. Pixels are converted to colour-space vectors a single time at
construction; every iteration then works on float64 vectors only.

Lifecycle:
  unseeded -> seeded -> converged | iteration_cap_reached

Empty clusters keep their previous mean (weight 0) and are listed in
`empty_clusters` after each iteration.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, Tuple

import numpy as np

from ..colour_convert import convert_threaded
from ..colour_space import ColourSpace
from ..constants import (
    ASSIGN_BLOCK_PIXELS,
    CONVERGENCE_EPSILON,
    FINAL_MAX_ITERATIONS,
)
from ..core_types import (
    ClusterState,
    InvalidArgumentError,
    Labels,
    U8Pixels,
    Vectors,
    Weights,
    WeightedColourSet,
    assert_u8_pixels,
)
from ..utils import block_spans
from .accumulator import ClusterAccumulator
from .seeding import farthest_point_order, kmeans_plus_plus

IterationHook = Callable[[int, "ColourClusterer"], None]
StopCheck = Callable[[], bool]

_TERMINAL_STATES = ("converged", "iteration_cap_reached")


def validate_cluster_count(cluster_count: int, pixel_count: int) -> int:
    """Return cluster_count as int, or raise if it is outside [1, pixel_count]."""
    k = int(cluster_count)
    if k < 1:
        raise InvalidArgumentError(f"cluster count must be >= 1, got {k}")
    if k > pixel_count:
        raise InvalidArgumentError(
            f"cluster count {k} exceeds pixel count {pixel_count}"
        )
    return k


def _read_only(arr: np.ndarray) -> np.ndarray:
    view = arr.view()
    view.flags.writeable = False
    return view


def _assign_block(block: Vectors, means: Vectors, acc: ClusterAccumulator) -> Labels:
    """
    Nearest mean for every vector in one block, summed into `acc` after a reset.

    Means are scanned in index order with a strict `<`, so the lowest index
    wins a tie.
    """
    best = np.full((block.shape[0],), np.inf, dtype=np.float64)
    labels = np.zeros((block.shape[0],), dtype=np.int64)
    for j in range(means.shape[0]):
        diff = block - means[j]
        dist = np.einsum("ij,ij->i", diff, diff)
        closer = dist < best
        best[closer] = dist[closer]
        labels[closer] = j

    acc.reset()
    acc.add_samples(block, labels, best)
    return labels


class ColourClusterer:
    """
    k-means over the pixels of one image in one colour space.

    Args:
      pixels        : uint8 [N,3] or [H,W,3]
      colour_space  : ColourSpace used for distances and means
      cluster_count : k, 1 <= k <= N
      rng           : numpy Generator for seeding (fresh default_rng() if None)
      workers       : threads for conversion and the assignment step
      vectors       : optional precomputed colour-space vectors for `pixels`
    """

    def __init__(
        self,
        pixels: U8Pixels,
        colour_space: ColourSpace,
        cluster_count: int,
        *,
        rng: Optional[np.random.Generator] = None,
        workers: int = 1,
        vectors: Optional[Vectors] = None,
    ) -> None:
        pixels = assert_u8_pixels(pixels)
        flat = pixels.reshape(-1, 3)
        n = int(flat.shape[0])
        if n == 0:
            raise InvalidArgumentError("cannot cluster an empty image")

        self._shape: Tuple[int, ...] = tuple(pixels.shape)
        self._colour_space = colour_space
        self._k = validate_cluster_count(cluster_count, n)
        self._rng = rng if rng is not None else np.random.default_rng()
        self._workers = max(1, int(workers))

        if vectors is not None:
            vec = np.asarray(vectors, dtype=np.float64).reshape(-1, 3)
            if vec.shape[0] != n:
                raise InvalidArgumentError(
                    f"{vec.shape[0]} precomputed vectors for {n} pixels"
                )
            self._vectors: Vectors = vec
        else:
            self._vectors = np.ascontiguousarray(
                convert_threaded(colour_space.to_vector, flat, self._workers),
                dtype=np.float64,
            )

        self._assignments: Labels = np.zeros((n,), dtype=np.int64)
        self._weights: Weights = np.zeros((self._k,), dtype=np.int64)
        self._means: Optional[Vectors] = None
        self._state: ClusterState = "unseeded"
        self._iterations = 0
        self._cost_history: List[float] = []
        self._empty = np.zeros((0,), dtype=np.int64)
        # reused every iteration, one per assignment block plus the merged total
        self._total = ClusterAccumulator(self._k)
        self._block_accs: List[ClusterAccumulator] = []

    @classmethod
    def from_seeds(
        cls,
        pixels: U8Pixels,
        colour_space: ColourSpace,
        seed_means: Vectors,
        *,
        rng: Optional[np.random.Generator] = None,
        workers: int = 1,
        vectors: Optional[Vectors] = None,
    ) -> "ColourClusterer":
        """Build an already-seeded clusterer; k is the number of seed rows."""
        seeds = np.asarray(seed_means, dtype=np.float64)
        if seeds.ndim != 2 or seeds.shape[1] != 3 or seeds.shape[0] < 1:
            raise InvalidArgumentError(
                f"seed means must be a non-empty [M,3] array, got shape {seeds.shape}"
            )
        if not np.all(np.isfinite(seeds)):
            raise InvalidArgumentError("seed means must be finite")

        clusterer = cls(
            pixels,
            colour_space,
            seeds.shape[0],
            rng=rng,
            workers=workers,
            vectors=vectors,
        )
        clusterer._means = seeds.copy()
        clusterer._state = "seeded"
        return clusterer

    # Read-only views

    @property
    def colour_space(self) -> ColourSpace:
        return self._colour_space

    @property
    def cluster_count(self) -> int:
        return self._k

    @property
    def pixel_count(self) -> int:
        return int(self._assignments.shape[0])

    @property
    def state(self) -> ClusterState:
        return self._state

    @property
    def iterations(self) -> int:
        return self._iterations

    @property
    def cost_history(self) -> List[float]:
        """Within-cluster squared distance measured by each assignment step."""
        return list(self._cost_history)

    @property
    def empty_clusters(self) -> np.ndarray:
        return self._empty.copy()

    @property
    def assignments(self) -> Labels:
        return _read_only(self._assignments)

    @property
    def vectors(self) -> Vectors:
        """Working buffer: source vectors, or the quantized ones after run()."""
        return _read_only(self._vectors)

    @property
    def quantized_vectors(self) -> Vectors:
        """Each pixel's final mean. Only valid once run() has finished."""
        if self._state not in _TERMINAL_STATES:
            raise RuntimeError(f"no quantized vectors in state {self._state!r}")
        return _read_only(self._vectors)

    @property
    def cluster_weights(self) -> Weights:
        return self._weights.copy()

    @property
    def cluster_means(self) -> Vectors:
        self._require_seeded()
        assert self._means is not None
        return self._means.copy()

    @property
    def cluster_colours(self) -> U8Pixels:
        """Cluster means converted back to uint8 sRGB, [K,3]."""
        self._require_seeded()
        return self._colour_space.from_vector(self._means).reshape(-1, 3)

    # Algorithm

    def seed(self) -> None:
        """k-means++ seeding. Only valid once, from the unseeded state."""
        if self._state != "unseeded":
            raise RuntimeError(f"cannot seed from state {self._state!r}")
        self._means = kmeans_plus_plus(self._vectors, self._k, self._rng)
        self._state = "seeded"

    def iterate(self, pool: Optional[ThreadPoolExecutor] = None) -> bool:
        """
        One Lloyd step: assign, then recompute means and weights.

        Returns True when no mean component moved by CONVERGENCE_EPSILON or more.
        """
        if self._state in _TERMINAL_STATES:
            raise RuntimeError(f"clustering already finished ({self._state})")
        if self._state == "unseeded":
            self.seed()
        assert self._means is not None

        means = self._means
        acc = self._assign(means, pool)
        new_means = acc.averages(fallback=means)

        converged = bool(np.all(np.abs(new_means - means) < CONVERGENCE_EPSILON))
        self._means = new_means
        self._weights = acc.counts.copy()
        self._empty = acc.empty_clusters()
        self._cost_history.append(acc.cost)
        self._iterations += 1
        return converged

    def run(
        self,
        max_iterations: int = FINAL_MAX_ITERATIONS,
        on_iteration: Optional[IterationHook] = None,
        should_stop: Optional[StopCheck] = None,
    ) -> int:
        """
        Seed if needed, iterate to convergence or the cap, then quantize.

        `on_iteration(iteration, self)` runs after every step and
        `should_stop()` is polled between steps; a stop ends the run as if the
        cap had been reached. Returns the number of iterations performed.
        """
        if int(max_iterations) < 1:
            raise InvalidArgumentError("max_iterations must be >= 1")
        if self._state in _TERMINAL_STATES:
            raise RuntimeError(f"clustering already finished ({self._state})")
        if self._state == "unseeded":
            self.seed()

        performed = 0
        converged = False
        pool = (
            ThreadPoolExecutor(max_workers=self._workers)
            if self._workers > 1 and self.pixel_count > ASSIGN_BLOCK_PIXELS
            else None
        )
        try:
            while performed < int(max_iterations):
                converged = self.iterate(pool)
                performed += 1
                if on_iteration is not None:
                    on_iteration(self._iterations, self)
                if converged:
                    break
                if should_stop is not None and should_stop():
                    break
        finally:
            if pool is not None:
                pool.shutdown(wait=True)

        self._state = "converged" if converged else "iteration_cap_reached"
        assert self._means is not None
        self._vectors = self._means[self._assignments]
        return performed

    def render(self) -> U8Pixels:
        """
        Every pixel replaced by its cluster mean, as uint8 sRGB in the input shape.
        Does not touch clustering state, so it is safe between iterations.
        """
        colours = self.cluster_colours
        return colours[self._assignments].reshape(self._shape)

    def choose_differentiated_clusters(self, subset_count: int) -> Vectors:
        """
        Well-separated subset of the current means, heaviest first.
        Returns colour-space vectors [M,3] suitable for `from_seeds`.
        """
        self._require_seeded()
        assert self._means is not None
        m = int(subset_count)
        if m < 1 or m > self._k:
            raise InvalidArgumentError(
                f"subset size must be in [1, {self._k}], got {m}"
            )
        order = farthest_point_order(self._means, self._weights, m)
        return self._means[order].copy()

    def weighted_colours(
        self, pixel_width: Optional[int] = None, pixel_height: Optional[int] = None
    ) -> WeightedColourSet:
        """Histogram of the current clusters; size defaults to the input shape."""
        if pixel_width is None or pixel_height is None:
            if len(self._shape) == 3:
                pixel_height, pixel_width = self._shape[0], self._shape[1]
            else:
                pixel_width, pixel_height = self.pixel_count, 1
        return WeightedColourSet.from_clusters(
            pixel_width, pixel_height, self._weights, self.cluster_colours
        )

    # Internals

    def _require_seeded(self) -> None:
        if self._means is None:
            raise RuntimeError("clusterer has not been seeded")

    def _assign(
        self, means: Vectors, pool: Optional[ThreadPoolExecutor]
    ) -> ClusterAccumulator:
        spans = block_spans(self.pixel_count, ASSIGN_BLOCK_PIXELS)
        if len(self._block_accs) != len(spans):
            self._block_accs = [ClusterAccumulator(self._k) for _ in spans]
        total = self._total
        total.reset()

        if len(spans) == 1:
            acc = self._block_accs[0]
            self._assignments[:] = _assign_block(self._vectors, means, acc)
            return total.merge(acc)

        owned = None
        if pool is None and self._workers > 1:
            owned = pool = ThreadPoolExecutor(max_workers=self._workers)
        try:
            if pool is None:
                results = [
                    _assign_block(self._vectors[s:e], means, acc)
                    for (s, e), acc in zip(spans, self._block_accs)
                ]
            else:
                futures = [
                    pool.submit(_assign_block, self._vectors[s:e], means, acc)
                    for (s, e), acc in zip(spans, self._block_accs)
                ]
                results = [f.result() for f in futures]
        finally:
            if owned is not None:
                owned.shutdown(wait=True)

        for (s, e), labels, acc in zip(spans, results, self._block_accs):
            self._assignments[s:e] = labels
            total.merge(acc)
        return total

    def __repr__(self) -> str:
        return (
            f"ColourClusterer(space={self._colour_space.name!r}, k={self._k}, "
            f"pixels={self.pixel_count}, state={self._state!r}, "
            f"iterations={self._iterations})"
        )


__all__ = ["ColourClusterer", "validate_cluster_count", "IterationHook", "StopCheck"]
