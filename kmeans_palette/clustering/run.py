# kmeans_palette/clustering/run.py
from __future__ import annotations

"""
Two-phase clustering entry point.

When fewer than COARSE_CLUSTER_COUNT colours are requested, a short coarse
pass with 16 clusters summarises the image first; a farthest-point subset of
those 16 means seeds the final pass. Seeding against 16 well-spread means
instead of the full pixel population avoids k-means++ picking several seeds
inside one dominant colour on large images.
"""

from dataclasses import dataclass
from typing import Callable, Optional, Union

import numpy as np

from ..colour_space import ColourSpace, get_colour_space
from ..constants import (
    COARSE_CLUSTER_COUNT,
    COARSE_MAX_ITERATIONS,
    FINAL_MAX_ITERATIONS,
    MAX_CLUSTERS,
    MIN_CLUSTERS,
)
from ..core_types import (
    InvalidArgumentError,
    U8Image,
    U8Pixels,
    WeightedColourSet,
    assert_u8_pixels,
)
from ..utils import debug_log, key_value_pairs_to_string
from .engine import ColourClusterer, StopCheck, validate_cluster_count

PhaseHook = Callable[[str, int, ColourClusterer], None]


@dataclass(frozen=True)
class ClusterResult:
    """Outcome of one two-phase run."""

    clusterer: ColourClusterer
    image: U8Pixels  # render, same shape as the input pixels
    histogram: WeightedColourSet
    iterations: int  # final pass
    coarse_iterations: int  # 0 when the coarse pass was skipped
    converged: bool


def _phase_hook(
    phase: str, on_iteration: Optional[PhaseHook]
) -> Optional[Callable[[int, ColourClusterer], None]]:
    if on_iteration is None:
        return None

    def hook(iteration: int, clusterer: ColourClusterer) -> None:
        on_iteration(phase, iteration, clusterer)

    return hook


def cluster_pixels(
    pixels: U8Pixels,
    colour_space: ColourSpace,
    cluster_count: int,
    *,
    pixel_width: Optional[int] = None,
    pixel_height: Optional[int] = None,
    max_iterations: int = FINAL_MAX_ITERATIONS,
    coarse_cluster_count: int = COARSE_CLUSTER_COUNT,
    coarse_iterations: int = COARSE_MAX_ITERATIONS,
    rng: Optional[np.random.Generator] = None,
    workers: int = 1,
    on_iteration: Optional[PhaseHook] = None,
    should_stop: Optional[StopCheck] = None,
    debug: bool = False,
) -> ClusterResult:
    """
    Cluster pixels into `cluster_count` colours and render the result.

    Args:
      pixels        : uint8 [N,3] or [H,W,3]
      colour_space  : space used for distances and means
      cluster_count : k
      max_iterations: cap for the final pass
      coarse_*      : size and cap of the optional first pass
      rng           : Generator shared by both passes (default_rng() if None)
      workers       : threads for conversion and assignment
      on_iteration  : called as (phase, iteration, clusterer), phase "coarse" | "final"
      should_stop   : polled between iterations of either pass
      debug         : print per-pass diagnostics
    """
    pixels = assert_u8_pixels(pixels)
    n = int(pixels.reshape(-1, 3).shape[0])
    k = validate_cluster_count(cluster_count, n)
    rng = rng if rng is not None else np.random.default_rng()

    coarse_done = 0
    if k < coarse_cluster_count <= n:
        coarse = ColourClusterer(
            pixels, colour_space, coarse_cluster_count, rng=rng, workers=workers
        )
        source_vectors = coarse.vectors
        coarse_done = coarse.run(
            coarse_iterations,
            on_iteration=_phase_hook("coarse", on_iteration),
            should_stop=should_stop,
        )
        seeds = coarse.choose_differentiated_clusters(k)
        if debug:
            debug_log(
                key_value_pairs_to_string(
                    [
                        ("Coarse pass", f"{coarse_cluster_count} clusters"),
                        ("Iterations", coarse_done),
                        ("Converged", coarse.state == "converged"),
                        ("Seeds", k),
                    ]
                )
            )
        final = ColourClusterer.from_seeds(
            pixels,
            colour_space,
            seeds,
            rng=rng,
            workers=workers,
            vectors=source_vectors,
        )
    else:
        final = ColourClusterer(pixels, colour_space, k, rng=rng, workers=workers)

    performed = final.run(
        max_iterations,
        on_iteration=_phase_hook("final", on_iteration),
        should_stop=should_stop,
    )
    converged = final.state == "converged"

    if debug:
        empty = final.empty_clusters
        debug_log(
            key_value_pairs_to_string(
                [
                    ("Space", colour_space.name),
                    ("Clusters", k),
                    ("Iterations", performed),
                    ("Converged", converged),
                    ("Empty clusters", int(empty.size)),
                    ("Cost", final.cost_history[-1] if final.cost_history else 0.0),
                ]
            )
        )
        if empty.size:
            debug_log(f"empty clusters kept their previous mean: {empty.tolist()}")

    return ClusterResult(
        clusterer=final,
        image=final.render(),
        histogram=final.weighted_colours(pixel_width, pixel_height),
        iterations=performed,
        coarse_iterations=coarse_done,
        converged=converged,
    )


def quantize_image(
    image: U8Image,
    colour_space: Union[str, ColourSpace],
    cluster_count: int,
    **kwargs,
) -> ClusterResult:
    """
    Quantize an [H,W,3] image to `cluster_count` colours in a named colour space.
    `cluster_count` must lie in [MIN_CLUSTERS, MAX_CLUSTERS]. Extra keyword
    arguments go to cluster_pixels().
    """
    image = assert_u8_pixels(image)
    if image.ndim != 3:
        raise InvalidArgumentError("quantize_image expects an [H,W,3] image")
    k = int(cluster_count)
    if not MIN_CLUSTERS <= k <= MAX_CLUSTERS:
        raise InvalidArgumentError(
            f"colour count must be in [{MIN_CLUSTERS}, {MAX_CLUSTERS}], got {k}"
        )
    space = (
        get_colour_space(colour_space)
        if isinstance(colour_space, str)
        else colour_space
    )
    height, width = int(image.shape[0]), int(image.shape[1])
    return cluster_pixels(
        image, space, k, pixel_width=width, pixel_height=height, **kwargs
    )


__all__ = ["ClusterResult", "PhaseHook", "cluster_pixels", "quantize_image"]
