# kmeans_palette/clustering/__init__.py
"""
Clustering API.

Provides:
  ColourClusterer(pixels, colour_space, cluster_count, *, rng=None, workers=1)
  ColourClusterer.from_seeds(pixels, colour_space, seed_means, *, rng=None, workers=1)
    seed() / iterate() / run(max_iterations, on_iteration, should_stop)
    render() / choose_differentiated_clusters(m) / weighted_colours()

  cluster_pixels(pixels, colour_space, cluster_count, **options) -> ClusterResult
    Coarse 16-cluster pass, farthest-point seed refinement, final pass.

  quantize_image(image, colour_space_name, cluster_count, **options) -> ClusterResult
    Same, for an [H,W,3] image and a colour-space name.

  ClusterAccumulator
    Per-cluster sums/counts used by the assignment step.

Notes:
  - Ties in the assignment step go to the lowest cluster index.
  - Empty clusters keep their previous mean.
"""

from .accumulator import ClusterAccumulator
from .engine import ColourClusterer, validate_cluster_count
from .run import ClusterResult, cluster_pixels, quantize_image
from .seeding import farthest_point_order, kmeans_plus_plus

__all__ = [
    "ClusterAccumulator",
    "ColourClusterer",
    "validate_cluster_count",
    "ClusterResult",
    "cluster_pixels",
    "quantize_image",
    "farthest_point_order",
    "kmeans_plus_plus",
]
