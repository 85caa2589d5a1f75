# kmeans_palette/__init__.py
"""
kmeans_palette package.

Purpose:
  Reduce images to k representative colours with k-means clustering in a
  choice of colour spaces. See cluster_image.py for the CLI.

Public API:
  quantize_image : two-phase clustering of an [H,W,3] image by colour-space name.
  cluster_pixels : same, for pixel arrays and a ColourSpace value.
  ColourClusterer: the clustering engine (seed / iterate / run / render).
  colour_space   : ColourSpace values (sRGB, CIELAB, CIELUV, CIEXYZ, HSL) and lookup.
  colour_convert : vectorised colour transforms (sRGB, XYZ, Lab, Luv, HSL).
  core_types     : shared aliases, WeightedColour(Set), InvalidArgumentError.
  histogram      : JSON persistence and distance for weighted colour sets.
  batch          : per-file and folder processing used by the CLI.
  utils          : shared helpers (partitioning, formatting, logging).

Quick start:
  from kmeans_palette import quantize_image
  result = quantize_image(rgb, "CIELAB", 8)
  result.image, result.histogram
"""

__version__ = "0.1.0"

# Re-export namespaces for convenience.
from . import colour_convert
from . import colour_space
from . import core_types
from . import histogram
from . import utils
from . import clustering
from . import batch

from .clustering import ClusterResult, ColourClusterer, cluster_pixels, quantize_image
from .colour_space import ColourSpace, get_colour_space
from .core_types import InvalidArgumentError, WeightedColour, WeightedColourSet

__all__ = [
    "__version__",
    "colour_convert",
    "colour_space",
    "core_types",
    "histogram",
    "utils",
    "clustering",
    "batch",
    "ClusterResult",
    "ColourClusterer",
    "cluster_pixels",
    "quantize_image",
    "ColourSpace",
    "get_colour_space",
    "InvalidArgumentError",
    "WeightedColour",
    "WeightedColourSet",
]
