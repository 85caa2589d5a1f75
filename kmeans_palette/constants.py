# kmeans_palette/constants.py
"""
Global tunables used across the project.

- CIE reference white (D65, 2 degree) and helper constants
- sRGB <-> XYZ matrices
- Clustering limits and the two-phase schedule
- Batch / CLI defaults
"""
from __future__ import annotations

from typing import Tuple

# ==========================
# CIE constants (D65 / 2deg)
# ==========================
CIE_XN: float = 95.0489
CIE_YN: float = 100.0
CIE_ZN: float = 108.8840

# f(t) knee for L*a*b* and the L* inflection for L*u*v*.
CIE_DELTA: float = 6.0 / 29.0
CIE_EPSILON: float = CIE_DELTA**3
CIE_KAPPA: float = (29.0 / 3.0) ** 3

# u'v' chromaticity of the reference white.
CIE_UN: float = 0.2009
CIE_VN: float = 0.4610

# =====================
# sRGB transfer curve
# =====================
SRGB_DECODE_KNEE: float = 0.04045
SRGB_ENCODE_KNEE: float = 0.003308
SRGB_LINEAR_SLOPE: float = 12.92

# Standard sRGB-to-XYZ matrix (D65 primaries) and its inverse.
# Rows produce X, Y, Z from linear R, G, B in 0..1.
LINEAR_RGB_TO_XYZ: Tuple[Tuple[float, float, float], ...] = (
    (0.41239080, 0.35758434, 0.18048079),
    (0.21263901, 0.71516868, 0.07219232),
    (0.01933082, 0.11919478, 0.95053215),
)

XYZ_TO_LINEAR_RGB: Tuple[Tuple[float, float, float], ...] = (
    (3.24096994, -1.53738318, -0.49861076),
    (-0.96924364, 1.87596750, 0.04155506),
    (0.05563008, -0.20397696, 1.05697151),
)

# ==========
# Clustering
# ==========

# Componentwise movement below which a mean counts as settled.
CONVERGENCE_EPSILON: float = 1e-5

MIN_CLUSTERS: int = 1
MAX_CLUSTERS: int = 100
DEFAULT_CLUSTERS: int = 8

# Coarse seed pass used when fewer than COARSE_CLUSTER_COUNT colours are asked for.
COARSE_CLUSTER_COUNT: int = 16
COARSE_MAX_ITERATIONS: int = 3

# Final pass cap. Loose on purpose; hitting it is a warning, not a failure.
FINAL_MAX_ITERATIONS: int = 200

# Pixels per worker block in the assignment step.
ASSIGN_BLOCK_PIXELS: int = 65_536

# Images shorter than this convert on one thread.
THREADED_CONVERT_MIN_ROWS: int = 256

# =====
# Batch
# =====
IMAGE_EXTENSIONS: Tuple[str, ...] = (".png", ".jpg", ".jpeg", ".bmp", ".webp", ".tif", ".tiff")
HISTOGRAM_DIRNAME: str = "colorHistograms"
DEFAULT_COLOUR_SPACE: str = "CIELAB"

# Histogram distance tries every colour permutation up to this many colours.
MAX_PERMUTATION_COLOURS: int = 8

__all__ = [
    "CIE_XN",
    "CIE_YN",
    "CIE_ZN",
    "CIE_DELTA",
    "CIE_EPSILON",
    "CIE_KAPPA",
    "CIE_UN",
    "CIE_VN",
    "SRGB_DECODE_KNEE",
    "SRGB_ENCODE_KNEE",
    "SRGB_LINEAR_SLOPE",
    "LINEAR_RGB_TO_XYZ",
    "XYZ_TO_LINEAR_RGB",
    "CONVERGENCE_EPSILON",
    "MIN_CLUSTERS",
    "MAX_CLUSTERS",
    "DEFAULT_CLUSTERS",
    "COARSE_CLUSTER_COUNT",
    "COARSE_MAX_ITERATIONS",
    "FINAL_MAX_ITERATIONS",
    "ASSIGN_BLOCK_PIXELS",
    "THREADED_CONVERT_MIN_ROWS",
    "IMAGE_EXTENSIONS",
    "HISTOGRAM_DIRNAME",
    "DEFAULT_COLOUR_SPACE",
    "MAX_PERMUTATION_COLOURS",
]
