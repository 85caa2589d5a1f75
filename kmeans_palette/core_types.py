# kmeans_palette/core_types.py
from __future__ import annotations

"""
Core type aliases, small value objects, errors, and lightweight helpers.
"""

from dataclasses import dataclass, field
from typing import Callable, Literal, Sequence, Tuple, Union

import numpy as np
from numpy.typing import NDArray
from PIL import ImageColor

# Basic aliases

RGBTuple = Tuple[int, int, int]
HexStr = str

U8Image = NDArray[np.uint8]  # (H, W, 3)
U8Pixels = NDArray[np.uint8]  # (N, 3) or (H, W, 3)
Vectors = NDArray[np.float64]  # (..., 3) colour-space vectors
Labels = NDArray[np.int64]  # (N,) cluster index per pixel
Weights = NDArray[np.int64]  # (K,) pixels per cluster

ClusterState = Literal["unseeded", "seeded", "converged", "iteration_cap_reached"]

VectorTransform = Callable[[NDArray[np.generic]], Vectors]
ByteTransform = Callable[[NDArray[np.generic]], U8Pixels]


# Errors


class InvalidArgumentError(ValueError):
    """Raised for out-of-range cluster counts, malformed seeds or pixel buffers."""


# Value objects


@dataclass(frozen=True)
class WeightedColour:
    """One histogram entry: a cluster's sRGB colour and its pixel count."""

    pixel_count: int
    rgb: RGBTuple

    @property
    def hex(self) -> HexStr:
        return rgb_to_hex(self.rgb)


@dataclass(frozen=True)
class WeightedColourSet:
    """
    Weighted colour histogram of one quantized image.

    Colours are kept sorted by descending pixel count; entries with equal
    counts keep the order they were supplied in.
    """

    pixel_width: int
    pixel_height: int
    colours: Tuple[WeightedColour, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        ordered = tuple(sorted(self.colours, key=lambda wc: -wc.pixel_count))
        object.__setattr__(self, "colours", ordered)

    @property
    def pixel_count(self) -> int:
        return sum(wc.pixel_count for wc in self.colours)

    def __len__(self) -> int:
        return len(self.colours)

    @classmethod
    def from_clusters(
        cls,
        pixel_width: int,
        pixel_height: int,
        weights: Sequence[int] | NDArray[np.integer],
        colours_rgb: U8Pixels,
    ) -> "WeightedColourSet":
        """Pair per-cluster weights with their sRGB means."""
        rgb = np.asarray(colours_rgb, dtype=np.uint8).reshape(-1, 3)
        w = np.asarray(weights, dtype=np.int64).reshape(-1)
        if w.shape[0] != rgb.shape[0]:
            raise InvalidArgumentError(
                f"{w.shape[0]} weights for {rgb.shape[0]} colours"
            )
        entries = tuple(
            WeightedColour(int(count), coerce_to_rgb_tuple(row))
            for count, row in zip(w.tolist(), rgb)
        )
        return cls(int(pixel_width), int(pixel_height), entries)


# Small helpers


def rgb_to_hex(rgb: RGBTuple) -> HexStr:
    """RGB tuple to lowercase hex string '#rrggbb'."""
    return f"#{rgb[0]:02x}{rgb[1]:02x}{rgb[2]:02x}"


def hex_to_rgb(hex_str: str) -> RGBTuple:
    """
    Parse a colour string into an RGB tuple.

    Accepts '#rgb', '#rrggbb', '#aarrggbb' (alpha first, ignored) and any
    colour name Pillow knows ('red', 'cornflowerblue', ...).
    """
    s = hex_str.strip().lower()
    if not s:
        raise ValueError("empty colour string")
    if s.startswith("#") and len(s) == 9:
        try:
            int(s[1:3], 16)
            return (int(s[3:5], 16), int(s[5:7], 16), int(s[7:9], 16))
        except ValueError as e:
            raise ValueError(f"bad colour string {hex_str!r}") from e
    try:
        parsed = ImageColor.getrgb(s)
    except ValueError as e:
        raise ValueError(f"bad colour string {hex_str!r}") from e
    return (int(parsed[0]), int(parsed[1]), int(parsed[2]))


def coerce_to_rgb_tuple(value: Union[Sequence[int], NDArray[np.generic]]) -> RGBTuple:
    """
    Coerce a 3-length sequence or array to an (int, int, int) RGB tuple.
    Helpful when extracting values from NumPy rows.
    """
    if isinstance(value, np.ndarray):
        if value.size < 3:
            raise ValueError("array too small for RGB")
        flat = value.reshape(-1)
        return (int(flat[0]), int(flat[1]), int(flat[2]))
    if len(value) < 3:
        raise ValueError("sequence too small for RGB")
    return (int(value[0]), int(value[1]), int(value[2]))


def assert_u8_pixels(pixels: np.ndarray) -> U8Pixels:
    """Validate a uint8 (N,3) or (H,W,3) pixel buffer and return it typed."""
    if not isinstance(pixels, np.ndarray):
        raise InvalidArgumentError("pixels must be a numpy array")
    if pixels.dtype != np.uint8 or pixels.ndim not in (2, 3) or pixels.shape[-1] != 3:
        raise InvalidArgumentError(
            f"expected uint8 (N,3) or (H,W,3) pixels, got {pixels.dtype} {pixels.shape}"
        )
    return pixels


__all__ = [
    # aliases / types
    "RGBTuple",
    "HexStr",
    "U8Image",
    "U8Pixels",
    "Vectors",
    "Labels",
    "Weights",
    "ClusterState",
    "VectorTransform",
    "ByteTransform",
    # errors
    "InvalidArgumentError",
    # value objects
    "WeightedColour",
    "WeightedColourSet",
    # helpers
    "rgb_to_hex",
    "hex_to_rgb",
    "coerce_to_rgb_tuple",
    "assert_u8_pixels",
]
