# kmeans_palette/colour_space.py
from __future__ import annotations

"""
Colour spaces the clustering engine can work in.

Each ColourSpace binds a name to a forward transform (uint8 sRGB -> float
vectors) and an inverse (vectors -> uint8 sRGB). The engine only ever sees
these two callables, so it stays free of colour maths.

Exports:
  ColourSpace
  SRGB, CIELAB, CIELUV, CIEXYZ, HSL
  COLOUR_SPACES: dict name -> ColourSpace
  get_colour_space(name) -> ColourSpace
  available_colour_spaces() -> list[str]
"""

from dataclasses import dataclass
from typing import Dict, List

import numpy as np

from .colour_convert import (
    hsl_to_rgb,
    lab_to_srgb,
    luv_to_srgb,
    rgb_to_hsl,
    srgb_to_lab,
    srgb_to_luv,
    srgb_to_xyz,
    xyz_to_srgb,
)
from .core_types import (
    ByteTransform,
    InvalidArgumentError,
    U8Pixels,
    VectorTransform,
    Vectors,
)


@dataclass(frozen=True)
class ColourSpace:
    """Named pair of conversions between sRGB bytes and a 3-D vector space."""

    name: str
    to_vector: VectorTransform
    from_vector: ByteTransform
    description: str = ""

    def __repr__(self) -> str:
        return f"ColourSpace({self.name!r})"


# sRGB works directly on 0..255 values


def _srgb_to_vector(rgb: U8Pixels) -> Vectors:
    return np.asarray(rgb, dtype=np.float64)


def _vector_to_srgb(vec: np.ndarray) -> U8Pixels:
    arr = np.nan_to_num(np.asarray(vec, dtype=np.float64), nan=0.0)
    return np.clip(np.rint(arr), 0.0, 255.0).astype(np.uint8)


# HSL is embedded as a cylinder so averaging respects hue wrap-around.


def _hsl_to_vector(rgb: U8Pixels) -> Vectors:
    hsl = rgb_to_hsl(rgb)
    theta = np.radians(hsl[..., 0])
    sat = hsl[..., 1]
    return np.stack([sat * np.cos(theta), sat * np.sin(theta), hsl[..., 2]], axis=-1)


def _vector_to_hsl(vec: np.ndarray) -> U8Pixels:
    arr = np.asarray(vec, dtype=np.float64)
    hue = np.degrees(np.arctan2(arr[..., 1], arr[..., 0])) % 360.0
    sat = np.hypot(arr[..., 0], arr[..., 1])
    hsl = np.stack([hue, sat, arr[..., 2]], axis=-1)
    return hsl_to_rgb(hsl)


SRGB = ColourSpace("sRGB", _srgb_to_vector, _vector_to_srgb, "gamma-encoded 0..255")
CIELAB = ColourSpace("CIELAB", srgb_to_lab, lab_to_srgb, "CIE L*a*b*, D65")
CIELUV = ColourSpace("CIELUV", srgb_to_luv, luv_to_srgb, "CIE L*u*v*, D65")
CIEXYZ = ColourSpace("CIEXYZ", srgb_to_xyz, xyz_to_srgb, "CIE XYZ, 0..100")
HSL = ColourSpace("HSL", _hsl_to_vector, _vector_to_hsl, "(s*cos h, s*sin h, l)")

COLOUR_SPACES: Dict[str, ColourSpace] = {
    cs.name: cs for cs in (SRGB, CIELAB, CIELUV, CIEXYZ, HSL)
}

_ALIASES: Dict[str, str] = {
    "SRGB": "sRGB",
    "RGB": "sRGB",
    "CIELAB": "CIELAB",
    "LAB": "CIELAB",
    "CIELUV": "CIELUV",
    "LUV": "CIELUV",
    "CIEXYZ": "CIEXYZ",
    "XYZ": "CIEXYZ",
    "HSL": "HSL",
}


def get_colour_space(name: str) -> ColourSpace:
    """Look up a colour space by name or alias, case-insensitively."""
    key = _ALIASES.get(str(name).strip().upper().replace("*", ""))
    if key is None:
        raise InvalidArgumentError(
            f"unknown colour space {name!r}; choose from {', '.join(COLOUR_SPACES)}"
        )
    return COLOUR_SPACES[key]


def available_colour_spaces() -> List[str]:
    return list(COLOUR_SPACES)


__all__ = [
    "ColourSpace",
    "SRGB",
    "CIELAB",
    "CIELUV",
    "CIEXYZ",
    "HSL",
    "COLOUR_SPACES",
    "get_colour_space",
    "available_colour_spaces",
]
