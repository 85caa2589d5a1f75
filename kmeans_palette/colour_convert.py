# kmeans_palette/colour_convert.py
from __future__ import annotations

"""
Colour conversions (sRGB gamma curve, D65 / 2deg white). Vectorised NumPy.

Every function accepts an array of shape (..., 3) and preserves the leading
shape. Byte-valued inputs/outputs are uint8 0..255; everything else is float64.

Exports:
  srgb_to_linear(u) / linear_to_srgb(u)         # per channel, 0..1
  srgb_bytes_to_linear(rgb) / linear_to_srgb_bytes(lin)
  linear_to_xyz(lin) / xyz_to_linear(xyz)       # XYZ on the 0..100 scale
  xyz_to_lab(xyz) / lab_to_xyz(lab)
  xyz_to_luv(xyz) / luv_to_xyz(luv)
  rgb_to_hsl(rgb) / hsl_to_rgb(hsl)             # hue degrees, s/l 0..1
  srgb_to_xyz, xyz_to_srgb, srgb_to_lab, lab_to_srgb, srgb_to_luv, luv_to_srgb
  convert_threaded(fn, rgb, workers)
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Tuple

import numpy as np
from numpy.typing import NDArray

from .constants import (
    CIE_DELTA,
    CIE_EPSILON,
    CIE_KAPPA,
    CIE_UN,
    CIE_VN,
    CIE_XN,
    CIE_YN,
    CIE_ZN,
    LINEAR_RGB_TO_XYZ,
    SRGB_DECODE_KNEE,
    SRGB_ENCODE_KNEE,
    SRGB_LINEAR_SLOPE,
    THREADED_CONVERT_MIN_ROWS,
    XYZ_TO_LINEAR_RGB,
)
from .core_types import U8Pixels, Vectors

_RGB_TO_XYZ = np.array(LINEAR_RGB_TO_XYZ, dtype=np.float64)
_XYZ_TO_RGB = np.array(XYZ_TO_LINEAR_RGB, dtype=np.float64)


def _as_float(arr: NDArray[np.generic]) -> Vectors:
    return np.asarray(arr, dtype=np.float64)


def _stack(c0: np.ndarray, c1: np.ndarray, c2: np.ndarray) -> Vectors:
    return np.stack([c0, c1, c2], axis=-1)


# sRGB transfer curve


def srgb_to_linear(u: np.ndarray) -> np.ndarray:
    """
    sRGB (non-linear 0..1) to linear RGB (0..1). Any shape.
    """
    u = _as_float(u)
    with np.errstate(invalid="ignore"):
        return np.where(
            u <= SRGB_DECODE_KNEE,
            u / SRGB_LINEAR_SLOPE,
            ((np.maximum(u, 0.0) + 0.055) / 1.055) ** 2.4,
        )


def linear_to_srgb(u: np.ndarray) -> np.ndarray:
    """
    Linear RGB (0..1) to sRGB (non-linear 0..1). Any shape.
    Negative inputs stay on the linear segment.
    """
    u = _as_float(u)
    with np.errstate(invalid="ignore"):
        return np.where(
            u <= SRGB_ENCODE_KNEE,
            u * SRGB_LINEAR_SLOPE,
            1.055 * np.maximum(u, 0.0) ** (5.0 / 12.0) - 0.055,
        )


def srgb_bytes_to_linear(rgb: U8Pixels) -> Vectors:
    """uint8 sRGB (...,3) to linear RGB (...,3) in 0..1."""
    return srgb_to_linear(_as_float(rgb) / 255.0)


def linear_to_srgb_bytes(linear: np.ndarray) -> U8Pixels:
    """
    Linear RGB (...,3) to uint8 sRGB.
    Each channel is rounded to nearest and clamped to 0..255 independently.
    """
    encoded = linear_to_srgb(np.nan_to_num(_as_float(linear), nan=0.0))
    scaled = np.rint(encoded * 255.0)
    return np.clip(scaled, 0.0, 255.0).astype(np.uint8)


# Linear RGB <-> XYZ


def linear_to_xyz(linear: np.ndarray) -> Vectors:
    """Linear RGB 0..1 to CIE XYZ on the 0..100 scale."""
    return (_as_float(linear) @ _RGB_TO_XYZ.T) * 100.0


def xyz_to_linear(xyz: np.ndarray) -> Vectors:
    """CIE XYZ (0..100) to linear RGB 0..1. Out-of-gamut values are not clamped."""
    return (_as_float(xyz) / 100.0) @ _XYZ_TO_RGB.T


# XYZ <-> L*a*b*


def _lab_f(t: np.ndarray) -> np.ndarray:
    with np.errstate(invalid="ignore"):
        return np.where(
            t > CIE_EPSILON,
            np.cbrt(t),
            t / (3.0 * CIE_DELTA * CIE_DELTA) + 4.0 / 29.0,
        )


def _lab_f_inverse(t: np.ndarray) -> np.ndarray:
    return np.where(
        t > CIE_DELTA,
        t * t * t,
        3.0 * CIE_DELTA * CIE_DELTA * (t - 4.0 / 29.0),
    )


def xyz_to_lab(xyz: np.ndarray) -> Vectors:
    """CIE XYZ (0..100) to L*a*b* relative to the D65 white."""
    xyz = _as_float(xyz)
    fx = _lab_f(xyz[..., 0] / CIE_XN)
    fy = _lab_f(xyz[..., 1] / CIE_YN)
    fz = _lab_f(xyz[..., 2] / CIE_ZN)
    return _stack(116.0 * fy - 16.0, 500.0 * (fx - fy), 200.0 * (fy - fz))


def lab_to_xyz(lab: np.ndarray) -> Vectors:
    """L*a*b* to CIE XYZ (0..100)."""
    lab = _as_float(lab)
    fy = (lab[..., 0] + 16.0) / 116.0
    fx = fy + lab[..., 1] / 500.0
    fz = fy - lab[..., 2] / 200.0
    return _stack(
        CIE_XN * _lab_f_inverse(fx),
        CIE_YN * _lab_f_inverse(fy),
        CIE_ZN * _lab_f_inverse(fz),
    )


# XYZ <-> L*u*v*


def xyz_to_luv(xyz: np.ndarray) -> Vectors:
    """
    CIE XYZ (0..100) to L*u*v*.
    u', v' fall back to 0 when X + 15Y + 3Z is 0 (pure black).
    """
    xyz = _as_float(xyz)
    X, Y, Z = xyz[..., 0], xyz[..., 1], xyz[..., 2]
    denom = X + 15.0 * Y + 3.0 * Z
    zero = denom == 0.0
    safe = np.where(zero, 1.0, denom)
    u_prime = np.where(zero, 0.0, 4.0 * X / safe)
    v_prime = np.where(zero, 0.0, 9.0 * Y / safe)

    y_ratio = Y / CIE_YN
    with np.errstate(invalid="ignore"):
        L = np.where(
            y_ratio <= CIE_EPSILON,
            CIE_KAPPA * y_ratio,
            116.0 * np.cbrt(y_ratio) - 16.0,
        )
    return _stack(L, 13.0 * L * (u_prime - CIE_UN), 13.0 * L * (v_prime - CIE_VN))


def luv_to_xyz(luv: np.ndarray) -> Vectors:
    """
    L*u*v* to CIE XYZ (0..100).
    L* = 0 maps to black; a zero v' (degenerate chromaticity) maps X, Z to 0.
    """
    luv = _as_float(luv)
    L, u, v = luv[..., 0], luv[..., 1], luv[..., 2]
    dark = L == 0.0
    l_safe = np.where(dark, 1.0, L)
    u_prime = u / (13.0 * l_safe) + CIE_UN
    v_prime = v / (13.0 * l_safe) + CIE_VN

    Y = np.where(L <= 8.0, CIE_YN * L / CIE_KAPPA, CIE_YN * ((L + 16.0) / 116.0) ** 3)
    flat = v_prime == 0.0
    v_safe = np.where(flat, 1.0, v_prime)
    X = np.where(flat, 0.0, Y * 9.0 * u_prime / (4.0 * v_safe))
    Z = np.where(flat, 0.0, Y * (12.0 - 3.0 * u_prime - 20.0 * v_prime) / (4.0 * v_safe))

    out = _stack(X, Y, Z)
    out[dark] = 0.0
    return out


# sRGB <-> HSL


def rgb_to_hsl(rgb: U8Pixels) -> Vectors:
    """
    uint8 sRGB to HSL. Hue in degrees [0,360), saturation and lightness in [0,1].
    Greys get hue 0 and saturation 0.
    """
    arr = _as_float(rgb) / 255.0
    r, g, b = arr[..., 0], arr[..., 1], arr[..., 2]
    mx = np.max(arr, axis=-1)
    mn = np.min(arr, axis=-1)
    chroma = mx - mn
    grey = chroma == 0.0
    c_safe = np.where(grey, 1.0, chroma)

    lightness = 0.5 * (mx + mn)
    sat_denom = 1.0 - np.abs(2.0 * lightness - 1.0)
    saturation = np.where(
        grey | (sat_denom == 0.0), 0.0, chroma / np.where(sat_denom == 0.0, 1.0, sat_denom)
    )

    hue = np.select(
        [mx == r, mx == g],
        [((g - b) / c_safe) % 6.0, (b - r) / c_safe + 2.0],
        default=(r - g) / c_safe + 4.0,
    )
    hue = np.where(grey, 0.0, (60.0 * hue) % 360.0)
    return _stack(hue, np.clip(saturation, 0.0, 1.0), lightness)


def hsl_to_rgb(hsl: np.ndarray) -> U8Pixels:
    """HSL (hue degrees, s/l 0..1) to uint8 sRGB. Inputs are clamped to range first."""
    hsl = _as_float(hsl)
    hue = np.mod(hsl[..., 0], 360.0)
    sat = np.clip(hsl[..., 1], 0.0, 1.0)
    light = np.clip(hsl[..., 2], 0.0, 1.0)

    chroma = (1.0 - np.abs(2.0 * light - 1.0)) * sat
    sector = hue / 60.0
    x = chroma * (1.0 - np.abs(np.mod(sector, 2.0) - 1.0))
    zero = np.zeros_like(chroma)
    idx = np.clip(np.floor(sector).astype(np.int64), 0, 5)

    r = np.choose(idx, [chroma, x, zero, zero, x, chroma])
    g = np.choose(idx, [x, chroma, chroma, x, zero, zero])
    b = np.choose(idx, [zero, zero, x, chroma, chroma, x])

    m = light - 0.5 * chroma
    out = _stack(r + m, g + m, b + m)
    return np.clip(np.rint(out * 255.0), 0.0, 255.0).astype(np.uint8)


# Composites


def srgb_to_xyz(rgb: U8Pixels) -> Vectors:
    return linear_to_xyz(srgb_bytes_to_linear(rgb))


def xyz_to_srgb(xyz: np.ndarray) -> U8Pixels:
    return linear_to_srgb_bytes(xyz_to_linear(xyz))


def srgb_to_lab(rgb: U8Pixels) -> Vectors:
    return xyz_to_lab(srgb_to_xyz(rgb))


def lab_to_srgb(lab: np.ndarray) -> U8Pixels:
    return xyz_to_srgb(lab_to_xyz(lab))


def srgb_to_luv(rgb: U8Pixels) -> Vectors:
    return xyz_to_luv(srgb_to_xyz(rgb))


def luv_to_srgb(luv: np.ndarray) -> U8Pixels:
    return xyz_to_srgb(luv_to_xyz(luv))


# Threaded helpers


def _split_rows(height: int, parts: int) -> List[Tuple[int, int]]:
    """Partition height into ~parts contiguous [start, end) row spans."""
    parts = max(1, int(parts))
    step = max(1, (height + parts - 1) // parts)
    return [(i, min(i + step, height)) for i in range(0, height, step)]


def convert_threaded(
    fn: Callable[[np.ndarray], np.ndarray], rgb: np.ndarray, workers: int
) -> np.ndarray:
    """
    Apply a row-independent conversion by splitting axis 0 across threads.

    Args:
      fn: any conversion above
      rgb: array [H,...,3]
      workers: number of threads; if <=1 or H < THREADED_CONVERT_MIN_ROWS, runs inline
    Returns:
      fn(rgb), concatenated back along axis 0
    """
    height = int(rgb.shape[0])
    if workers <= 1 or height < THREADED_CONVERT_MIN_ROWS:
        return fn(rgb)

    chunks = _split_rows(height, workers)
    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = [pool.submit(fn, rgb[s:e]) for s, e in chunks]
        parts = [f.result() for f in futures]
    return np.concatenate(parts, axis=0)


__all__ = [
    "srgb_to_linear",
    "linear_to_srgb",
    "srgb_bytes_to_linear",
    "linear_to_srgb_bytes",
    "linear_to_xyz",
    "xyz_to_linear",
    "xyz_to_lab",
    "lab_to_xyz",
    "xyz_to_luv",
    "luv_to_xyz",
    "rgb_to_hsl",
    "hsl_to_rgb",
    "srgb_to_xyz",
    "xyz_to_srgb",
    "srgb_to_lab",
    "lab_to_srgb",
    "srgb_to_luv",
    "luv_to_srgb",
    "convert_threaded",
]
