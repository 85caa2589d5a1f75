# kmeans_palette/image_io.py
from __future__ import annotations

import io
from pathlib import Path

import numpy as np
from PIL import Image, ImageOps

from .core_types import InvalidArgumentError, U8Image, assert_u8_pixels

"""
Image I/O helpers. Everything handed to the clustering core is sRGB uint8
[H,W,3]; alpha is dropped on load.
"""

try:
    from PIL import ImageCms  # ICC conversion if profile present
except ImportError:  # pragma: no cover
    ImageCms = None  # type: ignore[assignment]

_SAVE_SUFFIXES = (".png", ".jpg", ".jpeg")


def _convert_to_srgb_rgb(im: Image.Image) -> Image.Image:
    im = ImageOps.exif_transpose(im)
    icc_bytes = im.info.get("icc_profile")

    if icc_bytes and ImageCms is not None:
        try:
            src_prof = ImageCms.ImageCmsProfile(io.BytesIO(icc_bytes))
            dst_prof = ImageCms.createProfile("sRGB")
            im2 = ImageCms.profileToProfile(
                im.convert("RGB"),
                src_prof,
                dst_prof,
                renderingIntent=ImageCms.Intent.PERCEPTUAL,
                outputMode="RGB",
            )
            if im2 is not None:
                return im2
        except (ImageCms.PyCMSError, OSError, ValueError):
            pass

    return im.convert("RGB")


def load_image_rgb(path: Path) -> U8Image:
    """Load an image with Pillow as sRGB uint8 [H,W,3]."""
    with Image.open(path) as im0:
        im = _convert_to_srgb_rgb(im0)
    return np.array(im, dtype=np.uint8)


def save_image_rgb(path: Path, rgb: U8Image) -> Path:
    """
    Save an [H,W,3] uint8 image. PNG unless the path already ends in .jpg/.jpeg.
    Returns the path actually written.
    """
    rgb = assert_u8_pixels(rgb)
    if rgb.ndim != 3:
        raise InvalidArgumentError("save_image_rgb expects an [H,W,3] image")
    if path.suffix.lower() not in _SAVE_SUFFIXES:
        path = path.with_suffix(".png")
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.fromarray(np.ascontiguousarray(rgb)).save(path)
    return path


__all__ = [
    "load_image_rgb",
    "save_image_rgb",
]
