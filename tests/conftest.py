# tests/conftest.py
from __future__ import annotations

import numpy as np
import pytest


@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(1234)


@pytest.fixture
def four_colour_image() -> np.ndarray:
    """2x2 image of four distinct saturated colours."""
    return np.array(
        [
            [[255, 0, 0], [0, 255, 0]],
            [[0, 0, 255], [255, 255, 0]],
        ],
        dtype=np.uint8,
    )


@pytest.fixture
def solid_image() -> np.ndarray:
    img = np.empty((100, 100, 3), dtype=np.uint8)
    img[...] = (40, 120, 200)
    return img


@pytest.fixture
def noisy_image() -> np.ndarray:
    """Three loose blobs of colour plus noise, 40x40."""
    gen = np.random.default_rng(99)
    centres = np.array([[220, 40, 40], [30, 160, 60], [40, 60, 210]], dtype=np.float64)
    picks = gen.integers(0, 3, size=(40, 40))
    noise = gen.normal(0.0, 18.0, size=(40, 40, 3))
    return np.clip(centres[picks] + noise, 0, 255).astype(np.uint8)


@pytest.fixture
def all_bytes_sample() -> np.ndarray:
    """A spread of sRGB triples including the cube corners and greys."""
    levels = np.array([0, 1, 2, 17, 64, 127, 128, 200, 254, 255], dtype=np.uint8)
    r, g, b = np.meshgrid(levels, levels, levels, indexing="ij")
    return np.stack([r.ravel(), g.ravel(), b.ravel()], axis=-1)
