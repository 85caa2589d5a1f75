# kmeans_palette/histogram.py
from __future__ import annotations

"""
Weighted colour histogram persistence and comparison.

JSON layout:
  {
    "pixel_width": 640,
    "pixel_height": 480,
    "colors": [{"pixel_count": 120000, "color": "#1f2a3b"}, ...]
  }
Colours are sorted by descending pixel_count. "color" is written as
'#rrggbb'; reading also accepts '#rgb', '#aarrggbb' and colour names.

Exports:
  histogram_to_dict(hist) / histogram_from_dict(data)
  save_histogram(path, hist) / load_histogram(path)
  histogram_distance(a, b, use_permutations=False)
"""

import json
from itertools import permutations
from pathlib import Path
from typing import Any, Dict, List, Mapping

import numpy as np

from .colour_convert import srgb_to_lab
from .constants import MAX_PERMUTATION_COLOURS
from .core_types import WeightedColour, WeightedColourSet, hex_to_rgb, rgb_to_hex


def histogram_to_dict(hist: WeightedColourSet) -> Dict[str, Any]:
    return {
        "pixel_width": int(hist.pixel_width),
        "pixel_height": int(hist.pixel_height),
        "colors": [
            {"pixel_count": int(wc.pixel_count), "color": rgb_to_hex(wc.rgb)}
            for wc in hist.colours
        ],
    }


def _require_int(data: Mapping[str, Any], key: str) -> int:
    if key not in data:
        raise ValueError(f"histogram is missing {key!r}")
    value = data[key]
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"{key!r} must be a non-negative integer, got {value!r}")
    return value


def histogram_from_dict(data: Mapping[str, Any]) -> WeightedColourSet:
    """Validate and decode a histogram record. Raises ValueError when malformed."""
    if not isinstance(data, Mapping):
        raise ValueError("histogram must be a JSON object")
    width = _require_int(data, "pixel_width")
    height = _require_int(data, "pixel_height")
    raw_colours = data.get("colors")
    if not isinstance(raw_colours, list):
        raise ValueError("histogram 'colors' must be a list")

    colours: List[WeightedColour] = []
    for i, entry in enumerate(raw_colours):
        if not isinstance(entry, Mapping):
            raise ValueError(f"colors[{i}] must be an object")
        count = _require_int(entry, "pixel_count")
        colour = entry.get("color")
        if not isinstance(colour, str):
            raise ValueError(f"colors[{i}].color must be a string")
        colours.append(WeightedColour(count, hex_to_rgb(colour)))
    return WeightedColourSet(width, height, tuple(colours))


def save_histogram(path: Path, hist: WeightedColourSet) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(histogram_to_dict(hist), f, indent=2)
    return path


def load_histogram(path: Path) -> WeightedColourSet:
    with open(path, "r", encoding="utf-8") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"{path}: not valid JSON ({e})") from e
    return histogram_from_dict(data)


def histogram_distance(
    a: WeightedColourSet, b: WeightedColourSet, use_permutations: bool = False
) -> float:
    """
    Weighted squared CIELAB distance between two histograms of equal length.

    Entry i of `a` is paired with entry i of `b` (both are weight-sorted) and
    contributes |lab_a - lab_b|^2 * (share_a + share_b) / 2. With
    `use_permutations`, the pairing that minimises the total is used instead;
    that search is limited to MAX_PERMUTATION_COLOURS colours.
    """
    n = len(a)
    if n != len(b):
        raise ValueError(f"histograms differ in length ({n} vs {len(b)})")
    if n == 0:
        return 0.0
    if use_permutations and n > MAX_PERMUTATION_COLOURS:
        raise ValueError(
            f"permutation search is limited to {MAX_PERMUTATION_COLOURS} colours, got {n}"
        )

    lab_a = srgb_to_lab(np.array([wc.rgb for wc in a.colours], dtype=np.uint8))
    lab_b = srgb_to_lab(np.array([wc.rgb for wc in b.colours], dtype=np.uint8))
    total_a, total_b = a.pixel_count, b.pixel_count
    share_a = np.array([wc.pixel_count for wc in a.colours], dtype=np.float64)
    share_b = np.array([wc.pixel_count for wc in b.colours], dtype=np.float64)
    share_a = share_a / total_a if total_a else np.zeros_like(share_a)
    share_b = share_b / total_b if total_b else np.zeros_like(share_b)

    # pairwise[i, j]: cost of pairing a[i] with b[j]
    diff = lab_a[:, None, :] - lab_b[None, :, :]
    pairwise = np.einsum("ijk,ijk->ij", diff, diff) * (
        share_a[:, None] + share_b[None, :]
    ) / 2.0

    rows = np.arange(n)
    if not use_permutations:
        return float(pairwise[rows, rows].sum())
    return float(min(pairwise[rows, list(p)].sum() for p in permutations(range(n))))


__all__ = [
    "histogram_to_dict",
    "histogram_from_dict",
    "save_histogram",
    "load_histogram",
    "histogram_distance",
]
