from __future__ import annotations

import json

import numpy as np
import pytest

from kmeans_palette.core_types import (
    InvalidArgumentError,
    WeightedColour,
    WeightedColourSet,
    hex_to_rgb,
    rgb_to_hex,
)
from kmeans_palette.histogram import (
    histogram_distance,
    histogram_from_dict,
    histogram_to_dict,
    load_histogram,
    save_histogram,
)
from kmeans_palette.utils import histogram_report


def _hist(*entries, width=10, height=10):
    return WeightedColourSet(
        width, height, tuple(WeightedColour(n, rgb) for n, rgb in entries)
    )


@pytest.mark.parametrize(
    "text, rgb",
    [
        ("#1f2a3b", (0x1F, 0x2A, 0x3B)),
        ("#1F2A3B", (0x1F, 0x2A, 0x3B)),
        ("#abc", (0xAA, 0xBB, 0xCC)),
        ("#80ff0000", (255, 0, 0)),
        ("red", (255, 0, 0)),
        ("CornflowerBlue", (100, 149, 237)),
        ("  #000000 ", (0, 0, 0)),
    ],
)
def test_hex_to_rgb(text, rgb):
    assert hex_to_rgb(text) == rgb


@pytest.mark.parametrize("text", ["", "#12", "#ggg", "notacolour", "#zz112233"])
def test_hex_to_rgb_rejects_garbage(text):
    with pytest.raises(ValueError):
        hex_to_rgb(text)


def test_rgb_to_hex_is_lowercase():
    assert rgb_to_hex((255, 171, 0)) == "#ffab00"


def test_colour_set_sorted_by_descending_count_stable():
    hist = _hist((1, (1, 1, 1)), (5, (2, 2, 2)), (1, (3, 3, 3)), (9, (4, 4, 4)))
    assert [wc.rgb for wc in hist.colours] == [
        (4, 4, 4),
        (2, 2, 2),
        (1, 1, 1),
        (3, 3, 3),
    ]
    assert hist.pixel_count == 16
    assert len(hist) == 4


def test_from_clusters_length_mismatch():
    with pytest.raises(InvalidArgumentError):
        WeightedColourSet.from_clusters(2, 2, [1, 2, 1], np.zeros((2, 3), np.uint8))


def test_dict_layout():
    hist = _hist((30, (255, 0, 0)), (70, (0, 0, 255)), width=20, height=5)
    data = histogram_to_dict(hist)
    assert data == {
        "pixel_width": 20,
        "pixel_height": 5,
        "colors": [
            {"pixel_count": 70, "color": "#0000ff"},
            {"pixel_count": 30, "color": "#ff0000"},
        ],
    }
    assert histogram_from_dict(data) == hist


def test_save_and_load(tmp_path):
    hist = _hist((3, (10, 20, 30)), (1, (200, 100, 0)), width=2, height=2)
    path = save_histogram(tmp_path / "nested" / "h.json", hist)
    assert path.exists()
    assert json.loads(path.read_text(encoding="utf-8"))["pixel_width"] == 2
    assert load_histogram(path) == hist


def test_load_accepts_alternate_colour_forms(tmp_path):
    path = tmp_path / "h.json"
    path.write_text(
        json.dumps(
            {
                "pixel_width": 1,
                "pixel_height": 3,
                "colors": [
                    {"pixel_count": 1, "color": "#FFFF0000"},
                    {"pixel_count": 1, "color": "#0f0"},
                    {"pixel_count": 1, "color": "blue"},
                ],
            }
        ),
        encoding="utf-8",
    )
    hist = load_histogram(path)
    assert [wc.rgb for wc in hist.colours] == [(255, 0, 0), (0, 255, 0), (0, 0, 255)]


@pytest.mark.parametrize(
    "data",
    [
        [],
        {"pixel_height": 1, "colors": []},
        {"pixel_width": -1, "pixel_height": 1, "colors": []},
        {"pixel_width": True, "pixel_height": 1, "colors": []},
        {"pixel_width": 1, "pixel_height": 1, "colors": {}},
        {"pixel_width": 1, "pixel_height": 1, "colors": ["#fff"]},
        {"pixel_width": 1, "pixel_height": 1, "colors": [{"pixel_count": 1}]},
        {
            "pixel_width": 1,
            "pixel_height": 1,
            "colors": [{"pixel_count": 1.5, "color": "#ffffff"}],
        },
        {
            "pixel_width": 1,
            "pixel_height": 1,
            "colors": [{"pixel_count": 1, "color": "#nothex"}],
        },
    ],
)
def test_malformed_records(data):
    with pytest.raises(ValueError):
        histogram_from_dict(data)


def test_load_invalid_json(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(ValueError):
        load_histogram(path)


def test_distance_identical_is_zero():
    hist = _hist((3, (10, 20, 30)), (1, (200, 100, 0)))
    assert histogram_distance(hist, hist) == 0.0
    assert histogram_distance(hist, hist, use_permutations=True) == 0.0


def test_distance_permutation_finds_best_pairing():
    a = _hist((1, (255, 0, 0)), (1, (0, 0, 255)))
    b = _hist((1, (0, 0, 255)), (1, (255, 0, 0)))
    assert histogram_distance(a, b) > 0.0
    assert histogram_distance(a, b, use_permutations=True) == pytest.approx(0.0)


def test_distance_is_symmetric():
    a = _hist((6, (255, 0, 0)), (4, (10, 10, 10)))
    b = _hist((7, (250, 10, 0)), (3, (30, 30, 30)))
    assert histogram_distance(a, b) == pytest.approx(histogram_distance(b, a))


def test_distance_errors():
    a = _hist((1, (0, 0, 0)))
    b = _hist((1, (0, 0, 0)), (1, (1, 1, 1)))
    with pytest.raises(ValueError):
        histogram_distance(a, b)
    big = _hist(*[(1, (i, i, i)) for i in range(9)])
    with pytest.raises(ValueError):
        histogram_distance(big, big, use_permutations=True)
    assert histogram_distance(_hist(), _hist()) == 0.0


def test_histogram_report_shares():
    rows = histogram_report(_hist((3, (255, 0, 0)), (1, (0, 0, 0))))
    assert rows == [("#ff0000", 3, 0.75), ("#000000", 1, 0.25)]
    assert histogram_report(_hist((0, (1, 2, 3)))) == [("#010203", 0, 0.0)]
