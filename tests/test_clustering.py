from __future__ import annotations

import numpy as np
import pytest

import kmeans_palette.clustering.engine as engine_mod
from kmeans_palette.clustering import (
    ClusterAccumulator,
    ColourClusterer,
    cluster_pixels,
    farthest_point_order,
    kmeans_plus_plus,
    quantize_image,
)
from kmeans_palette.colour_space import CIELAB, HSL, SRGB, get_colour_space
from kmeans_palette.core_types import InvalidArgumentError


# Accumulator


def test_accumulator_sums_counts_and_cost():
    acc = ClusterAccumulator(3)
    vectors = np.array([[1.0, 2.0, 3.0], [3.0, 2.0, 1.0], [10.0, 10.0, 10.0]])
    labels = np.array([0, 0, 2])
    acc.add_samples(vectors, labels, np.array([1.0, 2.0, 0.5]))
    np.testing.assert_array_equal(acc.counts, [2, 0, 1])
    np.testing.assert_allclose(acc.sums[0], [4.0, 4.0, 4.0])
    assert acc.cost == pytest.approx(3.5)
    np.testing.assert_array_equal(acc.empty_clusters(), [1])


def test_accumulator_empty_cluster_keeps_fallback():
    acc = ClusterAccumulator(2)
    acc.add_samples(np.array([[2.0, 4.0, 6.0]]), np.array([0]))
    fallback = np.array([[0.0, 0.0, 0.0], [7.0, 8.0, 9.0]])
    out = acc.averages(fallback)
    np.testing.assert_allclose(out, [[2.0, 4.0, 6.0], [7.0, 8.0, 9.0]])
    assert np.all(np.isfinite(out))


def test_accumulator_merge_and_reset():
    a = ClusterAccumulator(2)
    b = ClusterAccumulator(2)
    a.add_samples(np.array([[1.0, 1.0, 1.0]]), np.array([0]))
    b.add_samples(np.array([[3.0, 3.0, 3.0]]), np.array([0]))
    assert a.merge(b) is a
    np.testing.assert_allclose(a.averages(np.zeros((2, 3)))[0], [2.0, 2.0, 2.0])
    a.reset()
    assert a.counts.sum() == 0 and a.cost == 0.0
    with pytest.raises(InvalidArgumentError):
        a.merge(ClusterAccumulator(3))


# Seeding


def test_kmeans_plus_plus_is_deterministic(noisy_image):
    vectors = CIELAB.to_vector(noisy_image.reshape(-1, 3))
    a = kmeans_plus_plus(vectors, 6, np.random.default_rng(3))
    b = kmeans_plus_plus(vectors, 6, np.random.default_rng(3))
    np.testing.assert_array_equal(a, b)


def test_kmeans_plus_plus_never_repeats_a_point_while_distinct_ones_remain():
    vectors = np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 5.0, 0.0]])
    means = kmeans_plus_plus(vectors, 3, np.random.default_rng(0))
    assert len({tuple(row) for row in means.tolist()}) == 3


def test_farthest_point_order_known_layout():
    means = np.array(
        [
            [0.0, 0.0, 0.0],  # heaviest
            [1.0, 0.0, 0.0],
            [10.0, 0.0, 0.0],  # farthest from 0
            [0.0, 5.0, 0.0],  # farthest from {0, 2}
            [9.0, 0.0, 0.0],
        ]
    )
    weights = np.array([10, 5, 1, 1, 2])
    np.testing.assert_array_equal(farthest_point_order(means, weights, 3), [0, 2, 3])


def test_farthest_point_order_ties_go_to_lowest_index():
    means = np.zeros((4, 3))
    weights = np.array([1, 3, 3, 0])
    np.testing.assert_array_equal(farthest_point_order(means, weights, 4), [1, 0, 2, 3])


@pytest.mark.parametrize("m", [0, 6])
def test_farthest_point_order_rejects_bad_subset(m):
    with pytest.raises(InvalidArgumentError):
        farthest_point_order(np.zeros((5, 3)), np.ones(5), m)


# Engine


def test_scenario_distinct_pixels_converge_to_themselves(four_colour_image):
    clusterer = ColourClusterer(
        four_colour_image, CIELAB, 4, rng=np.random.default_rng(11)
    )
    performed = clusterer.run(50)
    assert performed <= 4
    assert clusterer.state == "converged"
    np.testing.assert_array_equal(clusterer.cluster_weights, [1, 1, 1, 1])

    source = CIELAB.to_vector(four_colour_image.reshape(-1, 3))
    means = clusterer.cluster_means
    for row in source:
        assert np.min(np.abs(means - row).max(axis=1)) < 1e-5
    rendered = clusterer.render().astype(np.int64)
    assert np.abs(rendered - four_colour_image).max() <= 1


def test_scenario_solid_colour_leaves_empty_clusters(solid_image):
    clusterer = ColourClusterer(solid_image, CIELAB, 5, rng=np.random.default_rng(2))
    clusterer.seed()
    colour = CIELAB.to_vector(solid_image[0, 0])
    np.testing.assert_allclose(clusterer.cluster_means, np.tile(colour, (5, 1)))

    clusterer.run(10)
    assert clusterer.state == "converged"
    np.testing.assert_array_equal(clusterer.cluster_weights, [10_000, 0, 0, 0, 0])
    np.testing.assert_array_equal(clusterer.empty_clusters, [1, 2, 3, 4])
    np.testing.assert_allclose(clusterer.cluster_means, np.tile(colour, (5, 1)))
    rendered = clusterer.render()
    assert len(np.unique(rendered.reshape(-1, 3), axis=0)) == 1
    assert np.abs(rendered.astype(np.int64) - solid_image).max() <= 1


def test_cost_is_non_increasing_and_weights_conserved(noisy_image):
    clusterer = ColourClusterer(noisy_image, CIELAB, 6, rng=np.random.default_rng(8))
    n = noisy_image.shape[0] * noisy_image.shape[1]
    seen = []

    def check(iteration, c):
        assert int(c.cluster_weights.sum()) == n
        seen.append(iteration)

    clusterer.run(100, on_iteration=check)
    costs = clusterer.cost_history
    assert len(costs) == clusterer.iterations == len(seen)
    assert seen == list(range(1, len(seen) + 1))
    for before, after in zip(costs, costs[1:]):
        assert after <= before + 1e-6 * max(1.0, before)


def test_same_seed_same_assignments(noisy_image):
    runs = []
    for _ in range(2):
        c = ColourClusterer(noisy_image, SRGB, 5, rng=np.random.default_rng(42))
        c.run(30)
        runs.append(np.array(c.assignments))
    np.testing.assert_array_equal(runs[0], runs[1])


def test_render_is_idempotent_between_iterations(noisy_image):
    c = ColourClusterer(noisy_image, HSL, 4, rng=np.random.default_rng(1))
    c.iterate()
    first = c.render()
    second = c.render()
    np.testing.assert_array_equal(first, second)
    assert first.shape == noisy_image.shape
    palette = {tuple(p) for p in c.cluster_colours.tolist()}
    assert {tuple(p) for p in first.reshape(-1, 3).tolist()} <= palette


def test_run_overwrites_vectors_with_means(noisy_image):
    c = ColourClusterer(noisy_image, CIELAB, 3, rng=np.random.default_rng(4))
    with pytest.raises(RuntimeError):
        c.quantized_vectors
    c.run(50)
    np.testing.assert_array_equal(
        c.quantized_vectors, c.cluster_means[np.array(c.assignments)]
    )
    assert not c.assignments.flags.writeable


def test_should_stop_ends_in_cap_state(noisy_image):
    c = ColourClusterer(noisy_image, CIELAB, 5, rng=np.random.default_rng(6))
    assert c.run(100, should_stop=lambda: True) == 1
    assert c.state == "iteration_cap_reached"


def test_iteration_cap(noisy_image):
    c = ColourClusterer(noisy_image, CIELAB, 8, rng=np.random.default_rng(6))
    assert c.run(1) == 1
    assert c.iterations == 1


def test_state_machine_errors(noisy_image):
    c = ColourClusterer(noisy_image, CIELAB, 3, rng=np.random.default_rng(0))
    assert c.state == "unseeded"
    with pytest.raises(RuntimeError):
        c.render()
    c.seed()
    assert c.state == "seeded"
    with pytest.raises(RuntimeError):
        c.seed()
    c.run(20)
    with pytest.raises(RuntimeError):
        c.iterate()
    with pytest.raises(RuntimeError):
        c.run(5)


def test_iterate_seeds_implicitly(noisy_image):
    c = ColourClusterer(noisy_image, CIELAB, 3, rng=np.random.default_rng(0))
    c.iterate()
    assert c.state == "seeded"
    assert c.iterations == 1


@pytest.mark.parametrize("k", [0, -1, 1601])
def test_invalid_cluster_count(noisy_image, k):
    with pytest.raises(InvalidArgumentError):
        ColourClusterer(noisy_image, CIELAB, k)


@pytest.mark.parametrize(
    "pixels",
    [
        np.zeros((4, 3), dtype=np.float64),
        np.zeros((4, 4), dtype=np.uint8),
        np.zeros((0, 3), dtype=np.uint8),
        np.zeros((2, 2, 2, 3), dtype=np.uint8),
    ],
)
def test_invalid_pixels(pixels):
    with pytest.raises(InvalidArgumentError):
        ColourClusterer(pixels, CIELAB, 1)


@pytest.mark.parametrize(
    "seeds",
    [
        np.zeros((0, 3)),
        np.zeros((2, 2)),
        np.array([[0.0, np.nan, 0.0]]),
        np.zeros((5, 3)),  # more seeds than pixels
    ],
)
def test_invalid_seeds(four_colour_image, seeds):
    with pytest.raises(InvalidArgumentError):
        ColourClusterer.from_seeds(four_colour_image, CIELAB, seeds)


def test_from_seeds_uses_given_means(four_colour_image):
    seeds = CIELAB.to_vector(four_colour_image.reshape(-1, 3))[:2]
    c = ColourClusterer.from_seeds(four_colour_image, CIELAB, seeds)
    assert c.state == "seeded"
    assert c.cluster_count == 2
    np.testing.assert_array_equal(c.cluster_means, seeds)


def test_max_iterations_must_be_positive(noisy_image):
    c = ColourClusterer(noisy_image, CIELAB, 3)
    with pytest.raises(InvalidArgumentError):
        c.run(0)


def test_choose_differentiated_clusters(noisy_image):
    c = ColourClusterer(noisy_image, CIELAB, 6, rng=np.random.default_rng(9))
    c.run(20)
    subset = c.choose_differentiated_clusters(3)
    assert subset.shape == (3, 3)
    heaviest = int(np.argmax(c.cluster_weights))
    np.testing.assert_array_equal(subset[0], c.cluster_means[heaviest])
    with pytest.raises(InvalidArgumentError):
        c.choose_differentiated_clusters(7)


def test_threaded_blocks_match_serial_blocks(monkeypatch, noisy_image):
    monkeypatch.setattr(engine_mod, "ASSIGN_BLOCK_PIXELS", 97)
    vectors = CIELAB.to_vector(noisy_image.reshape(-1, 3))
    results = []
    for workers in (1, 4):
        c = ColourClusterer(
            noisy_image,
            CIELAB,
            5,
            rng=np.random.default_rng(21),
            workers=workers,
            vectors=vectors,
        )
        c.run(40)
        results.append((np.array(c.assignments), c.cluster_means, c.cost_history))
    np.testing.assert_array_equal(results[0][0], results[1][0])
    np.testing.assert_array_equal(results[0][1], results[1][1])
    assert results[0][2] == results[1][2]


def test_block_accumulators_reset_and_reused_each_iteration(monkeypatch, noisy_image):
    monkeypatch.setattr(engine_mod, "ASSIGN_BLOCK_PIXELS", 97)
    c = ColourClusterer(noisy_image, CIELAB, 4, rng=np.random.default_rng(5))
    c.seed()
    c.iterate()
    blocks = list(c._block_accs)
    assert len(blocks) == 17  # ceil(1600 / 97)
    for _ in range(3):
        c.iterate()
        assert [id(a) for a in c._block_accs] == [id(a) for a in blocks]
        # each block counts only its own pixels, so no sums leak between steps
        assert sum(int(a.counts.sum()) for a in blocks) == 1600
        assert int(c.cluster_weights.sum()) == 1600


def test_weighted_colours_match_weights(noisy_image):
    c = ColourClusterer(noisy_image, CIELAB, 4, rng=np.random.default_rng(3))
    c.run(30)
    hist = c.weighted_colours()
    assert (hist.pixel_width, hist.pixel_height) == (40, 40)
    assert hist.pixel_count == 1600
    counts = [wc.pixel_count for wc in hist.colours]
    assert counts == sorted(counts, reverse=True)


def test_weighted_colours_for_flat_pixels(four_colour_image):
    flat = four_colour_image.reshape(-1, 3)
    c = ColourClusterer(flat, SRGB, 2, rng=np.random.default_rng(0))
    c.run(10)
    hist = c.weighted_colours()
    assert (hist.pixel_width, hist.pixel_height) == (4, 1)


# Two-phase runner


def test_coarse_phase_used_below_sixteen(noisy_image):
    phases = []
    result = cluster_pixels(
        noisy_image,
        CIELAB,
        4,
        rng=np.random.default_rng(0),
        on_iteration=lambda phase, i, c: phases.append(phase),
    )
    assert 1 <= result.coarse_iterations <= 3
    assert phases[: result.coarse_iterations] == ["coarse"] * result.coarse_iterations
    assert set(phases[result.coarse_iterations :]) == {"final"}
    assert result.clusterer.cluster_count == 4
    assert result.image.shape == noisy_image.shape


def test_no_coarse_phase_at_sixteen_or_more(noisy_image):
    phases = []
    result = cluster_pixels(
        noisy_image,
        CIELAB,
        16,
        rng=np.random.default_rng(0),
        max_iterations=5,
        on_iteration=lambda phase, i, c: phases.append(phase),
    )
    assert result.coarse_iterations == 0
    assert set(phases) == {"final"}


def test_no_coarse_phase_for_tiny_images(four_colour_image):
    result = cluster_pixels(four_colour_image, CIELAB, 2, rng=np.random.default_rng(0))
    assert result.coarse_iterations == 0


def test_quantize_image_by_name(noisy_image):
    result = quantize_image(noisy_image, "lab", 3, rng=np.random.default_rng(5))
    assert result.clusterer.colour_space.name == "CIELAB"
    assert len(result.histogram) == 3
    assert result.histogram.pixel_count == 1600
    assert (result.histogram.pixel_width, result.histogram.pixel_height) == (40, 40)
    assert len(np.unique(result.image.reshape(-1, 3), axis=0)) <= 3


@pytest.mark.parametrize("k", [0, 101])
def test_quantize_image_rejects_out_of_range_k(noisy_image, k):
    with pytest.raises(InvalidArgumentError):
        quantize_image(noisy_image, "CIELAB", k)


def test_quantize_image_needs_hw3(noisy_image):
    with pytest.raises(InvalidArgumentError):
        quantize_image(noisy_image.reshape(-1, 3), "CIELAB", 3)
    with pytest.raises(InvalidArgumentError):
        quantize_image(noisy_image, "CMYK", 3)


@pytest.mark.parametrize("name", ["sRGB", "CIELAB", "CIELUV", "CIEXYZ", "HSL"])
def test_every_space_quantizes(noisy_image, name):
    result = quantize_image(
        noisy_image, get_colour_space(name), 3, rng=np.random.default_rng(1)
    )
    assert result.image.dtype == np.uint8
    assert int(result.clusterer.cluster_weights.sum()) == 1600
