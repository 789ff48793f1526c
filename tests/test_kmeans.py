# tests/test_kmeans.py
import random
import tracemalloc

import numpy as np
import pytest

from cq.core_types import Color
from cq.errors import InvalidBufferError, InvalidConfigError
from cq.kmeans import cluster
from cq.settings import ClusterOptions, Convergence


class ScriptedRandom:
    """Random source that replays a fixed list of pixel indices."""

    def __init__(self, picks):
        self.picks = list(picks)
        self.calls = 0

    def randrange(self, stop):
        value = self.picks[self.calls % len(self.picks)]
        self.calls += 1
        assert 0 <= value < stop
        return value


def make_buffer(colors, alpha=255):
    return bytes(b for color in colors for b in (*color, alpha))


FOUR_COLORS = [(255, 0, 0), (0, 255, 0), (0, 0, 255), (255, 255, 255)]


def test_four_distinct_colors_each_get_their_own_cluster():
    result = cluster(make_buffer(FOUR_COLORS), 4, rng=ScriptedRandom([0, 1, 2, 3]))

    assert result.palette == [Color(*c) for c in FOUR_COLORS]
    assert result.assignment.tolist() == [0, 1, 2, 3]
    assert result.converged
    assert result.iterations == 1


def test_empty_cluster_is_reseeded_from_random_source():
    # Initial centroids red, red, green, blue: the second red never wins a pixel
    # (ties go to the earliest index), so it is reseeded with pixel 3 (white).
    rng = ScriptedRandom([0, 0, 1, 2, 3])
    result = cluster(make_buffer(FOUR_COLORS), 4, rng=rng)

    assert rng.calls == 5
    assert result.palette == [Color(255, 0, 0), Color(255, 255, 255), Color(0, 255, 0), Color(0, 0, 255)]
    assert result.assignment.tolist() == [0, 2, 3, 1]
    assert result.converged
    assert result.iterations == 3


def test_single_cluster_centroid_is_the_mean_color():
    colors = [(10, 20, 30), (20, 40, 60), (30, 60, 90), (40, 80, 120)]
    result = cluster(make_buffer(colors), 1, rng=ScriptedRandom([0]))

    assert result.palette == [Color(25, 50, 75)]
    assert np.allclose(result.centroids[0], [25.0, 50.0, 75.0])
    assert result.assignment.tolist() == [0, 0, 0, 0]


def test_single_cluster_mean_of_random_image():
    rng = np.random.default_rng(7)
    data = rng.integers(0, 256, size=(64, 4), dtype=np.uint8)
    result = cluster(data, 1, rng=random.Random(3))
    assert np.allclose(result.centroids[0], data[:, :3].astype(np.float64).mean(axis=0))


def test_palette_and_assignment_sizes():
    rng = np.random.default_rng(11)
    data = rng.integers(0, 256, size=(10, 10, 4), dtype=np.uint8)
    for k in (1, 2, 5, 17):
        result = cluster(data, k, rng=random.Random(k))
        assert len(result.palette) == k
        assert result.assignment.shape == (100,)
        assert result.assignment.min() >= 0
        assert result.assignment.max() < k


def test_k_larger_than_distinct_colors_gives_duplicate_centroids():
    data = make_buffer([(5, 5, 5)] * 3 + [(250, 250, 250)] * 3)
    result = cluster(data, 5, rng=ScriptedRandom([0, 3, 0, 3, 0]))
    dark, light = Color(5, 5, 5), Color(250, 250, 250)
    assert result.palette == [dark, light, dark, light, dark]
    # Only the first copy of each colour wins pixels
    assert result.assignment.tolist() == [0, 0, 0, 1, 1, 1]


def test_k_close_to_pixel_count_terminates_within_cap():
    rng = np.random.default_rng(5)
    data = rng.integers(0, 256, size=(48, 4), dtype=np.uint8)
    options = ClusterOptions(max_iterations=7)
    result = cluster(data, 47, rng=random.Random(0), options=options)

    assert 1 <= result.iterations <= 7
    assert len(result.palette) == 47
    assert len(result.assignment) == 48


def test_iteration_cap_stops_unconverged_run():
    colors = [(0, 0, 0), (100, 100, 100), (200, 200, 200)]
    result = cluster(make_buffer(colors), 1, rng=ScriptedRandom([0]), options=ClusterOptions(max_iterations=1))
    assert result.iterations == 1
    assert not result.converged
    # One completed iteration still recomputes the centroid
    assert result.palette == [Color(100, 100, 100)]


def test_variance_convergence_strategy():
    options = ClusterOptions(convergence=Convergence.VARIANCE)
    result = cluster(make_buffer(FOUR_COLORS), 4, rng=ScriptedRandom([0, 1, 2, 3]), options=options)
    # Variances drop from the seeded 1.0 to 0 on the first pass, then stay put
    assert result.iterations == 2
    assert result.converged
    assert result.palette == [Color(*c) for c in FOUR_COLORS]


def test_same_random_draws_give_same_result():
    rng = np.random.default_rng(21)
    data = rng.integers(0, 256, size=(200, 4), dtype=np.uint8)
    first = cluster(data, 6, rng=random.Random(99))
    second = cluster(data, 6, rng=random.Random(99))
    assert first.palette == second.palette
    assert np.array_equal(first.assignment, second.assignment)


def test_alpha_is_ignored_for_clustering():
    opaque = cluster(make_buffer(FOUR_COLORS), 4, rng=ScriptedRandom([0, 1, 2, 3]))
    faded = cluster(make_buffer(FOUR_COLORS, alpha=3), 4, rng=ScriptedRandom([0, 1, 2, 3]))
    assert opaque.palette == faded.palette


def test_input_buffer_is_not_mutated():
    data = np.array([1, 2, 3, 4, 200, 100, 50, 9], dtype=np.uint8)
    before = data.copy()
    cluster(data, 2, rng=random.Random(0))
    assert np.array_equal(data, before)


@pytest.mark.parametrize("k", [0, -3, 2.5, True, "3", None])
def test_invalid_k_is_rejected(k):
    with pytest.raises(InvalidConfigError):
        cluster(make_buffer(FOUR_COLORS), k)


def test_empty_buffer_is_rejected():
    with pytest.raises(InvalidBufferError):
        cluster(b"", 2)


def test_verbose_run_echoes_iterations(capsys):
    cluster(make_buffer(FOUR_COLORS), 4, rng=ScriptedRandom([0, 1, 2, 3]), options=ClusterOptions(verbose=True))
    captured = capsys.readouterr()
    assert "k-means iteration 1" in captured.err


@pytest.mark.parametrize("convergence", list(Convergence))
def test_memory_stays_proportional_to_pixel_count(convergence):
    data = np.random.default_rng(0).integers(0, 256, size=1_000_000, dtype=np.uint8)
    options = ClusterOptions(max_iterations=2, convergence=convergence)
    tracemalloc.start()
    try:
        result = cluster(data, 16, rng=random.Random(0), options=options)
        _, peak = tracemalloc.get_traced_memory()
    finally:
        tracemalloc.stop()
    assert len(result.palette) == 16
    assert peak < 20 * data.nbytes
