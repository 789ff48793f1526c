import random
from typing import Optional, Protocol

import numpy as np
import typer

from cq import pixels
from cq.core_types import ClusterResult, Color
from cq.distance import distance_stats, nearest_color_indices, paired_distances
from cq.errors import InvalidBufferError, InvalidConfigError
from cq.settings import ClusterOptions, Convergence

# Pixels scored per block when summing member distances.
_ROWS_PER_BLOCK = 1 << 16


class RandomSource(Protocol):
    def randrange(self, stop: int) -> int: ...


def _random_colors(colors: np.ndarray, count: int, rng: RandomSource) -> np.ndarray:
    """Draw `count` pixel colours uniformly, with replacement."""
    n = len(colors)
    picks = [rng.randrange(n) for _ in range(count)]
    return colors[picks].astype(np.float64)


def _cluster_means(colors: np.ndarray, assignment: np.ndarray, k: int):
    """Per-cluster channel means from the assignment; rows of empty clusters are left at 0."""
    counts = np.bincount(assignment, minlength=k)
    sums = np.stack(
        [np.bincount(assignment, weights=colors[:, ch], minlength=k) for ch in range(3)],
        axis=1,
    )
    means = np.zeros((k, 3), dtype=np.float64)
    filled = counts > 0
    means[filled] = sums[filled] / counts[filled, None]
    return means, counts


def _cluster_variances(colors: np.ndarray, assignment: np.ndarray, means: np.ndarray, counts: np.ndarray) -> np.ndarray:
    """Mean squared redmean distance of members to their centroid; 0 for empty clusters."""
    k = len(means)
    variances = np.zeros(k, dtype=np.float64)
    if len(colors) == 0:
        return variances
    sq_sums = np.zeros(k, dtype=np.float64)
    for start in range(0, len(colors), _ROWS_PER_BLOCK):
        members = assignment[start:start + _ROWS_PER_BLOCK]
        member_dist = paired_distances(colors[start:start + _ROWS_PER_BLOCK], means[members])
        sq_sums += np.bincount(members, weights=member_dist * member_dist, minlength=k)
    filled = counts > 0
    variances[filled] = sq_sums[filled] / counts[filled]
    return variances


def cluster(
    buffer,
    k: int,
    rng: Optional[RandomSource] = None,
    options: Optional[ClusterOptions] = None,
) -> ClusterResult:
    """
    Cluster the colours of a pixel buffer into k groups with k-means.

    Each iteration assigns every pixel to its nearest centroid, then moves each
    centroid to the mean of its members. A centroid left without members is
    reseeded with a random pixel colour so the palette always has k entries.
    The loop stops once the configured stability measure changes by less than
    `options.epsilon`, or after `options.max_iterations` iterations.

    Args:
        buffer: RGBA pixel buffer (see cq.pixels.as_pixel_buffer).
        k (int): Number of clusters, >= 1. May exceed the number of distinct colours,
                 in which case duplicate centroids are expected.
        rng: Random source with randrange(stop); defaults to a fresh random.Random().
        options (ClusterOptions, optional): Iteration cap, epsilon and stability test.

    Returns:
        ClusterResult: palette in centroid order plus the final per-pixel assignment.

    Raises:
        InvalidConfigError: if k is not a positive integer.
        InvalidBufferError: if the buffer is malformed or holds no pixels.
    """
    if isinstance(k, bool) or not isinstance(k, (int, np.integer)) or k < 1:
        raise InvalidConfigError(f"k must be a positive integer, got {k!r}")
    k = int(k)
    rng = rng if rng is not None else random.Random()
    options = options if options is not None else ClusterOptions()

    data = pixels.as_pixel_buffer(buffer)
    # uint8 view of the colour channels; blocks are widened to float64 as they are scored
    colors = data.reshape(-1, pixels.CHANNELS)[:, :3]
    if len(colors) == 0:
        raise InvalidBufferError("cannot cluster an empty pixel buffer")

    centroids = _random_colors(colors, k, rng)
    previous_variances = np.ones(k, dtype=np.float64)
    assignment = np.zeros(len(colors), dtype=np.int64)
    converged = False
    iteration = 0

    while iteration < options.max_iterations:
        iteration += 1
        assignment = nearest_color_indices(colors, centroids)
        means, counts = _cluster_means(colors, assignment, k)

        empty = np.flatnonzero(counts == 0)
        new_centroids = means
        if empty.size:
            new_centroids[empty] = _random_colors(colors, empty.size, rng)

        if options.convergence is Convergence.VARIANCE:
            variances = _cluster_variances(colors, assignment, means, counts)
            change = float(np.max(np.abs(previous_variances - variances)))
            previous_variances = variances
        else:
            stats = distance_stats(centroids.tolist(), new_centroids.tolist())
            change = stats.max

        if options.verbose:
            typer.echo(
                f"  k-means iteration {iteration}: max change {change:.6f}, empty clusters {empty.size}",
                err=True,
            )

        centroids = new_centroids
        if change < options.epsilon:
            converged = True
            break

    if not converged and options.verbose:
        typer.secho(
            f"Warning: k-means stopped at the iteration cap ({options.max_iterations}) before converging.",
            fg=typer.colors.YELLOW,
            err=True,
        )

    palette = [Color.clamped(*row) for row in centroids]
    return ClusterResult(
        palette=palette,
        assignment=assignment,
        centroids=centroids,
        iterations=iteration,
        converged=converged,
    )
