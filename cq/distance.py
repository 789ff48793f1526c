import math
from typing import NamedTuple, Sequence

import numpy as np

# Normalises the redmean score into [0, 1]; white vs black scores exactly 3*255.
_NORMALIZER = 3.0 * 255.0

# Colour/palette pairs scored per block by nearest_color_indices.
_PAIRS_PER_BLOCK = 1 << 15


class DistanceStats(NamedTuple):
    min: float
    max: float
    mean: float


def distance(color_a: Sequence[float], color_b: Sequence[float]) -> float:
    """
    Redmean-weighted colour difference (https://www.compuphase.com/cmetric.htm).

    Args:
        color_a, color_b: (red, green, blue) triples, channels in [0, 255].

    Returns:
        float: distance in [0, 1]; 0 for identical colours, symmetric.
    """
    mean_red = 0.5 * (color_a[0] + color_b[0])
    dr = color_a[0] - color_b[0]
    dg = color_a[1] - color_b[1]
    db = color_a[2] - color_b[2]
    dr2, dg2, db2 = dr * dr, dg * dg, db * db
    score = 2 * dr2 + 4 * dg2 + 3 * db2 + mean_red * (dr2 - db2) / 256
    return math.sqrt(score) / _NORMALIZER


def nearest_color_index(color: Sequence[float], palette: Sequence[Sequence[float]]) -> int:
    """Index of the closest palette entry; the earliest one wins a tie."""
    best_idx = 0
    best_dist = math.inf
    for idx, candidate in enumerate(palette):
        d = distance(color, candidate)
        if d < best_dist:
            best_dist = d
            best_idx = idx
    return best_idx


def distance_matrix(colors: np.ndarray, palette: np.ndarray) -> np.ndarray:
    """
    Vectorised redmean distance between every colour and every palette entry.

    Args:
        colors (np.ndarray): (N, 3) colours.
        palette (np.ndarray): (K, 3) colours.

    Returns:
        np.ndarray: (N, K) float64 distances.
    """
    a = np.asarray(colors, dtype=np.float64)[:, None, :]
    b = np.asarray(palette, dtype=np.float64)[None, :, :]
    mean_red = 0.5 * (a[..., 0] + b[..., 0])
    diff = a - b
    dr2 = diff[..., 0] * diff[..., 0]
    dg2 = diff[..., 1] * diff[..., 1]
    db2 = diff[..., 2] * diff[..., 2]
    score = 2 * dr2 + 4 * dg2 + 3 * db2 + mean_red * (dr2 - db2) / 256
    return np.sqrt(score) / _NORMALIZER


def paired_distances(colors_a: np.ndarray, colors_b: np.ndarray) -> np.ndarray:
    """Row-wise redmean distance between two (N, 3) colour arrays."""
    a = np.asarray(colors_a, dtype=np.float64).reshape(-1, 3)
    b = np.asarray(colors_b, dtype=np.float64).reshape(-1, 3)
    mean_red = 0.5 * (a[:, 0] + b[:, 0])
    diff = a - b
    sq = diff * diff
    score = 2 * sq[:, 0] + 4 * sq[:, 1] + 3 * sq[:, 2] + mean_red * (sq[:, 0] - sq[:, 2]) / 256
    return np.sqrt(score) / _NORMALIZER


def nearest_color_indices(colors: np.ndarray, palette: np.ndarray) -> np.ndarray:
    """
    Row-wise nearest palette index; argmin keeps the first minimum like the scalar scan.

    Rows are scored in blocks, so memory stays proportional to the number of
    colours rather than colours times palette size.
    """
    palette = np.asarray(palette, dtype=np.float64).reshape(-1, 3)
    n = len(colors)
    indices = np.empty((n,), dtype=np.int64)
    if n == 0:
        return indices
    rows = max(1, _PAIRS_PER_BLOCK // max(1, len(palette)))
    for start in range(0, n, rows):
        stop = start + rows
        indices[start:stop] = np.argmin(distance_matrix(colors[start:stop], palette), axis=1)
    return indices


def distance_stats(list_a: Sequence[Sequence[float]], list_b: Sequence[Sequence[float]]) -> DistanceStats:
    """Min / max / mean of the pairwise distances between two equal-length colour lists."""
    if len(list_a) != len(list_b):
        raise ValueError(f"colour lists differ in length: {len(list_a)} != {len(list_b)}")
    if len(list_a) == 0:
        return DistanceStats(0.0, 0.0, 0.0)
    dists = [distance(a, b) for a, b in zip(list_a, list_b)]
    return DistanceStats(min(dists), max(dists), sum(dists) / len(dists))
