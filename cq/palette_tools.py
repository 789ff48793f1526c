import math
import numbers
import random
from collections.abc import Mapping
from typing import List, Optional, Sequence

import numpy as np
from PIL import Image

from cq import pixels
from cq.core_types import Color, Palette
from cq.distance import nearest_color_indices
from cq.errors import InvalidBufferError, InvalidPaletteError
from cq.kmeans import cluster

_CHANNEL_KEYS = (("r", "g", "b"), ("red", "green", "blue"))


def _channel_value(value, name: str) -> float:
    # bool is an int subclass but never a meaningful channel
    if value is None or isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise InvalidPaletteError(f"channel '{name}' must be a number, got {value!r}")
    if math.isnan(float(value)):
        raise InvalidPaletteError(f"channel '{name}' is NaN")
    return float(value)


def coerce_color(value) -> Color:
    """
    Turn one palette entry into a Color.

    Accepts a Color, a 3-item sequence, a mapping with r/g/b or red/green/blue
    keys, or a hex string. Zero is a valid channel value.

    Raises:
        InvalidPaletteError: if a channel is missing, None, boolean, NaN or non-numeric.
    """
    if isinstance(value, Color):
        return value
    if isinstance(value, str):
        try:
            return Color.from_hex(value)
        except ValueError as e:
            raise InvalidPaletteError(str(e)) from e
    if isinstance(value, Mapping):
        for keys in _CHANNEL_KEYS:
            if any(key in value for key in keys):
                missing = [key for key in keys if key not in value]
                if missing:
                    raise InvalidPaletteError(f"palette entry {value!r} is missing channel(s) {missing}")
                return Color.clamped(*(_channel_value(value[key], key) for key in keys))
        raise InvalidPaletteError(f"palette entry {value!r} has no r/g/b channels")
    if isinstance(value, (Sequence, np.ndarray)) and not isinstance(value, (bytes, bytearray)):
        if len(value) != 3:
            raise InvalidPaletteError(f"palette entry must have 3 channels, got {len(value)}")
        return Color.clamped(*(_channel_value(v, name) for v, name in zip(value, _CHANNEL_KEYS[1])))
    raise InvalidPaletteError(f"unsupported palette entry: {value!r}")


def validate_palette(entries) -> Palette:
    """Coerce every entry of a fixed palette; the palette must not be empty."""
    if entries is None or isinstance(entries, (str, bytes)):
        raise InvalidPaletteError("palette must be a sequence of colours")
    try:
        palette_entries = iter(entries)
    except TypeError as e:
        raise InvalidPaletteError(f"palette must be a sequence of colours, got {type(entries).__name__}") from e
    palette = [coerce_color(entry) for entry in palette_entries]
    if not palette:
        raise InvalidPaletteError("palette must contain at least one colour")
    return palette


def recolor(buffer, palette: Sequence, assignment: Optional[np.ndarray] = None) -> np.ndarray:
    """
    Write every pixel with a palette colour and return the new buffer.

    Args:
        buffer: RGBA pixel buffer; never modified.
        palette: Ordered palette (Colors or (r, g, b) triples).
        assignment (np.ndarray, optional): Palette index per pixel, as produced by
            cq.kmeans.cluster. When omitted each pixel takes its nearest palette colour.

    Returns:
        np.ndarray: Flat uint8 buffer of the same length, alpha 255 everywhere.
    """
    data = pixels.as_pixel_buffer(buffer)
    palette_array = np.asarray([tuple(c) for c in palette], dtype=np.float64).reshape(-1, 3)
    if len(palette_array) == 0:
        raise InvalidPaletteError("cannot recolor with an empty palette")

    if assignment is None:
        indices = nearest_color_indices(pixels.colors_of(data), palette_array)
    else:
        indices = np.asarray(assignment, dtype=np.int64)
        if indices.shape != (pixels.pixel_count(data),):
            raise InvalidBufferError(
                f"assignment has {indices.size} entries for {pixels.pixel_count(data)} pixels"
            )
        if indices.size and (indices.min() < 0 or indices.max() >= len(palette_array)):
            raise InvalidPaletteError("assignment refers to a colour outside the palette")

    lookup = np.clip(np.rint(palette_array), 0, 255).astype(np.uint8)
    return pixels.write_colors(lookup[indices], len(data))


def palette_usage(assignment: np.ndarray, k: int) -> List[int]:
    """Number of pixels assigned to each palette entry."""
    return np.bincount(np.asarray(assignment, dtype=np.int64), minlength=k).tolist()


def extract_palette_from_image(path, max_colors: int = 24, rng=None) -> Palette:
    """
    Extract a fixed palette from an image (e.g. a paint tray or a swatch sheet).

    Args:
        path (str): Path to the palette image.
        max_colors (int): Number of colours to extract.
        rng: Optional random source forwarded to the k-means engine.

    Returns:
        list[Color]: max_colors entries, in cluster order.
    """
    image = Image.open(path).convert("RGBA")
    image = image.resize((100, 100))  # Downsample for speed and uniformity
    result = cluster(np.asarray(image, dtype=np.uint8), max_colors, rng=rng or random.Random(42))
    return result.palette
