"""
Flat RGBA pixel buffers: 4 bytes per pixel (red, green, blue, alpha), row-major.

Everything here returns new arrays; the caller's buffer is only read.
"""

from typing import Union

import numpy as np

from cq.core_types import Color
from cq.errors import InvalidBufferError

BufferLike = Union[bytes, bytearray, memoryview, np.ndarray]

CHANNELS = 4
LUMA_WEIGHTS = np.array([0.2126, 0.7152, 0.0722], dtype=np.float64)


def as_pixel_buffer(data: BufferLike) -> np.ndarray:
    """
    Validate a pixel buffer and return a private flat uint8 copy of it.

    Accepts bytes-like objects and uint8 numpy arrays of any shape
    (e.g. HxWx4 straight out of Pillow).

    Raises:
        InvalidBufferError: if the data is not byte-sized or its length is not a multiple of 4.
    """
    if isinstance(data, np.ndarray):
        if data.dtype != np.uint8:
            raise InvalidBufferError(f"pixel buffer must be uint8, got {data.dtype}")
        flat = data.reshape(-1).copy()
    elif isinstance(data, (bytes, bytearray, memoryview)):
        flat = np.frombuffer(bytes(data), dtype=np.uint8).copy()
    else:
        raise InvalidBufferError(f"unsupported pixel buffer type: {type(data).__name__}")

    if flat.size % CHANNELS != 0:
        raise InvalidBufferError(f"pixel buffer length {flat.size} is not a multiple of {CHANNELS}")
    return flat


def pixel_count(buffer: np.ndarray) -> int:
    return len(buffer) // CHANNELS


def color_at(buffer: np.ndarray, pixel_index: int) -> Color:
    i = pixel_index * CHANNELS
    return Color(int(buffer[i]), int(buffer[i + 1]), int(buffer[i + 2]))


def set_color_at(buffer: np.ndarray, pixel_index: int, color) -> None:
    """Write the colour channels of one pixel in place; alpha is always set opaque."""
    c = color if isinstance(color, Color) else Color.clamped(*color)
    i = pixel_index * CHANNELS
    buffer[i:i + 3] = (c.red, c.green, c.blue)
    buffer[i + 3] = 255


def colors_of(buffer: np.ndarray) -> np.ndarray:
    """(N, 3) float64 view of the colour channels, alpha dropped."""
    return buffer.reshape(-1, CHANNELS)[:, :3].astype(np.float64)


def write_colors(colors: np.ndarray, length: int) -> np.ndarray:
    """Build a fresh opaque buffer of `length` bytes from (N, 3) colours."""
    out = np.empty((length // CHANNELS, CHANNELS), dtype=np.uint8)
    colors = np.asarray(colors)
    if colors.dtype != np.uint8:
        colors = np.clip(np.rint(colors), 0, 255).astype(np.uint8)
    out[:, :3] = colors
    out[:, 3] = 255
    return out.reshape(-1)


def to_grayscale(buffer: np.ndarray) -> np.ndarray:
    """
    Replace red, green and blue of every pixel by its luma (0.2126r + 0.7152g + 0.0722b).

    Luma is rounded half-to-even and clamped like a byte store; alpha is preserved.
    """
    pixels = buffer.reshape(-1, CHANNELS)
    luma = pixels[:, :3].astype(np.float64) @ LUMA_WEIGHTS
    gray = pixels.copy()
    gray[:, :3] = np.clip(np.rint(luma), 0, 255).astype(np.uint8)[:, None]
    return gray.reshape(-1)
