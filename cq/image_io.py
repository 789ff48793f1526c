import json
import re
from pathlib import Path
from typing import Dict, Optional, Sequence, Tuple

import numpy as np
from PIL import Image, PngImagePlugin

from cq import pixels
from cq.errors import InvalidBufferError

METADATA_PREFIX = "cq:"


def load_image_buffer(input_path) -> Tuple[np.ndarray, Tuple[int, int]]:
    """
    Decode an image file into a flat RGBA buffer.

    Returns:
        Tuple[np.ndarray, Tuple[int, int]]: the buffer and the (width, height) of the image.
    """
    with Image.open(input_path) as image:
        rgba = image.convert("RGBA")
        size = rgba.size
        buffer = np.asarray(rgba, dtype=np.uint8).reshape(-1)
    return buffer.copy(), size


def buffer_to_image(buffer, size: Tuple[int, int]) -> Image.Image:
    """Wrap a flat RGBA buffer back into a Pillow image of the given (width, height)."""
    data = pixels.as_pixel_buffer(buffer)
    width, height = size
    if pixels.pixel_count(data) != width * height:
        raise InvalidBufferError(
            f"buffer holds {pixels.pixel_count(data)} pixels, expected {width}x{height}"
        )
    return Image.fromarray(data.reshape(height, width, pixels.CHANNELS), "RGBA")


def _clean_key(key: str) -> str:
    key_clean = re.sub(r'\s+', '_', key)
    key_clean = re.sub(r'[^a-zA-Z0-9_.-]', '', key_clean)
    if not re.match(r'^[a-zA-Z_]', key_clean):  # Must start with letter or underscore
        key_clean = "cq_" + key_clean
    # PNG tEXt keywords are limited to 79 bytes; leave room for the prefix
    return key_clean[:70]


def save_png(
    image_to_save: Image.Image,
    output_path: Path,
    palette: Optional[Sequence[Sequence[int]]] = None,
    command_line_invocation: Optional[str] = None,
    additional_metadata: Optional[Dict[str, str]] = None,
) -> Path:
    """
    Save a PIL Image as PNG, embedding the palette and run details as tEXt chunks.

    Returns:
        Path: where the file was written.
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    png_info = PngImagePlugin.PngInfo()
    png_info.add_text("Software", "colorquant")
    if command_line_invocation:
        png_info.add_text(f"{METADATA_PREFIX}command_line", command_line_invocation)
    if palette is not None:
        png_info.add_text(f"{METADATA_PREFIX}palette", json.dumps([[int(c) for c in color] for color in palette]))
    if additional_metadata:
        for key, value in additional_metadata.items():
            png_info.add_text(f"{METADATA_PREFIX}{_clean_key(key)}", str(value))

    image_to_save.save(output_path, "PNG", pnginfo=png_info)
    return output_path


def read_metadata(input_path) -> Dict[str, str]:
    """Return the cq: tEXt entries of a PNG, prefix stripped."""
    with Image.open(input_path) as image:
        return {
            key[len(METADATA_PREFIX):]: value
            for key, value in image.info.items()
            if isinstance(key, str) and key.startswith(METADATA_PREFIX)
        }
