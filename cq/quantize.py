from typing import Optional, Union

import numpy as np

from cq import pixels
from cq.core_types import Mode, QuantizeRequest, QuantizeResult, RecolorRequest
from cq.errors import InvalidConfigError
from cq.kmeans import RandomSource, cluster
from cq.palette_tools import recolor, validate_palette
from cq.settings import ClusterOptions


def _validate_k(k) -> int:
    if isinstance(k, bool) or not isinstance(k, (int, np.integer)):
        raise InvalidConfigError(f"k must be an integer, got {k!r}")
    if k < 1:
        raise InvalidConfigError(f"k must be >= 1, got {k}")
    return int(k)


def compute(
    buffer,
    config: Union[QuantizeRequest, RecolorRequest],
    rng: Optional[RandomSource] = None,
    options: Optional[ClusterOptions] = None,
) -> QuantizeResult:
    """
    Quantize a pixel buffer to a derived palette, or remap it onto a fixed one.

    The request variant decides the mode:
      - RecolorRequest: every pixel takes its nearest colour from the given palette,
        which is returned unchanged (after validation).
      - QuantizeRequest: the buffer (optionally converted to grayscale first) is
        clustered into k colours and each pixel takes its cluster's centroid.

    All validation happens before any clustering; the input buffer is never modified.

    Args:
        buffer: Flat RGBA pixel buffer (bytes-like or uint8 numpy array).
        config: QuantizeRequest or RecolorRequest.
        rng: Random source for centroid initialisation (quantize mode only).
        options (ClusterOptions, optional): k-means iteration cap, epsilon, stability test.

    Returns:
        QuantizeResult: the recoloured buffer (alpha 255) and the palette.

    Raises:
        InvalidConfigError: unknown request type or bad k.
        InvalidPaletteError: empty palette or invalid palette entry.
        InvalidBufferError: malformed buffer, or no pixels to quantize.
    """
    mode = getattr(config, "mode", None)

    if mode is Mode.RECOLOR:
        palette = validate_palette(config.palette)
        data = pixels.as_pixel_buffer(buffer)
        return QuantizeResult(buffer=recolor(data, palette), palette=palette)

    if mode is Mode.QUANTIZE:
        k = _validate_k(config.k)
        data = pixels.as_pixel_buffer(buffer)
        if config.grayscale:
            data = pixels.to_grayscale(data)
        clusters = cluster(data, k, rng=rng, options=options)
        new_buffer = recolor(data, clusters.palette, clusters.assignment)
        return QuantizeResult(buffer=new_buffer, palette=clusters.palette)

    raise InvalidConfigError(f"unsupported request type: {type(config).__name__}")
