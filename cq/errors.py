class ColorQuantError(ValueError):
    """Base class for every failure raised by the quantization engine."""


class InvalidConfigError(ColorQuantError):
    """Quantize request with a missing, non-integer or non-positive k, or bad engine options."""


class InvalidPaletteError(ColorQuantError):
    """Recolor request whose palette is empty or has a missing/invalid channel."""


class InvalidBufferError(ColorQuantError):
    """Pixel buffer whose length is not a multiple of 4 (or is empty where pixels are required)."""


class MalformedRequestError(ColorQuantError):
    """Message payload missing its buffer or config, or carrying an unusable one."""
