"""
Value types shared by the engine: colours, the two request variants and results.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, NamedTuple, Sequence

import numpy as np


class Color(NamedTuple):
    red: int
    green: int
    blue: int

    @classmethod
    def clamped(cls, red: float, green: float, blue: float) -> "Color":
        """Round each channel half-to-even and clamp it to [0, 255]."""
        return cls(*(int(min(255, max(0, round(float(c))))) for c in (red, green, blue)))

    @classmethod
    def from_hex(cls, hex_str: str) -> "Color":
        """Parse '#rgb' / '#rrggbb' (leading '#' optional)."""
        s = hex_str.strip().lower().lstrip("#")
        if len(s) == 3:
            s = "".join(ch * 2 for ch in s)
        if len(s) != 6:
            raise ValueError(f"hex colour must be 'rrggbb' or 'rgb', got {hex_str!r}")
        return cls(int(s[0:2], 16), int(s[2:4], 16), int(s[4:6], 16))

    @property
    def hex(self) -> str:
        return f"#{self.red:02x}{self.green:02x}{self.blue:02x}"


Palette = List[Color]


class Mode(Enum):
    QUANTIZE = "quantize"
    RECOLOR = "recolor"


@dataclass(frozen=True)
class QuantizeRequest:
    """Derive a k-colour palette by clustering, optionally on a grayscale copy."""

    k: int
    grayscale: bool = False
    mode: Mode = field(default=Mode.QUANTIZE, init=False)


@dataclass(frozen=True)
class RecolorRequest:
    """Map every pixel onto the nearest entry of a caller-supplied palette."""

    palette: Sequence
    mode: Mode = field(default=Mode.RECOLOR, init=False)


@dataclass
class ClusterResult:
    palette: Palette
    assignment: np.ndarray  # (N,) int64, index into palette
    centroids: np.ndarray  # (k, 3) float64, unrounded means
    iterations: int
    converged: bool


@dataclass
class QuantizeResult:
    buffer: np.ndarray  # flat uint8 RGBA, alpha 255
    palette: Palette
