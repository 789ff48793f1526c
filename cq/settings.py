import os
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Mapping, Optional

from cq.core_types import Color
from cq.errors import InvalidConfigError

DEFAULT_MAX_ITERATIONS = 20
DEFAULT_EPSILON = 1e-4
DEFAULT_NUM_COLORS = 3


class Convergence(Enum):
    """Stability test used to stop the k-means loop."""

    CENTROID = "centroid"  # largest centroid movement between iterations
    VARIANCE = "variance"  # largest change of per-cluster member variance


@dataclass(frozen=True)
class ClusterOptions:
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    epsilon: float = DEFAULT_EPSILON
    convergence: Convergence = Convergence.CENTROID
    verbose: bool = False

    def __post_init__(self):
        if isinstance(self.max_iterations, bool) or not isinstance(self.max_iterations, int) or self.max_iterations < 1:
            raise InvalidConfigError(f"max_iterations must be a positive integer, got {self.max_iterations!r}")
        if isinstance(self.epsilon, bool) or not isinstance(self.epsilon, (int, float)) or self.epsilon != self.epsilon or self.epsilon < 0:
            raise InvalidConfigError(f"epsilon must be a non-negative number, got {self.epsilon!r}")
        if not isinstance(self.convergence, Convergence):
            raise InvalidConfigError(f"convergence must be a Convergence member, got {self.convergence!r}")


def options_from_env(environ: Optional[Mapping[str, str]] = None, **overrides) -> ClusterOptions:
    """
    Build ClusterOptions from CQ_MAX_ITERATIONS, CQ_EPSILON and CQ_CONVERGENCE.

    Keyword overrides that are not None win over the environment.
    """
    env = os.environ if environ is None else environ
    values: Dict[str, object] = {}
    try:
        if env.get("CQ_MAX_ITERATIONS"):
            values["max_iterations"] = int(env["CQ_MAX_ITERATIONS"])
        if env.get("CQ_EPSILON"):
            values["epsilon"] = float(env["CQ_EPSILON"])
        if env.get("CQ_CONVERGENCE"):
            values["convergence"] = Convergence(env["CQ_CONVERGENCE"].strip().lower())
    except ValueError as e:
        raise InvalidConfigError(f"invalid CQ_* environment setting: {e}") from e

    values.update({key: value for key, value in overrides.items() if value is not None})
    return ClusterOptions(**values)


# Named colour-count presets for the CLI.
PRESETS: Dict[str, int] = {
    "low": 4,
    "medium": 8,
    "high": 16,
}

# Named fixed palettes for retro-style recolouring.
FIXED_PALETTES: Dict[str, List[Color]] = {
    "gameboy": [
        Color(15, 56, 15), Color(48, 98, 48), Color(139, 172, 15), Color(155, 188, 15),
    ],
    "cga": [
        Color(0, 0, 0), Color(85, 255, 255), Color(255, 85, 255), Color(255, 255, 255),
    ],
    "pico8": [
        Color.from_hex(h) for h in (
            "#000000", "#1d2b53", "#7e2553", "#008751", "#ab5236", "#5f574f", "#c2c3c7", "#fff1e8",
            "#ff004d", "#ffa300", "#ffec27", "#00e436", "#29adff", "#83769c", "#ff77a8", "#ffccaa",
        )
    ],
}
