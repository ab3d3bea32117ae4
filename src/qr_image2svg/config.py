"""
Conversion Parameters

Holds the immutable parameter set of one conversion request:
- Tiles per axis (steps), bounded by the smallest and largest QR symbol
- Threshold level separating filled from blank tiles
- Optional color model override (otherwise reported by the pixel source)
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

MIN_STEPS = 21            # version 1
MAX_STEPS = 177           # version 40
MIN_PIXELS_PER_TILE = 10
DEFAULT_THRESHOLD = 127


class ColorModel(Enum):
    """Channel layout a pixel source reports colors in."""
    GRAY = "gray"    # single intensity 0-255
    RGB = "rgb"      # red, green, blue 0-255
    CMYK = "cmyk"    # cyan, magenta, yellow, black as percentages 0-100


def is_valid_steps(steps) -> bool:
    """Steps must be an integer no smaller than the version 1 symbol."""
    return isinstance(steps, int) and not isinstance(steps, bool) and steps >= MIN_STEPS


def is_valid_threshold(value) -> bool:
    """Threshold must be an integer in 0-255."""
    return (
        isinstance(value, int)
        and not isinstance(value, bool)
        and 0 <= value <= 255
    )


@dataclass(frozen=True)
class GridConfig:
    """
    Parameters of a single conversion run.

    Attributes:
        steps: Tiles per axis (>= 21)
        threshold: Tiles scoring at or below this value are filled (0-255)
        color_model: Forced color model, or None to use the source's report
    """

    steps: int = MIN_STEPS
    threshold: int = DEFAULT_THRESHOLD
    color_model: Optional[ColorModel] = None

    def __post_init__(self):
        if not is_valid_steps(self.steps):
            raise ValueError(f"steps must be an integer >= {MIN_STEPS}, got {self.steps!r}")
        if not is_valid_threshold(self.threshold):
            raise ValueError(f"threshold must be an integer in 0-255, got {self.threshold!r}")

    def with_steps(self, steps: int) -> "GridConfig":
        return replace(self, steps=steps)

    def with_threshold(self, threshold: int) -> "GridConfig":
        return replace(self, threshold=threshold)

    def with_color_model(self, color_model: Optional[ColorModel]) -> "GridConfig":
        return replace(self, color_model=color_model)
