"""
Threshold Sampler Module

Classifies each grid tile as filled or blank:
1. Read the color at the tile's midpoint from the pixel source
2. Reduce the channels to one darkness score under the active color model
3. Mark the tile filled when score <= threshold (dark = ink)

Score reduction per color model:
- GRAY: the intensity itself
- RGB:  mean of the three channels
- CMYK: converted to RGB first (r = 255 * (1 - c/100) * (1 - k/100), ...),
        then averaged

Scores are rounded to one decimal, half away from zero. Tiles are
independent of each other, so scoring runs as a parallel numba loop.
"""

from dataclasses import dataclass, field
from typing import Iterator, List, NamedTuple, Optional, Sequence, Tuple
import logging
import math
import numpy as np
from numba import njit, prange

from .config import ColorModel, DEFAULT_THRESHOLD
from .geometry import GridPoint, TileDescriptor
from .sources.base import ImageHandle, PixelSource

logger = logging.getLogger(__name__)

# Never <= any threshold in 0-255, so tiles scored with it stay blank
UNSUPPORTED_SCORE = float("inf")

_REQUIRED_CHANNELS = {
    ColorModel.GRAY: 1,
    ColorModel.RGB: 3,
    ColorModel.CMYK: 4,
}


@njit(cache=True)
def _round1(value: float) -> float:
    """Round a non-negative value to one decimal, half away from zero."""
    return np.floor(value * 10.0 + 0.5) / 10.0


@njit(cache=True, parallel=True)
def gray_scores(values: np.ndarray) -> np.ndarray:
    """
    Score grayscale readings.

    Args:
        values: Array of shape (N, >=1) with intensities 0-255

    Returns:
        float64 array of shape (N,)
    """
    n = values.shape[0]
    result = np.empty(n, dtype=np.float64)
    for i in prange(n):
        result[i] = _round1(values[i, 0])
    return result


@njit(cache=True, parallel=True)
def rgb_scores(values: np.ndarray) -> np.ndarray:
    """
    Score RGB readings as the channel mean.

    Args:
        values: Array of shape (N, >=3) with RGB values 0-255

    Returns:
        float64 array of shape (N,)
    """
    n = values.shape[0]
    result = np.empty(n, dtype=np.float64)
    for i in prange(n):
        result[i] = _round1((values[i, 0] + values[i, 1] + values[i, 2]) / 3.0)
    return result


@njit(cache=True, parallel=True)
def cmyk_scores(values: np.ndarray) -> np.ndarray:
    """
    Score CMYK readings via their RGB equivalent.

    Args:
        values: Array of shape (N, >=4) with C, M, Y, K percentages 0-100

    Returns:
        float64 array of shape (N,)
    """
    n = values.shape[0]
    result = np.empty(n, dtype=np.float64)
    for i in prange(n):
        black = 1.0 - values[i, 3] / 100.0
        r = 255.0 * (1.0 - values[i, 0] / 100.0) * black
        g = 255.0 * (1.0 - values[i, 1] / 100.0) * black
        b = 255.0 * (1.0 - values[i, 2] / 100.0) * black
        result[i] = _round1((r + g + b) / 3.0)
    return result


_SCORERS = {
    ColorModel.GRAY: gray_scores,
    ColorModel.RGB: rgb_scores,
    ColorModel.CMYK: cmyk_scores,
}


class SampledTile(NamedTuple):
    """A tile together with its reading and classification."""
    descriptor: TileDescriptor
    values: Tuple[float, ...]
    score: float
    filled: bool


@dataclass
class TileMatrix:
    """
    Filled tiles of a grid, in row-major scan order.

    Only filled tiles are stored; every coordinate appears at most once.
    """

    steps: int
    tiles: List[GridPoint] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.tiles)

    def __iter__(self) -> Iterator[GridPoint]:
        return iter(self.tiles)

    def __contains__(self, point) -> bool:
        return tuple(point) in set(self.tiles)

    def append(self, point: GridPoint):
        self.tiles.append(point)

    def to_mask(self) -> np.ndarray:
        """Dense boolean (steps, steps) mask indexed [y, x]."""
        mask = np.zeros((self.steps, self.steps), dtype=bool)
        for x, y in self.tiles:
            mask[y, x] = True
        return mask


def compute_scores(values: np.ndarray, model: Optional[ColorModel]) -> np.ndarray:
    """
    Reduce channel readings to darkness scores.

    Unknown models, or readings with too few channels for the model, score
    every tile with UNSUPPORTED_SCORE.

    Args:
        values: Array of shape (N, channels)
        model: Color model the channels are expressed in

    Returns:
        float64 array of shape (N,)
    """
    n = values.shape[0]
    if model is None:
        return np.full(n, UNSUPPORTED_SCORE)

    channels = values.shape[1] if values.ndim == 2 else 0
    if channels < _REQUIRED_CHANNELS[model]:
        logger.warning(
            "Readings have %d channel(s), %s needs %d; treating tiles as blank",
            channels, model.value, _REQUIRED_CHANNELS[model]
        )
        return np.full(n, UNSUPPORTED_SCORE)

    if n == 0:
        return np.empty(0, dtype=np.float64)
    return _SCORERS[model](np.ascontiguousarray(values, dtype=np.float64))


class ThresholdSampler:
    """
    Midpoint sampler turning tile descriptors into a TileMatrix.

    Example:
        sampler = ThresholdSampler(threshold=127)
        matrix = sampler.sample(tiles, source, handle)
    """

    def __init__(
        self,
        threshold: int = DEFAULT_THRESHOLD,
        color_model: Optional[ColorModel] = None
    ):
        """
        Initialize the sampler.

        Args:
            threshold: Tiles scoring at or below this are filled
            color_model: Force a color model instead of asking the source
        """
        self.threshold = threshold
        self.color_model = color_model

    def resolve_color_model(
        self,
        source: PixelSource,
        handle: ImageHandle
    ) -> Optional[ColorModel]:
        if self.color_model is not None:
            return self.color_model
        return source.color_model(handle)

    def sample_tiles(
        self,
        tiles: Sequence[TileDescriptor],
        source: PixelSource,
        handle: ImageHandle
    ) -> List[SampledTile]:
        """
        Read and classify every tile.

        Returns:
            SampledTile list in the same order as tiles
        """
        model = self.resolve_color_model(source, handle)

        if model is None:
            logger.warning(
                "Unsupported color model for %s; all %d tiles left blank",
                handle.path or "image", len(tiles)
            )
            return [
                SampledTile(tile, (), UNSUPPORTED_SCORE, False)
                for tile in tiles
            ]

        points = [tile.sample_at for tile in tiles]
        values = source.colors_at(handle, points)
        scores = compute_scores(values, model)
        filled = scores <= self.threshold

        logger.debug(
            "Sampled %d tiles as %s, %d filled at threshold %d",
            len(tiles), model.value, int(filled.sum()), self.threshold
        )
        return [
            SampledTile(tile, tuple(float(v) for v in values[i]), float(scores[i]), bool(filled[i]))
            for i, tile in enumerate(tiles)
        ]

    def sample(
        self,
        tiles: Sequence[TileDescriptor],
        source: PixelSource,
        handle: ImageHandle
    ) -> TileMatrix:
        """
        Build the matrix of filled tiles.

        Args:
            tiles: Descriptors from generate_tiles(), row-major
            source: Pixel source to read from
            handle: Working image, already at the tile geometry's size

        Returns:
            TileMatrix with the render coordinates of filled tiles
        """
        matrix = TileMatrix(steps=math.isqrt(len(tiles)))
        for sampled in self.sample_tiles(tiles, source, handle):
            if sampled.filled:
                matrix.append(sampled.descriptor.render_at)
        return matrix
