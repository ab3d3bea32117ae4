"""
Grid Geometry Module

Maps a square grid of tiles onto image pixels:
- Derives the tile edge length in pixels from the image width
- Decides whether the image has to be rescaled so tiles land on whole pixels
- Generates per-tile descriptors (render coordinate + sampling midpoint)
- Finds the bounding box of non-background content (quiet zone removal)

Tile ordering is row-major (y outer, x inner); it is the order in which
filled tiles are emitted, so callers may rely on it.
"""

from typing import List, NamedTuple, Optional, Tuple
import logging
import numpy as np
from scipy import ndimage

from .config import MIN_PIXELS_PER_TILE

logger = logging.getLogger(__name__)


class GridPoint(NamedTuple):
    """Integer (x, y) coordinate."""
    x: int
    y: int


class TileDescriptor(NamedTuple):
    """
    A single tile of the grid.

    Attributes:
        render_at: Tile coordinate in the output grid (0-based)
        sample_at: Pixel coordinate of the tile's geometric center
    """
    render_at: GridPoint
    sample_at: GridPoint


class Geometry(NamedTuple):
    """Result of derive_geometry()."""
    pixels_per_tile: int
    rescale_needed: bool
    steps: int

    @property
    def target_size(self) -> int:
        """Edge length in pixels the working image must have."""
        return self.steps * self.pixels_per_tile


def derive_geometry(width: int, steps: int) -> Geometry:
    """
    Compute pixels per tile for an image of the given width.

    Non-integer tile sizes are rounded half to even; anything below
    MIN_PIXELS_PER_TILE is raised to it. Whenever the final value differs
    from the exact width / steps ratio the image must be rescaled to
    steps * pixels_per_tile on both axes before sampling.

    Args:
        width: Current image width in pixels
        steps: Tiles per axis

    Returns:
        Geometry(pixels_per_tile, rescale_needed, steps)
    """
    if steps <= 0:
        raise ValueError(f"steps must be positive, got {steps}")

    per_tile = width / steps
    if per_tile.is_integer():
        pixels_per_tile = int(per_tile)
    else:
        # round() is banker's rounding
        pixels_per_tile = int(round(per_tile))

    pixels_per_tile = max(pixels_per_tile, MIN_PIXELS_PER_TILE)
    rescale_needed = per_tile != pixels_per_tile

    logger.debug(
        "Geometry: width=%d steps=%d per_tile=%.3f -> %d px/tile (rescale=%s)",
        width, steps, per_tile, pixels_per_tile, rescale_needed
    )
    return Geometry(pixels_per_tile, rescale_needed, steps)


def generate_tiles(steps: int, pixels_per_tile: int) -> List[TileDescriptor]:
    """
    Generate steps * steps tile descriptors in row-major order.

    Args:
        steps: Tiles per axis
        pixels_per_tile: Tile edge length in pixels

    Returns:
        List of TileDescriptor, y outer loop, x inner loop
    """
    half = pixels_per_tile // 2
    tiles = []
    for y in range(steps):
        for x in range(steps):
            tiles.append(TileDescriptor(
                render_at=GridPoint(x, y),
                sample_at=GridPoint(x * pixels_per_tile + half, y * pixels_per_tile + half)
            ))
    return tiles


def content_bounds(
    gray: np.ndarray,
    threshold: int = 127
) -> Optional[Tuple[int, int, int, int]]:
    """
    Find the tight bounding box of dark content.

    Pixels with intensity <= threshold count as content; everything else
    is treated as background (quiet zone).

    Args:
        gray: Grayscale image of shape (H, W)
        threshold: Binarization level

    Returns:
        (x, y, width, height) or None if the image has no dark pixel
    """
    mask = (gray <= threshold).astype(np.int32)
    objects = ndimage.find_objects(mask)
    if not objects or objects[0] is None:
        return None

    rows, cols = objects[0]
    return (cols.start, rows.start, cols.stop - cols.start, rows.stop - rows.start)
