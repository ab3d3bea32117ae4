"""
Marker Detection Module

Estimates the number of tiles per axis from raw pixels, with no prior
knowledge of the grid size. It relies on two structural features of QR
symbols:
- A 7x7-module finder pattern sits in the top-left corner
- A timing line of alternating modules runs along the finder's bottom
  band towards the top-right finder pattern

Procedure:
1. Binarize (intensity <= 127 is ink) and crop to the content bounds
2. Scan rows top-down for the first row whose run of ink ends at a
   plausible finder width; that x is the finder edge length
3. Probe the row through the middle of the finder's bottom band and count
   color transitions up to the far edge
4. Tiles per axis = transitions + 14 (two 7-module finders), accepted only
   if the module size implied by it agrees with finder edge / 7

A "not found" result is an ordinary outcome for non-QR or poor-quality
images and is returned, not raised.

Version helpers relate tiles per axis to QR versions:
    tiles_per_axis = 4 * version + 17
"""

from typing import NamedTuple, Optional
import logging
import math
import numpy as np
from numba import njit

from .config import MAX_STEPS, MIN_STEPS, DEFAULT_THRESHOLD
from .geometry import content_bounds
from .sources.base import ImageHandle, PixelSource

logger = logging.getLogger(__name__)

MARKER_MODULES = 7
MIN_VERSION = 1
MAX_VERSION = 40


class MarkerEstimate(NamedTuple):
    """
    Result of suggest_tiles_quantity().

    Attributes:
        steps: Estimated tiles per axis, or None if not found
        marker_length: Finder pattern edge length in pixels (0 if not reached)
        interruptions: Timing line transitions counted (0 if not reached)
        reason: Why estimation failed, empty on success
    """
    steps: Optional[int]
    marker_length: int = 0
    interruptions: int = 0
    reason: str = ""

    @property
    def found(self) -> bool:
        return self.steps is not None

    @property
    def version(self) -> Optional[int]:
        if self.steps is None:
            return None
        return columns_to_version(self.steps)


@njit(cache=True)
def _find_marker_edge(black: np.ndarray, max_marker_length: int, min_edge: int, row_limit: int):
    """
    Find the first row crossing the top-left finder pattern.

    A row qualifies at the first ink-to-background change at x >= min_edge
    where the background seen so far does not outweigh the ink.

    Returns:
        (row, edge_x), or (-1, -1) if no row qualifies
    """
    height, width = black.shape
    last_x = min(max_marker_length, width - 1)
    rows = min(row_limit, height)

    for y in range(rows):
        started = False
        blacks = 0
        whites = 0
        previous_black = False
        for x in range(last_x + 1):
            if black[y, x]:
                started = True
                blacks += 1
                previous_black = True
            else:
                if started:
                    if previous_black and x >= min_edge and whites <= blacks:
                        return y, x
                    whites += 1
                previous_black = False

    return -1, -1


@njit(cache=True)
def _count_interruptions(row: np.ndarray, start: int, stop: int) -> int:
    """
    Count color transitions along a timing line probe.

    Probing starts inside the finder's bottom band, so the first change
    (finder to separator) is not counted. A trailing background run at the
    far edge is discounted once.
    """
    interruptions = 0
    previous = True
    boundary_seen = False

    for x in range(start, stop):
        value = row[x]
        if value != previous:
            if boundary_seen:
                interruptions += 1
            else:
                boundary_seen = True
            previous = value

    if stop > start and not row[stop - 1] and interruptions > 0:
        interruptions -= 1

    return interruptions


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def estimate_tiles(gray: np.ndarray, threshold: int = DEFAULT_THRESHOLD) -> MarkerEstimate:
    """
    Estimate tiles per axis from a grayscale image array.

    The array is only read; binarization and cropping work on copies.

    Args:
        gray: uint8 array of shape (H, W)
        threshold: Binarization level, intensities <= threshold are ink

    Returns:
        MarkerEstimate
    """
    bounds = content_bounds(gray, threshold)
    if bounds is None:
        return MarkerEstimate(None, reason="no content")

    left, top, width, height = bounds
    black = np.ascontiguousarray(gray[top:top + height, left:left + width] <= threshold)

    dims = sorted((width, height))
    if dims[0] == 0:
        return MarkerEstimate(None, reason="empty content")

    minimal_tile = dims[0] // MAX_STEPS
    max_tile_length = math.ceil(dims[0] / 20)
    max_marker_length = max_tile_length * MARKER_MODULES + 1

    row, edge = _find_marker_edge(black, max_marker_length, minimal_tile * MARKER_MODULES, dims[0])
    if row < 0:
        return MarkerEstimate(None, reason="no finder pattern edge")

    probe_row = row + math.ceil(edge - (edge / MARKER_MODULES) / 2)
    if probe_row >= height:
        return MarkerEstimate(None, marker_length=edge, reason="timing line outside image")

    interruptions = _count_interruptions(black[probe_row], edge, min(dims[0], width))
    modules = interruptions + 2 * MARKER_MODULES

    module_from_timing = _round_half_up(dims[0] / modules)
    module_from_marker = _round_half_up(edge / MARKER_MODULES)
    logger.debug(
        "Marker edge %dpx at row %d, %d interruptions on row %d, module %d vs %d",
        edge, row, interruptions, probe_row, module_from_timing, module_from_marker
    )
    if module_from_timing != module_from_marker:
        return MarkerEstimate(
            None, marker_length=edge, interruptions=interruptions,
            reason="module size mismatch"
        )

    steps = min(max(modules, MIN_STEPS), MAX_STEPS)
    return MarkerEstimate(steps, marker_length=edge, interruptions=interruptions)


def suggest_tiles_quantity(
    source: PixelSource,
    handle: ImageHandle,
    threshold: int = DEFAULT_THRESHOLD
) -> MarkerEstimate:
    """
    Estimate tiles per axis of the image behind a pixel source handle.

    The working image is left untouched.

    Args:
        source: Pixel source holding the image
        handle: Image to inspect
        threshold: Binarization level

    Returns:
        MarkerEstimate; check .found before using .steps
    """
    estimate = estimate_tiles(source.grayscale(handle), threshold)
    if estimate.found:
        logger.info("Estimated %d tiles per axis (version %s)", estimate.steps, estimate.version)
    else:
        logger.info("No tile count estimate: %s", estimate.reason)
    return estimate


def columns_to_version(columns: int) -> Optional[int]:
    """
    QR version for a tiles-per-axis count.

    Returns:
        Version 1-40, or None when columns is not 4 * version + 17
    """
    version, remainder = divmod(columns - 17, 4)
    if remainder != 0 or not MIN_VERSION <= version <= MAX_VERSION:
        return None
    return version


def steps_for_version(version: int) -> int:
    """Tiles per axis of a QR version."""
    if not MIN_VERSION <= version <= MAX_VERSION:
        raise ValueError(f"QR version must be in {MIN_VERSION}-{MAX_VERSION}, got {version}")
    return 4 * version + 17


def nearest_valid_steps(columns: float) -> int:
    """
    Snap a measured column count down to the closest valid QR size.

    (floor((x - 17) / 4) * 4) + 17
    """
    return int(math.floor((columns - 17) / 4) * 4 + 17)
