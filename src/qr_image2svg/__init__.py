"""
QR Image to SVG
===============

Converts a rasterized photo of a printed QR-style grid into a vector tile
matrix and SVG.

This package samples a discrete grid of color values from an image,
classifies each tile as filled or blank by a threshold rule, and can
estimate the grid size from the finder pattern when it is not known.

Key Features:
- Pixels-per-tile geometry with automatic rescaling to whole-pixel tiles
- Midpoint sampling under gray, RGB and CMYK color models (numba-parallel)
- Finder pattern / timing line heuristic for tiles-per-axis detection
- Swappable pixel sources: Pillow in-process or ImageMagick subprocess
- SVG export with one rect per filled tile

Example Usage:
    from qr_image2svg import QRConverter

    converter = QRConverter(steps="auto")
    converter.load_image("photo.png")
    converter.convert()
    converter.export_svg("output.svg")

For debug logging:

    import logging
    from qr_image2svg.logging_config import setup_logging
    setup_logging(logging.DEBUG)
"""

import logging

__version__ = "1.0.0"
__author__ = "QR Image2SVG Team"

# Silent unless the application configures logging
logging.getLogger(__name__).addHandler(logging.NullHandler())

from .config import ColorModel, GridConfig
from .errors import (
    QRImageError,
    UnreadableImageError,
    RescaleFailedError,
    CropFailedError,
    UnsupportedFormatError,
    PixelQueryError,
    MarkerNotFoundError,
)
from .geometry import GridPoint, TileDescriptor, derive_geometry, generate_tiles
from .sampler import SampledTile, ThresholdSampler, TileMatrix
from .markers import (
    MarkerEstimate,
    suggest_tiles_quantity,
    columns_to_version,
    steps_for_version,
    nearest_valid_steps,
)
from .sources import ImageHandle, PixelSource, PillowSource, ImageMagickSource, create_source
from .exporters import SVGExporter
from .converter import QRConverter, BatchProcessor

__all__ = [
    "QRConverter",
    "BatchProcessor",
    "ColorModel",
    "GridConfig",
    "GridPoint",
    "TileDescriptor",
    "derive_geometry",
    "generate_tiles",
    "SampledTile",
    "ThresholdSampler",
    "TileMatrix",
    "MarkerEstimate",
    "suggest_tiles_quantity",
    "columns_to_version",
    "steps_for_version",
    "nearest_valid_steps",
    "ImageHandle",
    "PixelSource",
    "PillowSource",
    "ImageMagickSource",
    "create_source",
    "SVGExporter",
    "QRImageError",
    "UnreadableImageError",
    "RescaleFailedError",
    "CropFailedError",
    "UnsupportedFormatError",
    "PixelQueryError",
    "MarkerNotFoundError",
]
