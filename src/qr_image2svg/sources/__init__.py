"""
Pixel source backends.

Available backends:
- pillow - in-process decoding with Pillow (default)
- magick - ImageMagick command-line tools driven through subprocess
"""

from .base import ImageHandle, PixelSource, SUPPORTED_MIME_TYPES, is_supported_image
from .batching import query_in_batches
from .pillow_source import PillowSource
from .magick_source import ImageMagickSource

BACKENDS = {
    PillowSource.name: PillowSource,
    ImageMagickSource.name: ImageMagickSource,
}


def create_source(name: str = "pillow", **kwargs) -> PixelSource:
    """Instantiate a backend by name."""
    try:
        backend = BACKENDS[name]
    except KeyError:
        raise ValueError(f"Unknown pixel source '{name}', choose from {sorted(BACKENDS)}")
    return backend(**kwargs)


__all__ = [
    "ImageHandle",
    "PixelSource",
    "SUPPORTED_MIME_TYPES",
    "is_supported_image",
    "query_in_batches",
    "PillowSource",
    "ImageMagickSource",
    "BACKENDS",
    "create_source",
]
