"""
Pixel Source Contract

A pixel source opens an image and answers color queries about it. The
conversion core only talks to this interface, so backends can be swapped
at construction time:
- PillowSource: in-process bitmap backend
- ImageMagickSource: subprocess backend around the `magick` binary

Channel conventions returned by color queries:
- GRAY: one intensity value 0-255
- RGB: red, green, blue 0-255
- CMYK: cyan, magenta, yellow, black as percentages 0-100
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Protocol, Sequence, Tuple, Union
import numpy as np
from PIL import Image, UnidentifiedImageError

from ..config import ColorModel

SUPPORTED_MIME_TYPES = (
    "image/gif",
    "image/jpeg",
    "image/jp2",
    "image/png",
    "image/bmp",
    "image/webp",
    "image/tiff",
)


@dataclass(frozen=True)
class ImageHandle:
    """
    Reference to the working image of one conversion run.

    Handles are never mutated; resize() and crop() return a new handle and
    the previous one must no longer be used.

    Attributes:
        width: Image width in pixels
        height: Image height in pixels
        ref: Backend-specific image object (PIL image, file path, ...)
        path: File the image originated from, if any
    """

    width: int
    height: int
    ref: Any = field(repr=False, compare=False)
    path: Optional[Path] = None

    @property
    def size(self) -> Tuple[int, int]:
        return (self.width, self.height)


class PixelSource(Protocol):
    """Structural interface every backend satisfies."""

    name: str

    def open(self, path: Union[str, Path]) -> ImageHandle:
        ...

    def size(self, handle: ImageHandle) -> Tuple[int, int]:
        ...

    def color_model(self, handle: ImageHandle) -> Optional[ColorModel]:
        ...

    def color_at(self, handle: ImageHandle, x: int, y: int) -> Tuple[float, ...]:
        ...

    def colors_at(self, handle: ImageHandle, points: Sequence[Tuple[int, int]]) -> np.ndarray:
        ...

    def grayscale(self, handle: ImageHandle) -> np.ndarray:
        ...

    def resize(self, handle: ImageHandle, width: int, height: int) -> ImageHandle:
        ...

    def crop(self, handle: ImageHandle, x: int, y: int, width: int, height: int) -> ImageHandle:
        ...

    def save(self, handle: ImageHandle, path: Union[str, Path]) -> None:
        ...


def get_mime_type(path: Union[str, Path]) -> Optional[str]:
    """
    Sniff the MIME type of an image file from its content.

    Returns:
        MIME type string, or None if the file is missing or not an image
    """
    path = Path(path)
    if not path.is_file():
        return None
    try:
        with Image.open(path) as img:
            return img.get_format_mimetype()
    except (UnidentifiedImageError, OSError):
        return None


def is_supported_image(path: Union[str, Path]) -> bool:
    """Check whether the file is an image type the converter accepts."""
    mime = get_mime_type(path)
    return mime is not None and mime.strip() in SUPPORTED_MIME_TYPES
