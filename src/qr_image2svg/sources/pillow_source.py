"""
In-process pixel source backed by Pillow.

Images are decoded once and kept in memory; every resize or crop produces
a new PIL image wrapped in a new ImageHandle. Transparent regions are
flattened onto white on load so that a transparent quiet zone reads as
background rather than as black ink. 16-bit grayscale is scaled down to
8-bit so it samples like any other gray image.
"""

from pathlib import Path
from typing import Optional, Sequence, Tuple, Union
import logging
import numpy as np
from PIL import Image, UnidentifiedImageError

from ..config import ColorModel
from ..errors import (
    CropFailedError,
    RescaleFailedError,
    UnreadableImageError,
    UnsupportedFormatError,
)
from .base import ImageHandle, is_supported_image

logger = logging.getLogger(__name__)

_MODE_TO_MODEL = {
    "L": ColorModel.GRAY,
    "RGB": ColorModel.RGB,
    "CMYK": ColorModel.CMYK,
}

# 16-bit PNGs open as I;16 (or I on older Pillow)
_WIDE_GRAY_MODES = ("I", "I;16", "I;16L", "I;16B", "I;16N", "F")

# Pillow stores CMYK ink as 0-255, the contract reports percentages
_CMYK_TO_PERCENT = 100.0 / 255.0


def _to_8bit_gray(img: Image.Image) -> Image.Image:
    """Scale 16-bit / 32-bit / float grayscale down to mode L."""
    values = np.asarray(img, dtype=np.float64)
    if img.mode.startswith("I;16") or values.max(initial=0) > 255:
        values = values / 257.0
    return Image.fromarray(np.clip(np.rint(values), 0, 255).astype(np.uint8))


def _flatten(img: Image.Image) -> Image.Image:
    """Normalize palette, bilevel, wide gray and alpha modes to L / RGB."""
    if img.mode == "1":
        return img.convert("L")

    if img.mode in _WIDE_GRAY_MODES:
        return _to_8bit_gray(img)

    if img.mode == "P":
        img = img.convert("RGBA" if "transparency" in img.info else "RGB")
    elif img.mode == "PA":
        img = img.convert("RGBA")

    if img.mode in ("RGBA", "LA"):
        rgba = img.convert("RGBA")
        background = Image.new("RGBA", rgba.size, (255, 255, 255, 255))
        flat = Image.alpha_composite(background, rgba)
        return flat.convert("L" if img.mode == "LA" else "RGB")

    return img


class PillowSource:
    """
    Pixel source operating on in-memory PIL images.

    Example:
        source = PillowSource()
        handle = source.open("photo.png")
        values = source.colors_at(handle, [(5, 5), (15, 5)])
    """

    name = "pillow"

    def __init__(self, resample: "Image.Resampling" = Image.Resampling.BILINEAR):
        """
        Initialize the source.

        Args:
            resample: Filter used when rescaling the working image
        """
        self.resample = resample

    def open(self, path: Union[str, Path]) -> ImageHandle:
        """
        Decode an image file.

        Raises:
            UnreadableImageError: Missing file, unsupported type or decode failure
        """
        path = Path(path)
        if not path.is_file():
            raise UnreadableImageError(f"Image not found: {path}")
        if not is_supported_image(path):
            raise UnreadableImageError(f"Unsupported image type: {path}")

        try:
            with Image.open(path) as img:
                img.load()
                flat = _flatten(img)
                if flat is img:
                    flat = img.copy()
        except (UnidentifiedImageError, OSError) as e:
            raise UnreadableImageError(f"Cannot decode {path}: {e}") from e

        logger.debug("Opened %s (%dx%d, mode %s)", path, flat.width, flat.height, flat.mode)
        return ImageHandle(flat.width, flat.height, flat, path)

    def open_array(self, array: np.ndarray) -> ImageHandle:
        """
        Wrap a numpy array as a working image.

        Args:
            array: uint8 array of shape (H, W), (H, W, 3) or (H, W, 4)
        """
        if array.ndim not in (2, 3) or (array.ndim == 3 and array.shape[2] not in (3, 4)):
            raise ValueError("Array must have shape (H, W), (H, W, 3) or (H, W, 4)")

        img = _flatten(Image.fromarray(np.ascontiguousarray(array, dtype=np.uint8)))
        return ImageHandle(img.width, img.height, img, None)

    def size(self, handle: ImageHandle) -> Tuple[int, int]:
        return handle.ref.size

    def color_model(self, handle: ImageHandle) -> Optional[ColorModel]:
        return _MODE_TO_MODEL.get(handle.ref.mode)

    def color_at(self, handle: ImageHandle, x: int, y: int) -> Tuple[float, ...]:
        value = handle.ref.getpixel((x, y))
        if not isinstance(value, tuple):
            value = (value,)
        if handle.ref.mode == "CMYK":
            return tuple(v * _CMYK_TO_PERCENT for v in value)
        return tuple(float(v) for v in value)

    def colors_at(self, handle: ImageHandle, points: Sequence[Tuple[int, int]]) -> np.ndarray:
        """
        Look up many pixels at once.

        Returns:
            float64 array of shape (N, channels), row i for points[i]
        """
        pixels = np.asarray(handle.ref)
        coords = np.asarray(points, dtype=np.intp).reshape(-1, 2)

        values = pixels[coords[:, 1], coords[:, 0]].astype(np.float64)
        if values.ndim == 1:
            values = values[:, None]
        if handle.ref.mode == "CMYK":
            values *= _CMYK_TO_PERCENT
        return values

    def grayscale(self, handle: ImageHandle) -> np.ndarray:
        return np.array(handle.ref.convert("L"), dtype=np.uint8)

    def resize(self, handle: ImageHandle, width: int, height: int) -> ImageHandle:
        try:
            img = handle.ref.resize((width, height), self.resample)
        except (ValueError, OSError) as e:
            raise RescaleFailedError(f"Cannot resize to {width}x{height}: {e}") from e

        logger.debug("Rescaled %dx%d -> %dx%d", handle.width, handle.height, width, height)
        return ImageHandle(img.width, img.height, img, handle.path)

    def crop(self, handle: ImageHandle, x: int, y: int, width: int, height: int) -> ImageHandle:
        try:
            img = handle.ref.crop((x, y, x + width, y + height))
        except (ValueError, OSError) as e:
            raise CropFailedError(f"Cannot crop to {width}x{height}+{x}+{y}: {e}") from e
        return ImageHandle(img.width, img.height, img, handle.path)

    def save(self, handle: ImageHandle, path: Union[str, Path]) -> None:
        """
        Write the working image.

        Raises:
            UnsupportedFormatError: Unknown extension or mode not storable in it
        """
        path = Path(path)
        if path.suffix.lower() not in Image.registered_extensions():
            raise UnsupportedFormatError(f"Unsupported output format: {path.suffix or path}")

        try:
            handle.ref.save(path)
        except (KeyError, ValueError, OSError) as e:
            raise UnsupportedFormatError(f"Cannot save {path}: {e}") from e
