"""
Subprocess pixel source driving ImageMagick.

Every query is an `identify` or `convert` invocation. Pixel lookups are
expressed as `%[fx:...]` format escapes; to stay under command-length
limits they are sent in groups of at most `batch_size` coordinates and
reassembled positionally by query_in_batches().

Resizes and crops never touch the caller's file: results are written into
a private working directory which close() removes.
"""

from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union
import logging
import shutil
import subprocess
import tempfile
import numpy as np

from ..config import ColorModel
from ..errors import (
    CropFailedError,
    PixelQueryError,
    RescaleFailedError,
    UnreadableImageError,
    UnsupportedFormatError,
)
from .base import ImageHandle, is_supported_image
from .batching import DEFAULT_BATCH_SIZE, query_in_batches

logger = logging.getLogger(__name__)

# fx channel selectors and the factor turning their 0-1 output into contract units
_FX_CHANNELS = {
    ColorModel.GRAY: (("r",), 255),
    ColorModel.RGB: (("r", "g", "b"), 255),
    ColorModel.CMYK: (("c", "m", "y", "k"), 100),
}

_WRITABLE_SUFFIXES = {
    ".png", ".jpg", ".jpeg", ".gif", ".bmp", ".webp", ".tif", ".tiff", ".jp2", ".miff"
}

PIXEL_SEPARATOR = ";"
CHANNEL_SEPARATOR = ","


def parse_colorspace(report: str) -> Optional[ColorModel]:
    """
    Classify an ImageMagick colorspace name.

    Returns:
        ColorModel, or None for anything not gray, RGB or CMYK
    """
    report = report.strip().lower()
    if "cmyk" in report:
        return ColorModel.CMYK
    if "gray" in report or "grey" in report:
        return ColorModel.GRAY
    if "rgb" in report:
        return ColorModel.RGB
    return None


class ImageMagickSource:
    """
    Pixel source backed by the ImageMagick command-line tools.

    Example:
        with ImageMagickSource() as source:
            handle = source.open("photo.jpg")
            model = source.color_model(handle)
    """

    name = "magick"

    def __init__(
        self,
        use_prefix: bool = True,
        batch_size: int = DEFAULT_BATCH_SIZE,
        executable: str = "magick"
    ):
        """
        Initialize the source.

        Args:
            use_prefix: Call tools through the `magick` launcher (ImageMagick 7).
                When False, bare `identify` / `convert` are used (ImageMagick 6).
            batch_size: Maximum pixel coordinates per identify call
            executable: Name or path of the launcher binary
        """
        self.use_prefix = use_prefix
        self.batch_size = batch_size
        self.executable = executable
        self._workdir: Optional[Path] = None
        self._counter = 0

    def __enter__(self) -> "ImageMagickSource":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def close(self):
        """Remove the working directory and everything written into it."""
        if self._workdir is not None:
            shutil.rmtree(self._workdir, ignore_errors=True)
            self._workdir = None

    def _tool(self, name: str) -> List[str]:
        if not self.use_prefix:
            return [name]
        if name == "convert":
            return [self.executable]
        return [self.executable, name]

    def _run(self, args: List[str], text: bool = True) -> Union[str, bytes]:
        logger.debug("Running %s", " ".join(args))
        proc = subprocess.run(args, capture_output=True, text=text, check=True)
        return proc.stdout

    def _work_path(self) -> Path:
        if self._workdir is None:
            self._workdir = Path(tempfile.mkdtemp(prefix="qrimg2svg-"))
        self._counter += 1
        return self._workdir / f"work-{self._counter:03d}.miff"

    @staticmethod
    def _frame(handle: ImageHandle) -> str:
        return f"{handle.ref}[0]"

    def open(self, path: Union[str, Path]) -> ImageHandle:
        path = Path(path)
        if not path.is_file():
            raise UnreadableImageError(f"Image not found: {path}")
        if not is_supported_image(path):
            raise UnreadableImageError(f"Unsupported image type: {path}")

        try:
            output = self._run(self._tool("identify") + ["-format", "%w %h", f"{path}[0]"])
            width, height = (int(v) for v in output.split())
        except (subprocess.CalledProcessError, OSError, ValueError) as e:
            raise UnreadableImageError(f"identify failed for {path}: {e}") from e

        return ImageHandle(width, height, path, path)

    def size(self, handle: ImageHandle) -> Tuple[int, int]:
        return (handle.width, handle.height)

    def color_model(self, handle: ImageHandle) -> Optional[ColorModel]:
        try:
            report = self._run(
                self._tool("identify") + ["-format", "%[colorspace]", self._frame(handle)]
            )
        except (subprocess.CalledProcessError, OSError) as e:
            logger.warning("Could not read colorspace of %s: %s", handle.ref, e)
            return None
        return parse_colorspace(report)

    def _pixel_format(self, points: Sequence[Tuple[int, int]], model: ColorModel) -> str:
        channels, scale = _FX_CHANNELS[model]
        parts = []
        for x, y in points:
            parts.append(CHANNEL_SEPARATOR.join(
                f"%[fx:{scale}*p{{{x},{y}}}.{ch}]" for ch in channels
            ))
        return PIXEL_SEPARATOR.join(parts)

    def _query_batch(
        self,
        handle: ImageHandle,
        model: ColorModel,
        points: Sequence[Tuple[int, int]]
    ) -> List[Tuple[float, ...]]:
        fmt = self._pixel_format(points, model)
        try:
            output = self._run(self._tool("identify") + ["-format", fmt, self._frame(handle)])
        except (subprocess.CalledProcessError, OSError) as e:
            raise PixelQueryError(f"Pixel query failed for {handle.ref}: {e}") from e

        try:
            return [
                tuple(float(v) for v in chunk.split(CHANNEL_SEPARATOR))
                for chunk in output.strip().split(PIXEL_SEPARATOR)
                if chunk.strip()
            ]
        except ValueError as e:
            raise PixelQueryError(f"Unparseable pixel query output: {output!r}") from e

    def colors_at(self, handle: ImageHandle, points: Sequence[Tuple[int, int]]) -> np.ndarray:
        """
        Look up many pixels with batched identify calls.

        Pixels of images with an unsupported colorspace are read as RGB.

        Returns:
            float64 array of shape (N, channels), row i for points[i]
        """
        model = self.color_model(handle) or ColorModel.RGB
        points = [(int(x), int(y)) for x, y in points]
        values = query_in_batches(
            points,
            lambda batch: self._query_batch(handle, model, batch),
            self.batch_size
        )
        channels = len(_FX_CHANNELS[model][0])
        if not values:
            return np.empty((0, channels), dtype=np.float64)
        return np.asarray(values, dtype=np.float64).reshape(len(values), channels)

    def color_at(self, handle: ImageHandle, x: int, y: int) -> Tuple[float, ...]:
        return tuple(self.colors_at(handle, [(x, y)])[0])

    def grayscale(self, handle: ImageHandle) -> np.ndarray:
        args = self._tool("convert") + [
            self._frame(handle), "-colorspace", "Gray", "-depth", "8", "gray:-"
        ]
        try:
            raw = self._run(args, text=False)
        except (subprocess.CalledProcessError, OSError) as e:
            raise UnreadableImageError(f"Cannot read pixels of {handle.ref}: {e}") from e

        expected = handle.width * handle.height
        if len(raw) != expected:
            raise UnreadableImageError(
                f"Expected {expected} gray bytes from {handle.ref}, got {len(raw)}"
            )
        return np.frombuffer(raw, dtype=np.uint8).reshape(handle.height, handle.width).copy()

    def resize(self, handle: ImageHandle, width: int, height: int) -> ImageHandle:
        target = self._work_path()
        args = self._tool("convert") + [
            self._frame(handle), "-resize", f"{width}x{height}!", str(target)
        ]
        try:
            self._run(args)
        except (subprocess.CalledProcessError, OSError) as e:
            raise RescaleFailedError(f"Cannot resize {handle.ref} to {width}x{height}: {e}") from e

        logger.debug("Rescaled %dx%d -> %dx%d", handle.width, handle.height, width, height)
        return ImageHandle(width, height, target, handle.path)

    def crop(self, handle: ImageHandle, x: int, y: int, width: int, height: int) -> ImageHandle:
        target = self._work_path()
        args = self._tool("convert") + [
            self._frame(handle), "-crop", f"{width}x{height}+{x}+{y}", "+repage", str(target)
        ]
        try:
            self._run(args)
        except (subprocess.CalledProcessError, OSError) as e:
            raise CropFailedError(f"Cannot crop {handle.ref}: {e}") from e

        return ImageHandle(width, height, target, handle.path)

    def save(self, handle: ImageHandle, path: Union[str, Path]) -> None:
        path = Path(path)
        if path.suffix.lower() not in _WRITABLE_SUFFIXES:
            raise UnsupportedFormatError(f"Unsupported output format: {path.suffix or path}")

        try:
            self._run(self._tool("convert") + [self._frame(handle), str(path)])
        except (subprocess.CalledProcessError, OSError) as e:
            raise UnsupportedFormatError(f"Cannot save {path}: {e}") from e
