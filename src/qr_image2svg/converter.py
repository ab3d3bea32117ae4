"""
Main QRConverter Class

This is the primary interface for turning a photo of a printed QR-style
grid into a vector tile matrix. It orchestrates:
1. Image loading through a pixel source
2. Optional trimming of the quiet zone
3. Tile count estimation from the finder pattern (steps="auto")
4. Grid geometry and rescaling
5. Threshold sampling
6. SVG export

Example Usage:
    converter = QRConverter(steps="auto", threshold=127)
    converter.load_image("photo.png")
    converter.convert()
    converter.export_svg("output.svg")
"""

from pathlib import Path
from typing import List, Optional, Tuple, Union
import logging
import numpy as np

from .config import ColorModel, DEFAULT_THRESHOLD, GridConfig, is_valid_steps, is_valid_threshold
from .errors import MarkerNotFoundError, QRImageError
from .exporters import SVGExporter
from .geometry import Geometry, content_bounds, derive_geometry, generate_tiles
from .markers import MarkerEstimate, suggest_tiles_quantity
from .sampler import ThresholdSampler, TileMatrix
from .sources import ImageHandle, PillowSource, PixelSource

logger = logging.getLogger(__name__)

AUTO = "auto"

StepsArg = Union[int, str, None]


class QRConverter:
    """
    High-level interface for one conversion request.

    Setters return True when the value was accepted and False when it was
    rejected, in which case the previous value stays in effect.

    Attributes:
        source: Pixel source backend
        trim: Crop the quiet zone before computing geometry. None means
            "trim when steps are detected automatically".
    """

    def __init__(
        self,
        source: Optional[PixelSource] = None,
        steps: StepsArg = AUTO,
        threshold: int = DEFAULT_THRESHOLD,
        color_model: Union[ColorModel, str, None] = None,
        trim: Optional[bool] = None
    ):
        """
        Initialize the converter.

        Args:
            source: Pixel source backend (defaults to PillowSource)
            steps: Tiles per axis (>= 21), or "auto"/None to detect them
            threshold: Tiles scoring at or below this are filled (0-255)
            color_model: Force "gray", "rgb" or "cmyk"; None asks the source
            trim: Crop background border first (None: only in auto mode)
        """
        self.source = source if source is not None else PillowSource()
        self.trim = trim

        self._config = GridConfig()
        self._auto_steps = True
        self._handle: Optional[ImageHandle] = None
        self._geometry: Optional[Geometry] = None
        self._estimate: Optional[MarkerEstimate] = None
        self._matrix: Optional[TileMatrix] = None

        self.set_steps(steps)
        self.set_threshold(threshold)
        self.set_color_model(color_model)

    def set_steps(self, steps: StepsArg) -> bool:
        """
        Set tiles per axis, or "auto" / None for marker-based detection.

        Returns:
            True if accepted
        """
        if steps is None or steps == AUTO:
            self._auto_steps = True
            return True
        if not is_valid_steps(steps):
            logger.debug("Rejected steps %r, keeping %s", steps, self.steps)
            return False

        self._config = self._config.with_steps(steps)
        self._auto_steps = False
        return True

    def set_threshold(self, threshold: int) -> bool:
        """
        Set the threshold level (0-255).

        Returns:
            True if accepted
        """
        if not is_valid_threshold(threshold):
            logger.debug("Rejected threshold %r, keeping %d", threshold, self.threshold)
            return False

        self._config = self._config.with_threshold(threshold)
        return True

    def set_color_model(self, color_model: Union[ColorModel, str, None]) -> bool:
        """
        Force a color model, or None to use the pixel source's report.

        Returns:
            True if accepted
        """
        if isinstance(color_model, str):
            try:
                color_model = ColorModel(color_model.lower())
            except ValueError:
                logger.debug("Rejected color model %r", color_model)
                return False

        self._config = self._config.with_color_model(color_model)
        return True

    def load_image(self, image_path: Union[str, Path]) -> "QRConverter":
        """
        Open an image through the pixel source.

        Args:
            image_path: Path to the photo (PNG, JPEG, GIF, WebP, BMP, ...)

        Returns:
            self for method chaining

        Raises:
            UnreadableImageError: If the source cannot open the file
        """
        self._reset()
        self._handle = self.source.open(image_path)
        logger.info("Loaded %s (%dx%d)", image_path, self._handle.width, self._handle.height)
        return self

    def load_array(self, array: np.ndarray) -> "QRConverter":
        """
        Load image data from a numpy array.

        Only available with sources that support open_array().

        Returns:
            self for method chaining
        """
        if not hasattr(self.source, "open_array"):
            raise RuntimeError(f"Pixel source '{self.source.name}' cannot load arrays")

        self._reset()
        self._handle = self.source.open_array(array)
        return self

    def _reset(self):
        self._handle = None
        self._geometry = None
        self._estimate = None
        self._matrix = None

    def _trim(self, handle: ImageHandle) -> ImageHandle:
        bounds = content_bounds(self.source.grayscale(handle), DEFAULT_THRESHOLD)
        if bounds is None or bounds == (0, 0, handle.width, handle.height):
            return handle

        logger.debug("Trimming to %s", bounds)
        return self.source.crop(handle, *bounds)

    def detect_steps(self) -> MarkerEstimate:
        """
        Run marker-based tile count estimation on the current image.

        Returns:
            MarkerEstimate (check .found)
        """
        if self._handle is None:
            raise RuntimeError("No image loaded. Call load_image() first.")

        self._estimate = suggest_tiles_quantity(self.source, self._handle)
        return self._estimate

    def convert(self) -> TileMatrix:
        """
        Sample the loaded image into a TileMatrix.

        Returns:
            TileMatrix of filled tiles in row-major order

        Raises:
            RuntimeError: If no image is loaded
            MarkerNotFoundError: If steps are "auto" and detection fails
            RescaleFailedError: If the working image cannot be rescaled
        """
        if self._handle is None:
            raise RuntimeError("No image loaded. Call load_image() first.")

        self._matrix = None
        handle = self._handle

        trim = self.trim if self.trim is not None else self._auto_steps
        if trim:
            handle = self._trim(handle)

        if self._auto_steps:
            self._estimate = suggest_tiles_quantity(self.source, handle)
            if not self._estimate.found:
                raise MarkerNotFoundError(self._estimate)
            steps = self._estimate.steps
        else:
            steps = self._config.steps

        geometry = derive_geometry(handle.width, steps)
        if geometry.rescale_needed or handle.height < geometry.target_size:
            handle = self.source.resize(handle, geometry.target_size, geometry.target_size)

        tiles = generate_tiles(steps, geometry.pixels_per_tile)
        sampler = ThresholdSampler(self._config.threshold, self._config.color_model)
        matrix = sampler.sample(tiles, self.source, handle)

        self._handle = handle
        self._geometry = geometry
        self._matrix = matrix
        logger.info("Converted %dx%d grid, %d filled tiles", steps, steps, len(matrix))
        return matrix

    def to_svg(self) -> str:
        """Render the converted matrix as SVG markup."""
        if self._matrix is None:
            self.convert()
        return SVGExporter().render(self._matrix)

    def export_svg(self, output_path: Union[str, Path]) -> str:
        """
        Write the converted matrix to an SVG file.

        Returns:
            The SVG markup
        """
        if self._matrix is None:
            self.convert()
        return SVGExporter().export(self._matrix, output_path)

    def save_image(self, output_path: Union[str, Path]):
        """Persist the working (trimmed / rescaled) image."""
        if self._handle is None:
            raise RuntimeError("No image loaded. Call load_image() first.")
        self.source.save(self._handle, output_path)

    @property
    def config(self) -> GridConfig:
        return self._config

    @property
    def steps(self) -> Union[int, str]:
        """Configured tiles per axis, or "auto"."""
        return AUTO if self._auto_steps else self._config.steps

    @property
    def threshold(self) -> int:
        return self._config.threshold

    @property
    def color_model(self) -> Optional[ColorModel]:
        return self._config.color_model

    @property
    def handle(self) -> Optional[ImageHandle]:
        return self._handle

    @property
    def geometry(self) -> Optional[Geometry]:
        return self._geometry

    @property
    def estimate(self) -> Optional[MarkerEstimate]:
        return self._estimate

    @property
    def matrix(self) -> Optional[TileMatrix]:
        return self._matrix

    @property
    def pixels_per_tile(self) -> Optional[int]:
        if self._geometry is None:
            return None
        return self._geometry.pixels_per_tile

    @property
    def filled_count(self) -> int:
        if self._matrix is None:
            return 0
        return len(self._matrix)

    def preview(self) -> dict:
        """
        Get a preview of the current state.

        Returns:
            Dictionary with current state information
        """
        info = {
            "backend": self.source.name,
            "image_loaded": self._handle is not None,
            "converted": self._matrix is not None,
            "steps": self.steps,
            "threshold": self.threshold,
            "color_model": self.color_model.value if self.color_model else None,
        }

        if self._handle is not None:
            info["image_size"] = self._handle.size

        if self._estimate is not None:
            info["estimated_steps"] = self._estimate.steps
            info["estimated_version"] = self._estimate.version

        if self._geometry is not None:
            info["pixels_per_tile"] = self._geometry.pixels_per_tile
            info["rescaled"] = self._geometry.rescale_needed

        if self._matrix is not None:
            info["grid_size"] = self._matrix.steps
            info["filled_tiles"] = len(self._matrix)

        return info


class BatchProcessor:
    """
    Convert every image in a directory with the same settings.

    Files that fail are logged and recorded in `failures`; the rest of the
    batch still runs.
    """

    def __init__(self, source: Optional[PixelSource] = None, **converter_kwargs):
        """
        Initialize the batch processor.

        Args:
            source: Pixel source shared by all conversions
            **converter_kwargs: Arguments passed to QRConverter
        """
        self.source = source if source is not None else PillowSource()
        self.converter_kwargs = converter_kwargs
        self.failures: List[Tuple[Path, Exception]] = []

    def process_directory(
        self,
        input_dir: Union[str, Path],
        output_dir: Union[str, Path],
        pattern: str = "*.png"
    ) -> List[str]:
        """
        Convert all matching images to SVG.

        Args:
            input_dir: Directory to scan
            output_dir: Directory receiving <stem>.svg files
            pattern: Glob pattern for input files

        Returns:
            List of written SVG paths
        """
        input_dir = Path(input_dir)
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        self.failures = []
        outputs = []

        for image_path in sorted(input_dir.glob(pattern)):
            converter = QRConverter(source=self.source, **self.converter_kwargs)
            output_path = output_dir / f"{image_path.stem}.svg"
            try:
                converter.load_image(image_path)
                converter.export_svg(output_path)
            except (QRImageError, OSError) as e:
                logger.warning("Skipping %s: %s", image_path, e)
                self.failures.append((image_path, e))
                continue

            outputs.append(str(output_path))

        return outputs
