"""
Unit tests for the QR image converter core.
"""

import importlib.util
import sys
import tempfile
from pathlib import Path
import xml.etree.ElementTree as ET
import numpy as np
import unittest
from PIL import Image

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from qr_image2svg import QRConverter, BatchProcessor
from qr_image2svg.cli import main as cli_main
from qr_image2svg.config import ColorModel, GridConfig
from qr_image2svg.errors import (
    MarkerNotFoundError,
    RescaleFailedError,
    UnreadableImageError,
    UnsupportedFormatError,
)
from qr_image2svg.exporters import SVGExporter
from qr_image2svg.geometry import GridPoint, content_bounds, derive_geometry, generate_tiles
from qr_image2svg.markers import (
    MarkerEstimate,
    _count_interruptions,
    columns_to_version,
    estimate_tiles,
    nearest_valid_steps,
    steps_for_version,
    suggest_tiles_quantity,
)
from qr_image2svg.sampler import (
    UNSUPPORTED_SCORE,
    ThresholdSampler,
    TileMatrix,
    cmyk_scores,
    compute_scores,
    rgb_scores,
)
from qr_image2svg.sources import ImageHandle, PillowSource
from qr_image2svg.synthetic import render_modules, render_symbol, symbol_modules

SVG_NS = "{http://www.w3.org/2000/svg}"


class ArraySource:
    """Minimal pixel source over a numpy array, for sampler tests."""

    name = "array"

    def __init__(self, model=ColorModel.GRAY):
        self.model = model

    def open_array(self, array):
        return ImageHandle(array.shape[1], array.shape[0], array)

    def color_model(self, handle):
        return self.model

    def colors_at(self, handle, points):
        coords = np.asarray(points, dtype=np.intp).reshape(-1, 2)
        values = handle.ref[coords[:, 1], coords[:, 0]].astype(np.float64)
        return values.reshape(len(coords), -1)

    def grayscale(self, handle):
        return handle.ref.copy()


def white_image(size=210):
    return np.full((size, size), 255, dtype=np.uint8)


class TestGridConfig(unittest.TestCase):
    """Tests for GridConfig validation."""

    def test_defaults(self):
        """Test default parameter set."""
        config = GridConfig()
        assert config.steps == 21
        assert config.threshold == 127
        assert config.color_model is None

    def test_rejects_invalid(self):
        """Test construction-time validation."""
        with self.assertRaises(ValueError):
            GridConfig(steps=20)
        with self.assertRaises(ValueError):
            GridConfig(threshold=256)

    def test_immutable_updates(self):
        """Test with_* helpers return new configs."""
        config = GridConfig()
        updated = config.with_steps(25).with_threshold(90)
        assert config.steps == 21
        assert updated.steps == 25
        assert updated.threshold == 90


class TestGridGeometry(unittest.TestCase):
    """Tests for pixels-per-tile derivation and tile generation."""

    def test_exact_division(self):
        """Test integer tile sizes are kept without rescale."""
        for steps in (21, 25, 33):
            for k in range(10, 16):
                geometry = derive_geometry(steps * k, steps)
                assert geometry.pixels_per_tile == k
                assert not geometry.rescale_needed

    def test_non_divisible_width(self):
        """Test uneven widths are rescaled to steps * pixels_per_tile."""
        steps = 21
        for width in range(211, 300):
            if width % steps == 0:
                continue
            geometry = derive_geometry(width, steps)
            assert geometry.rescale_needed
            assert geometry.target_size == steps * geometry.pixels_per_tile

    def test_bankers_rounding(self):
        """Test .5 tile sizes round to even."""
        assert derive_geometry(231, 22).pixels_per_tile == 10   # 10.5
        assert derive_geometry(253, 22).pixels_per_tile == 12   # 11.5

    def test_minimum_tile_size(self):
        """Test small tiles are raised to 10 pixels."""
        geometry = derive_geometry(105, 21)    # exactly 5 px per tile
        assert geometry.pixels_per_tile == 10
        assert geometry.rescale_needed
        assert geometry.target_size == 210

    def test_generate_tiles(self):
        """Test tile count, ordering and midpoints."""
        for p in (10, 11, 15):
            tiles = generate_tiles(21, p)
            assert len(tiles) == 21 * 21

            expected_order = [(x, y) for y in range(21) for x in range(21)]
            assert [tuple(t.render_at) for t in tiles] == expected_order

            for tile in tiles:
                dx = tile.sample_at.x - tile.render_at.x * p
                dy = tile.sample_at.y - tile.render_at.y * p
                assert 0 <= dx < p
                assert 0 <= dy < p

    def test_midpoint_formula(self):
        """Test sample point is floor(coord * p + p / 2)."""
        tiles = generate_tiles(21, 11)
        assert tiles[0].sample_at == GridPoint(5, 5)
        assert tiles[22].sample_at == GridPoint(16, 16)

    def test_content_bounds(self):
        """Test bounding box of dark pixels."""
        gray = white_image(100)
        gray[20:40, 10:70] = 0
        assert content_bounds(gray) == (10, 20, 60, 20)
        assert content_bounds(white_image(50)) is None


class TestThresholdSampler(unittest.TestCase):
    """Tests for tile scoring and classification."""

    def sample(self, array, threshold=127, model=ColorModel.GRAY, steps=21):
        source = ArraySource(model)
        handle = source.open_array(array)
        geometry = derive_geometry(handle.width, steps)
        tiles = generate_tiles(steps, geometry.pixels_per_tile)
        return ThresholdSampler(threshold).sample(tiles, source, handle)

    def test_white_image_is_empty(self):
        """Test uniformly white image yields no filled tiles."""
        matrix = self.sample(white_image())
        assert matrix.steps == 21
        assert len(matrix) == 0

    def test_single_black_block(self):
        """Test a 10x10 block at the origin fills exactly tile (0, 0)."""
        image = white_image()
        image[0:10, 0:10] = 0
        matrix = self.sample(image)
        assert list(matrix) == [GridPoint(0, 0)]

    def test_row_major_order(self):
        """Test filled tiles come out in scan order."""
        image = white_image()
        for x, y in [(5, 3), (1, 7), (20, 0), (0, 3)]:
            image[y * 10:(y + 1) * 10, x * 10:(x + 1) * 10] = 0
        matrix = self.sample(image)
        assert [tuple(p) for p in matrix] == [(20, 0), (0, 3), (5, 3), (1, 7)]

    def test_threshold_monotonic(self):
        """Test raising the threshold only adds filled tiles."""
        rng = np.random.default_rng(3)
        image = rng.integers(0, 256, (210, 210), dtype=np.uint8)

        previous = set()
        for threshold in range(0, 256, 15):
            filled = set(self.sample(image, threshold=threshold))
            assert previous <= filled
            previous = filled

    def test_threshold_boundary_inclusive(self):
        """Test a score equal to the threshold counts as filled."""
        image = np.full((210, 210), 127, dtype=np.uint8)
        assert len(self.sample(image, threshold=127)) == 21 * 21
        assert len(self.sample(image, threshold=126)) == 0

    def test_rgb_scores(self):
        """Test RGB mean rounded to one decimal."""
        scores = rgb_scores(np.array([[127.0, 127.0, 128.0], [127.0, 127.0, 127.0]]))
        assert scores[0] == 127.3
        assert scores[1] == 127.0

    def test_cmyk_scores(self):
        """Test CMYK readings are scored through RGB."""
        scores = cmyk_scores(np.array([
            [0.0, 0.0, 0.0, 100.0],
            [0.0, 0.0, 0.0, 0.0],
            [50.0, 50.0, 50.0, 0.0],
        ]))
        assert scores[0] == 0.0
        assert scores[1] == 255.0
        assert scores[2] == 127.5

    def test_unsupported_model_stays_blank(self):
        """Test unknown color models leave every tile blank."""
        image = np.zeros((210, 210), dtype=np.uint8)
        source = ArraySource(model=None)
        handle = source.open_array(image)
        tiles = generate_tiles(21, 10)

        sampled = ThresholdSampler(threshold=255).sample_tiles(tiles, source, handle)
        assert all(not s.filled for s in sampled)
        assert all(s.score == UNSUPPORTED_SCORE for s in sampled)

        matrix = ThresholdSampler(threshold=255).sample(tiles, source, handle)
        assert len(matrix) == 0

    def test_missing_channels_stay_blank(self):
        """Test forcing RGB on single-channel readings scores as unsupported."""
        scores = compute_scores(np.zeros((4, 1)), ColorModel.RGB)
        assert np.all(scores == UNSUPPORTED_SCORE)

    def test_forced_color_model(self):
        """Test a forced model overrides the source report."""
        rgb = np.full((210, 210, 3), 255, dtype=np.uint8)
        rgb[0:10, 0:10] = [0, 0, 0]
        source = ArraySource(model=None)
        handle = source.open_array(rgb)
        sampler = ThresholdSampler(127, color_model=ColorModel.RGB)
        matrix = sampler.sample(generate_tiles(21, 10), source, handle)
        assert list(matrix) == [GridPoint(0, 0)]

    def test_to_mask(self):
        """Test dense mask conversion."""
        matrix = TileMatrix(steps=21, tiles=[GridPoint(3, 1)])
        mask = matrix.to_mask()
        assert mask.shape == (21, 21)
        assert mask[1, 3]
        assert mask.sum() == 1
        assert (3, 1) in matrix


class TestMarkerDetector(unittest.TestCase):
    """Tests for tile count estimation from finder patterns."""

    def test_version1(self):
        """Test a version 1 symbol with 10px modules."""
        estimate = estimate_tiles(render_symbol(version=1, module_size=10, quiet_zone=4))
        assert estimate.found
        assert estimate.steps == 21
        assert estimate.marker_length == 70
        assert estimate.interruptions == 7
        assert estimate.version == 1

    def test_version2(self):
        """Test a version 2 symbol with 8px modules."""
        estimate = estimate_tiles(render_symbol(version=2, module_size=8, quiet_zone=3))
        assert estimate.steps == 25

    def test_version3_small_modules(self):
        """Test a version 3 symbol with 6px modules and blank data."""
        estimate = estimate_tiles(render_symbol(version=3, module_size=6, data_seed=None))
        assert estimate.steps == 29

    def test_uniform_gray(self):
        """Test images without any pattern are not recognized."""
        for level in (100, 128, 200):
            estimate = estimate_tiles(np.full((300, 300), level, dtype=np.uint8))
            assert not estimate.found
            assert estimate.steps is None

    def test_module_size_mismatch(self):
        """Test cross-validation rejects a lone square."""
        image = white_image()
        image[0:70, 0:70] = 0
        image[209, 209] = 0
        estimate = estimate_tiles(image)
        assert not estimate.found
        assert estimate.reason == "module size mismatch"

    def test_first_change_not_counted(self):
        """Test the finder-to-separator change is skipped."""
        # one change at x=0, skipped; ends in ink so nothing is discounted
        row = np.array([False, False, True])
        assert _count_interruptions(row, 0, len(row)) == 1

        row = np.array([True, True, True])
        assert _count_interruptions(row, 0, len(row)) == 0

    def test_row_ending_in_ink(self):
        """Test no discount when the probe ends on ink."""
        # changes at x=0 (skipped), 1, 2, 3
        row = np.array([False, True, False, True])
        assert _count_interruptions(row, 0, len(row)) == 3

    def test_row_ending_in_background(self):
        """Test a trailing background run is discounted once."""
        # changes at x=0 (skipped), 1, 2, 3, 4 -> 4, minus trailing background
        row = np.array([False, True, False, True, False, False])
        assert _count_interruptions(row, 0, len(row)) == 3

    def test_probe_start_offset(self):
        """Test counting only covers [start, stop)."""
        row = np.array([True, True, False, True, False, True, True])
        # from x=2: changes at 2 (skipped), 3, 4, 5
        assert _count_interruptions(row, 2, len(row)) == 3

    def test_source_image_untouched(self):
        """Test detection does not modify the working image."""
        source = PillowSource()
        pixels = render_symbol(version=1)
        handle = source.open_array(pixels)
        before = np.asarray(handle.ref).copy()

        estimate = suggest_tiles_quantity(source, handle)
        assert estimate.steps == 21
        assert np.array_equal(np.asarray(handle.ref), before)
        assert handle.size == (pixels.shape[1], pixels.shape[0])

    def test_version_helpers(self):
        """Test conversions between tile counts and versions."""
        assert columns_to_version(21) == 1
        assert columns_to_version(22) is None
        assert columns_to_version(177) == 40
        assert columns_to_version(17) is None
        assert steps_for_version(2) == 25
        assert nearest_valid_steps(24) == 21
        assert nearest_valid_steps(25) == 25
        assert nearest_valid_steps(28.6) == 25

    def test_marker_not_found_message(self):
        """Test default and explicit error messages."""
        estimate = MarkerEstimate(None, reason="no content")
        error = MarkerNotFoundError(estimate)
        assert error.estimate is estimate
        assert "no content" in str(error)
        assert str(MarkerNotFoundError(estimate, "custom")) == "custom"


class TestSVGExporter(unittest.TestCase):
    """Tests for SVG output."""

    def test_round_trip(self):
        """Test one rect per filled tile, each coordinate exactly once."""
        tiles = [GridPoint(0, 0), GridPoint(4, 0), GridPoint(2, 3), GridPoint(20, 20)]
        matrix = TileMatrix(steps=21, tiles=tiles)

        root = ET.fromstring(SVGExporter().render(matrix))
        assert root.get("viewBox") == "0 0 21 21"

        rects = root.findall(f".//{SVG_NS}rect")
        coords = [(int(r.get("x")), int(r.get("y"))) for r in rects]
        assert len(rects) == len(matrix)
        assert coords == [tuple(t) for t in tiles]
        assert all(r.get("width") == "1" and r.get("height") == "1" for r in rects)

    def test_empty_matrix(self):
        """Test an empty matrix still produces a valid document."""
        root = ET.fromstring(SVGExporter().render(TileMatrix(steps=25)))
        assert root.get("viewBox") == "0 0 25 25"
        assert root.findall(f".//{SVG_NS}rect") == []

    def test_export_file(self):
        """Test writing to disk."""
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "out.svg"
            svg = SVGExporter().export(TileMatrix(steps=21, tiles=[GridPoint(1, 1)]), path)
            assert path.read_text(encoding="utf-8") == svg


class TestQRConverter(unittest.TestCase):
    """Integration tests for QRConverter."""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()

    def save(self, array, name="input.png"):
        path = self.tmp / name
        Image.fromarray(array).save(path)
        return path

    def test_white_image(self):
        """Test the uniform white scenario."""
        converter = QRConverter(steps=21)
        converter.load_image(self.save(white_image()))
        matrix = converter.convert()
        assert converter.pixels_per_tile == 10
        assert len(matrix) == 0

    def test_black_block(self):
        """Test the single black block scenario."""
        image = white_image()
        image[0:10, 0:10] = 0
        converter = QRConverter(steps=21, trim=False)
        converter.load_image(self.save(image))
        assert list(converter.convert()) == [GridPoint(0, 0)]

    def test_rejected_settings_keep_previous(self):
        """Test setters report rejection and keep the old value."""
        converter = QRConverter(steps=25, threshold=100)
        assert not converter.set_steps(20)
        assert not converter.set_steps(21.5)
        assert converter.steps == 25
        assert not converter.set_threshold(256)
        assert not converter.set_threshold(-1)
        assert not converter.set_threshold(True)
        assert converter.threshold == 100
        assert not converter.set_color_model("lab")
        assert converter.set_color_model("CMYK")
        assert converter.color_model == ColorModel.CMYK
        assert converter.set_steps("auto")
        assert converter.steps == "auto"

    def test_convert_without_image(self):
        """Test converting before loading."""
        with self.assertRaises(RuntimeError):
            QRConverter(steps=21).convert()

    def test_auto_steps(self):
        """Test detection, trimming and sampling of a synthetic symbol."""
        modules = symbol_modules(version=2, data_seed=11)
        path = self.save(render_modules(modules, module_size=10, quiet_zone=4))

        converter = QRConverter(steps="auto")
        converter.load_image(path)
        matrix = converter.convert()

        assert converter.estimate.steps == 25
        assert converter.handle.size == (250, 250)
        assert converter.pixels_per_tile == 10
        assert np.array_equal(matrix.to_mask(), modules)

    def test_explicit_steps_with_rescale(self):
        """Test a symbol at an awkward size is rescaled before sampling."""
        modules = symbol_modules(version=1, data_seed=5)
        pixels = render_modules(modules, module_size=10, quiet_zone=0)
        odd = Image.fromarray(pixels).resize((230, 230), Image.Resampling.NEAREST)
        path = self.tmp / "odd.png"
        odd.save(path)

        converter = QRConverter(steps=21, trim=False)
        converter.load_image(path)
        matrix = converter.convert()

        assert converter.geometry.rescale_needed
        assert converter.pixels_per_tile == 11
        assert converter.handle.size == (231, 231)
        assert np.array_equal(matrix.to_mask(), modules)

    def test_marker_not_found(self):
        """Test auto mode on a pattern-less image."""
        converter = QRConverter(steps="auto")
        converter.load_image(self.save(np.full((210, 210), 128, dtype=np.uint8)))
        with self.assertRaises(MarkerNotFoundError) as ctx:
            converter.convert()
        assert not ctx.exception.estimate.found
        assert converter.matrix is None

    def test_unreadable_image(self):
        """Test missing and non-image files."""
        converter = QRConverter(steps=21)
        with self.assertRaises(UnreadableImageError):
            converter.load_image(self.tmp / "missing.png")

        bogus = self.tmp / "bogus.png"
        bogus.write_text("not an image")
        with self.assertRaises(UnreadableImageError):
            converter.load_image(bogus)

    def test_rescale_failure_aborts(self):
        """Test a failing resize leaves no matrix behind."""

        class FailingSource(PillowSource):
            def resize(self, handle, width, height):
                raise RescaleFailedError("boom")

        converter = QRConverter(source=FailingSource(), steps=21, trim=False)
        converter.load_image(self.save(white_image(215)))
        with self.assertRaises(RescaleFailedError):
            converter.convert()
        assert converter.matrix is None
        assert converter.filled_count == 0

    def test_cmyk_image(self):
        """Test CMYK ink is read through the CMYK model."""
        img = Image.new("CMYK", (210, 210), (0, 0, 0, 0))
        img.paste((0, 0, 0, 255), (0, 0, 10, 10))
        path = self.tmp / "cmyk.tif"
        img.save(path)

        converter = QRConverter(steps=21, trim=False)
        converter.load_image(path)
        assert converter.source.color_model(converter.handle) == ColorModel.CMYK
        assert list(converter.convert()) == [GridPoint(0, 0)]

    def test_transparent_background(self):
        """Test transparent pixels read as paper, not ink."""
        rgba = np.zeros((210, 210, 4), dtype=np.uint8)
        rgba[0:10, 0:10] = [0, 0, 0, 255]
        path = self.save(rgba, "alpha.png")

        converter = QRConverter(steps=21, trim=False)
        converter.load_image(path)
        assert list(converter.convert()) == [GridPoint(0, 0)]

    def test_16bit_grayscale_image(self):
        """Test a 16-bit gray symbol converts like its 8-bit version."""
        modules = symbol_modules(version=1, data_seed=9)
        wide = render_modules(modules, module_size=10, quiet_zone=4).astype(np.uint16) * 257
        path = self.tmp / "wide.png"
        Image.fromarray(wide).save(path)

        converter = QRConverter(steps="auto")
        converter.load_image(path)
        matrix = converter.convert()

        assert converter.estimate.steps == 21
        assert len(matrix) == int(modules.sum())
        assert np.array_equal(matrix.to_mask(), modules)

    def test_svg_and_image_export(self):
        """Test SVG export and saving the working image."""
        image = white_image()
        image[10:20, 20:30] = 0
        converter = QRConverter(steps=21, trim=False)
        converter.load_image(self.save(image))

        svg = converter.export_svg(self.tmp / "out.svg")
        assert svg.count("<rect") == 1
        assert '<rect x="2" y="1"' in svg
        assert converter.to_svg() == svg

        converter.save_image(self.tmp / "work.png")
        assert (self.tmp / "work.png").exists()
        with self.assertRaises(UnsupportedFormatError):
            converter.save_image(self.tmp / "work.unknown")

    def test_preview(self):
        """Test state summary."""
        converter = QRConverter(steps=21)
        assert not converter.preview()["image_loaded"]
        converter.load_array(white_image())
        converter.convert()
        info = converter.preview()
        assert info["converted"]
        assert info["grid_size"] == 21
        assert info["filled_tiles"] == 0

    def test_batch_processor(self):
        """Test directory conversion skips broken files."""
        input_dir = self.tmp / "in"
        input_dir.mkdir()
        Image.fromarray(render_symbol(version=1)).save(input_dir / "a.png")
        Image.fromarray(render_symbol(version=2, module_size=8)).save(input_dir / "b.png")
        (input_dir / "broken.png").write_text("nope")

        processor = BatchProcessor(steps="auto")
        outputs = processor.process_directory(input_dir, self.tmp / "out")

        assert len(outputs) == 2
        assert all(Path(p).exists() for p in outputs)
        assert len(processor.failures) == 1
        assert processor.failures[0][0].name == "broken.png"

    def test_batch_processor_write_failure(self):
        """Test an unwritable output is recorded and the batch goes on."""
        input_dir = self.tmp / "in"
        input_dir.mkdir()
        Image.fromarray(render_symbol(version=1)).save(input_dir / "a.png")
        Image.fromarray(render_symbol(version=1)).save(input_dir / "b.png")

        output_dir = self.tmp / "out"
        (output_dir / "a.svg").mkdir(parents=True)

        processor = BatchProcessor(steps="auto")
        outputs = processor.process_directory(input_dir, output_dir)

        assert outputs == [str(output_dir / "b.svg")]
        assert len(processor.failures) == 1
        assert isinstance(processor.failures[0][1], OSError)


class TestDemoPhotos(unittest.TestCase):
    """The demo's degraded photos must be detectable."""

    def test_demo_cases_detected(self):
        demo_path = Path(__file__).parent.parent / "examples" / "demo.py"
        module_spec = importlib.util.spec_from_file_location("qr_demo", demo_path)
        demo = importlib.util.module_from_spec(module_spec)
        module_spec.loader.exec_module(demo)

        with tempfile.TemporaryDirectory() as tmp:
            for name, (version, module_size) in demo.DEMO_CASES.items():
                photo = Path(tmp) / f"{name}.png"
                modules = demo.create_photo(version, module_size, seed=version, out_path=photo)

                converter = QRConverter(steps="auto")
                converter.load_image(photo)
                matrix = converter.convert()
                assert matrix.steps == modules.shape[0], name


class TestCLI(unittest.TestCase):
    """Tests for the command-line entry point."""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()

    def test_convert_file(self):
        """Test a successful auto conversion."""
        path = self.tmp / "code.png"
        Image.fromarray(render_symbol(version=1)).save(path)
        output = self.tmp / "code.svg"

        assert cli_main([str(path), "-o", str(output)]) == 0
        assert output.exists()

    def test_marker_not_found_exit_code(self):
        """Test detection failure maps to exit code 2."""
        path = self.tmp / "gray.png"
        Image.fromarray(np.full((100, 100), 128, dtype=np.uint8)).save(path)
        assert cli_main([str(path)]) == 2

    def test_invalid_settings(self):
        """Test rejected settings."""
        path = self.tmp / "white.png"
        Image.fromarray(white_image()).save(path)
        assert cli_main([str(path), "--threshold", "300"]) == 1
        assert cli_main([str(path), "--steps", "12"]) == 1
        assert cli_main([str(path), "--steps", "many"]) == 1
        assert cli_main([str(self.tmp / "missing.png")]) == 1

    def test_unwritable_output(self):
        """Test an output path in a missing directory returns an error code."""
        path = self.tmp / "code.png"
        Image.fromarray(render_symbol(version=1)).save(path)
        output = self.tmp / "no" / "such" / "dir" / "code.svg"

        assert cli_main([str(path), "-o", str(output)]) == 1
        assert not output.exists()


if __name__ == "__main__":
    unittest.main(verbosity=2)
