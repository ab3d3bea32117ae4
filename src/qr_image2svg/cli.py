"""
Command-Line Interface for QR Image to SVG

Usage:
    qrimg2svg photo.png -o output.svg
    qrimg2svg photo.png --steps 25 --threshold 100 -o output.svg
    qrimg2svg --batch photos/ --output-dir svgs/ --pattern "*.jpg"

"""

import argparse
import logging
import sys
import time
from pathlib import Path
from typing import List, Optional

from . import __version__
from .converter import AUTO, BatchProcessor, QRConverter
from .errors import MarkerNotFoundError
from .logging_config import setup_logging
from .sources import BACKENDS, create_source


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="qrimg2svg",
        description="Convert photos of printed QR-style grids to SVG tile matrices",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  qrimg2svg photo.png -o code.svg
      Detect the grid size from the finder pattern and write code.svg

  qrimg2svg photo.png --steps 25 --threshold 100
      Sample a known 25x25 grid with a darker threshold

  qrimg2svg photo.jpg --backend magick --no-magick-prefix
      Use ImageMagick 6 command-line tools instead of Pillow

  qrimg2svg --batch photos/ --output-dir svgs/ --pattern "*.jpg"
      Convert every JPEG in a directory
        """
    )

    parser.add_argument(
        "input",
        nargs="?",
        help="Input image file"
    )

    parser.add_argument(
        "-o", "--output",
        help="Output SVG path (default: input name with .svg)"
    )

    parser.add_argument(
        "-s", "--steps",
        default=AUTO,
        help="Tiles per axis (>= 21) or 'auto' (default: auto)"
    )

    parser.add_argument(
        "-t", "--threshold",
        type=int,
        default=127,
        help="Tiles scoring at or below this are filled (0-255, default: 127)"
    )

    parser.add_argument(
        "--color-model",
        choices=["gray", "rgb", "cmyk"],
        help="Force a color model instead of the one reported by the image"
    )

    trim_group = parser.add_mutually_exclusive_group()
    trim_group.add_argument(
        "--trim",
        dest="trim",
        action="store_true",
        default=None,
        help="Crop the background border before sampling (default in auto mode)"
    )
    trim_group.add_argument(
        "--no-trim",
        dest="trim",
        action="store_false",
        help="Never crop the background border"
    )

    parser.add_argument(
        "-b", "--backend",
        choices=sorted(BACKENDS),
        default="pillow",
        help="Pixel source backend (default: pillow)"
    )

    parser.add_argument(
        "--no-magick-prefix",
        action="store_true",
        help="Call identify/convert directly instead of through 'magick'"
    )

    parser.add_argument(
        "--save-image",
        help="Also save the trimmed/rescaled working image to this path"
    )

    # Batch processing
    parser.add_argument(
        "--batch",
        help="Batch process directory of images"
    )

    parser.add_argument(
        "--output-dir",
        help="Output directory for batch processing"
    )

    parser.add_argument(
        "--pattern",
        default="*.png",
        help="File pattern for batch processing (default: *.png)"
    )

    # Misc
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose output with debug logging"
    )

    parser.add_argument(
        "--log-file",
        help="Also write log messages to this file"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}"
    )

    parser.set_defaults(trim=None)
    return parser


def parse_steps(value: str):
    """Turn the --steps argument into an int or 'auto'."""
    if value == AUTO:
        return AUTO
    try:
        return int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"steps must be an integer or 'auto', got {value!r}")


def build_source(args):
    """Create the pixel source selected on the command line."""
    if args.backend == "magick":
        return create_source("magick", use_prefix=not args.no_magick_prefix)
    return create_source(args.backend)


def converter_kwargs(args) -> dict:
    return {
        "steps": parse_steps(args.steps),
        "threshold": args.threshold,
        "color_model": args.color_model,
        "trim": args.trim,
    }


def validate_args(args) -> Optional[str]:
    """Return an error message for settings the converter would reject."""
    try:
        steps = parse_steps(args.steps)
    except argparse.ArgumentTypeError as e:
        return str(e)
    if steps != AUTO and steps < 21:
        return f"steps must be at least 21, got {steps}"
    if not 0 <= args.threshold <= 255:
        return f"threshold must be in 0-255, got {args.threshold}"
    return None


def process_single(args) -> int:
    """Convert a single image file."""
    if not args.input:
        print("Error: No input file specified", file=sys.stderr)
        return 1

    input_path = Path(args.input)
    if not input_path.exists():
        print(f"Error: Input file not found: {input_path}", file=sys.stderr)
        return 1

    output_path = Path(args.output) if args.output else input_path.with_suffix(".svg")
    start_time = time.time()
    source = build_source(args)

    try:
        converter = QRConverter(source=source, **converter_kwargs(args))
        converter.load_image(input_path)
        converter.convert()
        converter.export_svg(output_path)

        if args.save_image:
            converter.save_image(args.save_image)

        info = converter.preview()
        print(f"Exported: {output_path}")
        print(f"  Grid: {info['grid_size']}x{info['grid_size']}, "
              f"{info['filled_tiles']} filled tiles, {info['pixels_per_tile']} px/tile")
        if args.verbose:
            print(f"\nCompleted in {time.time() - start_time:.2f}s")
        return 0

    except MarkerNotFoundError as e:
        print(f"Error: {e}. Pass --steps N for this image.", file=sys.stderr)
        return 2

    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1

    finally:
        if hasattr(source, "close"):
            source.close()


def process_batch(args) -> int:
    """Convert a directory of images."""
    batch_dir = Path(args.batch)
    if not batch_dir.is_dir():
        print(f"Error: Batch directory not found: {batch_dir}", file=sys.stderr)
        return 1

    output_dir = Path(args.output_dir) if args.output_dir else batch_dir / "output"
    start_time = time.time()
    source = build_source(args)

    try:
        processor = BatchProcessor(source=source, **converter_kwargs(args))
        outputs = processor.process_directory(batch_dir, output_dir, pattern=args.pattern)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1
    finally:
        if hasattr(source, "close"):
            source.close()

    elapsed = time.time() - start_time
    print(f"Processed {len(outputs)} files in {elapsed:.2f}s")
    print(f"Output directory: {output_dir}")
    for path, error in processor.failures:
        print(f"  Failed: {path}: {error}", file=sys.stderr)

    return 0 if not processor.failures else 1


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    setup_logging(logging.DEBUG if args.verbose else logging.WARNING, args.log_file)

    error = validate_args(args)
    if error:
        print(f"Error: {error}", file=sys.stderr)
        return 1

    if args.batch:
        return process_batch(args)
    return process_single(args)


if __name__ == "__main__":
    sys.exit(main())
