#!/usr/bin/env python3
"""
QR Image to SVG Demo Script

This script demonstrates the full conversion pipeline by:
1. Creating synthetic QR-style symbols (no external images needed)
2. Degrading them the way a photo would (odd scale, gray paper, noise)
3. Detecting the grid size and converting to SVG
4. Comparing the recovered tiles with the original modules

Run with: python examples/demo.py
"""

import sys
from pathlib import Path
import time
import numpy as np
from PIL import Image

# Add src to path for development
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from qr_image2svg import QRConverter, MarkerNotFoundError
from qr_image2svg.synthetic import render_modules, symbol_modules

# name -> (QR version, module size in px); sizes keep module * 1.07 away from x.5
DEMO_CASES = {
    "version1": (1, 10),
    "version2": (2, 12),
    "version4": (4, 10),
}


def create_photo(version: int, module_size: int, seed: int, out_path: Path) -> np.ndarray:
    """
    Render a symbol, rescale it to an awkward size and add paper tone and noise.

    Returns:
        The clean module matrix the photo was made from
    """
    modules = symbol_modules(version, data_seed=seed)
    pixels = render_modules(modules, module_size=module_size, quiet_zone=3)

    # Awkward size so the converter has to rescale. Nearest keeps edges crisp;
    # bilinear blur plus noise can break the top row of the finder pattern.
    odd_size = int(pixels.shape[0] * 1.07)
    img = Image.fromarray(pixels).resize((odd_size, odd_size), Image.Resampling.NEAREST)

    rng = np.random.default_rng(seed)
    photo = np.asarray(img, dtype=np.float32)
    photo = photo * 0.85 + 20 + rng.normal(0, 6, photo.shape)
    photo = np.clip(photo, 0, 255).astype(np.uint8)

    rgb = np.stack([photo, photo, np.clip(photo.astype(np.int16) - 10, 0, 255).astype(np.uint8)], axis=-1)
    Image.fromarray(rgb).save(out_path)
    return modules


def run_demo():
    """Run the conversion demo."""
    print("=" * 60)
    print("QR Image to SVG - Demo")
    print("=" * 60)

    output_dir = Path(__file__).parent / "output"
    output_dir.mkdir(exist_ok=True)

    total_start = time.time()

    for name, (version, module_size) in DEMO_CASES.items():
        print(f"\n--- {name} ---")
        photo_path = output_dir / f"{name}.png"
        modules = create_photo(version, module_size, seed=version, out_path=photo_path)
        print(f"  Photo: {photo_path} ({modules.shape[0]} modules/axis)")

        start = time.time()
        converter = QRConverter(steps="auto")
        converter.load_image(photo_path)

        try:
            matrix = converter.convert()
        except MarkerNotFoundError as e:
            # module sizes near x.5 px can make the two size estimates disagree
            print(f"  Detection failed: {e.estimate.reason} (pass steps explicitly)")
            continue

        info = converter.preview()
        print(f"  Detected: {info['estimated_steps']} tiles/axis (version {info['estimated_version']})")
        print(f"  Geometry: {info['pixels_per_tile']} px/tile, rescaled={info['rescaled']}")

        if matrix.steps == modules.shape[0]:
            errors = int(np.sum(matrix.to_mask() != modules))
            print(f"  Tile errors: {errors} / {modules.size}")

        svg_path = output_dir / f"{name}.svg"
        converter.export_svg(svg_path)
        print(f"  Saved: {svg_path} in {(time.time() - start) * 1000:.1f}ms")

    total_time = time.time() - total_start

    print("\n" + "=" * 60)
    print(f"Demo complete! Total time: {total_time:.2f}s")
    print(f"Output files in: {output_dir}")
    print("=" * 60)

    return 0


if __name__ == "__main__":
    run_demo()
