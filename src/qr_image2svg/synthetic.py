"""
Synthetic QR-style symbols for demos and tests.

Builds module matrices with the structural parts the converter relies on
(finder patterns, separators, timing lines, alignment pattern) and renders
them to grayscale pixels with a quiet zone. The data area is either blank
or filled with seeded noise; no payload is encoded.
"""

from typing import Optional
import numpy as np

from .markers import steps_for_version

INK = 0
PAPER = 255


def _finder() -> np.ndarray:
    pattern = np.ones((7, 7), dtype=bool)
    pattern[1:6, 1:6] = False
    pattern[2:5, 2:5] = True
    return pattern


def _alignment() -> np.ndarray:
    pattern = np.ones((5, 5), dtype=bool)
    pattern[1:4, 1:4] = False
    pattern[2, 2] = True
    return pattern


def symbol_modules(version: int = 1, data_seed: Optional[int] = None) -> np.ndarray:
    """
    Build the module matrix of a synthetic symbol.

    Args:
        version: QR version (1-40), giving 4 * version + 17 modules per axis
        data_seed: Seed for random data modules; None leaves the data area blank

    Returns:
        bool array of shape (n, n) indexed [row, col], True = ink
    """
    n = steps_for_version(version)
    modules = np.zeros((n, n), dtype=bool)
    reserved = np.zeros((n, n), dtype=bool)

    for row, col in ((0, 0), (0, n - 7), (n - 7, 0)):
        modules[row:row + 7, col:col + 7] = _finder()

    # finders with separators and format strips
    reserved[:9, :9] = True
    reserved[:9, n - 8:] = True
    reserved[n - 8:, :9] = True

    timing = np.arange(8, n - 8)
    modules[6, timing] = timing % 2 == 0
    modules[timing, 6] = timing % 2 == 0
    reserved[6, :] = True
    reserved[:, 6] = True

    if version >= 2:
        center = n - 7
        modules[center - 2:center + 3, center - 2:center + 3] = _alignment()
        reserved[center - 2:center + 3, center - 2:center + 3] = True

    modules[n - 8, 8] = True
    reserved[n - 8, 8] = True

    if data_seed is not None:
        rng = np.random.default_rng(data_seed)
        noise = rng.random((n, n)) < 0.5
        modules[~reserved] = noise[~reserved]

    return modules


def render_modules(modules: np.ndarray, module_size: int = 10, quiet_zone: int = 4) -> np.ndarray:
    """
    Rasterize a module matrix.

    Args:
        modules: bool array (n, n), True = ink
        module_size: Edge length of one module in pixels
        quiet_zone: Border width in modules

    Returns:
        uint8 grayscale image of shape ((n + 2 * quiet_zone) * module_size,) * 2
    """
    block = np.ones((module_size, module_size), dtype=np.uint8)
    pixels = np.where(np.kron(modules.astype(np.uint8), block) > 0, INK, PAPER).astype(np.uint8)

    border = quiet_zone * module_size
    return np.pad(pixels, border, mode="constant", constant_values=PAPER)


def render_symbol(
    version: int = 1,
    module_size: int = 10,
    quiet_zone: int = 4,
    data_seed: Optional[int] = 0
) -> np.ndarray:
    """Build and rasterize a synthetic symbol in one call."""
    return render_modules(symbol_modules(version, data_seed), module_size, quiet_zone)
