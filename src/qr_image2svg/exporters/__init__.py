"""
Export modules for vector formats.

Supported formats:
- SVG (.svg) - one 1x1 rect per filled tile in a steps x steps viewBox
"""

from .svg_exporter import SVGExporter

__all__ = ["SVGExporter"]
