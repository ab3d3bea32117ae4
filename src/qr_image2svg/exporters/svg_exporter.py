"""
SVG Exporter

Renders a TileMatrix as an SVG document in a unit grid coordinate space:
the viewBox is steps x steps and every filled tile becomes a 1x1 rect at
its render coordinate. Rects are written in matrix order.
"""

from pathlib import Path
from typing import Union

from ..sampler import TileMatrix


class SVGExporter:
    """
    Export a tile matrix to SVG.

    Example:
        exporter = SVGExporter()
        svg = exporter.render(matrix)
        exporter.export(matrix, "output.svg")
    """

    def __init__(self, fill: str = "#000000", crisp_edges: bool = True, newline: str = "\n"):
        """
        Initialize the exporter.

        Args:
            fill: Fill color of the tile rects
            crisp_edges: Ask renderers to disable antialiasing
            newline: Line separator used in the document
        """
        self.fill = fill
        self.crisp_edges = crisp_edges
        self.newline = newline

    def render(self, matrix: TileMatrix) -> str:
        """
        Build the SVG document.

        Args:
            matrix: Filled tiles to draw

        Returns:
            SVG markup
        """
        size = matrix.steps
        style = ""
        if self.crisp_edges:
            style = (
                f' style="shape-rendering: optimizespeed; shape-rendering: crispedges;'
                f' min-width: {size * 2}px;"'
            )

        lines = [
            f'<svg xmlns="http://www.w3.org/2000/svg" version="1.2" baseProfile="full"'
            f' viewBox="0 0 {size} {size}"{style}>',
            f'\t<g fill="{self.fill}">',
        ]
        for x, y in matrix:
            lines.append(f'\t\t<rect x="{x}" y="{y}" width="1" height="1" />')
        lines.append("\t</g>")
        lines.append("</svg>")

        return self.newline.join(lines)

    def export(self, matrix: TileMatrix, output_path: Union[str, Path]) -> str:
        """
        Write the SVG document to a file.

        Returns:
            The SVG markup that was written
        """
        svg = self.render(matrix)
        Path(output_path).write_text(svg, encoding="utf-8")
        return svg
