"""
SVG export of milling layouts.

Produces one flat drawing of every bin and unfitted layer, placed the same
way as the milling DXF. SVG y grows downwards, so coordinates are flipped.
"""

import logging
import os
from typing import List, Tuple

import numpy as np
import svgwrite

from nesting_optimizer import LayoutItem, NestingResult
from stone_errors import ExportError
from stone_section import JointSection

logger = logging.getLogger(__name__)

STYLE = """
    .cut { stroke: #ff0000; stroke-width: 0.5; fill: none; }
    .hole { stroke: #0000ff; stroke-width: 0.5; fill: none; }
    .unfit { stroke: #c8a000; stroke-width: 0.5; fill: none; }
    .label { font-size: 6px; font-family: Arial, sans-serif; fill: #333; }
"""


def _layout_bounds(items: List[LayoutItem]) -> Tuple[float, float, float, float]:
    """(min_x, min_y, max_x, max_y) over every outer ring in the layout."""
    rings = [item.placed.section.outer + np.asarray(item.shift) for item in items]
    stacked = np.vstack(rings)
    min_x, min_y = stacked.min(axis=0)
    max_x, max_y = stacked.max(axis=0)
    return float(min_x), float(min_y), float(max_x), float(max_y)


def nesting_to_svg(
    result: NestingResult,
    filepath: str,
    add_labels: bool = True,
    margin: float = 10.0,  # mm
    bin_spacing: float = 1.2,
    unfit_spacing: float = 1.1,
) -> str:
    """
    Export a nesting result as a single flattened SVG.

    Args:
        result: Output of the nesting optimizer
        filepath: Output SVG file path
        add_labels: Add layer names at the ring centroids
        margin: Margin around the layout (mm)
        bin_spacing: Bin pitch as a multiple of the base width
        unfit_spacing: Pitch of unfitted layers as a multiple of their width

    Returns:
        Path to created SVG file
    """
    items = result.layout(bin_spacing, unfit_spacing)
    if items:
        min_x, min_y, max_x, max_y = _layout_bounds(items)
    else:
        min_x = min_y = max_x = max_y = 0.0

    width = max_x - min_x + 2 * margin
    height = max_y - min_y + 2 * margin

    def to_svg(points: np.ndarray, shift) -> List[Tuple[float, float]]:
        pts = points + np.asarray(shift, dtype=float)
        return [
            (float(margin + x - min_x), float(margin + max_y - y))
            for x, y in pts
        ]

    dwg = svgwrite.Drawing(
        filepath,
        size=(f"{width}mm", f"{height}mm"),
        viewBox=f"0 0 {width} {height}",
    )
    dwg.defs.add(dwg.style(STYLE))

    for item in items:
        section = item.placed.section
        group = dwg.g(id=item.name)
        outer_class = "unfit" if item.unfit else "cut"
        group.add(dwg.polygon(to_svg(section.outer, item.shift), class_=outer_class))
        if isinstance(section, JointSection):
            hole_class = "unfit" if item.unfit else "hole"
            group.add(dwg.polygon(to_svg(section.hole, item.shift), class_=hole_class))

        if add_labels:
            centroid = section.outer_polygon.centroid
            if not centroid.is_empty:
                (lx, ly), = to_svg(np.array([[centroid.x, centroid.y]]), item.shift)
                group.add(dwg.text(
                    section.name,
                    insert=(lx, ly),
                    class_="label",
                    text_anchor="middle",
                ))
        dwg.add(group)

    try:
        os.makedirs(os.path.dirname(filepath) or ".", exist_ok=True)
        dwg.save()
    except OSError as exc:
        raise ExportError("Milling SVG export", filepath, exc) from exc
    logger.info("Exported SVG: %s", filepath)
    return filepath
