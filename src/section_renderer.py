"""Raster previews of stone sections (matplotlib, Agg backend)."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

import numpy as np

from stone_errors import ExportError
from stone_section import JointSection

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RenderConfig:
    """Raster output settings.

    One drawing unit maps to *pixels_per_unit* pixels, so a section image is
    as large as the section's bounding box at that scale.
    """
    pen_width: float = 5.0          # outline width in pixels
    dpi: int = 100
    pixels_per_unit: float = 1.0
    outer_color: str = "black"
    hole_color: str = "black"
    contact_columns: int = 4
    contact_cell_inches: float = 2.5

    def __post_init__(self):
        if self.pen_width <= 0:
            raise ValueError(f"Pen width must be positive: {self.pen_width}")
        if self.dpi <= 0 or self.pixels_per_unit <= 0:
            raise ValueError("dpi and pixels_per_unit must be positive")
        if self.contact_columns < 1:
            raise ValueError(f"Contact sheet needs at least one column: {self.contact_columns}")


def _closed(points: np.ndarray) -> np.ndarray:
    return np.vstack([points, points[:1]])


def _draw_section(ax, section, config: RenderConfig, linewidth: float) -> None:
    outer = _closed(section.outer)
    ax.plot(outer[:, 0], outer[:, 1], color=config.outer_color, linewidth=linewidth)
    if isinstance(section, JointSection):
        hole = _closed(section.hole)
        ax.plot(hole[:, 0], hole[:, 1], color=config.hole_color, linewidth=linewidth)


def _save_figure(fig, path: str, dpi: int, operation: str) -> str:
    import matplotlib.pyplot as plt

    out = Path(path)
    try:
        out.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(str(out), dpi=dpi, facecolor="white")
    except OSError as exc:
        raise ExportError(operation, str(out), exc) from exc
    finally:
        plt.close(fig)
    logger.info("Rendered %s", out)
    return str(out)


def render_section_png(section, path: str, config: Optional[RenderConfig] = None) -> str:
    """Draw the outer and hole outline of *section* on a white image.

    The image covers the bounding box of the outer boundary.
    """
    import matplotlib
    matplotlib.use("Agg")
    import matplotlib.pyplot as plt

    config = config or RenderConfig()
    min_x, min_y = section.outer.min(axis=0)
    max_x, max_y = section.outer.max(axis=0)
    width_px = max(1, int(math.ceil((max_x - min_x) * config.pixels_per_unit)))
    height_px = max(1, int(math.ceil((max_y - min_y) * config.pixels_per_unit)))

    fig = plt.figure(figsize=(width_px / config.dpi, height_px / config.dpi))
    ax = fig.add_axes([0.0, 0.0, 1.0, 1.0])
    ax.set_axis_off()
    # Points per pixel at this dpi.
    _draw_section(ax, section, config, config.pen_width * 72.0 / config.dpi)
    ax.set_xlim(min_x, max_x)
    ax.set_ylim(min_y, max_y)
    return _save_figure(fig, path, config.dpi, "Section render")


def render_stone_png(stone, path: str, config: Optional[RenderConfig] = None) -> str:
    """Contact sheet with one panel per layer, bottom layer first."""
    import matplotlib
    matplotlib.use("Agg")
    import matplotlib.pyplot as plt

    config = config or RenderConfig()
    sections: Sequence = stone.sections
    count = max(1, len(sections))
    cols = min(config.contact_columns, count)
    rows = int(math.ceil(count / cols))
    cell = config.contact_cell_inches

    fig, axes = plt.subplots(rows, cols, figsize=(cols * cell, rows * cell), squeeze=False)
    flat: List = list(axes.ravel())

    if sections:
        cloud = np.vstack([s.outer for s in sections])
        radius = max(float(np.abs(cloud).max()) * 1.05, 1.0)
    else:
        radius = 1.0

    for ax, section in zip(flat, sections):
        _draw_section(ax, section, config, linewidth=1.0)
        ax.set_xlim(-radius, radius)
        ax.set_ylim(-radius, radius)
        ax.set_aspect("equal")
        ax.set_title(f"{section.name} z={section.elevation:.1f}", fontsize=8)
        ax.set_xticks([])
        ax.set_yticks([])
    for ax in flat[len(sections):]:
        ax.set_axis_off()

    fig.suptitle(f"{stone.stone_id}: {len(sections)} layers")
    fig.tight_layout()
    return _save_figure(fig, path, config.dpi, "Stone render")
