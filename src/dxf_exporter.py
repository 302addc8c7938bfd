"""
DXF export for stone layers and milling layouts.

Uses ezdxf to produce DXF files with one layer per ring role:
  - OUTER (red, ACI 1): outer cut of every positioned layer
  - INNER (blue, ACI 5): joint hole of every positioned layer
  - UNABLE_TO_FIT (yellow, ACI 2): layers that needed a sheet of their own
  - LABEL (grey, ACI 8): layer names

Every layer-in-bin becomes one DXF group holding its polylines. Polylines
carry their elevation unless the layout is flattened. Format: R2010.
"""
import logging
import os
from dataclasses import dataclass
from typing import Optional, Tuple

import ezdxf
from ezdxf.enums import TextEntityAlignment

from geometry_primitives import shifted_coords
from nesting_optimizer import NestingResult
from stone_errors import ExportError
from stone_section import JointSection, PositionedSection

logger = logging.getLogger(__name__)


@dataclass
class DXFExportConfig:
    """Configuration for DXF export."""
    outer_layer: str = "OUTER"
    inner_layer: str = "INNER"
    unfit_layer: str = "UNABLE_TO_FIT"
    label_layer: str = "LABEL"
    outer_color: int = 1     # ACI red
    inner_color: int = 5     # ACI blue
    unfit_color: int = 2     # ACI yellow
    label_color: int = 8     # ACI grey
    add_labels: bool = True
    label_height: float = 5.0
    bin_spacing: float = 1.2     # bin pitch as a multiple of the base width
    unfit_spacing: float = 1.1


def stone_to_dxf(
    stone,
    filepath: str,
    config: Optional[DXFExportConfig] = None,
) -> str:
    """Export all layers of one approximated stone at their elevations.

    Args:
        stone: ApproximatedStone.
        filepath: Output DXF file path.
        config: DXF export settings.

    Returns:
        Path to created DXF file.
    """
    if config is None:
        config = DXFExportConfig()

    doc, msp = _new_document(config)
    for placed in stone.positioned_sections():
        _add_positioned(
            doc, msp, placed, placed.section.name, config,
            elevation=placed.elevation,
        )
    return _save(doc, filepath, "Stone DXF export")


def nesting_to_dxf(
    result: NestingResult,
    filepath: str,
    flatten: bool = False,
    config: Optional[DXFExportConfig] = None,
) -> str:
    """Export a milling layout: bins side by side, then unfitted layers.

    Args:
        result: Output of the nesting optimizer.
        filepath: Output DXF file path.
        flatten: Put everything at elevation 0 instead of stacking sheets.
        config: DXF export settings.

    Returns:
        Path to created DXF file.
    """
    if config is None:
        config = DXFExportConfig()

    doc, msp = _new_document(config)
    for item in result.layout(config.bin_spacing, config.unfit_spacing):
        layers = (config.unfit_layer, config.unfit_layer) if item.unfit else None
        _add_positioned(
            doc, msp, item.placed, item.name, config,
            elevation=0.0 if flatten else item.elevation,
            x_offset=item.x_offset,
            layers=layers,
        )
    return _save(doc, filepath, "Milling DXF export")


# ─── Internal helpers ────────────────────────────────────────────────────────

def _new_document(config: DXFExportConfig):
    doc = ezdxf.new("R2010")
    doc.units = ezdxf.units.MM
    _setup_layers(doc, config)
    return doc, doc.modelspace()


def _setup_layers(doc, config: DXFExportConfig) -> None:
    """Create the ring-role and label layers."""
    doc.layers.add(config.outer_layer, color=config.outer_color)
    doc.layers.add(config.inner_layer, color=config.inner_color)
    doc.layers.add(config.unfit_layer, color=config.unfit_color)
    doc.layers.add(config.label_layer, color=config.label_color)


def _add_positioned(
    doc,
    msp,
    placed: PositionedSection,
    group_name: str,
    config: DXFExportConfig,
    elevation: float = 0.0,
    x_offset: float = 0.0,
    layers: Optional[Tuple[str, str]] = None,
) -> None:
    """Add one positioned layer as a DXF group of closed polylines."""
    outer_layer, inner_layer = layers or (config.outer_layer, config.inner_layer)
    shift = (placed.shift[0] + x_offset, placed.shift[1])
    entities = []

    entity = _add_ring(msp, placed.section.outer, shift, outer_layer, elevation)
    if entity is not None:
        entities.append(entity)
    if isinstance(placed.section, JointSection):
        entity = _add_ring(msp, placed.section.hole, shift, inner_layer, elevation)
        if entity is not None:
            entities.append(entity)

    if config.add_labels:
        centroid = placed.section.outer_polygon.centroid
        if not centroid.is_empty:
            label = msp.add_text(
                placed.section.name,
                height=config.label_height,
                dxfattribs={"layer": config.label_layer},
            )
            label.set_placement(
                (centroid.x + shift[0], centroid.y + shift[1], elevation),
                align=TextEntityAlignment.MIDDLE_CENTER,
            )
            entities.append(label)

    if entities:
        group = doc.groups.new(group_name)
        group.set_data(entities)


def _add_ring(msp, points, shift, layer: str, elevation: float):
    """Add a boundary as a closed LWPolyline; None for degenerate rings."""
    coords = shifted_coords(points, shift)
    if len(coords) < 3:
        return None
    return msp.add_lwpolyline(
        coords,
        close=True,
        dxfattribs={"layer": layer, "elevation": float(elevation)},
    )


def _save(doc, filepath: str, operation: str) -> str:
    try:
        os.makedirs(os.path.dirname(filepath) or ".", exist_ok=True)
        doc.saveas(filepath)
    except OSError as exc:
        raise ExportError(operation, filepath, exc) from exc
    logger.info("Exported DXF: %s", filepath)
    return filepath
