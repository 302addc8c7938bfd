"""
Nesting of ring sections onto stock sheets.

Every ring layer leaves a hole; smaller layers of the same thickness can be
cut from the material inside that hole instead of from a fresh sheet. The
optimizer sorts all layers by bounding-box area and greedily builds chains
of concentric rings: the largest unplaced layer starts a sheet, the next
layer that fits its hole goes inside it, the next layer that fits *that*
layer's hole goes inside again, and so on. Each hole receives exactly one
ring; this is not general 2D bin packing.
"""
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
import shapely
from shapely import affinity
from shapely.geometry import Polygon
from shapely.ops import nearest_points

from geometry_primitives import bounds_size
from stone_section import JointSection, PositionedSection, StoneSection

logger = logging.getLogger(__name__)

# Containment slack for vertices lying on the hole boundary.
FIT_TOLERANCE = 1e-6


@dataclass(frozen=True)
class NestingConfig:
    """Cutting and production settings for nesting."""
    tool_diameter: float = 0.0      # clearance kept around a nested piece
    production_count: int = 1       # copies of every stone to manufacture

    def __post_init__(self):
        if self.tool_diameter < 0:
            raise ValueError(f"Tool diameter must not be negative: {self.tool_diameter}")
        if self.production_count < 1:
            raise ValueError(f"Production count must be >= 1: {self.production_count}")


@dataclass(frozen=True)
class NestingBin:
    """One sheet: a base layer and the rings nested inside it."""
    thickness: float
    elevation: float
    sections: Tuple[PositionedSection, ...]

    @property
    def base(self) -> PositionedSection:
        return self.sections[0]

    @property
    def nested(self) -> Tuple[PositionedSection, ...]:
        return self.sections[1:]


@dataclass(frozen=True)
class LayoutItem:
    """Where one positioned layer goes in an exported drawing."""
    name: str
    placed: PositionedSection
    x_offset: float
    elevation: float
    unfit: bool

    @property
    def shift(self) -> Tuple[float, float]:
        return (self.placed.shift[0] + self.x_offset, self.placed.shift[1])


@dataclass
class NestingResult:
    """Sheet assignment and material statistics."""
    bins: List[NestingBin] = field(default_factory=list)
    unable_to_fit: List[StoneSection] = field(default_factory=list)
    max_sheet_area: Dict[float, float] = field(default_factory=dict)  # per thickness
    sheet_counts: Dict[float, int] = field(default_factory=dict)      # per thickness
    useful_volume: float = 0.0
    layers_requested: int = 0

    @property
    def total_sheets(self) -> int:
        return len(self.bins) + len(self.unable_to_fit)

    @property
    def total_stock_volume(self) -> float:
        return float(sum(
            area * thickness * self.sheet_counts.get(thickness, 0)
            for thickness, area in self.max_sheet_area.items()
        ))

    @property
    def volume_efficiency(self) -> float:
        stock = self.total_stock_volume
        return self.useful_volume / stock if stock > 0 else 0.0

    @property
    def compactization_factor(self) -> float:
        sheets = self.total_sheets
        return self.layers_requested / sheets if sheets else 0.0

    @property
    def positioned_elevations(self) -> List[List[float]]:
        """Source elevations of the layers in every bin."""
        return [[p.section.elevation for p in b.sections] for b in self.bins]

    @property
    def non_fit_elevations(self) -> List[float]:
        return [s.elevation for s in self.unable_to_fit]

    def layout(
        self,
        bin_spacing: float = 1.2,
        unfit_spacing: float = 1.1,
    ) -> List["LayoutItem"]:
        """Drawing placement: bins side by side along x, then unfitted layers.

        Bins advance by *bin_spacing* times the base width, unfitted layers
        by *unfit_spacing* times their own width; unfitted layers are stacked
        in elevation since each needs its own sheet.
        """
        items: List[LayoutItem] = []
        x_offset = 0.0
        for b, group in enumerate(self.bins):
            for k, placed in enumerate(group.sections):
                items.append(LayoutItem(
                    f"BIN{b:03d}_{k:02d}_{placed.section.name}",
                    placed, x_offset, placed.elevation, False,
                ))
            x_offset += bounds_size(group.base.section.outer_polygon)[0] * bin_spacing

        elevation = 0.0
        for u, section in enumerate(self.unable_to_fit):
            items.append(LayoutItem(
                f"UNFIT{u:03d}_{section.name}",
                PositionedSection(section, 0.0), x_offset, elevation, True,
            ))
            x_offset += bounds_size(section.outer_polygon)[0] * unfit_spacing
            elevation += section.thickness
        return items

    def to_dict(self) -> Dict[str, object]:
        return {
            "layers_requested": self.layers_requested,
            "total_sheets": self.total_sheets,
            "bins": len(self.bins),
            "unable_to_fit": len(self.unable_to_fit),
            "total_stock_volume": self.total_stock_volume,
            "useful_volume": self.useful_volume,
            "volume_efficiency": self.volume_efficiency,
            "compactization_factor": self.compactization_factor,
            "sheets_per_thickness": {str(k): v for k, v in self.sheet_counts.items()},
            "bin_contents": [
                [p.section.name for p in b.sections] for b in self.bins
            ],
            "unable_to_fit_names": [s.name for s in self.unable_to_fit],
        }


# ─── Shift-fit test ──────────────────────────────────────────────────────────

def fits_with_shift(
    hole: Polygon,
    candidate: Polygon,
    clearance: float = 0.0,
) -> Tuple[bool, Tuple[float, float]]:
    """Test whether *candidate* fits in *hole* after one rigid translation.

    The hole is shrunk by *clearance* so that the tool keeps that gap around
    the nested piece. The candidate vertex that lies outside the shrunk hole
    and farthest from its boundary is moved onto the nearest boundary point;
    the candidate fits if, after that single move, it lies inside.

    Returns:
        (fits, (dx, dy)) where the shift is (0, 0) when rejected.
    """
    no_shift = (0.0, 0.0)
    if hole is None or hole.is_empty or candidate.is_empty:
        return False, no_shift

    hole_w, hole_h = bounds_size(hole)
    cand_w, cand_h = bounds_size(candidate)
    if cand_w > hole_w + FIT_TOLERANCE or cand_h > hole_h + FIT_TOLERANCE:
        return False, no_shift

    target = hole.buffer(-clearance) if clearance > 0 else hole
    if target.is_empty:
        return False, no_shift
    if target.geom_type == "MultiPolygon":
        target = max(target.geoms, key=lambda g: g.area)

    tolerance = FIT_TOLERANCE * max(1.0, hole_w, hole_h)
    slack = target.buffer(tolerance)
    coords = np.asarray(candidate.exterior.coords[:-1], dtype=float)
    points = shapely.points(coords)

    outside = ~shapely.covers(slack, points)
    shift = no_shift
    if outside.any():
        distances = shapely.distance(points[outside], target.exterior)
        worst = points[outside][int(np.argmax(distances))]
        nearest, _ = nearest_points(target.exterior, worst)
        shift = (nearest.x - worst.x, nearest.y - worst.y)

    moved = affinity.translate(candidate, shift[0], shift[1])
    if slack.covers(moved):
        return True, (float(shift[0]), float(shift[1]))
    return False, no_shift


# ─── Optimizer ───────────────────────────────────────────────────────────────

def _target_hole(placed: PositionedSection) -> Optional[Polygon]:
    """Hole of a placed section in sheet coordinates."""
    if not isinstance(placed.section, JointSection):
        return None
    hole = placed.section.hole_polygon
    dx, dy = placed.shift
    if dx == 0 and dy == 0:
        return hole
    return affinity.translate(hole, dx, dy)


def _fill_thickness(
    pool: List[StoneSection],
    thickness: float,
    config: NestingConfig,
    result: NestingResult,
) -> None:
    """Consume *pool* (sorted largest first) into bins of one thickness."""
    elevation = 0.0
    while pool:
        current = [PositionedSection(pool.pop(0), elevation)]
        i = 0
        while i < len(pool):
            hole = _target_hole(current[-1])
            if hole is None:
                break
            item = pool[i]
            fits, (dx, dy) = fits_with_shift(
                hole, item.outer_polygon, config.tool_diameter,
            )
            if fits:
                # The hole was already moved into sheet coordinates.
                current.append(PositionedSection(item, elevation, (dx, dy)))
                result.useful_volume += item.ring_area * item.thickness
                pool.pop(i)
            else:
                i += 1

        if len(current) > 1:
            result.bins.append(NestingBin(thickness, elevation, tuple(current)))
            elevation += thickness
        else:
            result.unable_to_fit.append(current[0].section)
        result.sheet_counts[thickness] = result.sheet_counts.get(thickness, 0) + 1


def nest_sections(
    sections: Sequence[StoneSection],
    config: Optional[NestingConfig] = None,
) -> NestingResult:
    """Assign sections (times the production count) to sheets.

    Args:
        sections: layers from one or more stones.
        config: tool clearance and production count.

    Returns:
        NestingResult; every requested layer copy is either in a bin or in
        ``unable_to_fit``.
    """
    if config is None:
        config = NestingConfig()

    result = NestingResult(layers_requested=len(sections) * config.production_count)
    ordered = sorted(sections, key=lambda s: s.bounds_area, reverse=True)

    pools: "OrderedDict[float, List[StoneSection]]" = OrderedDict()
    for item in ordered:
        area = item.bounds_area
        known = result.max_sheet_area.get(item.thickness)
        if known is None or area > known:
            result.max_sheet_area[item.thickness] = area
        pools.setdefault(item.thickness, []).extend([item] * config.production_count)

    for thickness, pool in pools.items():
        _fill_thickness(pool, thickness, config, result)

    logger.info(
        "Nested %d layers onto %d sheets (%d bins, %d unable to fit), efficiency %.1f%%",
        result.layers_requested, result.total_sheets, len(result.bins),
        len(result.unable_to_fit), result.volume_efficiency * 100,
    )
    return result


def nest_stones(stones: Iterable, config: Optional[NestingConfig] = None) -> NestingResult:
    """Nest the layers of several approximated stones together."""
    sections: List[StoneSection] = []
    for stone in stones:
        sections.extend(stone.sections)
    return nest_sections(sections, config)
