"""
Stone sections: one flat, ring-shaped layer cut from a sheet.

A section is either a CapSection (solid, used for the first and last layer)
or a JointSection whose hole is the neighbouring boundary inset by the joint
overlap. Only JointSection carries a hole; callers dispatch on the type.
Sections are immutable, point arrays included; placement on a sheet is
recorded separately in PositionedSection.

Builder contract: the caller decides which boundary is the outer one and
which is inset into the hole (the approximated stone always passes the
index-wise union as outer and the intersection as the inset source). The
builder never swaps or tests containment.
"""
import logging
from dataclasses import dataclass
from functools import cached_property
from typing import Optional, Tuple, Union

import numpy as np
from shapely.geometry import Polygon

from geometry_primitives import (
    as_boundary,
    boundary_to_polygon,
    bounds_area,
    clean_polygon,
    ring_polygon,
)
from point_offset import CIRCUMCIRCLE, offset_boundary
from self_intersection import repair_self_intersections

logger = logging.getLogger(__name__)


def _read_only(points) -> np.ndarray:
    """Private (N, 2) copy of *points* that rejects in-place writes."""
    arr = np.array(as_boundary(points), dtype=float)
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True, eq=False)
class _SectionBase:
    """Fields and derived geometry shared by both section kinds."""
    outer: np.ndarray          # (N, 2) boundary in ray order, read-only
    thickness: float
    elevation: float           # z of the layer bottom
    stone_id: str              # non-owning reference to the source stone
    index: int                 # position in the stone's layer list

    def __post_init__(self):
        # Cached polygons below would go stale if the points could change.
        object.__setattr__(self, "outer", _read_only(self.outer))

    @property
    def top(self) -> float:
        return self.elevation + self.thickness

    @property
    def name(self) -> str:
        return f"{self.stone_id}-{self.index:03d}"

    @cached_property
    def outer_polygon(self) -> Polygon:
        return boundary_to_polygon(self.outer)

    @cached_property
    def polygon(self) -> Polygon:
        return self.outer_polygon

    @cached_property
    def bounds_area(self) -> float:
        return bounds_area(self.outer_polygon)

    @property
    def ring_area(self) -> float:
        return float(self.polygon.area)

    @property
    def volume(self) -> float:
        return self.ring_area * self.thickness


@dataclass(frozen=True, eq=False)
class CapSection(_SectionBase):
    """A solid layer without a joint hole (first and last layer)."""


@dataclass(frozen=True, eq=False)
class JointSection(_SectionBase):
    """A ring layer whose hole overlaps the neighbouring layer."""
    hole: np.ndarray           # (N, 2) inset boundary, read-only
    overlap: float

    def __post_init__(self):
        super().__post_init__()
        object.__setattr__(self, "hole", _read_only(self.hole))

    @cached_property
    def polygon(self) -> Polygon:
        """Polygon-with-hole."""
        return ring_polygon(self.outer, self.hole)

    @cached_property
    def hole_polygon(self) -> Polygon:
        return boundary_to_polygon(self.hole)


StoneSection = Union[CapSection, JointSection]


@dataclass(frozen=True)
class PositionedSection:
    """A section placed on a sheet at an elevation slot, optionally shifted."""
    section: StoneSection
    elevation: float
    shift: Tuple[float, float] = (0.0, 0.0)

    @property
    def top(self) -> float:
        return self.elevation + self.section.thickness

    @property
    def outer(self) -> np.ndarray:
        return self.section.outer + np.asarray(self.shift, dtype=float)


# ─── Builders ────────────────────────────────────────────────────────────────

def build_cap_section(
    outer,
    thickness: float,
    elevation: float,
    stone_id: str = "stone",
    index: int = 0,
) -> CapSection:
    """Solid section from a single boundary."""
    return CapSection(
        outer=outer,
        thickness=float(thickness),
        elevation=float(elevation),
        stone_id=stone_id,
        index=index,
    )


def build_hole(inset_source, overlap: float, method: str = CIRCUMCIRCLE) -> Optional[np.ndarray]:
    """Inset a boundary by *overlap* and repair the fold-overs.

    Returns:
        Hole points, or None when the inset leaves no area.
    """
    source = as_boundary(inset_source)
    offset = offset_boundary(source, overlap, method)
    # Points pushed through the axis mean the inset is wider than the section.
    crossed = np.einsum("ij,ij->i", offset, source) <= 0
    if crossed.mean() > 0.5:
        return None
    repaired = repair_self_intersections(offset)
    if len(repaired) < 3:
        return None

    polygon = Polygon(repaired)
    if polygon.is_valid:
        return repaired if polygon.area > 1e-9 else None

    # The sweep missed some crossings; fall back to shapely's cleanup.
    clean = clean_polygon(polygon)
    if clean is None:
        return None
    return np.asarray(clean.exterior.coords[:-1], dtype=float)


def build_joint_section(
    outer,
    inset_source,
    overlap: float,
    thickness: float,
    elevation: float,
    method: str = CIRCUMCIRCLE,
    stone_id: str = "stone",
    index: int = 0,
) -> StoneSection:
    """Ring section: *outer* with *inset_source* inset by *overlap* as hole.

    If the inset collapses (overlap wider than the section) a CapSection is
    returned instead.
    """
    hole = build_hole(inset_source, overlap, method)
    if hole is None:
        logger.warning(
            "%s-%03d: overlap %.3f leaves no hole at z=%.3f, using a solid layer",
            stone_id, index, overlap, elevation,
        )
        return build_cap_section(outer, thickness, elevation, stone_id, index)

    return JointSection(
        outer=outer,
        thickness=float(thickness),
        elevation=float(elevation),
        stone_id=stone_id,
        index=index,
        hole=hole,
        overlap=float(overlap),
    )
