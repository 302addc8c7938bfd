"""
Approximate a stone scan with a stack of sheet-thickness ring layers.

Algorithm:
1. Check that the stone is at least two sheets tall.
2. Centre a stack of ceil(extent / thickness) layers on the mesh midpoint.
3. Raycast a boundary at every layer boundary elevation.
4. Each layer's outer boundary is the index-wise union of the two boundaries
   bracketing it, so no stone material present at either elevation is cut
   away.
5. Interior layers get a hole: the index-wise intersection of the same two
   boundaries, inset by the joint overlap. Because the hole is smaller than
   both neighbours, stacked layers always share a glue joint whether the
   stone grows or shrinks with height.
6. The first and last layer are solid caps.
"""
import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

import numpy as np
import trimesh

from geometry_primitives import boundary_intersection, boundary_union
from point_offset import CIRCUMCIRCLE, OFFSET_METHODS
from stone_errors import StoneTooThinError
from stone_mesh import SectorConfig, StoneMeshData, section_points
from stone_section import (
    JointSection,
    PositionedSection,
    StoneSection,
    build_cap_section,
    build_joint_section,
)

logger = logging.getLogger(__name__)

MIN_LAYERS = 2
# Raycast elevations are kept this fraction of the extent away from the caps.
_CAP_CLEARANCE = 1e-6


@dataclass(frozen=True)
class SlicingConfig:
    """Sheet stock and joint settings for slicing one stone."""
    thickness: float                    # sheet thickness = layer height
    overlap: float                      # joint inset between outer boundary and hole
    angle_step_deg: float = 1.0         # ray fan resolution
    offset_method: str = CIRCUMCIRCLE   # "circumcircle" or "normal"

    def __post_init__(self):
        if self.thickness <= 0:
            raise ValueError(f"Sheet thickness must be positive: {self.thickness}")
        if self.overlap < 0:
            raise ValueError(f"Overlap must not be negative: {self.overlap}")
        if self.offset_method not in OFFSET_METHODS:
            raise ValueError(
                f"Unknown offset method {self.offset_method!r}; use one of {OFFSET_METHODS}"
            )
        # Validates the angle step.
        SectorConfig(self.angle_step_deg)

    @property
    def sectors(self) -> SectorConfig:
        return SectorConfig(self.angle_step_deg)


class ApproximatedStone:
    """An ordered stack of layers approximating one stone."""

    def __init__(
        self,
        sections: Sequence[StoneSection],
        stone_id: str = "stone",
        elevation_offset: float = 0.0,
    ):
        self.sections = tuple(sections)
        self.stone_id = stone_id
        # Vertical placement when several stones are shown together.
        self.elevation_offset = float(elevation_offset)

    @classmethod
    def from_mesh(
        cls,
        data: StoneMeshData,
        config: SlicingConfig,
        stone_id: Optional[str] = None,
    ) -> "ApproximatedStone":
        """Slice *data* into layers.

        Raises:
            StoneTooThinError: the mesh is less than two sheets tall. Raised
                before any ray is cast.
        """
        stone_id = stone_id or data.name
        z_min, z_max = data.z_bounds
        extent = z_max - z_min
        fraction = extent / config.thickness
        if fraction < MIN_LAYERS:
            raise StoneTooThinError(extent, config.thickness)

        count = int(math.ceil(fraction))
        step = config.thickness
        start = (z_min + z_max) / 2.0 - count * step / 2.0
        levels = start + step * np.arange(count + 1)

        margin = max(extent * _CAP_CLEARANCE, 1e-9)
        ray_levels = np.clip(levels, z_min + margin, z_max - margin)
        sectors = config.sectors
        raw = [section_points(data, float(z), sectors) for z in ray_levels]

        sections: List[StoneSection] = []
        for i in range(count):
            outer = boundary_union(raw[i], raw[i + 1])
            elevation = float(levels[i])
            if i == 0 or i == count - 1:
                section = build_cap_section(outer, step, elevation, stone_id, i)
            else:
                inner = boundary_intersection(raw[i], raw[i + 1])
                section = build_joint_section(
                    outer, inner, config.overlap, step, elevation,
                    method=config.offset_method, stone_id=stone_id, index=i,
                )
            sections.append(section)

        logger.info(
            "%s: %d layers of %.3f from z=%.3f (extent %.3f)",
            stone_id, count, step, start, extent,
        )
        return cls(sections, stone_id=stone_id)

    # ─── Accessors ───────────────────────────────────────────────────────────

    def __len__(self) -> int:
        return len(self.sections)

    def __iter__(self):
        return iter(self.sections)

    @property
    def total_height(self) -> float:
        return float(sum(s.thickness for s in self.sections))

    @property
    def bottom(self) -> float:
        if not self.sections:
            return self.elevation_offset
        return self.sections[0].elevation + self.elevation_offset

    @property
    def top(self) -> float:
        return self.bottom + self.total_height

    def positioned_section(self, i: int) -> PositionedSection:
        section = self.sections[i]
        return PositionedSection(section, section.elevation + self.elevation_offset)

    def positioned_sections(self) -> List[PositionedSection]:
        return [self.positioned_section(i) for i in range(len(self.sections))]

    # ─── Preview mesh ────────────────────────────────────────────────────────

    def to_mesh(self) -> trimesh.Trimesh:
        """Closed surface of the stacked layers (outer boundaries only).

        Every layer contributes a bottom and a top ring. Consecutive rings are
        joined by ruled strips (the strip between a layer's top and the next
        layer's bottom is the horizontal step of the terrace), and the first
        and last ring are closed with fans around the z-axis.
        """
        if not self.sections:
            return trimesh.Trimesh()

        rings = []
        for pos in self.positioned_sections():
            outer = pos.section.outer
            for z in (pos.elevation, pos.top):
                rings.append(np.column_stack([outer, np.full(len(outer), z)]))

        n = len(rings[0])
        ring_count = len(rings)
        vertices = np.vstack(rings + [
            [[0.0, 0.0, rings[0][0, 2]]],
            [[0.0, 0.0, rings[-1][0, 2]]],
        ])
        bottom_center = ring_count * n
        top_center = bottom_center + 1

        k = np.arange(n)
        k_next = (k + 1) % n
        faces = [np.column_stack([np.full(n, bottom_center), k_next, k])]

        for r in range(ring_count - 1):
            lo = r * n
            hi = (r + 1) * n
            faces.append(np.column_stack([lo + k, lo + k_next, hi + k_next]))
            faces.append(np.column_stack([lo + k, hi + k_next, hi + k]))

        last = (ring_count - 1) * n
        faces.append(np.column_stack([np.full(n, top_center), last + k, last + k_next]))

        return trimesh.Trimesh(vertices=vertices, faces=np.vstack(faces), process=False)

    def to_dict(self) -> Dict[str, object]:
        """JSON-friendly layer listing for run artifacts."""
        return {
            "stone_id": self.stone_id,
            "layers": len(self.sections),
            "total_height": self.total_height,
            "elevation_offset": self.elevation_offset,
            "sections": [
                {
                    "name": s.name,
                    "kind": type(s).__name__,
                    "elevation": s.elevation,
                    "thickness": s.thickness,
                    "overlap": s.overlap if isinstance(s, JointSection) else None,
                    "bounds_area": s.bounds_area,
                    "ring_area": s.ring_area,
                }
                for s in self.sections
            ],
        }


def stack_stones(stones: Sequence[ApproximatedStone], gap: float = 0.0) -> None:
    """Set elevation offsets so that stones sit on top of each other."""
    cursor = 0.0
    for stone in stones:
        if not stone.sections:
            continue
        stone.elevation_offset = cursor - stone.sections[0].elevation
        cursor = stone.top + gap
