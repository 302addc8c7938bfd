"""
Mesh loading, spatial queries and radial sectioning.

A stone scan is loaded with trimesh and paired with a ray intersector whose
triangle R-tree is built up front. Sections are taken by casting a fan of
horizontal rays from the z-axis; boundary point *i* always belongs to ray
angle ``i * angle_step_deg`` so boundaries from different elevations can be
compared index by index.
"""
import logging
import os
from dataclasses import dataclass
from typing import Tuple

import numpy as np
import trimesh
from trimesh.ray.ray_triangle import RayMeshIntersector

from stone_errors import ExportError, MeshLoadError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SectorConfig:
    """Angular layout of the ray fan used for every section."""
    angle_step_deg: float = 1.0

    def __post_init__(self):
        if self.angle_step_deg <= 0 or self.angle_step_deg > 360:
            raise ValueError(f"Angle step must be in (0, 360]: {self.angle_step_deg}")
        ratio = 360.0 / self.angle_step_deg
        if abs(ratio - round(ratio)) > 1e-9:
            raise ValueError(
                f"Angle step {self.angle_step_deg} deg does not divide 360 evenly"
            )

    @property
    def sector_count(self) -> int:
        return int(np.floor(360.0 / self.angle_step_deg + 1e-9))

    def directions(self) -> np.ndarray:
        """(sector_count, 3) unit ray directions in the xy plane."""
        angles = np.radians(np.arange(self.sector_count) * self.angle_step_deg)
        return np.column_stack([np.cos(angles), np.sin(angles), np.zeros(len(angles))])


class StoneMeshData:
    """A read-only triangle mesh with its ray-query spatial index."""

    def __init__(self, mesh: trimesh.Trimesh, name: str = "stone"):
        self.mesh = mesh
        self.name = name
        # Build the triangle R-tree now so every query shares it.
        _ = mesh.triangles_tree
        self.intersector = RayMeshIntersector(mesh)

    @property
    def z_bounds(self) -> Tuple[float, float]:
        return float(self.mesh.bounds[0][2]), float(self.mesh.bounds[1][2])

    @property
    def vertical_extent(self) -> float:
        lo, hi = self.z_bounds
        return hi - lo

    def nearest_hits(
        self,
        origins: np.ndarray,
        directions: np.ndarray,
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Nearest triangle hit for each ray.

        Returns:
            (ray_indices, ray_parameters) for the rays that hit anything.
            Rays without a hit are simply absent.
        """
        index_tri, index_ray, locations = self.intersector.intersects_id(
            ray_origins=origins,
            ray_directions=directions,
            multiple_hits=False,
            return_locations=True,
        )
        if len(index_tri) == 0:
            return np.zeros(0, dtype=int), np.zeros(0, dtype=float)
        offsets = locations - origins[index_ray]
        params = np.einsum("ij,ij->i", offsets, directions[index_ray])
        return np.asarray(index_ray, dtype=int), params


def section_points(
    data: StoneMeshData,
    elevation: float,
    sectors: SectorConfig,
) -> np.ndarray:
    """Boundary polygon of *data* at z = *elevation*.

    Casts ``sectors.sector_count`` rays from (0, 0, elevation). The point for
    a ray with no hit is the zero vector; an open mesh therefore shows up as
    a degenerate radius rather than an error.

    Returns:
        (sector_count, 2) array of xy points in fixed angular order.
    """
    directions = sectors.directions()
    origins = np.tile([0.0, 0.0, float(elevation)], (len(directions), 1))
    points = np.zeros((len(directions), 2), dtype=float)

    ray_idx, params = data.nearest_hits(origins, directions)
    hits = origins[ray_idx] + directions[ray_idx] * params[:, None]
    points[ray_idx] = hits[:, :2]

    misses = len(directions) - len(np.unique(ray_idx))
    if misses:
        logger.debug(
            "%s: %d of %d rays missed at z=%.3f",
            data.name, misses, len(directions), elevation,
        )
    return points


def load_stone_mesh(filepath: str, recenter: bool = False) -> StoneMeshData:
    """Load a mesh file and build its spatial index.

    Scenes (GLB, multi-object OBJ) collapse to their largest mesh. With
    *recenter*, the mesh is translated so the centre of its xy bounding box
    sits on the z-axis, which radial sectioning requires.

    Raises:
        MeshLoadError: file missing, unreadable, or without triangles.
    """
    if not os.path.isfile(filepath):
        raise MeshLoadError(f"Mesh file not found: {filepath}")
    try:
        scene_or_mesh = trimesh.load(filepath)
    except Exception as exc:
        raise MeshLoadError(f"Unable to read mesh {filepath}: {exc}") from exc

    if isinstance(scene_or_mesh, trimesh.Scene):
        meshes = [
            g for g in scene_or_mesh.geometry.values()
            if isinstance(g, trimesh.Trimesh)
        ]
        if not meshes:
            raise MeshLoadError(f"No triangle mesh found in scene: {filepath}")
        mesh = max(meshes, key=lambda m: len(m.faces))
    elif isinstance(scene_or_mesh, trimesh.Trimesh):
        mesh = scene_or_mesh
    else:
        raise MeshLoadError(f"Unsupported mesh object: {type(scene_or_mesh)}")

    if len(mesh.faces) == 0:
        raise MeshLoadError(f"Mesh has no faces: {filepath}")

    if recenter:
        center = (mesh.bounds[0] + mesh.bounds[1]) / 2.0
        mesh.apply_translation([-center[0], -center[1], 0.0])
        logger.info("Recentered %s by (%.3f, %.3f)", filepath, -center[0], -center[1])

    name = os.path.splitext(os.path.basename(filepath))[0]
    logger.info(
        "Loaded %s: %d faces, z extent %.3f",
        filepath, len(mesh.faces), float(mesh.extents[2]),
    )
    return StoneMeshData(mesh, name=name)


def save_mesh(mesh: trimesh.Trimesh, filepath: str) -> str:
    """Write *mesh* to disk; the format follows the file suffix."""
    try:
        os.makedirs(os.path.dirname(filepath) or ".", exist_ok=True)
        mesh.export(filepath)
    except Exception as exc:
        raise ExportError("Mesh export", filepath, exc) from exc
    logger.info("Exported mesh: %s", filepath)
    return filepath
