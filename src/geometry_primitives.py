"""
Core 2D geometry helpers for radial boundaries.

A boundary is an (N, 2) array whose index i belongs to ray angle
i * angle_step. Because the ray layout is identical at every elevation,
two boundaries can be merged index by index without a nearest-point search.
Shapely is used for areas, containment and cleanup of ring polygons.
"""
from typing import List, Optional, Sequence, Tuple

import numpy as np
from shapely.geometry import MultiPolygon, Polygon


def as_boundary(points) -> np.ndarray:
    """Coerce a point sequence into an (N, 2) float array."""
    arr = np.asarray(points, dtype=float)
    if arr.ndim != 2 or arr.shape[1] != 2:
        raise ValueError(f"Boundary must have shape (N, 2), got {arr.shape}")
    return arr


def boundary_union(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Index-wise union: keep whichever point lies farther from the origin."""
    a = as_boundary(a)
    b = as_boundary(b)
    if a.shape != b.shape:
        raise ValueError(f"Boundary sizes differ: {a.shape} vs {b.shape}")
    keep_a = np.einsum("ij,ij->i", a, a) >= np.einsum("ij,ij->i", b, b)
    return np.where(keep_a[:, None], a, b)


def boundary_intersection(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Index-wise intersection: keep whichever point lies nearer the origin."""
    a = as_boundary(a)
    b = as_boundary(b)
    if a.shape != b.shape:
        raise ValueError(f"Boundary sizes differ: {a.shape} vs {b.shape}")
    keep_a = np.einsum("ij,ij->i", a, a) <= np.einsum("ij,ij->i", b, b)
    return np.where(keep_a[:, None], a, b)


def boundary_radii(points: np.ndarray) -> np.ndarray:
    """Distance of every boundary point from the z-axis."""
    return np.linalg.norm(as_boundary(points), axis=1)


# ─── Shapely conversions ─────────────────────────────────────────────────────

def clean_polygon(polygon) -> Optional[Polygon]:
    """Return a valid single polygon, or None when nothing usable remains.

    Invalid rings are repaired with a zero-width buffer and the largest piece
    of a MultiPolygon is kept.
    """
    if polygon is None or polygon.is_empty:
        return None
    clean = polygon if polygon.is_valid else polygon.buffer(0)
    if clean.is_empty:
        return None
    if isinstance(clean, MultiPolygon):
        clean = max(clean.geoms, key=lambda g: g.area)
    if not isinstance(clean, Polygon) or clean.area <= 1e-9:
        return None
    return clean


def boundary_to_polygon(points: np.ndarray) -> Polygon:
    """Polygon for a boundary; degenerate input gives an empty polygon."""
    arr = as_boundary(points)
    if len(arr) < 3:
        return Polygon()
    clean = clean_polygon(Polygon(arr))
    return clean if clean is not None else Polygon()


def ring_polygon(outer: np.ndarray, hole: Optional[np.ndarray] = None) -> Polygon:
    """Polygon-with-hole for a layer.

    The hole is clipped to the outer polygon so that a hole grazing the
    outer boundary still yields a valid ring.
    """
    shell = boundary_to_polygon(outer)
    if hole is None or shell.is_empty:
        return shell
    inner = boundary_to_polygon(hole)
    if inner.is_empty:
        return shell
    clean = clean_polygon(shell.difference(inner))
    return clean if clean is not None else Polygon()


def bounds_area(polygon: Polygon) -> float:
    """Area of the axis-aligned bounding box."""
    if polygon.is_empty:
        return 0.0
    min_x, min_y, max_x, max_y = polygon.bounds
    return float((max_x - min_x) * (max_y - min_y))


def bounds_size(polygon: Polygon) -> Tuple[float, float]:
    """(width, height) of the axis-aligned bounding box."""
    if polygon.is_empty:
        return (0.0, 0.0)
    min_x, min_y, max_x, max_y = polygon.bounds
    return (float(max_x - min_x), float(max_y - min_y))


def shifted_coords(points: Sequence[Sequence[float]], shift=(0.0, 0.0)) -> List[Tuple[float, float]]:
    """Boundary as a list of (x, y) tuples translated by *shift*."""
    arr = as_boundary(points) + np.asarray(shift, dtype=float)
    return [(float(x), float(y)) for x, y in arr]
