"""
Point offsets used to inset a section boundary into a joint hole.

Two primitives are provided. The circumcircle offset moves a vertex toward
the centre of the circle through it and its neighbours, which follows the
local curvature. The edge-normal offset moves a vertex along the inward
normal of its outgoing edge.

Both rely on the sectioning invariant that the origin lies inside the
section: "inward" is decided by comparing against the radius vector of the
vertex rather than by computing a true polygon normal.
"""
import logging

import numpy as np

logger = logging.getLogger(__name__)

TWO_EPSILON = 2 * np.finfo(float).eps

CIRCUMCIRCLE = "circumcircle"
EDGE_NORMAL = "normal"
OFFSET_METHODS = (CIRCUMCIRCLE, EDGE_NORMAL)


def _det3(m: np.ndarray) -> float:
    """3x3 determinant by cofactor expansion along the first row."""
    return float(
        m[0, 0] * (m[1, 1] * m[2, 2] - m[1, 2] * m[2, 1])
        - m[0, 1] * (m[1, 0] * m[2, 2] - m[1, 2] * m[2, 0])
        + m[0, 2] * (m[1, 0] * m[2, 1] - m[1, 1] * m[2, 0])
    )


def _toward_origin(current: np.ndarray, direction: np.ndarray, width: float) -> np.ndarray:
    """Move *current* by |width| along +/- *direction*.

    Positive width reduces the distance from the origin, negative width
    increases it.
    """
    length = float(np.linalg.norm(direction))
    if length < TWO_EPSILON:
        return current.copy()
    unit = direction / length
    sign = -1.0 if float(np.dot(unit, current)) > 0 else 1.0
    return current + sign * width * unit


def offset_point_to_center(prev, current, next_, width: float) -> np.ndarray:
    """Offset *current* toward the centre of the circle through three points.

    The circle comes from the determinant construction: with
    M11 = [x, y, 1], M12 = [x^2+y^2, y, 1], M13 = [x^2+y^2, x, 1] the centre
    is (det M12, -det M13) / (2 det M11). Nearly collinear points fall back
    to the perpendicular of current -> next.
    """
    pts = np.array([prev, current, next_], dtype=float)
    current = pts[1]
    sq = np.einsum("ij,ij->i", pts, pts)
    ones = np.ones(3)

    m11 = np.column_stack([pts[:, 0], pts[:, 1], ones])
    det11x2 = 2.0 * _det3(m11)

    if abs(det11x2) < TWO_EPSILON:
        edge = pts[2] - current
        direction = np.array([edge[1], -edge[0]])
    else:
        m12 = np.column_stack([sq, pts[:, 1], ones])
        m13 = np.column_stack([sq, pts[:, 0], ones])
        center = np.array([
            _det3(m12) / det11x2,
            -_det3(m13) / det11x2,
        ])
        direction = current - center

    return _toward_origin(current, direction, width)


def offset_point_along_normal(current, next_, width: float) -> np.ndarray:
    """Offset *current* along the edge normal toward the next vertex.

    The edge is rotated by +90 degrees, which points inward for the
    counter-clockwise order of the ray fan.
    """
    current = np.asarray(current, dtype=float)
    edge = np.asarray(next_, dtype=float) - current
    length = float(np.linalg.norm(edge))
    if length < TWO_EPSILON:
        return current.copy()
    normal = np.array([-edge[1], edge[0]]) / length
    return current + normal * width


def offset_boundary(points: np.ndarray, width: float, method: str = CIRCUMCIRCLE) -> np.ndarray:
    """Offset every vertex of a closed boundary.

    The result has the same number of points as the input and may
    self-intersect where the inset exceeds the local radius of curvature.
    """
    pts = np.asarray(points, dtype=float)
    n = len(pts)
    out = np.empty_like(pts)
    if method == CIRCUMCIRCLE:
        for i in range(n):
            out[i] = offset_point_to_center(pts[i - 1], pts[i], pts[(i + 1) % n], width)
    elif method == EDGE_NORMAL:
        for i in range(n):
            out[i] = offset_point_along_normal(pts[i], pts[(i + 1) % n], width)
    else:
        raise ValueError(f"Unknown offset method {method!r}; use one of {OFFSET_METHODS}")
    return out
