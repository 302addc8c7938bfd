"""
Self-intersection repair for offset boundaries.

Insetting a boundary by more than its local radius of curvature folds the
offset curve over itself and produces small loops. The repair walks the
edges once; when an edge crosses a later, non-adjacent edge it keeps the
longer of the two arcs between them and joins the cut ends at the crossing
point.

This is a best-effort single sweep, not a general polygon-simplification
algorithm. Only the first crossing found for each edge is handled and no
second pass is made, so inputs with many interleaved crossings may still
come out non-simple. The near-circular boundaries produced by radial
sectioning fold in small isolated loops, which one sweep removes.
"""
import logging
from typing import Optional, Tuple

import numpy as np

logger = logging.getLogger(__name__)

# Crossings this close to an edge end are treated as touches, not crossings.
_PARAM_EPS = 1e-9


def _first_crossing(
    pts: np.ndarray,
    i: int,
) -> Optional[Tuple[int, np.ndarray]]:
    """First edge j > i + 1 that properly crosses edge i.

    Edge k runs from pts[k] to pts[(k + 1) % n].
    """
    n = len(pts)
    start = i + 2
    stop = n - 1 if i == 0 else n  # edge n-1 shares pts[0] with edge 0
    if start >= stop:
        return None

    a = pts[i]
    r = pts[(i + 1) % n] - a
    js = np.arange(start, stop)
    c = pts[js]
    s = pts[(js + 1) % n] - c

    denom = r[0] * s[:, 1] - r[1] * s[:, 0]
    qp = c - a
    with np.errstate(divide="ignore", invalid="ignore"):
        t = (qp[:, 0] * s[:, 1] - qp[:, 1] * s[:, 0]) / denom
        u = (qp[:, 0] * r[1] - qp[:, 1] * r[0]) / denom

    mask = (
        (np.abs(denom) > 1e-12)
        & (t > _PARAM_EPS) & (t < 1 - _PARAM_EPS)
        & (u > _PARAM_EPS) & (u < 1 - _PARAM_EPS)
    )
    hits = np.nonzero(mask)[0]
    if len(hits) == 0:
        return None
    k = hits[0]
    return int(js[k]), a + t[k] * r


def repair_self_intersections(points: np.ndarray) -> np.ndarray:
    """Remove self-crossings from a closed polygon in one sweep.

    Args:
        points: (N, 2) closed polygon; the closing edge is implicit.

    Returns:
        (M, 2) polygon with the smaller arc around each crossing cut away.
        An already simple polygon is returned unchanged.
    """
    pts = np.asarray(points, dtype=float)
    i = 0
    splices = 0
    while i < len(pts) and len(pts) >= 4:
        found = _first_crossing(pts, i)
        if found is None:
            i += 1
            continue

        j, crossing = found
        n = len(pts)
        inner = j - i          # vertices i+1..j lie on the arc between the edges
        outer = n - inner
        if inner <= outer:
            # Drop the loop between the edges: ... p[i], X, p[j+1] ...
            pts = np.vstack([pts[:i + 1], crossing, pts[j + 1:]])
            i += 1
        else:
            # The loop is the main body: X, p[i+1], ..., p[j]
            pts = np.vstack([crossing, pts[i + 1:j + 1]])
            i = 1
        splices += 1

    if splices:
        logger.debug("Removed %d self-intersections (%d points left)", splices, len(pts))
    return pts
