"""Tests for point_offset and self_intersection modules."""
import numpy as np
import pytest
from shapely.geometry import Polygon

from point_offset import (
    CIRCUMCIRCLE,
    EDGE_NORMAL,
    offset_boundary,
    offset_point_along_normal,
    offset_point_to_center,
)
from self_intersection import repair_self_intersections


class TestCircumcircleOffset:

    def test_collinear_points_use_edge_perpendicular(self):
        moved = offset_point_to_center([0, 10], [1, 10], [2, 10], 1.0)
        assert np.allclose(moved, [1.0, 9.0])

    def test_point_on_circle_moves_to_smaller_circle(self, circle):
        pts = circle(10.0, 5.0)
        moved = offset_point_to_center(pts[0], pts[1], pts[2], 1.0)
        assert np.linalg.norm(moved) == pytest.approx(9.0)

    def test_negative_width_moves_outward(self, circle):
        pts = circle(10.0, 5.0)
        moved = offset_point_to_center(pts[0], pts[1], pts[2], -1.0)
        assert np.linalg.norm(moved) == pytest.approx(11.0)

    def test_concave_vertex_still_moves_toward_origin(self):
        # The middle point bulges inward; the circle centre lies outside.
        moved = offset_point_to_center([-5, 10], [0, 9], [5, 10], 1.0)
        assert np.linalg.norm(moved) < 9.0

    def test_coincident_points_stay_put(self):
        moved = offset_point_to_center([3, 3], [3, 3], [3, 3], 1.0)
        assert np.allclose(moved, [3.0, 3.0])


class TestNormalOffset:

    def test_ccw_edge_moves_inward(self):
        moved = offset_point_along_normal([10, 0], [10, 1], 1.0)
        assert np.allclose(moved, [9.0, 0.0])

    def test_zero_length_edge(self):
        moved = offset_point_along_normal([4, 0], [4, 0], 1.0)
        assert np.allclose(moved, [4.0, 0.0])


class TestOffsetBoundary:

    @pytest.mark.parametrize("method", [CIRCUMCIRCLE, EDGE_NORMAL])
    def test_circle_inset(self, circle, method):
        out = offset_boundary(circle(20.0), 1.0, method)
        assert out.shape == (360, 2)
        assert np.allclose(np.linalg.norm(out, axis=1), 19.0, atol=0.01)

    def test_square_inset_shrinks_area(self, square):
        out = offset_boundary(square(10.0), 1.0, EDGE_NORMAL)
        assert Polygon(out).area < 100.0

    def test_unknown_method(self, circle):
        with pytest.raises(ValueError):
            offset_boundary(circle(5.0), 1.0, "spiral")


class TestSelfIntersectionRepair:

    def test_simple_polygon_unchanged(self, square):
        pts = square(10.0)
        assert np.array_equal(repair_self_intersections(pts), pts)

    def test_circle_unchanged(self, circle):
        pts = circle(20.0)
        assert np.array_equal(repair_self_intersections(pts), pts)

    def test_small_loop_removed(self):
        pts = np.array([
            [0.0, 0.0], [10.0, 0.0], [10.0, 10.0],
            [4.0, 10.0], [6.0, 11.0],      # loop above the top edge
            [6.0, 9.0], [0.0, 9.5],
        ])
        assert not Polygon(pts).is_valid

        repaired = repair_self_intersections(pts)
        assert len(repaired) == 6
        assert Polygon(repaired).is_valid
        assert np.allclose(repaired[3], [6.0, 10.0])

    def test_loop_as_main_body_keeps_longer_arc(self):
        # Edge 0 crosses edge 4; the arc between them holds most vertices.
        pts = np.array([
            [0.0, 0.0], [10.0, 1.0], [10.0, 10.0], [5.0, 12.0],
            [0.0, 10.0], [6.0, -1.0], [-1.0, -1.0],
        ])
        repaired = repair_self_intersections(pts)
        poly = Polygon(repaired)
        assert poly.is_valid
        assert poly.area > 50.0

    def test_tiny_inputs_returned(self):
        tri = np.array([[0.0, 0.0], [1.0, 0.0], [0.0, 1.0]])
        assert np.array_equal(repair_self_intersections(tri), tri)
