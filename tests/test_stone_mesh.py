"""Tests for stone_mesh module."""
import numpy as np
import pytest
import trimesh

from stone_errors import ExportError, MeshLoadError
from stone_mesh import (
    SectorConfig,
    StoneMeshData,
    load_stone_mesh,
    save_mesh,
    section_points,
)


class TestSectorConfig:

    def test_default_is_one_degree(self):
        assert SectorConfig().sector_count == 360

    def test_half_degree(self):
        assert SectorConfig(0.5).sector_count == 720

    def test_step_must_divide_full_turn(self):
        with pytest.raises(ValueError):
            SectorConfig(7.0)

    def test_non_positive_step_rejected(self):
        with pytest.raises(ValueError):
            SectorConfig(0.0)

    def test_directions_are_unit_and_horizontal(self):
        dirs = SectorConfig(10.0).directions()
        assert dirs.shape == (36, 3)
        assert np.allclose(np.linalg.norm(dirs, axis=1), 1.0)
        assert np.allclose(dirs[:, 2], 0.0)
        assert np.allclose(dirs[9], [0.0, 1.0, 0.0])


class TestSpatialQuery:

    def test_hits_report_ray_parameter(self, cylinder_data):
        origins = np.array([[0.0, 0.0, 50.0], [0.0, 0.0, 50.0]])
        directions = np.array([[1.0, 0.0, 0.0], [0.0, 1.0, 0.0]])
        rays, params = cylinder_data.nearest_hits(origins, directions)
        assert sorted(rays.tolist()) == [0, 1]
        assert np.allclose(params, 20.0, atol=0.01)

    def test_miss_is_absent(self, cylinder_data):
        origins = np.array([[0.0, 0.0, 500.0]])
        directions = np.array([[1.0, 0.0, 0.0]])
        rays, params = cylinder_data.nearest_hits(origins, directions)
        assert len(rays) == 0
        assert len(params) == 0

    def test_z_bounds(self, cylinder_data):
        lo, hi = cylinder_data.z_bounds
        assert lo == pytest.approx(0.0)
        assert hi == pytest.approx(100.0)
        assert cylinder_data.vertical_extent == pytest.approx(100.0)


class TestSectionPoints:

    def test_one_point_per_ray(self, cylinder_data):
        pts = section_points(cylinder_data, 50.0, SectorConfig(1.0))
        assert pts.shape == (360, 2)

    def test_points_at_fixed_angles(self, cylinder_data):
        pts = section_points(cylinder_data, 50.0, SectorConfig(5.0))
        unit = pts / np.linalg.norm(pts, axis=1)[:, None]
        angles = np.radians(np.arange(0.0, 360.0, 5.0))
        expected = np.column_stack([np.cos(angles), np.sin(angles)])
        assert np.allclose(unit, expected, atol=1e-9)

    def test_points_on_cylinder_wall(self, cylinder_data):
        pts = section_points(cylinder_data, 25.0, SectorConfig(1.0))
        radii = np.linalg.norm(pts, axis=1)
        assert np.allclose(radii, 20.0, atol=0.01)

    def test_misses_give_zero_points(self, cylinder_data):
        pts = section_points(cylinder_data, 250.0, SectorConfig(1.0))
        assert pts.shape == (360, 2)
        assert np.all(pts == 0.0)


class TestLoadSave:

    def test_load_uses_file_stem_as_name(self, cylinder_mesh_file):
        data = load_stone_mesh(cylinder_mesh_file)
        assert data.name == "cylinder"
        assert data.vertical_extent == pytest.approx(100.0)

    def test_missing_file(self, tmp_path):
        with pytest.raises(MeshLoadError):
            load_stone_mesh(str(tmp_path / "nope.stl"))

    def test_unreadable_file(self, tmp_path):
        path = tmp_path / "garbage.stl"
        path.write_bytes(b"")
        with pytest.raises(MeshLoadError):
            load_stone_mesh(str(path))

    def test_recenter_moves_axis_into_mesh(self, tmp_path):
        mesh = trimesh.creation.box(extents=[20, 20, 40])
        mesh.apply_translation([100, -50, 20])
        path = tmp_path / "offset.stl"
        mesh.export(str(path))

        data = load_stone_mesh(str(path), recenter=True)
        center = (data.mesh.bounds[0] + data.mesh.bounds[1]) / 2.0
        assert center[0] == pytest.approx(0.0, abs=1e-6)
        assert center[1] == pytest.approx(0.0, abs=1e-6)
        assert data.z_bounds[0] == pytest.approx(0.0)

    def test_save_mesh_round_trip(self, cylinder_mesh, tmp_path):
        path = save_mesh(cylinder_mesh, str(tmp_path / "out" / "c.stl"))
        loaded = trimesh.load(path)
        assert len(loaded.faces) == len(cylinder_mesh.faces)

    def test_save_mesh_wraps_errors(self, cylinder_mesh, tmp_path):
        with pytest.raises(ExportError):
            save_mesh(cylinder_mesh, str(tmp_path / "c.not_a_format"))

    def test_mesh_data_builds_index_once(self, cylinder_mesh):
        data = StoneMeshData(cylinder_mesh)
        assert data.intersector is not None
        assert data.name == "stone"
