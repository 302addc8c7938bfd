"""
Shared test fixtures for stone approximation tests.
"""
import sys
from pathlib import Path

import numpy as np
import pytest
import trimesh

# Add src/ to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from approximated_stone import ApproximatedStone, SlicingConfig
from stone_mesh import StoneMeshData


def _turned(mesh: trimesh.Trimesh, degrees: float = 0.3) -> trimesh.Trimesh:
    """Rotate about z so that no integer-degree ray grazes a mesh edge."""
    mesh.apply_transform(
        trimesh.transformations.rotation_matrix(np.radians(degrees), [0, 0, 1])
    )
    return mesh


@pytest.fixture
def cylinder_mesh():
    """A cylinder (radius=20, height=100) standing on z=0."""
    mesh = trimesh.creation.cylinder(radius=20, height=100, sections=256)
    mesh.apply_translation([0, 0, 50])
    return _turned(mesh)


@pytest.fixture
def cylinder_data(cylinder_mesh):
    return StoneMeshData(cylinder_mesh, name="cylinder")


@pytest.fixture
def cylinder_stone(cylinder_data):
    """Ten layers of 10 with a joint overlap of 1."""
    return ApproximatedStone.from_mesh(
        cylinder_data, SlicingConfig(thickness=10.0, overlap=1.0)
    )


@pytest.fixture
def box_data():
    """A 40x40x95 box centred on the origin."""
    mesh = trimesh.creation.box(extents=[40, 40, 95])
    return StoneMeshData(_turned(mesh, 0.5), name="box")


@pytest.fixture
def cylinder_mesh_file(cylinder_mesh, tmp_path) -> str:
    path = tmp_path / "meshes" / "cylinder.stl"
    path.parent.mkdir(parents=True, exist_ok=True)
    cylinder_mesh.export(str(path))
    return str(path)


@pytest.fixture
def square():
    """Factory for axis-aligned square boundaries centred on (cx, cy)."""
    def make(side: float, cx: float = 0.0, cy: float = 0.0) -> np.ndarray:
        h = side / 2.0
        return np.array([
            [cx + h, cy - h],
            [cx + h, cy + h],
            [cx - h, cy + h],
            [cx - h, cy - h],
        ])
    return make


@pytest.fixture
def circle():
    """Factory for circular boundaries sampled at a fixed angular step."""
    def make(radius: float, step_deg: float = 1.0) -> np.ndarray:
        angles = np.radians(np.arange(0.0, 360.0, step_deg))
        return np.column_stack([radius * np.cos(angles), radius * np.sin(angles)])
    return make
