"""
Shared test fixtures for the probe section engine tests.
"""
import sys
from pathlib import Path

import numpy as np
import pytest
import trimesh

# Add src/ to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from geometry_primitives import Plane, Vector3
from section_mesh import SectionMesh


@pytest.fixture
def xy_plane():
    """The plane z = 0 with normal +Z."""
    return Plane(Vector3(0, 0, 1), 0)


@pytest.fixture
def flat_triangle():
    """Triangle lying in z = 0."""
    return (Vector3(-1, -1, 0), Vector3(1, -1, 0), Vector3(0, 1, 0))


@pytest.fixture
def straddling_triangle():
    """Triangle crossing z = 0 (v2 touches the plane)."""
    return (Vector3(-1, -1, -1), Vector3(1, -1, 1), Vector3(0, 1, 0))


@pytest.fixture
def crossing_triangle():
    """Triangle crossing z = 0 with no vertex on the plane."""
    return (Vector3(-1, -1, -1), Vector3(1, -1, 1), Vector3(0, 1, 0.5))


@pytest.fixture
def sphere_trimesh():
    """Icosphere of radius 50 centred at the origin (1280 faces)."""
    return trimesh.creation.icosphere(subdivisions=3, radius=50.0)


@pytest.fixture
def sphere_mesh(sphere_trimesh):
    return SectionMesh.from_trimesh(sphere_trimesh)


@pytest.fixture
def box_trimesh():
    """A 100x100x100 box with its bottom at z=0."""
    mesh = trimesh.creation.box(extents=[100, 100, 100])
    mesh.apply_translation([0, 0, 50])
    return mesh


@pytest.fixture
def box_mesh(box_trimesh):
    return SectionMesh.from_trimesh(box_trimesh)


@pytest.fixture
def box_mesh_file(box_trimesh, tmp_path):
    """The box fixture written to an STL file."""
    path = tmp_path / "box.stl"
    box_trimesh.export(str(path))
    return str(path)


@pytest.fixture
def grid_mesh():
    """A 40x40 triangulated height field (3042 faces), tilted and wavy."""
    n = 40
    xs = np.linspace(-20.0, 20.0, n)
    grid_x, grid_y = np.meshgrid(xs, xs, indexing="xy")
    z = 0.3 * grid_x + 2.0 * np.sin(grid_y / 3.0)
    vertices = np.column_stack([grid_x.ravel(), grid_y.ravel(), z.ravel()])
    faces = []
    for j in range(n - 1):
        for i in range(n - 1):
            v00 = j * n + i
            v10 = v00 + 1
            v01 = v00 + n
            v11 = v01 + 1
            faces.append([v00, v10, v11])
            faces.append([v00, v11, v01])
    return SectionMesh(vertices[np.array(faces)])
