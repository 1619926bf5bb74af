"""
Triangle-soup container handed to the section engine by mesh collaborators.

The engine never parses files itself: a loader collaborator produces a
trimesh.Trimesh (or a plain list of triangles) and this module freezes it into
a read-only (N, 3, 3) float64 array of world-space vertices.
"""
import logging
from pathlib import Path
from typing import Iterator, Sequence, Tuple, Union

import numpy as np
import trimesh

from geometry_primitives import Vector3

logger = logging.getLogger(__name__)


class SectionMesh:
    """Immutable triangle soup.

    Attributes:
        triangles: (N, 3, 3) read-only array; triangles[i, k] is vertex k of
            triangle i.
    """

    __slots__ = ("triangles",)

    def __init__(self, triangles: np.ndarray):
        arr = np.array(triangles, dtype=np.float64)
        if arr.size == 0:
            arr = arr.reshape(0, 3, 3)
        if arr.ndim != 3 or arr.shape[1:] != (3, 3):
            raise ValueError(
                f"Expected triangles of shape (N, 3, 3), got {arr.shape}"
            )
        arr.setflags(write=False)
        self.triangles = arr

    def __len__(self) -> int:
        return int(self.triangles.shape[0])

    def __iter__(self) -> Iterator[Tuple[Vector3, Vector3, Vector3]]:
        for i in range(len(self)):
            yield self.triangle(i)

    def __repr__(self) -> str:
        return f"SectionMesh({len(self)} triangles)"

    def triangle(self, index: int) -> Tuple[Vector3, Vector3, Vector3]:
        t = self.triangles[index]
        return (
            Vector3(float(t[0, 0]), float(t[0, 1]), float(t[0, 2])),
            Vector3(float(t[1, 0]), float(t[1, 1]), float(t[1, 2])),
            Vector3(float(t[2, 0]), float(t[2, 1]), float(t[2, 2])),
        )

    def bounds(self) -> np.ndarray:
        """(2, 3) array of min and max corners; all zeros for an empty mesh."""
        if len(self) == 0:
            return np.zeros((2, 3))
        flat = self.triangles.reshape(-1, 3)
        return np.array([flat.min(axis=0), flat.max(axis=0)])

    # ─── Construction ────────────────────────────────────────────────────────

    @classmethod
    def from_triangles(
        cls,
        triangles: Sequence[Sequence[Union[Vector3, Sequence[float]]]],
    ) -> "SectionMesh":
        """Build from a sequence of 3-vertex triangles.

        Vertices may be Vector3 instances or length-3 number sequences.

        Raises:
            ValueError: a triangle does not have exactly 3 vertices of 3
                coordinates.
        """
        if all(
            len(tri) == 3 and all(isinstance(v, Vector3) for v in tri)
            for tri in triangles
        ):
            flat = [c for tri in triangles for v in tri for c in (v.x, v.y, v.z)]
            return cls(np.array(flat, dtype=np.float64).reshape(-1, 3, 3))

        rows = []
        for i, tri in enumerate(triangles):
            if len(tri) != 3:
                raise ValueError(
                    f"Triangle {i} has {len(tri)} vertices, expected 3"
                )
            rows.append([_vertex_coords(v, i) for v in tri])
        return cls(np.array(rows, dtype=np.float64).reshape(-1, 3, 3))

    @classmethod
    def from_trimesh(cls, mesh: trimesh.Trimesh) -> "SectionMesh":
        """Freeze a trimesh mesh (vertices indexed by faces) into a soup."""
        vertices = np.asarray(mesh.vertices, dtype=np.float64)
        faces = np.asarray(mesh.faces, dtype=np.int64).reshape(-1, 3)
        return cls(vertices[faces])


def load_section_mesh(path: Union[str, Path]) -> SectionMesh:
    """Load a surface file through trimesh and freeze it.

    Scenes with several geometries are concatenated into one mesh.
    """
    path = Path(path)
    loaded = trimesh.load(str(path), force="mesh", process=False)
    if isinstance(loaded, trimesh.Scene):
        loaded = trimesh.util.concatenate(tuple(loaded.geometry.values()))
    if not isinstance(loaded, trimesh.Trimesh):
        raise ValueError(f"Expected a triangle mesh in {path}, got {type(loaded)}")

    mesh = SectionMesh.from_trimesh(loaded)
    logger.info("Loaded section mesh %s: %d triangles", path.name, len(mesh))
    return mesh


def _vertex_coords(vertex, triangle_index: int) -> Tuple[float, float, float]:
    if isinstance(vertex, Vector3):
        return (vertex.x, vertex.y, vertex.z)
    if len(vertex) != 3:
        raise ValueError(
            f"Triangle {triangle_index} has a vertex with {len(vertex)} coordinates"
        )
    return (float(vertex[0]), float(vertex[1]), float(vertex[2]))
