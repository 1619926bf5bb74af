"""
Plane / triangle intersection with an explicit degenerate-case policy.

A vertex counts as lying on the plane when its signed distance is strictly
inside the tolerance band (|d| < tolerance). Edge crossings use a strict sign
change (di * dj < 0) with no extra epsilon. The number of returned points
tells the caller what kind of contact occurred:

    0  no contact
    1  the triangle touches the plane at a single vertex
    2  a clip segment (two edge crossings, a vertex and a crossing, or an
       edge lying in the plane)
    3  the whole triangle lies in the plane
"""
from typing import List, Sequence, Tuple

import numpy as np

from geometry_primitives import DEFAULT_TOLERANCE, Plane, Vector3

Triangle = Tuple[Vector3, Vector3, Vector3]

# Edges in traversal order, as vertex index pairs.
_EDGES = ((0, 1), (1, 2), (2, 0))


def plane_triangle_intersection(
    plane: Plane,
    triangle: Sequence[Vector3],
    tolerance: float = DEFAULT_TOLERANCE,
) -> List[Vector3]:
    """Intersect *plane* with *triangle*.

    Args:
        plane: Cutting plane.
        triangle: Three vertices (v0, v1, v2).
        tolerance: Half-width of the on-plane band.

    Returns:
        0-3 points, see the module docstring. Never raises for degenerate
        (zero-area or collinear) triangles.
    """
    if len(triangle) != 3:
        raise ValueError(f"A triangle needs 3 vertices, got {len(triangle)}")

    vertices = tuple(triangle)
    d = [plane.distance_to_point(v) for v in vertices]
    on_plane = [abs(di) < tolerance for di in d]
    on_count = sum(on_plane)

    if on_count == 3:
        return [v.clone() for v in vertices]

    if on_count == 2:
        return [v.clone() for v, on in zip(vertices, on_plane) if on]

    if on_count == 1:
        apex = on_plane.index(True)
        points = [vertices[apex].clone()]
        # Only the edge opposite the on-plane vertex can still cross.
        i, j = (apex + 1) % 3, (apex + 2) % 3
        if d[i] * d[j] < 0:
            points.append(_edge_point(vertices[i], vertices[j], d[i], d[j]))
        return points

    return [
        _edge_point(vertices[i], vertices[j], d[i], d[j])
        for i, j in _EDGES
        if d[i] * d[j] < 0
    ]


def intersects_plane(
    plane: Plane,
    triangle: Sequence[Vector3],
    tolerance: float = DEFAULT_TOLERANCE,
) -> bool:
    """Cheap pre-test: False only when all vertices are strictly on one side."""
    d0, d1, d2 = (plane.distance_to_point(v) for v in triangle)
    all_positive = d0 > tolerance and d1 > tolerance and d2 > tolerance
    all_negative = d0 < -tolerance and d1 < -tolerance and d2 < -tolerance
    return not (all_positive or all_negative)


def signed_distances(plane: Plane, triangles: np.ndarray) -> np.ndarray:
    """Signed distances of every vertex of an (N, 3, 3) triangle array.

    Returns:
        (N, 3) array, row i holding d0, d1, d2 for triangle i.
    """
    normal = plane.normal.to_array()
    return triangles @ normal + plane.constant


def _edge_point(vi: Vector3, vj: Vector3, di: float, dj: float) -> Vector3:
    """Point where the edge vi -> vj crosses the plane (di, dj of opposite sign).

    Endpoints are put in a canonical order first, so the two triangles
    sharing an edge produce bit-identical crossing points.
    """
    if (vj.x, vj.y, vj.z) < (vi.x, vi.y, vi.z):
        vi, vj, di, dj = vj, vi, dj, di
    t = di / (di - dj)
    return vi.add(vj.subtract(vi).multiply_scalar(t))
