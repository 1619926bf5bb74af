"""
Contour assembly: join per-triangle segments into polylines and express
them in the 2D frame of the cutting plane.

Segments are loaded into a trimesh Path3D of Line entities, with endpoints
that fall in the same tolerance cell merged into one vertex. Closed loops come
from trimesh's cycle traversal; the plane-frame polygons, holes included,
come from ``Path2D.polygons_full`` so the cross-section area can be read off
directly.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import networkx as nx
import numpy as np
from shapely.geometry import LineString, Polygon
from shapely.geometry.base import BaseGeometry
from shapely.ops import unary_union
from trimesh import grouping, transformations
from trimesh.geometry import plane_transform
from trimesh.path import Path3D
from trimesh.path.entities import Line

from geometry_primitives import Plane, Vector3
from section_visualization import valid_lines

logger = logging.getLogger(__name__)

DEFAULT_STITCH_TOLERANCE = 1e-6


@dataclass
class ContourPolyline:
    """Connected run of section segments."""
    points: np.ndarray  # (K, 3) world-space points, K >= 2
    closed: bool = False  # last point connects back to the first

    def length(self) -> float:
        pts = self.points
        if self.closed:
            pts = np.vstack([pts, pts[:1]])
        return float(np.sum(np.linalg.norm(np.diff(pts, axis=0), axis=1)))


@dataclass
class PlanarContour:
    """Section contour expressed in the (u, v) frame of the cutting plane."""
    origin: np.ndarray  # (3,) plane point mapped to (0, 0)
    basis_u: np.ndarray  # (3,)
    basis_v: np.ndarray  # (3,)
    curves: List[LineString] = field(default_factory=list)
    polygons: List[Polygon] = field(default_factory=list)
    region: Optional[BaseGeometry] = None  # polygons combined, holes kept

    @property
    def area(self) -> float:
        return float(self.region.area) if self.region is not None else 0.0

    def to_3d(self, u: float, v: float) -> np.ndarray:
        """Map a plane-frame coordinate back to world space."""
        return self.origin + u * self.basis_u + v * self.basis_v


def section_path(
    lines: Sequence[Tuple[Vector3, Vector3]],
    tolerance: float = DEFAULT_STITCH_TOLERANCE,
) -> Path3D:
    """Load section segments into a trimesh Path3D.

    Endpoints are merged on a grid of *tolerance* cells. trimesh's own
    ``merge_vertices`` rounds to a fixed number of digits instead, so it is
    not used. Malformed entries, zero-length segments and repeats of the same
    segment (an edge lying in the plane is reported by both adjacent
    triangles) are dropped.
    """
    if tolerance <= 0:
        raise ValueError(f"Stitch tolerance must be > 0, got {tolerance}")

    segments = np.array(
        [(a.to_array(), b.to_array()) for a, b in valid_lines(lines)],
        dtype=np.float64,
    ).reshape(-1, 2, 3)
    segments = segments[np.isfinite(segments).all(axis=(1, 2))]
    if len(segments) == 0:
        return Path3D(entities=[], vertices=np.zeros((0, 3)), process=False)

    points = segments.reshape(-1, 3)
    cells = np.round(points / tolerance).astype(np.int64)
    unique, inverse = grouping.unique_rows(cells)
    edges = np.asarray(inverse, dtype=np.int64).reshape(-1, 2)

    edges = edges[edges[:, 0] != edges[:, 1]]
    if len(edges):
        first, _ = grouping.unique_rows(np.sort(edges, axis=1))
        edges = edges[np.sort(first)]

    return Path3D(
        entities=[Line(points=edge) for edge in edges],
        vertices=points[unique],
        process=False,
    )


def stitch_segments(
    lines: Sequence[Tuple[Vector3, Vector3]],
    tolerance: float = DEFAULT_STITCH_TOLERANCE,
) -> List[ContourPolyline]:
    """Join 2-point segments that share endpoints into polylines.

    Args:
        lines: Segments, normally IntersectionResult.lines.
        tolerance: Endpoint matching cell size.

    Returns:
        Closed loops first, then open chains built from the segments that
        belong to no loop.
    """
    path = section_path(lines, tolerance)
    if len(path.entities) == 0:
        return []

    polylines: List[ContourPolyline] = []
    for discrete in path.discrete:
        # a closed discrete path repeats its first point at the end
        polylines.append(ContourPolyline(points=np.asarray(discrete[:-1]), closed=True))

    dangling = path.dangling
    if len(dangling):
        graph = nx.Graph()
        graph.add_edges_from(path.entities[i].points for i in dangling)
        for component in nx.connected_components(graph):
            chain = graph.subgraph(component)
            ends = [node for node in chain if chain.degree(node) == 1]
            start = min(ends) if ends else min(chain)
            order = list(nx.dfs_preorder_nodes(chain, source=start))
            polylines.append(ContourPolyline(points=path.vertices[order], closed=False))

    logger.debug(
        "Stitched %d segments into %d polylines (%d closed)",
        len(path.entities), len(polylines), sum(p.closed for p in polylines),
    )
    return polylines


def project_contour_2d(
    polylines: Sequence[ContourPolyline],
    plane: Plane,
) -> PlanarContour:
    """Express *polylines* in an orthonormal (u, v) frame on *plane*.

    The frame is trimesh's plane transform. Closed polylines are assembled
    into polygons by ``Path2D.polygons_full``, so a ring nested in another
    becomes a hole (e.g. a chamber inside a wall).
    """
    normal = plane.normal.to_array()
    origin = -plane.constant * normal
    to_2d = plane_transform(origin=origin, normal=normal)
    to_3d = np.linalg.inv(to_2d)

    curves: List[LineString] = []
    segments = []
    for polyline in polylines:
        flat = transformations.transform_points(polyline.points, to_2d)
        curves.append(LineString(flat[:, :2]))
        if polyline.closed and len(polyline.points) >= 3:
            ring = np.vstack([polyline.points, polyline.points[:1]])
            segments.extend(zip(ring[:-1], ring[1:]))

    polygons: List[Polygon] = []
    if segments:
        ring_path = section_path(
            [(Vector3.from_array(a), Vector3.from_array(b)) for a, b in segments]
        )
        planar, _ = ring_path.to_2D(to_2D=to_2d, check=False)
        polygons = [
            poly for poly in planar.polygons_full
            if poly is not None and not poly.is_empty and poly.area > 0
        ]

    region = unary_union(polygons) if polygons else None
    return PlanarContour(
        origin=to_3d[:3, 3].copy(),
        basis_u=to_3d[:3, 0].copy(),
        basis_v=to_3d[:3, 1].copy(),
        curves=curves,
        polygons=polygons,
        region=region,
    )
