"""
Real-time section update engine.

Turns a probe pose (position + viewing direction) and a surface mesh into the
set of intersection segments for that pose. Each call:

1. Rejects non-finite or zero-direction poses and empty meshes by returning
   an invalid IntersectionResult (no exception in the render loop).
2. Looks the quantized pose up in a bounded LRU cache. A mesh given as a
   plain triangle list is only converted to a SectionMesh after a miss.
3. On a miss, builds the cutting plane, culls triangles that lie strictly on
   one side of it with a vectorized numpy pass, and runs the exact
   plane/triangle intersection on the remaining candidates, keeping every
   proper 2-point segment.

Triangles that produced a segment on the previous call are evaluated first
(temporal coherence). Segments are always emitted in mesh order, so the
result never depends on traversal order.
"""
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, replace
from typing import Optional, Sequence, Tuple, Union

import numpy as np

from geometry_primitives import DEFAULT_TOLERANCE, Plane, Vector3
from section_mesh import SectionMesh
from triangle_intersection import plane_triangle_intersection, signed_distances

logger = logging.getLogger(__name__)

Segment = Tuple[Vector3, Vector3]
MeshLike = Union[SectionMesh, Sequence[Sequence[Vector3]]]

ERROR_INVALID_POSE = "invalid probe pose"
ERROR_EMPTY_MESH = "empty mesh"


@dataclass
class RealTimeUpdateConfig:
    """Tuning knobs for the section engine."""
    tolerance: float = DEFAULT_TOLERANCE  # on-plane band for vertices
    key_precision: int = 4  # decimals kept in the quantized pose key
    cache_size_limit: int = 256  # max cached poses (LRU)
    cull: bool = True  # numpy pre-test before the exact per-triangle pass
    cull_margin: float = 1e-6  # extra band so culling never drops a candidate
    temporal_coherence: bool = True  # check last call's hits first

    def validate(self) -> None:
        if self.tolerance <= 0:
            raise ValueError("RealTimeUpdateConfig.tolerance must be > 0")
        if self.key_precision < 0:
            raise ValueError("RealTimeUpdateConfig.key_precision must be >= 0")
        if self.cache_size_limit < 0:
            raise ValueError("RealTimeUpdateConfig.cache_size_limit must be >= 0")
        if self.cull_margin < 0:
            raise ValueError("RealTimeUpdateConfig.cull_margin must be >= 0")


@dataclass(frozen=True)
class IntersectionResult:
    """Outcome of one section query."""
    lines: Tuple[Segment, ...] = ()
    is_valid: bool = False
    calculation_time_ms: float = 0.0
    from_cache: bool = False
    error: Optional[str] = None


@dataclass(frozen=True)
class PerformanceStats:
    cache_hit_rate: float
    total_calculations: int
    cache_hits: int
    cache_misses: int
    cache_size: int


class RealTimeUpdateService:
    """Computes probe sections with caching.

    One instance owns one cache. The cache, the counters and the last result
    are guarded by a lock, so an instance may be shared between a render loop
    and a worker thread.
    """

    def __init__(self, config: Optional[RealTimeUpdateConfig] = None):
        if config is None:
            config = RealTimeUpdateConfig()
        config.validate()
        self.config = config

        self._lock = threading.RLock()
        self._cache: "OrderedDict[str, IntersectionResult]" = OrderedDict()
        self._cache_size_limit = config.cache_size_limit
        self._last_result: Optional[IntersectionResult] = None
        self._previous_hits = np.empty(0, dtype=np.int64)
        self._cache_hits = 0
        self._cache_misses = 0
        self._total_calculations = 0

    # ─── Section query ───────────────────────────────────────────────────────

    def update_section(
        self,
        probe_position: Vector3,
        probe_direction: Vector3,
        mesh: MeshLike,
    ) -> IntersectionResult:
        """Intersect the probe plane with *mesh*.

        Args:
            probe_position: A point on the imaging plane.
            probe_direction: Plane normal (any non-zero length).
            mesh: SectionMesh or a sequence of 3-vertex triangles.

        Returns:
            IntersectionResult. Bad poses and empty meshes come back with
            ``is_valid=False`` and ``error`` set.
        """
        start = time.perf_counter()

        if not (_is_usable_point(probe_position) and _is_usable_direction(probe_direction)):
            logger.warning(
                "Rejected probe pose position=%s direction=%s",
                probe_position, probe_direction,
            )
            return IntersectionResult(error=ERROR_INVALID_POSE)

        triangle_count = len(mesh)
        if triangle_count == 0:
            logger.warning("Section requested on an empty mesh")
            return IntersectionResult(error=ERROR_EMPTY_MESH)

        key = self._cache_key(probe_position, probe_direction, triangle_count)
        with self._lock:
            cached = self._cache.get(key)
            if cached is not None:
                self._cache.move_to_end(key)
                self._cache_hits += 1
                logger.debug("Section cache hit %s", key)
                return replace(cached, from_cache=True, calculation_time_ms=0.0)
            self._cache_misses += 1
            previous_hits = self._previous_hits

        # plain triangle lists are only frozen on a miss
        if not isinstance(mesh, SectionMesh):
            mesh = SectionMesh.from_triangles(mesh)
        plane = Plane.from_point_and_normal(probe_position, probe_direction)
        lines, hits = self._intersect_mesh(plane, mesh, previous_hits)

        elapsed_ms = (time.perf_counter() - start) * 1000.0
        result = IntersectionResult(
            lines=tuple(lines),
            is_valid=len(lines) > 0,
            calculation_time_ms=elapsed_ms,
        )

        with self._lock:
            if result.is_valid:
                self._store(key, result)
            self._last_result = result
            self._previous_hits = hits
            self._total_calculations += 1

        logger.debug(
            "Section %s: %d segments from %d triangles in %.2f ms",
            key, len(lines), len(mesh), elapsed_ms,
        )
        return result

    def _intersect_mesh(
        self,
        plane: Plane,
        mesh: SectionMesh,
        previous_hits: np.ndarray,
    ) -> Tuple[list, np.ndarray]:
        """Exact intersection over the culled candidates, in mesh order."""
        config = self.config
        if config.cull:
            d = signed_distances(plane, mesh.triangles)
            band = config.tolerance + config.cull_margin
            one_side = np.all(d > band, axis=1) | np.all(d < -band, axis=1)
            candidates = np.flatnonzero(~one_side)
        else:
            candidates = np.arange(len(mesh))

        if config.temporal_coherence and previous_hits.size:
            warm = np.isin(candidates, previous_hits)
            candidates = np.concatenate([candidates[warm], candidates[~warm]])

        segments = {}
        for index in candidates.tolist():
            points = plane_triangle_intersection(
                plane, mesh.triangle(index), config.tolerance,
            )
            if len(points) == 2:
                segments[index] = (points[0], points[1])

        hits = np.array(sorted(segments), dtype=np.int64)
        return [segments[i] for i in hits.tolist()], hits

    def _cache_key(
        self,
        position: Vector3,
        direction: Vector3,
        triangle_count: int,
    ) -> str:
        p = self.config.key_precision
        pos = ",".join(_quantize(c, p) for c in position)
        dirn = ",".join(_quantize(c, p) for c in direction)
        return f"{pos}|{dirn}|{triangle_count}"

    def _store(self, key: str, result: IntersectionResult) -> None:
        self._cache[key] = result
        self._cache.move_to_end(key)
        self._evict()

    def _evict(self) -> None:
        while len(self._cache) > self._cache_size_limit:
            self._cache.popitem(last=False)

    # ─── Management ──────────────────────────────────────────────────────────

    def clear_cache(self) -> None:
        """Drop cached sections, the last result and all counters."""
        with self._lock:
            self._cache.clear()
            self._last_result = None
            self._previous_hits = np.empty(0, dtype=np.int64)
            self._cache_hits = 0
            self._cache_misses = 0
            self._total_calculations = 0
        logger.info("Section cache cleared")

    def set_cache_size_limit(self, limit: int) -> None:
        """Bound the cache to *limit* poses, evicting least recently used ones."""
        if limit < 0:
            raise ValueError(f"Cache size limit must be >= 0, got {limit}")
        with self._lock:
            self._cache_size_limit = int(limit)
            before = len(self._cache)
            self._evict()
            evicted = before - len(self._cache)
        logger.info("Section cache limit set to %d (%d evicted)", limit, evicted)

    @property
    def cache_size(self) -> int:
        with self._lock:
            return len(self._cache)

    def get_last_result(self) -> Optional[IntersectionResult]:
        """Most recent computed (non-cached) result, if any."""
        with self._lock:
            return self._last_result

    def get_performance_stats(self) -> PerformanceStats:
        with self._lock:
            requests = self._cache_hits + self._cache_misses
            return PerformanceStats(
                cache_hit_rate=self._cache_hits / requests if requests else 0.0,
                total_calculations=self._total_calculations,
                cache_hits=self._cache_hits,
                cache_misses=self._cache_misses,
                cache_size=len(self._cache),
            )


# ─── Internal helpers ────────────────────────────────────────────────────────

def _is_usable_point(v) -> bool:
    return isinstance(v, Vector3) and v.is_finite()


def _is_usable_direction(v) -> bool:
    # a direction whose length overflows normalizes to zero
    return _is_usable_point(v) and v.normalize().length() > 0


def _quantize(value: float, precision: int) -> str:
    # + 0.0 folds -0.0 into 0.0 so jitter around zero shares a key
    return f"{round(value, precision) + 0.0:.{precision}f}"
