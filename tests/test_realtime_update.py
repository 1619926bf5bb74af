"""Tests for realtime_update module."""
import math
import threading
import time

import numpy as np
import pytest
import trimesh

from geometry_primitives import Plane, Vector3
from realtime_update import (
    ERROR_EMPTY_MESH,
    ERROR_INVALID_POSE,
    IntersectionResult,
    RealTimeUpdateConfig,
    RealTimeUpdateService,
)
from section_mesh import SectionMesh
from triangle_intersection import plane_triangle_intersection

# Upright triangle in the z = 0 plane; probe planes y = c cut it.
SINGLE_TRIANGLE = [[Vector3(-1, -1, 0), Vector3(1, -1, 0), Vector3(0, 1, 0)]]
UP = Vector3(0, 1, 0)


@pytest.fixture
def service():
    return RealTimeUpdateService()


class TestUpdateSection:
    """Section computation for valid poses."""

    def test_single_triangle_section(self, service):
        result = service.update_section(Vector3(0, 0, 0), UP, SINGLE_TRIANGLE)
        assert result.is_valid
        assert result.error is None
        assert not result.from_cache
        assert len(result.lines) == 1
        a, b = result.lines[0]
        assert {round(a.x, 9), round(b.x, 9)} == {-0.5, 0.5}
        assert result.calculation_time_ms < 100

    def test_sweep_stays_valid(self, service):
        for x in (0.0, 0.1, 0.2, 0.3):
            result = service.update_section(Vector3(x, 0, 0), UP, SINGLE_TRIANGLE)
            assert result.is_valid
            assert len(result.lines) > 0

    @pytest.mark.parametrize("position", [
        Vector3(0, 0, 0), Vector3(0, 0.5, 0), Vector3(-0.5, 0, 0),
    ])
    def test_discrete_positions(self, service, position):
        assert service.update_section(position, UP, SINGLE_TRIANGLE).is_valid

    def test_plane_missing_mesh_is_invalid_without_error(self, service):
        result = service.update_section(Vector3(0, 5, 0), UP, SINGLE_TRIANGLE)
        assert not result.is_valid
        assert result.lines == ()
        assert result.error is None

    def test_sphere_section_points_lie_on_plane(self, service, sphere_mesh):
        position, direction = Vector3(0, 0, 12.3), Vector3(0, 0, 1)
        result = service.update_section(position, direction, sphere_mesh)
        plane = Plane.from_point_and_normal(position, direction)
        assert result.is_valid
        for a, b in result.lines:
            assert plane.contains_point(a, 1e-9)
            assert plane.contains_point(b, 1e-9)
            # points stay on the sphere's chordal surface
            assert a.length() <= 50.0 + 1e-9

    def test_keeps_only_two_point_results(self, service):
        mesh = [
            [Vector3(-1, -1, 0), Vector3(1, -1, 0), Vector3(0, 1, 0)],  # coplanar: 3 points
            [Vector3(-1, -1, 0), Vector3(1, -1, 1), Vector3(0, 1, 1)],  # touching: 1 point
            [Vector3(-1, 0, 0), Vector3(1, 0, 0), Vector3(0, 1, 1)],  # edge in plane: 2 points
            [Vector3(-1, -1, -1), Vector3(1, -1, 1), Vector3(0, 1, 0.5)],  # crossing: 2 points
        ]
        result = service.update_section(Vector3(0, 0, 0), Vector3(0, 0, 1), mesh)
        assert len(result.lines) == 2
        assert result.lines[0] == (Vector3(-1, 0, 0), Vector3(1, 0, 0))

    def test_mesh_is_not_mutated(self, service, grid_mesh):
        before = grid_mesh.triangles.copy()
        service.update_section(Vector3(0, 0, 0), Vector3(1, 0, 0), grid_mesh)
        np.testing.assert_array_equal(grid_mesh.triangles, before)


class TestCulling:
    """Culled and brute-force paths agree."""

    @pytest.mark.parametrize("position,direction", [
        (Vector3(0, 0, 0), Vector3(1, 0, 0)),
        (Vector3(3.3, -1.2, 0.7), Vector3(0.2, 1, 0.4)),
        (Vector3(0, 0, 1.5), Vector3(0, 0, 1)),
    ])
    def test_cull_matches_brute_force(self, grid_mesh, position, direction):
        culled = RealTimeUpdateService(RealTimeUpdateConfig(cull=True))
        brute = RealTimeUpdateService(RealTimeUpdateConfig(cull=False, temporal_coherence=False))
        a = culled.update_section(position, direction, grid_mesh)
        b = brute.update_section(position, direction, grid_mesh)
        assert a.is_valid
        assert a.lines == b.lines

    def test_matches_per_triangle_reference(self, service, grid_mesh):
        position, direction = Vector3(1, 1, 0), Vector3(1, -0.5, 0.2)
        plane = Plane.from_point_and_normal(position, direction)
        expected = []
        for tri in grid_mesh:
            points = plane_triangle_intersection(plane, tri)
            if len(points) == 2:
                expected.append(tuple(points))
        result = service.update_section(position, direction, grid_mesh)
        assert list(result.lines) == expected

    def test_temporal_coherence_does_not_change_result(self, grid_mesh):
        warm = RealTimeUpdateService(RealTimeUpdateConfig(temporal_coherence=True))
        cold = RealTimeUpdateService(RealTimeUpdateConfig(temporal_coherence=False))
        direction = Vector3(1, 0.3, 0)
        for x in np.linspace(-5, 5, 6):
            position = Vector3(float(x), 0, 0)
            assert (
                warm.update_section(position, direction, grid_mesh).lines
                == cold.update_section(position, direction, grid_mesh).lines
            )

    def test_large_mesh_within_budget(self, service):
        sphere = SectionMesh.from_trimesh(
            trimesh.creation.icosphere(subdivisions=5, radius=60.0)
        )
        assert len(sphere) == 20480
        result = service.update_section(Vector3(0, 0, 7.7), Vector3(0.3, 0.1, 1), sphere)
        assert result.is_valid
        assert result.calculation_time_ms < 100


class TestCache:
    """Quantized pose cache."""

    def test_second_call_hits_cache(self, service):
        first = service.update_section(Vector3(0, 0, 0), UP, SINGLE_TRIANGLE)
        second = service.update_section(Vector3(0, 0, 0), UP, SINGLE_TRIANGLE)
        assert not first.from_cache
        assert second.from_cache
        assert second.calculation_time_ms == 0.0
        assert second.calculation_time_ms <= first.calculation_time_ms
        assert second.lines == first.lines

    def test_cache_hit_skips_triangle_list_conversion(self, service, monkeypatch):
        sphere = trimesh.creation.icosphere(subdivisions=5, radius=60.0)
        triangles = [list(tri) for tri in SectionMesh.from_trimesh(sphere)]
        position, direction = Vector3(0, 0, 7.7), Vector3(0, 0, 1)
        first = service.update_section(position, direction, triangles)
        assert first.is_valid

        def fail(*args, **kwargs):
            raise AssertionError("triangle list converted on a cache hit")

        monkeypatch.setattr(SectionMesh, "from_triangles", fail)
        started = time.perf_counter()
        second = service.update_section(position, direction, triangles)
        wall_ms = (time.perf_counter() - started) * 1000.0
        assert second.from_cache
        assert second.lines == first.lines
        assert wall_ms < 5

    def test_jitter_below_precision_hits_cache(self, service):
        service.update_section(Vector3(0.1, 0, 0), UP, SINGLE_TRIANGLE)
        result = service.update_section(Vector3(0.100001, 0, 0), UP, SINGLE_TRIANGLE)
        assert result.from_cache

    def test_negative_zero_shares_key(self, service):
        service.update_section(Vector3(0, 0, 0), UP, SINGLE_TRIANGLE)
        result = service.update_section(Vector3(-0.00001, 0, 0), UP, SINGLE_TRIANGLE)
        assert result.from_cache

    def test_different_pose_misses(self, service):
        service.update_section(Vector3(0, 0, 0), UP, SINGLE_TRIANGLE)
        result = service.update_section(Vector3(0.01, 0, 0), UP, SINGLE_TRIANGLE)
        assert not result.from_cache

    def test_triangle_count_is_part_of_key(self, service):
        service.update_section(Vector3(0, 0, 0), UP, SINGLE_TRIANGLE)
        bigger = SINGLE_TRIANGLE * 2
        result = service.update_section(Vector3(0, 0, 0), UP, bigger)
        assert not result.from_cache
        assert len(result.lines) == 2

    def test_invalid_results_are_not_cached(self, service):
        service.update_section(Vector3(0, 5, 0), UP, SINGLE_TRIANGLE)
        again = service.update_section(Vector3(0, 5, 0), UP, SINGLE_TRIANGLE)
        assert not again.from_cache
        assert service.cache_size == 0

    def test_stats(self, service):
        service.update_section(Vector3(0, 0, 0), UP, SINGLE_TRIANGLE)
        service.update_section(Vector3(0, 0, 0), UP, SINGLE_TRIANGLE)
        service.update_section(Vector3(0.2, 0, 0), UP, SINGLE_TRIANGLE)
        stats = service.get_performance_stats()
        assert stats.cache_hits == 1
        assert stats.cache_misses == 2
        assert stats.total_calculations == 2
        assert stats.cache_hit_rate == pytest.approx(1 / 3)
        assert stats.cache_size == 2

    def test_stats_start_empty(self, service):
        stats = service.get_performance_stats()
        assert stats.cache_hit_rate == 0.0
        assert stats.total_calculations == 0

    def test_clear_cache_resets_everything(self, service):
        service.update_section(Vector3(0, 0, 0), UP, SINGLE_TRIANGLE)
        service.clear_cache()
        assert service.cache_size == 0
        assert service.get_last_result() is None
        assert service.get_performance_stats().cache_misses == 0
        assert not service.update_section(Vector3(0, 0, 0), UP, SINGLE_TRIANGLE).from_cache

    def test_lru_bound(self):
        service = RealTimeUpdateService(RealTimeUpdateConfig(cache_size_limit=2))
        for x in (0.0, 0.1, 0.2):
            service.update_section(Vector3(x, 0, 0), UP, SINGLE_TRIANGLE)
        assert service.cache_size == 2
        # oldest pose was evicted
        assert not service.update_section(Vector3(0.0, 0, 0), UP, SINGLE_TRIANGLE).from_cache
        assert service.update_section(Vector3(0.2, 0, 0), UP, SINGLE_TRIANGLE).from_cache

    def test_lru_keeps_recently_used(self):
        service = RealTimeUpdateService(RealTimeUpdateConfig(cache_size_limit=2))
        service.update_section(Vector3(0.0, 0, 0), UP, SINGLE_TRIANGLE)
        service.update_section(Vector3(0.1, 0, 0), UP, SINGLE_TRIANGLE)
        service.update_section(Vector3(0.0, 0, 0), UP, SINGLE_TRIANGLE)  # touch
        service.update_section(Vector3(0.2, 0, 0), UP, SINGLE_TRIANGLE)
        assert service.update_section(Vector3(0.0, 0, 0), UP, SINGLE_TRIANGLE).from_cache

    def test_set_cache_size_limit_trims(self, service):
        for x in (0.0, 0.1, 0.2, 0.3):
            service.update_section(Vector3(x, 0, 0), UP, SINGLE_TRIANGLE)
        service.set_cache_size_limit(1)
        assert service.cache_size == 1
        service.set_cache_size_limit(0)
        assert service.cache_size == 0
        service.update_section(Vector3(0.5, 0, 0), UP, SINGLE_TRIANGLE)
        assert service.cache_size == 0

    def test_negative_limit_rejected(self, service):
        with pytest.raises(ValueError):
            service.set_cache_size_limit(-1)

    def test_last_result(self, service):
        assert service.get_last_result() is None
        result = service.update_section(Vector3(0, 0, 0), UP, SINGLE_TRIANGLE)
        assert service.get_last_result() is result

    def test_concurrent_callers(self, grid_mesh):
        service = RealTimeUpdateService()
        errors = []

        def worker(offset):
            try:
                for k in range(20):
                    x = float((k + offset) % 7)
                    service.update_section(Vector3(x, 0, 0), Vector3(1, 0, 0), grid_mesh)
            except Exception as exc:  # pragma: no cover - reported below
                errors.append(exc)

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert not errors
        stats = service.get_performance_stats()
        assert stats.cache_hits + stats.cache_misses == 80
        assert stats.cache_size == 7


class TestInvalidInput:
    """Bad poses and meshes come back as results, not exceptions."""

    @pytest.mark.parametrize("position,direction", [
        (Vector3(math.nan, 0, 0), UP),
        (Vector3(0, math.inf, 0), UP),
        (Vector3(0, 0, 0), Vector3(0, math.nan, 0)),
        (Vector3(0, 0, 0), Vector3(0, 0, 0)),
    ])
    def test_invalid_pose(self, service, position, direction):
        result = service.update_section(position, direction, SINGLE_TRIANGLE)
        assert not result.is_valid
        assert result.lines == ()
        assert result.error == ERROR_INVALID_POSE

    def test_non_vector_pose(self, service):
        result = service.update_section((0, 0, 0), UP, SINGLE_TRIANGLE)
        assert result.error == ERROR_INVALID_POSE

    def test_empty_mesh(self, service):
        result = service.update_section(Vector3(0, 0, 0), UP, [])
        assert not result.is_valid
        assert result.lines == ()
        assert result.error == ERROR_EMPTY_MESH

    def test_invalid_requests_do_not_touch_counters(self, service):
        service.update_section(Vector3(math.nan, 0, 0), UP, SINGLE_TRIANGLE)
        service.update_section(Vector3(0, 0, 0), UP, [])
        stats = service.get_performance_stats()
        assert stats.cache_hits == 0
        assert stats.cache_misses == 0


class TestConfig:
    """RealTimeUpdateConfig validation."""

    def test_defaults(self):
        config = RealTimeUpdateConfig()
        assert config.tolerance == 1e-10
        assert config.key_precision == 4
        config.validate()

    @pytest.mark.parametrize("field,value", [
        ("tolerance", 0.0),
        ("key_precision", -1),
        ("cache_size_limit", -5),
        ("cull_margin", -1e-6),
    ])
    def test_rejects_bad_values(self, field, value):
        with pytest.raises(ValueError):
            RealTimeUpdateService(RealTimeUpdateConfig(**{field: value}))

    def test_result_is_frozen(self):
        result = IntersectionResult()
        with pytest.raises(AttributeError):
            result.is_valid = True
