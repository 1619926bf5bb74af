#!/usr/bin/env python3
"""Time update_section while sweeping a probe plane through an icosphere.

Simulates a probe sliding along its normal: every frame moves the plane a
little, then the sweep is replayed to measure cache hits.

Usage:
    python benchmarks/bench_realtime_update.py
    python benchmarks/bench_realtime_update.py --subdivisions 6 --frames 200 --no-cull
"""
import argparse
import statistics
import sys
import time
from pathlib import Path

import numpy as np
import trimesh

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from geometry_primitives import Vector3
from realtime_update import RealTimeUpdateConfig, RealTimeUpdateService
from section_mesh import SectionMesh

BUDGET_MS = 100.0


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--subdivisions", type=int, default=5,
                        help="Icosphere subdivisions (5 -> 20480 faces)")
    parser.add_argument("--radius", type=float, default=60.0)
    parser.add_argument("--frames", type=int, default=120)
    parser.add_argument("--no-cull", action="store_true")
    args = parser.parse_args()

    sphere = trimesh.creation.icosphere(subdivisions=args.subdivisions, radius=args.radius)
    mesh = SectionMesh.from_trimesh(sphere)
    service = RealTimeUpdateService(RealTimeUpdateConfig(cull=not args.no_cull))
    direction = Vector3(0.2, 0.3, 1.0)

    offsets = np.linspace(-0.9 * args.radius, 0.9 * args.radius, args.frames)
    print(f"  mesh: {len(mesh)} faces, {args.frames} frames, cull={not args.no_cull}")

    for label in ("cold", "replay"):
        times = []
        segments = 0
        for z in offsets:
            started = time.perf_counter()
            result = service.update_section(Vector3(0.0, 0.0, float(z)), direction, mesh)
            times.append((time.perf_counter() - started) * 1000.0)
            segments += len(result.lines)
        worst = max(times)
        flag = "OK" if worst < BUDGET_MS else "OVER BUDGET"
        print(
            f"  {label:>6}: mean {statistics.mean(times):7.3f} ms, "
            f"max {worst:7.3f} ms, {segments} segments [{flag}]"
        )

    stats = service.get_performance_stats()
    print(
        f"  cache: {stats.cache_hits} hits / {stats.cache_misses} misses "
        f"(hit rate {stats.cache_hit_rate:.0%}, {stats.cache_size} entries)"
    )


if __name__ == "__main__":
    main()
