#!/usr/bin/env python3
"""
Cut a surface mesh with a probe plane and summarize the section contour.

Usage:
    python scripts/cut_mesh.py --input heart.stl
    python scripts/cut_mesh.py --input heart.stl --position 0 0 12.5 --direction 0 1 0
    python scripts/cut_mesh.py --input heart.stl --highlight --json
"""
import argparse
import json
import logging
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from contour import project_contour_2d, stitch_segments
from geometry_primitives import Plane, Vector3
from realtime_update import RealTimeUpdateService
from section_mesh import load_section_mesh
from section_visualization import SectionVisualizationService, VisualizationOptions


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Intersect a mesh with a probe plane and report the contour.",
    )
    parser.add_argument(
        "--input", required=True,
        help="Path to input mesh file (STL, OBJ, PLY, GLB)",
    )
    parser.add_argument(
        "--position", type=float, nargs=3, default=None, metavar=("X", "Y", "Z"),
        help="Probe position (default: mesh bounding-box centre)",
    )
    parser.add_argument(
        "--direction", type=float, nargs=3, default=[0.0, 0.0, 1.0],
        metavar=("X", "Y", "Z"),
        help="Probe direction / plane normal (default: 0 0 1)",
    )
    parser.add_argument("--color", default=None, help="Contour colour (#rrggbb)")
    parser.add_argument("--line-width", type=float, default=None)
    parser.add_argument("--opacity", type=float, default=None)
    parser.add_argument("--highlight", action="store_true")
    parser.add_argument(
        "--json", action="store_true",
        help="Print the summary as JSON instead of text",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    mesh = load_section_mesh(args.input)
    if args.position is None:
        position = Vector3.from_array(mesh.bounds().mean(axis=0))
    else:
        position = Vector3.from_array(args.position)
    direction = Vector3.from_array(args.direction)

    result = RealTimeUpdateService().update_section(position, direction, mesh)
    if not result.is_valid:
        print(f"No section: {result.error or 'plane misses the mesh'}", file=sys.stderr)
        return 1

    polylines = stitch_segments(result.lines)
    planar = project_contour_2d(
        polylines, Plane.from_point_and_normal(position, direction),
    )
    display = SectionVisualizationService().get_visualization_config(
        result.lines,
        VisualizationOptions(
            color=args.color,
            line_width=args.line_width,
            opacity=args.opacity,
            highlight=args.highlight,
        ),
    )

    summary = {
        "mesh": Path(args.input).name,
        "triangles": len(mesh),
        "segments": len(result.lines),
        "calculation_time_ms": round(result.calculation_time_ms, 3),
        "polylines": len(polylines),
        "closed_polylines": sum(p.closed for p in polylines),
        "contour_length": round(sum(p.length() for p in polylines), 6),
        "section_area": round(planar.area, 6),
        "display": display.to_dict(),
    }

    if args.json:
        print(json.dumps(summary, indent=2))
    else:
        for name, value in summary.items():
            print(f"{name:>20}: {value}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
