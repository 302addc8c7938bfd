#!/usr/bin/env python3
"""
Approximate scanned stones with stacked sheet-material rings.

Usage:
    # Preview geometry (STL, DXF and PNG per stone)
    python scripts/digital_stone.py -f stone.stl -m preview -t 10 -o 2

    # Milling data for three copies of two stones, 6 mm tool
    python scripts/digital_stone.py -f a.stl b.stl -m milling -t 18 -o 5 -n 3 -d 6

    # Material statistics only
    python scripts/digital_stone.py -f a.stl -m assess -t 18 -o 5 -n 10
"""
import sys
import argparse
import logging
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from approximated_stone import SlicingConfig
from nesting_optimizer import NestingConfig
from pipeline import MODES, PipelineConfig, run_pipeline
from point_offset import CIRCUMCIRCLE, OFFSET_METHODS
from stone_errors import StoneError


def build_parser():
    parser = argparse.ArgumentParser(
        description="Approximate stone scans with stacked sheet rings and plan milling"
    )
    parser.add_argument(
        "-f", "--files", nargs="+", required=True, metavar="MESH",
        help="Stone mesh file path(s) (STL, OBJ, PLY, GLB)",
    )
    parser.add_argument(
        "-m", "--mode", type=str, required=True, choices=MODES,
        help="Application mode",
    )
    parser.add_argument(
        "-t", "--thickness", type=float, required=True, help="Sheet thickness",
    )
    parser.add_argument(
        "-o", "--overlap", type=float, required=True,
        help="Overlap between neighbouring sections",
    )
    parser.add_argument(
        "-n", "--count", type=int, default=1,
        help="Number of copies of every stone to mill (default: 1)",
    )
    parser.add_argument(
        "-d", "--tool-diameter", type=float, default=0.0,
        help="Tool diameter kept clear around nested rings (default: 0)",
    )
    parser.add_argument(
        "--flatten", action="store_true", help="Flatten milling output drawing",
    )
    parser.add_argument(
        "--angle-step", type=float, default=1.0,
        help="Ray fan resolution in degrees; must divide 360 (default: 1)",
    )
    parser.add_argument(
        "--offset-method", type=str, default=CIRCUMCIRCLE, choices=OFFSET_METHODS,
        help=f"Hole inset algorithm (default: {CIRCUMCIRCLE})",
    )
    parser.add_argument(
        "--center", action="store_true",
        help="Move each mesh so its xy bounding-box centre lies on the z-axis",
    )
    parser.add_argument("--no-svg", action="store_true", help="Skip the milling SVG")
    parser.add_argument(
        "--render-layers", action="store_true",
        help="Write one PNG per layer in preview mode",
    )
    parser.add_argument("--runs-dir", type=str, default="runs", help="Run folder root")
    parser.add_argument("--name", type=str, default="stones", help="Run name")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        config = PipelineConfig(
            slicing=SlicingConfig(
                thickness=args.thickness,
                overlap=args.overlap,
                angle_step_deg=args.angle_step,
                offset_method=args.offset_method,
            ),
            mode=args.mode,
            nesting=NestingConfig(
                tool_diameter=args.tool_diameter,
                production_count=args.count,
            ),
            runs_dir=args.runs_dir,
            run_name=args.name,
            flatten=args.flatten,
            recenter=args.center,
            export_svg=not args.no_svg,
            render_layers=args.render_layers,
        )
    except ValueError as e:
        parser.error(str(e))

    try:
        result = run_pipeline(args.files, config)
    except StoneError as e:
        print(f"Error: {e}")
        return 1

    print(f"\nRun: {result.run_id} ({result.mode})")
    print(f"Folder: {result.run_dir}")
    for stone in result.stones:
        print(f"  {stone.stone_id}: {len(stone)} layers, height {stone.total_height:.1f}")
    for path, message in result.failures.items():
        print(f"  skipped {path}: {message}")

    if result.nesting is not None:
        nesting = result.nesting
        print(f"\nLayers requested: {nesting.layers_requested}")
        print(
            f"Sheets: {nesting.total_sheets} "
            f"({len(nesting.bins)} bins, {len(nesting.unable_to_fit)} unable to fit)"
        )
        print(f"Volume efficiency: {nesting.volume_efficiency * 100:.1f}%")
        print(f"Compactization factor: {nesting.compactization_factor:.3f}")

    for kind, paths in result.artifacts.items():
        print(f"{kind.upper()} files: {len(paths)}")
    print(f"Summary: {result.summary_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
