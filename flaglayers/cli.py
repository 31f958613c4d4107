"""Command line interface for flaglayers."""
import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from flaglayers.layer_diff import check_output_root
from flaglayers.locations import load_locations
from flaglayers.pipeline import FlagLayerPipeline
from flaglayers.types import DEFAULT_SKIP_KEYS, FlagLayerError, LayerConfig


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser."""
    parser = argparse.ArgumentParser(
        prog="flaglayers",
        description="Split flag images into ordered reveal layers",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  flaglayers extract flags/4x3 -o output
  flaglayers extract flags/4x3 -o output --layers 5 --workers 4
  flaglayers check-diff output
        """,
    )
    parser.add_argument(
        "-v", "--verbose", action="count", default=0,
        help="Increase log verbosity (-v info, -vv debug)"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    extract = sub.add_parser("extract", help="Extract layers and write the manifest")
    extract.add_argument("source", help="Directory of SVG or PNG sources")
    extract.add_argument("-o", "--output", default="output", help="Output directory (default: output)")
    extract.add_argument("--layers", type=int, default=6, help="Target layer count (default: 6)")
    extract.add_argument("--colors", type=int, default=8, help="Maximum palette size (default: 8)")
    extract.add_argument(
        "--min-distance", type=float, default=80.0,
        help="Minimum RGB distance between palette colors (default: 80)"
    )
    extract.add_argument(
        "--edge-span", type=int, default=8,
        help="Pixels scanned inward when repairing edges (default: 8)"
    )
    extract.add_argument(
        "--split-threshold", type=int, default=12,
        help="Regions per color before it is split into clip pieces (default: 12)"
    )
    extract.add_argument(
        "--split-mode", choices=["order", "midline"], default="order",
        help="How single regions are bisected (default: order)"
    )
    extract.add_argument("--width", type=int, default=640, help="SVG render width (default: 640)")
    extract.add_argument(
        "--color-in-filename", action="store_true",
        help="Append the layer color to layer file names"
    )
    extract.add_argument("--locations", default=None, help="world-countries style JSON for geo anchors")
    extract.add_argument(
        "--skip", default=",".join(sorted(DEFAULT_SKIP_KEYS)),
        help="Comma-separated image keys to skip"
    )
    extract.add_argument("--workers", type=int, default=1, help="Parallel worker processes (default: 1)")
    extract.add_argument(
        "--save-stages", type=str, default=None,
        help="Directory to save pipeline stage debug images"
    )

    check = sub.add_parser("check-diff", help="Verify consecutive layers differ visibly")
    check.add_argument("output", help="Output directory written by extract")
    check.add_argument(
        "--threshold", type=float, default=LayerConfig.diff_threshold,
        help="Average RGB difference at or below which a pair is flagged (default: 5)"
    )

    return parser


def _configure_logging(verbosity: int):
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def run_extract(args) -> int:
    source = Path(args.source)
    if not source.is_dir():
        print(f"Error: Source directory not found: {source}", file=sys.stderr)
        return 1

    try:
        config = LayerConfig(
            target_layers=args.layers,
            max_palette_colors=args.colors,
            min_color_distance=args.min_distance,
            edge_fill_span=args.edge_span,
            split_entry_threshold=args.split_threshold,
            split_mode=args.split_mode,
            render_width=args.width,
            color_in_filename=args.color_in_filename,
            skip_keys=frozenset(k.strip() for k in args.skip.split(",") if k.strip()),
            workers=args.workers,
            save_stages=args.save_stages is not None,
            stages_dir=args.save_stages,
        )
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        locations = load_locations(args.locations)
    except (OSError, ValueError) as e:
        print(f"Error: could not load locations: {e}", file=sys.stderr)
        return 1

    print(f"Processing: {source}")
    print(f"  Layers: {config.target_layers}")
    print(f"  Palette: up to {config.max_palette_colors} colors, min distance {config.min_color_distance}")

    pipeline = FlagLayerPipeline(config, locations)
    try:
        result = pipeline.process_batch(source, args.output)
    except (FlagLayerError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"  Written: {len(result.entries)}")
    print(f"  Skipped: {len(result.skipped)}")
    for key, message in sorted(result.failed.items()):
        print(f"  Failed: {key}: {message}", file=sys.stderr)
    print(f"Done. Wrote {result.manifest_path}")
    return 0


def run_check_diff(args) -> int:
    try:
        issues = check_output_root(args.output, args.threshold)
    except (FileNotFoundError, FlagLayerError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if not issues:
        print("All layers show significant change.")
        return 0

    print("Layer difference warnings:")
    for key, warnings in issues.items():
        print(f"- {key}:")
        for warning in warnings:
            print(f"   {warning.previous} -> {warning.current} (avg diff {warning.diff:.2f})")
    return 1


def main(args: Optional[list] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    parsed = parser.parse_args(args)
    _configure_logging(parsed.verbose)

    if parsed.command == "extract":
        return run_extract(parsed)
    return run_check_diff(parsed)


if __name__ == "__main__":
    sys.exit(main())
