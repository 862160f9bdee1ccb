"""Command-line interface for ScanForge."""

import argparse
import logging
import sys
import time
from pathlib import Path
from typing import List, Optional

from scanforge import __version__

logger = logging.getLogger(__name__)


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser."""
    parser = argparse.ArgumentParser(
        prog="scanforge",
        description="Point cloud conversion between PCD and LAS",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Show header information
  scanforge info scan.las

  # Show header information and point statistics
  scanforge info scan.pcd --stats

  # Convert LAS to compressed PCD
  scanforge convert scan.las -o scan.pcd --variant compressed

  # Convert PCD to LAS 1.4 point format 7
  scanforge convert scan.pcd -o scan.las --las-version 4 --las-format 7

  # Convert with settings from a config file
  scanforge convert scan.las -o out/scan.pcd -c config.yaml
""",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Info command
    info_parser = subparsers.add_parser(
        "info",
        help="Show header information for a PCD or LAS file",
    )
    info_parser.add_argument(
        "input",
        type=Path,
        help="Input PCD or LAS file",
    )
    info_parser.add_argument(
        "-s", "--stats",
        action="store_true",
        help="Load the points and show statistics",
    )
    info_parser.add_argument(
        "--layout",
        choices=["row", "column"],
        default=None,
        help="Field ordering of binary_compressed PCD payloads (default: row)",
    )
    info_parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose output",
    )

    # Convert command
    convert_parser = subparsers.add_parser(
        "convert",
        help="Convert a point cloud between PCD and LAS",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    convert_parser.add_argument(
        "input",
        type=Path,
        help="Input PCD or LAS file",
    )
    convert_parser.add_argument(
        "-o", "--output",
        type=Path,
        required=True,
        help="Output file",
    )
    convert_parser.add_argument(
        "-f", "--format",
        choices=["pcd", "las"],
        default=None,
        help="Output format (default: from the output extension)",
    )
    convert_parser.add_argument(
        "--variant",
        choices=["ascii", "binary", "compressed"],
        default=None,
        help="PCD data representation (default: binary)",
    )
    convert_parser.add_argument(
        "--layout",
        choices=["row", "column"],
        default=None,
        help="Field ordering of binary_compressed PCD payloads (default: row)",
    )
    convert_parser.add_argument(
        "--las-format",
        type=int,
        choices=range(11),
        default=None,
        metavar="N",
        help="LAS point record format 0-10 (default: 3)",
    )
    convert_parser.add_argument(
        "--las-version",
        type=int,
        choices=[2, 3, 4],
        default=None,
        help="LAS minor version (default: 3)",
    )
    convert_parser.add_argument(
        "-c", "--config",
        type=Path,
        help="Configuration YAML file",
    )
    convert_parser.add_argument(
        "-s", "--stats",
        action="store_true",
        help="Show statistics of the loaded points",
    )
    convert_parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose output",
    )

    return parser


def main(args: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    parsed = parser.parse_args(args)

    if parsed.command is None:
        parser.print_help()
        return 1

    _setup_logging(parsed.verbose)

    try:
        if parsed.command == "info":
            return run_info(parsed)
        elif parsed.command == "convert":
            return run_convert(parsed)
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 130
    except Exception as e:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0


def run_info(args) -> int:
    """Run info command."""
    from scanforge.io import (
        CompressedLayout,
        detect_file_format,
        get_las_info,
        get_pcd_info,
        load_point_cloud,
    )
    from scanforge.reporting import (
        calculate_cloud_statistics,
        format_las_info,
        format_pcd_info,
        format_statistics,
    )

    input_path = args.input
    if not input_path.is_file():
        print(f"Error: Input file not found: {input_path}", file=sys.stderr)
        return 1

    file_format = detect_file_format(input_path)
    if file_format == "pcd":
        print(format_pcd_info(get_pcd_info(input_path)))
    elif file_format == "las":
        print(format_las_info(get_las_info(input_path)))
    else:
        print(
            f"Error: Unsupported file format: {input_path.suffix}. "
            "Supported formats: PCD, LAS",
            file=sys.stderr,
        )
        return 1

    if args.stats:
        layout = CompressedLayout(args.layout or "row")
        _, cloud = load_point_cloud(input_path, compressed_layout=layout)
        print()
        print(format_statistics(calculate_cloud_statistics(cloud)))

    return 0


def run_convert(args) -> int:
    """Run convert command."""
    from scanforge.config import ScanForgeConfig, load_config
    from scanforge.io import (
        create_las_header,
        create_xyzrgb_header,
        detect_file_format,
        load_point_cloud,
        save_las,
        save_pcd,
    )
    from scanforge.reporting import calculate_cloud_statistics, format_statistics

    # Load configuration
    if args.config:
        if not args.config.exists():
            print(f"Error: Config file not found: {args.config}", file=sys.stderr)
            return 1
        config = load_config(args.config)
        logger.debug(f"Loaded config from {args.config}")
    else:
        config = ScanForgeConfig()

    # Apply CLI overrides
    output_format = args.format
    if output_format is None:
        detected = detect_file_format(args.output)
        output_format = detected if detected != "unknown" else config.output_format
    if args.variant is not None:
        config.pcd_variant = args.variant
    if args.layout is not None:
        config.pcd_compressed_layout = args.layout
    if args.las_format is not None:
        config.las_point_format = args.las_format
    if args.las_version is not None:
        config.las_version_minor = args.las_version

    input_path = args.input
    if not input_path.is_file():
        print(f"Error: Input file not found: {input_path}", file=sys.stderr)
        return 1

    start_time = time.perf_counter()

    logger.info(f"Loading point cloud from: {input_path}")
    _, cloud = load_point_cloud(input_path, compressed_layout=config.compressed_layout)
    load_time = time.perf_counter() - start_time
    logger.info(f"Loaded {cloud.n_points} points in {load_time * 1000:.0f} ms")

    if args.stats:
        print(format_statistics(calculate_cloud_statistics(cloud)))

    # Create output directory
    output_path = args.output
    output_path.parent.mkdir(parents=True, exist_ok=True)

    save_start = time.perf_counter()

    if output_format == "las":
        header = create_las_header(
            cloud,
            point_format=config.las_point_format,
            version_minor=config.las_version_minor,
            scale=config.las_scale,
            offset=config.las_offset,
        )
        header = save_las(output_path, header, cloud)
        description = f"LAS {header.version} format {header.point_format}"
    else:
        header = create_xyzrgb_header(cloud, config.pcd_data)
        save_pcd(output_path, header, cloud, compressed_layout=config.compressed_layout)
        description = f"PCD {config.pcd_data.value}"

    save_time = time.perf_counter() - save_start
    logger.info(
        f"Saved {cloud.n_points} points as {description} to {output_path} "
        f"in {save_time * 1000:.0f} ms"
    )

    input_size = input_path.stat().st_size
    output_size = output_path.stat().st_size
    ratio = 100.0 * output_size / input_size if input_size else 0.0
    logger.info(f"File size: {input_size} bytes -> {output_size} bytes ({ratio:.1f}%)")

    total_time = time.perf_counter() - start_time
    logger.info(f"Total processing time: {total_time * 1000:.0f} ms")

    return 0


def _setup_logging(verbose: bool) -> None:
    """Configure root logging for CLI runs."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


if __name__ == "__main__":
    sys.exit(main())
