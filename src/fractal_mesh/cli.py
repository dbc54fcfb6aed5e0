#!/usr/bin/env python3
"""
Fractal Mesh Export - command line front end

Usage:
    fractal-mesh --variant foldome --resolution 64
    fractal-mesh --variant mandelbox --param mbScale=-2 --param mb_iter=12 --output box.glb
    fractal-mesh --config run.json --summary run_summary.json --verify
"""

import argparse
import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from . import __version__
from .config import ExportConfig
from .errors import FractalMeshError, InvalidParameterError
from .geometry.gltf_exporter import load_document
from .pipeline import ExportResult, run_export
from .sdf import PARAMETER_TYPES, Variant

logger = logging.getLogger(__name__)


def parse_param_overrides(items: Optional[List[str]]) -> Dict[str, str]:
    """Turn ``KEY=VALUE`` strings into a dict (values are coerced later)."""
    overrides = {}
    for item in items or []:
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise InvalidParameterError(f"Expected KEY=VALUE, got {item!r}")
        overrides[key.strip()] = value.strip()
    return overrides


def list_variants() -> str:
    lines = []
    for variant in Variant:
        defaults = PARAMETER_TYPES[variant]()
        box = defaults.default_bounds()
        lines.append(f"{variant.code}  {variant.value:<17} {variant.title}")
        lines.append(f"     bounds {box.min_corner} .. {box.max_corner}")
        for name, value in defaults.to_dict().items():
            lines.append(f"     {name} = {value}")
    return "\n".join(lines)


def build_config(args: argparse.Namespace) -> ExportConfig:
    """Merge a JSON config file (if any) with command-line flags."""
    config = ExportConfig.from_json(args.config) if args.config else ExportConfig()

    if args.variant is not None:
        variant = Variant.parse(args.variant)
        if variant != config.variant:
            config.params = {}
        config.variant = variant
    config.params.update(parse_param_overrides(args.param))

    if args.resolution is not None:
        config.resolution = args.resolution[0] if len(args.resolution) == 1 else tuple(args.resolution)
    if args.bounds is not None:
        config.bounds = (tuple(args.bounds[:3]), tuple(args.bounds[3:]))
    if args.iso is not None:
        config.iso_level = args.iso
    if args.no_normals:
        config.compute_normals = False
    if args.weld:
        config.weld_vertices = True
    if args.streaming:
        config.streaming = True
    if args.output is not None:
        config.output_path = args.output
    return config


def log_progress(done: int, total: int, label: str) -> None:
    logger.debug(f"{label} ({done}/{total})")


def verify_output(glb: bytes) -> None:
    """Re-read the container with pygltflib and log what it sees."""
    document = load_document(glb)
    primitive = document.meshes[0].primitives[0]
    positions = document.accessors[primitive.attributes.POSITION]
    indices = document.accessors[primitive.indices]
    logger.info(
        f"Verified GLB: {positions.count} positions, {indices.count // 3} triangles, "
        f"bounds {positions.min} .. {positions.max}"
    )


def write_summary(path: Path, config: ExportConfig, result: ExportResult, output_path: Path) -> None:
    summary = {
        "timestamp": datetime.now().isoformat(),
        "config": config.to_dict(),
        "output": str(output_path),
        "result": result.to_dict()
    }
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w') as f:
        json.dump(summary, f, indent=2)
    logger.info(f"Summary saved to: {path}")


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Fractal Mesh Export - turn distance-field fractals into GLB meshes"
    )
    parser.add_argument(
        "--variant", "-V",
        help="Variant name or mode code (see --list-variants)"
    )
    parser.add_argument(
        "--resolution", "-r",
        type=int,
        nargs="+",
        default=None,
        help="Samples per axis: one value or NX NY NZ (default 128)"
    )
    parser.add_argument(
        "--param", "-p",
        action="append",
        metavar="KEY=VALUE",
        help="Variant parameter override (repeatable)"
    )
    parser.add_argument(
        "--bounds",
        type=float,
        nargs=6,
        metavar=("X0", "Y0", "Z0", "X1", "Y1", "Z1"),
        help="Sampling box (default: variant's box)"
    )
    parser.add_argument(
        "--iso",
        type=float,
        default=None,
        help="Iso-level (default: variant default; 0 except Gyroid and Mandelbox)"
    )
    parser.add_argument(
        "--no-normals",
        action="store_true",
        help="Omit vertex normals"
    )
    parser.add_argument(
        "--weld",
        action="store_true",
        help="Merge coincident vertices"
    )
    parser.add_argument(
        "--streaming",
        action="store_true",
        help="Sample and extract slice by slice (low memory)"
    )
    parser.add_argument(
        "--config", "-c",
        type=Path,
        help="JSON export config"
    )
    parser.add_argument(
        "--output", "-o",
        type=Path,
        help="Output .glb path (default exports/<variant>.glb)"
    )
    parser.add_argument(
        "--summary",
        type=Path,
        help="Write a JSON run summary"
    )
    parser.add_argument(
        "--verify",
        action="store_true",
        help="Re-read the output with pygltflib"
    )
    parser.add_argument(
        "--list-variants",
        action="store_true",
        help="List variants with their defaults and exit"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Verbose logging"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}"
    )

    args = parser.parse_args(argv)

    # Setup logging
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    if args.list_variants:
        print(list_variants())
        return 0

    try:
        config = build_config(args)
        output_path = config.get_output_path()

        logger.info(f"Variant: {config.variant.title} (mode {config.variant.code})")
        logger.info(f"Output: {output_path}")

        result = run_export(config, on_progress=log_progress)

        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(result.glb)
        logger.info(f"Wrote {len(result.glb)} bytes to {output_path}")

        if args.verify:
            verify_output(result.glb)
        if args.summary:
            write_summary(args.summary, config, result, output_path)

    except FractalMeshError as e:
        logger.error(f"Export failed: {e}")
        return 1
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"I/O error: {e}")
        return 1

    logger.info("=" * 60)
    logger.info(f"COMPLETE: {result.n_vertices} vertices, {result.n_triangles} triangles")
    logger.info("=" * 60)
    return 0


if __name__ == "__main__":
    sys.exit(main())
