"""Command-line interface for the scene to Spine converter."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Iterable, Optional

from converter.config import ConverterConfig
from converter.converter import Converter
from converter.exceptions import SceneFormatError
from scene.loader import load_scene
from spine.image_export import PillowImageExporter
from spine.project_packager import write_spine_project


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Convert a vector animation scene document into Spine skeletons.")
    parser.add_argument("scene", type=Path, help="Path to the JSON scene document.")
    parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=Path("output"),
        help="Directory for skeleton JSON files and images (default: ./output).",
    )
    parser.add_argument("--merge", action="store_true", help="Merge every selected item into one skeleton.")
    parser.add_argument("--no-images", action="store_true", help="Measure images without writing them.")
    parser.add_argument("--atlas", action="store_true", help="Pack exported images into a texture atlas.")
    parser.add_argument(
        "--simplify-names",
        action="store_true",
        help="Shorten nested bone and slot names where they stay unique.",
    )
    parser.add_argument("--env-file", help="Optional .env file with SPINE_* settings.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    return parser


def main(argv: Optional[Iterable[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if not args.scene.exists():
        parser.error(f"File not found: {args.scene}")

    overrides = {}
    if args.merge:
        overrides["merge_skeletons"] = True
    if args.no_images:
        overrides["export_images"] = False
        overrides["export_shapes"] = False
    if args.atlas:
        overrides["pack_atlas"] = True
    if args.simplify_names:
        overrides["simplify_bones_and_slots"] = True
    config = ConverterConfig.from_env(args.env_file, **overrides)

    try:
        document = load_scene(args.scene)
    except SceneFormatError as exc:
        parser.error(str(exc))

    converter = Converter(document, config, PillowImageExporter(args.output))
    results = converter.convert_selection()
    written = write_spine_project(results, args.output, config)

    for result in results:
        skeleton = result.skeleton
        print(
            f"{skeleton.name}: {len(skeleton.bones)} bones, {len(skeleton.slots)} slots, "
            f"{len(skeleton.animations)} animations, {len(result.images)} images"
        )
    for path in written:
        print(f"  wrote {path}")
    for diagnostic in converter.diagnostics:
        print(f"  [{diagnostic.kind}] {diagnostic.item}: {diagnostic.message}")

    if not results:
        print("Nothing was converted.")
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
