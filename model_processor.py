#!/usr/bin/env python3
"""
EffectInstance Model Processor - Pipeline Entry Point.

This module ties the effect parser and the material rewriter together for
one .x model. A model importer hands over the scene tree it built from the
file; the processor reads the same file again for its EffectInstance data
and binds the scene's materials to the referenced effects.

Usage (as a library, from an importer/build step):
    >>> from model_processor import process_scene
    >>> process_scene(scene_root, Path("Content/Models/Car.x"))

Usage (command line, without a scene tree):
    python model_processor.py Content/Models/Car.x \\
        --manifest Car.effects.json \\
        --verbose

    The command line parses the file, checks that every referenced effect
    and texture exists and optionally writes a JSON manifest of the parsed
    records.

Pipeline Steps:
    1. Resolve the source .x file (must exist)
    2. Parse Material/EffectInstance records
    3. Resolve effect and texture files next to the source file
    4. Rewrite matching geometry materials (library use)
    5. Print summary / write manifest (command line)
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path

from effect_parser import CaseInsensitiveDict, EffectRecord, parse_effects_file
from material_rewriter import (
    AssetResolver,
    MissingAssetError,
    RewriteStats,
    apply_records,
    looks_like_texture_path,
    resolve_record_assets,
)

logger = logging.getLogger(__name__)


class UnresolvableSourceError(FileNotFoundError):
    """The source .x path is empty or does not point to a file."""


@dataclass
class ProcessorConfig:
    """Configuration for a command-line run.

    Attributes:
        source_file: Absolute path of the .x file to inspect.
        manifest_path: Optional path of a JSON manifest to write.
        verbose: If True, enable DEBUG logging.
    """

    source_file: Path
    manifest_path: Path | None = None
    verbose: bool = False


@dataclass
class ProcessorStats:
    """Statistics collected while processing one .x file.

    Attributes:
        materials_parsed: Number of EffectInstance records parsed.
        effects_found: Number of records whose effect file exists.
        textures_found: Number of texture files found across all records.
        geometries_rewritten: Geometry batches bound to an effect material.
        warnings: Non-critical issues.
        errors: Critical issues (missing assets, parse failures).
    """

    materials_parsed: int = 0
    effects_found: int = 0
    textures_found: int = 0
    geometries_rewritten: int = 0
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


def resolve_source_file(source_file: Path | str | None) -> Path:
    """Validate the source .x path and return it as an absolute Path.

    Raises:
        UnresolvableSourceError: If the path is empty or not an existing file.
    """
    if source_file is None or not str(source_file).strip():
        raise UnresolvableSourceError("Source .x file path is empty")

    path = Path(source_file)
    if not path.is_file():
        raise UnresolvableSourceError(f"Cannot read source .x file: {path}")

    return path.resolve()


def process_scene(
    scene_root,
    source_file: Path | str,
    stats: ProcessorStats | None = None,
):
    """Bind the scene's materials to the effects declared in source_file.

    Args:
        scene_root: Root NodeContent built from source_file by the importer.
        source_file: Path of the .x file the scene was imported from.
        stats: Optional ProcessorStats to update.

    Returns:
        scene_root, with matching geometry materials replaced in place.

    Raises:
        UnresolvableSourceError: If source_file is empty or missing.
        UnmatchedBracesError: If the file contains an unterminated block.
        UnsupportedVectorLengthError: If a float vector is not 1-4 values.
        MissingAssetError: If an effect or texture file is missing.
    """
    source = resolve_source_file(source_file)
    logger.debug("Resolved X = '%s'", source)

    records = parse_effects_file(source)
    logger.info("Parsed %d EffectInstance(s) from %s", len(records), source.name)

    if stats is not None:
        stats.materials_parsed += len(records)

    if not records:
        return scene_root

    rewrite_stats = RewriteStats()
    apply_records(scene_root, source.parent, records, stats=rewrite_stats)

    unused = sorted(
        record.material_name
        for record in records.values()
        if record.material_name not in rewrite_stats.materials
    )
    if unused:
        logger.debug("Records with no matching geometry: %s", ", ".join(unused))

    if stats is not None:
        stats.geometries_rewritten += rewrite_stats.geometries_rewritten
        stats.textures_found += rewrite_stats.textures_bound

    logger.info(
        "Rewrote %d geometries (%d textures, %d techniques)",
        rewrite_stats.geometries_rewritten,
        rewrite_stats.textures_bound,
        rewrite_stats.techniques_applied,
    )
    return scene_root


def build_effect_manifest(records: CaseInsensitiveDict, base_dir: Path) -> dict:
    """Build a JSON-serializable description of parsed records.

    Paths are resolved against base_dir but not checked for existence;
    each resolved path is reported together with an `exists` flag.

    Returns:
        Dict keyed by material name, e.g.:
        {
          "Car_Body": {
            "effect": {"path": "..\\\\shaders\\\\CarPaint.fx",
                       "resolved": "/content/shaders/CarPaint.fx",
                       "exists": true},
            "textures": {"diffuseTexture": {...}},
            "metadata": {"technique": 2},
            "parameters": {"ambientColor": [0.1, 0.1, 0.1, 1.0]}
          }
        }
    """
    resolver = AssetResolver(base_dir)
    manifest: dict[str, dict] = {}

    def describe(relative: str) -> dict:
        resolved = resolver.resolve(relative)
        return {
            "path": relative,
            "resolved": str(resolved),
            "exists": resolver.exists(resolved),
        }

    for record in records.values():
        textures = {}
        metadata: dict[str, object] = {}

        for name, value in record.string_params.items():
            if looks_like_texture_path(value):
                textures[name] = describe(value)
            else:
                metadata[name] = value

        metadata.update(record.integer_params)

        manifest[record.material_name] = {
            "effect": describe(record.effect_path),
            "textures": textures,
            "metadata": metadata,
            "parameters": {name: list(values) for name, values in record.vector_params.items()},
        }

    return manifest


def write_effect_manifest(records: CaseInsensitiveDict, base_dir: Path, output_path: Path) -> None:
    """Write build_effect_manifest() output as indented JSON."""
    manifest = build_effect_manifest(records, base_dir)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with output_path.open("w", encoding="utf-8") as f:
        json.dump(manifest, f, indent=2)

    logger.info("Wrote effect manifest with %d materials to: %s", len(manifest), output_path)


def _check_record_assets(record: EffectRecord, resolver: AssetResolver, stats: ProcessorStats) -> None:
    try:
        assets = resolve_record_assets(record, resolver)
    except MissingAssetError as e:
        logger.error("%s", e)
        stats.errors.append(str(e))
        return

    stats.effects_found += 1
    stats.textures_found += len(assets.textures)


def preview_effects(config: ProcessorConfig) -> ProcessorStats:
    """Parse a .x file and verify its assets without a scene tree.

    Parse failures and missing assets are recorded in the returned stats
    instead of being raised.

    Args:
        config: ProcessorConfig with the source file and options.

    Returns:
        ProcessorStats; stats.errors is empty if every asset was found.
    """
    stats = ProcessorStats()

    try:
        source = resolve_source_file(config.source_file)
        records = parse_effects_file(source)
    except (FileNotFoundError, ValueError) as e:
        logger.error("%s", e)
        stats.errors.append(str(e))
        return stats

    stats.materials_parsed = len(records)
    logger.info("Parsed %d EffectInstance(s) from %s", len(records), source.name)

    if not records:
        stats.warnings.append(f"No EffectInstance data found in {source.name}")

    resolver = AssetResolver(source.parent)
    for record in records.values():
        _check_record_assets(record, resolver, stats)

    if config.manifest_path is not None:
        write_effect_manifest(records, source.parent, config.manifest_path)

    return stats


def print_summary(stats: ProcessorStats) -> None:
    """Print processing summary to console.

    Args:
        stats: Processor statistics.
    """
    print("\n" + "=" * 60)
    print("EffectInstance Summary")
    print("=" * 60)
    print(f"  Materials Parsed:    {stats.materials_parsed}")
    print(f"  Effects Found:       {stats.effects_found}")
    print(f"  Textures Found:      {stats.textures_found}")
    if stats.geometries_rewritten > 0:
        print(f"  Geometries Rewritten: {stats.geometries_rewritten}")

    if stats.warnings:
        print(f"\n  Warnings: {len(stats.warnings)}")
        for warning in stats.warnings:
            print(f"    - {warning}")

    if stats.errors:
        print(f"\n  Errors: {len(stats.errors)}")
        for error in stats.errors[:5]:
            print(f"    - {error}")
        if len(stats.errors) > 5:
            print(f"    ... and {len(stats.errors) - 5} more")

    print("=" * 60 + "\n")


def parse_args(argv: list[str] | None = None) -> ProcessorConfig:
    """Parse command-line arguments and validate inputs.

    Returns:
        ProcessorConfig with an absolute source path.

    Raises:
        SystemExit: If required arguments are missing or invalid.
    """
    parser = argparse.ArgumentParser(
        description="Inspect EffectInstance materials in a DirectX .x file.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python model_processor.py Content/Models/Car.x

    python model_processor.py Content/Models/Car.x \\
        --manifest build/Car.effects.json --verbose
""",
    )

    parser.add_argument(
        "source_file",
        type=Path,
        help="Path to the .x model file",
    )
    parser.add_argument(
        "--manifest",
        type=Path,
        default=None,
        help="Write a JSON manifest of parsed effects to this path",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args(argv)

    if not args.source_file.is_file():
        parser.error(f"Source .x file not found: {args.source_file}")

    return ProcessorConfig(
        source_file=args.source_file.resolve(),
        manifest_path=args.manifest.resolve() if args.manifest else None,
        verbose=args.verbose,
    )


def main(argv: list[str] | None = None) -> int:
    """CLI entry point.

    Returns:
        Exit code (0 for success, 1 for errors).
    """
    try:
        config = parse_args(argv)
    except SystemExit:
        return 1

    log_level = logging.DEBUG if config.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(levelname)s: %(message)s",
    )

    try:
        stats = preview_effects(config)
    except KeyboardInterrupt:
        print("\nInterrupted by user.")
        return 1
    except Exception as e:
        logger.exception("Unexpected error while processing: %s", e)
        return 1

    print_summary(stats)

    if stats.errors:
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
