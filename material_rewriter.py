"""
Material Rewriter Module for EffectInstance Conversion.

This module walks a scene-node tree and replaces the materials of mesh
geometry with effect materials built from parsed EffectInstance records.

Overview
--------
For every geometry batch whose material name matches a parsed record:

1. Resolve the effect file and all texture files relative to the directory
   of the source .x file. Every asset is checked before anything changes,
   so a missing file leaves that geometry's material untouched.
2. Reuse the geometry's material if it is already an EffectMaterialContent,
   otherwise create one carrying over the old name, textures and values.
3. Bind the effect reference, texture references, string/integer metadata
   and typed float inputs.
4. Encode the `technique` selector into the mesh node name; runtime code
   picks the effect technique from the trailing digits of the node name.

Missing Asset Policy
--------------------
A missing effect or texture file raises MissingAssetError and aborts the
whole rewrite. Geometries processed before the failure keep their new
materials; the failing geometry is left as it was.

Usage
-----
    >>> from effect_parser import parse_effects_file
    >>> from material_rewriter import apply_records
    >>>
    >>> records = parse_effects_file(Path("Content/Car.x"))
    >>> apply_records(scene_root, Path("Content"), records)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Mapping

from effect_parser import (
    MAX_VECTOR_LENGTH,
    MIN_VECTOR_LENGTH,
    CaseInsensitiveDict,
    EffectRecord,
    UnsupportedVectorLengthError,
)
from scene_graph import (
    EffectMaterialContent,
    ExternalReference,
    GeometryContent,
    MaterialContent,
    MeshContent,
    walk,
)

logger = logging.getLogger(__name__)

# =============================================================================
# CONSTANTS
# =============================================================================

# String parameters with one of these extensions (and a path-like shape)
# are bound as texture references instead of opaque metadata.
TEXTURE_EXTENSIONS: tuple[str, ...] = (".dds", ".png", ".jpg", ".jpeg", ".tga", ".bmp")

# Integer parameter copied into the mesh node name.
TECHNIQUE_PARAM = "technique"


class MissingAssetError(FileNotFoundError):
    """An effect or texture referenced by a material does not exist."""

    def __init__(self, material_name: str, path: Path, kind: str = "asset"):
        self.material_name = material_name
        self.path = path
        self.kind = kind
        super().__init__(f"Material '{material_name}': {kind} file not found: {path}")


# =============================================================================
# TYPED SHADER VALUES
# =============================================================================

class ShaderValueKind(Enum):
    """Numeric shader input type selected by vector length."""

    SCALAR = 1
    VECTOR2 = 2
    VECTOR3 = 3
    VECTOR4 = 4


@dataclass(frozen=True)
class ShaderValue:
    """Float shader input tagged with its narrowest type.

    Attributes:
        kind: SCALAR for one value, VECTOR2/3/4 for two to four values.
        components: The float values, len(components) == kind.value.

    Example:
        >>> ShaderValue.from_floats((0.1, 0.2, 0.3))
        ShaderValue(kind=<ShaderValueKind.VECTOR3: 3>, components=(0.1, 0.2, 0.3))
    """

    kind: ShaderValueKind
    components: tuple[float, ...]

    @classmethod
    def from_floats(cls, values, material_name: str = "", param_name: str = "") -> ShaderValue:
        components = tuple(float(v) for v in values)
        if not MIN_VECTOR_LENGTH <= len(components) <= MAX_VECTOR_LENGTH:
            raise UnsupportedVectorLengthError(material_name, param_name, len(components))
        return cls(kind=ShaderValueKind(len(components)), components=components)

    @property
    def value(self) -> float | tuple[float, ...]:
        """Plain Python value: a float for scalars, a tuple otherwise."""
        if self.kind is ShaderValueKind.SCALAR:
            return self.components[0]
        return self.components


# =============================================================================
# FILE RESOLUTION
# =============================================================================

@dataclass
class AssetResolver:
    """Resolve asset paths written in a .x file against its directory.

    .x exporters write Windows separators ("..\\textures\\Car.dds"); they
    are normalized before joining so resolution works on any platform.

    Attributes:
        base_dir: Directory containing the source .x file.
    """

    base_dir: Path

    def resolve(self, relative: str) -> Path:
        """Return the absolute, normalized path for relative."""
        normalized = relative.strip().replace("\\", "/")
        return Path(os.path.abspath(Path(self.base_dir) / normalized))

    def exists(self, path: Path) -> bool:
        return path.is_file()


def looks_like_texture_path(value: str) -> bool:
    """Check if a string parameter value refers to a texture file.

    The value must look like a path (contain a separator or start with a
    dot) and end with a known image extension.

    Examples:
        >>> looks_like_texture_path("..\\\\textures\\\\Car.dds")
        True
        >>> looks_like_texture_path("Car.dds")
        False
        >>> looks_like_texture_path("../notes/readme.txt")
        False
    """
    if not value or not value.strip():
        return False

    value = value.strip()
    path_like = "/" in value or "\\" in value or value.startswith(".")
    return path_like and value.lower().endswith(TEXTURE_EXTENSIONS)


@dataclass
class ResolvedAssets:
    """Absolute asset paths for one record, all verified to exist.

    Attributes:
        effect: Absolute path of the effect file.
        textures: Absolute texture paths keyed by parameter name.
        metadata: String parameters that are not texture references.
    """

    effect: Path
    textures: dict[str, Path] = field(default_factory=dict)
    metadata: dict[str, str] = field(default_factory=dict)


def resolve_record_assets(record: EffectRecord, resolver: AssetResolver) -> ResolvedAssets:
    """Resolve and verify every file a record refers to.

    Args:
        record: Parsed EffectInstance record.
        resolver: Resolver bound to the source file's directory.

    Returns:
        ResolvedAssets with the effect path, texture paths and the
        remaining string metadata.

    Raises:
        MissingAssetError: If the effect or any texture file does not exist.
    """
    effect = resolver.resolve(record.effect_path)
    if not resolver.exists(effect):
        raise MissingAssetError(record.material_name, effect, "effect")

    assets = ResolvedAssets(effect=effect)

    for name, value in record.string_params.items():
        if not looks_like_texture_path(value):
            assets.metadata[name] = value
            continue

        texture = resolver.resolve(value)
        if not resolver.exists(texture):
            raise MissingAssetError(record.material_name, texture, "texture")
        assets.textures[name] = texture

    return assets


# =============================================================================
# REWRITE
# =============================================================================

@dataclass
class RewriteStats:
    """Counters collected by apply_records()."""

    geometries_rewritten: int = 0
    textures_bound: int = 0
    parameters_bound: int = 0
    techniques_applied: int = 0
    materials: set[str] = field(default_factory=set)


def _to_effect_material(material: MaterialContent) -> EffectMaterialContent:
    """Return material as an EffectMaterialContent, copying if needed."""
    if isinstance(material, EffectMaterialContent):
        return material

    return EffectMaterialContent(
        name=material.name,
        textures=dict(material.textures),
        opaque_data=dict(material.opaque_data),
    )


def rewrite_geometry(
    geometry: GeometryContent,
    record: EffectRecord,
    resolver: AssetResolver,
) -> EffectMaterialContent:
    """Bind one geometry's material to the record's effect.

    All files are resolved first; the geometry is only modified once every
    asset was found.

    Returns:
        The effect material now attached to the geometry.

    Raises:
        MissingAssetError: If an effect or texture file does not exist.
        UnsupportedVectorLengthError: If a float vector has 0 or more
            than 4 values.
    """
    assets = resolve_record_assets(record, resolver)
    shader_values = {
        name: ShaderValue.from_floats(values, record.material_name, name)
        for name, values in record.vector_params.items()
    }

    effect_material = _to_effect_material(geometry.material)
    effect_material.effect = ExternalReference(str(assets.effect))

    for name, path in assets.textures.items():
        effect_material.textures[name] = ExternalReference(str(path))

    for name, value in assets.metadata.items():
        effect_material.opaque_data[name] = value

    # Technique selectors are metadata, not shader inputs
    for name, value in record.integer_params.items():
        effect_material.opaque_data[name] = value

    effect_material.opaque_data.update(shader_values)

    geometry.material = effect_material
    return effect_material


def _apply_technique_suffix(mesh: MeshContent, record: EffectRecord) -> bool:
    """Append the technique number to the mesh name, once."""
    if TECHNIQUE_PARAM not in record.integer_params:
        return False

    suffix = str(record.integer_params[TECHNIQUE_PARAM])
    if not mesh.name or mesh.name.endswith(suffix):
        return False

    mesh.name = mesh.name + suffix
    logger.debug("Technique=%s => node name '%s'", suffix, mesh.name)
    return True


def apply_records(
    scene_root,
    base_dir: Path,
    records: Mapping[str, EffectRecord],
    resolver: AssetResolver | None = None,
    stats: RewriteStats | None = None,
):
    """Replace matching geometry materials with effect materials.

    This is the main entry point of the rewrite stage. The tree is walked
    depth-first; for each mesh geometry whose material name has a record
    (case-insensitive), the material is rewritten via rewrite_geometry().
    Geometries without a material, with an unnamed material or without a
    record are left untouched. Node shape and identity never change.

    Applying the same records twice gives the same result as applying them
    once. Effect materials are reused. A mesh takes the suffix of the first
    technique found on it, and only when the name lacks it.

    Args:
        scene_root: Root NodeContent of the scene.
        base_dir: Directory of the source .x file; relative effect and
            texture paths are resolved against it.
        records: Material name to EffectRecord mapping, usually the
            CaseInsensitiveDict returned by parse_effects().
        resolver: Optional AssetResolver; defaults to one for base_dir.
        stats: Optional RewriteStats to update.

    Returns:
        scene_root, mutated in place.

    Raises:
        MissingAssetError: If a referenced file does not exist. The rewrite
            stops at the first missing file.
    """
    if resolver is None:
        resolver = AssetResolver(Path(base_dir))
    if stats is None:
        stats = RewriteStats()
    if not isinstance(records, CaseInsensitiveDict):
        records = CaseInsensitiveDict(records)

    for node in walk(scene_root):
        if not isinstance(node, MeshContent):
            continue

        # Only the first technique seen on a mesh names it
        technique_seen = False

        for geometry in node.geometry:
            material = geometry.material
            if material is None or not material.name:
                continue

            record = records.get(material.name)
            if record is None:
                continue

            rewrite_geometry(geometry, record, resolver)

            stats.geometries_rewritten += 1
            stats.textures_bound += sum(
                looks_like_texture_path(value) for value in record.string_params.values()
            )
            stats.parameters_bound += len(record.vector_params)
            stats.materials.add(record.material_name)

            if not technique_seen and TECHNIQUE_PARAM in record.integer_params:
                technique_seen = True
                if _apply_technique_suffix(node, record):
                    stats.techniques_applied += 1

            logger.info(
                "Applied FX '%s' to material '%s' (mesh '%s')",
                record.effect_path, material.name, node.name or "<no name>",
            )

    return scene_root
