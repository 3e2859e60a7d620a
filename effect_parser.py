"""Parse EffectInstance records out of DirectX .x text files.

A .x Material block may carry an EffectInstance data object that binds the
material to an HLSL effect file and supplies typed effect parameters. The
full .x grammar is not parsed here; Material and EffectInstance blocks are
located with block_scanner and their contents are extracted with regex
patterns.

The module provides:
- CaseInsensitiveDict: Mapping keyed by case-insensitive names
- EffectRecord: Dataclass holding one parsed EffectInstance
- UnsupportedVectorLengthError: Raised for float vectors outside 1-4 values
- unescape_x_string(): Collapse .x string escapes
- parse_effect_instance(): Parse one EffectInstance body
- parse_effects(): Parse every Material/EffectInstance pair of a document
- parse_effects_file(): Convenience wrapper reading the document from disk

EffectInstance Structure:
    Material Car_Body {
      1.000000;1.000000;1.000000;1.000000;;
      EffectInstance {
        "..\\\\shaders\\\\CarPaint.fx";
        EffectParamDWord { "technique"; 2; }
        EffectParamString { "diffuseTexture"; "..\\\\textures\\\\Car.dds"; }
        EffectParamFloats { "ambientColor"; 4; 0.1, 0.1, 0.1, 1.0;; }
      }
    }

Example:
    >>> from effect_parser import parse_effects
    >>> records = parse_effects(Path("Car.x").read_text())
    >>> record = records["car_body"]
    >>> print(record.effect_path)
    '..\\shaders\\CarPaint.fx'
    >>> print(record.integer_params["technique"])
    2
"""

from __future__ import annotations

import locale
import logging
import re
from collections.abc import MutableMapping
from dataclasses import dataclass, field
from pathlib import Path

from block_scanner import find_block, iter_blocks

logger = logging.getLogger(__name__)

# Effect file extensions accepted for the bare quoted-path form
SHADER_EXTENSIONS: tuple[str, ...] = (".fx", ".fxo", ".cgfx", ".hlsl")

# Float vectors map onto scalar, float2, float3 and float4 shader inputs
MIN_VECTOR_LENGTH = 1
MAX_VECTOR_LENGTH = 4


class UnsupportedVectorLengthError(ValueError):
    """A float-vector parameter declares an element count outside 1-4."""

    def __init__(self, material_name: str, param_name: str, count: int):
        self.material_name = material_name
        self.param_name = param_name
        self.count = count
        super().__init__(
            f"Material '{material_name}': EffectParamFloats '{param_name}' declares "
            f"{count} values, only {MIN_VECTOR_LENGTH}-{MAX_VECTOR_LENGTH} are supported"
        )


class CaseInsensitiveDict(MutableMapping):
    """Dict with case-insensitive string keys.

    Lookups, membership and overwrites ignore case. Iteration yields the key
    spelling used by the most recent assignment.

    Example:
        >>> params = CaseInsensitiveDict()
        >>> params["Technique"] = 1
        >>> params["technique"] = 2
        >>> dict(params)
        {'technique': 2}
    """

    def __init__(self, data=None, **kwargs):
        self._store: dict[str, tuple[str, object]] = {}
        if data is None:
            data = {}
        self.update(data, **kwargs)

    def __setitem__(self, key: str, value) -> None:
        self._store[key.lower()] = (key, value)

    def __getitem__(self, key: str):
        return self._store[key.lower()][1]

    def __delitem__(self, key: str) -> None:
        del self._store[key.lower()]

    def __iter__(self):
        return (original for original, _ in self._store.values())

    def __len__(self) -> int:
        return len(self._store)

    def copy(self) -> CaseInsensitiveDict:
        return CaseInsensitiveDict(self.items())

    def __repr__(self) -> str:
        return f"{type(self).__name__}({dict(self.items())!r})"


@dataclass
class EffectRecord:
    """Parsed contents of one EffectInstance block.

    Attributes:
        material_name: Name of the Material block, spelled as declared.
        effect_path: Relative path to the effect file with .x escapes
            removed (e.g. "..\\shaders\\CarPaint.fx"). Empty if the block
            declared no effect file.
        integer_params: EffectParamDWord values keyed by parameter name,
            as signed 32-bit integers.
        string_params: EffectParamString values keyed by parameter name.
            Texture references are told apart later by the rewriter.
        vector_params: EffectParamFloats values keyed by parameter name,
            each a tuple of 1 to 4 floats.
    """

    material_name: str
    effect_path: str = ""
    integer_params: CaseInsensitiveDict = field(default_factory=CaseInsensitiveDict)
    string_params: CaseInsensitiveDict = field(default_factory=CaseInsensitiveDict)
    vector_params: CaseInsensitiveDict = field(default_factory=CaseInsensitiveDict)

    @property
    def has_effect(self) -> bool:
        return bool(self.effect_path)


# =============================================================================
# Regex Patterns for EffectInstance Parsing
# =============================================================================

# Double-quoted .x string; backslash escapes the next character
# Example: "..\\shaders\\Car \"A\".fx"
# Captures: group(1) = raw contents, escapes still in place
_QUOTED = r'"((?:[^"\\]|\\.)*)"'
_QUOTED_STRING_PATTERN = re.compile(_QUOTED, re.DOTALL)

# Keyword-qualified effect file
# Format: EffectFilename { "<path>"; }
# Captures: group(1) = path
_EFFECT_FILENAME_PATTERN = re.compile(
    r"\bEffectFilename\s*\{\s*" + _QUOTED + r"\s*;?\s*\}",
    re.IGNORECASE | re.DOTALL,
)

# Integer parameter
# Format: EffectParamDWord { "<name>"; <integer>; }
# Example: EffectParamDWord { "technique"; 2; }
# Captures: group(1) = name, group(2) = integer
_DWORD_PATTERN = re.compile(
    r"\bEffectParamDWord\s*\{\s*" + _QUOTED + r"\s*;\s*([-+]?\d+)\s*;?\s*\}",
    re.IGNORECASE | re.DOTALL,
)

# String parameter
# Format: EffectParamString { "<name>"; "<value>"; }
# Example: EffectParamString { "diffuseTexture"; "..\\textures\\Car.dds"; }
# Captures: group(1) = name, group(2) = value
_STRING_PATTERN = re.compile(
    r"\bEffectParamString\s*\{\s*" + _QUOTED + r"\s*;\s*" + _QUOTED + r"\s*;?\s*\}",
    re.IGNORECASE | re.DOTALL,
)

# Float-vector parameter
# Format: EffectParamFloats { "<name>"; <count>; <v1>, <v2>, ...;; }
# Example: EffectParamFloats { "ambientColor"; 4; 0.1, 0.1, 0.1, 1.0;; }
# Captures: group(1) = name, group(2) = count, group(3) = value list
_FLOATS_PATTERN = re.compile(
    r"\bEffectParamFloats\s*\{\s*" + _QUOTED + r"\s*;\s*(\d+)\s*;([^{}]*)\}",
    re.IGNORECASE | re.DOTALL,
)

# Separators inside a float list (commas, trailing semicolons, whitespace)
_FLOAT_SEPARATOR_PATTERN = re.compile(r"[,;\s]+")

# One locale-invariant decimal number, optional exponent
_FLOAT_TOKEN_PATTERN = re.compile(r"[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?")

# Escape sequences collapsed by unescape_x_string
_ESCAPE_PATTERN = re.compile(r'\\(["\\])')


def unescape_x_string(value: str) -> str:
    """Collapse .x string escapes.

    Doubled backslashes become one backslash and escaped quotes become a
    plain quote. The replacement is done in a single pass, so `\\\\"`
    sequences are not unescaped twice.

    Example:
        >>> unescape_x_string(r"..\\\\shaders\\\\X.fx")
        '..\\\\shaders\\\\X.fx'
    """
    return _ESCAPE_PATTERN.sub(r"\1", value)


def _to_int32(value: int) -> int:
    """Reinterpret an integer as a signed 32-bit DWORD value."""
    return (value + 2**31) % 2**32 - 2**31


def _extract_effect_path(body: str) -> str:
    """Extract the effect file path from an EffectInstance body.

    An explicit EffectFilename block wins. Otherwise the first quoted string
    that ends in a shader extension and is terminated by `;` is used.

    Args:
        body: Text between the EffectInstance braces.

    Returns:
        Unescaped effect path, or an empty string if none is declared.
    """
    match = _EFFECT_FILENAME_PATTERN.search(body)
    if match:
        return unescape_x_string(match.group(1)).strip()

    # finditer keeps quote pairs aligned, so closing quotes never open a match
    for match in _QUOTED_STRING_PATTERN.finditer(body):
        value = unescape_x_string(match.group(1)).strip()
        if not value.lower().endswith(SHADER_EXTENSIONS):
            continue

        rest = body[match.end():].lstrip()
        if rest.startswith(";"):
            return value

    return ""


def _parse_integer_params(body: str) -> CaseInsensitiveDict:
    params = CaseInsensitiveDict()

    for match in _DWORD_PATTERN.finditer(body):
        name = unescape_x_string(match.group(1))
        raw = int(match.group(2))
        value = _to_int32(raw)
        if value != raw:
            logger.debug("DWord '%s' value %d wrapped to %d", name, raw, value)
        params[name] = value

    return params


def _parse_string_params(body: str) -> CaseInsensitiveDict:
    params = CaseInsensitiveDict()

    for match in _STRING_PATTERN.finditer(body):
        params[unescape_x_string(match.group(1))] = unescape_x_string(match.group(2))

    return params


def _parse_float_list(values: str, count: int) -> tuple[float, ...]:
    """Parse up to count floats from a comma/whitespace separated list.

    Malformed tokens are skipped and parsing continues with the next token;
    collection stops as soon as count values were parsed.

    Examples:
        >>> _parse_float_list("1.0,2.0,bogus,3.0;", 3)
        (1.0, 2.0, 3.0)
        >>> _parse_float_list("1.0, bogus", 3)
        (1.0,)
    """
    parsed: list[float] = []

    for token in _FLOAT_SEPARATOR_PATTERN.split(values.strip()):
        if not token:
            continue
        if not _FLOAT_TOKEN_PATTERN.fullmatch(token):
            logger.debug("Skipping malformed float token %r", token)
            continue
        parsed.append(float(token))
        if len(parsed) == count:
            break

    return tuple(parsed)


def _parse_vector_params(body: str, material_name: str) -> CaseInsensitiveDict:
    """Parse EffectParamFloats entries into float tuples.

    Raises:
        UnsupportedVectorLengthError: If a parameter declares a count
            outside 1-4.
    """
    params = CaseInsensitiveDict()

    for match in _FLOATS_PATTERN.finditer(body):
        name = unescape_x_string(match.group(1))
        count = int(match.group(2))

        if not MIN_VECTOR_LENGTH <= count <= MAX_VECTOR_LENGTH:
            raise UnsupportedVectorLengthError(material_name, name, count)

        values = _parse_float_list(match.group(3), count)
        if not values:
            logger.debug(
                "Material '%s': float parameter '%s' has no valid values, discarded",
                material_name, name,
            )
            continue

        params[name] = values

    return params


def parse_effect_instance(body: str, material_name: str = "") -> EffectRecord:
    """Parse the body of one EffectInstance block.

    The effect path and the three parameter kinds are extracted
    independently; their order inside the block does not matter. When a
    parameter name repeats, the later entry wins.

    Args:
        body: Text between the EffectInstance braces.
        material_name: Owning material, used for the record and in error
            messages.

    Returns:
        EffectRecord for the block. Records without an effect file are
        still returned (has_effect is False); callers decide to drop them.

    Raises:
        UnsupportedVectorLengthError: If a float vector has an unsupported
            element count.
    """
    return EffectRecord(
        material_name=material_name,
        effect_path=_extract_effect_path(body),
        integer_params=_parse_integer_params(body),
        string_params=_parse_string_params(body),
        vector_params=_parse_vector_params(body, material_name),
    )


def parse_effects(text: str) -> CaseInsensitiveDict:
    """Parse all Material/EffectInstance pairs in a .x document.

    Each named Material block is searched for its first EffectInstance
    block. Materials without one, anonymous materials and records without
    an effect file are skipped. If a material name is declared more than
    once, the last declaration wins.

    Args:
        text: Full .x file content.

    Returns:
        CaseInsensitiveDict mapping material name to EffectRecord.

    Raises:
        UnmatchedBracesError: If any Material or EffectInstance block is not
            closed. No partial result is returned.
        UnsupportedVectorLengthError: If a float vector has an unsupported
            element count.

    Example:
        >>> text = 'Material Foo { EffectInstance { "shader.fx"; } }'
        >>> records = parse_effects(text)
        >>> records["foo"].effect_path
        'shader.fx'
    """
    records = CaseInsensitiveDict()

    for material in iter_blocks(text, "Material"):
        if material.name is None:
            logger.debug("Skipping anonymous Material at offset %d", material.header_start)
            continue

        effect = find_block(material.body, "EffectInstance")
        if effect is None:
            continue

        record = parse_effect_instance(effect.body, material.name)
        if not record.has_effect:
            logger.warning(
                "Material '%s': EffectInstance has no effect file, skipped", material.name
            )
            continue

        if material.name in records:
            logger.warning(
                "Material '%s' declared more than once, using the last declaration",
                material.name,
            )

        records[material.name] = record
        logger.debug(
            "Parsed EffectInstance for '%s': effect=%s, dwords=%d, strings=%d, floats=%d",
            material.name,
            record.effect_path,
            len(record.integer_params),
            len(record.string_params),
            len(record.vector_params),
        )

    return records


def read_source_text(path: Path, encoding: str = "utf-8") -> str:
    """Read a .x document, falling back to the platform encoding.

    Exporters write .x files in UTF-8 or in the machine's ANSI code page.
    If the text is not valid in the requested encoding, it is decoded with
    the platform default and undecodable bytes are replaced.
    """
    try:
        return path.read_text(encoding=encoding)
    except UnicodeDecodeError:
        fallback = locale.getpreferredencoding(False)
        logger.warning(
            "%s is not valid %s, decoding as %s", path, encoding, fallback
        )
        return path.read_text(encoding=fallback, errors="replace")


def parse_effects_file(path: Path, encoding: str = "utf-8") -> CaseInsensitiveDict:
    """Read a .x file and parse its EffectInstance records.

    Args:
        path: Path to the .x file.
        encoding: Preferred text encoding.

    Returns:
        CaseInsensitiveDict mapping material name to EffectRecord.
    """
    return parse_effects(read_source_text(path, encoding))
