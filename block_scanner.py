"""Locate brace-delimited blocks inside DirectX .x text files.

The .x text format nests data objects inside curly braces:

    Material Car_Body {
      1.000000;1.000000;1.000000;1.000000;;
      EffectInstance {
        "..\\shaders\\CarPaint.fx";
        EffectParamString { "note"; "a{b}c"; }
      }
    }

Quoted strings may contain brace characters, so block boundaries cannot be
found with a plain regex. This module scans the text with an explicit
cursor and depth counter, ignoring braces inside double-quoted strings.

The module provides:
- Block: Dataclass describing one located block
- UnmatchedBracesError: Raised when a block is never closed
- find_matching_brace(): Quote-aware matching brace search
- find_block(): Find the next `<token> [name] {` block
- iter_blocks(): Iterate all top-level occurrences of a token

Example:
    >>> from block_scanner import find_block
    >>> block = find_block(text, "Material")
    >>> print(block.name)
    'Car_Body'
    >>> inner = find_block(block.body, "EffectInstance")
"""

from __future__ import annotations

import logging
import re
import string
from dataclasses import dataclass
from typing import Iterator

logger = logging.getLogger(__name__)

# Characters allowed in a block identifier (Material Car_Body-01 { ... })
_IDENT_CHARS = frozenset(string.ascii_letters + string.digits + "_-")


class UnmatchedBracesError(ValueError):
    """A block was opened but the text ended before it was closed."""

    def __init__(self, token: str, name: str | None, offset: int):
        self.token = token
        self.name = name
        self.offset = offset
        label = f"{token} {name}" if name else token
        super().__init__(f"Unmatched braces in '{label}' block opened at offset {offset}")


@dataclass
class Block:
    """A brace-delimited block located in source text.

    Attributes:
        token: The keyword that introduced the block (as searched for).
        name: Optional identifier between the keyword and the brace, or None
            for anonymous blocks such as `EffectInstance {`.
        body: Text between the braces, braces excluded.
        header_start: Offset of the keyword in the scanned text.
        body_start: Offset just after the opening brace.
        body_end: Offset of the matching closing brace.
    """

    token: str
    name: str | None
    body: str
    header_start: int
    body_start: int
    body_end: int


def _is_escaped(text: str, pos: int) -> bool:
    """Return True if the character at pos is preceded by an odd backslash run."""
    backslashes = 0
    i = pos - 1
    while i >= 0 and text[i] == "\\":
        backslashes += 1
        i -= 1
    return backslashes % 2 == 1


def find_matching_brace(text: str, open_pos: int) -> int:
    """Find the closing brace matching the opening brace at open_pos.

    Tracks nesting depth from open_pos forward. Double-quoted strings are
    skipped: a quote toggles the in-string state unless it is escaped by an
    odd number of consecutive backslashes. Braces inside strings are not
    counted.

    Args:
        text: Text to scan.
        open_pos: Index of a `{` character in text.

    Returns:
        Index of the matching `}`, or -1 if the text ends first.

    Example:
        >>> find_matching_brace('{ "a}b" { } }', 0)
        12
    """
    depth = 0
    in_string = False

    for i in range(open_pos, len(text)):
        ch = text[i]

        if ch == '"' and not _is_escaped(text, i):
            in_string = not in_string
            continue

        if in_string:
            continue

        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i

    return -1


def _skip_whitespace(text: str, pos: int) -> int:
    while pos < len(text) and text[pos].isspace():
        pos += 1
    return pos


def _token_pattern(token: str) -> re.Pattern[str]:
    """Compile a case-insensitive whole-word pattern for token.

    Neighbouring identifier characters (including `-`) reject the match,
    so "Material" never matches inside "MeshMaterialList".
    """
    return re.compile(
        rf"(?<![A-Za-z0-9_-]){re.escape(token)}(?![A-Za-z0-9_-])",
        re.IGNORECASE | re.ASCII,
    )


def find_block(text: str, token: str, start: int = 0) -> Block | None:
    """Find the next `<token> [name] {` block at or after start.

    The token is matched case-insensitively and only as a whole word, so
    searching for "Material" skips "MeshMaterialList". An optional
    identifier may follow the token; the next non-whitespace character must
    then be `{`, otherwise the occurrence is not a block header and the
    search continues.

    Args:
        text: Text to search.
        token: Block keyword, e.g. "Material" or "EffectInstance".
        start: Offset to begin searching from.

    Returns:
        The located Block, or None if no further block exists. Callers loop
        until None is returned.

    Raises:
        UnmatchedBracesError: If the block's opening brace is never closed.
    """
    pattern = _token_pattern(token)
    pos = start

    while True:
        match = pattern.search(text, pos)
        if match is None:
            return None

        hit, token_end = match.span()
        pos = token_end

        cursor = _skip_whitespace(text, token_end)

        name_start = cursor
        while cursor < len(text) and text[cursor] in _IDENT_CHARS:
            cursor += 1
        name = text[name_start:cursor] or None

        cursor = _skip_whitespace(text, cursor)
        if cursor >= len(text) or text[cursor] != "{":
            logger.debug("'%s' at offset %d is not a block header, skipping", token, hit)
            continue

        close = find_matching_brace(text, cursor)
        if close < 0:
            raise UnmatchedBracesError(token, name, hit)

        return Block(
            token=token,
            name=name,
            body=text[cursor + 1:close],
            header_start=hit,
            body_start=cursor + 1,
            body_end=close,
        )


def iter_blocks(text: str, token: str) -> Iterator[Block]:
    """Yield every block introduced by token, in document order.

    Scanning resumes after each block's closing brace, so blocks nested
    inside a found block are not reported separately.
    """
    pos = 0
    while True:
        block = find_block(text, token, pos)
        if block is None:
            return
        yield block
        pos = block.body_end + 1
