"""Compile parsed key segments into one anchored matching pattern."""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence

from core.matching.models import CompiledPattern, PatternSegment


def build_matching_pattern(
    segments: Sequence[PatternSegment],
    name_mapping_keys: Iterable[str],
) -> CompiledPattern:
    """Build an anchored pattern whose name-slot groups capture name characters.

    Capture groups are numbered in emission order starting at 1. Regex
    segments consume their own group (plus any groups inside their body) but
    only name-slot groups are recorded in ``name_slot_indices``.

    Raises:
        re.error: The combined pattern does not compile. Each embedded regex
            is valid on its own, but back-references or inline global flags
            can still break once the pieces are joined.
    """

    alternation = build_name_alternation(name_mapping_keys)
    single_slot = f"({alternation})"
    multi_slot = f"((?:{alternation})+)"

    parts: list[str] = []
    name_slot_indices: list[int] = []
    group_index = 1

    for segment in segments:
        if segment.kind == "literal":
            parts.append(re.escape(segment.content))
        elif segment.kind == "regex":
            body = segment.body or ""
            if not body:
                continue
            parts.append(f"({body})")
            group_index += 1 + re.compile(body).groups
        elif segment.kind == "name_slot":
            parts.append(multi_slot if segment.is_multi_slot else single_slot)
            name_slot_indices.append(group_index)
            group_index += 1

    pattern = re.compile("^" + "".join(parts) + "$")
    return CompiledPattern(pattern=pattern, name_slot_indices=tuple(name_slot_indices))


def build_name_alternation(name_mapping_keys: Iterable[str]) -> str:
    """Escaped, longest-first alternation of the non-empty mapping keys.

    ``re`` tries alternatives in listed order, so a key that is a prefix of
    another (``a`` / ``ab``) must come after it.
    """

    usable = [key for key in name_mapping_keys if key]
    ordered = sorted(usable, key=len, reverse=True)
    return "|".join(re.escape(key) for key in ordered)
