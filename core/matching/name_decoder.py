"""Greedy decoding of captured name characters into mapped names."""

from __future__ import annotations

from collections.abc import Iterable

from core.matching.models import NameMapping


def match_name_characters(name_chars: str, name_mappings: Iterable[NameMapping]) -> list[str]:
    """Decode ``name_chars`` with longest-prefix-first matching.

    Mappings are tried longest key first; equal lengths keep their original
    order. A character no mapping can start with is dropped.
    """

    ordered = sorted(
        (mapping for mapping in name_mappings if mapping.key),
        key=lambda mapping: len(mapping.key),
        reverse=True,
    )

    names: list[str] = []
    position = 0
    while position < len(name_chars):
        for mapping in ordered:
            if name_chars.startswith(mapping.key, position):
                names.append(mapping.value)
                position += len(mapping.key)
                break
        else:
            position += 1

    return names
