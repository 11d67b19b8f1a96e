"""Match inputs against keys and decode the names captured by their slots."""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence

from core.matching.key_parser import parse_key
from core.matching.models import NO_MATCH, MatchResult, NameMapping, SlotMode
from core.matching.name_decoder import match_name_characters
from core.matching.pattern_compiler import build_matching_pattern

logger = logging.getLogger("namekey.matching")


def match_pattern(
    input_text: str,
    key: str,
    name_mappings: Sequence[NameMapping],
    *,
    slot_mode: SlotMode = "all",
) -> MatchResult:
    """Test ``input_text`` against ``key`` and decode its name slots.

    Keys without a name slot never match. A structural match that decodes to
    zero names is a non-match too.

    Args:
        input_text: Text to test.
        key: Key in the literal / ``/regex/flags`` / ``<p>`` / ``<p,>`` grammar.
        name_mappings: Name tokens available to the slots, in priority order.
        slot_mode: ``"all"`` accumulates names from every slot, ``"first"``
            decodes only the first slot.

    Returns:
        MatchResult with the decoded names in slot order.
    """

    if slot_mode not in {"all", "first"}:
        raise ValueError(f"Unsupported slot mode: {slot_mode}")

    segments = parse_key(key)
    if not any(segment.kind == "name_slot" for segment in segments):
        return NO_MATCH

    mapping_keys = [mapping.key for mapping in name_mappings if mapping.key]
    if not mapping_keys:
        return NO_MATCH

    try:
        compiled = build_matching_pattern(segments, mapping_keys)
    except (re.error, OverflowError, RecursionError) as exc:
        logger.debug("key pattern did not compile: key=%r error=%s", key, exc)
        return NO_MATCH

    match = compiled.pattern.fullmatch(input_text)
    if match is None:
        return NO_MATCH

    slot_indices = compiled.name_slot_indices
    if slot_mode == "first":
        slot_indices = slot_indices[:1]

    names: list[str] = []
    for group_index in slot_indices:
        name_chars = match.group(group_index)
        if name_chars:
            names.extend(match_name_characters(name_chars, name_mappings))

    if not names:
        return NO_MATCH
    return MatchResult(matched=True, matched_names=tuple(names))
