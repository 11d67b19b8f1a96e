"""Key parser for the literal / ``/regex/flags`` / name-slot key grammar.

Rules:
- ``/body/flags`` is an embedded regex when ``body`` compiles with ``flags``.
- ``<p,>`` is a multi-name slot, ``<p>`` a single-name slot.
- Everything else is literal text.

Parsing never fails: anything outside the grammar becomes literal text and the
segments always tile the key exactly.
"""

from __future__ import annotations

import re

from core.matching.models import MULTI_SLOT, SINGLE_SLOT, PatternSegment

_SLASH = "/"
_OPEN_ANGLE = "<"
_SPECIAL_CHARS = frozenset({_SLASH, _OPEN_ANGLE})

# Flags without an ``re`` counterpart are accepted and carry no meaning here.
_FLAG_MAP: dict[str, re.RegexFlag] = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
    "g": re.NOFLAG,
    "u": re.NOFLAG,
    "y": re.NOFLAG,
    "d": re.NOFLAG,
    "v": re.NOFLAG,
}


def parse_key(key: str) -> tuple[PatternSegment, ...]:
    """Split a key into literal, regex, and name-slot segments, left to right."""

    segments: list[PatternSegment] = []
    index = 0
    length = len(key)

    while index < length:
        if key[index] == _SLASH:
            regex_segment = _try_regex_segment(key, index)
            if regex_segment is not None:
                segments.append(regex_segment)
                index += len(regex_segment.content)
                continue

        if key.startswith(MULTI_SLOT, index):
            segments.append(PatternSegment(kind="name_slot", content=MULTI_SLOT))
            index += len(MULTI_SLOT)
            continue

        if key.startswith(SINGLE_SLOT, index):
            segments.append(PatternSegment(kind="name_slot", content=SINGLE_SLOT))
            index += len(SINGLE_SLOT)
            continue

        literal_end = _scan_until_special(key, index + 1)
        segments.append(PatternSegment(kind="literal", content=key[index:literal_end]))
        index = literal_end

    return tuple(segments)


def translate_flags(flags: str) -> re.RegexFlag | None:
    """Map ``/.../flags`` letters to ``re`` flags; ``None`` when any letter is invalid."""

    if len(set(flags)) != len(flags):
        return None

    combined = re.NOFLAG
    for flag in flags:
        try:
            combined |= _FLAG_MAP[flag]
        except KeyError:
            return None
    return combined


def _try_regex_segment(key: str, start: int) -> PatternSegment | None:
    close = key.find(_SLASH, start + 1)
    if close == -1:
        return None

    body = key[start + 1 : close]
    flags_end = _scan_until_special(key, close + 1)
    flags = key[close + 1 : flags_end]

    re_flags = translate_flags(flags)
    if re_flags is None:
        return None

    try:
        re.compile(body, re_flags)
    except (re.error, OverflowError, RecursionError):
        return None

    return PatternSegment(
        kind="regex",
        content=key[start:flags_end],
        body=body,
        flags=flags,
    )


def _scan_until_special(key: str, start: int) -> int:
    end = start
    while end < len(key) and key[end] not in _SPECIAL_CHARS:
        end += 1
    return end
