"""Data models for key parsing, pattern compilation, and matching."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Literal

SegmentKind = Literal["literal", "regex", "name_slot"]
SlotMode = Literal["all", "first"]

SINGLE_SLOT = "<p>"
MULTI_SLOT = "<p,>"


@dataclass(frozen=True)
class PatternSegment:
    """One atomic unit of a parsed key.

    ``content`` is the exact substring consumed from the key. Regex segments
    also carry the parsed ``body`` and ``flags``.
    """

    kind: SegmentKind
    content: str
    body: str | None = None
    flags: str | None = None

    @property
    def is_multi_slot(self) -> bool:
        return self.kind == "name_slot" and self.content == MULTI_SLOT


@dataclass(frozen=True)
class NameMapping:
    """Literal name token and its decoded display value."""

    key: str
    value: str


@dataclass(frozen=True)
class CompiledPattern:
    """Anchored matching pattern plus the capture groups of its name slots."""

    pattern: re.Pattern[str]
    name_slot_indices: tuple[int, ...] = ()

    @property
    def source(self) -> str:
        return self.pattern.pattern


@dataclass(frozen=True)
class MatchResult:
    matched: bool
    matched_names: tuple[str, ...] = field(default_factory=tuple)


NO_MATCH = MatchResult(matched=False)
