"""Data models for rule sets and the name-mapping store."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from core.matching.models import NameMapping


class NameMappingEntry(BaseModel):
    """One name token and the display value it decodes to."""

    model_config = ConfigDict(extra="forbid")

    key: str = Field(min_length=1)
    value: str


class Rule(BaseModel):
    """Key pattern paired with the value template it expands to."""

    model_config = ConfigDict(extra="forbid")

    key: str = Field(min_length=1)
    value: str
    note: str | None = None


class RuleSet(BaseModel):
    """Ordered rules plus the name mappings their slots decode with."""

    model_config = ConfigDict(extra="forbid")

    version: int = 1
    slot_mode: Literal["all", "first"] = "all"
    name_mappings: list[NameMappingEntry] = Field(default_factory=list)
    rules: list[Rule] = Field(default_factory=list)

    def to_name_mappings(self) -> tuple[NameMapping, ...]:
        return entries_to_name_mappings(self.name_mappings)


def entries_to_name_mappings(entries: list[NameMappingEntry]) -> tuple[NameMapping, ...]:
    return tuple(NameMapping(key=entry.key, value=entry.value) for entry in entries)


@dataclass
class NameMapSet:
    """Stored name mappings under one set name."""

    name: str
    mappings: list[NameMappingEntry] = field(default_factory=list)
    note: str | None = None


@dataclass
class NameMapStoreData:
    """On-disk JSON structure for name-mapping sets."""

    version: int = 1
    sets: dict[str, NameMapSet] = field(default_factory=dict)
