"""Data models for rule resolution output."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class ResolveOutcome(BaseModel):
    """Result of running one input through an ordered rule list."""

    model_config = ConfigDict(extra="forbid")

    input: str
    matched: bool
    rule_index: int | None = None
    rule_key: str | None = None
    names: list[str] = Field(default_factory=list)
    output: str | None = None
    attempts: int = 0


class ResolveSummary(BaseModel):
    """Aggregate counts for a batch of resolved inputs."""

    model_config = ConfigDict(extra="forbid")

    total: int
    matched_count: int
    unmatched_count: int
    rule_hits: dict[str, int] = Field(default_factory=dict)
