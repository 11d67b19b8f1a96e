"""Human-readable rendering of parse, match, and resolve results for CLI output."""

from __future__ import annotations

from collections.abc import Sequence

from core.matching.models import MatchResult, PatternSegment
from core.orchestrator.models import ResolveOutcome, ResolveSummary


def render_segments(key: str, segments: Sequence[PatternSegment]) -> str:
    lines = [f"key: {key!r}", f"segments: {len(segments)}"]
    for index, segment in enumerate(segments):
        detail = f"[{index}] {segment.kind} {segment.content!r}"
        if segment.kind == "regex":
            detail += f" body={segment.body!r} flags={segment.flags!r}"
        lines.append(detail)
    name_slots = sum(1 for segment in segments if segment.kind == "name_slot")
    if name_slots == 0:
        lines.append("note: no name slot, this key never matches")
    return "\n".join(lines)


def render_match(result: MatchResult, *, output: str | None = None) -> str:
    """Render one-screen match summary."""

    lines = [f"result={'MATCHED' if result.matched else 'NO_MATCH'}"]
    if result.matched:
        lines.append(f"names: {', '.join(result.matched_names)}")
    if output is not None:
        lines.append(f"output: {output}")
    return "\n".join(lines)


def render_resolve(outcomes: Sequence[ResolveOutcome], summary: ResolveSummary) -> str:
    """Render per-input outcomes followed by batch counts."""

    lines: list[str] = []
    for outcome in outcomes:
        if outcome.matched:
            lines.append(f"{outcome.input} -> {outcome.output} (rule {outcome.rule_index})")
        else:
            lines.append(f"{outcome.input} -> NO_MATCH")

    lines.append(
        f"summary: total={summary.total} matched={summary.matched_count} "
        f"unmatched={summary.unmatched_count}"
    )
    if summary.rule_hits:
        top_items = sorted(summary.rule_hits.items(), key=lambda item: (-item[1], item[0]))[:5]
        lines.append("rule_hits: " + ", ".join(f"{key}={count}" for key, count in top_items))
    return "\n".join(lines)
