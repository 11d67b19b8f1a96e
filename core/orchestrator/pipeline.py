"""Resolution pipeline applying ordered key/value rules to inputs."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Sequence

from core.mappings.models import RuleSet
from core.matching.matcher import match_pattern
from core.matching.models import NameMapping, SlotMode
from core.matching.value_expander import expand_value
from core.orchestrator.models import ResolveOutcome, ResolveSummary


def resolve_input(
    text: str,
    ruleset: RuleSet,
    *,
    name_mappings: Sequence[NameMapping] | None = None,
    slot_mode: SlotMode | None = None,
) -> ResolveOutcome:
    """Execute match -> decode -> expand for the first rule whose key matches.

    ``name_mappings`` and ``slot_mode`` override the rule set's own values.
    """

    mappings = ruleset.to_name_mappings() if name_mappings is None else tuple(name_mappings)
    effective_slot_mode = slot_mode or ruleset.slot_mode

    attempts = 0
    for rule_index, rule in enumerate(ruleset.rules):
        attempts += 1
        result = match_pattern(text, rule.key, mappings, slot_mode=effective_slot_mode)
        if not result.matched:
            continue
        names = list(result.matched_names)
        return ResolveOutcome(
            input=text,
            matched=True,
            rule_index=rule_index,
            rule_key=rule.key,
            names=names,
            output=expand_value(rule.value, names),
            attempts=attempts,
        )

    return ResolveOutcome(input=text, matched=False, attempts=attempts)


def resolve_many(
    lines: Iterable[str],
    ruleset: RuleSet,
    *,
    name_mappings: Sequence[NameMapping] | None = None,
    slot_mode: SlotMode | None = None,
) -> list[ResolveOutcome]:
    """Resolve each line independently; the mapping table is built once."""

    mappings = ruleset.to_name_mappings() if name_mappings is None else tuple(name_mappings)
    return [
        resolve_input(line, ruleset, name_mappings=mappings, slot_mode=slot_mode)
        for line in lines
    ]


def summarize_outcomes(outcomes: Sequence[ResolveOutcome]) -> ResolveSummary:
    hits: Counter[str] = Counter(
        outcome.rule_key for outcome in outcomes if outcome.rule_key is not None
    )
    matched_count = sum(1 for outcome in outcomes if outcome.matched)
    return ResolveSummary(
        total=len(outcomes),
        matched_count=matched_count,
        unmatched_count=len(outcomes) - matched_count,
        rule_hits=dict(sorted(hits.items())),
    )
