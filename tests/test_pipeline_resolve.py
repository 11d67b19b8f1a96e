from __future__ import annotations

from pathlib import Path

from core.mappings.models import NameMappingEntry, Rule, RuleSet
from core.mappings.ruleset_loader import load_ruleset
from core.matching.models import NameMapping
from core.orchestrator.pipeline import resolve_input, resolve_many, summarize_outcomes


def _ruleset(**overrides: object) -> RuleSet:
    payload: dict[str, object] = {
        "name_mappings": [
            NameMappingEntry(key="a", value="Alice"),
            NameMappingEntry(key="ab", value="Abby"),
            NameMappingEntry(key="b", value="Bob"),
        ],
        "rules": [
            Rule(key="gym", value="Went to the gym"),
            Rule(key="lunch <p,>", value="Lunch with <p>"),
            Rule(key="<p> vs <p,>", value="<p> played against <p>"),
        ],
    }
    payload.update(overrides)
    return RuleSet.model_validate(payload)


def test_first_matching_rule_wins() -> None:
    outcome = resolve_input("lunch abb", _ruleset())

    assert outcome.matched
    assert outcome.rule_index == 1
    assert outcome.rule_key == "lunch <p,>"
    assert outcome.names == ["Abby", "Bob"]
    assert outcome.output == "Lunch with Abby, Bob"
    assert outcome.attempts == 2


def test_multi_slot_rule_uses_asymmetric_expansion() -> None:
    outcome = resolve_input("a vs bab", _ruleset())

    assert outcome.output == "Alice played against Bob, Abby"


def test_rule_without_slot_never_matches() -> None:
    outcome = resolve_input("gym", _ruleset())

    assert not outcome.matched
    assert outcome.output is None
    assert outcome.attempts == 3


def test_override_name_mappings_and_slot_mode() -> None:
    outcome = resolve_input(
        "a vs b",
        _ruleset(),
        name_mappings=[NameMapping(key="a", value="Ann"), NameMapping(key="b", value="Ben")],
        slot_mode="first",
    )

    assert outcome.names == ["Ann"]
    assert outcome.output == "Ann played against "


def test_resolve_many_and_summary() -> None:
    outcomes = resolve_many(["lunch a", "nothing", "lunch b"], _ruleset())
    summary = summarize_outcomes(outcomes)

    assert [outcome.matched for outcome in outcomes] == [True, False, True]
    assert summary.total == 3
    assert summary.matched_count == 2
    assert summary.unmatched_count == 1
    assert summary.rule_hits == {"lunch <p,>": 2}


def test_example_ruleset_resolves_tracking_entries() -> None:
    path = Path(__file__).resolve().parents[1] / "examples" / "daily_tracking.yaml"
    ruleset = load_ruleset(path)

    outcomes = resolve_many(["lunch maj", "call d", "ran 12mj", "call md"], ruleset)

    assert [outcome.output for outcome in outcomes] == [
        "Lunch with Maria, Jonas",
        "Phone call with Dad",
        "Ran with Mom, Jonas",
        None,
    ]
