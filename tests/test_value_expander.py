from __future__ import annotations

from core.matching.value_expander import expand_value


def test_multiple_placeholders_split_first_name_from_rest() -> None:
    assert expand_value("<p> and <p>", ["Al", "Bo", "Cy"]) == "Al and Bo, Cy"


def test_empty_names_remove_placeholders() -> None:
    assert expand_value("Hi <p>!", []) == "Hi !"
    assert expand_value("<p> and <p>", []) == " and "


def test_single_placeholder_receives_all_names() -> None:
    assert expand_value("Lunch with <p>", ["Al", "Bo"]) == "Lunch with Al, Bo"


def test_remaining_placeholders_are_cleared_when_only_one_name() -> None:
    assert expand_value("<p> vs <p> / <p>", ["Al"]) == "Al vs  / "


def test_every_remaining_placeholder_gets_the_same_rest() -> None:
    assert expand_value("<p>|<p>|<p>", ["Al", "Bo", "Cy"]) == "Al|Bo, Cy|Bo, Cy"


def test_value_without_placeholders_is_unchanged() -> None:
    assert expand_value("plain", ["Al"]) == "plain"


def test_multi_slot_marker_is_not_a_value_placeholder() -> None:
    assert expand_value("<p,>", ["Al"]) == "<p,>"
