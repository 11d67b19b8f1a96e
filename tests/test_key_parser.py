from __future__ import annotations

import pytest

from core.matching.key_parser import parse_key, translate_flags


def _kinds(key: str) -> list[str]:
    return [segment.kind for segment in parse_key(key)]


@pytest.mark.parametrize(
    "key",
    [
        "",
        "Hello <p>!",
        "<p,>",
        "a/b",
        "/unterminated <p>",
        "/[/<p>",
        "x<y<p>z",
        "/\\d+/i<p> and <p,>",
        "<<p>>",
        "//<p>",
        "a.b*c/(/q",
        "<p",
        "/a/zz<p>",
    ],
)
def test_segments_tile_the_key(key: str) -> None:
    segments = parse_key(key)

    assert "".join(segment.content for segment in segments) == key


def test_multi_slot_parses_to_single_segment() -> None:
    segments = parse_key("<p,>")

    assert len(segments) == 1
    assert segments[0].kind == "name_slot"
    assert segments[0].content == "<p,>"
    assert segments[0].is_multi_slot


def test_single_slot_and_literals() -> None:
    segments = parse_key("Hello <p>!")

    assert [(s.kind, s.content) for s in segments] == [
        ("literal", "Hello "),
        ("name_slot", "<p>"),
        ("literal", "!"),
    ]
    assert not segments[1].is_multi_slot


def test_regex_segment_with_flags_stops_at_grammar_character() -> None:
    segments = parse_key("/\\d+/i<p>")

    assert segments[0].kind == "regex"
    assert segments[0].content == "/\\d+/i"
    assert segments[0].body == "\\d+"
    assert segments[0].flags == "i"
    assert segments[1].content == "<p>"


def test_invalid_regex_becomes_literal() -> None:
    segments = parse_key("/[/<p>")

    assert [(s.kind, s.content) for s in segments] == [
        ("literal", "/["),
        ("literal", "/"),
        ("name_slot", "<p>"),
    ]


def test_unknown_flag_rejects_regex_candidate() -> None:
    assert _kinds("/a/ <p>") == ["literal", "literal", "name_slot"]
    assert _kinds("/a/q<p>") == ["literal", "literal", "name_slot"]


def test_unterminated_slash_is_literal() -> None:
    segments = parse_key("a/b")

    assert [(s.kind, s.content) for s in segments] == [("literal", "a"), ("literal", "/b")]


def test_stray_angle_bracket_is_literal() -> None:
    assert [(s.kind, s.content) for s in parse_key("<<p>>")] == [
        ("literal", "<"),
        ("name_slot", "<p>"),
        ("literal", ">"),
    ]


def test_empty_key_has_no_segments() -> None:
    assert parse_key("") == ()


def test_translate_flags_rejects_duplicates_and_unknown_letters() -> None:
    assert translate_flags("") is not None
    assert translate_flags("gi") is not None
    assert translate_flags("ii") is None
    assert translate_flags("x") is None
