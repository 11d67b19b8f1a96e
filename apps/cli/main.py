"""Typer CLI entrypoint for namekey."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Annotated, Literal, TypeVar, cast

import typer

from apps.cli.format_human import render_match, render_resolve, render_segments
from apps.cli.io import dump_json, parse_map_options, read_input_lines, write_json_atomic
from core.mappings.map_store import NameMapStore
from core.mappings.models import NameMappingEntry, NameMapSet, RuleSet, entries_to_name_mappings
from core.mappings.ruleset_loader import dump_ruleset, load_ruleset
from core.matching.key_parser import parse_key
from core.matching.matcher import match_pattern
from core.matching.models import NameMapping, SlotMode
from core.matching.value_expander import expand_value
from core.orchestrator.pipeline import resolve_many, summarize_outcomes
from core.utils.errors import RuleSetError

T = TypeVar("T")

app = typer.Typer(help="Key/value name matching CLI", rich_markup_mode=None)
names_app = typer.Typer(help="Manage name-mapping sets in a JSON store.", rich_markup_mode=None)
app.add_typer(names_app, name="names")

_EXIT_NO_MATCH = 2


@app.callback()
def cli_callback() -> None:
    """CLI root callback to keep subcommands explicit."""


@app.command("parse")
def parse_command(
    key: Annotated[str, typer.Argument(help="Key to split into segments.")],
    as_json: Annotated[bool, typer.Option("--json", help="Print JSON.")] = False,
) -> None:
    """Print the segments a key parses into."""

    segments = parse_key(key)
    if as_json:
        payload = [
            {"kind": s.kind, "content": s.content, "body": s.body, "flags": s.flags}
            for s in segments
        ]
        typer.echo(dump_json(payload))
        return
    typer.echo(render_segments(key, segments))


@app.command("match")
def match_command(
    key: Annotated[str, typer.Option(..., help="Key pattern to test against.")],
    input_text: Annotated[str, typer.Option("--input", help="Text to match.")],
    map_items: Annotated[
        list[str] | None,
        typer.Option("--map", help="Name mapping as key=value; repeatable, order matters."),
    ] = None,
    ruleset: Annotated[
        Path | None, typer.Option(exists=True, dir_okay=False, file_okay=True)
    ] = None,
    store: Annotated[Path | None, typer.Option(dir_okay=False, file_okay=True)] = None,
    set_name: Annotated[str | None, typer.Option()] = None,
    value: Annotated[
        str | None, typer.Option(help="Value template to expand on a match.")
    ] = None,
    slot_mode: Annotated[str, typer.Option()] = "all",
    as_json: Annotated[bool, typer.Option("--json", help="Print JSON.")] = False,
) -> None:
    """Match one input against a key; exit 2 when it does not match."""

    slot_mode_typed = _validate_slot_mode(slot_mode)
    mappings = _resolve_mappings(map_items, ruleset, store, set_name)

    result = match_pattern(input_text, key, mappings, slot_mode=slot_mode_typed)
    output = None
    if value is not None and result.matched:
        output = expand_value(value, result.matched_names)

    if as_json:
        payload = {
            "matched": result.matched,
            "matched_names": list(result.matched_names),
            "output": output,
        }
        typer.echo(dump_json(payload))
    else:
        typer.echo(render_match(result, output=output))

    raise typer.Exit(code=0 if result.matched else _EXIT_NO_MATCH)


@app.command("expand")
def expand_command(
    value: Annotated[str, typer.Option(..., help="Value template with <p> placeholders.")],
    names: Annotated[
        list[str] | None, typer.Option("--name", help="Decoded name; repeatable.")
    ] = None,
) -> None:
    """Expand a value template with names."""

    typer.echo(expand_value(value, names or []))


@app.command("resolve")
def resolve_command(
    ruleset: Annotated[Path, typer.Option(..., exists=True, dir_okay=False, file_okay=True)],
    input_text: Annotated[str | None, typer.Option("--input", help="Single input.")] = None,
    input_file: Annotated[
        Path | None,
        typer.Option(exists=True, dir_okay=False, file_okay=True, help="One input per line."),
    ] = None,
    store: Annotated[Path | None, typer.Option(dir_okay=False, file_okay=True)] = None,
    set_name: Annotated[str | None, typer.Option()] = None,
    slot_mode: Annotated[str | None, typer.Option()] = None,
    out: Annotated[
        Path | None, typer.Option(help="Also write outcomes + summary to a JSON file.")
    ] = None,
    as_json: Annotated[bool, typer.Option("--json", help="Print JSON.")] = False,
) -> None:
    """Resolve inputs through the ordered rules of a rule set."""

    if (input_text is None) == (input_file is None):
        typer.echo("ERROR: exactly one of --input or --input-file is required.")
        raise typer.Exit(code=1)

    slot_mode_typed = _validate_slot_mode(slot_mode) if slot_mode is not None else None
    ruleset_model = _load_ruleset_or_exit(ruleset)

    name_mappings: tuple[NameMapping, ...] | None = None
    if store is not None or set_name is not None:
        name_mappings = _load_store_mappings(store, set_name)

    lines = [input_text] if input_text is not None else read_input_lines(cast(Path, input_file))
    outcomes = resolve_many(
        lines, ruleset_model, name_mappings=name_mappings, slot_mode=slot_mode_typed
    )
    summary = summarize_outcomes(outcomes)

    payload = {
        "outcomes": [outcome.model_dump(mode="json") for outcome in outcomes],
        "summary": summary.model_dump(mode="json"),
    }
    if out is not None:
        write_json_atomic(out, payload)

    if as_json:
        typer.echo(dump_json(payload))
    else:
        typer.echo(render_resolve(outcomes, summary))

    raise typer.Exit(code=0 if summary.matched_count else _EXIT_NO_MATCH)


@names_app.command("list")
def names_list_command(
    store: Annotated[Path, typer.Option(..., dir_okay=False, file_okay=True)],
) -> None:
    """List stored mapping sets."""

    map_store = NameMapStore(store)
    sets = _call_store(map_store.list_sets)
    if not sets:
        typer.echo("INFO: no mapping sets stored")
        return
    for map_set in sets:
        typer.echo(f"{map_set.name}: {len(map_set.mappings)} mapping(s)")


@names_app.command("show")
def names_show_command(
    store: Annotated[Path, typer.Option(..., dir_okay=False, file_okay=True)],
    set_name: Annotated[str, typer.Option(...)],
) -> None:
    """Print one mapping set in stored order."""

    map_set = _call_store(lambda: NameMapStore(store).get(set_name))
    if map_set is None:
        typer.echo(f"ERROR: mapping set not found: {set_name}")
        raise typer.Exit(code=1)
    for entry in map_set.mappings:
        typer.echo(f"{entry.key}={entry.value}")


@names_app.command("set")
def names_set_command(
    store: Annotated[Path, typer.Option(..., dir_okay=False, file_okay=True)],
    set_name: Annotated[str, typer.Option(...)],
    key: Annotated[str, typer.Option(...)],
    value: Annotated[str, typer.Option(...)],
) -> None:
    """Add or replace one name mapping."""

    if not key:
        typer.echo("ERROR: --key must not be empty.")
        raise typer.Exit(code=1)
    map_set = _call_store(lambda: NameMapStore(store).set_entry(set_name, key, value))
    typer.echo(f"INFO: {set_name} now has {len(map_set.mappings)} mapping(s)")


@names_app.command("remove")
def names_remove_command(
    store: Annotated[Path, typer.Option(..., dir_okay=False, file_okay=True)],
    set_name: Annotated[str, typer.Option(...)],
    key: Annotated[str | None, typer.Option(help="Remove one key; omit to delete the set.")] = None,
) -> None:
    """Remove one mapping, or a whole set when --key is omitted."""

    map_store = NameMapStore(store)
    if key is None:
        removed = _call_store(lambda: map_store.delete(set_name))
    else:
        removed = _call_store(lambda: map_store.remove_entry(set_name, key))

    if not removed:
        typer.echo("ERROR: nothing to remove.")
        raise typer.Exit(code=1)
    typer.echo("INFO: removed")


@names_app.command("import")
def names_import_command(
    store: Annotated[Path, typer.Option(..., dir_okay=False, file_okay=True)],
    set_name: Annotated[str, typer.Option(...)],
    ruleset: Annotated[Path, typer.Option(..., exists=True, dir_okay=False, file_okay=True)],
    note: Annotated[str | None, typer.Option(help="Note stored with the set.")] = None,
) -> None:
    """Replace a mapping set with the name mappings of a rule set file."""

    ruleset_model = _load_ruleset_or_exit(ruleset)
    map_set = NameMapSet(name=set_name, mappings=list(ruleset_model.name_mappings), note=note)
    _call_store(lambda: NameMapStore(store).upsert(map_set))
    typer.echo(f"INFO: {set_name} now has {len(map_set.mappings)} mapping(s)")


@names_app.command("export")
def names_export_command(
    store: Annotated[Path, typer.Option(..., dir_okay=False, file_okay=True)],
    set_name: Annotated[str, typer.Option(...)],
    out: Annotated[Path, typer.Option(..., dir_okay=False, file_okay=True)],
    ruleset: Annotated[
        Path | None,
        typer.Option(
            exists=True,
            dir_okay=False,
            file_okay=True,
            help="Copy rules and slot mode from this rule set.",
        ),
    ] = None,
) -> None:
    """Write a mapping set as a rule set YAML file."""

    entries = [
        NameMappingEntry(key=mapping.key, value=mapping.value)
        for mapping in _load_store_mappings(store, set_name)
    ]
    if ruleset is not None:
        exported = _load_ruleset_or_exit(ruleset).model_copy(update={"name_mappings": entries})
    else:
        exported = RuleSet(name_mappings=entries)

    dump_ruleset(exported, out)
    typer.echo(f"INFO: wrote {len(entries)} mapping(s) and {len(exported.rules)} rule(s) to {out}")


def _validate_slot_mode(slot_mode: str) -> SlotMode:
    normalized = slot_mode.lower().strip()
    if normalized not in {"all", "first"}:
        typer.echo("ERROR: --slot-mode must be one of: all, first.")
        raise typer.Exit(code=1)
    return cast(Literal["all", "first"], normalized)


def _resolve_mappings(
    map_items: list[str] | None,
    ruleset: Path | None,
    store: Path | None,
    set_name: str | None,
) -> tuple[NameMapping, ...]:
    sources = [bool(map_items), ruleset is not None, store is not None or set_name is not None]
    if sum(sources) != 1:
        typer.echo("ERROR: use exactly one of --map, --ruleset, or --store/--set-name.")
        raise typer.Exit(code=1)

    if map_items:
        try:
            return parse_map_options(map_items)
        except ValueError as exc:
            typer.echo(f"ERROR: {exc}")
            raise typer.Exit(code=1) from exc

    if ruleset is not None:
        return _load_ruleset_or_exit(ruleset).to_name_mappings()

    return _load_store_mappings(store, set_name)


def _load_ruleset_or_exit(path: Path) -> RuleSet:
    try:
        return load_ruleset(path)
    except RuleSetError as exc:
        typer.echo(f"ERROR: {exc}")
        raise typer.Exit(code=1) from exc


def _load_store_mappings(store: Path | None, set_name: str | None) -> tuple[NameMapping, ...]:
    if store is None or set_name is None:
        typer.echo("ERROR: --store and --set-name must be used together.")
        raise typer.Exit(code=1)

    map_set = _call_store(lambda: NameMapStore(store).get(set_name))
    if map_set is None:
        typer.echo(f"ERROR: mapping set not found: {set_name}")
        raise typer.Exit(code=1)
    return entries_to_name_mappings(map_set.mappings)


def _call_store(operation: Callable[[], T]) -> T:
    try:
        return operation()
    except ValueError as exc:
        typer.echo(f"ERROR: {exc}")
        raise typer.Exit(code=1) from exc


def main() -> None:
    """Console script entrypoint."""

    app()


if __name__ == "__main__":
    main()
