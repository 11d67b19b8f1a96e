"""Subprocess runner that isolates matching work from the API event loop."""

from __future__ import annotations

import os
import time
from collections.abc import Callable
from dataclasses import dataclass
from multiprocessing.connection import Connection
from typing import Any

from core.mappings.models import NameMappingEntry, RuleSet, entries_to_name_mappings
from core.matching.key_parser import parse_key
from core.matching.matcher import match_pattern
from core.matching.value_expander import expand_value
from core.orchestrator.pipeline import resolve_many, summarize_outcomes


@dataclass(frozen=True)
class RunnerRequest:
    """Serializable runner request payload."""

    operation: str
    payload: dict[str, Any]


@dataclass(frozen=True)
class RunnerResponse:
    """Serializable runner response payload."""

    ok: bool
    result: dict[str, Any] | None = None
    error_type: str | None = None
    error_message: str | None = None


def run_operation_worker(request: RunnerRequest, send_conn: Connection) -> None:
    """Run one namekey operation inside a subprocess and send back a structured response."""

    try:
        _apply_test_hooks()
        response = RunnerResponse(ok=True, result=execute_operation(request))
    except Exception as exc:  # noqa: BLE001
        response = RunnerResponse(
            ok=False,
            error_type=exc.__class__.__name__,
            error_message=str(exc),
        )

    try:
        send_conn.send(response)
    finally:
        send_conn.close()


def execute_operation(request: RunnerRequest) -> dict[str, Any]:
    handler = _OPERATIONS.get(request.operation)
    if handler is None:
        raise ValueError(f"Unsupported operation: {request.operation}")
    return handler(request.payload)


def _run_parse(payload: dict[str, Any]) -> dict[str, Any]:
    segments = parse_key(payload["key"])
    return {
        "segments": [
            {"kind": s.kind, "content": s.content, "body": s.body, "flags": s.flags}
            for s in segments
        ],
        "has_name_slot": any(s.kind == "name_slot" for s in segments),
    }


def _run_match(payload: dict[str, Any]) -> dict[str, Any]:
    entries = [NameMappingEntry.model_validate(item) for item in payload["name_mappings"]]
    result = match_pattern(
        payload["input"],
        payload["key"],
        entries_to_name_mappings(entries),
        slot_mode=payload["slot_mode"],
    )
    output = None
    value = payload.get("value")
    if result.matched and value is not None:
        output = expand_value(value, result.matched_names)
    return {
        "matched": result.matched,
        "matched_names": list(result.matched_names),
        "output": output,
    }


def _run_expand(payload: dict[str, Any]) -> dict[str, Any]:
    return {"output": expand_value(payload["value"], payload["names"])}


def _run_resolve(payload: dict[str, Any]) -> dict[str, Any]:
    ruleset = RuleSet.model_validate(payload["ruleset"])
    outcomes = resolve_many(payload["inputs"], ruleset, slot_mode=payload.get("slot_mode"))
    summary = summarize_outcomes(outcomes)
    return {
        "outcomes": [outcome.model_dump(mode="json") for outcome in outcomes],
        "summary": summary.model_dump(mode="json"),
    }


_OPERATIONS: dict[str, Callable[[dict[str, Any]], dict[str, Any]]] = {
    "parse": _run_parse,
    "match": _run_match,
    "expand": _run_expand,
    "resolve": _run_resolve,
}


def _apply_test_hooks() -> None:
    sleep_seconds = os.getenv("NAMEKEY_TEST_SLEEP_SECONDS")
    if sleep_seconds:
        time.sleep(float(sleep_seconds))
