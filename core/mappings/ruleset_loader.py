"""Rule-set loading utilities for YAML rule files."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]
from pydantic import ValidationError

from core.mappings.models import RuleSet
from core.utils.errors import RuleSetError


def load_ruleset(path: Path) -> RuleSet:
    """Load and validate a rule set from YAML."""

    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise RuleSetError(f"Rule set file not found: {path}", path=path) from exc

    return parse_ruleset_yaml(text, path=path)


def parse_ruleset_yaml(text: str, *, path: Path | None = None) -> RuleSet:
    """Validate rule-set YAML text; ``path`` only labels error messages."""

    label = str(path) if path is not None else "<inline>"
    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise RuleSetError(f"Invalid YAML in rule set: {label}", path=path) from exc

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise RuleSetError(f"Rule set must contain a mapping: {label}", path=path)

    normalized = _normalize_name_mappings(raw, label, path)

    try:
        return RuleSet.model_validate(normalized)
    except ValidationError as exc:
        raise RuleSetError(f"Invalid rule set schema: {label}", path=path) from exc


def dump_ruleset(ruleset: RuleSet, path: Path) -> None:
    """Write a rule set as YAML using a temporary file + replace."""

    payload = ruleset.model_dump(mode="json", exclude_none=True)
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, raw_tmp_path = tempfile.mkstemp(
        dir=path.parent,
        prefix=f"{path.name}.",
        suffix=".tmp",
    )
    os.close(fd)
    tmp_path = Path(raw_tmp_path)

    try:
        with tmp_path.open("w", encoding="utf-8") as handle:
            yaml.safe_dump(payload, handle, allow_unicode=True, sort_keys=False)
        tmp_path.replace(path)
    except Exception:
        if tmp_path.exists():
            tmp_path.unlink(missing_ok=True)
        raise


def _normalize_name_mappings(
    raw: dict[Any, Any], label: str, path: Path | None
) -> dict[Any, Any]:
    """Accept ``name_mappings`` as a ``{key: value}`` mapping as well as a list."""

    normalized = dict(raw)
    mappings = normalized.get("name_mappings")
    if isinstance(mappings, dict):
        entries = []
        for key, value in mappings.items():
            if not isinstance(key, str) or not isinstance(value, str):
                raise RuleSetError(
                    f"Name mapping keys and values must be strings in {label}: {key!r}",
                    path=path,
                )
            entries.append({"key": key, "value": value})
        normalized["name_mappings"] = entries
    return normalized
