"""CLI I/O helpers for input loading and atomic result writing."""

from __future__ import annotations

import json
import tempfile
from pathlib import Path
from typing import Any

from core.matching.models import NameMapping


def parse_map_options(items: list[str]) -> tuple[NameMapping, ...]:
    """Parse repeated ``key=value`` options into name mappings, keeping order."""

    mappings: list[NameMapping] = []
    for item in items:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise ValueError(f"Invalid --map entry (expected key=value): {item!r}")
        mappings.append(NameMapping(key=key, value=value))
    return tuple(mappings)


def read_input_lines(path: Path) -> list[str]:
    """Read non-blank input lines."""

    text = path.read_text(encoding="utf-8")
    return [line for line in text.splitlines() if line.strip()]


def write_json_atomic(path: Path, payload: Any) -> None:
    """Write a JSON result file atomically."""

    path.parent.mkdir(parents=True, exist_ok=True)
    _atomic_write_json(path, payload)


def dump_json(payload: Any) -> str:
    return json.dumps(payload, ensure_ascii=False, sort_keys=True, indent=2)


def _atomic_write_json(path: Path, payload: Any) -> None:
    with tempfile.NamedTemporaryFile(
        mode="w",
        encoding="utf-8",
        dir=path.parent,
        delete=False,
        prefix=f"{path.name}.",
        suffix=".tmp",
    ) as tmp:
        tmp_path = Path(tmp.name)
        json.dump(payload, tmp, ensure_ascii=False, sort_keys=True, separators=(",", ":"))

    tmp_path.replace(path)
