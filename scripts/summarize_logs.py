#!/usr/bin/env python3
"""Per-operation match rates and latency from namekey API JSON line logs.

Only terminal events (``done`` and ``error``) are counted; ``start`` lines are
skipped so each request is seen once. Lines that are not JSON objects are
counted as ``parse_errors``.
"""

from __future__ import annotations

import argparse
import json
import math
from collections import Counter, defaultdict
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

_TERMINAL_EVENTS = {"done", "error"}


@dataclass
class _OperationStats:
    outcomes: Counter[str] = field(default_factory=Counter)
    error_codes: Counter[str] = field(default_factory=Counter)
    total_ms: list[int] = field(default_factory=list)
    worker_ms: list[int] = field(default_factory=list)
    queue_wait_ms: list[int] = field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        matched = self.outcomes["matched"]
        decided = matched + self.outcomes["no_match"]
        return {
            "requests": sum(self.outcomes.values()),
            "outcomes": dict(sorted(self.outcomes.items())),
            "match_rate": round(matched / decided, 4) if decided else None,
            "error_codes": dict(sorted(self.error_codes.items())),
            "total_ms_p50": _percentile(self.total_ms, 50),
            "total_ms_p95": _percentile(self.total_ms, 95),
            "worker_ms_p95": _percentile(self.worker_ms, 95),
            "queue_wait_ms_p95": _percentile(self.queue_wait_ms, 95),
        }


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Per-operation match rates and latency from namekey API logs."
    )
    parser.add_argument("files", nargs="+", help="One or more JSONL log files.")
    parser.add_argument(
        "--operation",
        action="append",
        default=None,
        help="Only report this operation (parse, match, expand, resolve); repeatable.",
    )
    parser.add_argument("--json", action="store_true", help="Output JSON.")
    return parser.parse_args()


def _percentile(values: list[int], p: float) -> int | None:
    if not values:
        return None
    ordered = sorted(values)
    index = min(len(ordered) - 1, max(0, math.ceil((p / 100) * len(ordered)) - 1))
    return ordered[index]


def iter_log_events(paths: list[Path], errors: Counter[str]) -> Iterator[dict[str, Any]]:
    """Yield JSON object lines; unreadable files and bad lines bump ``errors``."""

    for path in paths:
        try:
            lines = path.read_text(encoding="utf-8").splitlines()
        except OSError:
            errors["unreadable_files"] += 1
            continue

        for line in lines:
            raw = line.strip()
            if not raw:
                continue
            try:
                payload = json.loads(raw)
            except json.JSONDecodeError:
                errors["parse_errors"] += 1
                continue
            if isinstance(payload, dict):
                yield payload
            else:
                errors["parse_errors"] += 1


def summarize_log_files(
    paths: list[Path], operations: set[str] | None = None
) -> dict[str, Any]:
    errors: Counter[str] = Counter()
    per_operation: defaultdict[str, _OperationStats] = defaultdict(_OperationStats)
    busy_rejections = 0

    for payload in iter_log_events(paths, errors):
        if payload.get("event") not in _TERMINAL_EVENTS:
            continue

        operation = payload.get("operation")
        if not isinstance(operation, str):
            continue
        if operations is not None and operation not in operations:
            continue

        stats = per_operation[operation]
        outcome = payload.get("outcome")
        stats.outcomes[outcome if isinstance(outcome, str) else "unknown"] += 1

        error_code = payload.get("error_code")
        if isinstance(error_code, str):
            stats.error_codes[error_code] += 1
            if error_code == "TOO_MANY_REQUESTS":
                busy_rejections += 1

        timing = payload.get("timing")
        if isinstance(timing, dict):
            for name, bucket in (
                ("total_ms", stats.total_ms),
                ("worker_ms", stats.worker_ms),
                ("queue_wait_ms", stats.queue_wait_ms),
            ):
                value = timing.get(name)
                if isinstance(value, int | float):
                    bucket.append(int(value))

    return {
        "files": [str(path) for path in paths],
        "parse_errors": errors["parse_errors"],
        "unreadable_files": errors["unreadable_files"],
        "busy_rejections": busy_rejections,
        "operations": {
            name: per_operation[name].to_payload() for name in sorted(per_operation)
        },
    }


def _render_text(summary: dict[str, Any]) -> str:
    lines = [
        "namekey operation summary",
        f"files={len(summary['files'])} parse_errors={summary['parse_errors']} "
        f"unreadable_files={summary['unreadable_files']} "
        f"busy_rejections={summary['busy_rejections']}",
    ]
    if not summary["operations"]:
        lines.append("no terminal events found")
        return "\n".join(lines)

    header = ("operation", "requests", "match_rate", "p50_ms", "p95_ms")
    lines.append(f"{header[0]:<10} {header[1]:>8} {header[2]:>10} {header[3]:>7} {header[4]:>7}")
    for name, stats in summary["operations"].items():
        rate = "-" if stats["match_rate"] is None else f"{stats['match_rate']:.1%}"
        p50 = "-" if stats["total_ms_p50"] is None else str(stats["total_ms_p50"])
        p95 = "-" if stats["total_ms_p95"] is None else str(stats["total_ms_p95"])
        lines.append(f"{name:<10} {stats['requests']:>8} {rate:>10} {p50:>7} {p95:>7}")
        if stats["error_codes"]:
            codes = ", ".join(f"{code}={count}" for code, count in stats["error_codes"].items())
            lines.append(f"{'':<10} errors: {codes}")
    return "\n".join(lines)


def main() -> None:
    args = _parse_args()
    paths = [Path(item).expanduser() for item in args.files]
    operations = set(args.operation) if args.operation else None
    summary = summarize_log_files(paths, operations)

    if args.json:
        print(json.dumps(summary, ensure_ascii=False, indent=2, sort_keys=True))
        return
    print(_render_text(summary))


if __name__ == "__main__":
    main()
