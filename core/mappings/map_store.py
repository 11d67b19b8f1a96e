"""Local JSON store for named sets of name mappings."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from core.mappings.models import NameMappingEntry, NameMapSet, NameMapStoreData

_STORE_VERSION = 1


class NameMapStore:
    """Persist name-mapping sets keyed by set name in a JSON file."""

    def __init__(self, store_path: Path) -> None:
        self._store_path = store_path

    def get(self, name: str) -> NameMapSet | None:
        data = self._read_data()
        return data.sets.get(name)

    def upsert(self, map_set: NameMapSet) -> None:
        data = self._read_data()
        data.sets[map_set.name] = map_set
        self._write_data(data)

    def set_entry(self, name: str, key: str, value: str) -> NameMapSet:
        """Add or replace one mapping in a set, creating the set when missing.

        A replaced key keeps its position so decoding priority among
        equal-length keys does not change.
        """

        entry = NameMappingEntry(key=key, value=value)
        data = self._read_data()
        map_set = data.sets.setdefault(name, NameMapSet(name=name))
        for position, existing in enumerate(map_set.mappings):
            if existing.key == key:
                map_set.mappings[position] = entry
                break
        else:
            map_set.mappings.append(entry)
        self._write_data(data)
        return map_set

    def remove_entry(self, name: str, key: str) -> bool:
        data = self._read_data()
        map_set = data.sets.get(name)
        if map_set is None:
            return False
        remaining = [entry for entry in map_set.mappings if entry.key != key]
        if len(remaining) == len(map_set.mappings):
            return False
        map_set.mappings = remaining
        self._write_data(data)
        return True

    def list_sets(self) -> list[NameMapSet]:
        data = self._read_data()
        return [data.sets[key] for key in sorted(data.sets.keys())]

    def delete(self, name: str) -> bool:
        data = self._read_data()
        if name not in data.sets:
            return False
        del data.sets[name]
        self._write_data(data)
        return True

    def _read_data(self) -> NameMapStoreData:
        if not self._store_path.exists():
            return NameMapStoreData(version=_STORE_VERSION)

        try:
            raw = json.loads(self._store_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid name store JSON: {self._store_path}") from exc

        if not isinstance(raw, dict):
            raise ValueError(f"Invalid name store JSON: {self._store_path}")

        sets: dict[str, NameMapSet] = {}
        try:
            for name, item in raw.get("sets", {}).items():
                sets[name] = NameMapSet(
                    name=item.get("name", name),
                    mappings=[
                        NameMappingEntry.model_validate(entry)
                        for entry in item.get("mappings", [])
                    ],
                    note=item.get("note"),
                )
        except (AttributeError, ValidationError) as exc:
            raise ValueError(f"Invalid name store entry: {self._store_path}") from exc

        version = int(raw.get("version", _STORE_VERSION))
        return NameMapStoreData(version=version, sets=sets)

    def _write_data(self, data: NameMapStoreData) -> None:
        self._store_path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self._store_path.with_suffix(f"{self._store_path.suffix}.tmp")

        payload = {
            "version": data.version,
            "sets": {key: _dump_set(data.sets[key]) for key in sorted(data.sets.keys())},
        }
        temp_path.write_text(
            json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False),
            encoding="utf-8",
        )
        temp_path.replace(self._store_path)


def _dump_set(map_set: NameMapSet) -> dict[str, Any]:
    return {
        "name": map_set.name,
        "mappings": [entry.model_dump() for entry in map_set.mappings],
        "note": map_set.note,
    }
