"""Key-value persistence for run progress and session state.

The engine only needs ``get``/``set`` by key; values are JSON-shaped and
the store enforces no schema.
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any, Protocol

from flowrun import log
from flowrun.io_utils import read_json, write_json

SESSION_KEY = "session/technicians"

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


def snapshot_key(procedure_id: str) -> str:
    return f"progress/{procedure_id}"


class KeyValueStore(Protocol):
    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any) -> None: ...

    def remove(self, key: str) -> None: ...

    def keys(self) -> list[str]: ...


class MemoryStore:
    """In-process store; values are copied through JSON like the file store."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str) -> Any | None:
        raw = self._data.get(key)
        return None if raw is None else json.loads(raw)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value)

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return sorted(self._data)


class JsonFileStore:
    """One JSON file per key under *root*.

    ``progress/PM-4Y`` lives at ``<root>/progress/PM-4Y.json``. Key segments
    are sanitised so a key can never escape the root.
    """

    def __init__(self, root: Path) -> None:
        self.root = root

    def _path(self, key: str) -> Path:
        parts = [_UNSAFE.sub("_", p) for p in key.split("/") if p not in ("", ".", "..")]
        if not parts:
            raise ValueError(f"Invalid store key: {key!r}")
        return self.root.joinpath(*parts[:-1], parts[-1] + ".json")

    def get(self, key: str) -> Any | None:
        path = self._path(key)
        if not path.is_file():
            return None
        try:
            return read_json(path)
        except (ValueError, RecursionError) as exc:
            log.warn(f"Store entry {key} is unreadable ({exc}); treating it as missing")
            return None

    def set(self, key: str, value: Any) -> None:
        write_json(self._path(key), value)

    def remove(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    def keys(self) -> list[str]:
        if not self.root.is_dir():
            return []
        return sorted(
            p.relative_to(self.root).with_suffix("").as_posix()
            for p in self.root.rglob("*.json")
        )
