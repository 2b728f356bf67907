"""UTF-8 file helpers for procedure definitions, rosters and store entries."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any

import yaml

PathLike = Path | str


def _as_path(path: PathLike) -> Path:
    return path if isinstance(path, Path) else Path(path)


def read_text(path: PathLike, errors: str = "strict") -> str:
    """Read *path* as UTF-8 text."""
    return _as_path(path).read_text(encoding="utf-8", errors=errors)


def write_text(path: PathLike, text: str) -> None:
    """Write *text* to *path* atomically (temp file in the same dir, then replace)."""
    p = _as_path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=p.parent, prefix=f".{p.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(text)
        # os.replace overwrites the destination on every platform
        os.replace(tmp, p)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


def read_json(path: PathLike) -> Any:
    """Decode a JSON file. Raises ``json.JSONDecodeError`` on bad content."""
    return json.loads(read_text(path))


def write_json(path: PathLike, data: Any) -> None:
    write_text(path, json.dumps(data, indent=2, ensure_ascii=False) + "\n")


def read_structured(path: PathLike) -> Any:
    """Decode a YAML or JSON file, chosen by extension (YAML otherwise)."""
    p = _as_path(path)
    text = read_text(p)
    if p.suffix.lower() == ".json":
        return json.loads(text)
    return yaml.safe_load(text)
