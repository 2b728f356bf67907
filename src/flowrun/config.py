"""Configuration defaults, env vars, and runtime options for flowrun."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from flowrun.layout import LAYOUT_MODES, MODE_CENTERED

DEFAULT_STORE_DIR = ".flowrun"
DEFAULT_GRID_UNIT = 0  # 0: use the procedure's own gridUnit

_TRUTHY = {"1", "true", "yes", "on"}


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in _TRUTHY


@dataclass
class Config:
    """Runtime configuration shared by the CLI and ``ServiceRun``."""

    # Storage
    store_dir: str = ""

    # Layout
    grid_unit: int = DEFAULT_GRID_UNIT
    layout_mode: str = MODE_CENTERED

    # Validation
    strict_ids: bool = False

    # Technicians
    technicians_file: str = ""

    # Misc
    verbose: bool = False

    def __post_init__(self) -> None:
        if not self.store_dir:
            self.store_dir = os.environ.get("FLOWRUN_STORE_DIR") or DEFAULT_STORE_DIR
        if not self.technicians_file:
            self.technicians_file = os.environ.get("FLOWRUN_TECHNICIANS", "")
        if not self.grid_unit:
            raw = os.environ.get("FLOWRUN_GRID_UNIT", "").strip()
            if raw:
                try:
                    self.grid_unit = int(raw)
                except ValueError:
                    raise ValueError(f"FLOWRUN_GRID_UNIT must be an integer, got {raw!r}") from None
        if not self.strict_ids:
            self.strict_ids = _env_flag("FLOWRUN_STRICT_IDS")
        if self.layout_mode not in LAYOUT_MODES:
            raise ValueError(
                f"Unknown layout mode: {self.layout_mode}. "
                f"Valid modes: {', '.join(LAYOUT_MODES)}."
            )
        if self.grid_unit < 0:
            raise ValueError("grid_unit must not be negative")

    def store_path(self) -> Path:
        return Path(self.store_dir).expanduser()
