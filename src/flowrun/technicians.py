"""Technician directory and the per-session role selection."""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from flowrun import log
from flowrun.errors import FlowrunError
from flowrun.io_utils import read_structured
from flowrun.procedure.model import ROLE_A, ROLE_B, ROLE_BOTH


@dataclass(frozen=True)
class Technician:
    id: str
    first_name: str
    last_name: str
    initials: str = ""
    email: str = ""
    active: bool = True

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass(frozen=True)
class TechnicianInfo:
    initials: str
    display_name: str


def generate_initials(first_name: str, last_name: str) -> str:
    """1st and 3rd letter of the first name + first three of the last name.

    "Johan Andersson" -> "JHAND". Short first names pad with their 2nd letter
    or ``X``.
    """
    if len(first_name) >= 3:
        head = first_name[0] + first_name[2]
    else:
        head = first_name[:1] + (first_name[1:2] or "X")
    return (head + last_name[:3]).upper()


class TechnicianDirectory:
    """Read-only lookup used for completion attribution; never for gating."""

    def __init__(self, technicians: Iterable[Technician] = ()) -> None:
        self._by_id: dict[str, Technician] = {}
        for tech in technicians:
            self._by_id[tech.id] = tech

    def __len__(self) -> int:
        return len(self._by_id)

    def __contains__(self, technician_id: object) -> bool:
        return technician_id in self._by_id

    def get(self, technician_id: str) -> Technician | None:
        return self._by_id.get(technician_id)

    def resolve(self, technician_id: str | None) -> TechnicianInfo | None:
        if not technician_id:
            return None
        tech = self._by_id.get(technician_id)
        if tech is None:
            return None
        return TechnicianInfo(initials=tech.initials, display_name=tech.display_name)

    def active(self) -> list[Technician]:
        return [t for t in self._by_id.values() if t.active]

    def by_initials(self, initials: str) -> Technician | None:
        for tech in self._by_id.values():
            if tech.initials == initials:
                return tech
        return None


def technician_from_dict(data: Mapping[str, Any]) -> Technician:
    first = str(data.get("firstName", data.get("first_name", "")))
    last = str(data.get("lastName", data.get("last_name", "")))
    return Technician(
        id=str(data["id"]),
        first_name=first,
        last_name=last,
        initials=str(data.get("initials") or generate_initials(first, last)),
        email=str(data.get("email", "")),
        active=bool(data.get("active", True)),
    )


def load_directory(path: Path) -> TechnicianDirectory:
    """Load a roster file: a list of technicians, or ``{technicians: [...]}``."""
    try:
        data = read_structured(path)
    except (OSError, yaml.YAMLError, json.JSONDecodeError) as exc:
        raise FlowrunError(f"Cannot read technician roster {path}: {exc}") from exc
    if isinstance(data, Mapping):
        data = data.get("technicians", [])
    if not isinstance(data, list):
        raise FlowrunError(f"Technician roster {path} must be a list")
    try:
        techs = [technician_from_dict(item) for item in data]
    except (KeyError, TypeError) as exc:
        raise FlowrunError(f"Invalid technician entry in {path}: {exc!r}") from exc
    log.debug(f"Loaded {len(techs)} technicians from {path}")
    return TechnicianDirectory(techs)


@dataclass(frozen=True)
class SessionContext:
    """Which technician occupies role A and role B for the current run."""

    role_a: str | None = None
    role_b: str | None = None

    def technician_for(self, assignment: str) -> str | None:
        """Technician bound to a step assignment; ``both`` resolves to role A."""
        if assignment in (ROLE_A, ROLE_BOTH):
            return self.role_a
        if assignment == ROLE_B:
            return self.role_b
        return None

    def to_dict(self) -> dict[str, str | None]:
        return {"A": self.role_a, "B": self.role_b}

    @classmethod
    def from_dict(cls, data: Any) -> SessionContext:
        if not isinstance(data, Mapping):
            return cls()
        a = data.get("A")
        b = data.get("B")
        return cls(role_a=str(a) if a else None, role_b=str(b) if b else None)
