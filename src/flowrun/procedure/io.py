"""Read/write procedure definitions and snapshots.

Files use the camelCase keys of the flowchart JSON (``completedAt``,
``actualTimeMinutes``, ``gridUnit``...); the dataclasses use snake_case.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from flowrun.errors import ProcedureLoadError
from flowrun.io_utils import read_structured
from flowrun.procedure.model import (
    EDGE_FLOW_ALIGNED,
    ROLE_A,
    ROLE_B,
    ROLE_BOTH,
    Edge,
    NoteEdit,
    NoteEvent,
    Position,
    Procedure,
    Snapshot,
    SnapshotStep,
    Step,
    Task,
    edge_id,
)

_ROLE_ALIASES: dict[str, str] = {
    "a": ROLE_A,
    "t1": ROLE_A,
    "b": ROLE_B,
    "t2": ROLE_B,
    "both": ROLE_BOTH,
}


def normalize_role(value: Any) -> str:
    """Map ``T1``/``T2``/``both`` (any case) onto ``A``/``B``/``both``.

    Unknown values are returned unchanged so validation can report them.
    """
    raw = str(value if value is not None else ROLE_BOTH).strip()
    return _ROLE_ALIASES.get(raw.lower(), raw)


def _opt_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def _opt_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    return int(value)


# ── from dict ────────────────────────────────────────────────────────


def position_from_dict(data: Any) -> Position | None:
    if not isinstance(data, Mapping):
        return None
    return Position(x=int(round(float(data.get("x", 0)))), y=int(round(float(data.get("y", 0)))))


def note_from_dict(data: Mapping[str, Any]) -> NoteEvent:
    edits = [
        NoteEdit(
            timestamp=str(e.get("timestamp", "")),
            version=int(e.get("version", i + 2)),
            note=str(e.get("note", data.get("note", ""))),
        )
        for i, e in enumerate(data.get("edits") or [])
    ]
    return NoteEvent(
        id=str(data["id"]),
        timestamp=str(data.get("timestamp", "")),
        note=str(data.get("note", "")),
        edits=edits,
    )


def task_from_dict(data: Mapping[str, Any]) -> Task:
    return Task(
        id=str(data["id"]),
        description=str(data.get("description", "")),
        completed=bool(data.get("completed", False)),
        completed_at=_opt_str(data.get("completedAt")),
        actual_time_minutes=_opt_int(data.get("actualTimeMinutes")),
        start_time=_opt_str(data.get("startTime")),
        end_time=_opt_str(data.get("endTime")),
        service_type=_opt_str(data.get("serviceType")),
        is_indented=bool(data.get("isIndented", False)),
        notes=[note_from_dict(n) for n in data.get("notes") or []],
    )


def step_from_dict(data: Mapping[str, Any]) -> Step:
    return Step(
        id=str(data["id"]),
        title=str(data.get("title", "")),
        technician=normalize_role(data.get("technician")),
        position=position_from_dict(data.get("position")) or Position(),
        tasks=[task_from_dict(t) for t in data.get("tasks") or []],
        completed_at=_opt_str(data.get("completedAt")),
        completed_by=_opt_str(data.get("completedBy")),
        completed_by_initials=_opt_str(data.get("completedByInitials")),
        assigned_technician_id=_opt_str(data.get("assignedTechnicianId")),
        assigned_technician_initials=_opt_str(data.get("assignedTechnicianInitials")),
        standalone=bool(data.get("standalone", False)),
    )


def edge_from_dict(data: Mapping[str, Any]) -> Edge:
    source = str(data["source"])
    target = str(data["target"])
    style = data.get("style") or {}
    dashed = bool(data.get("dashed", False)) or bool(
        isinstance(style, Mapping) and style.get("strokeDasharray")
    )
    return Edge(
        id=str(data.get("id") or edge_id(source, target)),
        source=source,
        target=target,
        kind=str(data.get("kind") or data.get("type") or EDGE_FLOW_ALIGNED),
        dashed=dashed,
    )


def procedure_from_dict(data: Mapping[str, Any]) -> Procedure:
    return Procedure(
        id=str(data["id"]),
        name=str(data.get("name", "")),
        steps=[step_from_dict(s) for s in data.get("steps") or []],
        edges=[edge_from_dict(e) for e in data.get("edges") or []],
        grid_unit=int(data.get("gridUnit", 30)),
        model=str(data.get("model", "")),
        service_type=str(data.get("serviceType", "")),
        revision=str(data.get("revision", data.get("revisionDate", ""))),
    )


def snapshot_step_from_dict(data: Mapping[str, Any]) -> SnapshotStep:
    return SnapshotStep(
        id=str(data["id"]),
        position=position_from_dict(data.get("position")),
        tasks=[task_from_dict(t) for t in data.get("tasks") or []],
        completed_at=_opt_str(data.get("completedAt")),
        completed_by=_opt_str(data.get("completedBy")),
        completed_by_initials=_opt_str(data.get("completedByInitials")),
        assigned_technician_id=_opt_str(data.get("assignedTechnicianId")),
        assigned_technician_initials=_opt_str(data.get("assignedTechnicianInitials")),
    )


def snapshot_from_dict(data: Mapping[str, Any]) -> Snapshot:
    steps_raw = data.get("steps")
    if not isinstance(steps_raw, list):
        raise ValueError("snapshot has no steps list")
    return Snapshot(
        steps=[snapshot_step_from_dict(s) for s in steps_raw],
        edges=[edge_from_dict(e) for e in data.get("edges") or []],
        last_updated=str(data.get("lastUpdated", "")),
        started_at=_opt_str(data.get("startedAt")),
        finished_at=_opt_str(data.get("finishedAt")),
    )


# ── to dict ──────────────────────────────────────────────────────────


def _drop_none(data: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


def note_to_dict(note: NoteEvent) -> dict[str, Any]:
    out: dict[str, Any] = {"id": note.id, "timestamp": note.timestamp, "note": note.note}
    if note.edits:
        out["edits"] = [
            {"timestamp": e.timestamp, "version": e.version, "note": e.note}
            for e in note.edits
        ]
    return out


def task_to_dict(task: Task) -> dict[str, Any]:
    out = _drop_none({
        "id": task.id,
        "description": task.description,
        "completed": task.completed,
        "completedAt": task.completed_at,
        "actualTimeMinutes": task.actual_time_minutes,
        "startTime": task.start_time,
        "endTime": task.end_time,
        "serviceType": task.service_type,
    })
    if task.is_indented:
        out["isIndented"] = True
    if task.notes:
        out["notes"] = [note_to_dict(n) for n in task.notes]
    return out


def position_to_dict(position: Position) -> dict[str, int]:
    return {"x": position.x, "y": position.y}


def step_to_dict(step: Step) -> dict[str, Any]:
    out = _drop_none({
        "id": step.id,
        "title": step.title,
        "technician": step.technician,
        "position": position_to_dict(step.position),
        "tasks": [task_to_dict(t) for t in step.tasks],
        "completedAt": step.completed_at,
        "completedBy": step.completed_by,
        "completedByInitials": step.completed_by_initials,
        "assignedTechnicianId": step.assigned_technician_id,
        "assignedTechnicianInitials": step.assigned_technician_initials,
    })
    if step.standalone:
        out["standalone"] = True
    return out


def edge_to_dict(edge: Edge) -> dict[str, Any]:
    out: dict[str, Any] = {
        "id": edge.id,
        "source": edge.source,
        "target": edge.target,
        "kind": edge.kind,
    }
    if edge.dashed:
        out["dashed"] = True
    return out


def procedure_to_dict(procedure: Procedure) -> dict[str, Any]:
    out: dict[str, Any] = {"id": procedure.id}
    if procedure.name:
        out["name"] = procedure.name
    if procedure.model:
        out["model"] = procedure.model
    if procedure.service_type:
        out["serviceType"] = procedure.service_type
    if procedure.revision:
        out["revision"] = procedure.revision
    out["gridUnit"] = procedure.grid_unit
    out["steps"] = [step_to_dict(s) for s in procedure.steps]
    out["edges"] = [edge_to_dict(e) for e in procedure.edges]
    return out


# ── files ────────────────────────────────────────────────────────────


def load_procedure(path: Path) -> Procedure:
    """Load a canonical procedure from a ``.yaml``/``.yml`` or ``.json`` file."""
    if not path.is_file():
        raise ProcedureLoadError(f"Procedure file not found: {path}")
    try:
        data = read_structured(path)
    except (yaml.YAMLError, json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ProcedureLoadError(f"Cannot parse {path}: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ProcedureLoadError(f"{path} does not contain a procedure mapping")
    try:
        return procedure_from_dict(data)
    except (KeyError, TypeError, ValueError) as exc:
        raise ProcedureLoadError(f"Invalid procedure in {path}: {exc!r}") from exc
