"""Reconcile a saved progress snapshot with the canonical procedure.

A snapshot is trusted for progress (task completion, timing, notes, step
sign-off and assignment) and positions only. Task membership and text always
come from the canonical definition. When the two disagree on structure, or
the snapshot's positions are degenerate, the whole snapshot is dropped.
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, replace
from typing import Any

from flowrun import log
from flowrun.procedure.io import edge_to_dict, snapshot_from_dict, step_to_dict
from flowrun.procedure.model import Edge, Procedure, Snapshot, SnapshotStep, Step, Task

SOURCE_CANONICAL = "canonical"
SOURCE_SNAPSHOT = "snapshot"

REASON_NO_SNAPSHOT = "no-snapshot"
REASON_CORRUPT_POSITIONS = "corrupt-positions"
REASON_TASK_COUNT_MISMATCH = "task-count-mismatch"


@dataclass
class Reconciled:
    steps: list[Step]
    edges: list[Edge]
    source: str = SOURCE_CANONICAL
    reason: str | None = None

    @property
    def discarded(self) -> bool:
        """The snapshot existed but was thrown away."""
        return self.reason in (REASON_CORRUPT_POSITIONS, REASON_TASK_COUNT_MISMATCH)


# ── guards ───────────────────────────────────────────────────────────


def has_corrupt_positions(snapshot: Snapshot) -> bool:
    """More than one step and every one of them sitting at (0, 0)."""
    if len(snapshot.steps) <= 1:
        return False
    return all(s.position is not None and s.position.is_origin() for s in snapshot.steps)


def drifted_steps(procedure: Procedure, snapshot: Snapshot) -> list[str]:
    """Ids of shared steps whose task count changed since the snapshot."""
    drifted: list[str] = []
    for step_id, task_count in procedure.signature().items():
        saved = snapshot.get_step(step_id)
        if saved is not None and len(saved.tasks) != task_count:
            drifted.append(step_id)
    return drifted


# ── merge ────────────────────────────────────────────────────────────


def _merge_task(task: Task, saved: Task | None) -> Task:
    if saved is None:
        return task
    return replace(
        task,
        completed=saved.completed,
        completed_at=saved.completed_at,
        actual_time_minutes=saved.actual_time_minutes,
        start_time=saved.start_time,
        end_time=saved.end_time,
        notes=list(saved.notes),
    )


def _merge_step(step: Step, saved: SnapshotStep | None) -> Step:
    if saved is None:
        return step
    return replace(
        step,
        position=saved.position or step.position,
        tasks=[_merge_task(t, saved.get_task(t.id)) for t in step.tasks],
        completed_at=saved.completed_at,
        completed_by=saved.completed_by,
        completed_by_initials=saved.completed_by_initials,
        assigned_technician_id=saved.assigned_technician_id,
        assigned_technician_initials=saved.assigned_technician_initials,
    )


def _canonical(procedure: Procedure, reason: str) -> Reconciled:
    return Reconciled(list(procedure.steps), list(procedure.edges), SOURCE_CANONICAL, reason)


def reconcile(procedure: Procedure, snapshot: Snapshot | None) -> Reconciled:
    """Steps and edges to work from, given the saved *snapshot* (if any)."""
    if snapshot is None:
        return _canonical(procedure, REASON_NO_SNAPSHOT)

    if has_corrupt_positions(snapshot):
        log.warn(f"Saved progress for {procedure.id} has every step at (0, 0); ignoring it")
        return _canonical(procedure, REASON_CORRUPT_POSITIONS)

    drifted = drifted_steps(procedure, snapshot)
    if drifted:
        log.warn(
            f"Procedure {procedure.id} changed since progress was saved "
            f"(task count differs for {', '.join(drifted)}); starting from the definition"
        )
        return _canonical(procedure, REASON_TASK_COUNT_MISMATCH)

    steps = [_merge_step(s, snapshot.get_step(s.id)) for s in procedure.steps]
    edges = list(snapshot.edges) if snapshot.edges else list(procedure.edges)
    log.debug(f"Merged snapshot into {procedure.id}: {len(steps)} steps, {len(edges)} edges")
    return Reconciled(steps, edges, SOURCE_SNAPSHOT, None)


# ── snapshot encode/decode ───────────────────────────────────────────


def parse_snapshot(raw: Any) -> Snapshot | None:
    """Decode a stored snapshot (JSON text or an already-decoded mapping).

    Anything unusable is logged and treated as no snapshot.
    """
    if raw is None:
        return None
    data = raw
    if isinstance(raw, (str, bytes)):
        try:
            data = json.loads(raw)
        except (ValueError, RecursionError) as exc:
            log.warn(f"Saved progress is not valid JSON ({exc}); ignoring it")
            return None
    if not isinstance(data, Mapping):
        log.warn("Saved progress is not an object; ignoring it")
        return None
    try:
        return snapshot_from_dict(data)
    except (KeyError, TypeError, ValueError, AttributeError, OverflowError) as exc:
        log.warn(f"Saved progress is malformed ({exc!r}); ignoring it")
        return None


def build_snapshot(
    steps: Sequence[Step],
    edges: Sequence[Edge],
    last_updated: str,
    started_at: str | None = None,
    finished_at: str | None = None,
) -> dict[str, Any]:
    """JSON-ready snapshot of the in-memory run state."""
    out: dict[str, Any] = {
        "steps": [step_to_dict(s) for s in steps],
        "edges": [edge_to_dict(e) for e in edges],
        "lastUpdated": last_updated,
    }
    if started_at:
        out["startedAt"] = started_at
    if finished_at:
        out["finishedAt"] = finished_at
    return out
