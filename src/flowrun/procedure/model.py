"""Procedure, step, task and snapshot data models.

Engine functions treat these as values: they build changed copies with
``dataclasses.replace`` and never mutate the instances they are given.
"""

from __future__ import annotations

from dataclasses import dataclass, field

ROLE_A = "A"
ROLE_B = "B"
ROLE_BOTH = "both"
TECHNICIAN_ROLES: tuple[str, ...] = (ROLE_A, ROLE_B, ROLE_BOTH)

EDGE_FLOW_ALIGNED = "flow-aligned"
EDGE_BENT = "bent"


@dataclass(frozen=True)
class Position:
    x: int = 0
    y: int = 0

    def is_origin(self) -> bool:
        return self.x == 0 and self.y == 0


@dataclass(frozen=True)
class NoteEdit:
    timestamp: str
    version: int
    note: str


@dataclass
class NoteEvent:
    """One entry of a task's append-only note log."""

    id: str
    timestamp: str
    note: str
    edits: list[NoteEdit] = field(default_factory=list)

    @property
    def text(self) -> str:
        return self.edits[-1].note if self.edits else self.note

    @property
    def version(self) -> int:
        return self.edits[-1].version if self.edits else 1


@dataclass
class Task:
    id: str
    description: str = ""
    completed: bool = False
    completed_at: str | None = None
    actual_time_minutes: int | None = None
    start_time: str | None = None
    end_time: str | None = None
    service_type: str | None = None
    is_indented: bool = False
    notes: list[NoteEvent] = field(default_factory=list)


@dataclass
class Step:
    id: str
    title: str = ""
    technician: str = ROLE_BOTH
    position: Position = field(default_factory=Position)
    tasks: list[Task] = field(default_factory=list)
    completed_at: str | None = None
    completed_by: str | None = None
    completed_by_initials: str | None = None
    assigned_technician_id: str | None = None
    assigned_technician_initials: str | None = None
    standalone: bool = False

    def get_task(self, task_id: str) -> Task | None:
        for t in self.tasks:
            if t.id == task_id:
                return t
        return None


@dataclass
class Edge:
    id: str
    source: str
    target: str
    kind: str = EDGE_FLOW_ALIGNED
    dashed: bool = False


def edge_id(source: str, target: str) -> str:
    return f"e-{source}-{target}"


@dataclass
class Procedure:
    """Canonical, versioned procedure definition."""

    id: str
    name: str = ""
    steps: list[Step] = field(default_factory=list)
    edges: list[Edge] = field(default_factory=list)
    grid_unit: int = 30
    model: str = ""
    service_type: str = ""
    revision: str = ""

    def get_step(self, step_id: str) -> Step | None:
        for s in self.steps:
            if s.id == step_id:
                return s
        return None

    def signature(self) -> dict[str, int]:
        """Task count per step id; a change here means the definition drifted."""
        return {s.id: len(s.tasks) for s in self.steps}


@dataclass
class SnapshotStep:
    """A persisted step: only completion fields and the position are trusted."""

    id: str
    position: Position | None = None
    tasks: list[Task] = field(default_factory=list)
    completed_at: str | None = None
    completed_by: str | None = None
    completed_by_initials: str | None = None
    assigned_technician_id: str | None = None
    assigned_technician_initials: str | None = None

    def get_task(self, task_id: str) -> Task | None:
        for t in self.tasks:
            if t.id == task_id:
                return t
        return None


@dataclass
class Snapshot:
    steps: list[SnapshotStep] = field(default_factory=list)
    edges: list[Edge] = field(default_factory=list)
    last_updated: str = ""
    started_at: str | None = None
    finished_at: str | None = None

    def get_step(self, step_id: str) -> SnapshotStep | None:
        for s in self.steps:
            if s.id == step_id:
                return s
        return None
