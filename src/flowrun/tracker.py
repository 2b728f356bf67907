"""Service-run orchestration: the engine wired to a key-value store.

``ServiceRun`` owns the in-memory steps/edges of one procedure instance.
Every mutation runs the pure engine functions, then writes the snapshot
through to the store before returning.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import replace

from flowrun import log
from flowrun.activation import first_active, next_active_after
from flowrun.completion import (
    ProgressMetrics,
    ToggleResult,
    add_note,
    edit_note,
    is_procedure_finished,
    is_step_complete,
    progress_metrics,
    toggle_task,
    update_task,
    utc_now,
)
from flowrun.errors import FlowrunError, RunNotStartedError, UnknownStepError
from flowrun.layout import MODE_CENTERED, LayoutResult, apply_layout, layout
from flowrun.merge import Reconciled, build_snapshot, parse_snapshot, reconcile
from flowrun.procedure.model import Edge, NoteEvent, Procedure, Step, Task
from flowrun.store import SESSION_KEY, KeyValueStore, snapshot_key
from flowrun.technicians import SessionContext, TechnicianDirectory


def load_session(store: KeyValueStore) -> SessionContext:
    return SessionContext.from_dict(store.get(SESSION_KEY))


def save_session(store: KeyValueStore, session: SessionContext) -> None:
    store.set(SESSION_KEY, session.to_dict())


class ServiceRun:
    """One technician team working through one procedure.

    Usage::

        run = ServiceRun(procedure, store, session, directory)
        run.load()                      # merge saved progress, if any
        run.start()                     # opens the toggle gate
        run.toggle_task("4", "4-2")     # -> ToggleResult
        run.active_step_ids             # focus set after the toggle
    """

    def __init__(
        self,
        procedure: Procedure,
        store: KeyValueStore,
        session: SessionContext | None = None,
        directory: TechnicianDirectory | None = None,
        clock: Callable[[], str] = utc_now,
        on_finished: Callable[[Procedure], None] | None = None,
        layout_mode: str = MODE_CENTERED,
    ) -> None:
        self.procedure = procedure
        self.store = store
        self.session = session or SessionContext()
        self.directory = directory
        self._clock = clock
        self._on_finished = on_finished
        self.layout_mode = layout_mode
        self._lock = threading.Lock()

        self.steps: list[Step] = list(procedure.steps)
        self.edges: list[Edge] = list(procedure.edges)
        self.active_step_ids: list[str] = []
        self.started_at: str | None = None
        self.finished_at: str | None = None
        self._ensure_positions()

    @property
    def key(self) -> str:
        return snapshot_key(self.procedure.id)

    @property
    def started(self) -> bool:
        return self.started_at is not None

    @property
    def finished(self) -> bool:
        return self.finished_at is not None

    def get_step(self, step_id: str) -> Step | None:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    def _require_step(self, step_id: str) -> Step:
        step = self.get_step(step_id)
        if step is None:
            raise UnknownStepError(step_id)
        return step

    # ── persistence ──────────────────────────────────────────────

    def load(self) -> Reconciled:
        """Merge whatever progress the store holds into the canonical steps."""
        raw = self.store.get(self.key)
        snapshot = parse_snapshot(raw)
        result = reconcile(self.procedure, snapshot)
        with self._lock:
            self.steps = result.steps
            self.edges = result.edges
            self._ensure_positions()
            if raw is not None and (snapshot is None or result.discarded):
                log.warn(f"Discarding saved progress for {self.procedure.id}")
                self.store.remove(self.key)
            if snapshot is not None and not result.discarded:
                self.started_at = snapshot.started_at
                self.finished_at = snapshot.finished_at
            else:
                self.started_at = None
                self.finished_at = None
            self.active_step_ids = first_active(self.steps) if self.started else []
        log.debug(f"Loaded {self.procedure.id} from {result.source}")
        return result

    def _ensure_positions(self) -> None:
        # Saved positions must not all be (0, 0): the merger drops such snapshots.
        if len(self.steps) < 2 or not all(s.position.is_origin() for s in self.steps):
            return
        result = layout(self.steps, self.layout_mode, self.procedure.grid_unit)
        self.steps = apply_layout(self.steps, result)
        if not self.edges:
            self.edges = list(result.edges)
        log.debug(f"Placed unpositioned steps of {self.procedure.id} ({self.layout_mode})")

    def snapshot(self) -> dict:
        return build_snapshot(
            self.steps, self.edges, self._clock(), self.started_at, self.finished_at,
        )

    def _persist(self) -> None:
        self.store.set(self.key, self.snapshot())

    # ── lifecycle ────────────────────────────────────────────────

    def start(self) -> None:
        with self._lock:
            if self.started:
                log.debug(f"Run {self.procedure.id} already started at {self.started_at}")
                return
            self.started_at = self._clock()
            self.active_step_ids = first_active(self.steps)
            self._persist()
        log.info(f"Started {self.procedure.name or self.procedure.id}")

    def reset(self) -> None:
        """Forget all progress and go back to the canonical definition."""
        with self._lock:
            self.store.remove(self.key)
            self.steps = list(self.procedure.steps)
            self.edges = list(self.procedure.edges)
            self.started_at = None
            self.finished_at = None
            self.active_step_ids = []
            self._ensure_positions()
        log.info(f"Reset progress for {self.procedure.id}")

    # ── task progress ────────────────────────────────────────────

    def toggle_task(self, step_id: str, task_id: str) -> ToggleResult:
        """Flip a task; refused until the run has been started."""
        finished_now = False
        with self._lock:
            if not self.started:
                raise RunNotStartedError(
                    f"Start the service run before checking off tasks ({self.procedure.id})"
                )
            before = self.get_step(step_id)
            was_complete = before is not None and is_step_complete(before)

            now = self._clock()
            result = toggle_task(
                self.steps, step_id, task_id,
                session=self.session, directory=self.directory, now=now,
            )
            self.steps = result.steps

            if result.step_just_completed:
                if not self.finished and is_procedure_finished(self.steps):
                    self.finished_at = now
                    finished_now = True
                self.active_step_ids = next_active_after(self.steps, result.step_just_completed)
                # Completing the last step early leaves earlier steps open.
                if not self.active_step_ids and not self.finished:
                    self.active_step_ids = first_active(self.steps)
            elif was_complete:
                after = self.get_step(step_id)
                if after is not None and not is_step_complete(after):
                    self.active_step_ids = first_active(self.steps)

            self._persist()

        if result.step_just_completed:
            log.success(f"Step {result.step_just_completed} complete")
        if finished_now:
            log.success(f"Service run {self.procedure.id} finished")
            if self._on_finished is not None:
                self._on_finished(self.procedure)
        return result

    def set_task_time(self, step_id: str, task_id: str, minutes: int | None) -> None:
        if minutes is not None and minutes < 0:
            raise ValueError("minutes must not be negative")
        with self._lock:
            self._require_task(step_id, task_id)
            self.steps = update_task(
                self.steps, step_id, task_id,
                session=self.session, directory=self.directory, now=self._clock(),
                actual_time_minutes=minutes,
            ).steps
            self._persist()

    def add_note(self, step_id: str, task_id: str, text: str) -> NoteEvent:
        with self._lock:
            self._require_task(step_id, task_id)
            self.steps = add_note(self.steps, step_id, task_id, text, now=self._clock())
            self._persist()
            return self._require_task(step_id, task_id).notes[-1]

    def edit_note(self, step_id: str, task_id: str, note_id: str, text: str) -> NoteEvent:
        with self._lock:
            task = self._require_task(step_id, task_id)
            if not any(n.id == note_id for n in task.notes):
                raise FlowrunError(f"Unknown note {note_id} on task {task_id}")
            self.steps = edit_note(self.steps, step_id, task_id, note_id, text, now=self._clock())
            self._persist()
            task = self._require_task(step_id, task_id)
            return next(n for n in task.notes if n.id == note_id)

    def _require_task(self, step_id: str, task_id: str) -> Task:
        task = self._require_step(step_id).get_task(task_id)
        if task is None:
            raise FlowrunError(f"Unknown task {task_id} in step {step_id}")
        return task

    # ── steps ────────────────────────────────────────────────────

    def assign_technician(self, step_id: str, technician_id: str | None) -> Step:
        """Bind (or with ``None`` unbind) a specific technician to a step."""
        with self._lock:
            step = self._require_step(step_id)
            initials = None
            if technician_id and self.directory is not None:
                info = self.directory.resolve(technician_id)
                if info is None:
                    log.warn(f"Technician {technician_id} is not in the directory")
                else:
                    initials = info.initials
            updated = replace(
                step,
                assigned_technician_id=technician_id or None,
                assigned_technician_initials=initials,
            )
            self.steps = [updated if s.id == step_id else s for s in self.steps]
            self._persist()
            return updated

    def relayout(self, mode: str, grid_unit: int | None = None) -> LayoutResult:
        """Recompute positions and edges from scratch and persist them."""
        with self._lock:
            result = layout(self.steps, mode, grid_unit or self.procedure.grid_unit)
            self.steps = apply_layout(self.steps, result)
            self.edges = list(result.edges)
            self._persist()
        log.debug(f"Re-laid out {self.procedure.id} in {mode} mode")
        return result

    # ── queries ──────────────────────────────────────────────────

    def progress(self) -> ProgressMetrics:
        return progress_metrics(self.steps)
