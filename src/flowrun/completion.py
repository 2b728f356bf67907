"""Task toggling and step completion.

A step is complete when every reference-bearing task in it is completed and
there is at least one such task. General tasks are tracked and counted but
never gate sign-off, so a step made only of general tasks cannot complete.

All functions here are pure: they return new step lists and leave the
given ``Step``/``Task`` instances untouched. Steps that a call does not
change are passed through as the same objects.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from uuid import uuid4

from flowrun import log
from flowrun.procedure.model import NoteEdit, NoteEvent, Step, Task
from flowrun.references import reference_tasks
from flowrun.technicians import SessionContext, TechnicianDirectory

EDITABLE_TASK_FIELDS = frozenset(
    {"actual_time_minutes", "service_type", "is_indented", "description"}
)


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class ToggleResult:
    steps: list[Step]
    step_just_completed: str | None = None


@dataclass(frozen=True)
class ProgressMetrics:
    completed_steps: int
    total_steps: int
    completed_tasks: int
    total_tasks: int
    total_actual_minutes: int

    @property
    def percent(self) -> float:
        if not self.total_tasks:
            return 0.0
        return 100.0 * self.completed_tasks / self.total_tasks


# ── queries ──────────────────────────────────────────────────────────


def step_progress(step: Step) -> tuple[int, int]:
    """``(completed, total)`` over the reference-bearing tasks of *step*."""
    gated = reference_tasks(step.tasks)
    return sum(1 for t in gated if t.completed), len(gated)


def is_step_complete(step: Step) -> bool:
    done, total = step_progress(step)
    return total > 0 and done == total


def is_procedure_finished(steps: Sequence[Step]) -> bool:
    """Every step that can complete has completed (and at least one can)."""
    gated = [s for s in steps if reference_tasks(s.tasks)]
    return bool(gated) and all(is_step_complete(s) for s in gated)


def progress_metrics(steps: Sequence[Step]) -> ProgressMetrics:
    all_tasks = [t for s in steps for t in s.tasks]
    return ProgressMetrics(
        completed_steps=sum(1 for s in steps if is_step_complete(s)),
        total_steps=len(steps),
        completed_tasks=sum(1 for t in all_tasks if t.completed),
        total_tasks=len(all_tasks),
        total_actual_minutes=sum(t.actual_time_minutes or 0 for t in all_tasks),
    )


# ── attribution ──────────────────────────────────────────────────────


def _attribution(
    step: Step,
    session: SessionContext | None,
    directory: TechnicianDirectory | None,
) -> tuple[str | None, str | None]:
    """Who completed *step*: its own assignee, else the session's role holder."""
    if step.assigned_technician_id:
        initials = step.assigned_technician_initials
        if not initials and directory is not None:
            info = directory.resolve(step.assigned_technician_id)
            initials = info.initials if info else None
        return step.assigned_technician_id, initials

    if session is None:
        return None, None
    tech_id = session.technician_for(step.technician)
    if not tech_id:
        return None, None
    if directory is None:
        return tech_id, None
    info = directory.resolve(tech_id)
    if info is None:
        log.debug(f"Technician {tech_id} not in directory; step {step.id} left unattributed")
        return None, None
    return tech_id, info.initials


def refresh_step(
    step: Step,
    session: SessionContext | None = None,
    directory: TechnicianDirectory | None = None,
    now: str | None = None,
) -> tuple[Step, bool]:
    """Bring the step-level completion fields in line with its tasks.

    Returns the (possibly new) step and whether it just became complete.
    """
    complete = is_step_complete(step)
    if complete:
        if step.completed_at is not None:
            return step, False
        by, initials = _attribution(step, session, directory)
        return replace(
            step,
            completed_at=now or utc_now(),
            completed_by=by,
            completed_by_initials=initials,
        ), True

    if step.completed_at is None and step.completed_by is None and step.completed_by_initials is None:
        return step, False
    return replace(step, completed_at=None, completed_by=None, completed_by_initials=None), False


# ── transitions ──────────────────────────────────────────────────────


def _patch_step(
    steps: Sequence[Step],
    step_id: str,
    task_id: str,
    patch,
    session: SessionContext | None,
    directory: TechnicianDirectory | None,
    now: str,
    refresh: bool = True,
) -> ToggleResult:
    for index, step in enumerate(steps):
        if step.id != step_id:
            continue
        task = step.get_task(task_id)
        if task is None:
            log.debug(f"Task {task_id} not found in step {step_id}; ignoring")
            return ToggleResult(list(steps))
        tasks = [patch(t) if t is task else t for t in step.tasks]
        updated = replace(step, tasks=tasks)
        just_completed = False
        if refresh:
            updated, just_completed = refresh_step(updated, session, directory, now)
        new_steps = list(steps)
        new_steps[index] = updated
        if just_completed:
            log.debug(f"Step {step_id}: incomplete -> complete")
        return ToggleResult(new_steps, step_id if just_completed else None)
    log.debug(f"Step {step_id} not found; ignoring")
    return ToggleResult(list(steps))


def toggle_task(
    steps: Sequence[Step],
    step_id: str,
    task_id: str,
    session: SessionContext | None = None,
    directory: TechnicianDirectory | None = None,
    now: str | None = None,
) -> ToggleResult:
    """Flip one task and report the step if this toggle completed it.

    Unknown step or task ids are a no-op.
    """
    stamp = now or utc_now()

    def flip(task: Task) -> Task:
        if task.completed:
            return replace(task, completed=False, completed_at=None)
        return replace(task, completed=True, completed_at=stamp)

    return _patch_step(steps, step_id, task_id, flip, session, directory, stamp)


def update_task(
    steps: Sequence[Step],
    step_id: str,
    task_id: str,
    session: SessionContext | None = None,
    directory: TechnicianDirectory | None = None,
    now: str | None = None,
    **changes: object,
) -> ToggleResult:
    """Edit non-completion task fields, then re-derive step completion.

    Editing a description can add or remove a task from the
    reference-bearing subset, so the step is refreshed afterwards.
    """
    unknown = set(changes) - EDITABLE_TASK_FIELDS
    if unknown:
        raise ValueError(f"Task fields not editable: {', '.join(sorted(unknown))}")
    return _patch_step(
        steps, step_id, task_id, lambda t: replace(t, **changes),
        session, directory, now or utc_now(),
    )


def remove_task(
    steps: Sequence[Step],
    step_id: str,
    task_id: str,
    session: SessionContext | None = None,
    directory: TechnicianDirectory | None = None,
    now: str | None = None,
) -> ToggleResult:
    for index, step in enumerate(steps):
        if step.id != step_id:
            continue
        tasks = [t for t in step.tasks if t.id != task_id]
        if len(tasks) == len(step.tasks):
            return ToggleResult(list(steps))
        updated, just_completed = refresh_step(replace(step, tasks=tasks), session, directory, now)
        new_steps = list(steps)
        new_steps[index] = updated
        return ToggleResult(new_steps, step_id if just_completed else None)
    return ToggleResult(list(steps))


# ── notes (append-only) ──────────────────────────────────────────────


def new_note_id() -> str:
    return f"note-{uuid4().hex[:12]}"


def add_note(
    steps: Sequence[Step],
    step_id: str,
    task_id: str,
    text: str,
    now: str | None = None,
    note_id: str | None = None,
) -> list[Step]:
    note = NoteEvent(id=note_id or new_note_id(), timestamp=now or utc_now(), note=text)
    return _patch_step(
        steps, step_id, task_id, lambda t: replace(t, notes=[*t.notes, note]),
        None, None, note.timestamp, refresh=False,
    ).steps


def edit_note(
    steps: Sequence[Step],
    step_id: str,
    task_id: str,
    note_id: str,
    text: str,
    now: str | None = None,
) -> list[Step]:
    """Append a new version to a note; the earlier text stays in the log."""
    stamp = now or utc_now()

    def append_edit(task: Task) -> Task:
        notes: list[NoteEvent] = []
        for note in task.notes:
            if note.id == note_id:
                edit = NoteEdit(timestamp=stamp, version=note.version + 1, note=text)
                note = replace(note, edits=[*note.edits, edit])
            notes.append(note)
        return replace(task, notes=notes)

    return _patch_step(steps, step_id, task_id, append_edit, None, None, stamp, refresh=False).steps
