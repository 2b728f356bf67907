"""Contract tests for the procedure data models shared by every engine module."""

from __future__ import annotations

from dataclasses import fields

from flowrun.procedure.model import NoteEdit, NoteEvent, Procedure, SnapshotStep, Step, Task


def test_task_has_progress_fields() -> None:
    names = {f.name for f in fields(Task)}
    assert {"completed", "completed_at", "actual_time_minutes", "start_time", "end_time", "notes"} <= names


def test_snapshot_step_carries_no_structure() -> None:
    """Only progress and position are persisted per step; text comes from the definition."""
    names = {f.name for f in fields(SnapshotStep)}
    assert "title" not in names
    assert "technician" not in names
    assert SnapshotStep(id="1").position is None


def test_step_defaults() -> None:
    step = Step(id="1")
    assert step.technician == "both"
    assert step.position.is_origin()
    assert step.tasks == []
    assert not step.standalone


def test_step_task_lists_not_shared() -> None:
    a, b = Step(id="1"), Step(id="2")
    a.tasks.append(Task(id="x"))
    assert b.tasks == []


def test_note_version_and_text() -> None:
    note = NoteEvent(id="n", timestamp="t0", note="first")
    assert note.version == 1
    assert note.text == "first"
    note = NoteEvent(id="n", timestamp="t0", note="first", edits=[NoteEdit("t1", 2, "second")])
    assert note.version == 2
    assert note.text == "second"
    assert note.note == "first"


def test_procedure_signature() -> None:
    proc = Procedure(id="p", steps=[Step(id="1", tasks=[Task(id="a"), Task(id="b")]), Step(id="2")])
    assert proc.signature() == {"1": 2, "2": 0}
    assert proc.get_step("2") is proc.steps[1]
    assert proc.get_step("9") is None
