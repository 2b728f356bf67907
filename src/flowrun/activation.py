"""Which step(s) a technician should work on next."""

from __future__ import annotations

from collections.abc import Sequence

from flowrun.completion import is_step_complete
from flowrun.procedure.model import Step
from flowrun.procedure.ordinal import in_sequence, ordinal_of


def _with_siblings(ordered: list[Step], start: int) -> list[str]:
    """First incomplete step at or after *start*, plus its incomplete parallel siblings."""
    for index in range(start, len(ordered)):
        step = ordered[index]
        if is_step_complete(step):
            continue
        major = ordinal_of(step).major
        return [
            s.id for s in ordered
            if ordinal_of(s).major == major and not is_step_complete(s)
        ]
    return []


def next_active(steps: Sequence[Step], completed_step_index: int) -> list[str]:
    """Active set after the step at *completed_step_index* completed.

    The index addresses the canonical sequence order (see
    :func:`flowrun.procedure.ordinal.in_sequence`), not the list order.
    Completed steps are skipped; the first incomplete one comes back with
    its incomplete parallel siblings.
    """
    ordered = in_sequence(steps)
    if completed_step_index < 0 or completed_step_index >= len(ordered) - 1:
        return []
    return _with_siblings(ordered, completed_step_index + 1)


def next_active_after(steps: Sequence[Step], step_id: str) -> list[str]:
    """Same as :func:`next_active`, addressed by step id."""
    for index, step in enumerate(in_sequence(steps)):
        if step.id == step_id:
            return next_active(steps, index)
    return []


def first_active(steps: Sequence[Step]) -> list[str]:
    """Active set when a run starts (or resumes)."""
    return _with_siblings(in_sequence(steps), 0)
