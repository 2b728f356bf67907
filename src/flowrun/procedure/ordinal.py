"""Step id ordinals: ``"5"``, ``"5.1"``, ``"5-1"`` and ``"step-5-1"``.

The major number is the position in the procedure sequence; steps sharing
a major are parallel branches and the minor is their slot.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from typing import NamedTuple

from flowrun.procedure.model import Step

_STEP_ID = re.compile(r"^(?:step-)?(\d+)(?:[.-](\d+))?$", re.IGNORECASE)

# Addendum steps that sit outside the sequence (e.g. the 4Y bolt check).
STANDALONE_STEP_IDS = frozenset({"step-4y-bolts"})


class StepOrdinal(NamedTuple):
    major: int
    minor: int | None = None


def parse_step_id(step_id: str) -> StepOrdinal | None:
    m = _STEP_ID.match(step_id.strip())
    if not m:
        return None
    minor = m.group(2)
    return StepOrdinal(int(m.group(1)), int(minor) if minor is not None else None)


def ordinal_of(step: Step) -> StepOrdinal:
    """Ordinal of *step*; ids that do not parse count as major 0."""
    return parse_step_id(step.id) or StepOrdinal(0)


def sequence_key(step: Step) -> tuple[int, int]:
    # A missing minor sorts before any slot of the same major.
    major, minor = ordinal_of(step)
    return major, -1 if minor is None else minor


def is_standalone(step: Step) -> bool:
    return step.standalone or step.id in STANDALONE_STEP_IDS


def in_sequence(steps: Iterable[Step]) -> list[Step]:
    """Non-standalone steps in canonical (major, minor) order.

    The sort is stable, so ties keep their list order.
    """
    return sorted((s for s in steps if not is_standalone(s)), key=sequence_key)
