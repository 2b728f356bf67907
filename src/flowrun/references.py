"""Document references embedded in task descriptions.

A task whose description starts with a numeric section path, e.g.
``"13.5.1 Lift check"`` or ``"6.5.4.8-5.4.9 Expansion disc main shaft"``,
is a checklist item tied to a service-instruction document. Only these
reference-bearing tasks gate step completion; the rest are general tasks
(supplementary notes like ``"Lift up"``).
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass

from flowrun.procedure.model import Task

REFERENCE_PATTERN = re.compile(
    r"^(?P<path>\d+(?:\.\d+)*(?:-\d+(?:\.\d+)*)?)[.\s]+(?P<label>.+)"
)

# Service intervals in ascending order; a task tagged with an interval is
# performed on every service at or above it.
SERVICE_INTERVALS: tuple[int, ...] = (1, 2, 3, 4, 5, 6, 7, 10, 12)

_INTERVAL_PATTERN = re.compile(r"(\d+)Y", re.IGNORECASE)


@dataclass(frozen=True)
class Reference:
    reference: str
    label: str
    document: int
    section: str


def match(description: str) -> Reference | None:
    """Parse the leading section reference of *description*, if any.

    A reference followed only by separators (``"13.5.1. "``) still counts as
    reference-bearing; its ``label`` is then the empty string.
    """
    m = REFERENCE_PATTERN.match(description or "")
    if not m:
        return None
    path = m.group("path")
    document, _, section = path.partition(".")
    return Reference(
        reference=path,
        label=m.group("label").strip(),
        document=int(document.split("-", 1)[0]),
        section=section,
    )


def has_reference(task: Task) -> bool:
    return match(task.description) is not None


def reference_tasks(tasks: Iterable[Task]) -> list[Task]:
    """The reference-bearing subset, in task order."""
    return [t for t in tasks if has_reference(t)]


def general_tasks(tasks: Iterable[Task]) -> list[Task]:
    return [t for t in tasks if not has_reference(t)]


def extract_references(tasks: Iterable[Task]) -> list[Reference]:
    """Unique references in first-seen order."""
    seen: set[str] = set()
    refs: list[Reference] = []
    for task in tasks:
        ref = match(task.description)
        if ref and ref.reference not in seen:
            seen.add(ref.reference)
            refs.append(ref)
    return refs


def group_by_document(tasks: Iterable[Task]) -> dict[int, list[Reference]]:
    grouped: dict[int, list[Reference]] = {}
    for ref in extract_references(tasks):
        grouped.setdefault(ref.document, []).append(ref)
    return grouped


def included_service_types(interval: str) -> list[str]:
    """Service types covered by a service interval.

    ``"4Y"`` covers ``All, 1Y, 2Y, 3Y, 4Y``. Anything that is not an
    interval covers the base service only.
    """
    m = _INTERVAL_PATTERN.search(interval or "")
    if not m:
        return ["All", "1Y"]
    years = int(m.group(1))
    return ["All"] + [f"{n}Y" for n in SERVICE_INTERVALS if n == 1 or n <= years]


def filter_by_service_type(tasks: Iterable[Task], interval: str) -> list[Task]:
    """Tasks shown for *interval*; untagged tasks belong to the 1Y service."""
    if not interval or interval.lower() == "all":
        return list(tasks)
    included = set(included_service_types(interval))
    return [t for t in tasks if (t.service_type or "1Y") in included]
