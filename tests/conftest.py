"""Shared fixtures for flowrun tests.

File handling in tests:
- Use tmp_path for any directory or file creation so tests are isolated and cleaned up.
- Use flowrun.io_utils read_text/write_text for consistent UTF-8 I/O.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from flowrun.io_utils import write_text
from flowrun.procedure.model import ROLE_BOTH, Edge, Position, Procedure, Step, Task, edge_id

SAMPLE_PROCEDURE_YAML = """\
id: PM-4Y
name: Preventive maintenance 4Y
serviceType: 4Y
gridUnit: 30
steps:
  - id: "1"
    title: Preparation
    technician: both
    tasks:
      - {id: "1-1", description: "2.1 Lockout and tagout"}
      - {id: "1-2", description: "Bring tools"}
  - id: "2.1"
    title: Hub
    technician: T1
    tasks:
      - {id: "2.1-1", description: "13.5.1 Lift check"}
  - id: "2.2"
    title: Nacelle
    technician: T2
    tasks:
      - {id: "2.2-1", description: "13.6.2 Yaw brake"}
  - id: "3"
    title: Sign-off
    technician: both
    tasks:
      - {id: "3-1", description: "14.1 Final inspection"}
edges:
  - {source: "1", target: "2.1"}
  - {source: "1", target: "2.2"}
  - {source: "2.1", target: "3"}
  - {source: "2.2", target: "3"}
"""

SAMPLE_ROSTER_YAML = """\
technicians:
  - {id: t-001, firstName: Johan, lastName: Andersson}
  - {id: t-002, firstName: Maria, lastName: Lind, initials: MALI}
"""


def _make_task(
    id: str,
    description: str = "",
    completed: bool = False,
    **kwargs,
) -> Task:
    return Task(id=id, description=description or f"1.{id} Check {id}", completed=completed, **kwargs)


def _make_step(
    id: str,
    tasks: list[Task] | None = None,
    technician: str = ROLE_BOTH,
    position: Position | None = None,
    **kwargs,
) -> Step:
    return Step(
        id=id,
        title=f"Step {id}",
        technician=technician,
        position=position or Position(),
        tasks=tasks if tasks is not None else [],
        **kwargs,
    )


def _make_procedure(steps: list[Step], edges: list[tuple[str, str]] | None = None) -> Procedure:
    return Procedure(
        id="proc",
        name="Test procedure",
        steps=steps,
        edges=[Edge(id=edge_id(s, t), source=s, target=t) for s, t in edges or []],
    )


@pytest.fixture
def make_task():
    """Factory fixture that creates Task instances (reference-bearing by default)."""
    return _make_task


@pytest.fixture
def make_step():
    """Factory fixture that creates Step instances."""
    return _make_step


@pytest.fixture
def make_procedure():
    """Factory fixture that creates Procedure instances from steps and (source, target) pairs."""
    return _make_procedure


@pytest.fixture
def procedure_file(tmp_path: Path) -> Path:
    """Write the sample four-step procedure to a YAML file."""
    path = tmp_path / "pm-4y.yaml"
    write_text(path, SAMPLE_PROCEDURE_YAML)
    return path


@pytest.fixture
def roster_file(tmp_path: Path) -> Path:
    """Write a two-technician roster file."""
    path = tmp_path / "technicians.yaml"
    write_text(path, SAMPLE_ROSTER_YAML)
    return path
