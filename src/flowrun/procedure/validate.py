"""Structural validation of a procedure definition."""

from __future__ import annotations

from flowrun import log
from flowrun.procedure.model import TECHNICIAN_ROLES, Procedure
from flowrun.procedure.ordinal import STANDALONE_STEP_IDS, parse_step_id


def detect_cycles(procedure: Procedure) -> str:
    """Return the step ids of the first edge cycle found, or ``""``."""
    graph: dict[str, list[str]] = {}
    for edge in procedure.edges:
        graph.setdefault(edge.source, []).append(edge.target)

    visiting: set[str] = set()
    done: set[str] = set()

    def visit(node: str, path: list[str]) -> list[str]:
        visiting.add(node)
        path.append(node)
        for nxt in graph.get(node, []):
            if nxt in visiting:
                return path[path.index(nxt):] + [nxt]
            if nxt not in done:
                found = visit(nxt, path)
                if found:
                    return found
        visiting.discard(node)
        done.add(node)
        path.pop()
        return []

    for start in sorted(graph):
        if start in done:
            continue
        cycle = visit(start, [])
        if cycle:
            return " -> ".join(cycle)
    return ""


def validate(procedure: Procedure, strict_ids: bool = False) -> list[str]:
    """Return a list of problems; empty means the definition is usable.

    With *strict_ids*, step ids that carry no ``major[.minor]`` ordinal are
    rejected instead of being laid out in the first column.
    """
    errors: list[str] = []

    if not procedure.id:
        errors.append("Procedure is missing id")
    if not procedure.steps:
        errors.append("No steps in procedure")
    if procedure.grid_unit <= 0:
        errors.append(f"gridUnit must be positive (got {procedure.grid_unit})")

    seen: set[str] = set()
    for index, step in enumerate(procedure.steps):
        if not step.id:
            errors.append(f"Step #{index + 1} is missing id")
            continue
        if step.id in seen:
            errors.append(f"Duplicate step id: {step.id}")
        seen.add(step.id)

        if step.technician not in TECHNICIAN_ROLES:
            errors.append(
                f"Step {step.id}: unknown technician '{step.technician}' "
                f"(expected one of {', '.join(TECHNICIAN_ROLES)})"
            )
        if (
            strict_ids
            and not step.standalone
            and step.id not in STANDALONE_STEP_IDS
            and parse_step_id(step.id) is None
        ):
            errors.append(f"Step {step.id}: id has no major[.minor] ordinal")

        task_ids: set[str] = set()
        for task in step.tasks:
            if task.id in task_ids:
                errors.append(f"Step {step.id}: duplicate task id {task.id}")
            task_ids.add(task.id)

    for edge in procedure.edges:
        for end in (edge.source, edge.target):
            if end not in seen:
                errors.append(f"Edge {edge.id}: step '{end}' not found")

    cycle = detect_cycles(procedure)
    if cycle:
        errors.append(f"Cycle in edges: {cycle}")

    return errors


def validate_and_report(procedure: Procedure, strict_ids: bool = False) -> bool:
    """Validate, print errors, return True if valid."""
    errors = validate(procedure, strict_ids=strict_ids)
    if errors:
        log.error(f"Procedure {procedure.id or '?'} is invalid:")
        for e in errors:
            log.error(f"  - {e}")
        return False
    log.debug(f"Procedure {procedure.id}: {len(procedure.steps)} steps, {len(procedure.edges)} edges")
    return True
