"""Deterministic grid layout and edge generation for a step graph.

Steps are grouped into columns by major ordinal. Card sizes come from the
number of reference-bearing tasks. Everything is in grid units; the pixel
constants below are converted with the procedure's grid unit.

Two modes:

- ``sequence-aligned``: each column is stacked top-down by minor from a
  fixed baseline.
- ``centered``: the first step's vertical centre is a centreline; parallel
  steps with odd minors go above it and even minors below it.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass, field, replace

from flowrun import log
from flowrun.procedure.model import (
    EDGE_BENT,
    EDGE_FLOW_ALIGNED,
    ROLE_BOTH,
    Edge,
    Position,
    Step,
    edge_id,
)
from flowrun.procedure.ordinal import (
    in_sequence,
    is_standalone,
    ordinal_of,
    parse_step_id,
)
from flowrun.references import reference_tasks

MODE_SEQUENCE_ALIGNED = "sequence-aligned"
MODE_CENTERED = "centered"
LAYOUT_MODES: tuple[str, ...] = (MODE_SEQUENCE_ALIGNED, MODE_CENTERED)

CARD_WIDTH_PX = 300
CARD_MIN_HEIGHT_PX = 240
CARD_MAX_HEIGHT_PX = 660
COLUMN_GAP_PX = 120
ROW_GAP_PX = 60
BASELINE_PX = 150


def _units(px: int, grid_unit: int) -> int:
    return math.ceil(px / grid_unit)


def card_height_px(task_count: int) -> int:
    """Header + one line per task, rounded up to 60px, clamped."""
    raw = math.ceil((100 + 24 * task_count) / 60) * 60 + 60
    return max(CARD_MIN_HEIGHT_PX, min(CARD_MAX_HEIGHT_PX, raw))


def card_size(step: Step, grid_unit: int) -> tuple[int, int]:
    """``(width, height)`` of the card for *step*, in grid units."""
    height = card_height_px(len(reference_tasks(step.tasks)))
    return _units(CARD_WIDTH_PX, grid_unit), _units(height, grid_unit)


@dataclass
class LayoutResult:
    positions: dict[str, Position] = field(default_factory=dict)
    edges: list[Edge] = field(default_factory=list)


@dataclass
class _Column:
    major: int
    steps: list[Step]
    x: int = 0


# ── columns ──────────────────────────────────────────────────────────


def _columns(ordered: list[Step], grid_unit: int) -> list[_Column]:
    by_major: dict[int, list[Step]] = {}
    for step in ordered:
        if parse_step_id(step.id) is None:
            log.debug(f"Step id {step.id!r} has no ordinal; placed in column 0")
        by_major.setdefault(ordinal_of(step).major, []).append(step)

    columns: list[_Column] = []
    x = 0
    gap = _units(COLUMN_GAP_PX, grid_unit)
    for major in sorted(by_major):
        col = _Column(major, by_major[major], x)
        columns.append(col)
        x += max(card_size(s, grid_unit)[0] for s in col.steps) + gap
    return columns


def _stack(steps: list[Step], top: int, grid_unit: int, out: dict[str, Position], x: int) -> int:
    """Place *steps* downward from *top*; returns the y below the last card."""
    row_gap = _units(ROW_GAP_PX, grid_unit)
    y = top
    for step in steps:
        out[step.id] = Position(x, y)
        y += card_size(step, grid_unit)[1] + row_gap
    return y


def _place_sequence_aligned(columns: list[_Column], grid_unit: int) -> dict[str, Position]:
    out: dict[str, Position] = {}
    baseline = _units(BASELINE_PX, grid_unit)
    for col in columns:
        _stack(col.steps, baseline, grid_unit, out, col.x)
    return out


def _place_centered(columns: list[_Column], grid_unit: int) -> dict[str, Position]:
    out: dict[str, Position] = {}
    if not columns:
        return out
    baseline = _units(BASELINE_PX, grid_unit)
    row_gap = _units(ROW_GAP_PX, grid_unit)
    half_gap = row_gap // 2

    anchor = columns[0].steps[0]
    centerline = baseline + card_size(anchor, grid_unit)[1] // 2

    for col in columns:
        if len(col.steps) == 1:
            step = col.steps[0]
            out[step.id] = Position(col.x, centerline - card_size(step, grid_unit)[1] // 2)
            continue

        above = [s for s in col.steps if (ordinal_of(s).minor or 0) % 2 == 1]
        below = [s for s in col.steps if (ordinal_of(s).minor or 0) % 2 == 0]

        # Closest to the line first, growing outward.
        edge = centerline - half_gap
        for step in above:
            height = card_size(step, grid_unit)[1]
            out[step.id] = Position(col.x, edge - height)
            edge -= height + row_gap
        _stack(below, centerline + half_gap, grid_unit, out, col.x)
    return out


# ── edges ────────────────────────────────────────────────────────────


def _connected(source: Step, target: Step) -> bool:
    if source.technician == ROLE_BOTH or target.technician == ROLE_BOTH:
        return True
    return source.technician == target.technician


def _edge_kind(source: Step, target: Step, left: _Column, right: _Column) -> str:
    if len(left.steps) == 1 or len(right.steps) == 1:
        return EDGE_FLOW_ALIGNED
    if ordinal_of(source).minor == ordinal_of(target).minor:
        return EDGE_FLOW_ALIGNED
    return EDGE_BENT


def _sequence_edges(columns: list[_Column]) -> list[Edge]:
    edges: list[Edge] = []
    for left, right in zip(columns, columns[1:]):
        for source in left.steps:
            for target in right.steps:
                if not _connected(source, target):
                    continue
                edges.append(Edge(
                    id=edge_id(source.id, target.id),
                    source=source.id,
                    target=target.id,
                    kind=_edge_kind(source, target, left, right),
                ))
    return edges


# ── standalone steps ─────────────────────────────────────────────────


def _place_standalone(
    standalone: list[Step],
    columns: list[_Column],
    positions: dict[str, Position],
    grid_unit: int,
) -> list[Edge]:
    if not standalone:
        return []
    if not columns:
        _stack(standalone, _units(BASELINE_PX, grid_unit), grid_unit, positions, 0)
        return []

    last = columns[-1]
    terminal = last.steps[0]
    bottom = max(positions[s.id].y + card_size(s, grid_unit)[1] for s in last.steps)
    _stack(standalone, bottom + _units(ROW_GAP_PX, grid_unit), grid_unit, positions, last.x)
    return [
        Edge(
            id=edge_id(terminal.id, step.id),
            source=terminal.id,
            target=step.id,
            kind=EDGE_FLOW_ALIGNED,
            dashed=True,
        )
        for step in standalone
    ]


# ── public API ───────────────────────────────────────────────────────


def layout(steps: Sequence[Step], mode: str = MODE_CENTERED, grid_unit: int = 30) -> LayoutResult:
    """Compute positions and edges for *steps*.

    Output depends only on the step ids, technician roles and task lists:
    existing positions are ignored.
    """
    if mode not in LAYOUT_MODES:
        raise ValueError(f"Unknown layout mode: {mode}. Valid modes: {', '.join(LAYOUT_MODES)}.")
    if grid_unit <= 0:
        raise ValueError("grid_unit must be a positive number of pixels")

    columns = _columns(in_sequence(steps), grid_unit)
    if mode == MODE_CENTERED:
        positions = _place_centered(columns, grid_unit)
    else:
        positions = _place_sequence_aligned(columns, grid_unit)

    edges = _sequence_edges(columns)
    standalone = [s for s in steps if is_standalone(s)]
    edges.extend(_place_standalone(standalone, columns, positions, grid_unit))

    log.debug(f"Layout ({mode}): {len(columns)} columns, {len(positions)} steps, {len(edges)} edges")
    return LayoutResult(positions=positions, edges=edges)


def apply_layout(steps: Sequence[Step], result: LayoutResult) -> list[Step]:
    """Steps with their positions replaced by *result* (others untouched)."""
    out: list[Step] = []
    for step in steps:
        pos = result.positions.get(step.id)
        out.append(step if pos is None or pos == step.position else replace(step, position=pos))
    return out
