"""Tests for flowrun.procedure.validate: structure checks + cycle detection."""

from __future__ import annotations

from flowrun.procedure.model import Edge, Procedure, Step, Task, edge_id
from flowrun.procedure.validate import detect_cycles, validate, validate_and_report


# ── Helpers ─────────────────────────────────────────────────────────


def _s(id: str, technician: str = "both", tasks: list[Task] | None = None, **kwargs) -> Step:
    return Step(id=id, technician=technician, tasks=tasks or [], **kwargs)


def _p(steps: list[Step], edges: list[tuple[str, str]] | None = None) -> Procedure:
    return Procedure(
        id="proc",
        steps=steps,
        edges=[Edge(id=edge_id(s, t), source=s, target=t) for s, t in edges or []],
    )


# ═══════════════════════════════════════════════════════════════════
#  Cycle Detection
# ═══════════════════════════════════════════════════════════════════


class TestDetectCycles:
    """Tests for detect_cycles()."""

    def test_chain(self):
        """1 -> 2 -> 3 has no cycle."""
        assert detect_cycles(_p([_s("1"), _s("2"), _s("3")], [("1", "2"), ("2", "3")])) == ""

    def test_fan_out_fan_in(self):
        proc = _p(
            [_s("1"), _s("2.1"), _s("2.2"), _s("3")],
            [("1", "2.1"), ("1", "2.2"), ("2.1", "3"), ("2.2", "3")],
        )
        assert detect_cycles(proc) == ""

    def test_direct_cycle(self):
        result = detect_cycles(_p([_s("1"), _s("2")], [("1", "2"), ("2", "1")]))
        assert "1" in result
        assert "2" in result

    def test_self_loop(self):
        assert detect_cycles(_p([_s("1")], [("1", "1")])) == "1 -> 1"


# ═══════════════════════════════════════════════════════════════════
#  Validation
# ═══════════════════════════════════════════════════════════════════


class TestValidate:
    """Tests for validate()."""

    def test_valid(self):
        proc = _p([_s("1"), _s("2.1", "A"), _s("2.2", "B")], [("1", "2.1"), ("1", "2.2")])
        assert validate(proc) == []

    def test_no_steps(self):
        assert any("No steps" in e for e in validate(_p([])))

    def test_duplicate_step_id(self):
        errors = validate(_p([_s("1"), _s("1")]))
        assert any("Duplicate step id" in e for e in errors)

    def test_missing_step_id(self):
        errors = validate(_p([_s("")]))
        assert any("missing id" in e for e in errors)

    def test_duplicate_task_id(self):
        errors = validate(_p([_s("1", tasks=[Task(id="a"), Task(id="a")])]))
        assert any("duplicate task id" in e for e in errors)

    def test_unknown_technician(self):
        errors = validate(_p([_s("1", "T3")]))
        assert any("unknown technician 'T3'" in e for e in errors)

    def test_edge_to_missing_step(self):
        errors = validate(_p([_s("1")], [("1", "9")]))
        assert any("'9' not found" in e for e in errors)

    def test_cycle_reported(self):
        errors = validate(_p([_s("1"), _s("2")], [("1", "2"), ("2", "1")]))
        assert any("Cycle" in e for e in errors)

    def test_bad_grid_unit(self):
        proc = _p([_s("1")])
        proc.grid_unit = 0
        assert any("gridUnit" in e for e in validate(proc))


class TestStrictIds:
    """Malformed step ids are only rejected when asked."""

    def test_lenient_by_default(self):
        assert validate(_p([_s("intro"), _s("1")])) == []

    def test_strict_rejects(self):
        errors = validate(_p([_s("intro"), _s("1")]), strict_ids=True)
        assert len(errors) == 1
        assert "intro" in errors[0]

    def test_strict_allows_standalone(self):
        proc = _p([_s("1"), _s("step-4y-bolts"), _s("addendum", standalone=True)])
        assert validate(proc, strict_ids=True) == []


class TestValidateAndReport:
    """Tests for validate_and_report()."""

    def test_true_when_valid(self):
        assert validate_and_report(_p([_s("1")])) is True

    def test_false_and_prints(self, capsys):
        assert validate_and_report(_p([_s("1"), _s("1")])) is False
        assert "Duplicate step id" in capsys.readouterr().err
