"""Tests for flowrun.references: section references in task descriptions."""

from __future__ import annotations

import re

import pytest

from flowrun.procedure.model import Task
from flowrun.references import (
    extract_references,
    filter_by_service_type,
    general_tasks,
    group_by_document,
    has_reference,
    included_service_types,
    match,
    reference_tasks,
)


def _task(id: str, description: str, service_type: str | None = None) -> Task:
    return Task(id=id, description=description, service_type=service_type)


# ═══════════════════════════════════════════════════════════════════
#  match()
# ═══════════════════════════════════════════════════════════════════


class TestMatch:
    """Tests for match()."""

    def test_simple_path(self):
        ref = match("13.5.1 Lift check")
        assert ref is not None
        assert ref.reference == "13.5.1"
        assert ref.label == "Lift check"
        assert ref.document == 13
        assert ref.section == "5.1"

    def test_range_path(self):
        """a.b-c.d ranges keep the whole range as the reference."""
        ref = match("6.5.4.8-5.4.9 Expansion disc main shaft")
        assert ref is not None
        assert ref.reference == "6.5.4.8-5.4.9"
        assert ref.label == "Expansion disc main shaft"
        assert ref.document == 6

    def test_separator_only_label_is_empty(self):
        ref = match("13.5.1. ")
        assert ref is not None
        assert ref.reference == "13.5.1"
        assert ref.label == ""

    def test_dot_separator(self):
        ref = match("7. Torque the bolts")
        assert ref is not None
        assert ref.reference == "7"
        assert ref.label == "Torque the bolts"

    def test_single_group(self):
        ref = match("12 Grease")
        assert ref is not None
        assert ref.document == 12
        assert ref.section == ""

    @pytest.mark.parametrize(
        "description",
        [
            "Lift up",
            "",
            " 13.5.1 Leading space",
            "A1.2 Not numeric",
            "Check 13.5.1 later",
        ],
    )
    def test_non_references(self, description):
        """Anything that does not start with a numeric path and a label is general."""
        assert match(description) is None

    def test_none_description(self):
        assert match(None) is None  # type: ignore[arg-type]

    @pytest.mark.parametrize(
        "description",
        [
            "13.5.1 Lift check",
            "13.5.1",
            "1-2 Range only",
            "4..Double dot",
            "4\tTab separated",
            "Lift up",
            "-1 Negative",
            "1.a Letter section",
        ],
    )
    def test_classification_matches_pattern(self, description):
        """Classification is exactly the leading-numeric-path pattern."""
        expected = re.match(r"^\d+(\.\d+)*(-\d+(\.\d+)*)?[\.\s]+.+", description) is not None
        assert (match(description) is not None) == expected


# ═══════════════════════════════════════════════════════════════════
#  Subsets and grouping
# ═══════════════════════════════════════════════════════════════════


class TestSubsets:
    """Tests for reference_tasks() / general_tasks()."""

    def test_partition(self):
        tasks = [
            _task("a", "2.1 Lockout"),
            _task("b", "Lift up"),
            _task("c", "2.2 Tagout"),
        ]
        assert [t.id for t in reference_tasks(tasks)] == ["a", "c"]
        assert [t.id for t in general_tasks(tasks)] == ["b"]
        assert has_reference(tasks[0])
        assert not has_reference(tasks[1])


class TestGrouping:
    """Tests for extract_references() / group_by_document()."""

    def test_unique_first_seen(self):
        tasks = [
            _task("a", "13.5.1 Lift check"),
            _task("b", "13.5.1 Lift check again"),
            _task("c", "6.2 Oil"),
        ]
        refs = extract_references(tasks)
        assert [r.reference for r in refs] == ["13.5.1", "6.2"]
        assert refs[0].label == "Lift check"

    def test_group_by_document(self):
        tasks = [
            _task("a", "13.5.1 Lift check"),
            _task("b", "6.2 Oil"),
            _task("c", "13.7 Hatch"),
            _task("d", "General note"),
        ]
        grouped = group_by_document(tasks)
        assert list(grouped) == [13, 6]
        assert [r.reference for r in grouped[13]] == ["13.5.1", "13.7"]


# ═══════════════════════════════════════════════════════════════════
#  Service intervals
# ═══════════════════════════════════════════════════════════════════


class TestServiceTypes:
    """Tests for included_service_types() / filter_by_service_type()."""

    def test_four_year(self):
        assert included_service_types("4Y") == ["All", "1Y", "2Y", "3Y", "4Y"]

    def test_one_year(self):
        assert included_service_types("1Y") == ["All", "1Y"]

    def test_twelve_year_skips_missing_intervals(self):
        included = included_service_types("12Y")
        assert "10Y" in included
        assert "8Y" not in included

    def test_unknown_interval(self):
        assert included_service_types("annual") == ["All", "1Y"]

    def test_filter(self):
        tasks = [
            _task("a", "1.1 A", service_type="All"),
            _task("b", "1.2 B", service_type="5Y"),
            _task("c", "1.3 C"),
            _task("d", "1.4 D", service_type="2Y"),
        ]
        assert [t.id for t in filter_by_service_type(tasks, "2Y")] == ["a", "c", "d"]

    def test_filter_all(self):
        tasks = [_task("a", "1.1 A", service_type="7Y")]
        assert filter_by_service_type(tasks, "All") == tasks
