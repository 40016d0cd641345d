"""
Tests for core/analysis.py — cohort summary, component stats, bands.
"""

import os
import sys
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from core.analysis import (
    NO_COMPONENT,
    compute_band_distribution,
    compute_component_stats,
    compute_summary,
    perform_full_analysis,
    top_performers,
)
from core.grading import get_performance_band
from core.models import StudentRecord


def make_student(name, total, components=None, sheet="Sheet1", idx=0):
    return StudentRecord(
        id=f"s-{sheet}-{idx}",
        name=name,
        group=sheet,
        sheet_name=sheet,
        components=dict(components or {}),
        total_score=total,
        performance_band=get_performance_band(total),
    )


@pytest.fixture
def three_students():
    return [
        make_student("Alice", 95, {"Quiz": 45, "Exam": 50}, idx=0),
        make_student("Brian", 65, {"Quiz": 30, "Exam": 35}, idx=1),
        make_student("Chen", 40, {"Quiz": 15, "Exam": 25}, idx=2),
    ]


class TestSummary:

    def test_pass_fail_and_grades(self, three_students):
        summary = compute_summary(three_students)
        assert summary.pass_count == 2
        assert summary.fail_count == 1
        assert summary.grade_distribution == {"A": 1, "B": 0, "C": 0, "D": 1, "F": 1}

    def test_pass_and_fail_partition_population(self, three_students):
        summary = compute_summary(three_students)
        assert summary.pass_count + summary.fail_count == len(three_students)
        assert sum(summary.grade_distribution.values()) == len(three_students)

    def test_descriptive_fields(self, three_students):
        summary = compute_summary(three_students)
        assert summary.mean == pytest.approx(200 / 3)
        assert summary.median == 65
        assert summary.min == 40
        assert summary.max == 95
        assert summary.range == 55
        assert summary.pass_rate == pytest.approx(200 / 3)

    def test_pass_mark_is_inclusive(self):
        summary = compute_summary([make_student("A", 60), make_student("B", 59.99)])
        assert (summary.pass_count, summary.fail_count) == (1, 1)

    def test_custom_pass_mark(self, three_students):
        summary = compute_summary(three_students, pass_mark=70)
        assert (summary.pass_count, summary.fail_count) == (1, 2)


class TestComponents:

    def test_strongest_and_weakest_by_mean(self):
        students = [make_student("A", 75, {"Quiz": 90, "Exam": 60})]
        analysis = perform_full_analysis(students)
        assert analysis.strongest_component == "Quiz"
        assert analysis.weakest_component == "Exam"

    def test_equal_means_strongest_first_weakest_last(self):
        students = [make_student("A", 50, {"Essay": 50, "Lab": 50, "Quiz": 50})]
        analysis = perform_full_analysis(students)
        assert analysis.strongest_component == "Essay"
        assert analysis.weakest_component == "Quiz"

    def test_partial_ties(self):
        students = [make_student("A", 60, {"Essay": 40, "Lab": 80, "Quiz": 80, "Oral": 40})]
        analysis = perform_full_analysis(students)
        assert analysis.strongest_component == "Lab"
        assert analysis.weakest_component == "Oral"

    def test_no_components(self):
        analysis = perform_full_analysis([make_student("A", 70)])
        assert analysis.component_stats == ()
        assert analysis.strongest_component == NO_COMPONENT
        assert analysis.weakest_component == NO_COMPONENT

    def test_component_order_and_stats(self, three_students):
        stats = compute_component_stats(three_students)
        assert [c.name for c in stats] == ["Quiz", "Exam"]
        quiz = stats[0]
        assert quiz.mean == 30
        assert quiz.median == 30
        assert quiz.min == 15
        assert quiz.max == 45
        assert -1 <= quiz.correlation_with_total <= 1

    def test_component_equal_to_total_correlates_perfectly(self):
        students = [
            make_student("A", 80, {"Only": 80}),
            make_student("B", 55, {"Only": 55}),
            make_student("C", 70, {"Only": 70}),
        ]
        stats = compute_component_stats(students)
        assert stats[0].correlation_with_total == pytest.approx(1.0)

    def test_single_student_has_zero_spread_and_correlation(self):
        stats = compute_component_stats([make_student("A", 70, {"Quiz": 70})])
        assert stats[0].std_dev == 0
        assert stats[0].correlation_with_total == 0

    def test_later_extra_component_is_ignored(self):
        students = [
            make_student("A", 80, {"Quiz": 80}),
            make_student("B", 70, {"Quiz": 70, "Exam": 50}),
        ]
        assert [c.name for c in compute_component_stats(students)] == ["Quiz"]

    def test_component_missing_later_scores_zero(self):
        students = [
            make_student("A", 80, {"Quiz": 80, "Exam": 40}),
            make_student("B", 70, {"Quiz": 70}),
        ]
        exam = compute_component_stats(students)[1]
        assert exam.name == "Exam"
        assert exam.mean == 20
        assert exam.min == 0


class TestBandsAndRanking:

    def test_band_distribution_lists_every_band(self, three_students):
        assert compute_band_distribution(three_students) == {
            "High Achiever": 1,
            "Above Average": 0,
            "Average": 1,
            "Below Average": 0,
            "At Risk": 1,
        }

    def test_record_bands(self, three_students):
        assert [s.performance_band.value for s in three_students] == [
            "High Achiever", "Average", "At Risk",
        ]

    def test_top_performers_stable_on_ties(self):
        students = [
            make_student("A", 70, idx=0),
            make_student("B", 90, idx=1),
            make_student("C", 70, idx=2),
            make_student("D", 50, idx=3),
        ]
        assert [s.name for s in top_performers(students, 3)] == ["B", "A", "C"]


class TestFullAnalysis:

    def test_empty_input_raises(self):
        with pytest.raises(ValueError):
            perform_full_analysis([])

    def test_idempotent(self, three_students):
        assert perform_full_analysis(three_students) == perform_full_analysis(three_students)

    def test_keeps_student_order(self, three_students):
        analysis = perform_full_analysis(three_students)
        assert [s.name for s in analysis.students] == ["Alice", "Brian", "Chen"]

    def test_pass_mark_override(self, three_students):
        analysis = perform_full_analysis(three_students, pass_mark=40)
        assert analysis.summary.pass_count == 3

    def test_summary_payload_has_no_students(self, three_students):
        payload = perform_full_analysis(three_students).summary_payload()
        assert "students" not in payload
        assert "Alice" not in str(payload)
        assert payload["strongest_component"] == "Exam"

    def test_to_dict_is_json_ready(self, three_students):
        data = perform_full_analysis(three_students).to_dict()
        assert data["students"][0]["performance_band"] == "High Achiever"
        assert data["summary"]["grade_distribution"]["A"] == 1
        assert "original_row" not in data["students"][0]
