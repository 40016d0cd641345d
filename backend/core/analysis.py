"""
analysis.py — Whole-cohort analysis over normalized student records.

Computes:
- Summary of total scores (mean, median, mode, std, min, max, range)
- Pass/fail counts and the A-F grade histogram
- Per-component stats, including correlation with the total
- Strongest / weakest component by mean
- Performance band distribution and top performers

Component names come from the first record; every record in one run is
assumed to share that schema. A component the first record lacks is
ignored, and one missing from a later record scores 0 there.
"""

from typing import Dict, List, Optional, Sequence

from core.grading import GRADE_LETTERS, PerformanceBand, get_grade_label
from core.models import AnalysisSummary, ComponentStat, FullAnalysis, StudentRecord
from core.stats import correlation, describe

DEFAULT_PASS_MARK = 60
NO_COMPONENT = "N/A"


# ── Summary ─────────────────────────────────────────────────────────

def compute_summary(students: Sequence[StudentRecord], pass_mark: float = DEFAULT_PASS_MARK) -> AnalysisSummary:
    """Summary statistics of total_score across the student set."""
    scores = [s.total_score for s in students]
    described = describe(scores)

    grade_distribution: Dict[str, int] = {letter: 0 for letter in GRADE_LETTERS}
    for score in scores:
        grade_distribution[get_grade_label(score)] += 1

    pass_count = sum(1 for score in scores if score >= pass_mark)
    return AnalysisSummary(
        mean=described["mean"],
        median=described["median"],
        mode=described["mode"],
        std_dev=described["std_dev"],
        min=described["min"],
        max=described["max"],
        range=described["max"] - described["min"],
        pass_count=pass_count,
        fail_count=len(scores) - pass_count,
        grade_distribution=grade_distribution,
    )


# ── Components ──────────────────────────────────────────────────────

def compute_component_stats(students: Sequence[StudentRecord]) -> List[ComponentStat]:
    """One ComponentStat per component of the first record, in that record's order."""
    if not students:
        return []

    totals = [s.total_score for s in students]
    stats = []
    for name in students[0].components:
        values = [s.components.get(name, 0.0) for s in students]
        described = describe(values)
        stats.append(ComponentStat(
            name=name,
            mean=described["mean"],
            median=described["median"],
            mode=described["mode"],
            std_dev=described["std_dev"],
            min=described["min"],
            max=described["max"],
            correlation_with_total=correlation(values, totals),
        ))
    return stats


def _strongest_and_weakest(component_stats: Sequence[ComponentStat]):
    if not component_stats:
        return NO_COMPONENT, NO_COMPONENT
    # Stable descending sort: tied strongest is the earliest, tied weakest the latest.
    ranked = sorted(component_stats, key=lambda c: -c.mean)
    return ranked[0].name, ranked[-1].name


# ── Bands and rankings ──────────────────────────────────────────────

def compute_band_distribution(students: Sequence[StudentRecord]) -> Dict[str, int]:
    """Student count per performance band; all five bands, in band order."""
    counts = {band.value: 0 for band in PerformanceBand}
    for s in students:
        counts[s.performance_band.value] += 1
    return counts


def top_performers(students: Sequence[StudentRecord], n: int = 5) -> List[StudentRecord]:
    """The n highest totals; equal totals keep their input order."""
    return sorted(students, key=lambda s: s.total_score, reverse=True)[:n]


# ── Full analysis ───────────────────────────────────────────────────

def perform_full_analysis(
    students: Sequence[StudentRecord],
    pass_mark: Optional[float] = None,
) -> FullAnalysis:
    """
    Analyze a non-empty, ordered student set.

    Callers are expected to handle the empty set themselves (see
    pipeline.analyze); passing one raises ValueError.
    """
    if not students:
        raise ValueError("Cannot analyze an empty student set.")

    students = tuple(students)
    component_stats = compute_component_stats(students)
    strongest, weakest = _strongest_and_weakest(component_stats)

    return FullAnalysis(
        summary=compute_summary(students, DEFAULT_PASS_MARK if pass_mark is None else pass_mark),
        students=students,
        component_stats=tuple(component_stats),
        strongest_component=strongest,
        weakest_component=weakest,
        band_distribution=compute_band_distribution(students),
    )
