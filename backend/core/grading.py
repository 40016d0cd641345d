"""
grading.py — Performance bands and letter grades for 0-100 scores.

Both scales are evaluated top-down and the first threshold the score meets
wins; every threshold is inclusive on its lower bound. Scores are used as
given (no clamping), so anything below the last threshold falls in the
bottom bucket and anything above 100 in the top one.
"""

from enum import Enum
from typing import Any, Dict, List


class PerformanceBand(str, Enum):
    HIGH_ACHIEVER = "High Achiever"
    ABOVE_AVERAGE = "Above Average"
    AVERAGE = "Average"
    BELOW_AVERAGE = "Below Average"
    AT_RISK = "At Risk"


# (min_score, band, description), ordered high to low.
BAND_THRESHOLDS = [
    (90.0, PerformanceBand.HIGH_ACHIEVER, "Enrichment and leadership"),
    (75.0, PerformanceBand.ABOVE_AVERAGE, "Stretch towards mastery"),
    (60.0, PerformanceBand.AVERAGE, "Consolidation and practice"),
    (50.0, PerformanceBand.BELOW_AVERAGE, "Targeted support"),
    (float("-inf"), PerformanceBand.AT_RISK, "Remediation and parent contact"),
]

# (min_score, label, description), ordered high to low.
LETTER_GRADES = [
    (90.0, "A", "Excellent"),
    (80.0, "B", "Very Good"),
    (70.0, "C", "Good"),
    (60.0, "D", "Satisfactory"),
    (float("-inf"), "F", "Fail"),
]

GRADE_LETTERS = [label for _, label, _ in LETTER_GRADES]


def get_performance_band(percentage: float) -> PerformanceBand:
    """Map a percentage to its performance band."""
    for min_score, band, _ in BAND_THRESHOLDS:
        if percentage >= min_score:
            return band
    # NaN compares false against every threshold.
    return PerformanceBand.AT_RISK


def get_grade_label(percentage: float) -> str:
    """Return the letter grade A-F for a percentage."""
    for min_score, label, _ in LETTER_GRADES:
        if percentage >= min_score:
            return label
    return "F"


def _thresholds_table(rows) -> List[Dict[str, Any]]:
    table = []
    for idx, (min_score, label, desc) in enumerate(rows):
        upper = None if idx == 0 else rows[idx - 1][0] - 0.01
        table.append({
            "min": None if min_score == float("-inf") else min_score,
            "max": None if upper is None else round(upper, 2),
            "label": label.value if isinstance(label, PerformanceBand) else label,
            "description": desc,
        })
    return table


def get_all_grade_thresholds() -> List[Dict[str, Any]]:
    """Letter grade scale for legends and reference tables."""
    return _thresholds_table(LETTER_GRADES)


def get_all_band_thresholds() -> List[Dict[str, Any]]:
    """Performance band scale for legends and reference tables."""
    return _thresholds_table(BAND_THRESHOLDS)
