"""
correlation.py — Ad-hoc bivariate comparison across students.

Pairs any two variables (the total or a component) per student and reports
Pearson r, a strength label and, where scipy can compute one, a p-value.
Nothing is cached; each call recomputes from the student set.
"""

from typing import Any, Dict, List, Optional, Sequence

from scipy import stats as sp_stats

from core.models import FullAnalysis, StudentRecord
from core.stats import correlation, safe_float, sanitize

TOTAL = "total"
DEFAULT_TOTAL_LABEL = "Overall Score"


def resolve_variable(student: StudentRecord, selector: str, total_label: Optional[str] = None) -> float:
    """
    Value of one variable for one student.

    "total" and the active total label are total_score. Anything else is a
    component; "Overall Score" still means the total when no component has
    that name, and any other unknown name reads as 0.
    """
    if selector == TOTAL or selector == (total_label or DEFAULT_TOTAL_LABEL):
        return student.total_score
    if selector in student.components:
        return student.components[selector]
    if selector == DEFAULT_TOTAL_LABEL:
        return student.total_score
    return 0.0


def correlation_strength(r: float) -> str:
    magnitude = abs(r)
    if magnitude > 0.7:
        return "Strong"
    if magnitude > 0.4:
        return "Moderate"
    return "Weak"


def _p_value(xs: List[float], ys: List[float]) -> Optional[float]:
    # pearsonr warns and returns nan on constant input; skip it instead.
    if len(xs) < 3 or len(set(xs)) < 2 or len(set(ys)) < 2:
        return None
    _, p = sp_stats.pearsonr(xs, ys)
    return safe_float(p, digits=None)


def explore_correlation(
    students: Sequence[StudentRecord],
    x: str,
    y: str,
    total_label: Optional[str] = None,
) -> Dict[str, Any]:
    """Aligned (x, y, name, group) points for two selectors, with their correlation."""
    points = []
    xs: List[float] = []
    ys: List[float] = []
    for s in students:
        x_val = resolve_variable(s, x, total_label)
        y_val = resolve_variable(s, y, total_label)
        xs.append(x_val)
        ys.append(y_val)
        points.append({
            "x": x_val,
            "y": y_val,
            "name": s.name,
            "group": s.group,
            "performance_band": s.performance_band.value,
        })

    r = correlation(xs, ys)
    return sanitize({
        "x": x,
        "y": y,
        "points": points,
        "r": r,
        "strength": correlation_strength(r),
        "p_value": _p_value(xs, ys),
        "count": len(points),
    })


# ── Variable menus ──────────────────────────────────────────────────

def available_variables(analysis: FullAnalysis) -> List[str]:
    return [TOTAL] + analysis.component_names


def default_selectors(analysis: FullAnalysis) -> Dict[str, str]:
    """First component against the total, or total against itself with no components."""
    names = analysis.component_names
    return {"x": names[0] if names else TOTAL, "y": TOTAL}


def component_correlation_pairs(analysis: FullAnalysis) -> List[Dict[str, Any]]:
    """Pearson r for every unordered pair of components."""
    names = analysis.component_names
    series = {
        name: [s.components.get(name, 0.0) for s in analysis.students]
        for name in names
    }
    pairs = []
    for i in range(len(names)):
        for j in range(i + 1, len(names)):
            a, b = names[i], names[j]
            r = correlation(series[a], series[b])
            pairs.append({
                "component_a": a,
                "component_b": b,
                "r": safe_float(r, digits=3),
                "strength": correlation_strength(r),
            })
    return pairs
