"""
stats.py — Descriptive statistics over plain numeric sequences.

Computes:
- mean, median, mode
- population standard deviation
- min / max
- Pearson correlation

Every function returns 0 for empty input instead of raising, so a filtered
student set that happens to be empty still renders. Callers that need to
tell "no data" from "zero" must check the population size themselves.
"""

from typing import Any, Dict, Optional, Sequence

import numpy as np


# ── Helpers ─────────────────────────────────────────────────────────

def safe_float(val, digits: Optional[int] = 2) -> Optional[float]:
    """Convert to float (rounded when digits is set) or return None."""
    try:
        v = float(val)
    except (TypeError, ValueError):
        return None
    if np.isnan(v) or np.isinf(v):
        return None
    return round(v, digits) if digits is not None else v


def sanitize(obj):
    """Recursively coerce numpy scalars and tuples to JSON-safe Python types."""
    if isinstance(obj, dict):
        return {k: sanitize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [sanitize(v) for v in obj]
    if isinstance(obj, np.bool_):
        return bool(obj)
    if isinstance(obj, np.integer):
        return int(obj)
    if isinstance(obj, (np.floating, float)):
        v = float(obj)
        return None if (np.isnan(v) or np.isinf(v)) else v
    return obj


def _as_array(values: Sequence[float]) -> np.ndarray:
    return np.asarray(list(values), dtype=float)


# ── Central tendency ────────────────────────────────────────────────

def mean(values: Sequence[float]) -> float:
    """Arithmetic mean; 0 for empty input."""
    arr = _as_array(values)
    if arr.size == 0:
        return 0.0
    return float(arr.sum() / arr.size)


def median(values: Sequence[float]) -> float:
    """Middle value of the sorted input, averaging the two middle values for even length."""
    arr = _as_array(values)
    if arr.size == 0:
        return 0.0
    ordered = np.sort(arr)
    mid = arr.size // 2
    if arr.size % 2:
        return float(ordered[mid])
    return float((ordered[mid - 1] + ordered[mid]) / 2)


def mode(values: Sequence[float]) -> float:
    """
    Most frequent value.

    Ties go to the value that first reaches the winning frequency while
    scanning left to right, so [1, 2, 2, 1] gives 2 and [3, 3, 4, 4] gives 3.
    """
    values = list(values)
    if not values:
        return 0.0
    frequency: Dict[float, int] = {}
    best = values[0]
    best_count = 0
    for value in values:
        count = frequency.get(value, 0) + 1
        frequency[value] = count
        if count > best_count:
            best_count = count
            best = value
    return float(best)


# ── Spread ──────────────────────────────────────────────────────────

def std_dev(values: Sequence[float], mean_value: Optional[float] = None) -> float:
    """
    Population standard deviation (divides by N).

    Pass a precomputed mean to skip recomputing it.
    """
    arr = _as_array(values)
    if arr.size == 0:
        return 0.0
    if mean_value is None:
        mean_value = mean(arr)
    return float(np.sqrt(np.mean((arr - mean_value) ** 2)))


def minimum(values: Sequence[float]) -> float:
    arr = _as_array(values)
    return float(arr.min()) if arr.size else 0.0


def maximum(values: Sequence[float]) -> float:
    arr = _as_array(values)
    return float(arr.max()) if arr.size else 0.0


# ── Correlation ─────────────────────────────────────────────────────

def correlation(xs: Sequence[float], ys: Sequence[float]) -> float:
    """
    Pearson product-moment correlation of two index-aligned sequences.

    Returns 0 when the lengths differ, when either sequence is empty, or when
    either has zero variance. A 0 here is a sentinel and does not imply the
    series are uncorrelated.
    """
    x = _as_array(xs)
    y = _as_array(ys)
    if x.size != y.size or x.size == 0:
        return 0.0
    # Constant input: float rounding in the mean must not leak a spurious r.
    if np.all(x == x[0]) or np.all(y == y[0]):
        return 0.0

    dx = x - mean(x)
    dy = y - mean(y)
    numerator = float(np.sum(dx * dy))
    denominator = float(np.sqrt(np.sum(dx * dx) * np.sum(dy * dy)))
    if denominator == 0 or np.isnan(denominator):
        return 0.0
    return numerator / denominator


def describe(values: Sequence[float]) -> Dict[str, Any]:
    """Mean, median, mode, std_dev, min and max of one sequence."""
    values = list(values)
    avg = mean(values)
    return {
        "mean": avg,
        "median": median(values),
        "mode": mode(values),
        "std_dev": std_dev(values, avg),
        "min": minimum(values),
        "max": maximum(values),
    }
