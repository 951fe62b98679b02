"""Statistics and formatting helpers for repository analytics.

This module provides utilities for:
- Guarded division and finite-number clamping so no metric ever carries NaN
  or Infinity into a later comparison.
- Index-based mean/median/p90 summaries over ascending samples.
- The Pearson correlation coefficient.
- Formatting hours, days and percentages for the markdown renderers.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Dict, List, Optional, Sequence

SECONDS_PER_HOUR = 3600.0
HOURS_PER_DAY = 24.0


def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
    """Divide, returning ``default`` for a zero, NaN or infinite result.

    Args:
        numerator: Dividend.
        denominator: Divisor.
        default: Value returned when the division is undefined.

    Returns:
        The finite quotient or ``default``.
    """
    if not denominator or not math.isfinite(denominator):
        return default
    result = numerator / denominator
    return result if math.isfinite(result) else default


def finite(value: Optional[float], default: float = 0.0) -> float:
    """Return ``value`` when it is a finite number, otherwise ``default``."""
    if value is None or not math.isfinite(value):
        return default
    return value


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, finite(value)))


def percentage(part: float, whole: float) -> float:
    """Percentage of ``part`` in ``whole``, ``0.0`` when ``whole`` is empty."""
    return safe_divide(part * 100.0, whole)


def hours_between(start: Optional[datetime], end: Optional[datetime]) -> Optional[float]:
    """Elapsed hours from ``start`` to ``end``; ``None`` if either is missing."""
    if start is None or end is None:
        return None
    return (end - start).total_seconds() / SECONDS_PER_HOUR


def mean(samples: Sequence[float]) -> float:
    if not samples:
        return 0.0
    return finite(math.fsum(samples) / len(samples))


def value_at_rank(sorted_values: Sequence[float], fraction: float) -> float:
    """Return the element at index ``floor(fraction * n)`` of an ascending sample.

    The index is capped at the last element. Empty input returns ``0.0``.
    """
    if not sorted_values:
        return 0.0
    index = min(int(math.floor(fraction * len(sorted_values))), len(sorted_values) - 1)
    return finite(sorted_values[index])


def summarize(samples: Sequence[float]) -> Dict[str, float]:
    """Compute average, median and p90 for a sample.

    The median is element ``floor(n/2)`` and p90 element ``floor(0.9 n)`` of
    the ascending sample, so ``[1..10]`` yields average 5.5, median 6 and
    p90 10. Non-finite samples are ignored.

    Args:
        samples: Raw observations in any order.

    Returns:
        Dictionary with keys ``average``, ``median``, ``p90`` and ``count``.
    """
    clean_samples = sorted(sample for sample in samples if sample is not None and math.isfinite(sample))

    return {
        "average": mean(clean_samples),
        "median": value_at_rank(clean_samples, 0.5),
        "p90": value_at_rank(clean_samples, 0.9),
        "count": float(len(clean_samples)),
    }


def pearson(xs: Sequence[float], ys: Sequence[float]) -> float:
    """Pearson correlation coefficient of two equally long samples.

    Returns ``0.0`` when fewer than two pairs exist or either sample has no
    variance; the result is clamped to ``[-1, 1]`` against rounding drift.
    """
    n = min(len(xs), len(ys))
    if n < 2:
        return 0.0

    xs = xs[:n]
    ys = ys[:n]
    sum_x = math.fsum(xs)
    sum_y = math.fsum(ys)
    sum_xy = math.fsum(x * y for x, y in zip(xs, ys))
    sum_xx = math.fsum(x * x for x in xs)
    sum_yy = math.fsum(y * y for y in ys)

    numerator = n * sum_xy - sum_x * sum_y
    variance_product = (n * sum_xx - sum_x * sum_x) * (n * sum_yy - sum_y * sum_y)
    if variance_product <= 0:
        return 0.0

    return clamp(safe_divide(numerator, math.sqrt(variance_product)), -1.0, 1.0)


def relative_variance(first: float, second: float) -> float:
    """``|a - b| / max(a, b)``, ``0.0`` when both are zero."""
    return safe_divide(abs(first - second), max(abs(first), abs(second)))


def format_hours(hours: Optional[float]) -> str:
    """Format hours as ``"5.5h"`` below a day and ``"2.3d"`` above.

    Returns ``"n/a"`` for missing or non-positive values.
    """
    if hours is None or not math.isfinite(hours) or hours <= 0:
        return "n/a"
    if hours < HOURS_PER_DAY:
        return f"{hours:.1f}h"
    return f"{hours / HOURS_PER_DAY:.1f}d"


def format_days(days: Optional[float]) -> str:
    if days is None or not math.isfinite(days) or days <= 0:
        return "n/a"
    return f"{days:.1f}d"


def format_percentage(value: Optional[float]) -> str:
    return f"{finite(value):.1f}%"


def format_signed(value: float, precision: int = 1, suffix: str = "") -> str:
    value = finite(value)
    if round(value, precision) == 0:
        return f"0{suffix}"
    return f"{value:+.{precision}f}{suffix}"


def sorted_desc(items: List, key) -> List:
    """Sort descending by ``key`` while keeping insertion order for ties."""
    return sorted(items, key=lambda item: -key(item))
