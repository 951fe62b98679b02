"""Tests for statistics and formatting helpers."""

import math
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from repoinsight.stats import (
    clamp,
    format_hours,
    format_percentage,
    format_signed,
    hours_between,
    pearson,
    percentage,
    relative_variance,
    safe_divide,
    sorted_desc,
    summarize,
    value_at_rank,
)


def test_summarize_one_to_ten_hours():
    """Verify mean, median and p90 use index-based ranks on the ascending sample."""
    result = summarize([float(value) for value in range(10, 0, -1)])

    assert result["average"] == 5.5
    assert result["median"] == 6.0
    assert result["p90"] == 10.0
    assert result["count"] == 10


def test_summarize_empty_sample_returns_zeros():
    """Verify an empty sample summarizes to zeros rather than NaN."""
    result = summarize([])

    assert result == {"average": 0.0, "median": 0.0, "p90": 0.0, "count": 0.0}


def test_summarize_ignores_non_finite_values():
    """Verify NaN and infinite observations are dropped before summarizing."""
    result = summarize([2.0, math.nan, 4.0, math.inf])

    assert result["average"] == 3.0
    assert result["count"] == 2


def test_value_at_rank_caps_index_at_last_element():
    """Verify the rank index never runs past the end of the sample."""
    assert value_at_rank([1.0, 2.0, 3.0], 1.0) == 3.0
    assert value_at_rank([], 0.5) == 0.0


def test_safe_divide_zero_denominator_returns_default():
    """Verify division by zero yields the default instead of raising."""
    assert safe_divide(5, 0) == 0.0
    assert safe_divide(5, 0, default=-1.0) == -1.0
    assert safe_divide(5, math.nan) == 0.0
    assert safe_divide(6, 3) == 2.0


def test_percentage_of_empty_whole_is_zero():
    """Verify percentages of an empty whole are zero."""
    assert percentage(18, 20) == 90.0
    assert percentage(3, 0) == 0.0


def test_clamp_replaces_non_finite_value():
    """Verify clamping treats NaN as zero before bounding."""
    assert clamp(1.7, -1.0, 1.0) == 1.0
    assert clamp(math.nan, -1.0, 1.0) == 0.0


def test_hours_between_missing_timestamp_returns_none():
    """Verify elapsed hours are None when either timestamp is missing."""
    start = datetime(2026, 1, 1, 10, tzinfo=timezone.utc)
    end = datetime(2026, 1, 1, 13, 30, tzinfo=timezone.utc)

    assert hours_between(start, end) == 3.5
    assert hours_between(None, end) is None
    assert hours_between(start, None) is None


def test_pearson_perfect_positive_correlation():
    """Verify a perfectly linear relation yields a coefficient of one."""
    xs = [1.0, 2.0, 3.0, 4.0]
    ys = [10.0, 20.0, 30.0, 40.0]

    assert pearson(xs, ys) == pytest.approx(1.0)


def test_pearson_without_variance_returns_zero():
    """Verify a constant sample yields zero instead of dividing by zero."""
    assert pearson([5.0, 5.0, 5.0], [1.0, 2.0, 3.0]) == 0.0
    assert pearson([1.0], [2.0]) == 0.0


def test_relative_variance():
    """Verify relative variance is measured against the larger value."""
    assert relative_variance(100, 90) == pytest.approx(0.1)
    assert relative_variance(0, 0) == 0.0


def test_format_hours_switches_to_days_above_one_day():
    """Verify hour formatting uses hours below a day and days above."""
    assert format_hours(5.5) == "5.5h"
    assert format_hours(48) == "2.0d"
    assert format_hours(0) == "n/a"
    assert format_hours(None) == "n/a"


def test_format_percentage_and_signed():
    """Verify percentage and signed delta formatting."""
    assert format_percentage(90) == "90.0%"
    assert format_percentage(math.nan) == "0.0%"
    assert format_signed(2.345) == "+2.3"
    assert format_signed(-1.0) == "-1.0"
    assert format_signed(0.01) == "0"


def test_sorted_desc_keeps_insertion_order_for_ties():
    """Verify descending sort is stable for equal keys."""
    items = [("a", 1), ("b", 3), ("c", 1), ("d", 3)]

    result = sorted_desc(items, key=lambda item: item[1])

    assert [name for name, _ in result] == ["b", "d", "a", "c"]
