"""Tests for percentile benchmarking."""

import math
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from repoinsight.assembler import BLOCK_TYPES, assemble_report
from repoinsight.benchmark import (
    BENCHMARK_TABLE,
    BenchmarkingEngine,
    percentile_for,
    rating_for,
    round_half_up,
    score_metric,
)
from repoinsight.models import (
    ActivityMetrics,
    ContributorMetrics,
    DeploymentFrequency,
    DurationSummary,
    HealthMetrics,
    MergeRate,
    ReviewCoverage,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
SPECS = {spec.key: spec for spec in BENCHMARK_TABLE}


def _report(**overrides):
    blocks = {name: block_type(success=True, repository="acme/widgets") for name, block_type in BLOCK_TYPES.items()}
    blocks.update(overrides)
    return assemble_report("acme/widgets", NOW, blocks)


def _strong_report():
    return _report(
        activity=ActivityMetrics(
            success=True,
            pr_merge_rate=MergeRate(merged=90, closed=10, merge_rate=90.0),
            issue_resolution=DurationSummary(average_hours=24.0, median_hours=24.0),
        ),
        health=HealthMetrics(
            success=True,
            pr_review_coverage=ReviewCoverage(reviewed=96, total=100, coverage_percentage=96.0),
            time_to_first_review=DurationSummary(average_hours=1.0, median_hours=1.0),
            deployment_frequency=DeploymentFrequency(releases=10, per_month=10.0),
        ),
        contributors=ContributorMetrics(success=True, total_contributors=12, bus_factor=8),
    )


def test_benchmark_weights_sum_to_one():
    """Verify the six metric weights add up to one."""
    assert len(BENCHMARK_TABLE) == 6
    assert math.fsum(spec.weight for spec in BENCHMARK_TABLE) == pytest.approx(1.0)


def test_percentile_for_higher_is_better():
    """Verify higher-is-better values map onto the percentile buckets."""
    spec = SPECS["pr_merge_rate"]

    assert percentile_for(80, spec) == 95
    assert percentile_for(75, spec) == 95
    assert percentile_for(60, spec) == 80
    assert percentile_for(50, spec) == 60
    assert percentile_for(40, spec) == 35
    assert percentile_for(25, spec) == 15
    assert percentile_for(10, spec) == 5


def test_percentile_for_lower_is_better():
    """Verify lower-is-better values map onto the percentile buckets."""
    spec = SPECS["time_to_first_review"]

    assert percentile_for(1, spec) == 95
    assert percentile_for(6, spec) == 80
    assert percentile_for(7, spec) == 60
    assert percentile_for(30, spec) == 15
    assert percentile_for(100, spec) == 5


def test_rating_for_percentile():
    """Verify rating cutoffs."""
    assert rating_for(95) == "excellent"
    assert rating_for(80) == "good"
    assert rating_for(60) == "average"
    assert rating_for(35) == "below_average"
    assert rating_for(15) == "poor"
    assert rating_for(5) == "poor"


def test_score_metric_description():
    """Verify the score description names value, rating and percentile."""
    score = score_metric(90.0, SPECS["pr_merge_rate"])

    assert score.percentile == 95
    assert score.rating == "excellent"
    assert score.median == 45
    assert score.description == "PR Merge Rate: 90.0% (excellent, 95th percentile)"


def test_round_half_up():
    """Verify halves round away from zero for positive scores."""
    assert round_half_up(36.5) == 37
    assert round_half_up(36.49) == 36
    assert round_half_up(95.0) == 95


def test_compare_strong_report_scores_top_bucket():
    """Verify a report excelling everywhere scores 95 with no weaknesses."""
    comparison = BenchmarkingEngine().compare(_strong_report())

    assert comparison.repository == "acme/widgets"
    assert comparison.overall_score == 95
    assert comparison.weaknesses == []
    assert len(comparison.strengths) == 6
    assert comparison.metrics["issue_resolution"].value == 1.0
    assert len(comparison.recommendations) == 1
    assert comparison.recommendations[0].startswith("Excellent review culture")


def test_compare_overall_score_is_weighted_percentile_average():
    """Verify the overall score is the rounded weighted mean and stays within 0-100."""
    comparison = BenchmarkingEngine().compare(_report())

    expected = round_half_up(
        math.fsum(comparison.metrics[spec.key].percentile * spec.weight for spec in BENCHMARK_TABLE)
    )
    assert comparison.overall_score == expected
    assert 0 <= comparison.overall_score <= 100


def test_compare_empty_report_has_no_strengths():
    """Verify zero-valued sentinels never count as strengths."""
    comparison = BenchmarkingEngine().compare(_report())

    assert comparison.strengths == ["No metrics performing above 75th percentile"]
    assert all(not score.has_data for score in comparison.metrics.values())
    assert comparison.metrics["time_to_first_review"].percentile == 95


def test_compare_weak_merge_rate_recommends_target():
    """Verify a below-median merge rate yields a target recommendation."""
    report = _strong_report()
    report.activity.pr_merge_rate = MergeRate(merged=30, closed=70, merge_rate=30.0)

    comparison = BenchmarkingEngine().compare(report)

    assert comparison.metrics["pr_merge_rate"].percentile == 15
    assert comparison.weaknesses == ["PR Merge Rate: 30.0% (poor, 15th percentile)"]
    assert comparison.recommendations[0] == (
        "Improve PR merge rate by 15% to reach the median. Current: 30.0%, Target: 45%"
    )


def test_compare_low_bus_factor_is_critical():
    """Verify a bus factor below three is called out."""
    report = _strong_report()
    report.contributors.bus_factor = 2

    comparison = BenchmarkingEngine().compare(report)

    assert any(item.startswith("Critical: bus factor is 2") for item in comparison.recommendations)
