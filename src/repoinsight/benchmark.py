"""Percentile benchmarking of headline metrics against a reference table.

Each metric is compared to five reference points (p10..p90) in its declared
direction and mapped to one of six percentile buckets. The overall score is
the fixed-weight average of the six bucket percentiles.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Tuple

from .models import AnalyticsReport, BenchmarkComparison, Direction, PercentileScore
from .stats import HOURS_PER_DAY, finite

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BenchmarkSpec:
    """Reference distribution for one metric."""

    key: str
    label: str
    p10: float
    p25: float
    p50: float
    p75: float
    p90: float
    direction: Direction
    weight: float
    unit: str

    @property
    def thresholds(self) -> Tuple[float, float, float, float, float]:
        """Reference points from best to worst bucket boundary."""
        return (self.p90, self.p75, self.p50, self.p25, self.p10)


BENCHMARK_TABLE: Tuple[BenchmarkSpec, ...] = (
    BenchmarkSpec("pr_merge_rate", "PR Merge Rate", 20, 35, 45, 60, 75, Direction.HIGHER_IS_BETTER, 0.20, "percent"),
    BenchmarkSpec("time_to_first_review", "Time to First Review", 48, 24, 12, 6, 2, Direction.LOWER_IS_BETTER, 0.20, "hours"),
    BenchmarkSpec("review_coverage", "Review Coverage", 40, 55, 72, 85, 95, Direction.HIGHER_IS_BETTER, 0.15, "percent"),
    BenchmarkSpec("bus_factor", "Bus Factor", 1, 2, 3, 5, 8, Direction.HIGHER_IS_BETTER, 0.15, "count"),
    BenchmarkSpec("issue_resolution", "Issue Resolution Time", 60, 30, 14, 7, 3, Direction.LOWER_IS_BETTER, 0.15, "days"),
    BenchmarkSpec("deployment_frequency", "Deployment Frequency", 0.5, 1, 2, 4, 8, Direction.HIGHER_IS_BETTER, 0.15, "per_month"),
)

PERCENTILE_BUCKETS = (95, 80, 60, 35, 15)
LOWEST_PERCENTILE = 5
RATING_CUTOFFS = ((90, "excellent"), (75, "good"), (50, "average"), (25, "below_average"))

HEAVY_REVIEWER_LOAD = 15


def format_metric_value(value: float, unit: str) -> str:
    value = finite(value)
    if unit == "percent":
        return f"{value:.1f}%"
    if unit == "hours":
        return f"{value:.1f}h" if value < HOURS_PER_DAY else f"{value / HOURS_PER_DAY:.1f}d"
    if unit == "days":
        return f"{value:.1f}d"
    if unit == "per_month":
        return f"{value:.1f}/month"
    return f"{value:.0f}"


def percentile_for(value: float, spec: BenchmarkSpec) -> int:
    """Map a raw value to its percentile bucket, honouring the metric direction."""
    value = finite(value)
    for threshold, percentile in zip(spec.thresholds, PERCENTILE_BUCKETS):
        if spec.direction is Direction.HIGHER_IS_BETTER and value >= threshold:
            return percentile
        if spec.direction is Direction.LOWER_IS_BETTER and value <= threshold:
            return percentile
    return LOWEST_PERCENTILE


def rating_for(percentile: int) -> str:
    for cutoff, rating in RATING_CUTOFFS:
        if percentile >= cutoff:
            return rating
    return "poor"


def score_metric(value: float, spec: BenchmarkSpec) -> PercentileScore:
    value = finite(value)
    percentile = percentile_for(value, spec)
    rating = rating_for(percentile)
    return PercentileScore(
        key=spec.key,
        label=spec.label,
        value=value,
        median=spec.p50,
        percentile=percentile,
        rating=rating,
        description=f"{spec.label}: {format_metric_value(value, spec.unit)} ({rating}, {percentile}th percentile)",
    )


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class BenchmarkingEngine:
    """Score a report against ``BENCHMARK_TABLE``."""

    def __init__(self, table: Tuple[BenchmarkSpec, ...] = BENCHMARK_TABLE):
        self.table = table

    @staticmethod
    def metric_values(report: AnalyticsReport) -> Dict[str, float]:
        """Extract the raw benchmark inputs from a report.

        Failed blocks contribute their zeroed defaults, which read as
        "insufficient data" downstream.
        """
        return {
            "pr_merge_rate": report.activity.pr_merge_rate.merge_rate,
            "time_to_first_review": report.health.time_to_first_review.average_hours,
            "review_coverage": report.health.pr_review_coverage.coverage_percentage,
            "bus_factor": float(report.contributors.bus_factor),
            "issue_resolution": report.activity.issue_resolution.average_hours / HOURS_PER_DAY,
            "deployment_frequency": report.health.deployment_frequency.per_month,
        }

    def compare(self, report: AnalyticsReport) -> BenchmarkComparison:
        values = self.metric_values(report)
        metrics = {spec.key: score_metric(values[spec.key], spec) for spec in self.table}
        weighted = math.fsum(metrics[spec.key].percentile * spec.weight for spec in self.table)

        comparison = BenchmarkComparison(
            repository=report.repository,
            metrics=metrics,
            overall_score=max(0, min(100, round_half_up(weighted))),
            strengths=self._strengths(metrics),
            weaknesses=[score.description for score in metrics.values() if score.percentile < 50],
            recommendations=self._recommendations(metrics, report),
        )

        logger.info(
            "Benchmark comparison complete",
            extra={"repository": report.repository, "overall_score": comparison.overall_score},
        )
        return comparison

    @staticmethod
    def _strengths(metrics: Dict[str, PercentileScore]) -> List[str]:
        strengths = [score.description for score in metrics.values() if score.has_data and score.percentile >= 75]
        return strengths or ["No metrics performing above 75th percentile"]

    def _recommendations(self, metrics: Dict[str, PercentileScore], report: AnalyticsReport) -> List[str]:
        """Turn benchmark gaps into concrete suggestions.

        Business logic:
        - Merge rate, review time, issue resolution and deployment cadence
          below the median each get a target at the median.
        - Review coverage below p75 gets a target at p75.
        - A bus factor under 3 is flagged as critical.
        - Both merge rate and review time excellent earns a sharing note.
        - With nothing to improve, fall back to a maintenance note.
        """
        specs = {spec.key: spec for spec in self.table}
        recommendations: List[str] = []

        merge = metrics["pr_merge_rate"]
        if merge.percentile < 50:
            gap = round_half_up(merge.median - merge.value)
            recommendations.append(
                f"Improve PR merge rate by {gap}% to reach the median. "
                f"Current: {merge.value:.1f}%, Target: {merge.median:g}%"
            )
            stalled = report.review_velocity.stalled_total
            if stalled > 0:
                recommendations.append(f"Address {stalled} stalled PRs to improve merge rate")

        review = metrics["time_to_first_review"]
        if review.percentile < 50:
            recommendations.append(
                f"Reduce time to first review from {review.value:.1f}h to {review.median:g}h (median)"
            )
            load = report.review_velocity.reviewer_load
            if load and load[0].review_count > HEAVY_REVIEWER_LOAD:
                recommendations.append(
                    f"Distribute review load: @{load[0].reviewer} handles {load[0].review_count} reviews"
                )

        coverage = metrics["review_coverage"]
        if coverage.percentile < 75:
            gap = round_half_up(specs["review_coverage"].p75 - coverage.value)
            if gap > 0:
                recommendations.append(
                    f"Increase review coverage by {gap}% to reach the 75th percentile "
                    f"({specs['review_coverage'].p75:g}%)"
                )

        bus = metrics["bus_factor"]
        if bus.rating == "poor" or bus.value < 3:
            recommendations.append(
                f"Critical: bus factor is {bus.value:.0f}. Aim for at least 3-5 core contributors"
            )
            if report.contributors.contribution_distribution:
                top = report.contributors.contribution_distribution[0]
                recommendations.append(f"{top.contributor} contributes {top.percentage:.0f}% of work")

        issues = metrics["issue_resolution"]
        if issues.percentile < 50:
            recommendations.append(
                f"Reduce issue resolution time from {issues.value:.1f} days to {issues.median:g} days"
            )
            if report.labels.most_common_labels:
                recommendations.append(
                    f"Use labels to triage: {', '.join(report.labels.most_common_labels[:3])} are most common"
                )

        deployments = metrics["deployment_frequency"]
        if deployments.percentile < 50:
            recommendations.append(f"Increase deployment frequency to at least {deployments.median:.1f}/month")
            recommendations.append("Consider automated releases for merged PRs or a weekly release cadence")

        if merge.rating == "excellent" and review.rating == "excellent":
            recommendations.append("Excellent review culture. Consider sharing your practices with the community")

        return recommendations or ["All metrics are above median. Focus on maintaining current quality standards"]
