"""Cross-block consistency checks for an assembled report.

Validation findings are data, not exceptions: ``ReportValidator.validate``
never raises on report content and never mutates the report. ``errors`` hold
numeric impossibilities, ``warnings`` plausible but suspicious values.
"""

from __future__ import annotations

import logging
import math
from typing import List, Optional, Tuple

from .advanced import classify_trend
from .config import DEFAULT_CONFIG, AnalyticsConfig
from .models import (
    AnalyticsReport,
    Direction,
    ValidationCounters,
    ValidationFinding,
    ValidationResult,
)
from .stats import relative_variance

logger = logging.getLogger(__name__)

TREND_RULES = {
    "pr_merge_rate": ("pr_merge_rate", Direction.HIGHER_IS_BETTER),
    "time_to_review": ("time_to_review_hours", Direction.LOWER_IS_BETTER),
    "active_contributors": ("active_contributors", Direction.HIGHER_IS_BETTER),
    "issue_resolution": ("issue_resolution_hours", Direction.LOWER_IS_BETTER),
}


class _Findings:
    """Accumulates findings and counters for one validation run."""

    def __init__(self) -> None:
        self.errors: List[ValidationFinding] = []
        self.warnings: List[ValidationFinding] = []
        self.counters = ValidationCounters()

    def passed(self) -> None:
        self.counters.total += 1
        self.counters.passed += 1

    def error(self, field: str, message: str, expected: object = "", actual: object = "") -> None:
        self.counters.total += 1
        self.counters.failed += 1
        self.errors.append(
            ValidationFinding(field=field, message=message, expected=str(expected), actual=str(actual), severity="high")
        )

    def warning(self, field: str, message: str, severity: str = "medium", expected: object = "", actual: object = "") -> None:
        self.counters.total += 1
        self.counters.warned += 1
        self.warnings.append(
            ValidationFinding(field=field, message=message, expected=str(expected), actual=str(actual), severity=severity)
        )

    def result(self) -> ValidationResult:
        return ValidationResult(
            valid=not self.errors,
            errors=self.errors,
            warnings=self.warnings,
            counters=self.counters,
        )


def _is_finite(value: Optional[float]) -> bool:
    return isinstance(value, (int, float)) and math.isfinite(value)


class ReportValidator:
    """Validate numeric consistency across independently computed blocks."""

    def __init__(self, config: AnalyticsConfig = DEFAULT_CONFIG):
        self.config = config

    def validate(self, report: AnalyticsReport) -> ValidationResult:
        findings = _Findings()

        self._check_pr_totals(report, findings)
        self._check_bottlenecks(report, findings)
        self._check_bus_factor(report, findings)
        self._check_issue_lifecycle(report, findings)
        self._check_percentages(report, findings)
        self._check_correlations(report, findings)
        self._check_trends(report, findings)
        self._check_periods(report, findings)
        self._check_ratios(report, findings)
        self._check_size_buckets(report, findings)
        self._check_completeness(report, findings)

        result = findings.result()
        logger.debug(
            "Validated report",
            extra={
                "repository": report.repository,
                "valid": result.valid,
                "total_checks": result.counters.total,
                "failed": result.counters.failed,
                "warned": result.counters.warned,
            },
        )
        return result

    def _check_pr_totals(self, report: AnalyticsReport, findings: _Findings) -> None:
        field = "activity.total_prs vs health.pr_review_coverage.total"
        if not (report.activity.success and report.health.success):
            findings.warning(field, "Skipped PR total cross-check because a source block failed", severity="low")
            return

        activity_total = report.activity.total_prs
        health_total = report.health.pr_review_coverage.total
        variance = relative_variance(activity_total, health_total)
        threshold = self.config.validator.variance_threshold

        if variance > threshold:
            findings.error(
                field,
                f"PR totals differ by {variance:.1%}",
                expected=f"variance <= {threshold:.0%}",
                actual=f"{activity_total} vs {health_total}",
            )
        elif variance > 0:
            findings.warning(
                field,
                f"PR totals differ slightly ({activity_total} vs {health_total})",
                severity="low",
                expected=activity_total,
                actual=health_total,
            )
        else:
            findings.passed()

    def _check_bottlenecks(self, report: AnalyticsReport, findings: _Findings) -> None:
        bottlenecks = report.review_velocity.stalled_total
        total = report.activity.total_prs
        if report.activity.success and bottlenecks > total:
            findings.error(
                "review_velocity.bottlenecks",
                "More bottleneck PRs than PRs in total",
                expected=f"<= {total}",
                actual=bottlenecks,
            )
        else:
            findings.passed()

    def _check_bus_factor(self, report: AnalyticsReport, findings: _Findings) -> None:
        bus_factor = report.contributors.bus_factor
        count = report.contributors.total_contributors
        if count == 1 and bus_factor == 2:
            # A lone contributor holds 100% of the top-2 share.
            findings.warning(
                "contributors.bus_factor",
                "Bus factor rule reports 2 for a single contributor",
                severity="medium",
                expected="<= 1",
                actual=bus_factor,
            )
        elif bus_factor > count:
            findings.error(
                "contributors.bus_factor",
                "Bus factor exceeds total contributor count",
                expected=f"<= {count}",
                actual=bus_factor,
            )
        elif bus_factor < 1 and count > 0:
            findings.warning(
                "contributors.bus_factor",
                "Bus factor is less than 1 despite active contributors",
                severity="high",
                actual=bus_factor,
            )
        else:
            findings.passed()

    def _check_issue_lifecycle(self, report: AnalyticsReport, findings: _Findings) -> None:
        lifecycle_hours = report.labels.issue_lifecycle.average_open_days * 24.0
        resolution_hours = report.activity.issue_resolution.average_hours
        threshold = self.config.validator.lifecycle_variance_threshold

        if lifecycle_hours > 0 and resolution_hours > 0:
            variance = relative_variance(lifecycle_hours, resolution_hours)
            if variance > threshold:
                findings.warning(
                    "labels.issue_lifecycle vs activity.issue_resolution",
                    f"Issue lifecycle and resolution time differ by {variance:.0%}",
                    severity="low",
                    expected=f"{resolution_hours:.1f}h",
                    actual=f"{lifecycle_hours:.1f}h",
                )
                return
        findings.passed()

    def _percentages(self, report: AnalyticsReport) -> List[Tuple[str, float]]:
        values = [
            ("activity.pr_merge_rate.merge_rate", report.activity.pr_merge_rate.merge_rate),
            ("health.pr_review_coverage.coverage_percentage", report.health.pr_review_coverage.coverage_percentage),
            ("trends.pr_merge_rate.current", report.trends.trends.pr_merge_rate.current),
            ("trends.pr_merge_rate.previous", report.trends.trends.pr_merge_rate.previous),
            ("projections.release_probability", report.projections.release_probability),
        ]
        values.extend(
            (f"labels.label_distribution[{share.label}]", share.percentage)
            for share in report.labels.label_distribution
        )
        values.extend(
            (f"contributors.contribution_distribution[{share.contributor}]", share.percentage)
            for share in report.contributors.contribution_distribution
        )
        return values

    def _check_percentages(self, report: AnalyticsReport, findings: _Findings) -> None:
        for field, value in self._percentages(report):
            if not _is_finite(value):
                findings.error(field, "Percentage is not a finite number", expected="0-100", actual=value)
            elif value < 0 or value > 100:
                findings.error(field, "Percentage out of valid range", expected="0-100", actual=value)
            else:
                findings.passed()

    def _check_correlations(self, report: AnalyticsReport, findings: _Findings) -> None:
        field = "correlations.pr_size_vs_time_to_merge.correlation"
        value = report.correlations.pr_size_vs_time_to_merge.correlation
        if not _is_finite(value):
            findings.error(field, "Correlation is not a finite number", expected="-1 to 1", actual=value)
        elif value < -1 or value > 1:
            findings.error(field, "Correlation coefficient out of range", expected="-1 to 1", actual=value)
        else:
            findings.passed()

    def _check_trends(self, report: AnalyticsReport, findings: _Findings) -> None:
        epsilon = self.config.validator.delta_epsilon
        deadbands = self.config.deadbands

        for name, metric in report.trends.trends.items():
            field = f"trends.{name}"
            numbers = (metric.current, metric.previous, metric.delta)
            if not all(_is_finite(number) for number in numbers):
                findings.error(field, "Trend values must be finite numbers", actual=numbers)
                continue

            expected_delta = metric.current - metric.previous
            if abs(metric.delta - expected_delta) > epsilon:
                findings.error(
                    f"{field}.delta",
                    "Trend delta does not equal current - previous",
                    expected=f"{expected_delta:.2f}",
                    actual=f"{metric.delta:.2f}",
                )
            else:
                findings.passed()

            deadband_name, direction = TREND_RULES[name]
            expected_trend = classify_trend(metric.delta, getattr(deadbands, deadband_name), direction)
            if metric.trend != expected_trend:
                findings.warning(
                    f"{field}.trend",
                    "Trend label does not match the delta direction",
                    severity="medium",
                    expected=expected_trend.value,
                    actual=getattr(metric.trend, "value", metric.trend),
                )
            else:
                findings.passed()

    def _check_periods(self, report: AnalyticsReport, findings: _Findings) -> None:
        start, end = report.activity.period_start, report.activity.period_end
        if start is not None and end is not None and start >= end:
            findings.error(
                "activity.period_start",
                "Activity period starts after it ends",
                expected=f"< {end.isoformat()}",
                actual=start.isoformat(),
            )
        else:
            findings.passed()

        current, previous = report.trends.current_period, report.trends.previous_period
        if current is not None and previous is not None and previous.end > current.start:
            findings.error(
                "trends.previous_period",
                "Previous trend window overlaps the current window",
                expected=f"<= {current.start.isoformat()}",
                actual=previous.end.isoformat(),
            )
        else:
            findings.passed()

    def _check_ratios(self, report: AnalyticsReport, findings: _Findings) -> None:
        ratio = report.labels.issue_vs_pr_ratio
        if not _is_finite(ratio) or ratio < 0:
            findings.error("labels.issue_vs_pr_ratio", "Issue/PR ratio must be a non-negative number", expected=">= 0", actual=ratio)
        else:
            findings.passed()

    def _check_size_buckets(self, report: AnalyticsReport, findings: _Findings) -> None:
        correlation = report.correlations.pr_size_vs_time_to_merge
        buckets = [
            (name, bucket)
            for name, bucket in (("small", correlation.small), ("medium", correlation.medium), ("large", correlation.large))
            if bucket.count > 0
        ]
        for (smaller_name, smaller), (larger_name, larger) in zip(buckets, buckets[1:]):
            if larger.average_days < smaller.average_days:
                findings.warning(
                    "correlations.pr_size_vs_time_to_merge",
                    f"{larger_name.capitalize()} PRs merge faster than {smaller_name} PRs",
                    severity="low",
                    expected=f">= {smaller.average_days:.2f}d",
                    actual=f"{larger.average_days:.2f}d",
                )
                return
        findings.passed()

    def _check_completeness(self, report: AnalyticsReport, findings: _Findings) -> None:
        completeness = report.data_completeness
        if completeness is None:
            return
        if completeness.is_complete:
            findings.passed()
            return
        findings.warning(
            "records",
            f"Partial record set: no {', '.join(completeness.missing_kinds)} records",
            severity="medium",
            expected="pull_requests, issues, commits, releases",
            actual=", ".join(completeness.missing_kinds),
        )


def summarize_validation(result: ValidationResult) -> str:
    """Render a validation result as a markdown summary."""
    counters = result.counters
    lines = [
        "# Analytics Report Validation Summary",
        "",
        f"**Status:** {'PASSED' if result.valid else 'FAILED'}",
        "",
        f"**Checks:** {counters.passed}/{counters.total} passed",
        f"**Errors:** {counters.failed}",
        f"**Warnings:** {counters.warned}",
        "",
    ]

    if result.errors:
        lines.extend(["## Errors", ""])
        for index, error in enumerate(result.errors, start=1):
            lines.append(f"{index}. **{error.field}**")
            lines.append(f"   - {error.message}")
            if error.expected or error.actual:
                lines.append(f"   - Expected: {error.expected}, Got: {error.actual}")
            lines.append("")

    if result.warnings:
        lines.extend(["## Warnings", ""])
        for index, warning in enumerate(result.warnings, start=1):
            lines.append(f"{index}. **{warning.field}** ({warning.severity})")
            lines.append(f"   - {warning.message}")
            lines.append("")

    if result.valid:
        lines.extend(["---", "", "All validation checks passed. The report data is numerically consistent."])

    return "\n".join(lines).rstrip() + "\n"
