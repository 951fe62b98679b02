"""Markdown renderers for an assembled report.

Every renderer is a pure ``report -> str`` function. A section whose
analyzer failed is rendered as unavailable with its recorded errors, and
zero-valued sentinels print as "Insufficient data" instead of a number.
"""

from __future__ import annotations

from typing import Callable, List, Optional

from .models import AnalyticsReport, MetricBlock, ValidationResult
from .stats import format_days, format_hours, format_percentage, format_signed
from .validator import summarize_validation

INSUFFICIENT_DATA = "Insufficient data"
PRIORITY_LABELS = {1: "Critical", 2: "Important", 3: "Nice-to-have"}


def _section(title: str, block: MetricBlock, body: Callable[[], List[str]]) -> str:
    lines = [f"## {title}", ""]
    if not block.success:
        lines.append("_Section unavailable: the analyzer failed._")
        lines.extend(f"- {error}" for error in block.errors)
    else:
        lines.extend(body())
    lines.extend(["", "---", ""])
    return "\n".join(lines)


def _or_insufficient(value: float, formatted: str) -> str:
    return formatted if value > 0 else INSUFFICIENT_DATA


def render_header(report: AnalyticsReport) -> str:
    lines = [
        f"# Repository Analytics: {report.repository}",
        "",
        f"**Generated:** {report.generated_at.isoformat()}",
    ]
    if report.benchmark is not None:
        lines.append(f"**Overall Score:** {report.benchmark.overall_score}/100")
    failed = [name for name, block in report.blocks() if not block.success]
    if failed:
        lines.append(f"**Unavailable sections:** {', '.join(failed)}")
    completeness = report.data_completeness
    if completeness is not None and not completeness.is_complete:
        lines.append(f"**Partial data:** no {', '.join(completeness.missing_kinds)} records in the input")
    lines.extend(["", "---", ""])
    return "\n".join(lines)


def render_activity(report: AnalyticsReport) -> str:
    activity = report.activity

    def body() -> List[str]:
        rate = activity.pr_merge_rate
        lines = []
        if activity.period_start is not None and activity.period_end is not None:
            lines.append(
                f"**Analysis Period:** {activity.period_start.date().isoformat()} to {activity.period_end.date().isoformat()}"
            )
            lines.append("")
        lines.extend(
            [
                "### Pull Request Metrics",
                "",
                f"- **Merge Rate:** {format_percentage(rate.merge_rate)} ({rate.status})",
                f"- **Merged PRs:** {rate.merged}",
                f"- **Closed (not merged):** {rate.closed}",
                f"- **Total PRs:** {activity.total_prs}",
                f"- **Active Contributors (window):** {activity.active_contributors}",
                "",
                "### Issue Resolution",
                "",
            ]
        )
        resolution = activity.issue_resolution
        if resolution.average_hours > 0:
            lines.append(f"- **Average Resolution Time:** {format_hours(resolution.average_hours)}")
            lines.append(f"- **Median Resolution Time:** {format_hours(resolution.median_hours)}")
        else:
            lines.append(f"- **Resolution Time:** {INSUFFICIENT_DATA}")
        if activity.busiest_days:
            lines.extend(["", "### Most Active Days", ""])
            lines.extend(f"{index}. **{day.day}:** {day.count} commits" for index, day in enumerate(activity.busiest_days, 1))
        return lines

    return _section("Activity", activity, body)


def render_contributors(report: AnalyticsReport) -> str:
    contributors = report.contributors

    def body() -> List[str]:
        lines = [
            f"- **Total Contributors:** {contributors.total_contributors}",
            f"- **Bus Factor:** {contributors.bus_factor}",
            f"- **New / Returning (window):** {contributors.new_vs_returning.new} / {contributors.new_vs_returning.returning}",
            "",
        ]
        if not contributors.top_contributors:
            lines.append(f"_{INSUFFICIENT_DATA}_")
            return lines
        shares = {share.contributor: share.percentage for share in contributors.contribution_distribution}
        lines.extend(
            [
                "| Contributor | Commits | PRs | Reviews | Total | Share |",
                "|-------------|---------|-----|---------|-------|-------|",
            ]
        )
        for stat in contributors.top_contributors:
            lines.append(
                f"| {stat.login} | {stat.commits} | {stat.prs} | {stat.reviews} | {stat.total} | "
                f"{format_percentage(shares.get(stat.login, 0.0))} |"
            )
        return lines

    return _section("Contributors", contributors, body)


def render_labels(report: AnalyticsReport) -> str:
    labels = report.labels

    def body() -> List[str]:
        lifecycle = labels.issue_lifecycle
        lines = [
            f"- **Issue/PR Ratio:** {labels.issue_vs_pr_ratio:.2f}",
            f"- **Average Issue Lifetime:** {format_days(lifecycle.average_open_days) if lifecycle.average_open_days > 0 else INSUFFICIENT_DATA}",
            f"- **Median Issue Lifetime:** {format_days(lifecycle.median_open_days) if lifecycle.median_open_days > 0 else INSUFFICIENT_DATA}",
            "",
        ]
        if labels.label_distribution:
            lines.extend(["| Label | Count | Share |", "|-------|-------|-------|"])
            lines.extend(
                f"| {share.label} | {share.count} | {format_percentage(share.percentage)} |"
                for share in labels.label_distribution
            )
        else:
            lines.append("_No labels found._")
        return lines

    return _section("Labels", labels, body)


def render_health(report: AnalyticsReport) -> str:
    health = report.health

    def body() -> List[str]:
        coverage = health.pr_review_coverage
        size = health.average_pr_size
        deployments = health.deployment_frequency
        return [
            f"- **Review Coverage:** {format_percentage(coverage.coverage_percentage)} ({coverage.reviewed}/{coverage.total} PRs)",
            f"- **Average PR Size:** {_or_insufficient(size.total, f'+{size.additions} / -{size.deletions} ({size.total} lines)')}",
            f"- **Time to First Review (avg):** {_or_insufficient(health.time_to_first_review.average_hours, format_hours(health.time_to_first_review.average_hours))}",
            f"- **Time to First Review (median):** {_or_insufficient(health.time_to_first_review.median_hours, format_hours(health.time_to_first_review.median_hours))}",
            f"- **Releases:** {deployments.releases} ({deployments.per_month:.2f} per month)",
        ]

    return _section("Health", health, body)


def render_review_velocity(report: AnalyticsReport) -> str:
    velocity = report.review_velocity

    def body() -> List[str]:
        first = velocity.time_to_first_review
        approval = velocity.time_to_approval
        lines = [
            f"- **First Review:** avg {format_hours(first.average_hours)}, median {format_hours(first.median_hours)}, p90 {format_hours(first.p90_hours)}",
            f"- **Approval:** avg {format_days(approval.average_days)}, median {format_days(approval.median_days)}",
            f"- **Stalled PRs (> 3 days open):** {velocity.stalled_total}",
            "",
        ]
        if velocity.bottlenecks:
            lines.extend(["| PR | Author | Waiting | Status |", "|----|--------|---------|--------|"])
            lines.extend(
                f"| #{item.number} {item.title} | {item.author} | {item.waiting_days:.1f}d | {item.status} |"
                for item in velocity.bottlenecks
            )
            lines.append("")
        if velocity.reviewer_load:
            lines.extend(["| Reviewer | First Reviews | Avg Response |", "|----------|---------------|--------------|"])
            lines.extend(
                f"| {load.reviewer} | {load.review_count} | {format_hours(load.average_response_hours)} |"
                for load in velocity.reviewer_load
            )
        return lines

    return _section("Review Velocity", velocity, body)


def render_trends(report: AnalyticsReport) -> str:
    trends = report.trends

    def body() -> List[str]:
        lines = []
        if trends.current_period is not None and trends.previous_period is not None:
            lines.append(
                f"**Current:** {trends.current_period.start.date().isoformat()} to {trends.current_period.end.date().isoformat()} "
                f"vs **Previous:** {trends.previous_period.start.date().isoformat()} to {trends.previous_period.end.date().isoformat()}"
            )
            lines.append("")
        lines.extend(["| Metric | Previous | Current | Delta | Trend |", "|--------|----------|---------|-------|-------|"])
        for name, metric in trends.trends.items():
            lines.append(
                f"| {name.replace('_', ' ')} | {metric.previous:.1f} | {metric.current:.1f} | "
                f"{format_signed(metric.delta)} | {metric.trend.value} |"
            )
        if trends.velocity_trend:
            lines.extend(["", "**Weekly merged PRs:** " + ", ".join(str(week.merged_prs) for week in trends.velocity_trend)])
        return lines

    return _section("Trends", trends, body)


def render_correlations(report: AnalyticsReport) -> str:
    correlations = report.correlations

    def body() -> List[str]:
        sizes = correlations.pr_size_vs_time_to_merge
        if sizes.correlation == 0 and sizes.sample_size == 0:
            coefficient = INSUFFICIENT_DATA
        else:
            coefficient = f"{sizes.correlation:.2f} (n={sizes.sample_size})"
        lines = [
            f"- **PR Size vs Time to Merge:** {coefficient}",
            "",
            "| Size | PRs | Avg Lines | Avg Days to Merge |",
            "|------|-----|-----------|-------------------|",
        ]
        for name, bucket in (("Small", sizes.small), ("Medium", sizes.medium), ("Large", sizes.large)):
            lines.append(f"| {name} | {bucket.count} | {bucket.average_lines} | {bucket.average_days:.1f} |")
        if correlations.day_of_week_impact:
            lines.extend(["", "| Day | PRs Submitted | Avg Response |", "|-----|---------------|--------------|"])
            lines.extend(
                f"| {impact.day} | {impact.prs_submitted} | {format_hours(impact.average_response_hours)} |"
                for impact in correlations.day_of_week_impact
            )
        return lines

    return _section("Correlations", correlations, body)


def render_projections(report: AnalyticsReport) -> str:
    projections = report.projections

    def body() -> List[str]:
        prs = projections.prs_to_merge
        issues = projections.open_issues_at_end
        lines = [
            f"**Projection Period:** {projections.projection_period}",
            "",
            f"- **PRs to Merge:** {prs.low}-{prs.high} ({prs.confidence} confidence)",
            f"- **Open Issues at End:** {issues.low}-{issues.high} ({issues.confidence} confidence)",
            f"- **Release Probability:** {format_percentage(projections.release_probability)}",
        ]
        if projections.backlog_burndown:
            lines.extend(["", "| Week | Projected Open | Ideal Open |", "|------|----------------|------------|"])
            lines.extend(
                f"| {point.week} | {point.projected_open} | {point.ideal_open} |" for point in projections.backlog_burndown
            )
        return lines

    return _section("Projections", projections, body)


def _percentile_bar(percentile: int, width: int = 20) -> str:
    filled = round(percentile / 100 * width)
    return "#" * filled + "." * (width - filled)


def render_benchmark(report: AnalyticsReport) -> str:
    benchmark = report.benchmark
    if benchmark is None:
        return ""

    lines = [
        "## Benchmark Comparison",
        "",
        f"**Overall Score:** {benchmark.overall_score}/100",
        "",
        "| Metric | Value | Median | Percentile | Rating |",
        "|--------|-------|--------|------------|--------|",
    ]
    for score in benchmark.metrics.values():
        value = f"{score.value:.1f}" if score.has_data else INSUFFICIENT_DATA
        lines.append(f"| {score.label} | {value} | {score.median:g} | {score.percentile}th | {score.rating} |")

    lines.extend(["", "```"])
    lines.extend(f"{score.label:<24} {_percentile_bar(score.percentile)} {score.percentile:>3}" for score in benchmark.metrics.values())
    lines.extend(["```", "", "### Strengths", ""])
    lines.extend(f"- {strength}" for strength in benchmark.strengths)
    lines.extend(["", "### Areas for Improvement", ""])
    lines.extend(f"- {weakness}" for weakness in benchmark.weaknesses or ["None identified"])
    lines.extend(["", "### Recommendations", ""])
    lines.extend(f"{index}. {item}" for index, item in enumerate(benchmark.recommendations, 1))
    lines.extend(["", "---", ""])
    return "\n".join(lines)


def render_narrative(report: AnalyticsReport) -> str:
    narrative = report.narrative
    if narrative is None:
        return ""

    lines = ["## Executive Summary", "", narrative.summary, ""]

    if narrative.key_findings:
        lines.extend(["### Key Observations", ""])
        lines.extend(f"- {finding}" for finding in narrative.key_findings)
        lines.append("")

    if narrative.paradoxes:
        lines.extend(["### Detected Paradoxes", ""])
        for index, paradox in enumerate(narrative.paradoxes, 1):
            lines.extend([f"#### {index}. {paradox.title}", "", paradox.description, ""])
            lines.extend(f"- {metric}" for metric in paradox.metrics)
            lines.append("")

    if narrative.root_causes:
        lines.extend(["### Root Cause Analysis", ""])
        for index, cause in enumerate(narrative.root_causes, 1):
            lines.extend([f"#### {index}. {cause.issue} (confidence: {cause.confidence})", "", f"**Hypothesis:** {cause.hypothesis}", ""])
            lines.extend(f"- {evidence}" for evidence in cause.evidence)
            lines.append("")

    lines.extend(["### Recommended Action Plan", ""])
    if narrative.action_plan:
        for index, action in enumerate(narrative.action_plan, 1):
            lines.extend(
                [
                    f"#### {index}. {action.action} ({PRIORITY_LABELS.get(action.priority, action.priority)})",
                    "",
                    f"- **Rationale:** {action.rationale}",
                    f"- **Expected Impact:** {action.expected_impact}",
                    f"- **Timeframe:** {action.timeframe}",
                    "",
                ]
            )
    else:
        lines.extend(["No actions required.", ""])

    risk = narrative.risk_assessment
    lines.extend(["### Risk Assessment", "", f"**Risk Level:** {risk.level.capitalize()}", ""])
    if risk.factors:
        lines.extend(f"- {factor}" for factor in risk.factors)
    else:
        lines.append("No critical risks detected.")
    lines.extend(["", "### Projected Outcome", "", narrative.projected_outcome, "", "---", ""])
    return "\n".join(lines)


def render_validation(validation: Optional[ValidationResult]) -> str:
    if validation is None:
        return ""
    # Demote the summary's top-level heading under the report title.
    return "#" + summarize_validation(validation)


SECTION_RENDERERS = (
    render_header,
    render_narrative,
    render_benchmark,
    render_activity,
    render_contributors,
    render_labels,
    render_health,
    render_review_velocity,
    render_trends,
    render_correlations,
    render_projections,
)


def render_report(report: AnalyticsReport, validation: Optional[ValidationResult] = None) -> str:
    """Concatenate every section into one markdown document."""
    parts = [renderer(report) for renderer in SECTION_RENDERERS]
    parts.append(render_validation(validation))
    return "\n".join(part for part in parts if part).rstrip() + "\n"
