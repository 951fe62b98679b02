"""Executive narrative: paradoxes, root causes, actions, findings and risk.

Each stage is an ordered tuple of ``Rule(name, predicate, build)`` entries
evaluated over a ``NarrativeContext``. Matches are appended in rule order.
Predicates only read blocks whose analyzer succeeded and skip values that
are zero "insufficient data" sentinels.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List, NamedTuple, Optional

from .config import NarrativeThresholds
from .models import (
    ActionItem,
    AnalyticsReport,
    BenchmarkComparison,
    ExecutiveNarrative,
    Paradox,
    RiskAssessment,
    RootCause,
    Trend,
)
from .stats import HOURS_PER_DAY, format_signed, percentage, safe_divide

logger = logging.getLogger(__name__)

RISK_ORDER = ("low", "medium", "high", "critical")

REVIEW_CULTURE = "The Review Culture Paradox"
APPROVAL_DELAY = "The Approval Delay Paradox"
CONTRIBUTION_CONCENTRATION = "The Contribution Concentration Paradox"
DECLINING_VELOCITY = "The Declining Velocity Paradox"

REVIEWER_IMBALANCE = "Reviewer load imbalance"


@dataclass
class NarrativeContext:
    """Inputs visible to every rule, including earlier stage results."""

    report: AnalyticsReport
    benchmark: Optional[BenchmarkComparison]
    thresholds: NarrativeThresholds
    paradoxes: List[Paradox] = field(default_factory=list)
    root_causes: List[RootCause] = field(default_factory=list)

    def has_paradox(self, title: str) -> bool:
        return any(paradox.title == title for paradox in self.paradoxes)

    def has_root_cause(self, issue: str) -> bool:
        return any(cause.issue == issue for cause in self.root_causes)

    @property
    def declining_trends(self) -> List[str]:
        if not self.report.trends.success:
            return []
        return [name for name, metric in self.report.trends.trends.items() if metric.trend is Trend.DECLINING]

    @property
    def top_reviewer_share(self) -> float:
        velocity = self.report.review_velocity
        if not velocity.success or not velocity.reviewer_load:
            return 0.0
        return percentage(velocity.reviewer_load[0].review_count, velocity.first_review_total)

    @property
    def has_contributors(self) -> bool:
        return self.report.contributors.success and self.report.contributors.total_contributors > 0


class Rule(NamedTuple):
    name: str
    predicate: Callable[[NarrativeContext], bool]
    build: Callable[[NarrativeContext], Any]


def evaluate(rules, context: NarrativeContext) -> List[Any]:
    """Build an item for every rule whose predicate holds, in rule order."""
    matched = []
    for rule in rules:
        if rule.predicate(context):
            logger.debug("Narrative rule matched", extra={"rule": rule.name})
            matched.append(rule.build(context))
    return matched


# ── Paradoxes ───────────────────────────────────────────────────────────────


def _review_culture_applies(ctx: NarrativeContext) -> bool:
    report, limits = ctx.report, ctx.thresholds
    if not (report.health.success and report.activity.success):
        return False
    review_hours = report.health.time_to_first_review.average_hours
    return (
        report.health.pr_review_coverage.coverage_percentage >= limits.culture_min_coverage
        and 0 < review_hours <= limits.culture_max_review_hours
        and report.activity.pr_merge_rate.merge_rate < limits.culture_max_merge_rate
    )


def _review_culture(ctx: NarrativeContext) -> Paradox:
    report = ctx.report
    coverage = report.health.pr_review_coverage.coverage_percentage
    review_hours = report.health.time_to_first_review.average_hours
    rate = report.activity.pr_merge_rate.merge_rate
    return Paradox(
        title=REVIEW_CULTURE,
        description=(
            f"{report.repository} exhibits excellent review culture ({coverage:.0f}% coverage) with fast "
            f"review times ({review_hours:.1f}h average), yet only {rate:.0f}% of PRs get merged. "
            "PRs are getting stuck after review, not during review."
        ),
        metrics=[
            f"Review Coverage: {coverage:.0f}%",
            f"Merge Rate: {rate:.0f}%",
            f"Time to First Review: {review_hours:.1f}h",
        ],
    )


def _approval_delay_applies(ctx: NarrativeContext) -> bool:
    velocity, limits = ctx.report.review_velocity, ctx.thresholds
    if not velocity.success:
        return False
    first_review = velocity.time_to_first_review.average_hours
    return (
        0 < first_review < limits.approval_delay_max_first_review_hours
        and velocity.time_to_approval.average_days > limits.approval_delay_min_days
    )


def _approval_delay(ctx: NarrativeContext) -> Paradox:
    velocity = ctx.report.review_velocity
    first_review = velocity.time_to_first_review.average_hours
    approval = velocity.time_to_approval.average_days
    return Paradox(
        title=APPROVAL_DELAY,
        description=(
            f"Reviews start quickly ({first_review:.1f}h to first review) but take {approval:.1f} days "
            "to reach approval. This points to multiple review rounds or reviewer unavailability."
        ),
        metrics=[f"Time to First Review: {first_review:.1f}h", f"Time to Approval: {approval:.1f} days"],
    )


def _concentration_applies(ctx: NarrativeContext) -> bool:
    contributors, limits = ctx.report.contributors, ctx.thresholds
    return (
        contributors.success
        and contributors.total_contributors > limits.concentration_min_contributors
        and contributors.bus_factor < limits.concentration_max_bus_factor
    )


def _concentration(ctx: NarrativeContext) -> Paradox:
    contributors = ctx.report.contributors
    top_share = contributors.contribution_distribution[0].percentage if contributors.contribution_distribution else 0.0
    return Paradox(
        title=CONTRIBUTION_CONCENTRATION,
        description=(
            f"Despite having {contributors.total_contributors} contributors, the project's bus factor is only "
            f"{contributors.bus_factor}. Work is concentrated among a few individuals."
        ),
        metrics=[
            f"Total Contributors: {contributors.total_contributors}",
            f"Bus Factor: {contributors.bus_factor}",
            f"Top Contributor Share: {top_share:.0f}%",
        ],
    )


def _declining_velocity(ctx: NarrativeContext) -> Paradox:
    trends = dict(ctx.report.trends.trends.items())
    declining = ctx.declining_trends
    return Paradox(
        title=DECLINING_VELOCITY,
        description=(
            "Multiple key metrics are declining simultaneously, suggesting systemic issues rather than "
            f"isolated problems. {len(declining)} out of 4 trend metrics show a negative trajectory."
        ),
        metrics=[
            f"{name}: {trends[name].previous:.1f} -> {trends[name].current:.1f} ({format_signed(trends[name].delta)})"
            for name in declining
        ],
    )


PARADOX_RULES = (
    Rule("review_culture", _review_culture_applies, _review_culture),
    Rule("approval_delay", _approval_delay_applies, _approval_delay),
    Rule("contribution_concentration", _concentration_applies, _concentration),
    Rule(
        "declining_velocity",
        lambda ctx: len(ctx.declining_trends) >= ctx.thresholds.declining_min_metrics,
        _declining_velocity,
    ),
)


# ── Root causes ─────────────────────────────────────────────────────────────


def _stalling_after_review(ctx: NarrativeContext) -> RootCause:
    report = ctx.report
    bottlenecks = report.review_velocity.bottlenecks
    evidence = []

    changes_requested = [item for item in bottlenecks if item.status == "changes_requested"]
    approved_pending = [item for item in bottlenecks if item.status == "approved_pending_merge"]
    if changes_requested:
        evidence.append(f"{len(changes_requested)} PRs waiting on author to address review comments")
    if approved_pending:
        average_wait = safe_divide(sum(item.waiting_days for item in approved_pending), len(approved_pending))
        evidence.append(f"{len(approved_pending)} approved PRs not yet merged (average wait: {average_wait:.1f} days)")
    evidence.append(
        f"Merge rate ({report.activity.pr_merge_rate.merge_rate:.0f}%) significantly below review coverage "
        f"({report.health.pr_review_coverage.coverage_percentage:.0f}%)"
    )

    return RootCause(
        issue="PRs stalling after review",
        hypothesis=(
            "Authors abandon PRs after receiving review feedback, or approved PRs wait too long for "
            "maintainer bandwidth to merge"
        ),
        evidence=evidence,
        confidence="high",
    )


def _reviewer_imbalance(ctx: NarrativeContext) -> RootCause:
    velocity = ctx.report.review_velocity
    top = velocity.reviewer_load[0]
    share = ctx.top_reviewer_share
    return RootCause(
        issue=REVIEWER_IMBALANCE,
        hypothesis=f"{top.reviewer} handles {share:.0f}% of first reviews, creating a bottleneck",
        evidence=[
            f"{top.reviewer}: {top.review_count} reviews ({share:.0f}% of total)",
            f"Average response time: {top.average_response_hours:.1f}h",
            f"{len(velocity.reviewer_load)} active reviewers",
        ],
        confidence="high",
    )


def _low_deployment_applies(ctx: NarrativeContext) -> bool:
    report, limits = ctx.report, ctx.thresholds
    return (
        report.health.success
        and report.activity.success
        and report.health.deployment_frequency.releases < limits.low_release_count
        and report.activity.pr_merge_rate.merged > limits.active_merged_prs
    )


def _low_deployment(ctx: NarrativeContext) -> RootCause:
    releases = ctx.report.health.deployment_frequency.releases
    merged = ctx.report.activity.pr_merge_rate.merged
    return RootCause(
        issue="Low deployment frequency despite active development",
        hypothesis="A manual release process or CI/CD pipeline may be preventing frequent deployments",
        evidence=[
            f"Only {releases} releases in analysis period",
            f"{merged} PRs merged",
            f"Potential {safe_divide(merged, max(releases, 1)):.0f} PRs per release",
        ],
        confidence="medium",
    )


def _declining_contributors_applies(ctx: NarrativeContext) -> bool:
    trends = ctx.report.trends
    return trends.success and trends.trends.active_contributors.trend is Trend.DECLINING


def _declining_contributors(ctx: NarrativeContext) -> RootCause:
    metric = ctx.report.trends.trends.active_contributors
    split = ctx.report.contributors.new_vs_returning
    return RootCause(
        issue="Declining contributor base",
        hypothesis=(
            "Contributors may be leaving due to slow review times, a difficult contribution process, "
            "or project direction concerns"
        ),
        evidence=[
            f"Active contributors: {metric.previous:.0f} -> {metric.current:.0f} ({format_signed(metric.delta, 0)})",
            f"New contributors: {split.new} vs Returning: {split.returning}",
        ],
        confidence="medium",
    )


def _size_latency_applies(ctx: NarrativeContext) -> bool:
    correlations = ctx.report.correlations
    return (
        correlations.success
        and correlations.pr_size_vs_time_to_merge.correlation >= ctx.thresholds.size_correlation
    )


def _size_latency(ctx: NarrativeContext) -> RootCause:
    sizes = ctx.report.correlations.pr_size_vs_time_to_merge
    return RootCause(
        issue="PR size driving merge latency",
        hypothesis="Larger PRs take disproportionately longer to merge; smaller, incremental changes would move faster",
        evidence=[
            f"Size/merge-time correlation: {sizes.correlation:.2f} over {sizes.sample_size} PRs",
            f"Small PRs merge in {sizes.small.average_days:.1f} days, large PRs in {sizes.large.average_days:.1f} days",
        ],
        confidence="low",
    )


ROOT_CAUSE_RULES = (
    Rule("stalling_after_review", lambda ctx: ctx.has_paradox(REVIEW_CULTURE), _stalling_after_review),
    Rule(
        "reviewer_imbalance",
        lambda ctx: ctx.top_reviewer_share > ctx.thresholds.reviewer_share_percent,
        _reviewer_imbalance,
    ),
    Rule("low_deployment_frequency", _low_deployment_applies, _low_deployment),
    Rule("declining_contributors", _declining_contributors_applies, _declining_contributors),
    Rule("size_latency", _size_latency_applies, _size_latency),
)


# ── Action plan ─────────────────────────────────────────────────────────────


def _expand_contributors(ctx: NarrativeContext) -> ActionItem:
    contributors = ctx.report.contributors
    top = contributors.top_contributors[0].login if contributors.top_contributors else "the top contributor"
    return ActionItem(
        priority=1,
        action="Urgently expand core contributor base",
        rationale=(
            f"Bus factor of {contributors.bus_factor} creates critical project risk. If {top} becomes "
            "unavailable, project continuity is threatened."
        ),
        expected_impact="Reduce project risk from critical to moderate",
        timeframe="Immediate (this week)",
    )


def _stalled_prs_applies(ctx: NarrativeContext) -> bool:
    velocity = ctx.report.review_velocity
    return velocity.success and velocity.stalled_total > ctx.thresholds.stalled_pr_limit


def _resolve_stalled(ctx: NarrativeContext) -> ActionItem:
    stalled = ctx.report.review_velocity.stalled_total
    improvement = round(percentage(stalled, ctx.report.health.pr_review_coverage.total))
    return ActionItem(
        priority=1,
        action=f"Audit and resolve {stalled} stalled PRs",
        rationale="PRs waiting more than 3 days represent blocked work and frustrated contributors.",
        expected_impact=f"Improve merge rate by ~{improvement}%",
        timeframe="This week",
    )


def _balance_reviewers(ctx: NarrativeContext) -> ActionItem:
    load = ctx.report.review_velocity.reviewer_load
    top = load[0].reviewer if load else "The top reviewer"
    return ActionItem(
        priority=2,
        action="Implement reviewer load balancing",
        rationale=f"{top} handles a disproportionate review load. Distribute reviews among {len(load)} maintainers.",
        expected_impact="Reduce bottleneck, improve review speed by 30-40%",
        timeframe="2-4 weeks",
    )


def _merge_rate_declining(ctx: NarrativeContext) -> bool:
    trends = ctx.report.trends
    return trends.success and trends.trends.pr_merge_rate.trend is Trend.DECLINING


def _auto_merge(ctx: NarrativeContext) -> ActionItem:
    return ActionItem(
        priority=2,
        action="Implement auto-merge for approved PRs",
        rationale="Merge rate is declining. Automate the merge step for approved PRs passing CI.",
        expected_impact="Increase merge rate by 15-20%",
        timeframe="2 weeks",
    )


def _deployment_cadence_applies(ctx: NarrativeContext) -> bool:
    if ctx.benchmark is None or "deployment_frequency" not in ctx.benchmark.metrics:
        return False
    score = ctx.benchmark.metrics["deployment_frequency"]
    # Zero releases only counts as slow cadence when something was merged.
    active = score.has_data or ctx.report.activity.pr_merge_rate.merged > 0
    return score.percentile < 50 and active


def _deployment_cadence(ctx: NarrativeContext) -> ActionItem:
    score = ctx.benchmark.metrics["deployment_frequency"]
    return ActionItem(
        priority=3,
        action="Increase deployment cadence",
        rationale=f"Current: {score.value:.1f}/month, median: {score.median:.1f}/month",
        expected_impact="Faster feedback loops, improved velocity",
        timeframe="1-2 months",
    )


def _issue_resolution_days(ctx: NarrativeContext) -> float:
    return ctx.report.activity.issue_resolution.average_hours / HOURS_PER_DAY


def _improve_triage(ctx: NarrativeContext) -> ActionItem:
    return ActionItem(
        priority=3,
        action="Improve issue triage process",
        rationale=(
            f"Average issue resolution time is {_issue_resolution_days(ctx):.1f} days. "
            "Implement SLA-based triage with labels."
        ),
        expected_impact="Reduce resolution time by 30-40%",
        timeframe="1 month",
    )


ACTION_RULES = (
    Rule(
        "expand_contributors",
        lambda ctx: ctx.has_contributors and ctx.report.contributors.bus_factor < ctx.thresholds.critical_bus_factor,
        _expand_contributors,
    ),
    Rule("resolve_stalled_prs", _stalled_prs_applies, _resolve_stalled),
    Rule("balance_reviewers", lambda ctx: ctx.has_root_cause(REVIEWER_IMBALANCE), _balance_reviewers),
    Rule("auto_merge", _merge_rate_declining, _auto_merge),
    Rule("deployment_cadence", _deployment_cadence_applies, _deployment_cadence),
    Rule(
        "improve_triage",
        lambda ctx: ctx.report.activity.success and _issue_resolution_days(ctx) > ctx.thresholds.slow_issue_days,
        _improve_triage,
    ),
)


# ── Findings, summary, risk, outcome ────────────────────────────────────────


def key_findings(ctx: NarrativeContext) -> List[str]:
    report = ctx.report
    findings: List[str] = []

    if report.trends.success:
        labels = [metric.trend for _, metric in report.trends.trends.items()]
        improving = labels.count(Trend.IMPROVING)
        declining = labels.count(Trend.DECLINING)
        if declining > improving:
            findings.append(f"Velocity declining: {declining} out of 4 key metrics show negative trends")
        elif improving > declining:
            findings.append(f"Velocity improving: {improving} out of 4 key metrics show positive trends")

    p90 = report.review_velocity.time_to_first_review.p90_hours
    if report.review_velocity.success and p90 > 0:
        if p90 > 24:
            findings.append(f"10% of PRs wait {p90:.0f}+ hours for first review (p90)")
        elif p90 < 4:
            findings.append(f"Exceptional review speed: 90% of PRs reviewed within {p90:.1f}h")
        else:
            findings.append(f"Average review speed: 90% of PRs reviewed within {p90:.1f}h")

    if ctx.benchmark is not None:
        scored = [score for score in ctx.benchmark.metrics.values() if score.has_data]
        excellent = sum(1 for score in scored if score.rating == "excellent")
        poor = sum(1 for score in scored if score.rating == "poor")
        if excellent >= 3:
            findings.append(f"{excellent} metrics at excellent level (90th+ percentile)")
        if poor >= 2:
            findings.append(f"{poor} metrics below reference standards (require immediate attention)")

    distribution = report.contributors.contribution_distribution
    if report.contributors.success and distribution and distribution[0].percentage > ctx.thresholds.dominance_percent:
        findings.append(
            f"Single contributor dominance: {distribution[0].contributor} accounts for "
            f"{distribution[0].percentage:.0f}% of contributions"
        )

    return findings


def _short_name(repository: str) -> str:
    parts = repository.split("/")
    return parts[1] if len(parts) > 1 and parts[1] else repository


def summary_text(ctx: NarrativeContext) -> str:
    report = ctx.report
    name = _short_name(report.repository)
    if ctx.paradoxes:
        main = ctx.paradoxes[0]
        return f"{name} is experiencing {main.title.lower()}. {main.description}"
    return (
        f"{name} demonstrates healthy development practices with "
        f"{report.health.pr_review_coverage.coverage_percentage:.0f}% review coverage and "
        f"{report.activity.pr_merge_rate.merge_rate:.0f}% PR merge rate."
    )


def _raise_level(current: str, candidate: str) -> str:
    return candidate if RISK_ORDER.index(candidate) > RISK_ORDER.index(current) else current


def assess_risk(ctx: NarrativeContext) -> RiskAssessment:
    """Map dependency, velocity and retention signals to a risk level.

    Decision table, highest level wins:
    - bus factor below 2: critical
    - bus factor below 3: high
    - declining merge rate dropping more than 20 points: high
    - declining active contributors: medium
    """
    report, limits = ctx.report, ctx.thresholds
    level = "low"
    factors: List[str] = []

    if ctx.has_contributors:
        bus = report.contributors.bus_factor
        if bus < limits.critical_bus_factor:
            factors.append(f"Critical dependency risk: bus factor is {bus}")
            level = _raise_level(level, "critical")
        elif bus < limits.high_risk_bus_factor:
            factors.append(f"High dependency risk: bus factor is only {bus}")
            level = _raise_level(level, "high")

    if _merge_rate_declining(ctx):
        drop = abs(report.trends.trends.pr_merge_rate.delta)
        if drop > limits.velocity_drop_points:
            factors.append(f"Velocity collapse risk: merge rate dropped {drop:.0f} points in 30 days")
            level = _raise_level(level, "high")

    if _declining_contributors_applies(ctx):
        factors.append("Contributor retention risk: active contributors declining")
        level = _raise_level(level, "medium")

    return RiskAssessment(level=level, factors=factors)


def project_outcome(ctx: NarrativeContext, actions: List[ActionItem]) -> str:
    """Describe the trajectory with and without the priority-1 actions."""
    if not any(action.priority == 1 for action in actions):
        return "Current trajectory: stable to improving. Continue monitoring key metrics and maintain current practices."

    report, limits = ctx.report, ctx.thresholds
    lines = ["If no action is taken:"]

    if _merge_rate_declining(ctx):
        metric = report.trends.trends.pr_merge_rate
        if abs(metric.delta) > limits.materiality_delta:
            projected = max(0.0, min(100.0, metric.current + metric.delta * 2))
            lines.append(f"- Merge rate will drop to ~{projected:.0f}% within 60 days (from {metric.current:.0f}%)")

    if ctx.has_contributors and report.contributors.bus_factor < limits.critical_bus_factor:
        lines.append("- Project continuity remains at critical risk")
    if _stalled_prs_applies(ctx):
        lines.append("- Contributor frustration will increase, potentially leading to abandonment")

    lines.append("")
    lines.append("If priority actions are taken:")
    lines.extend(f"- {action.expected_impact}" for action in actions[:3])
    return "\n".join(lines)


class NarrativeGenerator:
    """Derive an ``ExecutiveNarrative`` from an assembled report."""

    def __init__(self, thresholds: Optional[NarrativeThresholds] = None):
        self.thresholds = thresholds or NarrativeThresholds()

    def generate(self, report: AnalyticsReport, benchmark: Optional[BenchmarkComparison] = None) -> ExecutiveNarrative:
        ctx = NarrativeContext(report=report, benchmark=benchmark, thresholds=self.thresholds)

        ctx.paradoxes.extend(evaluate(PARADOX_RULES, ctx))
        ctx.root_causes.extend(evaluate(ROOT_CAUSE_RULES, ctx))
        actions = sorted(evaluate(ACTION_RULES, ctx), key=lambda action: action.priority)

        narrative = ExecutiveNarrative(
            summary=summary_text(ctx),
            key_findings=key_findings(ctx),
            paradoxes=list(ctx.paradoxes),
            root_causes=list(ctx.root_causes),
            action_plan=actions,
            risk_assessment=assess_risk(ctx),
            projected_outcome=project_outcome(ctx, actions),
        )

        logger.info(
            "Narrative generated",
            extra={
                "repository": report.repository,
                "paradoxes": len(narrative.paradoxes),
                "root_causes": len(narrative.root_causes),
                "actions": len(narrative.action_plan),
                "risk": narrative.risk_assessment.level,
            },
        )
        return narrative
