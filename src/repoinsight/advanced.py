"""Advanced analyzers: review velocity, temporal trends, correlations and projections.

These follow the same guarded coroutine contract as ``analyzers``. None of
them depends on another analyzer's output; shared derivations (merge rate,
first review time, active authors) are recomputed from the record set.
"""

from __future__ import annotations

import logging
import math
from collections import Counter
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from .analyzers import (
    AnalysisOptions,
    active_authors,
    first_review_hours,
    in_window,
    issue_resolution_hours,
    merge_rate,
    run_guarded,
)
from .models import (
    ApprovalTiming,
    BurndownPoint,
    DayOfWeekImpact,
    Direction,
    FirstReviewTiming,
    MetricCorrelations,
    Period,
    Projections,
    PullRequest,
    RangeForecast,
    RecordSet,
    ReviewBottleneck,
    ReviewerLoad,
    ReviewVelocityMetrics,
    SizeBucket,
    SizeCorrelation,
    TemporalTrends,
    Trend,
    TrendMetric,
    TrendSet,
    WeeklyVelocity,
)
from .stats import HOURS_PER_DAY, finite, hours_between, mean, pearson, safe_divide, sorted_desc, summarize

logger = logging.getLogger(__name__)

WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")
VELOCITY_WEEKS = 12


# ── Review velocity ─────────────────────────────────────────────────────────


def _first_reviewer(pr: PullRequest) -> Optional[str]:
    first = None
    for review in pr.reviews:
        if review.submitted_at is None or review.author is None or review.author == pr.author:
            continue
        if first is None or review.submitted_at < first.submitted_at:
            first = review
    return first.author if first is not None else None


def approval_days(pr: PullRequest) -> Optional[float]:
    """Days from creation to the earliest approving review, if any."""
    approvals = [
        review.submitted_at
        for review in pr.reviews
        if review.state == "APPROVED" and review.submitted_at is not None
    ]
    if not approvals:
        return None
    hours = hours_between(pr.created_at, min(approvals))
    if hours is None or hours < 0:
        return None
    return hours / HOURS_PER_DAY


def bottleneck_status(pr: PullRequest) -> str:
    """Classify why an open pull request is waiting.

    Review outcomes take precedence over the absence of reviewers: requested
    changes first, then a pending approval, then nobody assigned at all.
    """
    states = {review.state for review in pr.reviews}
    if "CHANGES_REQUESTED" in states or pr.review_decision == "CHANGES_REQUESTED":
        return "changes_requested"
    if "APPROVED" in states or pr.review_decision == "APPROVED":
        return "approved_pending_merge"
    if not pr.reviews and not pr.review_requests:
        return "no_reviewers"
    return "unknown"


def _compute_review_velocity(records: RecordSet, options: AnalysisOptions) -> ReviewVelocityMetrics:
    limits = options.config.review_velocity

    first_review_samples: List[float] = []
    approval_samples: List[float] = []
    reviewer_counts: Counter = Counter()
    reviewer_hours: Dict[str, List[float]] = {}

    for pr in records.pull_requests:
        if not pr.reviews:
            continue

        hours = first_review_hours(pr)
        if hours is not None and hours < limits.first_review_ceiling_hours:
            first_review_samples.append(hours)
            reviewer = _first_reviewer(pr)
            if reviewer:
                reviewer_counts[reviewer] += 1
                reviewer_hours.setdefault(reviewer, []).append(hours)

        days = approval_days(pr)
        if days is not None and days < limits.approval_ceiling_days:
            approval_samples.append(days)

    review_summary = summarize(first_review_samples)
    approval_summary = summarize(approval_samples)

    stalled: List[ReviewBottleneck] = []
    for pr in records.pull_requests:
        if not pr.is_open or pr.created_at is None:
            continue
        waiting_days = math.floor((options.now - pr.created_at).total_seconds() / 86400.0 * 10) / 10
        if waiting_days <= limits.bottleneck_wait_days:
            continue
        stalled.append(
            ReviewBottleneck(
                number=pr.number,
                title=pr.title,
                author=pr.author or "unknown",
                waiting_days=waiting_days,
                status=bottleneck_status(pr),
            )
        )

    ranked_reviewers = sorted_desc(list(reviewer_counts.items()), key=lambda pair: pair[1])
    reviewer_load = [
        ReviewerLoad(
            reviewer=reviewer,
            review_count=count,
            average_response_hours=round(mean(reviewer_hours[reviewer]), 2),
        )
        for reviewer, count in ranked_reviewers[: limits.reviewer_limit]
    ]

    return ReviewVelocityMetrics(
        time_to_first_review=FirstReviewTiming(
            average_hours=review_summary["average"],
            median_hours=review_summary["median"],
            p90_hours=review_summary["p90"],
        ),
        time_to_approval=ApprovalTiming(
            average_days=approval_summary["average"],
            median_days=approval_summary["median"],
        ),
        bottlenecks=sorted_desc(stalled, key=lambda item: item.waiting_days)[: limits.bottleneck_limit],
        stalled_total=len(stalled),
        reviewer_load=reviewer_load,
        first_review_total=sum(reviewer_counts.values()),
    )


async def analyze_review_velocity(records: RecordSet, options: AnalysisOptions) -> ReviewVelocityMetrics:
    """Review timing percentiles, stalled pull requests and reviewer load."""
    return run_guarded(
        "review_velocity", ReviewVelocityMetrics, options, lambda: _compute_review_velocity(records, options)
    )


# ── Temporal trends ─────────────────────────────────────────────────────────


def classify_trend(delta: float, deadband: float, direction: Direction) -> Trend:
    """Classify a period-over-period delta.

    Business logic:
    - ``|delta| <= deadband`` is ``stable``.
    - For ``higher-is-better`` metrics a positive delta is ``improving``.
    - For ``lower-is-better`` metrics a negative delta is ``improving``.
    """
    if abs(delta) <= deadband:
        return Trend.STABLE
    better = delta > 0 if direction is Direction.HIGHER_IS_BETTER else delta < 0
    return Trend.IMPROVING if better else Trend.DECLINING


def _trend_metric(current: float, previous: float, deadband: float, direction: Direction) -> TrendMetric:
    current = round(finite(current), 2)
    previous = round(finite(previous), 2)
    delta = round(current - previous, 2)
    return TrendMetric(
        current=current,
        previous=previous,
        delta=delta,
        trend=classify_trend(delta, deadband, direction),
    )


def _created_between(pull_requests, start: datetime, end: datetime, include_end: bool) -> List[PullRequest]:
    selected = []
    for pr in pull_requests:
        if pr.created_at is None or pr.created_at < start:
            continue
        if pr.created_at > end or (not include_end and pr.created_at == end):
            continue
        selected.append(pr)
    return selected


def _average_review_hours(pull_requests: List[PullRequest]) -> float:
    return mean([hours for hours in (first_review_hours(pr) for pr in pull_requests) if hours is not None])


def _weekly_velocity(records: RecordSet, now: datetime) -> List[WeeklyVelocity]:
    velocity = []
    for offset in range(VELOCITY_WEEKS - 1, -1, -1):
        week_end = now - timedelta(weeks=offset)
        week_start = week_end - timedelta(weeks=1)
        merged = sum(
            1
            for pr in records.pull_requests
            if pr.merged_at is not None and week_start <= pr.merged_at < week_end
        )
        velocity.append(WeeklyVelocity(week=VELOCITY_WEEKS - offset, merged_prs=merged))
    return velocity


def _compute_trends(records: RecordSet, options: AnalysisOptions) -> TemporalTrends:
    deadbands = options.config.deadbands
    now = options.now
    current_start = options.window_start
    previous_start = current_start - timedelta(days=options.config.window_days)

    current_prs = _created_between(records.pull_requests, current_start, now, include_end=True)
    previous_prs = _created_between(records.pull_requests, previous_start, current_start, include_end=False)

    # The previous contributor window excludes its end instant, which belongs to the current one.
    previous_end = current_start - timedelta(microseconds=1)

    trends = TrendSet(
        pr_merge_rate=_trend_metric(
            merge_rate(current_prs).merge_rate,
            merge_rate(previous_prs).merge_rate,
            deadbands.pr_merge_rate,
            Direction.HIGHER_IS_BETTER,
        ),
        time_to_review=_trend_metric(
            _average_review_hours(current_prs),
            _average_review_hours(previous_prs),
            deadbands.time_to_review_hours,
            Direction.LOWER_IS_BETTER,
        ),
        active_contributors=_trend_metric(
            len(active_authors(records, current_start, now)),
            len(active_authors(records, previous_start, previous_end)),
            deadbands.active_contributors,
            Direction.HIGHER_IS_BETTER,
        ),
        issue_resolution=_trend_metric(
            mean(issue_resolution_hours(records, current_start, now)),
            mean(issue_resolution_hours(records, previous_start, previous_end)),
            deadbands.issue_resolution_hours,
            Direction.LOWER_IS_BETTER,
        ),
    )

    return TemporalTrends(
        current_period=Period(start=current_start, end=now),
        previous_period=Period(start=previous_start, end=current_start),
        trends=trends,
        velocity_trend=_weekly_velocity(records, now),
    )


async def analyze_trends(records: RecordSet, options: AnalysisOptions) -> TemporalTrends:
    """Current vs previous window deltas for four headline metrics."""
    return run_guarded("trends", TemporalTrends, options, lambda: _compute_trends(records, options))


# ── Correlations ────────────────────────────────────────────────────────────


def days_to_merge(pr: PullRequest) -> Optional[float]:
    hours = hours_between(pr.created_at, pr.merged_at)
    if hours is None or hours < 0:
        return None
    return hours / HOURS_PER_DAY


def _size_bucket(samples: List[tuple]) -> SizeBucket:
    if not samples:
        return SizeBucket()
    sizes = [size for size, _ in samples]
    days = [merge_days for _, merge_days in samples]
    return SizeBucket(
        count=len(samples),
        average_lines=int(math.floor(mean(sizes))),
        average_days=round(mean(days), 2),
    )


def _compute_correlations(records: RecordSet, options: AnalysisOptions) -> MetricCorrelations:
    settings = options.config.correlation

    qualifying = []
    for pr in records.pull_requests:
        size = pr.size
        merge_days = days_to_merge(pr)
        if size is None or merge_days is None:
            continue
        qualifying.append((size, merge_days))

    correlation = 0.0
    if len(qualifying) >= settings.min_samples:
        correlation = round(pearson([float(size) for size, _ in qualifying], [days for _, days in qualifying]), 3)

    small = [sample for sample in qualifying if sample[0] < settings.small_max_lines]
    medium = [sample for sample in qualifying if settings.small_max_lines <= sample[0] < settings.large_min_lines]
    large = [sample for sample in qualifying if sample[0] >= settings.large_min_lines]

    submitted: Counter = Counter()
    response_hours: Dict[str, List[float]] = {day: [] for day in WEEKDAYS}
    for pr in records.pull_requests:
        if pr.created_at is None:
            continue
        day = WEEKDAYS[pr.created_at.weekday()]
        submitted[day] += 1
        hours = first_review_hours(pr)
        if hours is not None and hours < settings.response_ceiling_hours:
            response_hours[day].append(hours)

    impact = [
        DayOfWeekImpact(
            day=day,
            average_response_hours=round(mean(response_hours[day]), 2),
            prs_submitted=submitted[day],
        )
        for day in WEEKDAYS
    ]

    return MetricCorrelations(
        pr_size_vs_time_to_merge=SizeCorrelation(
            small=_size_bucket(small),
            medium=_size_bucket(medium),
            large=_size_bucket(large),
            correlation=correlation,
            sample_size=len(qualifying),
        ),
        day_of_week_impact=impact,
    )


async def analyze_correlations(records: RecordSet, options: AnalysisOptions) -> MetricCorrelations:
    """PR size against merge time, and weekday review responsiveness."""
    return run_guarded("correlations", MetricCorrelations, options, lambda: _compute_correlations(records, options))


# ── Projections ─────────────────────────────────────────────────────────────


def _confidence(events: int, high: int, medium: int) -> str:
    if events > high:
        return "high"
    if events > medium:
        return "medium"
    return "low"


def _compute_projections(records: RecordSet, options: AnalysisOptions) -> Projections:
    settings = options.config.projection
    now = options.now
    start = now - timedelta(days=settings.window_days)

    merged_recently = sum(1 for pr in records.pull_requests if in_window(pr.merged_at, start, now))
    spread = math.sqrt(merged_recently)
    prs_to_merge = RangeForecast(
        low=max(0, int(math.floor(merged_recently - spread))),
        high=int(math.ceil(merged_recently + spread)),
        confidence=_confidence(merged_recently, settings.high_confidence_events, settings.medium_confidence_events),
    )

    open_issues = sum(1 for issue in records.issues if issue.state == "open")
    closed_recently = sum(1 for issue in records.issues if in_window(issue.closed_at, start, now))
    opened_recently = sum(1 for issue in records.issues if in_window(issue.created_at, start, now))
    projected_open = max(0, open_issues + opened_recently - closed_recently)
    open_issues_at_end = RangeForecast(
        low=max(0, int(math.floor(projected_open * (1 - settings.issue_band)))),
        high=int(math.ceil(projected_open * (1 + settings.issue_band))),
        confidence="medium" if closed_recently > settings.medium_confidence_events else "low",
    )

    released_recently = any(in_window(release.released_at, start, now) for release in records.releases)

    weekly_burn = safe_divide(closed_recently, settings.weeks_per_month)
    burndown = [
        BurndownPoint(
            week=week,
            projected_open=max(0, int(math.floor(open_issues - week * weekly_burn))),
            ideal_open=max(0, int(math.floor(open_issues * (1 - week / settings.burndown_weeks)))),
        )
        for week in range(1, settings.burndown_weeks + 1)
    ]

    return Projections(
        projection_period=f"next {settings.window_days} days",
        prs_to_merge=prs_to_merge,
        open_issues_at_end=open_issues_at_end,
        release_probability=70.0 if released_recently else 30.0,
        backlog_burndown=burndown,
    )


async def analyze_projections(records: RecordSet, options: AnalysisOptions) -> Projections:
    """Next-window throughput, backlog and release likelihood."""
    return run_guarded("projections", Projections, options, lambda: _compute_projections(records, options))
