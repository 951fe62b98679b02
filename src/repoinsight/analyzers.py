"""Base analyzers: activity, contributors, labels and health.

Every analyzer is a coroutine with the same contract::

    async def analyze_x(records: RecordSet, options: AnalysisOptions) -> XMetrics

Analyzers never raise. The computation runs under ``run_guarded``, which
times it and turns any exception into a zeroed block with ``success=False``
and the error message recorded. Empty input is not an error.
"""

from __future__ import annotations

import logging
import time
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Type, TypeVar

from .config import DEFAULT_CONFIG, AnalyticsConfig
from .models import (
    ActivityMetrics,
    AveragePrSize,
    ContributionShare,
    ContributorMetrics,
    ContributorStat,
    DailyCount,
    DeploymentFrequency,
    DurationSummary,
    HealthMetrics,
    IssueLifecycle,
    LabelMetrics,
    LabelShare,
    MergeRate,
    MetricBlock,
    NewVsReturning,
    PullRequest,
    RecordSet,
    ReviewCoverage,
)
from .stats import HOURS_PER_DAY, hours_between, percentage, safe_divide, sorted_desc, summarize

logger = logging.getLogger(__name__)

BlockT = TypeVar("BlockT", bound=MetricBlock)

REVIEWED_STATES = ("APPROVED", "CHANGES_REQUESTED")
DAYS_PER_MONTH = 30.0


@dataclass(frozen=True)
class AnalysisOptions:
    """Per-run inputs shared by every analyzer.

    ``now`` is injected so that identical records always produce identical
    windows and output.
    """

    repository: str
    now: datetime
    config: AnalyticsConfig = field(default=DEFAULT_CONFIG)

    @property
    def window_start(self) -> datetime:
        return self.now - timedelta(days=self.config.window_days)


def run_guarded(
    name: str,
    block_cls: Type[BlockT],
    options: AnalysisOptions,
    compute: Callable[[], BlockT],
) -> BlockT:
    """Run one analyzer computation and absorb its failures.

    Args:
        name: Analyzer name used in log context.
        block_cls: Metric block type to instantiate on failure.
        options: Current run options.
        compute: Zero-argument callable returning the populated block.

    Returns:
        The computed block with ``success=True``, or a default block with
        ``success=False`` and the error message in ``errors``.
    """
    started = time.perf_counter()
    try:
        block = compute()
        block.success = True
    except Exception as exc:
        logger.exception(
            "Analyzer failed; returning empty section",
            extra={"analyzer": name, "repository": options.repository},
        )
        block = block_cls(errors=[f"{name}: {exc}"], success=False)

    block.repository = options.repository
    block.duration_ms = round((time.perf_counter() - started) * 1000.0, 3)
    logger.debug(
        "Analyzer finished",
        extra={
            "analyzer": name,
            "repository": options.repository,
            "success": block.success,
            "duration_ms": block.duration_ms,
        },
    )
    return block


def in_window(moment: Optional[datetime], start: datetime, end: datetime) -> bool:
    """``start <= moment <= end``; missing timestamps are outside every window."""
    return moment is not None and start <= moment <= end


def merge_rate(pull_requests: Iterable[PullRequest]) -> MergeRate:
    """Merged share of finished pull requests.

    ``merged / (merged + closed) * 100`` where ``closed`` counts pull requests
    closed without merging; ``0.0`` when nothing has finished.
    """
    merged = 0
    closed = 0
    for pr in pull_requests:
        if pr.is_merged:
            merged += 1
        elif pr.is_closed_unmerged:
            closed += 1

    return MergeRate(merged=merged, closed=closed, merge_rate=percentage(merged, merged + closed))


def merge_rate_status(rate: float, config: AnalyticsConfig) -> str:
    if rate >= config.health.merge_rate_excellent:
        return "excellent"
    if rate >= config.health.merge_rate_fair:
        return "fair"
    return "needs_improvement"


def active_authors(records: RecordSet, start: datetime, end: datetime) -> List[str]:
    """Distinct commit and pull request authors active in ``[start, end]``, first-seen order."""
    authors: Dict[str, None] = {}
    for commit in records.commits:
        if commit.author and in_window(commit.date, start, end):
            authors.setdefault(commit.author)
    for pr in records.pull_requests:
        if pr.author and in_window(pr.created_at, start, end):
            authors.setdefault(pr.author)
    return list(authors)


def first_review_hours(pr: PullRequest) -> Optional[float]:
    """Hours from creation to the earliest review by someone other than the author.

    Returns ``None`` when there is no such review or the duration is negative.
    """
    if pr.created_at is None:
        return None

    first_review_at = None
    for review in pr.reviews:
        if review.submitted_at is None:
            continue
        if review.author is not None and review.author == pr.author:
            continue
        if first_review_at is None or review.submitted_at < first_review_at:
            first_review_at = review.submitted_at

    hours = hours_between(pr.created_at, first_review_at)
    if hours is None or hours < 0:
        return None
    return hours


def issue_resolution_hours(records: RecordSet, start: Optional[datetime] = None, end: Optional[datetime] = None) -> List[float]:
    """Open-to-close hours for closed issues, optionally limited to issues created in a window."""
    samples: List[float] = []
    for issue in records.issues:
        if start is not None and end is not None and not in_window(issue.created_at, start, end):
            continue
        hours = hours_between(issue.created_at, issue.closed_at)
        if hours is None:
            continue
        if hours < 0:
            logger.debug(
                "Skipping issue with negative resolution time",
                extra={"issue": issue.number, "hours": hours},
            )
            continue
        samples.append(hours)
    return samples


# ── Activity ────────────────────────────────────────────────────────────────


def _compute_activity(records: RecordSet, options: AnalysisOptions) -> ActivityMetrics:
    start, end = options.window_start, options.now

    per_day: Counter = Counter()
    for commit in records.commits:
        if in_window(commit.date, start, end):
            per_day[commit.date.date().isoformat()] += 1
    commits_over_time = [DailyCount(day=day, count=per_day[day]) for day in sorted(per_day)]
    busiest_days = sorted_desc(commits_over_time, key=lambda entry: entry.count)[:5]

    rate = merge_rate(records.pull_requests)
    rate.status = merge_rate_status(rate.merge_rate, options.config)

    resolution = summarize(issue_resolution_hours(records))

    return ActivityMetrics(
        period_start=start,
        period_end=end,
        commits_over_time=commits_over_time,
        busiest_days=busiest_days,
        pr_merge_rate=rate,
        total_prs=len(records.pull_requests),
        issue_resolution=DurationSummary(
            average_hours=resolution["average"],
            median_hours=resolution["median"],
        ),
        active_contributors=len(active_authors(records, start, end)),
    )


async def analyze_activity(records: RecordSet, options: AnalysisOptions) -> ActivityMetrics:
    """Commit cadence, merge rate, issue resolution and active contributors."""
    return run_guarded("activity", ActivityMetrics, options, lambda: _compute_activity(records, options))


# ── Contributors ────────────────────────────────────────────────────────────


def _contribution_stats(records: RecordSet) -> Dict[str, ContributorStat]:
    stats: Dict[str, ContributorStat] = {}

    def _stat(login: str) -> ContributorStat:
        if login not in stats:
            stats[login] = ContributorStat(login=login)
        return stats[login]

    for commit in records.commits:
        if commit.author:
            _stat(commit.author).commits += 1
    for pr in records.pull_requests:
        if pr.author:
            _stat(pr.author).prs += 1
    for pr in records.pull_requests:
        for review in pr.reviews:
            if review.author and review.author != pr.author:
                _stat(review.author).reviews += 1

    for stat in stats.values():
        stat.total = stat.commits + stat.prs + stat.reviews
    return stats


def bus_factor(ranked: List[ContributorStat], config: AnalyticsConfig) -> int:
    """Coarse contribution-concentration heuristic.

    If the top two contributors hold more than half of all contributions the
    bus factor is 2; otherwise it is the contributor count capped at 5.
    """
    if not ranked:
        return 0

    rule = config.bus_factor
    total = sum(stat.total for stat in ranked)
    top = sum(stat.total for stat in ranked[: rule.top_n])
    if total > 0 and safe_divide(top, total) > rule.share_threshold:
        return rule.concentrated_value
    return min(len(ranked), rule.cap)


def _first_activity(records: RecordSet) -> Dict[str, datetime]:
    first_seen: Dict[str, datetime] = {}

    def _see(login: Optional[str], moment: Optional[datetime]) -> None:
        if not login or moment is None:
            return
        if login not in first_seen or moment < first_seen[login]:
            first_seen[login] = moment

    for commit in records.commits:
        _see(commit.author, commit.date)
    for pr in records.pull_requests:
        _see(pr.author, pr.created_at)
        for review in pr.reviews:
            if review.author != pr.author:
                _see(review.author, review.submitted_at)
    return first_seen


def _compute_contributors(records: RecordSet, options: AnalysisOptions) -> ContributorMetrics:
    limit = options.config.top_list_limit
    ranked = sorted_desc(list(_contribution_stats(records).values()), key=lambda stat: stat.total)
    grand_total = sum(stat.total for stat in ranked)

    distribution = [
        ContributionShare(contributor=stat.login, percentage=round(percentage(stat.total, grand_total), 2))
        for stat in ranked[:limit]
    ]

    start = options.window_start
    first_seen = _first_activity(records)
    active = active_authors(records, start, options.now)
    new = sum(1 for login in active if login in first_seen and first_seen[login] >= start)

    return ContributorMetrics(
        top_contributors=ranked[:limit],
        contribution_distribution=distribution,
        total_contributors=len(ranked),
        bus_factor=bus_factor(ranked, options.config),
        new_vs_returning=NewVsReturning(new=new, returning=len(active) - new),
    )


async def analyze_contributors(records: RecordSet, options: AnalysisOptions) -> ContributorMetrics:
    """Contributor ranking, contribution shares, bus factor and newcomer split."""
    return run_guarded("contributors", ContributorMetrics, options, lambda: _compute_contributors(records, options))


# ── Labels ──────────────────────────────────────────────────────────────────


def _compute_labels(records: RecordSet, options: AnalysisOptions) -> LabelMetrics:
    counts: Counter = Counter()
    for item in list(records.issues) + list(records.pull_requests):
        for label in item.labels:
            counts[label] += 1

    labelled_total = sum(counts.values())
    # Counter preserves first-seen order, so the stable sort keeps ties in that order.
    ranked = sorted_desc(list(counts.items()), key=lambda pair: pair[1])
    distribution = [
        LabelShare(label=label, count=count, percentage=round(percentage(count, labelled_total), 2))
        for label, count in ranked[: options.config.top_list_limit]
    ]

    open_days = [hours / HOURS_PER_DAY for hours in issue_resolution_hours(records)]
    lifecycle = summarize(open_days)

    return LabelMetrics(
        label_distribution=distribution,
        most_common_labels=[share.label for share in distribution[:5]],
        issue_lifecycle=IssueLifecycle(
            average_open_days=lifecycle["average"],
            median_open_days=lifecycle["median"],
        ),
        issue_vs_pr_ratio=round(safe_divide(len(records.issues), len(records.pull_requests)), 2),
    )


async def analyze_labels(records: RecordSet, options: AnalysisOptions) -> LabelMetrics:
    """Label distribution, issue lifecycle and issue/PR ratio."""
    return run_guarded("labels", LabelMetrics, options, lambda: _compute_labels(records, options))


# ── Health ──────────────────────────────────────────────────────────────────


def is_reviewed(pr: PullRequest) -> bool:
    """A pull request counts as reviewed once it was approved or had changes requested."""
    if pr.review_decision in REVIEWED_STATES:
        return True
    return any(review.state in REVIEWED_STATES for review in pr.reviews)


def _deployments_per_month(records: RecordSet, now: datetime) -> float:
    release_dates = [release.released_at for release in records.releases if release.released_at is not None]
    if not release_dates:
        return 0.0
    span_days = (now - min(release_dates)).total_seconds() / (HOURS_PER_DAY * 3600.0)
    months = max(1.0, span_days / DAYS_PER_MONTH)
    return round(safe_divide(len(records.releases), months), 2)


def _compute_health(records: RecordSet, options: AnalysisOptions) -> HealthMetrics:
    pull_requests = records.pull_requests
    reviewed = sum(1 for pr in pull_requests if is_reviewed(pr))

    sized = [pr for pr in pull_requests if pr.size is not None]
    additions = round(safe_divide(sum(pr.additions for pr in sized), len(sized)))
    deletions = round(safe_divide(sum(pr.deletions for pr in sized), len(sized)))

    review_hours = [hours for hours in (first_review_hours(pr) for pr in pull_requests) if hours is not None]
    review_summary = summarize(review_hours)

    return HealthMetrics(
        pr_review_coverage=ReviewCoverage(
            reviewed=reviewed,
            total=len(pull_requests),
            coverage_percentage=round(percentage(reviewed, len(pull_requests)), 2),
        ),
        average_pr_size=AveragePrSize(additions=additions, deletions=deletions, total=additions + deletions),
        time_to_first_review=DurationSummary(
            average_hours=review_summary["average"],
            median_hours=review_summary["median"],
        ),
        deployment_frequency=DeploymentFrequency(
            releases=len(records.releases),
            per_month=_deployments_per_month(records, options.now),
        ),
    )


async def analyze_health(records: RecordSet, options: AnalysisOptions) -> HealthMetrics:
    """Review coverage, PR size, time to first review and deployment cadence."""
    return run_guarded("health", HealthMetrics, options, lambda: _compute_health(records, options))
