"""Tests for the activity, contributor, label and health analyzers."""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from repoinsight.analyzers import (
    AnalysisOptions,
    analyze_activity,
    analyze_contributors,
    analyze_health,
    analyze_labels,
    first_review_hours,
    merge_rate,
)
from repoinsight.models import Commit, Issue, PullRequest, RecordSet, Release, Review

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
OPTIONS = AnalysisOptions(repository="acme/widgets", now=NOW)


def _ago(days: float = 0, hours: float = 0) -> datetime:
    return NOW - timedelta(days=days, hours=hours)


def _make_pr(
    number: int = 1,
    author: str = "alice",
    state: str = "open",
    created: datetime | None = None,
    merged: datetime | None = None,
    reviews=(),
    labels=(),
    review_decision: str | None = None,
    additions: int | None = None,
    deletions: int | None = None,
) -> PullRequest:
    return PullRequest(
        number=number,
        author=author,
        state=state,
        created_at=created or _ago(days=10),
        merged_at=merged,
        labels=tuple(labels),
        reviews=tuple(reviews),
        review_decision=review_decision,
        additions=additions,
        deletions=deletions,
    )


def _commits(author: str, count: int, when: datetime | None = None):
    return [Commit(sha=f"{author}-{index}", author=author, date=when or _ago(days=5)) for index in range(count)]


def test_merge_rate_ignores_open_pull_requests():
    """Verify open pull requests do not count towards the merge rate."""
    prs = [
        _make_pr(1, state="merged", merged=_ago(1)),
        _make_pr(2, state="closed"),
        _make_pr(3, state="open"),
    ]

    rate = merge_rate(prs)

    assert rate.merged == 1
    assert rate.closed == 1
    assert rate.merge_rate == 50.0


@pytest.mark.asyncio
async def test_analyze_activity_eighteen_of_twenty_merged_is_excellent():
    """Verify 18 merged and 2 closed pull requests give a 90% excellent merge rate."""
    prs = [_make_pr(index, state="merged", merged=_ago(2)) for index in range(18)]
    prs += [_make_pr(100 + index, state="closed") for index in range(2)]

    activity = await analyze_activity(RecordSet(pull_requests=tuple(prs)), OPTIONS)

    assert activity.success is True
    assert activity.pr_merge_rate.merged == 18
    assert activity.pr_merge_rate.closed == 2
    assert activity.pr_merge_rate.merge_rate == 90.0
    assert activity.pr_merge_rate.status == "excellent"
    assert activity.total_prs == 20


@pytest.mark.asyncio
async def test_analyze_activity_groups_commits_by_day_in_window():
    """Verify commits are bucketed per UTC day, ascending, and old commits are ignored."""
    commits = (
        Commit(sha="a", author="alice", date=_ago(days=2)),
        Commit(sha="b", author="bob", date=_ago(days=2, hours=1)),
        Commit(sha="c", author="alice", date=_ago(days=1)),
        Commit(sha="d", author="carol", date=_ago(days=40)),
    )

    activity = await analyze_activity(RecordSet(commits=commits), OPTIONS)

    assert [(entry.day, entry.count) for entry in activity.commits_over_time] == [
        ("2026-02-27", 2),
        ("2026-02-28", 1),
    ]
    assert activity.busiest_days[0].day == "2026-02-27"
    assert activity.active_contributors == 2
    assert activity.period_start == NOW - timedelta(days=30)
    assert activity.period_end == NOW


@pytest.mark.asyncio
async def test_analyze_activity_issue_resolution_skips_open_and_negative():
    """Verify only closed issues with a non-negative duration are summarized."""
    issues = (
        Issue(number=1, author="a", state="closed", created_at=_ago(days=3), closed_at=_ago(days=2)),
        Issue(number=2, author="a", state="closed", created_at=_ago(days=4), closed_at=_ago(days=1)),
        Issue(number=3, author="a", state="open", created_at=_ago(days=4)),
        Issue(number=4, author="a", state="closed", created_at=_ago(days=1), closed_at=_ago(days=2)),
    )

    activity = await analyze_activity(RecordSet(issues=issues), OPTIONS)

    assert activity.issue_resolution.average_hours == 48.0
    assert activity.issue_resolution.median_hours == 72.0


@pytest.mark.asyncio
async def test_analyze_contributors_concentrated_project_has_bus_factor_two():
    """Verify a dominant contributor pair yields bus factor 2 and stable ranking."""
    commits = _commits("alice", 60) + _commits("bob", 5) + _commits("carol", 5)

    contributors = await analyze_contributors(RecordSet(commits=tuple(commits)), OPTIONS)

    assert contributors.total_contributors == 3
    assert contributors.bus_factor == 2
    assert [stat.login for stat in contributors.top_contributors] == ["alice", "bob", "carol"]
    assert contributors.contribution_distribution[0].percentage == 85.71
    assert contributors.top_contributors[0].total == 60


@pytest.mark.asyncio
async def test_analyze_contributors_spread_project_caps_bus_factor_at_five():
    """Verify evenly spread work yields the contributor count capped at five."""
    commits = []
    for login in ("a", "b", "c", "d", "e", "f"):
        commits += _commits(login, 10)

    contributors = await analyze_contributors(RecordSet(commits=tuple(commits)), OPTIONS)

    assert contributors.total_contributors == 6
    assert contributors.bus_factor == 5


@pytest.mark.asyncio
async def test_analyze_contributors_top_two_at_exactly_half_is_not_concentrated():
    """Verify a top-2 share of exactly 50% gives the contributor count, not 2."""
    commits = []
    for login in ("a", "b", "c", "d"):
        commits += _commits(login, 10)

    contributors = await analyze_contributors(RecordSet(commits=tuple(commits)), OPTIONS)

    assert contributors.total_contributors == 4
    assert contributors.bus_factor == 4


@pytest.mark.asyncio
async def test_analyze_contributors_top_two_just_over_half_is_concentrated():
    """Verify a top-2 share just above 50% gives bus factor 2."""
    commits = _commits("a", 11) + _commits("b", 10) + _commits("c", 10) + _commits("d", 9)

    contributors = await analyze_contributors(RecordSet(commits=tuple(commits)), OPTIONS)

    assert contributors.total_contributors == 4
    assert contributors.bus_factor == 2


@pytest.mark.asyncio
async def test_analyze_contributors_small_spread_team_uses_contributor_count():
    """Verify fewer than five evenly contributing people give their own count."""
    pull_requests = tuple(
        _make_pr(number=index, author=login, reviews=(Review(author=reviewer, state="APPROVED", submitted_at=_ago(days=9)),))
        for index, (login, reviewer) in enumerate((("a", "b"), ("b", "c"), ("c", "d"), ("d", "a")), start=1)
    )
    commits = _commits("a", 2) + _commits("b", 2) + _commits("c", 2) + _commits("d", 2)

    contributors = await analyze_contributors(RecordSet(pull_requests=pull_requests, commits=tuple(commits)), OPTIONS)

    assert [stat.total for stat in contributors.top_contributors] == [4, 4, 4, 4]
    assert contributors.bus_factor == 4


@pytest.mark.asyncio
async def test_analyze_contributors_does_not_count_self_reviews():
    """Verify reviews by the pull request author are not contributions."""
    pr = _make_pr(
        reviews=[
            Review(author="alice", state="COMMENTED", submitted_at=_ago(days=9)),
            Review(author="bob", state="APPROVED", submitted_at=_ago(days=9)),
        ]
    )

    contributors = await analyze_contributors(RecordSet(pull_requests=(pr,)), OPTIONS)

    stats = {stat.login: stat for stat in contributors.top_contributors}
    assert stats["alice"].prs == 1
    assert stats["alice"].reviews == 0
    assert stats["bob"].reviews == 1


@pytest.mark.asyncio
async def test_analyze_contributors_splits_new_and_returning():
    """Verify contributors first seen inside the window count as new."""
    commits = (
        Commit(sha="1", author="veteran", date=_ago(days=40)),
        Commit(sha="2", author="veteran", date=_ago(days=1)),
        Commit(sha="3", author="newcomer", date=_ago(days=2)),
    )

    contributors = await analyze_contributors(RecordSet(commits=commits), OPTIONS)

    assert contributors.new_vs_returning.new == 1
    assert contributors.new_vs_returning.returning == 1


@pytest.mark.asyncio
async def test_analyze_labels_keeps_first_seen_order_for_ties():
    """Verify label shares are computed over all labels with ties in first-seen order."""
    issues = (
        Issue(number=1, author="a", state="open", created_at=_ago(days=1), labels=("bug",)),
        Issue(number=2, author="a", state="open", created_at=_ago(days=1), labels=("bug", "docs")),
    )
    prs = (_make_pr(1, labels=("docs",)), _make_pr(2, labels=("feature",)))

    labels = await analyze_labels(RecordSet(pull_requests=prs, issues=issues), OPTIONS)

    assert [(share.label, share.count, share.percentage) for share in labels.label_distribution] == [
        ("bug", 2, 40.0),
        ("docs", 2, 40.0),
        ("feature", 1, 20.0),
    ]
    assert labels.most_common_labels == ["bug", "docs", "feature"]
    assert labels.issue_vs_pr_ratio == 1.0


@pytest.mark.asyncio
async def test_analyze_health_review_coverage_counts_decisions():
    """Verify approvals and change requests count as reviewed, comments do not."""
    created = _ago(days=5)
    prs = (
        _make_pr(1, created=created, reviews=[Review(author="bob", state="APPROVED", submitted_at=created + timedelta(hours=2))]),
        _make_pr(2, created=created, review_decision="CHANGES_REQUESTED"),
        _make_pr(3, created=created, reviews=[Review(author="bob", state="COMMENTED", submitted_at=created + timedelta(hours=4))]),
        _make_pr(4, created=created),
    )

    health = await analyze_health(RecordSet(pull_requests=prs), OPTIONS)

    assert health.pr_review_coverage.reviewed == 2
    assert health.pr_review_coverage.total == 4
    assert health.pr_review_coverage.coverage_percentage == 50.0
    assert health.time_to_first_review.average_hours == 3.0


@pytest.mark.asyncio
async def test_analyze_health_average_pr_size_skips_unknown_sizes():
    """Verify PRs without line counts are excluded from the size average."""
    prs = (
        _make_pr(1, additions=100, deletions=20),
        _make_pr(2, additions=50, deletions=10),
        _make_pr(3),
    )

    health = await analyze_health(RecordSet(pull_requests=prs), OPTIONS)

    assert health.average_pr_size.additions == 75
    assert health.average_pr_size.deletions == 15
    assert health.average_pr_size.total == 90


@pytest.mark.asyncio
async def test_analyze_health_deployments_per_month_over_release_span():
    """Verify release frequency is releases per 30-day month since the first release."""
    releases = (
        Release(tag_name="v1", created_at=_ago(days=90)),
        Release(tag_name="v2", created_at=_ago(days=45)),
        Release(tag_name="v3", created_at=_ago(days=40), published_at=_ago(days=5)),
    )

    health = await analyze_health(RecordSet(releases=releases), OPTIONS)

    assert health.deployment_frequency.releases == 3
    assert health.deployment_frequency.per_month == 1.0


@pytest.mark.asyncio
async def test_base_analyzers_on_empty_record_set_succeed_with_zeros():
    """Verify empty input is not an error and yields zeroed sections."""
    empty = RecordSet()

    activity = await analyze_activity(empty, OPTIONS)
    contributors = await analyze_contributors(empty, OPTIONS)
    labels = await analyze_labels(empty, OPTIONS)
    health = await analyze_health(empty, OPTIONS)

    assert all(block.success for block in (activity, contributors, labels, health))
    assert activity.pr_merge_rate.merge_rate == 0.0
    assert activity.pr_merge_rate.status == "needs_improvement"
    assert contributors.bus_factor == 0
    assert labels.issue_vs_pr_ratio == 0.0
    assert health.pr_review_coverage.coverage_percentage == 0.0
    assert health.deployment_frequency.per_month == 0.0


@pytest.mark.asyncio
async def test_analyzer_failure_returns_unsuccessful_block():
    """Verify an exception inside an analyzer becomes a failed, zeroed block."""
    activity = await analyze_activity(None, OPTIONS)

    assert activity.success is False
    assert activity.repository == "acme/widgets"
    assert activity.errors and activity.errors[0].startswith("activity:")
    assert activity.total_prs == 0
    assert activity.duration_ms >= 0


def test_first_review_hours_ignores_author_and_negative_reviews():
    """Verify the first review comes from someone other than the author."""
    created = _ago(days=3)
    pr = _make_pr(
        created=created,
        reviews=[
            Review(author="alice", state="COMMENTED", submitted_at=created + timedelta(hours=1)),
            Review(author="bob", state="APPROVED", submitted_at=created + timedelta(hours=5)),
        ],
    )
    early = _make_pr(
        created=created,
        reviews=[Review(author="bob", state="APPROVED", submitted_at=created - timedelta(hours=1))],
    )

    assert first_review_hours(pr) == 5.0
    assert first_review_hours(early) is None
