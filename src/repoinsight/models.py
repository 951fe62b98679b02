"""Domain models for repository activity analytics.

Records are immutable, normalized inputs. Metric blocks are the per-analyzer
results; each carries ``success``/``duration_ms``/``errors`` and defaults to a
zeroed section so a failed analyzer still yields a well-formed block.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


# ── Records ─────────────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class Repository:
    """Opaque ``owner/name`` label for the analyzed repository."""

    owner: str
    name: str

    @property
    def identifier(self) -> str:
        return f"{self.owner}/{self.name}"


@dataclass(frozen=True, slots=True)
class Review:
    """A single review event on a pull request."""

    author: Optional[str]
    state: str
    submitted_at: Optional[datetime]


@dataclass(frozen=True, slots=True)
class PullRequest:
    """A pull request as seen by the analyzers."""

    number: int
    author: Optional[str]
    state: str
    created_at: Optional[datetime]
    closed_at: Optional[datetime] = None
    merged_at: Optional[datetime] = None
    title: str = ""
    labels: Tuple[str, ...] = ()
    additions: Optional[int] = None
    deletions: Optional[int] = None
    reviews: Tuple[Review, ...] = ()
    review_requests: Tuple[str, ...] = ()
    review_decision: Optional[str] = None

    @property
    def size(self) -> Optional[int]:
        """Lines changed, or ``None`` when either count is unknown."""
        if self.additions is None or self.deletions is None:
            return None
        return self.additions + self.deletions

    @property
    def is_merged(self) -> bool:
        return self.merged_at is not None or self.state == "merged"

    @property
    def is_closed_unmerged(self) -> bool:
        return self.state == "closed" and not self.is_merged

    @property
    def is_open(self) -> bool:
        return self.state == "open" and not self.is_merged


@dataclass(frozen=True, slots=True)
class Issue:
    """An issue as seen by the analyzers."""

    number: int
    author: Optional[str]
    state: str
    created_at: Optional[datetime]
    closed_at: Optional[datetime] = None
    title: str = ""
    labels: Tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class Commit:
    """A commit reduced to its author and timestamp."""

    sha: str
    author: Optional[str]
    date: Optional[datetime]


@dataclass(frozen=True, slots=True)
class Release:
    """A published or drafted release."""

    tag_name: str
    created_at: Optional[datetime]
    published_at: Optional[datetime] = None

    @property
    def released_at(self) -> Optional[datetime]:
        return self.published_at or self.created_at


@dataclass(frozen=True, slots=True)
class RecordSet:
    """The immutable record set shared read-only by every analyzer."""

    pull_requests: Tuple[PullRequest, ...] = ()
    issues: Tuple[Issue, ...] = ()
    commits: Tuple[Commit, ...] = ()
    releases: Tuple[Release, ...] = ()


@dataclass(frozen=True, slots=True)
class DataCompleteness:
    """Per-kind record counts and the kinds a record set has none of."""

    pull_requests: int = 0
    issues: int = 0
    commits: int = 0
    releases: int = 0
    missing_kinds: Tuple[str, ...] = ()

    @property
    def is_complete(self) -> bool:
        return not self.missing_kinds


# ── Shared value types ──────────────────────────────────────────────────────


class Trend(str, Enum):
    IMPROVING = "improving"
    DECLINING = "declining"
    STABLE = "stable"


class Direction(str, Enum):
    """Which way a metric has to move to count as better."""

    HIGHER_IS_BETTER = "higher-is-better"
    LOWER_IS_BETTER = "lower-is-better"


@dataclass(slots=True)
class DurationSummary:
    average_hours: float = 0.0
    median_hours: float = 0.0


@dataclass(slots=True)
class DailyCount:
    day: str
    count: int


@dataclass(slots=True)
class Period:
    start: datetime
    end: datetime


# ── Metric blocks ───────────────────────────────────────────────────────────


@dataclass
class MetricBlock:
    """Fields shared by every analyzer result."""

    repository: str = ""
    success: bool = False
    duration_ms: float = 0.0
    errors: List[str] = field(default_factory=list)


@dataclass(slots=True)
class MergeRate:
    merged: int = 0
    closed: int = 0
    merge_rate: float = 0.0
    status: str = "needs_improvement"


@dataclass
class ActivityMetrics(MetricBlock):
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None
    commits_over_time: List[DailyCount] = field(default_factory=list)
    busiest_days: List[DailyCount] = field(default_factory=list)
    pr_merge_rate: MergeRate = field(default_factory=MergeRate)
    total_prs: int = 0
    issue_resolution: DurationSummary = field(default_factory=DurationSummary)
    active_contributors: int = 0


@dataclass(slots=True)
class ContributorStat:
    login: str
    commits: int = 0
    prs: int = 0
    reviews: int = 0
    total: int = 0


@dataclass(slots=True)
class ContributionShare:
    contributor: str
    percentage: float


@dataclass(slots=True)
class NewVsReturning:
    new: int = 0
    returning: int = 0


@dataclass
class ContributorMetrics(MetricBlock):
    top_contributors: List[ContributorStat] = field(default_factory=list)
    contribution_distribution: List[ContributionShare] = field(default_factory=list)
    total_contributors: int = 0
    bus_factor: int = 0
    new_vs_returning: NewVsReturning = field(default_factory=NewVsReturning)


@dataclass(slots=True)
class LabelShare:
    label: str
    count: int
    percentage: float


@dataclass(slots=True)
class IssueLifecycle:
    average_open_days: float = 0.0
    median_open_days: float = 0.0


@dataclass
class LabelMetrics(MetricBlock):
    label_distribution: List[LabelShare] = field(default_factory=list)
    most_common_labels: List[str] = field(default_factory=list)
    issue_lifecycle: IssueLifecycle = field(default_factory=IssueLifecycle)
    issue_vs_pr_ratio: float = 0.0


@dataclass(slots=True)
class ReviewCoverage:
    reviewed: int = 0
    total: int = 0
    coverage_percentage: float = 0.0


@dataclass(slots=True)
class AveragePrSize:
    additions: int = 0
    deletions: int = 0
    total: int = 0


@dataclass(slots=True)
class DeploymentFrequency:
    releases: int = 0
    per_month: float = 0.0
    period: str = "monthly"


@dataclass
class HealthMetrics(MetricBlock):
    pr_review_coverage: ReviewCoverage = field(default_factory=ReviewCoverage)
    average_pr_size: AveragePrSize = field(default_factory=AveragePrSize)
    time_to_first_review: DurationSummary = field(default_factory=DurationSummary)
    deployment_frequency: DeploymentFrequency = field(default_factory=DeploymentFrequency)


@dataclass(slots=True)
class FirstReviewTiming:
    average_hours: float = 0.0
    median_hours: float = 0.0
    p90_hours: float = 0.0


@dataclass(slots=True)
class ApprovalTiming:
    average_days: float = 0.0
    median_days: float = 0.0


@dataclass(slots=True)
class ReviewBottleneck:
    number: int
    title: str
    author: str
    waiting_days: float
    status: str


@dataclass(slots=True)
class ReviewerLoad:
    reviewer: str
    review_count: int
    average_response_hours: float


@dataclass
class ReviewVelocityMetrics(MetricBlock):
    time_to_first_review: FirstReviewTiming = field(default_factory=FirstReviewTiming)
    time_to_approval: ApprovalTiming = field(default_factory=ApprovalTiming)
    bottlenecks: List[ReviewBottleneck] = field(default_factory=list)
    stalled_total: int = 0
    reviewer_load: List[ReviewerLoad] = field(default_factory=list)
    first_review_total: int = 0


@dataclass(slots=True)
class TrendMetric:
    current: float = 0.0
    previous: float = 0.0
    delta: float = 0.0
    trend: Trend = Trend.STABLE


@dataclass(slots=True)
class TrendSet:
    pr_merge_rate: TrendMetric = field(default_factory=TrendMetric)
    time_to_review: TrendMetric = field(default_factory=TrendMetric)
    active_contributors: TrendMetric = field(default_factory=TrendMetric)
    issue_resolution: TrendMetric = field(default_factory=TrendMetric)

    def items(self) -> List[Tuple[str, TrendMetric]]:
        return [
            ("pr_merge_rate", self.pr_merge_rate),
            ("time_to_review", self.time_to_review),
            ("active_contributors", self.active_contributors),
            ("issue_resolution", self.issue_resolution),
        ]


@dataclass(slots=True)
class WeeklyVelocity:
    week: int
    merged_prs: int


@dataclass
class TemporalTrends(MetricBlock):
    current_period: Optional[Period] = None
    previous_period: Optional[Period] = None
    trends: TrendSet = field(default_factory=TrendSet)
    velocity_trend: List[WeeklyVelocity] = field(default_factory=list)


@dataclass(slots=True)
class SizeBucket:
    count: int = 0
    average_lines: int = 0
    average_days: float = 0.0


@dataclass(slots=True)
class SizeCorrelation:
    small: SizeBucket = field(default_factory=SizeBucket)
    medium: SizeBucket = field(default_factory=SizeBucket)
    large: SizeBucket = field(default_factory=SizeBucket)
    correlation: float = 0.0
    sample_size: int = 0


@dataclass(slots=True)
class DayOfWeekImpact:
    day: str
    average_response_hours: float
    prs_submitted: int


@dataclass
class MetricCorrelations(MetricBlock):
    pr_size_vs_time_to_merge: SizeCorrelation = field(default_factory=SizeCorrelation)
    day_of_week_impact: List[DayOfWeekImpact] = field(default_factory=list)


@dataclass(slots=True)
class RangeForecast:
    low: int = 0
    high: int = 0
    confidence: str = "low"


@dataclass(slots=True)
class BurndownPoint:
    week: int
    projected_open: int
    ideal_open: int


@dataclass
class Projections(MetricBlock):
    projection_period: str = "next 30 days"
    prs_to_merge: RangeForecast = field(default_factory=RangeForecast)
    open_issues_at_end: RangeForecast = field(default_factory=RangeForecast)
    release_probability: float = 0.0
    backlog_burndown: List[BurndownPoint] = field(default_factory=list)


# ── Benchmark ───────────────────────────────────────────────────────────────


@dataclass(slots=True)
class PercentileScore:
    key: str
    label: str
    value: float
    median: float
    percentile: int
    rating: str
    description: str

    @property
    def has_data(self) -> bool:
        """``False`` when the value is a zero/negative "insufficient data" sentinel."""
        return self.value > 0


@dataclass(slots=True)
class BenchmarkComparison:
    repository: str
    metrics: Dict[str, PercentileScore]
    overall_score: int
    strengths: List[str] = field(default_factory=list)
    weaknesses: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)


# ── Narrative ───────────────────────────────────────────────────────────────


@dataclass(slots=True)
class Paradox:
    title: str
    description: str
    metrics: List[str] = field(default_factory=list)


@dataclass(slots=True)
class RootCause:
    issue: str
    hypothesis: str
    evidence: List[str]
    confidence: str


@dataclass(slots=True)
class ActionItem:
    priority: int
    action: str
    rationale: str
    expected_impact: str
    timeframe: str


@dataclass(slots=True)
class RiskAssessment:
    level: str = "low"
    factors: List[str] = field(default_factory=list)


@dataclass(slots=True)
class ExecutiveNarrative:
    summary: str
    key_findings: List[str] = field(default_factory=list)
    paradoxes: List[Paradox] = field(default_factory=list)
    root_causes: List[RootCause] = field(default_factory=list)
    action_plan: List[ActionItem] = field(default_factory=list)
    risk_assessment: RiskAssessment = field(default_factory=RiskAssessment)
    projected_outcome: str = ""


# ── Report ──────────────────────────────────────────────────────────────────


@dataclass
class AnalyticsReport:
    """Aggregate root for one pipeline run.

    Built once by the assembler; only the benchmark and narrative stages
    attach their results afterwards. ``data_completeness`` is ``None`` when
    the record counts were not supplied.
    """

    repository: str
    generated_at: datetime
    activity: ActivityMetrics
    contributors: ContributorMetrics
    labels: LabelMetrics
    health: HealthMetrics
    review_velocity: ReviewVelocityMetrics
    trends: TemporalTrends
    correlations: MetricCorrelations
    projections: Projections
    data_completeness: Optional[DataCompleteness] = None
    benchmark: Optional[BenchmarkComparison] = None
    narrative: Optional[ExecutiveNarrative] = None

    def blocks(self) -> List[Tuple[str, MetricBlock]]:
        return [
            ("activity", self.activity),
            ("contributors", self.contributors),
            ("labels", self.labels),
            ("health", self.health),
            ("review_velocity", self.review_velocity),
            ("trends", self.trends),
            ("correlations", self.correlations),
            ("projections", self.projections),
        ]

    def attach_benchmark(self, benchmark: BenchmarkComparison) -> None:
        self.benchmark = benchmark

    def attach_narrative(self, narrative: ExecutiveNarrative) -> None:
        self.narrative = narrative

    def to_dict(self) -> Dict[str, Any]:
        """Return a JSON-ready mapping of the report."""
        return _jsonable(asdict(self))


# ── Validation ──────────────────────────────────────────────────────────────


@dataclass(slots=True)
class ValidationFinding:
    field: str
    message: str
    expected: str = ""
    actual: str = ""
    severity: str = "low"


@dataclass(slots=True)
class ValidationCounters:
    total: int = 0
    passed: int = 0
    failed: int = 0
    warned: int = 0


@dataclass(slots=True)
class ValidationResult:
    valid: bool
    errors: List[ValidationFinding] = field(default_factory=list)
    warnings: List[ValidationFinding] = field(default_factory=list)
    counters: ValidationCounters = field(default_factory=ValidationCounters)


def _jsonable(value: Any) -> Any:
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value
