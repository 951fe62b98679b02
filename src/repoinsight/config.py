"""Configuration tables and validation for the repository insight engine.

Every heuristic constant the analyzers, validator and narrative rely on lives
here as a frozen dataclass so that test fixtures can swap a single table and
auditors have one place to look.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional

from .errors import ConfigurationError

VARIANCE_THRESHOLD_ENV = "REPOINSIGHT_VARIANCE_THRESHOLD"


@dataclass(frozen=True)
class BusFactorRule:
    """Contribution-concentration heuristic used for the bus factor."""

    top_n: int = 2
    share_threshold: float = 0.5
    concentrated_value: int = 2
    cap: int = 5


@dataclass(frozen=True)
class TrendDeadbands:
    """Delta ranges around zero that are classified as ``stable``."""

    pr_merge_rate: float = 5.0
    time_to_review_hours: float = 2.0
    active_contributors: float = 2.0
    issue_resolution_hours: float = 12.0


@dataclass(frozen=True)
class ReviewVelocityLimits:
    """Outlier ceilings and bottleneck rules for review velocity."""

    first_review_ceiling_hours: float = 24.0 * 30
    approval_ceiling_days: float = 90.0
    bottleneck_wait_days: float = 3.0
    bottleneck_limit: int = 10
    reviewer_limit: int = 10


@dataclass(frozen=True)
class CorrelationSettings:
    """PR size buckets and the minimum sample for a Pearson coefficient."""

    min_samples: int = 10
    small_max_lines: int = 100
    large_min_lines: int = 500
    response_ceiling_hours: float = 24.0 * 14


@dataclass(frozen=True)
class ProjectionSettings:
    """Windows used by throughput and backlog projections."""

    window_days: int = 30
    burndown_weeks: int = 6
    weeks_per_month: float = 4.3
    high_confidence_events: int = 10
    medium_confidence_events: int = 5
    issue_band: float = 0.2


@dataclass(frozen=True)
class HealthThresholds:
    """Status cutoffs used when labelling headline metrics."""

    merge_rate_fair: float = 50.0
    merge_rate_excellent: float = 80.0
    coverage_fair: float = 50.0
    coverage_excellent: float = 70.0


@dataclass(frozen=True)
class ValidatorSettings:
    """Tolerances for cross-block consistency checks."""

    variance_threshold: float = 0.10
    lifecycle_variance_threshold: float = 0.50
    delta_epsilon: float = 0.01


@dataclass(frozen=True)
class NarrativeThresholds:
    """Predicate thresholds for paradoxes, root causes and actions."""

    culture_min_coverage: float = 90.0
    culture_max_merge_rate: float = 40.0
    culture_max_review_hours: float = 24.0
    approval_delay_max_first_review_hours: float = 6.0
    approval_delay_min_days: float = 5.0
    concentration_min_contributors: int = 20
    concentration_max_bus_factor: int = 3
    declining_min_metrics: int = 3
    reviewer_share_percent: float = 40.0
    low_release_count: int = 2
    active_merged_prs: int = 10
    size_correlation: float = 0.5
    critical_bus_factor: int = 2
    high_risk_bus_factor: int = 3
    stalled_pr_limit: int = 5
    velocity_drop_points: float = 20.0
    materiality_delta: float = 5.0
    slow_issue_days: float = 14.0
    dominance_percent: float = 50.0


@dataclass(frozen=True)
class AnalyticsConfig:
    """All heuristic tables used by one pipeline run."""

    window_days: int = 30
    top_list_limit: int = 10
    bus_factor: BusFactorRule = field(default_factory=BusFactorRule)
    deadbands: TrendDeadbands = field(default_factory=TrendDeadbands)
    review_velocity: ReviewVelocityLimits = field(default_factory=ReviewVelocityLimits)
    correlation: CorrelationSettings = field(default_factory=CorrelationSettings)
    projection: ProjectionSettings = field(default_factory=ProjectionSettings)
    health: HealthThresholds = field(default_factory=HealthThresholds)
    validator: ValidatorSettings = field(default_factory=ValidatorSettings)
    narrative: NarrativeThresholds = field(default_factory=NarrativeThresholds)


DEFAULT_CONFIG = AnalyticsConfig()


def load_config(variance_threshold: Optional[float] = None) -> AnalyticsConfig:
    """Build and validate the analytics configuration.

    The validator's error/warning boundary can be set explicitly or through
    the ``REPOINSIGHT_VARIANCE_THRESHOLD`` environment variable. All other
    tables use their defaults.

    Args:
        variance_threshold: Relative variance above which a cross-block
            mismatch is an error. Overrides the environment when given.

    Returns:
        A validated ``AnalyticsConfig`` instance.

    Raises:
        ConfigurationError: If the threshold is not a number in ``[0, 1]``.
    """
    if variance_threshold is None:
        raw_value = os.getenv(VARIANCE_THRESHOLD_ENV, "").strip()
        if raw_value:
            try:
                variance_threshold = float(raw_value)
            except ValueError as exc:
                raise ConfigurationError(
                    f"Invalid value for '{VARIANCE_THRESHOLD_ENV}': expected a number, got {raw_value!r}."
                ) from exc

    if variance_threshold is None:
        return DEFAULT_CONFIG

    if not 0.0 <= variance_threshold <= 1.0:
        raise ConfigurationError(
            "Invalid value for 'variance_threshold': expected a number between 0 and 1."
        )

    return AnalyticsConfig(validator=ValidatorSettings(variance_threshold=variance_threshold))
