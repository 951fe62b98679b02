"""Report assembly: merge the eight analyzer blocks into one report."""

from __future__ import annotations

from datetime import datetime
from typing import Mapping, Optional

from .models import (
    ActivityMetrics,
    AnalyticsReport,
    ContributorMetrics,
    DataCompleteness,
    HealthMetrics,
    LabelMetrics,
    MetricBlock,
    MetricCorrelations,
    Projections,
    ReviewVelocityMetrics,
    TemporalTrends,
)

BLOCK_TYPES = {
    "activity": ActivityMetrics,
    "contributors": ContributorMetrics,
    "labels": LabelMetrics,
    "health": HealthMetrics,
    "review_velocity": ReviewVelocityMetrics,
    "trends": TemporalTrends,
    "correlations": MetricCorrelations,
    "projections": Projections,
}


def assemble_report(
    repository: str,
    generated_at: datetime,
    results: Mapping[str, MetricBlock],
    completeness: Optional[DataCompleteness] = None,
) -> AnalyticsReport:
    """Build an ``AnalyticsReport`` from named analyzer results.

    No values are computed or corrected here; each block's ``success`` and
    ``errors`` are carried over as produced.

    Args:
        repository: ``owner/name`` label for the report.
        generated_at: Timestamp of the run.
        results: Mapping of block name (see ``BLOCK_TYPES``) to metric block.
        completeness: Record counts the blocks were computed from, if known.

    Returns:
        The assembled report without benchmark or narrative.

    Raises:
        KeyError: If a block is missing from ``results``.
        TypeError: If a block has the wrong type.
    """
    for name, block_type in BLOCK_TYPES.items():
        block = results[name]
        if not isinstance(block, block_type):
            raise TypeError(f"Block '{name}' must be {block_type.__name__}, got {type(block).__name__}")

    return AnalyticsReport(
        repository=repository,
        generated_at=generated_at,
        activity=results["activity"],
        contributors=results["contributors"],
        labels=results["labels"],
        health=results["health"],
        review_velocity=results["review_velocity"],
        trends=results["trends"],
        correlations=results["correlations"],
        projections=results["projections"],
        data_completeness=completeness,
    )
