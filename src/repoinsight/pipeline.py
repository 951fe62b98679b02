"""Pipeline orchestration.

The eight analyzers run concurrently as one fan-out/fan-in; assembly,
validation, benchmarking and narrative generation follow strictly after.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Dict, Optional, Tuple

from .advanced import analyze_correlations, analyze_projections, analyze_review_velocity, analyze_trends
from .analyzers import AnalysisOptions, analyze_activity, analyze_contributors, analyze_health, analyze_labels
from .assembler import assemble_report
from .benchmark import BenchmarkingEngine
from .config import DEFAULT_CONFIG, AnalyticsConfig
from .models import AnalyticsReport, MetricBlock, RecordSet, ValidationResult
from .narrative import NarrativeGenerator
from .sources import assess_completeness
from .validator import ReportValidator

logger = logging.getLogger(__name__)

ANALYZERS = (
    ("activity", analyze_activity),
    ("contributors", analyze_contributors),
    ("labels", analyze_labels),
    ("health", analyze_health),
    ("review_velocity", analyze_review_velocity),
    ("trends", analyze_trends),
    ("correlations", analyze_correlations),
    ("projections", analyze_projections),
)


def _as_utc(moment: datetime) -> datetime:
    """Treat a naive reference time as UTC, matching parsed record timestamps."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


async def run_analyzers(records: RecordSet, options: AnalysisOptions) -> Dict[str, MetricBlock]:
    """Launch every analyzer together and wait for all of them.

    Analyzers absorb their own failures, so the gather never rejects and one
    failing analyzer never cancels the others.
    """
    blocks = await asyncio.gather(*(analyzer(records, options) for _, analyzer in ANALYZERS))
    results = {name: block for (name, _), block in zip(ANALYZERS, blocks)}

    failed = [name for name, block in results.items() if not block.success]
    logger.info(
        "Analyzers finished",
        extra={"repository": options.repository, "analyzers": len(results), "failed": failed},
    )
    return results


async def build_report(
    records: RecordSet,
    repository: str,
    now: Optional[datetime] = None,
    config: AnalyticsConfig = DEFAULT_CONFIG,
) -> Tuple[AnalyticsReport, ValidationResult]:
    """Run the full pipeline inside a running event loop.

    Business logic:
    - Run all analyzers concurrently against the shared record set.
    - Assemble the report with the record counts, then validate it;
      findings are logged but never stop the run.
    - Score the report against the benchmark table and attach the result.
    - Generate and attach the executive narrative.

    Returns:
        ``(report, validation)``; the report is returned even when invalid.
    """
    now = _as_utc(now) if now is not None else datetime.now(timezone.utc)
    options = AnalysisOptions(repository=repository, now=now, config=config)

    results = await run_analyzers(records, options)
    report = assemble_report(repository, now, results, completeness=assess_completeness(records))

    validation = ReportValidator(config).validate(report)
    for finding in validation.errors:
        logger.warning(
            "Report validation error",
            extra={"repository": repository, "field": finding.field, "detail": finding.message},
        )

    benchmark = BenchmarkingEngine().compare(report)
    report.attach_benchmark(benchmark)

    narrative = NarrativeGenerator(config.narrative).generate(report, benchmark)
    report.attach_narrative(narrative)

    logger.info(
        "Report generated",
        extra={
            "repository": repository,
            "valid": validation.valid,
            "errors": len(validation.errors),
            "warnings": len(validation.warnings),
            "overall_score": benchmark.overall_score,
        },
    )
    return report, validation


def generate_report(
    records: RecordSet,
    repository: str,
    now: Optional[datetime] = None,
    config: AnalyticsConfig = DEFAULT_CONFIG,
) -> Tuple[AnalyticsReport, ValidationResult]:
    """Synchronous entry point around ``build_report``."""
    return asyncio.run(build_report(records, repository, now=now, config=config))
