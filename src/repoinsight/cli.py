"""Command-line argument parsing for repo-insight."""

from __future__ import annotations

import argparse
from datetime import datetime
from typing import Optional, Sequence

from .normalize import parse_timestamp


def _iso_datetime(value: str) -> datetime:
    """Parse an ISO-8601 ``--as-of`` timestamp.

    Args:
        value: Raw command-line argument value.

    Returns:
        A timezone-aware UTC datetime.

    Raises:
        argparse.ArgumentTypeError: If value is not an ISO-8601 timestamp.
    """
    parsed = parse_timestamp(value)
    if parsed is None:
        raise argparse.ArgumentTypeError("must be an ISO-8601 timestamp, e.g. 2026-01-31T00:00:00Z")
    return parsed


def _fraction(value: str) -> float:
    try:
        parsed = float(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError("must be a number") from exc

    if not 0.0 <= parsed <= 1.0:
        raise argparse.ArgumentTypeError("must be between 0 and 1")

    return parsed


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments for report generation.

    Returns:
        Parsed CLI arguments containing the repository identity, export
        directory, reference time, output format and validation options.
    """
    parser = argparse.ArgumentParser(
        prog="repo-insight",
        description=(
            "Generate a repository analytics report (metrics, trends, projections, "
            "benchmark and executive narrative) from exported activity records."
        ),
    )

    parser.add_argument(
        "--owner",
        required=True,
        help="Repository owner (organization or user).",
    )
    parser.add_argument(
        "--name",
        required=True,
        help="Repository name.",
    )
    parser.add_argument(
        "--input",
        required=True,
        help="Directory holding pull_requests.json, issues.json, commits.json and releases.json.",
    )
    parser.add_argument(
        "--as-of",
        type=_iso_datetime,
        default=None,
        help="Reference time for all analysis windows (default: now, UTC).",
    )
    parser.add_argument(
        "--format",
        choices=("markdown", "json"),
        default="markdown",
        help="Output format (default: markdown).",
    )
    parser.add_argument(
        "--variance-threshold",
        type=_fraction,
        default=None,
        help="Relative variance above which a cross-check mismatch is an error (default: 0.10).",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Exit with a non-zero code when the report fails validation.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )

    return parser.parse_args(argv)
