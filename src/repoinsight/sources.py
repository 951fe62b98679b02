"""Record sources: where raw repository records come from.

The engine consumes records through ``RecordSource.fetch``. Live collection
(API polling, authentication) belongs to an external collector; this module
ships the replay source that reads a previously exported JSON directory with
one file per record kind::

    export/
        pull_requests.json
        issues.json
        commits.json
        releases.json
"""

from __future__ import annotations

import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Protocol, Union

from .errors import DataSourceError
from .models import DataCompleteness, RecordSet, Repository
from .normalize import (
    normalize_all,
    normalize_commit,
    normalize_issue,
    normalize_pull_request,
    normalize_release,
)

logger = logging.getLogger(__name__)


class RecordKind(str, Enum):
    PULL_REQUESTS = "pull_requests"
    ISSUES = "issues"
    COMMITS = "commits"
    RELEASES = "releases"


class SourceMode(str, Enum):
    """Whether records are fetched live or replayed from an export."""

    LIVE = "live"
    REPLAY = "replay"


class RecordSource(Protocol):
    def fetch(self, repository: Repository, kind: RecordKind, mode: SourceMode) -> List[Dict[str, Any]]:
        ...


class JsonExportSource:
    """Replay records from a directory of ``<kind>.json`` files.

    A missing file means no records of that kind and is logged as a
    warning. Each file must hold a JSON array of objects.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def fetch(self, repository: Repository, kind: RecordKind, mode: SourceMode) -> List[Dict[str, Any]]:
        """Load the raw records of one kind.

        Args:
            repository: Repository the export belongs to; used as a log label.
            kind: Record kind to load.
            mode: Must be ``SourceMode.REPLAY``.

        Returns:
            The raw record dictionaries in file order.

        Raises:
            DataSourceError: If live mode is requested, the export directory
                does not exist, or a file cannot be read or parsed.
        """
        if mode is not SourceMode.REPLAY:
            raise DataSourceError(
                f"JsonExportSource only supports replay mode; live collection of '{kind.value}' "
                "must be done by an external collector."
            )

        if not self.path.is_dir():
            raise DataSourceError(f"Export directory not found: {self.path}")

        file_path = self.path / f"{kind.value}.json"
        if not file_path.exists():
            logger.warning(
                "No export file for record kind; treating as empty",
                extra={"repository": repository.identifier, "kind": kind.value, "path": str(file_path)},
            )
            return []

        try:
            with file_path.open("r", encoding="utf-8") as handle:
                payload = json.load(handle)
        except json.JSONDecodeError as exc:
            raise DataSourceError(f"Invalid JSON in {file_path}: {exc}") from exc
        except OSError as exc:
            raise DataSourceError(f"Could not read {file_path}: {exc}") from exc

        if isinstance(payload, dict) and isinstance(payload.get("items"), list):
            payload = payload["items"]

        if not isinstance(payload, list):
            raise DataSourceError(f"Expected a JSON array in {file_path}, got {type(payload).__name__}")

        logger.debug(
            "Loaded exported records",
            extra={"repository": repository.identifier, "kind": kind.value, "count": len(payload)},
        )
        return payload


def assess_completeness(records: RecordSet) -> DataCompleteness:
    """Count records per kind and list the kinds with no records at all.

    A kind with zero records is reported as missing, whether the export
    omitted it or held an empty array, since metrics built on it are
    indistinguishable from an idle repository.
    """
    counts = {
        RecordKind.PULL_REQUESTS: len(records.pull_requests),
        RecordKind.ISSUES: len(records.issues),
        RecordKind.COMMITS: len(records.commits),
        RecordKind.RELEASES: len(records.releases),
    }
    return DataCompleteness(
        pull_requests=counts[RecordKind.PULL_REQUESTS],
        issues=counts[RecordKind.ISSUES],
        commits=counts[RecordKind.COMMITS],
        releases=counts[RecordKind.RELEASES],
        missing_kinds=tuple(kind.value for kind, count in counts.items() if count == 0),
    )


def collect_records(source: RecordSource, repository: Repository, mode: SourceMode) -> RecordSet:
    """Fetch every record kind from ``source`` and normalize it into a ``RecordSet``.

    A partial record set is still returned; the kinds it lacks are logged
    as a warning.

    Raises:
        DataSourceError: Propagated from the source.
        RecordValidationError: If a raw record cannot be normalized.
    """
    pull_requests = normalize_all(source.fetch(repository, RecordKind.PULL_REQUESTS, mode), normalize_pull_request)
    issues = normalize_all(source.fetch(repository, RecordKind.ISSUES, mode), normalize_issue)
    commits = normalize_all(source.fetch(repository, RecordKind.COMMITS, mode), normalize_commit)
    releases = normalize_all(source.fetch(repository, RecordKind.RELEASES, mode), normalize_release)
    records = RecordSet(pull_requests=pull_requests, issues=issues, commits=commits, releases=releases)

    logger.info(
        "Collected repository records",
        extra={
            "repository": repository.identifier,
            "mode": mode.value,
            "pull_requests": len(pull_requests),
            "issues": len(issues),
            "commits": len(commits),
            "releases": len(releases),
        },
    )

    completeness = assess_completeness(records)
    if not completeness.is_complete:
        logger.warning(
            "Partial record set; metrics for missing kinds will read as zero",
            extra={"repository": repository.identifier, "missing_kinds": list(completeness.missing_kinds)},
        )

    return records
