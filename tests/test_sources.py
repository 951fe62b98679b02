"""Tests for record sources and record collection."""

import json
import logging
import sys
from pathlib import Path
from unittest.mock import Mock

import pytest

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from repoinsight.errors import DataSourceError, RecordValidationError
from repoinsight.models import Commit, Issue, RecordSet, Repository
from repoinsight.sources import JsonExportSource, RecordKind, SourceMode, assess_completeness, collect_records

REPO = Repository(owner="acme", name="widgets")


def _write(directory: Path, kind: str, payload) -> None:
    (directory / f"{kind}.json").write_text(json.dumps(payload), encoding="utf-8")


def test_json_export_source_reads_records_in_file_order(tmp_path):
    """Verify replayed records are returned exactly as exported."""
    _write(tmp_path, "issues", [{"number": 2}, {"number": 1}])

    records = JsonExportSource(tmp_path).fetch(REPO, RecordKind.ISSUES, SourceMode.REPLAY)

    assert records == [{"number": 2}, {"number": 1}]


def test_json_export_source_unwraps_items_envelope(tmp_path):
    """Verify an {"items": [...]} envelope is accepted."""
    _write(tmp_path, "releases", {"items": [{"tagName": "v1"}]})

    records = JsonExportSource(tmp_path).fetch(REPO, RecordKind.RELEASES, SourceMode.REPLAY)

    assert records == [{"tagName": "v1"}]


def test_json_export_source_missing_file_returns_empty(tmp_path, caplog):
    """Verify a missing kind file means no records of that kind and is logged as a warning."""
    caplog.set_level(logging.WARNING, logger="repoinsight.sources")

    records = JsonExportSource(tmp_path).fetch(REPO, RecordKind.COMMITS, SourceMode.REPLAY)

    assert records == []
    assert [record.kind for record in caplog.records if record.levelno == logging.WARNING] == ["commits"]


def test_json_export_source_missing_directory_raises(tmp_path):
    """Verify a missing export directory is a data source error."""
    source = JsonExportSource(tmp_path / "does-not-exist")

    with pytest.raises(DataSourceError, match="Export directory not found"):
        source.fetch(REPO, RecordKind.ISSUES, SourceMode.REPLAY)


def test_json_export_source_invalid_json_raises(tmp_path):
    """Verify malformed JSON is reported as a data source error."""
    (tmp_path / "pull_requests.json").write_text("{not json", encoding="utf-8")

    with pytest.raises(DataSourceError, match="Invalid JSON"):
        JsonExportSource(tmp_path).fetch(REPO, RecordKind.PULL_REQUESTS, SourceMode.REPLAY)


def test_json_export_source_non_array_payload_raises(tmp_path):
    """Verify a JSON object without an items array is rejected."""
    _write(tmp_path, "issues", {"number": 1})

    with pytest.raises(DataSourceError, match="Expected a JSON array"):
        JsonExportSource(tmp_path).fetch(REPO, RecordKind.ISSUES, SourceMode.REPLAY)


def test_json_export_source_live_mode_raises(tmp_path):
    """Verify the export source refuses live collection."""
    with pytest.raises(DataSourceError, match="replay mode"):
        JsonExportSource(tmp_path).fetch(REPO, RecordKind.ISSUES, SourceMode.LIVE)


def test_collect_records_normalizes_every_kind():
    """Verify each record kind is fetched once and normalized into the record set."""
    payloads = {
        RecordKind.PULL_REQUESTS: [{"number": 1, "state": "OPEN", "author": {"login": "alice"}}],
        RecordKind.ISSUES: [{"number": 5, "state": "OPEN"}, {"number": 6, "state": "CLOSED"}],
        RecordKind.COMMITS: [{"sha": "abc", "author": {"login": "alice"}, "date": "2026-01-01T00:00:00Z"}],
        RecordKind.RELEASES: [],
    }
    source = Mock()
    source.fetch.side_effect = lambda repository, kind, mode: payloads[kind]

    records = collect_records(source, REPO, SourceMode.REPLAY)

    assert source.fetch.call_count == 4
    source.fetch.assert_any_call(REPO, RecordKind.ISSUES, SourceMode.REPLAY)
    assert [pr.number for pr in records.pull_requests] == [1]
    assert [issue.number for issue in records.issues] == [5, 6]
    assert records.commits[0].author == "alice"
    assert records.releases == ()


def test_collect_records_propagates_source_errors():
    """Verify data source errors are not swallowed during collection."""
    source = Mock()
    source.fetch.side_effect = DataSourceError("boom")

    with pytest.raises(DataSourceError, match="boom"):
        collect_records(source, REPO, SourceMode.REPLAY)


def test_collect_records_rejects_malformed_record(tmp_path):
    """Verify a record without a number fails normalization."""
    _write(tmp_path, "pull_requests", [{"title": "missing number"}])

    with pytest.raises(RecordValidationError):
        collect_records(JsonExportSource(tmp_path), REPO, SourceMode.REPLAY)


def test_assess_completeness_lists_kinds_without_records():
    """Verify record counts are reported and empty kinds listed in kind order."""
    records = RecordSet(
        issues=(Issue(number=1, author="alice", state="open", created_at=None),),
        commits=(Commit(sha="a", author="alice", date=None), Commit(sha="b", author="bob", date=None)),
    )

    completeness = assess_completeness(records)

    assert completeness.issues == 1
    assert completeness.commits == 2
    assert completeness.missing_kinds == ("pull_requests", "releases")
    assert completeness.is_complete is False


def test_assess_completeness_empty_record_set_misses_every_kind():
    """Verify an empty record set lacks every kind."""
    completeness = assess_completeness(RecordSet())

    assert completeness.missing_kinds == ("pull_requests", "issues", "commits", "releases")


def test_collect_records_warns_about_partial_export(tmp_path, caplog):
    """Verify an export without pull requests is collected and flagged as partial."""
    _write(tmp_path, "pull_requests", [])
    _write(tmp_path, "issues", [{"number": 3, "state": "OPEN"}])
    _write(tmp_path, "commits", [{"sha": "abc", "author": {"login": "alice"}, "date": "2026-01-01T00:00:00Z"}])
    _write(tmp_path, "releases", [{"tagName": "v1.0.0", "createdAt": "2026-01-02T00:00:00Z"}])
    caplog.set_level(logging.WARNING, logger="repoinsight.sources")

    records = collect_records(JsonExportSource(tmp_path), REPO, SourceMode.REPLAY)

    assert records.pull_requests == ()
    assert len(records.issues) == 1
    partial = [record for record in caplog.records if record.getMessage().startswith("Partial record set")]
    assert len(partial) == 1
    assert partial[0].missing_kinds == ["pull_requests"]


def test_collect_records_complete_export_logs_no_warning(tmp_path, caplog):
    """Verify a complete export produces no completeness warning."""
    _write(tmp_path, "pull_requests", [{"number": 1, "state": "OPEN", "author": {"login": "alice"}}])
    _write(tmp_path, "issues", [{"number": 3, "state": "OPEN"}])
    _write(tmp_path, "commits", [{"sha": "abc", "author": {"login": "alice"}, "date": "2026-01-01T00:00:00Z"}])
    _write(tmp_path, "releases", [{"tagName": "v1.0.0", "createdAt": "2026-01-02T00:00:00Z"}])
    caplog.set_level(logging.WARNING, logger="repoinsight.sources")

    collect_records(JsonExportSource(tmp_path), REPO, SourceMode.REPLAY)

    assert [record for record in caplog.records if record.levelno >= logging.WARNING] == []
