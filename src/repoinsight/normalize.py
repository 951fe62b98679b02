"""Record normalizer: raw collector payloads into typed, immutable records.

Collectors hand over loosely shaped dictionaries (GitHub CLI JSON, REST
payloads, or replayed exports). Everything is adapted here once so that the
analyzers only ever see the explicit record types from ``models``:

- ``author`` may be a login string or an ``{"login": ...}`` object.
- Labels may be strings or ``{"name": ...}`` objects; blank names become
  ``"unnamed"``.
- Timestamps are ISO-8601 strings (``Z`` suffix allowed); unparseable values
  become ``None`` rather than failing the whole record.
- States are lower-cased; a pull request with ``mergedAt`` is merged.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Iterable, List, Mapping, Optional, Tuple

from .errors import RecordValidationError
from .models import Commit, Issue, PullRequest, Release, Review

logger = logging.getLogger(__name__)

UNNAMED_LABEL = "unnamed"


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp into a timezone-aware UTC datetime.

    Naive values are assumed to be UTC. Returns ``None`` for empty or
    unparseable input.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        normalized = text[:-1] + "+00:00" if text.endswith("Z") else text
        try:
            parsed = datetime.fromisoformat(normalized)
        except ValueError:
            logger.debug("Ignoring unparseable timestamp", extra={"value": text})
            return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _first(raw: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in raw and raw[key] is not None:
            return raw[key]
    return None


def _login(value: Any) -> Optional[str]:
    if isinstance(value, Mapping):
        value = value.get("login") or value.get("name")
    if value is None:
        return None
    login = str(value).strip()
    return login or None


def _labels(value: Any) -> Tuple[str, ...]:
    if isinstance(value, Mapping):
        value = value.get("nodes") or []
    if not isinstance(value, (list, tuple)):
        return ()

    labels: List[str] = []
    for label in value:
        name = label.get("name") if isinstance(label, Mapping) else label
        name = str(name).strip() if name is not None else ""
        labels.append(name or UNNAMED_LABEL)
    return tuple(labels)


def _optional_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _number(raw: Mapping[str, Any], kind: str) -> int:
    value = _first(raw, "number", "id")
    number = _optional_int(value)
    if number is None:
        raise RecordValidationError(f"{kind} record is missing a numeric 'number': {dict(raw)!r}")
    return number


def _require_mapping(raw: Any, kind: str) -> Mapping[str, Any]:
    if not isinstance(raw, Mapping):
        raise RecordValidationError(f"{kind} record must be an object, got {type(raw).__name__}")
    return raw


def normalize_review(raw: Mapping[str, Any]) -> Review:
    return Review(
        author=_login(raw.get("author")),
        state=str(raw.get("state") or "").upper(),
        submitted_at=parse_timestamp(_first(raw, "submittedAt", "submitted_at")),
    )


def normalize_pull_request(raw: Any) -> PullRequest:
    """Adapt one raw pull request payload.

    Raises:
        RecordValidationError: If ``raw`` is not an object or has no number.
    """
    raw = _require_mapping(raw, "Pull request")
    merged_at = parse_timestamp(_first(raw, "mergedAt", "merged_at"))
    state = str(raw.get("state") or "open").lower()
    if merged_at is not None:
        state = "merged"

    raw_reviews = raw.get("reviews") or []
    if isinstance(raw_reviews, Mapping):
        raw_reviews = raw_reviews.get("nodes") or []
    reviews = tuple(normalize_review(review) for review in raw_reviews if isinstance(review, Mapping))

    requests = tuple(
        login
        for login in (_login(request) for request in (_first(raw, "reviewRequests", "review_requests") or []))
        if login
    )

    decision = _first(raw, "reviewDecision", "review_decision")

    return PullRequest(
        number=_number(raw, "Pull request"),
        author=_login(raw.get("author")),
        state=state,
        created_at=parse_timestamp(_first(raw, "createdAt", "created_at")),
        closed_at=parse_timestamp(_first(raw, "closedAt", "closed_at")),
        merged_at=merged_at,
        title=str(raw.get("title") or ""),
        labels=_labels(raw.get("labels")),
        additions=_optional_int(raw.get("additions")),
        deletions=_optional_int(raw.get("deletions")),
        reviews=reviews,
        review_requests=requests,
        review_decision=str(decision).upper() if decision else None,
    )


def normalize_issue(raw: Any) -> Issue:
    raw = _require_mapping(raw, "Issue")
    return Issue(
        number=_number(raw, "Issue"),
        author=_login(raw.get("author")),
        state=str(raw.get("state") or "open").lower(),
        created_at=parse_timestamp(_first(raw, "createdAt", "created_at")),
        closed_at=parse_timestamp(_first(raw, "closedAt", "closed_at")),
        title=str(raw.get("title") or ""),
        labels=_labels(raw.get("labels")),
    )


def normalize_commit(raw: Any) -> Commit:
    """Adapt a commit from either the REST shape or a flat export.

    The REST shape nests the author under ``commit.author`` (name/email/date)
    and the account under a top-level ``author.login``; the login wins.
    """
    raw = _require_mapping(raw, "Commit")
    nested = raw.get("commit") if isinstance(raw.get("commit"), Mapping) else {}
    nested_author = nested.get("author") if isinstance(nested.get("author"), Mapping) else {}

    author = _login(raw.get("author")) or _login(nested_author.get("name")) or _login(nested_author.get("email"))
    date = parse_timestamp(_first(raw, "date", "committedDate", "authoredDate") or nested_author.get("date"))

    return Commit(
        sha=str(_first(raw, "sha", "oid") or ""),
        author=author,
        date=date,
    )


def normalize_release(raw: Any) -> Release:
    raw = _require_mapping(raw, "Release")
    return Release(
        tag_name=str(_first(raw, "tagName", "tag_name", "name") or ""),
        created_at=parse_timestamp(_first(raw, "createdAt", "created_at")),
        published_at=parse_timestamp(_first(raw, "publishedAt", "published_at")),
    )


def normalize_all(raw_records: Iterable[Any], normalizer) -> Tuple[Any, ...]:
    """Apply ``normalizer`` to every raw record, preserving input order."""
    return tuple(normalizer(raw) for raw in raw_records)
