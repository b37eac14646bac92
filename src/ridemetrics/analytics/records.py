"""Read-only input records for the analytics aggregator.

The caller supplies plain mappings (for example rows pulled from a
database or a JSON export).  Each record type parses one mapping and
raises :class:`MalformedRecordError` when a required field is missing or
unusable; :func:`parse_records` turns a whole batch into typed records,
skipping and counting the bad ones.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Iterable, Mapping, TypeVar

from ridemetrics.errors import MalformedRecordError
from ridemetrics.models import finite_or_none, parse_timestamp

logger = logging.getLogger(__name__)

_R = TypeVar("_R")

EVENT_TYPES = frozenset({
    "upload",
    "recompute",
    "activity_view",
    "metric_view",
    "export",
    "feature_click",
    "activities_list",
})


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------


def read_meta(meta: Any) -> dict[str, Any]:
    """Event metadata as a dict; anything that is not an object is empty."""
    if isinstance(meta, Mapping):
        return dict(meta)
    return {}


def to_number(value: Any) -> float | None:
    """Finite number from a number or a numeric string, else None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str):
        try:
            parsed = float(value.strip())
        except ValueError:
            return None
        return parsed if math.isfinite(parsed) else None
    return None


def _get(payload: Mapping[str, Any], camel: str, snake: str | None = None) -> Any:
    if camel in payload:
        return payload[camel]
    if snake is not None:
        return payload.get(snake)
    return None


def _required(payload: Mapping[str, Any], camel: str, snake: str | None = None) -> Any:
    value = _get(payload, camel, snake)
    if value is None:
        raise MalformedRecordError(f"missing field {camel!r}")
    return value


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)


def _timestamp(payload: Mapping[str, Any], camel: str, snake: str) -> datetime:
    return parse_timestamp(_required(payload, camel, snake))


def _number(payload: Mapping[str, Any], camel: str, snake: str | None = None, default: float = 0.0) -> float:
    value = finite_or_none(_get(payload, camel, snake))
    return default if value is None else value


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class UserRecord:
    id: str
    created_at: datetime
    email: str | None = None
    provider: str | None = None
    utm_source: str | None = None

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "UserRecord":
        return cls(
            id=str(_required(payload, "id")),
            created_at=_timestamp(payload, "createdAt", "created_at"),
            email=_optional_str(payload.get("email")),
            provider=_optional_str(payload.get("provider")),
            utm_source=_optional_str(_get(payload, "utmSource", "utm_source")),
        )


@dataclass(frozen=True)
class ActivityRecord:
    id: str
    start_time: datetime
    user_id: str | None = None
    source: str | None = None
    name: str | None = None

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "ActivityRecord":
        return cls(
            id=str(_required(payload, "id")),
            start_time=_timestamp(payload, "startTime", "start_time"),
            user_id=_optional_str(_get(payload, "userId", "user_id")),
            source=_optional_str(payload.get("source")),
            name=_optional_str(payload.get("name")),
        )


@dataclass(frozen=True)
class EventRecord:
    """A product event.  ``success`` defaults to False when absent."""

    type: str
    created_at: datetime
    user_id: str | None = None
    activity_id: str | None = None
    duration_ms: float | None = None
    success: bool = False
    meta: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "EventRecord":
        kind = _required(payload, "type")
        if kind not in EVENT_TYPES:
            raise MalformedRecordError(f"unknown event type: {kind!r}")
        return cls(
            type=kind,
            created_at=_timestamp(payload, "createdAt", "created_at"),
            user_id=_optional_str(_get(payload, "userId", "user_id")),
            activity_id=_optional_str(_get(payload, "activityId", "activity_id")),
            duration_ms=finite_or_none(_get(payload, "durationMs", "duration_ms")),
            success=bool(payload.get("success", False)),
            meta=read_meta(payload.get("meta")),
        )


@dataclass(frozen=True)
class PageView:
    created_at: datetime
    user_id: str | None = None
    path: str = ""

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "PageView":
        return cls(
            created_at=_timestamp(payload, "createdAt", "created_at"),
            user_id=_optional_str(_get(payload, "userId", "user_id")),
            path=str(payload.get("path") or ""),
        )


@dataclass(frozen=True)
class RequestMetric:
    method: str
    path: str
    status_code: int
    duration_ms: float
    timestamp: datetime
    query_count: float = 0.0
    avg_query_duration_ms: float = 0.0

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "RequestMetric":
        status = finite_or_none(_required(payload, "statusCode", "status_code"))
        if status is None:
            raise MalformedRecordError("statusCode is not a number")
        return cls(
            method=str(_required(payload, "method")).upper(),
            path=str(_required(payload, "path")),
            status_code=int(status),
            duration_ms=_number(payload, "durationMs", "duration_ms"),
            timestamp=_timestamp(payload, "timestamp", "timestamp"),
            query_count=_number(payload, "queryCount", "query_count"),
            avg_query_duration_ms=_number(payload, "avgQueryDurationMs", "avg_query_duration_ms"),
        )


@dataclass(frozen=True)
class ExceptionEvent:
    name: str
    created_at: datetime
    message: str | None = None
    stack: str | None = None

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "ExceptionEvent":
        stack = payload.get("stack")
        return cls(
            name=str(_required(payload, "name")),
            created_at=_timestamp(payload, "createdAt", "created_at"),
            message=_optional_str(payload.get("message")),
            stack=stack if isinstance(stack, str) else None,
        )


@dataclass(frozen=True)
class PendingJob:
    status: str
    enqueued_at: datetime

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "PendingJob":
        return cls(
            status=str(_required(payload, "status")).upper(),
            enqueued_at=_timestamp(payload, "enqueuedAt", "enqueued_at"),
        )


@dataclass(frozen=True)
class MetricDefinitionRef:
    """A metric key plus how many results it has for recent activities."""

    key: str
    name: str
    result_count: int = 0

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "MetricDefinitionRef":
        key = str(_required(payload, "key"))
        return cls(
            key=key,
            name=str(payload.get("name") or key),
            result_count=int(_number(payload, "resultCount", "result_count")),
        )


@dataclass(frozen=True)
class StorageSnapshot:
    """Storage numbers measured by the caller; the core does no I/O."""

    uploads_dir_bytes: float = 0.0
    postgres_bytes: float | None = None
    orphan_count: int = 0
    db_activity_count: int = 0

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any] | None) -> "StorageSnapshot":
        if not payload:
            return cls()
        return cls(
            uploads_dir_bytes=_number(payload, "uploadsDirBytes", "uploads_dir_bytes"),
            postgres_bytes=finite_or_none(_get(payload, "postgresBytes", "postgres_bytes")),
            orphan_count=int(_number(payload, "orphanCount", "orphan_count")),
            db_activity_count=int(_number(payload, "dbActivityCount", "db_activity_count")),
        )


# ---------------------------------------------------------------------------
# Batch parsing
# ---------------------------------------------------------------------------


def parse_records(
    payloads: Iterable[Any] | None,
    parser: Callable[[Mapping[str, Any]], _R],
    kind: str,
) -> tuple[list[_R], int]:
    """Parse a batch, skipping malformed entries.

    Returns:
        ``(records, skipped)``.
    """
    records: list[_R] = []
    skipped = 0
    for index, payload in enumerate(payloads or ()):
        if not isinstance(payload, Mapping):
            skipped += 1
            logger.warning("skipping %s #%d: expected an object, got %s", kind, index, type(payload).__name__)
            continue
        try:
            records.append(parser(payload))
        except MalformedRecordError as exc:
            skipped += 1
            logger.warning("skipping %s #%d: %s", kind, index, exc)
    if skipped:
        logger.info("parsed %d %s record(s), skipped %d", len(records), kind, skipped)
    return records, skipped
