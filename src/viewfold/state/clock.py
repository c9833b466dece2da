"""Activity clock.

Turns the assorted timestamp fields found on rows and events into one
comparable epoch-millisecond value. Nothing here raises: a timestamp
that cannot be parsed simply counts as 0.
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import Any

from pydantic import TypeAdapter, ValidationError

from viewfold.state.records import AggregateRecord

_DATETIME = TypeAdapter(datetime)

UPDATED_FIELD = "updatedAt"
CREATED_FIELD = "createdAt"


def now_millis() -> int:
    return int(time.time() * 1000)


def _parse_rfc2822(value: Any) -> datetime | None:
    if not isinstance(value, str):
        return None
    try:
        return parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None


def to_millis(value: Any) -> int:
    """Parse an ISO or RFC 2822 string, datetime or numeric epoch into epoch millis.

    Numeric inputs follow pydantic's coercion: values up to 2e10 are
    seconds, larger values milliseconds. Naive datetimes are taken as UTC.
    Extended-JSON wrappers (``{"$date": ...}``) are unwrapped first.
    """
    if isinstance(value, Mapping) and "$date" in value:
        value = value["$date"]
    if value is None or value == "" or isinstance(value, bool):
        return 0
    try:
        parsed = _DATETIME.validate_python(value)
    except (ValidationError, ValueError, TypeError, OverflowError):
        fallback = _parse_rfc2822(value)
        if fallback is None:
            return 0
        parsed = fallback
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    try:
        return int(parsed.timestamp() * 1000)
    except (OverflowError, OSError, ValueError):
        return 0


def activity_of(row: Mapping[str, Any]) -> int:
    """Prefer the updated timestamp, fall back to the created one."""
    return to_millis(row.get(UPDATED_FIELD) or row.get(CREATED_FIELD))


def bump(record: AggregateRecord, candidate: int) -> AggregateRecord:
    """Advance ``last_activity_at`` only when *candidate* is strictly newer."""
    if candidate > record.last_activity_at:
        return record.model_copy(update={"last_activity_at": candidate})
    return record
