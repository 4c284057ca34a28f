"""
Shared value encoding for transcript documents.

All timestamps written by this package are ISO-8601 UTC strings with
millisecond precision and a trailing "Z" (e.g. 2025-01-15T09:30:00.000Z), so
lexical order in SQLite matches chronological order. All structured values
are written as canonical JSON (sorted keys, compact separators), which is
also the basis for change detection.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Format a datetime as an ISO-8601 UTC string.

    Naive datetimes are taken to be UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def now_timestamp() -> str:
    """Current time formatted for storage."""
    return format_timestamp(utc_now())


def parse_timestamp(value: str) -> datetime:
    """Parse a stored timestamp into an aware UTC datetime.

    Accepts the package's own format, SQLite's ``datetime('now')`` output
    ("YYYY-MM-DD HH:MM:SS") and plain dates.

    Raises:
        ValueError: If the value is not an ISO-8601 timestamp
    """
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _default(value: Any) -> Any:
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, Enum):
        return value.value
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def to_json(value: Any) -> str:
    """Encode a value as canonical JSON.

    Datetimes become ISO-8601 strings, enums their values, and objects with a
    ``to_dict()`` method their dictionary form.
    """
    return json.dumps(
        value,
        default=_default,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )


def from_json(text: str | None) -> Any:
    """Decode JSON text, passing None through."""
    if text is None:
        return None
    return json.loads(text)
