"""
Audit log for metadata changes.

Each row records one field change with the previous and new value as JSON
(NULL when the value was absent). Reads are newest first, the opposite of
content history, which has to replay chronologically.

Invariants:
    - Rows are append-only
    - A batch of changes is written in one transaction
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from ..serialization import format_timestamp, now_timestamp, parse_timestamp, to_json
from ..storage.database import Database
from ..types import AuditEntry, MetadataChange

logger = logging.getLogger(__name__)

_INSERT = "INSERT INTO audit_log (field, old_value, new_value, changed_at) VALUES (?, ?, ?, ?)"
_SELECT = "SELECT id, field, old_value, new_value, changed_at FROM audit_log"
_NEWEST_FIRST = " ORDER BY changed_at DESC, id DESC"


def _encode(value: Any) -> str | None:
    return None if value is None else to_json(value)


def _row_to_entry(row: sqlite3.Row) -> AuditEntry:
    return AuditEntry(
        id=row["id"],
        field=row["field"],
        old_value=row["old_value"],
        new_value=row["new_value"],
        changed_at=parse_timestamp(row["changed_at"]),
    )


class AuditLog:
    """Append-only record of metadata field changes.

    Example:
        >>> audit = AuditLog(db)
        >>> audit.log_change("title", "Draft", "Final")
        >>> audit.get_field_history("title")[0].new
        'Final'
    """

    def __init__(self, db: Database) -> None:
        self.db = db

    def log_change(self, field: str, old_value: Any, new_value: Any) -> None:
        """Record one field change."""
        with self.db.transaction() as conn:
            conn.execute(_INSERT, (field, _encode(old_value), _encode(new_value), now_timestamp()))

    def log_changes(self, changes: Iterable[MetadataChange]) -> int:
        """Record several field changes atomically.

        Returns:
            Number of rows written
        """
        now = now_timestamp()
        rows = [
            (change.field, _encode(change.old_value), _encode(change.new_value), now)
            for change in changes
        ]
        if not rows:
            return 0

        with self.db.transaction() as conn:
            conn.executemany(_INSERT, rows)

        logger.debug("Logged metadata changes", extra={"count": len(rows)})
        return len(rows)

    def get_trail(self) -> list[AuditEntry]:
        """All audit entries, newest first."""
        cursor = self.db.execute(_SELECT + _NEWEST_FIRST)
        return [_row_to_entry(row) for row in cursor.fetchall()]

    def get_field_history(self, field: str) -> list[AuditEntry]:
        """Audit entries for one metadata key, newest first."""
        cursor = self.db.execute(_SELECT + " WHERE field = ?" + _NEWEST_FIRST, (field,))
        return [_row_to_entry(row) for row in cursor.fetchall()]

    def get_since(self, since: datetime) -> list[AuditEntry]:
        """Audit entries recorded at or after a point in time, newest first."""
        cursor = self.db.execute(
            _SELECT + " WHERE changed_at >= ?" + _NEWEST_FIRST,
            (format_timestamp(since),),
        )
        return [_row_to_entry(row) for row in cursor.fetchall()]

    def get_count(self) -> int:
        return self.db.execute("SELECT COUNT(*) FROM audit_log").fetchone()[0]
