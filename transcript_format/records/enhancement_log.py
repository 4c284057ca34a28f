"""
Enhancement log for pipeline processing steps.

Every step the transcription/enhancement pipeline takes can be recorded
with a caller-supplied timestamp, a phase, an action name and optional
details and entity references. Reads are ordered by that timestamp, not by
insertion order, so steps may be logged out of order.

Invariants:
    - Entries are immutable; the log is only ever cleared as a whole
    - A batch of steps is written in one transaction
    - Documents older than schema generation 3 have no log; reads on them
      return empty results
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from ..serialization import format_timestamp, from_json, parse_timestamp, to_json
from ..storage.database import Database
from ..types import EnhancementLogEntry, EnhancementPhase, EnhancementStep, EntityReference

logger = logging.getLogger(__name__)

_INSERT = (
    "INSERT INTO enhancement_log (timestamp, phase, action, details, entities) "
    "VALUES (?, ?, ?, ?, ?)"
)


def _step_params(step: EnhancementStep) -> tuple[Any, ...]:
    return (
        format_timestamp(step.timestamp),
        EnhancementPhase(step.phase).value,
        step.action,
        to_json(step.details) if step.details is not None else None,
        to_json(list(step.entities)) if step.entities is not None else None,
    )


def _row_to_entry(row: sqlite3.Row) -> EnhancementLogEntry:
    entities = from_json(row["entities"])
    return EnhancementLogEntry(
        id=row["id"],
        timestamp=parse_timestamp(row["timestamp"]),
        phase=EnhancementPhase(row["phase"]),
        action=row["action"],
        details=from_json(row["details"]),
        entities=[EntityReference.from_dict(e) for e in entities] if entities is not None else None,
    )


class EnhancementLog:
    """Append-only log of pipeline steps.

    Example:
        >>> log = EnhancementLog(db)
        >>> log.log_step(datetime.now(timezone.utc), EnhancementPhase.ENHANCE, "lookup_person",
        ...              details={"query": "Priya"})
        >>> [e.action for e in log.get_log(phase=EnhancementPhase.ENHANCE)]
        ['lookup_person']
    """

    def __init__(self, db: Database) -> None:
        self.db = db

    def _available(self) -> bool:
        return self.db.schema.table_exists("enhancement_log")

    def log_step(
        self,
        timestamp: datetime,
        phase: EnhancementPhase | str,
        action: str,
        details: dict[str, Any] | None = None,
        entities: list[EntityReference] | None = None,
    ) -> None:
        """Record one pipeline step."""
        self.log_steps([EnhancementStep(timestamp, phase, action, details, entities)])

    def log_steps(self, steps: Iterable[EnhancementStep]) -> int:
        """Record several pipeline steps atomically.

        Returns:
            Number of entries written
        """
        rows = [_step_params(step) for step in steps]
        if not rows:
            return 0

        with self.db.transaction() as conn:
            conn.executemany(_INSERT, rows)

        logger.debug("Logged enhancement steps", extra={"count": len(rows)})
        return len(rows)

    def get_log(
        self,
        phase: EnhancementPhase | str | None = None,
        action: str | None = None,
    ) -> list[EnhancementLogEntry]:
        """Read the log, optionally filtered, ordered by step timestamp."""
        if not self._available():
            return []

        query = "SELECT id, timestamp, phase, action, details, entities FROM enhancement_log"
        conditions: list[str] = []
        params: list[Any] = []

        if phase is not None:
            conditions.append("phase = ?")
            params.append(EnhancementPhase(phase).value)

        if action is not None:
            conditions.append("action = ?")
            params.append(action)

        if conditions:
            query += " WHERE " + " AND ".join(conditions)

        query += " ORDER BY timestamp ASC, id ASC"

        cursor = self.db.execute(query, params)
        return [_row_to_entry(row) for row in cursor.fetchall()]

    def get_log_by_phase(self, phase: EnhancementPhase | str) -> list[EnhancementLogEntry]:
        return self.get_log(phase=phase)

    def get_count(self) -> int:
        if not self._available():
            return 0
        return self.db.execute("SELECT COUNT(*) FROM enhancement_log").fetchone()[0]

    def clear_log(self) -> int:
        """Delete every entry.

        Returns:
            Number of entries removed
        """
        with self.db.transaction() as conn:
            cursor = conn.execute("DELETE FROM enhancement_log")

        logger.debug("Cleared enhancement log", extra={"count": cursor.rowcount})
        return cursor.rowcount
