"""
Content history with reversible line diffs.

Only the current text of a content stream is stored in full. Every change is
appended to ``content_history`` as a unified diff from the previous text to
the new one. Any earlier state is rebuilt by starting from the current text
and applying the reversed diffs newest-first until the requested point.

Invariants:
    - Diffs are append-only and ordered by id
    - Identical old/new texts never produce a diff
    - Reconstruction is exact or raises PatchReconstructionError

How to change safely:
    - Keep the stored diff format readable by parse_patch(); old documents
      depend on it
    - Never rewrite existing history rows
"""

from __future__ import annotations

import logging
import sqlite3

from ..config import StorageSettings
from ..errors import PatchParseError, PatchReconstructionError
from ..serialization import now_timestamp, parse_timestamp
from ..storage.database import Database
from ..types import ContentDiff
from .patch import create_patch, parse_patch

logger = logging.getLogger(__name__)


def _row_to_diff(row: sqlite3.Row) -> ContentDiff:
    return ContentDiff(
        id=row["id"],
        content_id=row["content_id"],
        diff=row["diff"],
        created_at=parse_timestamp(row["created_at"]),
    )


class ContentHistory:
    """Diff log and point-in-time reconstruction for content streams.

    Example:
        >>> history = ContentHistory(db)
        >>> history.save_change(content_id, "v1", "v2")
        >>> history.reconstruct_at_version(content_id, 0)
        'v1'
    """

    def __init__(self, db: Database, settings: StorageSettings | None = None) -> None:
        self.db = db
        self.settings = settings or db.settings

    def save_change(self, content_id: int, old_text: str, new_text: str) -> int | None:
        """Append the diff from old_text to new_text.

        Returns:
            The new history row id, or None if the texts are identical
        """
        if old_text == new_text:
            return None

        patch = create_patch(
            old_text,
            new_text,
            context=self.settings.diff_context_lines,
        )
        with self.db.transaction() as conn:
            cursor = conn.execute(
                "INSERT INTO content_history (content_id, diff, created_at) VALUES (?, ?, ?)",
                (content_id, patch.format(), now_timestamp()),
            )
        diff_id = int(cursor.lastrowid)

        logger.debug(
            "Saved content diff",
            extra={"content_id": content_id, "diff_id": diff_id, "hunks": len(patch.hunks)},
        )
        return diff_id

    def get_history(self, content_id: int) -> list[ContentDiff]:
        """All diffs for a stream, oldest first."""
        cursor = self.db.execute(
            "SELECT id, content_id, diff, created_at FROM content_history "
            "WHERE content_id = ? ORDER BY id ASC",
            (content_id,),
        )
        return [_row_to_diff(row) for row in cursor.fetchall()]

    def reconstruct_at_version(self, content_id: int, diff_id: int) -> str | None:
        """Rebuild a stream's text as it was right after a diff.

        Args:
            content_id: Content stream id
            diff_id: History row id to stop at; 0 means before any diff

        Returns:
            The reconstructed text, or None if the stream does not exist

        Raises:
            PatchReconstructionError: If a stored diff cannot be reversed
                against the text it should apply to
        """
        row = self.db.execute("SELECT text FROM content WHERE id = ?", (content_id,)).fetchone()
        if row is None:
            return None

        text = row["text"]
        cursor = self.db.execute(
            "SELECT id, diff FROM content_history WHERE content_id = ? AND id > ? ORDER BY id DESC",
            (content_id, diff_id),
        )
        for history_row in cursor.fetchall():
            try:
                text = parse_patch(history_row["diff"]).reversed().apply(text)
            except (PatchParseError, PatchReconstructionError) as e:
                logger.error(
                    f"Cannot reverse content diff {history_row['id']}: {e}",
                    extra={"content_id": content_id, "diff_id": history_row["id"]},
                )
                raise PatchReconstructionError(
                    f"Cannot reverse diff {history_row['id']} of content {content_id}: {e}",
                    diff_id=history_row["id"],
                    hunk_index=getattr(e, "hunk_index", None),
                ) from e

        return text

    def get_version_count(self, content_id: int) -> int:
        row = self.db.execute(
            "SELECT COUNT(*) FROM content_history WHERE content_id = ?",
            (content_id,),
        ).fetchone()
        return row[0]
