"""
Artifact storage for transcript documents.

Artifacts are typed side payloads (an optional blob plus optional JSON
metadata) kept next to the transcript. Several artifacts may share a type;
readers return the most recent first.

The raw transcript (the untouched speech-to-text output) is stored as an
artifact of the reserved type RAW_TRANSCRIPT_TYPE: the text as UTF-8 bytes,
everything else in the metadata JSON.

Invariants:
    - Artifacts are immutable once written; they can only be deleted
    - This store does not enforce write-once; Transcript does
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Any

from ..serialization import from_json, now_timestamp, parse_timestamp, to_json
from ..storage.database import Database
from ..types import Artifact, RawTranscript

logger = logging.getLogger(__name__)

RAW_TRANSCRIPT_TYPE = "raw_transcript"

# RawTranscript attribute -> metadata JSON key
_RAW_METADATA_KEYS = {
    "model": "model",
    "duration": "duration",
    "audio_file": "audioFile",
    "audio_hash": "audioHash",
    "transcribed_at": "transcribedAt",
    "confidence": "confidence",
}

_SELECT = "SELECT id, type, data, metadata, created_at FROM artifacts"
_NEWEST_FIRST = " ORDER BY created_at DESC, id DESC"


def _row_to_artifact(row: sqlite3.Row) -> Artifact:
    data = row["data"]
    return Artifact(
        id=row["id"],
        type=row["type"],
        data=bytes(data) if data is not None else None,
        metadata=from_json(row["metadata"]),
        created_at=parse_timestamp(row["created_at"]),
    )


class ArtifactStore:
    """Typed blob + metadata storage.

    Example:
        >>> store = ArtifactStore(db)
        >>> artifact_id = store.add_artifact("summary", b"...", {"model": "gpt-4o"})
        >>> store.get_artifact("summary").metadata
        {'model': 'gpt-4o'}
    """

    def __init__(self, db: Database) -> None:
        self.db = db

    def add_artifact(
        self,
        artifact_type: str,
        data: bytes | None,
        metadata: dict[str, Any] | None = None,
    ) -> int:
        """Store an artifact.

        Args:
            artifact_type: Artifact type label
            data: Payload bytes, or None
            metadata: JSON-serializable metadata, or None

        Returns:
            The new artifact id
        """
        with self.db.transaction() as conn:
            cursor = conn.execute(
                "INSERT INTO artifacts (type, data, metadata, created_at) VALUES (?, ?, ?, ?)",
                (
                    artifact_type,
                    data,
                    to_json(metadata) if metadata is not None else None,
                    now_timestamp(),
                ),
            )
        artifact_id = int(cursor.lastrowid)

        logger.debug(
            "Stored artifact",
            extra={
                "artifact_id": artifact_id,
                "artifact_type": artifact_type,
                "size": len(data) if data is not None else 0,
            },
        )
        return artifact_id

    def get_artifact(self, artifact_type: str) -> Artifact | None:
        """Most recently created artifact of a type, or None."""
        row = self.db.execute(
            _SELECT + " WHERE type = ?" + _NEWEST_FIRST + " LIMIT 1",
            (artifact_type,),
        ).fetchone()
        return _row_to_artifact(row) if row else None

    def get_artifacts_by_type(self, artifact_type: str) -> list[Artifact]:
        """All artifacts of a type, newest first."""
        cursor = self.db.execute(_SELECT + " WHERE type = ?" + _NEWEST_FIRST, (artifact_type,))
        return [_row_to_artifact(row) for row in cursor.fetchall()]

    def get_all(self) -> list[Artifact]:
        """All artifacts, newest first."""
        cursor = self.db.execute(_SELECT + _NEWEST_FIRST)
        return [_row_to_artifact(row) for row in cursor.fetchall()]

    def delete_artifact(self, artifact_id: int) -> bool:
        """Delete an artifact.

        Returns:
            True if it existed and was removed
        """
        with self.db.transaction() as conn:
            cursor = conn.execute("DELETE FROM artifacts WHERE id = ?", (artifact_id,))
        return cursor.rowcount > 0

    def has_artifact(self, artifact_type: str) -> bool:
        row = self.db.execute(
            "SELECT 1 FROM artifacts WHERE type = ? LIMIT 1",
            (artifact_type,),
        ).fetchone()
        return row is not None

    # Raw transcript convenience methods

    def set_raw_transcript(self, raw: RawTranscript) -> int:
        """Store the raw transcript artifact.

        Returns:
            The new artifact id
        """
        metadata = {
            key: getattr(raw, attr)
            for attr, key in _RAW_METADATA_KEYS.items()
            if getattr(raw, attr) is not None
        }
        return self.add_artifact(RAW_TRANSCRIPT_TYPE, raw.text.encode("utf-8"), metadata)

    def get_raw_transcript(self) -> RawTranscript | None:
        artifact = self.get_artifact(RAW_TRANSCRIPT_TYPE)
        if artifact is None or artifact.data is None:
            return None

        metadata = artifact.metadata or {}
        return RawTranscript(
            text=artifact.data.decode("utf-8"),
            **{attr: metadata.get(key) for attr, key in _RAW_METADATA_KEYS.items()},
        )

    def has_raw_transcript(self) -> bool:
        return self.has_artifact(RAW_TRANSCRIPT_TYPE)
