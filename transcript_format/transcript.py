"""
Transcript - the primary API for working with transcript documents.

A Transcript owns one open document file and composes the stores kept in
it: the metadata record, the content stream with its diff history, the
metadata audit log, artifacts and the enhancement log. Every mutating
method runs as one transaction, so it either completes fully or leaves the
file unchanged.

Lifecycle:
    LOADING -> READY -> CLOSED

Invariants:
    - The access mode is fixed at open; read-only handles reject every
      mutation with AccessViolationError before touching the file
    - The raw transcript artifact is write-once
    - An unchanged value never produces a content diff or audit row
    - The metadata cache is dropped inside the same transaction as any
      metadata write

Thread safety:
    A Transcript is not safe for concurrent use from several threads.
    Different processes may open the same file; SQLite's WAL mode allows one
    writer and many readers.

Example:
    >>> t = Transcript.create("standup.pkl", TranscriptMetadata(title="Standup"))
    >>> t.update_content("First version")
    >>> t.update_content("Second version")
    >>> t.get_version_count()
    1
    >>> t.close()
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable, Mapping
from dataclasses import replace
from datetime import datetime
from enum import Enum
from pathlib import Path
from types import TracebackType
from typing import Any

from .config import StorageSettings
from .errors import (
    AccessViolationError,
    ConflictError,
    DocumentClosedError,
    WriteOnceViolationError,
)
from .history import ContentHistory
from .records import RAW_TRANSCRIPT_TYPE, ArtifactStore, AuditLog, EnhancementLog, MetadataCodec
from .serialization import now_timestamp
from .storage import Database
from .types import (
    Artifact,
    AuditEntry,
    ContentDiff,
    ContentType,
    EnhancementLogEntry,
    EnhancementPhase,
    EnhancementStep,
    EntityReference,
    MetadataChange,
    RawTranscript,
    TranscriptHistory,
    TranscriptMetadata,
)

logger = logging.getLogger(__name__)


class TranscriptState(Enum):
    """Lifecycle state of a Transcript handle."""

    LOADING = "loading"
    READY = "ready"
    CLOSED = "closed"


def _discard_file(path: Path) -> None:
    for candidate in (path, Path(f"{path}-wal"), Path(f"{path}-shm")):
        candidate.unlink(missing_ok=True)


class Transcript:
    """An open transcript document.

    Use Transcript.create() or Transcript.open() rather than the constructor.
    """

    def __init__(self, db: Database) -> None:
        self._db = db
        self._state = TranscriptState.LOADING
        self._codec = MetadataCodec(db)
        self._history = ContentHistory(db)
        self._audit = AuditLog(db)
        self._artifacts = ArtifactStore(db)
        self._enhancement_log = EnhancementLog(db)
        self._metadata: TranscriptMetadata | None = None
        self._content: str | None = None
        self._content_id: int | None = None

    @classmethod
    def create(
        cls,
        file_path: str | Path,
        metadata: TranscriptMetadata,
        settings: StorageSettings | None = None,
    ) -> Transcript:
        """Create a new transcript file.

        Args:
            file_path: Path of the new document
            metadata: Initial metadata; an id is generated if it has none
            settings: Storage settings

        Returns:
            A writable Transcript with empty content

        Raises:
            ConflictError: If the file already exists
        """
        path = Path(file_path)
        if path.exists():
            raise ConflictError(str(path))

        record = replace(metadata, id=metadata.id or str(uuid.uuid4()))

        db = Database.open(path, read_only=False, create=True, settings=settings)
        transcript = cls(db)
        try:
            transcript._initialize(record)
        except Exception:
            db.close()
            _discard_file(path)
            raise

        logger.info(f"Created transcript {record.id}", extra={"path": str(path), "id": record.id})
        return transcript

    @classmethod
    def open(
        cls,
        file_path: str | Path,
        read_only: bool = False,
        settings: StorageSettings | None = None,
    ) -> Transcript:
        """Open an existing transcript file.

        Writable opens migrate the schema and backfill a missing identity.

        Raises:
            DocumentNotFoundError: If the file does not exist
            SchemaError: If the file is not a valid transcript document
        """
        db = Database.open(file_path, read_only=read_only, create=False, settings=settings)
        transcript = cls(db)
        try:
            transcript._load()
        except Exception:
            db.close()
            raise

        logger.info(
            "Opened transcript",
            extra={"path": str(file_path), "read_only": read_only},
        )
        return transcript

    def _initialize(self, metadata: TranscriptMetadata) -> None:
        now = now_timestamp()
        with self._db.transaction() as conn:
            self._codec.save(metadata)
            cursor = conn.execute(
                "INSERT INTO content (type, text, created_at, updated_at) VALUES (?, ?, ?, ?)",
                (ContentType.ENHANCED.value, "", now, now),
            )
            stored = self._codec.load()

        self._content_id = int(cursor.lastrowid)
        self._content = ""
        self._metadata = stored
        self._state = TranscriptState.READY

    def _load(self) -> None:
        if not self.read_only:
            self._codec.ensure_identity()
        self._metadata = self._codec.load()

        row = self._db.execute(
            "SELECT id, text FROM content WHERE type = ? ORDER BY updated_at DESC, id DESC LIMIT 1",
            (ContentType.ENHANCED.value,),
        ).fetchone()
        if row is not None:
            self._content_id = row["id"]
            self._content = row["text"]

        self._state = TranscriptState.READY

    def _require_open(self) -> None:
        if self._state is TranscriptState.CLOSED:
            raise DocumentClosedError(str(self.file_path))

    def _require_writable(self, operation: str) -> None:
        self._require_open()
        if self.read_only:
            raise AccessViolationError(operation, str(self.file_path))

    # Properties

    @property
    def file_path(self) -> Path:
        return self._db.path

    @property
    def read_only(self) -> bool:
        return self._db.read_only

    @property
    def state(self) -> TranscriptState:
        return self._state

    @property
    def database(self) -> Database:
        """The underlying database, for advanced use."""
        self._require_open()
        return self._db

    @property
    def metadata(self) -> TranscriptMetadata:
        """The metadata record (reloaded after any metadata update)."""
        self._require_open()
        if self._metadata is None:
            self._metadata = self._codec.load()
        return self._metadata

    @property
    def content(self) -> str:
        """The current enhanced transcript text."""
        self._require_open()
        return self._content or ""

    @property
    def content_id(self) -> int | None:
        return self._content_id

    @property
    def raw_transcript(self) -> RawTranscript | None:
        self._require_open()
        return self._artifacts.get_raw_transcript()

    @property
    def has_raw_transcript(self) -> bool:
        self._require_open()
        return self._artifacts.has_raw_transcript()

    # Content operations

    def update_content(self, text: str) -> None:
        """Replace the transcript text, recording a diff.

        The first change away from the empty text of a new transcript is not
        recorded, since a diff from nothing carries no history.

        Raises:
            AccessViolationError: If the transcript is read-only
        """
        self._require_writable("update content")

        old_text = self._content or ""
        if old_text == text:
            return

        now = now_timestamp()
        with self._db.transaction() as conn:
            if self._content_id is None:
                cursor = conn.execute(
                    "INSERT INTO content (type, text, created_at, updated_at) VALUES (?, ?, ?, ?)",
                    (ContentType.ENHANCED.value, text, now, now),
                )
                content_id = int(cursor.lastrowid)
            else:
                content_id = self._content_id
                initial_fill = old_text == "" and self._history.get_version_count(content_id) == 0
                if not initial_fill:
                    self._history.save_change(content_id, old_text, text)
                conn.execute(
                    "UPDATE content SET text = ?, updated_at = ? WHERE id = ?",
                    (text, now, content_id),
                )

        self._content_id = content_id
        self._content = text

    # Metadata operations

    def update_metadata(
        self,
        updates: TranscriptMetadata | Mapping[str, Any] | None = None,
        **fields: Any,
    ) -> list[MetadataChange]:
        """Update metadata fields and record each change in the audit log.

        Args:
            updates: Partial record or mapping of field name to value
            **fields: Further field values by attribute name

        Returns:
            The changes that were written

        Raises:
            AccessViolationError: If the transcript is read-only
            UnknownFieldError: If a field name is not a metadata field
        """
        self._require_writable("update metadata")

        if isinstance(updates, TranscriptMetadata):
            merged: Any = updates
            if fields:
                merged = replace(updates, **fields)
        else:
            merged = {**(updates or {}), **fields}

        with self._db.transaction():
            changes = self._codec.update(merged)
            self._audit.log_changes(changes)
            self._metadata = None

        if changes:
            logger.info(
                "Updated transcript metadata",
                extra={"path": str(self.file_path), "fields": [c.field for c in changes]},
            )
        return changes

    # Artifact operations

    def set_raw_transcript(self, raw: RawTranscript) -> int:
        """Store the raw transcript (write-once).

        Raises:
            AccessViolationError: If the transcript is read-only
            WriteOnceViolationError: If a raw transcript already exists
        """
        self._require_writable("set raw transcript")

        with self._db.transaction():
            if self._artifacts.has_raw_transcript():
                raise WriteOnceViolationError(RAW_TRANSCRIPT_TYPE)
            return self._artifacts.set_raw_transcript(raw)

    def add_artifact(
        self,
        artifact_type: str,
        data: bytes | None,
        metadata: dict[str, Any] | None = None,
    ) -> int:
        """Store a custom artifact.

        The reserved raw transcript type stays write-once here too.

        Raises:
            AccessViolationError: If the transcript is read-only
            WriteOnceViolationError: If adding a second raw transcript
        """
        self._require_writable("add artifact")

        with self._db.transaction():
            if artifact_type == RAW_TRANSCRIPT_TYPE and self._artifacts.has_raw_transcript():
                raise WriteOnceViolationError(RAW_TRANSCRIPT_TYPE)
            return self._artifacts.add_artifact(artifact_type, data, metadata)

    def get_artifact(self, artifact_type: str) -> Artifact | None:
        self._require_open()
        return self._artifacts.get_artifact(artifact_type)

    def get_artifacts_by_type(self, artifact_type: str) -> list[Artifact]:
        self._require_open()
        return self._artifacts.get_artifacts_by_type(artifact_type)

    def get_all_artifacts(self) -> list[Artifact]:
        self._require_open()
        return self._artifacts.get_all()

    def has_artifact(self, artifact_type: str) -> bool:
        self._require_open()
        return self._artifacts.has_artifact(artifact_type)

    # History operations

    def get_history(self) -> TranscriptHistory:
        """Content diffs plus the metadata audit log."""
        return TranscriptHistory(
            content_diffs=self.get_content_history(),
            audit_log=self.get_audit_log(),
        )

    def get_content_history(self) -> list[ContentDiff]:
        self._require_open()
        if self._content_id is None:
            return []
        return self._history.get_history(self._content_id)

    def get_audit_log(self) -> list[AuditEntry]:
        self._require_open()
        return self._audit.get_trail()

    def get_content_at_version(self, diff_id: int) -> str | None:
        """Content as it was right after a diff (0 = before any diff).

        Raises:
            PatchReconstructionError: If the stored history cannot be reversed
        """
        self._require_open()
        if self._content_id is None:
            return None
        return self._history.reconstruct_at_version(self._content_id, diff_id)

    def get_version_count(self) -> int:
        self._require_open()
        if self._content_id is None:
            return 0
        return self._history.get_version_count(self._content_id)

    # Enhancement log operations

    @property
    def enhancement_log(self) -> EnhancementLog:
        """The enhancement log, for direct access."""
        self._require_open()
        return self._enhancement_log

    def get_enhancement_log(
        self,
        phase: EnhancementPhase | str | None = None,
        action: str | None = None,
    ) -> list[EnhancementLogEntry]:
        self._require_open()
        return self._enhancement_log.get_log(phase=phase, action=action)

    def get_enhancement_log_count(self) -> int:
        self._require_open()
        return self._enhancement_log.get_count()

    def log_enhancement_step(
        self,
        timestamp: datetime,
        phase: EnhancementPhase | str,
        action: str,
        details: dict[str, Any] | None = None,
        entities: list[EntityReference] | None = None,
    ) -> None:
        self._require_writable("log enhancement step")
        self._enhancement_log.log_step(timestamp, phase, action, details, entities)

    def log_enhancement_steps(self, steps: Iterable[EnhancementStep]) -> int:
        self._require_writable("log enhancement steps")
        return self._enhancement_log.log_steps(steps)

    def clear_enhancement_log(self) -> int:
        self._require_writable("clear enhancement log")
        return self._enhancement_log.clear_log()

    # Lifecycle

    def close(self) -> None:
        """Checkpoint and release the file.

        Closing an already closed transcript does nothing.
        """
        if self._state is TranscriptState.CLOSED:
            return

        self._db.close()
        self._state = TranscriptState.CLOSED
        self._metadata = None
        self._content = None

        logger.info("Closed transcript", extra={"path": str(self.file_path)})

    def __enter__(self) -> Transcript:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def __repr__(self) -> str:
        mode = "ro" if self.read_only else "rw"
        return f"Transcript({str(self.file_path)!r}, mode={mode}, state={self._state.value})"
