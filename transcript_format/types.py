"""
Core type definitions for transcript documents.

This module defines the value types stored in and returned from a document:
- TranscriptMetadata: The single structured metadata record
- StatusTransition, Task, EntityReference, RoutingMetadata, TranscriptEntities:
  structured metadata values (stored as JSON)
- ContentDiff, AuditEntry, Artifact, EnhancementLogEntry: rows read back
  from the history, audit, artifact and enhancement-log tables
- RawTranscript: The write-once source transcript artifact

Invariants:
    - Enum values are the on-disk strings and must never be renamed
    - to_dict() output omits unset optional values
    - from_dict() accepts anything to_dict() produces

How to change safely:
    - Add new enum members at the end
    - Add new optional attributes with a None default
    - Never change the on-disk key of an existing attribute
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from .serialization import format_timestamp, parse_timestamp


class TranscriptStatus(Enum):
    """Lifecycle status of a transcript.

    Upload workflow: uploaded -> transcribing -> initial -> enhanced ->
    reviewed -> closed. ERROR can occur at any point.
    """

    UPLOADED = "uploaded"
    TRANSCRIBING = "transcribing"
    ERROR = "error"
    INITIAL = "initial"
    ENHANCED = "enhanced"
    REVIEWED = "reviewed"
    IN_PROGRESS = "in_progress"
    CLOSED = "closed"
    ARCHIVED = "archived"


class TaskStatus(Enum):
    """Status of a task attached to a transcript."""

    OPEN = "open"
    DONE = "done"


class EntityType(Enum):
    """Kinds of entity a transcript can reference."""

    PERSON = "person"
    PROJECT = "project"
    TERM = "term"
    COMPANY = "company"


class EnhancementPhase(Enum):
    """Pipeline phase that produced an enhancement log entry."""

    TRANSCRIBE = "transcribe"
    ENHANCE = "enhance"
    SIMPLE_REPLACE = "simple-replace"


class ContentType(Enum):
    """Closed set of content stream types."""

    ENHANCED = "enhanced"
    RAW = "raw"


def _timestamp_or_none(value: str | None) -> datetime | None:
    return parse_timestamp(value) if value else None


@dataclass(frozen=True)
class StatusTransition:
    """A recorded move from one status to another."""

    from_status: TranscriptStatus
    to_status: TranscriptStatus
    at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "from": self.from_status.value,
            "to": self.to_status.value,
            "at": format_timestamp(self.at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StatusTransition:
        return cls(
            from_status=TranscriptStatus(data["from"]),
            to_status=TranscriptStatus(data["to"]),
            at=parse_timestamp(data["at"]),
        )


@dataclass(frozen=True)
class Task:
    """A follow-up task extracted from a transcript."""

    id: str
    description: str
    status: TaskStatus
    created: datetime
    changed: datetime | None = None
    completed: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "description": self.description,
            "status": self.status.value,
            "created": format_timestamp(self.created),
        }
        if self.changed is not None:
            data["changed"] = format_timestamp(self.changed)
        if self.completed is not None:
            data["completed"] = format_timestamp(self.completed)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Task:
        return cls(
            id=data["id"],
            description=data["description"],
            status=TaskStatus(data["status"]),
            created=parse_timestamp(data["created"]),
            changed=_timestamp_or_none(data.get("changed")),
            completed=_timestamp_or_none(data.get("completed")),
        )


@dataclass(frozen=True)
class EntityReference:
    """Reference to a person, project, term or company."""

    id: str
    name: str
    type: EntityType

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "name": self.name, "type": self.type.value}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EntityReference:
        return cls(id=data["id"], name=data["name"], type=EntityType(data["type"]))


@dataclass(frozen=True)
class RoutingMetadata:
    """Where a transcript was routed and why."""

    destination: str | None = None
    confidence: float | None = None
    signals: list[str] | None = None
    reasoning: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.destination is not None:
            data["destination"] = self.destination
        if self.confidence is not None:
            data["confidence"] = self.confidence
        if self.signals is not None:
            data["signals"] = list(self.signals)
        if self.reasoning is not None:
            data["reasoning"] = self.reasoning
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RoutingMetadata:
        return cls(
            destination=data.get("destination"),
            confidence=data.get("confidence"),
            signals=data.get("signals"),
            reasoning=data.get("reasoning"),
        )


_ENTITY_GROUPS = ("people", "projects", "terms", "companies")


@dataclass(frozen=True)
class TranscriptEntities:
    """Entity collections mentioned in a transcript."""

    people: list[EntityReference] | None = None
    projects: list[EntityReference] | None = None
    terms: list[EntityReference] | None = None
    companies: list[EntityReference] | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        for group in _ENTITY_GROUPS:
            refs = getattr(self, group)
            if refs is not None:
                data[group] = [_entity_to_dict(ref) for ref in refs]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TranscriptEntities:
        groups = {}
        for group in _ENTITY_GROUPS:
            refs = data.get(group)
            if refs is not None:
                groups[group] = [EntityReference.from_dict(ref) for ref in refs]
        return cls(**groups)


def _entity_to_dict(ref: EntityReference | dict[str, Any]) -> dict[str, Any]:
    return ref.to_dict() if isinstance(ref, EntityReference) else dict(ref)


@dataclass
class TranscriptMetadata:
    """The structured metadata record of a transcript.

    Every attribute is optional; unset (None) attributes are never written,
    so saving a partial record leaves other stored keys untouched.

    Attributes:
        id: UUIDv4 identity of the transcript
        title: Display title
        date: Recording date (datetime, or a pre-formatted string stored as-is)
        recording_time: Free-form recording time label
        duration: Free-form duration label
        project: Project name
        project_id: Project identifier
        tags: Tag list
        confidence: Overall confidence score
        routing: Routing decision
        status: Lifecycle status
        history: Status transitions, oldest first
        tasks: Follow-up tasks
        entities: Referenced entities
        error_details: Failure reason for ERROR status
        audio_file: Original uploaded filename
        audio_hash: Hash of the uploaded file
    """

    id: str | None = None
    title: str | None = None
    date: datetime | str | None = None
    recording_time: str | None = None
    duration: str | None = None
    project: str | None = None
    project_id: str | None = None
    tags: list[str] | None = None
    confidence: float | None = None
    routing: RoutingMetadata | None = None
    status: TranscriptStatus | None = None
    history: list[StatusTransition] | None = None
    tasks: list[Task] | None = None
    entities: TranscriptEntities | None = None
    error_details: str | None = None
    audio_file: str | None = None
    audio_hash: str | None = None


@dataclass(frozen=True)
class MetadataChange:
    """One metadata field change, as returned by a metadata update."""

    field: str
    old_value: Any
    new_value: Any


@dataclass(frozen=True)
class ContentDiff:
    """A stored, reversible diff between two content states.

    Attributes:
        id: History row identifier (monotonic per document)
        content_id: Content stream the diff belongs to
        diff: Unified diff text
        created_at: When the diff was recorded
    """

    id: int
    content_id: int
    diff: str
    created_at: datetime


@dataclass(frozen=True)
class AuditEntry:
    """A metadata field change recorded in the audit log.

    Attributes:
        id: Audit row identifier
        field: Metadata key that changed
        old_value: JSON of the previous value, None if it was absent
        new_value: JSON of the new value, None if it was removed
        changed_at: When the change was recorded
    """

    id: int
    field: str
    old_value: str | None
    new_value: str | None
    changed_at: datetime

    @property
    def old(self) -> Any:
        """Decoded previous value."""
        return json.loads(self.old_value) if self.old_value is not None else None

    @property
    def new(self) -> Any:
        """Decoded new value."""
        return json.loads(self.new_value) if self.new_value is not None else None


@dataclass(frozen=True)
class Artifact:
    """A typed side payload stored with a transcript."""

    id: int
    type: str
    data: bytes | None
    metadata: dict[str, Any] | None
    created_at: datetime


@dataclass(frozen=True)
class EnhancementStep:
    """One pipeline step to be written to the enhancement log."""

    timestamp: datetime
    phase: EnhancementPhase
    action: str
    details: dict[str, Any] | None = None
    entities: list[EntityReference] | None = None


@dataclass(frozen=True)
class EnhancementLogEntry:
    """A pipeline step read back from the enhancement log."""

    id: int
    timestamp: datetime
    phase: EnhancementPhase
    action: str
    details: dict[str, Any] | None = None
    entities: list[EntityReference] | None = None


@dataclass(frozen=True)
class RawTranscript:
    """The untouched transcript produced by the speech-to-text step.

    Attributes:
        text: Source transcript text
        model: Model that produced it
        duration: Audio duration in seconds
        audio_file: Source audio filename
        audio_hash: Hash of the source audio
        transcribed_at: When transcription ran (stored as given)
        confidence: Model confidence
    """

    text: str
    model: str | None = None
    duration: float | None = None
    audio_file: str | None = None
    audio_hash: str | None = None
    transcribed_at: str | None = None
    confidence: float | None = None


@dataclass
class TranscriptHistory:
    """Content diffs plus metadata audit log."""

    content_diffs: list[ContentDiff] = field(default_factory=list)
    audit_log: list[AuditEntry] = field(default_factory=list)
