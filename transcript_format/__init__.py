"""
transcript_format - Versioned single-file transcript documents.

A transcript document is one SQLite file holding:
- The current transcript text, with a reversible diff for every change
- A structured metadata record, with an audit row for every field change
- Typed artifacts, including the write-once raw transcript
- An enhancement log of pipeline steps

Example:
    >>> from transcript_format import Transcript, TranscriptMetadata
    >>>
    >>> with Transcript.create("standup.pkl", TranscriptMetadata(title="Standup")) as t:
    ...     t.update_content("First version")
    ...     t.update_content("Second version")
    ...     t.update_metadata(title="Daily standup")
    >>>
    >>> with Transcript.open("standup.pkl", read_only=True) as t:
    ...     t.get_content_at_version(0)
    'First version'

Invariants:
    - Every public mutation is atomic
    - Read-only handles never write
    - History can reconstruct any earlier content state

Version: 0.3.0
"""

from ._version import __version__
from .config import StorageSettings, get_settings
from .errors import (
    AccessViolationError,
    ConflictError,
    DocumentClosedError,
    DocumentNotFoundError,
    PatchParseError,
    PatchReconstructionError,
    SchemaError,
    TranscriptFormatError,
    UnknownFieldError,
    WriteOnceViolationError,
)
from .storage import CURRENT_SCHEMA_VERSION, Database
from .transcript import Transcript, TranscriptState
from .types import (
    Artifact,
    AuditEntry,
    ContentDiff,
    ContentType,
    EnhancementLogEntry,
    EnhancementPhase,
    EnhancementStep,
    EntityReference,
    EntityType,
    MetadataChange,
    RawTranscript,
    RoutingMetadata,
    StatusTransition,
    Task,
    TaskStatus,
    TranscriptEntities,
    TranscriptHistory,
    TranscriptMetadata,
    TranscriptStatus,
)

__all__ = [
    "__version__",
    # Orchestrator
    "Transcript",
    "TranscriptState",
    "Database",
    "CURRENT_SCHEMA_VERSION",
    # Configuration
    "StorageSettings",
    "get_settings",
    # Types
    "Artifact",
    "AuditEntry",
    "ContentDiff",
    "ContentType",
    "EnhancementLogEntry",
    "EnhancementPhase",
    "EnhancementStep",
    "EntityReference",
    "EntityType",
    "MetadataChange",
    "RawTranscript",
    "RoutingMetadata",
    "StatusTransition",
    "Task",
    "TaskStatus",
    "TranscriptEntities",
    "TranscriptHistory",
    "TranscriptMetadata",
    "TranscriptStatus",
    # Errors
    "AccessViolationError",
    "ConflictError",
    "DocumentClosedError",
    "DocumentNotFoundError",
    "PatchParseError",
    "PatchReconstructionError",
    "SchemaError",
    "TranscriptFormatError",
    "UnknownFieldError",
    "WriteOnceViolationError",
]
