"""
Record stores for transcript documents.

This module handles:
- The metadata record (typed key/value codec)
- The metadata audit log
- Typed artifacts, including the write-once raw transcript
- The enhancement pipeline log

Invariants:
    - Every multi-row write runs in one transaction
    - Logs are append-only; artifacts are immutable once written
"""

from .artifacts import RAW_TRANSCRIPT_TYPE, ArtifactStore
from .audit import AuditLog
from .enhancement_log import EnhancementLog
from .metadata import FIELD_CODECS, FieldCodec, MetadataCodec, resolve_field

__all__ = [
    "FIELD_CODECS",
    "RAW_TRANSCRIPT_TYPE",
    "ArtifactStore",
    "AuditLog",
    "EnhancementLog",
    "FieldCodec",
    "MetadataCodec",
    "resolve_field",
]
