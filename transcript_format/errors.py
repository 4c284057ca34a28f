"""
Error types for the transcript document format.

This module defines all exception types raised by the package:
- TranscriptFormatError: Base exception
- AccessViolationError: Mutation attempted on a read-only document
- WriteOnceViolationError: Second write to a write-once artifact
- SchemaError: Required relations missing from a document file
- PatchParseError: Stored diff text cannot be parsed
- PatchReconstructionError: A reversed diff does not apply
- ConflictError: Target document already exists
- DocumentNotFoundError: Document file does not exist
- DocumentClosedError: Handle used after close()
- UnknownFieldError: Metadata field outside the known field set

Invariants:
    - All errors inherit from TranscriptFormatError
    - Errors include context for debugging
    - Error messages are actionable
"""

from __future__ import annotations

from typing import Any


class TranscriptFormatError(Exception):
    """Base exception for all transcript format errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "TRANSCRIPT_FORMAT_ERROR"
        self.details = details or {}


class AccessViolationError(TranscriptFormatError):
    """Mutation attempted on a document opened read-only.

    Raised before any write is issued, so the document is left untouched.
    """

    def __init__(self, operation: str, file_path: str | None = None) -> None:
        super().__init__(
            f"Cannot {operation}: transcript is read-only",
            code="ACCESS_VIOLATION",
            details={"operation": operation, "file_path": file_path},
        )
        self.operation = operation
        self.file_path = file_path


class WriteOnceViolationError(TranscriptFormatError):
    """A write-once artifact already exists.

    Attributes:
        artifact_type: The reserved artifact type that was already written
    """

    def __init__(self, artifact_type: str) -> None:
        super().__init__(
            f"Artifact '{artifact_type}' already exists (write-once)",
            code="WRITE_ONCE_VIOLATION",
            details={"artifact_type": artifact_type},
        )
        self.artifact_type = artifact_type


class SchemaError(TranscriptFormatError):
    """Document structure is invalid.

    Raised when:
    - A required table is missing after migration
    - A file is not a transcript document at all
    """

    def __init__(
        self,
        message: str,
        missing_tables: list[str] | None = None,
        version: int | None = None,
    ) -> None:
        super().__init__(
            message,
            code="SCHEMA_ERROR",
            details={"missing_tables": missing_tables or [], "version": version},
        )
        self.missing_tables = missing_tables or []
        self.version = version


class PatchParseError(TranscriptFormatError):
    """Stored diff text is not a well-formed unified diff."""

    def __init__(self, message: str, line_number: int | None = None) -> None:
        super().__init__(
            message,
            code="PATCH_PARSE_ERROR",
            details={"line_number": line_number},
        )
        self.line_number = line_number


class PatchReconstructionError(TranscriptFormatError):
    """A reversed diff failed to apply against its expected prior text.

    Attributes:
        diff_id: History row whose reversal failed (None for ad hoc patches)
        hunk_index: Zero-based index of the hunk that did not match
    """

    def __init__(
        self,
        message: str,
        diff_id: int | None = None,
        hunk_index: int | None = None,
    ) -> None:
        super().__init__(
            message,
            code="PATCH_RECONSTRUCTION_ERROR",
            details={"diff_id": diff_id, "hunk_index": hunk_index},
        )
        self.diff_id = diff_id
        self.hunk_index = hunk_index


class ConflictError(TranscriptFormatError):
    """Target document already exists."""

    def __init__(self, file_path: str) -> None:
        super().__init__(
            f"Transcript already exists: {file_path}",
            code="CONFLICT",
            details={"file_path": file_path},
        )
        self.file_path = file_path


class DocumentNotFoundError(TranscriptFormatError):
    """Document file does not exist."""

    def __init__(self, file_path: str) -> None:
        super().__init__(
            f"Transcript not found: {file_path}",
            code="NOT_FOUND",
            details={"file_path": file_path},
        )
        self.file_path = file_path


class DocumentClosedError(TranscriptFormatError):
    """Operation on a transcript handle that has been closed."""

    def __init__(self, file_path: str | None = None) -> None:
        super().__init__(
            "Transcript is closed",
            code="DOCUMENT_CLOSED",
            details={"file_path": file_path},
        )
        self.file_path = file_path


class UnknownFieldError(TranscriptFormatError):
    """Unknown metadata field.

    Includes suggestions for similar field names.

    Attributes:
        field_name: The unknown field
        suggestions: Similar field names
    """

    def __init__(
        self,
        field_name: str,
        suggestions: list[str] | None = None,
    ) -> None:
        suggestions = suggestions or []
        msg = f"Unknown metadata field '{field_name}'"
        if suggestions:
            msg += f". Did you mean: {', '.join(suggestions)}?"

        super().__init__(
            msg,
            code="UNKNOWN_FIELD",
            details={"field_name": field_name, "suggestions": suggestions},
        )
        self.field_name = field_name
        self.suggestions = suggestions
