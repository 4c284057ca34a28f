"""
Unit tests for the metadata audit log.

Tests cover:
- Recording single and batched changes
- Value encoding
- Trail, per-field and time-window queries
"""

from datetime import datetime, timedelta, timezone

import pytest

from transcript_format.records import AuditLog
from transcript_format.types import MetadataChange, TranscriptStatus


@pytest.fixture
def audit(db):
    return AuditLog(db)


class TestLogging:
    """Tests for writing audit entries."""

    def test_log_change(self, audit):
        """A single change is recorded with JSON values."""
        audit.log_change("title", "Draft", "Final")

        entry = audit.get_trail()[0]
        assert entry.field == "title"
        assert entry.old_value == '"Draft"'
        assert entry.new_value == '"Final"'
        assert entry.old == "Draft"
        assert entry.new == "Final"

    def test_absent_values_are_null(self, audit):
        """A missing old value is stored as NULL, not as JSON null."""
        audit.log_change("project", None, "Apollo")

        entry = audit.get_trail()[0]
        assert entry.old_value is None
        assert entry.old is None

    def test_structured_values(self, audit):
        """Enums and lists are encoded as JSON."""
        audit.log_change("status", TranscriptStatus.INITIAL, TranscriptStatus.ENHANCED)
        audit.log_change("tags", ["a"], ["a", "b"])

        assert audit.get_field_history("status")[0].new == "enhanced"
        assert audit.get_field_history("tags")[0].new == ["a", "b"]

    def test_log_changes_batch(self, audit):
        """A batch writes one row per change."""
        written = audit.log_changes(
            [
                MetadataChange("title", None, "Sync"),
                MetadataChange("project", None, "Apollo"),
            ]
        )
        assert written == 2
        assert audit.get_count() == 2

    def test_empty_batch(self, audit):
        """An empty batch writes nothing."""
        assert audit.log_changes([]) == 0
        assert audit.get_count() == 0


class TestQueries:
    """Tests for reading the audit log."""

    def test_trail_is_newest_first(self, audit):
        """Entries come back newest first."""
        audit.log_change("title", "A", "B")
        audit.log_change("title", "B", "C")
        audit.log_change("project", None, "Apollo")

        fields = [(e.field, e.new) for e in audit.get_trail()]
        assert fields == [("project", "Apollo"), ("title", "C"), ("title", "B")]

    def test_field_history(self, audit):
        """Per-field history only includes that field."""
        audit.log_change("title", "A", "B")
        audit.log_change("project", None, "Apollo")
        audit.log_change("title", "B", "C")

        history = audit.get_field_history("title")
        assert [e.new for e in history] == ["C", "B"]

    def test_get_since(self, audit):
        """Time-window queries include recent changes only."""
        audit.log_change("title", "A", "B")

        now = datetime.now(timezone.utc)
        assert len(audit.get_since(now - timedelta(minutes=5))) == 1
        assert audit.get_since(now + timedelta(minutes=5)) == []

    def test_changed_at_is_aware_utc(self, audit):
        """Timestamps come back as aware UTC datetimes."""
        audit.log_change("title", "A", "B")
        assert audit.get_trail()[0].changed_at.tzinfo == timezone.utc
