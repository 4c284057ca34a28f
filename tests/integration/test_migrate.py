"""
Integration tests for the batch migration tool.

Tests cover:
- Single document migration and identity backfill
- Up-to-date documents
- Batch migration with per-document failures
- Stopping early on the first failure
"""

import sqlite3

import pytest

from transcript_format import DocumentNotFoundError, Transcript, TranscriptMetadata
from transcript_format.storage import CURRENT_SCHEMA_VERSION
from transcript_format.tools import migrate_file, migrate_files


def stored_id(path):
    conn = sqlite3.connect(path)
    try:
        row = conn.execute("SELECT value FROM metadata WHERE key = 'id'").fetchone()
    finally:
        conn.close()
    return row[0] if row else None


@pytest.fixture
def legacy_paths(data_dir, legacy_writer):
    """Three generation 1 and 2 documents."""
    paths = []
    for index, version in enumerate((1, 2, 1)):
        path = data_dir / f"legacy-{index}.pkl"
        metadata = {"title": f"Meeting {index}"}
        if version >= 2:
            metadata["id"] = f"existing-{index}"
        legacy_writer(path, version=version, metadata=metadata)
        paths.append(path)
    return paths


class TestMigrateFile:
    """Tests for migrate_file."""

    def test_migrates_v1_document(self, legacy_document, settings):
        """A generation 1 document is upgraded and gains an identity."""
        result = migrate_file(legacy_document, settings=settings)

        assert result.old_version == 1
        assert result.new_version == CURRENT_SCHEMA_VERSION
        assert result.identity_backfilled is True
        assert result.changed is True
        assert stored_id(legacy_document) is not None

    def test_up_to_date_document_is_unchanged(self, data_dir, settings):
        """Migrating a current document reports no change."""
        path = data_dir / "current.pkl"
        with Transcript.create(path, TranscriptMetadata(title="Now"), settings=settings) as t:
            identity = t.metadata.id

        result = migrate_file(path, settings=settings)

        assert result.old_version == CURRENT_SCHEMA_VERSION
        assert result.changed is False
        assert stored_id(path) == identity

    def test_missing_file_raises(self, data_dir, settings):
        """A missing document is an error, not a new file."""
        with pytest.raises(DocumentNotFoundError):
            migrate_file(data_dir / "missing.pkl", settings=settings)
        assert not (data_dir / "missing.pkl").exists()


class TestMigrateFiles:
    """Tests for migrate_files."""

    def test_batch_migrates_all(self, legacy_paths, settings):
        """Every document in the batch is migrated, in input order."""
        result = migrate_files(legacy_paths, max_workers=2, settings=settings)

        assert result.success is True
        assert [r.path for r in result.migrated] == legacy_paths
        assert [r.old_version for r in result.migrated] == [1, 2, 1]
        assert [r.identity_backfilled for r in result.migrated] == [True, False, True]
        assert stored_id(legacy_paths[1]) == "existing-1"

    def test_failures_are_collected(self, data_dir, legacy_paths, settings):
        """A failing document does not stop the others."""
        missing = data_dir / "missing.pkl"
        paths = [legacy_paths[0], missing, legacy_paths[1]]

        result = migrate_files(paths, settings=settings)

        assert result.success is False
        assert [r.path for r in result.migrated] == [legacy_paths[0], legacy_paths[1]]
        assert len(result.failed) == 1
        assert result.failed[0].path == missing
        assert isinstance(result.failed[0].error, DocumentNotFoundError)
        assert result.skipped == []

    def test_stop_on_error_skips_remaining(self, data_dir, legacy_paths, settings):
        """With stop_on_error, nothing is scheduled after the first failure."""
        missing = data_dir / "missing.pkl"
        paths = [missing, *legacy_paths]

        result = migrate_files(paths, stop_on_error=True, max_workers=1, settings=settings)

        assert len(result.failed) == 1
        assert result.migrated == []
        assert result.skipped == legacy_paths
        assert stored_id(legacy_paths[0]) is None

    def test_empty_batch(self, settings):
        """An empty batch succeeds with nothing to do."""
        result = migrate_files([], settings=settings)
        assert result.success is True
        assert result.migrated == []
