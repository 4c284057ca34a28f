"""
Unit tests for the document connection manager.

Tests cover:
- Opening, creating and configuring document files
- Read-only access
- Schema migration and validation on open
- Transactions, rollback and savepoints
- Close semantics
"""

import sqlite3
from pathlib import Path

import pytest

from transcript_format.errors import DocumentClosedError, DocumentNotFoundError, SchemaError
from transcript_format.storage import CURRENT_SCHEMA_VERSION, Database


class TestOpen:
    """Tests for Database.open."""

    def test_open_creates_file(self, data_dir, settings):
        """A missing file is created and initialized."""
        path = data_dir / "new.pkl"
        db = Database.open(path, settings=settings)
        try:
            assert path.exists()
            assert db.schema.get_version() == CURRENT_SCHEMA_VERSION
            assert db.opened_version == 0
        finally:
            db.close()

    def test_open_creates_parent_directories(self, data_dir, settings):
        """Parent directories are created for new files."""
        path = data_dir / "2025" / "1" / "15-0930-standup.pkl"
        db = Database.open(path, settings=settings)
        db.close()
        assert path.exists()

    def test_writable_open_enables_wal_and_foreign_keys(self, db):
        """Writable handles use WAL journaling and enforce references."""
        assert db.execute("PRAGMA journal_mode").fetchone()[0] == "wal"
        assert db.execute("PRAGMA foreign_keys").fetchone()[0] == 1

    def test_wal_can_be_disabled(self, data_dir):
        """wal_mode=False keeps the default rollback journal."""
        from transcript_format.config import StorageSettings

        db = Database.open(data_dir / "nowal.pkl", settings=StorageSettings(wal_mode=False))
        try:
            assert db.execute("PRAGMA journal_mode").fetchone()[0] != "wal"
        finally:
            db.close()

    def test_missing_file_without_create_raises(self, data_dir, settings):
        """create=False refuses to create a file."""
        with pytest.raises(DocumentNotFoundError) as exc_info:
            Database.open(data_dir / "missing.pkl", create=False, settings=settings)
        assert exc_info.value.code == "NOT_FOUND"
        assert not (data_dir / "missing.pkl").exists()

    def test_missing_file_read_only_raises(self, data_dir, settings):
        """Read-only opens never create a file."""
        with pytest.raises(DocumentNotFoundError):
            Database.open(data_dir / "missing.pkl", read_only=True, settings=settings)

    def test_open_migrates_legacy_file(self, legacy_document, settings):
        """Writable opens bring old documents to the current generation."""
        db = Database.open(legacy_document, create=False, settings=settings)
        try:
            assert db.opened_version == 1
            assert db.schema.get_version() == CURRENT_SCHEMA_VERSION
            assert db.schema.table_exists("enhancement_log")
        finally:
            db.close()

    def test_missing_table_fails_open(self, data_dir, settings):
        """A document missing a required table cannot be opened."""
        path = data_dir / "broken.pkl"
        Database.open(path, settings=settings).close()

        conn = sqlite3.connect(path)
        conn.execute("DROP TABLE artifacts")
        conn.commit()
        conn.close()

        with pytest.raises(SchemaError) as exc_info:
            Database.open(path, settings=settings)
        assert exc_info.value.missing_tables == ["artifacts"]
        assert exc_info.value.code == "SCHEMA_ERROR"


class TestReadOnly:
    """Tests for read-only handles."""

    def test_read_only_does_not_migrate(self, legacy_document, settings):
        """Read-only opens leave older documents at their generation."""
        db = Database.open(legacy_document, read_only=True, settings=settings)
        try:
            assert db.read_only is True
            assert db.schema.get_version() == 1
            assert not db.schema.table_exists("enhancement_log")
        finally:
            db.close()

    def test_read_only_rejects_writes(self, data_dir, settings):
        """The connection itself refuses writes."""
        path = data_dir / "ro.pkl"
        Database.open(path, settings=settings).close()

        db = Database.open(path, read_only=True, settings=settings)
        try:
            with pytest.raises(sqlite3.OperationalError):
                db.execute("INSERT INTO metadata (key, value) VALUES ('title', 'x')")
        finally:
            db.close()

    def test_read_only_non_document_raises(self, data_dir, settings):
        """A SQLite file that is not a document fails a read-only open."""
        path = data_dir / "other.db"
        conn = sqlite3.connect(path)
        conn.execute("CREATE TABLE other (x INTEGER)")
        conn.commit()
        conn.close()

        with pytest.raises(SchemaError) as exc_info:
            Database.open(path, read_only=True, settings=settings)
        assert "metadata" in exc_info.value.missing_tables

    @pytest.mark.parametrize("read_only", [False, True])
    def test_non_sqlite_file_raises_schema_error(self, data_dir, settings, read_only):
        """Bytes that are not SQLite fail the open with SchemaError."""
        path = data_dir / "notes.pkl"
        path.write_bytes(b"plain text, not a database\n" * 16)

        with pytest.raises(SchemaError) as exc_info:
            Database.open(path, read_only=read_only, create=False, settings=settings)

        assert exc_info.value.version == 0
        assert isinstance(exc_info.value.__cause__, sqlite3.DatabaseError)


class TestTransactions:
    """Tests for transaction handling."""

    def test_commit(self, db):
        """Writes inside a transaction are committed."""
        with db.transaction() as conn:
            conn.execute("INSERT INTO metadata (key, value) VALUES ('title', 'Saved')")

        assert db.execute("SELECT value FROM metadata WHERE key = 'title'").fetchone()[0] == "Saved"

    def test_rollback_on_error(self, db):
        """An exception rolls back every write and is re-raised."""
        with pytest.raises(ValueError):
            with db.transaction() as conn:
                conn.execute("INSERT INTO metadata (key, value) VALUES ('title', 'Lost')")
                raise ValueError("boom")

        assert db.execute("SELECT COUNT(*) FROM metadata").fetchone()[0] == 0
        assert not db.connection.in_transaction

    def test_nested_failure_only_undoes_inner_block(self, db):
        """A handled inner failure keeps the outer writes."""
        with db.transaction() as conn:
            conn.execute("INSERT INTO metadata (key, value) VALUES ('title', 'Outer')")
            with pytest.raises(RuntimeError):
                with db.transaction() as inner:
                    inner.execute("INSERT INTO metadata (key, value) VALUES ('project', 'Inner')")
                    raise RuntimeError("inner")

        keys = [row[0] for row in db.execute("SELECT key FROM metadata").fetchall()]
        assert keys == ["title"]

    def test_outer_failure_undoes_inner_block(self, db):
        """A completed inner block is still rolled back with its outer block."""
        with pytest.raises(RuntimeError):
            with db.transaction() as conn:
                with db.transaction() as inner:
                    inner.execute("INSERT INTO metadata (key, value) VALUES ('title', 'Inner')")
                conn.execute("INSERT INTO metadata (key, value) VALUES ('project', 'Outer')")
                raise RuntimeError("outer")

        assert db.execute("SELECT COUNT(*) FROM metadata").fetchone()[0] == 0

    def test_with_transaction_returns_result(self, db):
        """with_transaction returns the function's result."""

        def insert():
            cursor = db.execute("INSERT INTO artifacts (type) VALUES ('summary')")
            return cursor.lastrowid

        artifact_id = db.with_transaction(insert)
        assert artifact_id == 1


class TestClose:
    """Tests for close."""

    def test_close_is_idempotent(self, data_dir, settings):
        """Closing twice does nothing the second time."""
        db = Database.open(data_dir / "close.pkl", settings=settings)
        db.close()
        db.close()
        assert db.closed is True

    def test_use_after_close_raises(self, data_dir, settings):
        """A closed database refuses further use."""
        db = Database.open(data_dir / "close.pkl", settings=settings)
        db.close()
        with pytest.raises(DocumentClosedError):
            db.execute("SELECT 1")

    def test_close_checkpoints_wal(self, data_dir, settings):
        """Closing merges the write-ahead log into the main file."""
        path = data_dir / "wal.pkl"
        db = Database.open(path, settings=settings)
        with db.transaction() as conn:
            conn.execute("INSERT INTO metadata (key, value) VALUES ('title', 'Durable')")
        db.close()

        wal = Path(f"{path}-wal")
        assert not wal.exists() or wal.stat().st_size == 0

        conn = sqlite3.connect(path)
        try:
            assert conn.execute("SELECT value FROM metadata").fetchone()[0] == "Durable"
        finally:
            conn.close()
