"""
Shared fixtures for transcript_format tests.

Every test gets its own temporary directory; documents are real SQLite
files inside it.
"""

import sqlite3
import tempfile
from pathlib import Path

import pytest

from transcript_format.config import StorageSettings
from transcript_format.storage import Database


@pytest.fixture
def data_dir():
    """Create temporary data directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def settings():
    """Default storage settings."""
    return StorageSettings()


@pytest.fixture
def db(data_dir, settings):
    """Open a fresh writable document database."""
    database = Database.open(data_dir / "doc.pkl", settings=settings)
    yield database
    database.close()


@pytest.fixture
def content_id(db):
    """Insert an empty enhanced content stream and return its id."""
    with db.transaction() as conn:
        cursor = conn.execute("INSERT INTO content (type, text) VALUES ('enhanced', '')")
    return cursor.lastrowid


def write_legacy_document(path: Path, version: int, metadata: dict[str, str]) -> None:
    """Write a document the way older releases laid it out.

    Generation 1 and 2 documents have the base tables but no enhancement
    log; generation 1 documents also have no identity key.
    """
    conn = sqlite3.connect(path)
    try:
        conn.executescript(
            """
            CREATE TABLE metadata (key TEXT PRIMARY KEY, value TEXT NOT NULL,
                                   updated_at TEXT NOT NULL DEFAULT (datetime('now')));
            CREATE TABLE content (id INTEGER PRIMARY KEY AUTOINCREMENT, type TEXT NOT NULL,
                                  text TEXT NOT NULL,
                                  created_at TEXT NOT NULL DEFAULT (datetime('now')),
                                  updated_at TEXT NOT NULL DEFAULT (datetime('now')));
            CREATE TABLE content_history (id INTEGER PRIMARY KEY AUTOINCREMENT,
                                          content_id INTEGER NOT NULL, diff TEXT NOT NULL,
                                          created_at TEXT NOT NULL DEFAULT (datetime('now')));
            CREATE TABLE audit_log (id INTEGER PRIMARY KEY AUTOINCREMENT, field TEXT NOT NULL,
                                    old_value TEXT, new_value TEXT,
                                    changed_at TEXT NOT NULL DEFAULT (datetime('now')));
            CREATE TABLE artifacts (id INTEGER PRIMARY KEY AUTOINCREMENT, type TEXT NOT NULL,
                                    data BLOB, metadata TEXT,
                                    created_at TEXT NOT NULL DEFAULT (datetime('now')));
            CREATE TABLE schema_version (version INTEGER PRIMARY KEY);
            """
        )
        conn.execute("INSERT INTO schema_version (version) VALUES (?)", (version,))
        conn.executemany(
            "INSERT INTO metadata (key, value) VALUES (?, ?)",
            list(metadata.items()),
        )
        conn.execute("INSERT INTO content (type, text) VALUES ('enhanced', 'Legacy text')")
        conn.commit()
    finally:
        conn.close()


@pytest.fixture
def legacy_writer():
    """Function that writes older-generation documents."""
    return write_legacy_document


@pytest.fixture
def legacy_document(data_dir):
    """A generation 1 document without identity or enhancement log."""
    path = data_dir / "legacy.pkl"
    write_legacy_document(path, version=1, metadata={"title": "Old meeting", "status": "reviewed"})
    return path
