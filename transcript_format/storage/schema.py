"""
SQLite schema definition and migration for transcript documents.

Every transcript is one SQLite file holding these tables:

    metadata:
        - key TEXT PRIMARY KEY
        - value TEXT (plain text or canonical JSON)
        - updated_at TEXT (ISO-8601)

    content:
        - id INTEGER PRIMARY KEY AUTOINCREMENT
        - type TEXT ('enhanced' | 'raw')
        - text TEXT
        - created_at / updated_at TEXT

    content_history:
        - id INTEGER PRIMARY KEY AUTOINCREMENT
        - content_id INTEGER REFERENCES content(id)
        - diff TEXT (unified diff, old -> new)
        - created_at TEXT

    audit_log:
        - id INTEGER PRIMARY KEY AUTOINCREMENT
        - field TEXT
        - old_value / new_value TEXT (JSON or NULL)
        - changed_at TEXT

    artifacts:
        - id INTEGER PRIMARY KEY AUTOINCREMENT
        - type TEXT
        - data BLOB (nullable)
        - metadata TEXT (JSON, nullable)
        - created_at TEXT

    enhancement_log (generation 3+):
        - id INTEGER PRIMARY KEY AUTOINCREMENT
        - timestamp TEXT (caller supplied, ISO-8601)
        - phase TEXT ('transcribe' | 'enhance' | 'simple-replace')
        - action TEXT
        - details TEXT (JSON, nullable)
        - entities TEXT (JSON, nullable)

    schema_version:
        - version INTEGER PRIMARY KEY (single row)

Generations:
    1: initial layout
    2: every document carries an 'id' metadata key (no DDL; the identity is
       backfilled by the Transcript handle on open)
    3: enhancement_log table

Invariants:
    - The stamped version never decreases
    - Missing tables are reported, never recreated behind the caller's back
      (except by an explicit migration step that introduces them)

How to change safely:
    - Add a new generation constant and a migration step for it
    - Only ever add tables/columns; never drop or rename them
    - Keep REQUIRED_TABLES in sync with the generation that introduced each table
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

# Current schema generation
CURRENT_SCHEMA_VERSION = 3

_TIMESTAMP_DEFAULT = "(strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))"

_BASE_DDL: tuple[str, ...] = (
    f"""
    CREATE TABLE IF NOT EXISTS metadata (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL,
        updated_at TEXT NOT NULL DEFAULT {_TIMESTAMP_DEFAULT}
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS content (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        type TEXT NOT NULL CHECK (type IN ('enhanced', 'raw')),
        text TEXT NOT NULL,
        created_at TEXT NOT NULL DEFAULT {_TIMESTAMP_DEFAULT},
        updated_at TEXT NOT NULL DEFAULT {_TIMESTAMP_DEFAULT}
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS content_history (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        content_id INTEGER NOT NULL,
        diff TEXT NOT NULL,
        created_at TEXT NOT NULL DEFAULT {_TIMESTAMP_DEFAULT},
        FOREIGN KEY (content_id) REFERENCES content(id)
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS audit_log (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        field TEXT NOT NULL,
        old_value TEXT,
        new_value TEXT,
        changed_at TEXT NOT NULL DEFAULT {_TIMESTAMP_DEFAULT}
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS artifacts (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        type TEXT NOT NULL,
        data BLOB,
        metadata TEXT,
        created_at TEXT NOT NULL DEFAULT {_TIMESTAMP_DEFAULT}
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS schema_version (
        version INTEGER PRIMARY KEY
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_content_type ON content(type)",
    "CREATE INDEX IF NOT EXISTS idx_content_history_content_id ON content_history(content_id)",
    "CREATE INDEX IF NOT EXISTS idx_audit_log_field ON audit_log(field)",
    "CREATE INDEX IF NOT EXISTS idx_audit_log_changed_at ON audit_log(changed_at)",
    "CREATE INDEX IF NOT EXISTS idx_artifacts_type ON artifacts(type)",
)

_ENHANCEMENT_LOG_DDL: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS enhancement_log (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        timestamp TEXT NOT NULL,
        phase TEXT NOT NULL CHECK (phase IN ('transcribe', 'enhance', 'simple-replace')),
        action TEXT NOT NULL,
        details TEXT,
        entities TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_enhancement_log_timestamp ON enhancement_log(timestamp)",
    "CREATE INDEX IF NOT EXISTS idx_enhancement_log_phase ON enhancement_log(phase)",
)

# Table -> generation that introduced it
REQUIRED_TABLES: dict[str, int] = {
    "metadata": 1,
    "content": 1,
    "content_history": 1,
    "audit_log": 1,
    "artifacts": 1,
    "schema_version": 1,
    "enhancement_log": 3,
}


def required_tables(version: int = CURRENT_SCHEMA_VERSION) -> list[str]:
    """Tables a document of the given generation must contain."""
    return [name for name, since in REQUIRED_TABLES.items() if since <= max(version, 1)]


@dataclass
class ValidationResult:
    """Outcome of a schema validation.

    Attributes:
        valid: True if every required table is present
        missing_tables: Names of absent tables
    """

    valid: bool
    missing_tables: list[str] = field(default_factory=list)

    @property
    def errors(self) -> list[str]:
        """Human-readable error lines."""
        return [f"Missing required table: {name}" for name in self.missing_tables]


class SchemaManager:
    """Creates, versions, migrates and validates the document schema.

    Operates directly on a sqlite3 connection in autocommit mode
    (isolation_level=None); every multi-statement step runs in its own
    explicit transaction.

    Example:
        >>> schema = SchemaManager(conn)
        >>> if schema.needs_migration():
        ...     schema.migrate()
        >>> result = schema.validate()
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def table_exists(self, name: str) -> bool:
        cursor = self.conn.execute(
            "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?",
            (name,),
        )
        return cursor.fetchone() is not None

    def get_version(self) -> int:
        """Get the stamped schema generation.

        Returns:
            The version, or 0 if the version table is absent, empty or unreadable
        """
        try:
            if not self.table_exists("schema_version"):
                return 0
            row = self.conn.execute("SELECT version FROM schema_version LIMIT 1").fetchone()
        except sqlite3.DatabaseError as e:
            logger.debug(f"Could not read schema version: {e}")
            return 0
        return int(row[0]) if row else 0

    def needs_migration(self) -> bool:
        return self.get_version() < CURRENT_SCHEMA_VERSION

    def ensure_initialized(self) -> None:
        """Create all tables and stamp the current generation if unstamped.

        Idempotent: existing tables and an existing stamp are left alone.
        """
        self.conn.execute("BEGIN IMMEDIATE")
        try:
            for statement in _BASE_DDL + _ENHANCEMENT_LOG_DDL:
                self.conn.execute(statement)
            row = self.conn.execute("SELECT version FROM schema_version LIMIT 1").fetchone()
            if row is None:
                self.conn.execute(
                    "INSERT INTO schema_version (version) VALUES (?)",
                    (CURRENT_SCHEMA_VERSION,),
                )
            self.conn.execute("COMMIT")
        except Exception:
            self.conn.execute("ROLLBACK")
            raise

        logger.debug("Schema initialized", extra={"version": CURRENT_SCHEMA_VERSION})

    def migrate(self) -> int:
        """Migrate the schema to the current generation.

        Returns:
            The generation the document was at before migrating
        """
        version = self.get_version()

        if version == 0:
            self.ensure_initialized()
            return version

        if version >= CURRENT_SCHEMA_VERSION:
            return version

        self.conn.execute("BEGIN IMMEDIATE")
        try:
            # v1 -> v2 needs no DDL: the id key is backfilled on writable open.
            if version < 3:
                for statement in _ENHANCEMENT_LOG_DDL:
                    self.conn.execute(statement)

            self.conn.execute(
                "UPDATE schema_version SET version = ?",
                (CURRENT_SCHEMA_VERSION,),
            )
            self.conn.execute("COMMIT")
        except Exception:
            self.conn.execute("ROLLBACK")
            raise

        logger.info(
            f"Migrated schema from v{version} to v{CURRENT_SCHEMA_VERSION}",
            extra={"from_version": version, "to_version": CURRENT_SCHEMA_VERSION},
        )
        return version

    def validate(self, version: int | None = None) -> ValidationResult:
        """Check that every table required by a generation is present.

        Args:
            version: Generation to validate against (defaults to the
                current generation)

        Returns:
            ValidationResult with the list of missing tables
        """
        target = CURRENT_SCHEMA_VERSION if version is None else version
        missing = [name for name in required_tables(target) if not self.table_exists(name)]
        return ValidationResult(valid=not missing, missing_tables=missing)
