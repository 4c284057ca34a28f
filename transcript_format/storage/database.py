"""
Connection management for transcript document files.

A Database wraps one sqlite3 connection to one document file. Opening drives
schema initialization, migration and validation; closing checkpoints the
write-ahead log back into the main file.

Invariants:
    - Read-only handles never issue a write (no init, no migration, no pragmas
      that change the file)
    - Writable opens leave the file at CURRENT_SCHEMA_VERSION or fail
    - transaction() is all-or-nothing; nested use becomes a savepoint

Thread safety:
    A Database is owned by one caller. It performs no locking of its own;
    cross-process isolation comes from SQLite's WAL mode (one writer, many
    readers).
"""

from __future__ import annotations

import itertools
import logging
import sqlite3
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, TypeVar

from ..config import StorageSettings, get_settings
from ..errors import DocumentClosedError, DocumentNotFoundError, SchemaError
from .schema import SchemaManager

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Database:
    """An open transcript document file.

    Use Database.open() rather than the constructor.

    Example:
        >>> db = Database.open("/data/2025/1/15-0930-standup.pkl")
        >>> with db.transaction() as conn:
        ...     conn.execute("DELETE FROM enhancement_log")
        >>> db.close()
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        path: Path,
        read_only: bool,
        settings: StorageSettings,
    ) -> None:
        self._conn: sqlite3.Connection | None = conn
        self.path = path
        self.read_only = read_only
        self.settings = settings
        self.schema = SchemaManager(conn)
        self.opened_version = 0
        self._savepoints = itertools.count(1)

    @classmethod
    def open(
        cls,
        path: str | Path,
        read_only: bool = False,
        create: bool = True,
        settings: StorageSettings | None = None,
    ) -> Database:
        """Open (and if allowed, create) a document file.

        Args:
            path: Document file path
            read_only: Open without write access
            create: Create the file if it does not exist (ignored when read_only)
            settings: Storage settings (defaults to get_settings())

        Returns:
            An open Database at the current schema generation (writable) or
            at its stamped generation (read-only)

        Raises:
            DocumentNotFoundError: If the file is missing and may not be created
            SchemaError: If required tables are missing after migration, or
                the file is not a SQLite database
        """
        settings = settings or get_settings()
        db_path = Path(path)
        may_create = create and not read_only

        if not may_create and not db_path.exists():
            raise DocumentNotFoundError(str(db_path))

        if may_create:
            db_path.parent.mkdir(parents=True, exist_ok=True)

        mode = "ro" if read_only else ("rwc" if may_create else "rw")
        conn = sqlite3.connect(
            f"{db_path.resolve().as_uri()}?mode={mode}",
            uri=True,
            timeout=settings.busy_timeout_seconds,
            isolation_level=None,  # Autocommit by default, explicit transactions
        )
        conn.row_factory = sqlite3.Row

        db = cls(conn, db_path, read_only, settings)
        try:
            db._configure()
            db._prepare_schema()
        except Exception as e:
            conn.close()
            db._conn = None
            # Lock and I/O failures stay OperationalError; anything else means
            # the file is not a readable SQLite database.
            if isinstance(e, sqlite3.DatabaseError) and not isinstance(e, sqlite3.OperationalError):
                logger.error(
                    f"Not a transcript document: {e}",
                    extra={"path": str(db_path), "read_only": read_only},
                )
                raise SchemaError(f"Not a transcript document: {e}", version=0) from e
            raise

        logger.debug(
            "Opened transcript database",
            extra={"path": str(db_path), "read_only": read_only},
        )
        return db

    def _configure(self) -> None:
        conn = self.connection
        conn.execute(f"PRAGMA busy_timeout = {self.settings.busy_timeout_ms}")
        if self.read_only:
            return
        if self.settings.wal_mode:
            conn.execute("PRAGMA journal_mode = WAL")
        conn.execute(f"PRAGMA synchronous = {self.settings.synchronous}")
        conn.execute("PRAGMA foreign_keys = ON")

    def _prepare_schema(self) -> None:
        version = self.schema.get_version()
        self.opened_version = version

        if not self.read_only:
            if version == 0:
                self.schema.ensure_initialized()
                return
            self.schema.migrate()
            result = self.schema.validate()
        else:
            # Read-only handles validate against the generation they were written at
            result = self.schema.validate(version)
            if version == 0 and result.valid:
                result.valid = False

        if not result.valid:
            detail = ", ".join(result.errors) or "no schema version stamped"
            logger.error(
                f"Invalid transcript schema: {detail}",
                extra={"path": str(self.path), "missing_tables": result.missing_tables},
            )
            raise SchemaError(
                f"Invalid database schema: {detail}",
                missing_tables=result.missing_tables,
                version=version,
            )

    @property
    def connection(self) -> sqlite3.Connection:
        """The underlying connection.

        Raises:
            DocumentClosedError: If the database has been closed
        """
        if self._conn is None:
            raise DocumentClosedError(str(self.path))
        return self._conn

    @property
    def closed(self) -> bool:
        return self._conn is None

    def execute(self, sql: str, params: Any = ()) -> sqlite3.Cursor:
        return self.connection.execute(sql, params)

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run a block atomically.

        Any exception rolls back every write made inside the block and is
        re-raised. A transaction opened inside another becomes a savepoint,
        so an inner failure that the caller handles only undoes the inner
        block.

        Yields:
            The connection to execute statements on
        """
        conn = self.connection

        if conn.in_transaction:
            name = f"sp_{next(self._savepoints)}"
            conn.execute(f"SAVEPOINT {name}")
            try:
                yield conn
            except BaseException:
                conn.execute(f"ROLLBACK TO SAVEPOINT {name}")
                conn.execute(f"RELEASE SAVEPOINT {name}")
                raise
            conn.execute(f"RELEASE SAVEPOINT {name}")
            return

        conn.execute("BEGIN" if self.read_only else "BEGIN IMMEDIATE")
        try:
            yield conn
        except BaseException:
            conn.execute("ROLLBACK")
            raise
        conn.execute("COMMIT")

    def with_transaction(self, fn: Callable[[], T]) -> T:
        """Call fn inside transaction() and return its result."""
        with self.transaction():
            return fn()

    def checkpoint(self) -> None:
        """Merge the write-ahead log into the main database file."""
        self.connection.execute("PRAGMA wal_checkpoint(TRUNCATE)")

    def close(self) -> None:
        """Checkpoint (best effort) and release the connection.

        Calling close() on an already closed database does nothing.
        """
        if self._conn is None:
            return

        try:
            if self.settings.checkpoint_on_close:
                self.checkpoint()
        except sqlite3.Error as e:
            if self.read_only:
                logger.debug(f"Skipped checkpoint on read-only close: {e}")
            else:
                logger.warning(
                    f"WAL checkpoint failed on close: {e}",
                    extra={"path": str(self.path)},
                )
        finally:
            self._conn.close()
            self._conn = None

        logger.debug("Closed transcript database", extra={"path": str(self.path)})
