"""
Configuration for transcript document storage.

Uses pydantic-settings for environment variable loading. Every setting has a
default suitable for local use; override with TRANSCRIPT_* variables.

Invariants:
    - Settings only tune the storage engine, never the file format
    - Documents written with any settings are readable with any other settings
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings


class StorageSettings(BaseSettings):
    """Storage configuration loaded from environment."""

    # SQLite connection
    wal_mode: bool = Field(default=True, description="Enable write-ahead logging on writable opens")
    busy_timeout_ms: int = Field(default=5000, description="SQLite busy timeout in milliseconds")
    synchronous: str = Field(default="NORMAL", description="SQLite synchronous pragma")
    checkpoint_on_close: bool = Field(
        default=True,
        description="Merge the write-ahead log into the main file on close",
    )

    # Content history
    diff_context_lines: int = Field(default=3, description="Context lines in stored diffs")

    # Batch migration
    migration_max_workers: int = Field(default=4, description="Concurrent documents per batch")

    model_config = {"env_prefix": "TRANSCRIPT_"}

    @property
    def busy_timeout_seconds(self) -> float:
        """Busy timeout as accepted by sqlite3.connect."""
        return self.busy_timeout_ms / 1000.0


@lru_cache(maxsize=1)
def get_settings() -> StorageSettings:
    """Process-wide default settings."""
    return StorageSettings()
