"""
Maintenance tools for transcript documents.

Available tools:
- migrate: Batch schema and identity migration
"""

from .migrate import (
    BatchMigrationResult,
    MigrationFailure,
    MigrationResult,
    migrate_file,
    migrate_files,
)

__all__ = [
    "BatchMigrationResult",
    "MigrationFailure",
    "MigrationResult",
    "migrate_file",
    "migrate_files",
]
