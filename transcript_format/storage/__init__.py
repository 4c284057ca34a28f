"""
Storage module for transcript documents - schema and connections.

This module handles:
- Table definitions and schema generations
- Migration of older documents to the current generation
- Opening, validating and closing document files
- Atomic transactions

Invariants:
    - One SQLite file per transcript
    - Schema generations only move forward
    - SQLite uses WAL mode for concurrent reads during writes
"""

from .database import Database
from .schema import (
    CURRENT_SCHEMA_VERSION,
    REQUIRED_TABLES,
    SchemaManager,
    ValidationResult,
    required_tables,
)

__all__ = [
    "CURRENT_SCHEMA_VERSION",
    "REQUIRED_TABLES",
    "Database",
    "SchemaManager",
    "ValidationResult",
    "required_tables",
]
