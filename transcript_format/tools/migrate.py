"""
Batch migration tool for transcript documents.

Brings documents up to the current schema generation and persists an
identity on documents written before identities existed. Paths are supplied
by the caller; this tool never scans directories.

Usage:
    transcript-migrate <path> [<path> ...] [--workers N] [--stop-on-error]

Invariants:
    - Migrating an up-to-date document changes nothing
    - Each document is migrated in its own transaction; a failure leaves that
      document unchanged and does not affect the others
    - All per-document failures are collected, never raised from the batch

How to change safely:
    - Keep migrate_file() a thin wrapper over Database.open(); the migration
      steps themselves belong in SchemaManager.migrate()
"""

from __future__ import annotations

import argparse
import logging
import sys
from collections import deque
from collections.abc import Iterable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from pathlib import Path

from ..config import StorageSettings, get_settings
from ..records import MetadataCodec
from ..storage import Database

logger = logging.getLogger(__name__)


@dataclass
class MigrationResult:
    """Result of migrating one document.

    Attributes:
        path: Document path
        old_version: Schema generation before migration (0 if unstamped)
        new_version: Schema generation after migration
        identity_backfilled: Whether an identity was written
    """

    path: Path
    old_version: int
    new_version: int
    identity_backfilled: bool = False

    @property
    def changed(self) -> bool:
        return self.old_version != self.new_version or self.identity_backfilled


@dataclass
class MigrationFailure:
    """A document that could not be migrated."""

    path: Path
    error: Exception


@dataclass
class BatchMigrationResult:
    """Result of a batch migration.

    Attributes:
        migrated: Per-document results, in input order
        failed: Per-document failures, in input order
        skipped: Paths never attempted because the batch stopped early
    """

    migrated: list[MigrationResult] = field(default_factory=list)
    failed: list[MigrationFailure] = field(default_factory=list)
    skipped: list[Path] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failed and not self.skipped


def migrate_file(path: str | Path, settings: StorageSettings | None = None) -> MigrationResult:
    """Migrate one document in place.

    Raises:
        DocumentNotFoundError: If the file does not exist
        SchemaError: If the file is still invalid after migration
    """
    db_path = Path(path)
    db = Database.open(db_path, read_only=False, create=False, settings=settings)
    try:
        codec = MetadataCodec(db)
        had_identity = bool(codec.get_value("id"))
        codec.ensure_identity()
        result = MigrationResult(
            path=db_path,
            old_version=db.opened_version,
            new_version=db.schema.get_version(),
            identity_backfilled=not had_identity,
        )
    finally:
        db.close()

    if result.changed:
        logger.info(
            f"Migrated {db_path} from v{result.old_version} to v{result.new_version}",
            extra={"path": str(db_path), "identity_backfilled": result.identity_backfilled},
        )
    return result


def migrate_files(
    paths: Iterable[str | Path],
    stop_on_error: bool = False,
    max_workers: int | None = None,
    settings: StorageSettings | None = None,
) -> BatchMigrationResult:
    """Migrate several documents concurrently.

    Args:
        paths: Documents to migrate
        stop_on_error: Schedule no further documents after the first failure;
            documents already in progress still finish
        max_workers: Concurrent documents (defaults to
            settings.migration_max_workers)
        settings: Storage settings

    Returns:
        BatchMigrationResult with per-document results and failures
    """
    settings = settings or get_settings()
    workers = max(1, max_workers or settings.migration_max_workers)

    pending = deque(enumerate(Path(p) for p in paths))
    outcomes: dict[int, MigrationResult | MigrationFailure] = {}
    stopped = False

    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="transcript-migrate") as executor:
        running: dict[Future[MigrationResult], tuple[int, Path]] = {}

        while pending or running:
            while pending and not stopped and len(running) < workers:
                index, path = pending.popleft()
                running[executor.submit(migrate_file, path, settings)] = (index, path)

            if not running:
                break

            done, _ = wait(running, return_when=FIRST_COMPLETED)
            for future in done:
                index, path = running.pop(future)
                try:
                    outcomes[index] = future.result()
                except Exception as e:
                    logger.warning(
                        f"Migration failed for {path}: {e}",
                        extra={"path": str(path)},
                    )
                    outcomes[index] = MigrationFailure(path, e)
                    if stop_on_error:
                        stopped = True

    batch = BatchMigrationResult(skipped=[path for _, path in pending])
    for index in sorted(outcomes):
        outcome = outcomes[index]
        if isinstance(outcome, MigrationFailure):
            batch.failed.append(outcome)
        else:
            batch.migrated.append(outcome)

    logger.info(
        f"Batch migration finished: {len(batch.migrated)} migrated, "
        f"{len(batch.failed)} failed, {len(batch.skipped)} skipped"
    )
    return batch


def main() -> None:
    """CLI entry point for the migration tool."""
    parser = argparse.ArgumentParser(
        description="Upgrade transcript documents to the current schema generation"
    )
    parser.add_argument("paths", nargs="+", help="Document files to migrate")
    parser.add_argument("--workers", type=int, help="Documents to migrate concurrently")
    parser.add_argument(
        "--stop-on-error", action="store_true", help="Stop scheduling after the first failure"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    result = migrate_files(args.paths, stop_on_error=args.stop_on_error, max_workers=args.workers)

    for item in result.migrated:
        status = "migrated" if item.changed else "up to date"
        print(f"{item.path}: {status} (v{item.old_version} -> v{item.new_version})")
    for failure in result.failed:
        print(f"{failure.path}: FAILED ({failure.error})")
    for path in result.skipped:
        print(f"{path}: skipped")

    sys.exit(0 if result.success else 1)


if __name__ == "__main__":
    main()
