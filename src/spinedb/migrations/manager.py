"""Versioned migration manager.

Discovers ``Version<YmdHis>.py`` files, applies each one at most once and
tracks applied versions in the ``#__spinedb_migrations`` table.

Every ``up()`` runs together with its tracking insert in one transaction,
inside the platform's migration scope (foreign key checks off on SQLite),
so a failing migration leaves neither schema changes (where the dialect
has transactional DDL) nor a tracking row behind.

Batch skip:
    When every discovered version is already tracked the whole batch is
    skipped (``truncate=True`` empties the data tables instead). A source
    file modified after the latest tracked timestamp marks the batch stale:
    a ``migration.stale`` warning is logged and, with ``flush_stale=True``,
    the database is dropped and every migration applied again.
"""

from __future__ import annotations

import importlib.util
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from spinedb.errors import (
    InvalidMigrationError,
    MigrationNotFoundError,
    UnsupportedOperationError,
)
from spinedb.logging import LogContext, get_logger
from spinedb.migrations.base import Migration
from spinedb.params import PlaceholderList
from spinedb.schema.table import Table
from spinedb.statement import FetchStyle

if TYPE_CHECKING:
    from spinedb.connection import Connection

logger = get_logger(__name__)

TRACKING_TABLE = "#__spinedb_migrations"
VERSION_FILE = re.compile(r"^Version(\d{14})\.py$")
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

MIGRATION_TEMPLATE = '''"""Migration {class_name}, generated {date} UTC."""

from spinedb.migrations import Migration


class {class_name}(Migration):
    def up(self) -> None:
        pass
'''


def utc_timestamp(moment: datetime | None = None) -> str:
    return (moment or datetime.now(timezone.utc)).astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


@dataclass(frozen=True)
class MigrationSource:
    """A discovered migration file."""

    version: str
    path: Path

    @property
    def class_name(self) -> str:
        return f"Version{self.version}"

    @property
    def modified(self) -> datetime:
        """File modification time, truncated to whole seconds (UTC)."""
        return datetime.fromtimestamp(int(self.path.stat().st_mtime), timezone.utc)


@dataclass
class MigrationRecord:
    """Record of a single applied migration."""

    version: str
    migrated: str


@dataclass
class MigrationResult:
    """Result of a migration run."""

    applied: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    stale: list[str] = field(default_factory=list)
    truncated: bool = False
    flushed: bool = False

    @property
    def count(self) -> int:
        return len(self.applied)


class MigrationManager:
    """
    Applies versioned migrations to one Connection.

    Example::

        manager = MigrationManager(conn)
        result = manager.migrate_directory_up("migrations")
        print(result.applied)
    """

    def __init__(self, conn: Connection):
        self.conn = conn
        self.platform = conn.get_platform()

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def discover(self, directory: str | Path) -> list[MigrationSource]:
        """Return the migration files of ``directory`` sorted by version."""
        directory = Path(directory)
        if not directory.is_dir():
            raise MigrationNotFoundError(f"Migration directory not found: {directory}")
        sources = []
        for path in directory.iterdir():
            match = VERSION_FILE.match(path.name)
            if match and path.is_file():
                sources.append(MigrationSource(match.group(1), path))
        return sorted(sources, key=lambda s: s.version)

    def load(self, source: MigrationSource) -> Migration:
        """Import ``source`` and instantiate its migration class."""
        if not source.path.is_file():
            raise MigrationNotFoundError(f"Migration file not found: {source.path}").with_context(
                version=source.version
            )

        spec = importlib.util.spec_from_file_location(
            f"spinedb_migrations.{source.class_name}", source.path
        )
        if spec is None or spec.loader is None:
            raise InvalidMigrationError(f"Cannot import migration file: {source.path}")
        module = importlib.util.module_from_spec(spec)
        try:
            spec.loader.exec_module(module)
        except Exception as e:
            raise InvalidMigrationError(
                f"Migration {source.path.name} failed to import: {e}", cause=e
            ).with_context(version=source.version) from e

        cls = getattr(module, source.class_name, None)
        if not isinstance(cls, type) or not issubclass(cls, Migration):
            raise InvalidMigrationError(
                f"{source.path.name} must define class {source.class_name}(Migration)"
            ).with_context(version=source.version)
        return cls(source.version, self.conn, self.platform)

    # ------------------------------------------------------------------
    # Tracking
    # ------------------------------------------------------------------

    def ensure_tracking_table(self) -> None:
        if self.platform.has_table(TRACKING_TABLE):
            return
        table = Table(TRACKING_TABLE, self.platform)
        table.add_column("version", "char", limit=14, primary_key=True)
        table.add_column("migrated", "varchar", limit=30)
        table.create()

    def is_applied(self, version: str) -> bool:
        stmt = self.conn.prepare(f"SELECT 1 FROM `{TRACKING_TABLE}` WHERE `version` = :version")
        try:
            stmt.bind_value("version", version).execute()
            return stmt.fetch_next_row() is not None
        finally:
            stmt.close()

    def applied(self) -> list[MigrationRecord]:
        """Return the tracked migrations, oldest version first."""
        self.ensure_tracking_table()
        stmt = self.conn.prepare(
            f"SELECT `version`, `migrated` FROM `{TRACKING_TABLE}` ORDER BY `version`"
        )
        try:
            stmt.execute()
            return [
                MigrationRecord(str(version).strip(), str(migrated))
                for version, migrated in stmt.iter_rows(FetchStyle.NUM)
            ]
        finally:
            stmt.close()

    def pending(self, directory: str | Path) -> list[MigrationSource]:
        tracked = {record.version for record in self.applied()}
        return [s for s in self.discover(directory) if s.version not in tracked]

    def _tracked_summary(self, sources: list[MigrationSource]) -> tuple[int, str | None]:
        versions = PlaceholderList([s.version for s in sources], prefix="v")
        stmt = self.conn.prepare(
            f"SELECT COUNT(*), MAX(`migrated`) FROM `{TRACKING_TABLE}` WHERE `version` IN ({versions})"
        )
        try:
            stmt.bind_list(versions).execute()
            count, latest = stmt.fetch_next_row(FetchStyle.NUM) or (0, None)
        finally:
            stmt.close()
        return int(count or 0), latest

    # ------------------------------------------------------------------
    # Applying
    # ------------------------------------------------------------------

    def execute_migration_up(self, migration: Migration) -> bool:
        """Apply ``migration`` unless tracked; returns whether ``up()`` ran."""
        self.ensure_tracking_table()
        if self.is_applied(migration.version):
            logger.debug("migration.skipped", migration=migration.version)
            return False

        with LogContext(migration=migration.version):
            with self.platform.migration_scope(), self.conn.transaction():
                migration.up()
                self.conn.insert(
                    TRACKING_TABLE,
                    {"version": migration.version, "migrated": utc_timestamp()},
                )
            logger.info("migration.applied", name=type(migration).__name__)
        return True

    def migrate_up(self, migrations: Iterable[Migration]) -> MigrationResult:
        result = MigrationResult()
        for migration in migrations:
            if self.execute_migration_up(migration):
                result.applied.append(migration.version)
            else:
                result.skipped.append(migration.version)
        return result

    def migrate_directory_up(
        self,
        directory: str | Path,
        *,
        truncate: bool = False,
        flush_stale: bool = False,
    ) -> MigrationResult:
        """Apply every pending migration in ``directory`` (see module docs for batch skip)."""
        sources = self.discover(directory)
        self.ensure_tracking_table()
        flushed = False

        if sources:
            count, latest = self._tracked_summary(sources)
            if count == len(sources):
                versions = [s.version for s in sources]
                newest = (
                    datetime.strptime(str(latest), TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
                    if latest
                    else None
                )
                stale = [s.version for s in sources if newest is not None and s.modified > newest]
                if not stale:
                    if truncate:
                        self.platform.flush_data()
                    logger.info("migration.batch_skipped", count=count, truncated=truncate)
                    return MigrationResult(skipped=versions, truncated=truncate)

                logger.warning("migration.stale", versions=stale, latest=latest)
                if not flush_stale:
                    return MigrationResult(skipped=versions, stale=stale)
                self.platform.flush_database()
                self.ensure_tracking_table()
                flushed = True

        result = self.migrate_up(self.load(source) for source in sources)
        result.flushed = flushed
        return result

    def migrate_down(self, *args: object, **kwargs: object) -> MigrationResult:
        raise UnsupportedOperationError("Down migrations are not supported")

    # ------------------------------------------------------------------
    # Authoring
    # ------------------------------------------------------------------

    def generate(self, directory: str | Path, now: datetime | None = None) -> Path:
        """Write an empty ``Version<YmdHis>.py`` migration and return its path."""
        return generate_migration(directory, now)


def generate_migration(directory: str | Path, now: datetime | None = None) -> Path:
    moment = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    class_name = f"Version{moment.strftime('%Y%m%d%H%M%S')}"
    path = Path(directory) / f"{class_name}.py"
    if path.exists():
        raise InvalidMigrationError(f"Migration already exists: {path}")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        MIGRATION_TEMPLATE.format(class_name=class_name, date=utc_timestamp(moment)),
        encoding="utf-8",
    )
    logger.info("migration.generated", path=str(path))
    return path


__all__ = [
    "MigrationManager",
    "MigrationRecord",
    "MigrationResult",
    "MigrationSource",
    "TRACKING_TABLE",
    "generate_migration",
]
