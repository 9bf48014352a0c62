"""Versioned schema migrations.

Applies ``Version<YmdHis>.py`` migration files idempotently, tracking what
has already been applied in the ``#__spinedb_migrations`` table.

Modules
-------
base       Migration base class with schema helpers
manager    MigrationManager: discover / load / migrate_up / generate

Tags:
    spinedb, migrations, schema, database, idempotent, DDL

Doc-Types:
    package-overview
"""

from spinedb.migrations.base import Migration
from spinedb.migrations.manager import (
    TRACKING_TABLE,
    MigrationManager,
    MigrationRecord,
    MigrationResult,
    MigrationSource,
    generate_migration,
)

__all__ = [
    "Migration",
    "MigrationManager",
    "MigrationRecord",
    "MigrationResult",
    "MigrationSource",
    "TRACKING_TABLE",
    "generate_migration",
]
