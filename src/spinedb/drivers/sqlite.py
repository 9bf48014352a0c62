"""SQLite driver adapter (standard library ``sqlite3``)."""

from __future__ import annotations

from types import ModuleType
from typing import Any

from .base import DriverAdapter
from .types import DatabaseType


class SQLiteDriver(DriverAdapter):
    """
    ``sqlite3`` in autocommit mode (``isolation_level=None``).

    ``path`` may be a file path, ``:memory:`` or a ``file:`` URI.
    """

    db_type = DatabaseType.SQLITE
    module = "sqlite3"
    package = "sqlite3"
    paramstyle = "named"

    def connect_native(self, dbapi: ModuleType) -> Any:
        path = self.config.path or ":memory:"
        return dbapi.connect(
            path,
            timeout=float(self.config.options.get("timeout", 5.0)),
            isolation_level=None,
            check_same_thread=False,
            uri=path.startswith("file:"),
        )

    def server_version(self, native: Any) -> str | None:
        cursor = native.execute("SELECT sqlite_version()")
        try:
            return str(cursor.fetchone()[0])
        finally:
            cursor.close()


__all__ = ["SQLiteDriver"]
