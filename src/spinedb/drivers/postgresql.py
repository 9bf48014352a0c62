"""PostgreSQL driver adapter.

Uses ``psycopg2`` from the ``psycopg2-binary`` package::

    pip install psycopg2-binary
    # or:  pip install spinedb[postgresql]
"""

from __future__ import annotations

from types import ModuleType
from typing import Any

from .base import DriverAdapter
from .types import DatabaseType


class PostgreSQLDriver(DriverAdapter):
    db_type = DatabaseType.POSTGRESQL
    module = "psycopg2"
    package = "psycopg2-binary"
    paramstyle = "pyformat"

    def connect_native(self, dbapi: ModuleType) -> Any:
        native = dbapi.connect(
            host=self.config.host,
            port=self.config.effective_port,
            dbname=self.config.database,
            user=self.config.username,
            password=self.config.password,
            connect_timeout=int(self.config.options.get("connect_timeout", 10)),
        )
        native.autocommit = True
        return native

    def server_version(self, native: Any) -> str | None:
        return str(native.server_version)


__all__ = ["PostgreSQLDriver"]
