"""Oracle driver adapter.

Uses ``oracledb`` (thin mode, no Instant Client needed)::

    pip install oracledb
    # or:  pip install spinedb[oracle]
"""

from __future__ import annotations

from types import ModuleType
from typing import Any

from .base import DriverAdapter
from .types import DatabaseType


class OracleDriver(DriverAdapter):
    db_type = DatabaseType.ORACLE
    module = "oracledb"
    package = "oracledb"
    paramstyle = "named"

    def connect_native(self, dbapi: ModuleType) -> Any:
        native = dbapi.connect(
            user=self.config.username,
            password=self.config.password,
            dsn=self.config.to_connection_string(),
        )
        native.autocommit = True
        return native

    def server_version(self, native: Any) -> str | None:
        return native.version


__all__ = ["OracleDriver"]
