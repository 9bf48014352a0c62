"""DB2 driver adapter.

Uses ``ibm_db`` / ``ibm_db_dbi`` from the ``ibm-db`` package::

    pip install ibm-db
    # or:  pip install spinedb[db2]
"""

from __future__ import annotations

from types import ModuleType
from typing import Any

from .base import DriverAdapter, require_module
from .types import DatabaseType


class DB2Driver(DriverAdapter):
    db_type = DatabaseType.DB2
    module = "ibm_db_dbi"
    package = "ibm-db"
    paramstyle = "qmark"

    def connect_native(self, dbapi: ModuleType) -> Any:
        ibm_db = require_module("ibm_db", self.package, self.db_type.value)
        native = dbapi.Connection(ibm_db.connect(self.config.to_connection_string(), "", ""))
        native.set_autocommit(True)

        schema = self.config.options.get("schema")
        if schema:
            cursor = native.cursor()
            try:
                cursor.execute(f"SET SCHEMA {schema}")
            finally:
                cursor.close()
        return native


__all__ = ["DB2Driver"]
