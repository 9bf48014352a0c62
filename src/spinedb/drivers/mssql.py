"""SQL Server driver adapter.

Uses ``pyodbc`` with an installed Microsoft ODBC driver; pick the ODBC
driver name with the ``odbc_driver`` option::

    mssql://sa:secret@db:1433/app?odbc_driver=ODBC+Driver+18+for+SQL+Server
"""

from __future__ import annotations

from types import ModuleType
from typing import Any

from .base import DriverAdapter
from .types import DatabaseType


class MSSQLDriver(DriverAdapter):
    db_type = DatabaseType.MSSQL
    module = "pyodbc"
    package = "pyodbc"
    paramstyle = "qmark"

    def connect_native(self, dbapi: ModuleType) -> Any:
        return dbapi.connect(self.config.to_connection_string(), autocommit=True)

    def server_version(self, native: Any) -> str | None:
        return str(native.getinfo(self.import_driver().SQL_DBMS_VER))


__all__ = ["MSSQLDriver"]
