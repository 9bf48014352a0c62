"""MySQL driver adapter.

Uses ``mysql.connector`` from the ``mysql-connector-python`` package::

    pip install mysql-connector-python
    # or:  pip install spinedb[mysql]
"""

from __future__ import annotations

from types import ModuleType
from typing import Any

from .base import DriverAdapter
from .types import DatabaseType


class MySQLDriver(DriverAdapter):
    """MySQL / MariaDB. Session encoding and time zone are set by the platform."""

    db_type = DatabaseType.MYSQL
    module = "mysql.connector"
    package = "mysql-connector-python"
    paramstyle = "pyformat"

    def connect_native(self, dbapi: ModuleType) -> Any:
        return dbapi.connect(
            host=self.config.host,
            port=self.config.effective_port,
            database=self.config.database,
            user=self.config.username,
            password=self.config.password,
            connection_timeout=int(self.config.options.get("connect_timeout", 10)),
            autocommit=True,
            consume_results=True,
        )

    def server_version(self, native: Any) -> str | None:
        return native.get_server_info()


__all__ = ["MySQLDriver"]
