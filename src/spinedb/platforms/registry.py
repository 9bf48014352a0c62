"""Platform registry.

Maps a driver name to the Platform class a Connection instantiates once
at construction. Platforms hold their connection, so the registry stores
classes rather than shared instances.
"""

from __future__ import annotations

from spinedb.errors import InvalidConfigError
from spinedb.platforms.base import Platform
from spinedb.platforms.db2 import DB2Platform
from spinedb.platforms.mssql import MSSQLPlatform
from spinedb.platforms.mysql import CubridPlatform, MySQLPlatform
from spinedb.platforms.oracle import OraclePlatform
from spinedb.platforms.postgresql import PostgreSQLPlatform
from spinedb.platforms.sqlite import SQLitePlatform

_PLATFORMS: dict[str, type[Platform]] = {
    "sqlite": SQLitePlatform,
    "mysql": MySQLPlatform,
    "mariadb": MySQLPlatform,  # alias
    "cubrid": CubridPlatform,
    "postgresql": PostgreSQLPlatform,
    "postgres": PostgreSQLPlatform,  # alias
    "mssql": MSSQLPlatform,
    "sqlsrv": MSSQLPlatform,  # alias
    "oracle": OraclePlatform,
    "db2": DB2Platform,
}


def get_platform(driver: str) -> type[Platform]:
    """Platform class for ``driver`` (case-insensitive).

    Raises:
        InvalidConfigError: If the driver is not registered.
    """
    key = str(getattr(driver, "value", driver)).lower()
    if key not in _PLATFORMS:
        raise InvalidConfigError(
            f"Unknown database driver '{driver}'. Supported: {sorted(_PLATFORMS)}"
        )
    return _PLATFORMS[key]


def register_platform(name: str, platform: type[Platform]) -> None:
    """Register a custom platform class, e.g. for a test double driver."""
    _PLATFORMS[name.lower()] = platform


__all__ = ["get_platform", "register_platform"]
