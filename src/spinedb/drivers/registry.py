"""Driver registry and ``open_connection`` factory.

Manifesto:
    Consumers should never hard-code driver adapter classes. The registry
    maps ``DatabaseType`` names to adapters and ``open_connection()``
    turns a URL or :class:`DatabaseConfig` into a ready Connection.

Features:
    - Pre-registered adapters for the six supported databases
    - ``register_driver()`` for custom / third-party adapters
    - ``open_connection()`` factory: URL or config → initialised Connection

Tags:
    spinedb, database, registry, factory

Doc-Types:
    api-reference
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from spinedb.connection import Connection
from spinedb.errors import ConfigError

from .base import DriverAdapter
from .db2 import DB2Driver
from .mssql import MSSQLDriver
from .mysql import MySQLDriver
from .oracle import OracleDriver
from .postgresql import PostgreSQLDriver
from .sqlite import SQLiteDriver
from .types import DatabaseConfig, DatabaseType

if TYPE_CHECKING:
    from spinedb.transactions import TransactionManager

_DRIVERS: dict[str, type[DriverAdapter]] = {
    "sqlite": SQLiteDriver,
    "mysql": MySQLDriver,
    "postgresql": PostgreSQLDriver,
    "mssql": MSSQLDriver,
    "oracle": OracleDriver,
    "db2": DB2Driver,
}


def register_driver(name: str, adapter_class: type[DriverAdapter]) -> None:
    """Register a driver adapter for ``name`` (lower-cased)."""
    _DRIVERS[name.lower()] = adapter_class


def get_driver(db_type: DatabaseType | str) -> type[DriverAdapter]:
    name = db_type.value if isinstance(db_type, DatabaseType) else str(db_type).lower()
    if name not in _DRIVERS:
        raise ConfigError(f"Unknown database driver: {name}")
    return _DRIVERS[name]


def list_drivers() -> list[str]:
    return sorted(_DRIVERS)


def open_connection(
    target: DatabaseConfig | str,
    *,
    prefix: str = "",
    options: Mapping[str, Any] | None = None,
    coordinator: TransactionManager | None = None,
) -> Connection:
    """
    Open a Connection from a URL or a :class:`DatabaseConfig`.

    Usage:
        conn = open_connection("sqlite:///:memory:")
        conn = open_connection("postgresql://app:secret@db/app", prefix="app_")
    """
    config = DatabaseConfig.from_url(target) if isinstance(target, str) else target
    adapter = get_driver(config.db_type)(config)
    return adapter.open(prefix=prefix, options=options, coordinator=coordinator)


__all__ = ["get_driver", "list_drivers", "open_connection", "register_driver"]
