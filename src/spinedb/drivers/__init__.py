"""Native driver adapters: open DB-API handles and wrap them in Connections."""

from .base import DriverAdapter, require_module
from .db2 import DB2Driver
from .mssql import MSSQLDriver
from .mysql import MySQLDriver
from .oracle import OracleDriver
from .postgresql import PostgreSQLDriver
from .registry import get_driver, list_drivers, open_connection, register_driver
from .sqlite import SQLiteDriver
from .types import DatabaseConfig, DatabaseType

__all__ = [
    # Types
    "DatabaseType",
    "DatabaseConfig",
    # Adapters
    "DriverAdapter",
    "SQLiteDriver",
    "PostgreSQLDriver",
    "MySQLDriver",
    "MSSQLDriver",
    "OracleDriver",
    "DB2Driver",
    # Factory
    "get_driver",
    "list_drivers",
    "open_connection",
    "register_driver",
    "require_module",
]
