"""Per-dialect platforms: quoting, transactions, pagination, DDL and error classification."""

from spinedb.platforms.base import Platform, SchemaPlatform, parse_major_version
from spinedb.platforms.db2 import DB2Platform
from spinedb.platforms.mssql import MSSQLPlatform
from spinedb.platforms.mysql import CubridPlatform, MySQLPlatform
from spinedb.platforms.oracle import OraclePlatform
from spinedb.platforms.postgresql import PostgreSQLPlatform
from spinedb.platforms.registry import get_platform, register_platform
from spinedb.platforms.sqlite import SQLitePlatform

__all__ = [
    "Platform",
    "SchemaPlatform",
    "SQLitePlatform",
    "MySQLPlatform",
    "CubridPlatform",
    "PostgreSQLPlatform",
    "MSSQLPlatform",
    "OraclePlatform",
    "DB2Platform",
    "get_platform",
    "register_platform",
    "parse_major_version",
]
