"""Database types and connection configuration."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from urllib.parse import parse_qsl, unquote, urlsplit

from spinedb.errors import InvalidConfigError


class DatabaseType(str, Enum):
    """Supported database types."""

    SQLITE = "sqlite"
    MYSQL = "mysql"
    POSTGRESQL = "postgresql"
    MSSQL = "mssql"
    ORACLE = "oracle"
    DB2 = "db2"


_SCHEME_ALIASES = {
    "postgres": DatabaseType.POSTGRESQL,
    "postgresql": DatabaseType.POSTGRESQL,
    "pgsql": DatabaseType.POSTGRESQL,
    "mysql": DatabaseType.MYSQL,
    "mariadb": DatabaseType.MYSQL,
    "sqlite": DatabaseType.SQLITE,
    "mssql": DatabaseType.MSSQL,
    "sqlsrv": DatabaseType.MSSQL,
    "oracle": DatabaseType.ORACLE,
    "db2": DatabaseType.DB2,
}

DEFAULT_PORTS = {
    DatabaseType.MYSQL: 3306,
    DatabaseType.POSTGRESQL: 5432,
    DatabaseType.MSSQL: 1433,
    DatabaseType.ORACLE: 1521,
    DatabaseType.DB2: 50000,
}


@dataclass
class DatabaseConfig:
    """
    Connection parameters for one database.

    Different fields are used by different database types: SQLite only
    reads ``path``; the server databases read host, port, database and
    credentials. ``options`` carries driver options from the URL query
    string (``?timezone=UTC&encoding=utf8mb4``).
    """

    db_type: DatabaseType = DatabaseType.SQLITE

    # SQLite
    path: str | None = None

    # Server databases
    host: str = "localhost"
    port: int | None = None
    database: str = ""
    username: str | None = None
    password: str | None = None

    options: dict[str, Any] = field(default_factory=dict)

    @property
    def effective_port(self) -> int | None:
        return self.port or DEFAULT_PORTS.get(self.db_type)

    @classmethod
    def from_url(cls, url: str) -> DatabaseConfig:
        """
        Parse a database URL.

        Examples:
            >>> DatabaseConfig.from_url("sqlite:///data/app.db").path
            'data/app.db'
            >>> DatabaseConfig.from_url("postgresql://u:p@db:5433/app").port
            5433
        """
        scheme, sep, rest = str(url).partition("://")
        if not sep:
            raise InvalidConfigError(f"Not a database URL: {url!r}")
        db_type = _SCHEME_ALIASES.get(scheme.lower().split("+", 1)[0])
        if db_type is None:
            raise InvalidConfigError(f"Unsupported database URL scheme: {scheme!r}")

        if db_type is DatabaseType.SQLITE:
            path, _, query = rest.partition("?")
            path = path[1:] if path.startswith("/") else path
            return cls(
                db_type=db_type,
                path=unquote(path) or ":memory:",
                options=dict(parse_qsl(query)),
            )

        parts = urlsplit(f"{scheme}://{rest}")
        try:
            port = parts.port
        except ValueError:
            raise InvalidConfigError(f"Invalid port in database URL: {url!r}") from None
        return cls(
            db_type=db_type,
            host=parts.hostname or "localhost",
            port=port,
            database=unquote(parts.path.lstrip("/")),
            username=unquote(parts.username) if parts.username else None,
            password=unquote(parts.password) if parts.password else None,
            options=dict(parse_qsl(parts.query)),
        )

    def to_connection_string(self) -> str:
        """Generate the connection string for the database type."""
        match self.db_type:
            case DatabaseType.SQLITE:
                return self.path or ":memory:"
            case DatabaseType.MSSQL:
                driver = self.options.get("odbc_driver", "ODBC Driver 18 for SQL Server")
                return (
                    f"DRIVER={{{driver}}};"
                    f"SERVER={self.host},{self.effective_port};"
                    f"DATABASE={self.database};"
                    f"UID={self.username or ''};"
                    f"PWD={self.password or ''}"
                )
            case DatabaseType.DB2:
                return (
                    f"DATABASE={self.database};"
                    f"HOSTNAME={self.host};"
                    f"PORT={self.effective_port};"
                    f"PROTOCOL=TCPIP;"
                    f"UID={self.username or ''};"
                    f"PWD={self.password or ''};"
                )
            case DatabaseType.ORACLE:
                return f"{self.host}:{self.effective_port}/{self.database}"
            case _:
                return (
                    f"{self.db_type.value}://{self.username or ''}:{self.password or ''}"
                    f"@{self.host}:{self.effective_port}/{self.database}"
                )


__all__ = ["DEFAULT_PORTS", "DatabaseConfig", "DatabaseType"]
