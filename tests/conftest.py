"""
Shared pytest fixtures for spinedb tests.

This module provides:
- In-memory SQLite connections (plain and prefixed)
- A recording fake DB-API driver for the server dialects
- Helpers to script fake result sets and driver failures

Usage:
    def test_something(conn, fake_conn):
        conn.execute("CREATE TABLE `#__t` (`a` INTEGER)")
        mysql = fake_conn("mysql", prefix="app_")
        ...
"""

from __future__ import annotations

import sys
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Callable, Generator

import pytest

# Ensure spinedb package is importable without installation
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from spinedb.connection import Connection
from spinedb.drivers import open_connection
from spinedb.schema import Table


# =============================================================================
# Fake DB-API driver
# =============================================================================


class FakeError(Exception):
    """Base error of the fake driver module."""


class FakeNotSupportedError(FakeError):
    pass


class FakeCursor:
    """Records executed SQL and plays back scripted result sets."""

    def __init__(self, native: FakeNative):
        self.native = native
        self.description: list[tuple[str, ...]] | None = None
        self.rowcount = -1
        self._rows: list[tuple[Any, ...]] = []
        self.closed = False

    def execute(self, sql: str, params: Any = None) -> None:
        self.native.log.append(sql)
        self.native.params.append(params)
        for fragment, error in list(self.native.failures.items()):
            if fragment in sql:
                raise error
        self.description = None
        self._rows = []
        for i, (fragment, columns, rows) in enumerate(self.native.results):
            if fragment in sql:
                del self.native.results[i]
                self.description = [(c, None, None, None, None, None, None) for c in columns]
                self._rows = list(rows)
                break

    def fetchone(self) -> tuple[Any, ...] | None:
        return self._rows.pop(0) if self._rows else None

    def fetchall(self) -> list[tuple[Any, ...]]:
        rows, self._rows = self._rows, []
        return rows

    def nextset(self) -> None:
        return None

    def close(self) -> None:
        self.closed = True


class FakeNative:
    """A DB-API connection that never talks to a server."""

    def __init__(self, log: list[str] | None = None):
        self.log: list[str] = [] if log is None else log
        self.params: list[Any] = []
        self.results: list[tuple[str, list[str], list[tuple[Any, ...]]]] = []
        self.failures: dict[str, BaseException] = {}
        self.autocommit = True
        self.closed = False

    def cursor(self) -> FakeCursor:
        return FakeCursor(self)

    def commit(self) -> None:
        self.log.append("<commit>")

    def rollback(self) -> None:
        self.log.append("<rollback>")

    def close(self) -> None:
        self.closed = True

    def add_result(self, fragment: str, columns: list[str], rows: list[tuple[Any, ...]]) -> None:
        """Return ``rows`` for the next statement containing ``fragment``."""
        self.results.append((fragment, columns, rows))

    def fail_on(self, fragment: str, error: BaseException) -> None:
        """Raise ``error`` for every statement containing ``fragment``."""
        self.failures[fragment] = error


FAKE_DBAPI = SimpleNamespace(
    Error=FakeError,
    NotSupportedError=FakeNotSupportedError,
    paramstyle="named",
)

PARAMSTYLES = {
    "sqlite": "named",
    "mysql": "pyformat",
    "cubrid": "qmark",
    "postgresql": "pyformat",
    "mssql": "qmark",
    "oracle": "named",
    "db2": "qmark",
}


@pytest.fixture
def fake_conn() -> Callable[..., Connection]:
    """Factory for a Connection over a FakeNative handle."""

    def make(driver: str, *, native: FakeNative | None = None, **kwargs: Any) -> Connection:
        kwargs.setdefault("paramstyle", PARAMSTYLES.get(driver, "named"))
        return Connection(native or FakeNative(), driver, dbapi=FAKE_DBAPI, **kwargs)

    return make


# =============================================================================
# SQLite Fixtures
# =============================================================================


@pytest.fixture
def conn() -> Generator[Connection, None, None]:
    """Fresh in-memory SQLite connection without prefix."""
    connection = open_connection("sqlite:///:memory:")
    yield connection
    connection.close()


@pytest.fixture
def prefixed_conn() -> Generator[Connection, None, None]:
    """In-memory SQLite connection with the ``app_`` prefix."""
    connection = open_connection("sqlite:///:memory:", prefix="app_")
    yield connection
    connection.close()


@pytest.fixture
def users_table(prefixed_conn: Connection) -> Connection:
    """``#__users`` (identity id, name, nullable email) on the prefixed connection."""
    table = Table("#__users", prefixed_conn.get_platform())
    table.add_column("id", "int", identity=True)
    table.add_column("name", "varchar", limit=50)
    table.add_column("email", "varchar", limit=100, null=True)
    table.create()
    return prefixed_conn


def sqlite_index_names(conn: Connection, table: str) -> list[str]:
    stmt = conn.prepare(
        "SELECT `name` FROM `sqlite_master` WHERE `type` = 'index' AND `tbl_name` = :t AND NOT `sql` IS NULL"
    )
    stmt.execute({"t": conn.apply_prefix(table)})
    return stmt.fetch_columns(0)
