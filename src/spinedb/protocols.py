"""
Protocol definitions for spinedb.

Manifesto:
    Protocols define contracts without inheritance. Native handles come
    from six different driver libraries; encoders and transaction
    resources are supplied by application code. None of them should have
    to subclass anything from this package.

Architecture:
    ::

        protocols.py
        ├── NativeConnection    : the DB-API 2.0 handle a Connection wraps
        ├── NativeCursor        : the DB-API 2.0 cursor a Statement drives
        ├── ParamEncoder        : rewrites a bound value before execution
        └── TransactionResource : participant in a coordinator transaction

Guardrails:
    ❌ DON'T: Add implementation logic to protocol classes
    ✅ DO: Keep protocols pure contracts

Tags:
    protocol, dbapi, encoder, transaction, spinedb, contracts

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from spinedb.connection import Connection
    from spinedb.transactions import Transaction


@runtime_checkable
class NativeCursor(Protocol):
    """The subset of a DB-API 2.0 cursor used by :class:`~spinedb.statement.Statement`."""

    description: Sequence[Sequence[Any]] | None
    rowcount: int

    def execute(self, operation: str, parameters: Any = ...) -> Any: ...

    def fetchone(self) -> Sequence[Any] | None: ...

    def fetchall(self) -> Sequence[Sequence[Any]]: ...

    def close(self) -> None: ...


@runtime_checkable
class NativeConnection(Protocol):
    """
    The subset of a DB-API 2.0 connection wrapped by
    :class:`~spinedb.connection.Connection`.

    Implementations: ``sqlite3.Connection``, psycopg2 connections,
    ``mysql.connector`` connections, pyodbc, oracledb, ``ibm_db_dbi``.
    """

    def cursor(self) -> Any: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...

    def close(self) -> None: ...


@runtime_checkable
class ParamEncoder(Protocol):
    """
    Rewrites a bound parameter before it reaches the driver.

    Returns ``(True, encoded)`` to claim the value or ``(False, value)`` to
    pass it on to the next encoder. The first encoder that claims a value
    wins; unclaimed values are bound unchanged.
    """

    def encode_param(self, conn: Connection, value: Any) -> tuple[bool, Any]: ...


@runtime_checkable
class TransactionResource(Protocol):
    """A participant notified at the boundaries of coordinator transactions."""

    def begin_managed_transaction(self, transaction: Transaction) -> None: ...

    def commit_managed_transaction(self, transaction: Transaction) -> None: ...

    def roll_back_managed_transaction(self, transaction: Transaction) -> None: ...


__all__ = [
    "NativeConnection",
    "NativeCursor",
    "ParamEncoder",
    "TransactionResource",
]
