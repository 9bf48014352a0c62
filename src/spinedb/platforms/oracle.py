"""Oracle platform (``oracledb``).

Oracle has no ``BEGIN`` statement: the outermost transaction is opened by
switching the driver out of autocommit and ended with the driver's own
``commit()`` / ``rollback()``. Savepoints are plain SQL.
"""

from __future__ import annotations

from typing import Any

from spinedb.errors import (
    DatabaseError,
    ForeignKeyConstraintViolationError,
    UniqueConstraintViolationError,
)
from spinedb.platforms.base import Platform, parse_major_version


def oracle_error_code(exc: BaseException) -> int | None:
    """ORA error number carried by an ``oracledb`` exception."""
    args = getattr(exc, "args", ())
    code = getattr(args[0], "code", None) if args else None
    if isinstance(code, int):
        return code
    code = getattr(exc, "code", None)
    return code if isinstance(code, int) else None


class AutocommitTransactions:
    """Outermost transaction via the driver's autocommit switch."""

    conn: Any

    def set_autocommit(self, enabled: bool) -> None:
        native = self.conn.native
        # ibm_db_dbi exposes a method, oracledb a writable attribute
        if callable(getattr(native, "set_autocommit", None)):
            native.set_autocommit(enabled)
        else:
            native.autocommit = enabled

    def begin_transaction(self, savepoint: str | None = None) -> None:
        if savepoint is None:
            self.set_autocommit(False)
        else:
            super().begin_transaction(savepoint)  # type: ignore[misc]

    def commit_transaction(self, savepoint: str | None = None) -> None:
        if savepoint is None:
            self.conn.native.commit()
            self.set_autocommit(True)
        else:
            super().commit_transaction(savepoint)  # type: ignore[misc]

    def roll_back_transaction(self, savepoint: str | None = None) -> None:
        if savepoint is None:
            self.conn.native.rollback()
            self.set_autocommit(True)
        else:
            super().roll_back_transaction(savepoint)  # type: ignore[misc]


class OraclePlatform(AutocommitTransactions, Platform):
    name = "oracle"

    def quote_identifier(self, name: str) -> str:
        return '"' + str(name).replace('"', "") + '"'

    def rollback_savepoint_sql(self, name: str) -> str:
        return f"ROLLBACK TO {name}"

    def apply_pagination(self, sql: str, limit: int, offset: int = 0) -> str:
        if limit <= 0:
            return sql
        if parse_major_version(self.conn.server_version) >= 12:
            return f"{sql} OFFSET {int(offset)} ROWS FETCH NEXT {int(limit)} ROWS ONLY"
        return (
            "SELECT * FROM (SELECT kklq.*, ROWNUM kkrn FROM "
            f"({sql}) kklq WHERE ROWNUM <= {int(offset) + int(limit)}) "
            f"WHERE kkrn > {int(offset)}"
        )

    def classify(self, exc: BaseException) -> type[DatabaseError] | None:
        code = oracle_error_code(exc)
        if code == 1:
            return UniqueConstraintViolationError
        if code in (2291, 2292):
            return ForeignKeyConstraintViolationError
        return None

    def driver_code(self, exc: BaseException) -> int | str | None:
        return oracle_error_code(exc)

    def last_insert_id_sql(self, sequence: str | tuple[str, str] | None) -> tuple[str, dict[str, Any]]:
        if not sequence or isinstance(sequence, tuple):
            return super().last_insert_id_sql(sequence)
        return f"SELECT {self.conn.apply_prefix(sequence)}.CURRVAL FROM DUAL", {}

    def table_names(self) -> list[str]:
        stmt = self.conn.prepare("SELECT TABLE_NAME FROM USER_TABLES")
        stmt.execute()
        return [str(name) for name in stmt.fetch_columns(0)]


__all__ = ["AutocommitTransactions", "OraclePlatform", "oracle_error_code"]
