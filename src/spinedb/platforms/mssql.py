"""Microsoft SQL Server platform (``pyodbc``)."""

from __future__ import annotations

import re
from typing import Any

from spinedb.errors import (
    DatabaseError,
    ForeignKeyConstraintViolationError,
    UniqueConstraintViolationError,
    UnsupportedOperationError,
)
from spinedb.platforms.base import Platform

_NATIVE_CODE = re.compile(r"\((\d{3,5})\)")
_SELECT = re.compile(r"(?<!\w)SELECT(?:\s+DISTINCT)?(?=\W)", re.IGNORECASE)


def mssql_error_number(exc: BaseException) -> int | None:
    """SQL Server error number embedded in a pyodbc message (``... (2627)``)."""
    match = _NATIVE_CODE.search(str(exc))
    return int(match.group(1)) if match else None


class MSSQLPlatform(Platform):
    name = "mssql"

    def quote_identifier(self, name: str) -> str:
        return "[" + str(name).replace("[", "").replace("]", "") + "]"

    def begin_sql(self) -> str:
        return "BEGIN TRANSACTION"

    def commit_sql(self) -> str:
        return "COMMIT TRANSACTION"

    def rollback_sql(self) -> str:
        return "ROLLBACK TRANSACTION"

    def create_savepoint_sql(self, name: str) -> str:
        return f"SAVE TRANSACTION {name}"

    def rollback_savepoint_sql(self, name: str) -> str:
        return f"ROLLBACK TRANSACTION {name}"

    def apply_pagination(self, sql: str, limit: int, offset: int = 0) -> str:
        """Inject ``TOP n`` after the first top-level SELECT.

        SELECTs inside parentheses (CTE bodies, subqueries) are skipped, so
        ``WITH x AS (SELECT ...) SELECT ...`` limits the outer query.
        Offsets cannot be expressed.
        """
        if limit <= 0:
            return sql
        if offset:
            raise UnsupportedOperationError(
                'Driver "mssql" does not support offsets without an explicit rewrite'
            )
        for match in _SELECT.finditer(sql):
            head = sql[: match.start()]
            if head.count("(") == head.count(")"):
                return f"{head}{match.group(0)} TOP {int(limit)}{sql[match.end():]}"
        raise UnsupportedOperationError("TOP can only be applied to SELECT statements")

    def classify(self, exc: BaseException) -> type[DatabaseError] | None:
        code = mssql_error_number(exc)
        if code in (2627, 2601):
            return UniqueConstraintViolationError
        if code == 547:
            return ForeignKeyConstraintViolationError
        return None

    def driver_code(self, exc: BaseException) -> int | str | None:
        return mssql_error_number(exc)

    def last_insert_id_sql(self, sequence: str | tuple[str, str] | None) -> tuple[str, dict[str, Any]]:
        return "SELECT CAST(COALESCE(SCOPE_IDENTITY(), @@IDENTITY) AS int)", {}

    def table_names(self) -> list[str]:
        stmt = self.conn.prepare(
            "SELECT TABLE_NAME FROM INFORMATION_SCHEMA.TABLES WHERE TABLE_TYPE = 'BASE TABLE'"
        )
        stmt.execute()
        return [str(name) for name in stmt.fetch_columns(0)]


__all__ = ["MSSQLPlatform", "mssql_error_number"]
