"""IBM DB2 platform (``ibm_db_dbi``)."""

from __future__ import annotations

from typing import Any

from spinedb.errors import (
    DatabaseError,
    ForeignKeyConstraintViolationError,
    UniqueConstraintViolationError,
    UnsupportedOperationError,
)
from spinedb.platforms.base import Platform, sqlstate_of
from spinedb.platforms.oracle import AutocommitTransactions


class DB2Platform(AutocommitTransactions, Platform):
    """DB2 LUW.

    ``LIMIT n OFFSET m`` only works once the server runs with MySQL
    compatibility vectors enabled; set the ``db2_limit_offset`` connection
    option to use it. Otherwise only ``FETCH FIRST n ROWS ONLY`` is emitted.
    """

    name = "db2"

    def create_savepoint_sql(self, name: str) -> str:
        return f"SAVEPOINT {name} ON ROLLBACK RETAIN CURSORS"

    def apply_pagination(self, sql: str, limit: int, offset: int = 0) -> str:
        if limit <= 0:
            return sql
        if self.conn.get_option("db2_limit_offset"):
            return f"{sql} LIMIT {int(limit)} OFFSET {int(offset)}"
        if offset:
            raise UnsupportedOperationError(
                'Driver "db2" needs the "db2_limit_offset" option for offsets'
            )
        return f"{sql} FETCH FIRST {int(limit)} ROWS ONLY"

    def classify(self, exc: BaseException) -> type[DatabaseError] | None:
        code = sqlstate_of(exc)
        if code == "23505":
            return UniqueConstraintViolationError
        if code in ("23503", "23504"):
            return ForeignKeyConstraintViolationError
        return None

    def driver_code(self, exc: BaseException) -> int | str | None:
        return sqlstate_of(exc)

    def last_insert_id_sql(self, sequence: str | tuple[str, str] | None) -> tuple[str, dict[str, Any]]:
        return "SELECT IDENTITY_VAL_LOCAL() FROM SYSIBM.SYSDUMMY1", {}

    def table_names(self) -> list[str]:
        stmt = self.conn.prepare(
            "SELECT TABNAME FROM SYSCAT.TABLES WHERE TABSCHEMA = CURRENT SCHEMA AND TYPE = 'T'"
        )
        stmt.execute()
        return [str(name) for name in stmt.fetch_columns(0)]


__all__ = ["DB2Platform"]
