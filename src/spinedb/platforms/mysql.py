"""MySQL / MariaDB platform (and the Cubrid family, which speaks the same DDL)."""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from spinedb.errors import (
    DatabaseError,
    ForeignKeyConstraintViolationError,
    UniqueConstraintViolationError,
)
from spinedb.logging import get_logger
from spinedb.platforms.base import SchemaPlatform
from spinedb.schema.column import Column, ColumnType
from spinedb.schema.foreign_key import ForeignKey
from spinedb.schema.index import Index
from spinedb.statement import FetchStyle

if TYPE_CHECKING:
    from spinedb.schema.table import Table

logger = get_logger(__name__)

FOREIGN_KEY_ERRORS = frozenset({1216, 1217, 1451, 1452, 1701})
UNIQUE_ERRORS = frozenset({1062, 1557, 1569, 1586})


def mysql_errno(exc: BaseException) -> int | None:
    """Native MySQL error number of a driver exception."""
    errno = getattr(exc, "errno", None)
    if isinstance(errno, int):
        return errno
    args = getattr(exc, "args", ())
    if args and isinstance(args[0], int):
        return args[0]
    return None


class MySQLPlatform(SchemaPlatform):
    """MySQL via ``mysql-connector-python``."""

    name = "mysql"

    type_map = {
        ColumnType.BIGINT: "BIGINT",
        ColumnType.BINARY: "VARBINARY({limit})",
        ColumnType.BLOB: "LONGBLOB",
        ColumnType.BOOL: "TINYINT(1)",
        ColumnType.CHAR: "CHAR({limit})",
        ColumnType.DOUBLE: "DOUBLE",
        ColumnType.INT: "INT",
        ColumnType.TEXT: "LONGTEXT",
        ColumnType.UUID: "BINARY(16)",
        ColumnType.VARCHAR: "VARCHAR({limit})",
    }

    default_engine = "InnoDB"
    default_collation = "utf8_unicode_ci"

    def quote_identifier(self, name: str) -> str:
        return "`" + str(name).replace("`", "``") + "`"

    def begin_sql(self) -> str:
        return "START TRANSACTION"

    def initialize_connection(self) -> None:
        encoding = self.conn.get_option("encoding") or "utf8"
        self.conn.execute_raw(f"SET NAMES {encoding}")
        timezone = self.conn.get_option("timezone")
        if timezone:
            self.conn.execute("SET SESSION time_zone = :tz", {"tz": timezone})

    # -- Errors --------------------------------------------------------------

    def classify(self, exc: BaseException) -> type[DatabaseError] | None:
        errno = mysql_errno(exc)
        if errno in FOREIGN_KEY_ERRORS:
            return ForeignKeyConstraintViolationError
        if errno in UNIQUE_ERRORS:
            return UniqueConstraintViolationError
        return None

    def driver_code(self, exc: BaseException) -> int | str | None:
        return mysql_errno(exc)

    def last_insert_id_sql(self, sequence: str | tuple[str, str] | None) -> tuple[str, dict[str, Any]]:
        return "SELECT LAST_INSERT_ID()", {}

    # -- Introspection -------------------------------------------------------

    def table_names(self) -> list[str]:
        stmt = self.conn.prepare("SHOW TABLES")
        stmt.execute()
        return [str(row[0]) for row in stmt.fetch_rows(FetchStyle.NUM)]

    def view_names(self) -> list[str]:
        stmt = self.conn.prepare("SHOW FULL TABLES WHERE TABLE_TYPE LIKE 'VIEW'")
        stmt.execute()
        return [str(row[0]) for row in stmt.fetch_rows(FetchStyle.NUM)]

    @contextmanager
    def foreign_keys_disabled(self) -> Iterator[None]:
        self.conn.execute_raw("SET FOREIGN_KEY_CHECKS = 0")
        try:
            yield
        finally:
            self.conn.execute_raw("SET FOREIGN_KEY_CHECKS = 1")

    # -- DDL -----------------------------------------------------------------

    def column_definition(self, column: Column) -> str:
        sql = self.quote_identifier(column.name) + " " + self.column_type(column)
        if column.unsigned and column.type in (ColumnType.INT, ColumnType.BIGINT):
            sql += " UNSIGNED"
        sql += self.null_clause(column) + self.default_clause(column)
        if column.identity:
            sql += " PRIMARY KEY AUTO_INCREMENT"
        return sql

    def index_definition(self, table_name: str, index: Index) -> str:
        unique = "UNIQUE " if index.unique else ""
        return (
            f"{unique}INDEX {self.quote_identifier(self.index_name(table_name, index))} "
            f"({self.quote_identifiers(index.columns)})"
        )

    def foreign_key_definition(self, table_name: str, key: ForeignKey) -> str:
        name = key.name_for(self.conn.apply_prefix(table_name))
        return f"CONSTRAINT {self.quote_identifier(name)} " + super().foreign_key_definition(
            table_name, key
        )

    def create_table(self, table: Table) -> None:
        parts = [self.column_definition(column) for column in table.columns]
        primary_key = self.primary_key_clause(table)
        if primary_key:
            parts.append(primary_key)
        parts.extend(self.index_definition(table.name, index) for index in table.indexes)
        parts.extend(self.foreign_key_definition(table.name, key) for key in table.foreign_keys)

        engine = table.options.get("engine") or self.default_engine
        collation = table.options.get("collation") or self.default_collation
        self.conn.execute(
            f"CREATE TABLE {self.quote_identifier(table.name)} ({', '.join(parts)}) "
            f"ENGINE={engine} COLLATE={collation}"
        )

    def add_column(self, table_name: str, column: Column) -> None:
        self.conn.execute(
            f"ALTER TABLE {self.quote_identifier(table_name)} ADD {self.column_definition(column)}"
        )

    def add_index(self, table_name: str, index: Index) -> None:
        self.conn.execute(
            f"ALTER TABLE {self.quote_identifier(table_name)} ADD {self.index_definition(table_name, index)}"
        )

    def drop_index(self, table_name: str, columns: Sequence[str]) -> None:
        name = self.index_name(table_name, Index(tuple(columns)))
        self.conn.execute(
            f"ALTER TABLE {self.quote_identifier(table_name)} DROP INDEX {self.quote_identifier(name)}"
        )

    def add_foreign_key(self, table_name: str, key: ForeignKey) -> None:
        self.conn.execute(
            f"ALTER TABLE {self.quote_identifier(table_name)} ADD {self.foreign_key_definition(table_name, key)}"
        )

    def drop_foreign_key(
        self,
        table_name: str,
        columns: Sequence[str],
        ref_table: str,
        ref_columns: Sequence[str],
    ) -> None:
        name = ForeignKey(tuple(columns), ref_table, tuple(ref_columns)).name_for(
            self.conn.apply_prefix(table_name)
        )
        stmt = self.conn.prepare(
            "SELECT 1 FROM `information_schema`.`TABLE_CONSTRAINTS` "
            "WHERE `CONSTRAINT_SCHEMA` = DATABASE() AND `CONSTRAINT_TYPE` = 'FOREIGN KEY' "
            "AND `CONSTRAINT_NAME` = :name"
        )
        stmt.bind_value("name", name)
        stmt.execute()
        if stmt.fetch_next_column(0) is None:
            logger.debug("platform.foreign_key_absent", table=table_name, constraint=name)
            return
        self.conn.execute(
            f"ALTER TABLE {self.quote_identifier(table_name)} DROP FOREIGN KEY {self.quote_identifier(name)}"
        )


class CubridPlatform(MySQLPlatform):
    """Cubrid: MySQL-compatible DDL, ``LIMIT offset, count`` and no savepoints."""

    name = "cubrid"
    supports_savepoints = False

    def apply_pagination(self, sql: str, limit: int, offset: int = 0) -> str:
        if limit <= 0:
            return sql
        return f"{sql} LIMIT {int(offset)}, {int(limit)}"


__all__ = ["CubridPlatform", "MySQLPlatform", "mysql_errno"]
