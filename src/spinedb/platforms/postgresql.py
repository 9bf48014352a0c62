"""PostgreSQL platform."""

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
from spinedb.platforms.base import TRACKING_TABLE_PATTERN, SchemaPlatform, sqlstate_of
from spinedb.schema.column import Column, ColumnType
from spinedb.schema.foreign_key import ForeignKey
from spinedb.schema.index import Index

if TYPE_CHECKING:
    from spinedb.schema.table import Table

logger = get_logger(__name__)


class PostgreSQLPlatform(SchemaPlatform):
    """PostgreSQL via ``psycopg2``."""

    name = "postgresql"
    native_uuid = True

    type_map = {
        ColumnType.BIGINT: "BIGINT",
        ColumnType.BINARY: "BYTEA",
        ColumnType.BLOB: "BYTEA",
        ColumnType.BOOL: "BOOLEAN",
        ColumnType.CHAR: "CHAR({limit})",
        ColumnType.DOUBLE: "DOUBLE PRECISION",
        ColumnType.INT: "INTEGER",
        ColumnType.TEXT: "TEXT",
        ColumnType.UUID: "UUID",
        ColumnType.VARCHAR: "VARCHAR({limit})",
    }

    def quote_literal(self, value: Any) -> str:
        if isinstance(value, bool):
            return "TRUE" if value else "FALSE"
        if isinstance(value, (bytes, bytearray, memoryview)):
            return "'\\x" + bytes(value).hex() + "'::bytea"
        return super().quote_literal(value)

    def initialize_connection(self) -> None:
        timezone = self.conn.get_option("timezone")
        if timezone:
            self.conn.execute_raw(f"SET TIME ZONE {self.quote_literal(timezone)}")

    # -- Errors --------------------------------------------------------------

    def classify(self, exc: BaseException) -> type[DatabaseError] | None:
        code = sqlstate_of(exc)
        if code == "23503":
            return ForeignKeyConstraintViolationError
        if code == "23505":
            return UniqueConstraintViolationError
        # Truncating a table referenced by a partition's foreign key
        if code == "0A000" and "truncate" in str(exc).lower():
            return ForeignKeyConstraintViolationError
        return None

    def driver_code(self, exc: BaseException) -> int | str | None:
        return sqlstate_of(exc)

    def last_insert_id_sql(self, sequence: str | tuple[str, str] | None) -> tuple[str, dict[str, Any]]:
        if isinstance(sequence, tuple):
            table, column = sequence
            return (
                "SELECT currval(pg_get_serial_sequence(:table, :column))",
                {"table": self.conn.apply_prefix(table), "column": column},
            )
        if sequence:
            return "SELECT currval(:seq)", {"seq": self.conn.apply_prefix(sequence)}
        return "SELECT lastval()", {}

    # -- Introspection -------------------------------------------------------

    def _schema_names(self, sql: str) -> list[str]:
        stmt = self.conn.prepare(sql)
        stmt.execute()
        return [str(name) for name in stmt.fetch_columns(0)]

    def table_names(self) -> list[str]:
        return self._schema_names(
            "SELECT `table_name` FROM `information_schema`.`tables` "
            "WHERE `table_schema` = current_schema() AND `table_type` = 'BASE TABLE'"
        )

    def view_names(self) -> list[str]:
        return self._schema_names(
            "SELECT `table_name` FROM `information_schema`.`views` "
            "WHERE `table_schema` = current_schema()"
        )

    @contextmanager
    def foreign_keys_disabled(self) -> Iterator[None]:
        # Dropping with CASCADE and TRUNCATE ... CASCADE make this unnecessary.
        yield

    # -- DDL -----------------------------------------------------------------

    def column_type(self, column: Column) -> str:
        if column.identity:
            return "BIGSERIAL" if column.type is ColumnType.BIGINT else "SERIAL"
        return super().column_type(column)

    def column_definition(self, column: Column) -> str:
        sql = super().column_definition(column)
        if column.unsigned and column.type in (ColumnType.INT, ColumnType.BIGINT, ColumnType.DOUBLE):
            sql += f" CHECK ({self.quote_identifier(column.name)} >= 0)"
        return sql

    def primary_key_clause(self, table: Table) -> str | None:
        keys = [c.name for c in table.columns if c.is_primary_key]
        if not keys:
            return None
        return f"PRIMARY KEY ({self.quote_identifiers(keys)})"

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
        parts.extend(self.foreign_key_definition(table.name, key) for key in table.foreign_keys)

        self.conn.execute(f"CREATE TABLE {self.quote_identifier(table.name)} ({', '.join(parts)})")

        for index in table.indexes:
            self.add_index(table.name, index)

    def drop_table(self, name: str) -> None:
        self.conn.execute(f"DROP TABLE {self.quote_identifier(name)} CASCADE")

    def drop_index(self, table_name: str, columns: Sequence[str]) -> None:
        name = self.index_name(table_name, Index(tuple(columns)))
        self.conn.execute(f"DROP INDEX IF EXISTS {self.quote_identifier(name)}")

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
            "SELECT 1 FROM `information_schema`.`table_constraints` "
            "WHERE `table_schema` = current_schema() AND `constraint_name` = :name"
        )
        stmt.bind_value("name", name)
        stmt.execute()
        if stmt.fetch_next_column(0) is None:
            logger.debug("platform.foreign_key_absent", table=table_name, constraint=name)
            return
        self.conn.execute(
            f"ALTER TABLE {self.quote_identifier(table_name)} DROP CONSTRAINT {self.quote_identifier(name)}"
        )

    def flush_database(self) -> None:
        views = self.view_names()
        for view in views:
            self.conn.execute(f"DROP VIEW IF EXISTS {self.quote_identifier(view)} CASCADE")
        tables = self.table_names()
        for table in tables:
            self.conn.execute(f"DROP TABLE IF EXISTS {self.quote_identifier(table)} CASCADE")
        logger.info("platform.flush_database", driver=self.name, views=len(views), tables=len(tables))

    def flush_data(self) -> None:
        keep = self.conn.apply_prefix(TRACKING_TABLE_PATTERN).lower().rstrip("*")
        tables = [t for t in self.table_names() if not t.lower().startswith(keep)]
        if tables:
            self.conn.execute(
                f"TRUNCATE TABLE {self.quote_identifiers(tables)} RESTART IDENTITY CASCADE"
            )
        logger.info("platform.flush_data", driver=self.name, tables=len(tables))


__all__ = ["PostgreSQLPlatform"]
