"""SQLite platform.

SQLite cannot add or drop a foreign key with ``ALTER TABLE``. Both
operations go through :meth:`SQLitePlatform.rebuild_table`, which
recreates the table from a rewritten copy of its catalog DDL:

    1. capture table DDL, column list and index DDLs from the catalog
    2. rename the live table to ``<table>_tmp_``
    3. create the table again from the rewritten DDL
    4. copy every row by explicit column list
    5. drop the temporary table
    6. re-run the captured index DDLs
    7. verify with ``PRAGMA foreign_key_check``

The rename runs with ``legacy_alter_table`` on and foreign keys off so
references held by other tables keep pointing at the original name.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from spinedb.errors import (
    DatabaseError,
    ForeignKeyConstraintViolationError,
    SchemaError,
    TableNotFoundError,
    UniqueConstraintViolationError,
    UnsupportedOperationError,
)
from spinedb.logging import get_logger
from spinedb.platforms.base import SchemaPlatform
from spinedb.schema.column import Column, ColumnType
from spinedb.schema.foreign_key import ForeignKey
from spinedb.schema.index import Index

if TYPE_CHECKING:
    from spinedb.schema.table import Table

logger = get_logger(__name__)

_UNIQUE_MESSAGES = (
    "must be unique",
    "is not unique",
    "are not unique",
    "UNIQUE constraint failed",
)

_FOREIGN_KEY_CLAUSE = re.compile(
    r",\s*FOREIGN\s+KEY\s*\(([^)]+)\)\s*REFERENCES\s+([^(]+?)\s*\(([^)]+)\)[^,]*",
    re.IGNORECASE,
)


def _clean_identifier(value: str) -> str:
    return value.strip().strip('"`[]').strip()


def _split_identifiers(value: str) -> tuple[str, ...]:
    return tuple(_clean_identifier(part) for part in value.split(","))


class SQLitePlatform(SchemaPlatform):
    """SQLite 3 via the standard library ``sqlite3`` module."""

    name = "sqlite"

    type_map = {
        ColumnType.BIGINT: "INTEGER",
        ColumnType.BINARY: "BINARY({limit})",
        ColumnType.BLOB: "BLOB",
        ColumnType.BOOL: "TINYINT(1)",
        ColumnType.CHAR: "CHAR({limit})",
        ColumnType.DOUBLE: "DOUBLE",
        ColumnType.INT: "INTEGER",
        ColumnType.TEXT: "TEXT",
        ColumnType.UUID: "BINARY(16)",
        ColumnType.VARCHAR: "VARCHAR({limit})",
    }

    # -- Connection setup ----------------------------------------------------

    def initialize_connection(self) -> None:
        self.conn.execute_raw("PRAGMA foreign_keys = ON")
        for pragma, value in dict(self.conn.get_option("pragma") or {}).items():
            self.conn.execute_raw(f"PRAGMA {pragma} = {value}")

    # -- Errors --------------------------------------------------------------

    def classify(self, exc: BaseException) -> type[DatabaseError] | None:
        if type(exc).__name__ != "IntegrityError":
            return None
        message = str(exc)
        if any(text in message for text in _UNIQUE_MESSAGES):
            return UniqueConstraintViolationError
        if "foreign" in message.lower():
            return ForeignKeyConstraintViolationError
        return None

    def driver_code(self, exc: BaseException) -> int | str | None:
        return getattr(exc, "sqlite_errorcode", None)

    def last_insert_id_sql(self, sequence: str | tuple[str, str] | None) -> tuple[str, dict[str, Any]]:
        return "SELECT last_insert_rowid()", {}

    # -- Introspection -------------------------------------------------------

    def _catalog_names(self, kind: str) -> list[str]:
        stmt = self.conn.prepare(
            "SELECT `name` FROM `sqlite_master` WHERE `name` NOT GLOB 'sqlite_*' AND `type` = :type"
        )
        stmt.bind_value("type", kind)
        stmt.execute()
        return [str(name) for name in stmt.fetch_columns(0)]

    def table_names(self) -> list[str]:
        return self._catalog_names("table")

    def view_names(self) -> list[str]:
        return self._catalog_names("view")

    def _pragma_value(self, pragma: str) -> Any:
        stmt = self.conn.prepare(f"PRAGMA {pragma}")
        stmt.execute()
        return stmt.fetch_next_column(0)

    @contextmanager
    def foreign_keys_disabled(self) -> Iterator[None]:
        """Turn off foreign key enforcement, restoring the previous setting afterwards.

        SQLite ignores this pragma inside an open transaction.
        """
        previous = int(self._pragma_value("foreign_keys") or 0)
        self.conn.execute_raw("PRAGMA foreign_keys = OFF")
        try:
            yield
        finally:
            self.conn.execute_raw(f"PRAGMA foreign_keys = {'ON' if previous else 'OFF'}")

    def migration_scope(self) -> Any:
        return self.foreign_keys_disabled()

    # -- DDL -----------------------------------------------------------------

    def column_definition(self, column: Column) -> str:
        sql = super().column_definition(column)
        if column.identity:
            sql += " PRIMARY KEY AUTOINCREMENT"
        return sql

    def create_table(self, table: Table) -> None:
        parts = [self.column_definition(column) for column in table.columns]
        primary_key = self.primary_key_clause(table)
        if primary_key:
            parts.append(primary_key)
        parts.extend(self.foreign_key_definition(table.name, key) for key in table.foreign_keys)

        self.conn.execute(f"CREATE TABLE {self.quote_identifier(table.name)} ({', '.join(parts)})")

        for index in table.indexes:
            self.add_index(table.name, index)

    def drop_index(self, table_name: str, columns: Sequence[str]) -> None:
        name = self.index_name(table_name, Index(tuple(columns)))
        self.conn.execute(f"DROP INDEX {self.quote_identifier(name)}")

    def add_foreign_key(self, table_name: str, key: ForeignKey) -> None:
        definition = self.foreign_key_definition(table_name, key)
        self.rebuild_table(table_name, lambda body: f"{body}, {definition}")

    def drop_foreign_key(
        self,
        table_name: str,
        columns: Sequence[str],
        ref_table: str,
        ref_columns: Sequence[str],
    ) -> None:
        missing = set(columns) - set(self._column_names(table_name))
        if missing:
            raise SchemaError(
                f"Column(s) {', '.join(sorted(missing))} not found in table {table_name}"
            ).with_context(table=table_name)

        body = self._table_body(table_name)
        wanted_table = self.conn.apply_prefix(ref_table).lower()
        fragments = [
            match.group(0)
            for match in _FOREIGN_KEY_CLAUSE.finditer(body)
            if _clean_identifier(match.group(2)).lower() == wanted_table
            and _split_identifiers(match.group(1)) == tuple(columns)
            and _split_identifiers(match.group(3)) == tuple(ref_columns)
        ]
        if not fragments:
            logger.debug("platform.foreign_key_absent", table=table_name, columns=list(columns))
            return

        def remove_clause(ddl: str) -> str:
            for fragment in fragments:
                ddl = ddl.replace(fragment, "", 1)
            return ddl

        self.rebuild_table(table_name, remove_clause)

    # -- Table rebuild -------------------------------------------------------

    def _table_body(self, table_name: str) -> str:
        """Catalog DDL of ``table_name`` without its closing parenthesis."""
        stmt = self.conn.prepare(
            "SELECT `sql` FROM `sqlite_master` WHERE `type` = :type AND `tbl_name` = :name"
        )
        stmt.bind_all({"type": "table", "name": self.conn.apply_prefix(table_name)})
        stmt.execute()
        ddl = (stmt.fetch_next_column("sql") or "").strip()
        if not ddl.endswith(")"):
            raise TableNotFoundError(f'Database table "{table_name}" not found').with_context(
                table=table_name
            )
        return ddl[:-1].rstrip()

    def _column_names(self, table_name: str) -> list[str]:
        stmt = self.conn.prepare(f"PRAGMA table_info({self.quote_identifier(table_name)})")
        stmt.execute()
        return [str(name) for name in stmt.fetch_columns("name")]

    def _index_ddls(self, table_name: str) -> list[str]:
        stmt = self.conn.prepare(
            "SELECT `sql` FROM `sqlite_master` WHERE `type` = :type AND `tbl_name` = :name AND NOT `sql` IS NULL"
        )
        stmt.bind_all({"type": "index", "name": self.conn.apply_prefix(table_name)})
        stmt.execute()
        return [str(sql) for sql in stmt.fetch_columns(0)]

    def _referenced_by_others(self, table_name: str) -> bool:
        target = self.conn.apply_prefix(table_name).lower()
        for other in self.table_names():
            if other.lower() == target:
                continue
            stmt = self.conn.prepare(f"PRAGMA foreign_key_list({self.quote_identifier(other)})")
            stmt.execute()
            if any(str(ref).lower() == target for ref in stmt.fetch_columns("table")):
                return True
        return False

    @contextmanager
    def _rebuild_pragmas(self, table_name: str) -> Iterator[None]:
        fk_enabled = bool(int(self._pragma_value("foreign_keys") or 0))
        if fk_enabled and self.conn.in_transaction():
            # foreign_keys cannot change inside a transaction; renaming a
            # referenced table would then rewrite the other tables' references.
            if self._referenced_by_others(table_name):
                raise UnsupportedOperationError(
                    f'Cannot rebuild referenced table "{table_name}" inside a transaction '
                    "while foreign keys are enforced"
                ).with_context(table=table_name)
            fk_enabled = False

        legacy = int(self._pragma_value("legacy_alter_table") or 0)
        if fk_enabled:
            self.conn.execute_raw("PRAGMA foreign_keys = OFF")
        self.conn.execute_raw("PRAGMA legacy_alter_table = ON")
        try:
            yield
        finally:
            self.conn.execute_raw(f"PRAGMA legacy_alter_table = {'ON' if legacy else 'OFF'}")
            if fk_enabled:
                self.conn.execute_raw("PRAGMA foreign_keys = ON")

    def rebuild_table(self, table_name: str, rewrite: Callable[[str], str]) -> None:
        """Recreate ``table_name`` from its catalog DDL as rewritten by ``rewrite``.

        ``rewrite`` receives the DDL without its closing parenthesis and
        returns the new body; column order and data are preserved.
        """
        body = self._table_body(table_name)
        columns = self.quote_identifiers(self._column_names(table_name))
        index_ddls = self._index_ddls(table_name)
        table = self.quote_identifier(table_name)
        tmp = self.quote_identifier(f"{table_name}_tmp_")

        logger.info("platform.rebuild_table", table=table_name, indexes=len(index_ddls))

        with self._rebuild_pragmas(table_name), self.conn.transaction():
            self.conn.execute(f"ALTER TABLE {table} RENAME TO {tmp}")
            self.conn.execute(rewrite(body) + ")")
            self.conn.execute(f"INSERT INTO {table} ({columns}) SELECT {columns} FROM {tmp}")
            self.conn.execute(f"DROP TABLE {tmp}")
            for ddl in index_ddls:
                self.conn.execute(ddl)

            stmt = self.conn.prepare(f"PRAGMA foreign_key_check({table})")
            stmt.execute()
            if stmt.fetch_next_row() is not None:
                raise ForeignKeyConstraintViolationError(
                    f'Rows of "{table_name}" violate its foreign keys'
                ).with_context(table=table_name, driver=self.name)


__all__ = ["SQLitePlatform"]
