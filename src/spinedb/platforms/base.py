"""Platform base class.

Manifesto:
    Dialect differences live in exactly one place. A Connection selects its
    Platform once, at construction, and every dialect-specific decision
    (identifier quoting, transaction and savepoint SQL, pagination, DDL,
    error classification) is a method call on that single polymorphic
    reference instead of a string switch on the driver name.

Architecture:
    ::

        Platform (this module)
        ├── quoting            quote_identifier, quote_literal
        ├── transactions       begin/commit/roll_back + savepoint SQL
        ├── pagination         apply_pagination(sql, limit, offset)
        ├── errors             convert_exception → portable taxonomy
        ├── introspection      has_table, table_names
        └── DDL                create_table, add_column, add_index, ...
                               (UnsupportedOperationError unless overridden)

        SchemaPlatform(Platform)          shared DDL assembly
        ├── SQLitePlatform
        ├── MySQLPlatform ── CubridPlatform
        └── PostgreSQLPlatform
        MSSQLPlatform, OraclePlatform, DB2Platform (no DDL)

Tags:
    platform, dialect, ddl, pagination, savepoint, sqlstate, spinedb

Doc-Types:
    - API Reference
    - Architecture Documentation
"""

from __future__ import annotations

import re
from collections.abc import Iterator, Sequence
from contextlib import contextmanager, nullcontext
from typing import TYPE_CHECKING, Any, ContextManager

from spinedb.errors import (
    DatabaseError,
    ErrorContext,
    SpineDBError,
    UnsupportedOperationError,
)
from spinedb.logging import get_logger
from spinedb.schema.column import Column, ColumnType
from spinedb.schema.foreign_key import ForeignKey
from spinedb.schema.index import Index

if TYPE_CHECKING:
    from spinedb.connection import Connection
    from spinedb.schema.table import Table

logger = get_logger(__name__)

# Tables whose (prefixed) name matches this pattern survive flush_data().
TRACKING_TABLE_PATTERN = "#__spinedb_*"

_SQLSTATE_RE = re.compile(r"SQLSTATE[=:\s]*([0-9A-Z]{5})")


def find_driver_error(exc: BaseException) -> BaseException:
    """Walk the ``__cause__`` / ``__context__`` chain to the native driver exception."""
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if not isinstance(current, SpineDBError):
            return current
        current = current.__cause__ or current.__context__
    return exc


def sqlstate_of(exc: BaseException) -> str | None:
    """Best-effort SQLSTATE for a DB-API exception."""
    for attr in ("sqlstate", "pgcode"):
        value = getattr(exc, attr, None)
        if isinstance(value, str) and value:
            return value
    args = getattr(exc, "args", ())
    if len(args) >= 2 and isinstance(args[0], str) and re.fullmatch(r"[0-9A-Z]{5}", args[0]):
        return args[0]
    match = _SQLSTATE_RE.search(str(exc))
    if match:
        return match.group(1)
    return None


class Platform:
    """
    Dialect behavior shared by every backend.

    The defaults follow standard SQL (double-quoted identifiers,
    ``BEGIN``/``COMMIT``/``ROLLBACK``, ``SAVEPOINT``, ``LIMIT n OFFSET m``).
    Platforms without DDL support inherit the ``UnsupportedOperationError``
    raising schema methods.
    """

    name: str = "generic"
    supports_savepoints: bool = True
    native_uuid: bool = False

    def __init__(self, conn: Connection):
        self.conn = conn

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"

    # -- Quoting -------------------------------------------------------------

    def quote_identifier(self, name: str) -> str:
        return '"' + str(name).replace('"', '""') + '"'

    def quote_literal(self, value: Any) -> str:
        """Render ``value`` as an SQL literal (DDL defaults, ``Connection.quote``)."""
        if value is None:
            return "NULL"
        if isinstance(value, bool):
            return "1" if value else "0"
        if isinstance(value, (int, float)):
            return repr(value)
        if isinstance(value, (bytes, bytearray, memoryview)):
            return "X'" + bytes(value).hex().upper() + "'"
        return "'" + str(value).replace("'", "''") + "'"

    def quote_identifiers(self, names: Sequence[str]) -> str:
        return ", ".join(self.quote_identifier(n) for n in names)

    # -- Connection setup ----------------------------------------------------

    def initialize_connection(self) -> None:
        """Session setup run right after the native handle is opened."""

    # -- Transactions --------------------------------------------------------

    def begin_sql(self) -> str:
        return "BEGIN"

    def commit_sql(self) -> str:
        return "COMMIT"

    def rollback_sql(self) -> str:
        return "ROLLBACK"

    def create_savepoint_sql(self, name: str) -> str:
        return f"SAVEPOINT {name}"

    def rollback_savepoint_sql(self, name: str) -> str:
        return f"ROLLBACK TO SAVEPOINT {name}"

    def _require_savepoints(self) -> None:
        if not self.supports_savepoints:
            raise UnsupportedOperationError(
                f'Database driver "{self.name}" does not support nested transactions'
            )

    def begin_transaction(self, savepoint: str | None = None) -> None:
        """Open the outermost transaction, or create ``savepoint`` inside it."""
        if savepoint is None:
            self.conn.execute_raw(self.begin_sql())
        else:
            self._require_savepoints()
            self.conn.execute_raw(self.create_savepoint_sql(savepoint))

    def commit_transaction(self, savepoint: str | None = None) -> None:
        """Commit the outermost transaction, or re-establish ``savepoint``.

        A nested commit does not release anything: the savepoint is created
        again under the enclosing level so a later rollback of that level
        still has a target.
        """
        if savepoint is None:
            self.conn.execute_raw(self.commit_sql())
        else:
            self._require_savepoints()
            self.conn.execute_raw(self.create_savepoint_sql(savepoint))

    def roll_back_transaction(self, savepoint: str | None = None) -> None:
        if savepoint is None:
            self.conn.execute_raw(self.rollback_sql())
        else:
            self._require_savepoints()
            self.conn.execute_raw(self.rollback_savepoint_sql(savepoint))

    # -- Pagination ----------------------------------------------------------

    def apply_pagination(self, sql: str, limit: int, offset: int = 0) -> str:
        """Bake ``limit``/``offset`` into ``sql``; a limit of 0 means no pagination."""
        if limit <= 0:
            return sql
        return f"{sql} LIMIT {int(limit)} OFFSET {int(offset)}"

    # -- Errors --------------------------------------------------------------

    def classify(self, exc: BaseException) -> type[DatabaseError] | None:
        """Map a native driver exception to a taxonomy class, or ``None``."""
        return None

    def driver_code(self, exc: BaseException) -> int | str | None:
        return None

    def convert_exception(self, exc: BaseException, sql: str | None = None) -> DatabaseError:
        """Classify ``exc`` into the portable taxonomy.

        Already-classified errors pass through unchanged; anything that
        matches no rule becomes a plain :class:`DatabaseError`.
        """
        if isinstance(exc, DatabaseError):
            return exc
        native = find_driver_error(exc)
        error_cls = self.classify(native) or DatabaseError
        context = ErrorContext(
            driver=self.name,
            sql=sql,
            sqlstate=sqlstate_of(native),
            driver_code=self.driver_code(native),
        )
        return error_cls(str(native) or native.__class__.__name__, context=context, cause=native)

    # -- Identity values -----------------------------------------------------

    def last_insert_id_sql(self, sequence: str | tuple[str, str] | None) -> tuple[str, dict[str, Any]]:
        raise UnsupportedOperationError(f'Driver "{self.name}" cannot report last insert ids')

    def last_insert_id(self, sequence: str | tuple[str, str] | None = None) -> Any:
        sql, params = self.last_insert_id_sql(sequence)
        stmt = self.conn.prepare(sql)
        stmt.bind_all(params)
        stmt.execute()
        return stmt.fetch_next_column(0)

    # -- Introspection -------------------------------------------------------

    def table_names(self) -> list[str]:
        raise UnsupportedOperationError(f'Driver "{self.name}" cannot list tables')

    def has_table(self, name: str) -> bool:
        """Case-insensitive existence check after prefix substitution."""
        wanted = self.conn.apply_prefix(name).lower()
        return any(table.lower() == wanted for table in self.table_names())

    # -- DDL -----------------------------------------------------------------

    def _no_ddl(self, operation: str) -> UnsupportedOperationError:
        return UnsupportedOperationError(
            f'{operation} is not implemented for driver "{self.name}"'
        )

    def create_table(self, table: Table) -> None:
        raise self._no_ddl("create_table")

    def drop_table(self, name: str) -> None:
        raise self._no_ddl("drop_table")

    def add_column(self, table_name: str, column: Column) -> None:
        raise self._no_ddl("add_column")

    def add_index(self, table_name: str, index: Index) -> None:
        raise self._no_ddl("add_index")

    def drop_index(self, table_name: str, columns: Sequence[str]) -> None:
        raise self._no_ddl("drop_index")

    def add_foreign_key(self, table_name: str, key: ForeignKey) -> None:
        raise self._no_ddl("add_foreign_key")

    def drop_foreign_key(
        self,
        table_name: str,
        columns: Sequence[str],
        ref_table: str,
        ref_columns: Sequence[str],
    ) -> None:
        raise self._no_ddl("drop_foreign_key")

    def flush_database(self) -> None:
        raise self._no_ddl("flush_database")

    def flush_data(self) -> None:
        raise self._no_ddl("flush_data")

    @contextmanager
    def foreign_keys_disabled(self) -> Iterator[None]:
        raise self._no_ddl("foreign_keys_disabled")
        yield  # pragma: no cover

    def migration_scope(self) -> ContextManager[Any]:
        """Wraps every migration ``up()`` call."""
        return nullcontext()


class SchemaPlatform(Platform):
    """
    DDL assembly shared by the platforms that implement schema changes.

    Subclasses provide ``type_map`` (logical type → physical type, with a
    ``{limit}`` field for sized types) and ``default_limits``.
    """

    type_map: dict[ColumnType, str] = {}
    default_limits: dict[ColumnType, int] = {
        ColumnType.VARCHAR: 250,
        ColumnType.CHAR: 250,
        ColumnType.BINARY: 250,
    }

    def column_type(self, column: Column) -> str:
        template = self.type_map[column.type]
        if "{limit}" not in template:
            return template
        default = self.default_limits[column.type]
        limit = default if column.limit is None else min(column.limit, default)
        return template.format(limit=limit)

    def default_clause(self, column: Column) -> str:
        if not column.has_default:
            return ""
        return " DEFAULT " + self.quote_literal(column.default)

    def null_clause(self, column: Column) -> str:
        return " NULL" if column.is_nullable else " NOT NULL"

    def column_definition(self, column: Column) -> str:
        """Full column definition as used in CREATE TABLE / ADD COLUMN."""
        return (
            self.quote_identifier(column.name)
            + " "
            + self.column_type(column)
            + self.null_clause(column)
            + self.default_clause(column)
        )

    def primary_key_clause(self, table: Table) -> str | None:
        """Separate PRIMARY KEY clause for non-identity key columns."""
        keys = [c.name for c in table.columns if c.primary_key and not c.identity]
        if not keys:
            return None
        return f"PRIMARY KEY ({self.quote_identifiers(keys)})"

    def foreign_key_definition(self, table_name: str, key: ForeignKey) -> str:
        return (
            f"FOREIGN KEY ({self.quote_identifiers(key.columns)}) "
            f"REFERENCES {self.quote_identifier(key.ref_table)} "
            f"({self.quote_identifiers(key.ref_columns)}) "
            f"ON UPDATE {key.on_update} ON DELETE {key.on_delete}"
        )

    def index_name(self, table_name: str, index: Index) -> str:
        return index.name_for(self.conn.apply_prefix(table_name))

    def create_index_sql(self, table_name: str, index: Index) -> str:
        unique = "UNIQUE " if index.unique else ""
        return (
            f"CREATE {unique}INDEX {self.quote_identifier(self.index_name(table_name, index))} "
            f"ON {self.quote_identifier(table_name)} ({self.quote_identifiers(index.columns)})"
        )

    def add_index(self, table_name: str, index: Index) -> None:
        self.conn.execute(self.create_index_sql(table_name, index))

    def add_column(self, table_name: str, column: Column) -> None:
        self.conn.execute(
            f"ALTER TABLE {self.quote_identifier(table_name)} ADD COLUMN {self.column_definition(column)}"
        )

    def drop_table(self, name: str) -> None:
        self.conn.execute(f"DROP TABLE {self.quote_identifier(name)}")

    def view_names(self) -> list[str]:
        return []

    def flush_database(self) -> None:
        """Drop every view and table, the migration tracking table included."""
        with self.foreign_keys_disabled():
            views = self.view_names()
            for view in views:
                self.conn.execute(f"DROP VIEW {self.quote_identifier(view)}")
            tables = [t for t in self.table_names() if t not in views]
            for table in tables:
                self.conn.execute(f"DROP TABLE {self.quote_identifier(table)}")
        logger.info("platform.flush_database", driver=self.name, views=len(views), tables=len(tables))

    def flush_data(self) -> None:
        """Delete all rows except those of the migration tracking table."""
        keep = re.compile(
            re.escape(self.conn.apply_prefix(TRACKING_TABLE_PATTERN)).replace(r"\*", ".*"),
            re.IGNORECASE,
        )
        with self.foreign_keys_disabled():
            views = set(self.view_names())
            tables = [t for t in self.table_names() if t not in views and not keep.fullmatch(t)]
            for table in tables:
                self.conn.execute(f"DELETE FROM {self.quote_identifier(table)}")
        logger.info("platform.flush_data", driver=self.name, tables=len(tables))


def parse_major_version(version: str | int | None) -> int:
    """Leading major version number of a server version string (``0`` if unknown)."""
    if version is None:
        return 0
    if isinstance(version, int):
        return version
    match = re.search(r"([0-9]+)[cg]\b", version, re.IGNORECASE) or re.match(r"\s*([0-9]+)", version)
    return int(match.group(1)) if match else 0


__all__ = [
    "Platform",
    "SchemaPlatform",
    "TRACKING_TABLE_PATTERN",
    "find_driver_error",
    "parse_major_version",
    "sqlstate_of",
]
