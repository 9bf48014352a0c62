"""Statement - deferred compilation, pagination and enhanced fetch.

Manifesto:
    A Statement is cheap to create and only becomes a native cursor on
    first ``execute()``. Pagination is baked into the SQL text on most
    dialects, so changing the limit or offset of an executed statement
    throws its cursor away and the next ``execute()`` compiles again.

Architecture:
    ::

        conn.prepare(sql)          template SQL (prefix + quoting applied)
            │
            ├── bind_value / bind_all / set_limit / set_offset
            │
        execute()
            ├── no cursor → apply_pagination → compile_placeholders → cursor
            ├── cursor    → drain pending result sets, reuse
            ├── encode params (first claiming encoder wins)
            └── QueryExecutedEvent → listeners, ``query.executed`` log
            │
        fetch_*()  /  iter_*()
            └── enhanced mode: transforms (left to right) → computed columns

Examples:
    >>> stmt = conn.prepare("SELECT `id`, `name` FROM `#__users` WHERE `age` > :age")
    >>> stmt.bind_value("age", 30).set_limit(10)
    >>> stmt.execute()
    >>> stmt.transform("name", str.title).fetch_rows()
    [{'id': 1, 'name': 'Ann'}]

Tags:
    statement, cursor, pagination, fetch, transform, spinedb

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterator, Mapping
from enum import Enum
from typing import TYPE_CHECKING, Any

from spinedb.errors import QueryError
from spinedb.events import QueryExecutedEvent
from spinedb.logging import get_logger
from spinedb.params import CompiledSql, PlaceholderList, compile_placeholders

if TYPE_CHECKING:
    from spinedb.connection import Connection
    from spinedb.protocols import ParamEncoder

logger = get_logger(__name__)

Row = dict[Any, Any] | tuple[Any, ...]


class FetchStyle(str, Enum):
    """Shape of fetched rows."""

    ASSOC = "assoc"  # dict keyed by column name
    NUM = "num"  # tuple in column order
    BOTH = "both"  # dict keyed by name and by position


class Statement:
    """
    A prepared SQL statement bound to one Connection.

    Binding never executes. Fetch methods return ``None`` (single values)
    or an empty list/dict (multi-row) once the result set is exhausted.
    """

    def __init__(self, conn: Connection, sql: str):
        self.conn = conn
        self._sql = sql
        self._limit = 0
        self._offset = 0
        self._params: dict[str, Any] = {}
        self._encoders: list[ParamEncoder] = []
        self._cursor: Any = None
        self._compiled: CompiledSql | None = None
        self._columns: list[str] = []
        self._transforms: dict[str | int, list[Callable[[Any], Any]]] = {}
        self._computed: list[tuple[str, Callable[[dict[str, Any]], Any]]] = []
        self.fetch_style = FetchStyle.ASSOC

    def __repr__(self) -> str:
        return f"Statement({self._sql!r}, limit={self._limit}, offset={self._offset})"

    def __iter__(self) -> Iterator[Row]:
        return self.iter_rows()

    # -- Properties ----------------------------------------------------------

    @property
    def sql(self) -> str:
        """Template SQL, before pagination and paramstyle compilation."""
        return self._sql

    @property
    def params(self) -> dict[str, Any]:
        return dict(self._params)

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def offset(self) -> int:
        return self._offset

    @property
    def enhanced(self) -> bool:
        return bool(self._transforms or self._computed)

    # -- Binding -------------------------------------------------------------

    def bind_value(self, name: str, value: Any) -> Statement:
        self._params[name.lstrip(":")] = value
        return self

    def bind_all(self, params: Mapping[str, Any]) -> Statement:
        for name, value in params.items():
            self.bind_value(name, value)
        return self

    def bind_list(self, placeholders: PlaceholderList) -> Statement:
        return placeholders.bind(self)

    def register_param_encoder(self, encoder: ParamEncoder) -> Statement:
        if encoder not in self._encoders:
            self._encoders.append(encoder)
        return self

    def _encode(self, value: Any) -> Any:
        for encoder in self._encoders:
            claimed, encoded = encoder.encode_param(self.conn, value)
            if claimed:
                return encoded
        return value

    # -- Pagination ----------------------------------------------------------

    def set_limit(self, limit: int) -> Statement:
        limit = max(int(limit), 0)
        if limit != self._limit:
            self._invalidate()
        self._limit = limit
        return self

    def set_offset(self, offset: int) -> Statement:
        offset = max(int(offset), 0)
        if offset != self._offset:
            self._invalidate()
        self._offset = offset
        return self

    def _invalidate(self) -> None:
        if self._cursor is not None:
            self.close()

    # -- Execution -----------------------------------------------------------

    def _compile(self) -> CompiledSql:
        sql = self._sql
        if self._limit > 0:
            sql = self.conn.get_platform().apply_pagination(sql, self._limit, self._offset)
        return compile_placeholders(sql, self.conn.paramstyle)

    def execute(self, params: Mapping[str, Any] | None = None) -> int:
        """Run the statement and return the affected row count (0 when unknown)."""
        if params:
            self.bind_all(params)

        if self._cursor is None or self._compiled is None:
            self.close()
            compiled = self._compiled = self._compile()
            self._cursor = self.conn.create_cursor()
        else:
            compiled = self._compiled
            self.close_cursor()

        self.conn.join_managed_transaction()

        encoded = {name: self._encode(value) for name, value in self._params.items()}
        bound = compiled.bind(encoded)

        started = time.perf_counter()
        try:
            if bound is None:
                self._cursor.execute(compiled.sql)
            else:
                self._cursor.execute(compiled.sql, bound)
        except self.conn.driver_errors as exc:
            raise self.conn.get_platform().convert_exception(exc, compiled.sql) from exc
        elapsed = time.perf_counter() - started

        description = self._cursor.description
        self._columns = [str(column[0]) for column in description] if description else []
        rowcount = self._cursor.rowcount
        rowcount = rowcount if isinstance(rowcount, int) and rowcount > 0 else 0

        event = QueryExecutedEvent(
            sql=compiled.sql,
            params=encoded,
            limit=self._limit,
            offset=self._offset,
            elapsed=elapsed,
        )
        logger.debug(
            "query.executed",
            sql=compiled.sql,
            limit=self._limit,
            offset=self._offset,
            elapsed_ms=event.elapsed_ms,
            rowcount=rowcount,
        )
        self.conn.notify_listeners(event)
        return rowcount

    def close_cursor(self) -> None:
        """Drain unread rows and pending result sets so the cursor can be reused."""
        if self._cursor is None:
            return
        try:
            self._drain(self._cursor)
        except self.conn.driver_errors as exc:
            raise self.conn.get_platform().convert_exception(exc, self._sql) from exc

    def _drain(self, cursor: Any) -> None:
        # Unbuffered cursors (mysql.connector) refuse reuse while rows are unread
        if cursor.description is not None:
            cursor.fetchall()
        nextset = getattr(cursor, "nextset", None)
        if nextset is None:
            return
        try:
            while nextset():
                if cursor.description is not None:
                    cursor.fetchall()
        except self.conn.not_supported_errors:
            # Single-result-set drivers (psycopg2) refuse nextset()
            pass

    def close(self) -> None:
        """Close and discard the native cursor; the next execute recompiles."""
        if self._cursor is None:
            return
        cursor, self._cursor = self._cursor, None
        self._compiled = None
        self._columns = []
        try:
            self._drain(cursor)
            cursor.close()
        except self.conn.driver_errors as exc:
            raise self.conn.get_platform().convert_exception(exc, self._sql) from exc

    # -- Enhanced fetch ------------------------------------------------------

    def transform(self, column: str | int, fn: Callable[[Any], Any]) -> Statement:
        """Rewrite ``column`` with ``fn`` on every fetched row.

        Several transforms on one column are applied in registration order.
        """
        self._transforms.setdefault(column, []).append(fn)
        return self

    def compute(self, column: str, fn: Callable[[dict[str, Any]], Any]) -> Statement:
        """Add (or overwrite) ``column`` with ``fn(row)`` of the transformed row."""
        self._computed.append((column, fn))
        return self

    def _enhance(self, raw: tuple[Any, ...]) -> dict[str, Any]:
        values = list(raw)
        for column, fns in self._transforms.items():
            index = column if isinstance(column, int) else self._column_index(column)
            for fn in fns:
                values[index] = fn(values[index])
        row = dict(zip(self._columns, values))
        for column, fn in self._computed:
            row[column] = fn(dict(row))
        return row

    def _column_index(self, name: str) -> int:
        try:
            return self._columns.index(name)
        except ValueError:
            raise QueryError(f'Unknown result column "{name}"').with_context(sql=self._sql) from None

    def _shape(self, raw: tuple[Any, ...], style: FetchStyle) -> Row:
        if self.enhanced:
            row = self._enhance(raw)
            values = tuple(row.values())
        else:
            row = dict(zip(self._columns, raw))
            values = tuple(raw)
        if style is FetchStyle.NUM:
            return values
        if style is FetchStyle.BOTH:
            both: dict[Any, Any] = dict(enumerate(values))
            both.update(row)
            return both
        return row

    def _fetch_raw(self) -> tuple[Any, ...] | None:
        if self._cursor is None:
            raise QueryError("Statement has not been executed").with_context(sql=self._sql)
        if not self._columns:
            return None
        try:
            raw = self._cursor.fetchone()
        except self.conn.driver_errors as exc:
            raise self.conn.get_platform().convert_exception(exc, self._sql) from exc
        return None if raw is None else tuple(raw)

    # -- Fetch family --------------------------------------------------------

    def fetch_next_row(self, style: FetchStyle | None = None) -> Row | None:
        raw = self._fetch_raw()
        if raw is None:
            return None
        return self._shape(raw, FetchStyle(style or self.fetch_style))

    def fetch_next_column(self, column: str | int = 0) -> Any:
        raw = self._fetch_raw()
        if raw is None:
            return None
        if isinstance(column, int):
            values = list(self._enhance(raw).values()) if self.enhanced else list(raw)
            if not 0 <= column < len(values):
                raise QueryError(f"Unknown result column {column}").with_context(sql=self._sql)
            return values[column]
        row = self._enhance(raw) if self.enhanced else dict(zip(self._columns, raw))
        if column not in row:
            raise QueryError(f'Unknown result column "{column}"').with_context(sql=self._sql)
        return row[column]

    def fetch_rows(self, style: FetchStyle | None = None) -> list[Row]:
        return list(self.iter_rows(style))

    def fetch_columns(self, column: str | int = 0) -> list[Any]:
        return list(self.iter_columns(column))

    def fetch_map(self, key: str | int = 0, value: str | int = 1) -> dict[Any, Any]:
        return dict(self.iter_map(key, value))

    def iter_rows(self, style: FetchStyle | None = None) -> Iterator[Row]:
        """Lazily yield the remaining rows."""
        while (row := self.fetch_next_row(style)) is not None:
            yield row

    def iter_columns(self, column: str | int = 0) -> Iterator[Any]:
        for row in self.iter_rows(FetchStyle.BOTH):
            yield self._pick(row, column)

    def iter_map(self, key: str | int = 0, value: str | int = 1) -> Iterator[tuple[Any, Any]]:
        for row in self.iter_rows(FetchStyle.BOTH):
            yield self._pick(row, key), self._pick(row, value)

    def _pick(self, row: Row, column: str | int) -> Any:
        try:
            return row[column]  # type: ignore[index]
        except (KeyError, IndexError):
            raise QueryError(f'Unknown result column "{column}"').with_context(sql=self._sql) from None


__all__ = ["FetchStyle", "Statement"]
