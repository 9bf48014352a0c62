"""Connection - nested transactions, SQL templating and CRUD helpers.

Manifesto:
    Application code nests logical transactions all the time: an upsert's
    read-then-write runs inside whatever transaction its caller opened.
    The Connection turns a flat begin/commit/roll_back API into correctly
    nested transactions: the outermost level is a real transaction, every
    inner level is a savepoint named ``LEVEL<depth>``.

    - **One dialect decision:** the Platform is chosen once, here
    - **Depth after success:** the nesting counter only moves once the
      native call went through, so it never drifts from the database
    - **Middleware, not globals:** decorators form an explicit per-call
      chain wrapping the real implementation

Architecture:
    ::

        depth 0 ── begin ──▶ BEGIN                         depth 1
        depth 1 ── begin ──▶ SAVEPOINT LEVEL1              depth 2
        depth 2 ── commit ─▶ SAVEPOINT LEVEL1 (re-establish) depth 1
        depth 2 ── rollback▶ ROLLBACK TO SAVEPOINT LEVEL1    depth 1
        depth 1 ── commit ─▶ COMMIT                        depth 0

        With a coordinator (managed mode) the calls delegate to the
        TransactionManager and the connection joins its transactions
        as a resource when a statement executes.

    Templating, applied by ``prepare_sql``:
        1. whitespace runs collapse to one space
        2. ``#__`` becomes the schema-object prefix
        3. ```name``` becomes the dialect's quoted identifier

Examples:
    >>> conn = open_connection("sqlite:///:memory:", prefix="app_")
    >>> with conn.transaction():
    ...     conn.insert("#__users", {"id": 1, "name": "ann"})
    ...     conn.upsert("#__users", {"id": 1}, {"name": "bob"})

Tags:
    connection, transaction, savepoint, crud, upsert, decorator, spinedb

Doc-Types:
    - API Reference
    - Architecture Documentation
"""

from __future__ import annotations

import functools
import re
import sys
from collections.abc import Callable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from types import ModuleType
from typing import TYPE_CHECKING, Any

from spinedb.errors import DatabaseError, TransactionError, UnsupportedOperationError
from spinedb.events import QueryExecutedEvent, QueryListener
from spinedb.logging import get_logger
from spinedb.platforms.registry import get_platform
from spinedb.statement import Statement

if TYPE_CHECKING:
    from spinedb.decorators import ConnectionDecorator
    from spinedb.platforms.base import Platform
    from spinedb.protocols import ParamEncoder
    from spinedb.transactions import Transaction, TransactionManager

logger = get_logger(__name__)

# Marker replaced by the schema-object prefix in raw SQL.
PREFIX_TOKEN = "#__"

_WHITESPACE = re.compile(r"\s+")
_BACKTICK_IDENTIFIER = re.compile(r"`([^`]*)`")


def resolve_dbapi(native: Any) -> ModuleType | None:
    """Find the DB-API module of a native connection by walking up its module path."""
    module_name = type(native).__module__
    while module_name:
        module = sys.modules.get(module_name)
        if module is not None and isinstance(getattr(module, "Error", None), type):
            return module
        module_name = module_name.rpartition(".")[0]
    return None


class Connection:
    """
    One native DB-API handle plus nesting state, prefix and decorators.

    Args:
        native: Open DB-API connection, in autocommit mode
        driver: Driver name (``sqlite``, ``mysql``, ``postgresql``, ...)
        dbapi: DB-API module of ``native``; looked up when omitted
        paramstyle: Placeholder style of the driver; taken from ``dbapi``
        prefix: Replacement for ``#__`` in SQL
        options: Driver options (``encoding``, ``timezone``, ``pragma``, ...)
        server_version: Server version string, used by version-aware pagination
        coordinator: TransactionManager for managed transactions
        decorators: Initial decorator chain, outermost first
        encoders: Parameter encoders copied onto every prepared statement
    """

    def __init__(
        self,
        native: Any,
        driver: str,
        *,
        dbapi: ModuleType | None = None,
        paramstyle: str | None = None,
        prefix: str = "",
        options: Mapping[str, Any] | None = None,
        server_version: str | None = None,
        coordinator: TransactionManager | None = None,
        decorators: Sequence[ConnectionDecorator] = (),
        encoders: Sequence[ParamEncoder] = (),
    ):
        self.native = native
        self.driver = str(getattr(driver, "value", driver)).lower()
        self.dbapi = dbapi if dbapi is not None else resolve_dbapi(native)
        self.paramstyle = paramstyle or getattr(self.dbapi, "paramstyle", None) or "named"
        self.prefix = prefix
        self.options: dict[str, Any] = dict(options or {})
        self.server_version = server_version
        self.coordinator = coordinator
        self._depth = 0
        self._decorators: list[ConnectionDecorator] = list(decorators)
        self._encoders: list[ParamEncoder] = list(encoders)
        self._listeners: list[QueryListener] = []
        self._closed = False

        error = getattr(self.dbapi, "Error", None)
        self.driver_errors: tuple[type[BaseException], ...] = (
            (error,) if isinstance(error, type) else (Exception,)
        )
        not_supported = getattr(self.dbapi, "NotSupportedError", None)
        self.not_supported_errors: tuple[type[BaseException], ...] = (
            (not_supported,) if isinstance(not_supported, type) else ()
        )

        self.platform: Platform = get_platform(self.driver)(self)

    def __repr__(self) -> str:
        return f"Connection(driver={self.driver!r}, prefix={self.prefix!r}, depth={self._depth})"

    def __enter__(self) -> Connection:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    # -- Basics --------------------------------------------------------------

    def get_platform(self) -> Platform:
        return self.platform

    def get_option(self, name: str, default: Any = None) -> Any:
        return self.options.get(name, default)

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.native.close()
        logger.debug("connection.closed", driver=self.driver)

    def create_cursor(self) -> Any:
        return self.native.cursor()

    def execute_raw(self, sql: str) -> None:
        """Run ``sql`` verbatim: no templating, no parameters, no listeners."""
        cursor = self.create_cursor()
        try:
            cursor.execute(sql)
        except self.driver_errors as exc:
            raise self.platform.convert_exception(exc, sql) from exc
        finally:
            cursor.close()

    # -- Listeners -----------------------------------------------------------

    def add_listener(self, listener: QueryListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: QueryListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def notify_listeners(self, event: QueryExecutedEvent) -> None:
        for listener in list(self._listeners):
            listener(event)

    # -- Parameter encoders --------------------------------------------------

    def register_param_encoder(self, encoder: ParamEncoder) -> Connection:
        if encoder not in self._encoders:
            self._encoders.append(encoder)
        return self

    def unregister_param_encoder(self, encoder: ParamEncoder) -> Connection:
        if encoder in self._encoders:
            self._encoders.remove(encoder)
        return self

    # -- Decorators ----------------------------------------------------------

    @property
    def decorators(self) -> tuple[ConnectionDecorator, ...]:
        return tuple(self._decorators)

    def add_decorator(self, decorator: ConnectionDecorator) -> Connection:
        self._decorators.append(decorator)
        return self

    def remove_decorator(self, decorator: ConnectionDecorator) -> Connection:
        if self.in_transaction():
            raise TransactionError("Decorators cannot be removed during a transaction")
        self._decorators.remove(decorator)
        return self

    def _decorated(self, operation: str, terminal: Callable[..., Any], *args: Any) -> Any:
        """Run ``terminal`` behind every decorator's ``operation`` hook.

        The first decorator added is the outermost; each hook gets
        ``proceed`` (the rest of the chain) followed by the call arguments.
        """
        proceed = terminal
        for decorator in reversed(self._decorators):
            proceed = functools.partial(getattr(decorator, operation), proceed)
        return proceed(*args)

    # -- Templating ----------------------------------------------------------

    def prepare_sql(self, sql: str, prefix: str | None = None) -> str:
        sql = _WHITESPACE.sub(" ", sql).strip()
        sql = sql.replace(PREFIX_TOKEN, self.prefix if prefix is None else prefix)
        return _BACKTICK_IDENTIFIER.sub(lambda m: self.platform.quote_identifier(m.group(1)), sql)

    def apply_prefix(self, value: str, prefix: str | None = None) -> str:
        return self._decorated("apply_prefix", self._apply_prefix, value, prefix)

    def _apply_prefix(self, value: str, prefix: str | None) -> str:
        return str(value).replace(PREFIX_TOKEN, self.prefix if prefix is None else prefix)

    def quote(self, value: Any) -> str:
        return self._decorated("quote", self.platform.quote_literal, value)

    def quote_identifier(self, name: str) -> str:
        return self._decorated("quote_identifier", self.platform.quote_identifier, name)

    # -- Statements ----------------------------------------------------------

    def prepare(self, sql: str, prefix: str | None = None) -> Statement:
        return self._decorated("prepare", self._prepare, sql, prefix)

    def _prepare(self, sql: str, prefix: str | None) -> Statement:
        stmt = Statement(self, self.prepare_sql(sql, prefix))
        for encoder in self._encoders:
            stmt.register_param_encoder(encoder)
        return stmt

    def execute(
        self,
        sql: str,
        params: Mapping[str, Any] | None = None,
        prefix: str | None = None,
    ) -> int:
        """Prepare, execute and close ``sql``; returns the affected row count."""
        return self._decorated("execute", self._execute, sql, params, prefix)

    def _execute(self, sql: str, params: Mapping[str, Any] | None, prefix: str | None) -> int:
        stmt = self.prepare(sql, prefix)
        try:
            return stmt.execute(params)
        finally:
            stmt.close()

    # -- CRUD ----------------------------------------------------------------

    def _where(self, key: Mapping[str, Any]) -> str:
        return " AND ".join(f"{self.platform.quote_identifier(c)} = :k{c}" for c in key)

    def insert(self, table: str, values: Mapping[str, Any], prefix: str | None = None) -> int:
        return self._decorated("insert", self._insert, table, values, prefix)

    def _insert(self, table: str, values: Mapping[str, Any], prefix: str | None) -> int:
        columns = self.platform.quote_identifiers(list(values))
        placeholders = ", ".join(f":v{c}" for c in values)
        return self.execute(
            f"INSERT INTO {self.platform.quote_identifier(table)} ({columns}) VALUES ({placeholders})",
            {f"v{c}": v for c, v in values.items()},
            prefix,
        )

    def update(
        self,
        table: str,
        key: Mapping[str, Any],
        values: Mapping[str, Any],
        prefix: str | None = None,
    ) -> int:
        return self._decorated("update", self._update, table, key, values, prefix)

    def _update(
        self,
        table: str,
        key: Mapping[str, Any],
        values: Mapping[str, Any],
        prefix: str | None,
    ) -> int:
        assignments = ", ".join(f"{self.platform.quote_identifier(c)} = :v{c}" for c in values)
        params = {f"v{c}": v for c, v in values.items()}
        params.update({f"k{c}": v for c, v in key.items()})
        return self.execute(
            f"UPDATE {self.platform.quote_identifier(table)} SET {assignments} WHERE {self._where(key)}",
            params,
            prefix,
        )

    def delete(self, table: str, key: Mapping[str, Any], prefix: str | None = None) -> int:
        return self._decorated("delete", self._delete, table, key, prefix)

    def _delete(self, table: str, key: Mapping[str, Any], prefix: str | None) -> int:
        return self.execute(
            f"DELETE FROM {self.platform.quote_identifier(table)} WHERE {self._where(key)}",
            {f"k{c}": v for c, v in key.items()},
            prefix,
        )

    def upsert(
        self,
        table: str,
        key: Mapping[str, Any],
        values: Mapping[str, Any] | None = None,
        prefix: str | None = None,
    ) -> int:
        """Update the row identified by ``key``, or insert ``values`` plus ``key``.

        Runs in its own (possibly nested) transaction; any failure rolls it
        back and re-raises.
        """
        return self._decorated("upsert", self._upsert, table, key, values, prefix)

    def _upsert(
        self,
        table: str,
        key: Mapping[str, Any],
        values: Mapping[str, Any] | None,
        prefix: str | None,
    ) -> int:
        if not key:
            raise DatabaseError("Upsert needs at least one key column").with_context(table=table)
        if not values:
            first = next(iter(key))
            values = {first: key[first]}

        with self.transaction():
            stmt = self.prepare(
                f"SELECT 1 FROM {self.platform.quote_identifier(table)} WHERE {self._where(key)}",
                prefix,
            )
            try:
                stmt.set_limit(1).bind_all({f"k{c}": v for c, v in key.items()}).execute()
                exists = stmt.fetch_next_row() is not None
            finally:
                stmt.close()

            if exists:
                return self.update(table, key, values, prefix)
            return self.insert(table, {**values, **key}, prefix)

    def last_insert_id(
        self,
        sequence: str | tuple[str, str] | None = None,
        prefix: str | None = None,
    ) -> Any:
        """Last generated identity value (``(table, column)`` or a sequence name on PostgreSQL)."""
        return self._decorated("last_insert_id", self._last_insert_id, sequence, prefix)

    def _last_insert_id(self, sequence: str | tuple[str, str] | None, prefix: str | None) -> Any:
        if isinstance(sequence, tuple):
            table, column = sequence
            sequence = (self.apply_prefix(table, prefix), column)
        elif sequence:
            sequence = self.apply_prefix(sequence, prefix)
        return self.platform.last_insert_id(sequence)

    # -- Transactions --------------------------------------------------------

    @property
    def transaction_depth(self) -> int:
        return self._depth

    def in_transaction(self) -> bool:
        if self.coordinator is not None:
            return self.coordinator.in_transaction()
        return self._depth > 0

    @staticmethod
    def savepoint_name(depth: int) -> str:
        return f"LEVEL{depth}"

    def _native(self, action: str, call: Callable[[str | None], None], savepoint: str | None) -> None:
        """Run a platform transaction call, wrapping failures in ``TransactionError``."""
        try:
            call(savepoint)
        except UnsupportedOperationError:
            raise
        except (DatabaseError, *self.driver_errors) as exc:
            error = self.platform.convert_exception(exc)
            raise TransactionError(
                f"Could not {action} transaction: {error.message}",
                context=error.context,
                cause=error,
            ) from error
        logger.debug(f"transaction.{action}", driver=self.driver, depth=self._depth, savepoint=savepoint)

    def begin_transaction(self) -> Connection:
        """Open a transaction, or a savepoint when one is already open."""
        if self.coordinator is not None:
            self.coordinator.begin_transaction()
            return self
        savepoint = self.savepoint_name(self._depth) if self._depth else None
        self._native("begin", self.platform.begin_transaction, savepoint)
        self._depth += 1
        return self

    def commit(self) -> Connection:
        if self.coordinator is not None:
            self.coordinator.commit()
            return self
        depth = self._require_depth("commit")
        savepoint = self.savepoint_name(depth) if depth else None
        self._commit(savepoint)
        self._depth = depth
        return self

    def _commit(self, savepoint: str | None) -> None:
        """Native commit; a failed outermost COMMIT ends the transaction.

        The server may already have closed it (PostgreSQL) or kept it open
        (SQLite deferred constraints). Either way it is rolled back and the
        depth reset, so the next ``begin`` opens a fresh transaction.
        """
        try:
            self._native("commit", self.platform.commit_transaction, savepoint)
        except TransactionError:
            if savepoint is None:
                self._abandon_transaction()
            raise

    def _abandon_transaction(self) -> None:
        try:
            self.platform.roll_back_transaction(None)
        except (DatabaseError, *self.driver_errors) as exc:
            logger.warning("transaction.abandon_failed", driver=self.driver, error=str(exc))
        finally:
            self._depth = 0
        logger.warning("transaction.abandoned", driver=self.driver)

    def roll_back(self) -> Connection:
        if self.coordinator is not None:
            self.coordinator.roll_back()
            return self
        depth = self._require_depth("rollback")
        savepoint = self.savepoint_name(depth) if depth else None
        self._native("rollback", self.platform.roll_back_transaction, savepoint)
        self._depth = depth
        return self

    def _require_depth(self, action: str) -> int:
        """Depth after ``action``; refuses to go below zero."""
        if self._depth == 0:
            raise TransactionError(f"Cannot {action}: no transaction is active")
        return self._depth - 1

    @contextmanager
    def transaction(self) -> Iterator[Connection]:
        """Begin; commit on success, roll back and re-raise on error."""
        self.begin_transaction()
        try:
            yield self
        except BaseException:
            self.roll_back()
            raise
        self.commit()

    # -- Managed transactions (TransactionResource) --------------------------

    def join_managed_transaction(self) -> None:
        """Attach to the coordinator's current transaction, if there is one."""
        if self.coordinator is None:
            return
        current = self.coordinator.current_transaction
        if current is not None:
            current.attach_resource(self)

    def begin_managed_transaction(self, tx: Transaction) -> None:
        savepoint = tx.identifier if self._depth else None
        self._native("begin", self.platform.begin_transaction, savepoint)
        self._depth += 1

    def commit_managed_transaction(self, tx: Transaction) -> None:
        depth = self._require_depth("commit")
        savepoint = tx.parent.identifier if depth and tx.parent is not None else None
        self._commit(savepoint)
        self._depth = depth

    def roll_back_managed_transaction(self, tx: Transaction) -> None:
        depth = self._require_depth("rollback")
        savepoint = tx.identifier if depth else None
        self._native("rollback", self.platform.roll_back_transaction, savepoint)
        self._depth = depth


__all__ = ["Connection", "PREFIX_TOKEN", "resolve_dbapi"]
