"""Connection decorators.

A decorator intercepts Connection operations. Each hook receives
``proceed`` (the remainder of the chain, ending in the real
implementation) followed by the call's arguments, and decides what to
pass on and what to return::

    class ReadOnly(ConnectionDecorator):
        def execute(self, proceed, sql, params=None, prefix=None):
            if not sql.lstrip().upper().startswith("SELECT"):
                raise UnsupportedOperationError("read-only connection")
            return proceed(sql, params, prefix)

    conn.add_decorator(ReadOnly())

The chain is built per call, so a hook may call back into the connection
without any re-entrancy bookkeeping.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from spinedb.protocols import ParamEncoder
    from spinedb.statement import Statement

Proceed = Callable[..., Any]


class ConnectionDecorator:
    """Pass-through base class; override the hooks you need."""

    def prepare(self, proceed: Proceed, sql: str, prefix: str | None = None) -> Statement:
        return proceed(sql, prefix)

    def execute(
        self,
        proceed: Proceed,
        sql: str,
        params: Mapping[str, Any] | None = None,
        prefix: str | None = None,
    ) -> int:
        return proceed(sql, params, prefix)

    def insert(
        self,
        proceed: Proceed,
        table: str,
        values: Mapping[str, Any],
        prefix: str | None = None,
    ) -> int:
        return proceed(table, values, prefix)

    def update(
        self,
        proceed: Proceed,
        table: str,
        key: Mapping[str, Any],
        values: Mapping[str, Any],
        prefix: str | None = None,
    ) -> int:
        return proceed(table, key, values, prefix)

    def delete(
        self,
        proceed: Proceed,
        table: str,
        key: Mapping[str, Any],
        prefix: str | None = None,
    ) -> int:
        return proceed(table, key, prefix)

    def upsert(
        self,
        proceed: Proceed,
        table: str,
        key: Mapping[str, Any],
        values: Mapping[str, Any] | None = None,
        prefix: str | None = None,
    ) -> int:
        return proceed(table, key, values, prefix)

    def last_insert_id(
        self,
        proceed: Proceed,
        sequence: str | tuple[str, str] | None = None,
        prefix: str | None = None,
    ) -> Any:
        return proceed(sequence, prefix)

    def apply_prefix(self, proceed: Proceed, value: str, prefix: str | None = None) -> str:
        return proceed(value, prefix)

    def quote(self, proceed: Proceed, value: Any) -> str:
        return proceed(value)

    def quote_identifier(self, proceed: Proceed, name: str) -> str:
        return proceed(name)


class PrefixDecorator(ConnectionDecorator):
    """Supplies ``prefix`` to every call made without an explicit prefix."""

    def __init__(self, prefix: str):
        self.prefix = prefix

    def _pick(self, prefix: str | None) -> str:
        return self.prefix if prefix is None else prefix

    def prepare(self, proceed, sql, prefix=None):
        return proceed(sql, self._pick(prefix))

    def execute(self, proceed, sql, params=None, prefix=None):
        return proceed(sql, params, self._pick(prefix))

    def insert(self, proceed, table, values, prefix=None):
        return proceed(table, values, self._pick(prefix))

    def update(self, proceed, table, key, values, prefix=None):
        return proceed(table, key, values, self._pick(prefix))

    def delete(self, proceed, table, key, prefix=None):
        return proceed(table, key, self._pick(prefix))

    def upsert(self, proceed, table, key, values=None, prefix=None):
        return proceed(table, key, values, self._pick(prefix))

    def last_insert_id(self, proceed, sequence=None, prefix=None):
        return proceed(sequence, self._pick(prefix))

    def apply_prefix(self, proceed, value, prefix=None):
        return proceed(value, self._pick(prefix))


class ParamEncoderDecorator(ConnectionDecorator):
    """Registers its encoders on every statement prepared through it."""

    def __init__(self, *encoders: ParamEncoder):
        self.encoders = list(encoders)

    def prepare(self, proceed, sql, prefix=None):
        stmt = proceed(sql, prefix)
        for encoder in self.encoders:
            stmt.register_param_encoder(encoder)
        return stmt


__all__ = ["ConnectionDecorator", "ParamEncoderDecorator", "PrefixDecorator", "Proceed"]
