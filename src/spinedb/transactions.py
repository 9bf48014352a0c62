"""Transaction coordinator for managed connections.

A :class:`TransactionManager` owns a stack of :class:`Transaction`
objects. Resources (usually Connections) join the current transaction
when they first do work inside it; joining attaches them to every
ancestor first, so the resource's own nesting depth mirrors the stack::

    tm = TransactionManager()
    conn = open_connection("sqlite:///app.db", coordinator=tm)

    tm.begin_transaction()          # T1
    conn.insert("t", {"v": "foo"})  # conn joins T1 → BEGIN
    tm.begin_transaction()          # T2
    conn.insert("t", {"v": "bar"})  # conn joins T2 → SAVEPOINT T2
    tm.roll_back()                  # ROLLBACK TO SAVEPOINT T2
    tm.commit()                     # COMMIT
"""

from __future__ import annotations

import itertools

from spinedb.errors import TransactionError
from spinedb.logging import get_logger
from spinedb.protocols import TransactionResource

logger = get_logger(__name__)


class Transaction:
    """One level of a coordinator transaction stack."""

    def __init__(self, identifier: str, parent: Transaction | None = None):
        self.identifier = identifier
        self.parent = parent
        self._resources: list[TransactionResource] = []

    def __repr__(self) -> str:
        return f"Transaction({self.identifier!r}, resources={len(self._resources)})"

    @property
    def is_root(self) -> bool:
        return self.parent is None

    @property
    def resources(self) -> tuple[TransactionResource, ...]:
        return tuple(self._resources)

    @property
    def resource_count(self) -> int:
        return len(self._resources)

    def has_resource(self, resource: TransactionResource) -> bool:
        return any(r is resource for r in self._resources)

    def attach_resource(self, resource: TransactionResource) -> None:
        """Join ``resource`` to this transaction (and to every ancestor first)."""
        if self.has_resource(resource):
            return
        if self.parent is not None:
            self.parent.attach_resource(resource)
        resource.begin_managed_transaction(self)
        self._resources.append(resource)


class TransactionManager:
    """Stack of nested coordinator transactions."""

    def __init__(self) -> None:
        self._stack: list[Transaction] = []
        self._ids = itertools.count(1)

    @property
    def current_transaction(self) -> Transaction | None:
        return self._stack[-1] if self._stack else None

    @property
    def depth(self) -> int:
        return len(self._stack)

    def in_transaction(self) -> bool:
        return bool(self._stack)

    def begin_transaction(self) -> Transaction:
        tx = Transaction(f"T{next(self._ids)}", self.current_transaction)
        self._stack.append(tx)
        logger.debug("transaction.begin", coordinator=True, transaction=tx.identifier, depth=self.depth)
        return tx

    def _pop(self, action: str) -> Transaction:
        if not self._stack:
            raise TransactionError(f"Cannot {action}: no transaction is active")
        return self._stack.pop()

    def commit(self) -> None:
        tx = self._pop("commit")
        for resource in reversed(tx.resources):
            resource.commit_managed_transaction(tx)
        logger.debug("transaction.commit", coordinator=True, transaction=tx.identifier, depth=self.depth)

    def roll_back(self) -> None:
        tx = self._pop("rollback")
        for resource in reversed(tx.resources):
            resource.roll_back_managed_transaction(tx)
        logger.debug("transaction.rollback", coordinator=True, transaction=tx.identifier, depth=self.depth)


__all__ = ["Transaction", "TransactionManager"]
