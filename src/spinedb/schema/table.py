"""Table builder.

A ``Table`` collects pending columns, indexes and foreign keys and flushes
them to its Platform. ``create()`` and ``update()`` clear the pending lists
afterwards, so one instance can describe several incremental changes::

    table = Table("#__posts", platform)
    table.add_column("id", "int", identity=True)
    table.add_column("title", "varchar", limit=100)
    table.add_index(["title"])
    table.create()

    table.add_column("body", "text", null=True).update()
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from spinedb.schema.column import NO_DEFAULT, Column, ColumnType
from spinedb.schema.foreign_key import ForeignKey
from spinedb.schema.index import Index

if TYPE_CHECKING:
    from spinedb.platforms.base import Platform


class Table:
    """Pending schema changes for one table.

    Options are dialect-specific (``engine`` and ``collation`` on MySQL)
    and ignored by platforms that do not understand them.
    """

    def __init__(self, name: str, platform: Platform, **options: Any):
        self.name = str(name)
        self.platform = platform
        self.options = options
        self.columns: list[Column] = []
        self.indexes: list[Index] = []
        self.foreign_keys: list[ForeignKey] = []

    def __repr__(self) -> str:
        return f"Table({self.name!r})"

    def add_column(
        self,
        name: str,
        type: ColumnType | str,
        *,
        limit: int | None = None,
        null: bool = False,
        default: Any = NO_DEFAULT,
        primary_key: bool = False,
        identity: bool = False,
        unsigned: bool = False,
    ) -> Table:
        self.columns.append(
            Column(
                name,
                type,
                limit=limit,
                null=null,
                default=default,
                primary_key=primary_key,
                identity=identity,
                unsigned=unsigned,
            )
        )
        return self

    def add_index(self, columns: Sequence[str], *, unique: bool = False) -> Table:
        self.indexes.append(Index(tuple(columns), unique=unique))
        return self

    def remove_index(self, columns: Sequence[str]) -> Table:
        """Drop an existing index immediately."""
        self.platform.drop_index(self.name, columns)
        return self

    def add_foreign_key(
        self,
        columns: Sequence[str],
        ref_table: str,
        ref_columns: Sequence[str],
        *,
        on_update: str = "CASCADE",
        on_delete: str = "CASCADE",
    ) -> Table:
        self.foreign_keys.append(
            ForeignKey(
                tuple(columns),
                ref_table,
                tuple(ref_columns),
                on_update=on_update,
                on_delete=on_delete,
            )
        )
        return self

    def remove_foreign_key(
        self,
        columns: Sequence[str],
        ref_table: str,
        ref_columns: Sequence[str],
    ) -> Table:
        """Drop an existing foreign key immediately."""
        self.platform.drop_foreign_key(self.name, columns, ref_table, ref_columns)
        return self

    def create(self) -> Table:
        self.platform.create_table(self)
        self._clear()
        return self

    def update(self) -> Table:
        for column in self.columns:
            self.platform.add_column(self.name, column)
        for index in self.indexes:
            self.platform.add_index(self.name, index)
        for key in self.foreign_keys:
            self.platform.add_foreign_key(self.name, key)
        self._clear()
        return self

    def save(self) -> Table:
        """Create the table, or apply pending changes when it already exists."""
        if self.platform.has_table(self.name):
            return self.update()
        return self.create()

    def drop(self) -> None:
        self.platform.drop_table(self.name)
        self._clear()

    def _clear(self) -> None:
        self.columns = []
        self.indexes = []
        self.foreign_keys = []


__all__ = ["Table"]
