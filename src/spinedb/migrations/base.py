"""Migration base class.

A migration file ``Version20150103124055.py`` defines exactly one class of
the same name::

    from spinedb.migrations import Migration


    class Version20150103124055(Migration):
        def up(self) -> None:
            table = self.table("#__users")
            table.add_column("id", "int", identity=True)
            table.add_column("email", "varchar", limit=190)
            table.add_index(["email"], unique=True)
            table.create()
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

from spinedb.errors import UnsupportedOperationError
from spinedb.schema.table import Table

if TYPE_CHECKING:
    from spinedb.connection import Connection
    from spinedb.platforms.base import Platform


class Migration(ABC):
    """One versioned schema change, applied at most once per database."""

    def __init__(self, version: str, conn: Connection, platform: Platform | None = None):
        self.version = str(version)
        self.conn = conn
        self.platform = platform or conn.get_platform()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(version={self.version!r})"

    @abstractmethod
    def up(self) -> None:
        """Apply the change."""
        ...

    def down(self) -> None:
        raise UnsupportedOperationError("Down migrations are not supported")

    def has_table(self, name: str) -> bool:
        return self.platform.has_table(name)

    def table(self, name: str, **options: Any) -> Table:
        return Table(name, self.platform, **options)

    def drop_table(self, name: str) -> None:
        self.platform.drop_table(name)

    def drop_index(self, table_name: str, columns: Sequence[str]) -> None:
        self.platform.drop_index(table_name, columns)

    def drop_foreign_key(
        self,
        table_name: str,
        columns: Sequence[str],
        ref_table: str,
        ref_columns: Sequence[str],
    ) -> None:
        self.platform.drop_foreign_key(table_name, columns, ref_table, ref_columns)

    def execute(self, sql: str, params: Mapping[str, Any] | None = None) -> int:
        return self.conn.execute(sql, params)


__all__ = ["Migration"]
