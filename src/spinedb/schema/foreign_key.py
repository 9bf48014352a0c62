"""Foreign key descriptor."""

from __future__ import annotations

from dataclasses import dataclass

from spinedb.errors import SchemaError
from spinedb.hashing import schema_object_name

_ACTIONS = frozenset({"CASCADE", "RESTRICT", "SET NULL", "SET DEFAULT", "NO ACTION"})


@dataclass(frozen=True)
class ForeignKey:
    """
    A foreign key from ``columns`` to ``ref_columns`` of ``ref_table``.

    ``on_update`` / ``on_delete`` are normalized to upper case and default
    to ``CASCADE``.
    """

    columns: tuple[str, ...]
    ref_table: str
    ref_columns: tuple[str, ...]
    on_update: str = "CASCADE"
    on_delete: str = "CASCADE"

    def __post_init__(self) -> None:
        columns = tuple(self.columns)
        ref_columns = tuple(self.ref_columns)
        if not columns or len(columns) != len(ref_columns):
            raise SchemaError(
                f"Foreign key columns {columns!r} do not match referenced columns {ref_columns!r}"
            )
        object.__setattr__(self, "columns", columns)
        object.__setattr__(self, "ref_columns", ref_columns)

        for attr in ("on_update", "on_delete"):
            action = str(getattr(self, attr)).upper()
            if action not in _ACTIONS:
                raise SchemaError(f"Invalid referential action: {action}")
            object.__setattr__(self, attr, action)

    def name_for(self, table: str) -> str:
        """Deterministic constraint name, ``idx_`` + sha1 over table and reference."""
        return schema_object_name(
            table,
            ",".join(self.columns),
            self.ref_table,
            ",".join(self.ref_columns),
        )


__all__ = ["ForeignKey"]
