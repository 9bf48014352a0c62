"""Index descriptor."""

from __future__ import annotations

from dataclasses import dataclass

from spinedb.errors import SchemaError
from spinedb.hashing import compute_hash


@dataclass(frozen=True)
class Index:
    """An index over one or more columns of a table."""

    columns: tuple[str, ...]
    unique: bool = False

    def __post_init__(self) -> None:
        columns = tuple(self.columns)
        if not columns:
            raise SchemaError("An index needs at least one column")
        object.__setattr__(self, "columns", columns)

    def name_for(self, table: str) -> str:
        """Deterministic index name, ``idx_`` + md5(``table||col1,col2``)."""
        return "idx_" + compute_hash(table, ",".join(self.columns), algorithm="md5")


__all__ = ["Index"]
