"""Column descriptor and logical column types."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from spinedb.errors import SchemaError


class ColumnType(str, Enum):
    """Logical column types, mapped to physical types by each Platform."""

    VARCHAR = "varchar"
    CHAR = "char"
    TEXT = "text"
    INT = "int"
    BIGINT = "bigint"
    DOUBLE = "double"
    BLOB = "blob"
    BOOL = "bool"
    BINARY = "binary"
    UUID = "uuid"


class _NoDefault:
    def __repr__(self) -> str:
        return "NO_DEFAULT"


# Distinguishes "no DEFAULT clause" from an explicit DEFAULT NULL.
NO_DEFAULT: Any = _NoDefault()


def coerce_column_type(value: ColumnType | str) -> ColumnType:
    """Return the :class:`ColumnType` for ``value`` or raise ``SchemaError``."""
    try:
        return ColumnType(value.lower() if isinstance(value, str) else value)
    except ValueError:
        raise SchemaError(f'Invalid column data type: "{value}"') from None


@dataclass(frozen=True)
class Column:
    """
    A column to be created or added.

    Attributes:
        name: Column name (unquoted)
        type: Logical type
        limit: Length for sized types; capped by the platform default
        null: Allow NULL values
        default: DEFAULT value, ``NO_DEFAULT`` for none
        primary_key: Part of the table's primary key
        identity: Auto-increment primary key
        unsigned: Reject negative values (MySQL UNSIGNED, CHECK elsewhere)
    """

    name: str
    type: ColumnType
    limit: int | None = None
    null: bool = False
    default: Any = NO_DEFAULT
    primary_key: bool = False
    identity: bool = False
    unsigned: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "type", coerce_column_type(self.type))
        if self.limit is not None:
            if int(self.limit) < 1:
                raise SchemaError(f"Column limit must be positive: {self.name}")
            object.__setattr__(self, "limit", int(self.limit))

    @property
    def is_primary_key(self) -> bool:
        return self.primary_key or self.identity

    @property
    def is_nullable(self) -> bool:
        return self.null or (self.has_default and self.default is None)

    @property
    def has_default(self) -> bool:
        return self.default is not NO_DEFAULT


__all__ = ["Column", "ColumnType", "NO_DEFAULT", "coerce_column_type"]
