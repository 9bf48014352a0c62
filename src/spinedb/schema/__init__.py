"""Schema descriptors: write-once value objects describing desired schema state.

Modules
-------
column       Column, ColumnType, NO_DEFAULT
index        Index with content-addressed md5 name
foreign_key  ForeignKey with content-addressed sha1 name
table        Table builder flushing pending changes to a Platform
"""

from spinedb.schema.column import NO_DEFAULT, Column, ColumnType, coerce_column_type
from spinedb.schema.foreign_key import ForeignKey
from spinedb.schema.index import Index
from spinedb.schema.table import Table

__all__ = [
    "Column",
    "ColumnType",
    "NO_DEFAULT",
    "coerce_column_type",
    "ForeignKey",
    "Index",
    "Table",
]
