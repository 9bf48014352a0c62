"""
spinedb - database access layer over DB-API drivers.

Manifesto:
    One Connection API over six SQL dialects. Application code writes
    SQL with backtick-quoted identifiers, ``#__`` table prefixes and
    ``:name`` placeholders; the dialect Platform rewrites quoting,
    pagination, transactions and DDL for the server it talks to.

Architecture:
    ::

        ConnectionManager (settings) ──▶ drivers.open_connection
                                              │
                                              ▼
        Connection ── decorators ──▶ Statement ──▶ native cursor
            │                            │
            ▼                            ▼
        Platform (dialect)          QueryExecutedEvent listeners
            │
            ▼
        schema.Table ◀── migrations.MigrationManager

Modules
-------
connection    Connection: CRUD helpers, nested transactions via savepoints
statement     Statement: deferred compilation, pagination, enhanced fetch
platforms     Per-dialect quoting, DDL and error classification
schema        Column / Index / ForeignKey / Table descriptors
transactions  Managed transactions coordinating several connections
migrations    Versioned, idempotent schema migrations
drivers       Driver adapters and URL parsing
settings      pydantic-settings configuration
errors        Typed exception hierarchy

Tags:
    spinedb, database, sql, dialect, transactions, migrations

Doc-Types:
    package-overview
"""

__version__ = "0.1.0"

from spinedb.connection import Connection
from spinedb.decorators import ConnectionDecorator, ParamEncoderDecorator, PrefixDecorator
from spinedb.drivers import DatabaseConfig, DatabaseType, open_connection
from spinedb.encoders import CallbackParamEncoder, UUIDParamEncoder
from spinedb.errors import (
    ConfigError,
    ConstraintViolationError,
    DatabaseError,
    ForeignKeyConstraintViolationError,
    SpineDBError,
    TransactionError,
    UniqueConstraintViolationError,
    UnsupportedOperationError,
)
from spinedb.events import QueryExecutedEvent
from spinedb.manager import ConnectionManager
from spinedb.migrations import Migration, MigrationManager
from spinedb.params import PlaceholderList
from spinedb.platforms import Platform, get_platform
from spinedb.schema import Column, ForeignKey, Index, Table
from spinedb.settings import SpineDBSettings, load_settings
from spinedb.statement import FetchStyle, Statement
from spinedb.transactions import Transaction, TransactionManager
from spinedb.transformers import StringTransformer, UUIDTransformer

__all__ = [
    "__version__",
    # Core
    "Connection",
    "Statement",
    "FetchStyle",
    "PlaceholderList",
    "QueryExecutedEvent",
    # Connections
    "ConnectionManager",
    "DatabaseConfig",
    "DatabaseType",
    "open_connection",
    "SpineDBSettings",
    "load_settings",
    # Extension points
    "ConnectionDecorator",
    "PrefixDecorator",
    "ParamEncoderDecorator",
    "CallbackParamEncoder",
    "UUIDParamEncoder",
    "StringTransformer",
    "UUIDTransformer",
    # Transactions
    "Transaction",
    "TransactionManager",
    # Platforms and schema
    "Platform",
    "get_platform",
    "Column",
    "ForeignKey",
    "Index",
    "Table",
    # Migrations
    "Migration",
    "MigrationManager",
    # Errors
    "SpineDBError",
    "DatabaseError",
    "ConstraintViolationError",
    "UniqueConstraintViolationError",
    "ForeignKeyConstraintViolationError",
    "TransactionError",
    "UnsupportedOperationError",
    "ConfigError",
]
