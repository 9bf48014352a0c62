"""
Structured error types for spinedb.

Every failure that crosses a Connection, Statement or Platform boundary is
raised as a member of this hierarchy. Native driver exceptions (sqlite3,
psycopg2, mysql.connector, pyodbc, oracledb, ibm_db_dbi) are never surfaced
directly: the owning Platform classifies them and re-raises one of the
portable kinds below with the original exception chained as ``cause``.

Manifesto:
    - **Portable taxonomy:** Application code catches
      ``UniqueConstraintViolationError`` and works on every dialect
    - **Explicit retry semantics:** Each error knows if it's retryable
    - **Rich context:** Errors carry the SQL, SQLSTATE and driver code
    - **Error chaining:** The driver exception is kept as ``__cause__``

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────┐
        │                        SpineDBError                           │
        │  (category, retryable, context, cause)                        │
        ├──────────────────────────────────────────────────────────────┤
        │                                                               │
        │  DatabaseError (DATABASE)          ConfigError (CONFIG)       │
        │     │                                 │                       │
        │  ConstraintViolationError         MissingConfigError          │
        │     ├─ UniqueConstraintViolation  InvalidConfigError          │
        │     └─ ForeignKeyConstraintViol.                              │
        │  TransactionError                 SchemaError (VALIDATION)    │
        │  TableNotFoundError                                           │
        │  QueryError                       MigrationError (MIGRATION)  │
        │  DatabaseConnectionError (retry)     ├─ MigrationNotFound     │
        │                                      └─ InvalidMigration      │
        │  UnsupportedOperationError (INTERNAL)                         │
        └──────────────────────────────────────────────────────────────┘

Examples:
    Catching a duplicate key regardless of the backend:

    >>> try:
    ...     conn.insert("#__users", {"id": 1, "name": "a"})
    ... except UniqueConstraintViolationError as e:
    ...     e.context.driver
    'sqlite'

    Chaining the driver error:

    >>> try:
    ...     raise sqlite3.OperationalError("disk I/O error")
    ... except sqlite3.Error as e:
    ...     raise DatabaseError("Query failed", cause=e)
    Traceback (most recent call last):
    ...
    DatabaseError: Query failed

Guardrails:
    ❌ DON'T: Let a driver exception escape a Connection method
    ✅ DO: Route it through ``Platform.convert_exception``

    ❌ DON'T: Swallow the original exception
    ✅ DO: Pass it as cause= for error chaining

Tags:
    error-handling, exception-hierarchy, sqlstate, error-context,
    spinedb, constraint-violation

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """
    Standard error categories for classification and routing.

    Attributes:
        DATABASE: Driver, query and constraint failures
        CONFIG: Missing driver library, unknown connection, bad URL
        VALIDATION: Invalid schema descriptors
        MIGRATION: Migration discovery and loading failures
        INTERNAL: Unsupported operations, programming errors
        UNKNOWN: Uncategorized errors
    """

    DATABASE = "DATABASE"
    CONFIG = "CONFIG"
    VALIDATION = "VALIDATION"
    MIGRATION = "MIGRATION"
    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """
    Structured metadata context for errors.

    Typed fields cover what a database failure usually needs for
    diagnosis; anything else goes into ``metadata``. ``to_dict()``
    serializes the non-None fields for structured logging.

    Examples:
        >>> ctx = ErrorContext(driver="postgresql", sqlstate="23505")
        >>> ctx.to_dict()
        {'driver': 'postgresql', 'sqlstate': '23505'}

    Attributes:
        driver: Dialect name of the connection (``sqlite``, ``mysql``, ...)
        sql: SQL text that was executing
        sqlstate: Five-character SQLSTATE reported by the driver
        driver_code: Vendor-specific error number
        table: Table involved in a DDL operation
        version: Migration version involved
        metadata: Additional key-value pairs
    """

    driver: str | None = None
    sql: str | None = None
    sqlstate: str | None = None
    driver_code: int | str | None = None
    table: str | None = None
    version: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["driver", "sql", "sqlstate", "driver_code", "table", "version"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class SpineDBError(Exception):
    """
    Base exception for all spinedb errors.

    Subclasses set ``default_category`` and ``default_retryable`` to give
    their domain sensible defaults; both can be overridden per instance.

    Examples:
        >>> error = SpineDBError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.with_context(table="#__users").context.table
        '#__users'
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> SpineDBError:
        """
        Add context to this error (fluent API).

        Usage:
            raise TableNotFoundError("No DDL").with_context(table="#__posts")
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# DATABASE ERRORS
# =============================================================================


class DatabaseError(SpineDBError):
    """Database error with no further classification."""

    default_category = ErrorCategory.DATABASE
    default_retryable = False


class ConstraintViolationError(DatabaseError):
    """An integrity constraint rejected the statement."""


class UniqueConstraintViolationError(ConstraintViolationError):
    """Duplicate value for a primary key or unique index."""


class ForeignKeyConstraintViolationError(ConstraintViolationError):
    """Missing referenced row, or a referenced row still in use."""


class TransactionError(DatabaseError):
    """Begin, commit or rollback could not be carried out."""


class TableNotFoundError(DatabaseError):
    """The catalog holds no DDL for a table that must be rebuilt."""


class QueryError(DatabaseError):
    """A statement could not be bound or compiled."""


class DatabaseConnectionError(DatabaseError):
    """Opening the native connection failed; usually transient."""

    default_retryable = True


# =============================================================================
# UNSUPPORTED OPERATIONS
# =============================================================================


class UnsupportedOperationError(SpineDBError):
    """
    The requested operation cannot be expressed on this dialect.

    Raised for nested transactions without savepoint support, pagination
    the dialect cannot express (MSSQL offsets, DB2 offsets without the
    ``db2_limit_offset`` option), DDL on platforms without a DDL
    implementation, and down-migrations.
    """

    default_category = ErrorCategory.INTERNAL
    default_retryable = False


# =============================================================================
# CONFIGURATION / VALIDATION ERRORS
# =============================================================================


class ConfigError(SpineDBError):
    """Configuration error (missing or invalid settings, missing driver)."""

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class MissingConfigError(ConfigError):
    """A named connection or required setting is not configured."""


class InvalidConfigError(ConfigError):
    """A setting has an unusable value."""


class SchemaError(SpineDBError):
    """A schema descriptor is invalid (unknown column type, bad option)."""

    default_category = ErrorCategory.VALIDATION
    default_retryable = False


# =============================================================================
# MIGRATION ERRORS
# =============================================================================


class MigrationError(SpineDBError):
    """Migration discovery or loading failed."""

    default_category = ErrorCategory.MIGRATION
    default_retryable = False


class MigrationNotFoundError(MigrationError):
    """A migration source file does not exist."""


class InvalidMigrationError(MigrationError):
    """A migration file does not define a usable migration class."""


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: BaseException) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, SpineDBError):
        return error.retryable
    return isinstance(error, (ConnectionError, TimeoutError))


__all__ = [
    # Category enum
    "ErrorCategory",
    # Context
    "ErrorContext",
    # Base
    "SpineDBError",
    # Database
    "DatabaseError",
    "ConstraintViolationError",
    "UniqueConstraintViolationError",
    "ForeignKeyConstraintViolationError",
    "TransactionError",
    "TableNotFoundError",
    "QueryError",
    "DatabaseConnectionError",
    # Unsupported
    "UnsupportedOperationError",
    # Config / validation
    "ConfigError",
    "MissingConfigError",
    "InvalidConfigError",
    "SchemaError",
    # Migrations
    "MigrationError",
    "MigrationNotFoundError",
    "InvalidMigrationError",
    # Utilities
    "is_retryable",
]
