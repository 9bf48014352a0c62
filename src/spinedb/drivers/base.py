"""Driver adapter base class.

Manifesto:
    Opening a native handle is the only place the six driver libraries
    differ in API. An adapter imports its library lazily, connects in
    autocommit mode (transactions are driven by the Platform) and hands
    the handle to a :class:`~spinedb.connection.Connection`.

Features:
    - Import-guarded: a missing library raises ``ConfigError`` naming the
      pip package at ``open()`` time, never at import time
    - Connect failures become ``DatabaseConnectionError`` (retryable)
    - Server version detection for version-aware pagination
    - Runs the platform's session initialisation after connecting

Tags:
    spinedb, database, driver, adapter-pattern

Doc-Types:
    api-reference
"""

from __future__ import annotations

import importlib
from abc import ABC, abstractmethod
from collections.abc import Mapping
from types import ModuleType
from typing import TYPE_CHECKING, Any

from spinedb.connection import Connection
from spinedb.errors import ConfigError, DatabaseConnectionError
from spinedb.logging import get_logger

from .types import DatabaseConfig, DatabaseType

if TYPE_CHECKING:
    from spinedb.transactions import TransactionManager

logger = get_logger(__name__)


def require_module(module: str, package: str, database: str) -> ModuleType:
    """Import ``module`` or raise ``ConfigError`` telling which package to install."""
    try:
        return importlib.import_module(module)
    except ImportError:
        raise ConfigError(
            f"{package} is required for {database}. Install with: pip install {package}"
        ) from None


class DriverAdapter(ABC):
    """Opens native handles for one database type."""

    db_type: DatabaseType
    module: str
    package: str
    paramstyle: str | None = None

    def __init__(self, config: DatabaseConfig):
        self.config = config

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.config.db_type.value})"

    def import_driver(self) -> ModuleType:
        return require_module(self.module, self.package, self.db_type.value)

    @abstractmethod
    def connect_native(self, dbapi: ModuleType) -> Any:
        """Open a native DB-API handle in autocommit mode."""
        ...

    def server_version(self, native: Any) -> str | None:
        return None

    def open(
        self,
        *,
        prefix: str = "",
        options: Mapping[str, Any] | None = None,
        coordinator: TransactionManager | None = None,
    ) -> Connection:
        """Connect and wrap the handle in an initialised :class:`Connection`."""
        dbapi = self.import_driver()
        try:
            native = self.connect_native(dbapi)
        except dbapi.Error as e:
            raise DatabaseConnectionError(
                f"Failed to connect to {self.db_type.value}: {e}",
                cause=e,
            ) from e

        conn = Connection(
            native,
            self.db_type.value,
            dbapi=dbapi,
            paramstyle=self.paramstyle,
            prefix=prefix,
            options={**self.config.options, **dict(options or {})},
            server_version=self.server_version(native),
            coordinator=coordinator,
        )
        try:
            conn.get_platform().initialize_connection()
        except Exception:
            conn.close()
            raise
        logger.debug(
            "driver.connected",
            driver=conn.driver,
            server_version=conn.server_version,
            prefix=prefix or None,
        )
        return conn


__all__ = ["DriverAdapter", "require_module"]
