"""Named connections.

``ConnectionManager`` opens each configured connection on first use and
hands the same Connection back afterwards. It guarantees nothing about
concurrent use: one Connection belongs to one logical thread of control.

Usage:
    with ConnectionManager(load_settings()) as manager:
        conn = manager.get_connection()            # "default"
        reporting = manager.get_connection("reporting")
"""

from __future__ import annotations

from typing import Any

from spinedb.connection import Connection
from spinedb.drivers.registry import open_connection
from spinedb.errors import MissingConfigError
from spinedb.events import QueryListener
from spinedb.logging import get_logger
from spinedb.settings import SpineDBSettings
from spinedb.transactions import TransactionManager

logger = get_logger(__name__)


class ConnectionManager:
    """Lazily opened, cached connections by name."""

    def __init__(
        self,
        settings: SpineDBSettings | None = None,
        *,
        coordinator: TransactionManager | None = None,
    ):
        self.settings = settings or SpineDBSettings()
        self.coordinator = coordinator or TransactionManager()
        self._connections: dict[str, Connection] = {}
        self._listeners: list[QueryListener] = []

    def __enter__(self) -> ConnectionManager:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close_all()

    def names(self) -> list[str]:
        return sorted(self.settings.connections)

    def add_listener(self, listener: QueryListener) -> None:
        """Register ``listener`` on every connection, open or opened later."""
        self._listeners.append(listener)
        for conn in self._connections.values():
            conn.add_listener(listener)

    def get_connection(self, name: str = "default") -> Connection:
        if name in self._connections:
            return self._connections[name]

        config = self.settings.connections.get(name)
        if config is None:
            raise MissingConfigError(
                f"No database connection named {name!r}. Configured: {self.names()}"
            )

        conn = open_connection(
            config.to_config(),
            prefix=config.prefix,
            coordinator=self.coordinator if config.managed else None,
        )
        for listener in self._listeners:
            conn.add_listener(listener)
        self._connections[name] = conn
        logger.info("connection.opened", name=name, driver=conn.driver, managed=config.managed)
        return conn

    def close_all(self) -> None:
        while self._connections:
            name, conn = self._connections.popitem()
            conn.close()
            logger.info("connection.closed", name=name)


__all__ = ["ConnectionManager"]
