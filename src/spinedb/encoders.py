"""Parameter encoders.

Encoders run for every bound value when a statement executes. They let
application types (UUIDs, enums, domain ids) be bound directly::

    conn.register_param_encoder(UUIDParamEncoder())
    conn.insert("#__users", {"id": uuid.uuid4(), "name": "ann"})
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from spinedb.connection import Connection


class CallbackParamEncoder:
    """Adapts a plain function ``fn(conn, value) -> (claimed, encoded)``."""

    def __init__(self, callback: Callable[[Connection, Any], tuple[bool, Any]]):
        self.callback = callback

    def encode_param(self, conn: Connection, value: Any) -> tuple[bool, Any]:
        return self.callback(conn, value)


class UUIDParamEncoder:
    """Binds :class:`uuid.UUID` values as 16 raw bytes, or as text on PostgreSQL."""

    def encode_param(self, conn: Connection, value: Any) -> tuple[bool, Any]:
        if not isinstance(value, uuid.UUID):
            return False, value
        if conn.get_platform().native_uuid:
            return True, str(value)
        return True, value.bytes


__all__ = ["CallbackParamEncoder", "UUIDParamEncoder"]
