"""Column transformers for :meth:`Statement.transform`."""

from __future__ import annotations

import uuid
from typing import Any


class StringTransformer:
    """Turns bytes-like column values into ``str``."""

    def __init__(self, encoding: str = "utf-8"):
        self.encoding = encoding

    def __call__(self, value: Any) -> str | None:
        if value is None:
            return None
        if isinstance(value, memoryview):
            value = value.tobytes()
        if isinstance(value, (bytes, bytearray)):
            return bytes(value).decode(self.encoding)
        if hasattr(value, "read"):
            return self(value.read())
        return str(value)


class UUIDTransformer:
    """Turns 16-byte or textual column values into :class:`uuid.UUID`."""

    def __call__(self, value: Any) -> uuid.UUID | None:
        if value is None or isinstance(value, uuid.UUID):
            return value
        if isinstance(value, memoryview):
            value = value.tobytes()
        if isinstance(value, (bytes, bytearray)):
            if len(value) == 16:
                return uuid.UUID(bytes=bytes(value))
            value = bytes(value).decode("ascii")
        return uuid.UUID(str(value))


__all__ = ["StringTransformer", "UUIDTransformer"]
