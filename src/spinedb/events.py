"""Query-executed notifications.

Listeners are purely observational: they receive a
:class:`QueryExecutedEvent` after every statement execution and cannot
alter control flow. Register them per connection::

    timings = []
    conn.add_listener(lambda event: timings.append(event.elapsed))
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


@dataclass(frozen=True)
class QueryExecutedEvent:
    """
    One executed statement.

    Attributes:
        sql: Final SQL text sent to the driver (pagination applied)
        params: Bound parameters after encoding
        limit: Statement limit (0 for none)
        offset: Statement offset
        elapsed: Execution time in seconds
        timestamp: When execution finished (UTC)
    """

    sql: str
    params: dict[str, Any] = field(default_factory=dict)
    limit: int = 0
    offset: int = 0
    elapsed: float = 0.0
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def elapsed_ms(self) -> float:
        return round(self.elapsed * 1000, 3)


QueryListener = Callable[[QueryExecutedEvent], None]


__all__ = ["QueryExecutedEvent", "QueryListener"]
