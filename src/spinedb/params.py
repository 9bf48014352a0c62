"""Named-placeholder compilation.

SQL handed to :meth:`Connection.prepare` always uses named placeholders
(``:name``). DB-API drivers disagree on parameter style, so the statement
compiles its final SQL once per cursor into the style of the driver in use:

=========  ================  =====================
style      placeholder       bound as
=========  ================  =====================
named      ``:name``         dict
pyformat   ``%(name)s``      dict
qmark      ``?``             tuple, in occurrence order
format     ``%s``            tuple, in occurrence order
numeric    ``:1``            tuple, in occurrence order
=========  ================  =====================

String literals, quoted identifiers, comments and PostgreSQL ``::`` casts
are copied verbatim. For the ``%``-based styles a literal ``%`` is doubled,
but only when the statement has placeholders: drivers skip interpolation
when no parameters are passed.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from spinedb.errors import QueryError

if TYPE_CHECKING:
    from spinedb.statement import Statement

PARAMSTYLES = ("named", "pyformat", "qmark", "format", "numeric")

_QUOTES = {"'": "'", '"': '"', "`": "`"}


@dataclass(frozen=True)
class CompiledSql:
    """SQL rewritten for one paramstyle plus the placeholder names it uses."""

    sql: str
    names: tuple[str, ...]
    paramstyle: str

    def bind(self, params: Mapping[str, Any]) -> dict[str, Any] | tuple[Any, ...] | None:
        """Arrange ``params`` the way the driver expects them."""
        if not self.names:
            return None
        missing = [name for name in dict.fromkeys(self.names) if name not in params]
        if missing:
            raise QueryError(f"No value bound for parameter(s): {', '.join(':' + m for m in missing)}")
        if self.paramstyle in ("named", "pyformat"):
            return {name: params[name] for name in self.names}
        return tuple(params[name] for name in self.names)


def _is_name_start(char: str) -> bool:
    return char.isalpha() or char == "_"


def _is_name_char(char: str) -> bool:
    return char.isalnum() or char == "_"


def compile_placeholders(sql: str, paramstyle: str = "named") -> CompiledSql:
    """Rewrite ``:name`` placeholders in ``sql`` into ``paramstyle``."""
    if paramstyle not in PARAMSTYLES:
        raise QueryError(f"Unsupported DB-API paramstyle: {paramstyle}")

    percent = paramstyle in ("pyformat", "format")
    out: list[str] = []
    names: list[str] = []
    length = len(sql)
    i = 0

    while i < length:
        char = sql[i]

        if char in _QUOTES:
            end = sql.find(_QUOTES[char], i + 1)
            # Doubled quote characters escape themselves inside the literal.
            while end != -1 and end + 1 < length and sql[end + 1] == char:
                end = sql.find(char, end + 2)
            end = length if end == -1 else end + 1
            chunk = sql[i:end]
            out.append(chunk.replace("%", "%%") if percent else chunk)
            i = end
            continue

        if sql.startswith("--", i):
            end = sql.find("\n", i)
            end = length if end == -1 else end
            chunk = sql[i:end]
            out.append(chunk.replace("%", "%%") if percent else chunk)
            i = end
            continue

        if sql.startswith("/*", i):
            end = sql.find("*/", i + 2)
            end = length if end == -1 else end + 2
            chunk = sql[i:end]
            out.append(chunk.replace("%", "%%") if percent else chunk)
            i = end
            continue

        if char == ":":
            if sql.startswith("::", i):
                out.append("::")
                i += 2
                continue
            if i + 1 < length and _is_name_start(sql[i + 1]):
                j = i + 1
                while j < length and _is_name_char(sql[j]):
                    j += 1
                name = sql[i + 1 : j]
                names.append(name)
                if paramstyle == "named":
                    out.append(":" + name)
                elif paramstyle == "pyformat":
                    out.append(f"%({name})s")
                elif paramstyle == "qmark":
                    out.append("?")
                elif paramstyle == "format":
                    out.append("%s")
                else:
                    out.append(f":{len(names)}")
                i = j
                continue

        if char == "%" and percent:
            out.append("%%")
        else:
            out.append(char)
        i += 1

    if not names:
        return CompiledSql(sql, (), paramstyle)
    return CompiledSql("".join(out), tuple(names), paramstyle)


class PlaceholderList:
    """
    Expands a list of values into named placeholders for ``IN (...)`` clauses.

    Example::

        ids = PlaceholderList([3, 5, 8], prefix="id")
        stmt = conn.prepare(f"SELECT * FROM `#__posts` WHERE `id` IN ({ids})")
        ids.bind(stmt)          # binds :id0, :id1, :id2
    """

    def __init__(self, values: Sequence[Any] | Mapping[str, Any], prefix: str = "p"):
        if not values:
            raise ValueError("Placeholder lists must not be empty")
        if isinstance(values, Mapping):
            self._params = {f"{prefix}{key}": value for key, value in values.items()}
        else:
            self._params = {f"{prefix}{i}": value for i, value in enumerate(values)}
        self.prefix = prefix

    def __len__(self) -> int:
        return len(self._params)

    def __iter__(self) -> Iterator[Any]:
        return iter(self._params.values())

    def __str__(self) -> str:
        return ", ".join(":" + name for name in self._params)

    @property
    def params(self) -> dict[str, Any]:
        """Placeholder name → value, ready for :meth:`Statement.bind_all`."""
        return dict(self._params)

    def bind(self, statement: Statement) -> Statement:
        return statement.bind_all(self._params)


__all__ = ["CompiledSql", "PARAMSTYLES", "PlaceholderList", "compile_placeholders"]
