"""
Deterministic naming for schema objects.

Indexes and foreign keys are named from their content so the same logical
constraint always maps to the same physical identifier. Dialects that can
only drop a constraint by name (MySQL, PostgreSQL) depend on this: a later
migration rebuilds the descriptor and recomputes the name instead of
querying the catalog for whatever name the server chose.

Manifesto:
    - **Deterministic:** Same table + columns → same name, on every run
    - **Order-dependent:** ``(a, b)`` and ``(b, a)`` are different indexes
    - **Short enough:** ``idx_`` + 40 hex chars fits the 63/64 char
      identifier limits of PostgreSQL and MySQL

Examples:
    >>> compute_hash("#__posts", "title", algorithm="md5")
    'c4a1...'  # 32-char hex
    >>> schema_object_name("#__posts", "title,created")
    'idx_...'

Tags:
    hashing, naming, ddl, spinedb

Doc-Types:
    - API Reference
"""

import hashlib
from typing import Any


def compute_hash(*values: Any, algorithm: str = "sha1", delimiter: str = "||") -> str:
    """
    Compute a deterministic hex digest from values.

    Values are converted to strings and joined with ``delimiter`` before
    hashing, so the digest depends on order.

    Args:
        *values: Values to hash (converted to strings)
        algorithm: Any :mod:`hashlib` algorithm name
        delimiter: Separator placed between values

    Returns:
        Full hex digest
    """
    content = delimiter.join(str(v) for v in values)
    return hashlib.new(algorithm, content.encode("utf-8")).hexdigest()


def schema_object_name(*values: Any, algorithm: str = "sha1") -> str:
    """Content-addressed identifier for an index or constraint."""
    return "idx_" + compute_hash(*values, algorithm=algorithm)
