"""Collection name sanitization."""

from __future__ import annotations

import re

_UNSAFE = re.compile(r"[^A-Za-z0-9]")


def sanitize_name(name: str) -> str:
    """Turn an arbitrary collection name into a table identifier.

    Every character outside ``[A-Za-z0-9]`` becomes ``_`` and the result is
    lower-cased, so the output always matches ``[a-z0-9_]*``. Distinct names
    can collide (``"a-b"`` and ``"a b"`` both give ``"a_b"``); collisions
    are not detected.

    Examples:
        >>> sanitize_name("My Data!")
        'my_data_'
    """
    return _UNSAFE.sub("_", name).lower()


def quote_identifier(name: str) -> str:
    """Double-quote an already sanitized identifier for use in SQL text."""
    return '"' + name.replace('"', '""') + '"'


__all__ = [
    "sanitize_name",
    "quote_identifier",
]
