"""Value codec: in-memory values ⇄ stored text.

Values cross into storage through a two-armed tagged union:

- ``Scalar``: ``str``, ``int``, ``float`` and ``bool``, stored as their
  literal text form.
- ``Structured``: ``dict``, ``list`` and ``tuple``, stored as compact JSON.

Decoding cannot see the tag (the column is plain text), so it looks at the
first character: ``[`` or ``{`` means JSON, anything else is returned as
text. A string scalar that itself begins with ``[`` or ``{`` is therefore
read back as structured data, or fails to decode when it is not valid
JSON. This is a known limitation of the storage format.

Keys are checked here too: only non-empty strings and finite numbers are
accepted, and they are stored as text.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from typing import Any, Union

from pgmirror.errors import InvalidKeyKindError, InvalidValueKindError, ValueDecodeError

ScalarValue = Union[str, int, float, bool]
Key = Union[str, int, float]

_STRUCTURED_MARKERS = ("[", "{")


@dataclass(frozen=True)
class Scalar:
    """A value stored as its literal text form."""

    value: ScalarValue

    def to_text(self) -> str:
        # bool before int: bool is an int subclass
        if isinstance(self.value, bool):
            return "true" if self.value else "false"
        if isinstance(self.value, str):
            return self.value
        return _number_text(self.value)


@dataclass(frozen=True)
class Structured:
    """A composite value stored as JSON."""

    value: dict | list | tuple

    def to_text(self) -> str:
        try:
            return json.dumps(self.value, separators=(",", ":"), ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise InvalidValueKindError(
                self.value, f"Structured value is not JSON-serializable: {e}"
            ) from e


StoredValue = Union[Scalar, Structured]


def classify(value: Any) -> StoredValue:
    """Tag a raw in-memory value as ``Scalar`` or ``Structured``.

    Raises:
        InvalidValueKindError: ``None`` or any other unsupported type.
    """
    if isinstance(value, (Scalar, Structured)):
        return value
    if isinstance(value, (str, int, float, bool)):
        return Scalar(value)
    if isinstance(value, (dict, list, tuple)):
        return Structured(value)
    raise InvalidValueKindError(value)


def encode(value: Any) -> str:
    """Encode a value for the ``value`` column."""
    return classify(value).to_text()


def decode(text: str) -> Any:
    """Decode a stored ``value`` column back into a Python value.

    Raises:
        ValueDecodeError: Text starts with ``[`` or ``{`` but is not JSON.
    """
    if text[:1] in _STRUCTURED_MARKERS:
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise ValueDecodeError(text, cause=e) from e
    return text


def validate_key(key: Any) -> Key:
    """Return ``key`` unchanged if it is an acceptable key.

    Raises:
        InvalidKeyKindError: Empty string, ``bool``, NaN/inf, or any
            non-string, non-numeric value.
    """
    if isinstance(key, bool):
        raise InvalidKeyKindError(key)
    if isinstance(key, str):
        if not key:
            raise InvalidKeyKindError(key, "Keys must not be empty")
        return key
    if isinstance(key, int):
        return key
    if isinstance(key, float) and math.isfinite(key):
        return key
    raise InvalidKeyKindError(key)


def format_key(key: Any) -> str:
    """Validate ``key`` and return the text stored in the ``key`` column."""
    key = validate_key(key)
    if isinstance(key, str):
        return key
    return _number_text(key)


def _number_text(number: int | float) -> str:
    # 42.0 is stored as "42", the way it prints in JSON
    if isinstance(number, float) and number.is_integer():
        return str(int(number))
    return repr(number) if isinstance(number, float) else str(number)


__all__ = [
    "Key",
    "Scalar",
    "ScalarValue",
    "StoredValue",
    "Structured",
    "classify",
    "decode",
    "encode",
    "format_key",
    "validate_key",
]
