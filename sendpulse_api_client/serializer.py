"""
PHP-compatible serialization for composite request fields.

Several SendPulse endpoints (adding emails to an address book, SMTP
unsubscribe lists, SMTP message payloads, campaign attachments) expect
a form field holding the output of PHP's ``serialize()`` rather than
JSON.  This module produces that format from ordinary Python values.

.. code-block:: python

    >>> serialize({"0": "a", "1": "b"})
    'a:2:{i:0;s:1:"a";i:1;s:1:"b";}'

String lengths follow the legacy byte counting used by the SendPulse
service: one byte below U+0080, two below U+0800 and three for every
other UTF-16 code unit.  Characters outside the basic multilingual
plane are two code units and therefore count six bytes, not four.
The service expects exactly these counts, so they are not "fixed".
"""

from __future__ import annotations

import enum
import math
import re
from collections.abc import Mapping
from decimal import Decimal
from typing import Any, Iterator, Tuple

_INTEGER_KEY = re.compile(r"[0-9]+")


class ValueKind(enum.Enum):
    """The kind of value a Python object is serialized as."""

    NULL = "null"
    BOOL = "bool"
    INTEGER = "integer"
    DECIMAL = "decimal"
    TEXT = "text"
    SEQUENCE = "sequence"
    MAPPING = "mapping"
    CALLABLE = "callable"


def classify(value: Any) -> ValueKind:
    """Return the :class:`ValueKind` ``value`` is serialized as.

    ``bool`` is checked before numbers since it is an ``int`` subclass,
    and text before sequences since ``str`` is iterable.  Values that
    match nothing are treated as null.
    """
    if value is None:
        return ValueKind.NULL
    if isinstance(value, bool):
        return ValueKind.BOOL
    if isinstance(value, int):
        return ValueKind.INTEGER
    if isinstance(value, (float, Decimal)):
        if _is_integral(value):
            return ValueKind.INTEGER
        return ValueKind.DECIMAL
    if isinstance(value, str):
        return ValueKind.TEXT
    if isinstance(value, Mapping):
        return ValueKind.MAPPING
    if isinstance(value, (list, tuple)):
        return ValueKind.SEQUENCE
    if callable(value):
        return ValueKind.CALLABLE
    return ValueKind.NULL


def _is_integral(value: Any) -> bool:
    if isinstance(value, Decimal):
        return value.is_finite() and value == value.to_integral_value()
    return math.isfinite(value) and value.is_integer()


def utf8_size(text: str) -> int:
    """Return the legacy byte length of ``text``."""
    size = 0
    for char in text:
        code = ord(char)
        if code < 0x80:
            size += 1
        elif code < 0x800:
            size += 2
        elif code <= 0xFFFF:
            size += 3
        else:
            # A surrogate pair: two code units of three bytes each
            size += 6
    return size


def _format_decimal(value: Any) -> str:
    if isinstance(value, Decimal):
        if value.is_nan():
            return "NAN"
        if value.is_infinite():
            return "-INF" if value < 0 else "INF"
        return str(value)
    if math.isnan(value):
        return "NAN"
    if math.isinf(value):
        return "-INF" if value < 0 else "INF"
    return repr(value)


def _coerce_key(key: Any) -> Any:
    # PHP turns decimal-digit string keys into integer keys.
    if isinstance(key, str) and _INTEGER_KEY.fullmatch(key):
        return int(key)
    return key


def _entries(value: Any, kind: ValueKind) -> Iterator[Tuple[Any, Any]]:
    if kind is ValueKind.MAPPING:
        return iter(value.items())
    return enumerate(value)


def serialize(value: Any) -> str:
    """Serialize ``value`` in PHP's ``serialize()`` format.

    Parameters
    ----------
    value : Any
        ``None``, ``bool``, ``int``, ``float``, ``Decimal``, ``str``,
        a mapping, a list or tuple (nested arbitrarily), or a callable.

    Returns
    -------
    str
        The encoded value.  Arrays are emitted without a trailing
        ``;`` and a callable encodes to the empty string.  Entries of
        an array whose value is callable are left out entirely and do
        not count towards the array length.
    """
    kind = classify(value)

    if kind is ValueKind.CALLABLE:
        return ""
    if kind is ValueKind.NULL:
        return "N;"
    if kind is ValueKind.BOOL:
        return "b:%d;" % (1 if value else 0)
    if kind is ValueKind.INTEGER:
        return "i:%d;" % int(value)
    if kind is ValueKind.DECIMAL:
        return "d:%s;" % _format_decimal(value)
    if kind is ValueKind.TEXT:
        return 's:%d:"%s";' % (utf8_size(value), value)

    parts = []
    count = 0
    for key, item in _entries(value, kind):
        if classify(item) is ValueKind.CALLABLE:
            continue
        parts.append(serialize(_coerce_key(key)))
        parts.append(serialize(item))
        count += 1
    return "a:%d:{%s}" % (count, "".join(parts))
