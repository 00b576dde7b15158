"""Canonical JSON encoding for associated data.

Sender and receiver each rebuild the AAD bytes from the logical AAD object,
so the encoding must not depend on key insertion order or on the encoder
that produced it:

- object keys are sorted
- arrays keep their order
- no insignificant whitespace
- non-finite numbers become ``null``
- floats use the shortest round-trip digits laid out as in ECMAScript
  (``1.0`` -> ``1``, ``1e20`` -> ``100000000000000000000``, ``1e-7`` -> ``1e-7``)
"""

from __future__ import annotations

import json
import math
from collections.abc import Mapping, Sequence
from decimal import Decimal
from typing import Any


def _format_float(value: float) -> str:
    """Lay out the shortest round-trip digits of ``value`` the way JSON.stringify does."""
    if value == 0:
        return "0"
    sign = "-" if value < 0 else ""
    _, digit_tuple, exponent = Decimal(repr(abs(value))).normalize().as_tuple()
    digits = "".join(map(str, digit_tuple))
    k = len(digits)
    # value == 0.<digits> * 10**n
    n = k + exponent
    if k <= n <= 21:
        return sign + digits + "0" * (n - k)
    if 0 < n <= 21:
        return sign + digits[:n] + "." + digits[n:]
    if -6 < n <= 0:
        return sign + "0." + "0" * -n + digits
    e = n - 1
    mantissa = digits if k == 1 else digits[0] + "." + digits[1:]
    return f"{sign}{mantissa}e{'+' if e > 0 else '-'}{abs(e)}"


def _encode(value: Any) -> str:
    if value is None:
        return "null"
    # bool is a subclass of int, check it first
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            return "null"
        return _format_float(value)
    if isinstance(value, str):
        return json.dumps(value, ensure_ascii=False)
    if isinstance(value, Mapping):
        for key in value:
            if not isinstance(key, str):
                raise TypeError(f"object keys must be strings, got {type(key).__name__}")
        entries = (f"{json.dumps(key, ensure_ascii=False)}:{_encode(value[key])}" for key in sorted(value))
        return "{" + ",".join(entries) + "}"
    if isinstance(value, Sequence) and not isinstance(value, bytes | bytearray):
        return "[" + ",".join(_encode(item) for item in value) + "]"
    raise TypeError(f"cannot canonicalize {type(value).__name__}")


def canonicalize(value: Any) -> bytes:
    """Serialize a JSON-like value to canonical UTF-8 bytes.

    Args:
        value: None, bool, int, float, str, a sequence or a string-keyed mapping.

    Returns:
        Deterministic UTF-8 encoded JSON.

    Raises:
        TypeError: For unsupported types or non-string object keys.
    """
    return _encode(value).encode("utf-8")
