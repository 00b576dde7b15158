"""Base64url helpers for the wire formats (RFC 4648 §5, no padding)."""

from __future__ import annotations

import base64
import binascii


def b64url_encode(data: bytes) -> str:
    """Encode bytes as unpadded base64url text."""
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def b64url_decode(value: str) -> bytes:
    """Decode unpadded (or padded) base64url text.

    Raises:
        ValueError: If ``value`` is not a string or is not valid base64url.
    """
    if not isinstance(value, str):
        raise ValueError("base64url value must be a string")
    padded = value + "=" * (-len(value) % 4)
    try:
        return base64.urlsafe_b64decode(padded.encode("ascii"))
    except (binascii.Error, UnicodeEncodeError) as e:
        raise ValueError(f"invalid base64url value: {e}") from e
