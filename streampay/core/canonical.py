"""
StreamPay: Canonical JSON Encoding — RFC 8785 (JCS)

Every signature and causal hash in the event log is computed over the
canonical form produced here.

JCS serializes numbers as IEEE-754 doubles, so integers outside
±(2**53 - 1) would lose precision and no longer be pinned by a signature.
canonicalize() refuses them. Ledger amounts are carried in payloads as
decimal strings instead (amount_to_wire / amount_from_wire).

RFC 8785: https://www.rfc-editor.org/rfc/rfc8785
"""

import hashlib
import re
from typing import Any, Optional

import jcs

MAX_SAFE_INTEGER = 2 ** 53 - 1

_DECIMAL_RE = re.compile(r"^(0|[1-9][0-9]*)$")


def unsafe_integer_path(obj: Any, path: str = "$") -> Optional[str]:
    """Path of the first integer JCS cannot represent exactly, or None."""
    if isinstance(obj, bool):
        return None
    if isinstance(obj, int):
        return path if abs(obj) > MAX_SAFE_INTEGER else None
    if isinstance(obj, dict):
        for key, value in obj.items():
            found = unsafe_integer_path(value, f"{path}.{key}")
            if found:
                return found
    elif isinstance(obj, (list, tuple)):
        for i, value in enumerate(obj):
            found = unsafe_integer_path(value, f"{path}[{i}]")
            if found:
                return found
    return None


def canonicalize(obj: dict) -> bytes:
    """
    Encode a dict to RFC 8785 canonical JSON bytes.

    Output is deterministic regardless of key insertion order.
    All values must be JSON-primitive (str, int, float, bool, None, list, dict).

    Returns:
        UTF-8 encoded canonical JSON bytes, suitable for signing.

    Raises:
        ValueError: an integer lies outside ±(2**53 - 1)
    """
    unsafe = unsafe_integer_path(obj)
    if unsafe:
        raise ValueError(f"Integer at {unsafe} is not exactly representable in canonical JSON")
    return jcs.canonicalize(obj)


def canonical_hash(obj: dict) -> str:
    """
    SHA-256 of the RFC 8785 canonical form.

    Returns:
        Lowercase hex-encoded SHA-256 digest (64 characters).
    """
    return hashlib.sha256(canonicalize(obj)).hexdigest()


def amount_to_wire(value: int) -> str:
    """Encode a non-negative ledger amount as a decimal string."""
    return str(value)


def amount_from_wire(text: Any) -> int:
    """
    Decode an amount written by amount_to_wire().

    Raises:
        ValueError: text is not a plain non-negative decimal string
    """
    if not isinstance(text, str) or not _DECIMAL_RE.match(text):
        raise ValueError(f"Amount must be a decimal string, got {text!r}")
    return int(text)
