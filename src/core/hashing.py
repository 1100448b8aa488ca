"""Deterministic hashing of JSON-compatible values.

Every cache key in the engine is derived from these helpers, so two values
that serialize to the same canonical JSON always hash identically.
"""

import hashlib
import json
from typing import Any


def canonical_json(value: Any) -> str:
    """Serialize a value to canonical JSON.

    Keys are sorted, separators are compact and non-ASCII text is kept as is.

    Args:
        value: JSON-compatible value.

    Returns:
        Canonical JSON string.
    """
    return json.dumps(
        value,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )


def sha256_hex(content: str | bytes) -> str:
    """Compute the SHA-256 hex digest of text or bytes.

    Args:
        content: Text (encoded as UTF-8) or raw bytes.

    Returns:
        Hex digest string.
    """
    if isinstance(content, str):
        content = content.encode("utf-8")
    return hashlib.sha256(content).hexdigest()


def stable_hash(*parts: Any) -> str:
    """Hash an ordered sequence of JSON-compatible values.

    Examples:
        >>> stable_hash("a", {"b": 1}) == stable_hash("a", {"b": 1})
        True

    Args:
        *parts: Values to combine, order-sensitive.

    Returns:
        Hex digest string.
    """
    return sha256_hex(canonical_json(list(parts)))
