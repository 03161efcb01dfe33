# snartnet/core/canon.py
import json
from typing import Any

import jcs

from snartnet.core.errors import SerializationError


def canonical_json(obj: Any) -> bytes:
    """
    Produce deterministic UTF-8 bytes according to RFC 8785 (JSON Canonicalization Scheme).
    Returns bytes ready for hashing or signing.
    """
    try:
        return jcs.canonicalize(obj)
    except (TypeError, ValueError) as e:
        raise SerializationError(f"Cannot canonicalize value: {e}") from e


def canonical_json_str(obj: Any) -> str:
    """Same as above, but returns string (mostly for debugging)."""
    return canonical_json(obj).decode("utf-8")


def canonical_bytes(entity: Any) -> bytes:
    """Canonical bytes of an entity exposing `to_dict()`. This is what gets signed."""
    return canonical_json(entity.to_dict())


def loads(text: str | bytes, what: str = "JSON") -> Any:
    try:
        return json.loads(text)
    except (json.JSONDecodeError, UnicodeDecodeError, TypeError) as e:
        raise SerializationError(f"Invalid {what}: {e}") from e
