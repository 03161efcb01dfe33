# snartnet/crypto/hashing.py
import hashlib
from typing import Any

from snartnet.core.canon import canonical_bytes

MAGNET_TEMPLATE = "magnet:?xt=urn:btih:{digest}&dn=profile_{username}"


def content_hash(entity: Any) -> str:
    """Lowercase hex SHA-256 of the entity's canonical bytes."""
    return hashlib.sha256(canonical_bytes(entity)).hexdigest()


def derive_magnet_uri(profile) -> str:
    """
    Deterministic content address of a profile.
    Recompute after every version bump; a cached value goes stale together with the signature.
    """
    return MAGNET_TEMPLATE.format(digest=content_hash(profile), username=profile.username)
