# snartnet/__init__.py
"""
snartnet: identity and signed-content core for a decentralized social client.
Ed25519 identities, RFC 8785 canonical JSON, signed profiles/posts/messages,
and deterministic magnet addresses for profiles.
"""

__version__ = "0.1.0"

from snartnet.core.errors import (
    DecodeError,
    SerializationError,
    SnartnetError,
    StateError,
    StorageError,
)
from snartnet.core.types import DirectKind, GroupKind, Message, Post, Profile
from snartnet.core.signed import SignedEntity, SignedMessage, SignedPost, SignedProfile, verify_profile
from snartnet.crypto.keys import KeyInfo, KeyPair, fingerprint, sign, verify
from snartnet.crypto.hashing import content_hash, derive_magnet_uri
from snartnet.session.identity import IdentitySession
from snartnet.verify.verifier import ContentVerifier

__all__ = [
    "ContentVerifier",
    "DecodeError",
    "DirectKind",
    "GroupKind",
    "IdentitySession",
    "KeyInfo",
    "KeyPair",
    "Message",
    "Post",
    "Profile",
    "SerializationError",
    "SignedEntity",
    "SignedMessage",
    "SignedPost",
    "SignedProfile",
    "SnartnetError",
    "StateError",
    "StorageError",
    "content_hash",
    "derive_magnet_uri",
    "fingerprint",
    "sign",
    "verify",
    "verify_profile",
]
