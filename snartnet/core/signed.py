# snartnet/core/signed.py
import logging
from dataclasses import dataclass
from typing import Any, Generic, Type, TypeVar

from snartnet.core.canon import canonical_bytes
from snartnet.core.errors import DecodeError, SerializationError
from snartnet.core.types import Message, Post, Profile
from snartnet.crypto.keys import KeyPair, fingerprint, verify

logger = logging.getLogger(__name__)

T = TypeVar("T", Profile, Post, Message)


@dataclass(frozen=True)
class SignedEntity(Generic[T]):
    """
    A payload paired with an Ed25519 signature over its canonical bytes.
    Never re-signs on its own: a changed payload needs a fresh `create`.
    """
    payload: T
    signature: str

    @classmethod
    def create(cls, payload: T, keypair: KeyPair) -> "SignedEntity[T]":
        signature = keypair.sign(canonical_bytes(payload))
        logger.debug("Signed %s %s", payload.WIRE_NAME, payload.id)
        return cls(payload=payload, signature=signature)

    def verify(self, public_key_b64: str) -> bool:
        return verify(canonical_bytes(self.payload), self.signature, public_key_b64)

    def to_dict(self) -> dict:
        return {self.payload.WIRE_NAME: self.payload.to_dict(), "signature": self.signature}

    @classmethod
    def from_dict(cls, data: Any, payload_type: Type[T]) -> "SignedEntity[T]":
        if not isinstance(data, dict):
            raise SerializationError(f"Signed {payload_type.WIRE_NAME} must be a JSON object")
        if payload_type.WIRE_NAME not in data:
            raise SerializationError(f"Signed entity is missing field '{payload_type.WIRE_NAME}'")
        signature = data.get("signature")
        if not isinstance(signature, str):
            raise SerializationError("Signed entity is missing a string 'signature'")
        extra = sorted(set(data) - {payload_type.WIRE_NAME, "signature"})
        if extra:
            raise SerializationError(f"Signed {payload_type.WIRE_NAME} has unknown field(s): {', '.join(extra)}")
        return cls(payload=payload_type.from_dict(data[payload_type.WIRE_NAME]), signature=signature)


SignedProfile = SignedEntity[Profile]
SignedPost = SignedEntity[Post]
SignedMessage = SignedEntity[Message]


def verify_profile(signed: "SignedEntity[Profile]") -> bool:
    """A profile is self-certifying: check it under its own key, and its fingerprint against that key."""
    profile = signed.payload
    try:
        if fingerprint(profile.public_key) != profile.fingerprint:
            return False
    except DecodeError:
        return False
    return signed.verify(profile.public_key)
