# snartnet/crypto/keys.py
import hashlib
import logging
from dataclasses import dataclass
from typing import Any

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

from snartnet.core.encoding import b64_decode, b64_encode
from snartnet.core.errors import DecodeError, SerializationError

logger = logging.getLogger(__name__)

KEY_LEN = 32
SIGNATURE_LEN = 64
FINGERPRINT_LEN = 16


def _raw_public(public_key: Ed25519PublicKey) -> bytes:
    return public_key.public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )


def _raw_private(private_key: Ed25519PrivateKey) -> bytes:
    return private_key.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption(),
    )


def fingerprint_bytes(public_key: bytes) -> str:
    return b64_encode(hashlib.sha256(public_key).digest()[:FINGERPRINT_LEN])


def fingerprint(public_key_b64: str) -> str:
    """First 16 bytes of SHA-256(public key), base64. Raises DecodeError on a malformed key."""
    return fingerprint_bytes(b64_decode(public_key_b64, KEY_LEN, "public key"))


def _signing_key(secret_key_b64: str) -> Ed25519PrivateKey:
    seed = b64_decode(secret_key_b64, KEY_LEN, "secret key")
    return Ed25519PrivateKey.from_private_bytes(seed)


def sign(secret_key_b64: str, message: bytes) -> str:
    """Sign `message` with a base64 Ed25519 seed. Malformed keys raise DecodeError."""
    return b64_encode(_signing_key(secret_key_b64).sign(message))


def verify(message: bytes, signature_b64: str, public_key_b64: str) -> bool:
    """
    True only if `signature_b64` is a valid signature of `message` under `public_key_b64`.
    Undecodable keys or signatures are indistinguishable from a bad signature here.
    """
    try:
        key_bytes = b64_decode(public_key_b64, KEY_LEN, "public key")
        sig_bytes = b64_decode(signature_b64, SIGNATURE_LEN, "signature")
        Ed25519PublicKey.from_public_bytes(key_bytes).verify(sig_bytes, message)
    except (DecodeError, InvalidSignature, ValueError):
        return False
    return True


@dataclass(frozen=True)
class KeyInfo:
    """Public half of a keypair, safe to hand out."""
    public_key: str
    fingerprint: str

    def to_dict(self) -> dict:
        return {"publicKey": self.public_key, "fingerprint": self.fingerprint}


@dataclass(frozen=True)
class KeyPair:
    """Ed25519 identity keypair with base64 text encodings."""
    public_key: str
    secret_key: str
    fingerprint: str

    @classmethod
    def generate(cls) -> "KeyPair":
        private_key = Ed25519PrivateKey.generate()
        public_raw = _raw_public(private_key.public_key())
        keypair = cls(
            public_key=b64_encode(public_raw),
            secret_key=b64_encode(_raw_private(private_key)),
            fingerprint=fingerprint_bytes(public_raw),
        )
        logger.debug("Generated keypair %s", keypair.fingerprint)
        return keypair

    def sign(self, data: bytes) -> str:
        return sign(self.secret_key, data)

    def verify(self, data: bytes, signature_b64: str) -> bool:
        return verify(data, signature_b64, self.public_key)

    def public_info(self) -> KeyInfo:
        return KeyInfo(public_key=self.public_key, fingerprint=self.fingerprint)

    def to_dict(self) -> dict:
        return {
            "publicKey": self.public_key,
            "secretKey": self.secret_key,
            "fingerprint": self.fingerprint,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "KeyPair":
        """
        Rebuild a stored keypair.
        The secret key must derive the stored public key, and the fingerprint must match it.
        """
        if not isinstance(data, dict):
            raise SerializationError("Keypair must be a JSON object")
        try:
            public_key = data["publicKey"]
            secret_key = data["secretKey"]
            stored_fp = data["fingerprint"]
        except KeyError as e:
            raise SerializationError(f"Keypair is missing field {e}") from e

        try:
            derived = b64_encode(_raw_public(_signing_key(secret_key).public_key()))
            expected_fp = fingerprint(public_key)
        except DecodeError as e:
            raise SerializationError(f"Keypair has malformed key material: {e}") from e

        if derived != public_key:
            raise SerializationError("Keypair secret key does not match its public key")
        if stored_fp != expected_fp:
            raise SerializationError("Keypair fingerprint does not match its public key")
        return cls(public_key=public_key, secret_key=secret_key, fingerprint=stored_fp)

    def __repr__(self) -> str:
        return f"KeyPair(fingerprint={self.fingerprint!r})"
