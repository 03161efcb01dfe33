# snartnet/verify/verifier.py
from typing import Dict, List, Optional, Sequence
from dataclasses import dataclass, field

from snartnet.core.errors import DecodeError
from snartnet.core.signed import SignedEntity, verify_profile
from snartnet.core.types import Message, Post, Profile
from snartnet.crypto.keys import fingerprint


@dataclass
class VerificationFailure:
    index: int
    message: str
    category: str = "general"  # "signature", "unknown_author", "fingerprint"


@dataclass
class VerificationResult:
    is_valid: bool
    message: str = ""
    failures: List[VerificationFailure] = field(default_factory=list)

    @property
    def first_failure(self) -> Optional[VerificationFailure]:
        return self.failures[0] if self.failures else None

    def __bool__(self):
        return self.is_valid

    def __str__(self):
        if self.is_valid:
            return "All entities valid ✓"
        lines = [f"Verification FAILED ({len(self.failures)} issues):"]
        for f in self.failures:
            lines.append(f"  • [{f.index}] {f.category}: {f.message}")
        return "\n".join(lines)


def author_of(entity) -> str:
    """Fingerprint of whoever must have signed `entity`."""
    if isinstance(entity, Profile):
        return entity.fingerprint
    if isinstance(entity, Post):
        return entity.author_fingerprint
    if isinstance(entity, Message):
        return entity.sender_fingerprint
    raise TypeError(f"Not a signable entity: {type(entity).__name__}")


class ContentVerifier:
    """
    Offline verifier for signed profiles, posts and messages from known contacts.
    Trust is anchored in full public keys; fingerprints are only used to look them up.
    """

    def __init__(self, trusted_keys: Dict[str, str]):
        """
        trusted_keys: fingerprint → base64 public key
        """
        if not trusted_keys:
            raise ValueError("trusted_keys map is required")
        for fp, pub in trusted_keys.items():
            try:
                if fingerprint(pub) != fp:
                    raise ValueError(f"Trusted key for '{fp}' does not hash to that fingerprint")
            except DecodeError as e:
                raise ValueError(f"Trusted key for '{fp}' is malformed: {e}") from e
        self.trusted_keys = dict(trusted_keys)

    @classmethod
    def from_profiles(cls, profiles: Sequence[SignedEntity]) -> "ContentVerifier":
        """Trust the keys of self-consistent signed profiles; others are ignored."""
        return cls({
            sp.payload.fingerprint: sp.payload.public_key
            for sp in profiles
            if verify_profile(sp)
        })

    def check(self, signed: SignedEntity) -> Optional[VerificationFailure]:
        author = author_of(signed.payload)
        pub_b64 = self.trusted_keys.get(author)
        if pub_b64 is None:
            return VerificationFailure(-1, f"No trusted key for author '{author}'", "unknown_author")
        if isinstance(signed.payload, Profile) and signed.payload.public_key != pub_b64:
            return VerificationFailure(-1, "Profile claims a different public key", "fingerprint")
        if not signed.verify(pub_b64):
            return VerificationFailure(-1, "Invalid signature", "signature")
        return None

    def verify(self, signed: SignedEntity) -> bool:
        return self.check(signed) is None

    def verify_all(self, entities: Sequence[SignedEntity]) -> VerificationResult:
        if not entities:
            return VerificationResult(True, "Nothing to verify")

        result = VerificationResult(True)
        for i, signed in enumerate(entities):
            failure = self.check(signed)
            if failure is not None:
                failure.index = i
                result.failures.append(failure)
                result.is_valid = False

        result.message = (
            f"{len(entities)} entities valid" if result.is_valid
            else f"Failed with {len(result.failures)} issues"
        )
        return result
