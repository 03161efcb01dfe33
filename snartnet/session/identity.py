# snartnet/session/identity.py
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

from snartnet import __version__
from snartnet.api.models import (
    CapabilityDescriptor,
    CreateMessageRequest,
    CreatePostRequest,
    CreateProfileRequest,
    MessageEnvelope,
    PostEnvelope,
    ProfileBackup,
    ProfileEnvelope,
    UpdateProfileRequest,
)
from snartnet.config import Config
from snartnet.core.encoding import format_timestamp, utc_now
from snartnet.core.errors import SerializationError, StateError, StorageError
from snartnet.core.signed import SignedEntity, SignedMessage, SignedPost, SignedProfile, verify_profile
from snartnet.core.types import Message, Post, Profile
from snartnet.crypto.hashing import derive_magnet_uri
from snartnet.crypto.keys import KeyPair
from snartnet.storage import KeyValueStorage, MemoryStorage, create_storage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NoIdentity:
    pass


@dataclass(frozen=True)
class HasKeyOnly:
    keypair: KeyPair


@dataclass(frozen=True)
class HasProfile:
    keypair: KeyPair
    signed_profile: SignedProfile
    magnet_uri: str


SessionState = Union[NoIdentity, HasKeyOnly, HasProfile]


@dataclass
class RestoreReport:
    """Outcome of `IdentitySession.init`. Corrupt entries were ignored, not restored."""
    restored_keypair: bool = False
    restored_profile: bool = False
    problems: Dict[str, str] = field(default_factory=dict)

    @property
    def corrupt_keys(self) -> List[str]:
        return list(self.problems)

    @property
    def clean(self) -> bool:
        return not self.problems


def check_profile_matches(signed: SignedProfile, keypair: KeyPair) -> None:
    """Raise SerializationError unless `signed` belongs to `keypair` and verifies."""
    if signed.payload.public_key != keypair.public_key:
        raise SerializationError("Stored profile belongs to a different keypair")
    if not verify_profile(signed):
        raise SerializationError("Stored profile signature does not verify")


@dataclass
class IdentitySession:
    """
    The local user's identity: at most one keypair and one signed profile.
    Accepts a storage backend, a storage URI, or a plain SQLite path; defaults to memory.
    Not thread-safe: callers driving it concurrently must serialize access.
    """
    storage: Optional[Union[KeyValueStorage, str]] = None
    config: Config = field(default_factory=Config)
    state: SessionState = field(default_factory=NoIdentity)

    def __post_init__(self):
        if isinstance(self.storage, str):
            stripped = self.storage.strip()
            if stripped.startswith(("sqlite://", "memory:")):
                self.storage = create_storage(stripped)
            elif stripped:
                # Plain file path → SQLite
                self.storage = create_storage(f"sqlite://{stripped}")
            else:
                self.storage = None
        if self.storage is None:
            self.storage = MemoryStorage()

    # ── restore ────────────────────────────────────────────────────────

    def _load(self, key: str, decode: Callable[[Any], Any], report: RestoreReport) -> Any:
        try:
            raw = self.storage.get_json(key)
            return None if raw is None else decode(raw)
        except SerializationError as e:
            report.problems[key] = str(e)
            logger.warning("Ignoring corrupt stored value '%s': %s", key, e)
            return None

    def init(self) -> RestoreReport:
        """
        Restore keypair and signed profile from storage.
        Absent data leaves NoIdentity. Corrupt data is treated as absent and reported.
        Storage failures propagate.
        """
        report = RestoreReport()
        key_key = self.config.KEYPAIR_STORAGE_KEY
        profile_key = self.config.PROFILE_STORAGE_KEY

        keypair = self._load(key_key, KeyPair.from_dict, report)
        signed = self._load(profile_key, lambda d: SignedEntity.from_dict(d, Profile), report)

        if signed is not None:
            try:
                if keypair is None:
                    raise SerializationError("Stored profile has no keypair to go with it")
                check_profile_matches(signed, keypair)
            except SerializationError as e:
                report.problems[profile_key] = str(e)
                logger.warning("Ignoring stored profile: %s", e)
                signed = None

        if keypair is None:
            self.state = NoIdentity()
        elif signed is None:
            self.state = HasKeyOnly(keypair)
        else:
            self.state = HasProfile(keypair, signed, derive_magnet_uri(signed.payload))

        report.restored_keypair = keypair is not None
        report.restored_profile = signed is not None
        logger.info(
            "Session restored: keypair=%s profile=%s corrupt=%s",
            report.restored_keypair, report.restored_profile, report.corrupt_keys,
        )
        return report

    # ── state queries ──────────────────────────────────────────────────

    @property
    def keypair(self) -> Optional[KeyPair]:
        if isinstance(self.state, (HasKeyOnly, HasProfile)):
            return self.state.keypair
        return None

    def _require_keypair(self) -> KeyPair:
        keypair = self.keypair
        if keypair is None:
            raise StateError("No keypair available", required="keypair")
        return keypair

    def _require_profile(self) -> HasProfile:
        if not isinstance(self.state, HasProfile):
            raise StateError("No current profile", required="profile")
        return self.state

    def has_profile(self) -> bool:
        return isinstance(self.state, HasProfile)

    def get_fingerprint(self) -> str:
        return self._require_keypair().fingerprint

    def get_public_key(self) -> str:
        return self._require_keypair().public_key

    def get_current_profile(self) -> Optional[Profile]:
        if isinstance(self.state, HasProfile):
            return self.state.signed_profile.payload
        return None

    def current_signed_profile(self) -> SignedProfile:
        return self._require_profile().signed_profile

    @property
    def magnet_uri(self) -> Optional[str]:
        if isinstance(self.state, HasProfile):
            return self.state.magnet_uri
        return None

    # ── profile lifecycle ──────────────────────────────────────────────

    def create_profile(self, username: str, display_name: Optional[str] = None, bio: Optional[str] = None) -> str:
        """
        Create (or replace) the local profile, generating a keypair on first use.
        Returns the profile's magnet URI.
        """
        if not username:
            raise SerializationError("Username must not be empty")
        keypair = self.keypair
        if keypair is None:
            keypair = KeyPair.generate()
            self.storage.set_json(self.config.KEYPAIR_STORAGE_KEY, keypair.to_dict())
            self.state = HasKeyOnly(keypair)
            logger.info("Created identity %s", keypair.fingerprint)

        profile = Profile.new(username, keypair.public_info()).update(display_name, bio)
        magnet_uri = derive_magnet_uri(profile)
        signed = SignedEntity.create(profile, keypair)

        self.storage.set_json(self.config.PROFILE_STORAGE_KEY, signed.to_dict())
        self.state = HasProfile(keypair, signed, magnet_uri)
        logger.info("Created profile '%s' v%d for %s", username, profile.version, keypair.fingerprint)
        return magnet_uri

    def update_profile(
        self,
        display_name: Optional[str] = None,
        bio: Optional[str] = None,
        avatar_hash: Optional[str] = None,
    ) -> str:
        """
        Update, re-address and re-sign the profile as one step.
        State is replaced only after the new version is persisted; on failure
        the session keeps the previous, still consistent, version.
        """
        current = self._require_profile()
        updated = current.signed_profile.payload.update(display_name, bio, avatar_hash)
        magnet_uri = derive_magnet_uri(updated)
        signed = SignedEntity.create(updated, current.keypair)

        self.storage.set_json(self.config.PROFILE_STORAGE_KEY, signed.to_dict())
        self.state = HasProfile(current.keypair, signed, magnet_uri)
        logger.info("Updated profile to v%d", updated.version)
        return magnet_uri

    def reset(self) -> None:
        """Forget the local identity, in storage and in memory."""
        self.storage.remove_item(self.config.PROFILE_STORAGE_KEY)
        self.storage.remove_item(self.config.KEYPAIR_STORAGE_KEY)
        self.state = NoIdentity()
        logger.info("Identity removed")

    # ── content ────────────────────────────────────────────────────────

    def create_post(
        self,
        content: str,
        tags: Optional[List[str]] = None,
        reply_to: Optional[str] = None,
        attachment_hashes: Optional[List[str]] = None,
    ) -> SignedPost:
        current = self._require_profile()
        post = Post.new(current.signed_profile.payload.fingerprint, content, tags, reply_to)
        for content_hash in attachment_hashes or ():
            post = post.add_attachment(content_hash)
        return SignedEntity.create(post, current.keypair)

    def create_message(
        self,
        recipient_fingerprint: str,
        content: str,
        group_id: Optional[str] = None,
    ) -> SignedMessage:
        current = self._require_profile()
        sender = current.signed_profile.payload.fingerprint
        if group_id is None:
            message = Message.new_direct(sender, recipient_fingerprint, content)
        else:
            message = Message.new_group(sender, recipient_fingerprint, group_id, content)
        return SignedEntity.create(message, current.keypair)

    # ── backup ─────────────────────────────────────────────────────────

    def export_backup(self) -> dict:
        """Keypair and signed profile as a portable document. Contains the secret key."""
        current = self._require_profile()
        backup = ProfileBackup(
            backup_version=self.config.BACKUP_VERSION,
            created_at=format_timestamp(utc_now()),
            keypair=current.keypair.to_dict(),
            signed_profile=current.signed_profile.to_dict(),
        )
        return backup.model_dump(by_alias=True)

    def restore_backup(self, data: Union[dict, str]) -> str:
        """
        Validate a backup, persist it and make it the current identity. Returns the magnet URI.
        The keypair is written first; if the profile write then fails, the previous
        keypair entry is put back so storage never pairs a new key with an old profile.
        """
        backup = ProfileBackup.parse(data)
        if backup.backup_version != self.config.BACKUP_VERSION:
            raise SerializationError(f"Unsupported backup version {backup.backup_version!r}")

        keypair = KeyPair.from_dict(backup.keypair)
        signed = SignedEntity.from_dict(backup.signed_profile, Profile)
        check_profile_matches(signed, keypair)

        key_key = self.config.KEYPAIR_STORAGE_KEY
        previous_key = self.storage.get_item(key_key)
        self.storage.set_json(key_key, keypair.to_dict())
        try:
            self.storage.set_json(self.config.PROFILE_STORAGE_KEY, signed.to_dict())
        except StorageError:
            if previous_key is None:
                self.storage.remove_item(key_key)
            else:
                self.storage.set_item(key_key, previous_key)
            raise
        magnet_uri = derive_magnet_uri(signed.payload)
        self.state = HasProfile(keypair, signed, magnet_uri)
        logger.info("Restored identity %s from backup", keypair.fingerprint)
        return magnet_uri

    # ── versioned JSON entry points ────────────────────────────────────

    def capabilities(self) -> CapabilityDescriptor:
        return CapabilityDescriptor(
            profile_json_api=True,
            post_json_api=True,
            message_json_api=True,
            version=__version__,
        )

    def _profile_envelope(self) -> ProfileEnvelope:
        current = self._require_profile()
        return ProfileEnvelope(
            profile=current.signed_profile.payload.to_dict(),
            signature=current.signed_profile.signature,
            magnet_uri=current.magnet_uri,
            api=self.config.PROFILE_JSON_API,
            version=current.signed_profile.payload.version,
        )

    def create_profile_json(self, request_json: str) -> str:
        req = CreateProfileRequest.parse(request_json)
        self.create_profile(req.username, req.display_name, req.bio)
        return self._profile_envelope().to_json()

    def update_profile_json(self, request_json: str) -> str:
        req = UpdateProfileRequest.parse(request_json)
        self.update_profile(req.display_name, req.bio, req.avatar_hash)
        return self._profile_envelope().to_json()

    def create_post_json(self, request_json: str) -> str:
        req = CreatePostRequest.parse(request_json)
        signed = self.create_post(req.content, req.tags, req.reply_to, req.attachment_hashes)
        return PostEnvelope(
            post=signed.payload.to_dict(),
            signature=signed.signature,
            api=self.config.POST_JSON_API,
        ).to_json()

    def create_message_json(self, request_json: str) -> str:
        req = CreateMessageRequest.parse(request_json)
        signed = self.create_message(req.recipient_fingerprint, req.content, req.group_id)
        return MessageEnvelope(
            message=signed.payload.to_dict(),
            signature=signed.signature,
            api=self.config.MESSAGE_JSON_API,
        ).to_json()

    def close(self) -> None:
        """Release the storage backend."""
        if self.storage:
            self.storage.close()
            logger.debug("Storage closed")
