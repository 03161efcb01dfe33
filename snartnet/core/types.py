# snartnet/core/types.py
"""
User-authored entities: Profile, Post, Message.

All three are frozen. "Mutations" return a successor value, so a payload that has
already been signed can never change underneath its signature.
`to_dict()` emits every wire field (absent optionals as explicit null); it is the
input to canonicalization.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, ClassVar, Optional, Tuple, Union
from uuid import uuid4

from snartnet.core.encoding import format_timestamp, next_timestamp, parse_timestamp, utc_now
from snartnet.core.errors import SerializationError
from snartnet.crypto.keys import KeyInfo


def new_id() -> str:
    return str(uuid4())


def _field(data: dict, name: str, kind: type, entity: str) -> Any:
    if name not in data:
        raise SerializationError(f"{entity} is missing field '{name}'")
    value = data[name]
    if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        raise SerializationError(f"{entity}.{name} must be {kind.__name__}, got {type(value).__name__}")
    return value


def _optional(data: dict, name: str, entity: str) -> Optional[str]:
    if name not in data:
        raise SerializationError(f"{entity} is missing field '{name}' (use null when absent)")
    value = data[name]
    if value is not None and not isinstance(value, str):
        raise SerializationError(f"{entity}.{name} must be a string or null")
    return value


def _str_list(data: dict, name: str, entity: str) -> Tuple[str, ...]:
    items = _field(data, name, list, entity)
    if not all(isinstance(i, str) for i in items):
        raise SerializationError(f"{entity}.{name} must be a list of strings")
    return tuple(items)


def _require_object(data: Any, entity: str) -> dict:
    if not isinstance(data, dict):
        raise SerializationError(f"{entity} must be a JSON object")
    return data


def _reject_unknown(data: dict, known: frozenset, entity: str) -> None:
    extra = sorted(set(data) - known)
    if extra:
        raise SerializationError(f"{entity} has unknown field(s): {', '.join(extra)}")


@dataclass(frozen=True)
class Profile:
    """Signed identity card of the local user. Identity fields never change after creation."""
    id: str
    username: str
    public_key: str
    fingerprint: str
    created_at: datetime
    updated_at: datetime
    version: int = 1
    display_name: Optional[str] = None
    bio: Optional[str] = None
    avatar_hash: Optional[str] = None
    magnet_uri: Optional[str] = None

    WIRE_NAME: ClassVar[str] = "profile"
    WIRE_FIELDS: ClassVar[frozenset] = frozenset({
        "id", "username", "displayName", "bio", "avatarHash", "publicKey",
        "fingerprint", "createdAt", "updatedAt", "version", "magnetUri",
    })

    @classmethod
    def new(cls, username: str, key_info: KeyInfo) -> "Profile":
        now = utc_now()
        return cls(
            id=new_id(),
            username=username,
            public_key=key_info.public_key,
            fingerprint=key_info.fingerprint,
            created_at=now,
            updated_at=now,
        )

    def update(
        self,
        display_name: Optional[str] = None,
        bio: Optional[str] = None,
        avatar_hash: Optional[str] = None,
    ) -> "Profile":
        """
        Partial update. None leaves a field as is; any string (including "") overwrites.
        Returns the successor with version + 1 and a strictly later updated_at.
        The result is unsigned.
        """
        changes: dict = {}
        if display_name is not None:
            changes["display_name"] = display_name
        if bio is not None:
            changes["bio"] = bio
        if avatar_hash is not None:
            changes["avatar_hash"] = avatar_hash
        return replace(
            self,
            updated_at=next_timestamp(self.updated_at),
            version=self.version + 1,
            **changes,
        )

    def key_info(self) -> KeyInfo:
        return KeyInfo(public_key=self.public_key, fingerprint=self.fingerprint)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "displayName": self.display_name,
            "bio": self.bio,
            "avatarHash": self.avatar_hash,
            "publicKey": self.public_key,
            "fingerprint": self.fingerprint,
            "createdAt": format_timestamp(self.created_at),
            "updatedAt": format_timestamp(self.updated_at),
            "version": self.version,
            "magnetUri": self.magnet_uri,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Profile":
        d = _require_object(data, "Profile")
        _reject_unknown(d, cls.WIRE_FIELDS, "Profile")
        version = _field(d, "version", int, "Profile")
        if version < 1:
            raise SerializationError(f"Profile.version must be >= 1, got {version}")
        return cls(
            id=_field(d, "id", str, "Profile"),
            username=_field(d, "username", str, "Profile"),
            display_name=_optional(d, "displayName", "Profile"),
            bio=_optional(d, "bio", "Profile"),
            avatar_hash=_optional(d, "avatarHash", "Profile"),
            public_key=_field(d, "publicKey", str, "Profile"),
            fingerprint=_field(d, "fingerprint", str, "Profile"),
            created_at=parse_timestamp(_field(d, "createdAt", str, "Profile")),
            updated_at=parse_timestamp(_field(d, "updatedAt", str, "Profile")),
            version=version,
            magnet_uri=_optional(d, "magnetUri", "Profile"),
        )


@dataclass(frozen=True)
class Post:
    id: str
    author_fingerprint: str
    content: str
    created_at: datetime
    tags: Tuple[str, ...] = ()
    reply_to: Optional[str] = None
    attachment_hashes: Tuple[str, ...] = field(default_factory=tuple)

    WIRE_NAME: ClassVar[str] = "post"
    WIRE_FIELDS: ClassVar[frozenset] = frozenset({
        "id", "authorFingerprint", "content", "tags", "createdAt", "replyTo", "attachmentHashes",
    })

    @classmethod
    def new(
        cls,
        author_fingerprint: str,
        content: str,
        tags: Optional[list] = None,
        reply_to: Optional[str] = None,
    ) -> "Post":
        return cls(
            id=new_id(),
            author_fingerprint=author_fingerprint,
            content=content,
            created_at=utc_now(),
            tags=tuple(tags or ()),
            reply_to=reply_to,
        )

    def add_attachment(self, content_hash: str) -> "Post":
        """New unsigned post with `content_hash` appended. Order kept, no dedup."""
        return replace(self, attachment_hashes=self.attachment_hashes + (content_hash,))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "authorFingerprint": self.author_fingerprint,
            "content": self.content,
            "tags": list(self.tags),
            "createdAt": format_timestamp(self.created_at),
            "replyTo": self.reply_to,
            "attachmentHashes": list(self.attachment_hashes),
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Post":
        d = _require_object(data, "Post")
        _reject_unknown(d, cls.WIRE_FIELDS, "Post")
        return cls(
            id=_field(d, "id", str, "Post"),
            author_fingerprint=_field(d, "authorFingerprint", str, "Post"),
            content=_field(d, "content", str, "Post"),
            tags=_str_list(d, "tags", "Post"),
            created_at=parse_timestamp(_field(d, "createdAt", str, "Post")),
            reply_to=_optional(d, "replyTo", "Post"),
            attachment_hashes=_str_list(d, "attachmentHashes", "Post"),
        )


@dataclass(frozen=True)
class DirectKind:
    def to_dict(self) -> dict:
        return {"type": "direct"}


@dataclass(frozen=True)
class GroupKind:
    group_id: str

    def to_dict(self) -> dict:
        return {"type": "group", "groupId": self.group_id}


MessageKind = Union[DirectKind, GroupKind]


def kind_from_dict(data: Any) -> MessageKind:
    d = _require_object(data, "Message.kind")
    kind_type = d.get("type")
    if kind_type == "direct":
        _reject_unknown(d, frozenset({"type"}), "Message.kind")
        return DirectKind()
    if kind_type == "group":
        _reject_unknown(d, frozenset({"type", "groupId"}), "Message.kind")
        return GroupKind(group_id=_field(d, "groupId", str, "Message.kind"))
    raise SerializationError(f"Unknown message kind: {kind_type!r}")


@dataclass(frozen=True)
class Message:
    """Direct or group message. No update path exists."""
    id: str
    sender_fingerprint: str
    recipient_fingerprint: str
    content: str
    created_at: datetime
    kind: MessageKind = field(default_factory=DirectKind)
    encrypted: bool = False  # reserved; no encryption scheme is defined

    WIRE_NAME: ClassVar[str] = "message"
    WIRE_FIELDS: ClassVar[frozenset] = frozenset({
        "id", "senderFingerprint", "recipientFingerprint", "content", "createdAt", "encrypted", "kind",
    })

    @classmethod
    def new_direct(cls, sender_fingerprint: str, recipient_fingerprint: str, content: str) -> "Message":
        return cls(
            id=new_id(),
            sender_fingerprint=sender_fingerprint,
            recipient_fingerprint=recipient_fingerprint,
            content=content,
            created_at=utc_now(),
        )

    @classmethod
    def new_group(
        cls,
        sender_fingerprint: str,
        recipient_fingerprint: str,
        group_id: str,
        content: str,
    ) -> "Message":
        return cls(
            id=new_id(),
            sender_fingerprint=sender_fingerprint,
            recipient_fingerprint=recipient_fingerprint,
            content=content,
            created_at=utc_now(),
            kind=GroupKind(group_id=group_id),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "senderFingerprint": self.sender_fingerprint,
            "recipientFingerprint": self.recipient_fingerprint,
            "content": self.content,
            "createdAt": format_timestamp(self.created_at),
            "encrypted": self.encrypted,
            "kind": self.kind.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Message":
        d = _require_object(data, "Message")
        _reject_unknown(d, cls.WIRE_FIELDS, "Message")
        return cls(
            id=_field(d, "id", str, "Message"),
            sender_fingerprint=_field(d, "senderFingerprint", str, "Message"),
            recipient_fingerprint=_field(d, "recipientFingerprint", str, "Message"),
            content=_field(d, "content", str, "Message"),
            created_at=parse_timestamp(_field(d, "createdAt", str, "Message")),
            encrypted=_field(d, "encrypted", bool, "Message"),
            kind=kind_from_dict(d.get("kind")),
        )
