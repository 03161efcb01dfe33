"""
Pydantic models for the versioned JSON entry points.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from snartnet.core.errors import SerializationError


class WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    @classmethod
    def parse(cls, data: str | bytes | dict):
        """Validate request JSON (or an already decoded object); malformed input raises SerializationError."""
        try:
            if isinstance(data, dict):
                return cls.model_validate(data)
            return cls.model_validate_json(data)
        except ValidationError as e:
            raise SerializationError(f"Invalid {cls.__name__}: {e}") from e

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class CreateProfileRequest(WireModel):
    username: str = Field(min_length=1)
    display_name: str | None = Field(default=None, alias="displayName")
    bio: str | None = None


class UpdateProfileRequest(WireModel):
    display_name: str | None = Field(default=None, alias="displayName")
    bio: str | None = None
    avatar_hash: str | None = Field(default=None, alias="avatarHash")


class CreatePostRequest(WireModel):
    content: str
    tags: list[str] = Field(default_factory=list)
    reply_to: str | None = Field(default=None, alias="replyTo")
    attachment_hashes: list[str] = Field(default_factory=list, alias="attachmentHashes")


class CreateMessageRequest(WireModel):
    recipient_fingerprint: str = Field(min_length=1, alias="recipientFingerprint")
    content: str
    group_id: str | None = Field(default=None, alias="groupId")


class ProfileEnvelope(WireModel):
    profile: dict[str, Any]
    signature: str
    magnet_uri: str = Field(alias="magnetUri")
    api: str
    version: int


class PostEnvelope(WireModel):
    post: dict[str, Any]
    signature: str
    api: str


class MessageEnvelope(WireModel):
    message: dict[str, Any]
    signature: str
    api: str


class CapabilityDescriptor(WireModel):
    profile_json_api: bool = Field(alias="profileJsonApi")
    post_json_api: bool = Field(alias="postJsonApi")
    message_json_api: bool = Field(alias="messageJsonApi")
    version: str


class ProfileBackup(WireModel):
    backup_version: str = Field(alias="backupVersion")
    created_at: str = Field(alias="createdAt")
    keypair: dict[str, Any]
    signed_profile: dict[str, Any] = Field(alias="signedProfile")
