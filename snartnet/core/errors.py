# snartnet/core/errors.py
"""
Exceptions raised by the identity core.

Verification failures are not exceptions: `verify` calls return False.
"""


class SnartnetError(Exception):
    """Base class for every error raised by snartnet."""


class DecodeError(SnartnetError, ValueError):
    """Malformed base64, or a key/signature that decodes to the wrong length."""


class SerializationError(SnartnetError, ValueError):
    """Canonicalization or JSON encoding/decoding failed on malformed input."""


class StateError(SnartnetError):
    """An operation needs an established identity or profile that does not exist."""

    def __init__(self, message: str, required: str = "profile"):
        super().__init__(message)
        self.required = required


class StorageError(SnartnetError):
    """The persistence collaborator failed."""
