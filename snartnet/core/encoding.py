# snartnet/core/encoding.py
import base64
import binascii
from datetime import datetime, timedelta, timezone

from snartnet.core.errors import DecodeError, SerializationError

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"
ONE_TICK = timedelta(microseconds=1)


def b64_encode(data: bytes) -> str:
    """Encode bytes to standard base64 (with padding)."""
    return base64.b64encode(data).decode("ascii")


def b64_decode(s: str, expected_len: int | None = None, what: str = "value") -> bytes:
    """
    Strictly decode standard base64.
    Raises DecodeError on non-alphabet characters, bad padding, non-canonical
    encodings or a length mismatch.
    """
    if not isinstance(s, str):
        raise DecodeError(f"Failed to decode {what}: expected base64 text, got {type(s).__name__}")
    try:
        raw = base64.b64decode(s.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError) as e:
        raise DecodeError(f"Failed to decode {what}: {e}") from e
    # Unused trailing bits must be zero, so each value has exactly one encoding.
    if b64_encode(raw) != s:
        raise DecodeError(f"Failed to decode {what}: non-canonical base64")
    if expected_len is not None and len(raw) != expected_len:
        raise DecodeError(f"Invalid {what} length: expected {expected_len} bytes, got {len(raw)}")
    return raw


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(dt: datetime) -> str:
    """RFC 3339 UTC, microsecond precision, 'Z' suffix."""
    if dt.tzinfo is None:
        raise SerializationError("Refusing to format a naive datetime")
    return dt.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def parse_timestamp(s: str) -> datetime:
    """
    Decode a timestamp written by `format_timestamp`.
    Anything that would not re-encode to the same text is rejected, so decoded
    entities keep their canonical bytes.
    """
    if not isinstance(s, str):
        raise SerializationError(f"Timestamp must be a string, got {type(s).__name__}")
    if not s.endswith("Z"):
        raise SerializationError(f"Non-canonical timestamp {s!r}: expected UTC with 'Z' suffix")
    try:
        dt = datetime.fromisoformat(s[:-1]).replace(tzinfo=timezone.utc)
        canonical = format_timestamp(dt)
    except (ValueError, OverflowError) as e:
        raise SerializationError(f"Invalid timestamp {s!r}: {e}") from e
    if canonical != s:
        raise SerializationError(f"Non-canonical timestamp {s!r}: expected {canonical!r}")
    return dt


def next_timestamp(previous: datetime) -> datetime:
    """Current time, or one tick after `previous` if the clock has not moved past it."""
    now = utc_now()
    return now if now > previous else previous + ONE_TICK
