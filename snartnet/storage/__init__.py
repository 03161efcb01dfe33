# snartnet/storage/__init__.py
"""
Key-value storage backends for the local identity (keypair + signed profile).
"""

import json
from abc import ABC, abstractmethod
from typing import Any, Optional
from pathlib import Path

from snartnet.core.errors import SerializationError


class KeyValueStorage(ABC):
    """Abstract base for all persistent storage implementations."""

    @abstractmethod
    def get_item(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    def remove_item(self, key: str) -> None:
        pass

    @abstractmethod
    def close(self) -> None:
        pass

    def set_json(self, key: str, value: Any) -> None:
        try:
            text = json.dumps(value, separators=(",", ":"), ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise SerializationError(f"Cannot encode value for '{key}': {e}") from e
        self.set_item(key, text)

    def get_json(self, key: str) -> Any:
        """Decoded value, or None when the key is absent. Undecodable text raises SerializationError."""
        text = self.get_item(key)
        if text is None:
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise SerializationError(f"Stored value for '{key}' is not valid JSON: {e}") from e

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def create_storage(uri: str) -> KeyValueStorage:
    if uri == "memory:":
        from .memory import MemoryStorage
        return MemoryStorage()

    elif uri.startswith("sqlite://"):
        from .sqlite import SQLiteStorage
        # Extract everything after sqlite://
        raw_path = uri[len("sqlite://"):]
        if not raw_path:
            raise ValueError("sqlite:// URI needs a file path")
        return SQLiteStorage(Path(raw_path).expanduser().resolve())

    else:
        raise ValueError(f"Unsupported storage URI: {uri}")


from .memory import MemoryStorage
from .sqlite import SQLiteStorage

__all__ = ["KeyValueStorage", "create_storage", "MemoryStorage", "SQLiteStorage"]
