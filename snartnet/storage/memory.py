# snartnet/storage/memory.py
from typing import Dict, Optional

from snartnet.core.errors import StorageError
from . import KeyValueStorage


class MemoryStorage(KeyValueStorage):
    """Dict-backed storage. Nothing survives the process."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._items: Optional[Dict[str, str]] = dict(initial or {})

    @property
    def items(self) -> Dict[str, str]:
        if self._items is None:
            raise StorageError("Storage is closed")
        return self._items

    def get_item(self, key: str) -> Optional[str]:
        return self.items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self.items[key] = value

    def remove_item(self, key: str) -> None:
        self.items.pop(key, None)

    def close(self) -> None:
        self._items = None
