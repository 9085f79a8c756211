"""
In-Memory Storage Implementation

Used by tests and by the `memory` backend. Values are passed through a JSON
round trip on every write so anything that would not survive a real backend
fails here too.
"""

import json
from typing import Any, Optional

from settleup.services.storage.interface import KeyValueStore, StorageError


class InMemoryKeyValueStore(KeyValueStore):
    """Dictionary-backed key-value store."""

    def __init__(self, initial: Optional[dict[str, list[Any]]] = None):
        self._data: dict[str, str] = {}
        for key, value in (initial or {}).items():
            self._data[key] = json.dumps(value)

    async def get(self, key: str) -> Optional[list[Any]]:
        raw = self._data.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    async def set(self, key: str, value: list[Any]) -> None:
        try:
            self._data[key] = json.dumps(value)
        except (TypeError, ValueError) as e:
            raise StorageError(f"Value for {key} is not JSON-serializable: {e}")

    async def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    def keys(self) -> list[str]:
        return list(self._data)
