"""
JSON File Storage Implementation

DESIGN DECISION: The default backend keeps one JSON file per key in a data
directory, the same shape a browser's local storage would hold. Writes go to
a temporary file first and are moved into place, so a crash mid-write never
leaves a truncated collection behind.
"""

import json
import os
import re
from pathlib import Path
from typing import Any, Optional, Union

from settleup.services.storage.interface import KeyValueStore, StorageError


_SAFE_KEY = re.compile(r"^[A-Za-z0-9_.-]+$")


class JsonFileKeyValueStore(KeyValueStore):
    """Key-value store backed by `<data_dir>/<key>.json` files."""

    def __init__(self, data_dir: Union[str, Path]):
        self._data_dir = Path(data_dir)

    @property
    def data_dir(self) -> Path:
        return self._data_dir

    def _path_for(self, key: str) -> Path:
        if not _SAFE_KEY.match(key):
            raise StorageError(f"Invalid storage key: {key!r}")
        return self._data_dir / f"{key}.json"

    async def get(self, key: str) -> Optional[list[Any]]:
        path = self._path_for(key)
        if not path.exists():
            return None
        try:
            with path.open("r", encoding="utf-8") as fh:
                value = json.load(fh)
        except (OSError, ValueError) as e:
            raise StorageError(f"Failed to read {key}: {e}")

        if not isinstance(value, list):
            raise StorageError(f"Stored value for {key} is not an array")
        return value

    async def set(self, key: str, value: list[Any]) -> None:
        path = self._path_for(key)
        tmp_path = path.with_suffix(".json.tmp")
        try:
            self._data_dir.mkdir(parents=True, exist_ok=True)
            with tmp_path.open("w", encoding="utf-8") as fh:
                json.dump(value, fh, ensure_ascii=False, indent=2)
            os.replace(tmp_path, path)
        except (OSError, TypeError, ValueError) as e:
            raise StorageError(f"Failed to write {key}: {e}")

    async def delete(self, key: str) -> bool:
        path = self._path_for(key)
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError(f"Failed to delete {key}: {e}")
