"""
Key-value storage tiers for locally cached credential material.

The durable tier survives restarts (a JSON file); the session tier lives only
as long as the process. Both expose the same small capability so the cleanup
pass does not care which one it is scrubbing.
"""
import json
import os
from typing import Protocol

from loguru import logger

from tasknest.utils.io import IOError as StorageFileError, build_path, read_json, write_json


class KeyValueStorage(Protocol):
    def list_keys(self) -> list[str]: ...

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class MemoryStorage:
    """Session tier. Also the in-memory fake used in tests."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._items: dict[str, str] = dict(initial or {})

    def list_keys(self) -> list[str]:
        return list(self._items)

    def get(self, key: str) -> str | None:
        return self._items.get(key)

    def set(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove(self, key: str) -> None:
        self._items.pop(key, None)


class JsonFileStorage:
    """
    Durable tier backed by a single JSON object on disk.

    Every mutation rewrites the file. A missing file is an empty store; an
    unreadable one is logged and treated as empty so a bad cache cannot lock
    the user out.
    """

    def __init__(self, path: str) -> None:
        self.path = build_path(path)
        self._items: dict[str, str] | None = None

    def _load(self) -> dict[str, str]:
        if self._items is None:
            self._items = {}
            if os.path.exists(self.path):
                try:
                    data = read_json(self.path)
                except (ValueError, StorageFileError) as e:
                    logger.warning(f"Ignoring unreadable storage file {self.path}: {e}")
                    data = {}
                if isinstance(data, dict):
                    self._items = {str(k): v if isinstance(v, str) else json.dumps(v) for k, v in data.items()}
        return self._items

    def list_keys(self) -> list[str]:
        return list(self._load())

    def get(self, key: str) -> str | None:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        self._load()[key] = value
        write_json(self._items, self.path)

    def remove(self, key: str) -> None:
        items = self._load()
        if key in items:
            del items[key]
            write_json(items, self.path)
