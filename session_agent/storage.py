"""Key-addressed persistence used by the session stores.

The concrete medium is pluggable. Implementations must give
read-your-writes consistency and make ``update`` atomic per key.
"""

import asyncio
import copy
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Optional, Union
from urllib.parse import quote

logger = logging.getLogger(__name__)

Updater = Callable[[Optional[Any]], Any]


class KeyValueStore:
    async def get(self, key: str) -> Optional[Any]:
        """Return the stored value for ``key`` or None."""
        raise NotImplementedError

    async def set(self, key: str, value: Any) -> None:
        raise NotImplementedError

    async def update(self, key: str, updater: Updater) -> Any:
        """Atomically replace the value at ``key`` with ``updater(current)``.

        ``updater`` may raise to abort the update; nothing is written then.
        """
        raise NotImplementedError

    async def append(self, key: str, item: Any) -> None:
        """Append ``item`` to the list stored at ``key``."""
        await self.update(key, lambda current: list(current or []) + [item])


class _KeyLocks:
    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}

    def __call__(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock


class InMemoryStore(KeyValueStore):
    """Process-local store; values are deep-copied in and out."""

    def __init__(self):
        self._data: dict[str, Any] = {}
        self._lock = _KeyLocks()

    async def get(self, key: str) -> Optional[Any]:
        return copy.deepcopy(self._data.get(key))

    async def set(self, key: str, value: Any) -> None:
        async with self._lock(key):
            self._data[key] = copy.deepcopy(value)

    async def update(self, key: str, updater: Updater) -> Any:
        async with self._lock(key):
            new_value = updater(copy.deepcopy(self._data.get(key)))
            self._data[key] = copy.deepcopy(new_value)
            return copy.deepcopy(new_value)


class JsonFileStore(KeyValueStore):
    """One JSON file per key under ``root``, replaced atomically on write."""

    def __init__(self, root: Union[str, os.PathLike]):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self._lock = _KeyLocks()

    def _path(self, key: str) -> Path:
        # Percent-encoding keeps distinct keys on distinct files
        return self.root / f"{quote(key, safe='')}.json"

    def _read(self, key: str) -> Optional[Any]:
        path = self._path(key)
        if not path.exists():
            return None
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)

    def _write(self, key: str, value: Any) -> None:
        path = self._path(key)
        fd, tmp = tempfile.mkstemp(dir=self.root, prefix=".tmp-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(value, f, ensure_ascii=False, indent=2)
            os.replace(tmp, path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    async def get(self, key: str) -> Optional[Any]:
        return await asyncio.to_thread(self._read, key)

    async def set(self, key: str, value: Any) -> None:
        async with self._lock(key):
            await asyncio.to_thread(self._write, key, value)

    async def update(self, key: str, updater: Updater) -> Any:
        async with self._lock(key):
            current = await asyncio.to_thread(self._read, key)
            new_value = updater(current)
            await asyncio.to_thread(self._write, key, new_value)
            logger.debug(f"Updated key '{key}' in {self.root}")
            return new_value
