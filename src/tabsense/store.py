"""Key-value stores for small pieces of persistent state."""

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional, Union

logger = logging.getLogger(__name__)


class MemoryStore:
    """In-process store; contents are lost on exit."""

    def __init__(self, initial: Optional[Mapping[str, Any]] = None) -> None:
        self._data: dict[str, Any] = dict(initial or {})

    async def get(self, keys: Iterable[str]) -> dict[str, Any]:
        return {key: self._data[key] for key in keys if key in self._data}

    async def set(self, items: Mapping[str, Any]) -> None:
        self._data.update(items)

    async def remove(self, keys: Iterable[str]) -> None:
        for key in keys:
            self._data.pop(key, None)


class JsonFileStore:
    """Store persisted as a single JSON object on disk.

    File I/O runs in a worker thread; a lock serializes read-modify-write
    cycles within the process.
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)
        self._lock = asyncio.Lock()

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path) as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            logger.warning(f"Ignoring corrupt store {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_path, self.path)

    async def get(self, keys: Iterable[str]) -> dict[str, Any]:
        keys = list(keys)
        data = await asyncio.to_thread(self._read)
        return {key: data[key] for key in keys if key in data}

    async def set(self, items: Mapping[str, Any]) -> None:
        async with self._lock:
            data = await asyncio.to_thread(self._read)
            data.update(items)
            await asyncio.to_thread(self._write, data)

    async def remove(self, keys: Iterable[str]) -> None:
        keys = list(keys)
        async with self._lock:
            data = await asyncio.to_thread(self._read)
            if not any(key in data for key in keys):
                return
            for key in keys:
                data.pop(key, None)
            await asyncio.to_thread(self._write, data)
