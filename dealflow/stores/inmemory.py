"""In-memory store for tests and single-process deployments."""

from __future__ import annotations

import asyncio
from typing import Dict, List, Optional

from .base import BaseStore, ModelT


class InMemoryStore(BaseStore[ModelT]):
    """Dictionary-backed store guarded by an ``asyncio.Lock``."""

    def __init__(self) -> None:
        self._items: Dict[str, ModelT] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[ModelT]:
        async with self._lock:
            return self._items.get(key)

    async def set(self, key: str, value: ModelT) -> None:
        async with self._lock:
            self._items[key] = value

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self._items.pop(key, None) is not None

    async def keys(self) -> List[str]:
        async with self._lock:
            return list(self._items)

    async def values(self) -> List[ModelT]:
        async with self._lock:
            return list(self._items.values())

    async def clear(self) -> None:
        async with self._lock:
            self._items.clear()
