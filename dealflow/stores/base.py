"""Base store interface for dealflow state."""

from __future__ import annotations

import abc
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel

ModelT = TypeVar("ModelT", bound=BaseModel)


class BaseStore(Generic[ModelT], metaclass=abc.ABCMeta):
    """Abstract keyed store holding pydantic models of one type."""

    async def connect(self) -> None:
        """Open connection to the backend (no-op by default)."""
        pass

    async def disconnect(self) -> None:
        """Close connection to the backend (no-op by default)."""
        pass

    @abc.abstractmethod
    async def get(self, key: str) -> Optional[ModelT]:
        raise NotImplementedError

    @abc.abstractmethod
    async def set(self, key: str, value: ModelT) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove ``key`` and report whether it existed."""
        raise NotImplementedError

    @abc.abstractmethod
    async def keys(self) -> List[str]:
        raise NotImplementedError

    async def values(self) -> List[ModelT]:
        items = []
        for key in await self.keys():
            value = await self.get(key)
            if value is not None:
                items.append(value)
        return items

    async def clear(self) -> None:
        for key in await self.keys():
            await self.delete(key)
