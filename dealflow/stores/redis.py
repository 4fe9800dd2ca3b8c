"""Redis store for state shared across processes."""

from __future__ import annotations

import logging
from typing import Any, List, Optional, Type

try:
    import redis.asyncio as redis
except ImportError:
    redis = None

from pydantic import ValidationError

from .base import BaseStore, ModelT

logger = logging.getLogger(__name__)


class RedisStore(BaseStore[ModelT]):
    """Stores pydantic models as JSON inside one Redis hash per namespace."""

    def __init__(
        self,
        namespace: str,
        model: Type[ModelT],
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
    ) -> None:
        if redis is None:
            raise ImportError("redis package is required for RedisStore")

        self.namespace = namespace
        self.model = model
        self.host = host
        self.port = port
        self.db = db
        self.password = password
        self._redis: Optional[Any] = None

    @property
    def hash_name(self) -> str:
        return f"dealflow:{self.namespace}"

    async def connect(self) -> None:
        """Connect to Redis."""
        self._redis = redis.Redis(
            host=self.host,
            port=self.port,
            db=self.db,
            password=self.password,
            decode_responses=True,
        )
        await self._redis.ping()

    async def disconnect(self) -> None:
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def _client(self) -> Any:
        if not self._redis:
            await self.connect()
        return self._redis

    async def get(self, key: str) -> Optional[ModelT]:
        client = await self._client()
        raw = await client.hget(self.hash_name, key)
        if raw is None:
            return None
        try:
            return self.model.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(f"Dropping unreadable {self.namespace} entry {key}: {e}")
            return None

    async def set(self, key: str, value: ModelT) -> None:
        client = await self._client()
        await client.hset(self.hash_name, key, value.model_dump_json())

    async def delete(self, key: str) -> bool:
        client = await self._client()
        return bool(await client.hdel(self.hash_name, key))

    async def keys(self) -> List[str]:
        client = await self._client()
        return list(await client.hkeys(self.hash_name))

    async def clear(self) -> None:
        client = await self._client()
        await client.delete(self.hash_name)
