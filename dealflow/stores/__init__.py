"""Store factory and initialization."""

from __future__ import annotations

import os
from typing import Optional, Type

from ..config import DealflowConfig, load_config
from .base import BaseStore, ModelT
from .inmemory import InMemoryStore


def get_store(
    namespace: str,
    model: Type[ModelT],
    backend: Optional[str] = None,
    config: Optional[DealflowConfig] = None,
) -> BaseStore[ModelT]:
    """Factory function to get a store for ``namespace`` on the configured backend."""

    config = config or load_config()
    backend = (
        backend
        or os.getenv("DEALFLOW_STORE")
        or config.store.backend
    ).lower()

    if backend == "inmemory":
        return InMemoryStore()
    elif backend == "redis":
        from .redis import RedisStore

        redis_conf = config.store.redis
        return RedisStore(
            namespace,
            model,
            host=redis_conf.host,
            port=redis_conf.port,
            db=redis_conf.db,
            password=redis_conf.password,
        )
    else:
        raise ValueError(f"Unsupported store backend: {backend}")


__all__ = ["BaseStore", "InMemoryStore", "get_store"]
