from __future__ import annotations

import asyncio


def compute_backoff(retry_count: int, base_ms: float = 1000) -> float:
    """Linear backoff in seconds: ``base_ms`` times the retry count."""
    return max(0.0, base_ms * retry_count / 1000.0)


async def schedule_retry(retry_count: int, base_ms: float = 1000) -> None:
    """Sleep for computed backoff delay before retrying."""
    delay = compute_backoff(retry_count, base_ms)
    await asyncio.sleep(delay)
