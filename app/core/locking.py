"""
Keyed locks used to serialize work on a single resource id.

Design goals:
- Distributed when Redis is configured: every worker process shares the same lock.
- Best-effort: if Redis is unreachable the lock degrades to an in-process asyncio.Lock.
- Bounded memory: in-process locks are dropped once nobody holds or waits on them.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, AsyncIterator

import redis.asyncio as redis
import structlog
from redis.exceptions import LockError, RedisError

from app.core.config import settings

logger = structlog.get_logger(__name__)

if TYPE_CHECKING:
    RedisClient = redis.Redis
else:
    RedisClient = Any

_redis_client: RedisClient | None = None


async def init_redis() -> RedisClient | None:
    """Create a singleton Redis client; return None when disabled or unavailable."""
    global _redis_client

    if not settings.REDIS_URL:
        return None

    client = redis.from_url(settings.REDIS_URL, decode_responses=False)
    try:
        await client.ping()
    except RedisError as exc:
        logger.warning("redis_ping_failed", error=str(exc), url=settings.REDIS_URL)
        return None

    _redis_client = client
    return client


async def close_redis() -> None:
    """Close the Redis client on shutdown."""
    global _redis_client

    if _redis_client:
        await _redis_client.close()
        _redis_client = None


def get_redis_client() -> RedisClient | None:
    return _redis_client


class KeyedLock:
    """
    Mutual exclusion per string key.

    `hold(key)` is an async context manager. With a Redis client it takes a Redis lock named
    `<namespace>:<key>`; otherwise (or when Redis fails) it falls back to a local asyncio lock.
    """

    def __init__(
        self,
        namespace: str,
        timeout_seconds: int | None = None,
        client_getter: Any = get_redis_client,
    ) -> None:
        self._namespace = namespace
        self._timeout = timeout_seconds or settings.EVALUATION_LOCK_TIMEOUT_SECONDS
        self._client_getter = client_getter
        self._local: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        client = self._client_getter()
        if client is not None:
            lock = client.lock(
                f"{self._namespace}:{key}",
                timeout=self._timeout,
                blocking_timeout=self._timeout,
            )
            acquired = False
            try:
                acquired = await lock.acquire()
            except RedisError as exc:
                logger.warning(
                    "redis_lock_unavailable", namespace=self._namespace, key=key, error=str(exc)
                )
            else:
                if not acquired:
                    raise TimeoutError(f"could not lock {self._namespace}:{key}")
            if acquired:
                try:
                    yield
                finally:
                    try:
                        await lock.release()
                    except LockError:
                        # Expired while held; the work itself already finished.
                        logger.warning("redis_lock_expired", namespace=self._namespace, key=key)
                return

        async with self._hold_local(key):
            yield

    @asynccontextmanager
    async def _hold_local(self, key: str) -> AsyncIterator[None]:
        lock = self._local.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                self._waiters.pop(key, None)
                self._local.pop(key, None)

    def local_keys(self) -> list[str]:
        return list(self._local)
