"""Per-client single-flight locks around the refresh check-and-create step."""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Protocol

import structlog
from redis.exceptions import LockError

from api.config import get_settings
from api.exceptions import ConflictError

logger = structlog.get_logger(__name__)


def lock_key(client_id: uuid.UUID) -> str:
    return f"effectiveness:refresh:{client_id}"


class RefreshLock(Protocol):
    def hold(self, client_id: uuid.UUID) -> AsyncIterator[None]: ...


class LocalRefreshLock:
    """In-process asyncio locks. Only safe with a single API process."""

    def __init__(self, timeout_seconds: float = 30.0):
        self.timeout_seconds = timeout_seconds
        self._locks: dict[str, asyncio.Lock] = {}

    @asynccontextmanager
    async def hold(self, client_id: uuid.UUID) -> AsyncIterator[None]:
        lock = self._locks.setdefault(lock_key(client_id), asyncio.Lock())
        try:
            await asyncio.wait_for(lock.acquire(), timeout=self.timeout_seconds)
        except TimeoutError as e:
            raise ConflictError(
                "Another refresh for this client is in progress", code="REFRESH_IN_PROGRESS"
            ) from e
        try:
            yield
        finally:
            lock.release()


class RedisRefreshLock:
    """Redis lock shared by every API process."""

    def __init__(self, redis, timeout_seconds: float = 30.0):
        self.redis = redis
        self.timeout_seconds = timeout_seconds

    @asynccontextmanager
    async def hold(self, client_id: uuid.UUID) -> AsyncIterator[None]:
        lock = self.redis.lock(
            lock_key(client_id),
            timeout=self.timeout_seconds,
            blocking_timeout=self.timeout_seconds,
        )
        acquired = await lock.acquire()
        if not acquired:
            raise ConflictError(
                "Another refresh for this client is in progress", code="REFRESH_IN_PROGRESS"
            )
        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError:
                # Expired while held; the next holder owns it now
                logger.warning("refresh_lock_expired", client_id=str(client_id))


@lru_cache
def get_refresh_lock() -> RefreshLock:
    settings = get_settings()
    if settings.refresh_lock_backend == "local":
        return LocalRefreshLock(settings.refresh_lock_timeout_seconds)

    from worker.redis import get_async_redis

    return RedisRefreshLock(get_async_redis(), settings.refresh_lock_timeout_seconds)
