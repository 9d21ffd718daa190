"""Per-aggregate write locks.

Writers of one (user, course) aggregate are serialized; different
aggregates proceed in parallel. With Redis available the lock is shared by
all API workers, otherwise it only covers the current process.
"""

import asyncio
import weakref
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from uuid import UUID

import redis.asyncio as redis
import structlog
from redis.exceptions import LockError, RedisError

from shlokayug.core.redis import progress_lock_key

from .exceptions import ConcurrentModificationError, PersistenceError


logger = structlog.get_logger(__name__)


class ProgressLockManager:
    """Hands out the write lock of a progress aggregate."""

    def __init__(
        self,
        redis_client: redis.Redis | None = None,
        timeout: float = 10.0,
        blocking_timeout: float = 5.0,
    ):
        self.redis_client = redis_client
        self.timeout = timeout
        self.blocking_timeout = blocking_timeout
        self._local_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    @property
    def is_distributed(self) -> bool:
        return self.redis_client is not None

    def _local_lock(self, key: str) -> asyncio.Lock:
        lock = self._local_locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._local_locks[key] = lock
        return lock

    @asynccontextmanager
    async def acquire(self, user_id: UUID, course_id: UUID) -> AsyncIterator[None]:
        """Hold the aggregate lock for the duration of the block.

        Raises:
            ConcurrentModificationError: If the lock is not obtained in time
            PersistenceError: If Redis is unreachable
        """
        key = progress_lock_key(str(user_id), str(course_id))

        if self.redis_client is None:
            lock = self._local_lock(key)
            try:
                await asyncio.wait_for(lock.acquire(), timeout=self.blocking_timeout)
            except TimeoutError as e:
                raise ConcurrentModificationError(
                    "Progress is being updated by another request"
                ) from e
            try:
                yield
            finally:
                lock.release()
            return

        redis_lock = self.redis_client.lock(
            key,
            timeout=self.timeout,
            blocking_timeout=self.blocking_timeout,
        )
        try:
            acquired = await redis_lock.acquire()
        except RedisError as e:
            logger.error("progress_lock_unavailable", key=key, error=str(e))
            raise PersistenceError(f"Progress lock unavailable: {e}") from e
        if not acquired:
            raise ConcurrentModificationError("Progress is being updated by another request")

        try:
            yield
        finally:
            try:
                await redis_lock.release()
            except LockError:
                logger.warning("progress_lock_expired", key=key, timeout=self.timeout)
