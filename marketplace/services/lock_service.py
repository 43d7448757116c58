# marketplace/services/lock_service.py
import uuid
from contextlib import contextmanager
from typing import Iterator, Optional

import redis

from marketplace.utils.logging import get_logger
from marketplace.utils.retry import redis_retry
from marketplace.utils.settings import REDIS_URL

logger = get_logger(__name__)

# compare-and-delete in one step, so a lock that expired and was taken by
# another worker is never released by the old owner
_RELEASE_LUA = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
else
    return 0
end
"""


class LockService:
    """Named job locks in Redis (SET NX EX), used to keep scheduled runs from overlapping."""

    def __init__(self, url: str | None = None, client: Optional[redis.Redis] = None):
        self.redis = client or redis.Redis.from_url(url or REDIS_URL, decode_responses=True)

    @redis_retry()
    def acquire(self, name: str, owner: str, ttl: int) -> bool:
        key = f"job:{name}:lock"
        acquired = bool(self.redis.set(name=key, value=owner, nx=True, ex=ttl))
        logger.info(f"Acquire lock {key} for {owner}: {'ok' if acquired else 'held elsewhere'}")
        return acquired

    @redis_retry()
    def release(self, name: str, owner: str) -> bool:
        key = f"job:{name}:lock"
        released = bool(self.redis.eval(_RELEASE_LUA, 1, key, owner))
        logger.info(f"Release lock {key} for {owner}: {released}")
        return released

    @contextmanager
    def hold(self, name: str, ttl: int) -> Iterator[bool]:
        """Yield True while this caller owns the lock, False when another run holds it."""
        owner = uuid.uuid4().hex
        acquired = self.acquire(name, owner, ttl)
        try:
            yield acquired
        finally:
            if acquired:
                self.release(name, owner)
