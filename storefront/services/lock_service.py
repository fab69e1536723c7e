import threading
import time

import redis

from storefront.utils.retry import redis_retry
from storefront.utils.settings import REDIS_URL
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

#compare-and-delete in one step, redis runs the script atomically
_RELEASE_LUA = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
else
    return 0
end
"""


class LockService:
    """
    Short-lived exclusive locks keyed by name.
    Only the owner that took a lock can release it; the TTL frees it if the owner dies.
    """

    def __init__(self, url: str | None = None, client: redis.Redis | None = None):
        self.redis = client or redis.Redis.from_url(
            url or REDIS_URL,
            decode_responses=True,
        )

    @redis_retry()
    def acquire(self, name: str, owner: str, ttl: int) -> bool:
        key = f"lock:{name}"
        logger.info(f"Acquire lock {key} for {owner}")
        #SET lock:materialize:temp_... "<owner>" NX EX 30
        return bool(self.redis.set(name=key, value=owner, nx=True, ex=ttl))

    @redis_retry()
    def release(self, name: str, owner: str) -> bool:
        key = f"lock:{name}"
        logger.info(f"Release lock {key} for {owner}")
        return bool(self.redis.eval(_RELEASE_LUA, 1, key, owner))


class LocalLockService:
    """Same contract as LockService, for a single process."""

    def __init__(self, clock=time.monotonic):
        self._locks: dict[str, tuple[str, float]] = {}
        self._mutex = threading.Lock()
        self._clock = clock

    def acquire(self, name: str, owner: str, ttl: int) -> bool:
        now = self._clock()
        with self._mutex:
            held = self._locks.get(name)
            if held and held[1] > now:
                return False
            self._locks[name] = (owner, now + ttl)
            return True

    def release(self, name: str, owner: str) -> bool:
        with self._mutex:
            held = self._locks.get(name)
            if held and held[0] == owner:
                del self._locks[name]
                return True
            return False
