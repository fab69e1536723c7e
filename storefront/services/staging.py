# storefront/services/staging.py
"""
Order staging buffer.

Between the checkout form and a confirmed payment the order exists only as a
short-lived snapshot keyed by a random token. Nothing durable is written until
the money has moved, so shoppers abandoning the QR screen leave no ghost
orders behind. Once an order is written the snapshot is replaced by a
tombstone holding the order id, which is how a second "paid" notification
finds out it has nothing left to do.
"""
import secrets
import threading
import time
from abc import ABC, abstractmethod
from typing import Dict, Optional, Tuple

import redis

from storefront.domain.errors import NotFoundError
from storefront.domain.schemas import OrderStagingRecord
from storefront.utils.retry import redis_retry
from storefront.utils.settings import REDIS_URL, STAGING_TTL_SECONDS, CONSUMED_TTL_SECONDS
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class StagingStore(ABC):
    @abstractmethod
    def put(self, token: str, payload: str, ttl: int) -> None: ...

    @abstractmethod
    def get(self, token: str) -> Optional[str]: ...

    @abstractmethod
    def delete(self, token: str) -> bool: ...

    @abstractmethod
    def mark_consumed(self, token: str, order_id: str, ttl: int) -> None: ...

    @abstractmethod
    def consumed_order(self, token: str) -> Optional[str]: ...


class InMemoryStagingStore(StagingStore):
    def __init__(self, clock=time.monotonic):
        self._records: Dict[str, Tuple[str, float]] = {}
        self._consumed: Dict[str, Tuple[str, float]] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def _live(self, table: Dict[str, Tuple[str, float]], key: str) -> Optional[str]:
        entry = table.get(key)
        if entry is None:
            return None
        value, expires = entry
        if expires <= self._clock():
            del table[key]
            return None
        return value

    def put(self, token: str, payload: str, ttl: int) -> None:
        with self._lock:
            self._records[token] = (payload, self._clock() + ttl)

    def get(self, token: str) -> Optional[str]:
        with self._lock:
            return self._live(self._records, token)

    def delete(self, token: str) -> bool:
        with self._lock:
            return self._records.pop(token, None) is not None

    def mark_consumed(self, token: str, order_id: str, ttl: int) -> None:
        with self._lock:
            self._records.pop(token, None)
            self._consumed[token] = (order_id, self._clock() + ttl)

    def consumed_order(self, token: str) -> Optional[str]:
        with self._lock:
            return self._live(self._consumed, token)


class RedisStagingStore(StagingStore):
    def __init__(self, url: str | None = None, client: redis.Redis | None = None):
        self.redis = client or redis.Redis.from_url(url or REDIS_URL, decode_responses=True)

    @staticmethod
    def _key(token: str) -> str:
        return f"staging:{token}"

    @staticmethod
    def _consumed_key(token: str) -> str:
        return f"staging:{token}:order"

    @redis_retry()
    def put(self, token: str, payload: str, ttl: int) -> None:
        self.redis.set(self._key(token), payload, ex=ttl)

    @redis_retry()
    def get(self, token: str) -> Optional[str]:
        return self.redis.get(self._key(token))

    @redis_retry()
    def delete(self, token: str) -> bool:
        return bool(self.redis.delete(self._key(token)))

    @redis_retry()
    def mark_consumed(self, token: str, order_id: str, ttl: int) -> None:
        pipe = self.redis.pipeline(transaction=True)
        pipe.set(self._consumed_key(token), order_id, ex=ttl)
        pipe.delete(self._key(token))
        pipe.execute()

    @redis_retry()
    def consumed_order(self, token: str) -> Optional[str]:
        return self.redis.get(self._consumed_key(token))


def new_staging_token() -> str:
    return f"temp_{int(time.time() * 1000)}_{secrets.token_hex(5)}"


class OrderStagingBuffer:
    def __init__(self, store: StagingStore, ttl: int = STAGING_TTL_SECONDS, consumed_ttl: int = CONSUMED_TTL_SECONDS):
        self.store = store
        self.ttl = ttl
        self.consumed_ttl = consumed_ttl

    def stage(self, record: OrderStagingRecord) -> str:
        token = new_staging_token()
        #serialized copy, later cart edits cannot reach it
        self.store.put(token, record.model_dump_json(), self.ttl)
        logger.info(
            f"Staged order {token}: {len(record.cart_items)} items, total {record.total_price}, "
            f"user {record.user_id or 'guest'}"
        )
        return token

    def retrieve(self, token: str) -> OrderStagingRecord:
        payload = self.store.get(token)
        if payload is None:
            raise NotFoundError("Order details were not found or have expired")
        return OrderStagingRecord.model_validate_json(payload)

    def consume(self, token: str, order_id: str) -> None:
        self.store.mark_consumed(token, order_id, self.consumed_ttl)
        logger.info(f"Staging record {token} consumed by order {order_id}")

    def consumed_order(self, token: str) -> Optional[str]:
        return self.store.consumed_order(token)
