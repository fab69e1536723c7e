# storefront/services/payment_gateway.py
import secrets
import threading
import time
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, Optional

import redis

from storefront.domain.errors import NotFoundError, ProcessorError, ValidationError
from storefront.domain.schemas import PaymentCode, PaymentState, PaymentStatus, PaymentTransaction
from storefront.services.pricing import to_money
from storefront.services.qr_client import QRProcessorClient
from storefront.utils.retry import redis_retry
from storefront.utils.settings import (
    ALLOW_MOCK_PAYMENTS,
    MOCK_PAID_AFTER_POLLS,
    PAYMENT_TRANSACTION_TTL_SECONDS,
    QR_DEFAULT_CURRENCY,
    REDIS_URL,
)
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

MOCK_QR_IMAGE = "/images/placeholder.jpg"


class TransactionStore(ABC):
    @abstractmethod
    def save(self, txn: PaymentTransaction) -> None: ...

    @abstractmethod
    def get(self, transaction_id: str) -> Optional[PaymentTransaction]: ...

    @abstractmethod
    def bump_polls(self, transaction_id: str) -> int:
        """Atomically increments and returns the poll counter of one transaction."""


class InMemoryTransactionStore(TransactionStore):
    def __init__(self):
        self._txns: Dict[str, PaymentTransaction] = {}
        self._polls: Dict[str, int] = {}
        self._lock = threading.Lock()

    def save(self, txn: PaymentTransaction) -> None:
        with self._lock:
            self._txns[txn.transaction_id] = txn.model_copy()

    def get(self, transaction_id: str) -> Optional[PaymentTransaction]:
        with self._lock:
            txn = self._txns.get(transaction_id)
            if txn is None:
                return None
            return txn.model_copy(update={"poll_count": self._polls.get(transaction_id, 0)})

    def bump_polls(self, transaction_id: str) -> int:
        with self._lock:
            self._polls[transaction_id] = self._polls.get(transaction_id, 0) + 1
            return self._polls[transaction_id]


class RedisTransactionStore(TransactionStore):
    def __init__(self, url: str | None = None, client: redis.Redis | None = None,
                 ttl: int = PAYMENT_TRANSACTION_TTL_SECONDS):
        self.redis = client or redis.Redis.from_url(url or REDIS_URL, decode_responses=True)
        self.ttl = ttl

    @staticmethod
    def _key(transaction_id: str) -> str:
        return f"payment:{transaction_id}"

    @staticmethod
    def _polls_key(transaction_id: str) -> str:
        return f"payment:{transaction_id}:polls"

    @redis_retry()
    def save(self, txn: PaymentTransaction) -> None:
        self.redis.set(self._key(txn.transaction_id), txn.model_dump_json(exclude={"poll_count"}), ex=self.ttl)

    @redis_retry()
    def get(self, transaction_id: str) -> Optional[PaymentTransaction]:
        raw, polls = self.redis.mget(self._key(transaction_id), self._polls_key(transaction_id))
        if raw is None:
            return None
        txn = PaymentTransaction.model_validate_json(raw)
        txn.poll_count = int(polls or 0)
        return txn

    @redis_retry()
    def bump_polls(self, transaction_id: str) -> int:
        key = self._polls_key(transaction_id)
        pipe = self.redis.pipeline(transaction=True)
        pipe.incr(key)
        pipe.expire(key, self.ttl)
        count, _ = pipe.execute()
        return int(count)


class PaymentGateway:
    """
    QR payment requests and status polling.
    Real QR codes come from the processor; when it is unreachable or not configured
    and mock payments are allowed, a mock transaction is issued instead which
    reports paid after a few polls.
    """

    def __init__(
        self,
        client: QRProcessorClient,
        transactions: TransactionStore,
        allow_mock: bool = ALLOW_MOCK_PAYMENTS,
        mock_paid_after: int = MOCK_PAID_AFTER_POLLS,
        default_currency: str = QR_DEFAULT_CURRENCY,
    ):
        self.client = client
        self.transactions = transactions
        self.allow_mock = allow_mock
        self.mock_paid_after = mock_paid_after
        self.default_currency = default_currency

    def request_payment(self, order_ref: str, amount: Decimal, currency: str | None = None) -> PaymentCode:
        amount = to_money(amount)
        if amount <= 0:
            raise ValidationError("Payment amount must be greater than zero")
        currency = currency or self.default_currency

        try:
            qr_id, qr_base64 = self.client.generate_qr(amount, order_ref, currency)
        except ProcessorError as e:
            if not self.allow_mock:
                logger.error(f"QR generation failed for {order_ref}: {e}")
                raise
            logger.warning(f"QR generation failed for {order_ref}, issuing mock payment: {e}")
            return self._mock_payment(order_ref, amount, currency)

        now = datetime.now(timezone.utc)
        txn = PaymentTransaction(
            transaction_id=f"bnb_{qr_id}_{int(time.time() * 1000)}",
            qr_id=qr_id,
            order_ref=order_ref,
            amount=amount,
            currency=currency,
            expires_at=now + timedelta(hours=24),
            created_at=now,
        )
        self.transactions.save(txn)
        logger.info(f"Payment {txn.transaction_id} requested for {order_ref}: {amount} {currency}")

        return PaymentCode(
            transaction_id=txn.transaction_id,
            qr_image=f"data:image/png;base64,{qr_base64}",
            qr_id=qr_id,
            expires_at=txn.expires_at,
        )

    def _mock_payment(self, order_ref: str, amount: Decimal, currency: str) -> PaymentCode:
        now = datetime.now(timezone.utc)
        txn = PaymentTransaction(
            transaction_id=f"mock_{int(time.time() * 1000)}_{secrets.token_hex(4)}",
            order_ref=order_ref,
            amount=amount,
            currency=currency,
            expires_at=now + timedelta(hours=24),
            is_mock=True,
            created_at=now,
        )
        self.transactions.save(txn)
        return PaymentCode(
            transaction_id=txn.transaction_id,
            qr_image=MOCK_QR_IMAGE,
            expires_at=txn.expires_at,
            is_mock=True,
            message="Payment processor unavailable, using a mock payment",
        )

    def transaction(self, transaction_id: str) -> PaymentTransaction:
        txn = self.transactions.get(transaction_id)
        if txn is None:
            raise NotFoundError(f"Payment transaction {transaction_id} not found")
        return txn

    def poll_status(self, transaction_id: str) -> PaymentStatus:
        txn = self.transaction(transaction_id)

        if txn.status.is_terminal:
            return PaymentStatus(status=txn.status, is_mock=txn.is_mock)

        if txn.is_mock:
            polls = self.transactions.bump_polls(transaction_id)
            if polls > self.mock_paid_after:
                return self._settle(txn, PaymentState.PAID, "Mock payment completed")
            return PaymentStatus(status=PaymentState.PENDING, message="Waiting for payment", is_mock=True)

        status, message = self.client.check_qr_status(txn.qr_id)

        if status == PaymentState.PENDING and txn.expires_at and txn.expires_at <= datetime.now(timezone.utc):
            return self._settle(txn, PaymentState.EXPIRED, "Payment code expired")
        if status.is_terminal:
            return self._settle(txn, status, message)
        return PaymentStatus(status=status, message=message)

    def _settle(self, txn: PaymentTransaction, status: PaymentState, message: str | None) -> PaymentStatus:
        self.transactions.save(txn.model_copy(update={"status": status}))
        logger.info(f"Payment {txn.transaction_id} for {txn.order_ref} is {status.value}")
        return PaymentStatus(status=status, message=message, is_mock=txn.is_mock)
