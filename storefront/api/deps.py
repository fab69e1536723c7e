# storefront/api/deps.py
"""
Request identity and shared stores.

Identity is trusted from the auth proxy headers; the core never checks passwords.
Stores are process-wide singletons picked by STORE_BACKEND.
"""
from functools import lru_cache

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from storefront.data.database import get_db
from storefront.repos.cart_repo import CartRepository, GuestCartStore, LocalCartRepository, RemoteCartRepository
from storefront.services.lock_service import LocalLockService, LockService
from storefront.services.payment_gateway import InMemoryTransactionStore, PaymentGateway, RedisTransactionStore
from storefront.services.qr_client import QRProcessorClient
from storefront.services.staging import InMemoryStagingStore, OrderStagingBuffer, RedisStagingStore
from storefront.utils.settings import STORE_BACKEND


class Identity:
    def __init__(self, user_id: str | None, role: str | None, session_id: str | None):
        self.user_id = user_id
        self.role = role
        self.session_id = session_id

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def get_identity(
    x_user_id: str | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
    x_session_id: str | None = Header(default=None),
) -> Identity:
    return Identity(x_user_id or None, x_user_role, x_session_id or None)


def require_user(identity: Identity = Depends(get_identity)) -> Identity:
    if not identity.user_id:
        raise HTTPException(status_code=401, detail="Sign in required")
    return identity


def require_admin(identity: Identity = Depends(get_identity)) -> Identity:
    if not identity.is_admin:
        raise HTTPException(status_code=403, detail="Admin role required")
    return identity


def _memory() -> bool:
    return STORE_BACKEND == "memory"


@lru_cache
def guest_carts() -> GuestCartStore:
    return GuestCartStore()


@lru_cache
def staging_buffer() -> OrderStagingBuffer:
    return OrderStagingBuffer(InMemoryStagingStore() if _memory() else RedisStagingStore())


@lru_cache
def lock_service():
    return LocalLockService() if _memory() else LockService()


@lru_cache
def qr_client() -> QRProcessorClient:
    return QRProcessorClient()


@lru_cache
def payment_gateway() -> PaymentGateway:
    store = InMemoryTransactionStore() if _memory() else RedisTransactionStore()
    return PaymentGateway(qr_client(), store)


def cart_repository(identity: Identity, db: Session) -> CartRepository:
    if identity.user_id:
        return RemoteCartRepository(db, identity.user_id)
    if not identity.session_id:
        raise HTTPException(status_code=400, detail="X-Session-Id header required for guest carts")
    return LocalCartRepository(guest_carts(), identity.session_id)


def get_cart_repo(identity: Identity = Depends(get_identity), db: Session = Depends(get_db)) -> CartRepository:
    return cart_repository(identity, db)
