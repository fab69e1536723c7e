# storefront/services/order_materializer.py
"""
Turns a paid staging record into a durable order, exactly once.

Idempotency comes from three guards keyed by the staging token: a short lock
while the order is being written, a tombstone holding the order id once it
is, and a unique `staging_token` column on the order itself. The last one
holds even when the tombstone could not be written. A second "paid"
notification hits one of them and becomes a no-op. Header, items and cart
removal share one database transaction.
"""
import secrets
import uuid
from datetime import datetime, timezone
from typing import List

import redis
from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.data.models.cart import CartModel
from storefront.data.models.order import OrderModel
from storefront.data.models.order_item import OrderItemModel
from storefront.domain.errors import DuplicateMaterializationError, MaterializationError
from storefront.domain.order_status import OrderStatus
from storefront.domain.schemas import CartItem, MaterializeOut, OrderStagingRecord, SellingMethod
from storefront.repos.order_repo import OrderRepo
from storefront.services.lock_service import LockService
from storefront.services.notification_service import NotificationService
from storefront.services.staging import OrderStagingBuffer
from storefront.utils.phone import phone_digits
from storefront.utils.settings import MATERIALIZE_LOCK_TTL_SECONDS, PICKUP_LOCATIONS
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


def new_simplified_id() -> str:
    return secrets.token_hex(4).upper()


def sold_inventory_ids(items) -> List[str]:
    """Inventory units consumed by an order (locked fixed-weight lines)."""
    return [
        i.inventory_id for i in items
        if i.inventory_id and i.locked and SellingMethod(i.selling_method) == SellingMethod.WEIGHT_FIXED
    ]


class OrderMaterializer:
    def __init__(
        self,
        db: Session,
        staging: OrderStagingBuffer,
        locks: LockService,
        notifications: NotificationService | None = None,
        lock_ttl: int = MATERIALIZE_LOCK_TTL_SECONDS,
    ):
        self.db = db
        self.repo = OrderRepo(db)
        self.staging = staging
        self.locks = locks
        self.notifications = notifications or NotificationService()
        self.lock_ttl = lock_ttl

    def materialize(self, token: str, transaction_id: str | None = None) -> MaterializeOut:
        existing = self.staging.consumed_order(token)
        if existing:
            raise DuplicateMaterializationError(token, existing)

        lock_name = f"materialize:{token}"
        owner = uuid.uuid4().hex
        if not self.locks.acquire(lock_name, owner, self.lock_ttl):
            logger.info(f"Materialization of {token} already in progress")
            raise DuplicateMaterializationError(token, self.staging.consumed_order(token))

        try:
            #the first run may have finished between the check and the lock
            existing = self.staging.consumed_order(token)
            if existing:
                raise DuplicateMaterializationError(token, existing)

            record = self.staging.retrieve(token)
            order = self._write(token, record, transaction_id)
            self._consume(token, order.id)
        finally:
            self.locks.release(lock_name, owner)

        logger.info(f"Order {order.id} (#{order.simplified_id}) materialized from {token}, total {order.total_price}")
        self.notifications.send_order_notification(order.id, order.simplified_id, order.phone_number, order.user_id)
        self._remove_sold_inventory(order.id, record.cart_items)

        return MaterializeOut(order_id=order.id, clear_local_cart=record.user_id is None)

    def _write(self, token: str, record: OrderStagingRecord, transaction_id: str | None) -> OrderModel:
        now = datetime.now(timezone.utc)
        order = OrderModel(
            id=str(uuid.uuid4()),
            simplified_id=self._unique_simplified_id(),
            user_id=record.user_id,
            total_price=record.total_price,
            status=OrderStatus.PAID.value,
            is_paid=True,
            paid_at=now,
            is_delivered=False,
            phone_number=record.phone_number,
            phone_digits=phone_digits(record.phone_number),
            shipping_address=self._shipping_address(record),
            staging_token=token,
            created_at=now,
        )
        order.items = [self._item(i) for i in record.cart_items]

        try:
            self.repo.add(order)
            if record.user_id:
                self.db.execute(delete(CartModel).where(CartModel.user_id == record.user_id))
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            existing = self.repo.by_staging_token(token)
            if existing is None:
                logger.error(f"Order for paid staging {token} (transaction {transaction_id}) was not written: {e}")
                self.notifications.send_reconciliation_alert(token, transaction_id, str(e))
                raise MaterializationError("Payment received but the order could not be saved") from e
            logger.warning(f"Staging {token} already has order {existing.id}, tombstone was missing")
            self._consume(token, existing.id)
            raise DuplicateMaterializationError(token, existing.id)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Order for paid staging {token} (transaction {transaction_id}) was not written: {e}")
            self.notifications.send_reconciliation_alert(token, transaction_id, str(e))
            raise MaterializationError("Payment received but the order could not be saved") from e

        self.db.refresh(order)
        return order

    def _consume(self, token: str, order_id: str) -> None:
        #the order is committed, a missing tombstone is covered by the staging_token constraint
        try:
            self.staging.consume(token, order_id)
        except redis.RedisError as e:
            logger.error(f"Could not mark staging {token} consumed by order {order_id}: {e}")

    def _unique_simplified_id(self) -> str:
        while True:
            candidate = new_simplified_id()
            if not self.repo.simplified_id_taken(candidate):
                return candidate

    @staticmethod
    def _item(item: CartItem) -> OrderItemModel:
        return OrderItemModel(
            product_id=item.product_id or item.id,
            inventory_id=item.inventory_id,
            name=item.name,
            image=item.image,
            price=item.price,
            selling_method=item.selling_method.value,
            quantity=item.quantity,
            weight=item.weight,
            weight_unit=item.weight_unit,
            locked=item.locked,
        )

    @staticmethod
    def _shipping_address(record: OrderStagingRecord) -> dict:
        address = record.shipping_address.model_dump(mode="json") if record.shipping_address else {}
        address.update({
            "delivery_method": record.delivery_method.value,
            "pickup_location": record.pickup_location,
            "pickup_address": PICKUP_LOCATIONS.get(record.pickup_location) if record.pickup_location else None,
            "subtotal": str(record.subtotal),
            "service_fee": str(record.service_fee),
            "delivery_fee": str(record.delivery_fee),
        })
        return address

    def _remove_sold_inventory(self, order_id: str, items: List[CartItem]) -> None:
        ids = sold_inventory_ids(items)
        if not ids:
            return
        try:
            removed = self.repo.remove_inventory_units(ids)
            logger.info(f"Removed {removed} sold inventory units for order {order_id}")
        except SQLAlchemyError as e:
            #the order stands, stock is fixed up by hand
            logger.error(f"Could not remove inventory units {ids} for order {order_id}: {e}")
