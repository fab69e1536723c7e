from datetime import datetime, timezone
from decimal import Decimal

import pytest
import redis
from sqlalchemy.exc import SQLAlchemyError

from conftest import fixed_item, unit_item
from storefront.data.models.cart import CartModel
from storefront.data.models.order import OrderModel
from storefront.data.models.order_item import OrderItemModel
from storefront.data.models.product_inventory import ProductInventoryModel
from storefront.domain.errors import DuplicateMaterializationError, MaterializationError, NotFoundError
from storefront.domain.schemas import DeliveryMethod, OrderStagingRecord, ShippingAddress
from storefront.repos.cart_repo import RemoteCartRepository
from storefront.services.cart_service import CartService
from storefront.services.order_materializer import OrderMaterializer
from storefront.services.staging import InMemoryStagingStore, OrderStagingBuffer


def stage(staging, items=None, user_id=None, **kw):
    data = dict(
        cart_id="guest:s1",
        cart_items=items or [unit_item(price="100", quantity=2)],
        total_price=Decimal("206.00"),
        subtotal=Decimal("200.00"),
        service_fee=Decimal("6.00"),
        delivery_fee=Decimal("0.00"),
        phone_number="+591 700-12345",
        shipping_address=ShippingAddress(full_name="Ana Rojas"),
        user_id=user_id,
        delivery_method=DeliveryMethod.PICKUP,
        pickup_location="fabrica",
        created_at=datetime.now(timezone.utc),
    )
    data.update(kw)
    return staging.stage(OrderStagingRecord(**data))


@pytest.fixture
def materializer(db, staging, locks, notifications):
    return OrderMaterializer(db, staging, locks, notifications)


def test_happy_path_writes_paid_order_with_items(db, staging, materializer, notifications):
    token = stage(staging)

    result = materializer.materialize(token)

    order = db.get(OrderModel, result.order_id)
    assert order.status == "paid"
    assert order.is_paid is True
    assert order.paid_at is not None
    assert Decimal(order.total_price) == Decimal("206.00")
    assert order.phone_digits == "59170012345"
    assert len(order.simplified_id) == 8
    assert order.shipping_address["delivery_method"] == "pickup"
    assert order.shipping_address["service_fee"] == "6.00"
    assert [(Decimal(i.price), i.quantity) for i in order.items] == [(Decimal("100.00"), 2)]
    assert result.clear_local_cart is True
    assert notifications.orders == [result.order_id]


def test_second_materialize_is_a_noop(db, staging, materializer):
    token = stage(staging)
    first = materializer.materialize(token)

    with pytest.raises(DuplicateMaterializationError) as exc:
        materializer.materialize(token)

    assert exc.value.order_id == first.order_id
    assert db.query(OrderModel).count() == 1


def test_concurrent_attempt_holding_lock_is_duplicate(db, staging, locks, materializer):
    token = stage(staging)
    locks.acquire(f"materialize:{token}", "other-worker", 30)

    with pytest.raises(DuplicateMaterializationError):
        materializer.materialize(token)
    assert db.query(OrderModel).count() == 0


def test_missing_record_raises_not_found(db, materializer, locks):
    with pytest.raises(NotFoundError):
        materializer.materialize("temp_missing")

    assert db.query(OrderModel).count() == 0
    #lock released on failure
    assert locks.acquire("materialize:temp_missing", "me", 30)


def test_authenticated_order_deletes_server_cart(db, staging, materializer):
    CartService(RemoteCartRepository(db, "user-1")).add_item(unit_item())
    token = stage(staging, user_id="user-1")

    result = materializer.materialize(token)

    assert result.clear_local_cart is False
    assert db.query(CartModel).filter_by(user_id="user-1").count() == 0
    assert db.get(OrderModel, result.order_id).user_id == "user-1"


def test_write_failure_rolls_back_and_alerts(db, staging, materializer, notifications, monkeypatch):
    token = stage(staging)

    def broken_commit():
        raise SQLAlchemyError("disk full")

    monkeypatch.setattr(db, "commit", broken_commit)

    with pytest.raises(MaterializationError):
        materializer.materialize(token)

    monkeypatch.undo()
    assert db.query(OrderModel).count() == 0
    assert db.query(OrderItemModel).count() == 0
    assert notifications.alerts and notifications.alerts[0][0] == token
    #record survives for a manual retry
    assert staging.retrieve(token).total_price == Decimal("206.00")


def test_sold_fixed_weight_units_leave_inventory(db, staging, materializer):
    db.add(ProductInventoryModel(id="U1", product_id="P3", weight=Decimal("1.2"), price=Decimal("95.50")))
    db.add(ProductInventoryModel(id="U2", product_id="P3", weight=Decimal("1.4"), price=Decimal("110")))
    db.commit()
    token = stage(staging, items=[fixed_item(id="U1", locked=True, inventory_id="U1")])

    materializer.materialize(token)

    assert [u.id for u in db.query(ProductInventoryModel).all()] == ["U2"]


class FlakyConsumeStore(InMemoryStagingStore):
    """Redis drops out exactly when the tombstone is written."""

    def __init__(self):
        super().__init__()
        self.failures = 1

    def mark_consumed(self, token, order_id, ttl):
        if self.failures:
            self.failures -= 1
            raise redis.ConnectionError("redis went away")
        super().mark_consumed(token, order_id, ttl)


def test_lost_tombstone_still_yields_one_order(db, locks, notifications):
    staging = OrderStagingBuffer(FlakyConsumeStore())
    materializer = OrderMaterializer(db, staging, locks, notifications)
    token = stage(staging)

    first = materializer.materialize(token)
    assert staging.consumed_order(token) is None

    with pytest.raises(DuplicateMaterializationError) as exc:
        materializer.materialize(token)

    assert exc.value.order_id == first.order_id
    assert db.query(OrderModel).count() == 1
    assert db.get(OrderModel, first.order_id).staging_token == token
    #the replay also repaired the tombstone
    assert staging.consumed_order(token) == first.order_id
    assert notifications.alerts == []
