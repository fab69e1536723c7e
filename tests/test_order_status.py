import itertools
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from storefront.data.models.order import OrderModel
from storefront.data.models.order_item import OrderItemModel
from storefront.data.models.product_inventory import ProductInventoryModel
from storefront.domain.errors import InvalidTransitionError, NotFoundError
from storefront.domain.order_status import ALLOWED_TRANSITIONS, OrderState, OrderStatus, plan_transition, status_flags
from storefront.services.order_service import OrderService

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)
EARLIER = datetime(2026, 10, 17, 9, 0, tzinfo=timezone.utc)


def state(status, is_paid=None, paid_at=None, is_delivered=None):
    status = OrderStatus(status)
    if is_paid is None:
        is_paid = status in (OrderStatus.PAID, OrderStatus.SHIPPED, OrderStatus.DELIVERED)
    if is_delivered is None:
        is_delivered = status == OrderStatus.DELIVERED
    return OrderState(status=status, is_paid=is_paid, paid_at=paid_at, is_delivered=is_delivered)


@pytest.mark.parametrize("source,target", [
    (s, t) for s, t in itertools.product(OrderStatus, OrderStatus) if (s, t) not in ALLOWED_TRANSITIONS
])
def test_every_other_pair_is_rejected(source, target):
    with pytest.raises(InvalidTransitionError):
        plan_transition(state(source), target, NOW)


def test_pending_to_paid_sets_paid_at():
    assert plan_transition(state("pending"), OrderStatus.PAID, NOW) == {
        "status": "paid", "is_paid": True, "paid_at": NOW,
    }


def test_cancel_changes_status_only():
    assert plan_transition(state("pending"), OrderStatus.CANCELLED, NOW) == {"status": "cancelled"}
    assert plan_transition(state("paid", paid_at=EARLIER), OrderStatus.CANCELLED, NOW) == {"status": "cancelled"}


def test_ship_keeps_existing_paid_at():
    changes = plan_transition(state("paid", paid_at=EARLIER), OrderStatus.SHIPPED, NOW)
    assert changes == {"status": "shipped", "is_paid": True}


def test_deliver_unpaid_forces_payment():
    changes = plan_transition(state("pending"), OrderStatus.DELIVERED, NOW)
    assert changes == {
        "status": "delivered", "is_delivered": True, "delivered_at": NOW, "is_paid": True, "paid_at": NOW,
    }


def test_deliver_paid_keeps_payment():
    changes = plan_transition(state("shipped", paid_at=EARLIER), OrderStatus.DELIVERED, NOW)
    assert changes == {"status": "delivered", "is_delivered": True, "delivered_at": NOW}


def test_undo_delivery_returns_to_paid():
    changes = plan_transition(state("delivered", paid_at=EARLIER), OrderStatus.PAID, NOW)
    assert changes == {"status": "paid", "is_delivered": False, "delivered_at": None}

    with pytest.raises(InvalidTransitionError):
        plan_transition(state("delivered", paid_at=EARLIER), OrderStatus.PENDING, NOW)


def test_unpay():
    changes = plan_transition(state("paid", paid_at=EARLIER), OrderStatus.PENDING, NOW)
    assert changes == {"status": "pending", "is_paid": False, "paid_at": None}


def test_flags_are_exclusive():
    for status in OrderStatus:
        flags = status_flags(status)
        assert sum(flags.values()) == 1
        assert flags[f"is_{status.value}"] is True


# ---------------------------------------------------------------- service


def make_order(db, status="pending", inventory_id=None, **kw):
    is_paid = status in ("paid", "shipped", "delivered")
    order = OrderModel(
        simplified_id=kw.pop("simplified_id", "AB12CD34"),
        total_price=Decimal("100"),
        status=status,
        is_paid=is_paid,
        paid_at=EARLIER if is_paid else None,
        is_delivered=status == "delivered",
        delivered_at=EARLIER if status == "delivered" else None,
        phone_number="70012345",
        phone_digits="70012345",
        **kw,
    )
    order.items = [OrderItemModel(
        product_id="P3", inventory_id=inventory_id, name="Costilla", price=Decimal("95.5"),
        selling_method="weight_fixed" if inventory_id else "unit", quantity=1, locked=bool(inventory_id),
    )]
    db.add(order)
    db.commit()
    return order


def test_service_applies_transition(db):
    order = make_order(db, "pending")

    out = OrderService(db).transition_status(order.id, OrderStatus.DELIVERED)

    assert out.status == OrderStatus.DELIVERED
    assert out.is_paid and out.is_delivered
    assert out.flags["is_delivered"] is True


def test_service_rejects_invalid_transition_without_changes(db):
    order = make_order(db, "shipped")

    with pytest.raises(InvalidTransitionError):
        OrderService(db).transition_status(order.id, OrderStatus.PENDING)
    db.refresh(order)
    assert order.status == "shipped"


def test_set_paid_and_set_delivered(db):
    order = make_order(db, "pending")
    svc = OrderService(db)

    assert svc.set_paid(order.id, True).status == OrderStatus.PAID
    assert svc.set_delivered(order.id, True).status == OrderStatus.DELIVERED
    undone = svc.set_delivered(order.id, False)
    assert undone.status == OrderStatus.PAID
    assert undone.is_delivered is False
    assert svc.set_paid(order.id, False).status == OrderStatus.PENDING


def test_delivered_order_cannot_be_unpaid(db):
    order = make_order(db, "delivered")

    with pytest.raises(InvalidTransitionError):
        OrderService(db).set_paid(order.id, False)


def test_marking_paid_removes_sold_inventory(db):
    db.add(ProductInventoryModel(id="U1", product_id="P3", weight=Decimal("1.2"), price=Decimal("95.5")))
    db.commit()
    order = make_order(db, "pending", inventory_id="U1")

    OrderService(db).set_paid(order.id, True)

    assert db.get(ProductInventoryModel, "U1") is None


def test_delete_and_list(db):
    a = make_order(db, "paid", simplified_id="AAAA0001")
    make_order(db, "pending", simplified_id="BBBB0002")
    svc = OrderService(db)

    page = svc.list_orders(page=1, limit=1)
    assert page.total_items == 2
    assert page.total_pages == 2
    assert len(page.data) == 1

    assert svc.list_orders(query="aaaa").total_items == 1

    svc.delete_order(a.id)
    assert svc.list_orders().total_items == 1
    with pytest.raises(NotFoundError):
        svc.delete_order(a.id)
