# storefront/domain/order_status.py
"""
Order lifecycle rules.

The graph is not linear: admins may cancel, deliver straight from pending
(payment is then forced), or undo a delivery. Every rule lives in
`plan_transition`, which returns the column changes to apply; it never
touches the database.
"""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from storefront.domain.errors import InvalidTransitionError


class OrderStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class OrderState:
    status: OrderStatus
    is_paid: bool
    paid_at: Optional[datetime]
    is_delivered: bool


ALLOWED_TRANSITIONS = frozenset({
    (OrderStatus.PENDING, OrderStatus.PAID),
    (OrderStatus.PENDING, OrderStatus.CANCELLED),
    (OrderStatus.PAID, OrderStatus.CANCELLED),
    (OrderStatus.PAID, OrderStatus.SHIPPED),
    (OrderStatus.PAID, OrderStatus.PENDING),
    (OrderStatus.PENDING, OrderStatus.DELIVERED),
    (OrderStatus.PAID, OrderStatus.DELIVERED),
    (OrderStatus.SHIPPED, OrderStatus.DELIVERED),
    (OrderStatus.CANCELLED, OrderStatus.DELIVERED),
    (OrderStatus.DELIVERED, OrderStatus.PAID),
    (OrderStatus.DELIVERED, OrderStatus.PENDING),
})


def plan_transition(state: OrderState, target: OrderStatus, now: datetime) -> Dict[str, Any]:
    source = OrderStatus(state.status)
    target = OrderStatus(target)

    if (source, target) not in ALLOWED_TRANSITIONS:
        raise InvalidTransitionError(source.value, target.value)

    changes: Dict[str, Any] = {"status": target.value}

    if source == OrderStatus.DELIVERED:
        # undo delivery: back to paid if paid, pending otherwise
        expected = OrderStatus.PAID if state.is_paid else OrderStatus.PENDING
        if target != expected:
            raise InvalidTransitionError(
                source.value, target.value,
                f"an undelivered order returns to {expected.value}",
            )
        changes["is_delivered"] = False
        changes["delivered_at"] = None
        return changes

    if target == OrderStatus.PAID:
        changes["is_paid"] = True
        changes["paid_at"] = now

    elif target == OrderStatus.SHIPPED:
        changes["is_paid"] = True
        if state.paid_at is None:
            changes["paid_at"] = now

    elif target == OrderStatus.DELIVERED:
        changes["is_delivered"] = True
        changes["delivered_at"] = now
        #delivering unpaid goods is not a reachable state, payment is forced
        if not state.is_paid:
            changes["is_paid"] = True
            changes["paid_at"] = now

    elif target == OrderStatus.PENDING:
        # paid -> pending means "mark unpaid"
        if state.is_delivered:
            raise InvalidTransitionError(source.value, target.value, "cannot unpay a delivered order")
        changes["is_paid"] = False
        changes["paid_at"] = None

    return changes


def status_flags(status) -> Dict[str, bool]:
    status = OrderStatus(status)
    return {
        "is_pending": status == OrderStatus.PENDING,
        "is_paid": status == OrderStatus.PAID,
        "is_shipped": status == OrderStatus.SHIPPED,
        "is_delivered": status == OrderStatus.DELIVERED,
        "is_cancelled": status == OrderStatus.CANCELLED,
    }
