# storefront/services/order_service.py
import math
from datetime import datetime, timezone
from typing import List

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.data.models.order import OrderModel
from storefront.domain.errors import NotFoundError, ValidationError
from storefront.domain.order_status import OrderState, OrderStatus, plan_transition
from storefront.domain.schemas import OrderOut, OrderPage, OrderSummaryOut, VerifyOrderOut
from storefront.repos.order_repo import OrderRepo
from storefront.services.order_materializer import sold_inventory_ids
from storefront.utils.phone import phone_digits, phones_match
from storefront.utils.settings import PAGE_SIZE
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

LOOKUP_FAILED = "Order not found. Check the order number and phone number."
MIN_PREFIX = 4


class OrderService:
    """
    Order domain after materialization: customer reads, guest lookup and
    admin-driven lifecycle changes. Every status change goes through plan_transition.
    """

    def __init__(self, db: Session):
        self.db = db
        self.repo = OrderRepo(db)

    # ---------------------------------------------------------------- customer

    def get_order(self, order_id: str, user_id: str | None) -> OrderOut:
        order = self._get(order_id)
        if order.user_id is None or order.user_id != user_id:
            raise PermissionError("No access to this order")
        return OrderOut.model_validate(order)

    def list_my_orders(self, user_id: str) -> List[OrderOut]:
        return [OrderOut.model_validate(o) for o in self.repo.list_by_user(user_id)]

    def list_orders_by_phone(self, phone: str) -> List[OrderSummaryOut]:
        digits = phone_digits(phone)
        if len(digits) < 7:
            raise ValidationError("Phone number must have at least 7 digits")
        orders = [o for o in self.repo.list_by_phone_candidates(digits) if phones_match(o.phone_digits, digits)]
        return [OrderSummaryOut.model_validate(o) for o in orders]

    def verify_order_ownership(self, order_ref: str, phone: str) -> VerifyOrderOut:
        """
        Guest lookup by order number + phone. Wrong number and wrong phone give
        the same answer.
        """
        order = self._resolve_ref(order_ref.strip().lstrip("#"))
        if order is None or not phones_match(order.phone_digits, phone):
            logger.info(f"Order lookup failed for ref {order_ref!r}")
            return VerifyOrderOut(verified=False, message=LOOKUP_FAILED)
        return VerifyOrderOut(verified=True, order_id=order.id, status=OrderStatus(order.status))

    def _resolve_ref(self, ref: str) -> OrderModel | None:
        if not ref:
            return None

        order = self.repo.get_order(ref)
        if order:
            return order
        order = self.repo.by_simplified_id(ref)
        if order:
            return order

        matches = self.repo.by_simplified_id_ci(ref)
        if len(matches) == 1:
            return matches[0]

        #a prefix counts only if it is long enough and points at a single order
        if len(ref) >= MIN_PREFIX:
            matches = self.repo.by_simplified_prefix(ref)
            if len(matches) == 1:
                return matches[0]
        return None

    # ---------------------------------------------------------------- admin

    def list_orders(self, page: int = 1, limit: int = PAGE_SIZE, query: str | None = None) -> OrderPage:
        page = max(page, 1)
        limit = max(min(limit, 100), 1)
        rows, total = self.repo.paginate(page, limit, query)
        return OrderPage(
            data=[OrderOut.model_validate(o) for o in rows],
            total_pages=max(math.ceil(total / limit), 1),
            current_page=page,
            total_items=total,
        )

    def transition_status(self, order_id: str, target: OrderStatus) -> OrderOut:
        order = self._get(order_id)
        state = OrderState(
            status=OrderStatus(order.status),
            is_paid=order.is_paid,
            paid_at=order.paid_at,
            is_delivered=order.is_delivered,
        )
        changes = plan_transition(state, target, datetime.now(timezone.utc))
        became_paid = changes.get("is_paid") is True and not order.is_paid

        for field, value in changes.items():
            setattr(order, field, value)
        self.repo.commit()
        self.db.refresh(order)
        logger.info(f"Order {order.id}: {state.status.value} -> {order.status}")

        if became_paid:
            self._remove_sold_inventory(order)
        return OrderOut.model_validate(order)

    def set_paid(self, order_id: str, is_paid: bool) -> OrderOut:
        # unpaying a delivered order is rejected by the graph
        target = OrderStatus.PAID if is_paid else OrderStatus.PENDING
        return self.transition_status(order_id, target)

    def set_delivered(self, order_id: str, is_delivered: bool) -> OrderOut:
        order = self._get(order_id)
        if is_delivered:
            return self.transition_status(order_id, OrderStatus.DELIVERED)
        target = OrderStatus.PAID if order.is_paid else OrderStatus.PENDING
        return self.transition_status(order_id, target)

    def delete_order(self, order_id: str) -> None:
        order = self._get(order_id)
        self.repo.delete_order(order)
        logger.info(f"Order {order_id} deleted")

    # helpers

    def _get(self, order_id: str) -> OrderModel:
        order = self.repo.get_order(order_id)
        if not order:
            raise NotFoundError(f"Order {order_id} not found")
        return order

    def _remove_sold_inventory(self, order: OrderModel) -> None:
        ids = sold_inventory_ids(order.items)
        if not ids:
            return
        try:
            removed = self.repo.remove_inventory_units(ids)
            logger.info(f"Removed {removed} sold inventory units for order {order.id}")
        except SQLAlchemyError as e:
            logger.error(f"Could not remove inventory units {ids} for order {order.id}: {e}")
