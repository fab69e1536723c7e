# storefront/api/routers/admin.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.api.deps import require_admin
from storefront.data.database import get_db
from storefront.domain.errors import InvalidTransitionError, NotFoundError
from storefront.domain.schemas import ActionResult, DeliveredIn, OrderPage, PaidIn, StatusIn
from storefront.services.order_service import OrderService
from storefront.utils.settings import PAGE_SIZE
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/admin/orders", tags=["admin"], dependencies=[Depends(require_admin)])

UPDATE_FAILED = "Order could not be updated"


def get_service(db: Session):
    return OrderService(db)


def _run(action, success_message: str) -> ActionResult:
    """Admin actions answer with {success, message} instead of failing the request."""
    try:
        order = action()
    except NotFoundError as e:
        return ActionResult(success=False, message=str(e))
    except InvalidTransitionError as e:
        logger.info(f"Rejected admin transition: {e}")
        return ActionResult(success=False, message=str(e))
    except SQLAlchemyError as e:
        logger.error(f"Admin order action failed: {e}")
        return ActionResult(success=False, message=UPDATE_FAILED)
    return ActionResult(success=True, message=success_message, order=order)


@router.get("", response_model=OrderPage)
def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(PAGE_SIZE, ge=1, le=100),
    query: str | None = None,
    db: Session = Depends(get_db),
):
    return get_service(db).list_orders(page, limit, query)


@router.post("/{order_id}/status", response_model=ActionResult)
def update_status(order_id: str, payload: StatusIn, db: Session = Depends(get_db)):
    svc = get_service(db)
    return _run(lambda: svc.transition_status(order_id, payload.status), f"Order status set to {payload.status.value}")


@router.post("/{order_id}/payment", response_model=ActionResult)
def update_payment(order_id: str, payload: PaidIn, db: Session = Depends(get_db)):
    svc = get_service(db)
    message = "Order marked as paid" if payload.is_paid else "Order marked as unpaid"
    return _run(lambda: svc.set_paid(order_id, payload.is_paid), message)


@router.post("/{order_id}/delivery", response_model=ActionResult)
def update_delivery(order_id: str, payload: DeliveredIn, db: Session = Depends(get_db)):
    svc = get_service(db)
    message = "Order marked as delivered" if payload.is_delivered else "Delivery undone"
    return _run(lambda: svc.set_delivered(order_id, payload.is_delivered), message)


@router.delete("/{order_id}", response_model=ActionResult)
def delete_order(order_id: str, db: Session = Depends(get_db)):
    svc = get_service(db)
    return _run(lambda: svc.delete_order(order_id), "Order deleted")
