# storefront/api/routers/orders.py
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from storefront.api.deps import Identity, require_user
from storefront.data.database import get_db
from storefront.domain.errors import NotFoundError, ValidationError
from storefront.domain.schemas import OrderOut, OrderSummaryOut, VerifyOrderIn, VerifyOrderOut
from storefront.services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["orders"])


def get_service(db: Session):
    return OrderService(db)


@router.get("", response_model=List[OrderOut])
def list_my_orders(identity: Identity = Depends(require_user), db: Session = Depends(get_db)):
    return get_service(db).list_my_orders(identity.user_id)


@router.get("/by-phone/{phone}", response_model=List[OrderSummaryOut])
def list_orders_by_phone(phone: str, db: Session = Depends(get_db)):
    """Guest order history, id and status only."""
    svc = get_service(db)
    try:
        return svc.list_orders_by_phone(phone)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/verify", response_model=VerifyOrderOut)
def verify_order(payload: VerifyOrderIn, db: Session = Depends(get_db)):
    return get_service(db).verify_order_ownership(payload.order_id, payload.phone_number)


@router.get("/{order_id}", response_model=OrderOut)
def get_order(
    order_id: str,
    identity: Identity = Depends(require_user),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        return svc.get_order(order_id, identity.user_id)
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
