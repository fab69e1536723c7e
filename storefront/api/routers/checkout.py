# storefront/api/routers/checkout.py
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from storefront.api.deps import Identity, cart_repository, get_identity, lock_service, payment_gateway, staging_buffer
from storefront.data.database import get_db
from storefront.domain.errors import MaterializationError, NotFoundError, ProcessorError, ValidationError
from storefront.domain.schemas import CheckoutIn, ConfirmIn, MaterializeOut, OrderStagingRecord, PaymentCode, StageOut
from storefront.services.checkout_service import CheckoutService
from storefront.services.order_materializer import OrderMaterializer
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/checkout", tags=["checkout"])

PAYMENT_UNAVAILABLE = "Payment temporarily unavailable"


def get_service(identity: Identity, db: Session):
    return CheckoutService(
        cart_repo=cart_repository(identity, db),
        staging=staging_buffer(),
        gateway=payment_gateway(),
        materializer=OrderMaterializer(db, staging_buffer(), lock_service()),
        user_id=identity.user_id,
    )


@router.post("", response_model=StageOut, status_code=201)
def stage_order(
    payload: CheckoutIn,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    svc = get_service(identity, db)
    try:
        return svc.stage_order(payload)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/{token}", response_model=OrderStagingRecord)
def get_staged(
    token: str,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    svc = get_service(identity, db)
    try:
        return svc.get_staged(token)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))


@router.post("/{token}/payment", response_model=PaymentCode)
def request_payment(
    token: str,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    svc = get_service(identity, db)
    try:
        return svc.request_payment(token)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ProcessorError as e:
        logger.error(f"Payment request for {token} failed: {e}")
        raise HTTPException(status_code=503, detail=PAYMENT_UNAVAILABLE)


@router.post("/{token}/confirm", response_model=MaterializeOut)
def confirm_payment(
    token: str,
    payload: ConfirmIn,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    """
    Creates the order once the transaction polls as paid.
    Repeating the call after success returns the same order with already_processed set.
    """
    svc = get_service(identity, db)
    try:
        return svc.confirm_payment(token, payload.transaction_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ProcessorError as e:
        logger.error(f"Payment confirmation for {token} failed: {e}")
        raise HTTPException(status_code=503, detail=PAYMENT_UNAVAILABLE)
    except MaterializationError as e:
        raise HTTPException(status_code=500, detail=str(e))
