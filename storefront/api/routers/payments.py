# storefront/api/routers/payments.py
from datetime import datetime, timedelta, timezone
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query

from storefront.api.deps import Identity, payment_gateway, qr_client, require_admin
from storefront.domain.errors import NotFoundError, ProcessorError, ValidationError
from storefront.domain.schemas import (
    PaymentCode,
    PaymentRequestIn,
    PaymentStatus,
    QRCheckIn,
    QRCheckResult,
    ReconciliationReport,
)
from storefront.services.reconciliation_service import PaymentReconciliationService
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])

PAYMENT_UNAVAILABLE = "Payment temporarily unavailable"


def get_reconciliation_service():
    return PaymentReconciliationService(qr_client())


@router.post("/qr", response_model=PaymentCode, status_code=201)
def request_qr(payload: PaymentRequestIn):
    try:
        return payment_gateway().request_payment(payload.order_ref, payload.amount, payload.currency)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ProcessorError as e:
        logger.error(f"QR request for {payload.order_ref} failed: {e}")
        raise HTTPException(status_code=503, detail=PAYMENT_UNAVAILABLE)


@router.get("/reconciliation", response_model=ReconciliationReport)
def reconciliation_report(
    date: str | None = Query(default=None, description="YYYY-MM-DD, defaults to yesterday"),
    _: Identity = Depends(require_admin),
):
    day = date or (datetime.now(timezone.utc).date() - timedelta(days=1)).isoformat()
    svc = get_reconciliation_service()
    try:
        return svc.report(day)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ProcessorError as e:
        logger.error(f"Reconciliation report for {day} failed: {e}")
        raise HTTPException(status_code=503, detail=PAYMENT_UNAVAILABLE)


@router.post("/reconciliation", response_model=List[QRCheckResult])
def check_qrs(payload: QRCheckIn, _: Identity = Depends(require_admin)):
    return get_reconciliation_service().check_many(payload.qr_ids)


@router.get("/{transaction_id}/status", response_model=PaymentStatus)
def payment_status(transaction_id: str):
    try:
        return payment_gateway().poll_status(transaction_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ProcessorError as e:
        logger.warning(f"Status check for {transaction_id} failed: {e}")
        raise HTTPException(status_code=503, detail=PAYMENT_UNAVAILABLE)
