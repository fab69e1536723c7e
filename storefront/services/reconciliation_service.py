# storefront/services/reconciliation_service.py
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List

from storefront.domain.errors import ProcessorError, ValidationError
from storefront.domain.schemas import (
    PaymentState,
    QRCheckResult,
    QRDetail,
    ReconciliationReport,
    ReconciliationSummary,
)
from storefront.services.qr_client import QRProcessorClient, map_processor_status
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


def _amount(raw: Any) -> Decimal:
    try:
        return Decimal(str(raw))
    except (InvalidOperation, TypeError):
        return Decimal("0")


class PaymentReconciliationService:
    """Compares what the processor saw on a day with what we think happened."""

    def __init__(self, client: QRProcessorClient):
        self.client = client

    def report(self, day: date | str) -> ReconciliationReport:
        if isinstance(day, str):
            try:
                day = date.fromisoformat(day)
            except ValueError:
                raise ValidationError(f"Invalid date {day!r}, expected YYYY-MM-DD")

        rows = self.client.get_qrs_by_date(day)
        details = [self._detail(row) for row in rows]

        summary = ReconciliationSummary()
        for d in details:
            if d.status == PaymentState.PAID:
                summary.paid += 1
                summary.total_amount += d.amount
            elif d.status == PaymentState.EXPIRED:
                summary.expired += 1
            elif d.status == PaymentState.ERROR:
                summary.error += 1
            else:
                summary.pending += 1

        logger.info(
            f"Reconciliation {day}: {len(details)} QRs, {summary.paid} paid ({summary.total_amount}), "
            f"{summary.pending} pending, {summary.expired} expired, {summary.error} error"
        )
        return ReconciliationReport(date=day.isoformat(), total_qrs=len(details), qr_details=details, summary=summary)

    def check_many(self, qr_ids: List[str]) -> List[QRCheckResult]:
        results = []
        for qr_id in qr_ids:
            try:
                status, message = self.client.check_qr_status(qr_id)
            except ProcessorError as e:
                logger.warning(f"Status check for QR {qr_id} failed: {e}")
                results.append(QRCheckResult(qr_id=qr_id, status=PaymentState.ERROR, message=str(e)))
                continue
            results.append(QRCheckResult(qr_id=qr_id, status=status, message=message))
        return results

    @staticmethod
    def _detail(row: Dict[str, Any]) -> QRDetail:
        return QRDetail(
            id=str(row.get("id", "")),
            amount=_amount(row.get("amount")),
            currency=row.get("currency"),
            gloss=row.get("gloss"),
            status=map_processor_status(row.get("status")),
            creation_date=row.get("creationDate"),
            expiration_date=row.get("expirationDate"),
            payment_date=row.get("paymentDate"),
            single_use=row.get("singleUse"),
        )
