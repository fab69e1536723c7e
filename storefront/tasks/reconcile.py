# storefront/tasks/reconcile.py
from datetime import datetime, timedelta, timezone

from storefront.celery_worker import celery_app
from storefront.domain.errors import ProcessorError
from storefront.services.qr_client import QRProcessorClient
from storefront.services.reconciliation_service import PaymentReconciliationService
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


@celery_app.task(name="storefront.tasks.reconcile.daily_reconciliation_task")
def daily_reconciliation_task(day: str | None = None):
    """Logs the processor's view of one day (yesterday by default) for manual reconciliation."""
    day = day or (datetime.now(timezone.utc).date() - timedelta(days=1)).isoformat()
    logger.info(f"Daily reconciliation for {day} started")

    try:
        report = PaymentReconciliationService(QRProcessorClient()).report(day)
    except ProcessorError as e:
        logger.error(f"Daily reconciliation for {day} failed: {e}")
        return {"date": day, "status": "failed", "error": str(e)}

    for detail in report.qr_details:
        logger.info(f"QR {detail.id}: {detail.status.value} {detail.amount} {detail.currency or ''} {detail.gloss or ''}")

    return {"date": day, "status": "ok", **report.summary.model_dump(mode="json")}
