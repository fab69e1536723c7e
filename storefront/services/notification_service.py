# storefront/services/notification_service.py
from storefront.celery_worker import celery_app
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class NotificationService:
    """
    Fire-and-forget notifications, handed off to Celery.
    A broker outage is logged and never fails the caller: the order is already written.
    """

    @staticmethod
    def send_order_notification(order_id: str, simplified_id: str, phone_number: str, user_id: str | None = None):
        try:
            send_order_notification_task.delay(order_id, simplified_id, phone_number, user_id)
        except Exception as e:
            logger.error(f"Could not queue notification for order {order_id}: {e}")

    @staticmethod
    def send_reconciliation_alert(token: str, transaction_id: str | None, reason: str):
        try:
            send_reconciliation_alert_task.delay(token, transaction_id, reason)
        except Exception as e:
            logger.error(f"Could not queue reconciliation alert for {token}: {e}")


@celery_app.task(name="storefront.services.notification_service.send_order_notification_task")
def send_order_notification_task(order_id: str, simplified_id: str, phone_number: str, user_id: str | None = None):
    """Would go out as SMS / WhatsApp. Logged for now."""
    logger.info(
        f"[NOTIFICATION] Order #{simplified_id} ({order_id}) confirmed for "
        f"{user_id or 'guest'}, phone {phone_number}"
    )
    return {"order_id": order_id, "simplified_id": simplified_id, "status": "sent"}


@celery_app.task(name="storefront.services.notification_service.send_reconciliation_alert_task")
def send_reconciliation_alert_task(token: str, transaction_id: str | None, reason: str):
    #money taken, no order: somebody has to look at this by hand
    logger.error(
        f"[RECONCILIATION] Paid transaction {transaction_id or '-'} for staging {token} "
        f"has no order: {reason}"
    )
    return {"token": token, "transaction_id": transaction_id, "status": "alerted"}
