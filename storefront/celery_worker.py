# storefront/celery_worker.py
from celery import Celery
from celery.schedules import crontab

from storefront.utils.settings import CELERY_BROKER_URL, CELERY_RESULT_BACKEND, CELERY_ALWAYS_EAGER

celery_app = Celery(
    "storefront",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
)

# tasks must be imported explicitly to get registered
celery_app.conf.imports = (
    "storefront.tasks.reconcile",
    "storefront.services.notification_service",
)

celery_app.conf.beat_schedule = {
    "reconcile-payments-daily": {
        "task": "storefront.tasks.reconcile.daily_reconciliation_task",
        "schedule": crontab(hour=6, minute=0),  # previous day's QRs
    },
}

celery_app.conf.timezone = "UTC"

#tests and single-process dev run tasks inline
celery_app.conf.task_always_eager = CELERY_ALWAYS_EAGER
celery_app.conf.task_eager_propagates = False
