# marketplace/celery_worker.py
from celery import Celery

from marketplace.utils.settings import CELERY_BROKER_URL, CELERY_RESULT_BACKEND, UNLOCK_INTERVAL_SECONDS

celery_app = Celery(
    "marketplace",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
)

# tasks live outside this module, list them so the worker registers them
celery_app.conf.imports = (
    "marketplace.tasks.expire",
    "marketplace.tasks.unlock",
    "marketplace.services.notification_service",
)

celery_app.conf.beat_schedule = {
    "expire-carts-every-hour": {
        "task": "marketplace.tasks.expire.expire_carts_task",
        "schedule": 3600.0,
    },
    "unlock-matured-funds": {
        "task": "marketplace.tasks.unlock.process_unlocks_task",
        "schedule": float(UNLOCK_INTERVAL_SECONDS),
    },
}

celery_app.conf.timezone = "UTC"
