# marketplace/tasks/unlock.py
from marketplace.celery_worker import celery_app
from marketplace.data.database import SessionLocal
from marketplace.services.lock_service import LockService
from marketplace.services.unlock_service import UnlockService
from marketplace.utils.logging import get_logger
from marketplace.utils.settings import UNLOCK_INTERVAL_SECONDS

logger = get_logger(__name__)

JOB_NAME = "unlock-funds"


def run_unlocks(lock_service: LockService, unlock_service: UnlockService) -> dict:
    with lock_service.hold(JOB_NAME, ttl=max(UNLOCK_INTERVAL_SECONDS, 60)) as acquired:
        if not acquired:
            logger.info("Another unlock run is in progress, skipping")
            return {"skipped": True}
        result = unlock_service.process_unlocks()

    return {
        "skipped": False,
        "unlocked": result.unlocked_count,
        "amount": str(result.total_amount),
        "failed": result.failed_count,
    }


@celery_app.task(name="marketplace.tasks.unlock.process_unlocks_task")
def process_unlocks_task():
    logger.info("Unlock task started")
    return run_unlocks(LockService(), UnlockService(SessionLocal))
