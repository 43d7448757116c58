# marketplace/tasks/expire.py
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy.orm import Session

from marketplace.celery_worker import celery_app
from marketplace.data.database import SessionLocal
from marketplace.domain.statuses import CartStatus
from marketplace.repos.cart_repo import CartRepo
from marketplace.utils.logging import get_logger

logger = get_logger(__name__)


def expire_carts(session_factory: Callable[[], Session] = SessionLocal, now: Optional[datetime] = None) -> int:
    """Mark active carts past their expiry as abandoned. Returns how many were touched."""
    now = now or datetime.now(timezone.utc)
    db = session_factory()
    try:
        repo = CartRepo(db)
        carts = repo.find_expired_active(now)
        logger.info(f"Found {len(carts)} carts to expire")

        for cart in carts:
            cart.status = CartStatus.ABANDONED.value
            cart.version = cart.version + 1
        repo.commit()
        return len(carts)
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@celery_app.task(name="marketplace.tasks.expire.expire_carts_task")
def expire_carts_task():
    logger.info("Expire carts task started")
    return expire_carts()
