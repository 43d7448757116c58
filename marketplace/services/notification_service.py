# marketplace/services/notification_service.py
from typing import List, Optional

from marketplace.celery_worker import celery_app
from marketplace.utils.logging import get_logger

logger = get_logger(__name__)


class NotificationService:
    """
    Fire-and-forget order notifications. Delivery runs on a Celery worker;
    a broker outage is logged and never fails the business operation that
    triggered it.
    """

    def _dispatch(self, task, *args):
        try:
            task.delay(*args)
        except Exception as e:
            logger.warning(f"Could not queue {task.name}{args}: {e}")

    def order_group_created(self, user_id: str, order_group_id: str, order_type: str, order_ids: List[str]):
        self._dispatch(send_order_group_notification_task, user_id, order_group_id, order_type, order_ids)

    def payment_received(self, user_id: str, order_group_id: str):
        self._dispatch(send_payment_notification_task, user_id, order_group_id)

    def status_changed(self, user_id: str, order_id: str, summary: Optional[str]):
        self._dispatch(send_status_notification_task, user_id, order_id, summary)


@celery_app.task(name="marketplace.services.notification_service.send_order_group_notification_task")
def send_order_group_notification_task(user_id: str, order_group_id: str, order_type: str, order_ids: List[str]):
    if order_type == "request":
        logger.info(f"[NOTIFICATION] User {user_id}: purchase request {order_group_id} submitted ({order_ids})")
    else:
        logger.info(f"[NOTIFICATION] User {user_id}: order {order_group_id} placed ({order_ids})")
    return {"user_id": user_id, "order_group_id": order_group_id, "status": "sent"}


@celery_app.task(name="marketplace.services.notification_service.send_payment_notification_task")
def send_payment_notification_task(user_id: str, order_group_id: str):
    logger.info(f"[NOTIFICATION] User {user_id}: payment received for {order_group_id}")
    return {"user_id": user_id, "order_group_id": order_group_id, "status": "sent"}


@celery_app.task(name="marketplace.services.notification_service.send_status_notification_task")
def send_status_notification_task(user_id: str, order_id: str, summary: Optional[str]):
    logger.info(f"[NOTIFICATION] User {user_id}: order {order_id} {summary or 'updated'}")
    return {"user_id": user_id, "order_id": order_id, "status": "sent"}
