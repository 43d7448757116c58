# marketplace/services/order_status_service.py
from typing import Optional

from sqlalchemy.orm import Session

from marketplace.data.models.order import OrderModel, OrderStatusHistoryModel
from marketplace.domain.errors import InvalidTransition, NotFoundError, ValidationError
from marketplace.domain.statuses import (
    ORDER_TRANSITIONS,
    PAYMENT_TRANSITIONS,
    SHIPMENT_TRANSITIONS,
    OrderStatus,
    PaymentStatus,
    ShipmentStatus,
    can_transition,
    normalize_order_status,
    normalize_payment_status,
    normalize_shipment_status,
)
from marketplace.repos.order_repo import OrderRepo
from marketplace.services.notification_service import NotificationService
from marketplace.services.settlement_service import SettlementService
from marketplace.utils.logging import get_logger

logger = get_logger(__name__)

_REVERSING_SHIPMENT = {ShipmentStatus.RETURNED.value, ShipmentStatus.CANCELLED.value}
_UNSETTLED_ORDER = {OrderStatus.CANCELLED.value, OrderStatus.REJECTED.value}


def _parse(normalize, value, axis: str):
    try:
        return normalize(value).value
    except ValueError:
        raise ValidationError(f"Unknown {axis} status {value!r}")


class OrderStatusService:
    def __init__(
        self,
        db: Session,
        settlement: SettlementService,
        notifier: Optional[NotificationService] = None,
    ):
        self.db = db
        self.repo = OrderRepo(db)
        self.settlement = settlement
        self.notifier = notifier or NotificationService()

    def update_status(
        self,
        order_pk: str,
        actor: str,
        order_status: Optional[str] = None,
        payment_status: Optional[str] = None,
        shipment_status: Optional[str] = None,
        note: Optional[str] = None,
    ) -> OrderModel:
        """
        Move one order along any of its three status axes in one step.

        Legacy status names are accepted and mapped to the canonical set.
        Every axis is validated before anything is written; one history
        entry records the combined result. Cancelling or returning a paid
        order claws back its held ledger credits and marks payment refunded.
        """
        if order_status is None and payment_status is None and shipment_status is None:
            raise ValidationError("No status change requested")

        targets = {}
        if order_status is not None:
            targets["order"] = _parse(normalize_order_status, order_status, "order")
        if payment_status is not None:
            targets["payment"] = _parse(normalize_payment_status, payment_status, "payment")
        if shipment_status is not None:
            targets["shipment"] = _parse(normalize_shipment_status, shipment_status, "shipment")

        try:
            order = self.repo.get_order_for_update(order_pk)
            if not order:
                raise NotFoundError(f"Order {order_pk} not found")

            checks = (
                ("order", ORDER_TRANSITIONS, order.order_status),
                ("payment", PAYMENT_TRANSITIONS, order.payment_status),
                ("shipment", SHIPMENT_TRANSITIONS, order.shipment_status),
            )
            for axis, table, current in checks:
                target = targets.get(axis)
                if target is not None and not can_transition(table, current, target):
                    raise InvalidTransition(axis, current, target)

            was_paid = order.payment_status == PaymentStatus.PAID.value
            if "order" in targets:
                order.order_status = targets["order"]
            if "payment" in targets:
                order.payment_status = targets["payment"]
            if "shipment" in targets:
                order.shipment_status = targets["shipment"]

            if (
                targets.get("payment") == PaymentStatus.PAID.value
                and not was_paid
                and order.order_status not in _UNSETTLED_ORDER
            ):
                # paid outside the gateway, e.g. a bank transfer for a large request
                self.settlement.settle_order(order)

            reversing = order.order_status == OrderStatus.CANCELLED.value or (
                order.shipment_status in _REVERSING_SHIPMENT and "shipment" in targets
            )
            if was_paid and reversing:
                self.settlement.reverse_order(order, note or f"Order {order.order_id} {order.order_status}")
                order.payment_status = PaymentStatus.REFUNDED.value

            order.status_history.append(
                OrderStatusHistoryModel(
                    order_status=order.order_status,
                    payment_status=order.payment_status,
                    shipment_status=order.shipment_status,
                    actor=actor,
                    note=note,
                )
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        summary = ", ".join(f"{axis} -> {value}" for axis, value in targets.items())
        logger.info(f"Order {order.order_id} updated by {actor}: {summary}")
        self.notifier.status_changed(order.user_id, order.order_id, summary)
        return order
