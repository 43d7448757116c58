# marketplace/domain/statuses.py
from enum import Enum
from typing import Dict, FrozenSet, Optional


class CartStatus(str, Enum):
    ACTIVE = "active"
    CONVERTED = "converted"
    ABANDONED = "abandoned"


class OrderType(str, Enum):
    DIRECT = "direct"
    REQUEST = "request"


class OrderStatus(str, Enum):
    ORDER_RECEIVED = "order_received"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class ShipmentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    RETURNED = "returned"
    CANCELLED = "cancelled"


class TransactionType(str, Enum):
    PURCHASE = "purchase"
    COMMISSION = "commission"
    VENDOR_EARNING = "vendor_earning"
    PAYOUT = "payout"
    REFUND = "refund"
    ADJUSTMENT = "adjustment"


class TransactionStatus(str, Enum):
    LOCKED = "locked"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class PayoutStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    PAID = "paid"
    REJECTED = "rejected"


class InvoiceType(str, Enum):
    VENDOR = "vendor"
    CUSTOMER = "customer"


# None stands for "not set yet" on the payment and shipment axes
ORDER_TRANSITIONS: Dict[Optional[str], FrozenSet[str]] = {
    "order_received": frozenset({"approved", "rejected", "cancelled"}),
    "approved": frozenset({"cancelled"}),
    "rejected": frozenset(),
    "cancelled": frozenset(),
}

PAYMENT_TRANSITIONS: Dict[Optional[str], FrozenSet[str]] = {
    None: frozenset({"pending", "paid", "failed"}),
    "pending": frozenset({"paid", "failed"}),
    "failed": frozenset({"pending", "paid"}),
    "paid": frozenset({"refunded"}),
    "refunded": frozenset(),
}

SHIPMENT_TRANSITIONS: Dict[Optional[str], FrozenSet[str]] = {
    None: frozenset({"pending", "processing", "cancelled"}),
    "pending": frozenset({"processing", "cancelled"}),
    "processing": frozenset({"shipped", "cancelled"}),
    "shipped": frozenset({"delivered", "returned"}),
    "delivered": frozenset({"returned"}),
    "returned": frozenset(),
    "cancelled": frozenset(),
}

# Older clients still send the multi-word statuses. One canonical mapping,
# applied at the service boundary only.
LEGACY_ORDER_STATUS = {
    "vendor_approved": "approved",
    "admin_approved": "approved",
    "pending_approval": "order_received",
    "pending": "order_received",
    "placed": "order_received",
    "vendor_rejected": "rejected",
    "admin_rejected": "rejected",
}

LEGACY_SHIPMENT_STATUS = {
    "vendor_shipped": "shipped",
    "in_transit": "shipped",
    "ready_to_ship": "processing",
}


def normalize_order_status(value: str) -> OrderStatus:
    value = value.strip().lower()
    return OrderStatus(LEGACY_ORDER_STATUS.get(value, value))


def normalize_shipment_status(value: str) -> ShipmentStatus:
    value = value.strip().lower()
    return ShipmentStatus(LEGACY_SHIPMENT_STATUS.get(value, value))


def normalize_payment_status(value: str) -> PaymentStatus:
    return PaymentStatus(value.strip().lower())


def can_transition(table: Dict[Optional[str], FrozenSet[str]], current: Optional[str], target: str) -> bool:
    if current == target:
        return True
    return target in table.get(current, frozenset())
