# marketplace/services/order_service.py
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from marketplace.data.models.order import (
    OrderGroupModel,
    OrderItemModel,
    OrderModel,
    OrderStatusHistoryModel,
)
from marketplace.domain.errors import ConcurrencyConflict, NotFoundError, PersistenceFailure, ValidationError
from marketplace.domain.statuses import CartStatus, OrderStatus, OrderType, PaymentStatus, ShipmentStatus
from marketplace.repos.cart_repo import CartRepo
from marketplace.repos.order_repo import OrderRepo
from marketplace.services.notification_service import NotificationService
from marketplace.services.pricing import GroupTotals, ShippingQuote, money
from marketplace.services.quote_service import BuyerContext, QuoteService
from marketplace.utils.logging import get_logger
from marketplace.utils.settings import CURRENCY

logger = get_logger(__name__)

_CODE_ATTEMPTS = 20


def random_order_code() -> str:
    return f"{secrets.randbelow(90_000_000) + 10_000_000}"


@dataclass
class ConversionOptions:
    address_id: Optional[str] = None
    order_type: OrderType = OrderType.DIRECT
    # keyed by vendor id, or "platform" for platform-owned goods
    shipping_costs: Dict[str, ShippingQuote] = field(default_factory=dict)
    expected_total: Optional[Decimal] = None
    expected_cart_version: Optional[int] = None
    actor: Optional[str] = None


class OrderService:
    """
    Order Composer. Turns one cart into one order group: a single order when
    every item comes from one seller, otherwise one order per seller sharing
    the group id.

    The group row is written before anything else and its primary key is the
    group id, so a second conversion with the same id can never commit a
    second set of orders.
    """

    def __init__(self, db: Session, quotes: QuoteService, notifier: Optional[NotificationService] = None):
        self.db = db
        self.repo = OrderRepo(db)
        self.carts = CartRepo(db)
        self.quotes = quotes
        self.notifier = notifier or NotificationService()

    def new_order_group_id(self) -> str:
        for _ in range(_CODE_ATTEMPTS):
            code = random_order_code()
            if not self.repo.existing_codes([code]):
                return code
        raise PersistenceFailure("Could not allocate an order group id")

    def _sibling_codes(self, order_group_id: str, count: int) -> List[str]:
        if count == 1:
            return [order_group_id]

        codes: List[str] = []
        for _ in range(_CODE_ATTEMPTS):
            wanted = count - len(codes)
            candidates = {random_order_code() for _ in range(wanted)}
            candidates -= set(codes) | {order_group_id}
            candidates -= self.repo.existing_codes(candidates)
            codes.extend(sorted(candidates)[:wanted])
            if len(codes) == count:
                return codes
        raise PersistenceFailure(f"Could not allocate {count} order codes for group {order_group_id}")

    def _existing_for(self, order_group_id: str, cart_id: str) -> List[OrderModel]:
        group = self.repo.get_group(order_group_id)
        if group is None:
            return []
        if group.cart_id != cart_id:
            logger.error(
                f"Order group {order_group_id} belongs to cart {group.cart_id}, not {cart_id}"
            )
            raise ConcurrencyConflict(f"Order group {order_group_id} is already used by another cart")
        return self.repo.find_by_group(order_group_id)

    def convert_cart_to_orders(
        self,
        user_id: str,
        cart_id: str,
        order_group_id: str,
        options: Optional[ConversionOptions] = None,
    ) -> List[OrderModel]:
        options = options or ConversionOptions()
        order_type = OrderType(options.order_type)

        try:
            cart = self.carts.get_cart_for_update(cart_id)
            if not cart:
                raise ValidationError(f"Cart {cart_id} not found")
            if cart.user_id != user_id:
                raise PermissionError("Cart belongs to another user")

            if cart.status == CartStatus.CONVERTED.value:
                existing = self._existing_for(order_group_id, cart_id)
                self.db.rollback()
                if existing:
                    logger.info(f"Cart {cart_id} already converted into group {order_group_id}")
                    return existing
                logger.error(
                    f"Conversion conflict: cart {cart_id} is converted but group {order_group_id} has no orders"
                )
                raise ConcurrencyConflict(f"Cart {cart_id} was converted under a different order group")

            existing = self._existing_for(order_group_id, cart_id)
            if existing:
                self.db.rollback()
                return existing

            if cart.status == CartStatus.ABANDONED.value:
                logger.info(f"Converting abandoned cart {cart_id}, payment was already started")

            if options.expected_cart_version is not None and options.expected_cart_version != cart.version:
                logger.warning(
                    f"Cart {cart_id} changed after quoting: version {options.expected_cart_version} -> {cart.version}"
                )

            buyer = self.quotes.buyer_context(user_id, options.address_id)
            quote = self.quotes.quote(cart, buyer, options.shipping_costs)

            if options.expected_total is not None and money(options.expected_total) != quote.total:
                logger.warning(
                    f"Cart {cart_id} total drifted from quoted {money(options.expected_total)} to {quote.total}"
                )

            self.repo.add_group(
                OrderGroupModel(
                    order_group_id=order_group_id,
                    cart_id=cart_id,
                    user_id=user_id,
                    type=order_type.value,
                    total_amount=quote.total,
                    currency=CURRENCY,
                )
            )

            codes = self._sibling_codes(order_group_id, len(quote.groups))
            actor = options.actor or user_id
            orders = [
                self.repo.add_order(self._build_order(group, code, order_group_id, order_type, buyer, actor))
                for group, code in zip(quote.groups, codes)
            ]

            now = datetime.now(timezone.utc)
            cart.status = CartStatus.CONVERTED.value
            cart.converted_at = now
            cart.version = cart.version + 1
            self.db.commit()

        except IntegrityError as e:
            self.db.rollback()
            winners = self.repo.find_by_group(order_group_id)
            group = self.repo.get_group(order_group_id)
            if winners and group is not None and group.cart_id == cart_id:
                logger.warning(f"Lost conversion race for group {order_group_id}, returning existing orders")
                return winners
            logger.error(f"Conversion of cart {cart_id} failed on a constraint: {e}")
            raise PersistenceFailure(f"Could not convert cart {cart_id}") from e
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"Cart {cart_id} converted into {len(orders)} {order_type.value} order(s) in group {order_group_id}, "
            f"total {quote.total} {CURRENCY}"
        )
        self.notifier.order_group_created(user_id, order_group_id, order_type.value, [o.order_id for o in orders])
        return orders

    def _build_order(
        self,
        group: GroupTotals,
        code: str,
        order_group_id: str,
        order_type: OrderType,
        buyer: BuyerContext,
        actor: str,
    ) -> OrderModel:
        is_request = order_type == OrderType.REQUEST
        payment_status = None if is_request else PaymentStatus.PENDING.value
        shipment = buyer.shipment_snapshot()
        if group.shipping_method:
            shipment["shipping_method"] = group.shipping_method

        order = OrderModel(
            order_id=code,
            order_group_id=order_group_id,
            user_id=buyer.user.id,
            vendor_id=group.vendor_id,
            subtotal=group.subtotal,
            total_shipping=group.shipping,
            shipping_method=group.shipping_method,
            total_packing=group.packing,
            vat_percent=group.vat_percent,
            vat_amount=group.vat_amount,
            commission=group.commission,
            total_amount=group.total,
            currency=CURRENCY,
            type=order_type.value,
            order_status=OrderStatus.ORDER_RECEIVED.value,
            payment_status=payment_status,
            shipment_status=ShipmentStatus.PENDING.value,
            shipment_details=shipment,
        )
        order.items = [
            OrderItemModel(
                product_id=line.product_id,
                vendor_id=line.vendor_id,
                product_name=line.product_name,
                sku=line.sku,
                quantity=line.quantity,
                price=line.price,
                base_price=line.base_price,
                packing_charge=line.packing_charge,
                product_snapshot=line.snapshot,
            )
            for line in group.items
        ]
        order.status_history = [
            OrderStatusHistoryModel(
                order_status=order.order_status,
                payment_status=payment_status,
                shipment_status=order.shipment_status,
                actor=actor,
                note="Purchase request submitted" if is_request else "Order placed",
            )
        ]
        return order

    def get_group_orders(self, order_group_id: str, user_id: Optional[str] = None) -> List[OrderModel]:
        orders = self.repo.find_by_group(order_group_id)
        if not orders:
            raise NotFoundError(f"Order group {order_group_id} not found")
        if user_id is not None and any(o.user_id != user_id for o in orders):
            raise PermissionError("Order group belongs to another user")
        return orders

    def list_orders(self, user_id: str, limit: int = 20, offset: int = 0) -> List[OrderModel]:
        return self.repo.list_for_user(user_id, limit, offset)
