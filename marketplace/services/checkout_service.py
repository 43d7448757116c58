# marketplace/services/checkout_service.py
"""
Payment Gateway Bridge.

Direct checkouts are converted lazily: creating a checkout only opens a
Stripe session whose metadata carries everything needed to rebuild the
orders, and the orders are written once the session is verified as paid,
either by the buyer's redirect or by the webhook, whichever comes first.
Both paths end in verify_session, which is safe to run any number of times.

Request checkouts (compliance review needed) are converted immediately and
collect no payment; once approved they are paid through a group payment
session built from the persisted orders.
"""
import json
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from marketplace.data.models.cart import CartModel
from marketplace.data.models.order import OrderModel, OrderPaymentAttemptModel, OrderStatusHistoryModel
from marketplace.domain.errors import NotFoundError, ValidationError
from marketplace.domain.statuses import (
    PAYMENT_TRANSITIONS,
    CartStatus,
    OrderStatus,
    OrderType,
    PaymentStatus,
    can_transition,
)
from marketplace.repos.cart_repo import CartRepo
from marketplace.repos.order_repo import OrderRepo
from marketplace.services.compliance_service import ComplianceService
from marketplace.services.notification_service import NotificationService
from marketplace.services.order_service import ConversionOptions, OrderService
from marketplace.services.payment_gateway import GatewaySessionState, LineItem, PaymentGateway, stripe_field
from marketplace.services.pricing import GroupTotals, ShippingQuote, ZERO, money, to_minor_units, vendor_key
from marketplace.services.quote_service import BuyerContext, QuoteService
from marketplace.services.settlement_service import SettlementService
from marketplace.services.shipping_client import ShippingClient
from marketplace.utils.logging import get_logger
from marketplace.utils.settings import CURRENCY, FRONTEND_URL

logger = get_logger(__name__)

SESSION_COMPLETED = "checkout.session.completed"
SESSION_ASYNC_SUCCEEDED = "checkout.session.async_payment_succeeded"
SESSION_ASYNC_FAILED = "checkout.session.async_payment_failed"

_UNPAYABLE_ORDER_STATUSES = {OrderStatus.REJECTED.value, OrderStatus.CANCELLED.value}


@dataclass
class CheckoutVerification:
    can_checkout: bool
    type: OrderType
    reasons: List[str]


@dataclass
class CheckoutResult:
    type: OrderType
    order_group_id: str
    total: Decimal
    currency: str
    reasons: List[str] = field(default_factory=list)
    session_id: Optional[str] = None
    url: Optional[str] = None
    orders: List[OrderModel] = field(default_factory=list)


@dataclass
class PaymentOutcome:
    is_paid: bool
    payment_status: str
    order_group_id: Optional[str]
    orders: List[OrderModel]
    amount_total: Optional[int] = None
    currency: Optional[str] = None


def _group_line_items(
    label: str,
    products: Sequence[Tuple[str, Decimal, int]],
    shipping: Decimal,
    packing: Decimal,
    vat_percent: Decimal,
    total: Decimal,
) -> List[LineItem]:
    items = [LineItem(name=name, unit_amount=to_minor_units(price), quantity=qty) for name, price, qty in products]
    if money(shipping) > ZERO:
        items.append(LineItem(name=f"Shipping ({label})", unit_amount=to_minor_units(shipping)))
    if money(packing) > ZERO:
        items.append(LineItem(name=f"Packing ({label})", unit_amount=to_minor_units(packing)))

    # VAT takes whatever is left so the group charges exactly its total
    vat_minor = to_minor_units(total) - sum(i.unit_amount * i.quantity for i in items)
    if vat_minor < 0:
        raise ValidationError(f"Line items of {label} exceed its total")
    if vat_minor > 0:
        items.append(LineItem(name=f"VAT {money(vat_percent)}% ({label})", unit_amount=vat_minor))
    return items


def line_items_for_quote(groups: Sequence[GroupTotals]) -> List[LineItem]:
    items: List[LineItem] = []
    for n, group in enumerate(groups, start=1):
        label = "platform" if group.vendor_id is None else f"seller {n}"
        items.extend(
            _group_line_items(
                label,
                [(l.product_name, l.price, l.quantity) for l in group.items],
                group.shipping,
                group.packing,
                group.vat_percent,
                group.total,
            )
        )
    return items


def line_items_for_orders(orders: Sequence[OrderModel]) -> List[LineItem]:
    items: List[LineItem] = []
    for order in orders:
        items.extend(
            _group_line_items(
                f"order {order.order_id}",
                [(i.product_name, money(i.price), i.quantity) for i in order.items],
                money(order.total_shipping or 0),
                money(order.total_packing or 0),
                money(order.vat_percent or 0),
                money(order.total_amount),
            )
        )
    return items


def encode_shipping(shipping_costs: Mapping[str, ShippingQuote]) -> str:
    return json.dumps({k: q.to_dict() for k, q in shipping_costs.items()}, separators=(",", ":"))


def decode_shipping(raw: Optional[str]) -> Dict[str, ShippingQuote]:
    if not raw:
        return {}
    return {k: ShippingQuote.from_dict(v) for k, v in json.loads(raw).items()}


class CheckoutService:
    def __init__(
        self,
        db: Session,
        gateway: PaymentGateway,
        quotes: QuoteService,
        compliance: ComplianceService,
        composer: OrderService,
        settlement: SettlementService,
        shipping: Optional[ShippingClient] = None,
        notifier: Optional[NotificationService] = None,
        frontend_url: str = FRONTEND_URL,
    ):
        self.db = db
        self.gateway = gateway
        self.quotes = quotes
        self.compliance = compliance
        self.composer = composer
        self.settlement = settlement
        self.shipping = shipping or ShippingClient()
        self.notifier = notifier or NotificationService()
        self.frontend_url = frontend_url.rstrip("/")
        self.carts = CartRepo(db)
        self.orders = OrderRepo(db)

    # ---- helpers ----

    def _user_cart(self, user_id: str, cart_id: Optional[str]) -> CartModel:
        cart = self.carts.get_cart(cart_id) if cart_id else self.carts.get_active_cart_by_user(user_id)
        if not cart:
            raise NotFoundError("No active cart")
        if cart.user_id != user_id:
            raise PermissionError("Cart belongs to another user")
        if cart.status != CartStatus.ACTIVE.value:
            raise ValidationError(f"Cart {cart.id} is {cart.status}")
        return cart

    def _shipping_for(
        self,
        cart: CartModel,
        buyer: BuyerContext,
        shipping_costs: Optional[Mapping[str, ShippingQuote]],
    ) -> Dict[str, ShippingQuote]:
        if shipping_costs is not None:
            return dict(shipping_costs)
        if not self.shipping.enabled:
            return {}
        lines = self.quotes.priced_lines(cart, buyer.discount_percent)
        keys = sorted({vendor_key(l.vendor_id) for l in lines})
        return self.shipping.quote(keys, buyer.shipment_snapshot())

    def _urls(self, success_url: Optional[str], cancel_url: Optional[str]) -> Tuple[str, str]:
        return (
            success_url or f"{self.frontend_url}/checkout/success?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url or f"{self.frontend_url}/cart",
        )

    # ---- checkout ----

    def verify_checkout(
        self, user_id: str, address_id: Optional[str] = None, cart_id: Optional[str] = None
    ) -> CheckoutVerification:
        cart = self._user_cart(user_id, cart_id)
        decision = self.compliance.check(user_id, cart.id, address_id)
        return CheckoutVerification(
            can_checkout=not decision.requires_approval,
            type=decision.type,
            reasons=decision.reasons,
        )

    def create_checkout(
        self,
        user_id: str,
        address_id: Optional[str] = None,
        shipping_costs: Optional[Mapping[str, ShippingQuote]] = None,
        cart_id: Optional[str] = None,
        success_url: Optional[str] = None,
        cancel_url: Optional[str] = None,
    ) -> CheckoutResult:
        cart = self._user_cart(user_id, cart_id)
        buyer = self.quotes.buyer_context(user_id, address_id)
        shipping = self._shipping_for(cart, buyer, shipping_costs)
        quote = self.quotes.quote(cart, buyer, shipping)
        decision = self.compliance.decide(quote, buyer)
        order_group_id = self.composer.new_order_group_id()

        if decision.requires_approval:
            orders = self.composer.convert_cart_to_orders(
                user_id,
                cart.id,
                order_group_id,
                ConversionOptions(
                    address_id=address_id,
                    order_type=OrderType.REQUEST,
                    shipping_costs=shipping,
                    expected_total=quote.total,
                    expected_cart_version=cart.version,
                    actor=user_id,
                ),
            )
            return CheckoutResult(
                type=OrderType.REQUEST,
                order_group_id=order_group_id,
                total=quote.total,
                currency=CURRENCY,
                reasons=decision.reasons,
                orders=orders,
            )

        metadata = {
            "orderGroupId": order_group_id,
            "cartId": cart.id,
            "userId": user_id,
            "addressId": buyer.address.id if buyer.address else "",
            "cartVersion": str(cart.version),
            "quotedTotal": str(quote.total),
            "shippingCosts": encode_shipping(shipping),
        }
        # nothing was written, release the read snapshot before calling out
        self.db.rollback()

        success, cancel = self._urls(success_url, cancel_url)
        session = self.gateway.create_checkout_session(
            line_items_for_quote(quote.groups),
            CURRENCY,
            success,
            cancel,
            metadata,
            payer_email=buyer.user.email,
        )
        logger.info(
            f"Direct checkout for cart {cart.id}: group {order_group_id}, session {session.session_id}, "
            f"total {quote.total} {CURRENCY}"
        )
        return CheckoutResult(
            type=OrderType.DIRECT,
            order_group_id=order_group_id,
            total=quote.total,
            currency=CURRENCY,
            session_id=session.session_id,
            url=session.url,
        )

    def _payable(self, orders: Sequence[OrderModel]) -> List[OrderModel]:
        payable = []
        for order in orders:
            if order.order_status in _UNPAYABLE_ORDER_STATUSES:
                continue
            if order.payment_status in (PaymentStatus.PAID.value, PaymentStatus.REFUNDED.value):
                continue
            if order.type == OrderType.REQUEST.value and order.order_status != OrderStatus.APPROVED.value:
                continue
            payable.append(order)
        return payable

    def create_group_payment_session(
        self,
        user_id: str,
        order_group_id: str,
        success_url: Optional[str] = None,
        cancel_url: Optional[str] = None,
    ) -> CheckoutResult:
        """Open a payment session for the unpaid orders of an existing group."""
        orders = self.orders.find_by_group(order_group_id)
        if not orders:
            raise NotFoundError(f"Order group {order_group_id} not found")
        if any(o.user_id != user_id for o in orders):
            raise PermissionError("Order group belongs to another user")

        payable = self._payable(orders)
        if not payable:
            raise ValidationError(f"Nothing to pay in order group {order_group_id}")

        total = sum((money(o.total_amount) for o in payable), ZERO)
        metadata = {
            "orderGroupId": order_group_id,
            "userId": user_id,
            "orderIds": ",".join(o.order_id for o in payable),
        }
        line_items = line_items_for_orders(payable)
        payer_email = payable[0].user.email if payable[0].user else None
        self.db.rollback()

        success, cancel = self._urls(success_url, cancel_url)
        session = self.gateway.create_checkout_session(
            line_items, CURRENCY, success, cancel, metadata, payer_email=payer_email
        )

        try:
            for order in self.orders.find_by_group_for_update(order_group_id):
                if order.order_id not in metadata["orderIds"].split(","):
                    continue
                self._upsert_attempt(order, session.session_id, "pending")
                if order.payment_status != PaymentStatus.PENDING.value and can_transition(
                    PAYMENT_TRANSITIONS, order.payment_status, PaymentStatus.PENDING.value
                ):
                    order.payment_status = PaymentStatus.PENDING.value
                    self._history(order, user_id, f"Payment session {session.session_id} created")
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Payment session {session.session_id} opened for group {order_group_id}, total {total}")
        return CheckoutResult(
            type=OrderType(payable[0].type),
            order_group_id=order_group_id,
            total=total,
            currency=CURRENCY,
            session_id=session.session_id,
            url=session.url,
            orders=payable,
        )

    # ---- verification ----

    def _upsert_attempt(
        self, order: OrderModel, session_id: str, status: str, state: Optional[GatewaySessionState] = None
    ) -> bool:
        """Create or refresh the attempt for this session. Returns True when its status changed."""
        attempt = next((a for a in order.payment_attempts if a.session_id == session_id), None)
        changed = attempt is None or attempt.payment_status != status
        if attempt is None:
            attempt = OrderPaymentAttemptModel(session_id=session_id, payment_mode="stripe", payment_status=status)
            order.payment_attempts.append(attempt)
        attempt.payment_status = status

        if state is not None:
            attempt.transaction_ref = state.payment_intent_id
            attempt.amount_total = state.amount_total
            attempt.currency = state.currency
            attempt.card_brand = state.card_brand
            attempt.card_last4 = state.card_last4
            attempt.card_funding = state.card_funding
            attempt.payment_method_type = state.payment_method_type
            attempt.billing_details = state.customer_details
            attempt.receipt_url = state.receipt_url
        return changed

    def _history(self, order: OrderModel, actor: str, note: str):
        order.status_history.append(
            OrderStatusHistoryModel(
                order_status=order.order_status,
                payment_status=order.payment_status,
                shipment_status=order.shipment_status,
                actor=actor,
                note=note,
            )
        )

    def _convert_from_metadata(self, state: GatewaySessionState) -> List[OrderModel]:
        md = state.metadata
        version = md.get("cartVersion")
        quoted = md.get("quotedTotal")
        return self.composer.convert_cart_to_orders(
            md["userId"],
            md["cartId"],
            md["orderGroupId"],
            ConversionOptions(
                address_id=md.get("addressId") or None,
                order_type=OrderType.DIRECT,
                shipping_costs=decode_shipping(md.get("shippingCosts")),
                expected_total=Decimal(quoted) if quoted else None,
                expected_cart_version=int(version) if version else None,
                actor=md["userId"],
            ),
        )

    def verify_session(self, session_id: str, user_id: Optional[str] = None) -> PaymentOutcome:
        # talk to Stripe before taking any row lock
        state = self.gateway.retrieve_session(session_id)
        md = state.metadata
        order_group_id = md.get("orderGroupId")
        if not order_group_id:
            raise ValidationError(f"Session {session_id} does not belong to a checkout")
        if user_id is not None and md.get("userId") != user_id:
            raise PermissionError("Payment session belongs to another user")

        if md.get("cartId"):
            if not state.is_paid and not self.orders.get_group(order_group_id):
                logger.info(f"Session {session_id} is {state.payment_status}, no orders written")
                return PaymentOutcome(
                    is_paid=False,
                    payment_status=state.payment_status,
                    order_group_id=order_group_id,
                    orders=[],
                    amount_total=state.amount_total,
                    currency=state.currency,
                )
            if state.is_paid:
                self._convert_from_metadata(state)

        wanted = set(filter(None, (md.get("orderIds") or "").split(",")))
        newly_paid: List[OrderModel] = []
        try:
            orders = self.orders.find_by_group_for_update(order_group_id)
            if wanted:
                orders = [o for o in orders if o.order_id in wanted]
            if not orders:
                raise NotFoundError(f"No orders for group {order_group_id}")

            for order in orders:
                if state.is_paid:
                    changed = self._upsert_attempt(order, session_id, "paid", state)
                    if order.payment_status == PaymentStatus.PAID.value:
                        continue
                    if order.order_status in _UNPAYABLE_ORDER_STATUSES:
                        # money arrived for an order that will not ship; nothing is settled
                        logger.warning(
                            f"Order {order.order_id} is {order.order_status} but session {session_id} "
                            f"was paid, refund required"
                        )
                        if changed:
                            self._history(
                                order,
                                order.user_id,
                                f"Payment received for {order.order_status} order, refund required "
                                f"(session {session_id})",
                            )
                        continue
                    if not can_transition(PAYMENT_TRANSITIONS, order.payment_status, PaymentStatus.PAID.value):
                        logger.warning(
                            f"Order {order.order_id} is {order.payment_status}/{order.order_status}, "
                            f"ignoring payment from session {session_id}"
                        )
                        continue
                    order.payment_status = PaymentStatus.PAID.value
                    if order.order_status is None:
                        order.order_status = OrderStatus.ORDER_RECEIVED.value
                    self._history(order, order.user_id, f"Payment received (session {session_id})")
                    self.settlement.settle_order(order)
                    newly_paid.append(order)
                elif self._upsert_attempt(order, session_id, state.payment_status, state):
                    self._history(order, order.user_id, f"Payment not completed ({state.payment_status})")
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        if newly_paid:
            logger.info(f"Session {session_id} paid {len(newly_paid)} order(s) of group {order_group_id}")
            self.notifier.payment_received(newly_paid[0].user_id, order_group_id)

        return PaymentOutcome(
            is_paid=state.is_paid,
            payment_status=state.payment_status,
            order_group_id=order_group_id,
            orders=orders,
            amount_total=state.amount_total,
            currency=state.currency,
        )

    def _mark_failed(self, session_id: str, metadata: Mapping[str, str]):
        order_group_id = metadata.get("orderGroupId")
        if not order_group_id:
            logger.warning(f"Failed session {session_id} carries no order group")
            return
        try:
            for order in self.orders.find_by_group_for_update(order_group_id):
                if not any(a.session_id == session_id for a in order.payment_attempts):
                    continue
                if not self._upsert_attempt(order, session_id, "failed"):
                    continue
                if can_transition(PAYMENT_TRANSITIONS, order.payment_status, PaymentStatus.FAILED.value):
                    order.payment_status = PaymentStatus.FAILED.value
                self._history(order, order.user_id, f"Payment failed (session {session_id})")
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info(f"Marked session {session_id} failed for group {order_group_id}")

    def handle_webhook(self, payload: bytes, signature: str) -> dict:
        return self.handle_event(self.gateway.construct_event(payload, signature))

    def handle_event(self, event) -> dict:
        """Dispatch an already verified Stripe event."""
        event_type = stripe_field(event, "type")
        obj = stripe_field(stripe_field(event, "data"), "object")
        session_id = stripe_field(obj, "id")

        if event_type in (SESSION_COMPLETED, SESSION_ASYNC_SUCCEEDED):
            outcome = self.verify_session(session_id)
            return {"received": True, "type": event_type, "paid": outcome.is_paid}
        if event_type == SESSION_ASYNC_FAILED:
            metadata = stripe_field(obj, "metadata") or {}
            self._mark_failed(session_id, dict(metadata))
            return {"received": True, "type": event_type}

        logger.info(f"Ignoring Stripe event {event_type}")
        return {"received": True, "type": event_type, "ignored": True}
