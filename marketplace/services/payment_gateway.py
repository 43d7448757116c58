# marketplace/services/payment_gateway.py
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import stripe

from marketplace.domain.errors import PaymentGatewayError
from marketplace.utils.logging import get_logger
from marketplace.utils.retry import stripe_retry
from marketplace.utils.settings import STRIPE_SECRET_KEY, STRIPE_WEBHOOK_SECRET

logger = get_logger(__name__)


@dataclass
class LineItem:
    name: str
    unit_amount: int  # minor units
    quantity: int = 1

    def to_stripe(self, currency: str) -> dict:
        return {
            "price_data": {
                "currency": currency.lower(),
                "unit_amount": self.unit_amount,
                "product_data": {"name": self.name},
            },
            "quantity": self.quantity,
        }


@dataclass
class GatewaySession:
    session_id: str
    url: Optional[str]
    client_secret: Optional[str] = None


@dataclass
class GatewaySessionState:
    id: str
    payment_status: str  # paid, unpaid, no_payment_required
    amount_total: Optional[int] = None
    currency: Optional[str] = None
    payment_intent_id: Optional[str] = None
    card_brand: Optional[str] = None
    card_last4: Optional[str] = None
    card_funding: Optional[str] = None
    payment_method_type: Optional[str] = None
    customer_details: Optional[Dict[str, Any]] = None
    receipt_url: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)

    @property
    def is_paid(self) -> bool:
        return self.payment_status == "paid"


def stripe_field(obj, name):
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def _plain(obj) -> Optional[Dict[str, Any]]:
    if obj is None:
        return None
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return dict(obj)


class PaymentGateway:
    """Thin wrapper over Stripe Checkout. Nothing outside this module imports stripe."""

    def __init__(self, api_key: str = STRIPE_SECRET_KEY, webhook_secret: str = STRIPE_WEBHOOK_SECRET):
        self.api_key = api_key
        self.webhook_secret = webhook_secret

    def _require_key(self):
        if not self.api_key:
            raise PaymentGatewayError("Stripe is not configured")

    @stripe_retry()
    def _create(self, **params):
        return stripe.checkout.Session.create(api_key=self.api_key, **params)

    @stripe_retry()
    def _retrieve(self, session_id: str):
        return stripe.checkout.Session.retrieve(
            session_id,
            api_key=self.api_key,
            expand=["payment_intent.latest_charge", "payment_intent.payment_method"],
        )

    def create_checkout_session(
        self,
        line_items: List[LineItem],
        currency: str,
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
        payer_email: Optional[str] = None,
    ) -> GatewaySession:
        self._require_key()
        params = dict(
            mode="payment",
            line_items=[li.to_stripe(currency) for li in line_items],
            success_url=success_url,
            cancel_url=cancel_url,
            metadata=metadata,
            payment_intent_data={"metadata": metadata},
        )
        if payer_email:
            params["customer_email"] = payer_email

        try:
            session = self._create(**params)
        except stripe.StripeError as e:
            logger.error(f"Stripe session creation failed for group {metadata.get('orderGroupId')}: {e}")
            raise PaymentGatewayError(f"Could not create payment session: {e}") from e

        logger.info(f"Created Stripe session {session.id} for group {metadata.get('orderGroupId')}")
        return GatewaySession(
            session_id=session.id,
            url=stripe_field(session, "url"),
            client_secret=stripe_field(session, "client_secret"),
        )

    def retrieve_session(self, session_id: str) -> GatewaySessionState:
        self._require_key()
        try:
            session = self._retrieve(session_id)
        except stripe.StripeError as e:
            logger.error(f"Stripe session {session_id} lookup failed: {e}")
            raise PaymentGatewayError(f"Could not retrieve payment session {session_id}: {e}") from e

        intent = stripe_field(session, "payment_intent")
        charge = stripe_field(intent, "latest_charge") if not isinstance(intent, str) else None
        method = stripe_field(intent, "payment_method") if not isinstance(intent, str) else None
        details = stripe_field(charge, "payment_method_details") or {}
        card = stripe_field(details, "card") or stripe_field(method, "card")

        metadata = stripe_field(session, "metadata")
        return GatewaySessionState(
            id=session.id,
            payment_status=stripe_field(session, "payment_status") or "unpaid",
            amount_total=stripe_field(session, "amount_total"),
            currency=stripe_field(session, "currency"),
            payment_intent_id=intent if isinstance(intent, str) else stripe_field(intent, "id"),
            card_brand=stripe_field(card, "brand"),
            card_last4=stripe_field(card, "last4"),
            card_funding=stripe_field(card, "funding"),
            payment_method_type=stripe_field(details, "type") or stripe_field(method, "type"),
            customer_details=_plain(stripe_field(session, "customer_details")),
            receipt_url=stripe_field(charge, "receipt_url"),
            metadata=dict(_plain(metadata) or {}),
        )

    def construct_event(self, payload: bytes, signature: str):
        if not self.webhook_secret:
            raise PaymentGatewayError("Stripe webhook secret is not configured")
        try:
            return stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except stripe.SignatureVerificationError as e:
            logger.warning(f"Rejected Stripe webhook with a bad signature: {e}")
            raise PaymentGatewayError("Invalid webhook signature") from e
        except ValueError as e:
            raise PaymentGatewayError("Invalid webhook payload") from e
