# marketplace/services/compliance_service.py
"""
Decides whether a checkout may be paid straight away (direct) or has to go
through manual approval first (request).

Rules are evaluated independently and OR-combined; every rule that fires adds
its own reason so the buyer sees all of them, not only the first.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable, Iterable, List, Mapping, Optional, Sequence

from sqlalchemy.orm import Session

from marketplace.data.models.catalog import CategoryModel
from marketplace.domain.errors import NotFoundError
from marketplace.domain.statuses import OrderType
from marketplace.repos.cart_repo import CartRepo
from marketplace.repos.catalog_repo import CatalogRepo
from marketplace.services.jurisdiction import is_home_jurisdiction
from marketplace.services.pricing import CartQuote, ShippingQuote
from marketplace.services.quote_service import BuyerContext, QuoteService
from marketplace.services.settings_service import SettingsService
from marketplace.utils.logging import get_logger
from marketplace.utils.settings import CURRENCY, HOME_JURISDICTION_ALIASES

logger = get_logger(__name__)


@dataclass(frozen=True)
class ComplianceLine:
    product_name: str
    controlled: bool
    vendor_jurisdiction: Optional[str]


@dataclass
class ComplianceDecision:
    type: OrderType
    reasons: List[str] = field(default_factory=list)

    @property
    def requires_approval(self) -> bool:
        return self.type == OrderType.REQUEST


def is_category_controlled(
    category_id: Optional[int],
    lookup: Callable[[int], Optional[object]],
) -> bool:
    """Walk up the parent chain; any controlled ancestor makes the product controlled."""
    seen = set()
    current = category_id
    while current is not None and current not in seen:
        seen.add(current)
        category = lookup(current)
        if category is None:
            return False
        if category.is_controlled:
            return True
        current = category.parent_id
    return False


def classify(
    lines: Sequence[ComplianceLine],
    buyer_jurisdiction: Optional[str],
    priced_subtotal: Decimal,
    *,
    threshold: Decimal,
    home_aliases: Iterable[str],
    currency: str = "",
) -> ComplianceDecision:
    home_aliases = tuple(home_aliases)
    reasons: List[str] = []

    if priced_subtotal >= threshold:
        limit = f"{threshold} {currency}".strip()
        reasons.append(f"Total amount {priced_subtotal} meets or exceeds the {limit} limit for direct online payment.")

    buyer_home = is_home_jurisdiction(buyer_jurisdiction, home_aliases)
    for line in lines:
        if not line.controlled:
            continue
        seller_home = is_home_jurisdiction(line.vendor_jurisdiction, home_aliases)
        if seller_home:
            reasons.append(f"Controlled item '{line.product_name}' from a local supplier requires approval.")
        elif buyer_home:
            reasons.append(f"Controlled item '{line.product_name}' requires import approval.")

    return ComplianceDecision(type=OrderType.REQUEST if reasons else OrderType.DIRECT, reasons=reasons)


class ComplianceService:
    def __init__(self, db: Session, quotes: QuoteService, settings: SettingsService):
        self.catalog = CatalogRepo(db)
        self.carts = CartRepo(db)
        self.quotes = quotes
        self.settings = settings

    def controlled_lookup(self) -> Callable[[int], Optional[CategoryModel]]:
        cache = {}

        def lookup(category_id: int):
            if category_id not in cache:
                cache[category_id] = self.catalog.get_category(category_id)
            return cache[category_id]

        return lookup

    def decide(self, quote: CartQuote, buyer: BuyerContext) -> ComplianceDecision:
        lookup = self.controlled_lookup()
        lines = [item for group in quote.groups for item in group.items]
        countries = self.quotes.vendor_countries(lines)

        compliance_lines = [
            ComplianceLine(
                product_name=line.product_name,
                controlled=is_category_controlled(line.category_id, lookup),
                vendor_jurisdiction=countries.get(line.vendor_id),
            )
            for line in lines
        ]
        decision = classify(
            compliance_lines,
            buyer.jurisdiction,
            quote.pre_tax_total,
            threshold=self.settings.high_value_threshold(),
            home_aliases=HOME_JURISDICTION_ALIASES,
            currency=CURRENCY,
        )
        if decision.requires_approval:
            logger.info(f"Checkout for user {buyer.user.id} routed to approval: {decision.reasons}")
        return decision

    def check(
        self,
        user_id: str,
        cart_id: str,
        address_id: Optional[str] = None,
        shipping_costs: Optional[Mapping[str, ShippingQuote]] = None,
    ) -> ComplianceDecision:
        cart = self.carts.get_cart(cart_id)
        if not cart:
            raise NotFoundError(f"Cart {cart_id} not found")
        if cart.user_id != user_id:
            raise PermissionError("Cart belongs to another user")

        buyer = self.quotes.buyer_context(user_id, address_id)
        return self.decide(self.quotes.quote(cart, buyer, shipping_costs), buyer)
