# marketplace/services/quote_service.py
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Mapping, Optional

from sqlalchemy.orm import Session

from marketplace.data.models.cart import CartModel
from marketplace.data.models.user import AddressModel, UserModel
from marketplace.domain.errors import NotFoundError, ValidationError
from marketplace.repos.catalog_repo import CatalogRepo
from marketplace.services.jurisdiction import platform_jurisdiction
from marketplace.services.pricing import (
    CartQuote,
    PricedLine,
    ShippingQuote,
    customer_unit_price,
    money,
    quote_cart,
)
from marketplace.services.settings_service import SettingsService
from marketplace.services.vat_service import VatService
from marketplace.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class BuyerContext:
    user: UserModel
    address: Optional[AddressModel]

    @property
    def jurisdiction(self) -> Optional[str]:
        if self.address and self.address.country:
            return self.address.country
        return self.user.country

    @property
    def discount_percent(self) -> Decimal:
        return Decimal(str(self.user.discount_percent or 0))

    def shipment_snapshot(self) -> dict:
        return self.address.snapshot() if self.address else {}


class QuoteService:
    """
    Turns the rows of a cart into priced lines and per-vendor totals, the
    same way for the compliance check, the payment quote and the conversion.
    """

    def __init__(self, db: Session, settings: SettingsService, vat: VatService):
        self.catalog = CatalogRepo(db)
        self.settings = settings
        self.vat = vat

    def buyer_context(self, user_id: str, address_id: Optional[str] = None) -> BuyerContext:
        user = self.catalog.get_user(user_id)
        if not user:
            raise NotFoundError(f"User {user_id} not found")

        address = None
        if address_id:
            address = self.catalog.get_address(address_id)
            if not address or address.user_id != user_id:
                # someone else's address is ignored rather than leaked into the order
                logger.warning(f"Address {address_id} does not belong to user {user_id}, ignoring")
                address = None
        return BuyerContext(user=user, address=address)

    def priced_lines(self, cart: CartModel, discount_percent: Decimal) -> List[PricedLine]:
        if not cart.items:
            raise ValidationError("Cart is empty")

        products = self.catalog.get_products(i.product_id for i in cart.items)
        fallback_commission = self.settings.commission_percent()

        lines: List[PricedLine] = []
        for item in cart.items:
            if item.quantity < 1:
                raise ValidationError(f"Invalid quantity {item.quantity} for product {item.product_id}")

            product = products.get(item.product_id)
            if not product or not product.is_active:
                raise ValidationError(f"Product {item.product_id} is no longer available")

            commission = product.commission_percent
            if commission is None:
                commission = fallback_commission

            lines.append(
                PricedLine(
                    product_id=product.id,
                    vendor_id=product.vendor_id,
                    product_name=product.name,
                    sku=product.sku,
                    quantity=item.quantity,
                    price=customer_unit_price(product.base_price, commission, discount_percent),
                    base_price=money(product.base_price),
                    packing_charge=money(product.packing_charge or 0),
                    category_id=product.category_id,
                    snapshot=product.snapshot(),
                )
            )
        return lines

    def vendor_countries(self, lines: List[PricedLine]) -> Dict[Optional[str], Optional[str]]:
        vendors = self.catalog.get_users(l.vendor_id for l in lines if l.vendor_id)
        countries: Dict[Optional[str], Optional[str]] = {None: platform_jurisdiction()}
        for line in lines:
            if line.vendor_id:
                vendor = vendors.get(line.vendor_id)
                countries[line.vendor_id] = vendor.country if vendor else None
        return countries

    def quote(
        self,
        cart: CartModel,
        buyer: BuyerContext,
        shipping_costs: Optional[Mapping[str, ShippingQuote]] = None,
    ) -> CartQuote:
        lines = self.priced_lines(cart, buyer.discount_percent)
        countries = self.vendor_countries(lines)

        def vat_for_vendor(vendor_id):
            return self.vat.rates_for(countries.get(vendor_id), buyer.jurisdiction).platform_to_customer

        return quote_cart(lines, shipping_costs, vat_for_vendor)
