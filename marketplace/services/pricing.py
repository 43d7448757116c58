# marketplace/services/pricing.py
"""
Pure money arithmetic for checkout.

Nothing here touches the database, so the split of a cart into vendor groups
and the totals of each group can be tested on plain values. All rounding is
ROUND_HALF_UP to two places and is applied per vendor group; the grand total
of a cart is the sum of already rounded group totals.
"""
from dataclasses import dataclass, field, replace
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Dict, Iterable, List, Mapping, Optional

CENT = Decimal("0.01")
HUNDRED = Decimal("100")
ZERO = Decimal("0.00")

# key used for the platform-owned vendor group in shipping quotes and metadata
PLATFORM_KEY = "platform"


def money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def to_minor_units(value: Decimal) -> int:
    return int((money(value) * HUNDRED).to_integral_value(rounding=ROUND_HALF_UP))


def percent_of(amount: Decimal, percent: Decimal) -> Decimal:
    return money(Decimal(amount) * Decimal(percent) / HUNDRED)


def customer_unit_price(base_price, commission_percent, discount_percent=0) -> Decimal:
    """Price the buyer pays for one unit: base + platform markup - buyer discount."""
    base = Decimal(str(base_price))
    commission = Decimal(str(commission_percent or 0))
    discount = Decimal(str(discount_percent or 0))

    inflated = money(base * (1 + commission / HUNDRED)) if commission > 0 else money(base)
    if discount > 0:
        return money(inflated * (1 - discount / HUNDRED))
    return inflated


def vendor_key(vendor_id: Optional[str]) -> str:
    return vendor_id or PLATFORM_KEY


@dataclass
class PricedLine:
    product_id: str
    vendor_id: Optional[str]
    product_name: str
    quantity: int
    price: Decimal
    base_price: Decimal
    packing_charge: Decimal = ZERO
    sku: Optional[str] = None
    category_id: Optional[int] = None
    snapshot: dict = field(default_factory=dict)

    @property
    def line_total(self) -> Decimal:
        return money(self.price * self.quantity)


@dataclass(frozen=True)
class ShippingQuote:
    total: Decimal
    method: Optional[str] = None

    def to_dict(self) -> dict:
        return {"total": str(self.total), "method": self.method}

    @classmethod
    def from_dict(cls, data: Mapping) -> "ShippingQuote":
        return cls(total=money(data.get("total") or 0), method=data.get("method"))


@dataclass
class GroupTotals:
    vendor_id: Optional[str]
    items: List[PricedLine]
    subtotal: Decimal
    base_subtotal: Decimal
    shipping: Decimal
    shipping_method: Optional[str]
    packing: Decimal
    taxable: Decimal
    vat_percent: Decimal
    vat_amount: Decimal
    commission: Decimal
    total: Decimal

    @property
    def key(self) -> str:
        return vendor_key(self.vendor_id)


@dataclass
class CartQuote:
    groups: List[GroupTotals]

    @property
    def total(self) -> Decimal:
        return sum((g.total for g in self.groups), ZERO)

    @property
    def pre_tax_total(self) -> Decimal:
        return sum((g.taxable for g in self.groups), ZERO)


def consolidate(lines: Iterable[PricedLine]) -> List[PricedLine]:
    """Merge lines for the same product, keeping first-seen order and price."""
    merged: Dict[str, PricedLine] = {}
    for line in lines:
        existing = merged.get(line.product_id)
        if existing:
            existing.quantity += line.quantity
        else:
            merged[line.product_id] = replace(line)
    return list(merged.values())


def group_by_vendor(lines: Iterable[PricedLine]) -> Dict[Optional[str], List[PricedLine]]:
    groups: Dict[Optional[str], List[PricedLine]] = {}
    for line in lines:
        groups.setdefault(line.vendor_id, []).append(line)
    return groups


def price_group(
    vendor_id: Optional[str],
    items: List[PricedLine],
    shipping: Optional[ShippingQuote],
    vat_percent: Decimal,
) -> GroupTotals:
    subtotal = sum((i.line_total for i in items), ZERO)
    base_subtotal = sum((money(i.base_price * i.quantity) for i in items), ZERO)
    packing = sum((money(Decimal(i.packing_charge or 0) * i.quantity) for i in items), ZERO)
    shipping_total = money(shipping.total) if shipping else ZERO

    taxable = subtotal + shipping_total + packing
    vat_amount = percent_of(taxable, vat_percent)
    # platform-owned goods carry no commission, the markup is the platform's own price
    commission = ZERO if vendor_id is None else max(subtotal - base_subtotal, ZERO)

    return GroupTotals(
        vendor_id=vendor_id,
        items=items,
        subtotal=subtotal,
        base_subtotal=base_subtotal,
        shipping=shipping_total,
        shipping_method=shipping.method if shipping else None,
        packing=packing,
        taxable=taxable,
        vat_percent=Decimal(vat_percent),
        vat_amount=vat_amount,
        commission=commission,
        total=taxable + vat_amount,
    )


def quote_cart(
    lines: Iterable[PricedLine],
    shipping_costs: Optional[Mapping[str, ShippingQuote]],
    vat_for_vendor: Callable[[Optional[str]], Decimal],
) -> CartQuote:
    shipping_costs = shipping_costs or {}
    groups = group_by_vendor(consolidate(lines))
    return CartQuote(
        groups=[
            price_group(vid, items, shipping_costs.get(vendor_key(vid)), vat_for_vendor(vid))
            for vid, items in groups.items()
        ]
    )
