from decimal import Decimal

from marketplace.services.pricing import (
    PricedLine,
    ShippingQuote,
    consolidate,
    customer_unit_price,
    money,
    price_group,
    quote_cart,
    to_minor_units,
)


def line(product_id, vendor_id, price, quantity, base=None, packing="0"):
    return PricedLine(
        product_id=product_id,
        vendor_id=vendor_id,
        product_name=product_id,
        quantity=quantity,
        price=Decimal(price),
        base_price=Decimal(base or price),
        packing_charge=Decimal(packing),
    )


def test_money_rounds_half_up():
    assert money("2.675") == Decimal("2.68")
    assert money("0.005") == Decimal("0.01")
    assert to_minor_units(Decimal("210.00")) == 21000


def test_customer_unit_price_applies_markup_then_discount():
    assert customer_unit_price("100", "10") == Decimal("110.00")
    assert customer_unit_price("100", "10", "10") == Decimal("99.00")
    assert customer_unit_price("100", None) == Decimal("100.00")


def test_consolidate_merges_duplicate_products():
    merged = consolidate([line("p1", "v1", "10", 1), line("p2", "v1", "5", 1), line("p1", "v1", "10", 2)])
    assert [(l.product_id, l.quantity) for l in merged] == [("p1", 3), ("p2", 1)]


def test_single_vendor_group_totals():
    group = price_group("v1", [line("p1", "v1", "100", 2)], None, Decimal("5"))
    assert group.subtotal == Decimal("200.00")
    assert group.vat_amount == Decimal("10.00")
    assert group.total == Decimal("210.00")
    assert group.commission == Decimal("0.00")


def test_commission_is_markup_over_base_and_zero_for_platform():
    vendor = price_group("v1", [line("p1", "v1", "110", 2, base="100")], None, Decimal("5"))
    assert vendor.commission == Decimal("20.00")

    platform = price_group(None, [line("p2", None, "22", 1, base="20")], None, Decimal("5"))
    assert platform.commission == Decimal("0.00")


def test_shipping_and_packing_are_taxed():
    group = price_group(
        "v1",
        [line("p1", "v1", "100", 1, packing="2.50")],
        ShippingQuote(total=Decimal("15"), method="express"),
        Decimal("5"),
    )
    assert group.taxable == Decimal("117.50")
    assert group.vat_amount == Decimal("5.88")
    assert group.total == Decimal("123.38")
    assert group.shipping_method == "express"


def test_quote_groups_by_vendor_and_sums_rounded_groups():
    quote = quote_cart(
        [line("a", "v1", "0.33", 1), line("b", "v2", "0.33", 1), line("c", None, "0.33", 1)],
        {"platform": ShippingQuote(total=Decimal("1.00"))},
        lambda vendor_id: Decimal("5"),
    )
    assert [g.key for g in quote.groups] == ["v1", "v2", "platform"]
    # 0.33 * 5% = 0.0165 rounds to 0.02 per group
    assert quote.groups[0].total == Decimal("0.35")
    assert quote.groups[2].total == Decimal("1.40")
    assert quote.total == Decimal("2.10")
