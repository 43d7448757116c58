from datetime import datetime, timezone
from decimal import Decimal

import pytest

from marketplace.data.models import InvoiceModel
from marketplace.domain.errors import NotFoundError, ValidationError
from marketplace.domain.statuses import InvoiceType
from marketplace.services.invoice_service import format_invoice_number, next_sequence, vendor_figures


@pytest.fixture
def group(services, make):
    buyer = make.user("Buyer")
    make.address(buyer, city="Abu Dhabi")
    vendor_a = make.user("Vendor A", role="vendor", company_name="A Trading LLC")
    vendor_b = make.user("Vendor B", role="vendor")
    cart = make.cart(
        buyer,
        (make.product(vendor_a, "100.00", name="Widget"), 2),
        (make.product(vendor_b, "50.00", name="Gadget"), 1),
    )
    return services.orders.convert_cart_to_orders(buyer.id, cart.id, "90000001")


def bare_invoice(number, deleted=False):
    return InvoiceModel(
        invoice_number=number,
        invoice_type="customer",
        order_id="order-x",
        order_group_id="group-x",
        addressee_name="Someone",
        issuer_name="Platform",
        subtotal=0,
        vat_percent=0,
        vat_amount=0,
        total_amount=0,
        currency="AED",
        access_token=f"token-{number}",
        deleted_at=datetime.now(timezone.utc) if deleted else None,
    )


def test_vendor_figures_net_of_commission():
    figures = vendor_figures(Decimal("220"), Decimal("20"), 0, 0, Decimal("5"))

    assert figures.subtotal == Decimal("200.00")
    assert figures.vat_amount == Decimal("10.00")
    assert figures.total == Decimal("210.00")


def test_vendor_figures_tax_shipping_and_packing():
    figures = vendor_figures("100", "10", "8", "2", "5")

    assert figures.vat_amount == Decimal("5.00")
    assert figures.total == Decimal("105.00")


def test_invoice_number_format():
    assert format_invoice_number("INV", 2026, 42) == "INV-2026-00042"
    assert next_sequence(None) == 1
    assert next_sequence("VND-2026-00009") == 10


def test_numbering_skips_soft_deleted_numbers(services, db):
    for n, deleted in ((1, False), (2, False), (3, True)):
        db.add(bare_invoice(format_invoice_number("INV", 2026, n), deleted))
    db.commit()

    assert services.invoices.next_invoice_number(InvoiceType.CUSTOMER, 2026) == "INV-2026-00004"
    assert services.invoices.next_invoice_number(InvoiceType.VENDOR, 2026) == "VND-2026-00001"
    assert services.invoices.next_invoice_number(InvoiceType.CUSTOMER, 2025) == "INV-2025-00001"


def test_numbering_past_five_digits(services, db):
    db.add(bare_invoice("INV-2026-99999"))
    db.add(bare_invoice("INV-2026-100000"))
    db.commit()

    assert services.invoices.next_invoice_number(InvoiceType.CUSTOMER, 2026) == "INV-2026-100001"


def test_vendor_invoice_bills_the_platform(services, group):
    order = next(o for o in group if o.subtotal == Decimal("220.00"))

    invoice = services.invoices.generate_vendor_invoice(order.id, comments="Thanks")

    assert invoice.invoice_number.startswith("VND-")
    assert invoice.issuer_name == "A Trading LLC"
    assert invoice.subtotal == Decimal("200.00")
    assert invoice.commission_amount == Decimal("20.00")
    assert invoice.vat_amount == Decimal("10.00")
    assert invoice.total_amount == Decimal("210.00")
    assert invoice.payment_status == "unpaid"
    assert services.invoices.generate_vendor_invoice(order.id).id == invoice.id


def test_no_vendor_invoice_for_platform_goods(services, make):
    buyer = make.user("Buyer")
    cart = make.cart(buyer, (make.product(None, "10.00"), 1))
    [order] = services.orders.convert_cart_to_orders(buyer.id, cart.id, "90000002")

    with pytest.raises(ValidationError):
        services.invoices.generate_vendor_invoice(order.id)


def test_customer_invoice_covers_the_whole_group(services, group):
    invoice = services.invoices.generate_customer_invoice(group[1].id)

    assert invoice.invoice_number.startswith("INV-")
    assert invoice.order_group_id == "90000001"
    assert invoice.subtotal == Decimal("275.00")
    assert invoice.vat_percent == Decimal("5")
    assert invoice.vat_amount == Decimal("13.75")
    assert invoice.total_amount == Decimal("288.75")
    assert invoice.payment_status == "unpaid"
    assert "Abu Dhabi" in invoice.addressee_address
    assert services.invoices.generate_customer_invoice(group[0].id).id == invoice.id


def test_marking_paid(services, group):
    services.invoices.generate_customer_invoice(group[0].id)

    [invoice] = services.invoices.mark_paid(group[0].id, InvoiceType.CUSTOMER)

    assert invoice.payment_status == "paid"


def test_deleted_invoice_is_not_served_by_token(services, group):
    invoice = services.invoices.generate_customer_invoice(group[0].id)
    assert services.invoices.get_by_token(invoice.access_token).id == invoice.id

    services.invoices.soft_delete(invoice.id)

    with pytest.raises(NotFoundError):
        services.invoices.get_by_token(invoice.access_token)
    again = services.invoices.generate_customer_invoice(group[0].id)
    assert again.id != invoice.id
    assert again.invoice_number != invoice.invoice_number
