# marketplace/services/invoice_service.py
import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, List, Optional, Sequence

from sqlalchemy.orm import Session

from marketplace.data.models.invoice import InvoiceModel
from marketplace.data.models.order import OrderModel
from marketplace.domain.errors import NotFoundError, ValidationError
from marketplace.domain.statuses import InvoiceType, PaymentStatus
from marketplace.repos.catalog_repo import CatalogRepo
from marketplace.repos.invoice_repo import InvoiceRepo
from marketplace.repos.order_repo import OrderRepo
from marketplace.services.pricing import HUNDRED, ZERO, money, percent_of
from marketplace.services.settings_service import SettingsService
from marketplace.services.vat_service import VatService
from marketplace.utils.logging import get_logger
from marketplace.utils.retry import number_collision_retry
from marketplace.utils.settings import CURRENCY

logger = get_logger(__name__)

PREFIXES = {InvoiceType.VENDOR: "VND", InvoiceType.CUSTOMER: "INV"}
PAID = "paid"
UNPAID = "unpaid"


@dataclass(frozen=True)
class InvoiceFigures:
    subtotal: Decimal
    commission: Decimal
    shipping: Decimal
    packing: Decimal
    vat_percent: Decimal
    vat_amount: Decimal
    total: Decimal


def vendor_figures(
    product_subtotal, commission, shipping, packing, vat_percent
) -> InvoiceFigures:
    """What the vendor bills the platform: its goods net of commission, plus shipping and packing."""
    subtotal = money(product_subtotal) - money(commission)
    base = subtotal + money(shipping) + money(packing)
    vat_amount = percent_of(base, vat_percent)
    return InvoiceFigures(
        subtotal=subtotal,
        commission=money(commission),
        shipping=money(shipping),
        packing=money(packing),
        vat_percent=Decimal(vat_percent),
        vat_amount=vat_amount,
        total=base + vat_amount,
    )


def customer_figures(orders: Sequence[OrderModel]) -> InvoiceFigures:
    """One bill for the whole checkout. VAT is what each order already charged."""
    subtotal = sum((money(o.subtotal) for o in orders), ZERO)
    shipping = sum((money(o.total_shipping or 0) for o in orders), ZERO)
    packing = sum((money(o.total_packing or 0) for o in orders), ZERO)
    vat_amount = sum((money(o.vat_amount) for o in orders), ZERO)
    total = sum((money(o.total_amount) for o in orders), ZERO)

    rates = {Decimal(o.vat_percent) for o in orders}
    if len(rates) == 1:
        vat_percent = rates.pop()
    else:
        taxable = subtotal + shipping + packing
        vat_percent = money(vat_amount * HUNDRED / taxable) if taxable else ZERO

    return InvoiceFigures(
        subtotal=subtotal,
        commission=ZERO,
        shipping=shipping,
        packing=packing,
        vat_percent=vat_percent,
        vat_amount=vat_amount,
        total=total,
    )


def format_invoice_number(prefix: str, year: int, sequence: int) -> str:
    return f"{prefix}-{year}-{sequence:05d}"


def next_sequence(latest: Optional[str]) -> int:
    if not latest:
        return 1
    match = re.search(r"-(\d+)$", latest)
    return int(match.group(1)) + 1 if match else 1


def _address_text(snapshot: Optional[dict]) -> Optional[str]:
    if not snapshot:
        return None
    street = ", ".join(p for p in (snapshot.get("address_line1"), snapshot.get("address_line2")) if p)
    city = " ".join(p for p in (snapshot.get("city"), snapshot.get("state"), snapshot.get("postal_code")) if p)
    text = "\n".join(p for p in (street, city, snapshot.get("country")) if p)
    return text or None


class InvoiceService:
    def __init__(self, db: Session, settings: SettingsService, vat: VatService):
        self.db = db
        self.repo = InvoiceRepo(db)
        self.orders = OrderRepo(db)
        self.catalog = CatalogRepo(db)
        self.settings = settings
        self.vat = vat

    def next_invoice_number(self, invoice_type: InvoiceType, year: Optional[int] = None) -> str:
        year = year or datetime.now(timezone.utc).year
        prefix = f"{PREFIXES[InvoiceType(invoice_type)]}-{year}-"
        latest = self.repo.latest_number(prefix)
        return format_invoice_number(PREFIXES[InvoiceType(invoice_type)], year, next_sequence(latest))

    @number_collision_retry()
    def _insert_numbered(self, invoice_type: InvoiceType, build: Callable[[str], InvoiceModel]) -> InvoiceModel:
        invoice = build(self.next_invoice_number(invoice_type))
        # a concurrent writer may take the same number; the savepoint keeps
        # the outer transaction usable for the retry
        with self.db.begin_nested():
            self.db.add(invoice)
        return invoice

    def _order(self, order_pk: str) -> OrderModel:
        order = self.orders.get_order(order_pk)
        if not order:
            raise NotFoundError(f"Order {order_pk} not found")
        return order

    def _buyer_country(self, order: OrderModel) -> Optional[str]:
        details = order.shipment_details or {}
        return details.get("country") or (order.user.country if order.user else None)

    def generate_vendor_invoice(self, order_pk: str, comments: Optional[str] = None) -> InvoiceModel:
        order = self._order(order_pk)
        if order.vendor_id is None:
            raise ValidationError(f"Order {order.order_id} is sold by the platform, no vendor invoice")

        existing = self.repo.find_for_order(order.id, InvoiceType.VENDOR.value)
        if existing:
            return existing

        vendor = self.catalog.get_user(order.vendor_id)
        if not vendor:
            raise NotFoundError(f"Vendor {order.vendor_id} not found")
        vendor_address = self.catalog.get_default_address(vendor.id)

        scenario = self.vat.rates_for(vendor.country, self._buyer_country(order))
        figures = vendor_figures(
            order.subtotal, order.commission or 0, order.total_shipping or 0, order.total_packing or 0,
            scenario.vendor_to_platform,
        )
        company = self.settings.company_details()

        def build(number: str) -> InvoiceModel:
            return InvoiceModel(
                invoice_number=number,
                invoice_type=InvoiceType.VENDOR.value,
                order_id=order.id,
                order_group_id=order.order_group_id,
                addressee_name=company["name"],
                addressee_address=company["address"],
                addressee_phone=company["phone"],
                addressee_email=company["email"],
                issuer_name=vendor.company_name or vendor.name,
                issuer_address=_address_text(vendor_address.snapshot() if vendor_address else None),
                issuer_phone=vendor.phone,
                issuer_email=vendor.email,
                subtotal=figures.subtotal,
                commission_amount=figures.commission,
                shipping_amount=figures.shipping,
                packing_amount=figures.packing,
                vat_percent=figures.vat_percent,
                vat_amount=figures.vat_amount,
                total_amount=figures.total,
                currency=order.currency or CURRENCY,
                vat_scenario=scenario.scenario,
                comments=comments,
                terms_conditions=self.settings.invoice_terms(InvoiceType.VENDOR.value),
                payment_status=UNPAID,
                access_token=secrets.token_urlsafe(32),
            )

        try:
            invoice = self._insert_numbered(InvoiceType.VENDOR, build)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info(f"Vendor invoice {invoice.invoice_number} issued for order {order.order_id}")
        return invoice

    def generate_customer_invoice(
        self,
        order_pk: str,
        comments: Optional[str] = None,
        payment_status: Optional[str] = None,
    ) -> InvoiceModel:
        order = self._order(order_pk)
        existing = self.repo.find_for_group(order.order_group_id, InvoiceType.CUSTOMER.value)
        if existing:
            return existing

        siblings = self.orders.find_by_group(order.order_group_id)
        figures = customer_figures(siblings)
        customer = order.user
        snapshot = order.shipment_details or None
        if not snapshot and customer:
            default = self.catalog.get_default_address(customer.id)
            snapshot = default.snapshot() if default else None
        snapshot = snapshot or {}

        vendor = self.catalog.get_user(order.vendor_id) if order.vendor_id else None
        scenario = self.vat.rates_for(vendor.country if vendor else None, self._buyer_country(order))
        if payment_status is None:
            all_paid = all(o.payment_status == PaymentStatus.PAID.value for o in siblings)
            payment_status = PAID if all_paid else UNPAID
        company = self.settings.company_details()

        def build(number: str) -> InvoiceModel:
            return InvoiceModel(
                invoice_number=number,
                invoice_type=InvoiceType.CUSTOMER.value,
                order_id=siblings[0].id,
                order_group_id=order.order_group_id,
                addressee_name=snapshot.get("full_name") or (customer.name if customer else None) or "Customer",
                addressee_address=_address_text(snapshot),
                addressee_phone=snapshot.get("phone") or (customer.phone if customer else None),
                addressee_email=customer.email if customer else None,
                issuer_name=company["name"],
                issuer_address=company["address"],
                issuer_phone=company["phone"],
                issuer_email=company["email"],
                issuer_logo_url=company["logo_url"],
                subtotal=figures.subtotal,
                commission_amount=ZERO,
                shipping_amount=figures.shipping,
                packing_amount=figures.packing,
                vat_percent=figures.vat_percent,
                vat_amount=figures.vat_amount,
                total_amount=figures.total,
                currency=order.currency or CURRENCY,
                vat_scenario=scenario.scenario,
                comments=comments,
                terms_conditions=self.settings.invoice_terms(InvoiceType.CUSTOMER.value) or company["footer"],
                payment_status=payment_status,
                access_token=secrets.token_urlsafe(32),
            )

        try:
            invoice = self._insert_numbered(InvoiceType.CUSTOMER, build)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info(
            f"Customer invoice {invoice.invoice_number} issued for group {order.order_group_id} "
            f"({len(siblings)} orders, {figures.total})"
        )
        return invoice

    def get_by_token(self, token: str) -> InvoiceModel:
        invoice = self.repo.get_by_token(token)
        if not invoice:
            raise NotFoundError("Invoice not found")
        return invoice

    def mark_paid(self, order_pk: str, invoice_type: InvoiceType = InvoiceType.CUSTOMER) -> List[InvoiceModel]:
        order = self._order(order_pk)
        invoice_type = InvoiceType(invoice_type)
        if invoice_type == InvoiceType.CUSTOMER:
            invoices = [i for i in self.repo.list_for_group(order.order_group_id) if i.invoice_type == invoice_type.value]
        else:
            invoices = [i for i in self.repo.list_for_order(order.id) if i.invoice_type == invoice_type.value]
        for invoice in invoices:
            invoice.payment_status = PAID
        self.db.commit()
        logger.info(f"Marked {len(invoices)} {invoice_type.value} invoice(s) paid for order {order.order_id}")
        return invoices

    def list_for_order(self, order_pk: str) -> List[InvoiceModel]:
        return self.repo.list_for_order(order_pk)

    def list_for_group(self, order_group_id: str) -> List[InvoiceModel]:
        return self.repo.list_for_group(order_group_id)

    def soft_delete(self, invoice_id: str) -> InvoiceModel:
        invoice = self.repo.get(invoice_id)
        if not invoice:
            raise NotFoundError(f"Invoice {invoice_id} not found")
        invoice.deleted_at = datetime.now(timezone.utc)
        self.db.commit()
        logger.info(f"Invoice {invoice.invoice_number} deleted, its number stays taken")
        return invoice
