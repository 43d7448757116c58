# marketplace/services/container.py
from typing import Optional

from sqlalchemy.orm import Session

from marketplace.services.cart_service import CartService
from marketplace.services.checkout_service import CheckoutService
from marketplace.services.compliance_service import ComplianceService
from marketplace.services.invoice_service import InvoiceService
from marketplace.services.ledger_service import LedgerService
from marketplace.services.notification_service import NotificationService
from marketplace.services.order_service import OrderService
from marketplace.services.order_status_service import OrderStatusService
from marketplace.services.payment_gateway import PaymentGateway
from marketplace.services.payout_service import PayoutService
from marketplace.services.quote_service import QuoteService
from marketplace.services.settings_service import SettingsService
from marketplace.services.settlement_service import SettlementService
from marketplace.services.shipping_client import ShippingClient
from marketplace.services.vat_service import VatService


class Services:
    """Every service of one request, sharing one database session."""

    def __init__(
        self,
        db: Session,
        gateway: Optional[PaymentGateway] = None,
        shipping: Optional[ShippingClient] = None,
        notifier: Optional[NotificationService] = None,
    ):
        self.db = db
        self.settings = SettingsService(db)
        self.vat = VatService(self.settings)
        self.quotes = QuoteService(db, self.settings, self.vat)
        self.compliance = ComplianceService(db, self.quotes, self.settings)
        self.ledger = LedgerService(db, self.settings)
        self.settlement = SettlementService(db, self.ledger)
        self.notifier = notifier or NotificationService()
        self.orders = OrderService(db, self.quotes, self.notifier)
        self.order_status = OrderStatusService(db, self.settlement, self.notifier)
        self.checkout = CheckoutService(
            db,
            gateway or PaymentGateway(),
            self.quotes,
            self.compliance,
            self.orders,
            self.settlement,
            shipping=shipping or ShippingClient(),
            notifier=self.notifier,
        )
        self.invoices = InvoiceService(db, self.settings, self.vat)
        self.payouts = PayoutService(db, self.ledger)
        self.carts = CartService(db, self.settings)
