from sqlalchemy import Column, String, DateTime, Numeric, Text, ForeignKey

from marketplace.data.database import Base
from marketplace.data.models._common import new_id, utcnow


class InvoiceModel(Base):
    __tablename__ = "invoices"

    id = Column(String(36), primary_key=True, default=new_id)
    invoice_number = Column(String(32), nullable=False, unique=True)
    invoice_type = Column(String(10), nullable=False, index=True)  # vendor, customer
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False, index=True)
    order_group_id = Column(String(32), nullable=False, index=True)

    addressee_name = Column(String, nullable=False)
    addressee_address = Column(Text, nullable=True)
    addressee_phone = Column(String, nullable=True)
    addressee_email = Column(String, nullable=True)
    issuer_name = Column(String, nullable=False)
    issuer_address = Column(Text, nullable=True)
    issuer_phone = Column(String, nullable=True)
    issuer_email = Column(String, nullable=True)
    issuer_logo_url = Column(String, nullable=True)

    subtotal = Column(Numeric(12, 2), nullable=False)
    commission_amount = Column(Numeric(12, 2), nullable=False, default=0)
    shipping_amount = Column(Numeric(12, 2), nullable=False, default=0)
    packing_amount = Column(Numeric(12, 2), nullable=False, default=0)
    vat_percent = Column(Numeric(5, 2), nullable=False)
    vat_amount = Column(Numeric(12, 2), nullable=False)
    total_amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    vat_scenario = Column(String, nullable=True)

    comments = Column(Text, nullable=True)
    terms_conditions = Column(Text, nullable=True)
    payment_status = Column(String(10), nullable=False, default="unpaid")
    access_token = Column(String(64), nullable=False, unique=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
