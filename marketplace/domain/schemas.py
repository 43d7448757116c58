# marketplace/domain/schemas.py
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from marketplace.domain.statuses import InvoiceType, OrderType


class ItemIn(BaseModel):
    """Product to put in a cart."""

    product_id: str = Field(..., min_length=1)
    quantity: int = Field(..., gt=0, description="Must be at least 1")


class QuantityIn(BaseModel):
    quantity: int = Field(..., gt=0)


class CreateCartIn(BaseModel):
    user_id: Optional[str] = None
    session_token: Optional[str] = Field(default=None, description="Guest browser session")


class MergeCartIn(BaseModel):
    user_id: str
    session_token: str


class CartItemOut(BaseModel):
    product_id: str
    name: str
    vendor_id: Optional[str] = None
    quantity: int
    price: Decimal
    available: bool = True


class CartOut(BaseModel):
    cart_id: str
    user_id: Optional[str] = None
    status: str
    version: int
    items: List[CartItemOut]
    total: Decimal
    expires_at: datetime | None = None


class ShippingQuoteIn(BaseModel):
    total: Decimal = Field(..., ge=0)
    method: Optional[str] = None


class CheckoutIn(BaseModel):
    user_id: str
    address_id: Optional[str] = None
    cart_id: Optional[str] = None
    # keyed by vendor id, "platform" for goods sold by the platform
    shipping_costs: Optional[Dict[str, ShippingQuoteIn]] = None
    success_url: Optional[str] = None
    cancel_url: Optional[str] = None


class CheckoutVerifyOut(BaseModel):
    can_checkout: bool
    type: OrderType
    reasons: List[str]


class OrderItemOut(BaseModel):
    product_id: str
    vendor_id: Optional[str] = None
    product_name: str
    sku: Optional[str] = None
    quantity: int
    price: Decimal

    model_config = ConfigDict(from_attributes=True)


class OrderOut(BaseModel):
    id: str
    order_id: str
    order_group_id: str
    user_id: str
    vendor_id: Optional[str] = None
    type: str
    order_status: str
    payment_status: Optional[str] = None
    shipment_status: Optional[str] = None
    subtotal: Decimal
    total_shipping: Decimal
    total_packing: Decimal
    vat_percent: Decimal
    vat_amount: Decimal
    commission: Decimal
    total_amount: Decimal
    currency: str
    items: List[OrderItemOut] = []
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CheckoutOut(BaseModel):
    type: OrderType
    order_group_id: str
    total: Decimal
    currency: str
    reasons: List[str] = []
    session_id: Optional[str] = None
    url: Optional[str] = None
    orders: List[OrderOut] = []

    model_config = ConfigDict(from_attributes=True)


class VerifySessionIn(BaseModel):
    session_id: str
    user_id: Optional[str] = None


class GroupPaymentIn(BaseModel):
    user_id: str
    success_url: Optional[str] = None
    cancel_url: Optional[str] = None


class PaymentOutcomeOut(BaseModel):
    is_paid: bool
    payment_status: str
    order_group_id: Optional[str] = None
    orders: List[OrderOut] = []
    amount_total: Optional[int] = None
    currency: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class StatusUpdateIn(BaseModel):
    actor: str
    order_status: Optional[str] = None
    payment_status: Optional[str] = None
    shipment_status: Optional[str] = None
    note: Optional[str] = None


class BalanceOut(BaseModel):
    user_id: str
    available: Decimal
    locked: Decimal


class TransactionOut(BaseModel):
    id: str
    type: str
    wallet_user_id: str
    source_user_id: Optional[str] = None
    destination_user_id: Optional[str] = None
    amount: Decimal
    status: str
    unlock_at: datetime | None = None
    order_id: Optional[str] = None
    payout_request_id: Optional[str] = None
    reversal_of_id: Optional[str] = None
    description: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TransactionPageOut(BaseModel):
    items: List[TransactionOut]
    total: int


class PayoutRequestIn(BaseModel):
    user_id: str
    amount: Decimal = Field(..., gt=0)


class PayoutActionIn(BaseModel):
    admin_id: str
    note: Optional[str] = None
    reference: Optional[str] = None


class PayoutOut(BaseModel):
    id: str
    user_id: str
    amount: Decimal
    status: str
    admin_note: Optional[str] = None
    transaction_reference: Optional[str] = None
    approved_by: Optional[str] = None
    approved_at: datetime | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class InvoiceGenerateIn(BaseModel):
    type: InvoiceType
    comments: Optional[str] = None
    payment_status: Optional[str] = Field(default=None, pattern="^(paid|unpaid)$")


class InvoiceOut(BaseModel):
    id: str
    invoice_number: str
    invoice_type: str
    order_id: str
    order_group_id: str
    addressee_name: str
    addressee_address: Optional[str] = None
    issuer_name: str
    issuer_address: Optional[str] = None
    subtotal: Decimal
    commission_amount: Decimal
    shipping_amount: Decimal
    packing_amount: Decimal
    vat_percent: Decimal
    vat_amount: Decimal
    total_amount: Decimal
    currency: str
    vat_scenario: Optional[str] = None
    comments: Optional[str] = None
    terms_conditions: Optional[str] = None
    payment_status: str
    access_token: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class UnlockResultOut(BaseModel):
    unlocked_count: int
    total_amount: Decimal
    failed_count: int
    skipped_count: int

    model_config = ConfigDict(from_attributes=True)
