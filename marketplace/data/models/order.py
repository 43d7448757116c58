from sqlalchemy import (
    Column,
    Integer,
    ForeignKey,
    String,
    DateTime,
    Numeric,
    JSON,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from marketplace.data.database import Base
from marketplace.data.models._common import new_id, utcnow


class OrderGroupModel(Base):
    """One checkout. The primary key is what makes conversion exactly-once."""

    __tablename__ = "order_groups"

    order_group_id = Column(String(32), primary_key=True)
    cart_id = Column(String(36), ForeignKey("carts.id"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String(10), nullable=False)
    total_amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class OrderModel(Base):
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=new_id)
    order_id = Column(String(32), nullable=False, unique=True)
    order_group_id = Column(
        String(32), ForeignKey("order_groups.order_group_id"), nullable=False, index=True
    )
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    vendor_id = Column(String(36), ForeignKey("users.id"), nullable=True, index=True)

    subtotal = Column(Numeric(12, 2), nullable=False)
    total_shipping = Column(Numeric(12, 2), nullable=False, default=0)
    shipping_method = Column(String, nullable=True)
    total_packing = Column(Numeric(12, 2), nullable=False, default=0)
    vat_percent = Column(Numeric(5, 2), nullable=False)
    vat_amount = Column(Numeric(12, 2), nullable=False)
    commission = Column(Numeric(12, 2), nullable=False, default=0)
    total_amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False)

    type = Column(String(10), nullable=False)  # direct, request
    order_status = Column(String(20), nullable=False)
    payment_status = Column(String(20), nullable=True)
    shipment_status = Column(String(20), nullable=True)
    shipment_details = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    items = relationship(
        "OrderItemModel", back_populates="order", cascade="all, delete-orphan", order_by="OrderItemModel.id"
    )
    status_history = relationship(
        "OrderStatusHistoryModel",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderStatusHistoryModel.id",
    )
    payment_attempts = relationship(
        "OrderPaymentAttemptModel",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderPaymentAttemptModel.id",
    )
    user = relationship("UserModel", foreign_keys=[user_id])
    vendor = relationship("UserModel", foreign_keys=[vendor_id])


class OrderItemModel(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(String(36), nullable=False)
    vendor_id = Column(String(36), nullable=True)
    product_name = Column(String, nullable=False)
    sku = Column(String, nullable=True)
    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(12, 2), nullable=False)
    base_price = Column(Numeric(12, 2), nullable=False)
    packing_charge = Column(Numeric(12, 2), nullable=False, default=0)
    product_snapshot = Column(JSON, nullable=True)

    order = relationship("OrderModel", back_populates="items")


class OrderStatusHistoryModel(Base):
    __tablename__ = "order_status_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False, index=True)
    order_status = Column(String(20), nullable=False)
    payment_status = Column(String(20), nullable=True)
    shipment_status = Column(String(20), nullable=True)
    actor = Column(String(36), nullable=False)
    note = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    order = relationship("OrderModel", back_populates="status_history")


class OrderPaymentAttemptModel(Base):
    __tablename__ = "order_payment_attempts"
    __table_args__ = (UniqueConstraint("order_id", "session_id", name="u_order_payment_session"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False, index=True)
    payment_mode = Column(String(20), nullable=False, default="stripe")
    session_id = Column(String(255), nullable=False)
    transaction_ref = Column(String(255), nullable=True)
    payment_status = Column(String(30), nullable=False)
    amount_total = Column(Integer, nullable=True)  # minor units, as reported by the gateway
    currency = Column(String(3), nullable=True)
    card_brand = Column(String(30), nullable=True)
    card_last4 = Column(String(4), nullable=True)
    card_funding = Column(String(20), nullable=True)
    payment_method_type = Column(String(30), nullable=True)
    billing_details = Column(JSON, nullable=True)
    receipt_url = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    order = relationship("OrderModel", back_populates="payment_attempts")
