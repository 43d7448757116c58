from sqlalchemy import Column, String, DateTime, Numeric, JSON, ForeignKey, CheckConstraint

from marketplace.data.database import Base
from marketplace.data.models._common import new_id, utcnow


class WalletModel(Base):
    __tablename__ = "wallets"
    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_wallet_balance"),
        CheckConstraint("locked_balance >= 0", name="ck_wallet_locked_balance"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), nullable=False, unique=True)
    balance = Column(Numeric(12, 2), nullable=False, default=0)
    locked_balance = Column(Numeric(12, 2), nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


class TransactionModel(Base):
    """Append-only ledger row. Corrections are new rows, never edits of amounts."""

    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True, default=new_id)
    type = Column(String(20), nullable=False)
    # wallet whose balance this row moved
    wallet_user_id = Column(String(36), nullable=False, index=True)
    source_user_id = Column(String(36), nullable=True)
    destination_user_id = Column(String(36), nullable=True)
    amount = Column(Numeric(12, 2), nullable=False)
    status = Column(String(20), nullable=False, index=True)
    unlock_at = Column(DateTime(timezone=True), nullable=True, index=True)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=True, index=True)
    payout_request_id = Column(String(36), ForeignKey("payout_requests.id"), nullable=True)
    reversal_of_id = Column(String(36), ForeignKey("transactions.id"), nullable=True)
    description = Column(String, nullable=True)
    # "metadata" is reserved on declarative classes
    details = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


class PayoutRequestModel(Base):
    __tablename__ = "payout_requests"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    status = Column(String(20), nullable=False, default="pending")  # pending, approved, paid, rejected
    admin_note = Column(String, nullable=True)
    transaction_reference = Column(String, nullable=True)
    approved_by = Column(String(36), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
