# marketplace/services/settlement_service.py
from typing import List

from sqlalchemy.orm import Session

from marketplace.data.models.ledger import TransactionModel
from marketplace.data.models.order import OrderModel
from marketplace.domain.statuses import TransactionStatus, TransactionType
from marketplace.repos.ledger_repo import LedgerRepo
from marketplace.services.ledger_service import LedgerService
from marketplace.services.pricing import ZERO, money
from marketplace.utils.logging import get_logger
from marketplace.utils.settings import PLATFORM_ACCOUNT_ID

logger = get_logger(__name__)


class SettlementService:
    """
    Books the money of a paid order into the ledger, and takes it back when
    a paid order is cancelled or returned while the funds are still held.
    Runs in the caller's unit of work.
    """

    def __init__(self, db: Session, ledger: LedgerService, platform_account_id: str = PLATFORM_ACCOUNT_ID):
        self.ledger = ledger
        self.repo = LedgerRepo(db)
        self.platform_account_id = platform_account_id

    def settle_order(self, order: OrderModel) -> List[TransactionModel]:
        if self.repo.transactions_for_order(order.id):
            logger.info(f"Order {order.order_id} already settled, skipping")
            return []

        total = money(order.total_amount)
        unlock_at = self.ledger.unlock_date()
        meta = {"order_id": order.order_id, "order_group_id": order.order_group_id}
        entries: List[TransactionModel] = []

        if order.vendor_id is None:
            entries.append(
                self.ledger.credit_wallet(
                    self.platform_account_id,
                    total,
                    TransactionType.PURCHASE,
                    locked=True,
                    unlock_at=unlock_at,
                    description=f"Sale of order {order.order_id}",
                    metadata=meta,
                    source_user_id=order.user_id,
                    order_id=order.id,
                )
            )
        else:
            commission = money(order.commission or 0)
            earning = total - commission
            if earning > ZERO:
                entries.append(
                    self.ledger.credit_wallet(
                        order.vendor_id,
                        earning,
                        TransactionType.VENDOR_EARNING,
                        locked=True,
                        unlock_at=unlock_at,
                        description=f"Earning for order {order.order_id}",
                        metadata=meta,
                        source_user_id=order.user_id,
                        order_id=order.id,
                    )
                )
            if commission > ZERO:
                entries.append(
                    self.ledger.credit_wallet(
                        self.platform_account_id,
                        commission,
                        TransactionType.COMMISSION,
                        locked=True,
                        unlock_at=unlock_at,
                        description=f"Commission on order {order.order_id}",
                        metadata={**meta, "vendor_id": order.vendor_id},
                        source_user_id=order.user_id,
                        order_id=order.id,
                    )
                )

        logger.info(f"Settled order {order.order_id}: {len(entries)} ledger entries, total {total}")
        return entries

    def reverse_order(self, order: OrderModel, reason: str) -> List[TransactionModel]:
        """Reverse every still-locked credit of the order. Returns the refund rows."""
        locked = self.repo.transactions_for_order(order.id, status=TransactionStatus.LOCKED.value)
        reversals = [self.ledger.reverse_locked_credit(tx.id, reason) for tx in locked]
        if reversals:
            logger.info(f"Reversed {len(reversals)} held credits of order {order.order_id}")
        return reversals
