# marketplace/services/unlock_service.py
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Optional

from sqlalchemy.orm import Session

from marketplace.domain.statuses import TransactionStatus
from marketplace.repos.ledger_repo import LedgerRepo
from marketplace.services.pricing import ZERO, money
from marketplace.utils.logging import get_logger
from marketplace.utils.settings import UNLOCK_BATCH_SIZE

logger = get_logger(__name__)


@dataclass
class UnlockResult:
    unlocked_count: int = 0
    total_amount: Decimal = ZERO
    failed_count: int = 0
    skipped_count: int = 0


class UnlockService:
    """
    Matures locked ledger credits into available balance once unlock_at has
    passed. Each transaction is unlocked in its own short database
    transaction, so one bad row never blocks the rest of the queue, and
    overlapping runs on several workers skip rows another worker holds.
    """

    def __init__(self, session_factory: Callable[[], Session], batch_size: int = UNLOCK_BATCH_SIZE):
        self.session_factory = session_factory
        self.batch_size = batch_size

    def process_unlocks(self, now: Optional[datetime] = None) -> UnlockResult:
        now = now or datetime.now(timezone.utc)
        result = UnlockResult()

        db = self.session_factory()
        try:
            candidate_ids = LedgerRepo(db).find_matured_locked_ids(now, self.batch_size)
            db.rollback()
        finally:
            db.close()

        logger.info(f"Unlock run: {len(candidate_ids)} matured locked transactions")

        for tx_id in candidate_ids:
            db = self.session_factory()
            try:
                amount = self._unlock_one(db, tx_id)
                if amount is None:
                    db.rollback()
                    result.skipped_count += 1
                    continue
                db.commit()
                result.unlocked_count += 1
                result.total_amount += amount
            except Exception as e:
                db.rollback()
                result.failed_count += 1
                logger.error(f"Failed to unlock transaction {tx_id}: {e}", exc_info=True)
            finally:
                db.close()

        logger.info(
            f"Unlock run finished: unlocked={result.unlocked_count} amount={result.total_amount} "
            f"skipped={result.skipped_count} failed={result.failed_count}"
        )
        return result

    def _unlock_one(self, db: Session, tx_id: str) -> Optional[Decimal]:
        repo = LedgerRepo(db)
        # re-check the status under the row lock; another worker may have
        # finished this row between the candidate scan and now
        tx = repo.get_transaction_for_update(tx_id, status=TransactionStatus.LOCKED.value, skip_locked=True)
        if tx is None:
            return None

        wallet = repo.get_wallet_for_update(tx.wallet_user_id)
        if wallet is None:
            raise RuntimeError(f"Wallet for {tx.wallet_user_id} missing")

        amount = money(tx.amount)
        wallet.locked_balance = money(wallet.locked_balance) - amount
        wallet.balance = money(wallet.balance) + amount
        tx.status = TransactionStatus.COMPLETED.value
        db.flush()
        return amount
