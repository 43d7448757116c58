# marketplace/services/ledger_service.py
"""
Wallet balances and the append-only transaction log.

Every method works inside the caller's unit of work: it locks the wallet
row, writes exactly one transaction row and moves exactly one balance column
by the same amount, then flushes. Committing is the caller's decision, so a
ledger entry and the business change that caused it land together or not at
all. No other module writes balance or locked_balance.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from marketplace.data.models.ledger import TransactionModel, WalletModel
from marketplace.domain.errors import InsufficientFunds, InvalidTransition, NotFoundError, ValidationError
from marketplace.domain.statuses import TransactionStatus, TransactionType
from marketplace.repos.ledger_repo import LedgerRepo
from marketplace.services.pricing import ZERO, money
from marketplace.services.settings_service import SettingsService
from marketplace.utils.logging import get_logger

logger = get_logger(__name__)

CREDIT_TYPES = {
    TransactionType.PURCHASE,
    TransactionType.COMMISSION,
    TransactionType.VENDOR_EARNING,
    TransactionType.REFUND,
    TransactionType.ADJUSTMENT,
}
DEBIT_TYPES = {TransactionType.PAYOUT, TransactionType.REFUND, TransactionType.ADJUSTMENT}


@dataclass(frozen=True)
class Balance:
    available: Decimal
    locked: Decimal


def positive_amount(amount) -> Decimal:
    value = money(amount)
    if value <= ZERO:
        raise ValidationError(f"Amount must be positive, got {amount}")
    return value


class LedgerService:
    def __init__(self, db: Session, settings: SettingsService):
        self.repo = LedgerRepo(db)
        self.settings = settings

    def unlock_date(self, now: Optional[datetime] = None) -> datetime:
        now = now or datetime.now(timezone.utc)
        return now + timedelta(days=self.settings.fund_hold_days())

    def credit_wallet(
        self,
        user_id: str,
        amount,
        type: TransactionType,
        *,
        locked: bool = False,
        unlock_at: Optional[datetime] = None,
        description: Optional[str] = None,
        metadata: Optional[dict] = None,
        source_user_id: Optional[str] = None,
        order_id: Optional[str] = None,
    ) -> TransactionModel:
        type = TransactionType(type)
        if type not in CREDIT_TYPES:
            raise ValidationError(f"{type.value} is not a credit type")
        value = positive_amount(amount)

        wallet = self.repo.ensure_wallet_for_update(user_id)
        tx = self.repo.add_transaction(
            TransactionModel(
                type=type.value,
                wallet_user_id=user_id,
                source_user_id=source_user_id,
                destination_user_id=user_id,
                amount=value,
                status=(TransactionStatus.LOCKED if locked else TransactionStatus.COMPLETED).value,
                unlock_at=(unlock_at or self.unlock_date()) if locked else None,
                order_id=order_id,
                description=description,
                details=metadata or {},
            )
        )
        if locked:
            wallet.locked_balance = money(wallet.locked_balance) + value
        else:
            wallet.balance = money(wallet.balance) + value
        self.repo.db.flush()

        logger.info(
            f"Credited {value} ({type.value}, {'locked' if locked else 'available'}) to wallet of {user_id}, tx {tx.id}"
        )
        return tx

    def debit_wallet(
        self,
        user_id: str,
        amount,
        type: TransactionType,
        *,
        description: Optional[str] = None,
        metadata: Optional[dict] = None,
        destination_user_id: Optional[str] = None,
        payout_request_id: Optional[str] = None,
    ) -> TransactionModel:
        type = TransactionType(type)
        if type not in DEBIT_TYPES:
            raise ValidationError(f"{type.value} is not a debit type")
        value = positive_amount(amount)

        wallet = self.repo.ensure_wallet_for_update(user_id)
        available = money(wallet.balance)
        # locked funds never count towards what can be debited
        if value > available:
            raise InsufficientFunds(user_id, value, available)

        tx = self.repo.add_transaction(
            TransactionModel(
                type=type.value,
                wallet_user_id=user_id,
                source_user_id=user_id,
                destination_user_id=destination_user_id,
                amount=value,
                status=TransactionStatus.COMPLETED.value,
                payout_request_id=payout_request_id,
                description=description,
                details=metadata or {},
            )
        )
        wallet.balance = available - value
        self.repo.db.flush()

        logger.info(f"Debited {value} ({type.value}) from wallet of {user_id}, tx {tx.id}")
        return tx

    def reverse_locked_credit(self, transaction_id: str, reason: str) -> TransactionModel:
        """Claw back a credit that is still inside its hold period."""
        original = self.repo.get_transaction_for_update(transaction_id)
        if not original:
            raise NotFoundError(f"Transaction {transaction_id} not found")
        if original.status != TransactionStatus.LOCKED.value:
            raise InvalidTransition("transaction", original.status, TransactionStatus.REFUNDED.value)

        wallet = self.repo.ensure_wallet_for_update(original.wallet_user_id)
        value = money(original.amount)

        reversal = self.repo.add_transaction(
            TransactionModel(
                type=TransactionType.REFUND.value,
                wallet_user_id=original.wallet_user_id,
                source_user_id=original.wallet_user_id,
                destination_user_id=original.source_user_id,
                amount=value,
                status=TransactionStatus.COMPLETED.value,
                order_id=original.order_id,
                reversal_of_id=original.id,
                description=reason,
                details={"reversed_type": original.type},
            )
        )
        original.status = TransactionStatus.REFUNDED.value
        wallet.locked_balance = money(wallet.locked_balance) - value
        self.repo.db.flush()

        logger.info(f"Reversed locked tx {original.id} ({value}) for {original.wallet_user_id}: {reason}")
        return reversal

    def get_balance(self, user_id: str) -> Balance:
        wallet: Optional[WalletModel] = self.repo.get_wallet(user_id)
        if not wallet:
            return Balance(available=ZERO, locked=ZERO)
        return Balance(available=money(wallet.balance), locked=money(wallet.locked_balance))

    def history(self, user_id: str, limit: int = 20, offset: int = 0) -> Tuple[List[TransactionModel], int]:
        return self.repo.history(user_id, limit, offset)
