# marketplace/services/payout_service.py
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.orm import Session

from marketplace.data.models.ledger import PayoutRequestModel
from marketplace.domain.errors import InsufficientFunds, InvalidTransition, NotFoundError
from marketplace.domain.statuses import PayoutStatus, TransactionType
from marketplace.repos.ledger_repo import LedgerRepo
from marketplace.services.ledger_service import LedgerService, positive_amount
from marketplace.utils.logging import get_logger

logger = get_logger(__name__)

PAYOUT_TRANSITIONS = {
    PayoutStatus.PENDING.value: {PayoutStatus.APPROVED.value, PayoutStatus.PAID.value, PayoutStatus.REJECTED.value},
    PayoutStatus.APPROVED.value: {PayoutStatus.PAID.value, PayoutStatus.REJECTED.value},
    PayoutStatus.PAID.value: set(),
    PayoutStatus.REJECTED.value: set(),
}


class PayoutService:
    """
    Vendor withdrawals. Requesting only checks the available balance; the
    wallet is debited when an admin marks the payout paid, in the same
    transaction that flips the status.
    """

    def __init__(self, db: Session, ledger: LedgerService):
        self.db = db
        self.repo = LedgerRepo(db)
        self.ledger = ledger

    def _locked(self, payout_id: str, target: PayoutStatus) -> PayoutRequestModel:
        payout = self.repo.get_payout_for_update(payout_id)
        if not payout:
            raise NotFoundError(f"Payout request {payout_id} not found")
        if target.value not in PAYOUT_TRANSITIONS[payout.status]:
            raise InvalidTransition("payout", payout.status, target.value)
        return payout

    def request_payout(self, user_id: str, amount) -> PayoutRequestModel:
        value = positive_amount(amount)
        available = self.ledger.get_balance(user_id).available
        if value > available:
            raise InsufficientFunds(user_id, value, available)

        try:
            payout = self.repo.add_payout(
                PayoutRequestModel(user_id=user_id, amount=value, status=PayoutStatus.PENDING.value)
            )
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise
        logger.info(f"Payout request {payout.id} of {value} created for {user_id}")
        return payout

    def approve(self, payout_id: str, admin_id: str, note: Optional[str] = None) -> PayoutRequestModel:
        try:
            payout = self._locked(payout_id, PayoutStatus.APPROVED)
            payout.status = PayoutStatus.APPROVED.value
            payout.approved_by = admin_id
            payout.approved_at = datetime.now(timezone.utc)
            payout.admin_note = note or payout.admin_note
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise
        logger.info(f"Payout {payout_id} approved by {admin_id}")
        return payout

    def mark_paid(
        self,
        payout_id: str,
        admin_id: str,
        reference: Optional[str] = None,
        note: Optional[str] = None,
    ) -> PayoutRequestModel:
        try:
            payout = self._locked(payout_id, PayoutStatus.PAID)
            self.ledger.debit_wallet(
                payout.user_id,
                payout.amount,
                TransactionType.PAYOUT,
                description=f"Payout {payout.id}",
                metadata={"reference": reference} if reference else None,
                payout_request_id=payout.id,
            )
            payout.status = PayoutStatus.PAID.value
            payout.transaction_reference = reference
            payout.admin_note = note or payout.admin_note
            if payout.approved_by is None:
                payout.approved_by = admin_id
                payout.approved_at = datetime.now(timezone.utc)
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise
        logger.info(f"Payout {payout_id} of {payout.amount} paid to {payout.user_id} by {admin_id}")
        return payout

    def reject(self, payout_id: str, admin_id: str, note: Optional[str] = None) -> PayoutRequestModel:
        try:
            payout = self._locked(payout_id, PayoutStatus.REJECTED)
            payout.status = PayoutStatus.REJECTED.value
            payout.approved_by = admin_id
            payout.admin_note = note
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise
        logger.info(f"Payout {payout_id} rejected by {admin_id}")
        return payout

    def list_payouts(
        self, user_id: Optional[str] = None, status: Optional[str] = None, limit: int = 20, offset: int = 0
    ) -> List[PayoutRequestModel]:
        return self.repo.list_payouts(user_id, status, limit, offset)
