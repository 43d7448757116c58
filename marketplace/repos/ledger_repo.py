# marketplace/repos/ledger_repo.py
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import select, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from marketplace.data.models.ledger import WalletModel, TransactionModel, PayoutRequestModel


class LedgerRepo:
    def __init__(self, db: Session):
        self.db = db

    # wallets
    def get_wallet(self, user_id: str) -> Optional[WalletModel]:
        return self.db.execute(
            select(WalletModel).where(WalletModel.user_id == user_id)
        ).scalar_one_or_none()

    def get_wallet_for_update(self, user_id: str) -> Optional[WalletModel]:
        return self.db.execute(
            select(WalletModel).where(WalletModel.user_id == user_id).with_for_update()
        ).scalar_one_or_none()

    def ensure_wallet_for_update(self, user_id: str) -> WalletModel:
        wallet = self.get_wallet_for_update(user_id)
        if wallet:
            return wallet
        # two first-time credits may race to create the wallet; the unique
        # user_id lets exactly one insert win, the other re-reads it
        try:
            with self.db.begin_nested():
                self.db.add(WalletModel(user_id=user_id, balance=0, locked_balance=0))
        except IntegrityError:
            pass
        return self.get_wallet_for_update(user_id)

    # transactions
    def add_transaction(self, tx: TransactionModel) -> TransactionModel:
        self.db.add(tx)
        self.db.flush()
        return tx

    def get_transaction(self, tx_id: str) -> Optional[TransactionModel]:
        return self.db.get(TransactionModel, tx_id)

    def get_transaction_for_update(
        self, tx_id: str, status: Optional[str] = None, skip_locked: bool = False
    ) -> Optional[TransactionModel]:
        stmt = select(TransactionModel).where(TransactionModel.id == tx_id)
        if status is not None:
            stmt = stmt.where(TransactionModel.status == status)
        return self.db.execute(stmt.with_for_update(skip_locked=skip_locked)).scalar_one_or_none()

    def find_matured_locked_ids(self, now: datetime, limit: int) -> List[str]:
        return list(
            self.db.execute(
                select(TransactionModel.id)
                .where(TransactionModel.status == "locked", TransactionModel.unlock_at <= now)
                .order_by(TransactionModel.unlock_at)
                .limit(limit)
            ).scalars()
        )

    def transactions_for_order(self, order_pk: str, status: Optional[str] = None) -> List[TransactionModel]:
        stmt = select(TransactionModel).where(TransactionModel.order_id == order_pk)
        if status is not None:
            stmt = stmt.where(TransactionModel.status == status)
        return list(self.db.execute(stmt.order_by(TransactionModel.created_at)).scalars())

    def history(self, user_id: str, limit: int, offset: int) -> Tuple[List[TransactionModel], int]:
        cond = or_(
            TransactionModel.wallet_user_id == user_id,
            TransactionModel.source_user_id == user_id,
            TransactionModel.destination_user_id == user_id,
        )
        total = self.db.execute(select(func.count()).select_from(TransactionModel).where(cond)).scalar_one()
        rows = self.db.execute(
            select(TransactionModel)
            .where(cond)
            .order_by(TransactionModel.created_at.desc())
            .limit(limit)
            .offset(offset)
        ).scalars()
        return list(rows), total

    # payouts
    def add_payout(self, payout: PayoutRequestModel) -> PayoutRequestModel:
        self.db.add(payout)
        self.db.flush()
        return payout

    def get_payout_for_update(self, payout_id: str) -> Optional[PayoutRequestModel]:
        return self.db.execute(
            select(PayoutRequestModel).where(PayoutRequestModel.id == payout_id).with_for_update()
        ).scalar_one_or_none()

    def list_payouts(self, user_id: Optional[str], status: Optional[str], limit: int, offset: int):
        stmt = select(PayoutRequestModel)
        if user_id:
            stmt = stmt.where(PayoutRequestModel.user_id == user_id)
        if status:
            stmt = stmt.where(PayoutRequestModel.status == status)
        return list(
            self.db.execute(
                stmt.order_by(PayoutRequestModel.created_at.desc()).limit(limit).offset(offset)
            ).scalars()
        )

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
