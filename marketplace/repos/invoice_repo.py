# marketplace/repos/invoice_repo.py
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from marketplace.data.models.invoice import InvoiceModel


class InvoiceRepo:
    def __init__(self, db: Session):
        self.db = db

    def _live(self):
        return select(InvoiceModel).where(InvoiceModel.deleted_at.is_(None))

    def latest_number(self, prefix: str) -> Optional[str]:
        # soft-deleted invoices still hold their number
        return self.db.execute(
            select(InvoiceModel.invoice_number)
            .where(InvoiceModel.invoice_number.like(f"{prefix}%"))
            .order_by(func.length(InvoiceModel.invoice_number).desc(), InvoiceModel.invoice_number.desc())
            .limit(1)
        ).scalar_one_or_none()

    def get(self, invoice_id: str) -> Optional[InvoiceModel]:
        return self.db.execute(self._live().where(InvoiceModel.id == invoice_id)).scalar_one_or_none()

    def get_by_token(self, token: str) -> Optional[InvoiceModel]:
        return self.db.execute(self._live().where(InvoiceModel.access_token == token)).scalar_one_or_none()

    def find_for_order(self, order_pk: str, invoice_type: str) -> Optional[InvoiceModel]:
        return self.db.execute(
            self._live()
            .where(InvoiceModel.order_id == order_pk, InvoiceModel.invoice_type == invoice_type)
            .order_by(InvoiceModel.created_at.desc())
            .limit(1)
        ).scalar_one_or_none()

    def find_for_group(self, order_group_id: str, invoice_type: str) -> Optional[InvoiceModel]:
        return self.db.execute(
            self._live()
            .where(InvoiceModel.order_group_id == order_group_id, InvoiceModel.invoice_type == invoice_type)
            .order_by(InvoiceModel.created_at.desc())
            .limit(1)
        ).scalar_one_or_none()

    def list_for_order(self, order_pk: str) -> List[InvoiceModel]:
        return list(
            self.db.execute(
                self._live().where(InvoiceModel.order_id == order_pk).order_by(InvoiceModel.created_at)
            ).scalars()
        )

    def list_for_group(self, order_group_id: str) -> List[InvoiceModel]:
        return list(
            self.db.execute(
                self._live()
                .where(InvoiceModel.order_group_id == order_group_id)
                .order_by(InvoiceModel.created_at)
            ).scalars()
        )
