# marketplace/repos/order_repo.py
from typing import Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from marketplace.data.models.order import OrderGroupModel, OrderModel


class OrderRepo:
    def __init__(self, db: Session):
        self.db = db

    def _live(self):
        return select(OrderModel).where(OrderModel.deleted_at.is_(None))

    def get_group(self, order_group_id: str) -> Optional[OrderGroupModel]:
        return self.db.get(OrderGroupModel, order_group_id)

    def add_group(self, group: OrderGroupModel) -> OrderGroupModel:
        self.db.add(group)
        # flush now so a duplicate group id fails before any order row is built
        self.db.flush()
        return group

    def add_order(self, order: OrderModel) -> OrderModel:
        self.db.add(order)
        self.db.flush()
        return order

    def get_order(self, order_pk: str) -> Optional[OrderModel]:
        order = self.db.get(OrderModel, order_pk)
        if order is None or order.deleted_at is not None:
            return None
        return order

    def get_order_for_update(self, order_pk: str) -> Optional[OrderModel]:
        return self.db.execute(
            self._live()
            .where(OrderModel.id == order_pk)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def get_by_code(self, order_id: str) -> Optional[OrderModel]:
        return self.db.execute(self._live().where(OrderModel.order_id == order_id)).scalar_one_or_none()

    def find_by_group(self, order_group_id: str) -> List[OrderModel]:
        return list(
            self.db.execute(
                self._live()
                .where(OrderModel.order_group_id == order_group_id)
                .options(selectinload(OrderModel.items))
                .order_by(OrderModel.created_at, OrderModel.order_id)
            ).scalars()
        )

    def find_by_group_for_update(self, order_group_id: str) -> List[OrderModel]:
        return list(
            self.db.execute(
                self._live()
                .where(OrderModel.order_group_id == order_group_id)
                .order_by(OrderModel.id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalars()
        )

    def existing_codes(self, codes: Iterable[str]) -> set:
        codes = list(codes)
        if not codes:
            return set()
        taken = set(
            self.db.execute(select(OrderModel.order_id).where(OrderModel.order_id.in_(codes))).scalars()
        )
        taken |= set(
            self.db.execute(
                select(OrderGroupModel.order_group_id).where(OrderGroupModel.order_group_id.in_(codes))
            ).scalars()
        )
        return taken

    def list_for_user(self, user_id: str, limit: int = 20, offset: int = 0) -> List[OrderModel]:
        return list(
            self.db.execute(
                self._live()
                .where(OrderModel.user_id == user_id)
                .order_by(OrderModel.created_at.desc())
                .limit(limit)
                .offset(offset)
            ).scalars()
        )

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
