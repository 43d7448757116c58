# marketplace/repos/cart_repo.py
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update, delete
from sqlalchemy.orm import Session, selectinload

from marketplace.data.models.cart import CartModel
from marketplace.data.models.cart_item import CartItemModel


class CartRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_cart(self, cart_id: str) -> Optional[CartModel]:
        return self.db.get(CartModel, cart_id)

    def get_cart_for_update(self, cart_id: str) -> Optional[CartModel]:
        # exclusive row lock held until the surrounding transaction ends
        return self.db.execute(
            select(CartModel)
            .where(CartModel.id == cart_id)
            .options(selectinload(CartModel.items))
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def get_active_cart_by_user(self, user_id: str) -> Optional[CartModel]:
        return self.db.execute(
            select(CartModel)
            .where(CartModel.user_id == user_id, CartModel.status == "active")
            .order_by(CartModel.created_at.desc())
            .limit(1)
        ).scalar_one_or_none()

    def get_active_cart_by_token(self, session_token: str) -> Optional[CartModel]:
        return self.db.execute(
            select(CartModel)
            .where(
                CartModel.session_token == session_token,
                CartModel.user_id.is_(None),
                CartModel.status == "active",
            )
            .order_by(CartModel.created_at.desc())
            .limit(1)
        ).scalar_one_or_none()

    def create_cart(self, cart: CartModel) -> CartModel:
        self.db.add(cart)
        self.db.flush()
        return cart

    def get_cart_items(self, cart_id: str) -> List[CartItemModel]:
        return list(
            self.db.execute(
                select(CartItemModel).where(CartItemModel.cart_id == cart_id).order_by(CartItemModel.id)
            ).scalars()
        )

    def get_cart_item(self, cart_id: str, product_id: str) -> Optional[CartItemModel]:
        return self.db.execute(
            select(CartItemModel)
            .where(CartItemModel.cart_id == cart_id, CartItemModel.product_id == product_id)
            .order_by(CartItemModel.id)
            .limit(1)
        ).scalar_one_or_none()

    def add_cart_item(self, item: CartItemModel) -> CartItemModel:
        self.db.add(item)
        self.db.flush()
        return item

    def delete_cart_item(self, cart_id: str, product_id: str) -> int:
        result = self.db.execute(
            delete(CartItemModel).where(
                CartItemModel.cart_id == cart_id, CartItemModel.product_id == product_id
            )
        )
        return result.rowcount

    def update_cart_version(self, cart_id: str, old_version: int, new_data: dict) -> int:
        # UPDATE carts SET version = old + 1 ... WHERE id = :id AND version = :old
        result = self.db.execute(
            update(CartModel)
            .where(CartModel.id == cart_id, CartModel.version == old_version)
            .values(**new_data)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    def find_expired_active(self, now: datetime, limit: int = 500) -> List[CartModel]:
        return list(
            self.db.execute(
                select(CartModel)
                .where(CartModel.status == "active", CartModel.expires_at < now)
                .limit(limit)
                .with_for_update(skip_locked=True)
            ).scalars()
        )

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
