# marketplace/repos/catalog_repo.py
from typing import Dict, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from marketplace.data.models.catalog import CategoryModel, ProductModel
from marketplace.data.models.user import AddressModel, UserModel


class CatalogRepo:
    """Read access to the reference data the checkout core depends on."""

    def __init__(self, db: Session):
        self.db = db

    def get_product(self, product_id: str) -> Optional[ProductModel]:
        return self.db.get(ProductModel, product_id)

    def get_products(self, product_ids: Iterable[str]) -> Dict[str, ProductModel]:
        ids = list(set(product_ids))
        if not ids:
            return {}
        rows = self.db.execute(select(ProductModel).where(ProductModel.id.in_(ids))).scalars()
        return {p.id: p for p in rows}

    def get_category(self, category_id: int) -> Optional[CategoryModel]:
        return self.db.get(CategoryModel, category_id)

    def get_user(self, user_id: str) -> Optional[UserModel]:
        return self.db.get(UserModel, user_id)

    def get_users(self, user_ids: Iterable[str]) -> Dict[str, UserModel]:
        ids = [u for u in set(user_ids) if u]
        if not ids:
            return {}
        rows = self.db.execute(select(UserModel).where(UserModel.id.in_(ids))).scalars()
        return {u.id: u for u in rows}

    def get_address(self, address_id: str) -> Optional[AddressModel]:
        return self.db.get(AddressModel, address_id)

    def get_default_address(self, user_id: str) -> Optional[AddressModel]:
        return self.db.execute(
            select(AddressModel)
            .where(AddressModel.user_id == user_id)
            .order_by(AddressModel.is_default.desc(), AddressModel.id)
            .limit(1)
        ).scalar_one_or_none()
