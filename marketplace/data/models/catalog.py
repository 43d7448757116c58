from sqlalchemy import Column, Integer, String, Numeric, Boolean, ForeignKey
from sqlalchemy.orm import relationship

from marketplace.data.database import Base
from marketplace.data.models._common import new_id


class CategoryModel(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    parent_id = Column(Integer, ForeignKey("categories.id"), nullable=True)
    is_controlled = Column(Boolean, nullable=False, default=False)


class ProductModel(Base):
    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=new_id)
    # NULL vendor = product sold by the platform itself
    vendor_id = Column(String(36), ForeignKey("users.id"), nullable=True, index=True)
    name = Column(String, nullable=False)
    sku = Column(String, nullable=True)
    base_price = Column(Numeric(12, 2), nullable=False)
    commission_percent = Column(Numeric(5, 2), nullable=True)
    packing_charge = Column(Numeric(12, 2), nullable=False, default=0)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    vendor = relationship("UserModel")
    category = relationship("CategoryModel")

    def snapshot(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "sku": self.sku,
            "vendor_id": self.vendor_id,
            "category_id": self.category_id,
            "base_price": str(self.base_price),
            "packing_charge": str(self.packing_charge or 0),
        }
