from sqlalchemy import Column, String, Numeric, DateTime, ForeignKey, Boolean
from sqlalchemy.orm import relationship

from marketplace.data.database import Base
from marketplace.data.models._common import new_id, utcnow


class UserModel(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String, nullable=False)
    email = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    company_name = Column(String, nullable=True)
    # jurisdiction of the registered business, ISO code or country name
    country = Column(String, nullable=True)
    discount_percent = Column(Numeric(5, 2), nullable=False, default=0)
    role = Column(String(20), nullable=False, default="customer")  # customer, vendor, admin
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    addresses = relationship("AddressModel", back_populates="user")


class AddressModel(Base):
    __tablename__ = "addresses"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    full_name = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    address_line1 = Column(String, nullable=True)
    address_line2 = Column(String, nullable=True)
    city = Column(String, nullable=True)
    state = Column(String, nullable=True)
    postal_code = Column(String, nullable=True)
    country = Column(String, nullable=True)
    is_default = Column(Boolean, nullable=False, default=False)

    user = relationship("UserModel", back_populates="addresses")

    def snapshot(self) -> dict:
        return {
            "address_id": self.id,
            "full_name": self.full_name,
            "phone": self.phone,
            "address_line1": self.address_line1,
            "address_line2": self.address_line2,
            "city": self.city,
            "state": self.state,
            "postal_code": self.postal_code,
            "country": self.country,
        }
