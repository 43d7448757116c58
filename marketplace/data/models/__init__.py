# import every model so SQLAlchemy registers it on Base.metadata

from marketplace.data.models.user import UserModel, AddressModel
from marketplace.data.models.catalog import CategoryModel, ProductModel
from marketplace.data.models.platform_setting import PlatformSettingModel
from marketplace.data.models.cart import CartModel
from marketplace.data.models.cart_item import CartItemModel
from marketplace.data.models.order import (
    OrderGroupModel,
    OrderModel,
    OrderItemModel,
    OrderStatusHistoryModel,
    OrderPaymentAttemptModel,
)
from marketplace.data.models.ledger import WalletModel, TransactionModel, PayoutRequestModel
from marketplace.data.models.invoice import InvoiceModel

__all__ = [
    "UserModel",
    "AddressModel",
    "CategoryModel",
    "ProductModel",
    "PlatformSettingModel",
    "CartModel",
    "CartItemModel",
    "OrderGroupModel",
    "OrderModel",
    "OrderItemModel",
    "OrderStatusHistoryModel",
    "OrderPaymentAttemptModel",
    "WalletModel",
    "TransactionModel",
    "PayoutRequestModel",
    "InvoiceModel",
]
