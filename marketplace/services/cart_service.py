# marketplace/services/cart_service.py
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from marketplace.data.models.cart import CartModel
from marketplace.data.models.cart_item import CartItemModel
from marketplace.domain.errors import ConcurrencyConflict, NotFoundError, ValidationError
from marketplace.domain.statuses import CartStatus
from marketplace.repos.cart_repo import CartRepo
from marketplace.repos.catalog_repo import CatalogRepo
from marketplace.services.pricing import ZERO, customer_unit_price, money
from marketplace.services.settings_service import SettingsService
from marketplace.utils.logging import get_logger
from marketplace.utils.settings import CART_TTL_SECONDS

logger = get_logger(__name__)


class CartService:
    """
    Cart use cases. Commands (create, add, update, remove, merge) bump the
    cart version with an optimistic update; queries only read.
    """

    def __init__(self, db: Session, settings: SettingsService):
        self.repo = CartRepo(db)
        self.catalog = CatalogRepo(db)
        self.settings = settings

    def _expiry(self) -> datetime:
        return datetime.now(timezone.utc) + timedelta(seconds=CART_TTL_SECONDS)

    def _owned(self, cart_id: str, user_id: Optional[str], session_token: Optional[str] = None) -> CartModel:
        cart = self.repo.get_cart(cart_id)
        if not cart:
            raise NotFoundError(f"Cart {cart_id} not found")
        if cart.user_id is not None:
            if cart.user_id != user_id:
                raise PermissionError("Cart belongs to another user")
        elif not session_token or cart.session_token != session_token:
            raise PermissionError("Cart belongs to another session")
        return cart

    def _mutable(self, cart_id: str, user_id: Optional[str], session_token: Optional[str]) -> CartModel:
        cart = self._owned(cart_id, user_id, session_token)
        if cart.status != CartStatus.ACTIVE.value:
            raise ValidationError(f"Cart {cart_id} is {cart.status} and can no longer be changed")
        return cart

    def _bump(self, cart: CartModel, **changes):
        # UPDATE carts SET version = v + 1 ... WHERE id = :id AND version = v
        rowcount = self.repo.update_cart_version(
            cart_id=cart.id,
            old_version=cart.version,
            new_data={"version": cart.version + 1, "expires_at": self._expiry(), **changes},
        )
        if rowcount == 0:
            self.repo.rollback()
            raise ConcurrencyConflict(f"Cart {cart.id} was modified by another request")

    # query
    def get_cart(
        self, cart_id: str, user_id: Optional[str] = None, session_token: Optional[str] = None
    ) -> Dict[str, Any]:
        cart = self._owned(cart_id, user_id, session_token)
        items = self.repo.get_cart_items(cart.id)
        products = self.catalog.get_products(i.product_id for i in items)

        discount = Decimal("0")
        if cart.user_id:
            user = self.catalog.get_user(cart.user_id)
            discount = Decimal(str(user.discount_percent or 0)) if user else discount
        fallback = self.settings.commission_percent()

        lines = []
        for item in items:
            product = products.get(item.product_id)
            if product is None:
                continue
            commission = product.commission_percent if product.commission_percent is not None else fallback
            price = customer_unit_price(product.base_price, commission, discount)
            lines.append(
                {
                    "product_id": item.product_id,
                    "name": product.name,
                    "vendor_id": product.vendor_id,
                    "quantity": item.quantity,
                    "price": price,
                    "available": bool(product.is_active),
                }
            )

        return {
            "cart_id": cart.id,
            "user_id": cart.user_id,
            "status": cart.status,
            "version": cart.version,
            "items": lines,
            "total": sum((money(l["price"] * l["quantity"]) for l in lines), ZERO),
            "expires_at": cart.expires_at,
        }

    # commands
    def get_or_create_cart(self, user_id: Optional[str] = None, session_token: Optional[str] = None) -> Dict[str, Any]:
        if not user_id and not session_token:
            raise ValidationError("A user id or a guest session token is required")

        existing = (
            self.repo.get_active_cart_by_user(user_id) if user_id else self.repo.get_active_cart_by_token(session_token)
        )
        if existing:
            return self.get_cart(existing.id, user_id, session_token)

        created = self.repo.create_cart(
            CartModel(
                user_id=user_id,
                session_token=None if user_id else session_token,
                status=CartStatus.ACTIVE.value,
                version=1,
                expires_at=self._expiry(),
            )
        )
        self.repo.commit()
        logger.info(f"Created cart {created.id} for {'user ' + user_id if user_id else 'guest session'}")
        return self.get_cart(created.id, user_id, session_token)

    def add_product(
        self,
        cart_id: str,
        product_id: str,
        quantity: int,
        user_id: Optional[str] = None,
        session_token: Optional[str] = None,
    ) -> Dict[str, Any]:
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")

        cart = self._mutable(cart_id, user_id, session_token)
        product = self.catalog.get_product(product_id)
        if not product or not product.is_active:
            raise NotFoundError(f"Product {product_id} is not available")

        try:
            item = self.repo.get_cart_item(cart.id, product_id)
            if item:
                logger.info(
                    f"Product {product_id} already in cart {cart.id}, quantity {item.quantity} -> {item.quantity + quantity}"
                )
                item.quantity += quantity
            else:
                self.repo.add_cart_item(CartItemModel(cart_id=cart.id, product_id=product_id, quantity=quantity))
            self._bump(cart)
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        logger.info(f"Product {product_id} x{quantity} added to cart {cart.id}")
        return self.get_cart(cart.id, user_id, session_token)

    def update_quantity(
        self,
        cart_id: str,
        product_id: str,
        quantity: int,
        user_id: Optional[str] = None,
        session_token: Optional[str] = None,
    ) -> Dict[str, Any]:
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1, remove the product instead")

        cart = self._mutable(cart_id, user_id, session_token)
        try:
            item = self.repo.get_cart_item(cart.id, product_id)
            if not item:
                raise NotFoundError(f"Product {product_id} is not in cart {cart.id}")
            item.quantity = quantity
            self._bump(cart)
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise
        return self.get_cart(cart.id, user_id, session_token)

    def remove_product(
        self,
        cart_id: str,
        product_id: str,
        user_id: Optional[str] = None,
        session_token: Optional[str] = None,
    ) -> Dict[str, Any]:
        cart = self._mutable(cart_id, user_id, session_token)
        try:
            if not self.repo.delete_cart_item(cart.id, product_id):
                raise NotFoundError(f"Product {product_id} is not in cart {cart.id}")
            self._bump(cart)
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        logger.info(f"Product {product_id} removed from cart {cart.id}")
        return self.get_cart(cart.id, user_id, session_token)

    def merge_guest_cart(self, session_token: str, user_id: str) -> Dict[str, Any]:
        """Fold the guest cart of this browser session into the user's active cart."""
        guest = self.repo.get_active_cart_by_token(session_token)
        if not guest:
            return self.get_or_create_cart(user_id=user_id)

        target = self.repo.get_active_cart_by_user(user_id)
        try:
            if not target:
                # adopt the guest cart as is
                self._bump(guest, user_id=user_id, session_token=None)
                self.repo.commit()
                logger.info(f"Guest cart {guest.id} adopted by user {user_id}")
                return self.get_cart(guest.id, user_id)

            for item in self.repo.get_cart_items(guest.id):
                existing = self.repo.get_cart_item(target.id, item.product_id)
                if existing:
                    existing.quantity += item.quantity
                else:
                    self.repo.add_cart_item(
                        CartItemModel(cart_id=target.id, product_id=item.product_id, quantity=item.quantity)
                    )
            self._bump(guest, status=CartStatus.ABANDONED.value)
            self._bump(target)
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        logger.info(f"Guest cart {guest.id} merged into cart {target.id} of user {user_id}")
        return self.get_cart(target.id, user_id)
