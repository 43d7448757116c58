from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import update

from marketplace.data.models import CartModel
from marketplace.domain.errors import ConcurrencyConflict, NotFoundError, ValidationError
from marketplace.tasks.expire import expire_carts


@pytest.fixture
def catalog(make):
    vendor = make.user("Vendor", role="vendor")
    return {
        "widget": make.product(vendor, "100.00", name="Widget"),
        "gadget": make.product(vendor, "50.00", name="Gadget"),
    }


def quantities(cart):
    return {line["product_id"]: line["quantity"] for line in cart["items"]}


def test_user_gets_one_active_cart(services, make):
    user = make.user("Buyer")

    first = services.carts.get_or_create_cart(user_id=user.id)
    second = services.carts.get_or_create_cart(user_id=user.id)

    assert first["cart_id"] == second["cart_id"]
    assert first["status"] == "active"
    assert first["expires_at"] is not None


def test_cart_needs_an_owner(services):
    with pytest.raises(ValidationError):
        services.carts.get_or_create_cart()


def test_adding_the_same_product_adds_up(services, make, catalog):
    user = make.user("Buyer")
    cart = services.carts.get_or_create_cart(user_id=user.id)

    services.carts.add_product(cart["cart_id"], catalog["widget"].id, 1, user_id=user.id)
    result = services.carts.add_product(cart["cart_id"], catalog["widget"].id, 2, user_id=user.id)

    assert quantities(result) == {catalog["widget"].id: 3}
    assert result["version"] == cart["version"] + 2
    assert result["total"] == Decimal("330.00")


def test_customer_discount_is_applied_to_cart_prices(services, make, catalog):
    user = make.user("Buyer", discount_percent=Decimal("10"))
    cart = services.carts.get_or_create_cart(user_id=user.id)

    result = services.carts.add_product(cart["cart_id"], catalog["widget"].id, 1, user_id=user.id)

    assert result["items"][0]["price"] == Decimal("99.00")


def test_update_and_remove(services, make, catalog):
    user = make.user("Buyer")
    cart_id = services.carts.get_or_create_cart(user_id=user.id)["cart_id"]
    services.carts.add_product(cart_id, catalog["widget"].id, 1, user_id=user.id)
    services.carts.add_product(cart_id, catalog["gadget"].id, 1, user_id=user.id)

    result = services.carts.update_quantity(cart_id, catalog["gadget"].id, 4, user_id=user.id)
    assert quantities(result)[catalog["gadget"].id] == 4

    result = services.carts.remove_product(cart_id, catalog["widget"].id, user_id=user.id)
    assert quantities(result) == {catalog["gadget"].id: 4}

    with pytest.raises(NotFoundError):
        services.carts.remove_product(cart_id, catalog["widget"].id, user_id=user.id)
    with pytest.raises(ValidationError):
        services.carts.update_quantity(cart_id, catalog["gadget"].id, 0, user_id=user.id)


def test_foreign_cart_is_forbidden(services, make, catalog):
    owner = make.user("Owner")
    cart_id = services.carts.get_or_create_cart(user_id=owner.id)["cart_id"]

    with pytest.raises(PermissionError):
        services.carts.add_product(cart_id, catalog["widget"].id, 1, user_id="intruder")


def test_stale_version_is_a_conflict(services, make, catalog, db):
    user = make.user("Buyer")
    cart_id = services.carts.get_or_create_cart(user_id=user.id)["cart_id"]
    # another request bumped the version behind this session's back
    db.execute(
        update(CartModel)
        .where(CartModel.id == cart_id)
        .values(version=CartModel.version + 1)
        .execution_options(synchronize_session=False)
    )
    db.commit()

    with pytest.raises(ConcurrencyConflict):
        services.carts.add_product(cart_id, catalog["widget"].id, 1, user_id=user.id)


def test_converted_cart_is_read_only(services, make, catalog):
    user = make.user("Buyer")
    cart = make.cart(user, (catalog["widget"], 1))
    services.orders.convert_cart_to_orders(user.id, cart.id, "11111111")

    with pytest.raises(ValidationError):
        services.carts.add_product(cart.id, catalog["gadget"].id, 1, user_id=user.id)


def test_guest_cart_is_adopted_on_login(services, make, catalog):
    user = make.user("Buyer")
    guest = services.carts.get_or_create_cart(session_token="browser-1")
    services.carts.add_product(guest["cart_id"], catalog["widget"].id, 1, session_token="browser-1")

    merged = services.carts.merge_guest_cart("browser-1", user.id)

    assert merged["cart_id"] == guest["cart_id"]
    assert merged["user_id"] == user.id


def test_guest_cart_is_merged_into_existing_cart(services, make, catalog, db):
    user = make.user("Buyer")
    own = services.carts.get_or_create_cart(user_id=user.id)["cart_id"]
    services.carts.add_product(own, catalog["widget"].id, 1, user_id=user.id)
    guest = services.carts.get_or_create_cart(session_token="browser-2")["cart_id"]
    services.carts.add_product(guest, catalog["widget"].id, 2, session_token="browser-2")
    services.carts.add_product(guest, catalog["gadget"].id, 1, session_token="browser-2")

    merged = services.carts.merge_guest_cart("browser-2", user.id)

    assert merged["cart_id"] == own
    assert quantities(merged) == {catalog["widget"].id: 3, catalog["gadget"].id: 1}
    db.expire_all()
    assert db.get(CartModel, guest).status == "abandoned"


def test_expired_carts_are_abandoned(make, catalog, db, session_factory):
    user = make.user("Buyer")
    stale = make.cart(user, (catalog["widget"], 1))
    fresh = make.cart(make.user("Other"), (catalog["widget"], 1))
    now = datetime.now(timezone.utc)
    stale.expires_at = now - timedelta(hours=1)
    fresh.expires_at = now + timedelta(hours=1)
    db.commit()

    assert expire_carts(session_factory, now) == 1

    db.expire_all()
    assert db.get(CartModel, stale.id).status == "abandoned"
    assert db.get(CartModel, stale.id).version == 2
    assert db.get(CartModel, fresh.id).status == "active"
