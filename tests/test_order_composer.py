from decimal import Decimal

import pytest
from sqlalchemy import func, select

from marketplace.data.models import CartModel, OrderGroupModel, OrderModel
from marketplace.domain.errors import ConcurrencyConflict, ValidationError
from marketplace.domain.statuses import OrderType
from marketplace.services.container import Services
from marketplace.services.order_service import ConversionOptions, OrderService
from marketplace.services.pricing import ShippingQuote


def order_count(db, group_id):
    return db.execute(select(func.count()).select_from(OrderModel).where(OrderModel.order_group_id == group_id)).scalar()


@pytest.fixture
def marketplace(make):
    buyer = make.user("Buyer", country="AE")
    address = make.address(buyer)
    vendor_a = make.user("Vendor A", country="AE", role="vendor")
    vendor_b = make.user("Vendor B", country="AE", role="vendor")
    return {
        "buyer": buyer,
        "address": address,
        "vendor_a": vendor_a,
        "vendor_b": vendor_b,
        "a": make.product(vendor_a, "100.00", name="Widget"),
        "b": make.product(vendor_b, "50.00", name="Gadget"),
        "own": make.product(None, "20.00", name="House brand"),
        "plain": make.product(vendor_a, "100.00", commission="0", name="Plain"),
    }


def test_single_vendor_cart_becomes_one_order_with_group_id(services, make, marketplace, notifier):
    cart = make.cart(marketplace["buyer"], (marketplace["plain"], 2))

    orders = services.orders.convert_cart_to_orders(
        marketplace["buyer"].id, cart.id, "12345678", ConversionOptions(address_id=marketplace["address"].id)
    )

    assert len(orders) == 1
    order = orders[0]
    assert order.order_id == "12345678"
    assert order.subtotal == Decimal("200.00")
    assert order.vat_amount == Decimal("10.00")
    assert order.total_amount == Decimal("210.00")
    assert order.payment_status == "pending"
    assert order.order_status == "order_received"
    assert order.shipment_details["city"] == "Dubai"
    assert [h.note for h in order.status_history] == ["Order placed"]
    assert services.db.get(CartModel, cart.id).status == "converted"
    assert notifier.events[0][0] == "created"


def test_multi_vendor_cart_is_split_per_seller(services, make, marketplace):
    m = marketplace
    cart = make.cart(m["buyer"], (m["a"], 1), (m["b"], 2), (m["own"], 1))

    orders = services.orders.convert_cart_to_orders(m["buyer"].id, cart.id, "20000001")

    assert len(orders) == 3
    codes = {o.order_id for o in orders}
    assert len(codes) == 3
    assert "20000001" not in codes
    assert all(o.order_group_id == "20000001" for o in orders)

    by_vendor = {o.vendor_id: o for o in orders}
    assert by_vendor[m["vendor_a"].id].subtotal == Decimal("110.00")
    assert by_vendor[m["vendor_a"].id].commission == Decimal("10.00")
    assert by_vendor[m["vendor_b"].id].total_amount == Decimal("115.50")
    assert by_vendor[None].commission == Decimal("0.00")
    assert by_vendor[None].total_amount == Decimal("23.10")
    assert sum(o.total_amount for o in orders) == Decimal("254.10")

    group = services.db.get(OrderGroupModel, "20000001")
    assert group.total_amount == Decimal("254.10")


def test_duplicate_products_are_consolidated(services, make, marketplace):
    m = marketplace
    cart = make.cart(m["buyer"], (m["plain"], 1), (m["plain"], 2))

    [order] = services.orders.convert_cart_to_orders(m["buyer"].id, cart.id, "30000001")

    assert len(order.items) == 1
    assert order.items[0].quantity == 3


def test_shipping_quotes_are_applied_per_vendor(services, make, marketplace):
    m = marketplace
    cart = make.cart(m["buyer"], (m["plain"], 1))

    [order] = services.orders.convert_cart_to_orders(
        m["buyer"].id,
        cart.id,
        "30000002",
        ConversionOptions(shipping_costs={m["vendor_a"].id: ShippingQuote(total=Decimal("20"), method="courier")}),
    )

    assert order.total_shipping == Decimal("20.00")
    assert order.shipping_method == "courier"
    assert order.total_amount == Decimal("126.00")


def test_second_conversion_returns_the_same_orders(services, make, marketplace):
    m = marketplace
    cart = make.cart(m["buyer"], (m["a"], 1), (m["b"], 1))

    first = services.orders.convert_cart_to_orders(m["buyer"].id, cart.id, "40000001")
    second = services.orders.convert_cart_to_orders(m["buyer"].id, cart.id, "40000001")

    assert {o.id for o in first} == {o.id for o in second}
    assert order_count(services.db, "40000001") == 2


def test_converted_cart_under_another_group_is_a_conflict(services, make, marketplace):
    m = marketplace
    cart = make.cart(m["buyer"], (m["plain"], 1))
    services.orders.convert_cart_to_orders(m["buyer"].id, cart.id, "50000001")

    with pytest.raises(ConcurrencyConflict):
        services.orders.convert_cart_to_orders(m["buyer"].id, cart.id, "50000002")

    assert order_count(services.db, "50000002") == 0


def test_losing_a_race_returns_the_winners_orders(services, make, marketplace, session_factory, notifier, monkeypatch):
    m = marketplace
    cart = make.cart(m["buyer"], (m["a"], 1), (m["b"], 1))
    winners = services.orders.convert_cart_to_orders(m["buyer"].id, cart.id, "60000001")

    # the loser read the cart before the winner committed
    cart.status = "active"
    services.db.commit()
    monkeypatch.setattr(OrderService, "_existing_for", lambda self, group_id, cart_id: [])

    loser_db = session_factory()
    loser = Services(
        loser_db, gateway=services.checkout.gateway, shipping=services.checkout.shipping, notifier=notifier
    ).orders
    result = loser.convert_cart_to_orders(m["buyer"].id, cart.id, "60000001")

    assert {o.id for o in result} == {o.id for o in winners}
    assert order_count(loser_db, "60000001") == 2
    loser_db.close()


def test_empty_cart_is_rejected_and_left_active(services, make, marketplace):
    cart = make.cart(marketplace["buyer"])

    with pytest.raises(ValidationError):
        services.orders.convert_cart_to_orders(marketplace["buyer"].id, cart.id, "70000001")

    assert services.db.get(CartModel, cart.id).status == "active"
    assert services.db.get(OrderGroupModel, "70000001") is None


def test_missing_cart_is_rejected(services, marketplace):
    with pytest.raises(ValidationError):
        services.orders.convert_cart_to_orders(marketplace["buyer"].id, "no-such-cart", "70000002")


def test_other_users_cart_is_forbidden(services, make, marketplace):
    other = make.user("Other")
    cart = make.cart(other, (marketplace["plain"], 1))

    with pytest.raises(PermissionError):
        services.orders.convert_cart_to_orders(marketplace["buyer"].id, cart.id, "70000003")


def test_request_orders_start_without_payment(services, make, marketplace):
    cart = make.cart(marketplace["buyer"], (marketplace["plain"], 1))

    [order] = services.orders.convert_cart_to_orders(
        marketplace["buyer"].id, cart.id, "80000001", ConversionOptions(order_type=OrderType.REQUEST)
    )

    assert order.type == "request"
    assert order.payment_status is None
    assert order.status_history[0].note == "Purchase request submitted"
