from decimal import Decimal

from marketplace.domain.statuses import OrderType
from marketplace.services.compliance_service import ComplianceLine, classify, is_category_controlled

HOME = ("AE", "UAE", "UNITED ARAB EMIRATES")


def decide(lines, buyer="AE", subtotal="100", threshold="10000"):
    return classify(lines, buyer, Decimal(subtotal), threshold=Decimal(threshold), home_aliases=HOME, currency="AED")


def test_plain_cart_is_direct():
    decision = decide([ComplianceLine("Gloves", False, "AE")])
    assert decision.type == OrderType.DIRECT
    assert decision.reasons == []


def test_high_value_threshold_is_inclusive():
    assert decide([], subtotal="9999.99").type == OrderType.DIRECT

    decision = decide([], subtotal="10000")
    assert decision.type == OrderType.REQUEST
    assert "10000 AED" in decision.reasons[0]


def test_controlled_goods_from_home_seller_always_need_approval():
    decision = decide([ComplianceLine("Body armour", True, "UAE")], buyer="DE")
    assert decision.requires_approval


def test_controlled_goods_imported_into_home_need_approval():
    decision = decide([ComplianceLine("Body armour", True, "US")], buyer="ae")
    assert decision.requires_approval
    assert "import" in decision.reasons[0]


def test_controlled_goods_between_foreign_parties_are_direct():
    assert decide([ComplianceLine("Body armour", True, "US")], buyer="DE").type == OrderType.DIRECT


def test_missing_jurisdiction_counts_as_foreign():
    assert decide([ComplianceLine("Body armour", True, None)], buyer="AE").requires_approval
    assert decide([ComplianceLine("Body armour", True, None)], buyer=None).type == OrderType.DIRECT


def test_every_firing_rule_is_reported():
    decision = decide(
        [ComplianceLine("Armour", True, "AE"), ComplianceLine("Helmet", True, "US")],
        subtotal="20000",
    )
    assert len(decision.reasons) == 3


class Category:
    def __init__(self, id, parent_id, is_controlled):
        self.id = id
        self.parent_id = parent_id
        self.is_controlled = is_controlled


def test_controlled_flag_is_inherited_from_ancestors():
    tree = {1: Category(1, None, True), 2: Category(2, 1, False), 3: Category(3, 2, False), 4: Category(4, None, False)}
    assert is_category_controlled(3, tree.get)
    assert not is_category_controlled(4, tree.get)
    assert not is_category_controlled(None, tree.get)


def test_category_cycle_terminates():
    tree = {1: Category(1, 2, False), 2: Category(2, 1, False)}
    assert not is_category_controlled(1, tree.get)


def test_service_routes_controlled_cart_to_request(services, make):
    buyer = make.user("Buyer", country="AE")
    vendor = make.user("Vendor", country="US", role="vendor")
    parent = make.category("Defence", controlled=True)
    child = make.category("Armour", parent=parent)
    product = make.product(vendor, "50.00", category=child)
    cart = make.cart(buyer, (product, 1))

    decision = services.compliance.check(buyer.id, cart.id)

    assert decision.type == OrderType.REQUEST
    assert decision.reasons


def test_controlled_platform_goods_are_treated_as_local_supply(services, make):
    buyer = make.user("Abroad", country="US")
    product = make.product(None, "50.00", category=make.category("Optics", controlled=True))
    cart = make.cart(buyer, (product, 1))

    decision = services.compliance.check(buyer.id, cart.id)

    assert decision.type == OrderType.REQUEST
    assert "local supplier" in decision.reasons[0]
