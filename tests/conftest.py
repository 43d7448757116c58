import json
import os

# must be set before marketplace.utils.settings is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["HOME_JURISDICTION_ALIASES"] = "AE,UAE,UNITED ARAB EMIRATES"
os.environ["CURRENCY"] = "AED"
os.environ["PLATFORM_ACCOUNT_ID"] = "platform"
os.environ["SHIPPING_SERVICE_URL"] = ""
os.environ["CRON_SECRET"] = "cron-secret"

from decimal import Decimal

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from marketplace.data import models  # noqa: F401
from marketplace.data.database import Base
from marketplace.data.models import (
    AddressModel,
    CartItemModel,
    CartModel,
    CategoryModel,
    PlatformSettingModel,
    ProductModel,
    UserModel,
)
from marketplace.domain.errors import PaymentGatewayError
from marketplace.services.container import Services
from marketplace.services.payment_gateway import GatewaySession, GatewaySessionState


@pytest.fixture(scope="session")
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # let SQLAlchemy, not pysqlite, control BEGIN so SAVEPOINTs work
    @event.listens_for(engine, "connect")
    def _connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def connection(engine):
    conn = engine.connect()
    trans = conn.begin()
    yield conn
    trans.rollback()
    conn.close()


@pytest.fixture
def session_factory(connection):
    # every session joins the outer test transaction; commits become savepoint releases
    def factory():
        return Session(
            bind=connection,
            join_transaction_mode="create_savepoint",
            autoflush=False,
            expire_on_commit=False,
        )

    return factory


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


class FakeGateway:
    def __init__(self):
        self.sessions = {}

    def create_checkout_session(self, line_items, currency, success_url, cancel_url, metadata, payer_email=None):
        session_id = f"cs_test_{len(self.sessions) + 1}"
        self.sessions[session_id] = {
            "line_items": list(line_items),
            "currency": currency.lower(),
            "metadata": dict(metadata),
            "payment_status": "unpaid",
            "payer_email": payer_email,
        }
        return GatewaySession(session_id=session_id, url=f"https://pay.example/{session_id}")

    def pay(self, session_id):
        self.sessions[session_id]["payment_status"] = "paid"

    def amount_total(self, session_id):
        return sum(li.unit_amount * li.quantity for li in self.sessions[session_id]["line_items"])

    def retrieve_session(self, session_id):
        if session_id not in self.sessions:
            raise PaymentGatewayError(f"No such session {session_id}")
        s = self.sessions[session_id]
        return GatewaySessionState(
            id=session_id,
            payment_status=s["payment_status"],
            amount_total=self.amount_total(session_id),
            currency=s["currency"],
            payment_intent_id=f"pi_{session_id}",
            card_brand="visa",
            card_last4="4242",
            card_funding="credit",
            payment_method_type="card",
            customer_details={"email": s["payer_email"]},
            receipt_url=f"https://receipts.example/{session_id}",
            metadata=dict(s["metadata"]),
        )

    def construct_event(self, payload, signature):
        if signature != "valid-signature":
            raise PaymentGatewayError("Invalid webhook signature")
        return json.loads(payload)


class FakeShipping:
    enabled = False

    def quote(self, vendor_keys, address):
        return {}


class FakeNotifier:
    def __init__(self):
        self.events = []

    def order_group_created(self, user_id, order_group_id, order_type, order_ids):
        self.events.append(("created", user_id, order_group_id, order_type, list(order_ids)))

    def payment_received(self, user_id, order_group_id):
        self.events.append(("paid", user_id, order_group_id))

    def status_changed(self, user_id, order_id, summary):
        self.events.append(("status", user_id, order_id, summary))


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def services(db, gateway, notifier):
    return Services(db, gateway=gateway, shipping=FakeShipping(), notifier=notifier)


class Factory:
    """Builds catalog, users and carts straight in the database."""

    def __init__(self, db):
        self.db = db
        self._category_id = 0

    def user(self, name="Buyer", country="AE", role="customer", **kw):
        user = UserModel(name=name, email=f"{name.lower().replace(' ', '.')}@example.com", country=country, role=role, **kw)
        self.db.add(user)
        self.db.commit()
        return user

    def address(self, user, country="AE", **kw):
        address = AddressModel(
            user_id=user.id,
            full_name=kw.pop("full_name", user.name),
            address_line1=kw.pop("address_line1", "1 Market Street"),
            city=kw.pop("city", "Dubai"),
            country=country,
            **kw,
        )
        self.db.add(address)
        self.db.commit()
        return address

    def category(self, name="General", controlled=False, parent=None):
        self._category_id += 1
        category = CategoryModel(
            id=self._category_id,
            name=name,
            is_controlled=controlled,
            parent_id=parent.id if parent else None,
        )
        self.db.add(category)
        self.db.commit()
        return category

    def product(self, vendor=None, base_price="100.00", commission="10", name=None, category=None, packing="0"):
        product = ProductModel(
            vendor_id=vendor.id if vendor else None,
            name=name or f"Product {base_price}",
            sku=f"SKU-{base_price}",
            base_price=Decimal(base_price),
            commission_percent=None if commission is None else Decimal(commission),
            packing_charge=Decimal(packing),
            category_id=category.id if category else None,
            is_active=True,
        )
        self.db.add(product)
        self.db.commit()
        return product

    def cart(self, user, *lines):
        cart = CartModel(user_id=user.id, status="active", version=1)
        cart.items = [CartItemModel(product_id=p.id, quantity=q) for p, q in lines]
        self.db.add(cart)
        self.db.commit()
        return cart

    def setting(self, key, value):
        self.db.merge(PlatformSettingModel(key=key, value=str(value)))
        self.db.commit()


@pytest.fixture
def make(db):
    return Factory(db)
