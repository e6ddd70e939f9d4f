"""
Pytest fixtures for shopstock backend tests.

Provides a fresh in-memory database per test, users/shops/products, caller
contexts, bearer-token headers and recording side-effect sinks.
"""

import pytest

from shopstock import create_app
from shopstock.extensions import db
from shopstock.models import (
    User,
    Shop,
    Product,
    ROLE_ADMIN,
    ROLE_SHOP_OWNER,
)
from shopstock.services.notification_service import InMemoryBroadcaster, init_sinks
from shopstock.services.session_service import CallerContext, create_session
from shopstock.services.shop_access_service import assign_manager


TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'RESTOCK_RETRY_BACKOFF': 0,
}


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    def notify(self, target, payload):
        self.sent.append((target, payload))

    def targets(self, type_=None):
        return [t for t, p in self.sent if type_ is None or p["type"] == type_]


class RecordingAuditor:
    def __init__(self):
        self.events = []

    def record(self, event):
        self.events.append(event)

    def actions(self):
        return [e["action"] for e in self.events]


@pytest.fixture(scope='function')
def app():
    """Create application with a fresh in-memory database."""
    app = create_app(TEST_CONFIG)

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    yield db.session
    db.session.rollback()


@pytest.fixture(scope='function')
def sinks(app):
    """Swap the database sinks for recording ones."""
    return init_sinks(
        app,
        notifier=RecordingNotifier(),
        auditor=RecordingAuditor(),
        broadcaster=InMemoryBroadcaster(),
    )


@pytest.fixture(scope='function')
def admin(db_session):
    user = User(username="admin", email="admin@factory.test", name="Factory Admin", role=ROLE_ADMIN)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def shop(db_session):
    shop = Shop(name="North Shop", location="North St")
    db_session.add(shop)
    db_session.commit()
    return shop


@pytest.fixture(scope='function')
def other_shop(db_session):
    shop = Shop(name="South Shop", location="South St")
    db_session.add(shop)
    db_session.commit()
    return shop


@pytest.fixture(scope='function')
def owner(db_session, shop):
    """Shop_Owner managing `shop`."""
    user = User(username="owner", email="owner@north.test", name="North Owner", role=ROLE_SHOP_OWNER)
    db_session.add(user)
    db_session.flush()
    assign_manager(user_id=user.id, shop_id=shop.id)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def other_owner(db_session, other_shop):
    """Shop_Owner managing `other_shop` only."""
    user = User(username="other", email="owner@south.test", name="South Owner", role=ROLE_SHOP_OWNER)
    db_session.add(user)
    db_session.flush()
    assign_manager(user_id=user.id, shop_id=other_shop.id)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def product(db_session):
    """Factory product: 100 in stock, low-stock level 20."""
    product = Product(sku="COLA-330", name="Cola 330ml", total_stock=100, min_stock_level=20, unit_price_cents=150)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def admin_caller(admin):
    return CallerContext.for_user(admin)


@pytest.fixture(scope='function')
def owner_caller(owner):
    return CallerContext.for_user(owner)


@pytest.fixture(scope='function')
def other_owner_caller(other_owner):
    return CallerContext.for_user(other_owner)


def auth_headers_for(user) -> dict:
    """Issue a session token for user and return Authorization headers."""
    _, token = create_session(user.id)
    db.session.commit()
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(admin):
    return auth_headers_for(admin)


@pytest.fixture(scope='function')
def owner_headers(owner):
    return auth_headers_for(owner)


@pytest.fixture(scope='function')
def other_owner_headers(other_owner):
    return auth_headers_for(other_owner)
