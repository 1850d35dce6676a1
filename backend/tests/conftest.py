"""
Pytest fixtures for tierflow backend tests.

Each test gets its own SQLite file so threaded tests can open several
connections against the same database. Tenants:

    manufacturer org (admin, catalog)
      └── client org (client user)
    other org (other_admin, other_client)   # separate tree
"""

import pytest

from tierflow import create_app
from tierflow.extensions import db
from tierflow.models import Organization, User, ManufacturerProduct
from tierflow.models.auth import ROLE_ADMIN, ROLE_CLIENT, ROLE_DEALER, ROLE_SUPERADMIN
from tierflow.services import catalog_service, session_service
from tierflow.services.auth_service import hash_password


PASSWORD = "Password123!"


def make_app(db_path):
    return create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f'sqlite:///{db_path}',
        'BCRYPT_ROUNDS': 4,
        'TRANSACTION_RETRY_ATTEMPTS': 10,
        'TRANSACTION_RETRY_BACKOFF': 0.01,
        'TRANSACTION_TIMEOUT_SECONDS': 15.0,
        'LOG_LEVEL': 'WARNING',
    })


@pytest.fixture(scope='function')
def app(tmp_path):
    """Create application for testing, backed by a fresh SQLite file."""
    app = make_app(tmp_path / "tierflow-test.sqlite3")

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    yield db.session
    db.session.rollback()


def _make_org(db_session, name, code, parent=None):
    org = Organization(name=name, code=code, parent_org_id=parent.id if parent else None, is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


def _make_user(db_session, org, username, role):
    user = User(
        org_id=org.id,
        username=username,
        email=f"{username}@example.com",
        password_hash=hash_password(PASSWORD),
        role=role,
        is_active=True,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def manufacturer_org(db_session):
    return _make_org(db_session, "Acme Manufacturing", "ACME")


@pytest.fixture(scope='function')
def client_org(db_session, manufacturer_org):
    return _make_org(db_session, "Acme Retail Partner", "ACME-R1", parent=manufacturer_org)


@pytest.fixture(scope='function')
def other_org(db_session):
    return _make_org(db_session, "Beta Industries", "BETA")


@pytest.fixture(scope='function')
def admin(db_session, manufacturer_org):
    return _make_user(db_session, manufacturer_org, "admin", ROLE_ADMIN)


@pytest.fixture(scope='function')
def client_user(db_session, client_org):
    return _make_user(db_session, client_org, "client", ROLE_CLIENT)


@pytest.fixture(scope='function')
def second_client(db_session, client_org):
    return _make_user(db_session, client_org, "client2", ROLE_CLIENT)


@pytest.fixture(scope='function')
def dealer(db_session, client_org):
    return _make_user(db_session, client_org, "dealer", ROLE_DEALER)


@pytest.fixture(scope='function')
def other_admin(db_session, other_org):
    return _make_user(db_session, other_org, "other_admin", ROLE_ADMIN)


@pytest.fixture(scope='function')
def other_client(db_session, other_org):
    return _make_user(db_session, other_org, "other_client", ROLE_CLIENT)


@pytest.fixture(scope='function')
def superadmin(db_session, other_org):
    return _make_user(db_session, other_org, "root", ROLE_SUPERADMIN)


@pytest.fixture(scope='function')
def product(db_session, manufacturer_org, admin):
    """Manufacturer product with 10 units in stock."""
    return catalog_service.create_manufacturer_product(
        org_id=manufacturer_org.id,
        sku="WID-001",
        name="Widget",
        price_cents=5000,
        stock=10,
        category="Hardware",
        loyalty_points=5,
        created_by_user_id=admin.id,
    )


@pytest.fixture(scope='function')
def other_product(db_session, other_org):
    return catalog_service.create_manufacturer_product(
        org_id=other_org.id,
        sku="BETA-001",
        name="Beta Gadget",
        price_cents=1500,
        stock=50,
    )


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory for extra manufacturer products."""
    def _make(org, sku, name="Widget", stock=10, price_cents=5000, **kwargs) -> ManufacturerProduct:
        return catalog_service.create_manufacturer_product(
            org_id=org.id, sku=sku, name=name, price_cents=price_cents, stock=stock, **kwargs,
        )
    return _make


@pytest.fixture(scope='function')
def auth_headers(db_session):
    """Create a session for a user and return Authorization headers."""
    def _headers(user) -> dict:
        _, token = session_service.create_session(user.id)
        return {'Authorization': f'Bearer {token}'}
    return _headers
