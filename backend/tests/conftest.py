"""
Pytest fixtures for vacadmin backend tests.

Provides the app on an in-memory database, per-test table wipe, one user
per role, a small product catalog, and bearer-token headers.
"""

import pytest
from vacadmin import create_app
from vacadmin.extensions import db
from vacadmin.models import Product, User
from vacadmin.permissions import Role
from vacadmin.services import session_service


TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'BCRYPT_ROUNDS': 4,
    'DB_RETRY_ATTEMPTS': 3,
}


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
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
    """Fresh data for each test; schema is kept."""
    app.config['STOCK_IN_OWNER_AUTO_APPROVE'] = False
    for table in reversed(db.metadata.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    db.session.rollback()


def _make_user(session, username: str, role: str, is_active: bool = True) -> User:
    user = User(
        username=username,
        name=username.title(),
        password_hash="not-a-real-hash",
        role=role,
        is_active=is_active,
    )
    session.add(user)
    session.commit()
    return user


@pytest.fixture(scope='function')
def owner(db_session):
    return _make_user(db_session, "owner", Role.OWNER)


@pytest.fixture(scope='function')
def mod(db_session):
    return _make_user(db_session, "mod", Role.MOD)


@pytest.fixture(scope='function')
def staff(db_session):
    return _make_user(db_session, "staff", Role.STAFF)


@pytest.fixture(scope='function')
def inactive_staff(db_session):
    return _make_user(db_session, "former", Role.STAFF, is_active=False)


def make_product(session, sku: str, *, stock: int, cost: int = 1000, price: int = 2000,
                 barcode: str | None = None, min_stock: int = 0) -> Product:
    product = Product(
        sku=sku,
        barcode=barcode,
        name=f"Part {sku}",
        sell_price_cents=price,
        cost_price_cents=cost,
        stock_qty=stock,
        min_stock=min_stock,
        is_active=True,
    )
    session.add(product)
    session.commit()
    return product


@pytest.fixture(scope='function')
def filter_product(db_session):
    """HEPA filter: stock 5, cost 10.00, price 20.00."""
    return make_product(db_session, "HEPA-01", stock=5, cost=1000, price=2000, barcode="8850001000011")


@pytest.fixture(scope='function')
def brush_product(db_session):
    """Roller brush: stock 10, cost 3.00, price 7.50."""
    return make_product(db_session, "BRUSH-02", stock=10, cost=300, price=750, barcode="8850001000028")


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


def headers_for(user: User) -> dict:
    _, token = session_service.create_session(user.id)
    return auth_headers(token)


@pytest.fixture(scope='function')
def owner_headers(owner):
    return headers_for(owner)


@pytest.fixture(scope='function')
def mod_headers(mod):
    return headers_for(mod)


@pytest.fixture(scope='function')
def staff_headers(staff):
    return headers_for(staff)


@pytest.fixture(scope='function')
def product_factory(db_session):
    def factory(sku: str, **kwargs) -> Product:
        return make_product(db_session, sku, **kwargs)
    return factory


@pytest.fixture(scope='function')
def login_headers(db_session):
    """Bearer headers for any user created inside a test."""
    return headers_for
