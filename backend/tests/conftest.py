"""
Pytest fixtures for RiceMart backend tests.

Provides test database setup, users with session tokens, catalog and
payment-account factories, and the test client.
"""

import io

import pytest

from ricemart import create_app
from ricemart.extensions import db
from ricemart.models import CompanyPaymentAccount, Product, StockEntry
from ricemart.services import session_service
from ricemart.services.auth_service import create_user


# Smallest valid PNG (1x1 transparent pixel)
PNG_BYTES = (
    b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\x00\x00\x00\x01\x00\x00\x00\x01\x08\x06\x00\x00\x00\x1f\x15\xc4\x89"
    b"\x00\x00\x00\rIDATx\x9cc\xf8\x0f\x00\x00\x01\x01\x00\x05\x18\xd8N\x00\x00\x00\x00IEND\xaeB`\x82"
)


@pytest.fixture(scope='session')
def app(tmp_path_factory):
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
        'UPLOAD_FOLDER': str(tmp_path_factory.mktemp('uploads')),
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        db.session.expunge_all()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(autouse=True)
def policy_config(app):
    """Reset policy settings that individual tests flip."""
    saved = {
        key: app.config.get(key)
        for key in (
            'COD_INITIAL_STATUS', 'RETURN_WINDOW_DAYS', 'CANCEL_ON_PAYMENT_REJECTION', 'LOW_STOCK_THRESHOLD',
            'LOGIN_MAX_FAILED_ATTEMPTS', 'LOGIN_LOCKOUT_WINDOW_MINUTES', 'LOGIN_LOCKOUT_MINUTES',
        )
    }
    yield app.config
    app.config.update(saved)


@pytest.fixture(scope='function')
def customer(db_session):
    return create_user(email="thida@example.com", password="Password123", name="Thida", phone="09-111111")


@pytest.fixture(scope='function')
def other_customer(db_session):
    return create_user(email="kyaw@example.com", password="Password123", name="Kyaw")


@pytest.fixture(scope='function')
def admin(db_session):
    return create_user(email="admin@ricemart.local", password="Password123", name="Shop Admin", role="admin")


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


def headers_for(user) -> dict:
    _session, token = session_service.create_session(user.id)
    return auth_headers(token)


@pytest.fixture(scope='function')
def customer_headers(customer):
    return headers_for(customer)


@pytest.fixture(scope='function')
def other_headers(other_customer):
    return headers_for(other_customer)


@pytest.fixture(scope='function')
def admin_headers(admin):
    return headers_for(admin)


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: product with optional opening stock."""
    def _make(price="1000.00", stock=None, **overrides):
        fields = {
            "name_en": "Paw San Rice 25kg",
            "name_my": "ပေါ်ဆန်း",
            "price": price,
            "images": [],
            "meta": {"variety": "Paw San", "weight": "25kg"},
        }
        fields.update(overrides)
        product = Product(**fields)
        db_session.add(product)
        db_session.flush()
        if stock:
            db_session.add(StockEntry(product_id=product.id, quantity=stock, purchase_price=0, note="Opening stock"))
        db_session.commit()
        return product

    return _make


@pytest.fixture(scope='function')
def company_account(db_session):
    account = CompanyPaymentAccount(
        name="KBZ Pay (Main)",
        type="KBZ_PAY",
        account_name="RiceMart Trading",
        account_number="09-000000001",
        details={"phone": "09-000000001"},
    )
    db_session.add(account)
    db_session.commit()
    return account


@pytest.fixture
def png_file():
    """Factory returning a fresh (file, name, mimetype) tuple for multipart requests."""
    def _make(name="proof.png"):
        return (io.BytesIO(PNG_BYTES), name, "image/png")

    return _make


def order_payload(product_id, quantity=1, *, payment_type="COD", **extra):
    payload = {
        "items": [{"product_id": product_id, "quantity": quantity}],
        "shipping_address": {"name": "Thida", "phone": "09-111111", "address": "12 Bogyoke Rd", "city": "Yangon"},
        "payment_type": payment_type,
    }
    payload.update(extra)
    return payload
