"""
Pytest fixtures for RetailPOS backend tests.

Provides an in-memory database, two tenants with one user per role, a
multi-unit product catalogue and bearer-token helpers for the test client.
"""

from datetime import timedelta

import pytest

from retailpos import create_app
from retailpos.config import TestConfig
from retailpos.extensions import db
from retailpos.models import Product, ProductUnitConversion, ProductUnitPrice, Tenant
from retailpos.permissions import Role
from retailpos.services import session_service
from retailpos.services.auth_service import create_user
from retailpos.services.customer_service import create_customer
from retailpos.time_utils import utcnow


PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

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
    db.session.remove()
    for table in reversed(db.metadata.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    db.session.rollback()


def _tenant(name: str) -> Tenant:
    tenant = Tenant(
        business_name=name,
        currency="TND",
        default_tax_rate=19.0,
        is_active=True,
        subscription_status="active",
        current_period_end=utcnow() + timedelta(days=30),
    )
    db.session.add(tenant)
    db.session.commit()
    return tenant


@pytest.fixture(scope='function')
def tenant_a(db_session):
    """Tenant A (first business)."""
    return _tenant("Epicerie A")


@pytest.fixture(scope='function')
def tenant_b(db_session):
    """Tenant B (second business)."""
    return _tenant("Epicerie B")


def make_user(tenant, role: str, email: str):
    return create_user(
        email=email,
        password=PASSWORD,
        first_name=role.replace("_", " ").title(),
        last_name="Tester",
        role=role,
        tenant_id=tenant.id if tenant is not None else None,
    )


@pytest.fixture(scope='function')
def users(tenant_a):
    """One user per tenant role in tenant A, keyed by role value."""
    return {
        role.value: make_user(tenant_a, role.value, f"{role.value}@a.test")
        for role in Role
        if role is not Role.SUPER_ADMIN
    }


@pytest.fixture(scope='function')
def admin_a(users):
    return users[Role.TENANT_ADMIN.value]


@pytest.fixture(scope='function')
def cashier_a(users):
    return users[Role.CASHIER.value]


@pytest.fixture(scope='function')
def admin_b(tenant_b):
    return make_user(tenant_b, Role.TENANT_ADMIN.value, "admin@b.test")


@pytest.fixture(scope='function')
def super_admin(db_session):
    return make_user(None, Role.SUPER_ADMIN.value, "root@platform.test")


def make_product(tenant, **overrides):
    """
    Insert a product directly. unit_conversions / unit_prices are
    {unit: value} mappings.
    """
    conversions = overrides.pop("unit_conversions", {})
    unit_prices = overrides.pop("unit_prices", {})
    fields = dict(
        tenant_id=tenant.id,
        name="Product",
        sku="SKU",
        base_unit="piece",
        unit_type="piece",
        price=1.0,
        cost=0.5,
        taxable=True,
        tax_rate=19.0,
        stock_quantity=0.0,
        min_stock=5.0,
        is_active=True,
        total_sold=0.0,
        total_revenue=0.0,
    )
    fields.update(overrides)
    product = Product(**fields)
    product.unit_conversions = [
        ProductUnitConversion(unit=unit, conversion_factor=factor) for unit, factor in conversions.items()
    ]
    product.unit_prices = [ProductUnitPrice(unit=unit, price=price) for unit, price in unit_prices.items()]
    product.refresh_stock_flags()
    db.session.add(product)
    db.session.commit()
    return product


@pytest.fixture(scope='function')
def rice(tenant_a):
    """Sold by the kg or the gram, 100 kg on hand."""
    return make_product(
        tenant_a,
        name="Rice",
        sku="RICE",
        base_unit="kg",
        unit_type="weight",
        price=2.5,
        cost=1.8,
        stock_quantity=100.0,
        unit_conversions={"g": 0.001},
    )


@pytest.fixture(scope='function')
def water(tenant_a):
    """Sold by the piece or the pack of 6 at a fixed pack price, 10% off per piece."""
    return make_product(
        tenant_a,
        name="Water",
        sku="WATER",
        price=0.9,
        cost=0.5,
        stock_quantity=60.0,
        min_stock=12.0,
        discount_type="percentage",
        discount_value=10.0,
        discount_is_active=True,
        unit_conversions={"pack": 6},
        unit_prices={"pack": 4.8},
    )


@pytest.fixture(scope='function')
def widget(tenant_a):
    """Untaxed, priced at 100 for round totals."""
    return make_product(
        tenant_a,
        name="Widget",
        sku="WIDGET",
        price=100.0,
        cost=60.0,
        taxable=False,
        tax_rate=0.0,
        stock_quantity=5.0,
        min_stock=1.0,
    )


@pytest.fixture(scope='function')
def product_b(tenant_b):
    return make_product(tenant_b, name="Foreign Tea", sku="TEA", price=3.0, stock_quantity=10.0)


@pytest.fixture(scope='function')
def credit_customer(tenant_a, admin_a):
    """Credit allowed up to 30."""
    return create_customer(
        tenant_id=tenant_a.id,
        payload={
            "first_name": "Hedi",
            "last_name": "Bouazizi",
            "phone": "+21620111222",
            "allow_credit": True,
            "credit_limit": 30,
        },
        user_id=admin_a.id,
    )


def token_for(user) -> str:
    """Open a session for `user` without going through /login."""
    _, token = session_service.create_session(user_id=user.id)
    return token


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


def headers_for(user) -> dict:
    return auth_headers(token_for(user))


def get_auth_token(client, email: str, password: str = PASSWORD) -> str | None:
    """Helper to get auth token through the login endpoint."""
    response = client.post('/api/auth/login', json={'email': email, 'password': password})
    if response.status_code == 200:
        return response.json.get('token')
    return None
