import os
import tempfile
import uuid
from decimal import Decimal

import pytest

# Throw-away SQLite database unless a test database is provided (e.g. by Docker)
os.environ.setdefault(
    'TEST_DATABASE_URL',
    'sqlite:///' + os.path.join(tempfile.gettempdir(), f'storefront_test_{os.getpid()}.db')
)

from storefront import create_app
from storefront.database import Base, get_session, get_engine
from storefront.models import (
    AppUser, UserRole, Address, Product, ProductVariant, CartItem,
    Coupon, CouponType, ShippingMethod
)


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing."""
    app = create_app('config.TestConfig')
    ctx = app.app_context()
    ctx.push()
    Base.metadata.create_all(bind=get_engine())
    yield app
    get_session().remove()
    Base.metadata.drop_all(bind=get_engine())
    ctx.pop()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app):
    """Database session; every table is emptied after the test."""
    session = get_session()
    yield session
    session.rollback()
    for table in reversed(Base.metadata.sorted_tables):
        session.execute(table.delete())
    session.commit()
    session.remove()


def _make_user(session, role=UserRole.CUSTOMER.value, name='Test User'):
    suffix = str(uuid.uuid4())[:8]
    user = AppUser(email=f'user-{suffix}@test.com', name=name, role=role, active=True)
    user.set_password('password123')
    session.add(user)
    session.commit()
    return user


@pytest.fixture
def make_user(session):
    """Factory for additional customers."""
    def factory(**kwargs):
        return _make_user(session, **kwargs)
    return factory


@pytest.fixture
def user(session):
    """Customer placing orders."""
    return _make_user(session, name='Jane Shopper')


@pytest.fixture
def other_user(session):
    """Second customer for isolation tests."""
    return _make_user(session, name='John Other')


@pytest.fixture
def admin(session):
    """Store administrator."""
    return _make_user(session, role=UserRole.ADMIN.value, name='Store Admin')


@pytest.fixture
def make_product(session):
    """Factory for active products."""
    def factory(name='Widget', price='10.00', stock=10, **kwargs):
        suffix = str(uuid.uuid4())[:8]
        product = Product(
            name=name,
            slug=f'{name.lower().replace(" ", "-")}-{suffix}',
            sku=f'SKU-{suffix}',
            price=Decimal(price),
            stock=stock,
            **kwargs
        )
        session.add(product)
        session.commit()
        return product
    return factory


@pytest.fixture
def product(make_product):
    """Product priced at 25.00 with 10 units in stock."""
    return make_product(name='Classic Tee', price='25.00', stock=10)


@pytest.fixture
def variant(session, product):
    """Priced variant of `product` with 3 units in stock."""
    variant = ProductVariant(
        product_id=product.id,
        name='Large',
        sku=f'{product.sku}-L',
        price=Decimal('30.00'),
        stock=3,
        is_active=True
    )
    session.add(variant)
    session.commit()
    return variant


@pytest.fixture
def add_cart_line(session):
    """Put a line in a user's cart directly."""
    def factory(user, product, quantity=1, variant=None):
        item = CartItem(
            user_id=user.id,
            product_id=product.id,
            variant_id=variant.id if variant else None,
            quantity=quantity
        )
        session.add(item)
        session.commit()
        return item
    return factory


@pytest.fixture
def make_coupon(session):
    """Factory for active coupons."""
    def factory(code=None, type=CouponType.PERCENTAGE, value='10', **kwargs):
        coupon = Coupon(
            code=code or f'SAVE{str(uuid.uuid4())[:6].upper()}',
            type=type,
            value=Decimal(value),
            **{'is_active': True, **kwargs}
        )
        session.add(coupon)
        session.commit()
        return coupon
    return factory


@pytest.fixture
def shipping_method(session):
    """Active shipping method."""
    method = ShippingMethod(name='Express', description='1-2 business days', price=Decimal('14.99'), is_active=True)
    session.add(method)
    session.commit()
    return method


@pytest.fixture
def address(session, user):
    """Address in the customer's address book."""
    address = Address(
        user_id=user.id,
        full_name='Jane Shopper',
        street='1 Main St',
        city='Springfield',
        state='IL',
        postal_code='62701',
        country='US',
        is_default=True
    )
    session.add(address)
    session.commit()
    return address


def login(client, user):
    """Inject an authenticated user into the Flask session."""
    with client.session_transaction() as sess:
        sess['user_id'] = user.id
    return client


@pytest.fixture
def authenticated_client(client, user):
    """Client authenticated as the customer."""
    return login(client, user)


@pytest.fixture
def admin_client(app, admin):
    """Client authenticated as the store administrator."""
    return login(app.test_client(), admin)
