"""
Unit tests for SQLAlchemy models.
"""

from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from storefront.models import AppUser, UserRole, CartItem, Order, OrderStatus, StoreSetting


class TestAppUserModel:
    """Tests for AppUser model."""

    def test_password_hashing(self):
        """Test password hashing and verification."""
        user = AppUser(email='user@test.com', active=True)
        user.set_password('mypassword')

        assert user.password_hash != 'mypassword'
        assert user.check_password('mypassword') is True
        assert user.check_password('wrongpassword') is False

    def test_user_without_password_cannot_log_in(self):
        user = AppUser(email='oauth@test.com')
        assert user.check_password('anything') is False

    def test_is_admin(self, user, admin):
        assert user.role == UserRole.CUSTOMER.value
        assert user.is_admin is False
        assert admin.is_admin is True

    def test_user_email_unique(self, session, user):
        """Test that user email must be unique."""
        session.add(AppUser(email=user.email, name='Duplicate User'))

        with pytest.raises(IntegrityError):
            session.commit()
        session.rollback()


class TestProductModel:
    """Tests for Product model."""

    def test_defaults(self, make_product):
        product = make_product(name='Mug', price='12.00', stock=5)

        assert product.is_active is True
        assert product.deleted_at is None
        assert product.price == Decimal('12.00')

    def test_stock_cannot_go_negative(self, session, product):
        product.stock = -1
        with pytest.raises(IntegrityError):
            session.commit()
        session.rollback()


class TestCartItemModel:
    """Tests for CartItem model."""

    def test_quantity_must_be_positive(self, session, user, product):
        session.add(CartItem(user_id=user.id, product_id=product.id, quantity=0))
        with pytest.raises(IntegrityError):
            session.commit()
        session.rollback()


class TestOrderModel:
    """Tests for Order model."""

    def _order(self, user, number, key):
        return Order(
            order_number=number,
            user_id=user.id,
            subtotal=Decimal('10.00'),
            tax=Decimal('0.80'),
            shipping=Decimal('9.99'),
            discount=Decimal('0.00'),
            total=Decimal('20.79'),
            idempotency_key=key
        )

    def test_defaults(self, session, user):
        order = self._order(user, 'ORD-000001-001', None)
        session.add(order)
        session.commit()

        assert order.status == OrderStatus.PENDING
        assert order.created_at is not None

    def test_idempotency_key_unique_per_user(self, session, user):
        session.add(self._order(user, 'ORD-000001-001', 'key-1'))
        session.commit()

        session.add(self._order(user, 'ORD-000001-002', 'key-1'))
        with pytest.raises(IntegrityError):
            session.commit()
        session.rollback()

    def test_same_key_allowed_for_other_users(self, session, user, other_user):
        session.add(self._order(user, 'ORD-000001-001', 'key-1'))
        session.add(self._order(other_user, 'ORD-000001-002', 'key-1'))
        session.commit()

        assert session.query(Order).filter_by(idempotency_key='key-1').count() == 2


def test_store_setting_key_is_primary_key(session):
    session.add(StoreSetting(key='tax_rate', value='0.08'))
    session.commit()

    assert session.get(StoreSetting, 'tax_rate').value == '0.08'
