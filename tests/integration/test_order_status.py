"""
Integration tests for admin order status transitions.
"""

import pytest

from storefront.exceptions import BusinessLogicError, NotFoundError, ValidationError
from storefront.models import InventoryLog, InventoryReason, OrderStatusHistory
from storefront.services.order_service import place_order, update_order_status, ClientInfo


@pytest.fixture
def order(session, user, product, add_cart_line):
    """Pending order for 3 units of `product` (stock 10 -> 7)."""
    add_cart_line(user, product, quantity=3)
    order, _ = place_order(session, user.id, {}, ClientInfo())
    return order


class TestUpdateOrderStatus:
    """Lifecycle transitions."""

    def test_forward_path_to_delivered(self, session, admin, order):
        for status in ('CONFIRMED', 'PROCESSING', 'SHIPPED', 'DELIVERED'):
            result = update_order_status(order['id'], status, admin.id)
            assert result['status'] == status

        assert result['deliveredAt'] is not None
        history = session.query(OrderStatusHistory).filter_by(order_id=order['id']).count()
        assert history == 5

    def test_cannot_skip_steps(self, session, admin, order):
        with pytest.raises(BusinessLogicError) as exc:
            update_order_status(order['id'], 'SHIPPED', admin.id)
        assert exc.value.message == 'Cannot change order status from PENDING to SHIPPED'

    def test_delivered_is_terminal(self, session, admin, order):
        for status in ('CONFIRMED', 'PROCESSING', 'SHIPPED', 'DELIVERED'):
            update_order_status(order['id'], status, admin.id)

        with pytest.raises(BusinessLogicError):
            update_order_status(order['id'], 'CANCELLED', admin.id)
        with pytest.raises(BusinessLogicError):
            update_order_status(order['id'], 'REFUNDED', admin.id)

    def test_cancel_restocks(self, session, admin, product, order):
        result = update_order_status(order['id'], 'CANCELLED', admin.id, reason='Customer request')

        session.expire_all()
        assert result['status'] == 'CANCELLED'
        assert result['statusHistory'][0]['reason'] == 'Customer request'
        assert product.stock == 10

        log = session.query(InventoryLog).filter_by(
            reference_id=order['id'], reason=InventoryReason.CANCELLATION
        ).one()
        assert log.change_amount == 3
        assert log.new_stock == 10
        assert log.changed_by_user_id == admin.id

    def test_cancelled_is_terminal(self, session, admin, order):
        update_order_status(order['id'], 'CANCELLED', admin.id)

        with pytest.raises(BusinessLogicError):
            update_order_status(order['id'], 'CONFIRMED', admin.id)

    def test_unknown_order(self, session, admin):
        with pytest.raises(NotFoundError):
            update_order_status(424242, 'CONFIRMED', admin.id)

    def test_unknown_status(self, session, admin, order):
        with pytest.raises(ValidationError):
            update_order_status(order['id'], 'LOST', admin.id)


class TestStatusEndpoint:
    """PATCH /api/orders/<id>/status"""

    def test_admin_can_confirm(self, admin_client, order):
        response = admin_client.patch(f"/api/orders/{order['id']}/status", json={'status': 'CONFIRMED'})

        assert response.status_code == 200
        assert response.get_json()['status'] == 'CONFIRMED'

    def test_customer_is_forbidden(self, authenticated_client, order):
        response = authenticated_client.patch(f"/api/orders/{order['id']}/status", json={'status': 'CONFIRMED'})

        assert response.status_code == 403

    def test_illegal_transition(self, admin_client, order):
        response = admin_client.patch(f"/api/orders/{order['id']}/status", json={'status': 'DELIVERED'})

        assert response.status_code == 400
        assert response.get_json()['error'] == 'Cannot change order status from PENDING to DELIVERED'
