"""
Integration tests for the JSON API with CSRF protection turned on.
"""

import pytest

from storefront.models import Order, CartItem


@pytest.fixture
def csrf_enabled(app):
    """Run the test with Flask-WTF CSRF checks as in production."""
    app.config['WTF_CSRF_ENABLED'] = True
    yield
    app.config['WTF_CSRF_ENABLED'] = False


class TestJsonApiWithCsrf:
    """JSON writes need no form token; non-JSON posts never reach a view."""

    def test_place_order(self, csrf_enabled, authenticated_client, session, user, product, add_cart_line):
        add_cart_line(user, product, quantity=1)

        response = authenticated_client.post('/api/orders', json={})

        assert response.status_code == 201
        assert response.get_json()['total'] == 36.99

    def test_cart_and_admin_writes(self, csrf_enabled, authenticated_client, admin_client, session, product):
        response = authenticated_client.post('/api/cart', json={'productId': product.id, 'quantity': 2})
        assert response.status_code == 201

        response = authenticated_client.patch(
            f"/api/cart/{response.get_json()['items'][0]['id']}", json={'quantity': 3}
        )
        assert response.status_code == 200

        response = admin_client.put('/api/admin/settings/tax_rate', json={'value': '0.05', 'type': 'NUMBER'})
        assert response.status_code == 200

    def test_form_post_is_rejected(self, csrf_enabled, authenticated_client, session, user, product,
                                   add_cart_line):
        add_cart_line(user, product, quantity=1)

        response = authenticated_client.post('/api/orders', data={'notes': 'from another site'})

        assert response.status_code == 415
        assert response.get_json() == {'error': 'Unsupported Media Type'}
        assert session.query(Order).count() == 0
        assert session.query(CartItem).filter_by(user_id=user.id).count() == 1


def test_form_post_rejected_without_csrf(authenticated_client, session, user):
    response = authenticated_client.post('/api/coupons/validate', data={'code': 'X', 'orderAmount': '10'})
    assert response.status_code == 415
