"""
Integration tests for the admin coupon management API.
"""

from datetime import datetime
from decimal import Decimal

import pytest

from storefront.exceptions import CouponError
from storefront.models import Coupon, CouponType
from storefront.services.coupon_admin_service import MSG_DUPLICATE_CODE, coupon_status
from storefront.services.coupon_service import validate_coupon, MSG_INVALID
from storefront.services.order_service import place_order, ClientInfo


@pytest.fixture
def catalog(make_coupon):
    """One coupon in each listing status."""
    return {
        'active': make_coupon(code='WELCOME10', description='Welcome discount'),
        'inactive': make_coupon(code='PAUSED', is_active=False),
        'expired': make_coupon(code='OLDSALE', expires_at=datetime(2020, 1, 31)),
        'scheduled': make_coupon(code='FUTURE', starts_at=datetime(2099, 1, 1)),
    }


class TestCreateCoupon:
    """POST /api/admin/coupons"""

    def test_create_stores_code_upper_case(self, admin_client, session, user):
        response = admin_client.post('/api/admin/coupons', json={
            'code': 'spring-25',
            'type': 'PERCENTAGE',
            'value': 25,
            'minAmount': 40,
            'maxUses': 100,
            'maxUsesPerUser': 1,
            'expiresAt': '2099-12-31T00:00:00',
        })

        assert response.status_code == 201
        data = response.get_json()
        assert data['code'] == 'SPRING-25'
        assert data['value'] == 25.0
        assert data['minAmount'] == 40.0
        assert data['maxUses'] == 100
        assert data['maxUsesPerUser'] == 1
        assert data['usedCount'] == 0
        assert data['remainingUses'] == 100
        assert data['isActive'] is True
        assert data['status'] == 'active'
        assert data['expiresAt'].startswith('2099-12-31')

        # The new code is immediately usable at checkout
        result = validate_coupon(session, 'Spring-25', user.id, Decimal('50.00'))
        assert result.discount == Decimal('12.50')

    def test_duplicate_code_is_rejected(self, admin_client, session, make_coupon):
        make_coupon(code='TAKEN')

        response = admin_client.post('/api/admin/coupons', json={'code': 'taken', 'type': 'FIXED_AMOUNT', 'value': 5})

        assert response.status_code == 400
        assert response.get_json() == {'error': MSG_DUPLICATE_CODE}

    def test_percentage_above_100(self, admin_client, session):
        response = admin_client.post('/api/admin/coupons', json={'code': 'TOOMUCH', 'type': 'PERCENTAGE', 'value': 150})

        assert response.status_code == 400
        assert response.get_json()['details'] == {'value': ['Percentage value cannot exceed 100']}
        assert session.query(Coupon).count() == 0

    def test_field_validation(self, admin_client, session):
        response = admin_client.post('/api/admin/coupons', json={
            'code': 'bad code!',
            'type': 'BOGO',
            'value': 0,
            'maxUses': 0,
        })

        assert response.status_code == 400
        details = response.get_json()['details']
        assert details['code'] == ['Code can only contain letters, numbers, hyphens, and underscores']
        assert details['type'] == ['Invalid coupon type']
        assert details['value'] == ['Value must be greater than 0']
        assert details['maxUses'] == ['Maximum uses must be at least 1']

    def test_window_must_start_before_expiry(self, admin_client, session):
        response = admin_client.post('/api/admin/coupons', json={
            'code': 'BACKWARDS',
            'type': 'FIXED_AMOUNT',
            'value': 5,
            'startsAt': '2030-02-01T00:00:00',
            'expiresAt': '2030-01-01T00:00:00',
        })

        assert response.status_code == 400
        assert 'startsAt' in response.get_json()['details']

    def test_requires_admin(self, authenticated_client, session):
        payload = {'code': 'NOPE', 'type': 'FIXED_AMOUNT', 'value': 5}

        assert authenticated_client.post('/api/admin/coupons', json=payload).status_code == 403


def test_anonymous_is_unauthorized(app, session):
    response = app.test_client().get('/api/admin/coupons')
    assert response.status_code == 401


class TestListCoupons:
    """GET /api/admin/coupons"""

    def test_statistics_and_status(self, admin_client, session, catalog):
        data = admin_client.get('/api/admin/coupons').get_json()

        assert data['pagination']['total'] == 4
        assert data['statistics']['total'] == 4
        assert data['statistics']['active'] == 1
        assert data['statistics']['inactive'] == 1
        assert data['statistics']['expired'] == 1
        assert data['statistics']['scheduled'] == 1
        statuses = {c['code']: c['status'] for c in data['coupons']}
        assert statuses == {'WELCOME10': 'active', 'PAUSED': 'inactive', 'OLDSALE': 'expired', 'FUTURE': 'scheduled'}

    @pytest.mark.parametrize('status, code', [
        ('active', 'WELCOME10'),
        ('inactive', 'PAUSED'),
        ('expired', 'OLDSALE'),
        ('scheduled', 'FUTURE'),
    ])
    def test_status_filter(self, admin_client, session, catalog, status, code):
        data = admin_client.get(f'/api/admin/coupons?status={status}').get_json()
        assert [c['code'] for c in data['coupons']] == [code]

    def test_search_code_and_description(self, admin_client, session, catalog):
        by_code = admin_client.get('/api/admin/coupons?search=olds').get_json()
        by_description = admin_client.get('/api/admin/coupons?search=welcome').get_json()

        assert [c['code'] for c in by_code['coupons']] == ['OLDSALE']
        assert [c['code'] for c in by_description['coupons']] == ['WELCOME10']

    def test_sort_and_paginate(self, admin_client, session, catalog):
        data = admin_client.get('/api/admin/coupons?sortBy=code&sortOrder=asc&limit=2&page=2').get_json()

        assert [c['code'] for c in data['coupons']] == ['PAUSED', 'WELCOME10']
        assert data['pagination'] == {
            'page': 2, 'limit': 2, 'total': 4, 'pages': 2, 'hasNext': False, 'hasPrev': True
        }

    def test_deleted_coupons_are_hidden(self, admin_client, session, make_coupon):
        make_coupon(code='GONE', deleted_at=datetime(2026, 1, 1))

        data = admin_client.get('/api/admin/coupons').get_json()
        assert data['coupons'] == []

    def test_invalid_status(self, admin_client, session):
        response = admin_client.get('/api/admin/coupons?status=unknown')
        assert response.status_code == 400


class TestUpdateCoupon:
    """PATCH /api/admin/coupons/<id>"""

    def test_partial_update(self, admin_client, session, make_coupon):
        coupon = make_coupon(code='EDITME', max_uses=10, description='Old text')

        response = admin_client.patch(f'/api/admin/coupons/{coupon.id}', json={
            'code': 'edited', 'maxUses': None, 'description': ''
        })

        assert response.status_code == 200
        data = response.get_json()
        assert data['code'] == 'EDITED'
        assert data['maxUses'] is None
        assert data['description'] is None
        assert data['value'] == 10.0

    def test_rules_use_the_edited_coupon(self, admin_client, session, make_coupon):
        coupon = make_coupon(code='FLAT150', type=CouponType.FIXED_AMOUNT, value='150')

        response = admin_client.patch(f'/api/admin/coupons/{coupon.id}', json={'type': 'PERCENTAGE'})

        assert response.status_code == 400
        session.expire_all()
        assert coupon.type == CouponType.FIXED_AMOUNT

    def test_code_taken_by_another_coupon(self, admin_client, session, make_coupon):
        make_coupon(code='FIRST')
        second = make_coupon(code='SECOND')

        response = admin_client.patch(f'/api/admin/coupons/{second.id}', json={'code': 'first'})

        assert response.status_code == 400
        assert response.get_json()['error'] == MSG_DUPLICATE_CODE

    def test_unknown_coupon(self, admin_client, session):
        assert admin_client.patch('/api/admin/coupons/424242', json={'isActive': False}).status_code == 404


class TestDeleteCoupon:
    """DELETE /api/admin/coupons/<id>"""

    def test_soft_delete(self, admin_client, session, user, make_coupon):
        coupon = make_coupon(code='RETIRE')

        response = admin_client.delete(f'/api/admin/coupons/{coupon.id}')

        assert response.status_code == 200
        assert response.get_json() == {'message': 'Coupon deleted successfully', 'ordersAffected': 0}

        session.expire_all()
        assert coupon.deleted_at is not None
        assert coupon.is_active is False
        assert admin_client.get(f'/api/admin/coupons/{coupon.id}').status_code == 404
        with pytest.raises(CouponError) as exc:
            validate_coupon(session, 'RETIRE', user.id, Decimal('10'))
        assert exc.value.message == MSG_INVALID

    def test_retired_code_cannot_be_reused(self, admin_client, session, make_coupon):
        coupon = make_coupon(code='ONCE')
        admin_client.delete(f'/api/admin/coupons/{coupon.id}')

        response = admin_client.post('/api/admin/coupons', json={'code': 'ONCE', 'type': 'FIXED_AMOUNT', 'value': 5})

        assert response.status_code == 400
        assert response.get_json()['error'] == MSG_DUPLICATE_CODE


class TestDuplicateCoupon:
    """POST /api/admin/coupons/<id>/duplicate"""

    def test_duplicate_resets_usage(self, admin_client, session, make_coupon):
        original = make_coupon(code='SUMMER', type=CouponType.FIXED_AMOUNT, value='7.50',
                               max_uses=50, used_count=12, max_uses_per_user=2)

        response = admin_client.post(f'/api/admin/coupons/{original.id}/duplicate',
                                     json={'newCode': 'summer-2', 'maxUses': 5})

        assert response.status_code == 201
        data = response.get_json()
        assert data['message'] == 'Coupon duplicated successfully as SUMMER-2'
        assert data['coupon']['code'] == 'SUMMER-2'
        assert data['coupon']['value'] == 7.5
        assert data['coupon']['type'] == 'FIXED_AMOUNT'
        assert data['coupon']['maxUses'] == 5
        assert data['coupon']['maxUsesPerUser'] == 2
        assert data['coupon']['usedCount'] == 0

    def test_new_code_required(self, admin_client, session, make_coupon):
        original = make_coupon(code='BASE')

        response = admin_client.post(f'/api/admin/coupons/{original.id}/duplicate', json={})

        assert response.status_code == 400
        assert 'newCode' in response.get_json()['details']


class TestBulkCoupons:
    """POST /api/admin/coupons/bulk"""

    def test_deactivate(self, admin_client, session, make_coupon):
        first = make_coupon(code='BULK1')
        second = make_coupon(code='BULK2')

        response = admin_client.post('/api/admin/coupons/bulk', json={
            'action': 'deactivate', 'couponIds': [first.id, second.id, 424242]
        })

        assert response.status_code == 200
        assert response.get_json() == {
            'action': 'deactivate', 'affectedCount': 2, 'message': 'Successfully deactivated 2 coupon(s)'
        }
        session.expire_all()
        assert first.is_active is False
        assert second.is_active is False

    def test_extend(self, admin_client, session, catalog):
        expired = catalog['expired']

        response = admin_client.post('/api/admin/coupons/bulk', json={
            'action': 'extend', 'couponIds': [expired.id], 'expiresAt': '2099-06-30T00:00:00'
        })

        assert response.get_json()['affectedCount'] == 1
        session.expire_all()
        assert coupon_status(expired) == 'active'

    def test_extend_requires_date(self, admin_client, session, make_coupon):
        coupon = make_coupon(code='NODATE')

        response = admin_client.post('/api/admin/coupons/bulk', json={'action': 'extend', 'couponIds': [coupon.id]})

        assert response.status_code == 400
        assert response.get_json()['message'] == 'expiresAt is required for extend action'

    def test_empty_selection(self, admin_client, session):
        response = admin_client.post('/api/admin/coupons/bulk', json={'action': 'activate', 'couponIds': []})

        assert response.status_code == 400
        assert response.get_json()['details'] == {'couponIds': ['At least one coupon ID required']}


def test_detail_reports_usage(admin_client, session, user, product, add_cart_line, make_coupon):
    coupon = make_coupon(code='TRACKED', max_uses=4)
    add_cart_line(user, product, quantity=2)
    order, _ = place_order(session, user.id, {'coupon_code': 'tracked'}, ClientInfo())
    session.expire_all()

    response = admin_client.get(f'/api/admin/coupons/{coupon.id}')

    assert response.status_code == 200
    data = response.get_json()
    assert data['coupon']['usedCount'] == 1
    assert data['usage']['totalOrders'] == 1
    assert data['usage']['orders'][0]['orderNumber'] == order['orderNumber']
    assert data['usage']['totalDiscount'] == 5.0
    assert data['usage']['statusBreakdown'] == {'PENDING': 1}
    assert data['usage']['redemptionRate'] == 25
    assert data['usage']['remainingUses'] == 3
