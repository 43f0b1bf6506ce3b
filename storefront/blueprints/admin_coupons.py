"""Admin coupons blueprint - coupon management for store administrators."""
from flask import Blueprint, request, jsonify, g
from storefront.database import get_session
from storefront.exceptions import ValidationError
from storefront.middleware import require_admin
from storefront.schemas import (
    CouponCreateSchema, CouponUpdateSchema, CouponDuplicateSchema, CouponBulkSchema, load_request
)
from storefront.services.coupon_admin_service import (
    BULK_PAST_TENSE, list_coupons, get_coupon_detail, create_coupon, update_coupon,
    delete_coupon, duplicate_coupon, bulk_update_coupons, serialize_coupon
)

admin_coupons_bp = Blueprint('admin_coupons', __name__, url_prefix='/api/admin/coupons')

LIST_FILTERS = ('search', 'status', 'type', 'sortBy', 'sortOrder')


@admin_coupons_bp.route('', methods=['GET'])
@require_admin
def index():
    """Paginated coupons with statistics."""
    try:
        page = int(request.args.get('page', 1))
        limit = int(request.args.get('limit', 20))
    except ValueError:
        raise ValidationError('Invalid pagination parameters',
                              details={'page': ['Must be an integer'], 'limit': ['Must be an integer']})

    filters = {key: request.args.get(key) for key in LIST_FILTERS if request.args.get(key)}
    return jsonify(list_coupons(get_session(), filters, page=page, limit=limit))


@admin_coupons_bp.route('', methods=['POST'])
@require_admin
def create():
    data = load_request(CouponCreateSchema(), request.get_json(silent=True))
    coupon = create_coupon(get_session(), data, actor_id=g.user.id)
    return jsonify(serialize_coupon(coupon)), 201


@admin_coupons_bp.route('/<int:coupon_id>', methods=['GET'])
@require_admin
def detail(coupon_id):
    return jsonify(get_coupon_detail(get_session(), coupon_id))


@admin_coupons_bp.route('/<int:coupon_id>', methods=['PATCH'])
@require_admin
def update(coupon_id):
    data = load_request(CouponUpdateSchema(), request.get_json(silent=True))
    coupon = update_coupon(get_session(), coupon_id, data, actor_id=g.user.id)
    return jsonify(serialize_coupon(coupon))


@admin_coupons_bp.route('/<int:coupon_id>', methods=['DELETE'])
@require_admin
def delete(coupon_id):
    """Soft delete; orders keep their reference to the coupon."""
    orders_affected = delete_coupon(get_session(), coupon_id, actor_id=g.user.id)
    return jsonify({'message': 'Coupon deleted successfully', 'ordersAffected': orders_affected})


@admin_coupons_bp.route('/<int:coupon_id>/duplicate', methods=['POST'])
@require_admin
def duplicate(coupon_id):
    data = load_request(CouponDuplicateSchema(), request.get_json(silent=True))
    new_code = data.pop('new_code')
    coupon = duplicate_coupon(get_session(), coupon_id, new_code, adjustments=data, actor_id=g.user.id)
    return jsonify({
        'coupon': serialize_coupon(coupon),
        'message': f'Coupon duplicated successfully as {coupon.code}',
    }), 201


@admin_coupons_bp.route('/bulk', methods=['POST'])
@require_admin
def bulk():
    """Activate, deactivate, delete or extend several coupons."""
    data = load_request(CouponBulkSchema(), request.get_json(silent=True))
    affected = bulk_update_coupons(
        get_session(), data['coupon_ids'], data['action'], expires_at=data['expires_at'], actor_id=g.user.id
    )
    return jsonify({
        'action': data['action'],
        'affectedCount': affected,
        'message': f"Successfully {BULK_PAST_TENSE[data['action']]} {affected} coupon(s)",
    })
