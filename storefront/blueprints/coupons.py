"""Coupons blueprint - cart-side coupon preview."""
from flask import Blueprint, request, jsonify, g
from storefront.database import get_session
from storefront.middleware import require_login
from storefront.schemas import CouponValidateSchema, load_request
from storefront.services.coupon_service import preview_coupon

coupons_bp = Blueprint('coupons', __name__, url_prefix='/api/coupons')


@coupons_bp.route('/validate', methods=['POST'])
@require_login
def validate():
    """
    Check a coupon code against an order amount without redeeming it.

    Rule failures are returned as 400 with the coupon error reason.
    """
    data = load_request(CouponValidateSchema(), request.get_json(silent=True))
    result = preview_coupon(get_session(), data['code'], g.user.id, data['order_amount'])
    return jsonify(result)
