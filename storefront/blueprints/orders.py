"""Orders blueprint - checkout and order queries."""
from flask import Blueprint, request, jsonify, current_app, g
from storefront.database import get_session
from storefront.exceptions import (
    StorefrontError, ValidationError, BusinessLogicError, CouponError,
    InsufficientStockError, CalculationError
)
from storefront.middleware import require_login, require_admin
from storefront.schemas import CreateOrderSchema, OrderStatusSchema, load_request
from storefront.services.order_service import (
    ClientInfo, CheckoutOptions, place_order, list_orders, get_order, update_order_status
)
from storefront.blueprints.metrics import orders_placed_total, order_failures_total, coupon_redemptions_total

orders_bp = Blueprint('orders', __name__, url_prefix='/api/orders')

LIST_FILTERS = (
    'status', 'paymentStatus', 'priority', 'source', 'hasCoupon', 'couponCode',
    'dateFrom', 'dateTo', 'minAmount', 'maxAmount', 'sortBy', 'sortOrder',
)


def client_info_from_request() -> ClientInfo:
    """Client metadata of the current request."""
    forwarded_for = request.headers.get('X-Forwarded-For', '')
    ip = forwarded_for.split(',')[0].strip() if forwarded_for else None
    ip = ip or request.headers.get('X-Real-IP') or request.remote_addr or 'unknown'
    return ClientInfo(
        ip=ip,
        user_agent=request.headers.get('User-Agent') or 'unknown',
        referrer=request.headers.get('Referer')
    )


def _failure_kind(error: StorefrontError) -> str:
    if isinstance(error, CouponError):
        return 'coupon'
    if isinstance(error, InsufficientStockError):
        return 'stock'
    if isinstance(error, CalculationError):
        return 'calculation'
    if isinstance(error, ValidationError):
        return 'validation'
    if isinstance(error, BusinessLogicError):
        return 'precondition'
    return 'unknown'


@orders_bp.route('', methods=['POST'])
@require_login
def create_order():
    """
    Place an order from the current user's cart.

    Returns 201 with the new order, or 200 with the existing order when the
    idempotency key was already used by this user.
    """
    db_session = get_session()
    try:
        data = load_request(CreateOrderSchema(), request.get_json(silent=True))
        order, created = place_order(
            db_session,
            g.user.id,
            data,
            client=client_info_from_request(),
            options=CheckoutOptions.from_config(current_app.config)
        )
    except StorefrontError as e:
        order_failures_total.labels(kind=_failure_kind(e)).inc()
        raise

    if not created:
        return jsonify(order), 200

    orders_placed_total.labels(source=order['source']).inc()
    if order['couponId']:
        coupon_redemptions_total.inc()
    return jsonify(order), 201


@orders_bp.route('', methods=['GET'])
@require_login
def list_orders_view():
    """Paginated orders. Customers see their own; admins see all."""
    try:
        page = int(request.args.get('page', 1))
        limit = int(request.args.get('limit', current_app.config.get('ORDERS_PAGE_SIZE', 10)))
    except ValueError:
        raise ValidationError('Invalid pagination parameters',
                              details={'page': ['Must be an integer'], 'limit': ['Must be an integer']})

    filters = {key: request.args.get(key) for key in LIST_FILTERS if request.args.get(key)}
    result = list_orders(
        get_session(), g.user, filters, page=page, limit=limit,
        max_limit=current_app.config.get('ORDERS_MAX_PAGE_SIZE', 100)
    )
    return jsonify(result)


@orders_bp.route('/<int:order_id>', methods=['GET'])
@require_login
def order_detail(order_id):
    """Order detail."""
    return jsonify(get_order(get_session(), g.user, order_id))


@orders_bp.route('/<int:order_id>/status', methods=['PATCH'])
@require_admin
def change_status(order_id):
    """Move an order to a new lifecycle status (admin only)."""
    data = load_request(OrderStatusSchema(), request.get_json(silent=True))
    order = update_order_status(
        order_id,
        data['status'],
        g.user.id,
        reason=data.get('reason'),
        options=CheckoutOptions.from_config(current_app.config)
    )
    current_app.logger.info(f"[ORDERS] Admin {g.user.id} set order {order_id} to {data['status']}")
    return jsonify(order)
