"""
Order service with transactional logic.
Handles order placement (idempotency, coupon redemption, stock decrement,
order/audit writes), order queries and admin status transitions.
"""

import logging
import secrets
import time
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload, selectinload

from storefront.database import transaction_scope
from storefront.exceptions import (
    StorefrontError, BusinessLogicError, NotFoundError, ValidationError, OrderCreationError
)
from storefront.models import (
    Order, OrderItem, OrderStatus, PaymentStatus, OrderPriority, OrderSource,
    OrderStatusHistory, OrderNote, Address, ShippingMethod, InventoryReason, AppUser
)
from storefront.services.cart_service import load_cart_snapshot, clear_cart
from storefront.services.coupon_service import validate_coupon, redeem_coupon
from storefront.services.pricing_service import calculate_subtotal, calculate_totals, default_shipping
from storefront.services.settings_service import get_tax_rate
from storefront.services.stock_service import reserve_stock, record_inventory_change, restock_order
from storefront.utils.formatters import money_json, to_decimal

logger = logging.getLogger(__name__)

USER_AGENT_MAX_LENGTH = 500
HISTORY_USER_AGENT_MAX_LENGTH = 255

# Lifecycle: forward one step at a time; cancel/refund allowed until delivery
ALLOWED_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED, OrderStatus.REFUNDED},
    OrderStatus.CONFIRMED: {OrderStatus.PROCESSING, OrderStatus.CANCELLED, OrderStatus.REFUNDED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED, OrderStatus.REFUNDED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.REFUNDED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
    OrderStatus.REFUNDED: set(),
}

SORTABLE_FIELDS = {
    'orderNumber': Order.order_number,
    'createdAt': Order.created_at,
    'updatedAt': Order.updated_at,
    'total': Order.total,
    'status': Order.status,
    'paymentStatus': Order.payment_status,
    'discount': Order.discount,
}


@dataclass(frozen=True)
class ClientInfo:
    """Request metadata stored on the order for audit purposes."""
    ip: str = 'unknown'
    user_agent: str = 'unknown'
    referrer: Optional[str] = None


@dataclass(frozen=True)
class CheckoutOptions:
    """Checkout knobs taken from the application config."""
    default_tax_rate: str = '0.08'
    free_shipping_threshold: str = '50.00'
    flat_shipping_rate: str = '9.99'
    isolation_level: str = 'SERIALIZABLE'
    timeout_ms: int = 10000

    @classmethod
    def from_config(cls, config) -> 'CheckoutOptions':
        return cls(
            default_tax_rate=config.get('DEFAULT_TAX_RATE', cls.default_tax_rate),
            free_shipping_threshold=config.get('FREE_SHIPPING_THRESHOLD', cls.free_shipping_threshold),
            flat_shipping_rate=config.get('FLAT_SHIPPING_RATE', cls.flat_shipping_rate),
            isolation_level=config.get('ORDER_TRANSACTION_ISOLATION', cls.isolation_level),
            timeout_ms=config.get('ORDER_TRANSACTION_TIMEOUT_MS', cls.timeout_ms),
        )


def generate_order_number() -> str:
    """ORD-<last 6 digits of epoch millis>-<3 random digits>."""
    timestamp = str(int(time.time() * 1000))[-6:]
    return f"ORD-{timestamp}-{secrets.randbelow(1000):03d}"


# =====================================================
# SERIALIZATION
# =====================================================

def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def serialize_order(order: Order, include_internal_notes: bool = True) -> Dict[str, Any]:
    """Fully-populated order representation returned by the API."""
    coupon = order.coupon
    notes = [n for n in order.notes if include_internal_notes or not n.is_internal]
    return {
        'id': order.id,
        'orderNumber': order.order_number,
        'userId': order.user_id,
        'status': order.status.value,
        'paymentStatus': order.payment_status.value,
        'priority': order.priority.value,
        'source': order.source.value,
        'subtotal': money_json(order.subtotal),
        'tax': money_json(order.tax),
        'shipping': money_json(order.shipping),
        'discount': money_json(order.discount),
        'total': money_json(order.total),
        'couponId': order.coupon_id,
        'couponCode': order.coupon_code,
        'idempotencyKey': order.idempotency_key,
        'customerIp': order.customer_ip,
        'userAgent': order.user_agent,
        'referrer': order.referrer,
        'utmSource': order.utm_source,
        'utmMedium': order.utm_medium,
        'utmCampaign': order.utm_campaign,
        'createdAt': _iso(order.created_at),
        'updatedAt': _iso(order.updated_at),
        'deliveredAt': _iso(order.delivered_at),
        'items': [
            {
                'id': item.id,
                'productId': item.product_id,
                'variantId': item.variant_id,
                'quantity': item.quantity,
                'price': money_json(item.price),
                'product': {
                    'id': item.product.id,
                    'name': item.product.name,
                    'slug': item.product.slug,
                    'sku': item.product.sku,
                },
                'variant': {
                    'id': item.variant.id,
                    'name': item.variant.name,
                    'sku': item.variant.sku,
                } if item.variant else None,
            }
            for item in order.items
        ],
        'user': {
            'id': order.user.id,
            'name': order.user.name,
            'email': order.user.email,
        },
        'shippingAddress': order.shipping_address.to_dict() if order.shipping_address else None,
        'shippingMethod': {
            **order.shipping_method.to_dict(),
            'price': money_json(order.shipping_method.price),
        } if order.shipping_method else None,
        'coupon': {
            **coupon.to_summary(),
            'value': money_json(coupon.value),
        } if coupon else None,
        'statusHistory': [
            {
                'fromStatus': h.from_status.value,
                'toStatus': h.to_status.value,
                'reason': h.reason,
                'metadata': h.details,
                'timestamp': _iso(h.timestamp),
                'changedBy': h.changed_by,
            }
            for h in order.status_history
        ],
        'notes': [
            {
                'id': n.id,
                'content': n.content,
                'isInternal': n.is_internal,
                'createdAt': _iso(n.created_at),
                'author': {'name': n.author.name, 'email': n.author.email} if n.author else None,
            }
            for n in notes
        ],
    }


def _order_query(session: Session):
    return session.query(Order).options(
        selectinload(Order.items).joinedload(OrderItem.product),
        selectinload(Order.items).joinedload(OrderItem.variant),
        joinedload(Order.user),
        joinedload(Order.shipping_address),
        joinedload(Order.shipping_method),
        joinedload(Order.coupon),
        selectinload(Order.status_history),
        selectinload(Order.notes).joinedload(OrderNote.author),
    )


def load_order(session: Session, order_id: int) -> Optional[Order]:
    """Order with every relation the API returns."""
    return _order_query(session).filter(Order.id == order_id).first()


# =====================================================
# IDEMPOTENCY GUARD
# =====================================================

def find_existing_order(session: Session, user_id: int, idempotency_key: Optional[str]) -> Optional[Order]:
    """
    Order previously created by this user with this idempotency key.

    A latency optimization only: the unique constraint on
    (user_id, idempotency_key) is what actually prevents duplicates.
    """
    if not idempotency_key:
        return None
    return _order_query(session).filter(
        Order.idempotency_key == idempotency_key,
        Order.user_id == user_id
    ).first()


# =====================================================
# PRECONDITIONS
# =====================================================

def _validate_shipping_address(session: Session, user_id: int, address_id: Optional[int]) -> Optional[Address]:
    if not address_id:
        return None
    address = session.query(Address).filter(
        Address.id == address_id,
        Address.user_id == user_id
    ).first()
    if not address:
        raise BusinessLogicError('Invalid shipping address')
    return address


def _validate_shipping_method(session: Session, method_id: Optional[int]) -> Optional[ShippingMethod]:
    if not method_id:
        return None
    method = session.query(ShippingMethod).filter(
        ShippingMethod.id == method_id,
        ShippingMethod.is_active.is_(True)
    ).first()
    if not method:
        raise BusinessLogicError('Invalid shipping method')
    return method


# =====================================================
# ORDER WRITER
# =====================================================

def write_order(
    tx: Session,
    user_id: int,
    lines: List,
    totals,
    coupon_result,
    data: Dict[str, Any],
    client: ClientInfo,
    new_stock: Dict[int, int],
    idempotency_key: Optional[str]
) -> Order:
    """
    Persist the order and every row that depends on it.

    Must run inside the order transaction after the coupon was validated
    and stock was decremented.
    """
    coupon = coupon_result.coupon if coupon_result else None
    source = OrderSource(data.get('source') or OrderSource.WEBSITE.value)

    # 1. Order header with nested items (unit price snapshots)
    order = Order(
        order_number=generate_order_number(),
        user_id=user_id,
        subtotal=totals.subtotal,
        tax=totals.tax,
        shipping=totals.shipping,
        discount=totals.discount,
        total=totals.total,
        status=OrderStatus.PENDING,
        payment_status=PaymentStatus.PENDING,
        priority=OrderPriority(data.get('priority') or OrderPriority.NORMAL.value),
        source=source,
        shipping_address_id=data.get('shipping_address_id') or None,
        shipping_method_id=data.get('shipping_method_id') or None,
        coupon_id=coupon.id if coupon else None,
        coupon_code=coupon.code if coupon else None,
        idempotency_key=idempotency_key,
        customer_ip=client.ip,
        user_agent=(client.user_agent or '')[:USER_AGENT_MAX_LENGTH],
        referrer=client.referrer,
        utm_source=data.get('utm_source'),
        utm_medium=data.get('utm_medium'),
        utm_campaign=data.get('utm_campaign'),
        items=[
            OrderItem(
                product_id=line.product_id,
                variant_id=line.variant_id,
                quantity=line.quantity,
                price=line.unit_price
            )
            for line in lines
        ]
    )
    tx.add(order)
    tx.flush()

    # 2. Coupon redemption
    if coupon:
        redeem_coupon(tx, coupon, user_id, order.id, totals.discount)

    # 3. Creation entry in the status history
    tx.add(OrderStatusHistory(
        order_id=order.id,
        from_status=OrderStatus.PENDING,
        to_status=OrderStatus.PENDING,
        changed_by=user_id,
        reason='Order created',
        details={
            'source': source.value,
            'itemCount': len(lines),
            'couponApplied': {
                'code': coupon.code,
                'type': coupon.type.value,
                'value': money_json(coupon.value),
                'discount': money_json(totals.discount),
            } if coupon else None,
            'clientInfo': {
                'ip': client.ip,
                'userAgent': (client.user_agent or '')[:HISTORY_USER_AGENT_MAX_LENGTH],
                'referrer': client.referrer,
            },
        }
    ))

    # 4. Shopper note
    if data.get('notes'):
        tx.add(OrderNote(
            order_id=order.id,
            author_id=user_id,
            content=data['notes'],
            is_internal=False
        ))

    # 5. Inventory log per line
    for line in lines:
        record_inventory_change(
            tx,
            product_id=line.product_id,
            variant_id=line.variant_id,
            change_amount=-line.quantity,
            new_stock=new_stock[line.cart_item_id],
            reason=InventoryReason.SALE,
            actor_id=user_id,
            reference_id=order.id,
            notes=f'Order {order.order_number}'
        )

    # 6. Cart is authoritative only until checkout commits
    clear_cart(tx, user_id)

    tx.flush()
    return order


# =====================================================
# ORDER PLACEMENT
# =====================================================

def _create_in_transaction(
    tx: Session,
    user_id: int,
    data: Dict[str, Any],
    client: ClientInfo,
    options: CheckoutOptions,
    shipping_method: Optional[ShippingMethod],
    idempotency_key: Optional[str]
) -> Dict[str, Any]:
    # Snapshot read inside the transaction: what gets priced is what gets sold
    lines = load_cart_snapshot(tx, user_id)

    subtotal = calculate_subtotal(lines)
    tax_rate = get_tax_rate(tx, options.default_tax_rate)
    if shipping_method is not None:
        shipping = Decimal(shipping_method.price)
    else:
        shipping = default_shipping(
            subtotal,
            threshold=to_decimal(options.free_shipping_threshold),
            flat_rate=to_decimal(options.flat_shipping_rate)
        )

    coupon_result = None
    discount = Decimal('0.00')
    if data.get('coupon_code'):
        coupon_result = validate_coupon(tx, data['coupon_code'], user_id, subtotal)
        discount = coupon_result.discount

    totals = calculate_totals(lines, discount, tax_rate, shipping)

    new_stock = reserve_stock(tx, lines)

    order = write_order(tx, user_id, lines, totals, coupon_result, data, client, new_stock, idempotency_key)

    tx.expire_all()
    return serialize_order(load_order(tx, order.id))


def place_order(
    session: Session,
    user_id: int,
    data: Dict[str, Any],
    client: Optional[ClientInfo] = None,
    options: Optional[CheckoutOptions] = None
) -> Tuple[Dict[str, Any], bool]:
    """
    Place an order from the user's cart.

    Args:
        session: Request-scoped session used for the idempotency pre-check
                 and the preconditions
        user_id: Authenticated user
        data: Validated request fields (snake_case)
        client: Request metadata
        options: Checkout configuration

    Returns:
        (order dict, created) - created is False on an idempotent replay

    Raises:
        BusinessLogicError: Empty cart, invalid shipping address/method
        CouponError: Coupon rejected inside the transaction
        InsufficientStockError: A line could not be decremented
        CalculationError: NaN pricing result
        OrderCreationError: Any other failure
    """
    client = client or ClientInfo()
    options = options or CheckoutOptions()
    idempotency_key = (data.get('idempotency_key') or '').strip() or None

    # 1. Idempotency pre-check
    existing = find_existing_order(session, user_id, idempotency_key)
    if existing:
        logger.info(f"[ORDERS] Duplicate order request detected: {idempotency_key} -> {existing.order_number}")
        return serialize_order(existing), False

    # 2. Preconditions, checked before the transaction opens
    load_cart_snapshot(session, user_id)
    _validate_shipping_address(session, user_id, data.get('shipping_address_id'))
    shipping_method = _validate_shipping_method(session, data.get('shipping_method_id'))

    # 3. All-or-nothing transaction
    try:
        with transaction_scope(options.isolation_level, options.timeout_ms) as tx:
            order = _create_in_transaction(tx, user_id, data, client, options, shipping_method, idempotency_key)
    except IntegrityError as e:
        # Lost a race on the same idempotency key: replay the winner's order
        if idempotency_key:
            session.expire_all()
            existing = find_existing_order(session, user_id, idempotency_key)
            if existing:
                logger.info(f"[ORDERS] Concurrent duplicate resolved by unique key: {idempotency_key}")
                return serialize_order(existing), False
        logger.error(f"[ORDERS] Integrity error creating order for user {user_id}: {e}", exc_info=True)
        raise OrderCreationError('Order could not be saved') from e
    except StorefrontError as e:
        logger.warning(f"[ORDERS] Order rejected for user {user_id}: {e.message}")
        raise
    except Exception as e:
        logger.error(f"[ORDERS] Error creating order for user {user_id}: {e}", exc_info=True)
        raise OrderCreationError(str(e)) from e

    logger.info(
        f"[ORDERS] Order {order['orderNumber']} created for user {user_id}: "
        f"total={order['total']} items={len(order['items'])} coupon={order['couponCode']}"
    )
    return order, True


# =====================================================
# QUERIES
# =====================================================

def _parse_enum(enum_cls, value: Optional[str], field: str):
    if not value or value == 'all':
        return None
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationError(f'Invalid {field}', details={field: [f'Unknown value: {value}']})


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


def list_orders(session: Session, user: AppUser, filters: Optional[Dict[str, Any]] = None,
                page: int = 1, limit: int = 10, max_limit: int = 100) -> Dict[str, Any]:
    """
    Paginated order listing. Customers only see their own orders.

    Supported filters: status, paymentStatus, priority, source, hasCoupon,
    couponCode, dateFrom, dateTo, minAmount, maxAmount, sortBy, sortOrder.
    """
    filters = filters or {}
    page = max(1, page)
    limit = max(1, min(limit, max_limit))

    query = _order_query(session).filter(Order.deleted_at.is_(None))
    if not user.is_admin:
        query = query.filter(Order.user_id == user.id)

    status = _parse_enum(OrderStatus, filters.get('status'), 'status')
    if status:
        query = query.filter(Order.status == status)
    payment_status = _parse_enum(PaymentStatus, filters.get('paymentStatus'), 'paymentStatus')
    if payment_status:
        query = query.filter(Order.payment_status == payment_status)
    priority = _parse_enum(OrderPriority, filters.get('priority'), 'priority')
    if priority:
        query = query.filter(Order.priority == priority)
    source = _parse_enum(OrderSource, filters.get('source'), 'source')
    if source:
        query = query.filter(Order.source == source)

    date_from = _parse_datetime(filters.get('dateFrom'))
    if date_from:
        query = query.filter(Order.created_at >= date_from)
    date_to = _parse_datetime(filters.get('dateTo'))
    if date_to:
        query = query.filter(Order.created_at <= date_to)

    min_amount = to_decimal(filters.get('minAmount'))
    if min_amount is not None and not min_amount.is_nan():
        query = query.filter(Order.total >= min_amount)
    max_amount = to_decimal(filters.get('maxAmount'))
    if max_amount is not None and not max_amount.is_nan():
        query = query.filter(Order.total <= max_amount)

    if filters.get('hasCoupon') == 'true':
        query = query.filter(Order.coupon_id.isnot(None))
    elif filters.get('hasCoupon') == 'false':
        query = query.filter(Order.coupon_id.is_(None))
    if filters.get('couponCode'):
        query = query.filter(Order.coupon_code.ilike(f"%{filters['couponCode']}%"))

    sort_column = SORTABLE_FIELDS.get(filters.get('sortBy'), Order.created_at)
    if filters.get('sortOrder') == 'asc':
        query = query.order_by(sort_column.asc(), Order.id.asc())
    else:
        query = query.order_by(sort_column.desc(), Order.id.desc())

    total = query.order_by(None).count()
    orders = query.offset((page - 1) * limit).limit(limit).all()
    pages = (total + limit - 1) // limit

    return {
        'orders': [serialize_order(o, include_internal_notes=user.is_admin) for o in orders],
        'pagination': {
            'page': page,
            'limit': limit,
            'total': total,
            'pages': pages,
            'hasNext': page < pages,
            'hasPrev': page > 1,
        },
    }


def get_order(session: Session, user: AppUser, order_id: int) -> Dict[str, Any]:
    """Single order; customers can only read their own."""
    query = _order_query(session).filter(Order.id == order_id, Order.deleted_at.is_(None))
    if not user.is_admin:
        query = query.filter(Order.user_id == user.id)
    order = query.first()
    if not order:
        raise NotFoundError('Order not found')
    return serialize_order(order, include_internal_notes=user.is_admin)


# =====================================================
# STATUS TRANSITIONS (admin)
# =====================================================

def update_order_status(
    order_id: int,
    new_status: str,
    actor_id: int,
    reason: Optional[str] = None,
    options: Optional[CheckoutOptions] = None
) -> Dict[str, Any]:
    """
    Move an order along its lifecycle in one transaction.

    Cancelling returns the items to stock with CANCELLATION inventory logs;
    delivering stamps `delivered_at`.

    Raises:
        NotFoundError: Unknown order
        ValidationError: Unknown status value
        BusinessLogicError: Transition not allowed from the current status
    """
    options = options or CheckoutOptions()
    target = _parse_enum(OrderStatus, new_status, 'status')
    if target is None:
        raise ValidationError('Valid status is required', details={'status': ['Missing or invalid value']})

    with transaction_scope(options.isolation_level, options.timeout_ms) as tx:
        order = tx.query(Order).filter(
            Order.id == order_id,
            Order.deleted_at.is_(None)
        ).with_for_update().first()
        if not order:
            raise NotFoundError('Order not found')

        current = order.status
        if target not in ALLOWED_TRANSITIONS[current]:
            raise BusinessLogicError(f'Cannot change order status from {current.value} to {target.value}')

        order.status = target
        if target == OrderStatus.DELIVERED:
            order.delivered_at = datetime.now()
        if target == OrderStatus.CANCELLED:
            restock_order(tx, order, actor_id, InventoryReason.CANCELLATION)

        tx.add(OrderStatusHistory(
            order_id=order.id,
            from_status=current,
            to_status=target,
            changed_by=actor_id,
            reason=reason or 'Status updated',
            details={'previousStatus': current.value}
        ))
        tx.flush()
        tx.expire_all()
        result = serialize_order(load_order(tx, order_id))

    logger.info(f"[ORDERS] Order {result['orderNumber']} {current.value} -> {target.value} by user {actor_id}")
    return result
