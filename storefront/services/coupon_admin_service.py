"""
Coupon administration - create, edit, duplicate and retire coupon codes.

Codes are stored upper-case and stay unique across every coupon, deleted
ones included, so a retired code keeps pointing at the orders it discounted.
Deleting is a soft delete: the row is hidden from the validator and from
these listings, while `coupon_usage` and order rows keep their references.
"""

import logging
from datetime import datetime, date, time, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.exceptions import BusinessLogicError, NotFoundError, ValidationError
from storefront.models import Coupon, CouponType, Order
from storefront.services.coupon_service import end_of_day, local_time
from storefront.utils.formatters import money_json

logger = logging.getLogger(__name__)

MSG_DUPLICATE_CODE = 'A coupon with this code already exists'
EXPIRING_SOON_DAYS = 7
INSIGHTS_LIMIT = 10
DETAIL_ORDERS_LIMIT = 100

STATUS_FILTERS = ('active', 'expired', 'inactive', 'scheduled')

SORTABLE_FIELDS = {
    'code': Coupon.code,
    'value': Coupon.value,
    'usedCount': Coupon.used_count,
    'expiresAt': Coupon.expires_at,
    'createdAt': Coupon.created_at,
}

BULK_PAST_TENSE = {
    'activate': 'activated',
    'deactivate': 'deactivated',
    'delete': 'deleted',
    'extend': 'extended',
}


def _stored_time(moment: Optional[datetime]) -> Optional[datetime]:
    """Attach the server timezone to naive input before it is written."""
    return moment.astimezone() if moment else None


def _isoformat(moment: Optional[datetime]) -> Optional[str]:
    return moment.isoformat() if moment else None


def coupon_status(coupon: Coupon, now: Optional[datetime] = None) -> str:
    """
    Lifecycle label shown to administrators.

    One of inactive, expired, scheduled, depleted or active, checked in
    that order. A coupon stays active through the last day it expires on,
    the same as at checkout.
    """
    now = local_time(now or datetime.now())
    if not coupon.is_active:
        return 'inactive'
    if coupon.expires_at and end_of_day(coupon.expires_at) < now:
        return 'expired'
    if coupon.starts_at and local_time(coupon.starts_at) > now:
        return 'scheduled'
    if coupon.max_uses is not None and coupon.used_count >= coupon.max_uses:
        return 'depleted'
    return 'active'


def serialize_coupon(coupon: Coupon, now: Optional[datetime] = None) -> Dict[str, Any]:
    return {
        'id': coupon.id,
        'code': coupon.code,
        'description': coupon.description,
        'type': coupon.type.value,
        'value': money_json(coupon.value),
        'minAmount': money_json(coupon.min_amount),
        'maxUses': coupon.max_uses,
        'maxUsesPerUser': coupon.max_uses_per_user,
        'usedCount': coupon.used_count,
        'remainingUses': max(0, coupon.max_uses - coupon.used_count) if coupon.max_uses is not None else None,
        'startsAt': _isoformat(coupon.starts_at),
        'expiresAt': _isoformat(coupon.expires_at),
        'isActive': coupon.is_active,
        'status': coupon_status(coupon, now),
        'createdAt': _isoformat(coupon.created_at),
        'updatedAt': _isoformat(coupon.updated_at),
    }


def _get_coupon(session: Session, coupon_id: int) -> Coupon:
    coupon = session.query(Coupon).filter(
        Coupon.id == coupon_id,
        Coupon.deleted_at.is_(None)
    ).first()
    if not coupon:
        raise NotFoundError('Coupon not found')
    return coupon


def _ensure_code_available(session: Session, code: str, exclude_id: Optional[int] = None) -> None:
    query = session.query(Coupon.id).filter(func.upper(Coupon.code) == code)
    if exclude_id is not None:
        query = query.filter(Coupon.id != exclude_id)
    if query.first():
        raise BusinessLogicError(MSG_DUPLICATE_CODE)


def _check_terms(coupon_type: CouponType, value: Decimal,
                 starts_at: Optional[datetime], expires_at: Optional[datetime]) -> None:
    """Rules that span more than one field."""
    errors = {}
    if coupon_type == CouponType.PERCENTAGE and Decimal(value) > 100:
        errors['value'] = ['Percentage value cannot exceed 100']
    if starts_at and expires_at and local_time(starts_at) >= local_time(expires_at):
        errors['startsAt'] = ['Start date must be before expiration date']
    if errors:
        raise ValidationError('Validation failed', details=errors)


def _commit(session: Session) -> None:
    try:
        session.commit()
    except IntegrityError as e:
        # Lost a race with another admin saving the same code
        session.rollback()
        raise BusinessLogicError(MSG_DUPLICATE_CODE) from e


def create_coupon(session: Session, data: Dict[str, Any], actor_id: Optional[int] = None) -> Coupon:
    """
    Create a coupon from validated fields (snake_case).

    Raises:
        BusinessLogicError: If the code is already taken
        ValidationError: Percentage above 100 or start not before expiry
    """
    code = data['code'].strip().upper()
    coupon_type = CouponType(data['type'])
    _ensure_code_available(session, code)
    _check_terms(coupon_type, data['value'], data.get('starts_at'), data.get('expires_at'))

    coupon = Coupon(
        code=code,
        description=data.get('description') or None,
        type=coupon_type,
        value=data['value'],
        min_amount=data.get('min_amount'),
        max_uses=data.get('max_uses'),
        max_uses_per_user=data.get('max_uses_per_user'),
        used_count=0,
        starts_at=_stored_time(data.get('starts_at')),
        expires_at=_stored_time(data.get('expires_at')),
        is_active=data.get('is_active', True)
    )
    session.add(coupon)
    _commit(session)

    logger.info(f"[COUPONS] Created {code} ({coupon_type.value} {coupon.value}) by user {actor_id}")
    return coupon


def update_coupon(session: Session, coupon_id: int, data: Dict[str, Any], actor_id: Optional[int] = None) -> Coupon:
    """
    Apply a partial edit. Cross-field rules are checked against the
    coupon as it will be after the edit.

    Raises:
        NotFoundError: Unknown or deleted coupon
        BusinessLogicError: New code already taken
        ValidationError: Percentage above 100 or start not before expiry
    """
    coupon = _get_coupon(session, coupon_id)

    if 'code' in data:
        data['code'] = data['code'].strip().upper()
        _ensure_code_available(session, data['code'], exclude_id=coupon.id)
    if 'type' in data:
        data['type'] = CouponType(data['type'])

    _check_terms(
        data.get('type', coupon.type),
        data.get('value', coupon.value),
        data['starts_at'] if 'starts_at' in data else coupon.starts_at,
        data['expires_at'] if 'expires_at' in data else coupon.expires_at
    )

    for field in ('code', 'type', 'value', 'min_amount', 'max_uses', 'max_uses_per_user', 'is_active'):
        if field in data:
            setattr(coupon, field, data[field])
    if 'description' in data:
        coupon.description = data['description'] or None
    for field in ('starts_at', 'expires_at'):
        if field in data:
            setattr(coupon, field, _stored_time(data[field]))
    _commit(session)

    logger.info(f"[COUPONS] Updated {coupon.code} fields={sorted(data)} by user {actor_id}")
    return coupon


def delete_coupon(session: Session, coupon_id: int, actor_id: Optional[int] = None) -> int:
    """
    Soft-delete a coupon and deactivate it.

    Returns:
        Number of orders that used the coupon
    """
    coupon = _get_coupon(session, coupon_id)
    orders_affected = session.query(func.count(Order.id)).filter(Order.coupon_id == coupon.id).scalar() or 0

    coupon.deleted_at = datetime.now().astimezone()
    coupon.is_active = False
    session.commit()

    logger.info(f"[COUPONS] Deleted {coupon.code} ({orders_affected} orders) by user {actor_id}")
    return orders_affected


def duplicate_coupon(session: Session, coupon_id: int, new_code: str,
                     adjustments: Optional[Dict[str, Any]] = None, actor_id: Optional[int] = None) -> Coupon:
    """
    Copy a coupon's terms under a new code with a fresh usage count.

    `adjustments` may override description, starts_at, expires_at and max_uses.
    """
    original = _get_coupon(session, coupon_id)
    adjustments = adjustments or {}
    code = new_code.strip().upper()
    _ensure_code_available(session, code)

    starts_at = adjustments.get('starts_at') or original.starts_at
    expires_at = adjustments.get('expires_at') or original.expires_at
    _check_terms(original.type, original.value, starts_at, expires_at)

    duplicate = Coupon(
        code=code,
        description=adjustments.get('description') or original.description,
        type=original.type,
        value=original.value,
        min_amount=original.min_amount,
        max_uses=adjustments.get('max_uses') or original.max_uses,
        max_uses_per_user=original.max_uses_per_user,
        used_count=0,
        starts_at=_stored_time(starts_at),
        expires_at=_stored_time(expires_at),
        is_active=original.is_active
    )
    session.add(duplicate)
    _commit(session)

    logger.info(f"[COUPONS] Duplicated {original.code} as {code} by user {actor_id}")
    return duplicate


def bulk_update_coupons(session: Session, coupon_ids: List[int], action: str,
                        expires_at: Optional[datetime] = None, actor_id: Optional[int] = None) -> int:
    """
    Activate, deactivate, delete or extend several coupons at once.
    Deleted coupons are skipped.

    Returns:
        Number of coupons changed
    """
    if action == 'activate':
        values = {'is_active': True}
    elif action == 'deactivate':
        values = {'is_active': False}
    elif action == 'delete':
        values = {'is_active': False, 'deleted_at': datetime.now().astimezone()}
    elif action == 'extend':
        if not expires_at:
            raise ValidationError('expiresAt is required for extend action',
                                  details={'expiresAt': ['Required for extend']})
        values = {'expires_at': _stored_time(expires_at)}
    else:
        raise ValidationError('Invalid action', details={'action': [f'Unknown value: {action}']})

    result = session.execute(
        update(Coupon)
        .where(Coupon.id.in_(coupon_ids), Coupon.deleted_at.is_(None))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    session.commit()

    logger.info(f"[COUPONS] Bulk {action} on {result.rowcount} coupon(s) by user {actor_id}")
    return result.rowcount


def _status_filter(status: str, now: datetime, today: datetime):
    not_expired = or_(Coupon.expires_at.is_(None), Coupon.expires_at >= today)
    started = or_(Coupon.starts_at.is_(None), Coupon.starts_at <= now)
    if status == 'active':
        return [Coupon.is_active.is_(True), not_expired, started]
    if status == 'expired':
        return [Coupon.expires_at < today]
    if status == 'inactive':
        return [Coupon.is_active.is_(False)]
    return [Coupon.starts_at > now]


def list_coupons(session: Session, filters: Optional[Dict[str, Any]] = None,
                 page: int = 1, limit: int = 20, max_limit: int = 100) -> Dict[str, Any]:
    """
    Paginated coupon listing for administrators, with store-wide statistics.

    Supported filters: search (code or description), status (active,
    expired, inactive, scheduled), type, sortBy, sortOrder.
    """
    filters = filters or {}
    page = max(1, page)
    limit = max(1, min(limit, max_limit))

    now = datetime.now().astimezone()
    # Expired means the whole last day has passed
    today = datetime.combine(date.today(), time.min).astimezone()

    base = session.query(Coupon).filter(Coupon.deleted_at.is_(None))
    query = base

    search = (filters.get('search') or '').strip()
    if search:
        pattern = f'%{search}%'
        query = query.filter(or_(Coupon.code.ilike(pattern), Coupon.description.ilike(pattern)))

    status = filters.get('status')
    if status and status != 'all':
        if status not in STATUS_FILTERS:
            raise ValidationError('Invalid status', details={'status': [f'Unknown value: {status}']})
        query = query.filter(*_status_filter(status, now, today))

    coupon_type = filters.get('type')
    if coupon_type and coupon_type != 'all':
        try:
            query = query.filter(Coupon.type == CouponType(coupon_type))
        except ValueError:
            raise ValidationError('Invalid type', details={'type': [f'Unknown value: {coupon_type}']})

    sort_column = SORTABLE_FIELDS.get(filters.get('sortBy'), Coupon.created_at)
    if filters.get('sortOrder') == 'asc':
        query = query.order_by(sort_column.asc(), Coupon.id.asc())
    else:
        query = query.order_by(sort_column.desc(), Coupon.id.desc())

    total = query.order_by(None).count()
    coupons = query.offset((page - 1) * limit).limit(limit).all()
    pages = (total + limit - 1) // limit

    expiring_soon = base.filter(
        Coupon.is_active.is_(True),
        Coupon.expires_at >= today,
        Coupon.expires_at <= now + timedelta(days=EXPIRING_SOON_DAYS)
    ).order_by(Coupon.expires_at.asc()).limit(INSIGHTS_LIMIT).all()
    top_performers = base.filter(Coupon.used_count > 0).order_by(
        Coupon.used_count.desc()
    ).limit(INSIGHTS_LIMIT).all()

    return {
        'coupons': [serialize_coupon(c) for c in coupons],
        'pagination': {
            'page': page,
            'limit': limit,
            'total': total,
            'pages': pages,
            'hasNext': page < pages,
            'hasPrev': page > 1,
        },
        'statistics': {
            'total': base.count(),
            'active': base.filter(*_status_filter('active', now, today)).count(),
            'expired': base.filter(*_status_filter('expired', now, today)).count(),
            'scheduled': base.filter(*_status_filter('scheduled', now, today)).count(),
            'inactive': base.filter(*_status_filter('inactive', now, today)).count(),
            'totalUsed': session.query(func.coalesce(func.sum(Coupon.used_count), 0)).filter(
                Coupon.deleted_at.is_(None)
            ).scalar(),
            'expiringSoon': len(expiring_soon),
        },
        'insights': {
            'expiringSoon': [serialize_coupon(c) for c in expiring_soon],
            'topPerformers': [serialize_coupon(c) for c in top_performers],
        },
    }


def get_coupon_detail(session: Session, coupon_id: int) -> Dict[str, Any]:
    """Coupon with the orders that used it and their totals."""
    coupon = _get_coupon(session, coupon_id)
    orders = session.query(Order).filter(Order.coupon_id == coupon.id).order_by(
        Order.created_at.desc(), Order.id.desc()
    ).limit(DETAIL_ORDERS_LIMIT).all()

    total_discount = sum((Decimal(o.discount) for o in orders), Decimal('0'))
    total_revenue = sum((Decimal(o.total) for o in orders), Decimal('0'))
    status_breakdown = {}
    for order in orders:
        status_breakdown[order.status.value] = status_breakdown.get(order.status.value, 0) + 1

    redemption_rate = None
    if coupon.max_uses:
        redemption_rate = round(coupon.used_count / coupon.max_uses * 100)

    return {
        'coupon': serialize_coupon(coupon),
        'usage': {
            'orders': [
                {
                    'id': o.id,
                    'orderNumber': o.order_number,
                    'total': money_json(o.total),
                    'discount': money_json(o.discount),
                    'status': o.status.value,
                    'createdAt': _isoformat(o.created_at),
                }
                for o in orders
            ],
            'totalOrders': len(orders),
            'totalDiscount': money_json(total_discount),
            'totalRevenue': money_json(total_revenue),
            'statusBreakdown': status_breakdown,
            'redemptionRate': redemption_rate,
            'remainingUses': (max(0, coupon.max_uses - coupon.used_count)
                              if coupon.max_uses is not None else None),
        },
    }
