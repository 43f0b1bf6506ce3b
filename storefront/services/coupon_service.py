"""
Coupon service - validation, discount computation and redemption.

Validation is fail-fast: checks run in a fixed order and the first failing
rule raises CouponError. At checkout every check runs inside the order
transaction, so concurrent checkouts racing for a capped coupon see one
serialized view of `used_count`.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Dict, Any

from sqlalchemy import func, update, or_
from sqlalchemy.orm import Session

from storefront.models import Coupon, CouponType, CouponUsage
from storefront.exceptions import CouponError
from storefront.utils.formatters import round_money, to_decimal, money, date_us, money_json

logger = logging.getLogger(__name__)

LOW_REMAINING_USES = 5

MSG_INVALID = 'Invalid or inactive coupon code'
MSG_EXPIRED = 'This coupon has expired'
MSG_EXHAUSTED = 'This coupon has reached its maximum usage limit'


@dataclass
class CouponResult:
    """Outcome of a successful validation."""
    coupon: Coupon
    discount: Decimal
    remaining_uses: Optional[int]
    user_uses_remaining: Optional[int]


def local_time(moment: Optional[datetime]) -> Optional[datetime]:
    """
    Moment as naive wall-clock time of the server's timezone.

    Timezone-aware values (PostgreSQL returns UTC) are converted first;
    naive values are taken to be local already.
    """
    if moment is None or moment.tzinfo is None:
        return moment
    return moment.astimezone().replace(tzinfo=None)


def end_of_day(moment: datetime) -> datetime:
    """Last instant of the moment's local calendar day."""
    return local_time(moment).replace(hour=23, minute=59, second=59, microsecond=999999)


def find_coupon(session: Session, code: str) -> Optional[Coupon]:
    """Case-insensitive lookup of an active, non-deleted coupon."""
    normalized = (code or '').strip().upper()
    if not normalized:
        return None
    return session.query(Coupon).filter(
        func.upper(Coupon.code) == normalized,
        Coupon.deleted_at.is_(None),
        Coupon.is_active.is_(True)
    ).first()


def count_user_usages(session: Session, coupon_id: int, user_id: int) -> int:
    return session.query(func.count(CouponUsage.id)).filter(
        CouponUsage.coupon_id == coupon_id,
        CouponUsage.user_id == user_id
    ).scalar() or 0


def compute_discount(coupon: Coupon, subtotal: Decimal) -> Decimal:
    """
    Discount for a subtotal: percentage of it or a fixed amount,
    never more than the subtotal itself.
    """
    value = Decimal(coupon.value)
    if coupon.type == CouponType.PERCENTAGE:
        discount = subtotal * value / Decimal('100')
    else:
        discount = value
    discount = min(discount, subtotal)
    return round_money(discount)


def validate_coupon(session: Session, code: str, user_id: int, subtotal, now: Optional[datetime] = None) -> CouponResult:
    """
    Validate a coupon code for a user and a pre-discount subtotal.

    Args:
        session: Database session (the order transaction at checkout)
        code: Raw coupon code as typed by the shopper
        user_id: Requesting user
        subtotal: Pre-discount subtotal
        now: Reference time (defaults to the current local time)

    Returns:
        CouponResult with the coupon and the rounded discount

    Raises:
        CouponError: At the first failing rule
    """
    subtotal = to_decimal(subtotal) or Decimal('0')
    now = local_time(now or datetime.now())

    # 1. Lookup
    coupon = find_coupon(session, code)
    if not coupon:
        raise CouponError(MSG_INVALID, CouponError.INVALID)

    # 2. Activation window start
    if coupon.starts_at and local_time(coupon.starts_at) > now:
        raise CouponError(
            f'This coupon will be active from {date_us(local_time(coupon.starts_at))}',
            CouponError.NOT_STARTED
        )

    # 3. Expiry, valid through the end of its local calendar day
    if coupon.expires_at and end_of_day(coupon.expires_at) < now:
        raise CouponError(MSG_EXPIRED, CouponError.EXPIRED)

    # 4. Global usage cap
    if coupon.max_uses is not None and coupon.used_count >= coupon.max_uses:
        raise CouponError(MSG_EXHAUSTED, CouponError.EXHAUSTED, {'remainingUses': 0})

    # 5. Per-user usage cap
    user_usage_count = 0
    if coupon.max_uses_per_user is not None:
        user_usage_count = count_user_usages(session, coupon.id, user_id)
        if user_usage_count >= coupon.max_uses_per_user:
            raise CouponError(
                f'You have already used this coupon {user_usage_count} time(s)',
                CouponError.USER_LIMIT,
                {'userUsesRemaining': 0}
            )

    # 6. Minimum order amount
    if coupon.min_amount is not None and subtotal < Decimal(coupon.min_amount):
        raise CouponError(
            f'Minimum order amount of {money(coupon.min_amount)} required',
            CouponError.MIN_AMOUNT,
            {
                'requiredAmount': money_json(coupon.min_amount),
                'currentAmount': money_json(subtotal),
                'shortfall': money_json(Decimal(coupon.min_amount) - subtotal),
            }
        )

    # 7. Discount
    discount = compute_discount(coupon, subtotal)

    return CouponResult(
        coupon=coupon,
        discount=discount,
        remaining_uses=max(0, coupon.max_uses - coupon.used_count) if coupon.max_uses is not None else None,
        user_uses_remaining=(max(0, coupon.max_uses_per_user - user_usage_count)
                             if coupon.max_uses_per_user is not None else None),
    )


def redeem_coupon(session: Session, coupon: Coupon, user_id: int, order_id: int, discount: Decimal) -> CouponUsage:
    """
    Consume one use of the coupon and record who used it on which order.

    The increment is a single conditional UPDATE guarded by the global cap,
    so `used_count` can never pass `max_uses` even when two transactions
    validated against the same snapshot.

    Raises:
        CouponError: If the cap was reached before this increment
    """
    result = session.execute(
        update(Coupon)
        .where(
            Coupon.id == coupon.id,
            or_(Coupon.max_uses.is_(None), Coupon.used_count < Coupon.max_uses)
        )
        .values(used_count=Coupon.used_count + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        logger.warning(f"[COUPON] {coupon.code} exhausted at redemption time (user={user_id})")
        raise CouponError(MSG_EXHAUSTED, CouponError.EXHAUSTED, {'remainingUses': 0})

    usage = CouponUsage(
        coupon_id=coupon.id,
        user_id=user_id,
        order_id=order_id,
        discount=discount
    )
    session.add(usage)
    session.flush()
    return usage


def preview_coupon(session: Session, code: str, user_id: int, order_amount, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Validate a coupon for display in the cart without redeeming it.

    Returns:
        dict with the coupon summary, discount, new total, savings
        percentage and a warning when few uses remain
    """
    order_amount = to_decimal(order_amount)
    result = validate_coupon(session, code, user_id, order_amount, now=now)
    coupon = result.coupon

    new_total = max(Decimal('0'), round_money(order_amount - result.discount))
    savings_percentage = 0
    if order_amount > 0:
        savings_percentage = int((result.discount / order_amount * 100).quantize(Decimal('1'), rounding=ROUND_HALF_UP))

    warnings = []
    if result.remaining_uses is not None and result.remaining_uses <= LOW_REMAINING_USES:
        warnings.append(f'Only {result.remaining_uses} uses remaining! Complete checkout quickly.')

    return {
        'valid': True,
        'coupon': {
            'id': coupon.id,
            'code': coupon.code,
            'type': coupon.type.value,
            'value': money_json(coupon.value),
            'description': coupon.description,
            'minAmount': money_json(coupon.min_amount),
            'expiresAt': coupon.expires_at.isoformat() if coupon.expires_at else None,
        },
        'discount': money_json(result.discount),
        'originalTotal': money_json(order_amount),
        'newTotal': money_json(new_total),
        'savingsPercentage': savings_percentage,
        'message': f'Coupon applied successfully! You saved {money(result.discount)} ({savings_percentage}%)',
        'warnings': warnings or None,
        'details': {
            'hasUsageLimit': coupon.max_uses is not None,
            'remainingUses': result.remaining_uses,
            'hasUserLimit': coupon.max_uses_per_user is not None,
            'userUsesRemaining': result.user_uses_remaining,
        },
    }
