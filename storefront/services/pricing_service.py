"""
Pricing calculator for checkout.

Pure functions: no session and no Flask context. All amounts are Decimal
and rounded to currency precision with half-up rounding.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional

from storefront.exceptions import CalculationError
from storefront.utils.formatters import round_money, to_decimal

ZERO = Decimal('0.00')
DEFAULT_FREE_SHIPPING_THRESHOLD = Decimal('50.00')
DEFAULT_FLAT_SHIPPING_RATE = Decimal('9.99')


@dataclass(frozen=True)
class OrderTotals:
    """Stored order amounts."""
    subtotal: Decimal
    discount: Decimal
    discounted_subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    total: Decimal

    def as_dict(self):
        return {
            'subtotal': self.subtotal,
            'discount': self.discount,
            'discountedSubtotal': self.discounted_subtotal,
            'tax': self.tax,
            'shipping': self.shipping,
            'total': self.total,
        }


def calculate_subtotal(lines: Iterable) -> Decimal:
    """Sum of unit price x quantity over cart lines."""
    subtotal = ZERO
    for line in lines:
        subtotal += Decimal(line.unit_price) * line.quantity
    return subtotal


def default_shipping(subtotal: Decimal,
                     threshold: Optional[Decimal] = None,
                     flat_rate: Optional[Decimal] = None) -> Decimal:
    """Free shipping at or above the threshold, flat rate below it."""
    threshold = DEFAULT_FREE_SHIPPING_THRESHOLD if threshold is None else to_decimal(threshold)
    flat_rate = DEFAULT_FLAT_SHIPPING_RATE if flat_rate is None else to_decimal(flat_rate)
    return ZERO if subtotal >= threshold else flat_rate


def calculate_totals(lines: Iterable, discount, tax_rate, shipping) -> OrderTotals:
    """
    Derive subtotal, discounted subtotal, tax, shipping and total.

    Tax is charged on the post-discount amount. Totals never go negative.

    Raises:
        CalculationError: If any resulting field is NaN
    """
    discount = to_decimal(discount) if discount is not None else ZERO
    tax_rate = to_decimal(tax_rate) if tax_rate is not None else Decimal('NaN')
    shipping = to_decimal(shipping) if shipping is not None else Decimal('NaN')

    subtotal = calculate_subtotal(lines)

    if any(value.is_nan() for value in (subtotal, discount, tax_rate, shipping)):
        raise CalculationError()

    discounted_subtotal = max(ZERO, subtotal - discount)
    tax = round_money(discounted_subtotal * tax_rate)
    total = max(ZERO, round_money(discounted_subtotal + tax + shipping))

    return OrderTotals(
        subtotal=round_money(subtotal),
        discount=round_money(discount),
        discounted_subtotal=round_money(discounted_subtotal),
        tax=tax,
        shipping=round_money(shipping),
        total=total,
    )
