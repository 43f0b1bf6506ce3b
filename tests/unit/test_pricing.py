"""
Unit tests for the pricing calculator.
"""

from decimal import Decimal

import pytest

from storefront.exceptions import CalculationError
from storefront.services.cart_service import CartLine
from storefront.services.pricing_service import calculate_totals, calculate_subtotal, default_shipping


def line(price, quantity, cart_item_id=1):
    return CartLine(
        cart_item_id=cart_item_id,
        product_id=cart_item_id,
        product_name=f'Product {cart_item_id}',
        variant_id=None,
        quantity=quantity,
        unit_price=Decimal(price),
        stock=100
    )


class TestSubtotal:
    """Tests for the pre-discount subtotal."""

    def test_sums_price_times_quantity(self):
        lines = [line('19.99', 2, 1), line('5.50', 3, 2)]
        assert calculate_subtotal(lines) == Decimal('56.48')

    def test_empty_cart_is_zero(self):
        assert calculate_subtotal([]) == Decimal('0')


class TestDefaultShipping:
    """Tests for the default shipping rule."""

    def test_free_at_threshold(self):
        assert default_shipping(Decimal('50.00')) == Decimal('0.00')

    def test_flat_rate_below_threshold(self):
        assert default_shipping(Decimal('49.99')) == Decimal('9.99')

    def test_configured_threshold_and_rate(self):
        assert default_shipping(Decimal('74.00'), threshold='75', flat_rate='5.00') == Decimal('5.00')
        assert default_shipping(Decimal('75.00'), threshold='75', flat_rate='5.00') == Decimal('0.00')


class TestTotals:
    """Tests for the order totals."""

    def test_tax_is_charged_on_discounted_amount(self):
        """subtotal 100, discount 20, rate 0.08 -> tax 6.40 (not 8.00)."""
        totals = calculate_totals([line('100.00', 1)], Decimal('20.00'), Decimal('0.08'), Decimal('0.00'))

        assert totals.subtotal == Decimal('100.00')
        assert totals.discounted_subtotal == Decimal('80.00')
        assert totals.tax == Decimal('6.40')
        assert totals.total == Decimal('86.40')

    def test_total_includes_shipping(self):
        totals = calculate_totals([line('20.00', 2)], Decimal('0'), Decimal('0.08'), Decimal('9.99'))

        assert totals.tax == Decimal('3.20')
        assert totals.total == Decimal('53.19')

    def test_tax_rounds_half_up(self):
        # 10.05 * 0.05 = 0.5025 -> 0.50; 10.10 * 0.05 = 0.505 -> 0.51
        assert calculate_totals([line('10.05', 1)], 0, Decimal('0.05'), 0).tax == Decimal('0.50')
        assert calculate_totals([line('10.10', 1)], 0, Decimal('0.05'), 0).tax == Decimal('0.51')

    def test_discount_equal_to_subtotal_never_goes_negative(self):
        totals = calculate_totals([line('30.00', 1)], Decimal('30.00'), Decimal('0.08'), Decimal('9.99'))

        assert totals.discounted_subtotal == Decimal('0.00')
        assert totals.tax == Decimal('0.00')
        assert totals.total == Decimal('9.99')

    def test_nan_tax_rate_is_rejected(self):
        with pytest.raises(CalculationError) as exc:
            calculate_totals([line('10.00', 1)], 0, Decimal('NaN'), 0)
        assert exc.value.message == 'Invalid calculation results'

    def test_garbage_shipping_is_rejected(self):
        with pytest.raises(CalculationError):
            calculate_totals([line('10.00', 1)], 0, Decimal('0.08'), 'free')
