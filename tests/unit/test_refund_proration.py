"""
Unit tests for refund proration.
"""

from decimal import Decimal

import pytest

from referral_ledger.services.referral.adjustment_handler import (
    prorate_after_refund,
)


class TestProrateAfterRefund:
    """Test reward left after a partial refund."""

    def test_half_refund(self):
        """Refunding 50 of 100 halves a 10.00 reward."""
        assert prorate_after_refund(
            Decimal("10.00"), Decimal("100.00"), Decimal("50.00")
        ) == Decimal("5.00")

    def test_no_refund(self):
        """Nothing refunded keeps the whole reward."""
        assert prorate_after_refund(
            Decimal("10.00"), Decimal("100.00"), Decimal("0")
        ) == Decimal("10.00")

    @pytest.mark.parametrize("refunded", [Decimal("100.00"), Decimal("150.00")])
    def test_refund_at_or_above_base(self, refunded):
        """Refunds covering the payment leave nothing."""
        assert prorate_after_refund(
            Decimal("10.00"), Decimal("100.00"), refunded
        ) == Decimal("0")

    def test_zero_base(self):
        """A zero base leaves nothing."""
        assert prorate_after_refund(
            Decimal("3.00"), Decimal("0"), Decimal("0")
        ) == Decimal("0")

    def test_rounding(self):
        """Results are rounded to cents."""
        assert prorate_after_refund(
            Decimal("10.00"), Decimal("30.00"), Decimal("10.00")
        ) == Decimal("6.67")
