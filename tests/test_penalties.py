"""
Tests for tiered late penalties
"""

import logging
from decimal import Decimal
from datetime import date, timedelta

from loan_engine.money import Money
from loan_engine.penalties import calculate_penalty, days_overdue
from loan_engine.plans import PenaltyTier

TODAY = date(2024, 6, 30)

STANDARD_TIERS = (
    PenaltyTier(start_day=1, end_day=1, percent=Decimal('1'), order=1),
    PenaltyTier(start_day=2, end_day=10, percent=Decimal('0.5'), order=2),
    PenaltyTier(start_day=11, end_day=None, percent=Decimal('0.2'), order=3),
)


class TestDaysOverdue:
    """Test overdue day counting"""

    def test_due_yesterday_is_one_day(self):
        assert days_overdue(TODAY - timedelta(days=1), TODAY) == 1

    def test_due_today_is_not_overdue(self):
        assert days_overdue(TODAY, TODAY) == 0

    def test_future_due_date(self):
        assert days_overdue(TODAY + timedelta(days=3), TODAY) == 0

    def test_twenty_days(self):
        assert days_overdue(TODAY - timedelta(days=20), TODAY) == 20


class TestCalculatePenalty:
    """Test tier accrual against the original principal"""

    def test_three_tier_schedule_twenty_days_overdue(self):
        """
        Day 1 flat 1%, days 2-10 at 0.5%/day, day 11 onwards at 0.2%/day

        100 + 9 x 50 + 10 x 20 = 750 base, 135 GST.
        """
        penalty = calculate_penalty(Money("10000"), STANDARD_TIERS, TODAY - timedelta(days=20), TODAY)

        assert penalty.days_overdue == 20
        assert penalty.penalty_base == Money("750")
        assert penalty.penalty_gst == Money("135")
        assert penalty.penalty_total == Money("885")
        assert [charge.days_charged for charge in penalty.tier_charges] == [1, 9, 10]

    def test_first_day_only_charges_flat_tier(self):
        penalty = calculate_penalty(Money("10000"), STANDARD_TIERS, TODAY - timedelta(days=1), TODAY)
        assert penalty.penalty_base == Money("100")
        assert penalty.penalty_total == Money("118")

    def test_within_bounded_tier(self):
        penalty = calculate_penalty(Money("10000"), STANDARD_TIERS, TODAY - timedelta(days=5), TODAY)
        assert penalty.penalty_base == Money("300")

    def test_not_overdue_is_zero(self):
        penalty = calculate_penalty(Money("10000"), STANDARD_TIERS, TODAY, TODAY)
        assert penalty.penalty_total == Money.zero()
        assert penalty.days_overdue == 0

    def test_tiers_sorted_before_use(self):
        shuffled = tuple(reversed(STANDARD_TIERS))
        ordered = calculate_penalty(Money("10000"), STANDARD_TIERS, TODAY - timedelta(days=20), TODAY)
        reordered = calculate_penalty(Money("10000"), shuffled, TODAY - timedelta(days=20), TODAY)
        assert ordered.penalty_total == reordered.penalty_total

    def test_tier_gst_override(self):
        tiers = [
            PenaltyTier(start_day=1, end_day=1, percent=Decimal('4'), gst_percent=Decimal('0'), order=1),
            PenaltyTier(start_day=2, end_day=None, percent=Decimal('0.2'), order=2),
        ]
        penalty = calculate_penalty(Money("10000"), tiers, TODAY - timedelta(days=3), TODAY)

        # 400 without GST, then 2 days x 20 with 18% GST
        assert penalty.penalty_base == Money("440")
        assert penalty.penalty_gst == Money("7.20")
        assert penalty.penalty_total == Money("447.20")

    def test_gst_rounded_once_on_summed_base(self):
        """Two 0.25 charges carry 0.09 GST together, not 0.04 + 0.04"""
        tiers = [
            PenaltyTier(start_day=1, end_day=1, percent=Decimal('1'), order=1),
            PenaltyTier(start_day=2, end_day=None, percent=Decimal('1'), order=2),
        ]
        penalty = calculate_penalty(Money("25"), tiers, TODAY - timedelta(days=2), TODAY)

        assert penalty.penalty_base == Money("0.50")
        assert penalty.penalty_gst == Money("0.09")
        assert penalty.penalty_total == Money("0.59")

    def test_missing_tiers_give_zero_with_warning(self, caplog):
        with caplog.at_level(logging.WARNING, logger="loan_engine.penalties"):
            penalty = calculate_penalty(Money("10000"), [], TODAY - timedelta(days=4), TODAY, loan_id="LOAN-9")

        assert penalty.penalty_total == Money.zero()
        assert penalty.days_overdue == 4
        assert "LOAN-9" in caplog.text
        assert "no penalty tiers" in caplog.text

    def test_basis_is_the_given_principal(self):
        small = calculate_penalty(Money("5000"), STANDARD_TIERS, TODAY - timedelta(days=20), TODAY)
        assert small.penalty_base == Money("375")

    def test_long_overdue_passes_through_every_tier(self):
        tiers = STANDARD_TIERS[:2] + (
            PenaltyTier(start_day=11, end_day=120, percent=Decimal('0.2'), order=3),
            PenaltyTier(start_day=121, end_day=None, percent=Decimal('0.1'), order=4),
        )
        penalty = calculate_penalty(Money("10000"), tiers, TODAY - timedelta(days=130), TODAY)

        # 100 + 9 x 50 + 110 x 20 + 10 x 10
        assert penalty.penalty_base == Money("2850")
