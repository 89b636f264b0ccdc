"""
Tests for interest accrual
"""

from decimal import Decimal
from datetime import date

from loan_engine.interest import (
    accrual_baseline, accrue_interest, days_between_inclusive, interest_till_today
)
from loan_engine.money import Money


class TestDayCounting:
    """Test inclusive day counts"""

    def test_same_day_is_one_day(self):
        assert days_between_inclusive(date(2024, 1, 1), date(2024, 1, 1)) == 1

    def test_counts_both_ends(self):
        assert days_between_inclusive(date(2024, 1, 2), date(2024, 1, 16)) == 15

    def test_empty_period(self):
        assert days_between_inclusive(date(2024, 1, 10), date(2024, 1, 9)) == 0

    def test_leap_february(self):
        assert days_between_inclusive(date(2024, 2, 1), date(2024, 2, 29)) == 29


class TestAccrueInterest:
    """Test simple daily interest"""

    def test_fifteen_days(self):
        interest = accrue_interest(Money("10000"), Decimal('0.001'), date(2024, 1, 2), date(2024, 1, 16))
        assert interest == Money("150")

    def test_empty_period_accrues_nothing(self):
        interest = accrue_interest(Money("10000"), Decimal('0.001'), date(2024, 1, 16), date(2024, 1, 2))
        assert interest == Money.zero()

    def test_no_outstanding_no_interest(self):
        assert accrue_interest(Money.zero(), Decimal('0.001'), date(2024, 1, 1), date(2024, 1, 31)) == Money.zero()

    def test_rounds_to_money(self):
        interest = accrue_interest(Money("3333.33"), Decimal('0.001'), date(2024, 1, 1), date(2024, 1, 7))
        assert interest == Money("23.33")


class TestAccrualBaseline:
    """Test which date interest starts from"""

    def test_day_after_processing(self):
        assert accrual_baseline(date(2024, 1, 1), date(2023, 12, 30), None, date(2024, 2, 1)) == date(2024, 1, 2)

    def test_falls_back_to_disbursal(self):
        assert accrual_baseline(None, date(2023, 12, 30), None, date(2024, 2, 1)) == date(2023, 12, 31)

    def test_unprocessed_loan_starts_tomorrow(self):
        assert accrual_baseline(None, None, None, date(2024, 2, 1)) == date(2024, 2, 2)

    def test_extension_takes_priority(self):
        baseline = accrual_baseline(date(2024, 1, 1), date(2024, 1, 1), date(2024, 1, 14), date(2024, 2, 1))
        assert baseline == date(2024, 1, 15)


class TestInterestTillToday:
    """Test running interest on a live loan"""

    def test_counts_days_since_baseline(self):
        summary = interest_till_today(Money("10000"), Decimal('0.001'), date(2024, 1, 2), date(2024, 1, 10))
        assert summary.exhausted_days == 9
        assert summary.interest_till_today == Money("90")

    def test_processing_day_charges_one_day(self):
        summary = interest_till_today(Money("10000"), Decimal('0.001'), date(2024, 1, 2), date(2024, 1, 1))
        assert summary.exhausted_days == 0
        assert summary.interest_till_today == Money("10")

    def test_before_processing_nothing_accrues(self):
        summary = interest_till_today(Money("10000"), Decimal('0.001'), date(2024, 1, 2), date(2023, 12, 20))
        assert summary.exhausted_days == 0
        assert summary.interest_till_today == Money.zero()

    def test_uses_outstanding_principal(self):
        summary = interest_till_today(Money("8000"), Decimal('0.001'), date(2024, 1, 2), date(2024, 1, 11))
        assert summary.interest_till_today == Money("80")
