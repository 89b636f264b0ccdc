"""
Tests for plan snapshots and fee classification
"""

import logging
import pytest
from decimal import Decimal

from loan_engine.exceptions import InvalidLoanError
from loan_engine.plans import (
    EmiFrequency, FeeKind, LoanPlan, PenaltyTier, PlanType, normalize_fee_kind, parse_flag
)


class TestNormalizeFeeKind:
    """Test the one place fee classification is decided"""

    def test_recognised_method_wins(self):
        assert normalize_fee_kind("Post Service Fee", "deduct_from_disbursal") == FeeKind.DEDUCT_FROM_DISBURSAL
        assert normalize_fee_kind("Processing Fee", "add_to_total") == FeeKind.ADD_TO_TOTAL

    def test_method_is_case_insensitive(self):
        assert normalize_fee_kind("Processing Fee", "  ADD_TO_TOTAL ") == FeeKind.ADD_TO_TOTAL

    def test_missing_method_on_post_service_fee(self, caplog):
        with caplog.at_level(logging.WARNING, logger="loan_engine.plans"):
            kind = normalize_fee_kind("Monthly POST SERVICE FEE", None)
        assert kind == FeeKind.ADD_TO_TOTAL
        assert "unrecognised application method" in caplog.text

    def test_unknown_method_defaults_to_deduction(self):
        assert normalize_fee_kind("Processing Fee", "upfront") == FeeKind.DEDUCT_FROM_DISBURSAL
        assert normalize_fee_kind("Processing Fee", "") == FeeKind.DEDUCT_FROM_DISBURSAL

    def test_custom_marker(self):
        assert normalize_fee_kind("Servicing charge", None, marker="servicing") == FeeKind.ADD_TO_TOTAL


class TestPenaltyTier:
    """Test tier validation and day counting"""

    def test_single_day_tier_charges_once(self):
        tier = PenaltyTier(start_day=1, end_day=1, percent=Decimal('1'))
        assert tier.is_single_day
        assert tier.chargeable_days(1) == 1
        assert tier.chargeable_days(40) == 1

    def test_bounded_tier(self):
        tier = PenaltyTier(start_day=11, end_day=120, percent=Decimal('0.2'))
        assert tier.chargeable_days(10) == 0
        assert tier.chargeable_days(11) == 1
        assert tier.chargeable_days(50) == 40
        assert tier.chargeable_days(500) == 110

    def test_open_ended_tier(self):
        tier = PenaltyTier(start_day=121, end_day=None, percent=Decimal('0.1'))
        assert tier.is_open_ended
        assert tier.chargeable_days(130) == 10

    def test_rejects_inverted_band(self):
        with pytest.raises(InvalidLoanError):
            PenaltyTier(start_day=10, end_day=2, percent=Decimal('1'))

    def test_rejects_start_before_day_one(self):
        with pytest.raises(InvalidLoanError):
            PenaltyTier(start_day=0, end_day=None, percent=Decimal('1'))

    def test_from_legacy_dict(self):
        tier = PenaltyTier.from_dict({
            'days_overdue_start': 2, 'days_overdue_end': None,
            'fee_value': 0.5, 'tier_order': 3, 'gst_percent': "12"
        })
        assert tier.start_day == 2
        assert tier.end_day is None
        assert tier.percent == Decimal('0.5')
        assert tier.gst_percent == Decimal('12')
        assert tier.order == 3


class TestLoanPlan:
    """Test plan validation and snapshot parsing"""

    def test_rejects_zero_emi_count(self):
        with pytest.raises(InvalidLoanError):
            LoanPlan(plan_type=PlanType.MULTI_EMI, repayment_days=30,
                     interest_rate_per_day=Decimal('0.001'), emi_count=0)

    def test_rejects_negative_rate(self):
        with pytest.raises(InvalidLoanError):
            LoanPlan(plan_type=PlanType.SINGLE, repayment_days=15, interest_rate_per_day=Decimal('-0.001'))

    def test_single_plan_has_one_installment(self):
        plan = LoanPlan(plan_type=PlanType.SINGLE, repayment_days=15,
                        interest_rate_per_day=Decimal('0.001'), emi_count=6)
        assert plan.installment_count == 1

    def test_from_legacy_snapshot(self):
        """Origination snapshots use their own key names and plain JSON numbers"""
        snapshot = {
            'plan_id': 7,
            'plan_type': 'multi_emi',
            'total_duration_days': 30,
            'interest_percent_per_day': 0.001,
            'emi_count': 3,
            'emi_frequency': 'monthly',
            'calculate_by_salary_date': 1,
            'fees': [
                {'fee_name': 'Processing Fee', 'fee_percent': 2, 'application_method': 'deduct_from_disbursal'},
                {'fee_name': 'Post Service Fee', 'fee_percent': 1.5},
            ],
            'late_fee_tiers': [
                {'days_overdue_start': 1, 'days_overdue_end': 1, 'fee_value': 4, 'tier_order': 1},
            ]
        }
        plan = LoanPlan.from_snapshot(snapshot)

        assert plan.plan_id == "7"
        assert plan.plan_type == PlanType.MULTI_EMI
        assert plan.repayment_days == 30
        assert plan.interest_rate_per_day == Decimal('0.001')
        assert plan.calculate_by_salary_date
        assert plan.emi_frequency == EmiFrequency.MONTHLY
        assert [fee.kind for fee in plan.fees] == [FeeKind.DEDUCT_FROM_DISBURSAL, FeeKind.ADD_TO_TOTAL]
        assert plan.fees[1].percent == Decimal('1.5')
        assert len(plan.penalty_tiers) == 1

    def test_missing_duration_uses_default(self):
        plan = LoanPlan.from_snapshot({'plan_type': 'single', 'interest_rate_per_day': '0.001'})
        assert plan.repayment_days == 15

    def test_invalid_plan_type(self):
        with pytest.raises(InvalidLoanError):
            LoanPlan.from_snapshot({'plan_type': 'balloon'})

    def test_snapshot_survives_reparse(self, make_plan, processing_fee):
        plan = make_plan(fees=(processing_fee,))
        assert LoanPlan.from_snapshot(plan.to_snapshot()) == plan

    def test_sorted_penalty_tiers(self):
        plan = LoanPlan(
            plan_type=PlanType.SINGLE, repayment_days=15, interest_rate_per_day=Decimal('0.001'),
            penalty_tiers=(
                PenaltyTier(start_day=11, end_day=None, percent=Decimal('0.2'), order=2),
                PenaltyTier(start_day=1, end_day=1, percent=Decimal('1'), order=1),
            )
        )
        assert [tier.start_day for tier in plan.sorted_penalty_tiers()] == [1, 11]


class TestParseFlag:
    """Test stored boolean columns"""

    @pytest.mark.parametrize("value", [True, 1, "1", "true", "TRUE", " True "])
    def test_true_values(self, value):
        assert parse_flag(value) is True

    @pytest.mark.parametrize("value", [False, 0, "0", "false", "False", "", None, "no"])
    def test_false_values(self, value):
        assert parse_flag(value) is False

    @pytest.mark.parametrize("stored,expected", [("0", False), ("false", False), ("1", True), ("true", True)])
    def test_salary_flag_in_snapshot(self, stored, expected):
        plan = LoanPlan.from_snapshot({'plan_type': 'single', 'calculate_by_salary_date': stored})
        assert plan.calculate_by_salary_date is expected
