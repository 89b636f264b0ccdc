"""
Shared fixtures for the loan engine test suite
"""

import pytest
from decimal import Decimal
from datetime import date

from loan_engine.config import EngineConfig
from loan_engine.engine import LoanCalculationEngine
from loan_engine.loans import Loan, LoanRepository, LoanStatus
from loan_engine.money import Money
from loan_engine.plans import (
    EmiFrequency, Fee, FeeKind, LoanPlan, PenaltyTier, PlanType
)
from loan_engine.storage import InMemoryStorage


STANDARD_TIERS = (
    PenaltyTier(start_day=1, end_day=1, percent=Decimal('1'), order=1),
    PenaltyTier(start_day=2, end_day=10, percent=Decimal('0.5'), order=2),
    PenaltyTier(start_day=11, end_day=None, percent=Decimal('0.2'), order=3),
)


@pytest.fixture
def settings():
    """Configuration pinned to defaults regardless of the environment"""
    return EngineConfig(
        gst_rate=Decimal('0.18'),
        frozen_statuses=["account_manager", "overdue"],
        write_back_enabled=True,
        database_path=":memory:",
        log_format="text"
    )


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def repository(storage):
    return LoanRepository(storage)


@pytest.fixture
def engine(repository, settings):
    return LoanCalculationEngine(repository, settings)


@pytest.fixture
def make_plan():
    """Factory for plan snapshots; keyword arguments override the defaults"""
    def _make(**overrides):
        values = dict(
            plan_type=PlanType.SINGLE,
            repayment_days=15,
            interest_rate_per_day=Decimal('0.001'),
            fees=(),
            penalty_tiers=STANDARD_TIERS,
            plan_id="PLAN-STD"
        )
        values.update(overrides)
        if values['plan_type'] == PlanType.MULTI_EMI:
            values.setdefault('emi_count', 3)
            values.setdefault('emi_frequency', EmiFrequency.MONTHLY)
        return LoanPlan(**values)
    return _make


@pytest.fixture
def processing_fee():
    return Fee(name="Processing Fee", percent=Decimal('2'), kind=FeeKind.DEDUCT_FROM_DISBURSAL)


@pytest.fixture
def post_service_fee():
    return Fee(name="Post Service Fee", percent=Decimal('1'), kind=FeeKind.ADD_TO_TOTAL)


@pytest.fixture
def make_loan(make_plan):
    """Factory for loans; pass plan=... or plan keyword overrides via plan_overrides"""
    def _make(loan_id="LOAN-001", principal="10000.00", plan=None, plan_overrides=None, **fields):
        if plan is None:
            plan = make_plan(**(plan_overrides or {}))
        fields.setdefault('status', LoanStatus.APPROVED)
        return Loan(id=loan_id, principal=Money(Decimal(principal)), plan=plan, **fields)
    return _make


@pytest.fixture
def processed_on():
    return date(2024, 1, 1)
