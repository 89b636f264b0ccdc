"""
Schedule Generator Module

Builds installment due dates (fixed frequency or anchored to the
borrower's salary day) and allocates principal, interest and repayable
fees across them.
"""

from decimal import Decimal
from datetime import date, datetime, timedelta
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Sequence
from enum import Enum
import calendar
import logging

from .exceptions import InvalidLoanError
from .interest import accrue_interest, days_between_inclusive
from .money import Money, parse_decimal
from .plans import EmiFrequency, LoanPlan

logger = logging.getLogger(__name__)

_FIXED_STEP_DAYS = {
    EmiFrequency.DAILY: 1,
    EmiFrequency.WEEKLY: 7,
    EmiFrequency.BIWEEKLY: 14,
}


class InstallmentStatus(Enum):
    PENDING = "pending"
    PAID = "paid"


@dataclass
class Installment:
    """One repayment of a schedule"""
    number: int                      # 1-indexed
    due_date: date
    principal_component: Money
    interest_component: Money
    fee_component: Money
    fee_gst_component: Money
    interest_days: int = 0
    penalty_base: Money = None
    penalty_gst: Money = None
    penalty_total: Money = None
    status: InstallmentStatus = InstallmentStatus.PENDING

    def __post_init__(self):
        # Penalty depends on "today" and is filled in fresh on every calculation
        for name in ('penalty_base', 'penalty_gst', 'penalty_total'):
            if getattr(self, name) is None:
                setattr(self, name, Money.zero())

    @property
    def is_paid(self) -> bool:
        return self.status == InstallmentStatus.PAID

    @property
    def amount(self) -> Money:
        return (self.principal_component + self.interest_component + self.fee_component
                + self.fee_gst_component + self.penalty_total)

    def to_dict(self) -> Dict[str, Any]:
        """Persisted ``emi_schedule`` entry; penalty is never stored"""
        return {
            'emi_number': self.number,
            'due_date': self.due_date.isoformat(),
            'principal': self.principal_component.to_plain(),
            'interest': self.interest_component.to_plain(),
            'fee': self.fee_component.to_plain(),
            'fee_gst': self.fee_gst_component.to_plain(),
            'interest_days': self.interest_days,
            'amount': (self.amount - self.penalty_total).to_plain(),
            'status': self.status.value
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Installment':
        """Read a persisted entry; older rows may carry only number, date and status"""
        number = data.get('emi_number', data.get('number'))
        status = str(data.get('status') or InstallmentStatus.PENDING.value).lower()
        return cls(
            number=int(number),
            due_date=parse_date(data['due_date']),
            principal_component=Money(parse_decimal(data.get('principal'))),
            interest_component=Money(parse_decimal(data.get('interest'))),
            fee_component=Money(parse_decimal(data.get('fee'))),
            fee_gst_component=Money(parse_decimal(data.get('fee_gst'))),
            interest_days=int(data.get('interest_days') or 0),
            status=InstallmentStatus.PAID if status == 'paid' else InstallmentStatus.PENDING
        )


def parse_date(value: Any) -> date:
    """Accept a date or an ISO string (a time part is ignored)"""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value:
        raise InvalidLoanError("Missing date value")
    return date.fromisoformat(str(value)[:10])


def add_months(start: date, months: int, day: Optional[int] = None) -> date:
    """
    Move a date by whole calendar months

    Args:
        start: Date to move from
        months: Months to add
        day: Day of month to land on (defaults to start.day), clamped to the
            last day of a shorter month

    Returns:
        The shifted date
    """
    month = start.month - 1 + months
    year = start.year + month // 12
    month = month % 12 + 1
    target_day = day if day is not None else start.day
    return date(year, month, min(target_day, calendar.monthrange(year, month)[1]))


def salary_date_for_month(year: int, month: int, salary_day: int) -> date:
    """The salary day of a given month, clamped to month end"""
    return date(year, month, min(salary_day, calendar.monthrange(year, month)[1]))


def next_salary_date(base_date: date, salary_day: int, min_days: int = 0) -> date:
    """
    First salary date on or after base_date that is at least min_days away

    Starts with this month's salary day (or next month's if it already
    passed) and keeps moving a month forward while the gap from base_date is
    shorter than the minimum tenor.
    """
    candidate = salary_date_for_month(base_date.year, base_date.month, salary_day)
    if candidate < base_date:
        candidate = add_months(candidate.replace(day=1), 1, salary_day)

    while (candidate - base_date).days < min_days:
        candidate = add_months(candidate.replace(day=1), 1, salary_day)
    return candidate


def is_valid_salary_day(salary_day: Any) -> bool:
    try:
        return 1 <= int(salary_day) <= 31
    except (TypeError, ValueError):
        return False


def generate_due_dates(
    plan: LoanPlan,
    base_date: date,
    salary_day: Optional[int] = None
) -> List[date]:
    """
    Due dates for a plan starting from base_date

    Salary-anchored plans use the borrower's salary day when it is valid,
    and fall back to fixed offsets (with a warning) when it is not.

    Args:
        plan: Plan snapshot
        base_date: Processing date, or the calculation date before processing
        salary_day: Borrower's salary day of month (1-31)

    Returns:
        plan.installment_count due dates in ascending order
    """
    count = plan.installment_count

    if plan.calculate_by_salary_date:
        if is_valid_salary_day(salary_day):
            day = int(salary_day)
            first = next_salary_date(base_date, day, plan.repayment_days)
            return [add_months(first.replace(day=1), offset, day) for offset in range(count)]
        logger.warning(
            "Plan %s is salary-anchored but salary day %r is unusable; using fixed due dates",
            plan.plan_id, salary_day
        )

    first = base_date + timedelta(days=plan.repayment_days)
    if plan.emi_frequency == EmiFrequency.MONTHLY:
        return [add_months(first, offset) for offset in range(count)]

    step = _FIXED_STEP_DAYS[plan.emi_frequency]
    return [first + timedelta(days=step * offset) for offset in range(count)]


def validate_shape(principal: Money, plan: LoanPlan) -> None:
    """Refuse shapes that would produce nonsensical schedules"""
    if not principal.is_positive():
        raise InvalidLoanError(f"Principal must be positive, got {principal.to_plain()}")
    if plan.emi_count <= 0:
        raise InvalidLoanError(f"EMI count must be positive, got {plan.emi_count}")
    if plan.interest_rate_per_day < Decimal('0'):
        raise InvalidLoanError(f"Interest rate cannot be negative: {plan.interest_rate_per_day}")
    if plan.repayment_days < 0:
        raise InvalidLoanError(f"Tenor cannot be negative: {plan.repayment_days}")


def build_installments(
    principal: Money,
    rate_per_day: Decimal,
    due_dates: Sequence[date],
    accrual_start: date,
    repayable_fee: Money = None,
    repayable_fee_gst: Money = None,
    settled: Optional[Dict[int, Installment]] = None
) -> List[Installment]:
    """
    Allocate a loan across its due dates

    Principal and the repayable fee and fee GST totals are split evenly with
    the rounding remainder on the last installment. Interest is accrued on
    the reducing balance: each period runs from the day after the previous
    due date to its own due date, but never starts before accrual_start, so
    days before an extension are not billed again.

    Args:
        principal: Loan principal
        rate_per_day: Daily interest rate as a fraction
        due_dates: Ascending due dates, one per installment
        accrual_start: First day interest accrues on
        repayable_fee: Total repayable fees (excluding GST)
        repayable_fee_gst: Total GST on repayable fees
        settled: Paid installments by number; their stored amounts are
            kept as they are instead of being recomputed

    Returns:
        Installments numbered from 1; settled ones are marked paid
    """
    settled = settled or {}
    if not due_dates:
        raise InvalidLoanError("Cannot build a schedule without due dates")
    if any(later < earlier for earlier, later in zip(due_dates, due_dates[1:])):
        raise InvalidLoanError("Due dates must be in ascending order")

    parts = len(due_dates)
    principal_shares = principal.split(parts)
    fee_shares = (repayable_fee or Money.zero()).split(parts)
    fee_gst_shares = (repayable_fee_gst or Money.zero()).split(parts)

    installments = []
    outstanding = principal
    period_start = accrual_start
    for index, due in enumerate(due_dates):
        number = index + 1
        if number in settled:
            item = replace(settled[number], number=number, due_date=due, status=InstallmentStatus.PAID,
                           penalty_base=None, penalty_gst=None, penalty_total=None)
        else:
            item = Installment(
                number=number,
                due_date=due,
                principal_component=principal_shares[index],
                interest_component=accrue_interest(outstanding, rate_per_day, period_start, due),
                fee_component=fee_shares[index],
                fee_gst_component=fee_gst_shares[index],
                interest_days=days_between_inclusive(period_start, due)
            )
        installments.append(item)
        outstanding = outstanding - item.principal_component
        period_start = max(due + timedelta(days=1), accrual_start)

    return installments


def with_due_dates(installments: Sequence[Installment], due_dates: Sequence[date]) -> List[Installment]:
    """Copy of a schedule with its due dates replaced position by position"""
    return [replace(item, due_date=due) for item, due in zip(installments, due_dates)]
