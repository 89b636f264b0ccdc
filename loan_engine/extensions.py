"""
Tenor Extension Module

Lets a borrower push out the due dates of a processed loan for a fee.
Extension is the only operation allowed to move a processed loan's due
dates; it also resets the interest baseline to the day after the
extension.
"""

from decimal import Decimal
from datetime import date, timedelta
from dataclasses import dataclass, field
from typing import List, Optional
import logging

from .config import EngineConfig, get_config
from .exceptions import ExtensionNotAllowedError
from .interest import accrual_baseline, days_between_inclusive
from .loans import Loan, LoanRepository
from .logging_config import log_action
from .money import Money
from .plans import LoanPlan
from .schedule import add_months, is_valid_salary_day, with_due_dates

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExtensionEligibility:
    eligible: bool
    reason: Optional[str] = None
    due_date: Optional[date] = None
    installment_number: Optional[int] = None
    window_start: Optional[date] = None
    window_end: Optional[date] = None


@dataclass(frozen=True)
class ExtendedDates:
    due_dates: List[date]
    extension_period_days: int


@dataclass(frozen=True)
class ExtensionCharges:
    extension_fee: Money
    gst_amount: Money
    interest_till_date: Money
    interest_days: int

    @property
    def total(self) -> Money:
        return self.extension_fee + self.gst_amount + self.interest_till_date


@dataclass
class ExtensionResult:
    loan: Loan
    charges: ExtensionCharges
    previous_due_dates: List[date]
    new_due_dates: List[date]
    extension_period_days: int
    warnings: List[str] = field(default_factory=list)


def _stored_due_dates(loan: Loan) -> List[date]:
    if loan.schedule:
        return [item.due_date for item in sorted(loan.schedule, key=lambda item: item.number)]
    return list(loan.due_dates or [])


def check_extension_eligibility(
    loan: Loan,
    today: date,
    installment_number: Optional[int] = None,
    max_extensions: int = 4,
    window_before_days: int = 5,
    window_after_days: int = 15
) -> ExtensionEligibility:
    """
    Whether a loan may be extended today

    Only the first pending installment can be extended, and only inside
    the window [due - window_before_days, due + window_after_days].

    Args:
        loan: Loan to check
        today: Date of the request
        installment_number: Installment the borrower asked to extend, None for the first pending one
        max_extensions: Extensions allowed over the loan's life
        window_before_days: Days before the due date the window opens
        window_after_days: Days after the due date the window closes

    Returns:
        ExtensionEligibility with a reason when not eligible
    """
    if not loan.is_processed:
        return ExtensionEligibility(False, "Loan must be processed before extension can be requested")

    if loan.extension_count >= max_extensions:
        return ExtensionEligibility(False, f"Maximum {max_extensions} extensions already availed")

    dates = _stored_due_dates(loan)
    if not dates:
        return ExtensionEligibility(False, "Due date not found")

    paid = set(loan.paid_numbers)
    pending = [number for number in range(1, len(dates) + 1) if number not in paid]
    if not pending:
        return ExtensionEligibility(False, "No pending installment to extend")

    first_pending = pending[0]
    if installment_number is not None and installment_number != first_pending:
        return ExtensionEligibility(False, "Only the first pending installment can be extended")

    due = dates[first_pending - 1]
    window_start = due - timedelta(days=window_before_days)
    window_end = due + timedelta(days=window_after_days)

    if today < window_start:
        reason = f"Extension window opens on {window_start.isoformat()}"
    elif today > window_end:
        reason = f"Extension window expired on {window_end.isoformat()}"
    else:
        reason = None

    return ExtensionEligibility(
        eligible=reason is None,
        reason=reason,
        due_date=due,
        installment_number=first_pending,
        window_start=window_start,
        window_end=window_end
    )


def extended_due_dates(
    plan: LoanPlan,
    current_dates: List[date],
    salary_day: Optional[int] = None,
    fixed_days: int = 15
) -> ExtendedDates:
    """
    Shift due dates for an extension

    Salary-anchored plans move each date to the salary day of the following
    month; every other plan adds fixed_days. The extension period is the gap
    between the first two new dates on multi-EMI plans, and old to new due
    date otherwise.
    """
    if not current_dates:
        return ExtendedDates([], 0)

    if plan.calculate_by_salary_date and is_valid_salary_day(salary_day):
        day = int(salary_day)
        new_dates = [add_months(due.replace(day=1), 1, day) for due in current_dates]
    else:
        new_dates = [due + timedelta(days=fixed_days) for due in current_dates]

    if plan.is_multi_emi and len(new_dates) >= 2:
        period = (new_dates[1] - new_dates[0]).days
    else:
        period = (new_dates[0] - current_dates[0]).days

    return ExtendedDates(new_dates, period)


def calculate_extension_charges(
    loan: Loan,
    extension_date: date,
    fee_rate: Decimal = Decimal('0.21'),
    gst_rate: Decimal = Decimal('0.18')
) -> ExtensionCharges:
    """
    Amount payable to extend a loan on extension_date

    Fee is fee_rate of principal with GST on top, plus interest from the
    current accrual baseline through the extension date.
    """
    fee = loan.principal * fee_rate
    baseline = accrual_baseline(loan.processed_at, loan.disbursed_at, loan.last_extension_date, extension_date)
    interest_days = days_between_inclusive(baseline, extension_date)
    rate = loan.plan.interest_rate_per_day if loan.plan else Decimal('0')

    return ExtensionCharges(
        extension_fee=fee,
        gst_amount=fee * gst_rate,
        interest_till_date=loan.principal * (rate * interest_days),
        interest_days=interest_days
    )


class ExtensionService:
    """Checks, prices and applies tenor extensions"""

    def __init__(self, repository: LoanRepository, settings: Optional[EngineConfig] = None):
        self.repository = repository
        self.settings = settings or get_config()

    def check(self, loan: Loan, today: date, installment_number: Optional[int] = None) -> ExtensionEligibility:
        return check_extension_eligibility(
            loan,
            today,
            installment_number,
            max_extensions=self.settings.max_extensions,
            window_before_days=self.settings.extension_window_before_days,
            window_after_days=self.settings.extension_window_after_days
        )

    def quote(self, loan: Loan, today: date) -> ExtensionCharges:
        return calculate_extension_charges(loan, today, self.settings.extension_fee_rate, self.settings.gst_rate)

    def extend(
        self,
        loan_id: str,
        today: date,
        salary_day: Optional[int] = None,
        installment_number: Optional[int] = None
    ) -> ExtensionResult:
        """
        Apply an extension

        Pending installments get new due dates; paid ones keep theirs. The
        loan's extension count, last extension date and dates are written in
        one version-checked update.

        Raises:
            ExtensionNotAllowedError: If the loan is not eligible today
            StaleWriteError: If the loan changed since it was read
        """
        loan = self.repository.get(loan_id)
        eligibility = self.check(loan, today, installment_number)
        if not eligibility.eligible:
            log_action(logger, "info", f"Extension refused for loan {loan.id}: {eligibility.reason}",
                       loan_id=loan.id, action="extension")
            raise ExtensionNotAllowedError(eligibility.reason)

        charges = self.quote(loan, today)
        previous = _stored_due_dates(loan)
        first_pending = eligibility.installment_number

        warnings = []
        if loan.plan.calculate_by_salary_date and not is_valid_salary_day(salary_day):
            warnings.append(f"Salary day {salary_day!r} is unusable; dates moved by "
                            f"{self.settings.fixed_extension_days} days")

        shifted = extended_due_dates(loan.plan, previous[first_pending - 1:], salary_day,
                                     self.settings.fixed_extension_days)
        new_dates = previous[:first_pending - 1] + shifted.due_dates

        changes = {
            'last_extension_date': today.isoformat(),
            'extension_count': loan.extension_count + 1,
            'processed_due_date': [due.isoformat() for due in new_dates],
        }
        if loan.schedule:
            ordered = sorted(loan.schedule, key=lambda item: item.number)
            changes['emi_schedule'] = [item.to_dict() for item in with_due_dates(ordered, new_dates)]

        updated = self.repository.update_if_version(loan, changes)
        log_action(logger, "info", f"Extended loan {loan.id}", loan_id=loan.id, action="extension",
                   extra={'previous_due_dates': [due.isoformat() for due in previous],
                          'new_due_dates': changes['processed_due_date'],
                          'total_charge': charges.total.to_plain()})

        return ExtensionResult(
            loan=updated,
            charges=charges,
            previous_due_dates=previous,
            new_due_dates=new_dates,
            extension_period_days=shifted.extension_period_days,
            warnings=warnings
        )
