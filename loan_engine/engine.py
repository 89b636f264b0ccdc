"""
Loan Calculation Engine

Entry point for loan figures. ``calculate`` is pure: the same loan, date,
salary day and ledger always give the same figures. ``get_loan_figures``
and ``process_loan`` wrap it with storage reads and writes.
"""

from decimal import Decimal
from datetime import date
from dataclasses import dataclass, field, replace
from typing import Iterable, List, Optional, Sequence
import logging

from .config import EngineConfig, get_config
from .exceptions import InvalidLoanError, PlanFrozenError
from .fees import FeeSplit, split_fees
from .interest import InterestSummary, accrual_baseline, interest_till_today
from .loans import Installment, Loan, LoanRepository, LoanStatus
from .logging_config import log_action
from .money import Money
from .penalties import calculate_penalty
from .plans import PenaltyTier
from .reconciler import DueDateSource, StateReconciler
from .schedule import build_installments, generate_due_dates, validate_shape

logger = logging.getLogger(__name__)


@dataclass
class LoanFigures:
    """Point-in-time figures for one loan"""
    loan_id: str
    calculated_on: date
    principal: Money
    rate_per_day: Decimal
    interest_amount: Money           # Scheduled interest over all installments
    interest_summary: InterestSummary
    fee_split: FeeSplit
    disbursal_amount: Money
    total_repayable: Money
    schedule: List[Installment]
    due_date_source: DueDateSource
    warnings: List[str] = field(default_factory=list)

    @property
    def due_dates(self) -> List[date]:
        return [item.due_date for item in self.schedule]

    @property
    def penalty_base(self) -> Money:
        return Money.sum(item.penalty_base for item in self.schedule)

    @property
    def penalty_gst(self) -> Money:
        return Money.sum(item.penalty_gst for item in self.schedule)

    @property
    def penalty_total(self) -> Money:
        return Money.sum(item.penalty_total for item in self.schedule)

    @property
    def repayable_fees(self) -> Money:
        return self.fee_split.repayable_total

    @property
    def breakdown_text(self) -> str:
        parts = [
            f"Principal {self.principal.to_string()}",
            f"Interest {self.interest_amount.to_string()}",
        ]
        if self.repayable_fees.is_positive():
            parts.append(f"Fees {self.repayable_fees.to_string()}")
        if self.penalty_total.is_positive():
            parts.append(f"Penalty {self.penalty_total.to_string()}")
        return " + ".join(parts) + f" = {self.total_repayable.to_string()}"


class LoanCalculationEngine:
    """
    Computes disbursal, schedule, interest and penalty figures for loans

    Args:
        repository: Loan storage; only needed for the methods that load or save
        settings: Engine configuration, defaults to the global config
    """

    def __init__(self, repository: Optional[LoanRepository] = None, settings: Optional[EngineConfig] = None):
        self.settings = settings or get_config()
        self.repository = repository
        self.reconciler = StateReconciler(
            repository=repository,
            frozen_statuses=self.settings.frozen_statuses,
            write_back_enabled=self.settings.write_back_enabled
        )

    def calculate(
        self,
        loan: Loan,
        today: date,
        salary_day: Optional[int] = None,
        paid_installments: Iterable[int] = (),
        fallback_tiers: Sequence[PenaltyTier] = ()
    ) -> LoanFigures:
        """
        Compute the current figures for a loan

        Args:
            loan: Loan with its plan snapshot and persisted schedule
            today: Calculation date
            salary_day: Borrower's salary day of month, for salary-anchored plans
            paid_installments: Installment numbers the payment ledger marks paid
            fallback_tiers: Penalty tiers to use when the plan snapshot has none

        Returns:
            LoanFigures

        Raises:
            InvalidLoanError: If the loan or plan cannot produce a schedule
        """
        plan = loan.plan
        if plan is None:
            raise InvalidLoanError(f"Loan {loan.id} has no plan attached")
        validate_shape(loan.principal, plan)

        gst_rate = self.settings.gst_rate
        resolution = self.reconciler.resolve_due_dates(loan, today, salary_day)
        warnings = list(resolution.warnings)

        baseline = accrual_baseline(loan.processed_at, loan.disbursed_at, loan.last_extension_date, today)
        fee_split = split_fees(plan.fees, loan.principal, len(resolution.dates), plan.is_multi_emi, gst_rate)

        # Installments already paid keep the amounts they were collected at.
        # Older rows without amounts are recomputed.
        paid = set(loan.paid_numbers) | set(paid_installments)
        settled = {
            item.number: item for item in loan.schedule or []
            if item.number in paid and item.principal_component.is_positive()
        }

        schedule = build_installments(
            loan.principal,
            plan.interest_rate_per_day,
            resolution.dates,
            baseline,
            fee_split.repayable_base,
            fee_split.repayable_gst,
            settled=settled
        )
        schedule = self.reconciler.merge_statuses(schedule, loan.paid_numbers, paid_installments)

        tiers = list(plan.penalty_tiers) or list(fallback_tiers)
        if not tiers and any(not item.is_paid and item.due_date < today for item in schedule):
            warnings.append("No penalty tiers configured; overdue penalty reported as zero")
        schedule = [self._apply_penalty(loan, item, tiers, today) for item in schedule]

        outstanding = loan.principal - Money.sum(item.principal_component for item in schedule if item.is_paid)
        summary = interest_till_today(outstanding, plan.interest_rate_per_day, baseline, today)

        figures = LoanFigures(
            loan_id=loan.id,
            calculated_on=today,
            principal=loan.principal,
            rate_per_day=plan.interest_rate_per_day,
            interest_amount=Money.sum(item.interest_component for item in schedule),
            interest_summary=summary,
            fee_split=fee_split,
            disbursal_amount=fee_split.disbursal_amount(loan.principal),
            total_repayable=Money.sum(item.amount for item in schedule),
            schedule=schedule,
            due_date_source=resolution.source,
            warnings=warnings
        )
        logger.debug(f"Calculated loan {loan.id} as of {today}: total {figures.total_repayable}")
        return figures

    def _apply_penalty(self, loan: Loan, item: Installment, tiers: List[PenaltyTier], today: date) -> Installment:
        if item.is_paid or item.due_date >= today:
            return item
        penalty = calculate_penalty(loan.principal, tiers, item.due_date, today,
                                    self.settings.gst_rate, loan_id=loan.id)
        return replace(
            item,
            penalty_base=penalty.penalty_base,
            penalty_gst=penalty.penalty_gst,
            penalty_total=penalty.penalty_total
        )

    def _require_repository(self) -> LoanRepository:
        if self.repository is None:
            raise RuntimeError("This operation needs a LoanRepository")
        return self.repository

    def get_loan_figures(
        self,
        loan_id: str,
        today: date,
        salary_day: Optional[int] = None,
        paid_installments: Iterable[int] = ()
    ) -> LoanFigures:
        """
        Load a loan, calculate it and write corrected amounts back

        The write-back is best-effort; its failure never affects the
        returned figures.
        """
        repository = self._require_repository()
        loan = repository.get(loan_id)

        fallback_tiers = []
        if loan.plan is not None and not loan.plan.penalty_tiers:
            fallback_tiers = repository.load_penalty_tiers(loan.plan.plan_id)
            log_action(logger, "debug", f"Loaded {len(fallback_tiers)} stored penalty tiers for loan {loan.id}",
                       loan_id=loan.id, action="load_penalty_tiers", plan_id=loan.plan.plan_id)

        figures = self.calculate(loan, today, salary_day, paid_installments, fallback_tiers)
        self.reconciler.persist_corrections(loan, figures)
        return figures

    def process_loan(self, loan_id: str, processed_on: date, salary_day: Optional[int] = None) -> LoanFigures:
        """
        Processing event: freeze the plan and persist the schedule

        Computes due dates from the processing date, stores them along with
        the schedule and derived figures, and moves the loan to
        account_manager. The write is version-checked.

        Raises:
            PlanFrozenError: If the loan was already processed
            InvalidLoanError: If the loan has no usable plan
            StaleWriteError: If the loan changed while being processed
        """
        repository = self._require_repository()
        loan = repository.get(loan_id)
        if loan.is_processed:
            raise PlanFrozenError(f"Loan {loan.id} was already processed on {loan.processed_at}")
        if loan.plan is None:
            raise InvalidLoanError(f"Loan {loan.id} has no plan attached")
        validate_shape(loan.principal, loan.plan)

        processing = replace(
            loan,
            processed_at=processed_on,
            disbursed_at=loan.disbursed_at or processed_on,
            status=LoanStatus.ACCOUNT_MANAGER,
            due_dates=generate_due_dates(loan.plan, processed_on, salary_day),
            schedule=None
        )
        figures = self.calculate(processing, processed_on, salary_day)

        changes = {
            'processed_at': processed_on.isoformat(),
            'disbursed_at': processing.disbursed_at.isoformat(),
            'status': LoanStatus.ACCOUNT_MANAGER.value,
            'plan_snapshot': loan.plan.to_snapshot(),
            'processed_due_date': [due.isoformat() for due in figures.due_dates],
            'fees_breakdown': figures.fee_split.to_dict(),
            'disbursal_amount': figures.disbursal_amount.to_plain(),
            'total_repayable': figures.total_repayable.to_plain(),
        }
        if loan.plan.is_multi_emi:
            changes['emi_schedule'] = [item.to_dict() for item in figures.schedule]

        repository.update_if_version(loan, changes)
        log_action(logger, "info", f"Processed loan {loan.id}", loan_id=loan.id, action="process_loan",
                   extra={'due_dates': changes['processed_due_date'],
                          'disbursal_amount': changes['disbursal_amount']})
        return figures
