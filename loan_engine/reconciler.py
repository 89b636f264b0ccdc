"""
State Reconciler Module

Decides where a loan's due dates come from and writes corrected figures
back. Editable loans get fresh dates on every call. Frozen loans keep the
dates in storage; only amounts are corrected, through one version-checked
update.
"""

from datetime import date
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Optional
from enum import Enum
import logging

from .exceptions import StaleWriteError
from .loans import Installment, InstallmentStatus, Loan, LoanRepository
from .logging_config import log_action
from .schedule import generate_due_dates, is_valid_salary_day

logger = logging.getLogger(__name__)


class DueDateSource(Enum):
    GENERATED = "generated"                      # Editable loan, computed from the plan
    PERSISTED_SCHEDULE = "persisted_schedule"    # Stored per-installment schedule
    PERSISTED_DUE_DATES = "persisted_due_dates"  # Stored flat due-date list
    RECOMPUTED = "recomputed"                    # Frozen loan with no stored dates


@dataclass
class DueDateResolution:
    dates: List[date]
    source: DueDateSource
    warnings: List[str] = field(default_factory=list)


class StateReconciler:
    """Gatekeeper between persisted loan state and fresh calculations"""

    def __init__(
        self,
        repository: Optional[LoanRepository] = None,
        frozen_statuses: Iterable[str] = ("account_manager",),
        write_back_enabled: bool = True
    ):
        self.repository = repository
        self.frozen_statuses = set(frozen_statuses)
        self.write_back_enabled = write_back_enabled

    def is_frozen(self, loan: Loan) -> bool:
        """Processed loans, and loans in a frozen status, have authoritative due dates"""
        return loan.is_processed or loan.status_code in self.frozen_statuses

    def resolve_due_dates(self, loan: Loan, today: date, salary_day: Optional[int] = None) -> DueDateResolution:
        """
        Pick the due dates a calculation must use

        Args:
            loan: Loan being calculated
            today: Calculation date, the base date for loans not yet processed
            salary_day: Borrower's salary day of month

        Returns:
            DueDateResolution naming the source and any data-integrity warnings
        """
        plan = loan.plan
        warnings = []

        if plan.calculate_by_salary_date and not is_valid_salary_day(salary_day):
            warnings.append(f"Salary day {salary_day!r} is unusable; fixed due dates were used")

        if not self.is_frozen(loan):
            base_date = loan.disbursed_at or today
            return DueDateResolution(
                dates=generate_due_dates(plan, base_date, salary_day),
                source=DueDateSource.GENERATED,
                warnings=warnings
            )

        if loan.schedule:
            dates = [item.due_date for item in sorted(loan.schedule, key=lambda item: item.number)]
            source = DueDateSource.PERSISTED_SCHEDULE
        elif loan.due_dates:
            dates = list(loan.due_dates)
            source = DueDateSource.PERSISTED_DUE_DATES
        else:
            base_date = loan.processed_at or loan.disbursed_at or today
            dates = generate_due_dates(plan, base_date, salary_day)
            message = f"Loan {loan.id} is frozen but has no stored due dates; recomputed from plan"
            log_action(logger, "error", message, loan_id=loan.id, action="resolve_due_dates",
                       extra={'recomputed_due_dates': [due.isoformat() for due in dates]})
            warnings.append(message)
            return DueDateResolution(dates=dates, source=DueDateSource.RECOMPUTED, warnings=warnings)

        if len(dates) != plan.installment_count:
            message = (f"Loan {loan.id} has {len(dates)} stored due dates but its plan expects "
                       f"{plan.installment_count}; stored dates used")
            log_action(logger, "warning", message, loan_id=loan.id, action="resolve_due_dates")
            warnings.append(message)

        return DueDateResolution(dates=dates, source=source, warnings=warnings)

    @staticmethod
    def merge_statuses(
        installments: List[Installment],
        persisted_paid: Iterable[int] = (),
        ledger_paid: Iterable[int] = ()
    ) -> List[Installment]:
        """
        Mark installments paid per storage or the payment ledger

        Paid is sticky: an installment paid in either source stays paid.
        """
        paid = set(persisted_paid) | set(ledger_paid)
        return [
            replace(item, status=InstallmentStatus.PAID) if item.number in paid else item
            for item in installments
        ]

    def build_corrections(self, loan: Loan, figures: Any) -> Dict[str, Any]:
        """Engine-owned fields whose stored value differs from the fresh figures"""
        candidate = {
            'fees_breakdown': figures.fee_split.to_dict(),
            'disbursal_amount': figures.disbursal_amount.to_plain(),
            'total_repayable': figures.total_repayable.to_plain(),
        }
        # Recovered dates are reported, never stored
        if loan.plan.is_multi_emi and figures.due_date_source != DueDateSource.RECOMPUTED:
            candidate['emi_schedule'] = [item.to_dict() for item in figures.schedule]

        stored = loan.to_dict()
        return {key: value for key, value in candidate.items() if stored.get(key) != value}

    def persist_corrections(self, loan: Loan, figures: Any) -> bool:
        """
        Best-effort write-back of corrected amounts

        Due dates are never changed. Failures are logged and swallowed so
        the figures already computed stay valid for the caller.

        Returns:
            True when a write happened
        """
        if not self.write_back_enabled or self.repository is None or not loan.is_processed:
            return False

        changes = self.build_corrections(loan, figures)
        if not changes:
            return False

        try:
            self.repository.update_if_version(loan, changes)
        except StaleWriteError as e:
            log_action(logger, "warning", f"Write-back skipped for loan {loan.id}: {e}",
                       loan_id=loan.id, action="write_back")
            return False
        except Exception as e:
            # Backend driver errors included; the read path must not fail on them
            logger.error(f"Write-back failed for loan {loan.id}: {e}", exc_info=True)
            return False

        log_action(logger, "info", f"Corrected {sorted(changes)} for loan {loan.id}",
                   loan_id=loan.id, action="write_back")
        return True
