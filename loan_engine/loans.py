"""
Loan Module

Loan records as the engine sees them, and the repository that reads and
writes them. A loan carries its plan snapshot, its persisted schedule and
the derived figures the engine keeps up to date.
"""

from datetime import date, datetime
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence
from enum import Enum
import json
import logging

from .exceptions import LoanNotFoundError, PlanFrozenError
from .money import Money, parse_decimal
from .plans import LoanPlan, PenaltyTier, DEFAULT_POST_SERVICE_FEE_MARKER, DEFAULT_REPAYMENT_DAYS
from .schedule import Installment, InstallmentStatus, parse_date
from .storage import StorageInterface

logger = logging.getLogger(__name__)

__all__ = [
    'Installment', 'InstallmentStatus', 'Loan', 'LoanRepository', 'LoanStatus',
    'parse_due_date_list'
]


class LoanStatus(Enum):
    """Loan lifecycle from application to closure"""
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    DISBURSAL = "disbursal"              # Approved, payout pending
    ACCOUNT_MANAGER = "account_manager"  # Disbursed, in repayment
    ACTIVE = "active"
    CLEARED = "cleared"                  # Fully repaid
    CANCELLED = "cancelled"
    REJECTED = "rejected"
    FOLLOW_UP = "follow_up"
    QA_VERIFICATION = "qa_verification"
    READY_FOR_DISBURSEMENT = "ready_for_disbursement"
    DISBURSED = "disbursed"
    OVERDUE = "overdue"                  # Past due, still in collection
    UNKNOWN = "unknown"                  # Stored value this engine does not recognise


def _parse_status(value: Any, loan_id: Any) -> LoanStatus:
    """Stored status, or UNKNOWN with a warning when the value is not recognised"""
    if not value:
        return LoanStatus.SUBMITTED
    try:
        return LoanStatus(str(value).strip().lower())
    except ValueError:
        logger.warning(f"Loan {loan_id} has unrecognised status {value!r}; treating it as unknown")
        return LoanStatus.UNKNOWN


def _optional_date(value: Any) -> Optional[date]:
    return parse_date(value) if value else None


def _optional_money(value: Any) -> Optional[Money]:
    return Money(parse_decimal(value)) if value not in (None, "") else None


def parse_due_date_list(value: Any) -> List[date]:
    """
    Read a persisted flat due-date list

    Stored either as a list, a JSON-encoded list, or a single date string.
    """
    if not value:
        return []
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            value = [value]
    if not isinstance(value, (list, tuple)):
        value = [value]
    return [parse_date(item) for item in value]


@dataclass
class Loan:
    """A loan and its persisted state"""
    id: str
    principal: Money
    status: LoanStatus = LoanStatus.SUBMITTED
    plan: Optional[LoanPlan] = None

    disbursed_at: Optional[date] = None
    processed_at: Optional[date] = None
    last_extension_date: Optional[date] = None
    extension_count: int = 0

    # Persisted schedule state
    schedule: Optional[List[Installment]] = None
    due_dates: Optional[List[date]] = None

    # Derived figures maintained by the engine
    fees_breakdown: Optional[Dict[str, Any]] = None
    disbursal_amount: Optional[Money] = None
    total_repayable: Optional[Money] = None
    processed_interest: Optional[Money] = None
    processed_penalty: Optional[Money] = None
    last_calculated_at: Optional[date] = None

    version: int = 0
    extra: Dict[str, Any] = field(default_factory=dict)
    raw_status: Optional[str] = None   # Stored value when status is UNKNOWN

    @property
    def is_processed(self) -> bool:
        return self.processed_at is not None

    @property
    def status_code(self) -> str:
        """Status as stored, including values the engine does not recognise"""
        if self.status == LoanStatus.UNKNOWN and self.raw_status:
            return self.raw_status
        return self.status.value

    @property
    def paid_numbers(self) -> List[int]:
        """Installment numbers marked paid in the persisted schedule"""
        return [item.number for item in self.schedule or [] if item.is_paid]

    def attach_plan(self, plan: LoanPlan) -> None:
        """
        Set or replace the plan snapshot

        Raises:
            PlanFrozenError: If the loan has already been processed
        """
        if self.is_processed:
            raise PlanFrozenError(f"Loan {self.id} was processed on {self.processed_at}; its plan is frozen")
        self.plan = plan

    def to_dict(self) -> Dict[str, Any]:
        """Storage representation"""
        data = dict(self.extra)
        data.update({
            'id': self.id,
            'principal': self.principal.to_plain(),
            'status': self.status_code,
            'plan_snapshot': self.plan.to_snapshot() if self.plan else None,
            'disbursed_at': self.disbursed_at.isoformat() if self.disbursed_at else None,
            'processed_at': self.processed_at.isoformat() if self.processed_at else None,
            'last_extension_date': self.last_extension_date.isoformat() if self.last_extension_date else None,
            'extension_count': self.extension_count,
            'emi_schedule': [item.to_dict() for item in self.schedule] if self.schedule is not None else None,
            'processed_due_date': [due.isoformat() for due in self.due_dates] if self.due_dates is not None else None,
            'fees_breakdown': self.fees_breakdown,
            'disbursal_amount': self.disbursal_amount.to_plain() if self.disbursal_amount else None,
            'total_repayable': self.total_repayable.to_plain() if self.total_repayable else None,
            'processed_interest': self.processed_interest.to_plain() if self.processed_interest else None,
            'processed_penalty': self.processed_penalty.to_plain() if self.processed_penalty else None,
            'last_calculated_at': self.last_calculated_at.isoformat() if self.last_calculated_at else None,
            'version': self.version
        })
        return data

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Any],
        fee_marker: str = DEFAULT_POST_SERVICE_FEE_MARKER,
        default_repayment_days: int = DEFAULT_REPAYMENT_DAYS
    ) -> 'Loan':
        known = {
            'id', 'principal', 'status', 'plan_snapshot', 'disbursed_at', 'processed_at',
            'last_extension_date', 'extension_count', 'emi_schedule', 'processed_due_date',
            'fees_breakdown', 'disbursal_amount', 'total_repayable', 'processed_interest',
            'processed_penalty', 'last_calculated_at', 'version'
        }

        snapshot = data.get('plan_snapshot')
        if isinstance(snapshot, str):
            snapshot = json.loads(snapshot)
        plan = LoanPlan.from_snapshot(snapshot, fee_marker, default_repayment_days) if snapshot else None

        raw_schedule = data.get('emi_schedule')
        if isinstance(raw_schedule, str):
            raw_schedule = json.loads(raw_schedule)
        schedule = [Installment.from_dict(item) for item in raw_schedule] if raw_schedule else None

        raw_status = data.get('status')
        status = _parse_status(raw_status, data.get('id'))

        raw_due_dates = data.get('processed_due_date')
        due_dates = parse_due_date_list(raw_due_dates) if raw_due_dates else None

        return cls(
            id=str(data['id']),
            principal=Money(parse_decimal(data.get('principal'))),
            status=status,
            raw_status=str(raw_status) if status == LoanStatus.UNKNOWN else None,
            plan=plan,
            disbursed_at=_optional_date(data.get('disbursed_at')),
            processed_at=_optional_date(data.get('processed_at')),
            last_extension_date=_optional_date(data.get('last_extension_date')),
            extension_count=int(data.get('extension_count') or 0),
            schedule=schedule,
            due_dates=due_dates,
            fees_breakdown=data.get('fees_breakdown'),
            disbursal_amount=_optional_money(data.get('disbursal_amount')),
            total_repayable=_optional_money(data.get('total_repayable')),
            processed_interest=_optional_money(data.get('processed_interest')),
            processed_penalty=_optional_money(data.get('processed_penalty')),
            last_calculated_at=_optional_date(data.get('last_calculated_at')),
            version=int(data.get('version') or 0),
            extra={key: value for key, value in data.items() if key not in known}
        )


class LoanRepository:
    """Reads and writes loans and plan penalty tiers through a storage backend"""

    loans_table = "loans"
    penalty_tiers_table = "penalty_tiers"

    def __init__(
        self,
        storage: StorageInterface,
        fee_marker: str = DEFAULT_POST_SERVICE_FEE_MARKER,
        default_repayment_days: int = DEFAULT_REPAYMENT_DAYS
    ):
        self.storage = storage
        self.fee_marker = fee_marker
        self.default_repayment_days = default_repayment_days

    def _to_loan(self, data: Dict[str, Any]) -> Loan:
        return Loan.from_dict(data, self.fee_marker, self.default_repayment_days)

    def get(self, loan_id: str) -> Loan:
        """
        Load a loan

        Raises:
            LoanNotFoundError: If no loan has this id
        """
        data = self.storage.load(self.loans_table, loan_id)
        if data is None:
            raise LoanNotFoundError(f"Loan {loan_id} not found")
        return self._to_loan(data)

    def save(self, loan: Loan) -> None:
        """Unconditional write, used when a loan is first recorded"""
        self.storage.save(self.loans_table, loan.id, loan.to_dict())

    def find_by_status(self, statuses: Sequence[str]) -> List[Loan]:
        wanted = set(statuses)
        return [
            self._to_loan(data)
            for data in self.storage.load_all(self.loans_table)
            if data.get('status') in wanted
        ]

    def update_if_version(self, loan: Loan, changes: Dict[str, Any]) -> Loan:
        """
        Write changed fields only if nobody else has written the loan since it was read

        Raises:
            StaleWriteError: On a version conflict
        """
        data = self.storage.update_if_version(self.loans_table, loan.id, loan.version, changes)
        return self._to_loan(data)

    def load_penalty_tiers(self, plan_id: Optional[str]) -> List[PenaltyTier]:
        """Tiers stored for a plan, empty when none are configured"""
        if not plan_id:
            return []
        data = self.storage.load(self.penalty_tiers_table, plan_id)
        if not data:
            return []
        return [PenaltyTier.from_dict(row) for row in data.get('tiers') or []]

    def save_penalty_tiers(self, plan_id: str, tiers: Sequence[PenaltyTier]) -> None:
        self.storage.save(self.penalty_tiers_table, plan_id, {
            'plan_id': plan_id,
            'tiers': [tier.to_dict() for tier in tiers],
            'updated_at': datetime.now().isoformat()
        })
