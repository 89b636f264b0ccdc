"""
Loan Plan Module

Immutable plan snapshots: repayment policy, daily interest rate, fees and
late-penalty tiers. Snapshots captured by the origination system are parsed
here once, and fee classification is resolved into an explicit FeeKind at
ingestion so the rest of the engine never inspects fee names.
"""

from decimal import Decimal
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
from enum import Enum
import logging

from .exceptions import InvalidLoanError
from .money import parse_decimal, to_decimal

logger = logging.getLogger(__name__)

DEFAULT_POST_SERVICE_FEE_MARKER = "post service fee"
DEFAULT_REPAYMENT_DAYS = 15


class PlanType(Enum):
    """Repayment plan shapes"""
    SINGLE = "single"          # One bullet repayment
    MULTI_EMI = "multi_emi"    # Several equated installments


class EmiFrequency(Enum):
    """Gap between consecutive installments"""
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"


class FeeKind(Enum):
    """Where a fee is collected"""
    DEDUCT_FROM_DISBURSAL = "deduct_from_disbursal"  # Taken out of the payout
    ADD_TO_TOTAL = "add_to_total"                    # Collected with repayments


def parse_flag(value) -> bool:
    """Stored boolean: true for True, 1, "1" and "true" in any case, false otherwise"""
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true")
    return value in (True, 1)


def normalize_fee_kind(
    name: str,
    application_method: Optional[str],
    marker: str = DEFAULT_POST_SERVICE_FEE_MARKER
) -> FeeKind:
    """
    Resolve the FeeKind for a configured fee

    A recognised application method is used as-is. A missing or unknown one
    is repaired by name: fees whose name contains the post service fee
    marker (case-insensitive) are repayable, everything else is deducted
    from the disbursal.

    Args:
        name: Fee name as configured
        application_method: Raw application method, may be None or junk
        marker: Name fragment identifying repayable fees

    Returns:
        Resolved FeeKind
    """
    if isinstance(application_method, FeeKind):
        return application_method

    method = (application_method or "").strip().lower()
    for kind in FeeKind:
        if method == kind.value:
            return kind

    if marker.lower() in (name or "").lower():
        kind = FeeKind.ADD_TO_TOTAL
    else:
        kind = FeeKind.DEDUCT_FROM_DISBURSAL

    logger.warning(
        "Fee %r has unrecognised application method %r; classified as %s",
        name, application_method, kind.value
    )
    return kind


@dataclass(frozen=True)
class Fee:
    """Percentage fee charged on the principal"""
    name: str
    percent: Decimal       # Percent units, e.g. 2 for 2%
    kind: FeeKind

    def __post_init__(self):
        object.__setattr__(self, 'percent', to_decimal(self.percent))
        if self.percent < Decimal('0'):
            raise InvalidLoanError(f"Fee {self.name!r} has negative percent {self.percent}")

    @property
    def rate(self) -> Decimal:
        """Percent as a fraction"""
        return self.percent / Decimal('100')


@dataclass(frozen=True)
class PenaltyTier:
    """
    Day band of a late-fee schedule

    A tier with start_day == end_day is a one-off charge on that day. Any
    other tier charges its percent for every overdue day inside the band;
    end_day None means the band never closes.
    """
    start_day: int
    end_day: Optional[int]
    percent: Decimal                      # Percent units per day (or once)
    gst_percent: Optional[Decimal] = None  # Overrides the default GST rate
    order: int = 0

    def __post_init__(self):
        object.__setattr__(self, 'percent', to_decimal(self.percent))
        if self.gst_percent is not None:
            object.__setattr__(self, 'gst_percent', to_decimal(self.gst_percent))

        if self.start_day < 1:
            raise InvalidLoanError(f"Penalty tier start day must be >= 1, got {self.start_day}")
        if self.end_day is not None and self.end_day < self.start_day:
            raise InvalidLoanError(
                f"Penalty tier ends (day {self.end_day}) before it starts (day {self.start_day})"
            )
        if self.percent < Decimal('0'):
            raise InvalidLoanError(f"Penalty tier percent cannot be negative: {self.percent}")

    @property
    def is_single_day(self) -> bool:
        return self.end_day is not None and self.end_day == self.start_day

    @property
    def is_open_ended(self) -> bool:
        return self.end_day is None

    def chargeable_days(self, days_overdue: int) -> int:
        """Number of times this tier's percent applies after days_overdue days"""
        if days_overdue < self.start_day:
            return 0
        if self.is_single_day:
            return 1
        last_day = days_overdue if self.is_open_ended else min(self.end_day, days_overdue)
        return last_day - self.start_day + 1

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PenaltyTier':
        """Build a tier from a snapshot row (legacy late_fee_tiers keys accepted)"""
        start = data.get('start_day', data.get('days_overdue_start'))
        end = data.get('end_day', data.get('days_overdue_end'))
        percent = data.get('percent', data.get('fee_value', 0))
        gst = data.get('gst_percent')
        return cls(
            start_day=int(start),
            end_day=int(end) if end not in (None, "") else None,
            percent=parse_decimal(percent),
            gst_percent=parse_decimal(gst) if gst not in (None, "") else None,
            order=int(data.get('order', data.get('tier_order', 0)) or 0)
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'start_day': self.start_day,
            'end_day': self.end_day,
            'percent': str(self.percent),
            'gst_percent': str(self.gst_percent) if self.gst_percent is not None else None,
            'order': self.order
        }


@dataclass(frozen=True)
class LoanPlan:
    """Immutable plan snapshot captured when the loan was processed"""
    plan_type: PlanType
    repayment_days: int
    interest_rate_per_day: Decimal   # Fraction, e.g. 0.001 for 0.1% per day
    calculate_by_salary_date: bool = False
    emi_count: int = 1
    emi_frequency: EmiFrequency = EmiFrequency.MONTHLY
    fees: Tuple[Fee, ...] = field(default_factory=tuple)
    penalty_tiers: Tuple[PenaltyTier, ...] = field(default_factory=tuple)
    plan_id: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, 'interest_rate_per_day', to_decimal(self.interest_rate_per_day))
        object.__setattr__(self, 'fees', tuple(self.fees))
        object.__setattr__(self, 'penalty_tiers', tuple(self.penalty_tiers))

        if self.emi_count <= 0:
            raise InvalidLoanError(f"EMI count must be positive, got {self.emi_count}")
        if self.repayment_days < 0:
            raise InvalidLoanError(f"Repayment days cannot be negative, got {self.repayment_days}")
        if self.interest_rate_per_day < Decimal('0'):
            raise InvalidLoanError(f"Invalid interest rate {self.interest_rate_per_day}")

    @property
    def is_multi_emi(self) -> bool:
        return self.plan_type == PlanType.MULTI_EMI

    @property
    def installment_count(self) -> int:
        """Installments this plan produces when dates are generated from it"""
        return self.emi_count if self.is_multi_emi else 1

    def sorted_penalty_tiers(self) -> List[PenaltyTier]:
        return sorted(self.penalty_tiers, key=lambda tier: (tier.order, tier.start_day))

    @classmethod
    def from_snapshot(
        cls,
        data: Dict[str, Any],
        fee_marker: str = DEFAULT_POST_SERVICE_FEE_MARKER,
        default_repayment_days: int = DEFAULT_REPAYMENT_DAYS
    ) -> 'LoanPlan':
        """
        Parse a stored plan snapshot

        Accepts both the engine's own keys and the origination system's
        legacy keys (fee_name, fee_percent, interest_percent_per_day,
        late_fee_tiers, ...). Fee kinds are normalised here.
        """
        try:
            plan_type = PlanType(data.get('plan_type') or PlanType.SINGLE.value)
            emi_frequency = EmiFrequency(data.get('emi_frequency') or EmiFrequency.MONTHLY.value)
        except ValueError as exc:
            raise InvalidLoanError(f"Invalid plan snapshot: {exc}") from exc

        repayment_days = data.get('repayment_days') or data.get('total_duration_days')
        if repayment_days in (None, ""):
            repayment_days = default_repayment_days

        rate = data.get('interest_rate_per_day', data.get('interest_percent_per_day'))
        if rate in (None, ""):
            rate = 0

        emi_count = data.get('emi_count')
        emi_count = int(emi_count) if emi_count not in (None, "") else 1

        fees = []
        for raw_fee in data.get('fees') or []:
            name = raw_fee.get('name') or raw_fee.get('fee_name') or 'Unknown Fee'
            percent = raw_fee.get('percent', raw_fee.get('fee_percent', 0))
            fees.append(Fee(
                name=name,
                percent=parse_decimal(percent),
                kind=normalize_fee_kind(name, raw_fee.get('application_method',
                                                          raw_fee.get('kind')), fee_marker)
            ))

        raw_tiers = data.get('penalty_tiers') or data.get('late_fee_tiers') or []
        tiers = [PenaltyTier.from_dict(tier) for tier in raw_tiers]

        plan_id = data.get('plan_id')
        return cls(
            plan_type=plan_type,
            repayment_days=int(repayment_days),
            interest_rate_per_day=parse_decimal(rate),
            calculate_by_salary_date=parse_flag(data.get('calculate_by_salary_date')),
            emi_count=emi_count,
            emi_frequency=emi_frequency,
            fees=tuple(fees),
            penalty_tiers=tuple(tiers),
            plan_id=str(plan_id) if plan_id is not None else None
        )

    def to_snapshot(self) -> Dict[str, Any]:
        """Serialise in the engine's own key names"""
        return {
            'plan_id': self.plan_id,
            'plan_type': self.plan_type.value,
            'repayment_days': self.repayment_days,
            'interest_rate_per_day': str(self.interest_rate_per_day),
            'calculate_by_salary_date': self.calculate_by_salary_date,
            'emi_count': self.emi_count,
            'emi_frequency': self.emi_frequency.value,
            'fees': [
                {'name': fee.name, 'percent': str(fee.percent), 'application_method': fee.kind.value}
                for fee in self.fees
            ],
            'penalty_tiers': [tier.to_dict() for tier in self.penalty_tiers]
        }
