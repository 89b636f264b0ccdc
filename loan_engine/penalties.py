"""
Penalty Calculator Module

Tiered late fees for overdue installments. Every tier is priced on the
loan's original principal, tiers are additive, and GST is added per tier.
"""

from decimal import Decimal
from datetime import date
from dataclasses import dataclass
from typing import Iterable, List, Optional
import logging

from .money import Money
from .plans import PenaltyTier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TierCharge:
    """What one tier contributed to a penalty"""
    tier: PenaltyTier
    days_charged: int
    base: Money
    gst: Money


@dataclass(frozen=True)
class PenaltyBreakdown:
    penalty_base: Money
    penalty_gst: Money
    penalty_total: Money
    days_overdue: int = 0
    tier_charges: tuple = ()

    @classmethod
    def none(cls, days_overdue: int = 0) -> 'PenaltyBreakdown':
        return cls(Money.zero(), Money.zero(), Money.zero(), days_overdue)


def days_overdue(due_date: date, today: date) -> int:
    """Whole days past due, at least 1 once the due date has passed; 0 otherwise"""
    if due_date >= today:
        return 0
    return max((today - due_date).days, 1)


def calculate_penalty(
    principal: Money,
    tiers: Iterable[PenaltyTier],
    due_date: date,
    today: date,
    gst_rate: Decimal = Decimal('0.18'),
    loan_id: Optional[str] = None
) -> PenaltyBreakdown:
    """
    Late penalty for one installment as of today

    Args:
        principal: Original loan principal (the basis for every tier)
        tiers: Penalty tiers of the plan
        due_date: Installment due date
        today: Calculation date
        gst_rate: Default GST fraction, overridden by a tier's gst_percent
        loan_id: Used only for logging

    Returns:
        PenaltyBreakdown; zero when not overdue or when no tiers exist
    """
    overdue = days_overdue(due_date, today)
    if overdue == 0:
        return PenaltyBreakdown.none()

    ordered = sorted(tiers, key=lambda tier: (tier.order, tier.start_day))
    if not ordered:
        logger.warning(
            "Loan %s is %d days overdue but has no penalty tiers; penalty set to zero",
            loan_id, overdue
        )
        return PenaltyBreakdown.none(overdue)

    charges: List[TierCharge] = []
    for tier in ordered:
        days = tier.chargeable_days(overdue)
        if days == 0:
            continue
        base = principal * (tier.percent * days / Decimal('100'))
        tier_gst_rate = tier.gst_percent / Decimal('100') if tier.gst_percent is not None else gst_rate
        charges.append(TierCharge(tier=tier, days_charged=days, base=base, gst=base * tier_gst_rate))

    penalty_base = Money.sum(charge.base for charge in charges)
    if any(charge.tier.gst_percent is not None for charge in charges):
        penalty_gst = Money.sum(charge.gst for charge in charges)
    else:
        # One rate throughout: tax the summed base so the GST is rounded once
        penalty_gst = penalty_base * gst_rate
    return PenaltyBreakdown(
        penalty_base=penalty_base,
        penalty_gst=penalty_gst,
        penalty_total=penalty_base + penalty_gst,
        days_overdue=overdue,
        tier_charges=tuple(charges)
    )
