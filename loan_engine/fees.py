"""
Fee Splitter Module

Splits a plan's fees into the ones taken out of the disbursal and the ones
collected with repayments, and prices each with GST. Pure: classification
was already resolved into FeeKind when the plan was parsed.
"""

from decimal import Decimal
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List

from .money import Money
from .plans import Fee, FeeKind

DEFAULT_GST_RATE = Decimal('0.18')


@dataclass(frozen=True)
class FeeCharge:
    """One fee priced against the principal"""
    name: str
    percent: Decimal
    kind: FeeKind
    base_amount: Money     # principal x percent/100, per occurrence
    gst_amount: Money      # base_amount x GST rate, per occurrence
    occurrences: int = 1   # Times the fee is collected over the loan

    @property
    def total(self) -> Money:
        """Fee plus GST for one occurrence"""
        return self.base_amount + self.gst_amount

    @property
    def charged_base(self) -> Money:
        return self.base_amount * self.occurrences

    @property
    def charged_gst(self) -> Money:
        return self.gst_amount * self.occurrences

    @property
    def charged_total(self) -> Money:
        """Everything collected for this fee over the life of the loan"""
        return self.total * self.occurrences

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'percent': str(self.percent),
            'application_method': self.kind.value,
            'base_amount': self.base_amount.to_plain(),
            'gst_amount': self.gst_amount.to_plain(),
            'total': self.total.to_plain(),
            'occurrences': self.occurrences,
            'charged_total': self.charged_total.to_plain()
        }


@dataclass(frozen=True)
class FeeSplit:
    """Fees grouped by where they are collected"""
    deduct_from_disbursal: List[FeeCharge] = field(default_factory=list)
    add_to_total: List[FeeCharge] = field(default_factory=list)

    @property
    def deducted_total(self) -> Money:
        """Fees plus GST removed from the payout"""
        return Money.sum(charge.charged_total for charge in self.deduct_from_disbursal)

    @property
    def repayable_base(self) -> Money:
        return Money.sum(charge.charged_base for charge in self.add_to_total)

    @property
    def repayable_gst(self) -> Money:
        return Money.sum(charge.charged_gst for charge in self.add_to_total)

    @property
    def repayable_total(self) -> Money:
        return self.repayable_base + self.repayable_gst

    def disbursal_amount(self, principal: Money) -> Money:
        return principal - self.deducted_total

    def to_dict(self) -> Dict[str, Any]:
        """Persisted ``fees_breakdown`` shape"""
        return {
            'deduct_from_disbursal': [charge.to_dict() for charge in self.deduct_from_disbursal],
            'add_to_total': [charge.to_dict() for charge in self.add_to_total],
            'deducted_total': self.deducted_total.to_plain(),
            'repayable_total': self.repayable_total.to_plain()
        }


def price_fee(fee: Fee, principal: Money, gst_rate: Decimal, occurrences: int = 1) -> FeeCharge:
    """Price a single fee occurrence on the principal"""
    base = principal * fee.rate
    return FeeCharge(
        name=fee.name,
        percent=fee.percent,
        kind=fee.kind,
        base_amount=base,
        gst_amount=base * gst_rate,
        occurrences=occurrences
    )


def split_fees(
    fees: Iterable[Fee],
    principal: Money,
    installment_count: int = 1,
    is_multi_emi: bool = False,
    gst_rate: Decimal = DEFAULT_GST_RATE
) -> FeeSplit:
    """
    Classify and price a plan's fees

    On multi-EMI plans a repayable fee is collected with every installment,
    so it occurs installment_count times. Deducted fees are always taken
    once, from the payout.

    Args:
        fees: Normalised plan fees
        principal: Loan principal
        installment_count: Installments the schedule will have
        is_multi_emi: Whether the plan is multi-EMI
        gst_rate: GST as a fraction

    Returns:
        FeeSplit with every fee in exactly one list
    """
    deducted: List[FeeCharge] = []
    repayable: List[FeeCharge] = []

    for fee in fees:
        if fee.kind == FeeKind.ADD_TO_TOTAL:
            occurrences = installment_count if is_multi_emi else 1
            repayable.append(price_fee(fee, principal, gst_rate, max(occurrences, 1)))
        else:
            deducted.append(price_fee(fee, principal, gst_rate))

    return FeeSplit(deduct_from_disbursal=deducted, add_to_total=repayable)
