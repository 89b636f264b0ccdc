"""
Response Schemas

Pydantic models for handing loan figures to callers. Money is rendered as
2-place decimal strings and dates as ISO strings so no float ever leaves
the engine.
"""

from typing import List, Optional

from pydantic import BaseModel, Field

from .fees import FeeCharge
from .money import Money
from .schedule import Installment


def _money(value: Money) -> str:
    return value.to_plain()


class FeeChargeModel(BaseModel):
    name: str
    percent: str = Field(..., description="Percent of principal, e.g. \"2\" for 2%")
    application_method: str
    base_amount: str
    gst_amount: str
    total: str = Field(..., description="Fee plus GST for one occurrence")
    occurrences: int = 1

    @classmethod
    def from_charge(cls, charge: FeeCharge) -> 'FeeChargeModel':
        return cls(
            name=charge.name,
            percent=str(charge.percent),
            application_method=charge.kind.value,
            base_amount=_money(charge.base_amount),
            gst_amount=_money(charge.gst_amount),
            total=_money(charge.total),
            occurrences=charge.occurrences
        )


class FeesModel(BaseModel):
    deduct_from_disbursal: List[FeeChargeModel] = Field(default_factory=list)
    add_to_total: List[FeeChargeModel] = Field(default_factory=list)


class InterestModel(BaseModel):
    rate_per_day: str
    amount: str = Field(..., description="Scheduled interest across all installments")
    exhausted_days: int
    interest_till_today: str


class DisbursalModel(BaseModel):
    amount: str


class TotalModel(BaseModel):
    repayable: str
    breakdown_text: str


class InstallmentModel(BaseModel):
    number: int
    due_date: str
    principal: str
    interest: str
    fee: str
    fee_gst: str
    interest_days: int
    penalty_base: str
    penalty_gst: str
    penalty_total: str
    amount: str
    status: str

    @classmethod
    def from_installment(cls, item: Installment) -> 'InstallmentModel':
        return cls(
            number=item.number,
            due_date=item.due_date.isoformat(),
            principal=_money(item.principal_component),
            interest=_money(item.interest_component),
            fee=_money(item.fee_component),
            fee_gst=_money(item.fee_gst_component),
            interest_days=item.interest_days,
            penalty_base=_money(item.penalty_base),
            penalty_gst=_money(item.penalty_gst),
            penalty_total=_money(item.penalty_total),
            amount=_money(item.amount),
            status=item.status.value
        )


class RepaymentModel(BaseModel):
    schedule: List[InstallmentModel] = Field(default_factory=list)


class PenaltyModel(BaseModel):
    base: str
    gst: str
    total: str


class LoanFiguresResponse(BaseModel):
    """Everything a loan screen needs, as one document"""
    loan_id: str
    calculated_on: str
    principal: str
    interest: InterestModel
    fees: FeesModel
    disbursal: DisbursalModel
    total: TotalModel
    penalty: PenaltyModel
    repayment: RepaymentModel
    due_date_source: str
    warnings: List[str] = Field(default_factory=list)
    best_effort: bool = Field(False, description="True when data-integrity warnings were raised")
    currency: Optional[str] = "INR"

    @classmethod
    def from_figures(cls, figures) -> 'LoanFiguresResponse':
        """Build from engine.LoanFigures"""
        summary = figures.interest_summary
        return cls(
            loan_id=figures.loan_id,
            calculated_on=figures.calculated_on.isoformat(),
            principal=_money(figures.principal),
            interest=InterestModel(
                rate_per_day=str(figures.rate_per_day),
                amount=_money(figures.interest_amount),
                exhausted_days=summary.exhausted_days,
                interest_till_today=_money(summary.interest_till_today)
            ),
            fees=FeesModel(
                deduct_from_disbursal=[FeeChargeModel.from_charge(c) for c in figures.fee_split.deduct_from_disbursal],
                add_to_total=[FeeChargeModel.from_charge(c) for c in figures.fee_split.add_to_total]
            ),
            disbursal=DisbursalModel(amount=_money(figures.disbursal_amount)),
            total=TotalModel(repayable=_money(figures.total_repayable), breakdown_text=figures.breakdown_text),
            penalty=PenaltyModel(
                base=_money(figures.penalty_base),
                gst=_money(figures.penalty_gst),
                total=_money(figures.penalty_total)
            ),
            repayment=RepaymentModel(
                schedule=[InstallmentModel.from_installment(item) for item in figures.schedule]
            ),
            due_date_source=figures.due_date_source.value,
            warnings=list(figures.warnings),
            best_effort=bool(figures.warnings)
        )
