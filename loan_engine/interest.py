"""
Interest Accrual Module

Simple, non-compounding daily interest. Periods are counted inclusively on
both ends, and interest is always charged on the principal still
outstanding, never on earlier interest.
"""

from decimal import Decimal
from datetime import date, timedelta
from dataclasses import dataclass
from typing import Optional

from .money import Money


def days_between_inclusive(start: date, end: date) -> int:
    """Calendar days in [start, end]; zero when the period is empty"""
    if end < start:
        return 0
    return (end - start).days + 1


def accrue_interest(outstanding: Money, rate_per_day: Decimal, start: date, end: date) -> Money:
    """
    Interest on an outstanding balance over an inclusive period

    Args:
        outstanding: Principal outstanding during the period
        rate_per_day: Daily rate as a fraction
        start: First day of the period
        end: Last day of the period

    Returns:
        outstanding x rate x days, rounded to money
    """
    days = days_between_inclusive(start, end)
    if days == 0 or not outstanding.is_positive():
        return Money.zero()
    return outstanding * (rate_per_day * days)


def accrual_baseline(
    processed_at: Optional[date],
    disbursed_at: Optional[date],
    last_extension_date: Optional[date],
    today: date
) -> date:
    """
    First day interest accrues on

    The day after the latest extension wins; otherwise the day after
    processing, then disbursal, and for a loan that has neither, the day
    after ``today``.
    """
    if last_extension_date is not None:
        anchor = last_extension_date
    else:
        anchor = processed_at or disbursed_at or today
    return anchor + timedelta(days=1)


@dataclass(frozen=True)
class InterestSummary:
    """Interest accrued so far on a live loan"""
    rate_per_day: Decimal
    outstanding: Money
    exhausted_days: int
    interest_till_today: Money


def interest_till_today(
    outstanding: Money,
    rate_per_day: Decimal,
    baseline: date,
    today: date
) -> InterestSummary:
    """
    Interest accrued from the baseline through today

    Once accrual has started (today >= baseline - 1, i.e. the loan was
    processed) at least one day is charged, so a loan viewed on the day it
    was processed already shows a day's interest.
    """
    exhausted_days = days_between_inclusive(baseline, today)
    chargeable = exhausted_days
    if chargeable == 0 and today >= baseline - timedelta(days=1):
        chargeable = 1

    amount = Money.zero()
    if chargeable and outstanding.is_positive():
        amount = outstanding * (rate_per_day * chargeable)

    return InterestSummary(
        rate_per_day=rate_per_day,
        outstanding=outstanding,
        exhausted_days=exhausted_days,
        interest_till_today=amount
    )
