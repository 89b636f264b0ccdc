"""
Portfolio Recalculation Job

Batch refresh of interest-till-today and current penalty for every loan
in repayment. Penalties are recomputed from scratch each run, never added
to the previous figure. One bad loan never stops the run.
"""

from datetime import date
from dataclasses import dataclass, field
from typing import Dict, List, Optional
import logging
import time

from .config import EngineConfig, get_config
from .engine import LoanCalculationEngine
from .exceptions import StaleWriteError
from .loans import Loan, LoanRepository
from .logging_config import log_action

logger = logging.getLogger(__name__)


@dataclass
class JobStats:
    examined: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    failures: Dict[str, str] = field(default_factory=dict)
    duration_seconds: float = 0.0

    def to_dict(self) -> Dict:
        return {
            'examined': self.examined,
            'updated': self.updated,
            'skipped': self.skipped,
            'failed': self.failed,
            'failures': dict(self.failures),
            'duration_seconds': round(self.duration_seconds, 3)
        }


class PortfolioRecalculationJob:
    """
    Recalculates processed loans in frozen statuses

    Args:
        repository: Loan storage
        engine: Calculation engine, built from settings when omitted
        settings: Engine configuration
    """

    def __init__(
        self,
        repository: LoanRepository,
        engine: Optional[LoanCalculationEngine] = None,
        settings: Optional[EngineConfig] = None
    ):
        self.repository = repository
        self.settings = settings or get_config()
        self.engine = engine or LoanCalculationEngine(repository, self.settings)

    def candidates(self) -> List[Loan]:
        """Processed loans in frozen statuses"""
        loans = self.repository.find_by_status(self.settings.frozen_statuses)
        return [loan for loan in loans if loan.is_processed]

    def run(self, today: date, salary_days: Optional[Dict[str, int]] = None,
            paid_installments: Optional[Dict[str, List[int]]] = None) -> JobStats:
        """
        Refresh processed_interest, processed_penalty and last_calculated_at

        Args:
            today: Run date
            salary_days: Borrower salary day per loan id
            paid_installments: Ledger-paid installment numbers per loan id

        Returns:
            JobStats for the run
        """
        salary_days = salary_days or {}
        paid_installments = paid_installments or {}
        stats = JobStats()
        started = time.monotonic()

        log_action(logger, "info", "Starting portfolio recalculation", action="portfolio_job",
                   extra={'run_date': today.isoformat()})

        for loan in self.candidates():
            stats.examined += 1
            if loan.last_calculated_at is not None and loan.last_calculated_at >= today:
                stats.skipped += 1
                continue

            try:
                fallback_tiers = []
                if not loan.plan.penalty_tiers:
                    fallback_tiers = self.repository.load_penalty_tiers(loan.plan.plan_id)
                figures = self.engine.calculate(
                    loan,
                    today,
                    salary_days.get(loan.id),
                    paid_installments.get(loan.id, ()),
                    fallback_tiers
                )
                self.repository.update_if_version(loan, {
                    'processed_interest': figures.interest_summary.interest_till_today.to_plain(),
                    'processed_penalty': figures.penalty_total.to_plain(),
                    'last_calculated_at': today.isoformat()
                })
                stats.updated += 1
            except StaleWriteError as e:
                # Someone else wrote the loan; next run picks it up
                stats.skipped += 1
                logger.warning(f"Loan {loan.id} changed during recalculation: {e}")
            except Exception as e:
                stats.failed += 1
                stats.failures[loan.id] = str(e)
                logger.error(f"Recalculation failed for loan {loan.id}: {e}", exc_info=True)

        stats.duration_seconds = time.monotonic() - started
        log_action(logger, "info", "Portfolio recalculation finished", action="portfolio_job",
                   extra=stats.to_dict())
        return stats
