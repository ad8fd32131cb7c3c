"""Application services orchestrating the portfolio check workflow."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Sequence

from staking_ledger.application.dto import PortfolioCheckRequest, PortfolioCheckResponse
from staking_ledger.config import SETTINGS, ExceptionThresholds
from staking_ledger.domain.detection import DetectionState, run_exception_detection
from staking_ledger.domain.models import RewardEvent, ValidatorRecord
from staking_ledger.domain.reconciliation import (
    internal_totals_from_validators,
    reconcile_all_custodians,
)
from staking_ledger.domain.repositories import (
    RewardEventRepository,
    StatementRepository,
    ValidatorRepository,
)
from staking_ledger.domain.results import (
    ExceptionRecord,
    PortfolioSnapshot,
    PortfolioSummary,
    ReconciliationReport,
    ReconciliationStatus,
)
from staking_ledger.domain.rollup import create_portfolio_summary
from staking_ledger.errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class PortfolioContext:
    validator_repository: ValidatorRepository
    reward_repository: RewardEventRepository
    statement_repository: StatementRepository | None = None


class SummarizePortfolioUseCase:
    def __init__(self, context: PortfolioContext) -> None:
        self._context = context

    def execute(
        self, as_of: datetime, window_days: int = SETTINGS.trailing_window_days
    ) -> tuple[PortfolioSummary, Sequence[ValidatorRecord], Sequence[RewardEvent]]:
        validators = self._context.validator_repository.list_validators()
        reward_events = self._context.reward_repository.list_reward_events()
        summary = create_portfolio_summary(
            validators,
            reward_events,
            as_of=as_of,
            window_days=window_days,
            network_benchmark_apy=SETTINGS.network_benchmark_apy,
        )
        logger.info(
            "Portfolio summary as of %s: %s gwei across %d validators and %d custodians",
            as_of.isoformat(),
            summary.total_value,
            summary.validator_count,
            len(summary.custodian_breakdown),
        )
        return summary, validators, reward_events


class DetectExceptionsUseCase:
    def __init__(self, thresholds: ExceptionThresholds) -> None:
        self._thresholds = thresholds

    def execute(
        self,
        previous: PortfolioSnapshot,
        current: PortfolioSummary,
        validators: Sequence[ValidatorRecord],
        reward_events: Sequence[RewardEvent],
    ) -> list[ExceptionRecord]:
        state = DetectionState.from_summaries(previous, current, validators, reward_events)
        exceptions = run_exception_detection(state, self._thresholds, detected_at=current.as_of)
        logger.info("Detected %d exceptions", len(exceptions))
        return exceptions


class ReconcileCustodiansUseCase:
    def __init__(self, statement_repository: StatementRepository) -> None:
        self._statements = statement_repository

    def execute(
        self, validators: Sequence[ValidatorRecord], as_of: datetime
    ) -> dict[str, ReconciliationReport]:
        statements = self._statements.list_statements()
        internal_totals = internal_totals_from_validators(validators, as_of)
        reports = reconcile_all_custodians(internal_totals, statements)
        for source, report in reports.items():
            if report.status == ReconciliationStatus.REQUIRES_INVESTIGATION:
                logger.warning(
                    "Reconciliation for %s requires investigation: variance %s gwei (%.4f%%)",
                    source,
                    report.variance,
                    report.variance_percentage * 100,
                )
        logger.info("Reconciled %d custodian statements", len(reports))
        return reports


class PortfolioCheckUseCase:
    """Summarize, detect exceptions against the prior snapshot and reconcile statements."""

    def __init__(self, context: PortfolioContext) -> None:
        self._context = context

    def execute(self, request: PortfolioCheckRequest) -> PortfolioCheckResponse:
        if request.previous_snapshot is not None and request.thresholds is None:
            raise ConfigurationError("Exception thresholds are required when a previous snapshot is given")

        summary, validators, reward_events = SummarizePortfolioUseCase(self._context).execute(
            request.as_of, request.window_days
        )

        exceptions: list[ExceptionRecord] = []
        if request.previous_snapshot is not None:
            exceptions = DetectExceptionsUseCase(request.thresholds).execute(
                request.previous_snapshot, summary, validators, reward_events
            )
        else:
            logger.info("No previous snapshot supplied; skipping exception detection")

        reconciliation: dict[str, ReconciliationReport] = {}
        if self._context.statement_repository is not None:
            reconciliation = ReconcileCustodiansUseCase(self._context.statement_repository).execute(
                validators, request.as_of
            )

        return PortfolioCheckResponse(
            summary=summary,
            exceptions=tuple(exceptions),
            reconciliation=reconciliation,
        )
