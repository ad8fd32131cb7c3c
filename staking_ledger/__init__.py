"""Staking portfolio aggregation, exception detection and reconciliation toolkit."""
from staking_ledger.application.use_cases import PortfolioCheckUseCase, PortfolioContext
from staking_ledger.config import SETTINGS, ExceptionThresholds, ReconciliationBands
from staking_ledger.domain.detection import run_exception_detection
from staking_ledger.domain.money import Gwei
from staking_ledger.domain.reconciliation import (
    create_reconciliation_report,
    reconcile_all_custodians,
)
from staking_ledger.domain.rollup import (
    aggregate_by_state_bucket,
    calculate_trailing_apy,
    create_portfolio_summary,
    custodian_apr_history,
)

__all__ = [
    "PortfolioCheckUseCase",
    "PortfolioContext",
    "SETTINGS",
    "ExceptionThresholds",
    "ReconciliationBands",
    "Gwei",
    "aggregate_by_state_bucket",
    "calculate_trailing_apy",
    "create_portfolio_summary",
    "custodian_apr_history",
    "run_exception_detection",
    "create_reconciliation_report",
    "reconcile_all_custodians",
]
