"""Application-level DTOs for portfolio checks."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Mapping, Sequence

from staking_ledger.config import SETTINGS, ExceptionThresholds
from staking_ledger.domain.results import (
    ExceptionRecord,
    PortfolioSnapshot,
    PortfolioSummary,
    ReconciliationReport,
    ReconciliationStatus,
)


@dataclass(slots=True, frozen=True)
class PortfolioCheckRequest:
    as_of: datetime
    thresholds: ExceptionThresholds | None = None
    previous_snapshot: PortfolioSnapshot | None = None
    window_days: int = SETTINGS.trailing_window_days


@dataclass(slots=True, frozen=True)
class PortfolioCheckResponse:
    summary: PortfolioSummary
    exceptions: Sequence[ExceptionRecord] = field(default_factory=tuple)
    reconciliation: Mapping[str, ReconciliationReport] = field(default_factory=dict)

    def requires_attention(self) -> bool:
        return bool(self.exceptions) or any(
            report.status != ReconciliationStatus.RECONCILED for report in self.reconciliation.values()
        )
