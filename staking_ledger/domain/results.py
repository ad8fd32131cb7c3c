"""Derived values produced by the rollup, detection and reconciliation engines."""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterable, Mapping, Sequence

from staking_ledger.domain.models import EvidenceLink
from staking_ledger.domain.money import Gwei


@dataclass(frozen=True)
class StateBuckets:
    deposited: Gwei = Gwei(0)
    entry_queue: Gwei = Gwei(0)
    active: Gwei = Gwei(0)
    exiting: Gwei = Gwei(0)
    withdrawable: Gwei = Gwei(0)

    def total(self) -> Gwei:
        return Gwei.sum(self.as_dict().values())

    def as_dict(self) -> dict[str, Gwei]:
        return {
            "deposited": self.deposited,
            "entry_queue": self.entry_queue,
            "active": self.active,
            "exiting": self.exiting,
            "withdrawable": self.withdrawable,
        }


@dataclass(frozen=True)
class CustodianAllocation:
    custodian_id: str
    custodian_name: str
    value: Gwei
    percentage: float
    trailing_apy: float
    validator_count: int


@dataclass(frozen=True)
class PortfolioRollup:
    total_value: Gwei
    trailing_apy: float
    validator_count: int


@dataclass(frozen=True)
class AprHistoryPoint:
    """Rolling trailing APY per custodian id for the window ending on ``date``."""

    date: date
    apy_by_custodian: Mapping[str, float]


@dataclass(frozen=True)
class PortfolioSnapshot:
    """Minimal point-in-time view used to compare two portfolio states."""

    total_value: Gwei
    timestamp: datetime
    validator_count: int | None = None


@dataclass(frozen=True)
class PortfolioSummary:
    total_value: Gwei
    trailing_apy: float
    validator_count: int
    state_buckets: StateBuckets
    custodian_breakdown: Sequence[CustodianAllocation]
    as_of: datetime
    previous_period_apy: float = 0.0
    recent_rewards: Gwei = Gwei(0)
    network_benchmark_apy: float | None = None

    def snapshot(self) -> PortfolioSnapshot:
        return PortfolioSnapshot(
            total_value=self.total_value,
            timestamp=self.as_of,
            validator_count=self.validator_count,
        )


class ExceptionType(str, enum.Enum):
    PORTFOLIO_VALUE_CHANGE = "portfolio_value_change"
    VALIDATOR_COUNT_CHANGE = "validator_count_change"
    IN_TRANSIT_STUCK = "in_transit_stuck"
    REWARDS_ANOMALY = "rewards_anomaly"
    PERFORMANCE_DIVERGENCE = "performance_divergence"


class Severity(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ExceptionStatus(str, enum.Enum):
    NEW = "new"
    INVESTIGATING = "investigating"
    RESOLVED = "resolved"


@dataclass(frozen=True)
class ExceptionRecord:
    """Anomaly raised by the detector; status changes belong to the workflow layer."""

    id: str
    type: ExceptionType
    status: ExceptionStatus
    title: str
    description: str
    severity: Severity
    detected_at: datetime
    evidence_links: Sequence[EvidenceLink] = field(default_factory=tuple)

    def is_open(self) -> bool:
        return self.status in (ExceptionStatus.NEW, ExceptionStatus.INVESTIGATING)


class VarianceDirection(str, enum.Enum):
    INTERNAL_HIGHER = "internal_higher"
    EXTERNAL_HIGHER = "external_higher"
    MATCH = "match"


class ReconciliationStatus(str, enum.Enum):
    RECONCILED = "reconciled"
    VARIANCE_DETECTED = "variance_detected"
    REQUIRES_INVESTIGATION = "requires_investigation"


@dataclass(frozen=True)
class Variance:
    amount: Gwei
    percentage: float
    direction: VarianceDirection


@dataclass(frozen=True)
class VarianceCategory:
    category: str
    amount: Gwei
    explanation: str
    evidence_links: Sequence[EvidenceLink] = field(default_factory=tuple)


@dataclass(frozen=True)
class ReconciliationReport:
    internal_total: Gwei
    external_total: Gwei
    variance: Gwei
    variance_percentage: float
    direction: VarianceDirection
    status: ReconciliationStatus
    source: str
    report_date: datetime
    internal_as_of: datetime | None
    variance_categories: Sequence[VarianceCategory] = field(default_factory=tuple)
    reference: str | None = None

    def categorized_amount(self) -> Gwei:
        return Gwei.sum(category.amount for category in self.variance_categories)

    def iter_evidence(self) -> Iterable[EvidenceLink]:
        for category in self.variance_categories:
            yield from category.evidence_links
