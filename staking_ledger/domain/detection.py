"""Threshold-based exception detection over portfolio state.

Five independent detectors each take their threshold explicitly and return
zero, one or many ``ExceptionRecord`` values. ``run_exception_detection``
runs all of them against one ``DetectionState``.
"""
from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal, localcontext
from typing import Callable, Sequence

from staking_ledger.config import SETTINGS, ExceptionThresholds
from staking_ledger.domain.models import (
    PRE_ACTIVATION_STATES,
    EvidenceLink,
    RewardEvent,
    StakeState,
    ValidatorRecord,
    short_id,
)
from staking_ledger.domain.money import Gwei
from staking_ledger.domain.results import (
    ExceptionRecord,
    ExceptionStatus,
    ExceptionType,
    PortfolioSnapshot,
    PortfolioSummary,
    Severity,
)

logger = logging.getLogger(__name__)

MIN_REWARD_HISTORY = 3
MIN_CUSTODIANS_FOR_DIVERGENCE = 2


@dataclass(frozen=True)
class ExceptionPayload:
    type: ExceptionType
    title: str
    description: str
    severity: Severity
    evidence_links: Sequence[EvidenceLink] = field(default_factory=tuple)


@dataclass(frozen=True)
class ValidatorTransit:
    validator_id: str
    stake_state: StakeState
    transit_started_at: datetime | None = None

    @classmethod
    def from_record(cls, record: ValidatorRecord) -> ValidatorTransit:
        return cls(
            validator_id=record.validator_id,
            stake_state=record.stake_state,
            transit_started_at=record.transit_started_at,
        )


@dataclass(frozen=True)
class RewardObservation:
    date: date | datetime
    amount: Gwei


@dataclass(frozen=True)
class CustodianPerformance:
    custodian_id: str
    custodian_name: str
    trailing_apy: float


@dataclass(frozen=True)
class DetectionState:
    previous_snapshot: PortfolioSnapshot
    current_snapshot: PortfolioSnapshot
    validators: Sequence[ValidatorTransit] = field(default_factory=tuple)
    reward_history: Sequence[RewardObservation] = field(default_factory=tuple)
    custodian_performance: Sequence[CustodianPerformance] = field(default_factory=tuple)

    @classmethod
    def from_summaries(
        cls,
        previous: PortfolioSnapshot | PortfolioSummary,
        current: PortfolioSummary,
        validators: Sequence[ValidatorRecord] = (),
        reward_events: Sequence[RewardEvent] = (),
    ) -> DetectionState:
        if isinstance(previous, PortfolioSummary):
            previous = previous.snapshot()
        return cls(
            previous_snapshot=previous,
            current_snapshot=current.snapshot(),
            validators=tuple(ValidatorTransit.from_record(v) for v in validators),
            reward_history=daily_reward_history(reward_events, as_of=current.as_of),
            custodian_performance=tuple(
                CustodianPerformance(
                    custodian_id=allocation.custodian_id,
                    custodian_name=allocation.custodian_name,
                    trailing_apy=allocation.trailing_apy,
                )
                for allocation in current.custodian_breakdown
            ),
        )


def daily_reward_history(
    reward_events: Sequence[RewardEvent], as_of: datetime | None = None
) -> tuple[RewardObservation, ...]:
    """Sum reward events into one observation per UTC calendar day.

    With ``as_of`` only complete days are kept: events after ``as_of`` and
    the still-open ``as_of`` day itself are left out.
    """
    cutoff_day = _utc(as_of).date() if as_of is not None else None
    per_day: dict[date, int] = defaultdict(int)
    for event in reward_events:
        day = _utc(event.timestamp).date()
        if cutoff_day is not None and day >= cutoff_day:
            continue
        per_day[day] += event.amount.amount
    return tuple(RewardObservation(date=day, amount=Gwei(per_day[day])) for day in sorted(per_day))


def _utc(stamp: datetime) -> datetime:
    return stamp.astimezone(timezone.utc) if stamp.tzinfo is not None else stamp


def create_exception(
    payload: ExceptionPayload,
    detected_at: datetime | None = None,
    id_factory: Callable[[], uuid.UUID] = uuid.uuid4,
) -> ExceptionRecord:
    return ExceptionRecord(
        id=str(id_factory()),
        type=payload.type,
        status=ExceptionStatus.NEW,
        title=payload.title,
        description=payload.description,
        severity=payload.severity,
        detected_at=detected_at or datetime.now(timezone.utc),
        evidence_links=tuple(payload.evidence_links),
    )


def _escalated(deviation: float, threshold: float) -> Severity:
    return Severity.HIGH if deviation > threshold * 2 else Severity.MEDIUM


def _percent(value: float) -> str:
    return f"{value * 100:.2f}"


def detect_portfolio_value_change(
    previous: PortfolioSnapshot,
    current: PortfolioSnapshot,
    threshold: float,
    detected_at: datetime | None = None,
) -> ExceptionRecord | None:
    if not previous.total_value:
        return None
    change = current.total_value - previous.total_value
    change_ratio = abs(change).ratio(abs(previous.total_value))
    if change_ratio <= threshold:
        return None

    direction = "increased" if change.amount > 0 else "decreased"
    percent = _percent(change_ratio)
    return create_exception(
        ExceptionPayload(
            type=ExceptionType.PORTFOLIO_VALUE_CHANGE,
            title=f"Portfolio value {direction} {percent}%",
            description=(
                f"Portfolio value changed from {previous.total_value} to {current.total_value} gwei "
                f"({direction} {percent}%) between {previous.timestamp.isoformat()} "
                f"and {current.timestamp.isoformat()}"
            ),
            severity=Severity.HIGH,
        ),
        detected_at=detected_at,
    )


def detect_validator_count_change(
    previous_count: int,
    current_count: int,
    threshold: float,
    detected_at: datetime | None = None,
) -> ExceptionRecord | None:
    if previous_count == 0:
        return None
    change = current_count - previous_count
    change_ratio = abs(change) / previous_count
    if change_ratio <= threshold:
        return None

    direction = "increased" if change > 0 else "decreased"
    percent = _percent(change_ratio)
    return create_exception(
        ExceptionPayload(
            type=ExceptionType.VALIDATOR_COUNT_CHANGE,
            title=f"Validator count {direction} {percent}%",
            description=(
                f"Validator count changed from {previous_count} to {current_count} "
                f"({direction} by {abs(change)} validators)"
            ),
            severity=_escalated(change_ratio, threshold),
        ),
        detected_at=detected_at,
    )


def detect_in_transit_stuck(
    validators: Sequence[ValidatorTransit],
    now: datetime,
    max_days: float,
    detected_at: datetime | None = None,
) -> list[ExceptionRecord]:
    limit = timedelta(days=max_days)
    exceptions: list[ExceptionRecord] = []
    for validator in validators:
        if StakeState.parse(validator.stake_state) not in PRE_ACTIVATION_STATES:
            continue
        if validator.transit_started_at is None:
            continue
        elapsed = now - validator.transit_started_at
        if elapsed <= limit:
            continue

        days_stuck = elapsed.days
        label = f"Validator {short_id(validator.validator_id)}"
        exceptions.append(
            create_exception(
                ExceptionPayload(
                    type=ExceptionType.IN_TRANSIT_STUCK,
                    title=f"{label} stuck in transit",
                    description=(
                        f"Validator has been in '{StakeState.parse(validator.stake_state).value}' state "
                        f"for {days_stuck} days (threshold: {max_days:g} days)"
                    ),
                    severity=_escalated(days_stuck, max_days),
                    evidence_links=(EvidenceLink.validator(validator.validator_id, label),),
                ),
                detected_at=detected_at or now,
            )
        )
    return exceptions


def detect_rewards_anomaly(
    reward_history: Sequence[RewardObservation],
    threshold: float,
    detected_at: datetime | None = None,
) -> ExceptionRecord | None:
    """Compare the most recent reward against the mean of the earlier ones."""
    if len(reward_history) < MIN_REWARD_HISTORY:
        return None

    ordered = sorted(reward_history, key=lambda observation: observation.date)
    *earlier, latest = ordered
    with localcontext(SETTINGS.decimal_context):
        mean = Decimal(Gwei.sum(o.amount for o in earlier).amount) / len(earlier)
        if mean == 0:
            return None
        deviation = float(abs(Decimal(latest.amount.amount) - mean) / mean)

    if deviation <= threshold:
        return None

    direction = "spike" if latest.amount.amount > mean else "drop"
    percent = _percent(deviation)
    return create_exception(
        ExceptionPayload(
            type=ExceptionType.REWARDS_ANOMALY,
            title=f"Rewards {direction} detected ({percent}% deviation)",
            description=(
                f"Latest reward of {latest.amount} gwei deviates {percent}% "
                f"from historical average of {mean:.0f} gwei"
            ),
            severity=_escalated(deviation, threshold),
        ),
        detected_at=detected_at,
    )


def detect_performance_divergence(
    custodian_performance: Sequence[CustodianPerformance],
    threshold: float,
    detected_at: datetime | None = None,
) -> list[ExceptionRecord]:
    """Flag custodians whose yield sits more than ``threshold`` below the peer mean."""
    if len(custodian_performance) < MIN_CUSTODIANS_FOR_DIVERGENCE:
        return []
    mean = sum(c.trailing_apy for c in custodian_performance) / len(custodian_performance)
    if mean == 0:
        return []

    exceptions: list[ExceptionRecord] = []
    for custodian in custodian_performance:
        deviation = (mean - custodian.trailing_apy) / mean
        if deviation <= threshold:
            continue
        percent = _percent(deviation)
        exceptions.append(
            create_exception(
                ExceptionPayload(
                    type=ExceptionType.PERFORMANCE_DIVERGENCE,
                    title=f"{custodian.custodian_name} underperforming by {percent}%",
                    description=(
                        f"{custodian.custodian_name} trailing APY of {_percent(custodian.trailing_apy)}% "
                        f"is {percent}% below portfolio average of {_percent(mean)}%"
                    ),
                    severity=_escalated(deviation, threshold),
                    evidence_links=(
                        EvidenceLink.custodian(custodian.custodian_id, custodian.custodian_name),
                    ),
                ),
                detected_at=detected_at,
            )
        )
    return exceptions


def run_exception_detection(
    state: DetectionState,
    config: ExceptionThresholds,
    detected_at: datetime | None = None,
) -> list[ExceptionRecord]:
    """Run every detector; one detector failing does not stop the rest."""
    if not isinstance(config, ExceptionThresholds):
        config = ExceptionThresholds.from_mapping(config)

    previous = state.previous_snapshot
    current = state.current_snapshot
    detected_at = detected_at or datetime.now(timezone.utc)

    checks: list[tuple[str, Callable[[], ExceptionRecord | list[ExceptionRecord] | None]]] = [
        (
            "portfolio_value_change",
            lambda: detect_portfolio_value_change(
                previous, current, config.portfolio_value_change_threshold, detected_at
            ),
        ),
        (
            "in_transit_stuck",
            lambda: detect_in_transit_stuck(
                state.validators, current.timestamp, config.in_transit_stuck_days, detected_at
            ),
        ),
        (
            "rewards_anomaly",
            lambda: detect_rewards_anomaly(
                state.reward_history, config.rewards_anomaly_threshold, detected_at
            ),
        ),
        (
            "performance_divergence",
            lambda: detect_performance_divergence(
                state.custodian_performance, config.performance_divergence_threshold, detected_at
            ),
        ),
    ]
    if previous.validator_count is not None and current.validator_count is not None:
        checks.insert(
            1,
            (
                "validator_count_change",
                lambda: detect_validator_count_change(
                    previous.validator_count,
                    current.validator_count,
                    config.validator_count_change_threshold,
                    detected_at,
                ),
            ),
        )

    exceptions: list[ExceptionRecord] = []
    for name, check in checks:
        try:
            result = check()
        except Exception:
            logger.exception("Exception detector %s failed; continuing with remaining detectors", name)
            continue
        if result is None:
            continue
        if isinstance(result, ExceptionRecord):
            exceptions.append(result)
        else:
            exceptions.extend(result)

    logger.debug("Exception detection produced %d exceptions", len(exceptions))
    return exceptions


def filter_exceptions_by_status(
    exceptions: Sequence[ExceptionRecord], status: ExceptionStatus
) -> list[ExceptionRecord]:
    return [exception for exception in exceptions if exception.status == status]


def open_exceptions(exceptions: Sequence[ExceptionRecord]) -> list[ExceptionRecord]:
    return [exception for exception in exceptions if exception.is_open()]
