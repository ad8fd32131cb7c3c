"""Deterministic rollup of validator balances into portfolio summaries.

Validators roll up to custodian allocations, and allocations roll up to a
portfolio summary; every level re-derives its yield from the level below.
Nothing here depends on dict or set iteration order: custodian lists are
sorted by value descending, then custodian id.
"""
from __future__ import annotations

from collections import defaultdict
from datetime import datetime, time, timedelta, timezone
from typing import Iterable, Sequence

from staking_ledger.domain.models import RewardEvent, StakeState, ValidatorRecord
from staking_ledger.domain.money import Gwei
from staking_ledger.domain.results import (
    AprHistoryPoint,
    CustodianAllocation,
    PortfolioRollup,
    PortfolioSummary,
    StateBuckets,
)

DAYS_PER_YEAR = 365
SECONDS_PER_DAY = 24 * 60 * 60
APR_HISTORY_WINDOW_DAYS = 7
MAX_APR_HISTORY_DAYS = 180

_BUCKET_FOR_STATE = {
    StakeState.DEPOSITED: "deposited",
    StakeState.PENDING_ACTIVATION: "entry_queue",
    StakeState.ACTIVE: "active",
    StakeState.EXITING: "exiting",
    StakeState.WITHDRAWABLE: "withdrawable",
}


def total_balance(validators: Iterable[ValidatorRecord]) -> Gwei:
    return Gwei.sum(validator.balance for validator in validators)


def aggregate_by_state_bucket(validators: Sequence[ValidatorRecord]) -> StateBuckets:
    totals = {name: 0 for name in _BUCKET_FOR_STATE.values()}
    for validator in validators:
        state = StakeState.parse(validator.stake_state)
        totals[_BUCKET_FOR_STATE[state]] += validator.balance.amount
    return StateBuckets(**{name: Gwei(amount) for name, amount in totals.items()})


def trailing_window(as_of: datetime, days: int) -> tuple[datetime, datetime]:
    return as_of - timedelta(days=days), as_of


def calculate_trailing_apy(
    reward_events: Iterable[RewardEvent],
    principal: Gwei,
    window_start: datetime,
    window_end: datetime,
) -> float:
    """Annualized reward rate over ``[window_start, window_end]`` as a decimal.

    Events outside the window are ignored even when the caller passes them.
    A zero principal, an empty window or a non-positive window length yields 0.0.
    """
    if not principal:
        return 0.0
    window_days = (window_end - window_start).total_seconds() / SECONDS_PER_DAY
    if window_days <= 0:
        return 0.0
    rewards = Gwei.sum(
        event.amount for event in reward_events if window_start <= event.timestamp <= window_end
    )
    if not rewards:
        return 0.0
    return rewards.ratio(principal) * (DAYS_PER_YEAR / window_days)


def rollup_validators_to_custodian(
    validators: Sequence[ValidatorRecord],
    reward_events: Sequence[RewardEvent],
    window_start: datetime,
    window_end: datetime,
) -> tuple[CustodianAllocation, ...]:
    groups: dict[str, list[ValidatorRecord]] = defaultdict(list)
    for validator in validators:
        groups[validator.custodian_id].append(validator)

    events_by_validator: dict[str, list[RewardEvent]] = defaultdict(list)
    for event in reward_events:
        events_by_validator[event.validator_id].append(event)

    portfolio_total = total_balance(validators)

    allocations: list[CustodianAllocation] = []
    for custodian_id, members in groups.items():
        members = sorted(members, key=lambda v: v.validator_id)
        value = total_balance(members)
        custodian_events = [
            event for member in members for event in events_by_validator.get(member.validator_id, ())
        ]
        allocations.append(
            CustodianAllocation(
                custodian_id=custodian_id,
                custodian_name=members[0].custodian_name,
                value=value,
                percentage=value.ratio(portfolio_total),
                trailing_apy=calculate_trailing_apy(custodian_events, value, window_start, window_end),
                validator_count=len(members),
            )
        )

    allocations.sort(key=lambda a: (-a.value.amount, a.custodian_id))
    return tuple(allocations)


def rollup_custodians_to_portfolio(allocations: Sequence[CustodianAllocation]) -> PortfolioRollup:
    total_value = Gwei.sum(allocation.value for allocation in allocations)
    validator_count = sum(allocation.validator_count for allocation in allocations)

    blended = 0.0
    if total_value:
        for allocation in allocations:
            blended += allocation.trailing_apy * allocation.value.ratio(total_value)

    return PortfolioRollup(
        total_value=total_value,
        trailing_apy=blended,
        validator_count=validator_count,
    )


def create_portfolio_summary(
    validators: Sequence[ValidatorRecord],
    reward_events: Sequence[RewardEvent],
    as_of: datetime | None = None,
    window_days: int = 30,
    network_benchmark_apy: float | None = None,
) -> PortfolioSummary:
    """Compose buckets, custodian allocations and portfolio totals into one summary."""
    as_of = as_of or datetime.now(timezone.utc)
    window_start, window_end = trailing_window(as_of, window_days)
    previous_start, previous_end = trailing_window(window_start, window_days)

    buckets = aggregate_by_state_bucket(validators)
    breakdown = rollup_validators_to_custodian(validators, reward_events, window_start, window_end)
    rollup = rollup_custodians_to_portfolio(breakdown)

    recent_rewards = Gwei.sum(
        event.amount for event in reward_events if window_start <= event.timestamp <= window_end
    )
    previous_period_apy = calculate_trailing_apy(
        reward_events, rollup.total_value, previous_start, previous_end
    )

    return PortfolioSummary(
        total_value=rollup.total_value,
        trailing_apy=rollup.trailing_apy,
        validator_count=rollup.validator_count,
        state_buckets=buckets,
        custodian_breakdown=breakdown,
        as_of=as_of,
        previous_period_apy=previous_period_apy,
        recent_rewards=recent_rewards,
        network_benchmark_apy=network_benchmark_apy,
    )


def custodian_apr_history(
    validators: Sequence[ValidatorRecord],
    reward_events: Sequence[RewardEvent],
    as_of: datetime,
    days: int,
    window_days: int = APR_HISTORY_WINDOW_DAYS,
) -> tuple[AprHistoryPoint, ...]:
    """Daily series of rolling trailing APY per custodian, oldest day first.

    Each point covers the ``window_days`` ending at the close of its UTC day and
    measures rewards against the custodian's current balance. Custodians appear
    in custodian id order; rewards of validators not in ``validators`` are ignored.
    """
    days = min(days, MAX_APR_HISTORY_DAYS)
    if days <= 0:
        return ()

    custodian_of = {validator.validator_id: validator.custodian_id for validator in validators}
    members_by_custodian: dict[str, list[ValidatorRecord]] = defaultdict(list)
    for validator in validators:
        members_by_custodian[validator.custodian_id].append(validator)
    principals = {
        custodian_id: total_balance(members) for custodian_id, members in members_by_custodian.items()
    }

    events_by_custodian: dict[str, list[RewardEvent]] = defaultdict(list)
    for event in reward_events:
        custodian_id = custodian_of.get(event.validator_id)
        if custodian_id is not None:
            events_by_custodian[custodian_id].append(event)

    last_day = as_of.astimezone(timezone.utc).date()
    points: list[AprHistoryPoint] = []
    for offset in range(days - 1, -1, -1):
        day = last_day - timedelta(days=offset)
        window_end = datetime.combine(day, time.max, tzinfo=timezone.utc)
        window_start = window_end - timedelta(days=window_days)
        points.append(
            AprHistoryPoint(
                date=day,
                apy_by_custodian={
                    custodian_id: calculate_trailing_apy(
                        events_by_custodian.get(custodian_id, ()),
                        principals[custodian_id],
                        window_start,
                        window_end,
                    )
                    for custodian_id in sorted(principals)
                },
            )
        )
    return tuple(points)
