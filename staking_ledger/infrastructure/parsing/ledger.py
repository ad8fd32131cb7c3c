"""Validator and reward-event export parsers producing canonical ledger records."""
from __future__ import annotations

import logging
from typing import Sequence

import pandas as pd

from staking_ledger.domain.models import RewardEvent, StakeState, ValidatorRecord
from staking_ledger.errors import ParseError, UnknownStakeStateError
from staking_ledger.infrastructure.parsing.utils import (
    SourceLike,
    clean_text,
    parse_gwei,
    parse_timestamp,
    read_table,
    require_columns,
)

logger = logging.getLogger(__name__)

VALIDATOR_SHEET_NAME = "Validators"
REWARD_SHEET_NAME = "Rewards"

VALIDATOR_COLUMNS = (
    "validator_id",
    "custodian_id",
    "stake_state",
    "balance_gwei",
)
REWARD_COLUMNS = ("validator_id", "amount_gwei", "timestamp")


def _validator_from_row(idx: int, row: pd.Series) -> ValidatorRecord:
    validator_id = clean_text(row.get("validator_id"))
    if not validator_id:
        raise ParseError("Validator row has no validator_id", row=idx)
    custodian_id = clean_text(row.get("custodian_id"))
    if not custodian_id:
        raise ParseError(f"Validator {validator_id} has no custodian_id", row=idx)
    try:
        stake_state = StakeState.parse(clean_text(row.get("stake_state")))
    except UnknownStakeStateError as exc:
        raise ParseError(str(exc), row=idx) from exc

    balance = parse_gwei(row.get("balance_gwei"), row=idx)
    effective = clean_text(row.get("effective_balance_gwei"))
    return ValidatorRecord(
        validator_id=validator_id,
        pubkey=clean_text(row.get("pubkey")),
        operator_id=clean_text(row.get("operator_id")),
        operator_name=clean_text(row.get("operator_name")),
        custodian_id=custodian_id,
        custodian_name=clean_text(row.get("custodian_name")) or custodian_id,
        stake_state=stake_state,
        balance=balance,
        effective_balance=parse_gwei(effective, row=idx) if effective else balance,
        status=clean_text(row.get("status")) or "active",
        transit_started_at=parse_timestamp(row.get("transit_started_at"), row=idx),
    )


def validators_from_frame(frame: pd.DataFrame) -> Sequence[ValidatorRecord]:
    require_columns(frame, VALIDATOR_COLUMNS, "Validator")
    return [_validator_from_row(idx, row) for idx, row in frame.iterrows()]


def reward_events_from_frame(frame: pd.DataFrame) -> Sequence[RewardEvent]:
    require_columns(frame, REWARD_COLUMNS, "Reward")
    events: list[RewardEvent] = []
    for idx, row in frame.iterrows():
        validator_id = clean_text(row.get("validator_id"))
        if not validator_id:
            logger.warning("Skipping reward row %s without a validator_id", idx)
            continue
        timestamp = parse_timestamp(row.get("timestamp"), row=idx)
        if timestamp is None:
            raise ParseError(f"Reward for {validator_id} has no timestamp", row=idx)
        events.append(
            RewardEvent(
                validator_id=validator_id,
                amount=parse_gwei(row.get("amount_gwei"), row=idx),
                timestamp=timestamp,
            )
        )
    return events


def read_validators(source: SourceLike) -> Sequence[ValidatorRecord]:
    records = validators_from_frame(read_table(source, VALIDATOR_SHEET_NAME))
    logger.debug("Parsed %d validator records", len(records))
    return records


def read_reward_events(source: SourceLike) -> Sequence[RewardEvent]:
    events = reward_events_from_frame(read_table(source, REWARD_SHEET_NAME))
    logger.debug("Parsed %d reward events", len(events))
    return events
