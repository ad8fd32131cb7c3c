"""Domain models for the staking ledger.

These dataclasses capture the canonical schema for validator records, reward
events and the typed evidence links attached to findings.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime

from staking_ledger.domain.money import Gwei
from staking_ledger.errors import UnknownStakeStateError


class StakeState(str, enum.Enum):
    """Canonical lifecycle state of staked value."""

    DEPOSITED = "deposited"
    PENDING_ACTIVATION = "pending_activation"
    ACTIVE = "active"
    EXITING = "exiting"
    WITHDRAWABLE = "withdrawable"

    @classmethod
    def parse(cls, value: StakeState | str) -> StakeState:
        """Resolve a canonical or legacy tag, raising on anything unmapped."""
        if isinstance(value, StakeState):
            return value
        if not isinstance(value, str):
            raise UnknownStakeStateError(value)
        tag = value.strip().lower().replace("-", "_").replace(" ", "_")
        if tag in LEGACY_STAKE_STATES:
            return LEGACY_STAKE_STATES[tag]
        try:
            return cls(tag)
        except ValueError:
            raise UnknownStakeStateError(value) from None


# Equivalence table for the older five-state vocabulary.
LEGACY_STAKE_STATES: dict[str, StakeState] = {
    "in_transit": StakeState.PENDING_ACTIVATION,
    "exited": StakeState.WITHDRAWABLE,
}

PRE_ACTIVATION_STATES = frozenset({StakeState.DEPOSITED, StakeState.PENDING_ACTIVATION})


class EvidenceType(str, enum.Enum):
    VALIDATOR = "validator"
    CUSTODIAN = "custodian"
    EVENT = "event"
    EXTERNAL = "external"


@dataclass(frozen=True)
class EvidenceLink:
    """Typed reference attached to a finding for audit traceability."""

    type: EvidenceType
    id: str
    label: str
    url: str | None = None

    @classmethod
    def validator(cls, validator_id: str, label: str | None = None) -> EvidenceLink:
        return cls(
            type=EvidenceType.VALIDATOR,
            id=validator_id,
            label=label or f"Validator {short_id(validator_id)}",
        )

    @classmethod
    def custodian(cls, custodian_id: str, label: str) -> EvidenceLink:
        return cls(type=EvidenceType.CUSTODIAN, id=custodian_id, label=label)


@dataclass(frozen=True)
class ValidatorRecord:
    """Point-in-time snapshot of one validator and its owning custodian."""

    validator_id: str
    pubkey: str
    operator_id: str
    operator_name: str
    custodian_id: str
    custodian_name: str
    stake_state: StakeState
    balance: Gwei
    effective_balance: Gwei
    status: str = "active"
    transit_started_at: datetime | None = None


@dataclass(frozen=True)
class RewardEvent:
    """Append-only reward ledger entry."""

    validator_id: str
    amount: Gwei
    timestamp: datetime


def short_id(identifier: str) -> str:
    if len(identifier) <= 8:
        return identifier
    return f"{identifier[:8]}..."


@dataclass(frozen=True)
class InternalTotal:
    """Internally computed holdings for one custodian, ready for reconciliation."""

    total_value: Gwei
    validator_count: int
    as_of: datetime
    validator_breakdown: tuple[tuple[str, Gwei], ...] = ()


@dataclass(frozen=True)
class ExternalStatement:
    """Holdings total reported by a third-party custodian."""

    source: str
    total_value: Gwei
    report_date: datetime
    reference: str | None = None
