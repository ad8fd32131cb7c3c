"""Repository interfaces anchoring the domain layer."""
from __future__ import annotations

from typing import Protocol, Sequence

from .models import ExternalStatement, RewardEvent, ValidatorRecord


class ValidatorRepository(Protocol):
    """Provides the current validator set."""

    def list_validators(self) -> Sequence[ValidatorRecord]:
        ...


class RewardEventRepository(Protocol):
    """Provides the reward event log."""

    def list_reward_events(self) -> Sequence[RewardEvent]:
        ...


class StatementRepository(Protocol):
    """Provides custodian-reported holdings statements."""

    def list_statements(self) -> Sequence[ExternalStatement]:
        ...
