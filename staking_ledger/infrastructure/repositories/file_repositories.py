"""File-backed repositories for ledger exports and custodian statements."""
from __future__ import annotations

from io import BytesIO
from pathlib import Path
from typing import Sequence

from staking_ledger.domain.models import ExternalStatement, RewardEvent, ValidatorRecord
from staking_ledger.domain.repositories import (
    RewardEventRepository,
    StatementRepository,
    ValidatorRepository,
)
from staking_ledger.infrastructure.parsing.ledger import read_reward_events, read_validators
from staking_ledger.infrastructure.parsing.statements import read_statements
from staking_ledger.infrastructure.parsing.utils import ensure_bytes


def _load(source: BytesIO | Path | bytes) -> BytesIO | Path:
    # Paths keep their suffix so the reader can tell CSV from Excel.
    if isinstance(source, Path):
        return source
    return BytesIO(ensure_bytes(source))


class FileValidatorRepository(ValidatorRepository):
    def __init__(self, source: BytesIO | Path | bytes) -> None:
        self._source = _load(source)

    def list_validators(self) -> Sequence[ValidatorRecord]:
        return read_validators(self._source)


class FileRewardEventRepository(RewardEventRepository):
    def __init__(self, source: BytesIO | Path | bytes) -> None:
        self._source = _load(source)

    def list_reward_events(self) -> Sequence[RewardEvent]:
        return read_reward_events(self._source)


class FileStatementRepository(StatementRepository):
    def __init__(self, source: BytesIO | Path | bytes) -> None:
        self._source = _load(source)

    def list_statements(self) -> Sequence[ExternalStatement]:
        return read_statements(self._source)


class InMemoryStatementRepository(StatementRepository):
    def __init__(self, statements: Sequence[ExternalStatement] = ()) -> None:
        self._statements = tuple(statements)

    def list_statements(self) -> Sequence[ExternalStatement]:
        return self._statements
