import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from staking_ledger.domain.money import Gwei
from staking_ledger.domain.results import PortfolioSnapshot
from staking_ledger.errors import ParseError
from staking_ledger.infrastructure.storage.snapshot_store import load_snapshot, save_snapshot


def test_save_and_load_snapshot(tmp_path: Path):
    path = tmp_path / "state" / "snapshot.json"
    snapshot = PortfolioSnapshot(
        total_value=Gwei(2**70),
        timestamp=datetime(2026, 1, 23, tzinfo=timezone.utc),
        validator_count=12,
    )

    save_snapshot(snapshot, path)

    assert json.loads(path.read_text())["total_value"] == str(2**70)
    assert load_snapshot(path) == snapshot


def test_missing_snapshot_file_loads_as_none(tmp_path: Path):
    assert load_snapshot(tmp_path / "absent.json") is None


def test_snapshot_without_count(tmp_path: Path):
    path = tmp_path / "snapshot.json"
    path.write_text(json.dumps({"total_value": "100", "timestamp": "2026-01-22T00:00:00+00:00"}))

    snapshot = load_snapshot(path)

    assert snapshot.total_value == Gwei(100)
    assert snapshot.validator_count is None


@pytest.mark.parametrize(
    "content",
    [
        "{broken",
        json.dumps({"timestamp": "2026-01-22T00:00:00+00:00"}),
        json.dumps({"total_value": "1.5", "timestamp": "2026-01-22T00:00:00+00:00"}),
        json.dumps(["not", "an", "object"]),
    ],
)
def test_invalid_snapshot_is_a_parse_error(tmp_path: Path, content: str):
    path = tmp_path / "snapshot.json"
    path.write_text(content)

    with pytest.raises(ParseError):
        load_snapshot(path)
