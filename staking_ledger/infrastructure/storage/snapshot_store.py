"""JSON storage for the portfolio snapshot a later run compares against."""
from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Any

from staking_ledger.domain.money import Gwei
from staking_ledger.domain.results import PortfolioSnapshot
from staking_ledger.errors import ParseError


def snapshot_to_dict(snapshot: PortfolioSnapshot) -> dict[str, Any]:
    # Gwei is written as a string so JSON readers never round it through a float.
    return {
        "total_value": str(snapshot.total_value),
        "timestamp": snapshot.timestamp.isoformat(),
        "validator_count": snapshot.validator_count,
    }


def snapshot_from_dict(raw: dict[str, Any]) -> PortfolioSnapshot:
    if not isinstance(raw, dict):
        raise ParseError("Snapshot must be a JSON object")
    try:
        total_value = Gwei.of(str(raw["total_value"]))
        timestamp = datetime.fromisoformat(str(raw["timestamp"]))
    except KeyError as exc:
        raise ParseError(f"Snapshot is missing field {exc.args[0]!r}") from exc
    except ValueError as exc:
        raise ParseError(f"Snapshot has an invalid value: {exc}") from exc
    count = raw.get("validator_count")
    return PortfolioSnapshot(
        total_value=total_value,
        timestamp=timestamp,
        validator_count=int(count) if count is not None else None,
    )


def load_snapshot(path: Path) -> PortfolioSnapshot | None:
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ParseError(f"Snapshot file {path} is not valid JSON: {exc}") from exc
    return snapshot_from_dict(data)


def save_snapshot(snapshot: PortfolioSnapshot, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(snapshot_to_dict(snapshot), indent=2, sort_keys=True), encoding="utf-8")
    return path
