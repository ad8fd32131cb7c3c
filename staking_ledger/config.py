"""Central configuration for the staking ledger package."""
from __future__ import annotations

import json
import math
from dataclasses import dataclass, fields
from datetime import timezone, tzinfo
from decimal import Context
from pathlib import Path
from typing import Any, Mapping

from staking_ledger.errors import ConfigurationError


def _require_non_negative(name: str, value: Any) -> float:
    if value is None:
        raise ConfigurationError(f"Missing required threshold: {name}")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(f"Threshold {name} must be numeric, got {value!r}")
    if not math.isfinite(value) or value < 0:
        raise ConfigurationError(f"Threshold {name} must be a finite non-negative number, got {value!r}")
    return value


@dataclass(slots=True, frozen=True)
class ReconciliationBands:
    """Variance-percentage bands that decide a reconciliation status.

    At or below ``reconciled_max`` a variance is attributed to settlement
    timing; at or below ``variance_detected_max`` it is reported but not
    escalated; anything above requires investigation.
    """

    reconciled_max: float
    variance_detected_max: float

    def __post_init__(self) -> None:
        _require_non_negative("reconciled_max", self.reconciled_max)
        _require_non_negative("variance_detected_max", self.variance_detected_max)
        if self.reconciled_max > self.variance_detected_max:
            raise ConfigurationError("reconciled_max must not exceed variance_detected_max")


@dataclass(slots=True, frozen=True)
class ExceptionThresholds:
    """Thresholds for the five exception detectors. Every field is required."""

    portfolio_value_change_threshold: float
    validator_count_change_threshold: float
    in_transit_stuck_days: float
    rewards_anomaly_threshold: float
    performance_divergence_threshold: float

    def __post_init__(self) -> None:
        for item in fields(self):
            _require_non_negative(item.name, getattr(self, item.name))

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> ExceptionThresholds:
        """Build from snake_case or camelCase option names, rejecting missing keys."""
        if not isinstance(raw, Mapping):
            raise ConfigurationError("Threshold configuration must be a mapping")
        values: dict[str, Any] = {}
        for item in fields(cls):
            camel = _camel_case(item.name)
            if item.name in raw:
                values[item.name] = raw[item.name]
            elif camel in raw:
                values[item.name] = raw[camel]
            else:
                raise ConfigurationError(f"Missing required threshold: {camel}")
        return cls(**values)


def _camel_case(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def load_thresholds(path: Path) -> ExceptionThresholds:
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Threshold file {path} is not valid JSON: {exc}") from exc
    return ExceptionThresholds.from_mapping(data)


@dataclass(slots=True, frozen=True)
class Settings:
    decimal_context: Context
    timezone: tzinfo
    trailing_window_days: int
    network_benchmark_apy: float
    reconciliation_bands: ReconciliationBands


SETTINGS = Settings(
    decimal_context=Context(prec=28),
    timezone=timezone.utc,
    trailing_window_days=30,
    network_benchmark_apy=0.038,
    reconciliation_bands=ReconciliationBands(reconciled_max=0.001, variance_detected_max=0.01),
)
