"""Tabular views of engine outputs for downstream report and UI consumers."""
from __future__ import annotations

from typing import Mapping, Sequence

import pandas as pd

from staking_ledger.domain.results import (
    AprHistoryPoint,
    CustodianAllocation,
    ExceptionRecord,
    PortfolioSummary,
    ReconciliationReport,
)


def allocations_to_rows(allocations: Sequence[CustodianAllocation]) -> list[dict[str, object]]:
    return [
        {
            "custodian_id": item.custodian_id,
            "custodian_name": item.custodian_name,
            "value_gwei": str(item.value),
            "value_eth": str(item.value.to_eth()),
            "percentage": item.percentage,
            "trailing_apy": item.trailing_apy,
            "validator_count": item.validator_count,
        }
        for item in allocations
    ]


def state_buckets_to_rows(summary: PortfolioSummary) -> list[dict[str, object]]:
    total = summary.state_buckets.total()
    return [
        {
            "bucket": name,
            "value_gwei": str(amount),
            "share": amount.ratio(total),
        }
        for name, amount in summary.state_buckets.as_dict().items()
    ]


def exceptions_to_rows(exceptions: Sequence[ExceptionRecord]) -> list[dict[str, str]]:
    rows: list[dict[str, str]] = []
    for item in exceptions:
        rows.append(
            {
                "id": item.id,
                "type": item.type.value,
                "severity": item.severity.value,
                "status": item.status.value,
                "title": item.title,
                "description": item.description,
                "detected_at": item.detected_at.isoformat(),
                "evidence": "; ".join(f"{link.type.value}:{link.id}" for link in item.evidence_links),
            }
        )
    return rows


def reconciliation_to_rows(reports: Mapping[str, ReconciliationReport]) -> list[dict[str, str]]:
    rows: list[dict[str, str]] = []
    for source, report in reports.items():
        categories = report.variance_categories or ()
        rows.append(
            {
                "source": source,
                "status": report.status.value,
                "internal_total": str(report.internal_total),
                "external_total": str(report.external_total),
                "variance": str(report.variance),
                "variance_percentage": f"{report.variance_percentage:.6f}",
                "direction": report.direction.value,
                "categories": ", ".join(f"{c.category}={c.amount}" for c in categories),
                "report_date": report.report_date.isoformat(),
            }
        )
    return rows


def apr_history_to_rows(points: Sequence[AprHistoryPoint]) -> list[dict[str, object]]:
    """One row per day with a column per custodian id, for charting."""
    return [{"date": point.date.isoformat(), **point.apy_by_custodian} for point in points]


def to_dataframe(rows: list[dict[str, object]]) -> pd.DataFrame:
    return pd.DataFrame(rows)
