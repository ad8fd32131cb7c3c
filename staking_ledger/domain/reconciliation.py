"""Reconciliation of internal totals against custodian statements.

Variances are classified into status bands and broken down into evidenced
categories so that every report can be carried straight into an audit file.
Missing internal data is a finding, reported with full variance, never an error.
"""
from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Mapping, Sequence

from staking_ledger.config import SETTINGS, ReconciliationBands
from staking_ledger.domain.models import (
    EvidenceLink,
    ExternalStatement,
    InternalTotal,
    ValidatorRecord,
)
from staking_ledger.domain.money import Gwei
from staking_ledger.domain.results import (
    ReconciliationReport,
    ReconciliationStatus,
    Variance,
    VarianceCategory,
    VarianceDirection,
)
from staking_ledger.errors import VarianceBreakdownError

UNEXPLAINED = "unexplained"
MISSING_INTERNAL_DATA = "missing_internal_data"


@dataclass(frozen=True)
class VarianceBreakdown:
    """Caller-supplied decomposition of a variance into known causes."""

    timing_difference: Gwei | None = None
    reward_accrual: Gwei | None = None
    fees_difference: Gwei | None = None
    pending_transactions: Gwei | None = None
    unexplained: Gwei | None = None


@dataclass(frozen=True)
class EvidenceItem:
    validator_id: str
    label: str


@dataclass(frozen=True)
class VarianceEvidence:
    timing_difference: Sequence[EvidenceItem] = field(default_factory=tuple)
    reward_accrual: Sequence[EvidenceItem] = field(default_factory=tuple)
    fees_difference: Sequence[EvidenceItem] = field(default_factory=tuple)
    pending_transactions: Sequence[EvidenceItem] = field(default_factory=tuple)
    unexplained: Sequence[EvidenceItem] = field(default_factory=tuple)


# (breakdown field, explanation); the field name doubles as the category tag.
CATEGORY_EXPLANATIONS: tuple[tuple[str, str], ...] = (
    ("timing_difference", "Transactions processed at different times between systems"),
    ("reward_accrual", "Difference in reward calculation timing or methodology"),
    ("fees_difference", "Variance due to fee calculation or deduction timing"),
    ("pending_transactions", "Transactions pending finalization"),
    (UNEXPLAINED, "Variance requiring further investigation"),
)


def detect_variance(internal: InternalTotal, external: ExternalStatement) -> Variance:
    diff = internal.total_value - external.total_value
    if not diff:
        return Variance(amount=Gwei(0), percentage=0.0, direction=VarianceDirection.MATCH)

    amount = abs(diff)
    # Nothing held internally means the whole external balance is unaccounted for.
    percentage = amount.ratio(abs(internal.total_value)) if internal.total_value else 1.0
    direction = (
        VarianceDirection.INTERNAL_HIGHER if diff.amount > 0 else VarianceDirection.EXTERNAL_HIGHER
    )
    return Variance(amount=amount, percentage=percentage, direction=direction)


def categorize_variance(
    total_variance: Gwei,
    breakdown: VarianceBreakdown,
    evidence: VarianceEvidence | None = None,
) -> list[VarianceCategory]:
    evidence = evidence or VarianceEvidence()
    categories: list[VarianceCategory] = []
    for key, explanation in CATEGORY_EXPLANATIONS:
        amount = getattr(breakdown, key)
        if amount is None or amount.amount <= 0:
            continue
        categories.append(
            VarianceCategory(
                category=key,
                amount=amount,
                explanation=explanation,
                evidence_links=tuple(
                    EvidenceLink.validator(item.validator_id, item.label)
                    for item in getattr(evidence, key)
                ),
            )
        )

    explained = Gwei.sum(category.amount for category in categories)
    if explained > abs(total_variance):
        raise VarianceBreakdownError(
            f"Variance breakdown of {explained} gwei exceeds total variance of {abs(total_variance)} gwei"
        )
    return categories


def classify_variance(variance: Variance, bands: ReconciliationBands) -> ReconciliationStatus:
    if not variance.amount:
        return ReconciliationStatus.RECONCILED
    if variance.percentage <= bands.reconciled_max:
        return ReconciliationStatus.RECONCILED
    if variance.percentage <= bands.variance_detected_max:
        return ReconciliationStatus.VARIANCE_DETECTED
    return ReconciliationStatus.REQUIRES_INVESTIGATION


def create_reconciliation_report(
    internal: InternalTotal,
    external: ExternalStatement,
    breakdown: VarianceBreakdown | None = None,
    evidence: VarianceEvidence | None = None,
    bands: ReconciliationBands | None = None,
) -> ReconciliationReport:
    bands = bands or SETTINGS.reconciliation_bands
    variance = detect_variance(internal, external)

    if breakdown is not None:
        categories = categorize_variance(variance.amount, breakdown, evidence)
    elif variance.amount:
        categories = [
            VarianceCategory(
                category=UNEXPLAINED,
                amount=variance.amount,
                explanation="Variance requires categorization",
                evidence_links=tuple(
                    EvidenceLink.validator(validator_id)
                    for validator_id, _ in sorted(internal.validator_breakdown)
                ),
            )
        ]
    else:
        categories = []

    return ReconciliationReport(
        internal_total=internal.total_value,
        external_total=external.total_value,
        variance=variance.amount,
        variance_percentage=variance.percentage,
        direction=variance.direction,
        status=classify_variance(variance, bands),
        source=external.source,
        report_date=external.report_date,
        internal_as_of=internal.as_of,
        variance_categories=tuple(categories),
        reference=external.reference,
    )


def _missing_internal_report(external: ExternalStatement) -> ReconciliationReport:
    return ReconciliationReport(
        internal_total=Gwei(0),
        external_total=external.total_value,
        variance=abs(external.total_value),
        variance_percentage=1.0,
        direction=VarianceDirection.EXTERNAL_HIGHER,
        status=ReconciliationStatus.REQUIRES_INVESTIGATION,
        source=external.source,
        report_date=external.report_date,
        internal_as_of=None,
        variance_categories=(
            VarianceCategory(
                category=MISSING_INTERNAL_DATA,
                amount=abs(external.total_value),
                explanation="No internal data found for this custodian",
            ),
        ),
        reference=external.reference,
    )


def reconcile_all_custodians(
    internal_totals: Mapping[str, InternalTotal],
    external_statements: Sequence[ExternalStatement],
    bands: ReconciliationBands | None = None,
) -> dict[str, ReconciliationReport]:
    """Reconcile each statement against the internal total sharing its source key."""
    reports: dict[str, ReconciliationReport] = {}
    for external in external_statements:
        internal = internal_totals.get(external.source)
        if internal is None:
            reports[external.source] = _missing_internal_report(external)
            continue
        reports[external.source] = create_reconciliation_report(internal, external, bands=bands)
    return reports


def internal_totals_from_validators(
    validators: Sequence[ValidatorRecord], as_of: datetime
) -> dict[str, InternalTotal]:
    """Group validator balances by custodian id into reconcilable totals."""
    groups: dict[str, list[ValidatorRecord]] = defaultdict(list)
    for validator in validators:
        groups[validator.custodian_id].append(validator)

    totals: dict[str, InternalTotal] = {}
    for custodian_id in sorted(groups):
        members = sorted(groups[custodian_id], key=lambda v: v.validator_id)
        totals[custodian_id] = InternalTotal(
            total_value=Gwei.sum(v.balance for v in members),
            validator_count=len(members),
            as_of=as_of,
            validator_breakdown=tuple((v.validator_id, v.balance) for v in members),
        )
    return totals


def is_reconciled(report: ReconciliationReport) -> bool:
    return report.status == ReconciliationStatus.RECONCILED


def total_unexplained_variance(reports: Mapping[str, ReconciliationReport]) -> Gwei:
    return Gwei.sum(
        category.amount
        for report in reports.values()
        for category in report.variance_categories
        if category.category == UNEXPLAINED
    )
