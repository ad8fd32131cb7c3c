from datetime import datetime, timezone

import pytest

from staking_ledger.config import ReconciliationBands
from staking_ledger.domain.models import ExternalStatement, InternalTotal, StakeState, ValidatorRecord
from staking_ledger.domain.money import Gwei
from staking_ledger.domain.reconciliation import (
    MISSING_INTERNAL_DATA,
    EvidenceItem,
    VarianceBreakdown,
    VarianceEvidence,
    categorize_variance,
    create_reconciliation_report,
    detect_variance,
    internal_totals_from_validators,
    is_reconciled,
    reconcile_all_custodians,
    total_unexplained_variance,
)
from staking_ledger.domain.results import ReconciliationStatus, VarianceDirection
from staking_ledger.errors import VarianceBreakdownError

REPORT_DATE = datetime(2026, 1, 23, tzinfo=timezone.utc)


def make_internal(total: int, breakdown: tuple[tuple[str, Gwei], ...] = ()) -> InternalTotal:
    return InternalTotal(
        total_value=Gwei(total),
        validator_count=len(breakdown) or 3,
        as_of=REPORT_DATE,
        validator_breakdown=breakdown,
    )


def make_statement(total: int, source: str = "Coinbase Custody") -> ExternalStatement:
    return ExternalStatement(source=source, total_value=Gwei(total), report_date=REPORT_DATE)


def test_detects_internal_higher_variance():
    variance = detect_variance(make_internal(100_000_000_000), make_statement(99_500_000_000))

    assert variance.amount == Gwei(500_000_000)
    assert variance.percentage == pytest.approx(0.005)
    assert variance.direction == VarianceDirection.INTERNAL_HIGHER


def test_detects_external_higher_variance():
    variance = detect_variance(make_internal(99_000_000_000), make_statement(100_000_000_000))

    assert variance.direction == VarianceDirection.EXTERNAL_HIGHER
    assert variance.amount == Gwei(1_000_000_000)


def test_variance_direction_is_symmetric():
    a, b = 100_000_000_000, 97_000_000_000

    forward = detect_variance(make_internal(a), make_statement(b))
    swapped = detect_variance(make_internal(b), make_statement(a))

    assert forward.direction == VarianceDirection.INTERNAL_HIGHER
    assert swapped.direction == VarianceDirection.EXTERNAL_HIGHER
    assert forward.amount == swapped.amount


def test_matching_totals_have_zero_variance():
    variance = detect_variance(make_internal(100_000_000_000), make_statement(100_000_000_000))

    assert variance.amount == Gwei(0)
    assert variance.percentage == 0
    assert variance.direction == VarianceDirection.MATCH


def test_zero_internal_total_is_full_variance():
    variance = detect_variance(make_internal(0), make_statement(5))

    assert variance.percentage == 1.0


def test_categorizes_variance_by_type():
    categories = categorize_variance(
        Gwei(500_000_000),
        VarianceBreakdown(
            timing_difference=Gwei(200_000_000),
            reward_accrual=Gwei(150_000_000),
            fees_difference=Gwei(100_000_000),
            unexplained=Gwei(50_000_000),
        ),
    )

    assert [(c.category, c.amount) for c in categories] == [
        ("timing_difference", Gwei(200_000_000)),
        ("reward_accrual", Gwei(150_000_000)),
        ("fees_difference", Gwei(100_000_000)),
        ("unexplained", Gwei(50_000_000)),
    ]


def test_links_variance_to_specific_validators():
    categories = categorize_variance(
        Gwei(100_000_000),
        VarianceBreakdown(timing_difference=Gwei(100_000_000)),
        VarianceEvidence(
            timing_difference=(
                EvidenceItem("v1", "Validator 1 pending deposit"),
                EvidenceItem("v2", "Validator 2 pending deposit"),
            )
        ),
    )

    assert len(categories) == 1
    assert [link.id for link in categories[0].evidence_links] == ["v1", "v2"]


def test_partial_breakdown_is_allowed_but_overstatement_is_not():
    partial = categorize_variance(Gwei(100), VarianceBreakdown(pending_transactions=Gwei(40)))
    assert [c.amount for c in partial] == [Gwei(40)]

    with pytest.raises(VarianceBreakdownError):
        categorize_variance(Gwei(100), VarianceBreakdown(timing_difference=Gwei(60), fees_difference=Gwei(50)))


def test_generates_variance_detected_report():
    report = create_reconciliation_report(make_internal(100_000_000_000), make_statement(99_800_000_000))

    assert report.internal_total == Gwei(100_000_000_000)
    assert report.external_total == Gwei(99_800_000_000)
    assert report.variance == Gwei(200_000_000)
    assert report.variance_percentage == pytest.approx(0.002)
    assert report.status == ReconciliationStatus.VARIANCE_DETECTED
    assert report.categorized_amount() <= report.variance


def test_exact_match_is_reconciled_without_categories():
    report = create_reconciliation_report(make_internal(100_000_000_000), make_statement(100_000_000_000))

    assert report.status == ReconciliationStatus.RECONCILED
    assert report.variance == Gwei(0)
    assert report.variance_categories == ()
    assert is_reconciled(report)


def test_status_bands():
    internal = make_internal(100_000_000_000)

    assert create_reconciliation_report(internal, make_statement(99_950_000_000)).status == ReconciliationStatus.RECONCILED
    assert create_reconciliation_report(internal, make_statement(99_000_000_000)).status == ReconciliationStatus.VARIANCE_DETECTED
    assert (
        create_reconciliation_report(internal, make_statement(98_000_000_000)).status
        == ReconciliationStatus.REQUIRES_INVESTIGATION
    )


def test_bands_are_configurable():
    strict = ReconciliationBands(reconciled_max=0.0, variance_detected_max=0.0001)

    report = create_reconciliation_report(make_internal(100_000_000_000), make_statement(99_950_000_000), bands=strict)

    assert report.status == ReconciliationStatus.REQUIRES_INVESTIGATION


def test_unexplained_fallback_references_all_validators():
    breakdown = (
        ("v2", Gwei(32_000_000_000)),
        ("v1", Gwei(32_000_000_000)),
        ("v3", Gwei(36_000_000_000)),
    )

    report = create_reconciliation_report(make_internal(100_000_000_000, breakdown), make_statement(99_000_000_000))

    assert len(report.variance_categories) == 1
    category = report.variance_categories[0]
    assert category.category == "unexplained"
    assert category.amount == report.variance
    assert [link.id for link in category.evidence_links] == ["v1", "v2", "v3"]


def test_reconciles_all_custodians_and_flags_missing_internal_data():
    internal_totals = {"c1": make_internal(100_000_000_000)}
    statements = [make_statement(100_000_000_000, source="c1"), make_statement(64_000_000_000, source="c9")]

    reports = reconcile_all_custodians(internal_totals, statements)

    assert list(reports) == ["c1", "c9"]
    assert reports["c1"].status == ReconciliationStatus.RECONCILED
    missing = reports["c9"]
    assert missing.status == ReconciliationStatus.REQUIRES_INVESTIGATION
    assert missing.variance_percentage == 1.0
    assert missing.variance == Gwei(64_000_000_000)
    assert missing.internal_as_of is None
    assert [c.category for c in missing.variance_categories] == [MISSING_INTERNAL_DATA]


def test_total_unexplained_variance_across_reports():
    reports = reconcile_all_custodians(
        {"c1": make_internal(100_000_000_000), "c2": make_internal(50_000_000_000)},
        [make_statement(99_000_000_000, source="c1"), make_statement(49_000_000_000, source="c2")],
    )

    assert total_unexplained_variance(reports) == Gwei(2_000_000_000)


def test_internal_totals_from_validators_groups_by_custodian():
    def validator(validator_id: str, custodian_id: str, balance: int) -> ValidatorRecord:
        return ValidatorRecord(
            validator_id=validator_id,
            pubkey="0x",
            operator_id="op",
            operator_name="Operator",
            custodian_id=custodian_id,
            custodian_name=custodian_id.upper(),
            stake_state=StakeState.ACTIVE,
            balance=Gwei(balance),
            effective_balance=Gwei(balance),
        )

    totals = internal_totals_from_validators(
        [validator("v2", "c1", 10), validator("v1", "c1", 5), validator("v3", "c2", 7)], REPORT_DATE
    )

    assert list(totals) == ["c1", "c2"]
    assert totals["c1"].total_value == Gwei(15)
    assert totals["c1"].validator_count == 2
    assert totals["c1"].validator_breakdown == (("v1", Gwei(5)), ("v2", Gwei(10)))
