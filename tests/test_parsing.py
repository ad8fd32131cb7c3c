from datetime import datetime, timezone
from pathlib import Path

import pandas as pd
import pytest

from staking_ledger.domain.models import StakeState
from staking_ledger.domain.money import Gwei
from staking_ledger.errors import ParseError
from staking_ledger.infrastructure.parsing.ledger import read_reward_events, read_validators
from staking_ledger.infrastructure.parsing.statements import read_statements
from staking_ledger.infrastructure.parsing.utils import parse_gwei, parse_timestamp

VALIDATORS_CSV = """validator_id,pubkey,operator_id,operator_name,custodian_id,custodian_name,stake_state,balance_gwei,effective_balance_gwei,transit_started_at
v1,0xaaa,op1,Operator One,c1,Coinbase,active,"32,000,000,000",,
v2,0xbbb,op1,Operator One,c1,Coinbase,in_transit,32000000000,32000000000,2026-01-01T00:00:00Z
v3,0xccc,op2,Operator Two,c2,,Pending Activation,31000000000,32000000000,
"""

REWARDS_CSV = """validator_id,amount_gwei,timestamp
v1,10000000,2026-01-20T12:00:00Z
,5000000,2026-01-21T12:00:00Z
v2,4000000,2026-01-21
"""

STATEMENTS_CSV = """source,total_value_gwei,report_date,reference
c1,64000000000,2026-01-23,STMT-001
c2,31900000000,2026-01-23,
"""


def write(tmp_path: Path, name: str, text: str) -> Path:
    path = tmp_path / name
    path.write_text(text)
    return path


def test_read_validators_csv(tmp_path: Path):
    validators = read_validators(write(tmp_path, "validators.csv", VALIDATORS_CSV))

    assert [v.validator_id for v in validators] == ["v1", "v2", "v3"]
    assert validators[0].balance == Gwei(32_000_000_000)
    assert validators[0].effective_balance == validators[0].balance
    assert validators[1].stake_state == StakeState.PENDING_ACTIVATION
    assert validators[1].transit_started_at == datetime(2026, 1, 1, tzinfo=timezone.utc)
    assert validators[2].stake_state == StakeState.PENDING_ACTIVATION
    assert validators[2].custodian_name == "c2"
    assert validators[2].effective_balance == Gwei(32_000_000_000)


def test_unknown_stake_state_is_a_parse_error(tmp_path: Path):
    text = "validator_id,custodian_id,stake_state,balance_gwei\nv1,c1,slashed,1\n"

    with pytest.raises(ParseError, match="row=0"):
        read_validators(write(tmp_path, "validators.csv", text))


def test_missing_columns_are_reported(tmp_path: Path):
    text = "validator_id,stake_state\nv1,active\n"

    with pytest.raises(ParseError, match="custodian_id"):
        read_validators(write(tmp_path, "validators.csv", text))


def test_read_reward_events_skips_rows_without_validator(tmp_path: Path):
    events = read_reward_events(write(tmp_path, "rewards.csv", REWARDS_CSV))

    assert [(e.validator_id, e.amount) for e in events] == [
        ("v1", Gwei(10_000_000)),
        ("v2", Gwei(4_000_000)),
    ]
    assert events[1].timestamp == datetime(2026, 1, 21, tzinfo=timezone.utc)


def test_reward_without_timestamp_is_a_parse_error(tmp_path: Path):
    text = "validator_id,amount_gwei,timestamp\nv1,10000000,2026-01-20\nv2,5000000,\n"

    with pytest.raises(ParseError, match="row=1"):
        read_reward_events(write(tmp_path, "rewards.csv", text))


def test_read_statements_defaults_reference_to_file_hash(tmp_path: Path):
    statements = read_statements(write(tmp_path, "statements.csv", STATEMENTS_CSV))

    assert [s.source for s in statements] == ["c1", "c2"]
    assert statements[0].reference == "STMT-001"
    assert statements[1].reference.endswith(":row=1")
    assert statements[1].total_value == Gwei(31_900_000_000)


def test_read_validators_from_excel_workbook(tmp_path: Path):
    path = tmp_path / "ledger.xlsx"
    frame = pd.DataFrame(
        [
            {"Validator ID": "v1", "Custodian ID": "c1", "Stake State": "active", "Balance Gwei": "32000000000"},
            {"Validator ID": "v2", "Custodian ID": "c2", "Stake State": "exited", "Balance Gwei": "31500000000"},
        ]
    )
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        pd.DataFrame([{"note": "cover sheet"}]).to_excel(writer, sheet_name="Cover", index=False)
        frame.to_excel(writer, sheet_name="Validators", index=False)

    validators = read_validators(path)

    assert [v.validator_id for v in validators] == ["v1", "v2"]
    assert validators[1].stake_state == StakeState.WITHDRAWABLE
    assert validators[1].balance == Gwei(31_500_000_000)


def test_read_validators_from_excel_bytes(tmp_path: Path):
    path = tmp_path / "ledger.xlsx"
    pd.DataFrame(
        [{"validator_id": "v1", "custodian_id": "c1", "stake_state": "active", "balance_gwei": "1"}]
    ).to_excel(path, sheet_name="validators", index=False, engine="openpyxl")

    validators = read_validators(path.read_bytes())

    assert validators[0].balance == Gwei(1)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("1,234", Gwei(1234)),
        ("1_000", Gwei(1000)),
        ("(500)", Gwei(-500)),
        ("", Gwei(0)),
        (None, Gwei(0)),
        ("123456789012345678901234567890", Gwei(123456789012345678901234567890)),
    ],
)
def test_parse_gwei(raw, expected):
    assert parse_gwei(raw) == expected


@pytest.mark.parametrize("raw", ["12.5", "abc"])
def test_parse_gwei_rejects_non_integers(raw):
    with pytest.raises(ParseError):
        parse_gwei(raw, row=3)


def test_parse_timestamp():
    assert parse_timestamp("") is None
    assert parse_timestamp("2026-01-02") == datetime(2026, 1, 2, tzinfo=timezone.utc)
    with pytest.raises(ParseError):
        parse_timestamp("not a date")
