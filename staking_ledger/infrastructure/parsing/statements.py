"""Custodian statement parser producing external holdings totals."""
from __future__ import annotations

import logging
from typing import Sequence

import pandas as pd

from staking_ledger.domain.models import ExternalStatement
from staking_ledger.errors import ParseError
from staking_ledger.infrastructure.parsing.utils import (
    SourceLike,
    clean_text,
    compute_file_hash,
    ensure_bytes,
    parse_gwei,
    parse_timestamp,
    read_table,
    require_columns,
)

logger = logging.getLogger(__name__)

DEFAULT_SHEET_NAME = "Custodian Statements"
STATEMENT_COLUMNS = ("source", "total_value_gwei", "report_date")


def statements_from_frame(frame: pd.DataFrame, file_hash: str | None = None) -> Sequence[ExternalStatement]:
    require_columns(frame, STATEMENT_COLUMNS, "Statement")
    statements: list[ExternalStatement] = []
    for idx, row in frame.iterrows():
        source = clean_text(row.get("source"))
        if not source:
            logger.warning("Skipping statement row %s without a source", idx)
            continue
        report_date = parse_timestamp(row.get("report_date"), row=idx)
        if report_date is None:
            raise ParseError(f"Statement for {source} has no report_date", row=idx)
        reference = clean_text(row.get("reference")) or (f"{file_hash[:12]}:row={idx}" if file_hash else None)
        statements.append(
            ExternalStatement(
                source=source,
                total_value=parse_gwei(row.get("total_value_gwei"), row=idx),
                report_date=report_date,
                reference=reference,
            )
        )
    return statements


def read_statements(source: SourceLike) -> Sequence[ExternalStatement]:
    raw_bytes = ensure_bytes(source)
    frame = read_table(source, DEFAULT_SHEET_NAME)
    statements = statements_from_frame(frame, file_hash=compute_file_hash(raw_bytes))
    logger.debug("Parsed %d custodian statements", len(statements))
    return statements
