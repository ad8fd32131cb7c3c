"""Shared parsing utilities for ledger and statement ingestion."""
from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from io import BytesIO
from pathlib import Path
import hashlib

import pandas as pd

from staking_ledger.domain.money import Gwei
from staking_ledger.errors import ParseError

SourceLike = BytesIO | Path | bytes

EXCEL_SUFFIXES = (".xlsx", ".xlsm")
XLSX_MAGIC = b"PK\x03\x04"


def ensure_bytes(source: SourceLike) -> bytes:
    if isinstance(source, bytes):
        return source
    if isinstance(source, BytesIO):
        return source.getvalue()
    if isinstance(source, Path):
        return source.read_bytes()
    raise TypeError(f"Unsupported source type: {type(source)!r}")


def compute_file_hash(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def is_excel(source: SourceLike) -> bool:
    if isinstance(source, Path):
        return source.suffix.lower() in EXCEL_SUFFIXES
    return ensure_bytes(source).startswith(XLSX_MAGIC)


def _pick_sheet(data: bytes, preferred: str) -> str:
    sheets = pd.ExcelFile(BytesIO(data), engine="openpyxl").sheet_names
    if not sheets:
        raise ParseError("Workbook has no sheets")
    if preferred in sheets:
        return preferred
    lower_map = {name.lower(): name for name in sheets}
    if preferred.lower() in lower_map:
        return lower_map[preferred.lower()]
    for name in sheets:
        if preferred.lower() in name.lower():
            return name
    return sheets[0]


def read_table(source: SourceLike, preferred_sheet: str) -> pd.DataFrame:
    """Read a CSV or .xlsx export into a string-typed frame with normalized headers."""
    data = ensure_bytes(source)
    if is_excel(source):
        frame = pd.read_excel(
            BytesIO(data),
            sheet_name=_pick_sheet(data, preferred_sheet),
            engine="openpyxl",
            dtype=str,
        )
    else:
        frame = pd.read_csv(BytesIO(data), dtype=str, keep_default_na=False)
    frame.columns = [str(column).strip().lower().replace(" ", "_") for column in frame.columns]
    return frame


def require_columns(frame: pd.DataFrame, columns: tuple[str, ...], kind: str) -> None:
    missing = [column for column in columns if column not in frame.columns]
    if missing:
        raise ParseError(f"{kind} file is missing columns: {', '.join(missing)}")


def clean_text(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and pd.isna(value):
        return ""
    text = str(value).strip()
    return "" if text.upper() == "NAN" else text


def parse_gwei(value: object, row: int | None = None) -> Gwei:
    s = clean_text(value)
    if not s:
        return Gwei(0)
    negative = False
    if s.startswith("(") and s.endswith(")"):
        negative = True
        s = s[1:-1]
    for ch in [",", "_", " "]:
        s = s.replace(ch, "")
    try:
        number = Decimal(s)
    except InvalidOperation:
        raise ParseError(f"Not a gwei amount: {value!r}", row=row) from None
    if number != number.to_integral_value():
        raise ParseError(f"Gwei amount must be a whole number: {value!r}", row=row)
    amount = int(number)
    return Gwei(-amount if negative else amount)


def parse_timestamp(value: object, row: int | None = None) -> datetime | None:
    s = clean_text(value)
    if not s:
        return None
    try:
        stamp = pd.Timestamp(s)
    except ValueError:
        raise ParseError(f"Not a timestamp: {value!r}", row=row) from None
    if stamp.tzinfo is None:
        stamp = stamp.tz_localize(timezone.utc)
    return stamp.to_pydatetime()
