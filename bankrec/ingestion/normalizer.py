"""
Row normalization: RawRow + Mapping -> canonical Transaction.

Amounts are parsed with Decimal and stored as integer cents. Rows whose
date or amount cannot be read are dropped; the validator reports how many.
"""

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, List, Optional, Sequence, Union

import structlog
from dateutil import parser as date_parser

from ..models import (
    DateFormat,
    Mapping,
    MappingMode,
    RawRow,
    ReconciliationSettings,
    SignConvention,
    Transaction,
    TransactionSource,
)

logger = structlog.get_logger()


CENT = Decimal("0.01")

_AMOUNT_NOISE = re.compile(r"[^0-9\-.,]")
_NUMERIC_PREFIX = re.compile(r"^[-+]?(\d+\.?\d*|\.\d+)")

_YMD = re.compile(r"^(\d{4})[-/](\d{1,2})[-/](\d{1,2})$")
_DAY_FIRST_OR_MONTH_FIRST = re.compile(r"^(\d{1,2})[/-](\d{1,2})[/-](\d{4})$")

# Fixed fill-in for partial dates so results never depend on today's date
_DATEUTIL_DEFAULT = datetime(1900, 1, 1)


def parse_amount(value: Any) -> Optional[Decimal]:
    """
    Parse a monetary cell to a 2-dp Decimal.

    Strings keep only digits, '-', '.', ','. With both separators present,
    the last one is the decimal point and the other is grouping; with only
    commas, the first comma is the decimal point. The leading numeric prefix
    is then read. Note that this reads "1,234" as 1.234 -> 1.23.
    """
    if value is None:
        return None
    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        try:
            number = Decimal(str(value))
        except InvalidOperation:
            return None
        if not number.is_finite():
            return None
        return _to_cent(number)

    text = str(value).strip()
    if not text:
        return None

    cleaned = _AMOUNT_NOISE.sub("", text)
    if "," in cleaned and "." in cleaned:
        if cleaned.rfind(",") > cleaned.rfind("."):
            cleaned = cleaned.replace(".", "").replace(",", ".")
        else:
            cleaned = cleaned.replace(",", "")
    elif "," in cleaned:
        cleaned = cleaned.replace(".", "").replace(",", ".", 1)

    match = _NUMERIC_PREFIX.match(cleaned)
    if not match:
        return None
    return _to_cent(Decimal(match.group(0)))


def _to_cent(number: Decimal) -> Optional[Decimal]:
    # Values too long for the decimal context cannot be quantized
    try:
        return number.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return None


def to_cents(amount: Decimal) -> int:
    """2-dp Decimal -> integer cents."""
    return int((amount * 100).to_integral_value(rounding=ROUND_HALF_UP))


def parse_date(value: Any, date_format: Union[DateFormat, str] = DateFormat.AUTO) -> Optional[date]:
    """
    Parse a date cell.

    Explicit formats accept only their exact pattern. AUTO tries
    yyyy-mm-dd, then dd/mm/yyyy, then free-form parsing. Impossible
    calendar dates return None.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if value is None:
        return None

    text = str(value).strip()
    if not text:
        return None

    date_format = DateFormat(date_format)

    if date_format == DateFormat.YMD:
        return _from_match(_YMD.match(text), 1, 2, 3)
    if date_format == DateFormat.DMY:
        return _from_match(_DAY_FIRST_OR_MONTH_FIRST.match(text), 3, 2, 1)
    if date_format == DateFormat.MDY:
        return _from_match(_DAY_FIRST_OR_MONTH_FIRST.match(text), 3, 1, 2)

    match = _YMD.match(text)
    if match:
        return _from_match(match, 1, 2, 3)
    match = _DAY_FIRST_OR_MONTH_FIRST.match(text)
    if match:
        return _from_match(match, 3, 2, 1)

    try:
        return date_parser.parse(text, default=_DATEUTIL_DEFAULT).date()
    except (ValueError, OverflowError):
        # dateutil's ParserError subclasses ValueError
        return None


def _from_match(match: Optional[re.Match], year: int, month: int, day: int) -> Optional[date]:
    if match is None:
        return None
    try:
        return date(int(match.group(year)), int(match.group(month)), int(match.group(day)))
    except ValueError:
        return None


def format_iso(d: date) -> str:
    return d.isoformat()


def format_display(d: date) -> str:
    return d.strftime("%d/%m/%Y")


def row_amount(row: RawRow, mapping: Mapping) -> Optional[Decimal]:
    """Signed amount of one row under a mapping, or None when unusable."""
    if mapping.mode == MappingMode.AMOUNT:
        if not mapping.amount_column:
            return None
        return parse_amount(row.get(mapping.amount_column))

    if not (mapping.debit_column or mapping.credit_column):
        return None
    debit = _side(row, mapping.debit_column)
    credit = _side(row, mapping.credit_column)
    if mapping.sign_convention == SignConvention.CREDIT_POSITIVE:
        return credit - debit
    return debit - credit


def _side(row: RawRow, column: Optional[str]) -> Decimal:
    if not column:
        return Decimal("0.00")
    parsed = parse_amount(row.get(column))
    return parsed if parsed is not None else Decimal("0.00")


def normalize_rows(
    rows: Sequence[RawRow],
    mapping: Mapping,
    source: Union[TransactionSource, str],
    settings: Optional[ReconciliationSettings] = None,
) -> List[Transaction]:
    """
    Convert raw rows to transactions, preserving input order.

    Args:
        rows: Parsed rows
        mapping: Column mapping for this dataset
        source: Which ledger the rows come from
        settings: Run settings (only date_format is used)

    Returns:
        Transactions for every row with a readable date and amount
    """
    source = TransactionSource(source)
    date_format = settings.date_format if settings is not None else DateFormat.AUTO

    transactions: List[Transaction] = []
    for index, row in enumerate(rows):
        row = row or {}
        tx_date = parse_date(row.get(mapping.date_column) if mapping.date_column else None, date_format)
        if tx_date is None:
            continue

        amount = row_amount(row, mapping)
        if amount is None:
            continue

        description = ""
        if mapping.description_column:
            cell = row.get(mapping.description_column)
            description = "" if cell is None else str(cell)

        transactions.append(Transaction(
            id=f"{source.value}-{index}",
            source=source,
            date=tx_date,
            amount_cents=to_cents(amount),
            description=description,
            row_index=index,
            origin_row=row,
        ))

    logger.debug(
        "Normalized rows",
        source=source.value,
        kept=len(transactions),
        dropped=len(rows) - len(transactions),
    )
    return transactions
