"""
Column mapping auto-detection.

Headers are matched against ordered candidate lists by case-insensitive
substring. Candidate order takes priority over header order.
"""

from typing import Any, Optional, Sequence

import structlog

from ..models import Mapping, MappingMode, SignConvention

logger = structlog.get_logger()


DATE_CANDIDATES = ["date", "posted", "txn date", "transaction date", "value date"]
AMOUNT_CANDIDATES = ["amount", "amt", "value"]
DEBIT_CANDIDATES = ["debit", "withdrawal", "dr"]
CREDIT_CANDIDATES = ["credit", "deposit", "cr"]
DESCRIPTION_CANDIDATES = ["description", "details", "narration", "memo", "payee", "particulars"]


def find_column(headers: Sequence[str], candidates: Sequence[str]) -> Optional[str]:
    """First header containing a candidate, trying candidates in order."""
    lowered = [(h, h.lower()) for h in headers]
    for candidate in candidates:
        for header, low in lowered:
            if candidate in low:
                return header
    return None


def detect_mapping(headers: Sequence[str]) -> Mapping:
    """
    Guess a Mapping from header names.

    Never raises. Required fields without a match fall back to the first
    header; the validator reports mappings that make no sense.
    """
    headers = list(headers)
    first = headers[0] if headers else None

    date_column = find_column(headers, DATE_CANDIDATES)
    amount_column = find_column(headers, AMOUNT_CANDIDATES)
    debit_column = find_column(headers, DEBIT_CANDIDATES)
    credit_column = find_column(headers, CREDIT_CANDIDATES)
    description_column = find_column(headers, DESCRIPTION_CANDIDATES)

    if amount_column is None and (debit_column or credit_column):
        mode = MappingMode.DEBIT_CREDIT
    else:
        mode = MappingMode.AMOUNT
        if amount_column is None:
            amount_column = first

    mapping = Mapping(
        mode=mode,
        date_column=date_column or first,
        amount_column=amount_column,
        debit_column=debit_column,
        credit_column=credit_column,
        description_column=description_column,
        sign_convention=SignConvention.CREDIT_POSITIVE,
    )

    logger.debug("Detected column mapping", headers=len(headers), **mapping.to_dict())
    return mapping


def apply_overrides(mapping: Mapping, **fields: Any) -> Mapping:
    """Manual remapping. Unknown field names raise TypeError."""
    return mapping.with_overrides(**fields)
