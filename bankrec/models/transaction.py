"""Transaction models for the bank reconciliation system."""

from dataclasses import dataclass, field, fields, replace
from datetime import date
from decimal import Decimal
from typing import Optional, List, Dict, Any, Mapping as MappingType

from .enums import MappingMode, SignConvention, TransactionSource


# A raw input row: column name -> scalar cell value (str, number, date or None).
# Column sets vary per uploaded file, so rows stay generic dicts.
RawRow = Dict[str, Any]


def cents_to_decimal(cents: int) -> Decimal:
    """Convert integer cents to a 2-decimal Decimal."""
    return Decimal(cents).scaleb(-2)


@dataclass
class ParsedDataset:
    """Headers and rows read from one input file."""
    headers: List[str]
    rows: List[RawRow]
    source_name: Optional[str] = None

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def preview(self, limit: int = 5) -> List[RawRow]:
        return self.rows[:limit]


@dataclass(frozen=True)
class Mapping:
    """
    How to read a RawRow set.

    In AMOUNT mode ``amount_column`` must name a header; in DEBIT_CREDIT mode
    at least one of ``debit_column``/``credit_column`` must. The validator
    enforces this, construction does not.
    """
    mode: MappingMode = MappingMode.AMOUNT
    date_column: Optional[str] = None
    amount_column: Optional[str] = None
    debit_column: Optional[str] = None
    credit_column: Optional[str] = None
    description_column: Optional[str] = None
    sign_convention: SignConvention = SignConvention.CREDIT_POSITIVE

    def with_overrides(self, **overrides: Any) -> "Mapping":
        """Return a copy with manual remapping applied."""
        for key, enum_cls in (("mode", MappingMode), ("sign_convention", SignConvention)):
            if key not in overrides:
                continue
            if overrides[key] is None:
                del overrides[key]
            else:
                overrides[key] = enum_cls(overrides[key])
        return replace(self, **overrides)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode.value,
            "date_column": self.date_column,
            "amount_column": self.amount_column,
            "debit_column": self.debit_column,
            "credit_column": self.credit_column,
            "description_column": self.description_column,
            "sign_convention": self.sign_convention.value,
        }

    @classmethod
    def from_dict(cls, data: MappingType[str, Any]) -> "Mapping":
        known = {f.name for f in fields(cls)}
        return cls().with_overrides(**{k: v for k, v in data.items() if k in known})


@dataclass(frozen=True)
class Transaction:
    """
    Canonical transaction derived from one input row.
    Amounts are stored in CENTS (integer) to avoid floating point errors.
    """
    # Identity: "<source>-<row index>", stable across runs on the same input
    id: str
    source: TransactionSource
    date: date
    amount_cents: int
    description: str = ""
    row_index: int = 0

    # Back-reference to the input row, never used for identity
    origin_row: Optional[RawRow] = field(default=None, compare=False, repr=False, hash=False)

    @property
    def amount(self) -> Decimal:
        """Return amount in currency units."""
        return cents_to_decimal(self.amount_cents)

    @property
    def date_iso(self) -> str:
        return self.date.isoformat()

    @property
    def date_display(self) -> str:
        return self.date.strftime("%d/%m/%Y")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "source": self.source.value,
            "date": self.date_iso,
            "date_display": self.date_display,
            "amount": str(self.amount),
            "description": self.description,
            "row_index": self.row_index,
        }
