"""Reconciliation result models."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, ROUND_FLOOR
from typing import Optional, List, Dict, Any
from uuid import uuid4

from .enums import (
    DateFormat,
    IssueSeverity,
    MatchStatus,
    MatchStrategy,
    MatchType,
    ReconciliationStatus,
)
from .transaction import Transaction, cents_to_decimal


@dataclass
class ReconciliationSettings:
    """User-adjustable settings for one reconciliation run."""
    amount_tolerance: Decimal = Decimal("0")  # absolute, currency units
    date_window_days: int = 0
    date_format: DateFormat = DateFormat.AUTO
    currency: str = "USD"  # display only
    strategy: MatchStrategy = MatchStrategy.SMART

    def __post_init__(self):
        self.amount_tolerance = Decimal(str(self.amount_tolerance))
        self.date_window_days = int(self.date_window_days)
        self.date_format = DateFormat(self.date_format)
        self.strategy = MatchStrategy(self.strategy)
        if self.amount_tolerance < 0:
            raise ValueError(f"amount_tolerance must be >= 0, got {self.amount_tolerance}")
        if self.date_window_days < 0:
            raise ValueError(f"date_window_days must be >= 0, got {self.date_window_days}")

    @property
    def tolerance_cents(self) -> int:
        """
        Tolerance in whole cents, rounded down.

        Deltas are whole cents, so |delta| <= floor(tolerance * 100) holds
        exactly when |delta| <= tolerance.
        """
        return int((self.amount_tolerance * 100).to_integral_value(rounding=ROUND_FLOOR))

    @classmethod
    def from_settings(cls, settings, **overrides: Any) -> "ReconciliationSettings":
        """Build run settings from application defaults plus overrides."""
        values = {
            "amount_tolerance": settings.default_amount_tolerance,
            "date_window_days": settings.default_date_window_days,
            "date_format": settings.default_date_format,
            "currency": settings.default_currency,
            "strategy": settings.default_strategy,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "amount_tolerance": str(self.amount_tolerance),
            "date_window_days": self.date_window_days,
            "date_format": self.date_format.value,
            "currency": self.currency,
            "strategy": self.strategy.value,
        }


@dataclass(frozen=True)
class MatchPair:
    """
    A matched bank/cashbook pair or a one-sided residue.

    Both sides present implies matched; a residue carries exactly one side.
    ``amount_delta_cents`` is bank - cashbook with a missing side taken as 0.
    ``match_type`` is set on matched pairs only.
    """
    id: str
    bank: Optional[Transaction] = None
    cashbook: Optional[Transaction] = None
    matched: bool = False
    amount_delta_cents: int = 0
    date_delta_days: int = 0
    match_type: Optional[MatchType] = None

    @property
    def amount_delta(self) -> Decimal:
        return cents_to_decimal(self.amount_delta_cents)

    @property
    def status(self) -> MatchStatus:
        if self.matched:
            return MatchStatus.MATCHED
        if self.bank is not None:
            return MatchStatus.UNMATCHED_BANK
        return MatchStatus.UNMATCHED_CASHBOOK

    @property
    def primary(self) -> Transaction:
        """The side used for display ordering (bank first)."""
        return self.bank if self.bank is not None else self.cashbook

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status.value,
            "matched": self.matched,
            "bank": self.bank.to_dict() if self.bank else None,
            "cashbook": self.cashbook.to_dict() if self.cashbook else None,
            "amount_delta": str(self.amount_delta),
            "date_delta_days": self.date_delta_days,
            "match_type": self.match_type.value if self.match_type else None,
        }


@dataclass
class ReconciliationSummary:
    """Summary statistics of reconciliation. Amounts in CENTS."""
    # Counts
    matched_pairs: int = 0
    unmatched_bank: int = 0
    unmatched_cashbook: int = 0
    bank_count: int = 0
    cashbook_count: int = 0

    # Amounts (in cents)
    total_bank_cents: int = 0
    total_cashbook_cents: int = 0
    unmatched_bank_amount_cents: int = 0
    unmatched_cashbook_amount_cents: int = 0

    @property
    def net_difference_cents(self) -> int:
        return self.total_bank_cents - self.total_cashbook_cents

    @property
    def total_bank(self) -> Decimal:
        return cents_to_decimal(self.total_bank_cents)

    @property
    def total_cashbook(self) -> Decimal:
        return cents_to_decimal(self.total_cashbook_cents)

    @property
    def net_difference(self) -> Decimal:
        return cents_to_decimal(self.net_difference_cents)

    @property
    def unmatched_bank_amount(self) -> Decimal:
        return cents_to_decimal(self.unmatched_bank_amount_cents)

    @property
    def unmatched_cashbook_amount(self) -> Decimal:
        return cents_to_decimal(self.unmatched_cashbook_amount_cents)

    @property
    def total_pairs(self) -> int:
        return self.matched_pairs + self.unmatched_bank + self.unmatched_cashbook

    @property
    def match_rate(self) -> float:
        """Percentage of pairs that are matched."""
        if self.total_pairs == 0:
            return 0.0
        return (self.matched_pairs / self.total_pairs) * 100

    @property
    def is_balanced(self) -> bool:
        """True when nothing is left unmatched and the totals agree."""
        return (
            self.unmatched_bank == 0
            and self.unmatched_cashbook == 0
            and self.net_difference_cents == 0
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "matched_pairs": self.matched_pairs,
            "unmatched_bank": self.unmatched_bank,
            "unmatched_cashbook": self.unmatched_cashbook,
            "bank_count": self.bank_count,
            "cashbook_count": self.cashbook_count,
            "total_bank": str(self.total_bank),
            "total_cashbook": str(self.total_cashbook),
            "net_difference": str(self.net_difference),
            "unmatched_bank_amount": str(self.unmatched_bank_amount),
            "unmatched_cashbook_amount": str(self.unmatched_cashbook_amount),
            "match_rate": round(self.match_rate, 1),
        }


@dataclass
class MatchResult:
    """Output of the matching engine."""
    pairs: List[MatchPair] = field(default_factory=list)
    summary: ReconciliationSummary = field(default_factory=ReconciliationSummary)


@dataclass(frozen=True)
class MatchSuggestion:
    """An advisory, unconfirmed pairing proposed by fuzzy scoring."""
    id: str
    bank: Transaction
    cashbook: Transaction
    score: int
    reasons: List[str] = field(default_factory=list, compare=False)

    @property
    def confidence(self) -> int:
        return min(self.score, 100)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "bank": self.bank.to_dict(),
            "cashbook": self.cashbook.to_dict(),
            "score": self.score,
            "confidence": self.confidence,
            "reasons": list(self.reasons),
        }


@dataclass
class ValidationIssue:
    """A single validation finding."""
    severity: IssueSeverity
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"severity": self.severity.value, "message": self.message}


@dataclass
class ValidationStats:
    """Sampled data-quality counters."""
    rows_sampled: int = 0
    invalid_date: int = 0
    invalid_amount: int = 0
    empty_rows: int = 0


@dataclass
class ValidationReport:
    """Pre-flight check of a dataset and its mapping."""
    issues: List[ValidationIssue] = field(default_factory=list)
    stats: ValidationStats = field(default_factory=ValidationStats)

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def errors(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == IssueSeverity.ERROR]

    @property
    def warnings(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == IssueSeverity.WARNING]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "issues": [i.to_dict() for i in self.issues],
            "stats": {
                "rows_sampled": self.stats.rows_sampled,
                "invalid_date": self.stats.invalid_date,
                "invalid_amount": self.stats.invalid_amount,
                "empty_rows": self.stats.empty_rows,
            },
        }


@dataclass
class ReconciliationResult:
    """Complete result of one pipeline run."""
    pairs: List[MatchPair] = field(default_factory=list)
    summary: ReconciliationSummary = field(default_factory=ReconciliationSummary)
    bank_transactions: List[Transaction] = field(default_factory=list)
    cashbook_transactions: List[Transaction] = field(default_factory=list)
    bank_validation: Optional[ValidationReport] = None
    cashbook_validation: Optional[ValidationReport] = None
    settings: ReconciliationSettings = field(default_factory=ReconciliationSettings)

    # Advisory output
    warnings: List[str] = field(default_factory=list)
    hints: List[str] = field(default_factory=list)

    @property
    def unmatched_pairs(self) -> List[MatchPair]:
        return [p for p in self.pairs if not p.matched]


@dataclass
class ReconciliationJob:
    """A reconciliation request tracked by the HTTP API."""
    id: str = field(default_factory=lambda: str(uuid4()))

    # Input
    bank_dataset_id: str = ""
    cashbook_dataset_id: str = ""
    settings: ReconciliationSettings = field(default_factory=ReconciliationSettings)

    # Status
    status: ReconciliationStatus = ReconciliationStatus.PENDING
    progress: float = 0.0
    current_phase: str = ""
    result: Optional[ReconciliationResult] = None
    errors: List[str] = field(default_factory=list)

    # Timing
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
