"""Data models for the bank reconciliation system."""

from .enums import (
    TransactionSource,
    MappingMode,
    SignConvention,
    DateFormat,
    MatchStrategy,
    MatchStatus,
    MatchType,
    IssueSeverity,
    ReconciliationStatus,
)
from .transaction import (
    RawRow,
    ParsedDataset,
    Mapping,
    Transaction,
    cents_to_decimal,
)
from .reconciliation import (
    ReconciliationSettings,
    MatchPair,
    MatchResult,
    MatchSuggestion,
    ReconciliationSummary,
    ValidationIssue,
    ValidationStats,
    ValidationReport,
    ReconciliationResult,
    ReconciliationJob,
)

__all__ = [
    # Enums
    "TransactionSource",
    "MappingMode",
    "SignConvention",
    "DateFormat",
    "MatchStrategy",
    "MatchStatus",
    "MatchType",
    "IssueSeverity",
    "ReconciliationStatus",
    # Transactions
    "RawRow",
    "ParsedDataset",
    "Mapping",
    "Transaction",
    "cents_to_decimal",
    # Reconciliation
    "ReconciliationSettings",
    "MatchPair",
    "MatchResult",
    "MatchSuggestion",
    "ReconciliationSummary",
    "ValidationIssue",
    "ValidationStats",
    "ValidationReport",
    "ReconciliationResult",
    "ReconciliationJob",
]
