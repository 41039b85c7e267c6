"""Enumerations for the bank reconciliation system."""

from enum import Enum


class TransactionSource(str, Enum):
    """Ledger a transaction was read from."""
    BANK = "bank"            # Bank statement feed
    CASHBOOK = "cashbook"    # Internal cashbook


class MappingMode(str, Enum):
    """
    How the signed amount of a row is obtained.

    AMOUNT: A single signed amount column
    DEBIT_CREDIT: Separate debit and credit columns combined by sign convention
    """
    AMOUNT = "amount"
    DEBIT_CREDIT = "debitCredit"


class SignConvention(str, Enum):
    """Which side of a debit/credit pair is positive."""
    CREDIT_POSITIVE = "creditPositive"   # amount = credit - debit
    DEBIT_POSITIVE = "debitPositive"     # amount = debit - credit


class DateFormat(str, Enum):
    """Accepted date cell formats."""
    AUTO = "auto"
    YMD = "yyyy-mm-dd"
    DMY = "dd/mm/yyyy"
    MDY = "mm/dd/yyyy"


class MatchStrategy(str, Enum):
    """
    Matching strategy.

    STRICT: Exact amount and exact date only
    SMART: Amount tolerance + date window with composite scoring
    """
    STRICT = "strict"
    SMART = "smart"


class MatchStatus(str, Enum):
    """Reconciliation status of a pair, as shown in exports."""
    MATCHED = "Matched"
    UNMATCHED_BANK = "Unmatched (Bank)"
    UNMATCHED_CASHBOOK = "Unmatched (Cashbook)"


class MatchType(str, Enum):
    """How a matched pair came about."""
    AUTO = "auto"              # Matching engine
    SUGGESTED = "suggested"    # Confirmed suggestion
    MANUAL = "manual"          # Paired by hand


class IssueSeverity(str, Enum):
    """Severity of a validation issue."""
    ERROR = "error"        # Blocks matching
    WARNING = "warning"    # Advisory only


class ReconciliationStatus(str, Enum):
    """Status of a reconciliation job."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
