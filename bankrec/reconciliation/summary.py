"""Summary aggregation over a set of match pairs."""

from typing import Sequence

from ..models import MatchPair, ReconciliationSummary, Transaction


def summarize(
    bank: Sequence[Transaction],
    cashbook: Sequence[Transaction],
    pairs: Sequence[MatchPair],
) -> ReconciliationSummary:
    """Counts and cent totals for one reconciliation."""
    bank_only = [p for p in pairs if not p.matched and p.bank is not None]
    cash_only = [p for p in pairs if not p.matched and p.cashbook is not None]

    return ReconciliationSummary(
        matched_pairs=sum(1 for p in pairs if p.matched),
        unmatched_bank=len(bank_only),
        unmatched_cashbook=len(cash_only),
        bank_count=len(bank),
        cashbook_count=len(cashbook),
        total_bank_cents=sum(t.amount_cents for t in bank),
        total_cashbook_cents=sum(t.amount_cents for t in cashbook),
        unmatched_bank_amount_cents=sum(p.bank.amount_cents for p in bank_only),
        unmatched_cashbook_amount_cents=sum(p.cashbook.amount_cents for p in cash_only),
    )
