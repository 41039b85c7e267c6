"""
Matching Engine - greedy one-to-one pairing of bank and cashbook entries.

Both ledgers are sorted by (date, amount). Each bank entry, in order, takes
the lowest-scoring unconsumed cashbook entry within the amount tolerance and
date window:

    score = days_apart * 1000 + |amount delta in cents| + description penalty

Ties go to the earliest candidate in sorted order. Greedy, not globally
optimal.
"""

from bisect import bisect_left, bisect_right
from typing import List, Optional, Sequence, Set, Tuple

import structlog

from ..models import (
    MatchPair,
    MatchResult,
    MatchStrategy,
    MatchType,
    ReconciliationSettings,
    Transaction,
)
from ..utils.text_similarity import description_dissimilarity
from .summary import summarize

logger = structlog.get_logger()


DAY_WEIGHT = 1000


def sort_key(txn: Transaction) -> Tuple:
    return (txn.date, txn.amount_cents)


def bank_residue(b: Transaction) -> MatchPair:
    return MatchPair(id=f"pair-{b.id}-none", bank=b, amount_delta_cents=b.amount_cents)


def cashbook_residue(c: Transaction) -> MatchPair:
    return MatchPair(id=f"pair-none-{c.id}", cashbook=c, amount_delta_cents=-c.amount_cents)


class MatchingEngine:
    """
    Reconciles two transaction lists.

    STRICT pairs only exact amount on the same day; SMART applies the
    configured tolerance and window.
    """

    def reconcile(
        self,
        bank: Sequence[Transaction],
        cashbook: Sequence[Transaction],
        settings: Optional[ReconciliationSettings] = None,
    ) -> MatchResult:
        """
        Match bank transactions against cashbook transactions.

        Args:
            bank: Normalized bank transactions
            cashbook: Normalized cashbook transactions
            settings: Run settings (tolerance, window, strategy)

        Returns:
            MatchResult with pairs ordered by date and amount, plus summary
        """
        settings = settings or ReconciliationSettings()
        if settings.strategy == MatchStrategy.STRICT:
            tolerance_cents, window = 0, 0
        else:
            tolerance_cents, window = settings.tolerance_cents, settings.date_window_days

        logger.info(
            "Starting matching",
            bank=len(bank),
            cashbook=len(cashbook),
            strategy=settings.strategy.value,
            tolerance_cents=tolerance_cents,
            window_days=window,
        )

        bank_sorted = sorted(bank, key=sort_key)
        cash_sorted = sorted(cashbook, key=sort_key)
        cash_ordinals = [c.date.toordinal() for c in cash_sorted]
        consumed: Set[int] = set()

        pairs: List[MatchPair] = []
        for b in bank_sorted:
            best = self._best_candidate(
                b, cash_sorted, cash_ordinals, consumed, tolerance_cents, window
            )
            if best is None:
                pairs.append(bank_residue(b))
                continue

            j, days = best
            c = cash_sorted[j]
            consumed.add(j)
            pairs.append(MatchPair(
                id=f"pair-{b.id}-{c.id}",
                bank=b,
                cashbook=c,
                matched=True,
                amount_delta_cents=b.amount_cents - c.amount_cents,
                date_delta_days=days,
                match_type=MatchType.AUTO,
            ))

        for j, c in enumerate(cash_sorted):
            if j not in consumed:
                pairs.append(cashbook_residue(c))

        pairs.sort(key=lambda p: sort_key(p.primary))

        summary = summarize(bank_sorted, cash_sorted, pairs)
        logger.info(
            "Matching complete",
            matched=summary.matched_pairs,
            unmatched_bank=summary.unmatched_bank,
            unmatched_cashbook=summary.unmatched_cashbook,
        )
        return MatchResult(pairs=pairs, summary=summary)

    def _best_candidate(
        self,
        b: Transaction,
        cash_sorted: List[Transaction],
        cash_ordinals: List[int],
        consumed: Set[int],
        tolerance_cents: int,
        window: int,
    ) -> Optional[Tuple[int, int]]:
        """Index and day distance of the winning cashbook entry, if any."""
        day = b.date.toordinal()
        # Candidates within the window form a contiguous run of the sorted list
        lo = bisect_left(cash_ordinals, day - window)
        hi = bisect_right(cash_ordinals, day + window)

        best: Optional[Tuple[int, int]] = None
        best_score = None
        for j in range(lo, hi):
            if j in consumed:
                continue
            c = cash_sorted[j]
            delta = abs(b.amount_cents - c.amount_cents)
            if delta > tolerance_cents:
                continue
            days = abs(day - cash_ordinals[j])
            score = (
                days * DAY_WEIGHT
                + delta
                + description_dissimilarity(b.description, c.description)
            )
            if best_score is None or score < best_score:
                best_score = score
                best = (j, days)
        return best


def reconcile(
    bank: Sequence[Transaction],
    cashbook: Sequence[Transaction],
    settings: Optional[ReconciliationSettings] = None,
) -> MatchResult:
    """Convenience wrapper around MatchingEngine.reconcile."""
    return MatchingEngine().reconcile(bank, cashbook, settings)
