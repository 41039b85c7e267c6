"""
Manual adjustments to a finished reconciliation.

A suggestion only becomes a pair when the user confirms it; a pair can
also be split back into its residues. Every function returns a new pair
list and leaves its input untouched. Each transaction stays in exactly
one pair.
"""

from dataclasses import replace
from typing import List, Sequence

import structlog

from ..models import (
    MatchPair,
    MatchSuggestion,
    MatchType,
    ReconciliationResult,
)
from .matcher import bank_residue, cashbook_residue, sort_key
from .orchestrator import ReconciliationOrchestrator
from .summary import summarize

logger = structlog.get_logger()


class AdjustmentError(Exception):
    """The requested adjustment does not apply to the current pairs."""


def match_residues(
    pairs: Sequence[MatchPair],
    bank_id: str,
    cashbook_id: str,
    match_type: MatchType = MatchType.MANUAL,
) -> List[MatchPair]:
    """
    Pair an unmatched bank entry with an unmatched cashbook entry.

    Raises:
        AdjustmentError: either entry is unknown or already matched
    """
    bank_index = _residue_index(pairs, bank_id, "bank")
    cash_index = _residue_index(pairs, cashbook_id, "cashbook")
    b = pairs[bank_index].bank
    c = pairs[cash_index].cashbook

    pair = MatchPair(
        id=f"pair-{b.id}-{c.id}",
        bank=b,
        cashbook=c,
        matched=True,
        amount_delta_cents=b.amount_cents - c.amount_cents,
        date_delta_days=abs((b.date - c.date).days),
        match_type=match_type,
    )

    updated = []
    for i, p in enumerate(pairs):
        if i == bank_index:
            updated.append(pair)
        elif i != cash_index:
            updated.append(p)
    updated.sort(key=lambda p: sort_key(p.primary))

    logger.info("Pair created", pair_id=pair.id, match_type=match_type.value)
    return updated


def confirm_suggestion(pairs: Sequence[MatchPair], suggestion: MatchSuggestion) -> List[MatchPair]:
    """Turn an advisory suggestion into a matched pair."""
    return match_residues(pairs, suggestion.bank.id, suggestion.cashbook.id, MatchType.SUGGESTED)


def unmatch(pairs: Sequence[MatchPair], pair_id: str) -> List[MatchPair]:
    """
    Split a matched pair back into its two residues.

    Raises:
        AdjustmentError: no matched pair has this id
    """
    for i, p in enumerate(pairs):
        if p.id == pair_id and p.matched:
            break
    else:
        raise AdjustmentError(f"No matched pair with id {pair_id}")

    updated = list(pairs[:i]) + list(pairs[i + 1:])
    updated.extend([bank_residue(p.bank), cashbook_residue(p.cashbook)])
    updated.sort(key=lambda p: sort_key(p.primary))

    logger.info("Pair removed", pair_id=pair_id)
    return updated


def with_pairs(result: ReconciliationResult, pairs: List[MatchPair]) -> ReconciliationResult:
    """Copy of a result with new pairs and the summary and hints recomputed."""
    summary = summarize(result.bank_transactions, result.cashbook_transactions, pairs)
    return replace(
        result,
        pairs=pairs,
        summary=summary,
        hints=ReconciliationOrchestrator.build_hints(summary, result.settings),
    )


def _residue_index(pairs: Sequence[MatchPair], txn_id: str, side: str) -> int:
    for i, p in enumerate(pairs):
        txn = p.bank if side == "bank" else p.cashbook
        if txn is not None and txn.id == txn_id:
            if p.matched:
                raise AdjustmentError(f"{side} entry {txn_id} is already matched")
            return i
    raise AdjustmentError(f"Unknown {side} entry {txn_id}")
