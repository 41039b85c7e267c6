"""
Suggestion Engine - advisory fuzzy pairing of unmatched entries.

Scores every bank x cashbook combination on amount, date proximity,
shared document numbers and description similarity. Suggestions never
consume transactions and are never turned into pairs here.
"""

from typing import List, Optional, Sequence

import structlog

from ..config import get_settings
from ..models import MatchPair, MatchSuggestion, Transaction
from ..utils.text_similarity import extract_document_numbers, levenshtein_ratio

logger = structlog.get_logger()


# Points per signal
EXACT_AMOUNT_POINTS = 60
NEAR_AMOUNT_POINTS = 40
SAME_DAY_POINTS = 20
CLOSE_DATE_POINTS = 10
REFERENCE_POINTS = 30
SIMILAR_TEXT_POINTS = 15

NEAR_AMOUNT_CENTS = 10  # strictly below 0.10
CLOSE_DATE_DAYS = 3
SIMILAR_TEXT_RATIO = 0.8


class SuggestionEngine:
    """Proposes likely pairings among residues the matcher left behind."""

    def __init__(self, min_score: Optional[int] = None):
        self.min_score = min_score if min_score is not None else get_settings().suggestion_min_score

    def suggest(
        self,
        bank: Sequence[Transaction],
        cashbook: Sequence[Transaction],
    ) -> List[MatchSuggestion]:
        """
        Score all combinations and keep those at or above min_score.

        Returns:
            Suggestions sorted by confidence, highest first (stable)
        """
        suggestions: List[MatchSuggestion] = []
        for b in bank:
            bank_refs = extract_document_numbers(b.description)
            for c in cashbook:
                score, reasons = self.score(b, c, bank_refs)
                if score >= self.min_score:
                    suggestions.append(MatchSuggestion(
                        id=f"suggest-{b.id}-{c.id}",
                        bank=b,
                        cashbook=c,
                        score=score,
                        reasons=reasons,
                    ))

        suggestions.sort(key=lambda s: -s.confidence)
        logger.info(
            "Suggestions computed",
            bank=len(bank),
            cashbook=len(cashbook),
            suggestions=len(suggestions),
        )
        return suggestions

    def score(
        self,
        bank: Transaction,
        cashbook: Transaction,
        bank_refs: Optional[List[str]] = None,
    ):
        """Points and human-readable reasons for one candidate pairing."""
        score = 0
        reasons: List[str] = []

        amount_diff = abs(bank.amount_cents - cashbook.amount_cents)
        if amount_diff == 0:
            score += EXACT_AMOUNT_POINTS
            reasons.append("Exact amount match")
        elif amount_diff < NEAR_AMOUNT_CENTS:
            score += NEAR_AMOUNT_POINTS
            reasons.append("Negligible amount difference")

        days = abs((bank.date - cashbook.date).days)
        if days == 0:
            score += SAME_DAY_POINTS
            reasons.append("Same transaction date")
        elif days <= CLOSE_DATE_DAYS:
            score += CLOSE_DATE_POINTS
            reasons.append(f"Close date ({days} days)")

        if bank_refs is None:
            bank_refs = extract_document_numbers(bank.description)
        cash_refs = extract_document_numbers(cashbook.description)
        common = [ref for ref in bank_refs if ref in cash_refs]
        if common:
            score += REFERENCE_POINTS
            reasons.append(f"Reference match: {', '.join(common)}")

        if levenshtein_ratio(bank.description, cashbook.description) > SIMILAR_TEXT_RATIO:
            score += SIMILAR_TEXT_POINTS
            reasons.append("Highly similar descriptions")

        return score, reasons

    def suggest_for_pairs(self, pairs: Sequence[MatchPair]) -> List[MatchSuggestion]:
        """Suggestions over the unmatched sides of a match result."""
        bank = [p.bank for p in pairs if not p.matched and p.bank is not None]
        cashbook = [p.cashbook for p in pairs if not p.matched and p.cashbook is not None]
        return self.suggest(bank, cashbook)
