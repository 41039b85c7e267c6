"""Reconciliation engine components."""

from .matcher import MatchingEngine, reconcile
from .summary import summarize
from .suggestions import SuggestionEngine
from .orchestrator import ReconciliationOrchestrator, ValidationFailedError
from .adjustments import (
    AdjustmentError,
    confirm_suggestion,
    match_residues,
    unmatch,
    with_pairs,
)

__all__ = [
    "MatchingEngine",
    "reconcile",
    "summarize",
    "SuggestionEngine",
    "ReconciliationOrchestrator",
    "ValidationFailedError",
    "AdjustmentError",
    "confirm_suggestion",
    "match_residues",
    "unmatch",
    "with_pairs",
]
