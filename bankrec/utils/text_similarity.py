"""
Lexical text similarity for transaction descriptions.

Two measures are used by the reconciliation engines:
- token-set Jaccard dissimilarity, scaled to 0-50 (matching engine tie-break)
- Levenshtein ratio (suggestion engine)
"""

import math
import re
from fractions import Fraction
from typing import FrozenSet, List

from rapidfuzz.distance import Levenshtein


MAX_DESCRIPTION_PENALTY = 50

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")

# Document reference patterns: INV-12345, PO98765, 2024/001, long numeric runs
DOCUMENT_NUMBER_PATTERNS = [
    re.compile(r"[A-Z]{2,3}-\d{4,}"),
    re.compile(r"[A-Z]{2,3}\d{4,}"),
    re.compile(r"\d{4,}/\d{2,}"),
    re.compile(r"\b\d{5,}\b"),
]


def tokenize(text: str) -> FrozenSet[str]:
    """Lowercased alphanumeric word tokens."""
    cleaned = _NON_ALNUM.sub(" ", (text or "").lower())
    return frozenset(t for t in cleaned.split() if t)


def description_dissimilarity(a: str, b: str) -> int:
    """
    Jaccard distance between token sets, scaled to 0..50 and rounded half up.

    Either side without tokens scores the maximum penalty.
    """
    ta = tokenize(a)
    tb = tokenize(b)
    if not ta or not tb:
        return MAX_DESCRIPTION_PENALTY

    common = len(ta & tb)
    union = len(ta) + len(tb) - common
    jaccard = Fraction(common, union)
    return math.floor((1 - jaccard) * MAX_DESCRIPTION_PENALTY + Fraction(1, 2))


def levenshtein_ratio(a: str, b: str) -> float:
    """
    Case-insensitive edit similarity: (len(longer) - distance) / len(longer).

    Two empty strings are identical (1.0).
    """
    return Levenshtein.normalized_similarity((a or "").lower(), (b or "").lower())


def extract_document_numbers(text: str) -> List[str]:
    """Distinct document references found in text, in pattern order."""
    found: List[str] = []
    for pattern in DOCUMENT_NUMBER_PATTERNS:
        for token in pattern.findall(text or ""):
            if token not in found:
                found.append(token)
    return found
