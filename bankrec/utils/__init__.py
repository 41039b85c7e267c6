"""Utility modules."""

from .text_similarity import (
    description_dissimilarity,
    extract_document_numbers,
    levenshtein_ratio,
    tokenize,
)
from .log_setup import setup_logging
from .config_utils import update_env_file

__all__ = [
    "description_dissimilarity",
    "extract_document_numbers",
    "levenshtein_ratio",
    "tokenize",
    "setup_logging",
    "update_env_file",
]
