"""Export of reconciliation results."""

from .exporter import (
    EXPORT_COLUMNS,
    pairs_to_rows,
    filter_pairs,
    summary_rows,
    to_csv,
    to_xlsx,
    to_pdf,
)

__all__ = [
    "EXPORT_COLUMNS",
    "pairs_to_rows",
    "filter_pairs",
    "summary_rows",
    "to_csv",
    "to_xlsx",
    "to_pdf",
]
