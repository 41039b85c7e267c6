"""Ingestion: parsing, column mapping, normalization and validation of ledgers."""

from .row_parser import ParseError, parse_csv, parse_csv_file, parse_workbook, load_dataset
from .column_mapper import detect_mapping, apply_overrides
from .normalizer import parse_amount, parse_date, format_iso, format_display, normalize_rows
from .validator import DatasetValidator, validate_dataset

__all__ = [
    "ParseError",
    "parse_csv",
    "parse_csv_file",
    "parse_workbook",
    "load_dataset",
    "detect_mapping",
    "apply_overrides",
    "parse_amount",
    "parse_date",
    "format_iso",
    "format_display",
    "normalize_rows",
    "DatasetValidator",
    "validate_dataset",
]
