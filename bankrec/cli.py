"""
Command line interface.

    python entry_point.py serve [--host HOST] [--port PORT]
    python entry_point.py reconcile BANK CASHBOOK [options]
"""

import argparse
import sys
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import List, Optional, Tuple

from .config import get_settings
from .export import to_csv, to_pdf, to_xlsx
from .ingestion import ParseError, apply_overrides, detect_mapping, load_dataset
from .models import Mapping, ReconciliationResult, ReconciliationSettings
from .reconciliation import (
    ReconciliationOrchestrator,
    SuggestionEngine,
    ValidationFailedError,
)
from .utils import setup_logging


EXIT_OK = 0
EXIT_PARSE_ERROR = 1
EXIT_VALIDATION_FAILED = 2

MAPPING_FIELDS = set(Mapping().to_dict())


def non_negative_decimal(value: str) -> Decimal:
    try:
        number = Decimal(value)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"not a number: {value}")
    if not number.is_finite() or number < 0:
        raise argparse.ArgumentTypeError(f"must be a non-negative number: {value}")
    return number


def non_negative_int(value: str) -> int:
    number = int(value)
    if number < 0:
        raise argparse.ArgumentTypeError(f"must be >= 0: {value}")
    return number


def mapping_override(value: str) -> Tuple[str, str]:
    """FIELD=COLUMN, e.g. amount_column=Value."""
    field_name, sep, column = value.partition("=")
    field_name = field_name.strip()
    if not sep or field_name not in MAPPING_FIELDS:
        raise argparse.ArgumentTypeError(
            f"expected FIELD=COLUMN with FIELD one of {', '.join(sorted(MAPPING_FIELDS))}: {value}"
        )
    return field_name, column.strip()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bankrec",
        description="Reconcile a bank statement against a cashbook",
    )
    parser.add_argument("--log-level", default=None, help="Logging level (default from settings)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default=None, help="Bind address")
    serve.add_argument("--port", type=int, default=None, help="Port to listen on")

    rec = subparsers.add_parser("reconcile", help="Reconcile two files")
    rec.add_argument("bank", type=Path, help="Bank statement (.csv or .xlsx)")
    rec.add_argument("cashbook", type=Path, help="Cashbook (.csv or .xlsx)")
    rec.add_argument("--tolerance", type=non_negative_decimal, default=None, help="Absolute amount tolerance")
    rec.add_argument("--window", type=non_negative_int, default=None, help="Date window in days")
    rec.add_argument(
        "--date-format",
        choices=["auto", "yyyy-mm-dd", "dd/mm/yyyy", "mm/dd/yyyy"],
        default=None,
    )
    rec.add_argument("--strategy", choices=["strict", "smart"], default=None)
    rec.add_argument("--currency", default=None, help="Display currency code")
    rec.add_argument(
        "--bank-map", type=mapping_override, action="append", default=[], metavar="FIELD=COLUMN",
        help="Override a detected bank column (repeatable)",
    )
    rec.add_argument(
        "--cashbook-map", type=mapping_override, action="append", default=[], metavar="FIELD=COLUMN",
        help="Override a detected cashbook column (repeatable)",
    )
    rec.add_argument("--output", type=Path, default=None, help="Write pairs to .csv, .xlsx or .pdf")
    rec.add_argument("--suggestions", action="store_true", help="List suggestions for unmatched entries")
    return parser


def write_output(result: ReconciliationResult, path: Path) -> None:
    """Serialize pairs by output extension."""
    suffix = path.suffix.lower()
    if suffix == ".xlsx":
        path.write_bytes(to_xlsx(result.pairs, result.summary))
    elif suffix == ".pdf":
        path.write_bytes(to_pdf(result.pairs, result.summary))
    else:
        path.write_text(to_csv(result.pairs), encoding="utf-8")


def print_summary(result: ReconciliationResult) -> None:
    summary = result.summary
    currency = result.settings.currency
    print(f"Bank entries:          {summary.bank_count}")
    print(f"Cashbook entries:      {summary.cashbook_count}")
    print(f"Matched pairs:         {summary.matched_pairs}")
    print(f"Unmatched (Bank):      {summary.unmatched_bank} ({summary.unmatched_bank_amount:.2f} {currency})")
    print(f"Unmatched (Cashbook):  {summary.unmatched_cashbook} ({summary.unmatched_cashbook_amount:.2f} {currency})")
    print(f"Total bank:            {summary.total_bank:.2f} {currency}")
    print(f"Total cashbook:        {summary.total_cashbook:.2f} {currency}")
    print(f"Net difference:        {summary.net_difference:.2f} {currency}")
    for warning in result.warnings:
        print(f"Warning: {warning}")
    for hint in result.hints:
        print(f"Hint: {hint}")


def run_reconcile(args: argparse.Namespace) -> int:
    try:
        bank_dataset = load_dataset(args.bank)
        cashbook_dataset = load_dataset(args.cashbook)
    except (ParseError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_PARSE_ERROR

    settings = ReconciliationSettings.from_settings(
        get_settings(),
        amount_tolerance=args.tolerance,
        date_window_days=args.window,
        date_format=args.date_format,
        strategy=args.strategy,
        currency=args.currency,
    )

    try:
        bank_mapping = apply_overrides(detect_mapping(bank_dataset.headers), **dict(args.bank_map))
        cashbook_mapping = apply_overrides(
            detect_mapping(cashbook_dataset.headers), **dict(args.cashbook_map)
        )
    except ValueError as e:
        # Unknown mode or sign convention value
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_PARSE_ERROR

    try:
        result = ReconciliationOrchestrator().run(
            bank_dataset,
            bank_mapping,
            cashbook_dataset,
            cashbook_mapping,
            settings,
        )
    except ValidationFailedError as e:
        for message in e.messages():
            print(f"Validation error: {message}", file=sys.stderr)
        return EXIT_VALIDATION_FAILED

    print_summary(result)

    if args.suggestions:
        for s in SuggestionEngine().suggest_for_pairs(result.pairs):
            print(f"Suggestion {s.bank.id} <-> {s.cashbook.id} ({s.confidence}%): {'; '.join(s.reasons)}")

    if args.output is not None:
        write_output(result, args.output)
        print(f"Wrote {len(result.pairs)} rows to {args.output}")

    return EXIT_OK


def run_serve(args: argparse.Namespace) -> int:
    import uvicorn
    from .main import app

    settings = get_settings()
    uvicorn.run(app, host=args.host or settings.host, port=args.port or settings.port)
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level or get_settings().app_log_level)

    if args.command == "serve":
        return run_serve(args)
    return run_reconcile(args)
