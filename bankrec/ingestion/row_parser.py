"""
Row parser for delimited text and spreadsheet inputs.
Turns a raw file into ordered headers plus string-keyed rows.
"""

import csv
import io
from pathlib import Path
from typing import Any, List, Optional, Sequence, Union

import structlog
from openpyxl import load_workbook

from ..models import ParsedDataset, RawRow

logger = structlog.get_logger()


SNIFF_DELIMITERS = ",;\t|"
SNIFF_SAMPLE_SIZE = 8192
WORKBOOK_SUFFIXES = {".xlsx", ".xlsm"}


class ParseError(ValueError):
    """Input could not be read as a table with a header row."""


def parse_csv(
    text: str,
    has_header: bool = True,
    delimiter: Optional[str] = None,
    source_name: Optional[str] = None,
) -> ParsedDataset:
    """
    Parse delimited text into headers and rows.

    Args:
        text: Raw file content
        has_header: Whether the first non-blank line holds column names
        delimiter: Field delimiter; sniffed when omitted
        source_name: Optional file name for logging

    Returns:
        ParsedDataset with rows keyed by header

    Raises:
        ParseError: malformed CSV, missing header, no rows, or ragged rows
    """
    if text is None or not text.strip():
        raise ParseError("No headers found: the input is empty.")

    text = text.lstrip("\ufeff")
    if delimiter is None:
        delimiter = _sniff_delimiter(text)

    reader = csv.reader(io.StringIO(text, newline=""), delimiter=delimiter, strict=True)
    records = []
    try:
        for record in reader:
            if not record or all(not cell.strip() for cell in record):
                continue
            records.append((reader.line_num, record))
    except csv.Error as e:
        raise ParseError(f"Malformed CSV near line {reader.line_num}: {e}") from e

    dataset = _build_dataset(records, has_header, source_name)
    logger.debug(
        "Parsed delimited text",
        source=source_name,
        delimiter=delimiter,
        columns=len(dataset.headers),
        rows=dataset.row_count,
    )
    return dataset


def parse_csv_file(
    path: Union[str, Path],
    has_header: bool = True,
    delimiter: Optional[str] = None,
    encoding: str = "utf-8-sig",
) -> ParsedDataset:
    """Read and parse a delimited text file."""
    path = Path(path)
    try:
        text = path.read_text(encoding=encoding)
    except UnicodeDecodeError as e:
        raise ParseError(f"{path.name} is not valid {encoding} text: {e}") from e
    return parse_csv(text, has_header=has_header, delimiter=delimiter, source_name=path.name)


def parse_workbook(
    source: Union[str, Path, bytes],
    sheet: Optional[str] = None,
    has_header: bool = True,
    source_name: Optional[str] = None,
) -> ParsedDataset:
    """
    Parse the first (or named) worksheet of an .xlsx workbook.

    Native cell values are preserved: numbers stay numeric and dates stay
    ``datetime`` so the normalizer can skip string parsing for them.
    """
    if isinstance(source, (bytes, bytearray)):
        handle: Any = io.BytesIO(source)
    else:
        handle = str(source)
        source_name = source_name or Path(source).name

    try:
        workbook = load_workbook(handle, read_only=True, data_only=True)
    except Exception as e:
        raise ParseError(f"Could not open workbook: {e}") from e

    try:
        if sheet is not None:
            if sheet not in workbook.sheetnames:
                raise ParseError(f"Worksheet not found: {sheet}")
            worksheet = workbook[sheet]
        else:
            worksheet = workbook.worksheets[0]

        records = []
        for line_num, values in enumerate(worksheet.iter_rows(values_only=True), start=1):
            record = [_normalize_cell(v) for v in values]
            if all(_is_blank(v) for v in record):
                continue
            records.append((line_num, record))
    finally:
        workbook.close()

    # Trailing empty cells are common in spreadsheets; trim them to the header width
    return _build_dataset(records, has_header, source_name, ragged_ok=True)


def load_dataset(path: Union[str, Path], has_header: bool = True) -> ParsedDataset:
    """Parse a file, choosing the reader by extension."""
    path = Path(path)
    if path.suffix.lower() in WORKBOOK_SUFFIXES:
        return parse_workbook(path, has_header=has_header)
    return parse_csv_file(path, has_header=has_header)


def _sniff_delimiter(text: str) -> str:
    sample = text[:SNIFF_SAMPLE_SIZE]
    try:
        return csv.Sniffer().sniff(sample, delimiters=SNIFF_DELIMITERS).delimiter
    except csv.Error:
        return ","


def _build_dataset(
    records: Sequence[tuple],
    has_header: bool,
    source_name: Optional[str],
    ragged_ok: bool = False,
) -> ParsedDataset:
    if not records:
        raise ParseError("No headers found: the input has no non-empty lines.")

    if has_header:
        _, header_record = records[0]
        headers = [("" if h is None else str(h)).strip() for h in header_record]
        if ragged_ok:
            while headers and not headers[-1]:
                headers.pop()
        if not any(headers):
            raise ParseError("No headers found: the header row is blank.")
        body = records[1:]
    else:
        width = max(len(r) for _, r in records)
        headers = [f"Column {i + 1}" for i in range(width)]
        body = records

    if not body:
        raise ParseError("No data rows found below the header row.")

    rows: List[RawRow] = []
    for line_num, record in body:
        record = list(record)
        if len(record) != len(headers):
            if ragged_ok or not has_header:
                record = (record + [None] * len(headers))[:len(headers)]
            else:
                raise ParseError(
                    f"Line {line_num} has {len(record)} fields, expected {len(headers)}."
                )
        rows.append(dict(zip(headers, record)))

    return ParsedDataset(headers=headers, rows=rows, source_name=source_name)


def _normalize_cell(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip()
    return value


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())
