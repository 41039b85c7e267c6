"""
Export of reconciliation pairs to CSV, Excel workbook and PDF.

All serializers return in-memory text/bytes; callers decide where they go.
"""

import csv
import io
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import structlog
from openpyxl import Workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.styles import Font
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from ..models import MatchPair, MatchStatus, ReconciliationSummary

logger = structlog.get_logger()


EXPORT_COLUMNS = [
    "MatchStatus",
    "BankDate",
    "BankAmount",
    "BankDescription",
    "CashbookDate",
    "CashbookAmount",
    "CashbookDescription",
    "AmountDifference",
    "DateDiffDays",
]

AMOUNT_COLUMNS = {"BankAmount", "CashbookAmount", "AmountDifference"}

# Shorter labels for the narrow PDF table
PDF_STATUS_LABELS = {
    MatchStatus.MATCHED: "Matched",
    MatchStatus.UNMATCHED_BANK: "Bank only",
    MatchStatus.UNMATCHED_CASHBOOK: "Cashbook only",
}
PDF_HEADERS = [
    "Status", "Bank Date", "Bank Amount", "Bank Desc",
    "Cash Date", "Cash Amount", "Cash Desc", "Amount Diff",
]
PDF_HEADER_COLOR = colors.Color(16 / 255, 185 / 255, 129 / 255)

FILTERS = {
    "all": lambda p: True,
    "matched": lambda p: p.matched,
    "unmatched": lambda p: not p.matched,
    "bank-only": lambda p: p.status == MatchStatus.UNMATCHED_BANK,
    "cashbook-only": lambda p: p.status == MatchStatus.UNMATCHED_CASHBOOK,
}


def pairs_to_rows(pairs: Sequence[MatchPair]) -> List[Dict[str, Any]]:
    """
    Flatten pairs to export rows, preserving order.

    Missing sides become empty strings; amounts stay Decimal.
    """
    rows = []
    for p in pairs:
        rows.append({
            "MatchStatus": p.status.value,
            "BankDate": p.bank.date_iso if p.bank else "",
            "BankAmount": p.bank.amount if p.bank else "",
            "BankDescription": p.bank.description if p.bank else "",
            "CashbookDate": p.cashbook.date_iso if p.cashbook else "",
            "CashbookAmount": p.cashbook.amount if p.cashbook else "",
            "CashbookDescription": p.cashbook.description if p.cashbook else "",
            "AmountDifference": p.amount_delta,
            "DateDiffDays": p.date_delta_days,
        })
    return rows


def filter_pairs(pairs: Sequence[MatchPair], status: str = "all") -> List[MatchPair]:
    """Subset of pairs by status filter: all, matched, unmatched, bank-only, cashbook-only."""
    try:
        predicate = FILTERS[status]
    except KeyError:
        raise ValueError(f"Unknown status filter: {status}") from None
    return [p for p in pairs if predicate(p)]


def summary_rows(summary: ReconciliationSummary) -> List[Tuple[str, Union[int, Decimal, str]]]:
    """Metric/value rows shared by the workbook and PDF summaries."""
    return [
        ("Bank entries", summary.bank_count),
        ("Cashbook entries", summary.cashbook_count),
        ("Matched pairs", summary.matched_pairs),
        ("Unmatched (Bank)", summary.unmatched_bank),
        ("Unmatched (Cashbook)", summary.unmatched_cashbook),
        ("Total bank", summary.total_bank),
        ("Total cashbook", summary.total_cashbook),
        ("Net difference", summary.net_difference),
        ("Unmatched bank amount", summary.unmatched_bank_amount),
        ("Unmatched cashbook amount", summary.unmatched_cashbook_amount),
        ("Match rate (%)", f"{summary.match_rate:.1f}"),
    ]


def _format_cell(column: str, value: Any) -> Any:
    if column in AMOUNT_COLUMNS and isinstance(value, Decimal):
        return f"{value:.2f}"
    return value


def to_csv(pairs: Sequence[MatchPair]) -> str:
    """CSV text with a header row; amounts formatted to two decimals."""
    buffer = io.StringIO(newline="")
    writer = csv.DictWriter(buffer, fieldnames=EXPORT_COLUMNS, lineterminator="\n")
    writer.writeheader()
    for row in pairs_to_rows(pairs):
        writer.writerow({k: _format_cell(k, v) for k, v in row.items()})
    return buffer.getvalue()


def to_xlsx(
    pairs: Sequence[MatchPair],
    summary: Optional[ReconciliationSummary] = None,
) -> bytes:
    """Workbook with a "Reconciliation" sheet and an optional "Summary" sheet."""
    wb = Workbook()
    ws = wb.active
    ws.title = "Reconciliation"
    ws.append(EXPORT_COLUMNS)
    for cell in ws[1]:
        cell.font = Font(bold=True)

    amount_indexes = [i for i, name in enumerate(EXPORT_COLUMNS, start=1) if name in AMOUNT_COLUMNS]
    for row in pairs_to_rows(pairs):
        ws.append([_sheet_value(row[name]) for name in EXPORT_COLUMNS])
        for idx in amount_indexes:
            cell = ws.cell(row=ws.max_row, column=idx)
            if isinstance(cell.value, (int, float, Decimal)):
                cell.number_format = "0.00"

    if summary is not None:
        sheet = wb.create_sheet("Summary")
        sheet.append(["Metric", "Value"])
        for cell in sheet[1]:
            cell.font = Font(bold=True)
        for metric, value in summary_rows(summary):
            sheet.append([metric, value])

    buffer = io.BytesIO()
    wb.save(buffer)
    logger.debug("Exported workbook", pairs=len(pairs))
    return buffer.getvalue()


def to_pdf(
    pairs: Sequence[MatchPair],
    summary: Optional[ReconciliationSummary] = None,
    title: str = "Bank Reconciliation",
) -> bytes:
    """Paginated A4 report: optional summary table followed by the pairs table."""
    output = io.BytesIO()
    doc = SimpleDocTemplate(
        output,
        pagesize=landscape(A4),
        leftMargin=36,
        rightMargin=36,
        topMargin=36,
        bottomMargin=36,
        title=title,
    )
    styles = getSampleStyleSheet()
    cell_style = styles["BodyText"].clone("Cell", fontSize=7, leading=8)

    elements = [Paragraph(title, styles["Title"]), Spacer(1, 12)]

    if summary is not None:
        summary_table = Table(
            [["Metric", "Value"]] + [[m, str(v)] for m, v in summary_rows(summary)],
            hAlign="LEFT",
        )
        summary_table.setStyle(TableStyle([
            ("GRID", (0, 0), (-1, -1), 0.25, colors.grey),
            ("BACKGROUND", (0, 0), (-1, 0), colors.whitesmoke),
            ("FONTSIZE", (0, 0), (-1, -1), 8),
        ]))
        elements.append(summary_table)
        elements.append(Spacer(1, 12))

    body = []
    for p in pairs:
        body.append([
            PDF_STATUS_LABELS[p.status],
            p.bank.date_iso if p.bank else "",
            f"{p.bank.amount:.2f}" if p.bank else "",
            Paragraph(_escape(p.bank.description) if p.bank else "", cell_style),
            p.cashbook.date_iso if p.cashbook else "",
            f"{p.cashbook.amount:.2f}" if p.cashbook else "",
            Paragraph(_escape(p.cashbook.description) if p.cashbook else "", cell_style),
            f"{p.amount_delta:.2f}",
        ])

    pairs_table = Table(
        [PDF_HEADERS] + body,
        colWidths=[60, 60, 65, 160, 60, 65, 160, 60],
        repeatRows=1,
        hAlign="LEFT",
    )
    pairs_table.setStyle(TableStyle([
        ("GRID", (0, 0), (-1, -1), 0.25, colors.grey),
        ("BACKGROUND", (0, 0), (-1, 0), PDF_HEADER_COLOR),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
        ("FONTSIZE", (0, 0), (-1, -1), 7),
        ("ALIGN", (2, 1), (2, -1), "RIGHT"),
        ("ALIGN", (5, 1), (5, -1), "RIGHT"),
        ("ALIGN", (7, 1), (7, -1), "RIGHT"),
    ]))
    elements.append(pairs_table)

    doc.build(elements)
    logger.debug("Exported PDF", pairs=len(pairs))
    return output.getvalue()


def _sheet_value(value: Any) -> Any:
    # Worksheets reject control characters that CSV input may carry
    if isinstance(value, str):
        return ILLEGAL_CHARACTERS_RE.sub("", value)
    return value


def _escape(text: str) -> str:
    """Paragraph text is parsed as markup."""
    text = ILLEGAL_CHARACTERS_RE.sub("", text)
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")
