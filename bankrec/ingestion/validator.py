"""
Pre-flight dataset validation.

Checks that the mapping names real columns and samples the rows for
unreadable dates and amounts before any matching is attempted.
"""

from typing import List, Optional

import structlog

from ..config import get_settings
from ..models import (
    IssueSeverity,
    Mapping,
    MappingMode,
    ParsedDataset,
    RawRow,
    ReconciliationSettings,
    ValidationIssue,
    ValidationReport,
    ValidationStats,
)
from .normalizer import parse_amount, parse_date

logger = structlog.get_logger()


class DatasetValidator:
    """
    Validates a parsed dataset against its column mapping.

    Missing required columns are errors and block reconciliation.
    High invalid-date or invalid-amount rates are warnings only.
    """

    def __init__(
        self,
        sample_size: Optional[int] = None,
        invalid_rate_threshold: Optional[float] = None,
    ):
        """
        Initialize validator.

        Args:
            sample_size: Rows inspected for data quality (default from settings)
            invalid_rate_threshold: Invalid fraction above which a warning is raised
        """
        app_settings = get_settings()
        self.sample_size = sample_size or app_settings.validation_sample_size
        self.invalid_rate_threshold = (
            invalid_rate_threshold
            if invalid_rate_threshold is not None
            else app_settings.invalid_rate_threshold
        )

    def validate(
        self,
        dataset: Optional[ParsedDataset],
        mapping: Optional[Mapping],
        settings: Optional[ReconciliationSettings] = None,
    ) -> Optional[ValidationReport]:
        """
        Validate one dataset.

        Returns:
            ValidationReport, or None when there is nothing to validate yet
        """
        if dataset is None or mapping is None:
            return None

        settings = settings or ReconciliationSettings.from_settings(get_settings())
        issues: List[ValidationIssue] = []

        missing = self._missing_columns(dataset, mapping)
        if missing:
            issues.append(ValidationIssue(
                severity=IssueSeverity.ERROR,
                message=f"Missing required columns: {', '.join(missing)}",
            ))

        sample = dataset.rows[:self.sample_size]
        stats = ValidationStats(rows_sampled=len(sample))
        for row in sample:
            row = row or {}
            date_cell = row.get(mapping.date_column) if mapping.date_column else None
            if parse_date(date_cell, settings.date_format) is None:
                stats.invalid_date += 1
            if not self._amount_ok(row, mapping):
                stats.invalid_amount += 1
            if _is_blank(date_cell) and all(_is_blank(v) for v in row.values()):
                stats.empty_rows += 1

        denominator = max(stats.rows_sampled, 1)
        if stats.invalid_date / denominator > self.invalid_rate_threshold:
            issues.append(ValidationIssue(
                severity=IssueSeverity.WARNING,
                message=(
                    f"High invalid date rate: {stats.invalid_date}/{denominator} rows. "
                    "Check Date format."
                ),
            ))
        if stats.invalid_amount / denominator > self.invalid_rate_threshold:
            issues.append(ValidationIssue(
                severity=IssueSeverity.WARNING,
                message=(
                    f"High invalid amount rate: {stats.invalid_amount}/{denominator} rows. "
                    "Check Amount mapping."
                ),
            ))

        report = ValidationReport(issues=issues, stats=stats)
        logger.info(
            "Dataset validated",
            source=dataset.source_name,
            ok=report.ok,
            rows_sampled=stats.rows_sampled,
            invalid_date=stats.invalid_date,
            invalid_amount=stats.invalid_amount,
            empty_rows=stats.empty_rows,
        )
        return report

    def _missing_columns(self, dataset: ParsedDataset, mapping: Mapping) -> List[str]:
        headers = set(dataset.headers)

        def present(column: Optional[str]) -> bool:
            return bool(column) and column in headers

        missing = []
        if not present(mapping.date_column):
            missing.append(_describe("date", mapping.date_column))
        if mapping.mode == MappingMode.AMOUNT:
            if not present(mapping.amount_column):
                missing.append(_describe("amount", mapping.amount_column))
        elif not (present(mapping.debit_column) or present(mapping.credit_column)):
            missing.append(_describe("debit", mapping.debit_column))
            missing.append(_describe("credit", mapping.credit_column))
        return missing

    def _amount_ok(self, row: RawRow, mapping: Mapping) -> bool:
        if mapping.mode == MappingMode.AMOUNT:
            return bool(mapping.amount_column) and parse_amount(row.get(mapping.amount_column)) is not None
        debit = parse_amount(row.get(mapping.debit_column)) if mapping.debit_column else None
        credit = parse_amount(row.get(mapping.credit_column)) if mapping.credit_column else None
        return debit is not None or credit is not None


def _describe(field_name: str, column: Optional[str]) -> str:
    if column:
        return f"{field_name} ('{column}')"
    return field_name


def _is_blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def validate_dataset(
    dataset: Optional[ParsedDataset],
    mapping: Optional[Mapping],
    settings: Optional[ReconciliationSettings] = None,
) -> Optional[ValidationReport]:
    """Validate with application defaults for sample size and threshold."""
    return DatasetValidator().validate(dataset, mapping, settings)
