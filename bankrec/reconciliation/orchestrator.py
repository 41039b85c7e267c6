"""
Reconciliation Orchestrator - Main pipeline coordinator.

Orchestrates the full reconciliation pipeline:
1. Validation gate (both ledgers)
2. Normalization
3. Matching
4. Summary and remediation hints
"""

import time
from datetime import datetime, timezone
from typing import Callable, List, Optional

import structlog

from ..config import get_settings
from ..ingestion.normalizer import normalize_rows
from ..ingestion.validator import DatasetValidator
from ..models import (
    Mapping,
    ParsedDataset,
    ReconciliationJob,
    ReconciliationResult,
    ReconciliationSettings,
    ReconciliationStatus,
    ReconciliationSummary,
    TransactionSource,
    ValidationReport,
)
from .matcher import MatchingEngine

logger = structlog.get_logger()


UNMATCHED_HINT = (
    "Some entries are unmatched. Try increasing the date window or amount "
    "tolerance, or verify the sign convention."
)
ALL_MATCHED_HINT = "All entries matched."


class ValidationFailedError(Exception):
    """One or both datasets failed pre-flight validation."""

    def __init__(
        self,
        bank_report: Optional[ValidationReport],
        cashbook_report: Optional[ValidationReport],
    ):
        self.bank_report = bank_report
        self.cashbook_report = cashbook_report
        super().__init__("; ".join(self.messages()) or "Validation failed")

    def messages(self) -> List[str]:
        """Error messages prefixed with the ledger they belong to."""
        out = []
        for label, report in (("bank", self.bank_report), ("cashbook", self.cashbook_report)):
            if report is None:
                out.append(f"{label}: no dataset or mapping")
                continue
            out.extend(f"{label}: {issue.message}" for issue in report.errors)
        return out


class ReconciliationOrchestrator:
    """
    Main orchestrator for the reconciliation pipeline.

    Synchronous and stateless between runs; the API wraps it in a job.
    """

    def __init__(self):
        self.settings = get_settings()
        self.validator = DatasetValidator()
        self.matcher = MatchingEngine()

    def run(
        self,
        bank_dataset: ParsedDataset,
        bank_mapping: Mapping,
        cashbook_dataset: ParsedDataset,
        cashbook_mapping: Mapping,
        settings: Optional[ReconciliationSettings] = None,
        progress_callback: Optional[Callable[[float, str], None]] = None,
        bank_report: Optional[ValidationReport] = None,
        cashbook_report: Optional[ValidationReport] = None,
    ) -> ReconciliationResult:
        """
        Execute the full reconciliation pipeline.

        Args:
            bank_dataset: Parsed bank statement
            bank_mapping: Column mapping for the bank statement
            cashbook_dataset: Parsed cashbook
            cashbook_mapping: Column mapping for the cashbook
            settings: Run settings (defaults from application settings)
            progress_callback: Optional callback for progress updates
            bank_report: Report already computed for the bank side under
                these settings; validated here when omitted
            cashbook_report: Same for the cashbook side

        Returns:
            ReconciliationResult with pairs, summary, warnings and hints

        Raises:
            ValidationFailedError: either dataset has validation errors
        """
        start_time = time.time()
        if settings is None:
            settings = ReconciliationSettings.from_settings(self.settings)

        def update_progress(percent: float, phase: str):
            if progress_callback:
                progress_callback(percent, phase)

        update_progress(5, "Validating datasets")
        if bank_report is None:
            bank_report = self.validator.validate(bank_dataset, bank_mapping, settings)
        if cashbook_report is None:
            cashbook_report = self.validator.validate(cashbook_dataset, cashbook_mapping, settings)
        if not (bank_report and bank_report.ok and cashbook_report and cashbook_report.ok):
            error = ValidationFailedError(bank_report, cashbook_report)
            logger.warning("Validation failed", errors=error.messages())
            raise error

        update_progress(25, "Normalizing rows")
        bank = normalize_rows(bank_dataset.rows, bank_mapping, TransactionSource.BANK, settings)
        cashbook = normalize_rows(
            cashbook_dataset.rows, cashbook_mapping, TransactionSource.CASHBOOK, settings
        )

        update_progress(50, "Matching transactions")
        match_result = self.matcher.reconcile(bank, cashbook, settings)

        update_progress(90, "Computing summary")
        result = ReconciliationResult(
            pairs=match_result.pairs,
            summary=match_result.summary,
            bank_transactions=bank,
            cashbook_transactions=cashbook,
            bank_validation=bank_report,
            cashbook_validation=cashbook_report,
            settings=settings,
        )
        for label, report in (("Bank", bank_report), ("Cashbook", cashbook_report)):
            result.warnings.extend(f"{label}: {w.message}" for w in report.warnings)
        result.hints = self.build_hints(match_result.summary, settings)

        update_progress(100, "Complete")
        logger.info(
            "Reconciliation complete",
            matched=result.summary.matched_pairs,
            unmatched_bank=result.summary.unmatched_bank,
            unmatched_cashbook=result.summary.unmatched_cashbook,
            net_difference=str(result.summary.net_difference),
            elapsed_seconds=round(time.time() - start_time, 3),
        )
        return result

    def run_job(
        self,
        job: ReconciliationJob,
        bank_dataset: ParsedDataset,
        bank_mapping: Mapping,
        cashbook_dataset: ParsedDataset,
        cashbook_mapping: Mapping,
        bank_report: Optional[ValidationReport] = None,
        cashbook_report: Optional[ValidationReport] = None,
    ) -> Optional[ReconciliationResult]:
        """
        Run the pipeline for a tracked job, recording status on the job.

        Failures mark the job FAILED and keep the error text.
        """
        def update_progress(percent: float, phase: str):
            job.progress = percent
            job.current_phase = phase

        try:
            job.status = ReconciliationStatus.PROCESSING
            job.started_at = datetime.now(timezone.utc)

            job.result = self.run(
                bank_dataset,
                bank_mapping,
                cashbook_dataset,
                cashbook_mapping,
                job.settings,
                progress_callback=update_progress,
                bank_report=bank_report,
                cashbook_report=cashbook_report,
            )

            job.status = ReconciliationStatus.COMPLETED
            job.completed_at = datetime.now(timezone.utc)

        except ValidationFailedError as e:
            job.status = ReconciliationStatus.FAILED
            job.errors.extend(e.messages())
            job.completed_at = datetime.now(timezone.utc)

        except Exception as e:
            logger.exception("Reconciliation failed", job_id=job.id, error=str(e))
            job.status = ReconciliationStatus.FAILED
            job.errors.append(str(e))
            job.completed_at = datetime.now(timezone.utc)

        return job.result

    @staticmethod
    def build_hints(summary: ReconciliationSummary, settings: ReconciliationSettings) -> List[str]:
        """Remediation messages for the user."""
        hints = []
        if summary.unmatched_bank or summary.unmatched_cashbook:
            hints.append(UNMATCHED_HINT)
        if summary.net_difference_cents != 0:
            hints.append(f"Net difference detected: {summary.net_difference:.2f} {settings.currency}.")
        if not hints:
            hints.append(ALL_MATCHED_HINT)
        return hints
