"""
FastAPI application for the bank reconciliation service.
Datasets and jobs live in process memory only.
"""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Literal, Optional
from uuid import uuid4

from fastapi import BackgroundTasks, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from pydantic import BaseModel, Field
import structlog

from .config import get_settings
from .export import filter_pairs, to_csv, to_pdf, to_xlsx
from .ingestion import ParseError, detect_mapping, parse_csv
from .ingestion.validator import DatasetValidator
from .models import (
    Mapping,
    ParsedDataset,
    ReconciliationJob,
    ReconciliationSettings,
    ReconciliationStatus,
    TransactionSource,
    ValidationReport,
)
from .reconciliation import (
    AdjustmentError,
    ReconciliationOrchestrator,
    SuggestionEngine,
    confirm_suggestion,
    match_residues,
    unmatch,
    with_pairs,
)
from .utils import setup_logging, update_env_file

logger = structlog.get_logger()


@dataclass
class StoredDataset:
    """An uploaded ledger with its current column mapping."""
    id: str
    source: TransactionSource
    dataset: ParsedDataset
    mapping: Mapping


# In-memory storage
datasets: Dict[str, StoredDataset] = {}
jobs: Dict[str, ReconciliationJob] = {}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    settings = get_settings()
    log_file = settings.log_dir / "app.log" if settings.is_production else None
    setup_logging(settings.app_log_level, log_file)
    logger.info("Starting Bank Reconciliation API", env=settings.app_env)
    yield
    logger.info("Shutting down Bank Reconciliation API")


app = FastAPI(
    title="Bank Reconciliation",
    description="Bank statement to cashbook transaction reconciliation",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request/Response models
class DatasetUploadRequest(BaseModel):
    source: Literal["bank", "cashbook"]
    content: str
    has_header: bool = True
    delimiter: Optional[str] = None
    filename: Optional[str] = None


class MappingUpdateRequest(BaseModel):
    mode: Optional[Literal["amount", "debitCredit"]] = None
    date_column: Optional[str] = None
    amount_column: Optional[str] = None
    debit_column: Optional[str] = None
    credit_column: Optional[str] = None
    description_column: Optional[str] = None
    sign_convention: Optional[Literal["creditPositive", "debitPositive"]] = None


class SettingsRequest(BaseModel):
    amount_tolerance: Optional[Decimal] = Field(default=None, ge=0)
    date_window_days: Optional[int] = Field(default=None, ge=0)
    date_format: Optional[Literal["auto", "yyyy-mm-dd", "dd/mm/yyyy", "mm/dd/yyyy"]] = None
    currency: Optional[str] = None
    strategy: Optional[Literal["strict", "smart"]] = None


class StartReconciliationRequest(BaseModel):
    bank_dataset_id: str
    cashbook_dataset_id: str
    settings: Optional[SettingsRequest] = None


class JobResponse(BaseModel):
    id: str
    status: str
    progress: float
    current_phase: str
    message: str


class ManualMatchRequest(BaseModel):
    bank_id: str
    cashbook_id: str


class SettingsUpdateRequest(BaseModel):
    default_amount_tolerance: Optional[Decimal] = Field(default=None, ge=0)
    default_date_window_days: Optional[int] = Field(default=None, ge=0)
    default_date_format: Optional[Literal["auto", "yyyy-mm-dd", "dd/mm/yyyy", "mm/dd/yyyy"]] = None
    default_currency: Optional[str] = None
    default_strategy: Optional[Literal["strict", "smart"]] = None


def _run_settings(request: Optional[SettingsRequest]) -> ReconciliationSettings:
    overrides = request.model_dump() if request is not None else {}
    return ReconciliationSettings.from_settings(get_settings(), **overrides)


def _get_dataset(dataset_id: str) -> StoredDataset:
    if dataset_id not in datasets:
        raise HTTPException(404, f"Dataset not found: {dataset_id}")
    return datasets[dataset_id]


def _get_job(job_id: str) -> ReconciliationJob:
    if job_id not in jobs:
        raise HTTPException(404, "Job not found")
    return jobs[job_id]


def _finished_job(job_id: str) -> ReconciliationJob:
    job = _get_job(job_id)
    if job.status == ReconciliationStatus.FAILED:
        raise HTTPException(400, f"Job failed: {'; '.join(job.errors)}")
    if job.status != ReconciliationStatus.COMPLETED or job.result is None:
        raise HTTPException(400, f"Job not finished. Status: {job.status.value}")
    return job


def _result_view(job: ReconciliationJob) -> Dict[str, Any]:
    result = job.result
    return {
        "job_id": job.id,
        "status": job.status.value,
        "settings": result.settings.to_dict(),
        "pairs": [p.to_dict() for p in result.pairs],
        "summary": result.summary.to_dict(),
        "warnings": result.warnings,
        "hints": result.hints,
    }


def _dataset_view(stored: StoredDataset, settings: Optional[ReconciliationSettings] = None) -> Dict[str, Any]:
    report = DatasetValidator().validate(stored.dataset, stored.mapping, settings)
    return {
        "id": stored.id,
        "source": stored.source.value,
        "filename": stored.dataset.source_name,
        "headers": stored.dataset.headers,
        "row_count": stored.dataset.row_count,
        "preview": stored.dataset.preview(),
        "mapping": stored.mapping.to_dict(),
        "validation": report.to_dict(),
    }


# API Endpoints
@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}


@app.get("/settings")
async def get_settings_endpoint():
    """Default reconciliation settings."""
    return ReconciliationSettings.from_settings(get_settings()).to_dict()


@app.post("/settings")
async def update_settings(request: SettingsUpdateRequest):
    """Persist new defaults to the .env file."""
    updates = request.model_dump(exclude_none=True)
    if not updates:
        raise HTTPException(400, "No settings supplied")

    if not update_env_file(updates):
        raise HTTPException(status_code=500, detail="Failed to write to .env file")

    get_settings.cache_clear()
    return {
        "status": "success",
        "settings": ReconciliationSettings.from_settings(get_settings()).to_dict(),
    }


@app.post("/api/datasets")
async def upload_dataset(request: DatasetUploadRequest):
    """Parse CSV text, auto-detect its mapping and validate it."""
    try:
        parsed = parse_csv(
            request.content,
            has_header=request.has_header,
            delimiter=request.delimiter,
            source_name=request.filename,
        )
    except ParseError as e:
        logger.warning("Dataset rejected", filename=request.filename, error=str(e))
        raise HTTPException(400, str(e))

    stored = StoredDataset(
        id=str(uuid4()),
        source=TransactionSource(request.source),
        dataset=parsed,
        mapping=detect_mapping(parsed.headers),
    )
    datasets[stored.id] = stored

    logger.info(
        "Dataset uploaded",
        dataset_id=stored.id,
        source=stored.source.value,
        rows=parsed.row_count,
    )
    return _dataset_view(stored)


@app.get("/api/datasets/{dataset_id}")
async def get_dataset(dataset_id: str):
    return _dataset_view(_get_dataset(dataset_id))


@app.put("/api/datasets/{dataset_id}/mapping")
async def update_mapping(dataset_id: str, request: MappingUpdateRequest):
    """Apply manual column overrides to a dataset's mapping."""
    stored = _get_dataset(dataset_id)
    stored.mapping = stored.mapping.with_overrides(**request.model_dump(exclude_unset=True))
    return _dataset_view(stored)


@app.post("/api/datasets/{dataset_id}/validate")
async def validate_dataset_endpoint(dataset_id: str, request: Optional[SettingsRequest] = None):
    """Validate a dataset under the supplied run settings."""
    stored = _get_dataset(dataset_id)
    report = DatasetValidator().validate(stored.dataset, stored.mapping, _run_settings(request))
    return report.to_dict()


@app.post("/api/reconciliation/start", response_model=JobResponse)
async def start_reconciliation(
    request: StartReconciliationRequest,
    background_tasks: BackgroundTasks,
):
    """Start a new reconciliation job."""
    bank = _get_dataset(request.bank_dataset_id)
    cashbook = _get_dataset(request.cashbook_dataset_id)
    run_settings = _run_settings(request.settings)

    validator = DatasetValidator()
    bank_report = validator.validate(bank.dataset, bank.mapping, run_settings)
    cashbook_report = validator.validate(cashbook.dataset, cashbook.mapping, run_settings)
    if not (bank_report.ok and cashbook_report.ok):
        raise HTTPException(422, {
            "message": "Validation failed",
            "bank": bank_report.to_dict(),
            "cashbook": cashbook_report.to_dict(),
        })

    job = ReconciliationJob(
        bank_dataset_id=bank.id,
        cashbook_dataset_id=cashbook.id,
        settings=run_settings,
    )
    jobs[job.id] = job

    # Snapshot the mappings the reports were computed for
    background_tasks.add_task(
        run_reconciliation,
        job,
        replace(bank),
        replace(cashbook),
        bank_report,
        cashbook_report,
    )

    logger.info(
        "Reconciliation job started",
        job_id=job.id,
        bank_dataset_id=bank.id,
        cashbook_dataset_id=cashbook.id,
    )
    return JobResponse(
        id=job.id,
        status=job.status.value,
        progress=0,
        current_phase="Starting",
        message=f"Reconciling {bank.dataset.row_count} bank rows against {cashbook.dataset.row_count} cashbook rows",
    )


async def run_reconciliation(
    job: ReconciliationJob,
    bank: StoredDataset,
    cashbook: StoredDataset,
    bank_report: Optional[ValidationReport] = None,
    cashbook_report: Optional[ValidationReport] = None,
):
    """Background task: run the pipeline in a worker thread."""
    orchestrator = ReconciliationOrchestrator()
    await asyncio.to_thread(
        orchestrator.run_job,
        job,
        bank.dataset,
        bank.mapping,
        cashbook.dataset,
        cashbook.mapping,
        bank_report,
        cashbook_report,
    )
    logger.info("Reconciliation job finished", job_id=job.id, status=job.status.value)


@app.get("/api/reconciliation/{job_id}/status", response_model=JobResponse)
async def get_job_status(job_id: str):
    """Get status of a reconciliation job."""
    job = _get_job(job_id)
    return JobResponse(
        id=job.id,
        status=job.status.value,
        progress=job.progress,
        current_phase=job.current_phase,
        message="; ".join(job.errors),
    )


@app.get("/api/reconciliation/{job_id}/result")
async def get_job_result(job_id: str):
    """Get result of a completed reconciliation job."""
    return _result_view(_finished_job(job_id))


@app.get("/api/reconciliation/{job_id}/suggestions")
async def get_job_suggestions(job_id: str):
    """Advisory pairings for the entries left unmatched."""
    job = _finished_job(job_id)
    suggestions = SuggestionEngine().suggest_for_pairs(job.result.pairs)
    return {"job_id": job.id, "suggestions": [s.to_dict() for s in suggestions]}


@app.post("/api/reconciliation/{job_id}/suggestions/{suggestion_id}/confirm")
async def confirm_job_suggestion(job_id: str, suggestion_id: str):
    """Turn a current suggestion into a matched pair."""
    job = _finished_job(job_id)
    suggestions = SuggestionEngine().suggest_for_pairs(job.result.pairs)
    suggestion = next((s for s in suggestions if s.id == suggestion_id), None)
    if suggestion is None:
        raise HTTPException(404, f"Suggestion not found: {suggestion_id}")

    job.result = with_pairs(job.result, confirm_suggestion(job.result.pairs, suggestion))
    logger.info("Suggestion confirmed", job_id=job.id, suggestion_id=suggestion_id)
    return _result_view(job)


@app.post("/api/reconciliation/{job_id}/pairs")
async def create_manual_pair(job_id: str, request: ManualMatchRequest):
    """Pair two unmatched entries by hand."""
    job = _finished_job(job_id)
    try:
        pairs = match_residues(job.result.pairs, request.bank_id, request.cashbook_id)
    except AdjustmentError as e:
        raise HTTPException(409, str(e))

    job.result = with_pairs(job.result, pairs)
    return _result_view(job)


@app.delete("/api/reconciliation/{job_id}/pairs/{pair_id}")
async def remove_pair(job_id: str, pair_id: str):
    """Split a matched pair back into unmatched entries."""
    job = _finished_job(job_id)
    try:
        pairs = unmatch(job.result.pairs, pair_id)
    except AdjustmentError as e:
        raise HTTPException(404, str(e))

    job.result = with_pairs(job.result, pairs)
    return _result_view(job)


EXPORT_MEDIA_TYPES = {
    "csv": "text/csv; charset=utf-8",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "pdf": "application/pdf",
}


@app.get("/api/reconciliation/{job_id}/export")
async def export_result(
    job_id: str,
    format: Literal["csv", "xlsx", "pdf"] = "csv",
    status: Literal["all", "matched", "unmatched", "bank-only", "cashbook-only"] = Query(default="all"),
):
    """Export reconciliation pairs as CSV, Excel or PDF."""
    job = _finished_job(job_id)
    result = job.result
    pairs = filter_pairs(result.pairs, status)

    if format == "csv":
        content: Any = to_csv(pairs)
    elif format == "xlsx":
        content = to_xlsx(pairs, result.summary)
    else:
        content = to_pdf(pairs, result.summary)

    filename = f"reconciliation_{job_id}.{format}"
    logger.info("Exported reconciliation", job_id=job_id, format=format, status=status, pairs=len(pairs))
    return Response(
        content=content,
        media_type=EXPORT_MEDIA_TYPES[format],
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(app, host=settings.host, port=settings.port)
