"""
Integration tests for the reconciliation pipeline, HTTP API and CLI.
"""

import io
from datetime import timezone
from decimal import Decimal

import pytest
import structlog
from fastapi.testclient import TestClient
from openpyxl import load_workbook

from bankrec import main as api
from bankrec.cli import EXIT_OK, EXIT_PARSE_ERROR, EXIT_VALIDATION_FAILED, main as cli_main
from bankrec.ingestion import detect_mapping, parse_csv
from bankrec.ingestion.validator import DatasetValidator
from bankrec.models import (
    Mapping,
    ReconciliationJob,
    ReconciliationSettings,
    ReconciliationStatus,
    TransactionSource,
)
from bankrec.reconciliation import ReconciliationOrchestrator, ValidationFailedError
from bankrec.reconciliation.orchestrator import UNMATCHED_HINT
from bankrec.reconciliation import orchestrator as orchestrator_module
from bankrec.utils import setup_logging, update_env_file


@pytest.fixture
def settings():
    return ReconciliationSettings(amount_tolerance=Decimal("0"), date_window_days=0)


@pytest.fixture
def ledgers(bank_csv, cashbook_csv):
    bank = parse_csv(bank_csv, source_name="bank.csv")
    cashbook = parse_csv(cashbook_csv, source_name="cashbook.csv")
    return bank, detect_mapping(bank.headers), cashbook, detect_mapping(cashbook.headers)


class TestOrchestrator:
    """Validation gate, matching and hints end to end."""

    def test_full_pipeline(self, ledgers, settings):
        result = ReconciliationOrchestrator().run(*ledgers, settings)

        assert result.summary.matched_pairs == 2
        assert result.summary.unmatched_bank == 1
        assert result.summary.unmatched_cashbook == 1
        assert result.summary.total_bank == Decimal("-1402.50")
        assert result.summary.total_cashbook == Decimal("-1440.00")
        assert result.summary.net_difference == Decimal("37.50")
        assert result.hints == [UNMATCHED_HINT, "Net difference detected: 37.50 USD."]
        assert result.warnings == []
        assert len(result.bank_transactions) == 3
        assert result.bank_validation.ok

    def test_balanced_ledgers(self, bank_csv, settings):
        bank = parse_csv(bank_csv)
        mapping = detect_mapping(bank.headers)

        result = ReconciliationOrchestrator().run(bank, mapping, bank, mapping, settings)

        assert result.summary.is_balanced
        assert result.hints == ["All entries matched."]

    def test_warnings_are_prefixed(self, bank_csv, settings):
        bank = parse_csv(bank_csv)
        noisy = parse_csv(bank_csv + "someday,Unknown,5.00\n")
        mapping = detect_mapping(bank.headers)

        result = ReconciliationOrchestrator().run(bank, mapping, noisy, mapping, settings)

        assert result.warnings == [
            "Cashbook: High invalid date rate: 1/4 rows. Check Date format."
        ]
        assert len(result.cashbook_transactions) == 3

    def test_validation_failure_raises(self, ledgers, settings):
        bank, bank_mapping, cashbook, _ = ledgers
        broken = Mapping(date_column="Txn Date", amount_column="Nope")

        with pytest.raises(ValidationFailedError) as excinfo:
            ReconciliationOrchestrator().run(bank, bank_mapping, cashbook, broken, settings)

        assert excinfo.value.bank_report.ok
        assert excinfo.value.messages() == [
            "cashbook: Missing required columns: amount ('Nope')"
        ]

    def test_supplied_reports_skip_revalidation(self, ledgers, settings):
        bank, bank_mapping, cashbook, cashbook_mapping = ledgers
        validator = DatasetValidator()
        bank_report = validator.validate(bank, bank_mapping, settings)
        cashbook_report = validator.validate(cashbook, cashbook_mapping, settings)

        class RefusingValidator:
            def validate(self, *args, **kwargs):
                raise AssertionError("datasets validated twice")

        orchestrator = ReconciliationOrchestrator()
        orchestrator.validator = RefusingValidator()
        result = orchestrator.run(
            *ledgers, settings, bank_report=bank_report, cashbook_report=cashbook_report
        )

        assert result.summary.matched_pairs == 2
        assert result.bank_validation is bank_report

    def test_supplied_failing_report_still_blocks(self, ledgers, settings):
        bank, _, cashbook, cashbook_mapping = ledgers
        broken = DatasetValidator().validate(bank, Mapping(date_column="Date"), settings)

        with pytest.raises(ValidationFailedError):
            ReconciliationOrchestrator().run(
                bank, Mapping(date_column="Date"), cashbook, cashbook_mapping, settings,
                bank_report=broken,
            )

    def test_progress_callback(self, ledgers, settings):
        phases = []
        ReconciliationOrchestrator().run(
            *ledgers, settings, progress_callback=lambda pct, phase: phases.append((pct, phase))
        )

        assert phases[0] == (5, "Validating datasets")
        assert phases[-1] == (100, "Complete")

    def test_run_job_records_status(self, ledgers, settings):
        job = ReconciliationJob(settings=settings)

        result = ReconciliationOrchestrator().run_job(job, *ledgers)

        assert job.status == ReconciliationStatus.COMPLETED
        assert job.result is result
        assert job.progress == 100
        assert job.current_phase == "Complete"
        assert job.started_at is not None and job.completed_at is not None
        assert job.created_at.tzinfo is timezone.utc
        assert job.completed_at.tzinfo is timezone.utc
        assert job.started_at <= job.completed_at

    def test_run_job_validation_failure(self, ledgers, settings):
        bank, _, cashbook, cashbook_mapping = ledgers
        job = ReconciliationJob(settings=settings)

        ReconciliationOrchestrator().run_job(
            job, bank, Mapping(date_column="Date"), cashbook, cashbook_mapping
        )

        assert job.status == ReconciliationStatus.FAILED
        assert job.result is None
        assert job.errors == ["bank: Missing required columns: amount"]


class TestAPI:
    """HTTP flow from upload to export."""

    @pytest.fixture
    def client(self):
        with TestClient(api.app) as client:
            yield client

    @pytest.fixture
    def uploaded(self, client, bank_csv, cashbook_csv):
        bank = client.post("/api/datasets", json={
            "source": "bank", "content": bank_csv, "filename": "bank.csv",
        })
        cashbook = client.post("/api/datasets", json={
            "source": "cashbook", "content": cashbook_csv,
        })
        assert bank.status_code == 200
        assert cashbook.status_code == 200
        return bank.json(), cashbook.json()

    @pytest.fixture
    def finished_job(self, client, uploaded):
        bank, cashbook = uploaded
        response = client.post("/api/reconciliation/start", json={
            "bank_dataset_id": bank["id"],
            "cashbook_dataset_id": cashbook["id"],
            "settings": {"amount_tolerance": "0", "date_window_days": 0, "currency": "EUR"},
        })
        assert response.status_code == 200
        return response.json()["id"]

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_upload_detects_mapping(self, uploaded):
        bank, cashbook = uploaded

        assert bank["filename"] == "bank.csv"
        assert bank["row_count"] == 3
        assert bank["mapping"]["mode"] == "amount"
        assert bank["validation"]["ok"] is True
        assert cashbook["mapping"]["mode"] == "debitCredit"
        assert cashbook["mapping"]["credit_column"] == "Deposit"
        assert len(cashbook["preview"]) == 3

    def test_upload_rejects_bad_csv(self, client):
        response = client.post("/api/datasets", json={"source": "bank", "content": ""})
        assert response.status_code == 400
        assert "No headers found" in response.json()["detail"]

    def test_get_and_remap_dataset(self, client, uploaded):
        bank, _ = uploaded

        assert client.get(f"/api/datasets/{bank['id']}").json()["headers"] == [
            "Date", "Description", "Amount",
        ]
        response = client.put(f"/api/datasets/{bank['id']}/mapping", json={
            "description_column": None,
            "sign_convention": "debitPositive",
        })
        mapping = response.json()["mapping"]

        assert mapping["description_column"] is None
        assert mapping["sign_convention"] == "debitPositive"
        assert mapping["amount_column"] == "Amount"

    def test_validate_endpoint(self, client, uploaded):
        bank, _ = uploaded

        response = client.post(f"/api/datasets/{bank['id']}/validate", json={"date_format": "dd/mm/yyyy"})

        assert response.status_code == 200
        assert response.json()["stats"]["invalid_date"] == 3
        assert "High invalid date rate" in response.json()["issues"][0]["message"]

    def test_unknown_ids(self, client):
        assert client.get("/api/datasets/missing").status_code == 404
        assert client.get("/api/reconciliation/missing/status").status_code == 404
        assert client.get("/api/reconciliation/missing/result").status_code == 404

    def test_start_rejects_invalid_mapping(self, client, uploaded):
        bank, cashbook = uploaded
        client.put(f"/api/datasets/{bank['id']}/mapping", json={"amount_column": "Nope"})

        response = client.post("/api/reconciliation/start", json={
            "bank_dataset_id": bank["id"],
            "cashbook_dataset_id": cashbook["id"],
        })

        assert response.status_code == 422
        detail = response.json()["detail"]
        assert detail["bank"]["ok"] is False
        assert detail["cashbook"]["ok"] is True

    def test_job_completes(self, client, finished_job):
        status = client.get(f"/api/reconciliation/{finished_job}/status").json()

        assert status["status"] == "completed"
        assert status["progress"] == 100

        result = client.get(f"/api/reconciliation/{finished_job}/result").json()
        assert result["summary"]["matched_pairs"] == 2
        assert result["summary"]["net_difference"] == "37.50"
        assert result["settings"]["currency"] == "EUR"
        assert result["hints"][-1] == "Net difference detected: 37.50 EUR."
        assert [p["status"] for p in result["pairs"]] == [
            "Matched", "Matched", "Unmatched (Bank)", "Unmatched (Cashbook)",
        ]

    def test_suggestions(self, client, finished_job):
        response = client.get(f"/api/reconciliation/{finished_job}/suggestions")

        assert response.status_code == 200
        assert response.json()["suggestions"] == []

    def test_start_validates_once(self, client, uploaded, monkeypatch):
        class RefusingValidator:
            def validate(self, *args, **kwargs):
                raise AssertionError("datasets validated twice")

        monkeypatch.setattr(orchestrator_module, "DatasetValidator", RefusingValidator)
        bank, cashbook = uploaded

        job_id = client.post("/api/reconciliation/start", json={
            "bank_dataset_id": bank["id"],
            "cashbook_dataset_id": cashbook["id"],
        }).json()["id"]

        assert client.get(f"/api/reconciliation/{job_id}/status").json()["status"] == "completed"

    def test_confirm_suggestion_and_unmatch(self, client, bank_csv):
        near_cashbook = (
            "Txn Date,Narration,Withdrawal,Deposit\n"
            "05/01/2024,INV 123 payment,,100.00\n"
            "06/01/2024,Office rent January,1500.00,\n"
            "12/01/2024,Card fee,2.55,\n"
        )
        bank = client.post("/api/datasets", json={"source": "bank", "content": bank_csv}).json()
        cashbook = client.post("/api/datasets", json={"source": "cashbook", "content": near_cashbook}).json()
        job_id = client.post("/api/reconciliation/start", json={
            "bank_dataset_id": bank["id"],
            "cashbook_dataset_id": cashbook["id"],
            "settings": {"amount_tolerance": "0", "date_window_days": 0, "currency": "USD"},
        }).json()["id"]

        suggestions = client.get(f"/api/reconciliation/{job_id}/suggestions").json()["suggestions"]
        assert [s["id"] for s in suggestions] == ["suggest-bank-2-cashbook-2"]
        assert suggestions[0]["score"] == 65

        response = client.post(f"/api/reconciliation/{job_id}/suggestions/suggest-bank-2-cashbook-2/confirm")
        assert response.status_code == 200
        body = response.json()
        assert body["summary"]["matched_pairs"] == 3
        assert body["summary"]["unmatched_bank"] == 0
        assert body["hints"] == ["Net difference detected: 0.05 USD."]
        confirmed = [p for p in body["pairs"] if p["id"] == "pair-bank-2-cashbook-2"][0]
        assert confirmed["match_type"] == "suggested"
        assert confirmed["amount_delta"] == "0.05"
        assert confirmed["date_delta_days"] == 3

        # Confirmed entries no longer produce suggestions
        again = client.post(f"/api/reconciliation/{job_id}/suggestions/suggest-bank-2-cashbook-2/confirm")
        assert again.status_code == 404

        response = client.delete(f"/api/reconciliation/{job_id}/pairs/pair-bank-2-cashbook-2")
        assert response.status_code == 200
        assert response.json()["summary"]["matched_pairs"] == 2
        assert client.delete(f"/api/reconciliation/{job_id}/pairs/pair-bank-2-none").status_code == 404

    def test_manual_pair(self, client, finished_job):
        payload = {"bank_id": "bank-2", "cashbook_id": "cashbook-2"}

        response = client.post(f"/api/reconciliation/{finished_job}/pairs", json=payload)
        assert response.status_code == 200
        result = client.get(f"/api/reconciliation/{finished_job}/result").json()
        assert result["summary"]["matched_pairs"] == 3
        assert [p["match_type"] for p in result["pairs"] if p["matched"]] == ["auto", "auto", "manual"]

        conflict = client.post(f"/api/reconciliation/{finished_job}/pairs", json=payload)
        assert conflict.status_code == 409
        assert "already matched" in conflict.json()["detail"]

    def test_export_csv(self, client, finished_job):
        response = client.get(f"/api/reconciliation/{finished_job}/export", params={"format": "csv"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert f"reconciliation_{finished_job}.csv" in response.headers["content-disposition"]
        exported = parse_csv(response.text, delimiter=",")
        assert exported.row_count == 4

    def test_export_filtered_xlsx(self, client, finished_job):
        response = client.get(
            f"/api/reconciliation/{finished_job}/export",
            params={"format": "xlsx", "status": "matched"},
        )

        wb = load_workbook(io.BytesIO(response.content))
        assert wb["Reconciliation"].max_row == 3

    def test_export_pdf(self, client, finished_job):
        response = client.get(f"/api/reconciliation/{finished_job}/export", params={"format": "pdf"})

        assert response.headers["content-type"] == "application/pdf"
        assert response.content.startswith(b"%PDF")

    def test_export_rejects_unknown_format(self, client, finished_job):
        response = client.get(f"/api/reconciliation/{finished_job}/export", params={"format": "ods"})
        assert response.status_code == 422

    def test_unfinished_and_failed_jobs(self, client):
        pending = ReconciliationJob()
        failed = ReconciliationJob(status=ReconciliationStatus.FAILED, errors=["boom"])
        api.jobs[pending.id] = pending
        api.jobs[failed.id] = failed

        response = client.get(f"/api/reconciliation/{pending.id}/result")
        assert response.status_code == 400
        assert response.json()["detail"] == "Job not finished. Status: pending"

        response = client.get(f"/api/reconciliation/{failed.id}/export")
        assert response.status_code == 400
        assert response.json()["detail"] == "Job failed: boom"

    def test_settings_roundtrip(self, client, monkeypatch):
        written = {}

        def fake_update(updates):
            written.update(updates)
            return True

        monkeypatch.setattr(api, "update_env_file", fake_update)

        assert client.get("/settings").json()["strategy"] in ("strict", "smart")
        assert client.post("/settings", json={}).status_code == 400

        response = client.post("/settings", json={"default_date_window_days": 3})
        assert response.status_code == 200
        assert written == {"default_date_window_days": 3}

    def test_settings_write_failure(self, client, monkeypatch):
        monkeypatch.setattr(api, "update_env_file", lambda updates: False)

        response = client.post("/settings", json={"default_currency": "EUR"})
        assert response.status_code == 500


class TestBackgroundRunner:
    """Job runner used by the API."""

    @pytest.mark.asyncio
    async def test_run_reconciliation(self, ledgers, settings):
        bank, bank_mapping, cashbook, cashbook_mapping = ledgers
        job = ReconciliationJob(settings=settings)

        await api.run_reconciliation(
            job,
            api.StoredDataset("b", TransactionSource.BANK, bank, bank_mapping),
            api.StoredDataset("c", TransactionSource.CASHBOOK, cashbook, cashbook_mapping),
        )

        assert job.status == ReconciliationStatus.COMPLETED
        assert job.result.summary.matched_pairs == 2


class TestCLI:
    """Command line reconcile."""

    @pytest.fixture
    def files(self, tmp_path, bank_csv, cashbook_csv):
        bank = tmp_path / "bank.csv"
        cashbook = tmp_path / "cashbook.csv"
        bank.write_text(bank_csv, encoding="utf-8")
        cashbook.write_text(cashbook_csv, encoding="utf-8")
        return bank, cashbook

    def test_reconcile_writes_output(self, files, tmp_path, capsys):
        bank, cashbook = files
        output = tmp_path / "out.csv"

        code = cli_main([
            "reconcile", str(bank), str(cashbook),
            "--tolerance", "0", "--window", "0", "--output", str(output),
        ])

        assert code == EXIT_OK
        assert "Matched pairs:         2" in capsys.readouterr().out
        assert parse_csv(output.read_text(encoding="utf-8")).row_count == 4

    def test_reconcile_xlsx_output(self, files, tmp_path):
        bank, cashbook = files
        output = tmp_path / "out.xlsx"

        assert cli_main(["reconcile", str(bank), str(cashbook), "--output", str(output)]) == EXIT_OK
        assert load_workbook(output).sheetnames == ["Reconciliation", "Summary"]

    def test_missing_file(self, files, tmp_path, capsys):
        _, cashbook = files

        code = cli_main(["reconcile", str(tmp_path / "nope.csv"), str(cashbook)])

        assert code == EXIT_PARSE_ERROR
        assert capsys.readouterr().err.startswith("Error:")

    def test_validation_failure(self, files, capsys):
        bank, cashbook = files

        code = cli_main([
            "reconcile", str(bank), str(cashbook), "--bank-map", "amount_column=Nope",
        ])

        assert code == EXIT_VALIDATION_FAILED
        assert "Validation error: bank: Missing required columns: amount ('Nope')" in capsys.readouterr().err

    def test_bad_arguments(self, files):
        bank, cashbook = files

        with pytest.raises(SystemExit):
            cli_main(["reconcile", str(bank), str(cashbook), "--tolerance", "-1"])
        with pytest.raises(SystemExit):
            cli_main(["reconcile", str(bank), str(cashbook), "--bank-map", "colour=Blue"])


class TestAmbient:
    """Logging and .env persistence helpers."""

    def test_setup_logging_writes_file(self, tmp_path):
        log_file = tmp_path / "logs" / "app.log"
        setup_logging("INFO", log_file)

        structlog.get_logger("bankrec.test").info("hello", job_id="42")

        text = log_file.read_text(encoding="utf-8")
        assert "event='hello'" in text
        assert "job_id='42'" in text
        setup_logging("WARNING")

    def test_update_env_file(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("APP_ENV=development\n# note\nHOST=0.0.0.0", encoding="utf-8")

        assert update_env_file(
            {"app_env": "production", "default_currency": "EUR", "port": None},
            env_file,
        )

        assert env_file.read_text(encoding="utf-8").splitlines() == [
            "APP_ENV=production",
            "# note",
            "HOST=0.0.0.0",
            "DEFAULT_CURRENCY=EUR",
        ]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
