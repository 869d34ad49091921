"""Tests for API endpoints."""

from fastapi.testclient import TestClient

from app.billing.config import Settings, get_settings
from app.billing.main import app
from app.billing.services.pdf_service import PDFConversionError, get_pdf_service

from conftest import FakePDFService


def upload(client: TestClient, content: bytes, content_type: str = "application/pdf"):
    return client.post(
        "/extract",
        files={"file": ("billing.pdf", content, content_type)},
    )


class TestHealthEndpoints:
    """Tests for health check endpoints."""

    def test_root_endpoint(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json() == {"status": True, "message": "Billing PDF API is running"}

    def test_health_endpoint(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] is True

    def test_debug_endpoint(self, client):
        """Reports the client library version and active settings."""
        response = client.get("/debug")
        assert response.status_code == 200
        data = response.json()
        assert set(data) == {"openai_version", "model", "extraction_strategy"}
        assert data["model"] == "gpt-4o-mini"
        assert data["extraction_strategy"] == "lines"

    def test_cors_allows_local_frontend(self, client):
        response = client.get("/", headers={"Origin": "http://localhost:3000"})
        assert response.headers["access-control-allow-origin"] == "http://localhost:3000"


class TestExtractEndpoint:
    """Tests for the upload endpoint."""

    def test_non_pdf_upload_rejected(self, client, registry):
        """Non-PDF uploads get the failure envelope and no job is created."""
        response = upload(client, b"name,mrn\n", content_type="text/csv")
        assert response.status_code == 400
        assert response.json() == {
            "status": False,
            "data": [],
            "error": "Please upload a PDF",
        }
        assert len(registry) == 0

    def test_missing_file_rejected(self, client):
        response = client.post("/extract")
        assert response.status_code == 400
        assert response.json()["error"] == "Please upload a PDF"

    def test_text_field_instead_of_file_rejected(self, client, registry):
        """A plain form value named file gets the rejection envelope, not a 422."""
        response = client.post("/extract", data={"file": "hello"})
        assert response.status_code == 400
        assert response.json() == {
            "status": False,
            "data": [],
            "error": "Please upload a PDF",
        }
        assert len(registry) == 0

    def test_upload_returns_job_id(self, client, sample_pdf_bytes, fake_pdf):
        """The upload is accepted immediately with a job id."""
        response = upload(client, sample_pdf_bytes)
        assert response.status_code == 202
        data = response.json()
        assert data["status"] is True
        assert data["jobId"]
        assert data["message"] == f"Processing started. Poll /status/{data['jobId']}"
        assert fake_pdf.received == [sample_pdf_bytes]

    def test_pdf_content_type_suffix_is_accepted(self, client, sample_pdf_bytes):
        response = upload(client, sample_pdf_bytes, content_type="application/x-pdf")
        assert response.status_code == 202


class TestStatusEndpoint:
    """Tests for job polling."""

    def test_completed_job_returns_rows(self, client, sample_pdf_bytes):
        """The reference document comes back as one row with all nine keys."""
        job_id = upload(client, sample_pdf_bytes).json()["jobId"]

        response = client.get(f"/status/{job_id}")
        assert response.status_code == 200
        assert response.json() == {
            "status": True,
            "data": [
                {
                    "Name": "Alo, Benjamin",
                    "MemberID": "9898293",
                    "T1023AuthId": "146080416",
                    "T1023Range": "4/1-6/30",
                    "T1023BillDate": None,
                    "H0044AuthId": None,
                    "H0044Range": None,
                    "H0044BillDate": None,
                    "Paid": None,
                }
            ],
        }

    def test_unknown_job_returns_404(self, client):
        response = client.get("/status/x")
        assert response.status_code == 404
        assert response.json() == {"error": "Job x not found"}

    def test_pending_job(self, client, registry):
        job_id = registry.create()
        response = client.get(f"/status/{job_id}")
        assert response.status_code == 200
        assert response.json() == {"status": "pending"}

    def test_failed_job_reports_reason(self, client, registry, sample_pdf_bytes):
        """Decoder failures end the job with an error, never empty data."""
        failing = FakePDFService(error=PDFConversionError("PDF decoding failed: bad xref"))
        app.dependency_overrides[get_pdf_service] = lambda: failing

        job_id = upload(client, sample_pdf_bytes).json()["jobId"]
        response = client.get(f"/status/{job_id}")
        assert response.status_code == 200
        assert response.json() == {
            "status": "error",
            "error": "PDF decoding failed: bad xref",
        }

    def test_document_without_text_is_an_error(self, client, fake_pdf, sample_pdf_bytes):
        fake_pdf.pages = [[]]
        job_id = upload(client, sample_pdf_bytes).json()["jobId"]
        assert client.get(f"/status/{job_id}").json() == {
            "status": "error",
            "error": "No text extracted from PDF",
        }

    def test_expired_job_returns_404(self, client, sample_pdf_bytes):
        """Jobs past their retention window are gone."""
        app.dependency_overrides[get_settings] = lambda: Settings(
            openai_api_key="test-key", job_retention_seconds=0
        )
        job_id = upload(client, sample_pdf_bytes).json()["jobId"]
        response = client.get(f"/status/{job_id}")
        assert response.status_code == 404
        assert response.json() == {"error": f"Job {job_id} not found"}
