"""
Tests for the FastAPI application.
"""

import pytest
from fastapi.testclient import TestClient

from invoice_recon import api
from invoice_recon.exporter import BOM

from conftest import BUYER, SELLER, SELLER_TAX_ID


@pytest.fixture
def client() -> TestClient:
    api.tax_cache.reset()
    return TestClient(api.app)


class TestSystemEndpoints:
    """Tests for health, fields and cache endpoints."""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["version"] == "0.1.0"
        assert body["cached_companies"] == 0

    def test_fields(self, client):
        body = client.get("/fields").json()
        assert "total_amount" in body["fields"]
        assert body["total_fields"] == len(body["fields"])

    def test_cache_listing_after_extraction(self, client, sample_text):
        client.post("/extract-text", json={"documents": [{"file_id": "a.pdf", "texts": [sample_text]}]})
        entries = client.get("/cache").json()["entries"]
        assert {"company": SELLER, "tax_id": SELLER_TAX_ID, "confidence": 1} in entries


class TestExtractText:
    """Tests for /extract-text."""

    def test_extract_single_document(self, client, sample_text):
        response = client.post(
            "/extract-text",
            json={"documents": [{"file_id": "a.pdf", "texts": [sample_text]}]},
        )
        assert response.status_code == 200
        body = response.json()
        record = body["records"][0]
        assert record["file_id"] == "a.pdf"
        assert record["buyer_name"] == BUYER
        assert record["total_amount"] == "106.00"
        assert record["tax_rate"] == 6
        assert "raw_text" not in record
        assert body["summary"]["processed_documents"] == 1

    def test_failed_document_reported(self, client, sample_text):
        response = client.post(
            "/extract-text",
            json={"documents": [
                {"file_id": "a.pdf", "texts": [sample_text]},
                {"file_id": "b.pdf", "texts": []},
            ]},
        )
        body = response.json()
        assert [f["file_id"] for f in body["failures"]] == ["b.pdf"]
        assert len(body["records"]) == 1

    def test_empty_batch_rejected(self, client):
        response = client.post("/extract-text", json={"documents": []})
        assert response.status_code == 422


class TestExtractFiles:
    """Tests for /extract-pdfs."""

    def test_text_upload(self, client, sample_text):
        response = client.post(
            "/extract-pdfs",
            files=[("files", ("invoice.txt", sample_text.encode("utf-8"), "text/plain"))],
        )
        assert response.status_code == 200
        assert response.json()["records"][0]["seller_name"] == SELLER

    def test_unsupported_upload_reported(self, client, sample_text):
        response = client.post(
            "/extract-pdfs",
            files=[
                ("files", ("invoice.txt", sample_text.encode("utf-8"), "text/plain")),
                ("files", ("image.png", b"\x89PNG", "image/png")),
            ],
        )
        body = response.json()
        assert [f["file_id"] for f in body["failures"]] == ["image.png"]
        assert body["summary"]["total_documents"] == 2
        assert body["summary"]["failed_documents"] == 1

    def test_only_unsupported_uploads(self, client):
        response = client.post(
            "/extract-pdfs",
            files=[("files", ("image.png", b"\x89PNG", "image/png"))],
        )
        assert response.status_code == 422


class TestExportCsv:
    """Tests for /export-csv."""

    def test_export(self, client):
        response = client.post(
            "/export-csv",
            json={"records": [{"file_id": "a.pdf", "total_amount": "106.00", "tax_rate": 6}]},
        )
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert response.content.startswith(BOM.encode("utf-8"))
        lines = response.content.decode("utf-8-sig").splitlines()
        assert lines[0].startswith("文件名,发票代码")
        assert lines[1].startswith("a.pdf,")
        assert lines[1].endswith(",106.00,未识别,未识别,未识别,6%")

    def test_invalid_rate_rejected(self, client):
        response = client.post("/export-csv", json={"records": [{"file_id": "a.pdf", "tax_rate": 7}]})
        assert response.status_code == 422


class TestNumerals:
    """Tests for numeral conversion endpoints."""

    def test_to_words(self, client):
        response = client.get("/numerals/to-words", params={"amount": "106.00"})
        assert response.status_code == 200
        assert response.json()["words"] == "壹佰零陆圆整"

    def test_to_words_invalid(self, client):
        response = client.get("/numerals/to-words", params={"amount": "abc"})
        assert response.status_code == 422

    def test_from_words(self, client):
        response = client.get("/numerals/from-words", params={"words": "壹佰零陆圆整"})
        assert response.status_code == 200
        assert response.json()["amount"] == "106.00"

    def test_from_words_invalid(self, client):
        response = client.get("/numerals/from-words", params={"words": "hello"})
        assert response.status_code == 422
