"""
Tests for batch orchestration and cross-document validation.
"""

import threading
from decimal import Decimal

import pytest

from invoice_recon.cache import CounterpartyTaxCache
from invoice_recon.orchestrator import (
    BatchOrchestrator,
    BatchStatus,
    cross_validate,
    format_summary_text,
    process_document,
)
from invoice_recon.schemas import DocumentInput, DocumentRecord

from conftest import BUYER, SELLER, SELLER_TAX_ID


@pytest.fixture
def orchestrator(cache) -> BatchOrchestrator:
    return BatchOrchestrator(cache=cache, max_workers=4)


class TestProcessDocument:
    """Tests for single-document processing."""

    def test_document_input(self, sample_text, cache):
        record = process_document(DocumentInput(file_id="a.pdf", texts=[sample_text]), cache)
        assert record.file_id == "a.pdf"
        assert record.total_amount == Decimal("106.00")

    def test_text_file(self, sample_text, cache, tmp_path):
        path = tmp_path / "invoice.txt"
        path.write_text(sample_text, encoding="utf-8")
        record = process_document(path, cache)
        assert record.file_id == "invoice.txt"
        assert record.seller_name == SELLER


class TestBatch:
    """Tests for BatchOrchestrator.process_batch."""

    def test_results_in_submission_order(self, orchestrator, invoice_text):
        items = [
            DocumentInput(file_id=f"doc-{i}.pdf", texts=[invoice_text(total=f"{100 + i}.00")])
            for i in range(10)
        ]
        result = orchestrator.process_batch(items)
        assert [r.file_id for r in result.records] == [f"doc-{i}.pdf" for i in range(10)]
        assert result.summary.processed_documents == 10
        assert orchestrator.status is BatchStatus.DONE

    def test_failures_isolated(self, orchestrator, sample_text, tmp_path):
        items = [
            DocumentInput(file_id="good.pdf", texts=[sample_text]),
            DocumentInput(file_id="empty.pdf", texts=[]),
            tmp_path / "missing.pdf",
        ]
        result = orchestrator.process_batch(items)

        assert [r.file_id for r in result.records] == ["good.pdf"]
        assert [f.file_id for f in result.failures] == ["empty.pdf", "missing.pdf"]
        assert result.summary.total_documents == 3
        assert result.summary.failed_documents == 2

    def test_cancelled_before_start_skips_everything(self, orchestrator, sample_text):
        event = threading.Event()
        event.set()
        items = [DocumentInput(file_id=f"doc-{i}.pdf", texts=[sample_text]) for i in range(3)]

        result = orchestrator.process_batch(items, cancel_event=event)

        assert result.records == []
        assert result.skipped == ["doc-0.pdf", "doc-1.pdf", "doc-2.pdf"]
        assert result.summary.skipped_documents == 3

    def test_cancel_resets_after_batch(self, orchestrator, sample_text):
        items = [DocumentInput(file_id="doc.pdf", texts=[sample_text])]
        orchestrator.cancel()
        assert orchestrator.process_batch(items).skipped == ["doc.pdf"]
        assert orchestrator.process_batch(items).skipped == []

    def test_missing_tax_id_filled_across_batch(self, invoice_text):
        # One worker runs documents in order, so the cache is still empty for 3.pdf
        orchestrator = BatchOrchestrator(cache=CounterpartyTaxCache(), max_workers=1)
        items = [
            DocumentInput(file_id="3.pdf", texts=[invoice_text(seller_tax_id=None)]),
            DocumentInput(file_id="1.pdf", texts=[invoice_text()]),
            DocumentInput(file_id="2.pdf", texts=[invoice_text()]),
        ]
        result = orchestrator.process_batch(items)
        assert [r.seller_tax_id for r in result.records] == [SELLER_TAX_ID] * 3
        assert result.summary.cross_validated_backfills == 1
        assert "backfill:seller_tax_id" in result.records[0].notes

    def test_summary_counts(self, orchestrator, invoice_text):
        items = [DocumentInput(file_id="a.pdf", texts=[invoice_text(words="壹佰圆整")])]
        result = orchestrator.process_batch(items)
        assert result.summary.note_counts == {"reconciled:words_overwritten": 1}
        assert result.summary.unrecognized_counts == {}

    def test_default_cache_created(self):
        assert isinstance(BatchOrchestrator().cache, CounterpartyTaxCache)


class TestCrossValidate:
    """Tests for the cross-document pass."""

    def test_most_frequent_tax_id_wins(self):
        records = [
            DocumentRecord(file_id="1", seller_name="Acme Co", seller_tax_id="T1T1T1T1T1T1T1T"),
            DocumentRecord(file_id="2", seller_name="Acme Co", seller_tax_id="T1T1T1T1T1T1T1T"),
            DocumentRecord(file_id="3", buyer_name="ACME CO", buyer_tax_id="T2T2T2T2T2T2T2T"),
            DocumentRecord(file_id="4", seller_name="acme co"),
        ]
        assert cross_validate(records) == 1
        assert records[3].seller_tax_id == "T1T1T1T1T1T1T1T"
        assert "backfill:seller_tax_id" in records[3].notes

    def test_unknown_company_left_missing(self):
        records = [
            DocumentRecord(file_id="1", seller_name="Acme Co", seller_tax_id="T1T1T1T1T1T1T1T"),
            DocumentRecord(file_id="2", seller_name="Other Co"),
        ]
        assert cross_validate(records) == 0
        assert records[1].seller_tax_id is None

    def test_filled_id_not_shared_by_both_roles(self):
        records = [
            DocumentRecord(file_id="1", seller_name="Acme Co", seller_tax_id="T1T1T1T1T1T1T1T"),
            DocumentRecord(
                file_id="2",
                buyer_name="Acme Co",
                seller_name="Globex Co",
                seller_tax_id="T1T1T1T1T1T1T1T",
                raw_text="Acme Co ... T1T1T1T1T1T1T1T",
            ),
        ]
        cross_validate(records)
        assert not (records[1].buyer_tax_id and records[1].buyer_tax_id == records[1].seller_tax_id)


class TestSummaryText:
    """Tests for CLI summary formatting."""

    def test_format_summary_text(self, orchestrator, sample_text):
        result = orchestrator.process_batch([
            DocumentInput(file_id="a.pdf", texts=[sample_text]),
            DocumentInput(file_id="b.pdf", texts=[]),
        ])
        text = format_summary_text(result.summary)
        assert "EXTRACTION SUMMARY" in text
        assert "Total documents:          2" in text
        assert "Failed documents:         1" in text
