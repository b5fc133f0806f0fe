"""
Invoice Field Extraction & Reconciliation Engine

A Python service for extracting structured fields from Chinese VAT invoice
text and reconciling them into arithmetically consistent records.
"""

__version__ = "0.1.0"
__author__ = "Invoice Recon Team"

from .schemas import BatchResult, BatchSummary, DocumentInput, DocumentRecord, ExtractionFailure
from .cache import CounterpartyTaxCache
from .extractor import build_document_text, extract_document
from .reconciler import reconcile_document
from .orchestrator import BatchOrchestrator, process_document
from .numerals import from_words, to_words
from .exporter import records_to_csv

__all__ = [
    "BatchResult",
    "BatchSummary",
    "DocumentInput",
    "DocumentRecord",
    "ExtractionFailure",
    "CounterpartyTaxCache",
    "build_document_text",
    "extract_document",
    "reconcile_document",
    "BatchOrchestrator",
    "process_document",
    "from_words",
    "to_words",
    "records_to_csv",
]
