"""
Pydantic models for invoice records and batch results.

This module defines the core data structures used throughout the engine:
- DocumentRecord for the structured fields of one invoice
- DocumentInput and ExtractionFailure for batch input and per-document errors
- BatchSummary and BatchResult for batch-level outcomes
- CacheEntry and CacheSnapshot for the persisted counterparty tax cache
"""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from .config import VALID_TAX_RATES


class DocumentRecord(BaseModel):
    """
    Structured fields extracted from a single invoice document.

    Every field except the file identifier may be None when it could not be
    recognized. Amounts are kept as Decimal with two fractional digits.
    """

    file_id: str = Field(
        ...,
        min_length=1,
        description="Identifier of the source document (typically the file name)"
    )

    # ========================================================================
    # Identifiers
    # ========================================================================
    invoice_code: Optional[str] = Field(
        None,
        description="10-12 digit invoice code"
    )
    invoice_number: Optional[str] = Field(
        None,
        description="8 digit invoice number"
    )
    issue_date: Optional[str] = Field(
        None,
        description="Issue date as written on the invoice (YYYY年M月D日)"
    )

    # ========================================================================
    # Counterparties
    # ========================================================================
    buyer_name: Optional[str] = Field(None, description="Buyer company name")
    buyer_tax_id: Optional[str] = Field(None, description="Buyer taxpayer identification number")
    seller_name: Optional[str] = Field(None, description="Seller company name")
    seller_tax_id: Optional[str] = Field(None, description="Seller taxpayer identification number")

    # ========================================================================
    # Amounts
    # ========================================================================
    total_amount: Optional[Decimal] = Field(
        None,
        description="Total amount including tax"
    )
    total_amount_words: Optional[str] = Field(
        None,
        description="Total amount written out in formal Chinese numerals"
    )
    tax_amount: Optional[Decimal] = Field(None, description="Tax amount")
    pre_tax_amount: Optional[Decimal] = Field(None, description="Amount before tax")
    tax_rate: Optional[int] = Field(
        None,
        description="Tax rate percentage, one of 0, 3, 6, 9, 13"
    )

    # ========================================================================
    # Derivation Context
    # ========================================================================
    raw_text: str = Field(
        "",
        description="Normalized text the fields were derived from"
    )
    notes: list[str] = Field(
        default_factory=list,
        description="Reconciliation notes (e.g. 'reconciled:total_overwritten')"
    )

    @field_validator("tax_rate")
    @classmethod
    def check_tax_rate(cls, v: Optional[int]) -> Optional[int]:
        """Only enumerated VAT rates are accepted."""
        if v is not None and v not in VALID_TAX_RATES:
            raise ValueError(f"tax rate must be one of {VALID_TAX_RATES}, got {v}")
        return v

    def add_note(self, note: str) -> None:
        """Record a reconciliation note once."""
        if note not in self.notes:
            self.notes.append(note)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "file_id": "invoice_001.pdf",
                    "invoice_code": "011001900111",
                    "invoice_number": "12345678",
                    "issue_date": "2024年3月15日",
                    "buyer_name": "上海甲乙贸易有限公司",
                    "buyer_tax_id": "91310000MA1FL8XQ30",
                    "seller_name": "北京丙丁科技有限公司",
                    "seller_tax_id": "91110108MA01ABCD2X",
                    "total_amount": "106.00",
                    "total_amount_words": "壹佰零陆圆整",
                    "tax_amount": "6.00",
                    "pre_tax_amount": "100.00",
                    "tax_rate": 6,
                    "notes": [],
                }
            ]
        }
    }


class DocumentInput(BaseModel):
    """Raw text of one document, one entry per acquisition method."""
    file_id: str = Field(..., min_length=1, description="Identifier of the source document")
    texts: list[str] = Field(
        default_factory=list,
        description="Text produced by each acquisition method (text layer, OCR, ...)"
    )


class ExtractionFailure(BaseModel):
    """A document that produced no record."""
    file_id: str = Field(..., description="Identifier of the failed document")
    error: str = Field(..., description="Underlying cause")


class BatchSummary(BaseModel):
    """
    Aggregated statistics for a processed batch.
    """
    total_documents: int = Field(..., ge=0, description="Documents submitted")
    processed_documents: int = Field(..., ge=0, description="Documents that produced a record")
    failed_documents: int = Field(..., ge=0, description="Documents whose text could not be used")
    skipped_documents: int = Field(0, ge=0, description="Documents never started due to cancellation")
    cross_validated_backfills: int = Field(
        0,
        ge=0,
        description="Tax ids filled in by the cross-document pass"
    )
    note_counts: dict[str, int] = Field(
        default_factory=dict,
        description="Count of each reconciliation note across all records"
    )
    unrecognized_counts: dict[str, int] = Field(
        default_factory=dict,
        description="Count of records missing each field"
    )


class BatchResult(BaseModel):
    """Records in submission order plus the documents that did not make it."""
    records: list[DocumentRecord] = Field(default_factory=list)
    failures: list[ExtractionFailure] = Field(default_factory=list)
    skipped: list[str] = Field(
        default_factory=list,
        description="File ids not started because the batch was cancelled"
    )
    summary: BatchSummary


# ============================================================================
# Counterparty Cache Persistence
# ============================================================================

class CacheEntry(BaseModel):
    """One (company, tax id) pairing with its observation count."""
    company: str = Field(..., min_length=1)
    tax_id: str = Field(..., min_length=1)
    confidence: int = Field(..., ge=1)


class CacheSnapshot(BaseModel):
    """Serializable contents of a counterparty tax cache."""
    entries: list[CacheEntry] = Field(default_factory=list)


# ============================================================================
# API Request/Response Models
# ============================================================================

class ExtractTextRequest(BaseModel):
    """Request body for the /extract-text endpoint."""
    documents: list[DocumentInput] = Field(
        ...,
        min_length=1,
        description="Documents to process as one batch"
    )


class ExportCsvRequest(BaseModel):
    """Request body for the /export-csv endpoint."""
    records: list[DocumentRecord] = Field(default_factory=list)
