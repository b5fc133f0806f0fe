"""
FastAPI application for the invoice reconciliation engine.

Provides REST API endpoints for:
- Health check
- Batch extraction from raw texts or uploaded PDF/TXT files
- CSV export of reconciled records
- Chinese numeral conversion
- Inspection of the counterparty tax cache
"""

from decimal import Decimal, InvalidOperation
from typing import List

from fastapi import FastAPI, File, HTTPException, Query, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from .acquisition import AcquisitionError, acquire_texts_from_bytes
from .cache import CounterpartyTaxCache
from .config import (
    API_HOST,
    API_PORT,
    MAX_UPLOAD_SIZE_MB,
    MAX_WORKERS,
    SUPPORTED_EXTENSIONS,
    TAX_CACHE_PATH,
    logger,
)
from .exporter import records_to_csv
from .fields import get_field_descriptions
from .numerals import from_words, to_words
from .orchestrator import BatchOrchestrator
from .schemas import (
    BatchResult,
    CacheSnapshot,
    DocumentInput,
    ExportCsvRequest,
    ExtractionFailure,
    ExtractTextRequest,
)


# ============================================================================
# FastAPI App Configuration
# ============================================================================

app = FastAPI(
    title="Invoice Recon API",
    description="""
    Invoice field extraction and reconciliation API.

    Extracts invoice code, number, date, counterparties, amounts, tax rate
    and amount in words from Chinese VAT invoice text, and reconciles them
    into arithmetically consistent records.

    ## Features

    - **Extract Text**: Submit raw document texts as one batch
    - **Extract Files**: Upload PDF or TXT invoices
    - **Export CSV**: Render reconciled records as a CSV table
    - **Numerals**: Convert between amounts and formal Chinese numerals
    """,
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Shared by every request so tax ids learned from one batch help the next
tax_cache = CounterpartyTaxCache()

# raw_text is kept internal; the normalized document text is large
_RECORD_EXCLUDE = {"records": {"__all__": {"raw_text"}}}


# ============================================================================
# Request/Response Models
# ============================================================================

class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
    cached_companies: int


class NumeralResponse(BaseModel):
    """An amount and its written form."""
    amount: Decimal
    words: str


# ============================================================================
# API Endpoints
# ============================================================================

@app.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check() -> HealthResponse:
    """
    Health check endpoint.

    Returns the service status, version and the number of cached companies.
    """
    from . import __version__
    return HealthResponse(status="ok", version=__version__, cached_companies=len(tax_cache))


@app.post(
    "/extract-text",
    response_model=BatchResult,
    response_model_exclude=_RECORD_EXCLUDE,
    tags=["Extraction"],
    summary="Extract invoices from raw texts",
)
async def extract_text(request: ExtractTextRequest) -> BatchResult:
    """
    Extract and reconcile a batch of documents given as raw text.

    Each document may carry several texts (one per acquisition method, e.g.
    text layer and OCR). Documents are processed concurrently, then
    cross-validated as one batch.
    """
    logger.info(f"Received extraction request for {len(request.documents)} documents")
    orchestrator = BatchOrchestrator(cache=tax_cache, max_workers=MAX_WORKERS)
    return await run_in_threadpool(orchestrator.process_batch, request.documents)


@app.post(
    "/extract-pdfs",
    response_model=BatchResult,
    response_model_exclude=_RECORD_EXCLUDE,
    tags=["Extraction"],
    summary="Extract invoices from uploaded files",
)
async def extract_pdfs(
    files: List[UploadFile] = File(..., description="PDF or TXT invoice files to process")
) -> BatchResult:
    """
    Extract and reconcile uploaded PDF or TXT invoices.

    Files that cannot be read are reported as failures alongside the records
    of the others.

    **Limitations:**
    - Maximum file size: MAX_UPLOAD_SIZE_MB per file
    - Supported formats: .pdf, .txt
    """
    if not files:
        raise HTTPException(status_code=400, detail="No files uploaded")

    max_size = MAX_UPLOAD_SIZE_MB * 1024 * 1024
    documents: List[DocumentInput] = []
    failures: List[ExtractionFailure] = []

    for file in files:
        filename = file.filename or "upload"
        if not any(filename.lower().endswith(ext) for ext in SUPPORTED_EXTENSIONS):
            failures.append(ExtractionFailure(file_id=filename, error="Unsupported file type"))
            continue

        content = await file.read()
        if len(content) > max_size:
            failures.append(ExtractionFailure(
                file_id=filename,
                error=f"File too large (max {MAX_UPLOAD_SIZE_MB}MB)",
            ))
            continue

        try:
            texts = await run_in_threadpool(acquire_texts_from_bytes, content, filename)
            documents.append(DocumentInput(file_id=filename, texts=texts))
        except AcquisitionError as e:
            logger.error(f"Failed to read {filename}: {e}")
            failures.append(ExtractionFailure(file_id=filename, error=str(e)))

    if not documents:
        raise HTTPException(
            status_code=422,
            detail=f"Could not read any document. Errors: "
                   f"{'; '.join(f'{f.file_id}: {f.error}' for f in failures)}",
        )

    orchestrator = BatchOrchestrator(cache=tax_cache, max_workers=MAX_WORKERS)
    result = await run_in_threadpool(orchestrator.process_batch, documents)

    result.failures = failures + result.failures
    result.summary.total_documents += len(failures)
    result.summary.failed_documents += len(failures)
    return result


@app.post("/export-csv", tags=["Export"], summary="Render records as CSV")
async def export_csv(request: ExportCsvRequest) -> Response:
    """
    Render reconciled records as a BOM-prefixed UTF-8 CSV table.
    """
    return Response(
        content=records_to_csv(request.records),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": 'attachment; filename="invoices.csv"'},
    )


@app.get("/numerals/to-words", response_model=NumeralResponse, tags=["Numerals"])
async def numerals_to_words(
    amount: str = Query(..., description="Amount in yuan, e.g. 106.00")
) -> NumeralResponse:
    """Write an amount in formal Chinese numerals."""
    try:
        value = Decimal(amount)
        return NumeralResponse(amount=value, words=to_words(value))
    except (InvalidOperation, ValueError) as e:
        raise HTTPException(status_code=422, detail=f"Invalid amount '{amount}': {e}")


@app.get("/numerals/from-words", response_model=NumeralResponse, tags=["Numerals"])
async def numerals_from_words(
    words: str = Query(..., description="Amount in Chinese numerals, e.g. 壹佰零陆圆整")
) -> NumeralResponse:
    """Parse an amount written in formal Chinese numerals."""
    amount = from_words(words)
    if amount is None:
        raise HTTPException(status_code=422, detail=f"Not a numeral amount: '{words}'")
    return NumeralResponse(amount=amount, words=words)


@app.get("/cache", response_model=CacheSnapshot, tags=["System"])
async def get_cache() -> CacheSnapshot:
    """List every cached (company, tax id) association with its confidence."""
    return CacheSnapshot(entries=tax_cache.entries())


@app.get("/fields", tags=["System"])
async def list_fields():
    """
    List every extracted field with its description.
    """
    descriptions = get_field_descriptions()
    return {
        "total_fields": len(descriptions),
        "fields": descriptions,
    }


# ============================================================================
# Error Handlers
# ============================================================================

@app.exception_handler(Exception)
async def generic_exception_handler(request, exc):
    """Handle unexpected exceptions."""
    logger.exception(f"Unexpected error: {exc}")
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


# ============================================================================
# Startup/Shutdown Events
# ============================================================================

@app.on_event("startup")
async def startup_event():
    """Restore the tax cache and log startup information."""
    if TAX_CACHE_PATH:
        tax_cache.restore(TAX_CACHE_PATH)
    logger.info(f"Invoice Recon API starting on {API_HOST}:{API_PORT}")


@app.on_event("shutdown")
async def shutdown_event():
    """Persist the tax cache on shutdown."""
    if TAX_CACHE_PATH:
        tax_cache.save(TAX_CACHE_PATH)
    logger.info("Invoice Recon API shutting down")


# ============================================================================
# Main Entry Point
# ============================================================================

def run_server():
    """Run the API server using uvicorn."""
    import uvicorn
    uvicorn.run(app, host=API_HOST, port=API_PORT)


if __name__ == "__main__":
    run_server()
