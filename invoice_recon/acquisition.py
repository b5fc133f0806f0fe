"""
Text acquisition for invoice documents.

Each document yields one text per acquisition method:
- PDF files: the pdfplumber text layer in reading order, then again with
  layout preserved (column alignment often keeps labels next to values)
- .txt files: a pre-extracted (e.g. OCR) text dump, used as is
"""

import tempfile
from pathlib import Path
from typing import Union

import pdfplumber

from .config import SUPPORTED_EXTENSIONS, logger


class AcquisitionError(Exception):
    """Raised when no text can be obtained from a document."""


# ============================================================================
# Readers
# ============================================================================

def _read_pdf_pages(pdf_path: Path, layout: bool) -> str:
    text_parts = []
    with pdfplumber.open(pdf_path) as pdf:
        for page in pdf.pages:
            page_text = page.extract_text(layout=layout)
            if page_text and page_text.strip():
                text_parts.append(page_text)
    return "\n".join(text_parts)


def extract_texts_from_pdf(pdf_path: Path) -> list[str]:
    """
    Read the text layer of a PDF twice: plain and layout-preserving.

    Args:
        pdf_path: Path to the PDF file

    Returns:
        Non-empty texts, plain reading first

    Raises:
        AcquisitionError: If the file cannot be opened or has no text layer
    """
    texts = []
    try:
        for layout in (False, True):
            text = _read_pdf_pages(pdf_path, layout=layout)
            if text.strip():
                texts.append(text)
    except Exception as e:
        logger.error(f"Error extracting text from {pdf_path}: {e}")
        raise AcquisitionError(f"Could not read PDF {pdf_path.name}: {e}") from e

    if not texts:
        raise AcquisitionError(f"No text layer in PDF: {pdf_path.name}")
    return texts


def extract_text_from_txt(txt_path: Path) -> list[str]:
    """Read a text dump; undecodable bytes are replaced."""
    try:
        text = txt_path.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        raise AcquisitionError(f"Could not read {txt_path.name}: {e}") from e
    if not text.strip():
        raise AcquisitionError(f"Empty text file: {txt_path.name}")
    return [text]


# ============================================================================
# Entry Points
# ============================================================================

def acquire_texts(path: Union[str, Path]) -> list[str]:
    """
    Obtain every available text of a document.

    Raises:
        AcquisitionError: If the file is missing, unsupported or unreadable
    """
    path = Path(path)
    if not path.is_file():
        raise AcquisitionError(f"File not found: {path}")

    suffix = path.suffix.lower()
    if suffix == ".pdf":
        return extract_texts_from_pdf(path)
    if suffix == ".txt":
        return extract_text_from_txt(path)
    raise AcquisitionError(f"Unsupported file type '{suffix}': {path.name}")


def acquire_texts_from_bytes(content: bytes, filename: str) -> list[str]:
    """
    Obtain the texts of an uploaded document (for API uploads).

    Args:
        content: Raw file content
        filename: Original filename, used for its extension
    """
    suffix = Path(filename).suffix.lower()
    if suffix not in SUPPORTED_EXTENSIONS:
        raise AcquisitionError(f"Unsupported file type '{suffix}': {filename}")

    with tempfile.NamedTemporaryFile(suffix=suffix, delete=False) as tmp:
        tmp.write(content)
        tmp_path = Path(tmp.name)

    try:
        return acquire_texts(tmp_path)
    finally:
        tmp_path.unlink()


def list_documents(input_dir: Path) -> list[Path]:
    """Supported documents in a directory, sorted by name."""
    if not input_dir.is_dir():
        raise FileNotFoundError(f"Directory not found: {input_dir}")

    documents = sorted(
        p for p in input_dir.iterdir()
        if p.is_file() and p.suffix.lower() in SUPPORTED_EXTENSIONS
    )
    if not documents:
        logger.warning(f"No supported documents found in: {input_dir}")
    else:
        logger.info(f"Found {len(documents)} documents to process")
    return documents
