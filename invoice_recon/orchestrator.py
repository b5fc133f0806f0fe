"""
Batch processing of invoice documents.

A batch moves through SUBMITTED -> EXTRACTING_ALL -> CROSS_VALIDATING -> DONE.
Documents are extracted and reconciled concurrently against one shared tax
cache. Once every document has finished, a cross-document pass fills tax ids
that are still missing with the id the batch most often paired with the same
company, and produces the batch summary.
"""

import threading
from collections import Counter
from concurrent.futures import ThreadPoolExecutor, as_completed
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from .acquisition import AcquisitionError, acquire_texts
from .cache import CounterpartyTaxCache, normalize_company
from .config import MAX_WORKERS, NoteCategory, logger
from .extractor import RECORD_FIELDS, build_document_text, extract_document
from .fields import Role
from .reconciler import reconcile_amounts, reconcile_document, resolve_role_conflicts
from .schemas import (
    BatchResult,
    BatchSummary,
    DocumentInput,
    DocumentRecord,
    ExtractionFailure,
)


BatchItem = Union[DocumentInput, Path]


class BatchStatus(str, Enum):
    SUBMITTED = "submitted"
    EXTRACTING_ALL = "extracting_all"
    CROSS_VALIDATING = "cross_validating"
    DONE = "done"


def item_id(item: BatchItem) -> str:
    if isinstance(item, DocumentInput):
        return item.file_id
    return Path(item).name


def process_document(item: BatchItem, cache: CounterpartyTaxCache) -> DocumentRecord:
    """
    Acquire, extract and reconcile one document.

    Args:
        item: Document texts, or a path to a .pdf/.txt file
        cache: Shared counterparty tax cache

    Returns:
        The reconciled DocumentRecord

    Raises:
        AcquisitionError: If the document yields no text
    """
    if isinstance(item, DocumentInput):
        file_id, texts = item.file_id, item.texts
    else:
        file_id, texts = Path(item).name, acquire_texts(item)

    text = build_document_text(texts)
    if not text:
        raise AcquisitionError(f"No text for document: {file_id}")

    record = extract_document(text, file_id)
    return reconcile_document(record, cache)


# ============================================================================
# Cross-Document Validation
# ============================================================================

def cross_validate(records: list[DocumentRecord]) -> int:
    """
    Fill missing tax ids from the pairs seen across the whole batch.

    Every (company, tax id) pair on any record, in either role, is counted.
    A role with a name but no tax id receives the most frequent tax id for
    that company; ties go to the pair seen first. Changed records are
    de-conflicted and their amounts reconciled again.

    Returns:
        Number of tax ids filled in
    """
    table: dict[str, Counter] = {}
    for record in records:
        for role in Role:
            name = getattr(record, f"{role.value}_name")
            tax_id = getattr(record, f"{role.value}_tax_id")
            if name and tax_id:
                table.setdefault(normalize_company(name), Counter())[tax_id] += 1

    filled = 0
    for record in records:
        changed = False
        for role in Role:
            name_field, tax_id_field = f"{role.value}_name", f"{role.value}_tax_id"
            name = getattr(record, name_field)
            if not name or getattr(record, tax_id_field):
                continue
            counts = table.get(normalize_company(name))
            if not counts:
                continue
            setattr(record, tax_id_field, counts.most_common(1)[0][0])
            record.add_note(f"{NoteCategory.BACKFILL.value}:{tax_id_field}")
            changed = True
            filled += 1

        if changed:
            resolve_role_conflicts(record)
            reconcile_amounts(record)

    logger.info(f"Cross-document validation filled {filled} tax ids")
    return filled


def build_summary(
    total: int,
    records: list[DocumentRecord],
    failures: list[ExtractionFailure],
    skipped: list[str],
    backfills: int = 0,
) -> BatchSummary:
    note_counts = Counter(note for record in records for note in record.notes)
    unrecognized_counts = Counter(
        name for record in records for name in RECORD_FIELDS if getattr(record, name) is None
    )
    return BatchSummary(
        total_documents=total,
        processed_documents=len(records),
        failed_documents=len(failures),
        skipped_documents=len(skipped),
        cross_validated_backfills=backfills,
        note_counts=dict(note_counts),
        unrecognized_counts=dict(unrecognized_counts),
    )


# ============================================================================
# Orchestrator
# ============================================================================

class BatchOrchestrator:
    """
    Runs batches of documents on a worker pool against one tax cache.

    Example:
        >>> orchestrator = BatchOrchestrator(max_workers=2)
        >>> result = orchestrator.process_batch([DocumentInput(file_id="a", texts=["..."])])
        >>> result.summary.processed_documents
        1
    """

    def __init__(self, cache: Optional[CounterpartyTaxCache] = None, max_workers: int = MAX_WORKERS):
        self.cache = cache if cache is not None else CounterpartyTaxCache()
        self.max_workers = max(1, max_workers)
        self.status = BatchStatus.SUBMITTED
        self._cancel_event = threading.Event()

    def cancel(self) -> None:
        """Skip every document of the running batch that has not started yet."""
        self._cancel_event.set()

    def _set_status(self, status: BatchStatus) -> None:
        self.status = status
        logger.info(f"Batch status: {status.value}")

    def _run_one(
        self,
        item: BatchItem,
        cancel_event: threading.Event,
    ) -> Union[DocumentRecord, ExtractionFailure, None]:
        # None marks a document skipped by cancellation
        if cancel_event.is_set():
            return None
        file_id = item_id(item)
        try:
            return process_document(item, self.cache)
        except Exception as e:
            logger.error(f"Failed to process {file_id}: {e}")
            return ExtractionFailure(file_id=file_id, error=str(e))

    def process_batch(
        self,
        items: list[BatchItem],
        cancel_event: Optional[threading.Event] = None,
    ) -> BatchResult:
        """
        Process a batch of documents.

        Per-document failures never abort the batch. Records come back in
        submission order whatever order the workers finish in.

        Args:
            items: Document texts or file paths
            cancel_event: Event that cancels documents not yet started;
                defaults to the one set by cancel()

        Returns:
            BatchResult with records, failures, skipped ids and summary
        """
        if cancel_event is None:
            cancel_event = self._cancel_event

        self._set_status(BatchStatus.SUBMITTED)
        logger.info(f"Processing batch of {len(items)} documents with {self.max_workers} workers")

        outcomes: list[Union[DocumentRecord, ExtractionFailure, None]] = [None] * len(items)
        try:
            self._set_status(BatchStatus.EXTRACTING_ALL)
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                futures = {
                    executor.submit(self._run_one, item, cancel_event): idx
                    for idx, item in enumerate(items)
                }
                for future in as_completed(futures):
                    outcomes[futures[future]] = future.result()
        finally:
            if cancel_event is self._cancel_event:
                self._cancel_event.clear()

        records: list[DocumentRecord] = []
        failures: list[ExtractionFailure] = []
        skipped: list[str] = []
        for item, outcome in zip(items, outcomes):
            if outcome is None:
                skipped.append(item_id(item))
            elif isinstance(outcome, ExtractionFailure):
                failures.append(outcome)
            else:
                records.append(outcome)

        if skipped:
            logger.warning(f"Batch cancelled, skipped {len(skipped)} documents")

        self._set_status(BatchStatus.CROSS_VALIDATING)
        backfills = cross_validate(records)

        summary = build_summary(len(items), records, failures, skipped, backfills)
        self._set_status(BatchStatus.DONE)
        logger.info(
            f"Batch complete: {summary.processed_documents} processed, "
            f"{summary.failed_documents} failed, {summary.skipped_documents} skipped"
        )
        return BatchResult(records=records, failures=failures, skipped=skipped, summary=summary)


def format_summary_text(summary: BatchSummary) -> str:
    """
    Format a BatchSummary as human-readable text for CLI output.
    """
    lines = [
        "=" * 50,
        "EXTRACTION SUMMARY",
        "=" * 50,
        f"Total documents:          {summary.total_documents}",
        f"Processed documents:      {summary.processed_documents}",
        f"Failed documents:         {summary.failed_documents}",
        "",
    ]

    if summary.skipped_documents > 0:
        lines.append(f"Skipped (cancelled):      {summary.skipped_documents}")
        lines.append("")

    if summary.cross_validated_backfills > 0:
        lines.append(f"Cross-document backfills: {summary.cross_validated_backfills}")
        lines.append("")

    if summary.unrecognized_counts:
        lines.append("Unrecognized Fields:")
        lines.append("-" * 40)
        for field_name, count in sorted(summary.unrecognized_counts.items(), key=lambda x: -x[1]):
            lines.append(f"  {field_name}: {count}")
        lines.append("")

    if summary.note_counts:
        lines.append("Reconciliation Notes:")
        lines.append("-" * 40)
        for note, count in sorted(summary.note_counts.items(), key=lambda x: -x[1]):
            lines.append(f"  {note}: {count}")
        lines.append("")

    lines.append("=" * 50)

    return "\n".join(lines)
