"""
Export of reconciled records as CSV and JSON.

CSV output starts with a UTF-8 byte-order mark so spreadsheet applications
detect the encoding of the Chinese headers. Unrecognized fields are written
as the UNRECOGNIZED marker.
"""

import csv
import io
import json
from decimal import Decimal
from pathlib import Path
from typing import Optional

from .config import CSV_HEADERS, UNRECOGNIZED, logger
from .schemas import DocumentRecord


BOM = "﻿"


def format_amount(amount: Optional[Decimal]) -> str:
    if amount is None:
        return UNRECOGNIZED
    return f"{amount:.2f}"


def format_rate(rate: Optional[int]) -> str:
    if rate is None:
        return UNRECOGNIZED
    return f"{rate}%"


def record_to_row(record: DocumentRecord) -> list[str]:
    """One CSV row, in CSV_HEADERS order."""
    def text(value: Optional[str]) -> str:
        return UNRECOGNIZED if value is None else value

    return [
        record.file_id,
        text(record.invoice_code),
        text(record.invoice_number),
        text(record.issue_date),
        text(record.buyer_name),
        text(record.buyer_tax_id),
        text(record.seller_name),
        text(record.seller_tax_id),
        format_amount(record.total_amount),
        text(record.total_amount_words),
        format_amount(record.tax_amount),
        format_amount(record.pre_tax_amount),
        format_rate(record.tax_rate),
    ]


def records_to_csv(records: list[DocumentRecord]) -> str:
    """
    Render records as a BOM-prefixed CSV document.

    Fields containing a comma, a quote or a line break are quoted, with
    embedded quotes doubled.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for record in records:
        writer.writerow(record_to_row(record))
    return BOM + buffer.getvalue()


def write_csv(records: list[DocumentRecord], output_path: Path) -> None:
    """
    Write records to a CSV file.

    Args:
        records: Reconciled records
        output_path: Path to output CSV file
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8", newline="") as f:
        f.write(records_to_csv(records))

    logger.info(f"Wrote {len(records)} records to: {output_path}")


def write_records_json(records: list[DocumentRecord], output_path: Path) -> None:
    """Write records, notes included, to a JSON file."""
    output_data = [
        record.model_dump(mode="json", exclude={"raw_text"}) for record in records
    ]

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(output_data, f, indent=2, ensure_ascii=False)

    logger.info(f"Wrote {len(records)} records to: {output_path}")
