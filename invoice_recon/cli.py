"""
Command-line interface for the invoice reconciliation engine.

Commands:
- extract: Extract and reconcile a directory of invoices to CSV (and JSON)
- to-words / from-words: Convert between amounts and Chinese numerals
- cache: Inspect or reset a persisted counterparty tax cache
- version: Show version information
"""

from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Optional

import typer

from .acquisition import list_documents
from .cache import CounterpartyTaxCache
from .config import MAX_WORKERS, TAX_CACHE_PATH, logger
from .exporter import write_csv, write_records_json
from .numerals import from_words as parse_words
from .numerals import to_words as render_words
from .orchestrator import BatchOrchestrator, format_summary_text


app = typer.Typer(
    name="invoice-recon",
    help="Invoice field extraction and reconciliation CLI",
    add_completion=False,
)


@app.command()
def extract(
    input_dir: Path = typer.Option(
        ...,
        "--input-dir",
        "-i",
        help="Directory containing invoice .pdf or .txt files",
        exists=True,
        file_okay=False,
        dir_okay=True,
        resolve_path=True,
    ),
    output: Path = typer.Option(
        "invoices.csv",
        "--output",
        "-o",
        help="Output CSV file path",
    ),
    json_output: Optional[Path] = typer.Option(
        None,
        "--json",
        "-j",
        help="Also save reconciled records to this JSON file",
    ),
    workers: int = typer.Option(
        MAX_WORKERS,
        "--workers",
        "-w",
        min=1,
        help="Number of documents processed concurrently",
    ),
    cache_path: Optional[Path] = typer.Option(
        TAX_CACHE_PATH,
        "--cache",
        "-c",
        help="JSON file persisting the counterparty tax cache between runs",
    ),
) -> None:
    """
    Extract invoice fields from every document in a directory.

    Each document is extracted and reconciled, the batch is cross-validated,
    and one CSV row per document is written. Unrecognized fields appear as
    the unrecognized marker.
    """
    typer.echo(f"Extracting invoices from: {input_dir}")

    try:
        documents = list_documents(input_dir)
        cache = CounterpartyTaxCache.load(cache_path) if cache_path else CounterpartyTaxCache()

        if not documents:
            typer.echo("No supported documents found.", err=True)
            raise typer.Exit(code=1)

        orchestrator = BatchOrchestrator(cache=cache, max_workers=workers)
        result = orchestrator.process_batch(documents)

        write_csv(result.records, output)
        if json_output:
            write_records_json(result.records, json_output)
        if cache_path:
            cache.save(cache_path)

    except typer.Exit:
        raise
    except Exception as e:
        typer.echo(f"Error during extraction: {e}", err=True)
        logger.exception("Extraction failed")
        raise typer.Exit(code=1)

    typer.echo("\n" + format_summary_text(result.summary))
    typer.echo(f"\n[OK] Wrote {len(result.records)} record(s) to: {output}")
    if json_output:
        typer.echo(f"     Saved records to: {json_output}")

    if result.failures:
        typer.echo("\nFailed documents:")
        for failure in result.failures[:5]:
            typer.echo(f"  - {failure.file_id}: {failure.error}")
        if len(result.failures) > 5:
            typer.echo(f"  ... and {len(result.failures) - 5} more")

    if not result.records:
        raise typer.Exit(code=1)


@app.command("to-words")
def to_words(
    amount: str = typer.Argument(..., help="Amount in yuan, e.g. 106.00"),
) -> None:
    """Write an amount in formal Chinese numerals."""
    try:
        typer.echo(render_words(Decimal(amount)))
    except (InvalidOperation, ValueError) as e:
        typer.echo(f"Error: invalid amount '{amount}': {e}", err=True)
        raise typer.Exit(code=1)


@app.command("from-words")
def from_words(
    words: str = typer.Argument(..., help="Amount in Chinese numerals, e.g. 壹佰零陆圆整"),
) -> None:
    """Parse an amount written in formal Chinese numerals."""
    amount = parse_words(words)
    if amount is None:
        typer.echo(f"Error: not a numeral amount: '{words}'", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"{amount:.2f}")


@app.command("cache")
def cache_command(
    cache_path: Path = typer.Option(
        TAX_CACHE_PATH or "tax_cache.json",
        "--cache",
        "-c",
        help="JSON file persisting the counterparty tax cache",
    ),
    reset: bool = typer.Option(
        False,
        "--reset",
        help="Remove every cached association",
    ),
) -> None:
    """List or reset the persisted counterparty tax cache."""
    cache = CounterpartyTaxCache.load(cache_path)

    if reset:
        cache.reset()
        cache.save(cache_path)
        typer.echo(f"[OK] Cache reset: {cache_path}")
        return

    entries = cache.entries()
    if not entries:
        typer.echo("Cache is empty.")
        return

    typer.echo(f"{len(entries)} cached association(s) in: {cache_path}")
    for entry in entries:
        typer.echo(f"  - {entry.company} | {entry.tax_id} | seen {entry.confidence}x")


@app.command()
def version() -> None:
    """Show version information."""
    from . import __version__
    typer.echo(f"Invoice Recon v{__version__}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
