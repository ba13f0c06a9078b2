"""Main CLI entry point for the textbook page pipeline."""
import signal

import click
from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table

from execution.batch_orchestrator import BatchOrchestrator, check_range
from execution.page_processor import PageProcessor
from execution.retry_handler import page_retry_handler
from ingestion.page_extractor import build_default_extractor
from monitoring.progress_tracker import ProgressTracker
from storage.database import Database
from storage.page_cache import JsonFileCache
from storage.vector_store import VectorStore
from summarization.generator import DraftGenerator
from summarization.models import BatchRequest
from summarization.providers import build_default_chain
from summarization.rag import ContextRetriever
from utils.errors import PipelineError
from utils.logger import setup_logger
import config

logger = setup_logger(__name__)
console = Console()


def image_url_builder(template: str):
    """Turn a URL template with {book_id} and {page} into a callable."""
    def build(book_id: str, page_number: int) -> str:
        return template.format(book_id=book_id, page=page_number)
    return build


def build_processor(db: Database, subject: str) -> PageProcessor:
    """Wire the single-page pipeline from configuration."""
    vector_store = VectorStore() if config.RAG_ENABLED else None
    return PageProcessor(
        extractor=build_default_extractor(),
        generator=DraftGenerator(build_default_chain(), subject=subject),
        db=db,
        cache=JsonFileCache(),
        retriever=ContextRetriever(vector_store),
        vector_store=vector_store,
    )


def _require_keys() -> bool:
    if not config.ANTHROPIC_API_KEY:
        console.print("[red]Error: ANTHROPIC_API_KEY not set in environment[/red]")
        return False
    return True


def _require_template(template: str) -> bool:
    if not template:
        console.print("[red]Error: pass --image-url-template or set PAGE_IMAGE_URL_TEMPLATE[/red]")
        return False
    return True


@click.group()
def cli():
    """Textbook Page Pipeline - OCR, summaries and compliance validation"""
    pass


@cli.command()
@click.option('--book-id', required=True, help='Book identifier')
@click.option('--start', 'range_start', required=True, type=int, help='First page')
@click.option('--end', 'range_end', required=True, type=int, help='Last page')
def seed(book_id, range_start, range_end):
    """Create empty page rows without touching existing ones."""
    if range_end < range_start:
        console.print("[red]Error: --end must not be smaller than --start[/red]")
        return
    db = Database()
    created = db.seed_pages(book_id, list(range(range_start, range_end + 1)))
    console.print(f"[green]✓ Seeded {created} new pages[/green] for book [cyan]{book_id}[/cyan]")


@cli.command('process-page')
@click.option('--book-id', required=True, help='Book identifier')
@click.option('--page', 'page_number', required=True, type=int, help='Page number')
@click.option('--image-url-template', default=config.PAGE_IMAGE_URL_TEMPLATE, help='URL with {book_id} and {page}')
@click.option('--strict', is_flag=True, help='Strict retrieval and acceptance')
@click.option('--subject', default='science', help='Subject named in the prompts')
def process_page(book_id, page_number, image_url_template, strict, subject):
    """Process a single page."""
    console.print(f"\n[bold cyan]Page {page_number}[/bold cyan]\n")
    if not _require_keys() or not _require_template(image_url_template):
        return

    db = Database()
    processor = build_processor(db, subject)
    image_url = image_url_builder(image_url_template)(book_id, page_number)

    try:
        result = page_retry_handler().execute_with_retry(
            processor.process, book_id, page_number, image_url, strict_mode=strict
        )
    except PipelineError as e:
        console.print(f"[red]✗ {e.kind}: {e.describe()}[/red]")
        return

    table = Table(show_header=False)
    table.add_row("Page type", result.page_type)
    table.add_row("Questions", ", ".join(result.question_numbers) or "-")
    table.add_row("Compliance score", f"{result.compliance_score}")
    table.add_row("OCR confidence", f"{result.ocr_confidence:.2f}")
    table.add_row("Provider", result.provider_used)
    table.add_row("Continuation rounds", str(result.continuation_attempts))
    table.add_row("Regenerated", "yes" if result.regenerated else "no")
    table.add_row("RAG pages", f"{result.rag.pages_sent}/{result.rag.pages_found}")
    console.print(table)
    if result.truncated:
        console.print("[yellow]Warning: the draft hit the output limit[/yellow]")


@cli.command('process-batch')
@click.option('--book-id', required=True, help='Book identifier')
@click.option('--start', 'range_start', required=True, type=int, help='First page')
@click.option('--end', 'range_end', required=True, type=int, help='Last page')
@click.option('--image-url-template', default=config.PAGE_IMAGE_URL_TEMPLATE, help='URL with {book_id} and {page}')
@click.option('--strict', is_flag=True, help='Strict retrieval and acceptance')
@click.option('--force', is_flag=True, help='Reprocess pages that already have a valid summary')
@click.option('--subject', default='science', help='Subject named in the prompts')
def process_batch(book_id, range_start, range_end, image_url_template, strict, force, subject):
    """Process a page range (at most BATCH_PAGE_CAP pages)."""
    console.print("\n[bold cyan]Batch Processing[/bold cyan]\n")

    try:
        request = BatchRequest(
            book_id=book_id,
            range_start=range_start,
            range_end=range_end,
            strict_mode=strict,
            force=force,
        )
        check_range(request)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        return

    if not _require_keys() or not _require_template(image_url_template):
        return

    db = Database()
    orchestrator = BatchOrchestrator(
        build_processor(db, subject), db, image_url_builder(image_url_template)
    )

    # Ctrl-C stops the batch before its next page
    previous_handler = signal.signal(signal.SIGINT, lambda *_: orchestrator.stop())
    try:
        with ProgressTracker(console) as tracker:
            tracker.start(f"Pages {range_start}-{range_end}", request.page_count)
            report = orchestrator.run(request, on_page=tracker.page_done)
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    table = Table(title=f"Batch {report.status}")
    table.add_column("Page", justify="right")
    table.add_column("Status")
    table.add_column("Score", justify="right")
    table.add_column("Details", style="dim")
    for outcome in report.outcomes:
        table.add_row(
            str(outcome.page_number),
            outcome.status,
            "" if outcome.compliance_score is None else f"{outcome.compliance_score}",
            outcome.message,
        )
    console.print(table)

    console.print(
        f"Processed {report.processed}, skipped {report.skipped}, errored {report.errored} "
        f"(timeouts {report.timeouts}, frozen {report.frozen})"
    )
    console.print(
        f"Average OCR confidence {report.average_ocr_confidence}, "
        f"average score {report.average_compliance_score}, "
        f"repairs {report.repairs}, regenerations {report.regenerations}"
    )
    if report.truncated_pages:
        console.print(f"[yellow]Truncated drafts on pages: {report.truncated_pages}[/yellow]")


@cli.command('show-page')
@click.option('--book-id', required=True, help='Book identifier')
@click.option('--page', 'page_number', required=True, type=int, help='Page number')
@click.option('--ocr', is_flag=True, help='Print the OCR text as well')
def show_page(book_id, page_number, ocr):
    """Show the stored record of a page."""
    db = Database()
    record = db.get_page(book_id, page_number)
    if not record:
        console.print(f"[yellow]No record for page {page_number} of book {book_id}[/yellow]")
        return

    table = Table(show_header=False)
    table.add_row("State", record.processing_state)
    table.add_row("Page type", record.page_type or "-")
    table.add_row("Compliance score", "-" if record.compliance_score is None else str(record.compliance_score))
    table.add_row("OCR confidence", "-" if record.ocr_confidence is None else f"{record.ocr_confidence:.2f}")
    table.add_row("Provider", record.provider_used or "-")
    table.add_row("RAG pages", f"{record.rag_pages_sent}/{record.rag_pages_found}")
    table.add_row("Missing questions", ", ".join(record.missing_questions) or "-")
    table.add_row("Missing sections", ", ".join(record.missing_sections) or "-")
    table.add_row("Updated", record.updated_at or "-")
    console.print(table)

    if ocr and record.ocr_text:
        console.print("\n[bold]OCR text[/bold]")
        console.print(record.ocr_text)
    if record.summary_markdown:
        console.print("\n[bold]Summary[/bold]")
        console.print(Markdown(record.summary_markdown))


@cli.command('cache-clear')
@click.option('--book-id', default=None, help='Only clear this book')
def cache_clear(book_id):
    """Clear the local OCR/summary cache."""
    removed = JsonFileCache().clear(book_id)
    console.print(f"[green]✓ Removed {removed} cache entries[/green]")


if __name__ == '__main__':
    cli()
