"""
CLI Main - Typer command-line interface.
========================================

Commands:
- sync: Sync LMS courses into the material store
- status: Show a tenant's sync progress
- cancel: Cancel a running sync
- extract: Extract text from a local PDF, PPTX or HTML file
- crawl: Crawl links from seed URLs
- context: Resolve lesson context for a topic
- clear: Remove a course's stored chunks and hashes
- info: Show system information
"""

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from studysync.shared.logging import get_logger

logger = get_logger(__name__)

app = typer.Typer(
    name="studysync",
    help="""📚 StudySync - LMS course materials to retrieval-ready context

Walks LMS courses (pages, assignments, files, linked pages), extracts text
from HTML, PDF and PPTX, embeds it incrementally into a local vector store,
and resolves lesson context with tiered fallbacks.

━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

QUICK START:

  export CANVAS_BASE_URL=https://canvas.example.edu
  export CANVAS_API_TOKEN=...
  studysync sync                              # Step 1: Sync all courses
  studysync context 1234 "binary search trees" # Step 2: Resolve lesson context

Use 'studysync <command> --help' for detailed command options.
""",
    add_completion=False,
    rich_markup_mode="rich",
)

console = Console()

POLL_SECONDS = 1.0


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
):
    """Configure logging before any command runs."""
    from studysync.shared.logging import setup_logging_from_settings, setup_logging
    from studysync.shared.config import get_settings

    if verbose:
        settings = get_settings()
        setup_logging(
            level="DEBUG",
            use_rich=settings.logging.rich_console,
            log_file=settings.logging.file or None,
            force=True,
        )
    else:
        setup_logging_from_settings()


def _tenant_or_default(tenant: Optional[str]) -> str:
    from studysync.shared.config import get_settings

    return tenant or get_settings().sync.default_tenant


# ─────────────────────────────────────────────────────────────────────────────
# Sync Commands
# ─────────────────────────────────────────────────────────────────────────────


@app.command()
def sync(
    tenant: Optional[str] = typer.Option(
        None,
        "--tenant", "-t",
        help="Tenant whose sync this is (default from config).",
    ),
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        help="LMS base URL (default: CANVAS_BASE_URL).",
    ),
    provider: Optional[str] = typer.Option(
        None,
        "--provider", "-p",
        help="Embedding provider: sbert, gemini or openai.",
    ),
):
    """
    🔄 Sync every LMS course into the material store.

    Resumes an interrupted sync started within the last 30 minutes.
    Press Ctrl+C to cancel; the sync stops before the next course.

    Examples:
        studysync sync
        studysync sync -t alice -p gemini
    """
    from studysync.indexing.embeddings_base import get_embedding_provider
    from studysync.indexing.material_store import MaterialStore
    from studysync.ingestion.blob_storage import LocalBlobStorage
    from studysync.ingestion.lms_client import LMSCredentials
    from studysync.ingestion.walker import ContentWalker
    from studysync.shared.config import get_settings
    from studysync.shared.errors import LMSError, SyncAlreadyRunningError
    from studysync.sync.runner import SyncRunner

    settings = get_settings()
    tenant_id = _tenant_or_default(tenant)
    url = base_url or settings.get_effective_lms_base_url()

    if not url or not settings.canvas_api_token:
        console.print("[red]Set CANVAS_BASE_URL and CANVAS_API_TOKEN first.[/red]")
        raise typer.Exit(1)

    credentials = LMSCredentials(base_url=url, access_token=settings.canvas_api_token)
    store = MaterialStore(embedding_provider=get_embedding_provider(provider))
    runner = SyncRunner(
        walker=ContentWalker(blob_storage=LocalBlobStorage()),
        material_store=store,
    )

    try:
        handle = runner.start_sync(tenant_id, credentials, background=True)
    except SyncAlreadyRunningError as e:
        console.print(f"[yellow]{e.message}[/yellow]")
        raise typer.Exit(1)
    except LMSError as e:
        console.print(f"[red]✗ Could not list courses: {e.message}[/red]")
        raise typer.Exit(1)

    verb = "Resuming" if handle.resumed else "Starting"
    console.print(
        f"[bold]{verb} sync[/bold] for {tenant_id}: "
        f"{handle.course_total} courses (from #{handle.start_index + 1})"
    )

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("{task.completed}/{task.total}"),
        console=console,
    ) as progress:
        task = progress.add_task("Syncing...", total=max(handle.course_total, 1))
        try:
            while not handle.wait(timeout=POLL_SECONDS):
                status = runner.get_status(tenant_id)
                progress.update(
                    task,
                    completed=status.course_index,
                    description=(status.message or "Syncing...")[:80],
                )
        except KeyboardInterrupt:
            runner.cancel_sync(tenant_id)
            console.print("[yellow]Cancelling; waiting for the current course to finish...[/yellow]")
            handle.wait()

    _print_status(runner.get_status(tenant_id))


@app.command()
def status(
    tenant: Optional[str] = typer.Option(None, "--tenant", "-t", help="Tenant to show."),
    ack: bool = typer.Option(
        False,
        "--ack",
        help="Reset a completed or failed sync to idle after showing it.",
    ),
):
    """📊 Show sync progress for a tenant."""
    from studysync.sync.runner import SyncRunner

    tenant_id = _tenant_or_default(tenant)
    runner = SyncRunner()
    _print_status(runner.get_status(tenant_id))

    if ack:
        runner.acknowledge(tenant_id)
        console.print("[dim]Acknowledged.[/dim]")


@app.command()
def cancel(
    tenant: Optional[str] = typer.Option(None, "--tenant", "-t", help="Tenant to cancel."),
):
    """⏹️ Cancel a running sync (it stops before its next course)."""
    from studysync.sync.runner import SyncRunner

    tenant_id = _tenant_or_default(tenant)
    if SyncRunner().cancel_sync(tenant_id):
        console.print(f"[green]✓ Sync for {tenant_id} cancelled[/green]")
    else:
        console.print(f"[yellow]No running sync for {tenant_id}[/yellow]")


def _print_status(progress) -> None:
    table = Table(title=f"Sync status: {progress.tenant_id}", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")

    table.add_row("Status", progress.status.value)
    table.add_row("Phase", progress.phase or "-")
    table.add_row("Course", f"{progress.course_index + 1}/{progress.course_total}"
                  if progress.course_total else "-")
    table.add_row("Materials stored", str(progress.materials_stored))
    table.add_row("Chunks created", str(progress.chunks_created))
    table.add_row("Started", str(progress.started_at or "-"))
    table.add_row("Completed", str(progress.completed_at or "-"))
    table.add_row("Message", progress.message or "-")
    if progress.error:
        table.add_row("Error", f"[red]{progress.error}[/red]")
    console.print(table)

    if progress.result and progress.result.ingest:
        ingest = Table(title="Per-course ingest")
        ingest.add_column("Course")
        ingest.add_column("Stored", justify="right")
        ingest.add_column("Chunks", justify="right")
        ingest.add_column("Unchanged", justify="right")
        ingest.add_column("Failed", justify="right")
        for summary in progress.result.ingest:
            ingest.add_row(
                summary.name or summary.course_id,
                str(summary.materials_stored),
                str(summary.chunks_created),
                str(summary.materials_skipped),
                str(summary.materials_failed),
            )
        console.print(ingest)


# ─────────────────────────────────────────────────────────────────────────────
# Ingestion Commands
# ─────────────────────────────────────────────────────────────────────────────


@app.command()
def extract(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="PDF, PPTX or HTML file."),
    max_chars: int = typer.Option(2000, "--max-chars", "-n", help="Characters to print."),
):
    """
    📄 Extract text from a local document.

    Examples:
        studysync extract lecture01.pdf
        studysync extract slides.pptx -n 500
    """
    from studysync.ingestion.extractor import DocumentExtractor

    extractor = DocumentExtractor()
    text = extractor.extract(path.read_bytes(), None, source_url=path.name)

    if not text:
        console.print(f"[yellow]No text could be extracted from {path.name}[/yellow]")
        raise typer.Exit(1)

    shown = text[:max_chars] + ("…" if len(text) > max_chars else "")
    console.print(Panel(shown, title=f"📄 {path.name} ({len(text)} chars)"))


@app.command()
def crawl(
    seeds: list[str] = typer.Argument(..., help="Seed URLs."),
    max_pages: Optional[int] = typer.Option(None, "--max-pages", help="Page budget (max 50)."),
    max_depth: Optional[int] = typer.Option(None, "--max-depth", help="Link depth (max 3)."),
    documents_only: bool = typer.Option(
        False, "--documents-only", help="Keep only PDF/PPTX results."
    ),
):
    """
    🕸️ Crawl links breadth-first from seed URLs.

    Examples:
        studysync crawl https://example.edu/syllabus
        studysync crawl https://example.edu/a https://example.edu/b --max-pages 10
    """
    from studysync.ingestion.crawler import LinkCrawler

    with LinkCrawler(documents_only=documents_only) as crawler:
        with console.status("Crawling..."):
            pages = crawler.crawl(seeds, max_pages=max_pages, max_depth=max_depth)

    if not pages:
        console.print("[yellow]Nothing reachable with extractable text.[/yellow]")
        raise typer.Exit(0)

    table = Table(title=f"Crawled {len(pages)} pages")
    table.add_column("Depth", justify="right")
    table.add_column("Type")
    table.add_column("Title", style="cyan")
    table.add_column("URL")
    table.add_column("Chars", justify="right")
    for page in pages:
        table.add_row(
            str(page.depth),
            page.content_type,
            page.title[:40],
            page.url[:60],
            str(len(page.text)),
        )
    console.print(table)


# ─────────────────────────────────────────────────────────────────────────────
# Retrieval Commands
# ─────────────────────────────────────────────────────────────────────────────


@app.command()
def context(
    course_id: str = typer.Argument(..., help="LMS course id."),
    topic: str = typer.Argument(..., help="Lesson topic (wrap in quotes)."),
    hint: Optional[str] = typer.Option(None, "--hint", help="Extra text for the search query."),
    web: bool = typer.Option(True, "--web/--no-web", help="Allow the web search tier."),
    show_content: bool = typer.Option(
        True, "--content/--no-content", help="Print the resolved context text."
    ),
):
    """
    🎯 Resolve lesson context for a topic.

    Prints which tier fired (none, partial, web_search, general), the
    disclaimer and the sources.

    Examples:
        studysync context 1234 "binary search trees"
        studysync context 1234 "recursion" --no-web --no-content
    """
    from studysync.rag.fallback import FallbackOrchestrator

    with console.status("Resolving context..."):
        resolved = FallbackOrchestrator(enable_web_search=web).resolve_context(
            course_id, topic, context_hint=hint
        )

    score = f"{resolved.retrieval_score:.3f}" if resolved.retrieval_score is not None else "-"
    console.print(f"\n[bold]Tier:[/bold] {resolved.fallback_tier}  [dim](top score {score})[/dim]")
    if resolved.disclaimer:
        console.print(f"[yellow]{resolved.disclaimer}[/yellow]")

    if resolved.sources:
        table = Table(title=f"📚 Sources ({resolved.source_count})")
        table.add_column("Title", style="cyan")
        table.add_column("URL")
        table.add_column("Relevance", justify="right")
        for source in resolved.sources:
            table.add_row(source.title[:50], source.url or "-", f"{source.relevance:.3f}")
        console.print(table)

    if show_content:
        console.print(Panel(resolved.content[:4000], title="Context", border_style="green"))


@app.command()
def clear(
    course_id: str = typer.Argument(..., help="LMS course id."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation."),
):
    """🗑️ Remove every stored chunk and content hash of a course."""
    from studysync.indexing.material_store import MaterialStore

    if not yes:
        typer.confirm(f"Delete all stored material for course {course_id}?", abort=True)

    removed = MaterialStore().clear_course(course_id)
    console.print(f"[green]✓ Removed {removed} chunks for course {course_id}[/green]")


# ─────────────────────────────────────────────────────────────────────────────
# Info Command
# ─────────────────────────────────────────────────────────────────────────────


@app.command()
def info():
    """
    ℹ️ Show system information and configuration.

    Displays:
      • Version information
      • Embedding provider settings
      • Data paths and their existence status
    """
    from studysync import __version__
    from studysync.shared.config import get_settings

    settings = get_settings()

    console.print(Panel(
        f"[bold]StudySync[/bold]\n"
        f"Version: {__version__}\n"
        f"Config: config/settings.yaml",
        title="ℹ️ Info",
    ))

    console.print("\n[bold]Configuration:[/bold]")
    table = Table(show_header=False)
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    table.add_row("LMS base URL", settings.get_effective_lms_base_url() or "[red]not set[/red]")
    table.add_row("LMS token", "set" if settings.canvas_api_token else "[red]not set[/red]")
    table.add_row("Embedding provider", settings.get_effective_embedding_provider())
    table.add_row("Fallback provider", settings.embeddings.fallback_provider or "-")
    table.add_row("Web search", "enabled" if settings.search_api_key else "disabled")
    table.add_row(
        "Thresholds",
        f"strong {settings.retrieval.strong_threshold:.2f} / "
        f"partial {settings.retrieval.partial_threshold:.2f}",
    )
    console.print(table)

    console.print("\n[bold]Data Paths:[/bold]")
    resolved_paths = settings.resolved_paths
    path_dict = {
        "data_dir": resolved_paths.data_dir,
        "index_dir": resolved_paths.index_dir,
        "hashes_dir": resolved_paths.hashes_dir,
        "progress_dir": resolved_paths.progress_dir,
        "blobs_dir": resolved_paths.blobs_dir,
    }
    for name, path in path_dict.items():
        exists = "✓" if path.exists() else "✗"
        console.print(f"  {name}: {path} [{exists}]")


# ─────────────────────────────────────────────────────────────────────────────
# Entry Point
# ─────────────────────────────────────────────────────────────────────────────


def cli():
    """CLI entry point."""
    app()


if __name__ == "__main__":
    cli()
