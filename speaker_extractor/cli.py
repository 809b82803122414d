"""CLI for the speaker extractor."""

import asyncio
import logging
import signal

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from speaker_extractor.config import get_settings
from speaker_extractor.errors import ExtractionCancelled, ExtractionError
from speaker_extractor.extractors.browser import make_playwright_factory
from speaker_extractor.extractors.firecrawl import FirecrawlClient
from speaker_extractor.extractors.urls import (
    filter_mapped_urls,
    normalize_website_url,
    select_candidate_urls,
)
from speaker_extractor.jobs import CancellationToken
from speaker_extractor.pipeline import ExtractionRunner, print_summary
from speaker_extractor.storage import JsonStore

# Load environment variables (override=True to beat shell env vars)
load_dotenv(override=True)

app = typer.Typer(
    name="speaker-extractor",
    help="Conference session and speaker extraction",
    add_completion=False,
)
console = Console()


def _store() -> JsonStore:
    return JsonStore(get_settings().store_dir)


def _client() -> FirecrawlClient:
    settings = get_settings()
    try:
        api_key = settings.require_firecrawl_key()
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    return FirecrawlClient(api_key, settings.firecrawl_base_url)


@app.command()
def add_event(
    name: str = typer.Argument(..., help="Event name"),
    url: str = typer.Argument(..., help="Conference website"),
):
    """Register an event to extract speakers for."""
    start_url = normalize_website_url(url)
    if not start_url:
        console.print(f"[red]Invalid URL: {url}[/red]")
        raise typer.Exit(1)

    event = _store().create_event(name, start_url)
    console.print(f"[green]Created event {event.name}[/green] [dim]{event.id}[/dim]")


@app.command()
def events():
    """List events with their latest job status."""
    store = _store()
    rows = store.list_events()
    if not rows:
        console.print("[yellow]No events yet. Add one with add-event.[/yellow]")
        return

    table = Table(title=f"Events ({len(rows)})")
    table.add_column("ID", style="dim", max_width=12)
    table.add_column("Name", style="cyan", max_width=30)
    table.add_column("URL", style="blue", max_width=40)
    table.add_column("Status", style="yellow")
    table.add_column("Speakers", justify="right", style="green")

    for event in rows:
        job = store.latest_job_for_event(event.id)
        table.add_row(
            event.id[:8],
            event.name,
            event.start_url,
            job.status.value if job else "-",
            str(len(store.list_speakers(event.id))),
        )

    console.print(table)


@app.command()
def extract(
    event_id: str = typer.Argument(..., help="Event ID"),
    url: str = typer.Option(None, "--url", "-u", help="Start URL (default: the event's URL)"),
    max_pages: int = typer.Option(None, "--max-pages", "-n", help="Max candidate pages to scrape"),
    probe: bool = typer.Option(None, "--probe/--no-probe", help="Use the headless-browser API probe"),
):
    """Map an event site, extract sessions and speakers, and save them."""
    settings = get_settings()
    store = _store()
    use_probe = settings.network_probe_enabled if probe is None else probe

    async def run_extraction():
        token = CancellationToken()
        loop = asyncio.get_running_loop()
        try:
            # Ctrl+C finishes the current network call, then marks the job failed
            loop.add_signal_handler(signal.SIGINT, token.cancel)
        except NotImplementedError:
            pass

        async with _client() as client:
            runner = ExtractionRunner(
                store,
                client,
                browser_factory=make_playwright_factory(settings.headless) if use_probe else None,
                max_pages=max_pages or settings.max_pages,
            )
            return await runner.run(event_id, url, token)

    try:
        summary = asyncio.run(run_extraction())
    except ExtractionCancelled:
        console.print("[yellow]Extraction cancelled.[/yellow]")
        raise typer.Exit(130)
    except ExtractionError as e:
        console.print(f"[red]Extraction failed: {e}[/red]")
        raise typer.Exit(1)

    print_summary(summary)


@app.command()
def job(
    job_id: str = typer.Argument(..., help="Job ID"),
):
    """Show a job's status, counters and recent log."""
    row = _store().get_job(job_id)
    if row is None:
        console.print(f"[red]Job {job_id} not found[/red]")
        raise typer.Exit(1)

    color = {"complete": "green", "failed": "red"}.get(row.status.value, "cyan")
    console.print(f"\n[bold]Job {row.id}[/bold] [{color}]{row.status.value}[/{color}]")
    if row.error:
        console.print(f"  Error: [red]{row.error}[/red]")

    for field, value in row.counters.model_dump().items():
        console.print(f"  {field.replace('_', ' ').capitalize()}: {value}")

    if row.log_lines:
        console.print("\n[bold]Log:[/bold]")
        for line in row.log_lines:
            console.print(f"  [dim]{escape(line)}[/dim]")


@app.command()
def filter_urls(
    start_url: str = typer.Argument(..., help="Conference website to map"),
    max_pages: int = typer.Option(None, "--max-pages", "-n", help="Max candidate pages"),
):
    """Preview map + filter + candidate selection without scraping."""
    normalized = normalize_website_url(start_url)
    if not normalized:
        console.print(f"[red]Invalid URL: {start_url}[/red]")
        raise typer.Exit(1)

    async def run_map():
        async with _client() as client:
            return await client.map_urls(normalized)

    try:
        mapped = asyncio.run(run_map())
    except ExtractionError as e:
        console.print(f"[red]Mapping failed: {e}[/red]")
        raise typer.Exit(1)

    filtered = filter_mapped_urls(normalized, mapped.links)
    candidates = select_candidate_urls(filtered, max_pages or get_settings().max_pages)

    console.print(f"\n[bold]Mapped:[/bold] {mapped.total_links}")
    console.print(f"[bold]On-site pages:[/bold] {len(filtered)}")
    console.print(f"[bold]Candidates:[/bold] [cyan]{len(candidates)}[/cyan]")
    for candidate in candidates:
        console.print(f"  {candidate}")


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address"),
    port: int = typer.Option(8000, "--port", "-p", help="Port"),
):
    """Run the HTTP API."""
    import uvicorn

    from speaker_extractor.api import create_app

    logging.basicConfig(level=logging.INFO)
    uvicorn.run(create_app(), host=host, port=port)


if __name__ == "__main__":
    app()
