"""
CLI for docscan-ai.

Provides commands for cataloguing document images, running OCR and
translation, and inspecting credentials, the translation cache and logs.
"""

from __future__ import annotations

import asyncio
import signal
from datetime import datetime, timezone
from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from docscan_ai.config import Settings, create_default_config, load_config
from docscan_ai.database import Database, Document
from docscan_ai.exceptions import DocScanError
from docscan_ai.processing import ProcessingStatus, Transition

app = typer.Typer(
    name="docscan",
    help="OCR and translation for scanned documents with pooled API keys.",
    add_completion=False,
)

console = Console()

STATUS_STYLES = {
    ProcessingStatus.PENDING: "yellow",
    ProcessingStatus.QUEUED: "yellow",
    ProcessingStatus.OCR_IN_PROGRESS: "blue",
    ProcessingStatus.OCR_COMPLETE: "cyan",
    ProcessingStatus.OCR_FAILED: "red",
    ProcessingStatus.TRANSLATION_IN_PROGRESS: "blue",
    ProcessingStatus.TRANSLATION_COMPLETE: "cyan",
    ProcessingStatus.TRANSLATION_FAILED: "red",
    ProcessingStatus.COMPLETE: "green",
    ProcessingStatus.CANCELLED: "dim",
    ProcessingStatus.ERROR: "bold red",
}

# Progress bar position for each status
STATUS_PROGRESS = {
    ProcessingStatus.PENDING: 0,
    ProcessingStatus.QUEUED: 5,
    ProcessingStatus.OCR_IN_PROGRESS: 20,
    ProcessingStatus.OCR_FAILED: 20,
    ProcessingStatus.OCR_COMPLETE: 50,
    ProcessingStatus.TRANSLATION_IN_PROGRESS: 70,
    ProcessingStatus.TRANSLATION_FAILED: 70,
    ProcessingStatus.TRANSLATION_COMPLETE: 95,
    ProcessingStatus.COMPLETE: 100,
    ProcessingStatus.CANCELLED: 100,
    ProcessingStatus.ERROR: 100,
}


def _styled(status: ProcessingStatus) -> str:
    style = STATUS_STYLES.get(status, "white")
    return f"[{style}]{status.value}[/{style}]"


def _format_time(value: datetime | None) -> str:
    if value is None:
        return "-"
    return value.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def get_settings(config_path: Path | None = None) -> Settings:
    """Load settings from config file or defaults."""
    if config_path and not config_path.exists():
        console.print(f"[red]Config file not found: {config_path}[/red]")
        raise typer.Exit(1)
    try:
        return load_config(config_path)
    except ValueError as e:
        console.print(f"[red]Invalid configuration: {e}[/red]")
        raise typer.Exit(1) from None


def get_database(settings: Settings) -> Database:
    """Get database instance."""
    return Database(settings.paths.database_path)


def get_pipeline(settings: Settings, db: Database):
    """Create the processing pipeline."""
    from docscan_ai.pipeline import DocumentPipeline

    return DocumentPipeline(db, settings, console)


def _display_config(settings: Settings, config_path: Path | None, key_count: int) -> None:
    """Display the configuration being used."""
    config_source = str(config_path) if config_path else "default (config.yaml or built-in)"

    config_table = Table(show_header=False, box=None, padding=(0, 2))
    config_table.add_column("Key", style="cyan")
    config_table.add_column("Value", style="green")

    config_table.add_row("Config file", config_source)
    config_table.add_row("Provider", settings.provider.type.value)
    if settings.provider.base_url:
        config_table.add_row("  Base URL", settings.provider.base_url)
    config_table.add_row("  API keys", str(key_count) if key_count else "[red]none[/red]")
    config_table.add_row("", "")
    config_table.add_row("OCR model", settings.models.default_ocr_model)
    config_table.add_row("Translation model", settings.models.default_translation_model)
    config_table.add_row("Max retries", str(settings.processing.max_retries))
    config_table.add_row("Concurrent documents", str(settings.processing.concurrent_documents))

    console.print(Panel(config_table, title="[bold blue]docscan-ai[/bold blue]", border_style="blue"))


@app.command()
def init(
    output_path: Path = typer.Option(
        Path("config.yaml"),
        "--output",
        "-o",
        help="Output path for config file",
    ),
) -> None:
    """Generate a default configuration file."""
    if output_path.exists():
        overwrite = typer.confirm(f"{output_path} already exists. Overwrite?")
        if not overwrite:
            raise typer.Abort()

    create_default_config(output_path)
    console.print(f"[green]Created config file: {output_path}[/green]")
    console.print("\nSet your API keys (or API_KEYS=key1,key2 in .env), then run:")
    console.print(f"  docscan scan ./documents --config {output_path}")


@app.command()
def scan(
    input_dir: Path | None = typer.Argument(
        None, help="Directory to scan for images (default: paths.input_dir)"
    ),
    config: Path | None = typer.Option(None, "--config", "-c", help="Config file"),
    recursive: bool = typer.Option(
        True, "--recursive/--no-recursive", "-r", help="Scan recursively"
    ),
) -> None:
    """Scan a directory for document images and add them to the catalog."""
    settings = get_settings(config)
    db = get_database(settings)

    from docscan_ai.scanner import DocumentScanner

    scanner = DocumentScanner(
        db,
        console,
        source_language=settings.processing.source_language,
        target_language=settings.processing.target_language,
        translate=settings.processing.translate,
    )

    try:
        documents = scanner.scan_directory(input_dir or settings.paths.input_dir, recursive)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from None

    console.print(f"\n[green]Found {len(documents)} document(s)[/green]")

    if documents:
        table = Table(title="Documents Found")
        table.add_column("ID", style="dim")
        table.add_column("Name", style="cyan")
        table.add_column("Languages")
        table.add_column("Status")

        for doc in documents[:20]:
            languages = f"{doc.source_language} -> {doc.target_language}"
            table.add_row(
                str(doc.id),
                doc.file_name,
                languages if doc.translate else f"{doc.source_language} (OCR only)",
                _styled(doc.status),
            )

        if len(documents) > 20:
            table.add_row("...", "...", "...", "...")

        console.print(table)


@app.command()
def process(
    document_id: int | None = typer.Option(None, "--doc", "-d", help="Document ID"),
    all_docs: bool = typer.Option(
        False, "--all", "-a", help="Process all documents that are not finished"
    ),
    ocr_model: str | None = typer.Option(None, "--ocr-model", help="OCR model override"),
    translation_model: str | None = typer.Option(
        None, "--translation-model", help="Translation model override"
    ),
    config: Path | None = typer.Option(None, "--config", "-c", help="Config file"),
) -> None:
    """
    Run OCR and translation.

    Documents resume from their stored status. Press Ctrl-C once to cancel
    the documents in flight.
    """
    settings = get_settings(config)
    db = get_database(settings)

    if document_id is not None:
        doc = db.get_document(document_id)
        if not doc:
            console.print(f"[red]Document {document_id} not found[/red]")
            raise typer.Exit(1)
        if doc.status.is_terminal:
            console.print(f"[yellow]Document {document_id} is already {doc.status.value}[/yellow]")
            raise typer.Exit(1)
        documents = [doc]
    elif all_docs:
        documents = [d for d in db.get_all_documents() if not d.status.is_terminal]
    else:
        console.print("[red]Specify --doc ID or --all[/red]")
        raise typer.Exit(1)

    if not documents:
        console.print("[yellow]No documents to process[/yellow]")
        return

    pipeline = get_pipeline(settings, db)
    _display_config(settings, config, len(pipeline.pool))

    if not len(pipeline.pool):
        console.print("[red]No API keys configured[/red]")
        console.print("Add credentials.api_keys to the config or set API_KEYS in .env")
        raise typer.Exit(1)

    models = settings.models
    try:
        models.resolve(ocr_model, models.default_ocr_model)
        models.resolve(translation_model, models.default_translation_model)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from None

    console.print(f"\n[bold]Processing {len(documents)} document(s)[/bold]\n")

    results: dict[int, ProcessingStatus] = {}
    failures: dict[int, str] = {}

    async def run_all() -> None:
        semaphore = asyncio.Semaphore(settings.processing.concurrent_documents)
        stop_sweep = asyncio.Event()
        sweeper = asyncio.create_task(
            pipeline.cache.sweep_periodically(settings.cache.sweep_interval_seconds, stop_sweep)
        )

        def cancel_all() -> None:
            console.print(
                "\n[yellow]Stopping: cancelling documents in flight, "
                "skipping the rest...[/yellow]"
            )
            pipeline.stop_batch(documents)

        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, cancel_all)
        except NotImplementedError:
            # Not available on Windows event loops; Ctrl-C aborts instead
            pass

        with Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            BarColumn(complete_style="green", finished_style="green"),
            TaskProgressColumn(),
            TextColumn("[dim]{task.fields[detail]}[/dim]"),
            TimeElapsedColumn(),
            console=console,
            transient=False,
        ) as progress:

            async def run_one(doc: Document) -> None:
                task_id = progress.add_task(
                    f"{doc.file_name[:30]}",
                    total=100,
                    completed=STATUS_PROGRESS.get(doc.status, 0),
                    detail=doc.status.value,
                )

                def on_transition(transition: Transition) -> None:
                    progress.update(
                        task_id,
                        completed=STATUS_PROGRESS.get(transition.status, 0),
                        detail=transition.status.value
                        + (f" ({transition.detail})" if transition.detail else ""),
                    )

                try:
                    results[doc.id] = await pipeline.process_in_batch(
                        doc,
                        semaphore,
                        on_transition=on_transition,
                        ocr_model=ocr_model,
                        translation_model=translation_model,
                    )
                except DocScanError as e:
                    failures[doc.id] = str(e)
                    progress.update(task_id, detail=f"[red]{e}[/red]")

            try:
                await asyncio.gather(*(run_one(doc) for doc in documents))
            finally:
                stop_sweep.set()
                await sweeper
                try:
                    loop.remove_signal_handler(signal.SIGINT)
                except NotImplementedError:
                    pass
                await pipeline.close()

    asyncio.run(run_all())

    # Summary
    console.print()
    counts: dict[str, int] = {}
    for status in results.values():
        counts[status.value] = counts.get(status.value, 0) + 1
    summary = "\n".join(f"{_styled(ProcessingStatus(k))}: {v}" for k, v in sorted(counts.items()))
    if failures:
        summary += f"\n[red]aborted: {len(failures)}[/red]"
    console.print(Panel(summary or "Nothing processed", title="Processing Summary"))

    for doc_id, message in failures.items():
        console.print(f"  [red]• Document {doc_id}: {message}[/red]")

    db.close()


@app.command()
def cancel(
    document_id: int = typer.Option(..., "--doc", "-d", help="Document ID"),
    config: Path | None = typer.Option(None, "--config", "-c", help="Config file"),
) -> None:
    """
    Cancel a document that is not being processed.

    Cancelled documents are never picked up again. Use Ctrl-C to cancel
    documents while `docscan process` is running.
    """
    settings = get_settings(config)
    db = get_database(settings)
    pipeline = get_pipeline(settings, db)

    try:
        cancelled = pipeline.orchestrator.cancel(document_id)
    except DocScanError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from None

    if cancelled:
        console.print(f"[green]Document {document_id} cancelled[/green]")
    else:
        status = db.load_status(document_id)
        console.print(f"[yellow]Document {document_id} is already {status.value}[/yellow]")


@app.command()
def status(
    config: Path | None = typer.Option(None, "--config", "-c", help="Config file"),
    show_all: bool = typer.Option(False, "--all", "-a", help="Show every document"),
) -> None:
    """Show processing status for all documents."""
    settings = get_settings(config)
    db = get_database(settings)

    stats = db.get_statistics()
    docs = db.get_all_documents()

    if not docs:
        console.print("[yellow]No documents in database[/yellow]")
        return

    console.print(
        Panel(
            "\n".join(
                f"{_styled(ProcessingStatus(k))}: {v}" for k, v in stats["by_status"].items()
            )
            + f"\n\nCached translations: {stats['cache_entries']}",
            title=f"Document Status Summary ({stats['total_documents']} documents)",
        )
    )

    table = Table(title="Documents")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Status")
    table.add_column("Detail")
    table.add_column("Updated", style="dim")

    limit = None if show_all else 50
    for doc in docs[:limit]:
        table.add_row(
            str(doc.id or ""),
            doc.file_name[:40],
            _styled(doc.status),
            (doc.status_detail or "")[:50],
            str(doc.updated_at or "")[:19],
        )

    console.print(table)

    if limit and len(docs) > limit:
        console.print(f"[dim]Showing {limit} of {len(docs)} documents. Use --all to see all.[/dim]")


@app.command()
def keys(
    config: Path | None = typer.Option(None, "--config", "-c", help="Config file"),
    reset: bool = typer.Option(False, "--reset", help="Clear error counts and cooldowns"),
) -> None:
    """Show API key health."""
    settings = get_settings(config)
    db = get_database(settings)
    pipeline = get_pipeline(settings, db)
    pool = pipeline.pool

    if not len(pool):
        console.print("[yellow]No API keys configured[/yellow]")
        return

    if reset:
        count = asyncio.run(pool.reset_all_errors())
        console.print(f"[green]Reset {count} key(s)[/green]")

    now = datetime.now(timezone.utc)
    table = Table(title=f"API Keys ({pool.healthy_count()}/{len(pool)} available)")
    table.add_column("Label", style="cyan")
    table.add_column("Key", style="dim")
    table.add_column("State")
    table.add_column("Errors", justify="right")
    table.add_column("Last used", style="dim")
    table.add_column("Last error", style="dim")

    for entry in pool.snapshot():
        if not entry.active:
            state = "[red]deactivated[/red]"
        elif entry.is_in_cooldown(now, pool.max_errors, pool.cooldown):
            state = "[yellow]cooling down[/yellow]"
        else:
            state = "[green]available[/green]"

        table.add_row(
            entry.label,
            entry.masked,
            state,
            str(entry.error_count),
            _format_time(entry.last_used_at),
            _format_time(entry.last_error_at),
        )

    console.print(table)


@app.command()
def cache(
    config: Path | None = typer.Option(None, "--config", "-c", help="Config file"),
    sweep: bool = typer.Option(False, "--sweep", help="Remove expired entries"),
    clear: bool = typer.Option(False, "--clear", help="Remove every entry"),
) -> None:
    """Show translation cache statistics."""
    settings = get_settings(config)
    db = get_database(settings)
    pipeline = get_pipeline(settings, db)
    translation_cache = pipeline.cache

    if clear:
        if not typer.confirm("Remove every cached translation?"):
            raise typer.Abort()
        removed = asyncio.run(translation_cache.clear())
        console.print(f"[green]Removed {removed} entries[/green]")
    elif sweep:
        removed = asyncio.run(translation_cache.sweep())
        console.print(f"[green]Removed {removed} expired entries[/green]")

    stats = asyncio.run(translation_cache.stats())
    health = "[green]ok[/green]" if stats.is_healthy else "[yellow]full[/yellow]"

    console.print(
        Panel(
            f"""
Entries: {stats.total_entries} / {stats.max_entries} ({health})
Original text: {stats.total_original_chars:,} chars
Translated text: {stats.total_translated_chars:,} chars
Oldest entry: {_format_time(stats.oldest_entry)}
Newest entry: {_format_time(stats.newest_entry)}
TTL: {settings.cache.ttl_days} days
            """.strip(),
            title="Translation Cache",
        )
    )


@app.command()
def logs(
    document_id: int | None = typer.Option(None, "--doc", "-d", help="Filter by document"),
    level: str | None = typer.Option(None, "--level", "-l", help="Filter by level"),
    stage: str | None = typer.Option(None, "--stage", "-s", help="Filter by stage"),
    limit: int = typer.Option(50, "--limit", "-n", help="Max entries to show"),
    config: Path | None = typer.Option(None, "--config", "-c", help="Config file"),
) -> None:
    """View processing logs."""
    settings = get_settings(config)
    db = get_database(settings)

    entries = db.get_logs(document_id=document_id, level=level, stage=stage, limit=limit)

    if not entries:
        console.print("[yellow]No log entries found[/yellow]")
        return

    table = Table(title="Processing Logs")
    table.add_column("Time", style="dim")
    table.add_column("Level")
    table.add_column("Stage", style="cyan")
    table.add_column("Message")
    table.add_column("Doc", justify="right")

    for entry in entries:
        lvl = entry["level"]
        level_style = {
            "INFO": "green",
            "WARNING": "yellow",
            "ERROR": "red",
        }.get(lvl, "white")

        table.add_row(
            str(entry["created_at"])[:19],
            f"[{level_style}]{lvl}[/{level_style}]",
            entry["stage"] or "",
            (entry["message"] or "")[:70],
            str(entry["document_id"] or ""),
        )

    console.print(table)


def main() -> None:
    """Entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
