"""healthkb ingest — fetch catalog URLs into the knowledge store.

URLs come from --url (repeatable), else --catalog, else ingest.catalog in
the config, else the packaged catalog. Already stored URLs are skipped.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

from healthkb.catalog import load_catalog
from healthkb.cli._common import console, load_cli_config
from healthkb.cli.errors import err_all_failed, err_config
from healthkb.config import ConfigError
from healthkb.db.repository import Repository
from healthkb.db.schema import open_db
from healthkb.factory import build_ingestor
from healthkb.ingest.pipeline import IngestOutcome, IngestReport, OutcomeStatus

_STATUS_STYLE = {
    OutcomeStatus.SUCCESS: "[green]✓ parsed[/]",
    OutcomeStatus.SKIPPED: "[dim]↷ skipped[/]",
    OutcomeStatus.FAILED: "[red]✗ failed[/]",
}


def ingest_cmd(
    url: Annotated[
        list[str] | None,
        typer.Option("--url", "-u", help="URL to ingest instead of the catalog (repeatable)."),
    ] = None,
    catalog: Annotated[
        Path | None,
        typer.Option("--catalog", help="YAML catalog of source URLs."),
    ] = None,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the knowledge store (created if missing)."),
    ] = None,
    delay: Annotated[
        float | None,
        typer.Option("--delay", min=0.0, help="Seconds to wait between fetches."),
    ] = None,
) -> None:
    """Fetch, extract, chunk and store every catalog URL not yet ingested."""
    cfg = load_cli_config(db)
    if delay is not None:
        cfg.ingest.delay_seconds = delay

    if url:
        urls = list(url)
    else:
        try:
            urls = load_catalog(catalog or cfg.ingest.catalog)
        except ConfigError as exc:
            console.print(err_config(str(exc)))
            raise typer.Exit(1) from exc

    if not urls:
        console.print("[yellow]No sources to ingest.[/]")
        raise typer.Exit(0)

    conn = open_db(Path(cfg.database.path))
    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            transient=True,
            console=console,
        ) as prog:
            task = prog.add_task("Ingesting…", total=len(urls))

            def _on_outcome(outcome: IngestOutcome) -> None:
                prog.advance(task)

            ingestor = build_ingestor(Repository(conn), cfg, on_outcome=_on_outcome)
            report = ingestor.ingest_all(urls)
    finally:
        conn.close()

    _print_report(report)

    attempted = report.success_count + report.error_count
    if attempted and report.success_count == 0:
        console.print(err_all_failed(attempted))
        raise typer.Exit(1)


def _print_report(report: IngestReport) -> None:
    table = Table(show_header=True, header_style="bold", box=None, padding=(0, 1))
    table.add_column("Status")
    table.add_column("Source")
    table.add_column("Chunks", justify="right")
    table.add_column("Detail", style="dim")
    for o in report.outcomes:
        table.add_row(
            _STATUS_STYLE[o.status],
            o.title or o.url,
            str(o.chunk_count) if o.status is OutcomeStatus.SUCCESS else "",
            o.error or "",
        )
    console.print(table)
    console.print(
        f"\n[bold]{report.message}[/] [dim]({report.skipped_count} skipped)[/]"
    )
