"""healthkb status — knowledge base overview."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.panel import Panel
from rich.table import Table

from healthkb.cli._common import console, load_cli_config
from healthkb.cli.errors import err_no_db
from healthkb.db.repository import Repository
from healthkb.db.schema import open_db


def status_cmd(
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the knowledge store."),
    ] = None,
    sources: Annotated[
        bool,
        typer.Option("--sources", help="List every stored source."),
    ] = False,
) -> None:
    """Show source and chunk counts and the last fetch time."""
    cfg = load_cli_config(db)
    db_path = Path(cfg.database.path)
    if not db_path.exists():
        console.print(err_no_db(str(db_path)))
        raise typer.Exit(1)

    conn = open_db(db_path)
    try:
        repo = Repository(conn)
        count = repo.count_sources()
        chunk_count = repo.count_chunks()
        last_fetch = repo.last_fetched_at()
        stored = repo.list_sources() if sources else []
        per_source = {s.id: repo.count_chunks(s.id) for s in stored}
    finally:
        conn.close()

    size_mb = db_path.stat().st_size / (1024 * 1024)
    lines = [
        f"Database: {db_path} ({size_mb:.1f} MB)",
        f"Sources: [bold]{count}[/]  |  Chunks: [bold]{chunk_count:,}[/]",
    ]
    if last_fetch:
        lines.append(f"Last fetch: [dim]{last_fetch[:16]}[/]")
    else:
        lines.append("[dim]No sources ingested yet.[/]  Run:  healthkb ingest")
    console.print(Panel("\n".join(lines), title="[bold]Knowledge Base[/]", expand=False))

    if stored:
        table = Table(show_header=True, header_style="bold", box=None, padding=(0, 1))
        table.add_column("Title")
        table.add_column("Chunks", justify="right")
        table.add_column("URL", style="dim")
        for s in stored:
            table.add_row(s.title, str(per_source[s.id]), s.url)
        console.print(table)
