"""healthkb serve — run the HTTP API under uvicorn."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
import uvicorn

from healthkb.cli._common import console, load_cli_config
from healthkb.server.app import create_app


def serve_cmd(
    host: Annotated[str | None, typer.Option("--host", help="Interface to bind.")] = None,
    port: Annotated[int | None, typer.Option("--port", help="Port to listen on.")] = None,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the knowledge store."),
    ] = None,
    bootstrap: Annotated[
        bool | None,
        typer.Option(
            "--bootstrap/--no-bootstrap",
            help="Ingest the catalog at startup when the store is empty.",
        ),
    ] = None,
) -> None:
    """Serve /parse-knowledge-sources, /chat-health-ai and /knowledge-status."""
    cfg = load_cli_config(db)
    if host is not None:
        cfg.server.host = host
    if port is not None:
        cfg.server.port = port
    if bootstrap is not None:
        cfg.ingest.bootstrap_when_empty = bootstrap

    console.print(
        f"[bold]healthkb[/] serving on http://{cfg.server.host}:{cfg.server.port} "
        f"[dim](db: {cfg.database.path})[/]"
    )
    uvicorn.run(
        create_app(cfg),
        host=cfg.server.host,
        port=cfg.server.port,
        log_config=None,
    )
