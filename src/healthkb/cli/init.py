"""healthkb init — create the knowledge store and a starter config."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from healthkb.cli._common import console, load_cli_config
from healthkb.db.schema import open_db

_CONFIG_TEMPLATE = """\
# healthkb project configuration.
# NEVER store API keys here — use environment variables:
#   export OPENAI_API_KEY=sk-...

database:
  path: {db}

ingest:
  # catalog: sources.yaml     # defaults to the packaged health catalog
  chunk_size: 1000
  max_content_chars: 50000
  delay_seconds: 0.5
  timeout_seconds: 30

chat:
  model: openai/gpt-4o-mini
  temperature: 0.7
  top_k: 5
"""


def init_cmd(
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the knowledge store (created if missing)."),
    ] = None,
    write_config: Annotated[
        bool,
        typer.Option("--config/--no-config", help="Write healthkb.yaml if it does not exist."),
    ] = True,
) -> None:
    """Create the knowledge store schema (idempotent)."""
    cfg = load_cli_config(db)
    db_path = Path(cfg.database.path)
    existed = db_path.exists()

    conn = open_db(db_path)
    conn.close()
    if existed:
        console.print(f"[dim]↷ already exists, schema up to date: {db_path}[/]")
    else:
        console.print(f"  [green]✓[/] {db_path}")

    config_path = Path("healthkb.yaml")
    if write_config and not config_path.exists():
        config_path.write_text(_CONFIG_TEMPLATE.format(db=db_path), encoding="utf-8")
        console.print(f"  [green]✓[/] {config_path}")

    console.print("\nNext steps:")
    console.print("  1. export OPENAI_API_KEY=sk-...")
    console.print("  2. healthkb ingest            (fetch the source catalog)")
    console.print("  3. healthkb ask \"question\"    (ask the assistant)")
