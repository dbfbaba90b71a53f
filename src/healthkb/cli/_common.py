"""Helpers shared by CLI commands."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from healthkb.cli.errors import err_config
from healthkb.config import ConfigError, HealthKBConfig, load_config
from healthkb.logging_config import setup_logging

console = Console()


def load_cli_config(db: Path | None = None) -> HealthKBConfig:
    """Load config, apply the --db flag, set up logging; exit 1 on ConfigError."""
    try:
        cfg = load_config()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1) from exc
    if db is not None:
        cfg.database.path = str(db)
    setup_logging(cfg.logging.level)
    return cfg
