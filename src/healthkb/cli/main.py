"""healthkb CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from healthkb.cli.ask import ask_cmd
from healthkb.cli.ingest import ingest_cmd
from healthkb.cli.init import init_cmd
from healthkb.cli.serve import serve_cmd
from healthkb.cli.status import status_cmd


def _installed_version() -> str:
    try:
        return importlib.metadata.version("healthkb")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"healthkb {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="healthkb",
    help=(
        "healthkb — health knowledge base and RAG assistant.\n\n"
        "  healthkb ingest  Fetch the source catalog into the knowledge base.\n"
        "  healthkb ask     Ask the health assistant a question."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
) -> None:
    """healthkb — health knowledge base and RAG assistant."""


app.command("init")(init_cmd)
app.command("ingest")(ingest_cmd)
app.command("ask")(ask_cmd)
app.command("status")(status_cmd)
app.command("serve")(serve_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed healthkb version."""
    typer.echo(f"healthkb {_installed_version()}")


if __name__ == "__main__":
    app()
