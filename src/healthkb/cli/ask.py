"""healthkb ask — one-shot question to the health assistant."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.markdown import Markdown

from healthkb.cli._common import console, load_cli_config
from healthkb.cli.errors import (
    err_empty_store,
    err_invalid_conversation,
    err_model_failed,
    err_no_api_key,
)
from healthkb.db.repository import Repository
from healthkb.db.schema import open_db
from healthkb.factory import build_responder
from healthkb.rag.llm_client import provider_of
from healthkb.rag.responder import UpstreamModelError


def ask_cmd(
    question: Annotated[str, typer.Argument(help="Question for the assistant.")],
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the knowledge store."),
    ] = None,
    model: Annotated[
        str | None,
        typer.Option("--model", help="LiteLLM model string (overrides chat.model)."),
    ] = None,
    raw: Annotated[
        bool,
        typer.Option("--raw", help="Print the answer as plain text instead of Markdown."),
    ] = False,
) -> None:
    """Answer QUESTION using the knowledge base as context."""
    cfg = load_cli_config(db)
    if model:
        cfg.chat.model = model

    conn = open_db(Path(cfg.database.path))
    try:
        repo = Repository(conn)
        if repo.count_chunks() == 0:
            console.print(err_empty_store())
        answer = build_responder(repo, cfg).respond([{"role": "user", "content": question}])
    except EnvironmentError as exc:
        console.print(err_no_api_key(provider_of(cfg.chat.model)))
        raise typer.Exit(1) from exc
    except UpstreamModelError as exc:
        console.print(err_model_failed(str(exc)))
        raise typer.Exit(1) from exc
    except ValueError as exc:
        console.print(err_invalid_conversation(str(exc)))
        raise typer.Exit(1) from exc
    finally:
        conn.close()

    if raw:
        typer.echo(answer)
    else:
        console.print(Markdown(answer))
