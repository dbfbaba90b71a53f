"""Rich error messages: what went wrong and how to fix it.

Usage:
    from healthkb.cli.errors import err_no_api_key, err_no_db
    console.print(err_no_api_key("openai"))
    raise typer.Exit(1)
"""

from __future__ import annotations

from rich.markup import escape

from healthkb.rag.llm_client import api_key_env_var


def err_no_api_key(provider: str) -> str:
    """No API key for *provider*.

    Example:
        No API key for 'openai'. Set:  export OPENAI_API_KEY=sk-...
    """
    env_var = api_key_env_var(provider) or f"{provider.upper()}_API_KEY"
    return (
        f"[red]Error:[/] No API key for '{provider}'.\n"
        f"  Set:  export {env_var}=sk-..."
    )


def err_no_db(db_path: str = "healthkb.db") -> str:
    """No knowledge store at *db_path*."""
    return (
        f"[red]Error:[/] No database found at '{db_path}'.\n"
        "  Run:  healthkb init"
    )


def err_config(message: str) -> str:
    """Config or catalog file could not be loaded."""
    return (
        f"[red]Error:[/] {escape(message)}\n"
        "  Fix the file (healthkb.yaml, ~/.healthkb/config.yaml or the catalog) and retry."
    )


def err_empty_store() -> str:
    """Chat asked before anything was ingested (answer still produced)."""
    return (
        "[yellow]Warning:[/] The knowledge base is empty — answering without sources.\n"
        "  Run:  healthkb ingest"
    )


def err_model_failed(detail: str) -> str:
    """Chat model call failed."""
    return (
        f"[red]Error:[/] Failed to get AI response: {escape(detail)}\n"
        "  Check the model name (--model / chat.model) and your provider quota, then retry."
    )


def err_all_failed(count: int) -> str:
    """Every attempted URL in an ingest run failed."""
    return (
        f"[red]Error:[/] All {count} attempted sources failed.\n"
        "  Check network access and the catalog URLs, then run:  healthkb ingest"
    )


def err_invalid_conversation(detail: str) -> str:
    return f"[red]Error:[/] {escape(detail)}"
