"""Logging setup shared by the CLI and the HTTP server.

Library modules log through ``logging.getLogger(__name__)``; this module
installs one RichHandler on the root logger and quiets chatty third-party
loggers.
"""

from __future__ import annotations

import logging

from rich.logging import RichHandler

_NOISY_LOGGERS = ("litellm", "LiteLLM", "httpx", "httpcore", "urllib3")


def setup_logging(level: str | int = "INFO") -> None:
    """Configure the root logger once; later calls only change the level."""
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        level = resolved if isinstance(resolved, int) else logging.INFO

    root = logging.getLogger()
    root.setLevel(level)

    if not any(isinstance(h, RichHandler) for h in root.handlers):
        handler = RichHandler(show_path=False, rich_tracebacks=True)
        handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
        root.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
