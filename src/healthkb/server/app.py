"""FastAPI application exposing ingestion, chat and knowledge-base status.

Endpoints:
  POST /parse-knowledge-sources  run the Ingestor over the catalog
  POST /chat-health-ai           answer a conversation with the Responder
  GET  /knowledge-status         source/chunk counts and last fetch time
  GET  /healthz                  liveness

Every response carries open CORS headers and any OPTIONS request is answered
with an empty 200. Each request opens and closes its own database connection.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from healthkb.catalog import load_catalog
from healthkb.config import HealthKBConfig, load_config
from healthkb.db.repository import Repository
from healthkb.db.schema import open_db
from healthkb.factory import build_ingestor, build_responder
from healthkb.ingest.pipeline import Fetcher
from healthkb.logging_config import setup_logging

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
}

CHAT_PATH = "/chat-health-ai"
CHAT_ERROR = "Failed to get AI response"


class ChatMessage(BaseModel):
    """One conversation turn; the role is checked by the responder."""

    role: str = Field(..., description="'user' or 'assistant'")
    content: str


class ChatRequest(BaseModel):
    """Request payload for the chat endpoint."""

    messages: list[ChatMessage] = Field(default_factory=list)


def create_app(
    config: HealthKBConfig | None = None,
    *,
    fetcher: Fetcher | None = None,
    urls: list[str] | None = None,
) -> FastAPI:
    """Instantiate the FastAPI app.

    Args:
        config: Loaded configuration; defaults to ``load_config()``.
        fetcher: Page fetcher override for ingestion (tests).
        urls: URL list override; defaults to the configured catalog.
    """
    cfg = config or load_config()
    db_path = Path(cfg.database.path)

    def _catalog() -> list[str]:
        return urls if urls is not None else load_catalog(cfg.ingest.catalog)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        setup_logging(cfg.logging.level)
        app.state.bootstrap_thread = None
        if cfg.ingest.bootstrap_when_empty:
            thread = threading.Thread(
                target=_bootstrap_if_empty,
                args=(db_path, cfg, fetcher, _catalog),
                name="healthkb-bootstrap",
                daemon=True,
            )
            thread.start()
            app.state.bootstrap_thread = thread
        yield

    app = FastAPI(title="healthkb", version="0.1.0", lifespan=lifespan)

    @app.middleware("http")
    async def cors(request: Request, call_next):
        if request.method == "OPTIONS":
            return Response(status_code=200, headers=CORS_HEADERS)
        response = await call_next(request)
        for name, value in CORS_HEADERS.items():
            response.headers[name] = value
        return response

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        if request.url.path == CHAT_PATH:
            logger.error("Error in chat-health-ai: invalid request body: %s", exc.errors())
            return JSONResponse(
                status_code=500,
                content={"error": CHAT_ERROR, "details": _describe_validation_error(exc)},
            )
        return await request_validation_exception_handler(request, exc)

    @app.get("/healthz")
    def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/parse-knowledge-sources")
    def parse_knowledge_sources() -> JSONResponse:
        try:
            catalog = _catalog()
            conn = open_db(db_path)
            try:
                report = build_ingestor(Repository(conn), cfg, fetcher).ingest_all(catalog)
            finally:
                conn.close()
        except Exception as exc:
            logger.exception("Error in parse-knowledge-sources")
            return JSONResponse(status_code=500, content={"error": str(exc)})

        return JSONResponse(
            {
                "success": True,
                "message": report.message,
                "successCount": report.success_count,
                "errorCount": report.error_count,
                "skippedCount": report.skipped_count,
                "results": [o.to_dict() for o in report.outcomes],
            }
        )

    @app.post(CHAT_PATH)
    def chat_health_ai(payload: ChatRequest) -> JSONResponse:
        conversation = [m.model_dump() for m in payload.messages]
        try:
            conn = open_db(db_path)
        except sqlite3.Error as exc:
            logger.warning("Knowledge store unavailable, answering without context: %s", exc)
            conn = None

        try:
            responder = build_responder(Repository(conn) if conn else None, cfg)
            answer = responder.respond(conversation)
        except Exception as exc:
            logger.error("Error in chat-health-ai: %s", exc)
            return JSONResponse(
                status_code=500,
                content={"error": CHAT_ERROR, "details": str(exc)},
            )
        finally:
            if conn is not None:
                conn.close()

        return JSONResponse({"response": answer})

    @app.get("/knowledge-status")
    def knowledge_status() -> JSONResponse:
        try:
            conn = open_db(db_path)
            try:
                repo = Repository(conn)
                body = {
                    "count": repo.count_sources(),
                    "lastFetch": repo.last_fetched_at(),
                    "chunkCount": repo.count_chunks(),
                }
            finally:
                conn.close()
        except sqlite3.Error as exc:
            logger.error("Error checking knowledge status: %s", exc)
            return JSONResponse(status_code=500, content={"error": str(exc)})
        return JSONResponse(body)

    return app


def _describe_validation_error(exc: RequestValidationError) -> str:
    """Flatten pydantic errors, e.g. ``messages.0.content: Input should be a valid string``."""
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        msg = err.get("msg", "invalid value")
        parts.append(f"{loc}: {msg}" if loc else msg)
    return "Invalid request body: " + "; ".join(parts)


def _bootstrap_if_empty(db_path, cfg, fetcher, catalog) -> None:
    """Ingest the catalog once if the store holds no sources."""
    try:
        conn = open_db(db_path)
        try:
            repo = Repository(conn)
            if repo.count_sources() > 0:
                logger.info("Knowledge store already populated; bootstrap skipped")
                return
            logger.info("Knowledge store is empty; running initial ingestion")
            build_ingestor(repo, cfg, fetcher).ingest_all(catalog())
        finally:
            conn.close()
    except Exception:
        logger.exception("Bootstrap ingestion failed")
