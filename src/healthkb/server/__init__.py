"""HTTP API for ingestion and chat."""

from healthkb.server.app import create_app

__all__ = ["create_app"]
