"""Retrieval-augmented responder."""

from healthkb.rag.responder import Responder, ResponderConfig, UpstreamModelError
from healthkb.rag.retriever import Retriever

__all__ = ["Responder", "ResponderConfig", "Retriever", "UpstreamModelError"]
