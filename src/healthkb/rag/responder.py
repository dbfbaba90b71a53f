"""Health assistant responder: retrieval-augmented chat completion.

Pipeline per call:
  1. Validate the conversation and the provider API key.
  2. Search stored chunks with the latest user message (best effort).
  3. Build the system prompt, appending a labelled context block when
     anything was found.
  4. Send [system, *conversation] to the chat model and return its text.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from healthkb.db.models import SearchHit
from healthkb.rag.llm_client import complete, validate_api_key
from healthkb.rag.retriever import Retriever

logger = logging.getLogger(__name__)

ROLES = ("user", "assistant")

SYSTEM_PROMPT = """You are a knowledgeable health assistant focused on providing evidence-based information about nutrition, fitness, wellness, and general health topics.

Your guidelines:
- Provide helpful, accurate information based on current health science
- Focus on nutrition, exercise, mental wellness, sleep, and general healthy lifestyle topics
- When you use the reference material provided below, cite the source title it came from
- Always remind users that your advice is for informational purposes only
- Encourage users to consult healthcare professionals for medical concerns, diagnosis, or treatment
- If you are not sure, or the evidence is mixed, say so plainly instead of guessing
- Be supportive, encouraging, and non-judgmental in your responses
- If asked about specific medical conditions, provide general information but emphasize the need for professional medical advice

Formatting rules (always follow):
- Use # for main titles
- Use ## for section headers
- Use ### for sub-headers when needed
- Use bullet points (- or numbered lists) for exercises, meals, or steps
- Use **bold** for highlighting key words inside lists
- Keep paragraphs short (2-3 sentences)

Remember: You're a wellness coach and health information resource, not a medical doctor."""

_CONTEXT_HEADER = (
    "Reference material from trusted health sources "
    "(use it when relevant and cite the source title):"
)


class UpstreamModelError(RuntimeError):
    """The chat-completion provider rejected or failed the request."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass
class ResponderConfig:
    model: str = "openai/gpt-4o-mini"
    temperature: float = 0.7
    max_tokens: int = 500
    timeout_seconds: float = 60.0


def validate_conversation(conversation: Sequence[Mapping[str, str]]) -> list[dict]:
    """Return *conversation* as plain ``{role, content}`` dicts.

    Raises:
        ValueError: If it is empty, has an unknown role or non-text content,
            or does not end with a user turn.
    """
    if not conversation:
        raise ValueError("Conversation must contain at least one message.")

    messages: list[dict] = []
    for n, turn in enumerate(conversation, start=1):
        role = turn.get("role")
        content = turn.get("content")
        if role not in ROLES:
            raise ValueError(f"Message {n} has invalid role {role!r}; expected 'user' or 'assistant'.")
        if not isinstance(content, str):
            raise ValueError(f"Message {n} content must be a string.")
        messages.append({"role": role, "content": content})

    if messages[-1]["role"] != "user":
        raise ValueError("The last message must come from the user.")
    return messages


def build_context_block(hits: Sequence[SearchHit]) -> str:
    """Format hits as ``[Source i: title]`` sections; empty string for no hits."""
    if not hits:
        return ""
    sections = [
        f"[Source {i}: {hit.source_title}]\n{hit.chunk.content.strip()}"
        for i, hit in enumerate(hits, start=1)
    ]
    return _CONTEXT_HEADER + "\n\n" + "\n\n".join(sections)


def build_system_prompt(hits: Sequence[SearchHit]) -> str:
    context = build_context_block(hits)
    return f"{SYSTEM_PROMPT}\n\n{context}" if context else SYSTEM_PROMPT


class Responder:
    """Answer a conversation with the chat model, enriched by stored context.

    Args:
        retriever: Source of context chunks; None answers without context.
        config: Model settings.
    """

    def __init__(
        self,
        retriever: Retriever | None,
        config: ResponderConfig | None = None,
    ) -> None:
        self.retriever = retriever
        self.config = config or ResponderConfig()

    def respond(self, conversation: Sequence[Mapping[str, str]]) -> str:
        """Return the model's answer to the latest user turn of *conversation*.

        Raises:
            ValueError: Malformed conversation.
            EnvironmentError: Missing API key (raised before any network call).
            UpstreamModelError: The model call failed; not retried.
        """
        messages = validate_conversation(conversation)
        validate_api_key(self.config.model)

        hits: list[SearchHit] = []
        if self.retriever is not None:
            hits = self.retriever.retrieve_context(messages[-1]["content"])

        ai_messages = [{"role": "system", "content": build_system_prompt(hits)}, *messages]
        logger.info(
            "Sending request to %s with %d messages (%d context chunks)",
            self.config.model,
            len(ai_messages),
            len(hits),
        )

        try:
            answer = complete(
                model=self.config.model,
                messages=ai_messages,
                max_tokens=self.config.max_tokens,
                temperature=self.config.temperature,
                timeout=self.config.timeout_seconds,
                num_retries=0,
            )
        except Exception as exc:
            status = getattr(exc, "status_code", None)
            logger.error("Chat model error (status %s): %s", status, exc)
            detail = f"status {status}: {exc}" if status else str(exc)
            raise UpstreamModelError(f"Chat model error: {detail}", status_code=status) from exc

        logger.info("Chat model response received")
        return answer
