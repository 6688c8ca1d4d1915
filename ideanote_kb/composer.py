"""Compose retrieved context into a prompt and stream the LLM answer."""

from __future__ import annotations

import asyncio
from typing import AsyncIterator, List

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage

from .config import KBSettings
from .exceptions import KBError
from .log import get_logger
from .schemas import RetrievalResult, StreamEvent

logger = get_logger(__name__)

SYSTEM_PROMPT = (
    "You answer questions about the user's notes. "
    "Use only the provided context. "
    "If the context does not contain the answer, say so plainly. "
    "Cite the sources you use with their [note#chunk] tags."
)

NO_CONTEXT_ANSWER = "I couldn't find anything in your notes that answers this question."


def build_messages(question: str, retrieval: RetrievalResult) -> List[BaseMessage]:
    """System + human messages for a question and its retrieved context."""
    prompt = (
        f"[Context]\n{retrieval.context}\n\n"
        f"[Question]\n{question}\n\n"
        "[Requirements]\nAnswer only from the context above; "
        "if it has no answer, state that clearly."
    )
    return [SystemMessage(content=SYSTEM_PROMPT), HumanMessage(content=prompt)]


def _chunk_text(chunk) -> str:
    content = getattr(chunk, "content", chunk)
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and part.get("type") == "text":
                parts.append(part.get("text", ""))
        return "".join(parts)
    return ""


class AnswerComposer:
    """
    Streams an answer from a LangChain chat model.

    When retrieval found nothing the model is not called at all: the stream
    yields a fixed "no relevant notes" answer and completes.
    """

    def __init__(self, chat_model: BaseChatModel):
        self.chat_model = chat_model

    async def stream(self, question: str, retrieval: RetrievalResult) -> AsyncIterator[StreamEvent]:
        """
        Yield ``delta`` events with answer text, then one ``done`` or ``error``.

        Closing the iterator (or cancelling the consuming task) stops the
        underlying model stream.
        """
        if not retrieval.results:
            yield StreamEvent(type="delta", text=NO_CONTEXT_ANSWER)
            yield StreamEvent(type="done")
            return

        messages = build_messages(question, retrieval)
        try:
            async for chunk in self.chat_model.astream(messages):
                text = _chunk_text(chunk)
                if text:
                    yield StreamEvent(type="delta", text=text)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("answer_stream_failed", error=str(exc))
            yield StreamEvent(type="error", error=str(exc))
            return
        yield StreamEvent(type="done")

    async def compose(self, question: str, retrieval: RetrievalResult) -> str:
        """
        Collect the full answer text.

        Raises:
            KBError: If the model stream ends with an error
        """
        parts: List[str] = []
        async for event in self.stream(question, retrieval):
            if event.type == "delta":
                parts.append(event.text)
            elif event.type == "error":
                raise KBError(f"Answer generation failed: {event.error}")
        return "".join(parts)


def make_chat_model(settings: KBSettings) -> BaseChatModel:
    """Build the configured chat model (Ollama)."""
    from langchain_community.chat_models import ChatOllama

    return ChatOllama(
        model=settings.llm_model,
        base_url=settings.ollama_base_url,
        temperature=settings.llm_temperature,
    )
